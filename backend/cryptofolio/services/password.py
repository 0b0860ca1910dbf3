# backend/cryptofolio/services/password.py
"""
Password hashing and verification using bcrypt (via passlib).

Only hashes are stored; plaintext passwords never leave the request that
carried them.
"""

from passlib.context import CryptContext


# Cost factor 12: roughly 250ms per hash
_pwd_context = CryptContext(
    schemes=["bcrypt"],
    deprecated="auto",
    bcrypt__rounds=12,
)


class PasswordService:
    """Stateless helpers around the bcrypt context."""

    @staticmethod
    def hash_password(password: str) -> str:
        """Return a salted bcrypt hash (``$2b$12$...``)."""
        return _pwd_context.hash(password)

    @staticmethod
    def verify_password(plain_password: str, hashed_password: str) -> bool:
        """Timing-safe check of a plaintext password against a stored hash."""
        return _pwd_context.verify(plain_password, hashed_password)

