# backend/cryptofolio/services/user_service.py
"""
User Service for registration, token lookup, profile updates and deletion.

Users authenticate every request with an opaque API token (UUID4) that is
issued at registration. Passwords are stored as bcrypt hashes only.

Design Principles:
- No HTTP Knowledge: Raises domain exceptions, not HTTPException
- Deleting a user deletes their assets (ORM cascade)
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass

from sqlalchemy import select
from sqlalchemy.orm import Session

from cryptofolio.models import User
from cryptofolio.services.exceptions import UserExistsError, UserNotFoundError
from cryptofolio.services.password import PasswordService

logger = logging.getLogger(__name__)


@dataclass
class ProfileUpdateResult:
    """Result of updating a user profile."""

    user: User
    changed_fields: list[str]


def generate_api_token() -> str:
    """New random API token in UUID4 format."""
    return str(uuid.uuid4())


class UserService:
    """Service for managing users and their API tokens."""

    def __init__(self) -> None:
        logger.debug("UserService initialized")

    def register(
        self,
        db: Session,
        email: str,
        password: str,
        name: str | None = None,
        surname: str | None = None,
    ) -> User:
        """
        Create a user with a fresh API token.

        Raises:
            UserExistsError: If the email is already registered
        """
        email = email.strip().lower()
        if self._email_taken(db, email):
            raise UserExistsError(email)

        user = User(
            token=generate_api_token(),
            email=email,
            hashed_password=PasswordService.hash_password(password),
            name=name,
            surname=surname,
        )
        db.add(user)
        db.commit()
        db.refresh(user)

        logger.info(f"Registered user {user.id}", extra={"user_id": user.id})
        return user

    def find_by_token(self, db: Session, token: str) -> User:
        """
        Resolve an API token to its user.

        Raises:
            UserNotFoundError: If no user holds the token
        """
        user = db.scalar(select(User).where(User.token == token))
        if user is None:
            raise UserNotFoundError()
        return user

    def update_profile(
        self,
        db: Session,
        user: User,
        email: str | None = None,
        password: str | None = None,
        name: str | None = None,
        surname: str | None = None,
    ) -> ProfileUpdateResult:
        """
        Apply the given fields; None leaves a field unchanged.

        Raises:
            UserExistsError: If the new email belongs to another user
        """
        changed_fields: list[str] = []

        if email is not None:
            email = email.strip().lower()
            if email != user.email:
                if self._email_taken(db, email, exclude_user_id=user.id):
                    raise UserExistsError(email)
                user.email = email
                changed_fields.append("email")

        if password is not None:
            user.hashed_password = PasswordService.hash_password(password)
            changed_fields.append("password")

        if name is not None and name != user.name:
            user.name = name
            changed_fields.append("name")

        if surname is not None and surname != user.surname:
            user.surname = surname
            changed_fields.append("surname")

        if changed_fields:
            db.commit()
            db.refresh(user)
            logger.info(f"User {user.id} profile updated: {changed_fields}")

        return ProfileUpdateResult(user=user, changed_fields=changed_fields)

    def delete(self, db: Session, user: User) -> None:
        """Delete a user together with all of their assets."""
        user_id = user.id
        asset_count = len(user.assets)
        db.delete(user)
        db.commit()
        logger.warning(f"User {user_id} deleted with {asset_count} asset(s)")

    def _email_taken(self, db: Session, email: str, exclude_user_id: int | None = None) -> bool:
        query = select(User.id).where(User.email == email)
        if exclude_user_id is not None:
            query = query.where(User.id != exclude_user_id)
        return db.scalar(query) is not None
