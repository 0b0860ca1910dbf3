# backend/cryptofolio/routers/__init__.py
"""
API routers for the Cryptofolio API.

- users: Registration and the current user's profile
- assets: Crypto holdings of the current user, with valuation
"""

from cryptofolio.routers.assets import router as assets_router
from cryptofolio.routers.users import router as users_router

__all__ = [
    "assets_router",
    "users_router",
]
