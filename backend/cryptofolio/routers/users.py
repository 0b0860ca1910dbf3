# backend/cryptofolio/routers/users.py
"""
User endpoints.

- POST   /users     - register; the response carries the API token once
- GET    /users/me  - profile with valued assets and per-currency totals
- PATCH  /users/me  - update name, surname, email or password
- DELETE /users/me  - delete the user and all of their assets

Authenticated endpoints take the token from the X-API-Token header or
the `token` query parameter.
"""

import logging

from fastapi import APIRouter, Depends, Request, status
from sqlalchemy.orm import Session

from cryptofolio.database import get_db
from cryptofolio.dependencies import (
    get_asset_store,
    get_current_user,
    get_user_service,
    get_valuation_engine,
)
from cryptofolio.middleware.rate_limit import (
    limiter,
    RATE_LIMIT_REGISTER,
    RATE_LIMIT_VALUATION,
    RATE_LIMIT_WRITE,
)
from cryptofolio.models import User
from cryptofolio.routers.assets import build_asset_listing
from cryptofolio.schemas.users import (
    UserCreate,
    UserDetail,
    UserRegistered,
    UserResponse,
    UserUpdate,
)
from cryptofolio.services.asset_store import AssetStore
from cryptofolio.services.user_service import UserService
from cryptofolio.services.valuation import ValuationEngine

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/users",
    tags=["Users"],
)


@router.post(
    "",
    response_model=UserRegistered,
    status_code=status.HTTP_201_CREATED,
    summary="Register a user",
    responses={
        409: {"description": "Email already registered"},
    },
)
@limiter.limit(RATE_LIMIT_REGISTER)
def register(
    request: Request,  # Required for rate limiter
    body: UserCreate,
    db: Session = Depends(get_db),
    user_service: UserService = Depends(get_user_service),
) -> User:
    """
    Create a user and issue an API token.

    Store the returned token: it is not shown again.
    """
    return user_service.register(
        db,
        email=body.email,
        password=body.password,
        name=body.name,
        surname=body.surname,
    )


@router.get(
    "/me",
    response_model=UserDetail,
    summary="Current user with valued assets",
)
@limiter.limit(RATE_LIMIT_VALUATION)
async def read_me(
    request: Request,  # Required for rate limiter
    current_user: User = Depends(get_current_user),
    store: AssetStore = Depends(get_asset_store),
    engine: ValuationEngine = Depends(get_valuation_engine),
) -> UserDetail:
    """Profile of the token's owner, with each asset valued at the current rate."""
    listing = await build_asset_listing(store.find_assets_by_user_id(current_user.id), engine)

    return UserDetail(
        **UserResponse.model_validate(current_user).model_dump(),
        assets=listing.data,
        total_assets=listing.total_assets,
        total_value_in_quote=listing.total_value_in_quote,
        quote_currency=listing.quote_currency,
    )


@router.patch(
    "/me",
    response_model=UserResponse,
    summary="Update the current user",
    responses={
        409: {"description": "Email already registered"},
    },
)
@limiter.limit(RATE_LIMIT_WRITE)
def update_me(
    request: Request,  # Required for rate limiter
    body: UserUpdate,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    user_service: UserService = Depends(get_user_service),
) -> User:
    """Update profile fields; omitted fields keep their value."""
    result = user_service.update_profile(
        db,
        current_user,
        email=body.email,
        password=body.password,
        name=body.name,
        surname=body.surname,
    )
    return result.user


@router.delete(
    "/me",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete the current user",
)
@limiter.limit(RATE_LIMIT_WRITE)
def delete_me(
    request: Request,  # Required for rate limiter
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    user_service: UserService = Depends(get_user_service),
) -> None:
    """Delete the current user. Their assets are deleted with them."""
    user_service.delete(db, current_user)
