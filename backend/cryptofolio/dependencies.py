# backend/cryptofolio/dependencies.py
"""
Dependency injection module for FastAPI services.

The valuation stack (HTTP client, circuit breaker, quote client, rate
cache, engine) is built once in the application lifespan and kept on
app.state; the getters here only read it back. Tests swap any of them
through app.dependency_overrides.

Usage in routers:
    from cryptofolio.dependencies import (
        get_current_user,
        get_asset_with_owner_check,
        get_valuation_engine,
    )

    @router.get("/{asset_id}")
    async def read_asset(
        asset: Asset = Depends(get_asset_with_owner_check),
        engine: ValuationEngine = Depends(get_valuation_engine),
    ):
        ...
"""

import logging
from functools import lru_cache
from typing import Annotated

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import APIKeyHeader, APIKeyQuery
from sqlalchemy.orm import Session

from cryptofolio.database import get_db
from cryptofolio.models import Asset, User
from cryptofolio.services.asset_store import AssetStore, SqlAlchemyAssetStore
from cryptofolio.services.constants import API_TOKEN_HEADER, API_TOKEN_QUERY_PARAM
from cryptofolio.services.exceptions import AssetNotFoundError
from cryptofolio.services.user_service import UserService
from cryptofolio.services.valuation import ValuationEngine

logger = logging.getLogger(__name__)

# Token may come as a header or, for simple clients, as ?token=
_token_header = APIKeyHeader(name=API_TOKEN_HEADER, auto_error=False)
_token_query = APIKeyQuery(name=API_TOKEN_QUERY_PARAM, auto_error=False)


# =============================================================================
# SERVICES
# =============================================================================


@lru_cache(maxsize=1)
def get_user_service() -> UserService:
    """UserService is stateless, so one instance serves every request."""
    return UserService()


def get_asset_store(db: Annotated[Session, Depends(get_db)]) -> AssetStore:
    """Asset queries bound to the request's database session."""
    return SqlAlchemyAssetStore(db)


def get_valuation_engine(request: Request) -> ValuationEngine:
    """
    The ValuationEngine built by the application lifespan.

    Raises:
        HTTPException 503: If the lifespan has not run (engine missing)
    """
    engine = getattr(request.app.state, "valuation_engine", None)
    if engine is None:
        logger.error("Valuation engine requested before application startup")
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Valuation service is not available",
        )
    return engine


# =============================================================================
# AUTHENTICATION DEPENDENCIES
# =============================================================================


def get_current_user(
    header_token: Annotated[str | None, Depends(_token_header)],
    query_token: Annotated[str | None, Depends(_token_query)],
    db: Annotated[Session, Depends(get_db)],
    user_service: Annotated[UserService, Depends(get_user_service)],
) -> User:
    """
    Resolve the API token of the request to its user.

    The X-API-Token header wins over the token query parameter.

    Raises:
        HTTPException 401: If no token was sent
        UserNotFoundError: If the token is unknown (mapped to 401)
    """
    token = (header_token or query_token or "").strip()
    if not token:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": API_TOKEN_HEADER},
        )

    return user_service.find_by_token(db, token)


def get_asset_with_owner_check(
    asset_id: int,
    db: Annotated[Session, Depends(get_db)],
    current_user: Annotated[User, Depends(get_current_user)],
) -> Asset:
    """
    Fetch an asset of the current user.

    Assets of other users are reported exactly like missing ones, so
    their existence is not revealed.

    Raises:
        AssetNotFoundError: If missing or owned by someone else
    """
    asset = SqlAlchemyAssetStore(db).find_asset_by_id(asset_id)

    if asset is None or asset.user_id != current_user.id:
        raise AssetNotFoundError(asset_id)

    return asset
