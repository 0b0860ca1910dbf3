# backend/cryptofolio/routers/assets.py
"""
Asset endpoints for the current user.

Every endpoint requires an API token. Assets belong to exactly one user;
an asset of another user answers 404 like a missing one.

Reads that include values call the ValuationEngine, which looks up one
exchange rate per distinct currency (cached for a short window):
- GET /assets          - all assets with values and per-currency totals
- GET /assets/summary  - per-currency totals only (summed by the database)
- GET /assets/{id}     - one asset with its value
"""

import logging

from fastapi import APIRouter, Depends, Request, status
from sqlalchemy.orm import Session

from cryptofolio.database import get_db
from cryptofolio.dependencies import (
    get_asset_store,
    get_asset_with_owner_check,
    get_current_user,
    get_valuation_engine,
)
from cryptofolio.middleware.rate_limit import (
    limiter,
    RATE_LIMIT_VALUATION,
    RATE_LIMIT_WRITE,
)
from cryptofolio.models import Asset, User
from cryptofolio.schemas.assets import (
    AssetCreate,
    AssetListResponse,
    AssetResponse,
    AssetUpdate,
    AssetWithValue,
)
from cryptofolio.schemas.valuation import PortfolioSummaryResponse
from cryptofolio.services.asset_store import AssetStore
from cryptofolio.services.valuation import (
    AssetAggregator,
    AssetValuation,
    PortfolioValuation,
    ValuationEngine,
    format_quote_value,
)

logger = logging.getLogger(__name__)

# =============================================================================
# ROUTER SETUP
# =============================================================================

router = APIRouter(
    prefix="/assets",
    tags=["Assets"],
)


# =============================================================================
# MAPPER FUNCTIONS (Internal Types -> Pydantic Schemas)
# =============================================================================

def map_asset_with_value(asset: Asset, valuation: AssetValuation) -> AssetWithValue:
    """Combine a stored asset with its valuation."""
    base = AssetResponse.model_validate(asset)
    return AssetWithValue(
        **base.model_dump(exclude={"ticker"}),
        value_in_quote=valuation.value_in_quote,
        quote_currency=valuation.quote_currency,
        display_value=valuation.display_value,
    )


def map_total_assets(portfolio: PortfolioValuation) -> dict[str, str]:
    """Display value per ticker, for currencies that are held."""
    return {
        currency.ticker: bucket.display_value
        for currency, bucket in sorted(portfolio.buckets.items())
    }


async def build_asset_listing(
    assets: list[Asset],
    engine: ValuationEngine,
) -> AssetListResponse:
    """Value a user's assets and shape them with per-currency totals."""
    valuations, portfolio = await engine.value_holdings(assets)

    return AssetListResponse(
        data=[map_asset_with_value(a, v) for a, v in zip(assets, valuations)],
        total_assets=map_total_assets(portfolio),
        total_value_in_quote=portfolio.total_value_in_quote,
        quote_currency=engine.quote_currency,
    )


# =============================================================================
# ENDPOINTS
# =============================================================================

@router.get(
    "",
    response_model=AssetListResponse,
    summary="List assets with values",
)
@limiter.limit(RATE_LIMIT_VALUATION)
async def list_assets(
        request: Request,  # Required for rate limiter
        current_user: User = Depends(get_current_user),
        store: AssetStore = Depends(get_asset_store),
        engine: ValuationEngine = Depends(get_valuation_engine),
) -> AssetListResponse:
    """
    All assets of the current user, each with its value in the quote
    currency, plus `total_assets`: one display string per currency held,
    e.g. `{"BTC": "90178.540 USD"}`.
    """
    assets = store.find_assets_by_user_id(current_user.id)
    return await build_asset_listing(assets, engine)


@router.post(
    "",
    response_model=AssetResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create an asset",
    response_description="The created asset"
)
@limiter.limit(RATE_LIMIT_WRITE)
def create_asset(
        request: Request,  # Required for rate limiter
        asset: AssetCreate,
        current_user: User = Depends(get_current_user),
        db: Session = Depends(get_db),
) -> Asset:
    """
    Create an asset for the current user.

    - **label**: 1-25 characters
    - **currency**: 1 (BTC), 2 (ETH) or 3 (IOTA)
    - **amount**: positive, up to 8 decimal places
    """
    db_asset = Asset(
        user_id=current_user.id,
        label=asset.label,
        currency=int(asset.currency),
        amount=asset.amount,
    )

    db.add(db_asset)
    db.commit()
    db.refresh(db_asset)

    logger.info(
        f"User {current_user.id} created asset {db_asset.id} ({asset.currency.ticker})",
        extra={"user_id": current_user.id, "asset_id": db_asset.id, "currency": asset.currency.ticker},
    )
    return db_asset


@router.get(
    "/summary",
    response_model=PortfolioSummaryResponse,
    summary="Per-currency valuation",
)
@limiter.limit(RATE_LIMIT_VALUATION)
async def get_summary(
        request: Request,  # Required for rate limiter
        current_user: User = Depends(get_current_user),
        store: AssetStore = Depends(get_asset_store),
        engine: ValuationEngine = Depends(get_valuation_engine),
) -> PortfolioSummaryResponse:
    """
    Total amount and value per currency held.

    Amounts are summed by the database; currencies without assets are
    left out rather than reported as zero.
    """
    totals = AssetAggregator.from_totals(store.sum_amounts_by_currency(current_user.id))
    portfolio = await engine.value_totals(totals)

    return PortfolioSummaryResponse.from_valuation(
        portfolio,
        display_total=format_quote_value(portfolio.total_value_in_quote, portfolio.quote_currency),
    )


@router.get(
    "/{asset_id}",
    response_model=AssetWithValue,
    summary="Get an asset with its value",
)
@limiter.limit(RATE_LIMIT_VALUATION)
async def get_asset(
        request: Request,  # Required for rate limiter
        asset: Asset = Depends(get_asset_with_owner_check),
        engine: ValuationEngine = Depends(get_valuation_engine),
) -> AssetWithValue:
    """Retrieve one asset of the current user, valued at the current rate."""
    valuation = await engine.value_asset(asset)
    return map_asset_with_value(asset, valuation)


@router.patch(
    "/{asset_id}",
    response_model=AssetResponse,
    summary="Update an asset",
)
@limiter.limit(RATE_LIMIT_WRITE)
def update_asset(
        request: Request,  # Required for rate limiter
        asset_update: AssetUpdate,
        asset: Asset = Depends(get_asset_with_owner_check),
        db: Session = Depends(get_db),
) -> Asset:
    """
    Update an asset. Only fields that are sent change.
    """
    update_data = asset_update.model_dump(exclude_unset=True)

    for field, value in update_data.items():
        if value is None:
            continue
        if field == "currency":
            value = int(value)
        setattr(asset, field, value)

    db.commit()
    db.refresh(asset)

    logger.info(f"Asset {asset.id} updated: {sorted(update_data)}")
    return asset


router.add_api_route(
    "/{asset_id}",
    update_asset,
    methods=["PUT"],
    response_model=AssetResponse,
    summary="Update an asset",
    include_in_schema=False,
)


@router.delete(
    "/{asset_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete an asset",
)
@limiter.limit(RATE_LIMIT_WRITE)
def delete_asset(
        request: Request,  # Required for rate limiter
        asset: Asset = Depends(get_asset_with_owner_check),
        db: Session = Depends(get_db),
) -> None:
    """Delete an asset of the current user."""
    asset_id = asset.id
    db.delete(asset)
    db.commit()
    logger.info(f"Asset {asset_id} deleted")
