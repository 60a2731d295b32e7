"""Market routes - Token listings, live reads, price history and catalog sync."""

import asyncio
import hmac
import time
import uuid
from typing import Literal, Optional

from fastapi import APIRouter, Depends, Header, HTTPException, Query, Response, status

from app.api.deps import get_market_service, get_sync_service
from app.core.config import settings
from app.core.errors import ExternalServiceError
from app.core.logging import get_logger
from app.schemas.api import (
    CronSyncResponse,
    FreshTokenOut,
    MarketStats,
    MarketTokensResponse,
    Pagination,
    PriceHistoryPointOut,
    PriceHistoryResponse,
    PriceHistoryToken,
    SyncRequest,
    SyncResponse,
)
from app.services.catalog_sync import CatalogSyncService
from app.services.market_service import MarketService
from app.services.result_assembler import ListingQuery

log = get_logger("api.market")

router = APIRouter(prefix="/market/tokens", tags=["market"])


# -----------------------------------------------------------------------------
# Listing
# -----------------------------------------------------------------------------


@router.get("", response_model=MarketTokensResponse)
async def list_market_tokens(
    response: Response,
    type: Literal["all", "direct", "content-derived"] = Query("all", description="Token origin filter"),
    search: str = Query("", description="Case-insensitive match on name, symbol, owner or content title"),
    sort_by: str = Query("tvl", alias="sortBy", description="price, tvl, market_cap, volume_24h, price_change_24h or created_at"),
    sort_order: Literal["asc", "desc"] = Query("desc", alias="sortOrder"),
    limit: int = Query(50, ge=1, le=500, description="Number of tokens to return (max 500)"),
    offset: int = Query(0, ge=0, description="Number of tokens to skip"),
    include_stats: bool = Query(False, alias="includeStats"),
    fresh: bool = Query(False, description="Re-read every token from the chain"),
    service: MarketService = Depends(get_market_service),
):
    """
    List tradable creator tokens with live pricing and 24h market data.

    Direct and content-derived tokens are merged by address. Stale rows are
    refreshed from the chain; 24h change and volume come from the ledger.
    The whole pipeline runs under the request deadline (504 on expiry).
    """
    start = time.perf_counter()
    request_id = str(uuid.uuid4())

    query = ListingQuery(
        origin_type=type,
        search=search,
        sort_by=sort_by,
        sort_order=sort_order,
        limit=limit,
        offset=offset,
        include_stats=include_stats,
    )
    # The deadline is checked at await points only; a blocking catalog or ledger query runs to completion first.
    listing = await asyncio.wait_for(
        service.list_tokens(query, fresh=fresh),
        timeout=settings.REQUEST_DEADLINE_SECONDS,
    )
    page = listing.page

    stats = None
    if page.stats is not None:
        stats = MarketStats(
            total_tokens=page.stats.total_tokens,
            total_tvl=page.stats.total_tvl,
            volume_24h=page.stats.volume_24h,
            top_gainers=page.stats.top_gainers,
            top_losers=page.stats.top_losers,
        )

    response.headers.update(listing.cache.headers())
    response.headers["X-Request-ID"] = request_id
    response.headers["X-API-Latency-Ms"] = str(int((time.perf_counter() - start) * 1000))

    return MarketTokensResponse(
        data=page.data,
        pagination=Pagination(total=page.total, limit=page.limit, offset=page.offset, has_more=page.has_more),
        stats=stats,
    )


# -----------------------------------------------------------------------------
# Catalog sync
# -----------------------------------------------------------------------------


@router.post("/sync", response_model=SyncResponse)
async def sync_token(
    payload: SyncRequest,
    response: Response,
    sync: CatalogSyncService = Depends(get_sync_service),
):
    """Insert a token into the catalog from chain data. Repeating it is a no-op."""
    try:
        outcome = await sync.sync_address(payload.address)
    except ExternalServiceError as exc:
        raise HTTPException(status_code=400, detail=str(exc))

    if outcome.created:
        response.status_code = status.HTTP_201_CREATED
        message = "Token synced successfully"
    else:
        message = "Token already exists in catalog"
    return SyncResponse(created=outcome.created, message=message, data=outcome.record)


@router.get("/sync/cron", response_model=CronSyncResponse)
async def cron_sync(
    authorization: Optional[str] = Header(None),
    sync: CatalogSyncService = Depends(get_sync_service),
):
    """
    Scheduled refresh of every catalog token from the chain.

    Requires ``Authorization: Bearer <CRON_SECRET>``.
    """
    expected = f"Bearer {settings.CRON_SECRET}" if settings.CRON_SECRET else None
    if expected is None or not hmac.compare_digest(authorization or "", expected):
        log.warning("Unauthorized cron sync attempt")
        raise HTTPException(status_code=401, detail="Unauthorized")

    report = await sync.sync_all()
    return CronSyncResponse(
        success=True,
        total_tokens=report.total_tokens,
        success_count=report.success_count,
        updated_count=report.updated_count,
        error_count=report.error_count,
        duration_seconds=report.duration_seconds,
        timestamp=report.timestamp,
        errors=report.errors or None,
    )


# -----------------------------------------------------------------------------
# Single token
# -----------------------------------------------------------------------------


@router.get("/{address}/fresh", response_model=FreshTokenOut)
async def get_fresh_token(
    address: str,
    response: Response,
    service: MarketService = Depends(get_market_service),
):
    """Read one token straight from the chain, bypassing the catalog."""
    live = await asyncio.wait_for(service.read_live_token(address), timeout=settings.REQUEST_DEADLINE_SECONDS)
    if live is None:
        raise HTTPException(status_code=404, detail=f"No chain data for token '{address}'")

    response.headers["Cache-Control"] = "no-store"
    return FreshTokenOut(
        address=live.state.address,
        owner=live.metadata.owner_address,
        name=live.metadata.name,
        symbol=live.metadata.symbol,
        total_supply=str(live.state.total_supply),
        tvl=live.state.tvl,
        price=live.state.price,
        balance_pooled=live.state.balance_pooled,
        balance_locked=live.state.balance_locked,
        hub_id=live.state.hub_id,
        fetched_at=live.fetched_at,
    )


@router.get("/{address}/price-history", response_model=PriceHistoryResponse)
def get_price_history(
    address: str,
    period: Literal["7d", "30d", "all"] = Query("7d"),
    interval: Literal["hour", "day"] = Query("hour"),
    service: MarketService = Depends(get_market_service),
):
    """Bucketed price, volume and tvl series rebuilt from the ledger."""
    history = service.price_history(address, period=period, interval=interval)
    if history is None:
        raise HTTPException(status_code=404, detail=f"Token '{address}' not found")

    return PriceHistoryResponse(
        address=history.address,
        period=period,
        interval=interval,
        token=PriceHistoryToken(
            address=history.address,
            current_price=history.current_price,
            current_tvl=history.current_tvl,
        ),
        data=[PriceHistoryPointOut.model_validate(p) for p in history.points],
    )
