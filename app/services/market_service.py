"""Market listing pipeline.

aggregate -> refresh/price -> 24h replay -> assemble -> cache policy
"""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, List, Optional

from app.core.logging import get_logger
from app.ingestion.base import BaseChainReader, BaseIndexer
from app.schemas.raw import LiveTokenState, TokenMetadata
from app.services.cache_policy import CachePolicy, CachePolicyAdvisor
from app.services.catalog_aggregator import CatalogAggregator
from app.services.catalog_sync import CatalogSyncService
from app.services.freshness import FreshnessRefresher
from app.services.history_replay import (
    DEFAULT_ESTIMATOR,
    BurnCollateralEstimator,
    HistoryReplayEngine,
    RecordedPayoutEstimator,
)
from app.services.price_history import HistoryPoint, Interval, Period, build_price_history, period_start
from app.services.pricing import compute_price
from app.services.result_assembler import AssembledPage, ListingQuery, ResultAssembler
from app.services.stores import CatalogStore, LedgerStore, ProfileStore

log = get_logger("market_service")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class MarketListing:
    page: AssembledPage
    cache: CachePolicy


@dataclass(frozen=True)
class LiveToken:
    metadata: TokenMetadata
    state: LiveTokenState
    fetched_at: datetime


@dataclass(frozen=True)
class TokenPriceHistory:
    address: str
    current_price: float
    current_tvl: float
    points: List[HistoryPoint]


class MarketService:
    def __init__(
        self,
        catalog: CatalogStore,
        ledger: LedgerStore,
        profiles: ProfileStore,
        chain: BaseChainReader,
        indexer: Optional[BaseIndexer] = None,
        estimator: BurnCollateralEstimator = DEFAULT_ESTIMATOR,
        history_estimator: Optional[BurnCollateralEstimator] = None,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self.catalog = catalog
        self.ledger = ledger
        self.chain = chain
        self.estimator = estimator
        # price history trusts recorded burn payouts; the 24h replay keeps the running-price estimate
        self.history_estimator = history_estimator or RecordedPayoutEstimator(fallback=estimator)
        self.clock = clock

        self.sync = CatalogSyncService(catalog, chain)
        self.aggregator = CatalogAggregator(catalog, indexer=indexer, syncer=self.sync)
        self.refresher = FreshnessRefresher(chain)
        self.replay = HistoryReplayEngine(ledger, estimator=estimator, clock=clock)
        self.assembler = ResultAssembler(profiles)
        self.cache_advisor = CachePolicyAdvisor()

    async def list_tokens(self, query: ListingQuery, fresh: bool = False) -> MarketListing:
        start = time.perf_counter()

        records = await self.aggregator.aggregate(origin_type=query.origin_type, search=query.search)
        listings = await self.refresher.refresh(records, force=fresh)
        listings = self.replay.apply(listings)
        page = self.assembler.assemble(listings, query)
        cache = self.cache_advisor.advise(origin_type=query.origin_type, search=query.search, fresh=fresh)

        log.info(
            f"Listed {len(page.data)}/{page.total} tokens | type={query.origin_type} "
            f"search={query.search!r} fresh={fresh} took={(time.perf_counter() - start) * 1000:.0f}ms"
        )
        return MarketListing(page=page, cache=cache)

    async def read_live_token(self, address: str) -> Optional[LiveToken]:
        """Single-token live read; None when the chain has nothing for it."""
        address = address.lower()
        metadata, states = await asyncio.gather(
            self.chain.read_metadata(address),
            self.chain.read_states([address]),
        )
        state = states.get(address)
        if metadata is None or state is None:
            return None
        return LiveToken(metadata=metadata, state=state, fetched_at=self.clock())

    def price_history(
        self, address: str, period: Period = "7d", interval: Interval = "hour"
    ) -> Optional[TokenPriceHistory]:
        token = self.catalog.get_by_address(address)
        if token is None or token.id is None:
            return None

        now = self.clock()
        current_price = compute_price(token.tvl, token.total_supply)
        events = self.ledger.events_for_token(token.id, since=period_start(period, now))
        points = build_price_history(
            events,
            current_price=current_price,
            current_tvl=token.tvl,
            now=now,
            interval=interval,
            estimator=self.history_estimator,
        )
        return TokenPriceHistory(
            address=token.address,
            current_price=current_price,
            current_tvl=token.tvl,
            points=points,
        )
