"""Chain -> catalog synchronization.

``sync_address`` is the idempotent upsert used by the self-healing pass and
the sync endpoint. ``sync_all`` is the scheduled refresh of every catalog row.
"""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import List, Optional

from app.core.config import settings
from app.core.errors import ExternalServiceError, MarketServiceError
from app.core.logging import get_logger
from app.ingestion.base import BaseChainReader
from app.schemas.normalized import TokenRecord
from app.services.stores import CatalogStore

log = get_logger("catalog_sync")

TVL_CHANGE_THRESHOLD = 0.0001
MAX_REPORTED_ERRORS = 10


@dataclass(frozen=True)
class SyncOutcome:
    address: str
    created: bool
    record: Optional[TokenRecord]


@dataclass
class CatalogSyncReport:
    total_tokens: int = 0
    success_count: int = 0
    updated_count: int = 0
    error_count: int = 0
    duration_seconds: float = 0.0
    errors: List[str] = field(default_factory=list)
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


class CatalogSyncService:
    def __init__(self, catalog: CatalogStore, chain: BaseChainReader):
        self.catalog = catalog
        self.chain = chain

    async def sync_address(self, address: str) -> SyncOutcome:
        """Insert a token read from the chain unless the catalog already has it.

        Raises ExternalServiceError when the chain has no data for the address.
        """
        address = address.lower()
        existing = self.catalog.get_by_address(address)
        if existing is not None:
            log.debug(f"Token {address} already in catalog; sync is a no-op")
            return SyncOutcome(address=address, created=False, record=existing)

        metadata, states = await asyncio.gather(
            self.chain.read_metadata(address),
            self.chain.read_states([address]),
        )
        state = states.get(address)
        if metadata is None or state is None:
            raise ExternalServiceError(f"No chain data for token {address}")

        created = self.catalog.insert_if_absent(
            {
                "address": address,
                "owner_address": metadata.owner_address,
                "name": metadata.name,
                "symbol": metadata.symbol,
                "total_supply": state.total_supply,
                "tvl": state.tvl,
                "hub_id": state.hub_id,
                "balance_pooled": state.balance_pooled,
                "balance_locked": state.balance_locked,
            }
        )
        if created:
            log.info(f"Synced token {address} ({metadata.symbol}) into catalog")
        return SyncOutcome(address=address, created=created, record=self.catalog.get_by_address(address))

    async def sync_all(
        self,
        batch_size: Optional[int] = None,
        delay_seconds: Optional[float] = None,
    ) -> CatalogSyncReport:
        """Refresh tvl/supply for every catalog token, writing only on change."""
        batch_size = max(1, batch_size or settings.SYNC_BATCH_SIZE)
        delay = settings.SYNC_BATCH_DELAY_SECONDS if delay_seconds is None else delay_seconds

        start = time.perf_counter()
        tokens = self.catalog.list_all()
        report = CatalogSyncReport(total_tokens=len(tokens))
        log.info(f"Starting catalog sync for {len(tokens)} tokens")

        for i in range(0, len(tokens), batch_size):
            batch = tokens[i : i + batch_size]
            log.debug(f"Processing batch {i // batch_size + 1}/{(len(tokens) + batch_size - 1) // batch_size}")

            states = await self.chain.read_states([t.address for t in batch])
            for token in batch:
                state = states.get(token.address)
                if state is None:
                    self._record_error(report, token.address, "no chain data")
                    continue

                tvl_changed = abs(state.tvl - token.tvl) > TVL_CHANGE_THRESHOLD
                supply_changed = state.total_supply != token.total_supply
                try:
                    if tvl_changed or supply_changed:
                        self.catalog.update_live_values(token.address, state.tvl, state.total_supply)
                        report.updated_count += 1
                        log.info(f"Updated token {token.address}: TVL={state.tvl:.4f}")
                    report.success_count += 1
                except MarketServiceError as exc:
                    self._record_error(report, token.address, str(exc))

            if delay > 0 and i + batch_size < len(tokens):
                await asyncio.sleep(delay)

        report.duration_seconds = round(time.perf_counter() - start, 2)
        log.info(
            f"Catalog sync finished | total={report.total_tokens} updated={report.updated_count} "
            f"errors={report.error_count} duration={report.duration_seconds}s"
        )
        return report

    @staticmethod
    def _record_error(report: CatalogSyncReport, address: str, message: str) -> None:
        report.error_count += 1
        if len(report.errors) < MAX_REPORTED_ERRORS:
            report.errors.append(f"{address}: {message}")
        log.warning(f"Failed to sync token {address}: {message}")
