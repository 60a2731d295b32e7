"""Merges direct and content-derived tokens into one deduplicated catalog view."""

from __future__ import annotations

import asyncio
from typing import Dict, List, Optional, Protocol, Sequence

from app.core.config import settings
from app.core.errors import DataIntegrityWarning
from app.core.logging import get_logger
from app.ingestion.base import BaseIndexer
from app.schemas.normalized import OriginType, TokenRecord
from app.services.stores import CatalogStore, ContentLink

log = get_logger("catalog_aggregator")


class AddressSyncer(Protocol):
    async def sync_address(self, address: str):
        ...


class CatalogAggregator:
    """Builds the merged token list for one request.

    When the direct catalog looks incomplete (fewer than ``threshold`` rows
    and no search term) a bounded catch-up pass pulls recent issuances from
    the indexer and upserts the missing ones before the catalog is re-read.
    """

    def __init__(
        self,
        catalog: CatalogStore,
        indexer: Optional[BaseIndexer] = None,
        syncer: Optional[AddressSyncer] = None,
        threshold: Optional[int] = None,
        page_size: Optional[int] = None,
        max_upserts: Optional[int] = None,
        concurrency: Optional[int] = None,
    ):
        self.catalog = catalog
        self.indexer = indexer
        self.syncer = syncer
        self.threshold = threshold if threshold is not None else settings.SELF_HEAL_THRESHOLD
        self.page_size = page_size or settings.SELF_HEAL_PAGE_SIZE
        self.max_upserts = max_upserts if max_upserts is not None else settings.SELF_HEAL_MAX_UPSERTS
        self.concurrency = max(1, concurrency or settings.SELF_HEAL_CONCURRENCY)

    async def aggregate(self, origin_type: str = "all", search: str = "") -> List[TokenRecord]:
        search = (search or "").strip()
        include_direct = origin_type != OriginType.CONTENT_DERIVED.value

        direct: List[TokenRecord] = []
        if include_direct:
            direct = self.catalog.list_direct(search=search or None)
            if len(direct) < self.threshold and not search:
                if await self.self_heal(direct):
                    direct = self.catalog.list_direct()

        # A direct-only listing still needs the links so that linked tokens
        # are classified as content-derived and dropped by the type filter.
        content = self._content_derived(self.catalog.published_content_links())
        return self._merge(direct, content)

    # -------------------------------------------------------------------------
    # Self-healing
    # -------------------------------------------------------------------------
    async def self_heal(self, known: Sequence[TokenRecord]) -> int:
        """Upsert up to ``max_upserts`` recent issuances missing from the catalog.

        Returns the number of addresses that were newly inserted. Never raises.
        """
        if self.indexer is None or self.syncer is None or self.max_upserts <= 0:
            return 0

        log.info(f"Catalog has {len(known)} direct tokens (< {self.threshold}); running catch-up sync")
        try:
            issuances = await self.indexer.recent_issuances(first=self.page_size)
        except Exception as exc:
            log.warning(f"Indexer unavailable, skipping catch-up sync: {exc!r}")
            return 0

        known_addresses = {t.address for t in known}
        missing: List[str] = []
        for event in issuances:
            address = event.address.lower()
            if address in known_addresses or address in missing:
                continue
            missing.append(address)
            if len(missing) >= self.max_upserts:
                break

        if not missing:
            log.debug("Catch-up sync found no new addresses")
            return 0

        semaphore = asyncio.Semaphore(self.concurrency)

        async def _upsert(address: str):
            async with semaphore:
                return await self.syncer.sync_address(address)

        results = await asyncio.gather(*(_upsert(a) for a in missing), return_exceptions=True)

        created = 0
        for address, result in zip(missing, results):
            if isinstance(result, BaseException):
                log.warning(f"Catch-up upsert failed for {address}: {result!r}")
            elif getattr(result, "created", False):
                created += 1
        log.info(f"Catch-up sync attempted {len(missing)} addresses, inserted {created}")
        return created

    # -------------------------------------------------------------------------
    # Merge
    # -------------------------------------------------------------------------
    def _content_derived(self, links: Sequence[ContentLink]) -> List[TokenRecord]:
        if not links:
            return []

        # First published item wins when several reference the same token
        by_address: Dict[str, ContentLink] = {}
        for link in links:
            by_address.setdefault(link.token_address, link)

        found = {t.address: t for t in self.catalog.get_by_addresses(by_address.keys())}

        records: List[TokenRecord] = []
        for address, link in by_address.items():
            token = found.get(address)
            if token is None:
                warning = DataIntegrityWarning(
                    f"Content item {link.video_id} references unknown token {address}"
                )
                log.warning(str(warning))
                continue
            records.append(
                token.model_copy(
                    update={
                        "origin": OriginType.CONTENT_DERIVED,
                        "video_id": link.video_id,
                        "video_title": link.title,
                        "playback_id": link.playback_id,
                        "thumbnail_url": link.thumbnail_url,
                    }
                )
            )
        return records

    @staticmethod
    def _merge(direct: Sequence[TokenRecord], content: Sequence[TokenRecord]) -> List[TokenRecord]:
        """Dedup by address; a content-derived record replaces the direct one."""
        merged: Dict[str, TokenRecord] = {}
        for record in direct:
            merged.setdefault(record.address, record)
        for record in content:
            merged[record.address] = record
        return list(merged.values())
