"""Issuance indexer backed by the token subgraph (GraphQL over HTTP)."""

from __future__ import annotations

from typing import Any, Dict, List, Optional

import httpx

from app.core.config import settings
from app.core.errors import ExternalServiceError
from app.core.logging import get_logger
from app.schemas.raw import IssuanceEvent
from .base import BaseIndexer

log = get_logger("ingestion.subgraph")

RECENT_SUBSCRIBES = """
query RecentSubscribes($first: Int!, $skip: Int!) {
  subscribes(first: $first, skip: $skip, orderBy: blockTimestamp, orderDirection: desc) {
    id
    meToken
    hubId
    assetsDeposited
    blockTimestamp
    blockNumber
    transactionHash
  }
}
"""


class SubgraphIndexer(BaseIndexer):
    """Reads token issuance (``Subscribe``) events, newest first."""

    name = "subgraph"

    def __init__(
        self,
        url: Optional[str] = None,
        timeout: Optional[float] = None,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.url = url or settings.SUBGRAPH_URL
        self.timeout = timeout if timeout is not None else settings.INDEXER_TIMEOUT_SECONDS
        self._client = client

    async def recent_issuances(self, first: int = 50, skip: int = 0) -> List[IssuanceEvent]:
        if not self.url:
            raise ExternalServiceError("SUBGRAPH_URL is not configured")

        body = {"query": RECENT_SUBSCRIBES, "variables": {"first": first, "skip": skip}}
        data = await self._post(body)

        if data.get("errors"):
            raise ExternalServiceError(f"Subgraph returned errors: {data['errors']}")

        events: List[IssuanceEvent] = []
        for item in (data.get("data") or {}).get("subscribes") or []:
            address = (item.get("meToken") or "").lower()
            if not address:
                continue
            events.append(
                IssuanceEvent(
                    address=address,
                    hub_id=self._to_int(item.get("hubId")),
                    assets_deposited=item.get("assetsDeposited"),
                    block_timestamp=self._parse_timestamp(item.get("blockTimestamp")),
                    block_number=self._to_int(item.get("blockNumber")),
                    transaction_hash=item.get("transactionHash"),
                )
            )
        log.info(f"Fetched {len(events)} issuance events from subgraph")
        return events

    async def _post(self, body: Dict[str, Any]) -> Dict[str, Any]:
        try:
            if self._client is not None:
                resp = await self._client.post(self.url, json=body, timeout=self.timeout)
                resp.raise_for_status()
                return resp.json()

            async with httpx.AsyncClient(timeout=self.timeout) as client:
                resp = await client.post(self.url, json=body)
                resp.raise_for_status()
                return resp.json()
        except (httpx.HTTPError, ValueError) as exc:
            raise ExternalServiceError(f"Subgraph request failed: {exc}") from exc

    @staticmethod
    def _to_int(val: Any) -> Optional[int]:
        try:
            return int(val) if val not in (None, "") else None
        except (TypeError, ValueError):
            return None
