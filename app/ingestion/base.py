"""Abstract interfaces for live chain reads and the issuance indexer."""

from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional, Tuple

from app.schemas.raw import IssuanceEvent, LiveTokenState, TokenMetadata


class BaseChainReader(ABC):
    """Batched read access to the bonding-curve contract."""

    name: str

    @abstractmethod
    async def read_states(self, addresses: Iterable[str]) -> Dict[str, LiveTokenState]:
        """Read live balances for every address in one batched call.

        Addresses that could not be read are missing from the result; a
        per-address failure never raises.
        """

    @abstractmethod
    async def read_metadata(self, address: str) -> Optional[TokenMetadata]:
        """Read name, symbol and owner for a single token."""


class BaseIndexer(ABC):
    """External indexer used to discover recently issued tokens."""

    name: str

    @abstractmethod
    async def recent_issuances(self, first: int = 50) -> List[IssuanceEvent]:
        """Newest issuances first. Raises ExternalServiceError when unreachable."""

    @staticmethod
    def _parse_timestamp(value: Any) -> Optional[datetime]:
        if value in (None, ""):
            return None
        try:
            if isinstance(value, datetime):
                return value.astimezone(timezone.utc)
            text = str(value)
            if text.isdigit():
                return datetime.fromtimestamp(int(text), tz=timezone.utc)
            return datetime.fromisoformat(text.replace("Z", "+00:00")).astimezone(timezone.utc)
        except (ValueError, OverflowError, OSError):
            return None


def split_live_states(
    addresses: Iterable[str], states: Dict[str, LiveTokenState]
) -> Tuple[List[str], List[str]]:
    """Partition addresses into (read, missing)."""
    read, missing = [], []
    for address in addresses:
        (read if address.lower() in states else missing).append(address)
    return read, missing
