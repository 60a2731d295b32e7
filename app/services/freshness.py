"""Refreshes stale catalog records from the chain and prices every record."""

from __future__ import annotations

from typing import List, Sequence

from app.core.errors import ExternalServiceError
from app.core.logging import get_logger
from app.ingestion.base import BaseChainReader, split_live_states
from app.schemas.normalized import TokenListing, TokenRecord
from app.services.pricing import compute_market_cap, compute_price

log = get_logger("freshness")


def needs_refresh(record: TokenRecord, force: bool = False) -> bool:
    """Zero supply or zero tvl means the row was never populated from chain."""
    return force or record.total_supply == 0 or record.tvl == 0


def price_listing(record: TokenRecord) -> TokenListing:
    return TokenListing(
        **record.model_dump(),
        price=compute_price(record.tvl, record.total_supply),
        market_cap=compute_market_cap(record.tvl),
    )


class FreshnessRefresher:
    def __init__(self, chain: BaseChainReader):
        self.chain = chain

    async def refresh(self, records: Sequence[TokenRecord], force: bool = False) -> List[TokenListing]:
        stale = [r.address for r in records if needs_refresh(r, force)]

        states = {}
        if stale:
            try:
                states = await self.chain.read_states(stale)
            except ExternalServiceError as exc:
                log.warning(f"Live refresh failed for {len(stale)} tokens, using catalog values: {exc}")
            refreshed, missing = split_live_states(stale, states)
            log.debug(f"Refreshed {len(refreshed)}/{len(stale)} stale tokens")
            if missing:
                log.info(f"No live data for {len(missing)} tokens, using catalog values: {missing}")

        listings: List[TokenListing] = []
        for record in records:
            state = states.get(record.address)
            if state is None:
                listings.append(price_listing(record))
                continue
            listings.append(
                TokenListing(
                    **record.model_dump(exclude={"tvl", "total_supply"}),
                    tvl=state.tvl,
                    total_supply=state.total_supply,
                    price=state.price,
                    market_cap=compute_market_cap(state.tvl),
                )
            )
        return listings
