"""Filtering, sorting, creator join, pagination and stats for market listings."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, List, Optional, Protocol, Sequence

from app.core.errors import MarketServiceError
from app.core.logging import get_logger
from app.schemas.normalized import CreatorInfo, TokenListing

log = get_logger("result_assembler")

SORT_FIELDS = ("price", "tvl", "market_cap", "volume_24h", "price_change_24h", "created_at")
DEFAULT_SORT = "tvl"
STATS_TOP_N = 5


class ProfileReader(Protocol):
    def get_profiles(self, owner_addresses) -> Dict[str, CreatorInfo]:
        ...


@dataclass(frozen=True)
class ListingQuery:
    origin_type: str = "all"
    search: str = ""
    sort_by: str = DEFAULT_SORT
    sort_order: str = "desc"
    limit: int = 50
    offset: int = 0
    include_stats: bool = False


@dataclass(frozen=True)
class MarketStatsResult:
    total_tokens: int
    total_tvl: float
    volume_24h: float
    top_gainers: List[TokenListing]
    top_losers: List[TokenListing]


@dataclass(frozen=True)
class AssembledPage:
    data: List[TokenListing]
    total: int
    limit: int
    offset: int
    has_more: bool
    stats: Optional[MarketStatsResult] = None


def matches_search(listing: TokenListing, term: str) -> bool:
    term = term.strip().lower()
    if not term:
        return True
    haystack = (listing.name, listing.symbol, listing.owner_address, listing.video_title)
    return any(term in value.lower() for value in haystack if value)


def filter_type(listings: Sequence[TokenListing], origin_type: str) -> List[TokenListing]:
    if origin_type in (None, "", "all"):
        return list(listings)
    return [t for t in listings if t.origin.value == origin_type]


def sort_listings(listings: Sequence[TokenListing], sort_by: str, sort_order: str) -> List[TokenListing]:
    """Stable sort; an unknown field falls back to tvl descending."""
    if sort_by not in SORT_FIELDS:
        sort_by, sort_order = DEFAULT_SORT, "desc"
    return sorted(listings, key=lambda t: getattr(t, sort_by), reverse=sort_order != "asc")


def build_stats(listings: Sequence[TokenListing]) -> MarketStatsResult:
    by_change = sorted(listings, key=lambda t: t.price_change_24h, reverse=True)
    return MarketStatsResult(
        total_tokens=len(listings),
        total_tvl=sum(t.tvl for t in listings),
        volume_24h=sum(t.volume_24h for t in listings),
        top_gainers=by_change[:STATS_TOP_N],
        # lowest change first; with fewer than STATS_TOP_N tokens this overlaps the gainers
        top_losers=list(reversed(by_change[-STATS_TOP_N:])) if by_change else [],
    )


class ResultAssembler:
    def __init__(self, profiles: ProfileReader):
        self.profiles = profiles

    def assemble(self, listings: Sequence[TokenListing], query: ListingQuery) -> AssembledPage:
        selected = [t for t in filter_type(listings, query.origin_type) if matches_search(t, query.search)]
        selected = sort_listings(selected, query.sort_by, query.sort_order)
        selected = self.attach_creators(selected)

        total = len(selected)
        page = selected[query.offset : query.offset + query.limit]
        log.debug(f"Assembled {len(page)}/{total} listings (offset={query.offset}, limit={query.limit})")

        return AssembledPage(
            data=page,
            total=total,
            limit=query.limit,
            offset=query.offset,
            has_more=query.offset + query.limit < total,
            stats=build_stats(selected) if query.include_stats else None,
        )

    def attach_creators(self, listings: List[TokenListing]) -> List[TokenListing]:
        owners = {t.owner_address.lower() for t in listings}
        if not owners:
            return listings
        try:
            profiles = self.profiles.get_profiles(owners)
        except MarketServiceError as exc:
            log.warning(f"Creator profile lookup failed, listing without creators: {exc}")
            return listings

        joined: List[TokenListing] = []
        for listing in listings:
            profile = profiles.get(listing.owner_address.lower())
            if profile is None:
                joined.append(listing)
                continue
            joined.append(
                listing.model_copy(
                    update={"creator_username": profile.username, "creator_avatar_url": profile.avatar_url}
                )
            )
        return joined
