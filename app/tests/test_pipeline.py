"""Freshness refresh, result assembly and cache policy tests"""

from datetime import timedelta

import pytest

from conftest import NOW, FakeChainReader, addr
from app.core.errors import StorageError
from app.schemas.normalized import CreatorInfo, OriginType, TokenListing, TokenRecord
from app.services.cache_policy import LONG_LIVED, SHORT_LIVED, CachePolicyAdvisor
from app.services.freshness import FreshnessRefresher, needs_refresh
from app.services.pricing import WAD
from app.services.result_assembler import ListingQuery, ResultAssembler, build_stats, matches_search, sort_listings


def record(n, tvl=100.0, supply=100 * WAD, **kwargs) -> TokenRecord:
    return TokenRecord(
        address=addr(n),
        name=kwargs.pop("name", f"Token {n}"),
        symbol=kwargs.pop("symbol", f"T{n}"),
        owner_address=kwargs.pop("owner_address", addr(0xA0 + n)),
        created_at=kwargs.pop("created_at", NOW - timedelta(days=n)),
        tvl=tvl,
        total_supply=supply,
        **kwargs,
    )


def listing(n, **kwargs) -> TokenListing:
    return TokenListing(**record(n).model_dump(exclude=set(kwargs)), **kwargs)


class TestFreshnessRefresher:
    """Test stale detection and per-token fallback"""

    def test_needs_refresh(self):
        assert needs_refresh(record(1)) is False
        assert needs_refresh(record(1), force=True) is True
        assert needs_refresh(record(1, tvl=0.0)) is True
        assert needs_refresh(record(1, supply=0)) is True

    @pytest.mark.asyncio
    async def test_only_stale_records_are_read_in_one_batch(self):
        chain = FakeChainReader()
        chain.add_token(addr(2), tvl=50.0, supply=25 * WAD)

        listings = await FreshnessRefresher(chain).refresh([record(1), record(2, tvl=0.0), record(3, supply=0)])

        assert chain.state_calls == [[addr(2), addr(3)]]
        fresh = {t.address: t for t in listings}
        assert fresh[addr(2)].tvl == 50.0
        assert fresh[addr(2)].price == pytest.approx(2.0)
        assert fresh[addr(2)].market_cap == 50.0
        # no live data: keeps catalog values with a computed price
        assert fresh[addr(3)].price == 0.0
        assert fresh[addr(1)].price == pytest.approx(1.0)

    @pytest.mark.asyncio
    async def test_no_stale_records_means_no_chain_call(self):
        chain = FakeChainReader()
        await FreshnessRefresher(chain).refresh([record(1)])
        assert chain.state_calls == []

    @pytest.mark.asyncio
    async def test_chain_failure_falls_back_to_catalog(self):
        chain = FakeChainReader()
        chain.fail = True

        [token] = await FreshnessRefresher(chain).refresh([record(1, tvl=30.0, supply=10 * WAD)], force=True)
        assert token.price == pytest.approx(3.0)
        assert token.market_cap == 30.0

    @pytest.mark.asyncio
    async def test_linkage_survives_refresh(self):
        chain = FakeChainReader()
        chain.add_token(addr(1), tvl=10.0, supply=10 * WAD)
        linked = record(1, tvl=0.0, origin=OriginType.CONTENT_DERIVED, video_title="Clip")

        [token] = await FreshnessRefresher(chain).refresh([linked])
        assert token.origin is OriginType.CONTENT_DERIVED
        assert token.video_title == "Clip"


class FakeProfiles:
    def __init__(self, profiles=None, fail=False):
        self.profiles = profiles or {}
        self.fail = fail
        self.calls = []

    def get_profiles(self, owners):
        self.calls.append(set(owners))
        if self.fail:
            raise StorageError("profiles down")
        return {o: self.profiles[o] for o in owners if o in self.profiles}


class TestResultAssembler:
    """Test filter, sort, join, pagination and stats"""

    def test_search_matches_linked_content_title(self):
        jazz = listing(1, name="Alpha", symbol="ALP", video_title="Late Night Jazz Session")
        other = listing(2, name="Beta", symbol="BET")

        assert matches_search(jazz, "jazz") is True
        assert matches_search(other, "jazz") is False
        assert matches_search(other, "  ") is True

    def test_search_over_owner(self):
        token = listing(1)
        assert matches_search(token, token.owner_address[-6:].upper()) is True

    def test_type_filter(self):
        tokens = [listing(1), listing(2, origin=OriginType.CONTENT_DERIVED)]
        assembler = ResultAssembler(FakeProfiles())

        direct = assembler.assemble(tokens, ListingQuery(origin_type="direct"))
        content = assembler.assemble(tokens, ListingQuery(origin_type="content-derived"))
        everything = assembler.assemble(tokens, ListingQuery(origin_type="all"))

        assert [t.address for t in direct.data] == [addr(1)]
        assert [t.address for t in content.data] == [addr(2)]
        assert everything.total == 2

    def test_sort_is_stable_and_unknown_field_falls_back(self):
        tokens = [listing(1, tvl=5.0), listing(2, tvl=9.0), listing(3, tvl=5.0)]

        assert [t.address for t in sort_listings(tokens, "tvl", "asc")] == [addr(1), addr(3), addr(2)]
        assert [t.address for t in sort_listings(tokens, "tvl", "desc")] == [addr(2), addr(1), addr(3)]
        assert [t.address for t in sort_listings(tokens, "bogus", "asc")] == [addr(2), addr(1), addr(3)]

    def test_sort_by_created_at(self):
        tokens = [listing(3), listing(1), listing(2)]
        # listing(n) was created n days ago
        assert [t.address for t in sort_listings(tokens, "created_at", "desc")] == [addr(1), addr(2), addr(3)]

    def test_pagination_covers_every_item_once(self):
        tokens = [listing(i, tvl=float(i)) for i in range(1, 8)]
        assembler = ResultAssembler(FakeProfiles())

        seen = []
        offset = 0
        while True:
            page = assembler.assemble(tokens, ListingQuery(limit=3, offset=offset))
            seen.extend(t.address for t in page.data)
            assert page.total == 7
            assert page.has_more == (offset + 3 < 7)
            if not page.has_more:
                break
            offset += 3

        assert sorted(seen) == sorted(addr(i) for i in range(1, 8))
        assert len(seen) == len(set(seen))

    def test_creator_join_is_one_batched_lookup(self):
        shared_owner = addr(0xFF)
        tokens = [listing(1, owner_address=shared_owner), listing(2, owner_address=shared_owner), listing(3)]
        profiles = FakeProfiles({shared_owner: CreatorInfo(owner_address=shared_owner, username="maya", avatar_url="a.png")})

        page = ResultAssembler(profiles).assemble(tokens, ListingQuery())

        assert len(profiles.calls) == 1
        assert profiles.calls[0] == {shared_owner, listing(3).owner_address}
        names = {t.address: t.creator_username for t in page.data}
        assert names == {addr(1): "maya", addr(2): "maya", addr(3): None}

    def test_profile_failure_is_silent(self):
        page = ResultAssembler(FakeProfiles(fail=True)).assemble([listing(1)], ListingQuery())
        assert page.data[0].creator_username is None

    def test_stats(self):
        tokens = [listing(i, tvl=10.0, volume_24h=1.0, price_change_24h=float(i - 4)) for i in range(1, 9)]
        page = ResultAssembler(FakeProfiles()).assemble(tokens, ListingQuery(include_stats=True, limit=2))

        stats = page.stats
        assert stats.total_tokens == 8
        assert stats.total_tvl == 80.0
        assert stats.volume_24h == 8.0
        assert [t.price_change_24h for t in stats.top_gainers] == [4.0, 3.0, 2.0, 1.0, 0.0]
        assert [t.price_change_24h for t in stats.top_losers] == [-3.0, -2.0, -1.0, 0.0, 1.0]

    def test_stats_omitted_unless_requested(self):
        page = ResultAssembler(FakeProfiles()).assemble([listing(1)], ListingQuery())
        assert page.stats is None

    def test_stats_with_few_tokens(self):
        stats = build_stats([listing(1, price_change_24h=2.0), listing(2, price_change_24h=-1.0)])
        assert [t.price_change_24h for t in stats.top_gainers] == [2.0, -1.0]
        assert [t.price_change_24h for t in stats.top_losers] == [-1.0, 2.0]


class TestCachePolicyAdvisor:
    """Test cache directives and tags"""

    def test_plain_listing_is_long_lived(self):
        policy = CachePolicyAdvisor().advise()
        assert policy.cache_control == LONG_LIVED
        assert policy.tags == ["market", "tokens", "tokens-all"]

    def test_search_is_short_lived_and_tagged(self):
        policy = CachePolicyAdvisor().advise(origin_type="direct", search="  Late Night ")
        assert policy.cache_control == SHORT_LIVED
        assert policy.tags == ["market", "tokens", "tokens-direct", "search-late-night"]

    def test_non_ascii_search_still_tagged(self):
        first = CachePolicyAdvisor().advise(search="日本")
        again = CachePolicyAdvisor().advise(search=" 日本 ")
        other = CachePolicyAdvisor().advise(search="€€")

        assert first.cache_control == SHORT_LIVED
        [tag] = [t for t in first.tags if t.startswith("search-")]
        assert len(tag) == len("search-") + 12
        assert tag.isascii()
        assert tag in again.tags
        assert tag not in other.tags

    def test_fresh_is_short_lived(self):
        policy = CachePolicyAdvisor().advise(origin_type="content-derived", fresh=True)
        assert policy.cache_control == SHORT_LIVED
        assert "tokens-content-derived" in policy.tags

    def test_headers(self):
        headers = CachePolicyAdvisor(domain_tag="mkt").advise().headers(tag_header="X-Cache-Tags")
        assert headers == {"Cache-Control": LONG_LIVED, "X-Cache-Tags": "mkt,tokens,tokens-all"}
