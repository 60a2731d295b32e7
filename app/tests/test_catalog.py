"""Catalog aggregation, self-healing and chain sync tests"""

import pytest

from conftest import FakeIndexer, add_token, add_video, addr
from app.core.errors import ExternalServiceError
from app.models import MarketToken
from app.schemas.normalized import OriginType
from app.services.catalog_aggregator import CatalogAggregator
from app.services.catalog_sync import CatalogSyncService
from app.services.pricing import WAD
from app.services.stores import CatalogStore


class RecordingSyncer:
    """Stands in for CatalogSyncService; fails for chosen addresses."""

    def __init__(self, fail=()):
        self.fail = set(fail)
        self.attempted = []

    async def sync_address(self, address):
        self.attempted.append(address)
        if address in self.fail:
            raise ExternalServiceError(f"no chain data for {address}")
        return type("Outcome", (), {"created": True})()


class TestCatalogAggregator:
    """Test origin merge and dedup"""

    @pytest.mark.asyncio
    async def test_content_derived_wins_and_keeps_linkage(self, db_session):
        add_token(db_session, addr(1), name="Plain")
        add_token(db_session, addr(2), name="Linked")
        add_video(db_session, "Late Night Jazz Session", addr(2))

        aggregator = CatalogAggregator(CatalogStore(db_session), threshold=0)
        records = await aggregator.aggregate()

        by_address = {r.address: r for r in records}
        assert len(records) == 2
        assert by_address[addr(1)].origin is OriginType.DIRECT
        linked = by_address[addr(2)]
        assert linked.origin is OriginType.CONTENT_DERIVED
        assert linked.video_title == "Late Night Jazz Session"
        assert linked.playback_id is not None

    @pytest.mark.asyncio
    async def test_dangling_content_reference_is_omitted(self, db_session):
        add_token(db_session, addr(1))
        add_video(db_session, "Orphan", addr(99))

        records = await CatalogAggregator(CatalogStore(db_session), threshold=0).aggregate()
        assert [r.address for r in records] == [addr(1)]

    @pytest.mark.asyncio
    async def test_content_only_skips_direct_query(self, db_session):
        add_token(db_session, addr(1))
        add_token(db_session, addr(2))
        add_video(db_session, "Video", addr(2))
        indexer = FakeIndexer([addr(50)])

        aggregator = CatalogAggregator(CatalogStore(db_session), indexer=indexer, syncer=RecordingSyncer())
        records = await aggregator.aggregate(origin_type="content-derived")

        assert [r.address for r in records] == [addr(2)]
        assert indexer.calls == 0


class TestSelfHealing:
    """Test the bounded catch-up pass"""

    @pytest.mark.asyncio
    async def test_three_tokens_with_threshold_three_skip_sync(self, db_session):
        for i in range(3):
            add_token(db_session, addr(i + 1))
        indexer = FakeIndexer([addr(50)])
        syncer = RecordingSyncer()

        aggregator = CatalogAggregator(CatalogStore(db_session), indexer=indexer, syncer=syncer, threshold=3)
        await aggregator.aggregate()

        assert indexer.calls == 0
        assert syncer.attempted == []

    @pytest.mark.asyncio
    async def test_two_tokens_with_threshold_three_trigger_sync(self, db_session):
        add_token(db_session, addr(1))
        add_token(db_session, addr(2))
        indexer = FakeIndexer([addr(50), addr(1), addr(51)])
        syncer = RecordingSyncer()

        aggregator = CatalogAggregator(CatalogStore(db_session), indexer=indexer, syncer=syncer, threshold=3)
        await aggregator.aggregate()

        assert indexer.calls == 1
        assert sorted(syncer.attempted) == [addr(50), addr(51)]

    @pytest.mark.asyncio
    async def test_default_threshold_boundary(self, db_session):
        for i in range(5):
            add_token(db_session, addr(i + 1))
        indexer = FakeIndexer([addr(50)])

        await CatalogAggregator(CatalogStore(db_session), indexer=indexer, syncer=RecordingSyncer()).aggregate()
        assert indexer.calls == 0

        db_session.query(MarketToken).filter(MarketToken.address == addr(5)).delete()
        db_session.commit()

        await CatalogAggregator(CatalogStore(db_session), indexer=indexer, syncer=RecordingSyncer()).aggregate()
        assert indexer.calls == 1

    @pytest.mark.asyncio
    async def test_search_disables_sync(self, db_session):
        indexer = FakeIndexer([addr(50)])
        aggregator = CatalogAggregator(CatalogStore(db_session), indexer=indexer, syncer=RecordingSyncer())

        await aggregator.aggregate(search="jazz")
        assert indexer.calls == 0

    @pytest.mark.asyncio
    async def test_at_most_ten_upserts_newest_first(self, db_session):
        indexer = FakeIndexer([addr(100 + i) for i in range(30)])
        syncer = RecordingSyncer()

        await CatalogAggregator(CatalogStore(db_session), indexer=indexer, syncer=syncer).aggregate()

        assert len(syncer.attempted) == 10
        assert set(syncer.attempted) == {addr(100 + i) for i in range(10)}

    @pytest.mark.asyncio
    async def test_upsert_failure_does_not_abort_pass(self, db_session):
        indexer = FakeIndexer([addr(50), addr(51), addr(52)])
        syncer = RecordingSyncer(fail={addr(51)})

        records = await CatalogAggregator(CatalogStore(db_session), indexer=indexer, syncer=syncer).aggregate()

        assert sorted(syncer.attempted) == [addr(50), addr(51), addr(52)]
        assert records == []

    @pytest.mark.asyncio
    async def test_indexer_failure_keeps_existing_catalog(self, db_session):
        add_token(db_session, addr(1))
        syncer = RecordingSyncer()
        aggregator = CatalogAggregator(CatalogStore(db_session), indexer=FakeIndexer(fail=True), syncer=syncer)

        records = await aggregator.aggregate()
        assert [r.address for r in records] == [addr(1)]
        assert syncer.attempted == []

    @pytest.mark.asyncio
    async def test_catalog_is_reread_after_sync(self, db_session, fake_chain):
        fake_chain.add_token(addr(50), tvl=10.0, supply=5 * WAD, name="Fresh", symbol="FRSH")
        store = CatalogStore(db_session)
        aggregator = CatalogAggregator(
            store, indexer=FakeIndexer([addr(50)]), syncer=CatalogSyncService(store, fake_chain)
        )

        records = await aggregator.aggregate()
        assert [r.symbol for r in records] == ["FRSH"]


class TestCatalogSyncService:
    """Test chain -> catalog sync"""

    @pytest.mark.asyncio
    async def test_sync_address_is_idempotent(self, db_session, fake_chain):
        fake_chain.add_token(addr(7), tvl=20.0, supply=10 * WAD, owner=addr(0xAA))
        service = CatalogSyncService(CatalogStore(db_session), fake_chain)

        first = await service.sync_address(addr(7))
        second = await service.sync_address(addr(7))

        assert first.created is True
        assert first.record.tvl == 20.0
        assert first.record.owner_address == addr(0xAA)
        assert second.created is False
        assert db_session.query(MarketToken).count() == 1

    @pytest.mark.asyncio
    async def test_sync_address_without_chain_data(self, db_session, fake_chain):
        service = CatalogSyncService(CatalogStore(db_session), fake_chain)
        with pytest.raises(ExternalServiceError):
            await service.sync_address(addr(8))

    @pytest.mark.asyncio
    async def test_sync_all_writes_only_changes(self, db_session, fake_chain):
        add_token(db_session, addr(1), tvl=10.0, supply=10 * WAD)
        add_token(db_session, addr(2), tvl=10.0, supply=10 * WAD)
        add_token(db_session, addr(3), tvl=10.0, supply=10 * WAD)
        fake_chain.add_token(addr(1), tvl=10.00001, supply=10 * WAD)
        fake_chain.add_token(addr(2), tvl=12.0, supply=11 * WAD)

        service = CatalogSyncService(CatalogStore(db_session), fake_chain)
        report = await service.sync_all(batch_size=2, delay_seconds=0)

        assert report.total_tokens == 3
        assert report.success_count == 2
        assert report.updated_count == 1
        assert report.error_count == 1
        assert report.errors[0].startswith(addr(3))
        assert len(fake_chain.state_calls) == 2
        assert CatalogStore(db_session).get_by_address(addr(2)).tvl == 12.0
        assert CatalogStore(db_session).get_by_address(addr(1)).tvl == 10.0

    @pytest.mark.asyncio
    async def test_sync_all_caps_reported_errors(self, db_session, fake_chain):
        for i in range(12):
            add_token(db_session, addr(i + 1))

        report = await CatalogSyncService(CatalogStore(db_session), fake_chain).sync_all(batch_size=5, delay_seconds=0)

        assert report.error_count == 12
        assert len(report.errors) == 10
