# Services package
from app.services.catalog_aggregator import CatalogAggregator
from app.services.catalog_sync import CatalogSyncService
from app.services.freshness import FreshnessRefresher
from app.services.history_replay import HistoryReplayEngine
from app.services.market_service import MarketService
from app.services.cache_policy import CachePolicyAdvisor
from app.services.result_assembler import ResultAssembler

__all__ = [
    "CatalogAggregator",
    "CatalogSyncService",
    "FreshnessRefresher",
    "HistoryReplayEngine",
    "MarketService",
    "CachePolicyAdvisor",
    "ResultAssembler",
]
