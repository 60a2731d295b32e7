"""API dependencies"""

from typing import Generator, Optional

from fastapi import Depends
from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.db import SessionLocal
from app.ingestion.base import BaseChainReader, BaseIndexer
from app.ingestion.chain_source import RpcChainReader
from app.ingestion.subgraph_source import SubgraphIndexer
from app.services.catalog_sync import CatalogSyncService
from app.services.market_service import MarketService
from app.services.stores import CatalogStore, LedgerStore, ProfileStore


def get_db() -> Generator[Session, None, None]:
    """Database dependency"""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def get_chain_reader() -> BaseChainReader:
    return RpcChainReader()


def get_indexer() -> Optional[BaseIndexer]:
    """Catch-up sync is disabled when no subgraph is configured."""
    if not settings.SUBGRAPH_URL:
        return None
    return SubgraphIndexer()


def get_market_service(
    db: Session = Depends(get_db),
    chain: BaseChainReader = Depends(get_chain_reader),
    indexer: Optional[BaseIndexer] = Depends(get_indexer),
) -> MarketService:
    return MarketService(
        catalog=CatalogStore(db),
        ledger=LedgerStore(db),
        profiles=ProfileStore(db),
        chain=chain,
        indexer=indexer,
    )


def get_sync_service(
    db: Session = Depends(get_db),
    chain: BaseChainReader = Depends(get_chain_reader),
) -> CatalogSyncService:
    return CatalogSyncService(CatalogStore(db), chain)
