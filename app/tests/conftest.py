"""Shared fixtures: in-memory SQLite catalog and fake chain/indexer collaborators."""

import os

# Settings are read at import time
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("ENV", "dev")

import uuid
from datetime import datetime, timedelta, timezone
from typing import Dict, Iterable, List, Optional

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from app.core.errors import ExternalServiceError
from app.ingestion.base import BaseChainReader, BaseIndexer
from app.models import Base, CreatorProfile, MarketToken, TokenTransaction, VideoAsset
from app.schemas.raw import IssuanceEvent, LiveTokenState, TokenMetadata
from app.services.pricing import WAD, compute_price

NOW = datetime(2026, 10, 19, 12, 0, tzinfo=timezone.utc)


class FakeChainReader(BaseChainReader):
    """Serves canned states; records every batched call."""

    name = "fake"

    def __init__(self, states: Optional[Dict[str, LiveTokenState]] = None, metadata: Optional[Dict[str, TokenMetadata]] = None):
        self.states = states or {}
        self.metadata = metadata or {}
        self.state_calls: List[List[str]] = []
        self.metadata_calls: List[str] = []
        self.fail = False

    async def read_states(self, addresses: Iterable[str]) -> Dict[str, LiveTokenState]:
        addresses = [a.lower() for a in addresses]
        self.state_calls.append(addresses)
        if self.fail:
            raise ExternalServiceError("rpc down")
        return {a: self.states[a] for a in addresses if a in self.states}

    async def read_metadata(self, address: str) -> Optional[TokenMetadata]:
        self.metadata_calls.append(address.lower())
        return self.metadata.get(address.lower())

    def add_token(self, address: str, tvl: float, supply: int, name: str = "Live", symbol: str = "LIVE", owner: str = "0xowner") -> None:
        address = address.lower()
        self.states[address] = LiveTokenState(
            address=address,
            tvl=tvl,
            total_supply=supply,
            price=compute_price(tvl, supply),
            balance_pooled=tvl,
            balance_locked=0.0,
            hub_id=1,
        )
        self.metadata[address] = TokenMetadata(address=address, name=name, symbol=symbol, owner_address=owner)


class FakeIndexer(BaseIndexer):
    name = "fake"

    def __init__(self, addresses: Optional[List[str]] = None, fail: bool = False):
        self.addresses = addresses or []
        self.fail = fail
        self.calls = 0

    async def recent_issuances(self, first: int = 50) -> List[IssuanceEvent]:
        self.calls += 1
        if self.fail:
            raise ExternalServiceError("indexer down")
        return [IssuanceEvent(address=a.lower()) for a in self.addresses[:first]]


@pytest.fixture
def db_session():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    Session = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)
    session = Session()
    try:
        yield session
    finally:
        session.close()
        engine.dispose()


@pytest.fixture
def fake_chain():
    return FakeChainReader()


@pytest.fixture
def fake_indexer():
    return FakeIndexer()


def addr(n: int) -> str:
    return "0x" + f"{n:040x}"


def add_token(
    db,
    address: str,
    name: str = "Token",
    symbol: str = "TKN",
    owner: str = "0x00000000000000000000000000000000000000aa",
    tvl: float = 100.0,
    supply: int = 100 * WAD,
    created_at: Optional[datetime] = None,
) -> MarketToken:
    token = MarketToken(
        address=address.lower(),
        owner_address=owner.lower(),
        name=name,
        symbol=symbol,
        tvl=tvl,
        total_supply=str(supply),
        created_at=created_at or NOW - timedelta(days=3),
    )
    db.add(token)
    db.commit()
    return token


def add_event(
    db,
    token: MarketToken,
    kind: str,
    amount: int,
    collateral: Optional[float] = None,
    at: Optional[datetime] = None,
    assets_returned: Optional[float] = None,
) -> TokenTransaction:
    row = TokenTransaction(
        metoken_id=token.id,
        user_address="0x00000000000000000000000000000000000000bb",
        transaction_type=kind,
        amount=str(amount),
        me_tokens_minted=str(amount) if kind == "mint" else None,
        collateral_amount=collateral,
        assets_returned=assets_returned,
        created_at=at or NOW - timedelta(hours=1),
    )
    db.add(row)
    db.commit()
    return row


def add_video(db, title: str, token_address: Optional[str], status: str = "published") -> VideoAsset:
    video = VideoAsset(
        title=title,
        playback_id=f"pb-{title[:8].lower().replace(' ', '-')}",
        thumbnail_url=f"https://cdn.example/{title[:8].lower().replace(' ', '-')}.jpg",
        status=status,
        attributes={"content_coin_id": token_address} if token_address else {},
        created_at=NOW - timedelta(days=1),
    )
    db.add(video)
    db.commit()
    return video


def add_profile(db, owner: str, username: str, avatar_url: Optional[str] = None) -> CreatorProfile:
    profile = CreatorProfile(owner_address=owner.lower(), username=username, avatar_url=avatar_url)
    db.add(profile)
    db.commit()
    return profile


def new_token_id() -> uuid.UUID:
    return uuid.uuid4()
