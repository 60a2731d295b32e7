"""SQL-backed collaborators: token catalog, transaction ledger, creator profiles.

Rows are normalized into ``app.schemas.normalized`` types here. Malformed
rows are logged and skipped; database failures surface as ``StorageError``.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional, Sequence

from pydantic import ValidationError
from sqlalchemy import func, or_, select, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.core.errors import DataIntegrityWarning, StorageError
from app.core.logging import get_logger
from app.models.content import CreatorProfile, VideoAsset
from app.models.token import MarketToken, TokenTransaction
from app.schemas.normalized import CreatorInfo, EventKind, OriginType, TokenRecord, TransactionEvent

log = get_logger("stores")


@dataclass(frozen=True)
class ContentLink:
    """A published content item that references a token address."""

    token_address: str
    video_id: int
    title: str
    playback_id: Optional[str]
    thumbnail_url: Optional[str]


def _as_utc(value: Optional[datetime]) -> datetime:
    if value is None:
        return datetime.now(timezone.utc)
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def token_from_row(row: MarketToken, origin: OriginType = OriginType.DIRECT) -> TokenRecord:
    try:
        return TokenRecord(
            id=row.id,
            address=row.address,
            name=row.name,
            symbol=row.symbol,
            owner_address=row.owner_address,
            origin=origin,
            created_at=_as_utc(row.created_at),
            tvl=row.tvl,
            total_supply=row.total_supply,
        )
    except (ValidationError, ValueError) as exc:
        raise DataIntegrityWarning(f"Malformed token row {getattr(row, 'address', '?')}: {exc}") from exc


def event_from_row(row: TokenTransaction) -> Optional[TransactionEvent]:
    """Convert a ledger row; returns None for non mint/burn rows."""
    kind = (row.transaction_type or "").lower()
    if kind not in (EventKind.MINT.value, EventKind.BURN.value):
        return None

    try:
        if kind == EventKind.MINT.value:
            if row.collateral_amount is None:
                raise ValueError("mint without collateral_amount")
            return TransactionEvent(
                token_id=row.metoken_id,
                kind=EventKind.MINT,
                supply_delta=row.me_tokens_minted or row.amount,
                collateral=row.collateral_amount,
                occurred_at=_as_utc(row.created_at),
                sequence=row.id or 0,
            )
        return TransactionEvent(
            token_id=row.metoken_id,
            kind=EventKind.BURN,
            supply_delta=row.amount,
            recorded_payout=row.assets_returned,
            occurred_at=_as_utc(row.created_at),
            sequence=row.id or 0,
        )
    except (ValidationError, ValueError) as exc:
        raise DataIntegrityWarning(f"Malformed ledger row {row.id}: {exc}") from exc


class CatalogStore:
    """Token catalog reads plus the idempotent insert used by catalog sync."""

    def __init__(self, db: Session):
        self.db = db

    # -------------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------------
    def list_direct(self, search: Optional[str] = None, limit: int = 1000) -> List[TokenRecord]:
        stmt = select(MarketToken)
        if search:
            pattern = f"%{search}%"
            stmt = stmt.where(
                or_(
                    MarketToken.name.ilike(pattern),
                    MarketToken.symbol.ilike(pattern),
                    MarketToken.owner_address.ilike(pattern),
                )
            )
        stmt = stmt.order_by(MarketToken.tvl.desc()).limit(limit)
        return self._normalize(self._scalars(stmt))

    def get_by_addresses(self, addresses: Iterable[str]) -> List[TokenRecord]:
        wanted = sorted({a.lower() for a in addresses if a})
        if not wanted:
            return []
        stmt = select(MarketToken).where(func.lower(MarketToken.address).in_(wanted))
        return self._normalize(self._scalars(stmt))

    def get_by_address(self, address: str) -> Optional[TokenRecord]:
        found = self.get_by_addresses([address])
        return found[0] if found else None

    def list_all(self) -> List[TokenRecord]:
        return self._normalize(self._scalars(select(MarketToken).order_by(MarketToken.created_at)))

    def published_content_links(self) -> List[ContentLink]:
        stmt = select(VideoAsset).where(VideoAsset.status == "published").order_by(VideoAsset.created_at)
        links: List[ContentLink] = []
        for video in self._scalars(stmt):
            token_address = (video.attributes or {}).get("content_coin_id")
            if not token_address:
                continue
            links.append(
                ContentLink(
                    token_address=str(token_address).lower(),
                    video_id=video.id,
                    title=video.title,
                    playback_id=video.playback_id,
                    thumbnail_url=video.thumbnail_url,
                )
            )
        return links

    # -------------------------------------------------------------------------
    # Writes
    # -------------------------------------------------------------------------
    def insert_if_absent(self, values: Dict[str, Any]) -> bool:
        """Insert a catalog row keyed by address; returns False if it existed."""
        row = dict(values)
        row["address"] = row["address"].lower()
        row["owner_address"] = row["owner_address"].lower()
        row["total_supply"] = str(row.get("total_supply", 0))

        stmt = self._insert(MarketToken).values(**row)
        stmt = stmt.on_conflict_do_nothing(index_elements=[MarketToken.address])
        try:
            result = self.db.execute(stmt)
            self.db.commit()
        except SQLAlchemyError as exc:
            self.db.rollback()
            raise StorageError(f"Failed to insert token {row['address']}: {exc}") from exc
        return bool(result.rowcount)

    def update_live_values(self, address: str, tvl: float, total_supply: int) -> None:
        stmt = (
            update(MarketToken)
            .where(MarketToken.address == address.lower())
            .values(tvl=tvl, total_supply=str(total_supply), updated_at=datetime.now(timezone.utc))
        )
        try:
            self.db.execute(stmt)
            self.db.commit()
        except SQLAlchemyError as exc:
            self.db.rollback()
            raise StorageError(f"Failed to update token {address}: {exc}") from exc

    # -------------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------------
    def _insert(self, table):
        if self.db.get_bind().dialect.name == "postgresql":
            return pg_insert(table)
        return sqlite_insert(table)

    def _scalars(self, stmt) -> List[Any]:
        try:
            return list(self.db.execute(stmt).scalars().all())
        except SQLAlchemyError as exc:
            raise StorageError(f"Catalog query failed: {exc}") from exc

    @staticmethod
    def _normalize(rows: Sequence[MarketToken]) -> List[TokenRecord]:
        records: List[TokenRecord] = []
        for row in rows:
            try:
                records.append(token_from_row(row))
            except DataIntegrityWarning as warning:
                log.warning(str(warning))
        return records


class LedgerStore:
    """Read-only access to mint and burn events."""

    def __init__(self, db: Session):
        self.db = db

    def events_since(
        self,
        since: datetime,
        token_ids: Optional[Sequence[uuid.UUID]] = None,
    ) -> List[TransactionEvent]:
        stmt = select(TokenTransaction).where(
            TokenTransaction.created_at >= since,
            TokenTransaction.transaction_type.in_([EventKind.MINT.value, EventKind.BURN.value]),
        )
        if token_ids is not None:
            if not token_ids:
                return []
            stmt = stmt.where(TokenTransaction.metoken_id.in_(list(token_ids)))
        stmt = stmt.order_by(TokenTransaction.created_at.desc(), TokenTransaction.id.desc())
        return self._normalize(stmt)

    def events_for_token(self, token_id: uuid.UUID, since: datetime) -> List[TransactionEvent]:
        """Events for one token, oldest first."""
        stmt = (
            select(TokenTransaction)
            .where(TokenTransaction.metoken_id == token_id, TokenTransaction.created_at >= since)
            .order_by(TokenTransaction.created_at.asc(), TokenTransaction.id.asc())
        )
        return self._normalize(stmt)

    def _normalize(self, stmt) -> List[TransactionEvent]:
        try:
            rows = list(self.db.execute(stmt).scalars().all())
        except SQLAlchemyError as exc:
            raise StorageError(f"Ledger query failed: {exc}") from exc

        events: List[TransactionEvent] = []
        for row in rows:
            try:
                event = event_from_row(row)
            except DataIntegrityWarning as warning:
                log.warning(str(warning))
                continue
            if event is not None:
                events.append(event)
        return events


class ProfileStore:
    def __init__(self, db: Session):
        self.db = db

    def get_profiles(self, owner_addresses: Iterable[str]) -> Dict[str, CreatorInfo]:
        """Batch lookup keyed by lowercase owner address."""
        wanted = sorted({a.lower() for a in owner_addresses if a})
        if not wanted:
            return {}
        stmt = select(CreatorProfile).where(func.lower(CreatorProfile.owner_address).in_(wanted))
        try:
            rows = list(self.db.execute(stmt).scalars().all())
        except SQLAlchemyError as exc:
            raise StorageError(f"Profile query failed: {exc}") from exc
        return {
            row.owner_address.lower(): CreatorInfo(
                owner_address=row.owner_address.lower(),
                username=row.username,
                avatar_url=row.avatar_url,
            )
            for row in rows
        }
