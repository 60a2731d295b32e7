"""Normalized token and ledger records used by the market pipeline.

Rows coming out of the catalog and ledger tables are converted into these
types at the store boundary. Anything that fails validation is dropped there,
so the pipeline only ever sees well-formed records.
"""

import uuid
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_serializer, field_validator


class OriginType(str, Enum):
    DIRECT = "direct"
    CONTENT_DERIVED = "content-derived"


class EventKind(str, Enum):
    MINT = "mint"
    BURN = "burn"


def parse_fixed_point(value: Any) -> int:
    """Coerce a stored fixed-point amount (text, int or Decimal) into an int."""
    if value is None or value == "":
        return 0
    if isinstance(value, bool):
        raise ValueError("boolean is not a fixed-point amount")
    if isinstance(value, int):
        return value
    if isinstance(value, Decimal):
        if value != value.to_integral_value():
            raise ValueError(f"fixed-point amount has a fractional part: {value}")
        return int(value)
    text = str(value).strip()
    if text.endswith(".0"):
        text = text[:-2]
    return int(text)


class TokenRecord(BaseModel):
    """A catalog token, tagged with the origin it was discovered through."""

    model_config = ConfigDict(populate_by_name=True)

    id: Optional[uuid.UUID] = None
    address: str
    name: str
    symbol: str
    owner_address: str
    origin: OriginType = Field(default=OriginType.DIRECT, alias="type")
    created_at: datetime

    tvl: float = Field(default=0.0, ge=0)
    total_supply: int = Field(default=0, ge=0)

    # Content linkage, only set for content-derived tokens
    video_id: Optional[int] = None
    video_title: Optional[str] = None
    playback_id: Optional[str] = None
    thumbnail_url: Optional[str] = None

    @field_validator("address", "owner_address")
    @classmethod
    def _lowercase_address(cls, value: str) -> str:
        value = (value or "").strip().lower()
        if not value:
            raise ValueError("address must not be empty")
        return value

    @field_validator("total_supply", mode="before")
    @classmethod
    def _parse_supply(cls, value: Any) -> int:
        return parse_fixed_point(value)

    @field_validator("tvl", mode="before")
    @classmethod
    def _default_tvl(cls, value: Any) -> Any:
        return 0.0 if value is None else value

    @field_serializer("total_supply")
    def _supply_as_text(self, value: int) -> str:
        # JSON numbers lose precision past 2**53
        return str(value)


class TokenListing(TokenRecord):
    """Token record plus the market snapshot derived for one request."""

    price: float = 0.0
    market_cap: float = 0.0
    price_change_24h: float = 0.0
    volume_24h: float = 0.0

    creator_username: Optional[str] = None
    creator_avatar_url: Optional[str] = None


class TransactionEvent(BaseModel):
    """One mint or burn from the ledger.

    ``collateral`` is exact for mints. Burns normally have no collateral;
    ``recorded_payout`` is set only when a payout receipt was stored.
    """

    model_config = ConfigDict(frozen=True)

    token_id: uuid.UUID
    kind: EventKind
    supply_delta: int = Field(gt=0)
    collateral: Optional[float] = None
    recorded_payout: Optional[float] = None
    occurred_at: datetime
    sequence: int = 0

    @field_validator("supply_delta", mode="before")
    @classmethod
    def _parse_delta(cls, value: Any) -> int:
        return parse_fixed_point(value)


class CreatorInfo(BaseModel):
    owner_address: str
    username: Optional[str] = None
    avatar_url: Optional[str] = None
