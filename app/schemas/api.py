from datetime import datetime
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from app.schemas.normalized import TokenListing, TokenRecord


class Pagination(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    total: int
    limit: int
    offset: int
    has_more: bool = Field(alias="hasMore")


class MarketStats(BaseModel):
    total_tokens: int
    total_tvl: float
    volume_24h: float
    top_gainers: list[TokenListing]
    top_losers: list[TokenListing]


class MarketTokensResponse(BaseModel):
    data: list[TokenListing]
    pagination: Pagination
    stats: MarketStats | None = None


class FreshTokenOut(BaseModel):
    """Live read of a single token straight from the chain."""

    address: str
    owner: str
    name: str
    symbol: str
    total_supply: str
    tvl: float
    price: float
    balance_pooled: float
    balance_locked: float
    hub_id: int | None = None
    fetched_at: datetime


class PriceHistoryPointOut(BaseModel):
    timestamp: int
    price: float
    volume: float
    tvl: float

    class Config:
        from_attributes = True


class PriceHistoryToken(BaseModel):
    address: str
    current_price: float
    current_tvl: float


class PriceHistoryResponse(BaseModel):
    address: str
    period: Literal["7d", "30d", "all"]
    interval: Literal["hour", "day"]
    token: PriceHistoryToken
    data: list[PriceHistoryPointOut]


class SyncRequest(BaseModel):
    address: str = Field(min_length=1)

    @field_validator("address")
    @classmethod
    def _lowercase(cls, value: str) -> str:
        return value.strip().lower()


class SyncResponse(BaseModel):
    created: bool
    message: str
    data: TokenRecord | None = None


class CronSyncResponse(BaseModel):
    success: bool
    total_tokens: int
    success_count: int
    updated_count: int
    error_count: int
    duration_seconds: float
    timestamp: datetime
    errors: list[str] | None = None


class HealthResponse(BaseModel):
    database: str
    catalog_tokens: int | None


class ErrorResponse(BaseModel):
    error: str
    details: Optional[str] = None
