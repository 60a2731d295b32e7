"""Payload shapes returned by the chain reader and the issuance indexer."""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field


class LiveTokenState(BaseModel):
    """Balances read from the bonding-curve contract for one token."""

    address: str
    tvl: float = Field(ge=0)
    total_supply: int = Field(ge=0)
    price: float = Field(ge=0)
    balance_pooled: float = 0.0
    balance_locked: float = 0.0
    hub_id: Optional[int] = None


class TokenMetadata(BaseModel):
    """ERC-20 style metadata read from the token contract."""

    address: str
    name: str
    symbol: str
    owner_address: str


class IssuanceEvent(BaseModel):
    """A token issuance seen by the external indexer."""

    address: str
    hub_id: Optional[int] = None
    assets_deposited: Optional[str] = None
    block_timestamp: Optional[datetime] = None
    block_number: Optional[int] = None
    transaction_hash: Optional[str] = None
