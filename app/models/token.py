"""Token catalog and transaction ledger tables."""

import uuid

from sqlalchemy import BigInteger, DateTime, Float, ForeignKey, Index, Integer, String, Uuid, func
from sqlalchemy.orm import Mapped, mapped_column

from app.models.base import Base

# SQLite only autoincrements INTEGER primary keys
LedgerId = BigInteger().with_variant(Integer(), "sqlite")


class MarketToken(Base):
    """Catalog entry for a creator token.

    ``total_supply`` is the 18-decimal fixed-point integer rendered as text so
    values above 2**63 survive every backend. ``tvl`` is already converted to
    the unit of account. A zero in either column means the row was never
    populated from the chain.
    """

    __tablename__ = "metokens"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)

    address: Mapped[str] = mapped_column(String(42), nullable=False, unique=True, index=True, comment="Lowercase token contract address")
    owner_address: Mapped[str] = mapped_column(String(42), nullable=False, index=True)

    name: Mapped[str] = mapped_column(String(200), nullable=False)
    symbol: Mapped[str] = mapped_column(String(50), nullable=False)

    total_supply: Mapped[str] = mapped_column(String(78), nullable=False, default="0", comment="Fixed-point supply, 18 decimals")
    tvl: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)

    hub_id: Mapped[int | None] = mapped_column(Integer, nullable=True)
    balance_pooled: Mapped[float | None] = mapped_column(Float, nullable=True)
    balance_locked: Mapped[float | None] = mapped_column(Float, nullable=True)

    created_at: Mapped[DateTime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
    )

    updated_at: Mapped[DateTime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
    )


class TokenTransaction(Base):
    """Append-only ledger of token events.

    Mint rows carry the exact collateral deposited. Burn rows usually carry
    no payout; ``assets_returned`` is only filled when a receipt was recorded.
    """

    __tablename__ = "metoken_transactions"

    id: Mapped[int] = mapped_column(LedgerId, primary_key=True, autoincrement=True)

    metoken_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("metokens.id"), nullable=False, index=True)
    user_address: Mapped[str] = mapped_column(String(42), nullable=False)

    transaction_type: Mapped[str] = mapped_column(String(20), nullable=False)  # mint | burn | transfer | create

    amount: Mapped[str] = mapped_column(String(78), nullable=False, default="0")
    me_tokens_minted: Mapped[str | None] = mapped_column(String(78), nullable=True)
    collateral_amount: Mapped[float | None] = mapped_column(Float, nullable=True)
    assets_returned: Mapped[float | None] = mapped_column(Float, nullable=True)

    transaction_hash: Mapped[str | None] = mapped_column(String(66), nullable=True)
    block_number: Mapped[int | None] = mapped_column(BigInteger, nullable=True)

    created_at: Mapped[DateTime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
    )

    __table_args__ = (Index("ix_metoken_transactions_token_created", "metoken_id", "created_at"),)
