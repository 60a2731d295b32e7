"""create token catalog, ledger, content and profile tables

Revision ID: 0001_market_tables
Revises:
Create Date: 2026-10-19 09:00:00.000000
"""

from __future__ import annotations

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision = "0001_market_tables"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "metokens",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("address", sa.String(42), nullable=False, comment="Lowercase token contract address"),
        sa.Column("owner_address", sa.String(42), nullable=False),
        sa.Column("name", sa.String(200), nullable=False),
        sa.Column("symbol", sa.String(50), nullable=False),
        sa.Column("total_supply", sa.String(78), nullable=False, server_default="0", comment="Fixed-point supply, 18 decimals"),
        sa.Column("tvl", sa.Float(), nullable=False, server_default="0"),
        sa.Column("hub_id", sa.Integer(), nullable=True),
        sa.Column("balance_pooled", sa.Float(), nullable=True),
        sa.Column("balance_locked", sa.Float(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=True),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_metokens_address", "metokens", ["address"], unique=True)
    op.create_index("ix_metokens_owner_address", "metokens", ["owner_address"])

    op.create_table(
        "metoken_transactions",
        sa.Column("id", sa.BigInteger(), autoincrement=True, nullable=False),
        sa.Column("metoken_id", sa.Uuid(), nullable=False),
        sa.Column("user_address", sa.String(42), nullable=False),
        sa.Column("transaction_type", sa.String(20), nullable=False),
        sa.Column("amount", sa.String(78), nullable=False, server_default="0"),
        sa.Column("me_tokens_minted", sa.String(78), nullable=True),
        sa.Column("collateral_amount", sa.Float(), nullable=True),
        sa.Column("assets_returned", sa.Float(), nullable=True),
        sa.Column("transaction_hash", sa.String(66), nullable=True),
        sa.Column("block_number", sa.BigInteger(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=True),
        sa.ForeignKeyConstraint(["metoken_id"], ["metokens.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_metoken_transactions_metoken_id", "metoken_transactions", ["metoken_id"])
    op.create_index("ix_metoken_transactions_token_created", "metoken_transactions", ["metoken_id", "created_at"])

    op.create_table(
        "video_assets",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("title", sa.String(500), nullable=False),
        sa.Column("playback_id", sa.String(100), nullable=True),
        sa.Column("thumbnail_url", sa.String(1000), nullable=True),
        sa.Column("creator_id", sa.String(42), nullable=True),
        sa.Column("status", sa.String(20), nullable=False, server_default="draft"),
        sa.Column("attributes", postgresql.JSONB(astext_type=sa.Text()), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=True),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_video_assets_playback_id", "video_assets", ["playback_id"])

    op.create_table(
        "creator_profiles",
        sa.Column("owner_address", sa.String(42), nullable=False),
        sa.Column("username", sa.String(100), nullable=True),
        sa.Column("avatar_url", sa.String(1000), nullable=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=True),
        sa.PrimaryKeyConstraint("owner_address"),
    )


def downgrade() -> None:
    op.drop_table("creator_profiles")
    op.drop_index("ix_video_assets_playback_id", table_name="video_assets")
    op.drop_table("video_assets")
    op.drop_index("ix_metoken_transactions_token_created", table_name="metoken_transactions")
    op.drop_index("ix_metoken_transactions_metoken_id", table_name="metoken_transactions")
    op.drop_table("metoken_transactions")
    op.drop_index("ix_metokens_owner_address", table_name="metokens")
    op.drop_index("ix_metokens_address", table_name="metokens")
    op.drop_table("metokens")
