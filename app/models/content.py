"""Published content and creator profile tables (read-only here)."""

from sqlalchemy import DateTime, Integer, String, func
from sqlalchemy.orm import Mapped, mapped_column

from app.models.base import Base, JSONType


class VideoAsset(Base):
    __tablename__ = "video_assets"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    title: Mapped[str] = mapped_column(String(500), nullable=False)
    playback_id: Mapped[str | None] = mapped_column(String(100), nullable=True, index=True)
    thumbnail_url: Mapped[str | None] = mapped_column(String(1000), nullable=True)
    creator_id: Mapped[str | None] = mapped_column(String(42), nullable=True)

    status: Mapped[str] = mapped_column(String(20), nullable=False, default="draft")  # draft | published

    # {"content_coin_id": "<token address>", ...}
    attributes: Mapped[dict | None] = mapped_column(JSONType, nullable=True)

    created_at: Mapped[DateTime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
    )


class CreatorProfile(Base):
    __tablename__ = "creator_profiles"

    owner_address: Mapped[str] = mapped_column(String(42), primary_key=True)
    username: Mapped[str | None] = mapped_column(String(100), nullable=True)
    avatar_url: Mapped[str | None] = mapped_column(String(1000), nullable=True)

    updated_at: Mapped[DateTime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
    )
