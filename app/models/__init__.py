from app.models.base import Base
from app.models.content import CreatorProfile, VideoAsset
from app.models.token import MarketToken, TokenTransaction

__all__ = [
    "Base",
    "CreatorProfile",
    "MarketToken",
    "TokenTransaction",
    "VideoAsset",
]
