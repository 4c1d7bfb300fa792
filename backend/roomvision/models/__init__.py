"""SQLAlchemy models for RoomVision."""

from roomvision.models.transaction import Transaction, TransactionStatus
from roomvision.models.user import User
from roomvision.models.video import Video, VideoStatus

__all__ = [
    "User",
    "Transaction",
    "TransactionStatus",
    "Video",
    "VideoStatus",
]
