"""Video model for generated room videos."""

import enum
from datetime import datetime
from typing import Optional
from uuid import uuid4

from sqlalchemy import Boolean, DateTime, Enum, ForeignKey, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy.sql import func

from roomvision.core.database import Base


class VideoStatus(str, enum.Enum):
    """Video statuses, mirroring the generation service.

    State transitions:
    - PROCESSING -> COMPLETED (upstream finished)
    - PROCESSING -> FAILED (upstream gave up, credit refunded)
    """

    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


class Video(Base):
    """
    A video produced by the generation service for one user.

    Created when the upstream generation call returns. The status is whatever
    upstream reported, updated later only through a status refresh.
    """

    __tablename__ = "videos"

    # Primary key
    id: Mapped[str] = mapped_column(
        String(32), primary_key=True, default=lambda: uuid4().hex
    )

    # Foreign key to user
    user_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )

    # Generation id reported by upstream
    external_id: Mapped[Optional[str]] = mapped_column(String(255), nullable=True, index=True)

    # Generation parameters (opaque to the backend)
    mode: Mapped[str] = mapped_column(String(50), nullable=False)
    room_type: Mapped[str] = mapped_column(String(100), nullable=False)
    style: Mapped[str] = mapped_column(String(100), nullable=False)
    effect: Mapped[str] = mapped_column(String(100), nullable=False)

    # Media references
    original_image_url: Mapped[str] = mapped_column(Text, nullable=False)
    video_url: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    thumbnail_url: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    status: Mapped[VideoStatus] = mapped_column(
        Enum(VideoStatus), default=VideoStatus.PROCESSING, nullable=False, index=True
    )

    # Set once when the credit spent on this video is given back
    credit_refunded: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False, index=True
    )
    updated_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), onupdate=func.now(), nullable=True
    )

    # Relationships
    user: Mapped["User"] = relationship("User", back_populates="videos")

    def __repr__(self) -> str:
        return f"<Video(id={self.id}, status={self.status.value}, user={self.user_id})>"

    @property
    def is_terminal(self) -> bool:
        """Check if upstream will not change this video any more."""
        return self.status in (VideoStatus.COMPLETED, VideoStatus.FAILED)
