"""Transaction model for credit purchases."""

import enum
from datetime import datetime
from typing import Optional

from sqlalchemy import DateTime, Enum, ForeignKey, Integer, String
from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy.sql import func

from roomvision.core.database import Base


class TransactionStatus(str, enum.Enum):
    """Transaction statuses."""

    COMPLETED = "completed"  # Payment settled and credits granted


class Transaction(Base):
    """
    Immutable log of settled credit purchases.

    This table is append-only. Never UPDATE or DELETE records.
    ``stripe_payment_id`` is unique, so a redelivered payment event can never
    produce a second row.
    """

    __tablename__ = "transactions"

    # Primary key
    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)

    # Foreign key to user
    user_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )

    # External payment reference (idempotency key)
    stripe_payment_id: Mapped[str] = mapped_column(
        String(255), nullable=False, unique=True, index=True
    )

    # Transaction details
    amount: Mapped[int] = mapped_column(Integer, nullable=False)  # Minor currency units
    credits: Mapped[int] = mapped_column(Integer, nullable=False)
    status: Mapped[TransactionStatus] = mapped_column(
        Enum(TransactionStatus), default=TransactionStatus.COMPLETED, nullable=False
    )
    package: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)

    # Timestamp (immutable)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False, index=True
    )

    # Relationships
    user: Mapped["User"] = relationship("User", back_populates="transactions")

    def __repr__(self) -> str:
        return (
            f"<Transaction(id={self.id}, ref={self.stripe_payment_id}, "
            f"credits={self.credits})>"
        )
