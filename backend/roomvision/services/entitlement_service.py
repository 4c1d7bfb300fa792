"""Entitlement gate guarding generations against an empty balance.

The gate reserves credits before expensive work starts:
1. An advisory balance read rejects empty accounts before any upstream call.
2. The atomic ledger debit is the real enforcement point. Two requests that
   both pass the read still cannot both debit a balance of 1.
3. The reservation is later settled (kept) or released (refunded once).
"""

import enum
import logging
from dataclasses import dataclass
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from roomvision.core.config import settings
from roomvision.services.ledger_service import (
    AccountLedger,
    InsufficientCreditsError,
    LedgerError,
)

logger = logging.getLogger(__name__)


class ReservationState(str, enum.Enum):
    """Reservation lifecycle: HELD -> SETTLED or HELD -> RELEASED."""

    HELD = "held"
    SETTLED = "settled"
    RELEASED = "released"


@dataclass
class Reservation:
    """Credits already debited for an in-flight generation."""

    user_id: str
    amount: int
    balance_after: int
    state: ReservationState = ReservationState.HELD

    @property
    def is_held(self) -> bool:
        return self.state == ReservationState.HELD


class EntitlementGate:
    """Decides whether a user may start a generation and reserves the cost."""

    def __init__(self, db: AsyncSession, ledger: Optional[AccountLedger] = None):
        """Initialize the gate.

        Args:
            db: Database session; the gate commits its own debits and refunds
            ledger: Optional ledger sharing the same session
        """
        self.db = db
        self.ledger = ledger or AccountLedger(db)

    async def attempt_consume(
        self,
        user_id: str,
        amount: Optional[int] = None,
    ) -> Reservation:
        """Reserve credits for one generation.

        Args:
            user_id: The user's ID
            amount: Credits to reserve (defaults to CREDITS_PER_GENERATION)

        Returns:
            A HELD Reservation; the debit is already committed

        Raises:
            InsufficientCreditsError: If the balance cannot cover amount
            UserNotFoundError: If the user does not exist
            StorageError: If the database fails
        """
        amount = amount or settings.CREDITS_PER_GENERATION

        # Fast rejection, no upstream call for empty accounts
        available = await self.ledger.get_balance(user_id)
        if available <= 0 or available < amount:
            logger.info(
                f"Entitlement denied for user {user_id}: "
                f"required {amount}, available {available}"
            )
            raise InsufficientCreditsError(required=amount, available=available)

        try:
            balance_after = await self.ledger.debit(user_id, amount)
            await self.db.commit()
        except LedgerError:
            await self.db.rollback()
            raise

        logger.info(
            f"Reserved {amount} credits for user {user_id}. Balance: {balance_after}"
        )
        return Reservation(user_id=user_id, amount=amount, balance_after=balance_after)

    def settle(self, reservation: Reservation) -> None:
        """Keep the reserved credits (the generation went through)."""
        if reservation.is_held:
            reservation.state = ReservationState.SETTLED

    async def release(self, reservation: Reservation, reason: str) -> Optional[int]:
        """Give reserved credits back to the user.

        Only a HELD reservation is refunded; releasing twice, or releasing a
        settled reservation, does nothing.

        Args:
            reservation: Reservation returned by attempt_consume
            reason: Why the credits are being returned (logged)

        Returns:
            New balance, or None if nothing was refunded

        Raises:
            StorageError: If the refund cannot be written
        """
        if not reservation.is_held:
            return None

        try:
            new_balance = await self.ledger.credit(reservation.user_id, reservation.amount)
            await self.db.commit()
        except LedgerError:
            await self.db.rollback()
            logger.error(
                f"Failed to refund {reservation.amount} credits to user "
                f"{reservation.user_id} ({reason})"
            )
            raise

        reservation.state = ReservationState.RELEASED
        logger.info(
            f"Released {reservation.amount} credits to user {reservation.user_id} "
            f"({reason}). Balance: {new_balance}"
        )
        return new_balance


def get_entitlement_gate(db: AsyncSession) -> EntitlementGate:
    """Factory function to create EntitlementGate.

    Args:
        db: Database session

    Returns:
        Configured EntitlementGate instance
    """
    return EntitlementGate(db)
