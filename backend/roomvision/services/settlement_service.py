"""Payment settlement: verified Stripe events in, credits out.

Each event walks a small state machine:

    received -> parsed -> settling/granting -> settled
                   |              |
                rejected      retryable failure

- Only ``checkout.session.completed`` is acted on; every other event type
  is acknowledged and ignored.
- Missing or malformed metadata is a terminal rejection with no writes.
- The transaction insert and the credit grant are committed together, so a
  failure leaves neither behind and Stripe's redelivery starts from scratch.
- A redelivered event hits the unique payment reference and becomes a no-op.
"""

import enum
import logging
from dataclasses import dataclass
from typing import Any, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from roomvision.services.ledger_service import (
    AccountLedger,
    DuplicateTransactionError,
    LedgerError,
)

logger = logging.getLogger(__name__)

CHECKOUT_COMPLETED = "checkout.session.completed"
SETTLEABLE_PAYMENT_STATUSES = ("paid", "no_payment_required")


class MissingMetadataError(Exception):
    """Raised when a payment event lacks the fields needed to grant credits."""

    pass


class SettlementError(Exception):
    """Raised when settlement failed in a way Stripe should retry."""

    pass


class SettlementOutcome(str, enum.Enum):
    """Terminal success states of a webhook event."""

    SETTLED = "settled"  # Transaction recorded and credits granted
    DUPLICATE = "duplicate"  # Payment already settled by an earlier delivery
    IGNORED = "ignored"  # Event type (or payment status) not actionable


@dataclass
class Purchase:
    """Fields extracted from a completed checkout session."""

    user_id: str
    credits: int
    payment_ref: str
    amount: int
    package: Optional[str] = None


@dataclass
class SettlementResult:
    """What happened to one webhook event."""

    outcome: SettlementOutcome
    event_id: Optional[str]
    event_type: str
    user_id: Optional[str] = None
    credits_granted: int = 0
    new_balance: Optional[int] = None
    transaction_id: Optional[int] = None
    reason: Optional[str] = None


def _parse_positive_int(value: Any) -> Optional[int]:
    if value is None or isinstance(value, bool):
        return None
    try:
        number = int(str(value).strip())
    except ValueError:
        return None
    return number if number > 0 else None


def parse_purchase(session: Any) -> Purchase:
    """Extract purchase details from a checkout session object.

    Args:
        session: ``data.object`` of a checkout.session.completed event

    Returns:
        Purchase with user, credits, payment reference and amount

    Raises:
        MissingMetadataError: If any required field is absent or malformed
    """
    metadata = session.get("metadata") or {}
    user_id = metadata.get("userId")
    credits = _parse_positive_int(metadata.get("credits"))

    payment_ref = session.get("payment_intent")
    if isinstance(payment_ref, dict):
        # Expanded PaymentIntent object
        payment_ref = payment_ref.get("id")
    if not payment_ref and session.get("payment_status") == "no_payment_required":
        # Free checkouts have no PaymentIntent; the session itself is unique
        payment_ref = session.get("id")

    amount = session.get("amount_total")
    if isinstance(amount, bool) or not isinstance(amount, int) or amount < 0:
        amount = None

    missing = [
        name
        for name, value in (
            ("metadata.userId", user_id),
            ("metadata.credits", credits),
            ("payment_intent", payment_ref),
            ("amount_total", amount),
        )
        if value in (None, "")
    ]
    if missing:
        raise MissingMetadataError(
            f"Missing metadata in checkout session {session.get('id')}: {', '.join(missing)}"
        )

    return Purchase(
        user_id=str(user_id),
        credits=credits,
        payment_ref=str(payment_ref),
        amount=amount,
        package=metadata.get("package"),
    )


class SettlementHandler:
    """Turns verified payment events into idempotent credit grants."""

    def __init__(self, db: AsyncSession, ledger: Optional[AccountLedger] = None):
        """Initialize the settlement handler.

        Args:
            db: Database session; the handler owns the commit
            ledger: Optional ledger sharing the same session
        """
        self.db = db
        self.ledger = ledger or AccountLedger(db)

    async def settle(self, event: Any) -> SettlementResult:
        """Process one verified Stripe event.

        Args:
            event: Verified Stripe event (or an equivalent mapping)

        Returns:
            SettlementResult describing the terminal success state

        Raises:
            MissingMetadataError: Event rejected, nothing written
            SettlementError: Storage failure, nothing written, safe to redeliver
        """
        event_type = event["type"]
        event_id = event.get("id")

        if event_type != CHECKOUT_COMPLETED:
            logger.info(f"Ignoring unhandled webhook event type: {event_type} ({event_id})")
            return SettlementResult(
                outcome=SettlementOutcome.IGNORED,
                event_id=event_id,
                event_type=event_type,
                reason="event type not handled",
            )

        session = event["data"]["object"]
        payment_status = session.get("payment_status")
        if payment_status is not None and payment_status not in SETTLEABLE_PAYMENT_STATUSES:
            logger.warning(
                f"Checkout session {session.get('id')} status is '{payment_status}', "
                f"not 'paid'. Skipping credit grant."
            )
            return SettlementResult(
                outcome=SettlementOutcome.IGNORED,
                event_id=event_id,
                event_type=event_type,
                reason=f"payment status is {payment_status}",
            )

        try:
            purchase = parse_purchase(session)
        except MissingMetadataError as e:
            logger.error(f"Rejecting webhook event {event_id}: {e}")
            raise

        context = {
            "event_id": event_id,
            "event_type": event_type,
            "user_id": purchase.user_id,
            "payment_ref": purchase.payment_ref,
        }
        logger.info(
            f"Settling payment {purchase.payment_ref}: user={purchase.user_id}, "
            f"credits={purchase.credits}, amount={purchase.amount}",
            extra=context,
        )

        try:
            transaction = await self.ledger.record_transaction(
                user_id=purchase.user_id,
                external_ref=purchase.payment_ref,
                amount_minor_units=purchase.amount,
                credits=purchase.credits,
                package=purchase.package,
            )
            transaction_id = transaction.id
            new_balance = await self.ledger.credit(purchase.user_id, purchase.credits)
            await self.db.commit()
        except DuplicateTransactionError as e:
            await self.db.rollback()
            logger.warning(
                f"Duplicate webhook event {event_id} for payment {purchase.payment_ref}, "
                f"credits already granted",
                extra=context,
            )
            return SettlementResult(
                outcome=SettlementOutcome.DUPLICATE,
                event_id=event_id,
                event_type=event_type,
                user_id=purchase.user_id,
                transaction_id=e.transaction_id,
            )
        except (LedgerError, SQLAlchemyError) as e:
            await self.db.rollback()
            logger.error(f"Failed to settle payment {purchase.payment_ref}: {e}", extra=context)
            raise SettlementError(f"Failed to settle payment {purchase.payment_ref}: {str(e)}")

        logger.info(
            f"Granted {purchase.credits} credits to user {purchase.user_id}. "
            f"New balance: {new_balance}",
            extra={**context, "credits": purchase.credits, "balance": new_balance},
        )
        return SettlementResult(
            outcome=SettlementOutcome.SETTLED,
            event_id=event_id,
            event_type=event_type,
            user_id=purchase.user_id,
            credits_granted=purchase.credits,
            new_balance=new_balance,
            transaction_id=transaction_id,
        )


def get_settlement_handler(db: AsyncSession) -> SettlementHandler:
    """Factory function to create SettlementHandler.

    Args:
        db: Database session

    Returns:
        Configured SettlementHandler instance
    """
    return SettlementHandler(db)
