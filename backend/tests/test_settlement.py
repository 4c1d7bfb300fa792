"""Tests for payment settlement (webhook events to credit grants).

This module tests:
- Granting credits for a completed checkout
- Redelivered events (idempotency), sequential and concurrent
- Free checkouts keyed by their session id
- Rejected events with missing metadata
- Ignored event types and unpaid sessions
- Retryable storage failures leaving nothing behind
"""

import asyncio
from typing import Optional

import pytest
from sqlalchemy import func, select

from roomvision.models import Transaction, User
from roomvision.services.ledger_service import StorageError
from roomvision.services.settlement_service import (
    MissingMetadataError,
    SettlementError,
    SettlementHandler,
    SettlementOutcome,
    get_settlement_handler,
    parse_purchase,
)


# ============================================================================
# Fixtures
# ============================================================================


def make_event(
    user_id: Optional[str] = "user_test_1",
    credits: Optional[str] = "30",
    payment_intent: Optional[str] = "pi_test_001",
    amount_total: Optional[int] = 1900,
    event_type: str = "checkout.session.completed",
    event_id: str = "evt_test_001",
    payment_status: Optional[str] = "paid",
) -> dict:
    metadata = {"package": "medium"}
    if user_id is not None:
        metadata["userId"] = user_id
    if credits is not None:
        metadata["credits"] = credits

    session = {
        "id": "cs_test_001",
        "metadata": metadata,
        "payment_intent": payment_intent,
        "amount_total": amount_total,
    }
    if payment_status is not None:
        session["payment_status"] = payment_status

    return {"id": event_id, "type": event_type, "data": {"object": session}}


@pytest.fixture
def handler(db_session) -> SettlementHandler:
    return get_settlement_handler(db_session)


async def count_transactions(session_factory) -> int:
    async with session_factory() as session:
        return await session.scalar(select(func.count()).select_from(Transaction))


# ============================================================================
# Settlement Tests
# ============================================================================


class TestSettle:
    """Tests for settling completed checkouts."""

    async def test_grants_credits_and_records_transaction(
        self, handler: SettlementHandler, session_factory, test_user: User, balance_of
    ):
        """Test that a paid checkout grants its credits exactly once."""
        result = await handler.settle(make_event())

        assert result.outcome == SettlementOutcome.SETTLED
        assert result.credits_granted == 30
        assert result.new_balance == 33
        assert await balance_of(test_user.id) == 33

        async with session_factory() as session:
            transaction = await session.scalar(select(Transaction))
        assert transaction.stripe_payment_id == "pi_test_001"
        assert transaction.amount == 1900
        assert transaction.credits == 30
        assert transaction.package == "medium"
        assert transaction.user_id == test_user.id

    async def test_redelivery_is_noop(
        self, session_factory, test_user: User, balance_of
    ):
        """Test that the same event delivered twice grants credits once."""
        async with session_factory() as session:
            first = await SettlementHandler(session).settle(make_event())
        async with session_factory() as session:
            second = await SettlementHandler(session).settle(make_event())

        assert first.outcome == SettlementOutcome.SETTLED
        assert second.outcome == SettlementOutcome.DUPLICATE
        assert second.transaction_id == first.transaction_id
        assert await balance_of(test_user.id) == 33
        assert await count_transactions(session_factory) == 1

    async def test_concurrent_redeliveries_settle_once(
        self, session_factory, test_user: User, balance_of
    ):
        """Test that parallel deliveries of one event grant credits once."""

        async def deliver():
            async with session_factory() as session:
                return await SettlementHandler(session).settle(make_event())

        results = await asyncio.gather(*(deliver() for _ in range(4)))

        outcomes = [result.outcome for result in results]
        assert outcomes.count(SettlementOutcome.SETTLED) == 1
        assert outcomes.count(SettlementOutcome.DUPLICATE) == 3

        settled = next(r for r in results if r.outcome == SettlementOutcome.SETTLED)
        assert {r.transaction_id for r in results} == {settled.transaction_id}
        assert await balance_of(test_user.id) == 33
        assert await count_transactions(session_factory) == 1

    async def test_free_checkout_settles_by_session_id(
        self, handler: SettlementHandler, session_factory, test_user: User, balance_of
    ):
        """Test that a checkout needing no payment grants credits under its session id."""
        event = make_event(
            payment_status="no_payment_required", payment_intent=None, amount_total=0
        )

        result = await handler.settle(event)

        assert result.outcome == SettlementOutcome.SETTLED
        assert await balance_of(test_user.id) == 33
        async with session_factory() as session:
            transaction = await session.scalar(select(Transaction))
        assert transaction.stripe_payment_id == "cs_test_001"
        assert transaction.amount == 0

        again = await handler.settle(event)
        assert again.outcome == SettlementOutcome.DUPLICATE

    async def test_distinct_payments_both_settle(
        self, handler: SettlementHandler, test_user: User, balance_of
    ):
        """Test that different payment references are separate purchases."""
        await handler.settle(make_event(payment_intent="pi_a", event_id="evt_a"))
        await handler.settle(make_event(payment_intent="pi_b", event_id="evt_b", credits="10"))

        assert await balance_of(test_user.id) == 43

    async def test_missing_user_id_rejected(
        self, handler: SettlementHandler, session_factory, test_user: User, balance_of
    ):
        """Test that an event without userId is rejected with no writes."""
        with pytest.raises(MissingMetadataError):
            await handler.settle(make_event(user_id=None))

        assert await count_transactions(session_factory) == 0
        assert await balance_of(test_user.id) == 3

    async def test_non_numeric_credits_rejected(
        self, handler: SettlementHandler, session_factory, test_user: User
    ):
        """Test that credits must be a positive integer."""
        with pytest.raises(MissingMetadataError):
            await handler.settle(make_event(credits="lots"))

        assert await count_transactions(session_factory) == 0

    @pytest.mark.parametrize(
        "event_type",
        ["payment_intent.succeeded", "charge.refunded", "customer.created"],
    )
    async def test_other_event_types_ignored(
        self, handler: SettlementHandler, session_factory, test_user: User, balance_of, event_type
    ):
        """Test that events other than checkout completion are acknowledged only."""
        result = await handler.settle(make_event(event_type=event_type))

        assert result.outcome == SettlementOutcome.IGNORED
        assert await count_transactions(session_factory) == 0
        assert await balance_of(test_user.id) == 3

    async def test_unpaid_session_ignored(
        self, handler: SettlementHandler, session_factory, test_user: User, balance_of
    ):
        """Test that a completed but unpaid checkout grants nothing."""
        result = await handler.settle(make_event(payment_status="unpaid"))

        assert result.outcome == SettlementOutcome.IGNORED
        assert "unpaid" in result.reason
        assert await balance_of(test_user.id) == 3

    async def test_unknown_user_is_retryable(self, handler: SettlementHandler, session_factory):
        """Test that a grant for an unknown user leaves no transaction behind."""
        with pytest.raises(SettlementError):
            await handler.settle(make_event(user_id="user_not_yet_synced"))

        assert await count_transactions(session_factory) == 0

    async def test_storage_failure_then_redelivery(
        self, session_factory, test_user: User, balance_of
    ):
        """Test that a failed grant rolls back the transaction and a retry settles."""
        async with session_factory() as session:
            handler = SettlementHandler(session)

            async def failing_credit(user_id, amount):
                raise StorageError("database unavailable")

            handler.ledger.credit = failing_credit

            with pytest.raises(SettlementError):
                await handler.settle(make_event())

        assert await count_transactions(session_factory) == 0
        assert await balance_of(test_user.id) == 3

        async with session_factory() as session:
            result = await SettlementHandler(session).settle(make_event())

        assert result.outcome == SettlementOutcome.SETTLED
        assert await balance_of(test_user.id) == 33
        assert await count_transactions(session_factory) == 1


# ============================================================================
# Parsing Tests
# ============================================================================


class TestParsePurchase:
    """Tests for extracting purchase details from a checkout session."""

    def test_parse_string_credits(self):
        """Test that metadata credits arrive as a string and are parsed."""
        purchase = parse_purchase(make_event()["data"]["object"])

        assert purchase.user_id == "user_test_1"
        assert purchase.credits == 30
        assert purchase.payment_ref == "pi_test_001"
        assert purchase.amount == 1900
        assert purchase.package == "medium"

    def test_parse_expanded_payment_intent(self):
        """Test that an expanded PaymentIntent object yields its id."""
        session = make_event()["data"]["object"]
        session["payment_intent"] = {"id": "pi_expanded", "object": "payment_intent"}

        assert parse_purchase(session).payment_ref == "pi_expanded"

    def test_parse_free_checkout_uses_session_id(self):
        """Test that a checkout without a PaymentIntent is keyed by its session id."""
        session = make_event(
            payment_status="no_payment_required", payment_intent=None, amount_total=0
        )["data"]["object"]

        purchase = parse_purchase(session)

        assert purchase.payment_ref == "cs_test_001"
        assert purchase.amount == 0

    @pytest.mark.parametrize(
        "overrides",
        [
            {"payment_intent": None},
            {"amount_total": None},
            {"credits": "0"},
            {"credits": "-5"},
            {"credits": None},
        ],
    )
    def test_parse_missing_fields(self, overrides):
        """Test that any missing required field is reported."""
        session = make_event(**overrides)["data"]["object"]

        with pytest.raises(MissingMetadataError) as exc_info:
            parse_purchase(session)

        assert "Missing metadata" in str(exc_info.value)
