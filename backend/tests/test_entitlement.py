"""Tests for the entitlement gate (credit reservation before generation)."""

import asyncio

import pytest

from roomvision.models.user import User
from roomvision.services.entitlement_service import (
    EntitlementGate,
    ReservationState,
    get_entitlement_gate,
)
from roomvision.services.ledger_service import InsufficientCreditsError, UserNotFoundError


@pytest.fixture
def gate(db_session) -> EntitlementGate:
    return get_entitlement_gate(db_session)


class TestAttemptConsume:
    """Tests for reserving credits."""

    async def test_reserve_commits_debit(self, gate: EntitlementGate, test_user: User, balance_of):
        """Test that a reservation is debited and committed immediately."""
        reservation = await gate.attempt_consume(test_user.id)

        assert reservation.state == ReservationState.HELD
        assert reservation.amount == 1
        assert reservation.balance_after == 2
        assert await balance_of(test_user.id) == 2

    async def test_empty_balance_rejected(self, gate: EntitlementGate, broke_user: User, balance_of):
        """Test that a user with zero credits is rejected."""
        with pytest.raises(InsufficientCreditsError):
            await gate.attempt_consume(broke_user.id)

        assert await balance_of(broke_user.id) == 0

    async def test_amount_above_balance_rejected(self, gate: EntitlementGate, test_user: User, balance_of):
        """Test that a larger reservation than the balance is rejected whole."""
        with pytest.raises(InsufficientCreditsError):
            await gate.attempt_consume(test_user.id, amount=4)

        assert await balance_of(test_user.id) == 3

    async def test_unknown_user(self, gate: EntitlementGate):
        """Test that an unknown user is not silently granted anything."""
        with pytest.raises(UserNotFoundError):
            await gate.attempt_consume("missing_user")

    async def test_concurrent_reservations_one_credit(
        self, session_factory, single_credit_user: User, balance_of
    ):
        """Test that two requests passing the balance read cannot both reserve."""

        async def attempt():
            async with session_factory() as session:
                try:
                    return await EntitlementGate(session).attempt_consume(single_credit_user.id)
                except InsufficientCreditsError:
                    return None

        results = await asyncio.gather(attempt(), attempt())

        assert len([r for r in results if r is not None]) == 1
        assert await balance_of(single_credit_user.id) == 0


class TestSettleAndRelease:
    """Tests for finishing a reservation."""

    async def test_settle_keeps_credit(self, gate: EntitlementGate, test_user: User, balance_of):
        """Test that settling leaves the debit in place."""
        reservation = await gate.attempt_consume(test_user.id)
        gate.settle(reservation)

        assert reservation.state == ReservationState.SETTLED
        assert await balance_of(test_user.id) == 2

    async def test_release_refunds(self, gate: EntitlementGate, test_user: User, balance_of):
        """Test that releasing returns the reserved credit."""
        reservation = await gate.attempt_consume(test_user.id)

        new_balance = await gate.release(reservation, reason="upstream error")

        assert new_balance == 3
        assert reservation.state == ReservationState.RELEASED
        assert await balance_of(test_user.id) == 3

    async def test_release_twice_refunds_once(self, gate: EntitlementGate, test_user: User, balance_of):
        """Test that a reservation is only ever refunded once."""
        reservation = await gate.attempt_consume(test_user.id)

        await gate.release(reservation, reason="first")
        assert await gate.release(reservation, reason="second") is None

        assert await balance_of(test_user.id) == 3

    async def test_release_after_settle_is_noop(self, gate: EntitlementGate, test_user: User, balance_of):
        """Test that a settled reservation cannot be refunded."""
        reservation = await gate.attempt_consume(test_user.id)
        gate.settle(reservation)

        assert await gate.release(reservation, reason="late") is None
        assert reservation.state == ReservationState.SETTLED
        assert await balance_of(test_user.id) == 2
