"""Account ledger for user credit balances and purchase transactions.

This service owns every change to ``User.credits``:
- Atomic debits that can never drive a balance negative
- Atomic credits
- Append-only purchase transactions, deduplicated by payment reference
- Transaction history

Ledger methods never commit. The calling service decides the unit of work,
so a transaction insert and the matching credit grant can be committed
together.
"""

import logging
from typing import Optional

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from roomvision.models.transaction import Transaction, TransactionStatus
from roomvision.models.user import User

logger = logging.getLogger(__name__)


class LedgerError(Exception):
    """Base exception for ledger errors."""

    pass


class InsufficientCreditsError(LedgerError):
    """Raised when a user doesn't have enough credits for an operation."""

    def __init__(self, required: int, available: int):
        self.required = required
        self.available = available
        super().__init__(
            f"Insufficient credits: required {required}, available {available}"
        )


class InvalidAmountError(LedgerError):
    """Raised when a credit amount is not a positive integer."""

    pass


class UserNotFoundError(LedgerError):
    """Raised when the ledger is asked about an unknown user."""

    pass


class DuplicateTransactionError(LedgerError):
    """Raised when a payment reference has already been recorded.

    Not a failure: callers treat it as "already done". Carries plain values
    so they stay readable after the session is rolled back.
    """

    def __init__(self, transaction_id: int, external_ref: str):
        self.transaction_id = transaction_id
        self.external_ref = external_ref
        super().__init__(
            f"Transaction for payment {external_ref} already recorded (id={transaction_id})"
        )


class StorageError(LedgerError):
    """Raised when the database fails underneath a ledger operation."""

    pass


def _validate_amount(amount: int) -> None:
    if isinstance(amount, bool) or not isinstance(amount, int) or amount <= 0:
        raise InvalidAmountError(f"Amount must be a positive integer, got {amount!r}")


class AccountLedger:
    """Credit balance and transaction log for users."""

    def __init__(self, db: AsyncSession):
        """Initialize the ledger.

        Args:
            db: Database session shared with the calling service
        """
        self.db = db

    async def get_balance(self, user_id: str) -> int:
        """Get the current credit balance for a user.

        Args:
            user_id: The user's ID

        Returns:
            Current credit balance

        Raises:
            UserNotFoundError: If the user does not exist
            StorageError: If the query fails
        """
        try:
            balance = await self.db.scalar(
                select(User.credits).where(User.id == user_id)
            )
        except SQLAlchemyError as e:
            raise StorageError(f"Failed to read balance for user {user_id}: {e}")

        if balance is None:
            raise UserNotFoundError(f"User {user_id} not found")
        return balance

    async def debit(self, user_id: str, amount: int = 1) -> int:
        """Atomically take credits from a user's balance.

        The decrement is a single conditional UPDATE, so concurrent debits
        against the same balance serialize in the database and at most
        ``balance // amount`` of them succeed.

        Args:
            user_id: The user's ID
            amount: Number of credits to take (positive)

        Returns:
            New balance after the debit

        Raises:
            InvalidAmountError: If amount is not a positive integer
            InsufficientCreditsError: If the balance is lower than amount
            UserNotFoundError: If the user does not exist
            StorageError: If the update fails
        """
        _validate_amount(amount)

        stmt = (
            update(User)
            .where(User.id == user_id, User.credits >= amount)
            .values(credits=User.credits - amount)
            .returning(User.credits)
            .execution_options(synchronize_session=False)
        )
        try:
            result = await self.db.execute(stmt)
            new_balance = result.scalar_one_or_none()
        except SQLAlchemyError as e:
            raise StorageError(f"Failed to debit user {user_id}: {e}")

        if new_balance is None:
            available = await self.get_balance(user_id)
            logger.info(
                f"Debit of {amount} rejected for user {user_id}: balance {available}",
                extra={"user_id": user_id, "credits": -amount, "balance": available},
            )
            raise InsufficientCreditsError(required=amount, available=available)

        logger.info(
            f"Debited {amount} credits from user {user_id}. New balance: {new_balance}",
            extra={"user_id": user_id, "credits": -amount, "balance": new_balance},
        )
        return new_balance

    async def credit(self, user_id: str, amount: int) -> int:
        """Atomically add credits to a user's balance.

        Args:
            user_id: The user's ID
            amount: Number of credits to add (positive)

        Returns:
            New balance after the credit

        Raises:
            InvalidAmountError: If amount is not a positive integer
            UserNotFoundError: If the user does not exist
            StorageError: If the update fails
        """
        _validate_amount(amount)

        stmt = (
            update(User)
            .where(User.id == user_id)
            .values(credits=User.credits + amount)
            .returning(User.credits)
            .execution_options(synchronize_session=False)
        )
        try:
            result = await self.db.execute(stmt)
            new_balance = result.scalar_one_or_none()
        except SQLAlchemyError as e:
            raise StorageError(f"Failed to credit user {user_id}: {e}")

        if new_balance is None:
            raise UserNotFoundError(f"User {user_id} not found")

        logger.info(
            f"Credited {amount} credits to user {user_id}. New balance: {new_balance}",
            extra={"user_id": user_id, "credits": amount, "balance": new_balance},
        )
        return new_balance

    async def record_transaction(
        self,
        user_id: str,
        external_ref: str,
        amount_minor_units: int,
        credits: int,
        package: Optional[str] = None,
    ) -> Transaction:
        """Record a completed purchase, at most once per payment reference.

        Must be the first write of its unit of work: a unique-constraint
        race rolls the session back before reporting the duplicate.

        Args:
            user_id: The purchasing user's ID
            external_ref: Payment reference used as the idempotency key
            amount_minor_units: Amount paid in minor currency units
            credits: Credits the purchase grants (positive)
            package: Optional package identifier

        Returns:
            The newly created Transaction (flushed, not committed)

        Raises:
            InvalidAmountError: If credits is not a positive integer
            DuplicateTransactionError: If external_ref was already recorded
            StorageError: If the insert fails for any other reason
        """
        _validate_amount(credits)

        existing_id = await self._get_transaction_id_by_ref(external_ref)
        if existing_id is not None:
            raise DuplicateTransactionError(existing_id, external_ref)

        transaction = Transaction(
            user_id=user_id,
            stripe_payment_id=external_ref,
            amount=amount_minor_units,
            credits=credits,
            status=TransactionStatus.COMPLETED,
            package=package,
        )
        self.db.add(transaction)

        try:
            await self.db.flush()
        except IntegrityError as e:
            # A concurrent delivery won the unique constraint
            await self.db.rollback()
            existing_id = await self._get_transaction_id_by_ref(external_ref)
            if existing_id is not None:
                raise DuplicateTransactionError(existing_id, external_ref)
            raise StorageError(f"Failed to record transaction {external_ref}: {e}")
        except SQLAlchemyError as e:
            raise StorageError(f"Failed to record transaction {external_ref}: {e}")

        logger.info(
            f"Recorded transaction {transaction.id} for user {user_id}: "
            f"{credits} credits, {amount_minor_units} paid (ref {external_ref})",
            extra={"user_id": user_id, "payment_ref": external_ref, "credits": credits},
        )
        return transaction

    async def get_transaction_history(
        self,
        user_id: str,
        limit: int = 50,
        offset: int = 0,
    ) -> tuple[list[Transaction], int]:
        """Get purchase history for a user.

        Args:
            user_id: The user's ID
            limit: Maximum number of transactions to return
            offset: Offset for pagination

        Returns:
            Tuple of (list of transactions, total count)

        Raises:
            StorageError: If the query fails
        """
        base_query = select(Transaction).where(Transaction.user_id == user_id)

        count_query = select(func.count()).select_from(base_query.subquery())
        query = (
            base_query
            .order_by(Transaction.created_at.desc(), Transaction.id.desc())
            .offset(offset)
            .limit(limit)
        )

        try:
            total = await self.db.scalar(count_query) or 0
            result = await self.db.execute(query)
        except SQLAlchemyError as e:
            raise StorageError(f"Failed to read transaction history for user {user_id}: {e}")

        return list(result.scalars().all()), total

    async def _get_transaction_id_by_ref(self, external_ref: str) -> Optional[int]:
        try:
            return await self.db.scalar(
                select(Transaction.id).where(Transaction.stripe_payment_id == external_ref)
            )
        except SQLAlchemyError as e:
            raise StorageError(f"Failed to look up transaction {external_ref}: {e}")


def get_account_ledger(db: AsyncSession) -> AccountLedger:
    """Factory function to create AccountLedger.

    Args:
        db: Database session

    Returns:
        Configured AccountLedger instance
    """
    return AccountLedger(db)
