"""API routes for credit balances.

This module provides REST endpoints for:
- GET /api/v1/credits - Get current balance
- GET /api/v1/credits/transactions - Get purchase history
"""

import logging

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from roomvision.api.deps import get_current_user, get_db
from roomvision.models.user import User
from roomvision.schemas.credits import (
    CreditBalanceResponse,
    TransactionHistoryResponse,
    TransactionResponse,
)
from roomvision.services.ledger_service import LedgerError, get_account_ledger

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/credits", tags=["credits"])


@router.get(
    "",
    response_model=CreditBalanceResponse,
    summary="Get credit balance",
    description="Get the current credit balance for the authenticated user",
)
async def get_balance(
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> CreditBalanceResponse:
    """Get the current user's credit balance.

    Reads the stored balance rather than the cached user row, so the value
    reflects debits and grants committed by other requests.
    """
    ledger = get_account_ledger(db)

    try:
        credits = await ledger.get_balance(current_user.id)
    except LedgerError as e:
        logger.error(f"Failed to read balance for user {current_user.id}: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to read balance",
        )

    return CreditBalanceResponse(credits=credits)


@router.get(
    "/transactions",
    response_model=TransactionHistoryResponse,
    summary="Get purchase history",
    description="Get paginated credit purchase history for the authenticated user",
)
async def get_history(
    limit: int = Query(
        default=20,
        ge=1,
        le=100,
        description="Maximum number of transactions to return",
    ),
    offset: int = Query(
        default=0,
        ge=0,
        description="Offset for pagination",
    ),
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> TransactionHistoryResponse:
    """Get purchase history for the current user."""
    ledger = get_account_ledger(db)

    try:
        transactions, total = await ledger.get_transaction_history(
            user_id=current_user.id,
            limit=limit,
            offset=offset,
        )
    except LedgerError as e:
        logger.error(f"Failed to read transaction history for user {current_user.id}: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to read transaction history",
        )

    return TransactionHistoryResponse(
        transactions=[TransactionResponse.model_validate(tx) for tx in transactions],
        total=total,
        limit=limit,
        offset=offset,
    )
