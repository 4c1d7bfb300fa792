"""Pydantic schemas for credit balance and purchase history."""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from roomvision.models.transaction import TransactionStatus


class CreditBalanceResponse(BaseModel):
    """Response model for balance queries."""

    credits: int = Field(description="Credits available for generation")


class TransactionResponse(BaseModel):
    """Response model for a single purchase."""

    model_config = ConfigDict(from_attributes=True)

    id: int = Field(description="Transaction ID")
    amount: int = Field(description="Amount paid in minor currency units")
    credits: int = Field(description="Credits granted")
    status: TransactionStatus = Field(description="Transaction status")
    package: Optional[str] = Field(default=None, description="Purchased package")
    created_at: datetime = Field(description="Transaction timestamp")


class TransactionHistoryResponse(BaseModel):
    """Response model for purchase history queries."""

    transactions: list[TransactionResponse] = Field(description="List of transactions")
    total: int = Field(description="Total number of transactions")
    limit: int = Field(description="Page size limit")
    offset: int = Field(description="Current offset")
