"""Pydantic schemas for API requests and responses."""

from roomvision.schemas.credits import (
    CreditBalanceResponse,
    TransactionHistoryResponse,
    TransactionResponse,
)
from roomvision.schemas.stripe import (
    CheckoutRequest,
    CreditPackage,
    CreditPackagesResponse,
    SessionUrlResponse,
    WebhookResponse,
)
from roomvision.schemas.video import (
    GenerateVideoRequest,
    GenerateVideoResponse,
    VideoListResponse,
    VideoResponse,
    VideoSummary,
)

__all__ = [
    "CreditBalanceResponse",
    "TransactionHistoryResponse",
    "TransactionResponse",
    "CheckoutRequest",
    "CreditPackage",
    "CreditPackagesResponse",
    "SessionUrlResponse",
    "WebhookResponse",
    "GenerateVideoRequest",
    "GenerateVideoResponse",
    "VideoListResponse",
    "VideoResponse",
    "VideoSummary",
]
