"""Services for credit accounting, payments and video generation."""

from roomvision.services.entitlement_service import EntitlementGate, Reservation, get_entitlement_gate
from roomvision.services.generation_service import (
    GenerationService,
    VideoNotFoundError,
    get_generation_service,
)
from roomvision.services.higgsfield_client import HiggsfieldClient, UpstreamError
from roomvision.services.ledger_service import (
    AccountLedger,
    InsufficientCreditsError,
    LedgerError,
    get_account_ledger,
)
from roomvision.services.settlement_service import SettlementHandler, get_settlement_handler
from roomvision.services.stripe_service import StripeService, get_stripe_service

__all__ = [
    "AccountLedger",
    "InsufficientCreditsError",
    "LedgerError",
    "get_account_ledger",
    "EntitlementGate",
    "Reservation",
    "get_entitlement_gate",
    "GenerationService",
    "VideoNotFoundError",
    "get_generation_service",
    "HiggsfieldClient",
    "UpstreamError",
    "SettlementHandler",
    "get_settlement_handler",
    "StripeService",
    "get_stripe_service",
]
