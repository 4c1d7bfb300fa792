"""API routes for credit purchases through Stripe.

This module provides REST endpoints for:
- GET /api/v1/packages - List credit packages
- POST /api/v1/checkout - Create checkout session
- POST /api/v1/portal - Create billing portal session
- POST /api/v1/webhook - Handle Stripe webhooks
"""

import logging

from fastapi import APIRouter, Depends, HTTPException, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from roomvision.api.deps import get_current_user, get_db, get_origin
from roomvision.core.config import settings
from roomvision.models.user import User
from roomvision.schemas.stripe import (
    CheckoutRequest,
    CreditPackagesResponse,
    SessionUrlResponse,
    WebhookResponse,
)
from roomvision.services.settlement_service import (
    MissingMetadataError,
    SettlementError,
    get_settlement_handler,
)
from roomvision.services.stripe_service import (
    InvalidPackageError,
    InvalidSignatureError,
    StripeService,
    StripeServiceError,
    get_stripe_service,
)

logger = logging.getLogger(__name__)

router = APIRouter(tags=["payments"])


@router.get(
    "/packages",
    response_model=CreditPackagesResponse,
    summary="List credit packages",
    description="Get all credit packages available for purchase",
)
async def list_packages() -> CreditPackagesResponse:
    """List all available credit packages.

    No authentication required - packages are public information.
    """
    packages = StripeService.get_packages()
    return CreditPackagesResponse(packages=packages, currency=settings.STRIPE_CURRENCY)


@router.post(
    "/checkout",
    response_model=SessionUrlResponse,
    summary="Create checkout session",
    description="Create a Stripe checkout session for a credit purchase",
)
async def create_checkout_session(
    request: CheckoutRequest,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    origin: str = Depends(get_origin),
) -> SessionUrlResponse:
    """Create a Stripe checkout session for a credit package.

    The user comes back to the dashboard with ``success=true`` or
    ``canceled=true`` in the query string.

    Args:
        request: Checkout request with the package identifier
        current_user: Authenticated user
        db: Database session
        origin: Frontend base URL for redirects

    Returns:
        SessionUrlResponse with the checkout URL

    Raises:
        HTTPException(400): If the package is unknown
        HTTPException(503): If Stripe is unavailable
    """
    stripe_service = get_stripe_service(db)

    try:
        url = await stripe_service.create_checkout_session(
            user=current_user,
            package_id=request.package_id,
            success_url=f"{origin}/dashboard?success=true",
            cancel_url=f"{origin}/dashboard?canceled=true",
        )
    except InvalidPackageError as e:
        logger.warning(f"Invalid package request: {e}")
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Invalid package",
        )
    except StripeServiceError as e:
        logger.error(f"Stripe service error: {e}")
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Failed to create checkout session",
        )

    return SessionUrlResponse(url=url)


@router.post(
    "/portal",
    response_model=SessionUrlResponse,
    summary="Create billing portal session",
    description="Create a Stripe billing portal session for the current user",
)
async def create_portal_session(
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    origin: str = Depends(get_origin),
) -> SessionUrlResponse:
    """Create a billing portal session returning to the dashboard.

    Raises:
        HTTPException(503): If Stripe is unavailable
    """
    stripe_service = get_stripe_service(db)

    try:
        url = await stripe_service.create_portal_session(
            user=current_user,
            return_url=f"{origin}/dashboard",
        )
    except StripeServiceError as e:
        logger.error(f"Stripe service error: {e}")
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Failed to create portal session",
        )

    return SessionUrlResponse(url=url)


@router.post(
    "/webhook",
    response_model=WebhookResponse,
    status_code=status.HTTP_200_OK,
    summary="Stripe webhook handler",
    description="Handle Stripe webhook events (signature verified)",
    include_in_schema=False,
)
async def handle_webhook(
    request: Request,
    db: AsyncSession = Depends(get_db),
) -> WebhookResponse:
    """Handle Stripe webhook events.

    Called by Stripe's servers, so there is no user authentication; the
    signature is the only credential. Status codes drive redelivery:

    - 200: settled, duplicate or ignored (Stripe stops retrying)
    - 400: bad signature or unusable metadata (retrying will not help)
    - 500: storage failure (Stripe retries, nothing was written)

    Args:
        request: FastAPI request with raw body and signature header
        db: Database session

    Returns:
        WebhookResponse acknowledging the event
    """
    payload = await request.body()

    signature = request.headers.get("Stripe-Signature")
    if not signature:
        logger.warning("Webhook request missing Stripe-Signature header")
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Missing signature",
        )

    try:
        event = StripeService.verify_webhook_signature(
            payload=payload,
            signature=signature,
        )
    except InvalidSignatureError as e:
        logger.error(f"Webhook verification failed: {e}")
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Invalid signature",
        )

    handler = get_settlement_handler(db)

    try:
        result = await handler.settle(event)
    except MissingMetadataError:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Missing metadata",
        )
    except SettlementError:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Webhook handler failed",
        )

    logger.info(f"Webhook {result.event_type} ({result.event_id}): {result.outcome.value}")
    return WebhookResponse(received=True, outcome=result.outcome.value)
