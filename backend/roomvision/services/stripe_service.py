"""Stripe payment integration service.

This service provides:
- Credit package definitions
- Checkout session creation for credit purchases
- Billing portal sessions
- Webhook signature verification

Turning a verified webhook into credits is the job of the settlement
handler (``settlement_service``).
"""

import logging
from typing import Optional

import stripe
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from roomvision.core.config import settings
from roomvision.models.user import User
from roomvision.schemas.stripe import CreditPackage

logger = logging.getLogger(__name__)

# Initialize Stripe with API key from settings
stripe.api_key = settings.STRIPE_SECRET_KEY

# Credit package definitions (static pricing, minor units)
CREDIT_PACKAGES: list[CreditPackage] = [
    CreditPackage(
        id="small",
        name="10 Credits",
        credits=10,
        price_cents=900,  # $9.00
        currency=settings.STRIPE_CURRENCY,
    ),
    CreditPackage(
        id="medium",
        name="30 Credits",
        credits=30,
        price_cents=1900,  # $19.00
        currency=settings.STRIPE_CURRENCY,
        popular=True,
    ),
    CreditPackage(
        id="large",
        name="100 Credits",
        credits=100,
        price_cents=2900,  # $29.00
        currency=settings.STRIPE_CURRENCY,
    ),
]

# Create a lookup dictionary for fast access
PACKAGE_LOOKUP: dict[str, CreditPackage] = {pkg.id: pkg for pkg in CREDIT_PACKAGES}


class StripeServiceError(Exception):
    """Base exception for Stripe service errors."""

    pass


class InvalidPackageError(StripeServiceError):
    """Raised when an invalid package ID is provided."""

    pass


class InvalidSignatureError(StripeServiceError):
    """Raised when webhook signature verification fails."""

    pass


class PaymentProviderError(StripeServiceError):
    """Raised when a Stripe API call fails."""

    pass


class StripeService:
    """Service for outbound Stripe calls and webhook verification."""

    def __init__(self, db: AsyncSession):
        """Initialize Stripe service.

        Args:
            db: Database session (used to cache Stripe customer IDs)
        """
        self.db = db

    @staticmethod
    def get_packages() -> list[CreditPackage]:
        """Get all available credit packages.

        Returns:
            List of CreditPackage objects
        """
        return CREDIT_PACKAGES.copy()

    @staticmethod
    def get_package(package_id: str) -> CreditPackage:
        """Get a specific credit package by ID.

        Args:
            package_id: Package identifier

        Returns:
            CreditPackage object

        Raises:
            InvalidPackageError: If package ID is not found
        """
        package = PACKAGE_LOOKUP.get(package_id)
        if not package:
            raise InvalidPackageError(
                f"Invalid package ID: {package_id}. "
                f"Valid packages: {', '.join(PACKAGE_LOOKUP.keys())}"
            )
        return package

    async def create_checkout_session(
        self,
        user: User,
        package_id: str,
        success_url: str,
        cancel_url: str,
    ) -> str:
        """Create a Stripe checkout session for a credit purchase.

        The session metadata carries everything the webhook needs to grant
        the credits: ``userId``, ``credits`` and ``package``.

        Args:
            user: User making the purchase
            package_id: Credit package ID to purchase
            success_url: URL to redirect after successful payment
            cancel_url: URL to redirect if user cancels

        Returns:
            Checkout URL

        Raises:
            InvalidPackageError: If package ID is invalid
            PaymentProviderError: If checkout session creation fails
        """
        package = self.get_package(package_id)

        logger.info(
            f"Creating checkout session for user {user.id}, "
            f"package {package_id} ({package.credits} credits, {package.price_display})"
        )

        try:
            session = stripe.checkout.Session.create(
                customer_email=user.email or None,
                line_items=[
                    {
                        "price_data": {
                            "currency": package.currency,
                            "product_data": {
                                "name": f"{package.credits} Credits",
                                "description": (
                                    f"{package.credits} video generation credits for RoomVision"
                                ),
                            },
                            "unit_amount": package.price_cents,
                        },
                        "quantity": 1,
                    }
                ],
                mode="payment",
                success_url=success_url,
                cancel_url=cancel_url,
                metadata={
                    "userId": str(user.id),
                    "credits": str(package.credits),
                    "package": package_id,
                },
                client_reference_id=str(user.id),
            )
        except stripe.StripeError as e:
            logger.error(f"Stripe API error creating checkout session: {e}")
            raise PaymentProviderError(f"Failed to create checkout session: {str(e)}")

        logger.info(f"Checkout session created: {session.id} for user {user.id}")
        return session.url

    async def create_portal_session(self, user: User, return_url: str) -> str:
        """Create a Stripe billing portal session for a user.

        The Stripe customer is looked up by email (or created) the first
        time and cached on the user row afterwards.

        Args:
            user: Authenticated user
            return_url: URL Stripe sends the user back to

        Returns:
            Billing portal URL

        Raises:
            PaymentProviderError: If a Stripe call fails
        """
        try:
            customer_id = await self._get_or_create_customer(user)
            portal = stripe.billing_portal.Session.create(
                customer=customer_id,
                return_url=return_url,
            )
        except stripe.StripeError as e:
            logger.error(f"Stripe API error creating portal session for user {user.id}: {e}")
            raise PaymentProviderError(f"Failed to create portal session: {str(e)}")

        logger.info(f"Billing portal session created for user {user.id}")
        return portal.url

    async def _get_or_create_customer(self, user: User) -> str:
        if user.stripe_customer_id:
            return user.stripe_customer_id

        customers = stripe.Customer.list(email=user.email, limit=1)
        if customers.data:
            customer_id = customers.data[0].id
        else:
            customer = stripe.Customer.create(
                email=user.email,
                name=user.name or None,
                metadata={"userId": str(user.id)},
            )
            customer_id = customer.id
            logger.info(f"Created Stripe customer {customer_id} for user {user.id}")

        user.stripe_customer_id = customer_id
        try:
            await self.db.commit()
        except SQLAlchemyError as e:
            # The portal still works; the lookup simply happens again next time
            await self.db.rollback()
            logger.warning(f"Could not cache Stripe customer for user {user.id}: {e}")

        return customer_id

    @staticmethod
    def verify_webhook_signature(
        payload: bytes,
        signature: str,
        webhook_secret: Optional[str] = None,
    ) -> stripe.Event:
        """Verify Stripe webhook signature and parse event.

        Args:
            payload: Raw webhook request body
            signature: Stripe-Signature header value
            webhook_secret: Optional webhook secret (defaults to settings)

        Returns:
            Verified Stripe Event object

        Raises:
            InvalidSignatureError: If signature verification fails
        """
        secret = webhook_secret or settings.STRIPE_WEBHOOK_SECRET

        if not secret:
            raise InvalidSignatureError("STRIPE_WEBHOOK_SECRET not configured")

        try:
            event = stripe.Webhook.construct_event(payload, signature, secret)
        except ValueError as e:
            # Invalid payload
            logger.error(f"Invalid webhook payload: {e}")
            raise InvalidSignatureError("Invalid webhook payload")
        except stripe.SignatureVerificationError as e:
            # Invalid signature
            logger.error(f"Invalid webhook signature: {e}")
            raise InvalidSignatureError("Invalid webhook signature")

        logger.info(f"Webhook verified: {event['type']} ({event['id']})")
        return event


def get_stripe_service(db: AsyncSession) -> StripeService:
    """Factory function to create StripeService instance.

    Args:
        db: Database session

    Returns:
        Configured StripeService instance
    """
    return StripeService(db)
