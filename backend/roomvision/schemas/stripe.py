"""Pydantic schemas for Stripe payment integration.

This module defines request and response models for:
- Credit package definitions
- Checkout and billing portal sessions
- Webhook acknowledgements
"""

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class CreditPackage(BaseModel):
    """Credit package available for purchase."""

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "id": "medium",
                "name": "30 Credits",
                "credits": 30,
                "price_cents": 1900,
                "currency": "usd",
                "popular": True,
            }
        }
    )

    id: str = Field(description="Package identifier")
    name: str = Field(description="Human-readable package name")
    credits: int = Field(ge=1, description="Number of credits included")
    price_cents: int = Field(ge=0, description="Price in minor currency units")
    currency: str = Field(default="usd", description="ISO currency code")
    popular: bool = Field(default=False, description="Mark as popular/recommended")

    @property
    def price_display(self) -> str:
        """Format price for display (e.g., $9.00)."""
        dollars = self.price_cents / 100
        return f"${dollars:.2f}"

    @property
    def price_per_credit(self) -> float:
        """Calculate price per credit in cents."""
        return self.price_cents / self.credits


class CreditPackagesResponse(BaseModel):
    """Response containing all available credit packages."""

    packages: list[CreditPackage] = Field(description="Available credit packages")
    currency: str = Field(default="usd", description="Currency for all packages")


class CheckoutRequest(BaseModel):
    """Request to create a Stripe checkout session."""

    model_config = ConfigDict(
        populate_by_name=True,
        json_schema_extra={"example": {"package": "medium"}},
    )

    package_id: str = Field(alias="package", description="Credit package to purchase")


class SessionUrlResponse(BaseModel):
    """Redirect target for a Stripe-hosted page (checkout or billing portal)."""

    url: str = Field(description="URL to redirect the user to")


class WebhookResponse(BaseModel):
    """Acknowledgement returned to Stripe."""

    received: bool = Field(default=True, description="Event accepted")
    outcome: Optional[str] = Field(default=None, description="settled, duplicate or ignored")
