"""API v1 router aggregation."""

from fastapi import APIRouter

from roomvision.api.v1.routers import credits, generation, payments, videos

api_router = APIRouter()

api_router.include_router(generation.router)  # Generate + effects
api_router.include_router(videos.router)
api_router.include_router(credits.router)  # Balance and purchase history
api_router.include_router(payments.router)  # Packages, checkout, portal, webhook
