"""FastAPI application entry point.

This module configures the FastAPI application with:
- CORS middleware for frontend communication
- API v1 router with all endpoints
- Database and generation client lifecycle management
- Health check endpoint
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from roomvision.api.v1.api import api_router
from roomvision.core.config import settings
from roomvision.core.database import close_db, init_db
from roomvision.core.logging import configure_logging
from roomvision.services.higgsfield_client import HiggsfieldClient

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager for startup/shutdown events.

    Handles:
    - Logging setup
    - Table creation outside production
    - One shared generation client per process
    """
    configure_logging()
    logger.info(f"Starting {settings.PROJECT_NAME} API ({settings.ENVIRONMENT})...")

    if settings.ENVIRONMENT != "production":
        await init_db()
        logger.info("Database tables ensured")

    # One pooled client per process, injected through get_video_generator
    generator = HiggsfieldClient()
    app.state.video_generator = generator

    yield

    logger.info(f"Shutting down {settings.PROJECT_NAME} API...")

    await generator.aclose()
    await close_db()


app = FastAPI(
    title=f"{settings.PROJECT_NAME} API",
    description="Credit-metered room video generation",
    version=settings.VERSION,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(api_router, prefix=settings.API_V1_PREFIX)


@app.get("/api/health")
async def health_check():
    """Health check endpoint."""
    return {"status": "ok", "service": "roomvision-backend"}
