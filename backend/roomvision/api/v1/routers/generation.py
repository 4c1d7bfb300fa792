"""API routes for video generation.

This module provides REST endpoints for:
- POST /api/v1/generate - Spend one credit to generate a room video
- GET /api/v1/effects - List available visual effects
"""

import logging

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from roomvision.api.deps import get_current_user, get_db, get_video_generator
from roomvision.models.user import User
from roomvision.schemas.video import GenerateVideoRequest, GenerateVideoResponse, VideoSummary
from roomvision.services.generation_service import get_generation_service
from roomvision.services.higgsfield_client import Effect, HiggsfieldClient, UpstreamError
from roomvision.services.ledger_service import InsufficientCreditsError, LedgerError

logger = logging.getLogger(__name__)

router = APIRouter(tags=["generation"])


@router.post(
    "/generate",
    response_model=GenerateVideoResponse,
    summary="Generate a video",
    description="Spend one credit to turn a room image into a short video",
)
async def generate_video(
    request: GenerateVideoRequest,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    generator: HiggsfieldClient = Depends(get_video_generator),
) -> GenerateVideoResponse:
    """Generate a video for the authenticated user.

    The user's credit is reserved before the generation service is called
    and given back if generation fails.

    Args:
        request: Image URL and generation options
        current_user: Authenticated user
        db: Database session
        generator: Shared generation client

    Returns:
        GenerateVideoResponse with the new video summary

    Raises:
        HTTPException(402): If the user has no credits
        HTTPException(502): If the generation service failed
        HTTPException(500): If the video could not be stored
    """
    generation_service = get_generation_service(db, generator)

    try:
        video = await generation_service.generate(current_user.id, request.to_params())
    except InsufficientCreditsError:
        raise HTTPException(
            status_code=status.HTTP_402_PAYMENT_REQUIRED,
            detail="Insufficient credits",
        )
    except UpstreamError as e:
        logger.error(f"Video generation failed for user {current_user.id}: {e}")
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail="Failed to generate video",
        )
    except LedgerError as e:
        logger.error(f"Storage error during generation for user {current_user.id}: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to generate video",
        )

    return GenerateVideoResponse(video=VideoSummary.model_validate(video))


@router.get(
    "/effects",
    response_model=list[Effect],
    summary="List effects",
    description="Get the visual effects offered by the generation service",
)
async def list_effects(
    generator: HiggsfieldClient = Depends(get_video_generator),
) -> list[Effect]:
    """List available effects.

    No authentication required - effects are public information.

    Raises:
        HTTPException(502): If the generation service failed
    """
    try:
        return await generator.list_effects()
    except UpstreamError as e:
        logger.error(f"Error fetching effects: {e}")
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail="Failed to fetch effects",
        )
