"""API routes for a user's generated videos.

This module provides REST endpoints for:
- GET /api/v1/videos - List videos, newest first
- GET /api/v1/videos/{video_id} - Get one video
- POST /api/v1/videos/{video_id}/refresh - Pull the latest status from upstream
"""

import logging

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from roomvision.api.deps import get_current_user, get_db, get_video_generator
from roomvision.models.user import User
from roomvision.schemas.video import VideoListResponse, VideoResponse
from roomvision.services.generation_service import VideoNotFoundError, get_generation_service
from roomvision.services.higgsfield_client import HiggsfieldClient, UpstreamError
from roomvision.services.ledger_service import LedgerError

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/videos", tags=["videos"])


@router.get("", response_model=VideoListResponse)
async def list_videos(
    limit: int = Query(default=20, ge=1, le=100),
    offset: int = Query(default=0, ge=0),
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    generator: HiggsfieldClient = Depends(get_video_generator),
) -> VideoListResponse:
    """List the current user's videos."""
    generation_service = get_generation_service(db, generator)
    videos, total = await generation_service.list_videos(current_user.id, limit, offset)

    return VideoListResponse(
        videos=[VideoResponse.model_validate(video) for video in videos],
        total=total,
        limit=limit,
        offset=offset,
    )


@router.get("/{video_id}", response_model=VideoResponse)
async def get_video(
    video_id: str,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    generator: HiggsfieldClient = Depends(get_video_generator),
) -> VideoResponse:
    """Get a single video owned by the current user."""
    generation_service = get_generation_service(db, generator)

    try:
        video = await generation_service.get_video(current_user.id, video_id)
    except VideoNotFoundError:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Video not found",
        )

    return VideoResponse.model_validate(video)


@router.post("/{video_id}/refresh", response_model=VideoResponse)
async def refresh_video(
    video_id: str,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    generator: HiggsfieldClient = Depends(get_video_generator),
) -> VideoResponse:
    """Refresh a processing video's status from the generation service.

    A video that failed upstream gets its credit refunded once.
    """
    generation_service = get_generation_service(db, generator)

    try:
        video = await generation_service.refresh_status(current_user.id, video_id)
    except VideoNotFoundError:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Video not found",
        )
    except UpstreamError as e:
        logger.error(f"Status refresh failed for video {video_id}: {e}")
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail="Failed to refresh video status",
        )
    except LedgerError as e:
        logger.error(f"Storage error refreshing video {video_id}: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to refresh video status",
        )

    return VideoResponse.model_validate(video)
