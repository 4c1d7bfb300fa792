"""Generation orchestrator: entitlement, upstream generation, video records.

A generation runs as reserve-then-refund:
1. The entitlement gate debits the credit up front (fails fast when empty)
2. The generation service is called
3. Upstream errors release the reservation, so no credit is spent
4. A Video row is stored with whatever upstream reported
5. An upstream ``failed`` status refunds the credit exactly once
"""

import logging
from typing import Optional

from sqlalchemy import func, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.attributes import set_committed_value

from roomvision.core.config import settings
from roomvision.models.video import Video, VideoStatus
from roomvision.services.entitlement_service import EntitlementGate, Reservation
from roomvision.services.higgsfield_client import (
    GenerationParams,
    HiggsfieldClient,
    UpstreamError,
)
from roomvision.services.ledger_service import LedgerError, StorageError

logger = logging.getLogger(__name__)


class VideoNotFoundError(Exception):
    """Raised when a video does not exist or belongs to another user."""

    pass


class GenerationService:
    """Coordinates credit reservation, upstream generation and Video records."""

    def __init__(
        self,
        db: AsyncSession,
        generator: HiggsfieldClient,
        gate: Optional[EntitlementGate] = None,
    ):
        """Initialize the generation service.

        Args:
            db: Database session
            generator: Process-wide generation API client
            gate: Optional entitlement gate sharing the same session
        """
        self.db = db
        self.generator = generator
        self.gate = gate or EntitlementGate(db)
        self.ledger = self.gate.ledger

    async def generate(self, user_id: str, params: GenerationParams) -> Video:
        """Generate a video for a user, spending one credit on success.

        Args:
            user_id: The requesting user's ID
            params: Generation parameters

        Returns:
            The persisted Video

        Raises:
            InsufficientCreditsError: If the user cannot pay (no upstream call made)
            UpstreamError: If generation failed (reserved credit returned)
            UpstreamInvalidResponseError: If upstream answered garbage (credit returned)
            StorageError: If the database fails
        """
        reservation = await self.gate.attempt_consume(user_id)

        try:
            result = await self.generator.generate_video(params)
        except UpstreamError as e:
            logger.warning(f"Generation failed upstream for user {user_id}: {e}")
            await self._release(reservation, reason=f"upstream error: {e}")
            raise

        status = VideoStatus(result.status)
        if status == VideoStatus.FAILED:
            await self._release(reservation, reason=f"upstream reported failure for {result.id}")

        video = Video(
            user_id=user_id,
            external_id=result.id,
            mode=params.mode,
            room_type=params.room_type,
            style=params.style,
            effect=params.effect,
            original_image_url=params.image_url,
            video_url=result.video_url,
            thumbnail_url=result.thumbnail_url,
            status=status,
            credit_refunded=not reservation.is_held,
        )
        self.db.add(video)

        try:
            await self.db.commit()
        except SQLAlchemyError as e:
            await self.db.rollback()
            # Upstream has already done (and billed) the work, the credit stays spent
            self.gate.settle(reservation)
            logger.error(
                f"Accounting anomaly: generation {result.id} for user {user_id} "
                f"was charged but its video could not be stored: {e}"
            )
            raise StorageError(f"Failed to store video for generation {result.id}: {e}")

        self.gate.settle(reservation)
        logger.info(
            f"Video {video.id} created for user {user_id} "
            f"(upstream {result.id}, status {status.value})",
            extra={"user_id": user_id, "video_id": video.id},
        )
        return video

    async def refresh_status(self, user_id: str, video_id: str) -> Video:
        """Pull the latest status of a processing video from upstream.

        Completed videos are returned untouched. A transition to failed
        refunds the generation credit once, even if several refreshes race.
        A failed video whose refund did not go through earlier gets it
        retried here, without asking upstream again.

        Args:
            user_id: Owner of the video
            video_id: Video ID

        Returns:
            The (possibly updated) Video

        Raises:
            VideoNotFoundError: If the video does not belong to the user
            UpstreamError: If the status lookup fails
            StorageError: If the database fails
        """
        video = await self.get_video(user_id, video_id)

        if video.is_terminal:
            if video.status == VideoStatus.FAILED and not video.credit_refunded:
                await self._store_refresh(video)
            return video
        if not video.external_id:
            return video

        result = await self.generator.get_generation_status(video.external_id)

        video.status = VideoStatus(result.status)
        if result.video_url:
            video.video_url = result.video_url
        if result.thumbnail_url:
            video.thumbnail_url = result.thumbnail_url

        await self._store_refresh(video)
        return video

    async def _store_refresh(self, video: Video) -> None:
        """Commit a refreshed video, refunding its credit if it failed."""
        video_id, user_id = video.id, video.user_id

        refunded = False
        try:
            if video.status == VideoStatus.FAILED:
                refunded = await self._claim_refund(video)
                if refunded:
                    await self.ledger.credit(user_id, settings.CREDITS_PER_GENERATION)
            await self.db.commit()
        except (SQLAlchemyError, LedgerError) as e:
            await self.db.rollback()
            raise StorageError(f"Failed to update video {video_id}: {e}")

        if refunded:
            set_committed_value(video, "credit_refunded", True)
            logger.info(
                f"Video {video_id} failed upstream, refunded "
                f"{settings.CREDITS_PER_GENERATION} credits to user {user_id}",
                extra={"user_id": user_id, "video_id": video_id},
            )

    async def get_video(self, user_id: str, video_id: str) -> Video:
        """Get a single video owned by the user.

        Raises:
            VideoNotFoundError: If not found
        """
        result = await self.db.execute(
            select(Video).where(Video.id == video_id, Video.user_id == user_id)
        )
        video = result.scalar_one_or_none()
        if video is None:
            raise VideoNotFoundError(f"Video {video_id} not found")
        return video

    async def list_videos(
        self,
        user_id: str,
        limit: int = 20,
        offset: int = 0,
    ) -> tuple[list[Video], int]:
        """List a user's videos, newest first.

        Returns:
            Tuple of (list of videos, total count)
        """
        base_query = select(Video).where(Video.user_id == user_id)
        total = await self.db.scalar(
            select(func.count()).select_from(base_query.subquery())
        ) or 0

        result = await self.db.execute(
            base_query.order_by(Video.created_at.desc()).offset(offset).limit(limit)
        )
        return list(result.scalars().all()), total

    async def _claim_refund(self, video: Video) -> bool:
        """Flip credit_refunded false -> true; only one caller can win."""
        result = await self.db.execute(
            update(Video)
            .where(Video.id == video.id, Video.credit_refunded.is_(False))
            .values(credit_refunded=True)
            .returning(Video.id)
            .execution_options(synchronize_session=False)
        )
        return result.scalar_one_or_none() is not None

    async def _release(self, reservation: Reservation, reason: str) -> None:
        try:
            await self.gate.release(reservation, reason=reason)
        except LedgerError as e:
            logger.error(
                f"Accounting anomaly: could not return {reservation.amount} credits "
                f"to user {reservation.user_id} ({reason}): {e}"
            )


def get_generation_service(db: AsyncSession, generator: HiggsfieldClient) -> GenerationService:
    """Factory function to create GenerationService.

    Args:
        db: Database session
        generator: Generation API client

    Returns:
        Configured GenerationService instance
    """
    return GenerationService(db, generator)
