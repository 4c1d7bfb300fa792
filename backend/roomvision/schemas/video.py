"""Pydantic schemas for generation and video endpoints."""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from roomvision.models.video import VideoStatus
from roomvision.services.higgsfield_client import GenerationMode, GenerationParams


class GenerateVideoRequest(BaseModel):
    """Request body for POST /generate."""

    model_config = ConfigDict(
        populate_by_name=True,
        json_schema_extra={
            "example": {
                "imageUrl": "https://cdn.example.com/uploads/living-room.jpg",
                "mode": "room-to-furniture",
                "roomType": "living-room",
                "style": "modern",
                "effect": "modern-minimal",
            }
        },
    )

    image_url: str = Field(..., alias="imageUrl", min_length=1, description="Uploaded room image")
    mode: GenerationMode = Field(..., description="Generation mode")
    room_type: str = Field(..., alias="roomType", min_length=1, description="Room type")
    style: str = Field(..., min_length=1, description="Interior style")
    effect: str = Field(..., min_length=1, description="Effect identifier")

    def to_params(self) -> GenerationParams:
        return GenerationParams(
            image_url=self.image_url,
            mode=self.mode,
            room_type=self.room_type,
            style=self.style,
            effect=self.effect,
        )


class VideoSummary(BaseModel):
    """Video fields returned right after generation."""

    model_config = ConfigDict(from_attributes=True, populate_by_name=True)

    id: str = Field(description="Video ID")
    video_url: Optional[str] = Field(default=None, serialization_alias="videoUrl")
    thumbnail_url: Optional[str] = Field(default=None, serialization_alias="thumbnailUrl")
    status: VideoStatus = Field(description="Generation status")


class GenerateVideoResponse(BaseModel):
    """Response for POST /generate."""

    success: bool = True
    video: VideoSummary


class VideoResponse(VideoSummary):
    """Full video record."""

    mode: str
    room_type: str = Field(serialization_alias="roomType")
    style: str
    effect: str
    original_image_url: str = Field(serialization_alias="originalImageUrl")
    credit_refunded: bool = Field(serialization_alias="creditRefunded")
    created_at: datetime = Field(serialization_alias="createdAt")


class VideoListResponse(BaseModel):
    """Paginated list of a user's videos."""

    videos: list[VideoResponse]
    total: int
    limit: int
    offset: int
