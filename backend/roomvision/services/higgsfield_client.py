"""Higgsfield video generation API client.

This module wraps the third-party generation service:
- Listing available visual effects
- Starting a room video generation
- Checking the status of a generation

Without an API key the client answers with fixed placeholder data so the
rest of the system can run in development.
"""

import hashlib
import json
import logging
from typing import Any, Literal, Optional

import httpx
from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError

from roomvision.core.config import settings

logger = logging.getLogger(__name__)

GenerationMode = Literal["room-to-furniture", "furniture-to-room"]
GenerationStatus = Literal["processing", "completed", "failed"]

PLACEHOLDER_VIDEO_URL = "https://sample-videos.com/zip/10/mp4/SampleVideo_1280x720_1mb.mp4"
PLACEHOLDER_THUMBNAIL_URL = (
    "https://images.pexels.com/photos/1571460/pexels-photo-1571460.jpeg"
    "?auto=compress&cs=tinysrgb&w=300"
)


class UpstreamError(Exception):
    """Raised when the generation service cannot be reached or returns an error."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        self.status_code = status_code
        super().__init__(message)


class UpstreamInvalidResponseError(UpstreamError):
    """Raised when the generation service returns a malformed payload."""

    pass


class Effect(BaseModel):
    """A visual effect offered by the generation service."""

    model_config = ConfigDict(populate_by_name=True)

    id: str = Field(..., description="Effect identifier")
    name: str = Field(..., description="Display name")
    description: str = Field(default="", description="Short description")
    preview_url: Optional[str] = Field(
        default=None, alias="previewUrl", description="Preview image or clip"
    )
    category: str = Field(..., description="Effect category")


class GenerationParams(BaseModel):
    """Parameters for one video generation."""

    model_config = ConfigDict(populate_by_name=True)

    image_url: str = Field(..., alias="imageUrl", description="Source room image")
    mode: GenerationMode = Field(..., description="Generation mode")
    room_type: str = Field(..., alias="roomType", description="Room type")
    style: str = Field(..., description="Interior style")
    effect: str = Field(..., description="Effect identifier")


class GenerationResult(BaseModel):
    """Generation state as reported by the service."""

    model_config = ConfigDict(populate_by_name=True)

    id: str = Field(..., description="Upstream generation ID")
    video_url: Optional[str] = Field(default=None, alias="videoUrl")
    thumbnail_url: Optional[str] = Field(default=None, alias="thumbnailUrl")
    status: GenerationStatus = Field(..., description="Generation status")


PLACEHOLDER_EFFECTS: list[Effect] = [
    Effect(id="classic-warm", name="Classic Warm",
           description="Warm, classic styling", category="classic"),
    Effect(id="modern-minimal", name="Modern Minimal",
           description="Clean, minimal modern look", category="modern"),
    Effect(id="futuristic-neon", name="Futuristic Neon",
           description="High-tech futuristic styling", category="futuristic"),
    Effect(id="bohemian-cozy", name="Bohemian Cozy",
           description="Warm, eclectic bohemian style", category="bohemian"),
    Effect(id="industrial-raw", name="Industrial Raw",
           description="Raw industrial aesthetic", category="industrial"),
    Effect(id="scandinavian-light", name="Scandinavian Light",
           description="Light, airy Scandinavian design", category="scandinavian"),
]

_effects_adapter = TypeAdapter(list[Effect])


class HiggsfieldClient:
    """Async client for the Higgsfield generation API.

    One instance is shared by the whole process; it keeps a pooled
    ``httpx.AsyncClient`` open until ``aclose`` is called.
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        """Initialize the client.

        Args:
            api_key: API key (defaults to settings; empty means placeholder mode)
            base_url: API base URL (defaults to settings)
            timeout: Request timeout in seconds (defaults to settings)
            http_client: Optional preconfigured httpx client
        """
        self.api_key = settings.HIGGSFIELD_API_KEY if api_key is None else api_key
        self.base_url = (base_url or settings.HIGGSFIELD_BASE_URL).rstrip("/")
        self.timeout = timeout or settings.HIGGSFIELD_TIMEOUT_SECONDS
        self._client = http_client

        if self.is_placeholder:
            logger.warning("HIGGSFIELD_API_KEY is not set, using placeholder generation data")

    @property
    def is_placeholder(self) -> bool:
        """True when no API key is configured."""
        return not self.api_key

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(base_url=self.base_url, timeout=self.timeout)
        return self._client

    async def aclose(self) -> None:
        """Close the underlying HTTP connection pool."""
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def _request(self, method: str, path: str, payload: Optional[dict] = None) -> Any:
        """Send a request and return the decoded JSON body.

        Raises:
            UpstreamError: On network failure or non-2xx status
            UpstreamInvalidResponseError: If the body is not JSON
        """
        client = self._get_client()
        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }

        try:
            response = await client.request(
                method, f"{self.base_url}{path}", json=payload, headers=headers
            )
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            logger.error(f"Higgsfield {method} {path} failed: HTTP {e.response.status_code}")
            raise UpstreamError(
                f"HTTP error! status: {e.response.status_code}",
                status_code=e.response.status_code,
            )
        except httpx.HTTPError as e:
            logger.error(f"Network error calling Higgsfield {method} {path}: {e}")
            raise UpstreamError(f"Network error: {e}")

        try:
            return response.json()
        except ValueError:
            logger.error(f"Higgsfield {method} {path} returned a non-JSON body")
            raise UpstreamInvalidResponseError("Response body is not valid JSON")

    @staticmethod
    def _parse_result(data: Any) -> GenerationResult:
        try:
            return GenerationResult.model_validate(data)
        except ValidationError as e:
            logger.error(f"Malformed generation payload from Higgsfield: {e}")
            raise UpstreamInvalidResponseError(f"Malformed generation payload: {e}")

    async def list_effects(self) -> list[Effect]:
        """List the effects the generation service offers.

        Returns:
            List of Effect objects

        Raises:
            UpstreamError: If the request fails
            UpstreamInvalidResponseError: If the payload is malformed
        """
        if self.is_placeholder:
            return list(PLACEHOLDER_EFFECTS)

        data = await self._request("GET", "/effects")
        try:
            return _effects_adapter.validate_python(data)
        except ValidationError as e:
            logger.error(f"Malformed effects payload from Higgsfield: {e}")
            raise UpstreamInvalidResponseError(f"Malformed effects payload: {e}")

    async def generate_video(self, params: GenerationParams) -> GenerationResult:
        """Start a video generation and wait for the service's answer.

        Args:
            params: Generation parameters

        Returns:
            GenerationResult as reported by the service

        Raises:
            UpstreamError: If the request fails
            UpstreamInvalidResponseError: If the payload is malformed
        """
        body = params.model_dump(by_alias=True)

        if self.is_placeholder:
            digest = hashlib.sha1(
                json.dumps(body, sort_keys=True).encode()
            ).hexdigest()[:16]
            return GenerationResult(
                id=f"mock_{digest}",
                video_url=PLACEHOLDER_VIDEO_URL,
                thumbnail_url=PLACEHOLDER_THUMBNAIL_URL,
                status="completed",
            )

        logger.info(
            f"Requesting generation: mode={params.mode}, room={params.room_type}, "
            f"style={params.style}, effect={params.effect}"
        )
        data = await self._request("POST", "/generate", payload=body)
        return self._parse_result(data)

    async def get_generation_status(self, generation_id: str) -> GenerationResult:
        """Fetch the current state of a generation.

        Args:
            generation_id: Upstream generation ID

        Returns:
            GenerationResult with the latest status

        Raises:
            UpstreamError: If the request fails
            UpstreamInvalidResponseError: If the payload is malformed
        """
        if self.is_placeholder:
            return GenerationResult(
                id=generation_id,
                video_url=PLACEHOLDER_VIDEO_URL,
                thumbnail_url=PLACEHOLDER_THUMBNAIL_URL,
                status="completed",
            )

        data = await self._request("GET", f"/generate/{generation_id}")
        return self._parse_result(data)
