"""API dependencies for FastAPI route handlers.

This module provides dependency injection functions for:
- Database sessions
- Authentication (JWT-based)
- The process-wide video generation client
"""

from typing import AsyncGenerator, Optional

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from roomvision.core.config import settings
from roomvision.core.database import get_db as get_db_session
from roomvision.models.user import User
from roomvision.services.auth_service import InvalidTokenError, get_auth_service
from roomvision.services.higgsfield_client import HiggsfieldClient


# HTTP Bearer token scheme for JWT authentication
security = HTTPBearer(auto_error=False)


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """Dependency to get database session.

    Yields:
        AsyncSession for database operations
    """
    async for session in get_db_session():
        yield session


def get_video_generator(request: Request) -> HiggsfieldClient:
    """Dependency returning the generation client created at startup.

    Falls back to creating (and storing) one when the application runs
    without its lifespan, e.g. under a bare ASGI test transport.

    Returns:
        Shared HiggsfieldClient instance
    """
    generator: Optional[HiggsfieldClient] = getattr(request.app.state, "video_generator", None)
    if generator is None:
        generator = HiggsfieldClient()
        request.app.state.video_generator = generator
    return generator


async def get_current_user(
    db: AsyncSession = Depends(get_db),
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
) -> User:
    """Dependency to get the current authenticated user from JWT token.

    Args:
        db: Database session
        credentials: HTTP Bearer credentials containing the JWT token

    Returns:
        User: The authenticated user

    Raises:
        HTTPException: 401 if token is missing, invalid, or expired
    """
    if not credentials:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )

    auth_service = get_auth_service(db)

    try:
        return await auth_service.validate_access_token(credentials.credentials)
    except InvalidTokenError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired token",
            headers={"WWW-Authenticate": "Bearer"},
        )


def get_origin(request: Request) -> str:
    """Base URL of the calling frontend, used to build redirect URLs."""
    origin = request.headers.get("origin") or settings.APP_URL
    return origin.rstrip("/")
