"""Authentication service for bearer token validation.

Users sign in through the identity provider, which issues HS256 JWTs with
the user ID in ``sub``. This module:
- Creates access tokens (identity provider bridge, development and tests)
- Decodes and validates tokens
- Resolves the token's user
"""

import logging
from datetime import UTC, datetime, timedelta
from typing import Optional

from jose import JWTError, jwt
from pydantic import BaseModel
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from roomvision.core.config import settings
from roomvision.models.user import User

logger = logging.getLogger(__name__)


class AuthServiceError(Exception):
    """Base exception for authentication service errors."""

    pass


class InvalidTokenError(AuthServiceError):
    """Raised when a token is invalid or expired."""

    pass


class TokenPayload(BaseModel):
    """Decoded access token claims."""

    sub: str
    type: str
    exp: int
    iat: int


class AuthService:
    """Service class for authentication operations."""

    def __init__(self, db: AsyncSession):
        """Initialize auth service with database session.

        Args:
            db: Async SQLAlchemy session
        """
        self.db = db

    @staticmethod
    def create_access_token(user_id: str) -> tuple[str, int]:
        """Create a JWT access token for a user.

        Args:
            user_id: User's ID

        Returns:
            Tuple of (token string, expiration in seconds)
        """
        now = datetime.now(UTC)
        expire = now + timedelta(minutes=settings.JWT_ACCESS_TOKEN_EXPIRE_MINUTES)

        payload = {
            "sub": str(user_id),
            "type": "access",
            "exp": int(expire.timestamp()),
            "iat": int(now.timestamp()),
        }

        token = jwt.encode(
            payload,
            settings.JWT_SECRET_KEY,
            algorithm=settings.JWT_ALGORITHM,
        )

        return token, settings.JWT_ACCESS_TOKEN_EXPIRE_MINUTES * 60

    @staticmethod
    def decode_token(token: str) -> TokenPayload:
        """Decode and validate a JWT token.

        Args:
            token: JWT token string

        Returns:
            TokenPayload with decoded claims

        Raises:
            InvalidTokenError: If token is invalid or expired
        """
        try:
            payload = jwt.decode(
                token,
                settings.JWT_SECRET_KEY,
                algorithms=[settings.JWT_ALGORITHM],
            )
            return TokenPayload(
                sub=payload["sub"],
                type=payload["type"],
                exp=payload["exp"],
                iat=payload["iat"],
            )
        except (JWTError, KeyError) as e:
            logger.warning(f"Token decode error: {e}")
            raise InvalidTokenError("Invalid or expired token")

    async def get_user_by_id(self, user_id: str) -> Optional[User]:
        """Get a user by ID.

        Args:
            user_id: User's ID

        Returns:
            User if found, None otherwise
        """
        result = await self.db.execute(select(User).where(User.id == user_id))
        return result.scalar_one_or_none()

    async def validate_access_token(self, token: str) -> User:
        """Validate an access token and return its user.

        Args:
            token: JWT access token

        Returns:
            The authenticated User

        Raises:
            InvalidTokenError: If the token is invalid, not an access token,
                or its user no longer exists
        """
        payload = self.decode_token(token)

        if payload.type != "access":
            raise InvalidTokenError("Not an access token")

        user = await self.get_user_by_id(payload.sub)
        if user is None:
            logger.warning(f"Token for unknown user {payload.sub}")
            raise InvalidTokenError("User not found")

        return user


def get_auth_service(db: AsyncSession) -> AuthService:
    """Factory function to create AuthService.

    Args:
        db: Database session

    Returns:
        Configured AuthService instance
    """
    return AuthService(db)
