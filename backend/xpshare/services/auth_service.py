"""Access token verification and user profile lookup.

Sign-up and sign-in happen in Supabase Auth; this service only verifies the
access tokens it issues and reads the matching ``user_profiles`` row.
"""

import uuid
from dataclasses import dataclass
from typing import Optional

import structlog
from jose import JWTError, jwt
from sqlalchemy.ext.asyncio import AsyncSession

from xpshare.config import settings
from xpshare.models.user_profile import UserProfile

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class CurrentUser:
    """Identity carried by a verified access token."""

    id: uuid.UUID
    email: Optional[str] = None


def decode_access_token(token: str) -> Optional[CurrentUser]:
    """Verify a Supabase access token. Returns None if it is invalid or expired."""
    try:
        payload = jwt.decode(
            token,
            settings.SUPABASE_JWT_SECRET,
            algorithms=[settings.JWT_ALGORITHM],
            audience=settings.JWT_AUDIENCE,
        )
    except JWTError as e:
        logger.debug("access_token_rejected", error=str(e))
        return None

    try:
        user_id = uuid.UUID(str(payload.get("sub")))
    except ValueError:
        logger.debug("access_token_rejected", error="subject is not a uuid")
        return None

    return CurrentUser(id=user_id, email=payload.get("email"))


class AuthService:
    """Reads user profiles for authenticated users."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_profile(self, user_id: uuid.UUID) -> Optional[UserProfile]:
        return await self.db.get(UserProfile, user_id)

    async def is_admin(self, user_id: uuid.UUID) -> bool:
        profile = await self.get_profile(user_id)
        return bool(profile and profile.is_admin)

