"""FastAPI dependency injection providers."""

from typing import AsyncGenerator, Optional

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from xpshare.config import settings
from xpshare.core.exceptions import AuthenticationError, PermissionDeniedError
from xpshare.db.session import async_session_factory
from xpshare.services.auth_service import AuthService, CurrentUser, decode_access_token

_bearer_scheme = HTTPBearer(auto_error=False)


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """Yield a database session for request-scoped usage.

    The session is automatically committed on success or rolled back on error.
    Always closed after the request completes.
    """
    async with async_session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()


def _token_from_request(
    request: Request, credentials: Optional[HTTPAuthorizationCredentials]
) -> Optional[str]:
    """Bearer header first, then the Supabase session cookie."""
    if credentials:
        return credentials.credentials
    return request.cookies.get(settings.SESSION_COOKIE_NAME)


async def get_optional_user(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(_bearer_scheme),
) -> Optional[CurrentUser]:
    """Authenticated user, or None for anonymous requests and bad tokens."""
    token = _token_from_request(request, credentials)
    if not token:
        return None
    return decode_access_token(token)


async def get_current_user(
    user: Optional[CurrentUser] = Depends(get_optional_user),
) -> CurrentUser:
    """Authenticated user. Raises 401 if the token is missing or invalid."""
    if user is None:
        raise AuthenticationError()
    return user


async def get_admin_user(
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> CurrentUser:
    """Authenticated admin. Raises 403 unless ``user_profiles.is_admin`` is set."""
    if not await AuthService(db).is_admin(user.id):
        raise PermissionDeniedError()
    return user
