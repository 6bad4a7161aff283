"""Pytest configuration and shared fixtures."""

import os

# Must be set before anything imports xpshare.config
os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("DEBUG", "false")
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")

import uuid
from datetime import date, datetime, timedelta, timezone
from typing import List, Optional

import httpx
import pytest
import pytest_asyncio
from jose import jwt
from sqlalchemy.ext.asyncio import AsyncSession

from xpshare.config import settings
from xpshare.core.exceptions import UpstreamError
from xpshare.db.session import build_engine, build_session_factory
from xpshare.models import Base, Experience, UserProfile
from xpshare.schemas.search import QueryUnderstanding


# ============================================================================
# Collaborator fakes
# ============================================================================

class FakeCache:
    """In-memory stand-in for CacheService."""

    def __init__(self):
        self.store = {}
        self.healthy = True

    async def get(self, key: str) -> Optional[str]:
        return self.store.get(key)

    async def set(self, key: str, value: str, ttl: int = 300) -> bool:
        self.store[key] = value
        return True

    async def health_check(self) -> bool:
        return self.healthy

    async def close(self) -> None:
        pass


class FakeUnderstander:
    """Query understanding collaborator returning a canned reading."""

    def __init__(self, understood: Optional[QueryUnderstanding] = None, error: bool = False):
        self.understood = understood or QueryUnderstanding()
        self.error = error
        self.calls: List[str] = []

    async def understand(self, query: str, language: Optional[str] = None) -> QueryUnderstanding:
        self.calls.append(query)
        if self.error:
            raise UpstreamError("Query understanding", "service unavailable")
        return self.understood


# ============================================================================
# Database
# ============================================================================

@pytest_asyncio.fixture
async def test_db():
    """Create an in-memory SQLite database for testing."""
    engine = build_engine("sqlite+aiosqlite:///:memory:")

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    async with build_session_factory(engine)() as session:
        yield session

    await engine.dispose()


@pytest.fixture
def user_id() -> uuid.UUID:
    return uuid.uuid4()


@pytest.fixture
def fake_cache() -> FakeCache:
    return FakeCache()


@pytest.fixture
def make_experience(test_db: AsyncSession):
    """Factory inserting experiences; ``age_days`` controls created_at."""
    now = datetime.now(timezone.utc)

    async def _make(title: str = "Lichter am Himmel", age_days: float = 0, **fields) -> Experience:
        values = dict(
            user_id=uuid.uuid4(),
            title=title,
            story_text="",
            category="ufo",
            tags=[],
            external_events=[],
            is_verified=False,
            similar_count=0,
            date_occurred=date(2024, 6, 1),
            created_at=now - timedelta(days=age_days),
        )
        values.update(fields)
        experience = Experience(**values)
        test_db.add(experience)
        await test_db.commit()
        return experience

    return _make


# ============================================================================
# Auth
# ============================================================================

def make_token(user_id: uuid.UUID, secret: Optional[str] = None, audience: str = "authenticated") -> str:
    """Mint an access token the way Supabase Auth does."""
    payload = {
        "sub": str(user_id),
        "aud": audience,
        "email": "tester@example.com",
        "exp": datetime.now(timezone.utc) + timedelta(hours=1),
    }
    return jwt.encode(payload, secret or settings.SUPABASE_JWT_SECRET, algorithm=settings.JWT_ALGORITHM)


@pytest.fixture
def auth_headers(user_id: uuid.UUID) -> dict:
    return {"Authorization": f"Bearer {make_token(user_id)}"}


@pytest_asyncio.fixture
async def admin_headers(test_db: AsyncSession) -> dict:
    admin = UserProfile(id=uuid.uuid4(), username="admin", is_admin=True)
    test_db.add(admin)
    await test_db.commit()
    return {"Authorization": f"Bearer {make_token(admin.id)}"}


# ============================================================================
# API client
# ============================================================================

@pytest.fixture
def understander() -> FakeUnderstander:
    return FakeUnderstander()


@pytest_asyncio.fixture
async def client(test_db: AsyncSession, fake_cache: FakeCache, understander: FakeUnderstander):
    """HTTP client against the app with database, cache and NLP overridden."""
    from xpshare.dependencies import get_db
    from xpshare.main import app
    from xpshare.services.cache_service import get_cache
    from xpshare.services.nlp_client import get_query_understander

    async def override_get_db():
        try:
            yield test_db
            await test_db.commit()
        except Exception:
            await test_db.rollback()
            raise

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_cache] = lambda: fake_cache
    app.dependency_overrides[get_query_understander] = lambda: understander

    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()
