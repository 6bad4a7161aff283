"""Tests for engine and session factory construction."""

from sqlalchemy.pool import StaticPool

from xpshare.db.session import build_engine, build_session_factory


class TestBuildEngine:
    """Tests for per-backend engine options."""

    async def test_in_memory_sqlite_shares_one_connection(self):
        engine = build_engine("sqlite+aiosqlite:///:memory:")
        try:
            assert isinstance(engine.pool, StaticPool)
        finally:
            await engine.dispose()

    async def test_postgres_gets_sized_pool(self):
        engine = build_engine("postgresql+asyncpg://xp:xp@localhost:5432/xpshare")
        try:
            assert engine.pool.size() == 20
            assert engine.pool._pre_ping is True
        finally:
            await engine.dispose()

    async def test_sessions_keep_objects_loaded_after_commit(self):
        engine = build_engine("sqlite+aiosqlite:///:memory:")
        try:
            factory = build_session_factory(engine)
            assert factory.kw["expire_on_commit"] is False
        finally:
            await engine.dispose()
