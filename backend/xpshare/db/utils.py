"""Database utility functions."""

from sqlalchemy.ext.asyncio import AsyncEngine

from xpshare.models import Base


async def create_tables(engine: AsyncEngine) -> None:
    """Create all tables known to ``Base.metadata`` (no-op for existing ones).

    Schema migrations are owned by the database project; this only makes
    fresh development and test databases usable.
    """
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
