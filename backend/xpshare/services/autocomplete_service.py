"""Autocomplete suggestions for the search box.

Suggestions come from several sources, in this order: the user's own recent
searches, trending queries of the last week, all-time popular queries,
categories, locations and tags. Within a source they are ranked by
frequency. The same text is only suggested once, under the first source
that produced it.
"""

import json
import uuid
from datetime import timedelta
from typing import List, Optional

import structlog
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from xpshare.config import settings
from xpshare.models.base import utcnow
from xpshare.models.experience import Experience
from xpshare.schemas.search import Suggestion
from xpshare.services.aggregator import aggregate, canonical_key, top_n
from xpshare.services.cache_service import CacheService, cache_key_for_trending
from xpshare.services.preferences_service import PreferencesService
from xpshare.services.search_service import SearchService

logger = structlog.get_logger(__name__)

TRENDING_WINDOW = timedelta(days=7)
TRENDING_CACHE_TTL = 300
RECENT_LIMIT = 3
# Tag suggestions are folded from the newest experiences only
TAG_SCAN_ROWS = 500


class AutocompleteService:
    """Builds typed suggestion lists for a prefix."""

    def __init__(self, db: AsyncSession, cache: Optional[CacheService] = None):
        self.db = db
        self.cache = cache
        self.search = SearchService(db)
        self.preferences = PreferencesService(db)
        self.logger = logger.bind(service="autocomplete_service")

    async def _recent(self, user_id: Optional[uuid.UUID], prefix: str) -> List[Suggestion]:
        if user_id is None:
            return []
        matches = await self.preferences.search_history(user_id, prefix)
        return [Suggestion(text=h.query, type="recent") for h in matches[:RECENT_LIMIT]]

    async def _trending(self, prefix: str, limit: int) -> List[Suggestion]:
        cache_key = cache_key_for_trending(prefix, limit)
        if self.cache is not None:
            cached = await self.cache.get(cache_key)
            if cached:
                return [Suggestion.model_validate(item) for item in json.loads(cached)]

        rows = await self.search.popular_queries(prefix, limit, since=utcnow() - TRENDING_WINDOW)
        suggestions = [Suggestion(text=text, type="trending", count=count) for text, count in rows]

        if self.cache is not None:
            await self.cache.set(
                cache_key,
                json.dumps([s.model_dump() for s in suggestions]),
                ttl=TRENDING_CACHE_TTL,
            )
        return suggestions

    async def _popular(self, prefix: str, limit: int) -> List[Suggestion]:
        rows = await self.search.popular_queries(prefix, limit)
        return [Suggestion(text=text, type="query", count=count) for text, count in rows]

    async def _categories(self, prefix: str, limit: int) -> List[Suggestion]:
        count = func.count(Experience.id)
        result = await self.db.execute(
            select(Experience.category, count)
            .where(Experience.category.istartswith(prefix, autoescape=True))
            .group_by(Experience.category)
            .order_by(count.desc(), Experience.category)
            .limit(limit)
        )
        return [Suggestion(text=name, type="category", count=n) for name, n in result.all()]

    async def _locations(self, prefix: str, limit: int) -> List[Suggestion]:
        count = func.count(Experience.id)
        result = await self.db.execute(
            select(Experience.location_text, count)
            .where(Experience.location_text.icontains(prefix, autoescape=True))
            .group_by(Experience.location_text)
            .order_by(count.desc(), Experience.location_text)
            .limit(limit)
        )
        return [Suggestion(text=name, type="location", count=n) for name, n in result.all()]

    async def _tags(self, prefix: str, limit: int) -> List[Suggestion]:
        result = await self.db.execute(
            select(Experience.tags)
            .order_by(Experience.created_at.desc())
            .limit(TAG_SCAN_ROWS)
        )
        needle = prefix.lower()
        tags = [t for row in result.scalars().all() for t in (row or []) if needle in t.lower()]
        groups = aggregate(tags, key_fn=lambda t: t)
        ranked = top_n(list(groups.values()), limit, lambda g: g.count)
        return [Suggestion(text=g.key, type="tag", count=g.count) for g in ranked]

    async def suggest(
        self, prefix: str, user_id: Optional[uuid.UUID] = None, limit: int = 8
    ) -> List[Suggestion]:
        """Suggestions for ``prefix``; empty below AUTOCOMPLETE_MIN_CHARS."""
        prefix = prefix.strip()
        if len(prefix) < settings.AUTOCOMPLETE_MIN_CHARS:
            return []

        candidates: List[Suggestion] = []
        candidates += await self._recent(user_id, prefix)
        candidates += await self._trending(prefix, limit)
        candidates += await self._popular(prefix, limit)
        candidates += await self._categories(prefix, limit)
        candidates += await self._locations(prefix, limit)
        candidates += await self._tags(prefix, limit)

        seen = set()
        suggestions = []
        for suggestion in candidates:
            key = canonical_key(suggestion.text)
            if key in seen:
                continue
            seen.add(key)
            suggestions.append(suggestion)
            if len(suggestions) >= limit:
                break

        self.logger.debug("autocomplete_suggested", prefix=prefix, count=len(suggestions))
        return suggestions
