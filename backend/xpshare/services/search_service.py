"""Search executor for experiences.

Runs a ``SearchFilters`` snapshot in one of three modes:

- keyword: every keyword term must appear in title or story text
- nlp: the external query understanding service turns the text into
  structured filters, which are then executed like a keyword search
- hybrid: keyword results followed by any extra NLP results

Filters the database can evaluate portably (categories, date range,
verification, similarity) run in SQL; tags, external events and location
radius are applied to the fetched rows in Python. Every execution is
logged to ``search_analytics``.
"""

import math
import time
import uuid
from dataclasses import dataclass
from datetime import datetime
from typing import List, Optional

import structlog
from pydantic import ValidationError as PydanticValidationError
from sqlalchemy import Select, and_, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from xpshare.config import settings
from xpshare.core.exceptions import NotFoundError, UpstreamError, ValidationError
from xpshare.models.experience import Experience
from xpshare.models.search_analytics import SearchAnalytics
from xpshare.schemas.search import BOOLEAN_OPERATORS, QueryUnderstanding, SearchFilters
from xpshare.services.nlp_client import QueryUnderstander

logger = structlog.get_logger(__name__)

EARTH_RADIUS_KM = 6371.0

# SQL fetch cap before Python-side post-filters narrow the rows down
CANDIDATE_MULTIPLIER = 4


@dataclass
class SearchOutcome:
    """Result of one search execution."""

    mode: str
    results: List[Experience]
    execution_time_ms: int
    understood: Optional[QueryUnderstanding] = None
    search_id: Optional[uuid.UUID] = None

    @property
    def total(self) -> int:
        return len(self.results)


def keyword_terms(keywords: str) -> List[str]:
    """Split keyword text into search terms, dropping boolean operators."""
    return [t for t in keywords.split() if t.upper() not in BOOLEAN_OPERATORS]


def haversine_km(lat1: float, lng1: float, lat2: float, lng2: float) -> float:
    """Great-circle distance between two points in km."""
    phi1, phi2 = math.radians(lat1), math.radians(lat2)
    d_phi = math.radians(lat2 - lat1)
    d_lambda = math.radians(lng2 - lng1)
    a = math.sin(d_phi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(d_lambda / 2) ** 2
    return 2 * EARTH_RADIUS_KM * math.asin(math.sqrt(a))


def matches_post_filters(experience: Experience, filters: SearchFilters) -> bool:
    """Filters evaluated in Python: tags, external events and location."""
    if filters.tags:
        wanted = {t.lower() for t in filters.tags}
        have = {t.lower() for t in (experience.tags or [])}
        if not wanted & have:
            return False

    required = filters.external_events.required_events()
    if required and not set(required) <= set(experience.external_events or []):
        return False

    location = filters.location
    if location is not None:
        if location.has_coordinates:
            if experience.location_lat is None or experience.location_lng is None:
                return False
            distance = haversine_km(
                location.lat, location.lng, experience.location_lat, experience.location_lng
            )
            if distance > filters.radius:
                return False
        elif location.name.strip():
            text = (experience.location_text or "").lower()
            if location.name.strip().lower() not in text:
                return False

    return True


def merge_understanding(filters: SearchFilters, understood: QueryUnderstanding) -> SearchFilters:
    """Overlay the NLP reading on the caller's filters.

    Understood values win where present; list fields are unioned.

    Raises:
        UpstreamError: The merged filters are inconsistent (e.g. inverted dates)
    """
    data = filters.model_dump()
    data["keywords"] = " ".join(understood.keywords)
    data["categories"] = filters.categories + understood.categories
    data["tags"] = filters.tags + understood.tags
    if understood.location is not None:
        data["location"] = understood.location.model_dump()
    for field in ("radius", "date_from", "date_to"):
        value = getattr(understood, field)
        if value is not None:
            data[field] = value

    try:
        return SearchFilters.model_validate(data)
    except PydanticValidationError as e:
        raise UpstreamError("Query understanding", f"inconsistent filters: {e}") from e


class SearchService:
    """Executes searches over experiences and records search analytics."""

    def __init__(self, db: AsyncSession, understander: Optional[QueryUnderstander] = None):
        """Initialize search service.

        Args:
            db: Async database session
            understander: Query understanding collaborator; None disables NLP
        """
        self.db = db
        self.understander = understander
        self.logger = logger.bind(service="search_service")

    def _build_query(
        self, filters: SearchFilters, time_of_day: Optional[str] = None
    ) -> Select:
        stmt = select(Experience)
        conditions = []

        for term in keyword_terms(filters.keywords):
            conditions.append(or_(
                Experience.title.icontains(term, autoescape=True),
                Experience.story_text.icontains(term, autoescape=True),
            ))

        if filters.categories:
            conditions.append(Experience.category.in_(filters.categories))
        if filters.date_from is not None:
            conditions.append(Experience.date_occurred >= filters.date_from)
        if filters.date_to is not None:
            conditions.append(Experience.date_occurred <= filters.date_to)
        if filters.verification == "verified":
            conditions.append(Experience.is_verified == True)
        elif filters.verification == "unverified":
            conditions.append(Experience.is_verified == False)
        if filters.min_similar > 0:
            conditions.append(Experience.similar_count >= filters.min_similar)
        if time_of_day:
            conditions.append(Experience.time_of_day == time_of_day)

        if conditions:
            stmt = stmt.where(and_(*conditions))
        return stmt.order_by(Experience.created_at.desc())

    async def _run(
        self, filters: SearchFilters, limit: int, time_of_day: Optional[str] = None
    ) -> List[Experience]:
        stmt = self._build_query(filters, time_of_day).limit(limit * CANDIDATE_MULTIPLIER)
        result = await self.db.execute(stmt)
        candidates = result.scalars().all()
        return [e for e in candidates if matches_post_filters(e, filters)][:limit]

    async def _understand(self, query: str, language: Optional[str]) -> QueryUnderstanding:
        if self.understander is None:
            raise UpstreamError("Query understanding", "natural language search is not configured")
        return await self.understander.understand(query, language)

    def _clamp_limit(self, limit: Optional[int]) -> int:
        if limit is None:
            return settings.SEARCH_DEFAULT_LIMIT
        return max(1, min(limit, settings.SEARCH_MAX_LIMIT))

    async def search(
        self,
        filters: SearchFilters,
        mode: str = "hybrid",
        limit: Optional[int] = None,
        user_id: Optional[uuid.UUID] = None,
        language: Optional[str] = None,
        track: bool = True,
    ) -> SearchOutcome:
        """Execute a search.

        Args:
            filters: Filter snapshot to run
            mode: "keyword", "nlp" or "hybrid"
            limit: Maximum results (clamped to SEARCH_MAX_LIMIT)
            user_id: Searching user for analytics, if known
            language: Query language hint for the NLP service
            track: Record the search in search_analytics

        Returns:
            SearchOutcome with results newest first

        Raises:
            ValidationError: Unknown mode, or NLP query shorter than the minimum
            UpstreamError: NLP mode and the understanding service failed
        """
        limit = self._clamp_limit(limit)
        query_text = filters.keywords.strip()
        started = time.perf_counter()

        self.logger.info("searching_experiences", mode=mode, query=query_text, limit=limit)

        understood: Optional[QueryUnderstanding] = None

        if mode == "keyword":
            results = await self._run(filters, limit)

        elif mode == "nlp":
            if len(query_text) < settings.NLP_MIN_QUERY_LENGTH:
                raise ValidationError(
                    "Query too short",
                    f"Natural language search needs at least {settings.NLP_MIN_QUERY_LENGTH} characters",
                )
            understood = await self._understand(query_text, language)
            results = await self._run(
                merge_understanding(filters, understood), limit, understood.time_of_day
            )

        elif mode == "hybrid":
            results = await self._run(filters, limit)
            if self.understander is not None and len(query_text) >= settings.NLP_MIN_QUERY_LENGTH:
                try:
                    understood = await self._understand(query_text, language)
                    extra = await self._run(
                        merge_understanding(filters, understood), limit, understood.time_of_day
                    )
                except UpstreamError as e:
                    # Keyword results still stand on their own
                    self.logger.warning("hybrid_nlp_unavailable", query=query_text, error=e.details)
                    understood = None
                else:
                    seen = {e.id for e in results}
                    results = (results + [e for e in extra if e.id not in seen])[:limit]

        else:
            raise ValidationError("Invalid search mode", f"Unknown mode '{mode}'")

        elapsed_ms = int((time.perf_counter() - started) * 1000)
        outcome = SearchOutcome(
            mode=mode,
            results=results,
            execution_time_ms=elapsed_ms,
            understood=understood,
        )

        self.logger.info(
            "search_completed",
            mode=mode,
            query=query_text,
            results=outcome.total,
            execution_time_ms=elapsed_ms,
        )

        if track and query_text:
            outcome.search_id = await self._track_search(filters, outcome, user_id, language)

        return outcome

    async def count_new_matches(
        self, filters: SearchFilters, since: Optional[datetime], limit: Optional[int] = None
    ) -> int:
        """Count matching experiences created after ``since`` (keyword semantics)."""
        limit = self._clamp_limit(limit)
        stmt = self._build_query(filters)
        if since is not None:
            stmt = stmt.where(Experience.created_at > since)
        result = await self.db.execute(stmt.limit(limit * CANDIDATE_MULTIPLIER))
        return sum(1 for e in result.scalars().all() if matches_post_filters(e, filters))

    async def record_click(self, search_id: uuid.UUID, experience_id: uuid.UUID) -> SearchAnalytics:
        """Remember which result the user opened for a logged search.

        Raises:
            NotFoundError: Unknown search id
        """
        row = await self.db.get(SearchAnalytics, search_id)
        if row is None:
            raise NotFoundError("Search", str(search_id))

        row.clicked_result_id = experience_id
        await self.db.flush()
        self.logger.debug("search_click_recorded", search_id=str(search_id), experience_id=str(experience_id))
        return row

    async def _track_search(
        self,
        filters: SearchFilters,
        outcome: SearchOutcome,
        user_id: Optional[uuid.UUID],
        language: Optional[str],
    ) -> Optional[uuid.UUID]:
        """Write a search_analytics row. Failures never break the search.

        The insert runs in a SAVEPOINT so a failure only discards the log
        row; the experiences already loaded stay usable.
        """
        try:
            async with self.db.begin_nested():
                row = SearchAnalytics(
                    user_id=user_id,
                    query_text=filters.keywords.strip(),
                    search_type=outcome.mode,
                    language=language,
                    filters=filters.model_dump(mode="json"),
                    result_count=outcome.total,
                    execution_time_ms=outcome.execution_time_ms,
                )
                self.db.add(row)
                await self.db.flush()
            return row.id

        except Exception as e:
            # Don't let analytics errors break search
            self.logger.error(
                "search_tracking_failed",
                query=filters.keywords,
                error=str(e),
            )
            return None

    async def popular_queries(
        self, prefix: str, limit: int = 5, since: Optional[datetime] = None
    ) -> List[tuple]:
        """Most searched query texts starting with ``prefix``, optionally only since ``since``.

        Returns:
            List of (query_text, count) tuples, most frequent first
        """
        canonical = func.lower(func.trim(SearchAnalytics.query_text))
        stmt = select(canonical, func.count(SearchAnalytics.id)).where(
            canonical.startswith(prefix.strip().lower(), autoescape=True)
        )
        if since is not None:
            stmt = stmt.where(SearchAnalytics.created_at >= since)
        result = await self.db.execute(
            stmt
            .group_by(canonical)
            .order_by(func.count(SearchAnalytics.id).desc(), canonical)
            .limit(limit)
        )
        return [(text, count) for text, count in result.all()]

