"""Admin search analytics and experience hotspot reports.

Raw ``search_analytics`` / ``experiences`` rows for a time window are
fetched with plain row filters and folded in Python by
``xpshare.services.aggregator``. A failed fetch propagates; nothing here is
retried.
"""

from datetime import datetime, timedelta, timezone
from typing import Iterable, List, Sequence

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from xpshare.config import settings
from xpshare.models.base import as_utc
from xpshare.models.experience import Experience
from xpshare.models.search_analytics import SearchAnalytics
from xpshare.schemas.analytics import (
    AnalyticsOverview,
    HotspotEntry,
    HotspotReport,
    LowRelevanceQuery,
    QueryStat,
    SearchAnalyticsReport,
    TrendBucket,
    ZeroResultQuery,
)
from xpshare.services.aggregator import GroupStats, aggregate, canonical_key, round_half_up, top_n
from xpshare.services.cache_service import (
    CacheService,
    cache_key_for_hotspots,
    cache_key_for_search_report,
)

logger = structlog.get_logger(__name__)

POPULAR_LIMIT = 20
ZERO_RESULT_LIMIT = 15
LOW_RELEVANCE_LIMIT = 20
HOTSPOT_LIMIT = 10

# Low relevance: searched at least twice, fewer than five results on average
LOW_RELEVANCE_MAX_AVG = 5
LOW_RELEVANCE_MIN_OCCURRENCES = 2


def group_queries(rows: Iterable[SearchAnalytics]) -> dict:
    """Group search-log rows by canonical query text."""
    return aggregate(
        rows,
        key_fn=lambda r: r.query_text,
        value_fn=lambda r: r.result_count or 0,
        clicked_fn=lambda r: r.clicked_result_id is not None,
        timestamp_fn=lambda r: as_utc(r.created_at),
    )


def _to_query_stat(stats: GroupStats) -> QueryStat:
    return QueryStat(
        query_text=stats.key,
        search_count=stats.count,
        avg_result_count=stats.average,
        click_through_rate=stats.click_through_rate,
        last_searched=stats.last,
    )


def popular_queries(groups: dict, limit: int = POPULAR_LIMIT) -> List[QueryStat]:
    """Most searched queries."""
    stats = [_to_query_stat(g) for g in groups.values()]
    return top_n(stats, limit, lambda s: s.search_count)


def zero_result_queries(groups: dict, limit: int = ZERO_RESULT_LIMIT) -> List[ZeroResultQuery]:
    """Queries whose average result count is exactly 0."""
    zero = [
        ZeroResultQuery(query_text=g.key, attempt_count=g.count, last_attempted=g.last)
        for g in groups.values()
        if g.mean == 0
    ]
    return top_n(zero, limit, lambda z: z.attempt_count)


def low_relevance_queries(
    rows: Sequence[SearchAnalytics], limit: int = LOW_RELEVANCE_LIMIT
) -> List[LowRelevanceQuery]:
    """Repeated queries with few (but some) results, worst first."""
    with_results = [r for r in rows if (r.result_count or 0) > 0]
    by_results = aggregate(with_results, lambda r: r.query_text, value_fn=lambda r: r.result_count)
    by_time = aggregate(with_results, lambda r: r.query_text, value_fn=lambda r: r.execution_time_ms or 0)

    candidates = [
        LowRelevanceQuery(
            query_text=key,
            avg_result_count=stats.average,
            avg_execution_time_ms=by_time[key].average,
            occurrences=stats.count,
        )
        for key, stats in by_results.items()
        if stats.average < LOW_RELEVANCE_MAX_AVG and stats.count >= LOW_RELEVANCE_MIN_OCCURRENCES
    ]
    candidates.sort(key=lambda q: q.avg_result_count)
    return candidates[:limit]


def daily_trends(rows: Iterable[SearchAnalytics]) -> List[TrendBucket]:
    """Search volume per UTC day, ascending by date."""
    buckets: dict = {}
    for row in rows:
        day = as_utc(row.created_at).date().isoformat()
        buckets[day] = buckets.get(day, 0) + 1
    return [TrendBucket(date=day, count=count) for day, count in sorted(buckets.items())]


def build_overview(rows: Sequence[SearchAnalytics], groups: dict, days: int) -> AnalyticsOverview:
    """Summary numbers for the window."""
    total = len(rows)
    zero_count = sum(1 for r in rows if r.result_count == 0)
    clicks = sum(1 for r in rows if r.clicked_result_id is not None)
    times = [r.execution_time_ms for r in rows if r.execution_time_ms is not None]
    users = {r.user_id for r in rows if r.user_id is not None}

    return AnalyticsOverview(
        total_searches=total,
        unique_queries=len(groups),
        unique_users=len(users),
        zero_results_count=zero_count,
        zero_results_rate=(zero_count / total * 100) if total else 0.0,
        avg_results=round_half_up(sum(r.result_count or 0 for r in rows) / total) if total else 0,
        avg_execution_time_ms=round_half_up(sum(times) / len(times)) if times else 0,
        click_through_rate=round_half_up(clicks / total * 100) if total else 0,
        period_days=days,
    )


def build_search_report(rows: Sequence[SearchAnalytics], days: int) -> SearchAnalyticsReport:
    """Fold raw rows into the full dashboard report."""
    groups = group_queries(rows)
    return SearchAnalyticsReport(
        overview=build_overview(rows, groups, days),
        popular_queries=popular_queries(groups),
        zero_result_queries=zero_result_queries(groups),
        low_relevance_queries=low_relevance_queries(rows),
        trends=daily_trends(rows),
    )


def _hotspot_entries(groups: dict, limit: int) -> List[HotspotEntry]:
    entries = [HotspotEntry(key=g.key, count=g.count, last_seen=g.last) for g in groups.values()]
    return top_n(entries, limit, lambda e: e.count)


def build_hotspot_report(
    experiences: Sequence[Experience], days: int, limit: int = HOTSPOT_LIMIT
) -> HotspotReport:
    """Top categories, locations and tags among the given experiences."""
    def created(e: Experience):
        return as_utc(e.created_at)

    categories = aggregate(experiences, lambda e: e.category, timestamp_fn=created)
    locations = aggregate(experiences, lambda e: e.location_text, timestamp_fn=created)

    # One row per (experience, tag) so each tag is counted once per experience
    tag_rows = [
        (tag, created(e))
        for e in experiences
        for tag in {canonical_key(t) for t in (e.tags or [])}
    ]
    tags = aggregate(tag_rows, lambda t: t[0], timestamp_fn=lambda t: t[1])

    return HotspotReport(
        categories=_hotspot_entries(categories, limit),
        locations=_hotspot_entries(locations, limit),
        tags=_hotspot_entries(tags, limit),
        period_days=days,
    )


class AnalyticsService:
    """Fetches raw rows for a window and builds the analytics reports."""

    def __init__(self, db: AsyncSession, cache: CacheService):
        self.db = db
        self.cache = cache
        self.logger = logger.bind(service="analytics_service")

    async def search_report(self, days: int = 7) -> SearchAnalyticsReport:
        """Search analytics dashboard for the last ``days`` days (cached)."""
        cache_key = cache_key_for_search_report(days)
        cached = await self.cache.get(cache_key)
        if cached:
            return SearchAnalyticsReport.model_validate_json(cached)

        since = datetime.now(timezone.utc) - timedelta(days=days)
        result = await self.db.execute(
            select(SearchAnalytics)
            .where(SearchAnalytics.created_at >= since)
            .order_by(SearchAnalytics.created_at.desc())
            .limit(settings.ANALYTICS_MAX_ROWS)
        )
        rows = list(result.scalars().all())

        report = build_search_report(rows, days)
        self.logger.info(
            "search_report_built",
            days=days,
            rows=len(rows),
            unique_queries=report.overview.unique_queries,
        )

        await self.cache.set(cache_key, report.model_dump_json(), ttl=settings.ANALYTICS_CACHE_TTL)
        return report

    async def hotspot_report(self, days: int = 30) -> HotspotReport:
        """Hotspot view over experiences created in the last ``days`` days (cached)."""
        cache_key = cache_key_for_hotspots(days)
        cached = await self.cache.get(cache_key)
        if cached:
            return HotspotReport.model_validate_json(cached)

        since = datetime.now(timezone.utc) - timedelta(days=days)
        result = await self.db.execute(
            select(Experience)
            .where(Experience.created_at >= since)
            .order_by(Experience.created_at.desc())
            .limit(settings.ANALYTICS_MAX_ROWS)
        )
        experiences = list(result.scalars().all())

        report = build_hotspot_report(experiences, days)
        self.logger.info("hotspot_report_built", days=days, rows=len(experiences))

        await self.cache.set(cache_key, report.model_dump_json(), ttl=settings.ANALYTICS_CACHE_TTL)
        return report
