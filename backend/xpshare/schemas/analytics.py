"""Admin search analytics schemas."""

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel


class QueryStat(BaseModel):
    """Aggregated statistics for one canonical query text."""

    query_text: str
    search_count: int
    avg_result_count: int
    click_through_rate: int
    last_searched: Optional[datetime] = None


class ZeroResultQuery(BaseModel):
    """Query whose average result count is exactly 0."""

    query_text: str
    attempt_count: int
    last_attempted: Optional[datetime] = None


class LowRelevanceQuery(BaseModel):
    """Repeated query that returns few results."""

    query_text: str
    avg_result_count: int
    avg_execution_time_ms: int
    occurrences: int


class TrendBucket(BaseModel):
    """Search volume for one day."""

    date: str
    count: int


class AnalyticsOverview(BaseModel):
    """Summary numbers for the analytics window."""

    total_searches: int
    unique_queries: int
    unique_users: int
    zero_results_count: int
    zero_results_rate: float
    avg_results: int
    avg_execution_time_ms: int
    click_through_rate: int
    period_days: int


class SearchAnalyticsReport(BaseModel):
    """Everything the search analytics dashboard renders."""

    overview: AnalyticsOverview
    popular_queries: List[QueryStat]
    zero_result_queries: List[ZeroResultQuery]
    low_relevance_queries: List[LowRelevanceQuery]
    trends: List[TrendBucket]


class HotspotEntry(BaseModel):
    """Experience count for one category, location or tag."""

    key: str
    count: int
    last_seen: Optional[datetime] = None


class HotspotReport(BaseModel):
    """Top categories, locations and tags over recent experiences."""

    categories: List[HotspotEntry]
    locations: List[HotspotEntry]
    tags: List[HotspotEntry]
    period_days: int
