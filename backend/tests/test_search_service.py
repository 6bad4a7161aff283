"""Tests for SearchService, QueryBuilder and the NLP client."""

from datetime import date, datetime, timedelta, timezone
from uuid import uuid4

import httpx
import pytest
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from tenacity import wait_none

from xpshare.core.exceptions import NotFoundError, UpstreamError, ValidationError
from xpshare.models import SearchAnalytics
from xpshare.schemas.search import ExperienceResponse, LocationFilter, QueryUnderstanding, SearchFilters
from xpshare.services.nlp_client import NlpSearchClient
from xpshare.services.query_builder import QueryBuilder
from xpshare.services.search_service import (
    SearchService,
    haversine_km,
    keyword_terms,
    merge_understanding,
)

from conftest import FakeUnderstander


# ============================================================================
# TESTS: HELPERS
# ============================================================================

class TestHelpers:
    """Tests for pure search helpers."""

    def test_keyword_terms_skip_operators(self):
        assert keyword_terms("ufo AND lights or  NOT dream") == ["ufo", "lights", "dream"]

    def test_haversine_known_distance(self):
        # Konstanz -> Friedrichshafen, roughly 20 km across the lake
        distance = haversine_km(47.6779, 9.1732, 47.6500, 9.4800)
        assert 20 < distance < 26

    def test_merge_understanding_unions_lists(self):
        filters = SearchFilters(keywords="ufo im sommer", categories=["ufo"], tags=["night"])
        understood = QueryUnderstanding(
            keywords=["ufo"],
            categories=["ufo", "paranormal"],
            tags=["lights"],
            date_from=date(2024, 6, 1),
        )

        merged = merge_understanding(filters, understood)

        assert merged.keywords == "ufo"
        assert merged.categories == ["ufo", "paranormal"]
        assert merged.tags == ["night", "lights"]
        assert merged.date_from == date(2024, 6, 1)

    def test_merge_understanding_rejects_inverted_dates(self):
        filters = SearchFilters(date_to=date(2020, 1, 1))
        understood = QueryUnderstanding(date_from=date(2024, 1, 1))
        with pytest.raises(UpstreamError):
            merge_understanding(filters, understood)


# ============================================================================
# TESTS: KEYWORD SEARCH
# ============================================================================

class TestKeywordSearch:
    """Tests for keyword mode and the shared filters."""

    async def test_all_terms_must_match(self, test_db: AsyncSession, make_experience):
        await make_experience("Ufo über dem Bodensee", story_text="helle Lichter")
        await make_experience("Ufo in Berlin")

        outcome = await SearchService(test_db).search(SearchFilters(keywords="ufo AND lichter"), mode="keyword")

        assert [e.title for e in outcome.results] == ["Ufo über dem Bodensee"]

    async def test_like_wildcards_match_literally(self, test_db: AsyncSession, make_experience):
        await make_experience("100% sicher gesehen")
        await make_experience("1000 Lichter")

        outcome = await SearchService(test_db).search(SearchFilters(keywords="100%"), mode="keyword")
        assert [e.title for e in outcome.results] == ["100% sicher gesehen"]

        outcome = await SearchService(test_db).search(SearchFilters(keywords="_"), mode="keyword")
        assert outcome.results == []

    async def test_results_newest_first(self, test_db: AsyncSession, make_experience):
        await make_experience("old", age_days=3)
        await make_experience("new", age_days=0)
        await make_experience("middle", age_days=1)

        outcome = await SearchService(test_db).search(SearchFilters(), mode="keyword")

        assert [e.title for e in outcome.results] == ["new", "middle", "old"]

    async def test_sql_filters(self, test_db: AsyncSession, make_experience):
        await make_experience("match", category="ufo", is_verified=True, similar_count=5, date_occurred=date(2024, 6, 1))
        await make_experience("unverified", category="ufo", similar_count=5)
        await make_experience("other category", category="dreams", is_verified=True, similar_count=5)
        await make_experience("too few similar", category="ufo", is_verified=True, similar_count=1)
        await make_experience("too early", category="ufo", is_verified=True, similar_count=5, date_occurred=date(2023, 1, 1))

        filters = SearchFilters(
            categories=["ufo"],
            verification="verified",
            min_similar=3,
            date_from=date(2024, 1, 1),
            date_to=date(2024, 12, 31),
        )
        outcome = await SearchService(test_db).search(filters, mode="keyword")

        assert [e.title for e in outcome.results] == ["match"]

    async def test_tags_any_overlap(self, test_db: AsyncSession, make_experience):
        await make_experience("a", tags=["Lights", "night"])
        await make_experience("b", tags=["triangle"])
        await make_experience("c", tags=[])

        outcome = await SearchService(test_db).search(SearchFilters(tags=["lights", "orb"]), mode="keyword")

        assert [e.title for e in outcome.results] == ["a"]

    async def test_external_events_all_required(self, test_db: AsyncSession, make_experience):
        await make_experience("both", external_events=["solar_storm", "full_moon"])
        await make_experience("solar only", external_events=["solar_storm"])

        filters = SearchFilters(external_events={"solar": True, "moon": True})
        outcome = await SearchService(test_db).search(filters, mode="keyword")

        assert [e.title for e in outcome.results] == ["both"]

    async def test_location_radius(self, test_db: AsyncSession, make_experience):
        await make_experience("konstanz", location_lat=47.6779, location_lng=9.1732)
        await make_experience("berlin", location_lat=52.52, location_lng=13.405)
        await make_experience("nowhere")

        filters = SearchFilters(location=LocationFilter(name="Bodensee", lat=47.65, lng=9.3), radius=50)
        outcome = await SearchService(test_db).search(filters, mode="keyword")

        assert [e.title for e in outcome.results] == ["konstanz"]

    async def test_location_name_without_coordinates(self, test_db: AsyncSession, make_experience):
        await make_experience("a", location_text="Konstanz am Bodensee")
        await make_experience("b", location_text="Berlin")

        filters = SearchFilters(location=LocationFilter(name="bodensee"))
        outcome = await SearchService(test_db).search(filters, mode="keyword")

        assert [e.title for e in outcome.results] == ["a"]

    async def test_limit_is_clamped(self, test_db: AsyncSession, make_experience):
        for i in range(3):
            await make_experience(f"e{i}")

        outcome = await SearchService(test_db).search(SearchFilters(), mode="keyword", limit=2)
        assert outcome.total == 2

    async def test_unknown_mode(self, test_db: AsyncSession):
        with pytest.raises(ValidationError):
            await SearchService(test_db).search(SearchFilters(keywords="ufo"), mode="semantic")


# ============================================================================
# TESTS: NLP AND HYBRID
# ============================================================================

class TestNlpAndHybrid:
    """Tests for modes that consult the query understanding service."""

    async def test_nlp_requires_three_characters(self, test_db: AsyncSession):
        service = SearchService(test_db, FakeUnderstander())
        with pytest.raises(ValidationError):
            await service.search(SearchFilters(keywords=" ab "), mode="nlp")

    async def test_nlp_uses_understood_filters(self, test_db: AsyncSession, make_experience):
        await make_experience("Ufo am Abend", category="ufo", time_of_day="evening")
        await make_experience("Ufo am Morgen", category="ufo", time_of_day="morning")
        await make_experience("Traum", category="dreams", time_of_day="evening")

        understander = FakeUnderstander(QueryUnderstanding(
            keywords=["ufo"], categories=["ufo"], time_of_day="evening",
        ))
        outcome = await SearchService(test_db, understander).search(
            SearchFilters(keywords="ufos abends gesehen"), mode="nlp"
        )

        assert [e.title for e in outcome.results] == ["Ufo am Abend"]
        assert outcome.understood.categories == ["ufo"]
        assert understander.calls == ["ufos abends gesehen"]

    async def test_nlp_failure_propagates(self, test_db: AsyncSession):
        service = SearchService(test_db, FakeUnderstander(error=True))
        with pytest.raises(UpstreamError):
            await service.search(SearchFilters(keywords="ufo bodensee"), mode="nlp")

    async def test_nlp_without_service_configured(self, test_db: AsyncSession):
        with pytest.raises(UpstreamError):
            await SearchService(test_db).search(SearchFilters(keywords="ufo bodensee"), mode="nlp")

    async def test_hybrid_appends_nlp_extras(self, test_db: AsyncSession, make_experience):
        await make_experience("Ufo Sichtung", category="ufo", age_days=1)
        await make_experience("Lichter am Himmel", category="ufo", age_days=0)

        understander = FakeUnderstander(QueryUnderstanding(categories=["ufo"]))
        outcome = await SearchService(test_db, understander).search(
            SearchFilters(keywords="ufo"), mode="hybrid"
        )

        # Keyword hit first, then the category-only NLP hit
        assert [e.title for e in outcome.results] == ["Ufo Sichtung", "Lichter am Himmel"]
        assert outcome.understood is not None

    async def test_hybrid_degrades_to_keyword(self, test_db: AsyncSession, make_experience):
        await make_experience("Ufo Sichtung")

        outcome = await SearchService(test_db, FakeUnderstander(error=True)).search(
            SearchFilters(keywords="ufo"), mode="hybrid"
        )

        assert [e.title for e in outcome.results] == ["Ufo Sichtung"]
        assert outcome.understood is None


# ============================================================================
# TESTS: ANALYTICS LOGGING
# ============================================================================

class TestSearchLogging:
    """Tests for search_analytics rows."""

    async def test_search_is_logged(self, test_db: AsyncSession, make_experience, user_id):
        await make_experience("Ufo Sichtung")

        outcome = await SearchService(test_db).search(
            SearchFilters(keywords=" ufo "), mode="keyword", user_id=user_id, language="de"
        )

        row = await test_db.get(SearchAnalytics, outcome.search_id)
        assert row.query_text == "ufo"
        assert row.search_type == "keyword"
        assert row.result_count == 1
        assert row.user_id == user_id
        assert row.language == "de"
        assert row.filters["keywords"] == " ufo "

    async def test_empty_query_is_not_logged(self, test_db: AsyncSession):
        outcome = await SearchService(test_db).search(SearchFilters(), mode="keyword")

        assert outcome.search_id is None
        result = await test_db.execute(select(SearchAnalytics))
        assert result.scalars().all() == []

    async def test_logging_failure_keeps_results_usable(
        self, test_db: AsyncSession, make_experience, monkeypatch
    ):
        await make_experience("Ufo Sichtung")

        async def failing_flush(*args, **kwargs):
            raise SQLAlchemyError("search_analytics unavailable")

        monkeypatch.setattr(test_db, "flush", failing_flush)
        outcome = await SearchService(test_db).search(SearchFilters(keywords="UFO"), mode="keyword")
        monkeypatch.undo()

        assert outcome.search_id is None
        responses = [ExperienceResponse.model_validate(e) for e in outcome.results]
        assert [r.title for r in responses] == ["Ufo Sichtung"]

        await test_db.commit()
        result = await test_db.execute(select(SearchAnalytics))
        assert result.scalars().all() == []

    async def test_record_click(self, test_db: AsyncSession, make_experience):
        experience = await make_experience("Ufo Sichtung")
        service = SearchService(test_db)
        outcome = await service.search(SearchFilters(keywords="ufo"), mode="keyword")

        row = await service.record_click(outcome.search_id, experience.id)
        assert row.clicked_result_id == experience.id

    async def test_record_click_unknown_search(self, test_db: AsyncSession):
        with pytest.raises(NotFoundError):
            await SearchService(test_db).record_click(uuid4(), uuid4())

    async def test_popular_queries_by_prefix(self, test_db: AsyncSession):
        service = SearchService(test_db)
        for text in ["UFO Bodensee", "ufo bodensee", "ufo berlin", "geist"]:
            test_db.add(SearchAnalytics(query_text=text, search_type="keyword", filters={}))
        await test_db.commit()

        assert await service.popular_queries("uf") == [("ufo bodensee", 2), ("ufo berlin", 1)]
        assert await service.popular_queries("%") == []
        assert await service.popular_queries("u_o") == []

    async def test_count_new_matches(self, test_db: AsyncSession, make_experience):
        await make_experience("Ufo alt", age_days=3)
        await make_experience("Ufo neu", age_days=0)

        since = datetime.now(timezone.utc) - timedelta(days=1)
        count = await SearchService(test_db).count_new_matches(SearchFilters(keywords="ufo"), since)

        assert count == 1


# ============================================================================
# TESTS: QUERY BUILDER
# ============================================================================

class TestQueryBuilder:
    """Tests for the stateful filter builder."""

    def test_set_validates_fields(self):
        builder = QueryBuilder()
        builder.set("categories", ["ufo", "ufo", "dreams"])
        assert builder.filters.categories == ["ufo", "dreams"]

        with pytest.raises(ValidationError):
            builder.set("colour", "blue")
        with pytest.raises(ValidationError):
            builder.set("radius", -5)

    def test_inverted_date_range_rejected(self):
        builder = QueryBuilder().set("date_to", date(2020, 1, 1))
        with pytest.raises(ValidationError):
            builder.set("date_from", date(2024, 1, 1))

        # The rejected value must not leak into later searches
        assert builder.filters.date_from is None
        assert builder.snapshot().date_to == date(2020, 1, 1)

    def test_rejected_value_keeps_previous_filters(self):
        builder = QueryBuilder().set("radius", 25).set("tags", ["night"])
        with pytest.raises(ValidationError):
            builder.set("radius", -1)

        assert builder.filters.radius == 25
        assert builder.filters.tags == ["night"]

    def test_boolean_operators_are_spliced(self):
        builder = QueryBuilder().set("keywords", "ufo")
        builder.add_boolean_operator("and")
        builder.set("keywords", builder.filters.keywords + "lichter")

        assert builder.filters.keywords == "ufo AND lichter"
        with pytest.raises(ValidationError):
            builder.add_boolean_operator("XOR")

    def test_snapshot_is_independent(self):
        builder = QueryBuilder().set("tags", ["night"])
        snapshot = builder.snapshot()
        builder.set("tags", ["day"])

        assert snapshot.tags == ["night"]

    def test_reset(self):
        builder = QueryBuilder().set("keywords", "ufo").set("min_similar", 3)
        builder.reset()
        assert builder.filters == SearchFilters()

    async def test_nlp_search_needs_three_characters(self, test_db: AsyncSession):
        builder = QueryBuilder().set("keywords", "ab")
        with pytest.raises(ValidationError):
            await builder.search(SearchService(test_db, FakeUnderstander()), mode="nlp")

    async def test_search_runs_snapshot(self, test_db: AsyncSession, make_experience):
        await make_experience("Ufo Sichtung")
        builder = QueryBuilder().set("keywords", "ufo")

        outcome = await builder.search(SearchService(test_db), mode="keyword")

        assert outcome.total == 1


# ============================================================================
# TESTS: NLP CLIENT
# ============================================================================

class TestNlpSearchClient:
    """Tests for the HTTP client of the query understanding service."""

    async def test_parses_understood(self):
        def handler(request: httpx.Request) -> httpx.Response:
            assert request.headers["Authorization"] == "Bearer secret"
            return httpx.Response(200, json={"understood": {"keywords": ["ufo"], "categories": ["ufo"]}})

        client = NlpSearchClient("http://nlp.test/understand", api_key="secret", transport=httpx.MockTransport(handler))
        understood = await client.understand("ufo am bodensee", "de")

        assert understood.keywords == ["ufo"]
        assert understood.categories == ["ufo"]

    async def test_error_status_is_upstream_error(self):
        client = NlpSearchClient(
            "http://nlp.test/understand",
            transport=httpx.MockTransport(lambda request: httpx.Response(500, json={"error": "boom"})),
        )
        with pytest.raises(UpstreamError):
            await client.understand("ufo am bodensee")

    async def test_malformed_body_is_upstream_error(self):
        client = NlpSearchClient(
            "http://nlp.test/understand",
            transport=httpx.MockTransport(lambda request: httpx.Response(200, json={"understood": {"keywords": "x"}})),
        )
        with pytest.raises(UpstreamError):
            await client.understand("ufo am bodensee")

    async def test_connect_errors_are_retried(self, monkeypatch):
        monkeypatch.setattr(NlpSearchClient._post.retry, "wait", wait_none())
        attempts = []

        def handler(request: httpx.Request) -> httpx.Response:
            attempts.append(request)
            raise httpx.ConnectError("refused", request=request)

        client = NlpSearchClient("http://nlp.test/understand", transport=httpx.MockTransport(handler))
        with pytest.raises(UpstreamError):
            await client.understand("ufo am bodensee")

        assert len(attempts) == 3
