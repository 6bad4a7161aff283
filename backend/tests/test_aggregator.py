"""Tests for the in-memory grouping used by analytics reports."""

from datetime import datetime, timedelta, timezone
from types import SimpleNamespace
from uuid import uuid4

import pytest

from xpshare.services.aggregator import GroupStats, aggregate, canonical_key, round_half_up, top_n
from xpshare.services.analytics_service import (
    build_hotspot_report,
    build_search_report,
    group_queries,
    low_relevance_queries,
    popular_queries,
    zero_result_queries,
)

NOW = datetime(2024, 6, 10, 12, 0, tzinfo=timezone.utc)


def row(query_text, result_count=0, clicked=False, minutes_ago=0, user_id=None, execution_time_ms=10):
    """Search log row as returned by the database."""
    return SimpleNamespace(
        query_text=query_text,
        result_count=result_count,
        clicked_result_id=uuid4() if clicked else None,
        created_at=NOW - timedelta(minutes=minutes_ago),
        user_id=user_id,
        execution_time_ms=execution_time_ms,
    )


# ============================================================================
# TESTS: AGGREGATE
# ============================================================================

class TestAggregate:
    """Tests for the single-pass fold."""

    def test_canonical_key_trims_and_lowercases(self):
        assert canonical_key("  UFO Bodensee ") == "ufo bodensee"
        assert canonical_key(None) == ""

    def test_mixed_case_queries_share_a_group(self):
        """UFO/ufo/ghost -> two groups with averaged results and CTR."""
        rows = [
            row("UFO", result_count=0, clicked=True),
            row("ufo", result_count=0),
            row("ghost", result_count=3),
        ]

        stats = popular_queries(group_queries(rows))
        by_text = {s.query_text: s for s in stats}

        assert [s.query_text for s in stats] == ["ufo", "ghost"]
        assert by_text["ufo"].search_count == 2
        assert by_text["ufo"].avg_result_count == 0
        assert by_text["ufo"].click_through_rate == 50
        assert by_text["ghost"].search_count == 1
        assert by_text["ghost"].avg_result_count == 3
        assert by_text["ghost"].click_through_rate == 0

    def test_empty_keys_are_skipped(self):
        groups = aggregate([row(""), row("   "), row(None), row("x")], lambda r: r.query_text)
        assert list(groups) == ["x"]

    def test_average_is_zero_without_values(self):
        assert GroupStats(key="x", count=3).average == 0

    def test_none_values_are_not_averaged(self):
        rows = [row("a", result_count=None), row("a", result_count=4)]
        groups = aggregate(rows, lambda r: r.query_text, value_fn=lambda r: r.result_count)
        assert groups["a"].count == 2
        assert groups["a"].values == [4]
        assert groups["a"].average == 4

    def test_last_keeps_newest_timestamp(self):
        rows = [row("a", minutes_ago=5), row("a", minutes_ago=1), row("a", minutes_ago=9)]
        groups = aggregate(rows, lambda r: r.query_text, timestamp_fn=lambda r: r.created_at)
        assert groups["a"].last == NOW - timedelta(minutes=1)

    def test_click_through_rate_stays_in_range(self):
        for clicks in range(0, 5):
            stats = GroupStats(key="x", count=4, clicks=clicks)
            assert 0 <= stats.click_through_rate <= 100

    @pytest.mark.parametrize("value,expected", [(2.5, 3), (2.49, 2), (0.5, 1), (0, 0), (33.333, 33)])
    def test_round_half_up(self, value, expected):
        assert round_half_up(value) == expected


class TestTopN:
    """Tests for ranking."""

    def test_sorts_descending_and_truncates(self):
        records = [("a", 1), ("b", 5), ("c", 3)]
        assert top_n(records, 2, lambda r: r[1]) == [("b", 5), ("c", 3)]

    def test_ties_keep_input_order(self):
        records = [("first", 2), ("second", 2), ("third", 2), ("big", 7)]
        assert [r[0] for r in top_n(records, 4, lambda r: r[1])] == ["big", "first", "second", "third"]

    def test_zero_n_is_empty(self):
        assert top_n([("a", 1)], 0, lambda r: r[1]) == []


# ============================================================================
# TESTS: REPORTS
# ============================================================================

class TestReports:
    """Tests for report builders over the fold."""

    def test_zero_result_queries_only_average_zero(self):
        rows = [row("nothing"), row("Nothing"), row("some", result_count=2), row("mixed"), row("mixed", result_count=1)]
        zero = zero_result_queries(group_queries(rows))
        assert [z.query_text for z in zero] == ["nothing"]
        assert zero[0].attempt_count == 2

    def test_fractional_average_below_half_is_not_zero_result(self):
        rows = [row("ufo"), row("ufo"), row("ufo"), row("ufo", result_count=1)]
        groups = group_queries(rows)

        assert groups["ufo"].average == 0
        assert groups["ufo"].mean == pytest.approx(0.25)
        assert zero_result_queries(groups) == []

    def test_popular_queries_capped_at_twenty(self):
        rows = [row(f"q{i}") for i in range(30)]
        assert len(popular_queries(group_queries(rows))) == 20

    def test_low_relevance_needs_repeats_and_few_results(self):
        rows = [
            row("rare", result_count=2), row("rare", result_count=3),
            row("once", result_count=1),
            row("plenty", result_count=40), row("plenty", result_count=40),
            row("worse", result_count=1), row("worse", result_count=1),
        ]
        low = low_relevance_queries(rows)
        assert [q.query_text for q in low] == ["worse", "rare"]
        assert low[1].avg_result_count == 3
        assert low[1].occurrences == 2

    def test_search_report_overview(self):
        user = uuid4()
        rows = [
            row("ufo", result_count=4, clicked=True, user_id=user, execution_time_ms=20),
            row("ufo", result_count=0, user_id=user, execution_time_ms=40),
            row("ghost", result_count=0, minutes_ago=60 * 30),
        ]
        report = build_search_report(rows, days=7)

        assert report.overview.total_searches == 3
        assert report.overview.unique_queries == 2
        assert report.overview.unique_users == 1
        assert report.overview.zero_results_count == 2
        assert report.overview.click_through_rate == 33
        assert report.overview.avg_execution_time_ms == 23
        assert [t.date for t in report.trends] == ["2024-06-09", "2024-06-10"]

    def test_empty_report(self):
        report = build_search_report([], days=7)
        assert report.overview.total_searches == 0
        assert report.overview.zero_results_rate == 0.0
        assert report.popular_queries == []

    def test_hotspots_count_each_tag_once_per_experience(self):
        experiences = [
            SimpleNamespace(category="ufo", location_text="Bodensee", tags=["Lights", "lights", "night"], created_at=NOW),
            SimpleNamespace(category="UFO", location_text="bodensee ", tags=["lights"], created_at=NOW),
            SimpleNamespace(category="dreams", location_text=None, tags=[], created_at=NOW),
        ]
        report = build_hotspot_report(experiences, days=30)

        assert [(e.key, e.count) for e in report.categories] == [("ufo", 2), ("dreams", 1)]
        assert [(e.key, e.count) for e in report.locations] == [("bodensee", 2)]
        assert report.tags[0].key == "lights"
        assert report.tags[0].count == 2
