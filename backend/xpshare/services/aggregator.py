"""Single-pass grouping of raw rows by a canonical text key.

Used by the admin search analytics report and the experience hotspot views.
Rows are folded in Python rather than with SQL ``GROUP BY``; callers cap the
number of rows they fetch.
"""

import math
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Dict, Iterable, List, Optional, TypeVar

R = TypeVar("R")
T = TypeVar("T")


def canonical_key(value: Optional[str]) -> str:
    """Grouping key: trimmed and lower-cased, empty for None."""
    return (value or "").strip().lower()


def round_half_up(value: float) -> int:
    """Round to the nearest integer, halves away from zero for positives (2.5 -> 3)."""
    return int(math.floor(value + 0.5))


@dataclass
class GroupStats:
    """Accumulated statistics for one key."""

    key: str
    count: int = 0
    values: List[float] = field(default_factory=list)
    clicks: int = 0
    last: Optional[datetime] = None

    @property
    def mean(self) -> float:
        """Unrounded mean of the recorded values; 0.0 when none were recorded."""
        if not self.values:
            return 0.0
        return sum(self.values) / len(self.values)

    @property
    def average(self) -> int:
        """Rounded mean of the recorded values; 0 when none were recorded."""
        return round_half_up(self.mean)

    @property
    def click_through_rate(self) -> int:
        """Percentage of rows that recorded a click, rounded."""
        if self.count == 0:
            return 0
        return round_half_up(self.clicks / self.count * 100)


def aggregate(
    rows: Iterable[R],
    key_fn: Callable[[R], Optional[str]],
    value_fn: Optional[Callable[[R], Optional[float]]] = None,
    clicked_fn: Optional[Callable[[R], bool]] = None,
    timestamp_fn: Optional[Callable[[R], Optional[datetime]]] = None,
) -> Dict[str, GroupStats]:
    """Fold rows into per-key statistics in one pass.

    Args:
        rows: Raw rows in fetch order
        key_fn: Extracts the grouping text; canonicalised via ``canonical_key``.
            Rows whose canonical key is empty are skipped.
        value_fn: Extracts a numeric value to average; ``None`` is not recorded
        clicked_fn: True when the row counts as a click
        timestamp_fn: Extracts the row timestamp; the maximum is kept as ``last``

    Returns:
        Dict of key -> GroupStats, in first-seen order
    """
    groups: Dict[str, GroupStats] = {}

    for row in rows:
        key = canonical_key(key_fn(row))
        if not key:
            continue

        stats = groups.get(key)
        if stats is None:
            stats = GroupStats(key=key)
            groups[key] = stats

        stats.count += 1

        if value_fn is not None:
            value = value_fn(row)
            if value is not None:
                stats.values.append(value)

        if clicked_fn is not None and clicked_fn(row):
            stats.clicks += 1

        if timestamp_fn is not None:
            ts = timestamp_fn(row)
            if ts is not None and (stats.last is None or ts > stats.last):
                stats.last = ts

    return groups


def top_n(records: Iterable[T], n: int, count_fn: Callable[[T], int]) -> List[T]:
    """Sort descending by count and keep the first ``n``.

    The sort is stable, so records with equal counts keep their input order.
    """
    if n <= 0:
        return []
    return sorted(records, key=lambda r: -count_fn(r))[:n]
