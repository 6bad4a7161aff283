"""Stateful filter builder behind the advanced search form."""

import uuid
from typing import Any, Optional

import structlog

from xpshare.config import settings
from xpshare.core.exceptions import ValidationError
from xpshare.schemas.preferences import FilterPreset
from xpshare.schemas.search import BOOLEAN_OPERATORS, SearchFilters
from xpshare.services.preferences_service import PreferencesService
from xpshare.services.search_service import SearchOutcome, SearchService

logger = structlog.get_logger(__name__)


class QueryBuilder:
    """Holds a mutable SearchFilters and hands snapshots to the executor.

    Fields are changed one at a time through ``set``; every change is
    validated against the SearchFilters model. Boolean operators are spliced
    into the keyword text verbatim and are not parsed.
    """

    def __init__(self, filters: Optional[SearchFilters] = None):
        self._filters = filters.model_copy(deep=True) if filters else SearchFilters()

    @property
    def filters(self) -> SearchFilters:
        return self._filters

    def set(self, field: str, value: Any) -> "QueryBuilder":
        """Change a single filter field.

        The whole filter set is revalidated with the new value; on failure
        the current filters are left untouched.

        Raises:
            ValidationError: Unknown field or invalid value
        """
        if field not in SearchFilters.model_fields:
            raise ValidationError("Unknown filter", f"'{field}' is not a search filter")
        data = self._filters.model_dump()
        data[field] = value
        try:
            self._filters = SearchFilters.model_validate(data)
        except ValueError as e:
            raise ValidationError("Invalid filter value", str(e)) from e
        return self

    def add_boolean_operator(self, operator: str) -> "QueryBuilder":
        """Append `` AND ``/`` OR ``/`` NOT `` to the keyword text."""
        operator = operator.upper()
        if operator not in BOOLEAN_OPERATORS:
            raise ValidationError("Invalid operator", f"Expected one of {', '.join(BOOLEAN_OPERATORS)}")
        self._filters.keywords = f"{self._filters.keywords} {operator} "
        return self

    def reset(self) -> "QueryBuilder":
        """Restore default filters."""
        self._filters = SearchFilters()
        return self

    def load(self, filters: SearchFilters) -> "QueryBuilder":
        """Replace the current filters with a copy of ``filters`` (preset load)."""
        self._filters = filters.model_copy(deep=True)
        return self

    def snapshot(self) -> SearchFilters:
        """Independent copy of the current filters."""
        return self._filters.model_copy(deep=True)

    def validate_for(self, mode: str) -> None:
        """Check the current filters can run in ``mode``.

        Raises:
            ValidationError: NLP mode with fewer than NLP_MIN_QUERY_LENGTH characters
        """
        if mode == "nlp" and len(self._filters.keywords.strip()) < settings.NLP_MIN_QUERY_LENGTH:
            raise ValidationError(
                "Query too short",
                f"Natural language search needs at least {settings.NLP_MIN_QUERY_LENGTH} characters",
            )

    async def search(self, executor: SearchService, mode: str = "hybrid", **kwargs: Any) -> SearchOutcome:
        """Run the current filters through the executor."""
        self.validate_for(mode)
        snapshot = self.snapshot()
        logger.debug("query_builder_search", mode=mode, keywords=snapshot.keywords)
        return await executor.search(snapshot, mode=mode, **kwargs)

    async def save_preset(
        self, preferences: PreferencesService, user_id: uuid.UUID, name: str
    ) -> FilterPreset:
        """Store the current filters as a named preset of ``user_id``."""
        return await preferences.save_preset(user_id, name, self.snapshot())
