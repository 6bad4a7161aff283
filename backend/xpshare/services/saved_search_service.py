"""Saved search service: named filter sets with optional alerts."""

import uuid
from datetime import datetime, timedelta
from typing import Dict, List, Optional, Tuple

import structlog
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from xpshare.core.exceptions import ConflictError, NotFoundError, ValidationError
from xpshare.models.base import as_utc
from xpshare.models.saved_search import SavedSearch
from xpshare.schemas.saved_search import SavedSearchCreateRequest, SavedSearchUpdateRequest
from xpshare.schemas.search import SearchFilters
from xpshare.services.search_service import SearchOutcome, SearchService

logger = structlog.get_logger(__name__)

DEFAULT_ALERT_FREQUENCY = "daily"

# Minimum time between two alerts; immediate alerts go out on every check
ALERT_INTERVALS: Dict[str, timedelta] = {
    "immediate": timedelta(0),
    "daily": timedelta(days=1),
    "weekly": timedelta(days=7),
}


def filters_for(saved: SavedSearch) -> SearchFilters:
    """Stored filters with the saved query text as keywords."""
    filters = SearchFilters.model_validate(saved.filters or {})
    if saved.query:
        filters.keywords = saved.query
    return filters


def is_alert_due(saved: SavedSearch, now: datetime) -> bool:
    """Whether an alert-enabled saved search should be checked at ``now``."""
    if not saved.is_alert_enabled or saved.alert_frequency not in ALERT_INTERVALS:
        return False
    if saved.last_alert_sent_at is None:
        return True
    return as_utc(now) - as_utc(saved.last_alert_sent_at) >= ALERT_INTERVALS[saved.alert_frequency]


class SavedSearchService:
    """Handles CRUD and re-execution of a user's saved searches."""

    def __init__(self, db: AsyncSession):
        self.db = db
        self.logger = logger.bind(service="saved_search_service")

    async def _name_taken(
        self, user_id: uuid.UUID, name: str, exclude_id: Optional[uuid.UUID] = None
    ) -> bool:
        stmt = select(SavedSearch.id).where(
            SavedSearch.user_id == user_id,
            SavedSearch.name == name,
        )
        if exclude_id is not None:
            stmt = stmt.where(SavedSearch.id != exclude_id)
        result = await self.db.execute(stmt)
        return result.first() is not None

    async def _flush_unique(self, name: str) -> None:
        """Flush, mapping a (user_id, name) constraint violation to 409."""
        try:
            await self.db.flush()
        except IntegrityError as e:
            await self.db.rollback()
            raise ConflictError("A saved search with this name already exists", name) from e

    async def list_saved_searches(self, user_id: uuid.UUID) -> List[SavedSearch]:
        """All saved searches of a user, newest first."""
        result = await self.db.execute(
            select(SavedSearch)
            .where(SavedSearch.user_id == user_id)
            .order_by(SavedSearch.created_at.desc())
        )
        return list(result.scalars().all())

    async def get_saved_search(self, user_id: uuid.UUID, saved_search_id: uuid.UUID) -> SavedSearch:
        """Fetch one saved search owned by ``user_id``.

        Raises:
            NotFoundError: Missing, or owned by someone else
        """
        result = await self.db.execute(
            select(SavedSearch).where(
                SavedSearch.id == saved_search_id,
                SavedSearch.user_id == user_id,
            )
        )
        saved = result.scalar_one_or_none()
        if saved is None:
            raise NotFoundError("Saved search", str(saved_search_id))
        return saved

    async def create_saved_search(
        self, user_id: uuid.UUID, data: SavedSearchCreateRequest
    ) -> SavedSearch:
        """Create a saved search.

        Raises:
            ValidationError: Frequency given while alerts are disabled
            ConflictError: Name already used by this user
        """
        if data.alert_frequency is not None and not data.is_alert_enabled:
            raise ValidationError(
                "Invalid alert settings", "alert_frequency requires is_alert_enabled"
            )

        if await self._name_taken(user_id, data.name):
            raise ConflictError("A saved search with this name already exists", data.name)

        frequency = data.alert_frequency
        if data.is_alert_enabled and frequency is None:
            frequency = DEFAULT_ALERT_FREQUENCY

        saved = SavedSearch(
            user_id=user_id,
            name=data.name,
            query=data.query,
            search_type=data.search_type,
            filters=data.filters.model_dump(mode="json"),
            is_alert_enabled=data.is_alert_enabled,
            alert_frequency=frequency,
        )
        self.db.add(saved)
        await self._flush_unique(data.name)

        self.logger.info(
            "saved_search_created",
            user_id=str(user_id),
            saved_search_id=str(saved.id),
            alert_frequency=frequency,
        )
        return saved

    async def update_saved_search(
        self,
        user_id: uuid.UUID,
        saved_search_id: uuid.UUID,
        data: SavedSearchUpdateRequest,
    ) -> SavedSearch:
        """Apply the fields present in ``data``.

        Disabling alerts keeps the stored frequency so that re-enabling
        restores it; enabling with no frequency on record falls back to daily.

        Raises:
            NotFoundError: Missing, or owned by someone else
            ValidationError: Empty update, or frequency set while alerts are off
            ConflictError: New name already used by this user
        """
        changes = data.model_dump(exclude_unset=True)
        if not changes:
            raise ValidationError("No fields to update")

        saved = await self.get_saved_search(user_id, saved_search_id)

        enabled = changes.get("is_alert_enabled")
        if enabled is None:
            enabled = saved.is_alert_enabled
        if changes.get("alert_frequency") is not None and not enabled:
            raise ValidationError(
                "Invalid alert settings", "alert_frequency requires is_alert_enabled"
            )

        new_name = changes.get("name")
        if new_name is not None and new_name != saved.name:
            if await self._name_taken(user_id, new_name, exclude_id=saved.id):
                raise ConflictError("A saved search with this name already exists", new_name)
            saved.name = new_name

        if changes.get("query") is not None:
            saved.query = changes["query"]
        if changes.get("search_type") is not None:
            saved.search_type = changes["search_type"]
        if data.filters is not None:
            saved.filters = data.filters.model_dump(mode="json")

        saved.is_alert_enabled = enabled
        if changes.get("alert_frequency") is not None:
            saved.alert_frequency = changes["alert_frequency"]
        if saved.is_alert_enabled and saved.alert_frequency is None:
            saved.alert_frequency = DEFAULT_ALERT_FREQUENCY

        await self._flush_unique(saved.name)

        self.logger.info(
            "saved_search_updated",
            user_id=str(user_id),
            saved_search_id=str(saved.id),
            fields=sorted(changes),
        )
        return saved

    async def delete_saved_search(self, user_id: uuid.UUID, saved_search_id: uuid.UUID) -> None:
        saved = await self.get_saved_search(user_id, saved_search_id)
        await self.db.delete(saved)
        await self.db.flush()
        self.logger.info("saved_search_deleted", user_id=str(user_id), saved_search_id=str(saved_search_id))

    async def execute_saved_search(
        self,
        user_id: uuid.UUID,
        saved_search_id: uuid.UUID,
        search_service: SearchService,
    ) -> Tuple[SavedSearch, SearchOutcome]:
        """Re-run the stored filters. Results are returned as-is, no diffing."""
        saved = await self.get_saved_search(user_id, saved_search_id)
        outcome = await search_service.search(
            filters_for(saved),
            mode=saved.search_type,
            user_id=user_id,
        )
        return saved, outcome

    # ------------------------------------------------------------------
    # Alerts
    # ------------------------------------------------------------------

    async def due_alerts(self, now: datetime) -> List[SavedSearch]:
        """Alert-enabled saved searches whose interval has elapsed."""
        result = await self.db.execute(
            select(SavedSearch)
            .where(SavedSearch.is_alert_enabled == True)
            .order_by(SavedSearch.created_at)
        )
        return [s for s in result.scalars().all() if is_alert_due(s, now)]
