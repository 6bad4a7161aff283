"""Filter presets, search history and UI state kept per user."""

import uuid
from datetime import datetime, timedelta
from typing import Callable, Dict, List, Optional, Tuple, TypeVar

import structlog
from sqlalchemy import Select, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from xpshare.core.exceptions import NotFoundError, ValidationError
from xpshare.models.base import as_utc, utcnow
from xpshare.models.user_preferences import UserPreferences
from xpshare.schemas.preferences import FilterPreset, PreferencesDocument, SearchHistoryItem
from xpshare.schemas.search import SearchFilters
from xpshare.services import preferences_codec

logger = structlog.get_logger(__name__)

MAX_HISTORY_ITEMS = 100
MAX_RECENT_ITEMS = 10

HISTORY_GROUPS = ("today", "yesterday", "this_week", "this_month", "older")

T = TypeVar("T")


def document_query(user_id: uuid.UUID, for_update: bool = False) -> Select:
    """Select the preference row of ``user_id``.

    With ``for_update`` the row stays locked until the transaction ends, so
    concurrent writers of the same document run one after another.
    """
    query = select(UserPreferences).where(UserPreferences.user_id == user_id)
    if for_update:
        query = query.with_for_update().execution_options(populate_existing=True)
    return query


def _same_filters(a: Optional[SearchFilters], b: Optional[SearchFilters]) -> bool:
    if a is None or b is None:
        return a is b
    return a.model_dump() == b.model_dump()


def group_history_by_date(
    history: List[SearchHistoryItem], now: Optional[datetime] = None
) -> Dict[str, List[SearchHistoryItem]]:
    """Bucket history entries by age relative to the start of today (UTC).

    this_week covers the 7 days before today, this_month the 30 days.
    """
    now = as_utc(now) if now else utcnow()
    today = now.replace(hour=0, minute=0, second=0, microsecond=0)
    bounds = (
        ("today", today),
        ("yesterday", today - timedelta(days=1)),
        ("this_week", today - timedelta(days=7)),
        ("this_month", today - timedelta(days=30)),
    )

    grouped: Dict[str, List[SearchHistoryItem]] = {name: [] for name in HISTORY_GROUPS}
    for item in history:
        stamp = as_utc(item.timestamp)
        for name, start in bounds:
            if stamp >= start:
                grouped[name].append(item)
                break
        else:
            grouped["older"].append(item)
    return grouped


class PreferencesService:
    """Reads and writes the versioned preference document of a user."""

    def __init__(self, db: AsyncSession):
        self.db = db
        self.logger = logger.bind(service="preferences_service")

    async def _load(
        self, user_id: uuid.UUID, for_update: bool = True
    ) -> Tuple[Optional[UserPreferences], PreferencesDocument]:
        result = await self.db.execute(document_query(user_id, for_update))
        row = result.scalar_one_or_none()
        document = preferences_codec.decode(row.document if row else None)
        return row, document

    async def _write(self, row: UserPreferences, document: PreferencesDocument) -> None:
        row.document = preferences_codec.encode(document)
        row.updated_at = utcnow()
        await self.db.flush()

    async def _modify(self, user_id: uuid.UUID, change: Callable[[PreferencesDocument], T]) -> T:
        """Apply ``change`` to the locked document of ``user_id`` and store it.

        ``change`` mutates the document in place and may raise to abort the
        write. When another request creates the first row for this user in
        the meantime, the insert fails and ``change`` is replayed on that row.
        """
        row, document = await self._load(user_id)
        outcome = change(document)
        if row is not None:
            await self._write(row, document)
            return outcome

        try:
            async with self.db.begin_nested():
                row = UserPreferences(user_id=user_id)
                self.db.add(row)
                await self._write(row, document)
            return outcome
        except IntegrityError:
            self.logger.info("preferences_insert_conflict", user_id=str(user_id))

        row, document = await self._load(user_id)
        if row is None:
            raise RuntimeError(f"Preferences row for {user_id} missing after insert conflict")
        outcome = change(document)
        await self._write(row, document)
        return outcome

    async def get_document(self, user_id: uuid.UUID) -> PreferencesDocument:
        _, document = await self._load(user_id, for_update=False)
        return document

    # ------------------------------------------------------------------
    # Presets
    # ------------------------------------------------------------------

    async def save_preset(self, user_id: uuid.UUID, name: str, filters: SearchFilters) -> FilterPreset:
        """Store ``filters`` under ``name``.

        Names are compared trimmed and case-insensitively; saving an existing
        name replaces that preset in place.

        Raises:
            ValidationError: Blank name
        """
        name = name.strip()
        if not name:
            raise ValidationError("Invalid preset", "name must not be blank")

        def upsert(document: PreferencesDocument) -> Tuple[FilterPreset, bool]:
            preset = FilterPreset(name=name, filters=filters.model_copy(deep=True), created_at=utcnow())
            for index, existing in enumerate(document.presets):
                if existing.name.strip().lower() == name.lower():
                    preset.id = existing.id
                    document.presets[index] = preset
                    return preset, True
            document.presets.append(preset)
            return preset, False

        preset, replaced = await self._modify(user_id, upsert)
        self.logger.info("preset_replaced" if replaced else "preset_saved", user_id=str(user_id), name=name)
        return preset

    async def list_presets(self, user_id: uuid.UUID) -> List[FilterPreset]:
        document = await self.get_document(user_id)
        return document.presets

    async def get_preset(self, user_id: uuid.UUID, name: str) -> FilterPreset:
        """Raises NotFoundError if no preset has that name."""
        wanted = name.strip().lower()
        for preset in await self.list_presets(user_id):
            if preset.name.strip().lower() == wanted:
                return preset
        raise NotFoundError("Preset", name)

    async def delete_preset(self, user_id: uuid.UUID, name: str) -> None:
        wanted = name.strip().lower()

        def drop(document: PreferencesDocument) -> None:
            remaining = [p for p in document.presets if p.name.strip().lower() != wanted]
            if len(remaining) == len(document.presets):
                raise NotFoundError("Preset", name)
            document.presets = remaining

        await self._modify(user_id, drop)
        self.logger.info("preset_deleted", user_id=str(user_id), name=name)

    # ------------------------------------------------------------------
    # Search history
    # ------------------------------------------------------------------

    async def add_history(
        self,
        user_id: uuid.UUID,
        query: str,
        search_type: str,
        filters: Optional[SearchFilters] = None,
        result_count: Optional[int] = None,
    ) -> SearchHistoryItem:
        """Record a search, moving an identical earlier entry to the front.

        Identical means same query text, search type and filters.
        """
        if not query.strip():
            raise ValidationError("Invalid history entry", "query must not be empty")

        def record(document: PreferencesDocument) -> SearchHistoryItem:
            now = utcnow()
            item = None
            for index, existing in enumerate(document.history):
                if (
                    existing.query == query
                    and existing.search_type == search_type
                    and _same_filters(existing.filters, filters)
                ):
                    item = document.history.pop(index)
                    item.timestamp = now
                    item.result_count = result_count
                    break

            if item is None:
                item = SearchHistoryItem(
                    query=query,
                    search_type=search_type,
                    filters=filters,
                    timestamp=now,
                    result_count=result_count,
                )

            document.history = [item] + document.history[: MAX_HISTORY_ITEMS - 1]
            return item

        return await self._modify(user_id, record)

    async def history(self, user_id: uuid.UUID) -> List[SearchHistoryItem]:
        """All history entries, newest first."""
        document = await self.get_document(user_id)
        return sorted(document.history, key=lambda h: as_utc(h.timestamp), reverse=True)

    async def recent_history(self, user_id: uuid.UUID, limit: int = MAX_RECENT_ITEMS) -> List[SearchHistoryItem]:
        return (await self.history(user_id))[:limit]

    async def search_history(self, user_id: uuid.UUID, text: str) -> List[SearchHistoryItem]:
        """Entries whose query contains ``text`` (case-insensitive)."""
        needle = text.lower()
        return [h for h in await self.history(user_id) if needle in h.query.lower()]

    async def grouped_history(
        self, user_id: uuid.UUID, now: Optional[datetime] = None
    ) -> Dict[str, List[SearchHistoryItem]]:
        return group_history_by_date(await self.history(user_id), now)

    async def remove_history(self, user_id: uuid.UUID, item_id: uuid.UUID) -> None:
        def drop(document: PreferencesDocument) -> None:
            remaining = [h for h in document.history if h.id != item_id]
            if len(remaining) == len(document.history):
                raise NotFoundError("History entry", str(item_id))
            document.history = remaining

        await self._modify(user_id, drop)

    async def clear_history(self, user_id: uuid.UUID) -> int:
        """Drop all history entries. Returns how many were removed."""
        row, document = await self._load(user_id)
        removed = len(document.history)
        if removed:
            # history only exists on a stored row
            document.history = []
            await self._write(row, document)
        self.logger.info("history_cleared", user_id=str(user_id), removed=removed)
        return removed

    # ------------------------------------------------------------------
    # UI state
    # ------------------------------------------------------------------

    async def update_ui_state(self, user_id: uuid.UUID, values: Dict[str, bool]) -> Dict[str, bool]:
        """Merge expand/collapse flags into the stored UI state."""
        def merge(document: PreferencesDocument) -> Dict[str, bool]:
            document.ui_state = {**document.ui_state, **values}
            return document.ui_state

        return await self._modify(user_id, merge)
