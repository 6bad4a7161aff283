"""Schemas for the per-user preference document.

The document is versioned. ``PreferencesDocument`` is the current (v2)
shape; older shapes are migrated by ``xpshare.services.preferences_codec``.
"""

from datetime import datetime
from typing import Dict, List, Literal, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field

from xpshare.schemas.search import SearchFilters, SearchMode

CURRENT_VERSION = 2


class FilterPreset(BaseModel):
    """Named filter snapshot, reusable but never scheduled."""

    id: UUID = Field(default_factory=uuid4)
    name: str
    filters: SearchFilters
    created_at: datetime


class SearchHistoryItem(BaseModel):
    """One entry of a user's search history."""

    id: UUID = Field(default_factory=uuid4)
    query: str
    search_type: SearchMode
    filters: Optional[SearchFilters] = None
    timestamp: datetime
    result_count: Optional[int] = None


class PreferencesDocument(BaseModel):
    """Version 2 preference document."""

    version: Literal[2] = CURRENT_VERSION
    presets: List[FilterPreset] = Field(default_factory=list)
    history: List[SearchHistoryItem] = Field(default_factory=list)
    ui_state: Dict[str, bool] = Field(default_factory=dict)


class PresetSaveRequest(BaseModel):
    """Save the given filters under a name (replaces a same-named preset)."""

    name: str = Field(min_length=1, max_length=100)
    filters: SearchFilters


class HistoryAddRequest(BaseModel):
    """Record a search in the user's history."""

    query: str = Field(min_length=1, max_length=500)
    search_type: SearchMode = "hybrid"
    filters: Optional[SearchFilters] = None
    result_count: Optional[int] = Field(None, ge=0)


class UiStateUpdate(BaseModel):
    """Expand/collapse flags to merge into the stored UI state."""

    values: Dict[str, bool]
