"""Pydantic schemas for the XPShare API.

All request/response models are defined here for easy import.
"""

from xpshare.schemas.common import ApiResponse, ErrorResponse, PaginationMeta
from xpshare.schemas.search import (
    AutocompleteRequest,
    ClickRequest,
    ExperienceResponse,
    ExternalEventFlags,
    LocationFilter,
    QueryUnderstanding,
    SearchFilters,
    SearchRequest,
    SearchResultData,
    Suggestion,
)
from xpshare.schemas.saved_search import (
    SavedSearchCreateRequest,
    SavedSearchExecuteResponse,
    SavedSearchResponse,
    SavedSearchUpdateRequest,
)
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
from xpshare.schemas.preferences import (
    FilterPreset,
    HistoryAddRequest,
    PreferencesDocument,
    PresetSaveRequest,
    SearchHistoryItem,
    UiStateUpdate,
)
from xpshare.schemas.attribute import (
    AllowedValue,
    AttributeResponse,
    AttributeUpdateRequest,
    MergeRequest,
    PromoteRequest,
    RejectRequest,
    SuggestionResponse,
)
from xpshare.schemas.health import HealthCheckResponse

__all__ = [
    # Common
    "ApiResponse",
    "ErrorResponse",
    "PaginationMeta",
    # Search
    "AutocompleteRequest",
    "ClickRequest",
    "ExperienceResponse",
    "ExternalEventFlags",
    "LocationFilter",
    "QueryUnderstanding",
    "SearchFilters",
    "SearchRequest",
    "SearchResultData",
    "Suggestion",
    # Saved search
    "SavedSearchCreateRequest",
    "SavedSearchExecuteResponse",
    "SavedSearchResponse",
    "SavedSearchUpdateRequest",
    # Analytics
    "AnalyticsOverview",
    "HotspotEntry",
    "HotspotReport",
    "LowRelevanceQuery",
    "QueryStat",
    "SearchAnalyticsReport",
    "TrendBucket",
    "ZeroResultQuery",
    # Preferences
    "FilterPreset",
    "HistoryAddRequest",
    "PreferencesDocument",
    "PresetSaveRequest",
    "SearchHistoryItem",
    "UiStateUpdate",
    # Attributes
    "AllowedValue",
    "AttributeResponse",
    "AttributeUpdateRequest",
    "MergeRequest",
    "PromoteRequest",
    "RejectRequest",
    "SuggestionResponse",
    # Health
    "HealthCheckResponse",
]
