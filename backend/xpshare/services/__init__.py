"""Services module for business logic and data operations.

Services own the search, saved-search, preference, analytics and
attribute-vocabulary logic. Routes stay thin and delegate here.
"""

from xpshare.services.search_service import SearchService
from xpshare.services.saved_search_service import SavedSearchService
from xpshare.services.preferences_service import PreferencesService
from xpshare.services.analytics_service import AnalyticsService
from xpshare.services.attribute_service import AttributeService

__all__ = [
    "SearchService",
    "SavedSearchService",
    "PreferencesService",
    "AnalyticsService",
    "AttributeService",
]
