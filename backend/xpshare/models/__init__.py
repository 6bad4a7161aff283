"""SQLAlchemy models for XPShare.

All models are imported here so ``Base.metadata`` knows every table.
"""

from xpshare.models.base import Base, TimestampMixin, UUIDPrimaryKeyMixin
from xpshare.models.experience import Experience
from xpshare.models.search_analytics import SearchAnalytics
from xpshare.models.saved_search import SavedSearch
from xpshare.models.user_profile import UserProfile
from xpshare.models.user_preferences import UserPreferences
from xpshare.models.attribute_schema import AttributeSchema, CustomValueSuggestion

__all__ = [
    "Base",
    "TimestampMixin",
    "UUIDPrimaryKeyMixin",
    "Experience",
    "SearchAnalytics",
    "SavedSearch",
    "UserProfile",
    "UserPreferences",
    "AttributeSchema",
    "CustomValueSuggestion",
]
