"""Search Pydantic schemas for request/response validation."""

from datetime import date, datetime
from typing import Any, Dict, List, Literal, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

SearchMode = Literal["keyword", "nlp", "hybrid"]
Verification = Literal["all", "verified", "unverified"]
SuggestionType = Literal["query", "category", "location", "tag", "recent", "trending"]

# Operators users splice into the keyword text; they carry no structure.
BOOLEAN_OPERATORS = ("AND", "OR", "NOT")

# Flag name on ExternalEventFlags -> value stored in Experience.external_events
EXTERNAL_EVENT_NAMES = {
    "solar": "solar_storm",
    "moon": "full_moon",
    "earthquake": "earthquake",
    "geomagnetic": "geomagnetic",
}


def _unique(values: List[str]) -> List[str]:
    seen = set()
    result = []
    for value in values:
        value = value.strip()
        if value and value not in seen:
            seen.add(value)
            result.append(value)
    return result


class LocationFilter(BaseModel):
    """Named place with optional coordinates."""

    name: str = ""
    lat: Optional[float] = Field(None, ge=-90, le=90)
    lng: Optional[float] = Field(None, ge=-180, le=180)

    @property
    def has_coordinates(self) -> bool:
        return self.lat is not None and self.lng is not None


class ExternalEventFlags(BaseModel):
    """External events an experience must correlate with."""

    solar: bool = False
    moon: bool = False
    earthquake: bool = False
    geomagnetic: bool = False

    def required_events(self) -> List[str]:
        """Stored event names for every flag that is switched on."""
        return [stored for flag, stored in EXTERNAL_EVENT_NAMES.items() if getattr(self, flag)]


class SearchFilters(BaseModel):
    """Structured filter object assembled by the query builder.

    Categories and tags behave as sets: duplicates and blanks are dropped
    while the first-seen order is kept.
    """

    model_config = ConfigDict(validate_assignment=True)

    keywords: str = ""
    categories: List[str] = Field(default_factory=list)
    location: Optional[LocationFilter] = None
    radius: float = Field(50, ge=0, description="Search radius in km")
    date_from: Optional[date] = None
    date_to: Optional[date] = None
    tags: List[str] = Field(default_factory=list)
    external_events: ExternalEventFlags = Field(default_factory=ExternalEventFlags)
    verification: Verification = "all"
    min_similar: int = Field(0, ge=0, description="Minimum number of similar experiences")

    @field_validator("categories", "tags")
    @classmethod
    def dedupe(cls, v: List[str]) -> List[str]:
        return _unique(v)

    @model_validator(mode="after")
    def check_date_range(self) -> "SearchFilters":
        if self.date_from and self.date_to and self.date_from > self.date_to:
            raise ValueError("date_from must not be after date_to")
        return self


class SearchRequest(BaseModel):
    """Body of POST /api/search."""

    mode: SearchMode = "hybrid"
    filters: SearchFilters = Field(default_factory=SearchFilters)
    limit: Optional[int] = Field(None, ge=1)
    language: Optional[str] = None


class QueryUnderstanding(BaseModel):
    """Structured reading of a natural language query.

    Produced by the external query understanding service; unknown keys are
    ignored.
    """

    keywords: List[str] = Field(default_factory=list)
    categories: List[str] = Field(default_factory=list)
    location: Optional[LocationFilter] = None
    radius: Optional[float] = Field(None, ge=0)
    date_from: Optional[date] = None
    date_to: Optional[date] = None
    time_of_day: Optional[Literal["morning", "afternoon", "evening", "night"]] = None
    tags: List[str] = Field(default_factory=list)
    attributes: List[Dict[str, Any]] = Field(default_factory=list)


class ExperienceResponse(BaseModel):
    """Experience as returned in search results."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    title: str
    story_text: Optional[str] = None
    category: str
    tags: List[str] = Field(default_factory=list)
    location_text: Optional[str] = None
    location_lat: Optional[float] = None
    location_lng: Optional[float] = None
    date_occurred: Optional[date] = None
    time_of_day: Optional[str] = None
    is_verified: bool
    external_events: List[str] = Field(default_factory=list)
    similar_count: int
    created_at: datetime


class SearchResultData(BaseModel):
    """Payload of a search response."""

    search_id: Optional[UUID] = None
    mode: SearchMode
    total: int
    results: List[ExperienceResponse]
    understood: Optional[QueryUnderstanding] = None
    execution_time_ms: int


class ClickRequest(BaseModel):
    """Records which result a user opened."""

    experience_id: UUID


class Suggestion(BaseModel):
    """Autocomplete suggestion. The type only selects icon and colour."""

    text: str
    type: SuggestionType
    count: Optional[int] = None


class AutocompleteRequest(BaseModel):
    """Body of POST /api/search/autocomplete."""

    query: str
    limit: int = Field(8, ge=1, le=20)
