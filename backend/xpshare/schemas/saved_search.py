"""Saved search Pydantic schemas."""

from datetime import datetime
from typing import List, Literal, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator

from xpshare.schemas.search import ExperienceResponse, SearchFilters, SearchMode

AlertFrequency = Literal["immediate", "daily", "weekly"]


class SavedSearchCreateRequest(BaseModel):
    """Request to create a saved search."""
    name: str = Field(min_length=1, max_length=100)
    query: str = Field("", max_length=500)
    search_type: SearchMode = "hybrid"
    filters: SearchFilters = Field(default_factory=SearchFilters)
    is_alert_enabled: bool = False
    alert_frequency: Optional[AlertFrequency] = None

    @field_validator("name")
    @classmethod
    def strip_name(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("name must not be blank")
        return v


class SavedSearchUpdateRequest(BaseModel):
    """Partial update; only fields present in the body are applied."""
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    query: Optional[str] = Field(None, max_length=500)
    search_type: Optional[SearchMode] = None
    filters: Optional[SearchFilters] = None
    is_alert_enabled: Optional[bool] = None
    alert_frequency: Optional[AlertFrequency] = None

    @field_validator("name")
    @classmethod
    def strip_name(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return v
        v = v.strip()
        if not v:
            raise ValueError("name must not be blank")
        return v


class SavedSearchResponse(BaseModel):
    """Saved search response."""
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    name: str
    query: str
    search_type: str
    filters: Optional[dict] = None
    is_alert_enabled: bool
    alert_frequency: Optional[str] = None
    last_alert_sent_at: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime


class SavedSearchExecuteResponse(BaseModel):
    """Fresh results of re-running a saved search."""
    saved_search: SavedSearchResponse
    total: int
    results: List[ExperienceResponse]
