"""Attribute schema and custom value suggestion schemas."""

from datetime import datetime
from typing import List, Literal, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

DataType = Literal["text", "number", "boolean", "enum", "date"]


class AllowedValue(BaseModel):
    """One option of an enum attribute."""
    value: str
    label: str


class AttributeResponse(BaseModel):
    """Attribute schema entry."""
    model_config = ConfigDict(from_attributes=True)

    key: str
    display_name: str
    display_name_de: Optional[str] = None
    display_name_fr: Optional[str] = None
    display_name_es: Optional[str] = None
    category_slug: Optional[str] = None
    data_type: str
    allowed_values: Optional[List[AllowedValue]] = None
    description: Optional[str] = None
    is_searchable: bool
    is_filterable: bool
    sort_order: int


class AttributeUpdateRequest(BaseModel):
    """Partial attribute update; only fields present in the body apply."""
    display_name: Optional[str] = None
    display_name_de: Optional[str] = None
    display_name_fr: Optional[str] = None
    display_name_es: Optional[str] = None
    category_slug: Optional[str] = None
    data_type: Optional[DataType] = None
    allowed_values: Optional[List[AllowedValue]] = None
    description: Optional[str] = None
    is_searchable: Optional[bool] = None
    is_filterable: Optional[bool] = None
    sort_order: Optional[int] = None


class SuggestionResponse(BaseModel):
    """Custom value suggestion."""
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    attribute_key: str
    custom_value: str
    canonical_value: str
    times_used: int
    status: str
    merged_into: Optional[str] = None
    created_at: datetime
    last_used_at: datetime


class PromoteRequest(BaseModel):
    """Promote a suggestion to an official allowed value."""
    suggestion_id: UUID
    new_option_value: str = Field(min_length=1, max_length=200)
    new_option_label: Optional[str] = Field(None, max_length=200)


class MergeRequest(BaseModel):
    """Merge a suggestion into an existing allowed value."""
    suggestion_id: UUID
    merge_into_value: str = Field(min_length=1, max_length=200)


class RejectRequest(BaseModel):
    """Reject a suggestion as spam or invalid."""
    suggestion_id: UUID
