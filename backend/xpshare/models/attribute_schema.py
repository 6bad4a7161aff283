"""Controlled vocabulary: attribute schema and user-submitted custom values."""

from datetime import datetime
from typing import List, Optional

from sqlalchemy import JSON, Boolean, DateTime, Integer, String, Text, func
from sqlalchemy.orm import Mapped, mapped_column

from xpshare.models.base import Base, TimestampMixin, UUIDPrimaryKeyMixin, utcnow

SUGGESTION_STATUSES = ("pending_review", "approved", "rejected", "merged")


class AttributeSchema(TimestampMixin, Base):
    """Admin-curated structured attribute (object_shape, witness_count, ...)."""

    __tablename__ = "attribute_schema"

    key: Mapped[str] = mapped_column(String(100), primary_key=True)
    display_name: Mapped[str] = mapped_column(String(200), nullable=False)
    display_name_de: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    display_name_fr: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    display_name_es: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    category_slug: Mapped[Optional[str]] = mapped_column(
        String(50), nullable=True, index=True,
        comment="Restricts the attribute to one category, null = global"
    )
    data_type: Mapped[str] = mapped_column(
        String(20), nullable=False, default="text",
        comment="text | number | boolean | enum | date"
    )
    allowed_values: Mapped[Optional[List[dict]]] = mapped_column(
        JSON, nullable=True,
        comment="List of {value, label} for enum attributes"
    )
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    is_searchable: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    is_filterable: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    sort_order: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    def __repr__(self) -> str:
        return f"<AttributeSchema(key='{self.key}', data_type='{self.data_type}')>"


class CustomValueSuggestion(UUIDPrimaryKeyMixin, Base):
    """Free-text value users entered for an attribute, awaiting admin review."""

    __tablename__ = "custom_value_suggestions"

    attribute_key: Mapped[str] = mapped_column(String(100), nullable=False, index=True)
    custom_value: Mapped[str] = mapped_column(String(200), nullable=False)
    canonical_value: Mapped[str] = mapped_column(
        String(200), nullable=False,
        comment="Normalized form of custom_value"
    )
    times_used: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default="pending_review", index=True,
        comment="pending_review | approved | rejected | merged"
    )
    merged_into: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now(), nullable=False
    )
    last_used_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now(), nullable=False
    )

    def __repr__(self) -> str:
        return f"<CustomValueSuggestion(key='{self.attribute_key}', value='{self.custom_value}', status='{self.status}')>"
