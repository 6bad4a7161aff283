"""SavedSearch model for named, optionally alerting filter configurations."""

import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import JSON, Boolean, DateTime, String, UniqueConstraint, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from xpshare.models.base import Base, TimestampMixin, UUIDPrimaryKeyMixin

ALERT_FREQUENCIES = ("immediate", "daily", "weekly")


class SavedSearch(UUIDPrimaryKeyMixin, TimestampMixin, Base):
    """User's saved search with an optional alert subscription."""

    __tablename__ = "saved_searches"
    __table_args__ = (
        UniqueConstraint("user_id", "name", name="uq_saved_searches_user_name"),
    )

    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, nullable=False, index=True,
        comment="Owner (auth user id)"
    )
    name: Mapped[str] = mapped_column(
        String(100), nullable=False,
        comment="Display name, unique per user"
    )
    query: Mapped[str] = mapped_column(
        String(500), nullable=False, default="",
        comment="Query text the search runs with"
    )
    search_type: Mapped[str] = mapped_column(
        String(20), nullable=False, default="hybrid",
        comment="keyword | nlp | hybrid"
    )
    filters: Mapped[Optional[dict]] = mapped_column(
        JSON, nullable=True,
        comment="Serialized SearchFilters"
    )
    is_alert_enabled: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False,
        comment="Whether new matches should trigger alerts"
    )
    alert_frequency: Mapped[Optional[str]] = mapped_column(
        String(20), nullable=True,
        comment="immediate | daily | weekly; kept while alerts are disabled"
    )
    last_alert_sent_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True,
        comment="When the last alert was dispatched"
    )

    def __repr__(self) -> str:
        return f"<SavedSearch(user={self.user_id}, name='{self.name}', alert={self.alert_frequency if self.is_alert_enabled else None})>"
