"""Experience model: a shared anomalous personal experience."""

import uuid
from datetime import date, datetime
from typing import List, Optional

from sqlalchemy import JSON, Boolean, Date, DateTime, Float, Integer, String, Text, Uuid, func
from sqlalchemy.orm import Mapped, mapped_column

from xpshare.models.base import Base, UUIDPrimaryKeyMixin, utcnow


class Experience(UUIDPrimaryKeyMixin, Base):
    """A published experience report (UFO sighting, dream, NDE, ...).

    Only the columns the search and analytics flows read are mapped here.
    Tags and external events are stored as JSON lists so the model works on
    both PostgreSQL and SQLite.
    """

    __tablename__ = "experiences"

    user_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid, nullable=True, index=True,
        comment="Author (auth user id)"
    )
    title: Mapped[str] = mapped_column(
        String(300), nullable=False,
        comment="Experience title"
    )
    story_text: Mapped[Optional[str]] = mapped_column(
        Text, nullable=True,
        comment="Full story text"
    )
    category: Mapped[str] = mapped_column(
        String(50), nullable=False, index=True,
        comment="Category slug (ufo, paranormal, dreams, ...)"
    )
    tags: Mapped[List[str]] = mapped_column(
        JSON, nullable=False, default=list,
        comment="Free-form tags"
    )
    location_text: Mapped[Optional[str]] = mapped_column(
        String(300), nullable=True,
        comment="Human readable location"
    )
    location_lat: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    location_lng: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    date_occurred: Mapped[Optional[date]] = mapped_column(
        Date, nullable=True, index=True,
        comment="When the experience happened"
    )
    time_of_day: Mapped[Optional[str]] = mapped_column(
        String(20), nullable=True,
        comment="morning | afternoon | evening | night"
    )
    is_verified: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False,
        comment="Whether moderators verified the report"
    )
    external_events: Mapped[List[str]] = mapped_column(
        JSON, nullable=False, default=list,
        comment="Correlated external events (solar_storm, full_moon, earthquake, geomagnetic)"
    )
    similar_count: Mapped[int] = mapped_column(
        Integer, nullable=False, default=0,
        comment="Number of similar experiences found by pattern matching"
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        server_default=func.now(),
        nullable=False,
        index=True,
    )

    def __repr__(self) -> str:
        return f"<Experience(id={self.id}, category='{self.category}', title='{self.title[:30]}')>"
