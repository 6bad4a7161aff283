"""Search log rows for analytics."""

import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import JSON, DateTime, Integer, String, Uuid, func
from sqlalchemy.orm import Mapped, mapped_column

from xpshare.models.base import Base, UUIDPrimaryKeyMixin, utcnow


class SearchAnalytics(UUIDPrimaryKeyMixin, Base):
    """One row per executed search.

    Rows are never aggregated in SQL; the analytics service folds raw rows
    by canonical query text in Python.
    """

    __tablename__ = "search_analytics"

    user_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid, nullable=True, index=True,
        comment="Searching user, null for anonymous searches"
    )
    query_text: Mapped[str] = mapped_column(
        String(500),
        nullable=False,
        comment="Query exactly as typed"
    )
    search_type: Mapped[Optional[str]] = mapped_column(
        String(20), nullable=True,
        comment="keyword | nlp | hybrid"
    )
    language: Mapped[Optional[str]] = mapped_column(String(10), nullable=True)
    filters: Mapped[Optional[dict]] = mapped_column(
        JSON, nullable=True,
        comment="Filter snapshot the search ran with"
    )

    # Analytics
    result_count: Mapped[Optional[int]] = mapped_column(
        Integer,
        nullable=True,
        comment="How many results the search returned"
    )
    execution_time_ms: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    clicked_result_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid, nullable=True,
        comment="Experience the user opened from the results, if any"
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        server_default=func.now(),
        nullable=False,
        index=True,
        comment="When the search ran"
    )

    def __repr__(self) -> str:
        return f"<SearchAnalytics(id={self.id}, query='{self.query_text}', results={self.result_count})>"
