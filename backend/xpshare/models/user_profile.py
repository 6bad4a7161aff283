"""User profile model.

Accounts live in the external auth service; this table only holds the
application-side profile, keyed by the auth user id.
"""

import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import Boolean, DateTime, String, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from xpshare.models.base import Base, TimestampMixin


class UserProfile(TimestampMixin, Base):
    """Application profile for an authenticated user."""

    __tablename__ = "user_profiles"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid, primary_key=True,
        comment="Same id as the auth user"
    )
    username: Mapped[str] = mapped_column(
        String(50), unique=True, nullable=False, index=True,
        comment="Display name"
    )
    is_admin: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False,
        comment="Whether user has admin privileges"
    )
    last_seen_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True,
    )

    def __repr__(self) -> str:
        return f"<UserProfile(id={self.id}, username='{self.username}')>"
