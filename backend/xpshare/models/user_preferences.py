"""Per-user preference document (presets, search history, UI state)."""

import uuid
from datetime import datetime

from sqlalchemy import JSON, DateTime, Uuid, func
from sqlalchemy.orm import Mapped, mapped_column

from xpshare.models.base import Base, utcnow


class UserPreferences(Base):
    """A single versioned JSON document per user.

    The document is only ever read and written through
    ``xpshare.services.preferences_codec``.
    """

    __tablename__ = "user_preferences"

    user_id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True)
    document: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        onupdate=utcnow,
        server_default=func.now(),
        nullable=False,
    )
