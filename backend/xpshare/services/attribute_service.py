"""Controlled vocabulary administration.

Attribute schema CRUD plus the review workflow for custom values users typed
instead of picking an allowed value. A suggestion starts in
``pending_review`` and moves exactly once, to ``approved`` (promoted to a new
allowed value), ``merged`` (mapped onto an existing value) or ``rejected``.
"""

import uuid
from typing import Dict, List, Optional

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from xpshare.core.exceptions import ConflictError, NotFoundError, ValidationError
from xpshare.models.attribute_schema import AttributeSchema, CustomValueSuggestion
from xpshare.schemas.attribute import AttributeUpdateRequest

logger = structlog.get_logger(__name__)

PENDING = "pending_review"


def _has_value(allowed_values: Optional[List[dict]], value: str) -> bool:
    wanted = value.strip().lower()
    return any(str(v.get("value", "")).strip().lower() == wanted for v in allowed_values or [])


class AttributeService:
    """Admin operations on attribute_schema and custom_value_suggestions."""

    def __init__(self, db: AsyncSession):
        self.db = db
        self.logger = logger.bind(service="attribute_service")

    # ------------------------------------------------------------------
    # Attribute schema
    # ------------------------------------------------------------------

    async def list_attributes(self, category_slug: Optional[str] = None) -> List[AttributeSchema]:
        """Attributes ordered by sort_order, then key."""
        stmt = select(AttributeSchema).order_by(AttributeSchema.sort_order, AttributeSchema.key)
        if category_slug:
            stmt = stmt.where(AttributeSchema.category_slug == category_slug)
        result = await self.db.execute(stmt)
        return list(result.scalars().all())

    async def get_attribute(self, key: str) -> AttributeSchema:
        attribute = await self.db.get(AttributeSchema, key)
        if attribute is None:
            raise NotFoundError("Attribute", key)
        return attribute

    async def update_attribute(self, key: str, data: AttributeUpdateRequest) -> AttributeSchema:
        """Apply only the supplied fields.

        Raises:
            ValidationError: Nothing to update, or an enum left without values
            NotFoundError: Unknown key
        """
        changes = data.model_dump(exclude_unset=True)
        if not changes:
            raise ValidationError("No fields to update")

        attribute = await self.get_attribute(key)

        if "category_slug" in changes:
            changes["category_slug"] = changes["category_slug"] or None

        data_type = changes.get("data_type", attribute.data_type)
        allowed_values = changes.get("allowed_values", attribute.allowed_values)
        if data_type == "enum" and not allowed_values:
            raise ValidationError("Enum type requires at least one allowed value")

        for field, value in changes.items():
            setattr(attribute, field, value)
        await self.db.flush()

        self.logger.info("attribute_updated", key=key, fields=sorted(changes))
        return attribute

    async def delete_attribute(self, key: str) -> None:
        attribute = await self.get_attribute(key)
        await self.db.delete(attribute)
        await self.db.flush()
        self.logger.info("attribute_deleted", key=key)

    # ------------------------------------------------------------------
    # Custom value suggestions
    # ------------------------------------------------------------------

    async def list_suggestions(self, status: Optional[str] = PENDING) -> List[CustomValueSuggestion]:
        """Suggestions most used first; ``status=None`` lists every state."""
        stmt = select(CustomValueSuggestion).order_by(
            CustomValueSuggestion.times_used.desc(),
            CustomValueSuggestion.last_used_at.desc(),
        )
        if status is not None:
            stmt = stmt.where(CustomValueSuggestion.status == status)
        result = await self.db.execute(stmt)
        return list(result.scalars().all())

    async def suggestions_by_attribute(
        self, status: Optional[str] = PENDING
    ) -> Dict[str, List[CustomValueSuggestion]]:
        grouped: Dict[str, List[CustomValueSuggestion]] = {}
        for suggestion in await self.list_suggestions(status):
            grouped.setdefault(suggestion.attribute_key, []).append(suggestion)
        return grouped

    async def _pending_suggestion(self, suggestion_id: uuid.UUID) -> CustomValueSuggestion:
        suggestion = await self.db.get(CustomValueSuggestion, suggestion_id)
        if suggestion is None:
            raise NotFoundError("Suggestion", str(suggestion_id))
        if suggestion.status != PENDING:
            raise ConflictError(
                "Suggestion already reviewed",
                f"status is '{suggestion.status}'",
            )
        return suggestion

    async def promote(
        self, suggestion_id: uuid.UUID, value: str, label: Optional[str] = None
    ) -> CustomValueSuggestion:
        """Add ``value`` to the attribute's allowed values and approve.

        Raises:
            NotFoundError: Unknown suggestion or attribute
            ConflictError: Suggestion not pending, or value already allowed
        """
        suggestion = await self._pending_suggestion(suggestion_id)
        attribute = await self.get_attribute(suggestion.attribute_key)

        value = value.strip()
        if _has_value(attribute.allowed_values, value):
            raise ConflictError("Value already exists", value)

        label = (label or "").strip() or value[:1].upper() + value[1:]
        # Reassign so the JSON column is flagged dirty
        attribute.allowed_values = list(attribute.allowed_values or []) + [{"value": value, "label": label}]
        suggestion.status = "approved"
        suggestion.canonical_value = value
        await self.db.flush()

        self.logger.info(
            "suggestion_promoted",
            suggestion_id=str(suggestion_id),
            attribute_key=attribute.key,
            value=value,
        )
        return suggestion

    async def merge(self, suggestion_id: uuid.UUID, merge_into_value: str) -> CustomValueSuggestion:
        """Map the suggestion onto an existing allowed value.

        Raises:
            NotFoundError: Unknown suggestion or attribute
            ConflictError: Suggestion not pending
            ValidationError: Target is not an allowed value of the attribute
        """
        suggestion = await self._pending_suggestion(suggestion_id)
        attribute = await self.get_attribute(suggestion.attribute_key)

        target = merge_into_value.strip()
        if not _has_value(attribute.allowed_values, target):
            raise ValidationError("Unknown merge target", f"'{target}' is not an allowed value of {attribute.key}")

        suggestion.status = "merged"
        suggestion.merged_into = target
        suggestion.canonical_value = target
        await self.db.flush()

        self.logger.info("suggestion_merged", suggestion_id=str(suggestion_id), merged_into=target)
        return suggestion

    async def reject(self, suggestion_id: uuid.UUID) -> CustomValueSuggestion:
        suggestion = await self._pending_suggestion(suggestion_id)
        suggestion.status = "rejected"
        await self.db.flush()

        self.logger.info("suggestion_rejected", suggestion_id=str(suggestion_id))
        return suggestion
