"""Encode/decode the per-user preference document.

Stored shapes:

- v1: a bare JSON list of ``{name, filters}`` presets (or ``{"version": 1,
  "presets": [...]}``), as the browser used to keep them
- v2: ``{"version": 2, "presets": [...], "history": [...], "ui_state": {...}}``

Everything reading or writing ``UserPreferences.document`` goes through
``decode``/``encode``; v1 is upgraded on read and written back as v2.
"""

from typing import Any, Dict, List

import structlog
from pydantic import ValidationError as PydanticValidationError

from xpshare.core.exceptions import ValidationError
from xpshare.models.base import utcnow
from xpshare.schemas.preferences import CURRENT_VERSION, FilterPreset, PreferencesDocument

logger = structlog.get_logger(__name__)


def _migrate_v1(items: List[Any]) -> PreferencesDocument:
    presets: Dict[str, FilterPreset] = {}
    for item in items:
        if not isinstance(item, dict) or not str(item.get("name", "")).strip():
            logger.warning("preferences_v1_preset_skipped", reason="missing name")
            continue
        try:
            preset = FilterPreset(
                name=item["name"].strip(),
                filters=item.get("filters") or {},
                created_at=item.get("created_at") or item.get("createdAt") or utcnow(),
            )
        except PydanticValidationError as e:
            logger.warning("preferences_v1_preset_skipped", name=item.get("name"), reason=str(e))
            continue
        # Later saves under the same name replaced earlier ones
        presets.pop(preset.name.lower(), None)
        presets[preset.name.lower()] = preset

    logger.info("preferences_migrated", from_version=1, to_version=CURRENT_VERSION, presets=len(presets))
    return PreferencesDocument(presets=list(presets.values()))


def decode(raw: Any) -> PreferencesDocument:
    """Parse a stored document of any supported version.

    Raises:
        ValidationError: Unknown version or a corrupt v2 document
    """
    if raw is None or raw == {}:
        return PreferencesDocument()

    if isinstance(raw, list):
        return _migrate_v1(raw)

    if not isinstance(raw, dict):
        raise ValidationError("Invalid preferences", "document must be an object or a list")

    version = raw.get("version")
    if version == 1:
        return _migrate_v1(raw.get("presets") or [])
    if version != CURRENT_VERSION:
        raise ValidationError("Unsupported preferences version", f"version {version!r} is not supported")

    try:
        return PreferencesDocument.model_validate(raw)
    except PydanticValidationError as e:
        raise ValidationError("Invalid preferences", str(e)) from e


def encode(document: PreferencesDocument) -> Dict[str, Any]:
    """JSON-ready v2 form of ``document``."""
    return document.model_dump(mode="json")
