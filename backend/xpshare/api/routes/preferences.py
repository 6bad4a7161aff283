"""Preference API endpoints: filter presets, search history and UI state."""

from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from xpshare.dependencies import get_current_user, get_db
from xpshare.schemas import (
    ApiResponse,
    HistoryAddRequest,
    PresetSaveRequest,
    UiStateUpdate,
)
from xpshare.services.auth_service import CurrentUser
from xpshare.services.preferences_service import PreferencesService

router = APIRouter()


@router.get("", response_model=ApiResponse)
async def get_preferences(
    current_user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """The whole preference document (always returned as the current version)."""
    document = await PreferencesService(db).get_document(current_user.id)
    return ApiResponse(status="success", data=document.model_dump(mode="json"))


# ---------------------------------------------------------------------------
# Presets
# ---------------------------------------------------------------------------

@router.get("/presets", response_model=ApiResponse)
async def list_presets(
    current_user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    presets = await PreferencesService(db).list_presets(current_user.id)
    return ApiResponse(status="success", data=[p.model_dump(mode="json") for p in presets])


@router.put("/presets", response_model=ApiResponse)
async def save_preset(
    body: PresetSaveRequest,
    current_user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Save filters under a name, replacing a preset with the same name."""
    preset = await PreferencesService(db).save_preset(current_user.id, body.name, body.filters)
    return ApiResponse(status="success", data=preset.model_dump(mode="json"))


@router.get("/presets/{name}", response_model=ApiResponse)
async def get_preset(
    name: str,
    current_user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    preset = await PreferencesService(db).get_preset(current_user.id, name)
    return ApiResponse(status="success", data=preset.model_dump(mode="json"))


@router.delete("/presets/{name}", response_model=ApiResponse)
async def delete_preset(
    name: str,
    current_user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    await PreferencesService(db).delete_preset(current_user.id, name)
    return ApiResponse(status="success", data={"deleted": True})


# ---------------------------------------------------------------------------
# Search history
# ---------------------------------------------------------------------------

@router.get("/history", response_model=ApiResponse)
async def get_history(
    q: Optional[str] = Query(None, description="Only entries whose query contains this text"),
    limit: int = Query(10, ge=1, le=100),
    grouped: bool = Query(False, description="Group by today/yesterday/this_week/this_month/older"),
    current_user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Search history, newest first."""
    service = PreferencesService(db)

    if grouped:
        groups = await service.grouped_history(current_user.id)
        return ApiResponse(
            status="success",
            data={name: [h.model_dump(mode="json") for h in items] for name, items in groups.items()},
        )

    if q:
        items = (await service.search_history(current_user.id, q))[:limit]
    else:
        items = await service.recent_history(current_user.id, limit)
    return ApiResponse(status="success", data=[h.model_dump(mode="json") for h in items])


@router.post("/history", response_model=ApiResponse, status_code=201)
async def add_history(
    body: HistoryAddRequest,
    current_user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    item = await PreferencesService(db).add_history(
        current_user.id,
        query=body.query,
        search_type=body.search_type,
        filters=body.filters,
        result_count=body.result_count,
    )
    return ApiResponse(status="success", data=item.model_dump(mode="json"))


@router.delete("/history/{item_id}", response_model=ApiResponse)
async def remove_history(
    item_id: UUID,
    current_user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    await PreferencesService(db).remove_history(current_user.id, item_id)
    return ApiResponse(status="success", data={"deleted": True})


@router.delete("/history", response_model=ApiResponse)
async def clear_history(
    current_user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    removed = await PreferencesService(db).clear_history(current_user.id)
    return ApiResponse(status="success", data={"deleted": removed})


# ---------------------------------------------------------------------------
# UI state
# ---------------------------------------------------------------------------

@router.patch("/ui-state", response_model=ApiResponse)
async def update_ui_state(
    body: UiStateUpdate,
    current_user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    state = await PreferencesService(db).update_ui_state(current_user.id, body.values)
    return ApiResponse(status="success", data=state)
