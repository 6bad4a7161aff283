"""Admin API endpoints: search analytics and controlled vocabulary.

Every route requires an authenticated user with ``user_profiles.is_admin``.
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from xpshare.dependencies import get_admin_user, get_db
from xpshare.schemas import (
    ApiResponse,
    AttributeResponse,
    AttributeUpdateRequest,
    MergeRequest,
    PromoteRequest,
    RejectRequest,
    SuggestionResponse,
)
from xpshare.services.analytics_service import AnalyticsService
from xpshare.services.attribute_service import AttributeService
from xpshare.services.cache_service import CacheService, get_cache

router = APIRouter(dependencies=[Depends(get_admin_user)])


# ---------------------------------------------------------------------------
# Analytics
# ---------------------------------------------------------------------------

@router.get("/search-analytics", response_model=ApiResponse)
async def search_analytics(
    days: int = Query(7, ge=1, le=365, description="Window size in days"),
    db: AsyncSession = Depends(get_db),
    cache: CacheService = Depends(get_cache),
):
    """Popular, zero-result and low-relevance queries plus daily trends."""
    report = await AnalyticsService(db, cache).search_report(days)
    return ApiResponse(status="success", data=report.model_dump(mode="json"))


@router.get("/hotspots", response_model=ApiResponse)
async def hotspots(
    days: int = Query(30, ge=1, le=365, description="Window size in days"),
    db: AsyncSession = Depends(get_db),
    cache: CacheService = Depends(get_cache),
):
    """Most frequent categories, locations and tags of recent experiences."""
    report = await AnalyticsService(db, cache).hotspot_report(days)
    return ApiResponse(status="success", data=report.model_dump(mode="json"))


# ---------------------------------------------------------------------------
# Attribute schema
# ---------------------------------------------------------------------------

@router.get("/attributes", response_model=ApiResponse)
async def list_attributes(
    category: Optional[str] = Query(None, description="Filter by category slug"),
    db: AsyncSession = Depends(get_db),
):
    attributes = await AttributeService(db).list_attributes(category)
    return ApiResponse(
        status="success",
        data=[AttributeResponse.model_validate(a).model_dump(mode="json") for a in attributes],
    )


@router.get("/attributes/{key}", response_model=ApiResponse)
async def get_attribute(key: str, db: AsyncSession = Depends(get_db)):
    attribute = await AttributeService(db).get_attribute(key)
    return ApiResponse(
        status="success",
        data=AttributeResponse.model_validate(attribute).model_dump(mode="json"),
    )


@router.patch("/attributes/{key}", response_model=ApiResponse)
async def update_attribute(
    key: str,
    body: AttributeUpdateRequest,
    db: AsyncSession = Depends(get_db),
):
    """Update only the supplied fields of an attribute."""
    attribute = await AttributeService(db).update_attribute(key, body)
    return ApiResponse(
        status="success",
        data=AttributeResponse.model_validate(attribute).model_dump(mode="json"),
    )


@router.delete("/attributes/{key}", response_model=ApiResponse)
async def delete_attribute(key: str, db: AsyncSession = Depends(get_db)):
    await AttributeService(db).delete_attribute(key)
    return ApiResponse(status="success", data={"deleted": True})


# ---------------------------------------------------------------------------
# Custom value suggestions
# ---------------------------------------------------------------------------

@router.get("/custom-suggestions", response_model=ApiResponse)
async def list_suggestions(
    status: Optional[str] = Query(
        "pending_review",
        pattern="^(pending_review|approved|rejected|merged|all)$",
        description="Suggestion status, or 'all'",
    ),
    grouped: bool = Query(False, description="Group by attribute key"),
    db: AsyncSession = Depends(get_db),
):
    service = AttributeService(db)
    wanted = None if status == "all" else status

    if grouped:
        groups = await service.suggestions_by_attribute(wanted)
        return ApiResponse(
            status="success",
            data={
                key: [SuggestionResponse.model_validate(s).model_dump(mode="json") for s in items]
                for key, items in groups.items()
            },
        )

    suggestions = await service.list_suggestions(wanted)
    return ApiResponse(
        status="success",
        data=[SuggestionResponse.model_validate(s).model_dump(mode="json") for s in suggestions],
    )


@router.post("/custom-suggestions/promote", response_model=ApiResponse)
async def promote_suggestion(body: PromoteRequest, db: AsyncSession = Depends(get_db)):
    """Turn a suggestion into an official allowed value."""
    suggestion = await AttributeService(db).promote(
        body.suggestion_id, body.new_option_value, body.new_option_label
    )
    return ApiResponse(
        status="success",
        data=SuggestionResponse.model_validate(suggestion).model_dump(mode="json"),
    )


@router.post("/custom-suggestions/merge", response_model=ApiResponse)
async def merge_suggestion(body: MergeRequest, db: AsyncSession = Depends(get_db)):
    """Map a suggestion onto an existing allowed value."""
    suggestion = await AttributeService(db).merge(body.suggestion_id, body.merge_into_value)
    return ApiResponse(
        status="success",
        data=SuggestionResponse.model_validate(suggestion).model_dump(mode="json"),
    )


@router.post("/custom-suggestions/reject", response_model=ApiResponse)
async def reject_suggestion(body: RejectRequest, db: AsyncSession = Depends(get_db)):
    suggestion = await AttributeService(db).reject(body.suggestion_id)
    return ApiResponse(
        status="success",
        data=SuggestionResponse.model_validate(suggestion).model_dump(mode="json"),
    )
