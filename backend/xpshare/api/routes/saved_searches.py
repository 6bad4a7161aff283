"""Saved search API endpoints."""

from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from xpshare.dependencies import get_current_user, get_db
from xpshare.schemas import (
    ApiResponse,
    ExperienceResponse,
    SavedSearchCreateRequest,
    SavedSearchExecuteResponse,
    SavedSearchResponse,
    SavedSearchUpdateRequest,
)
from xpshare.services.auth_service import CurrentUser
from xpshare.services.nlp_client import QueryUnderstander, get_query_understander
from xpshare.services.saved_search_service import SavedSearchService
from xpshare.services.search_service import SearchService

router = APIRouter()


@router.get("", response_model=ApiResponse)
async def list_saved_searches(
    current_user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Get the current user's saved searches, newest first."""
    service = SavedSearchService(db)
    saved = await service.list_saved_searches(current_user.id)

    return ApiResponse(
        status="success",
        data=[SavedSearchResponse.model_validate(s).model_dump(mode="json") for s in saved],
    )


@router.post("", response_model=ApiResponse, status_code=201)
async def create_saved_search(
    body: SavedSearchCreateRequest,
    current_user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Save a search. Names are unique per user (409 on duplicates)."""
    service = SavedSearchService(db)
    saved = await service.create_saved_search(current_user.id, body)

    return ApiResponse(
        status="success",
        data=SavedSearchResponse.model_validate(saved).model_dump(mode="json"),
    )


@router.get("/{saved_search_id}", response_model=ApiResponse)
async def get_saved_search(
    saved_search_id: UUID,
    current_user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    service = SavedSearchService(db)
    saved = await service.get_saved_search(current_user.id, saved_search_id)

    return ApiResponse(
        status="success",
        data=SavedSearchResponse.model_validate(saved).model_dump(mode="json"),
    )


@router.put("/{saved_search_id}", response_model=ApiResponse)
async def update_saved_search(
    saved_search_id: UUID,
    body: SavedSearchUpdateRequest,
    current_user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Partially update a saved search; only fields present in the body change."""
    service = SavedSearchService(db)
    saved = await service.update_saved_search(current_user.id, saved_search_id, body)

    return ApiResponse(
        status="success",
        data=SavedSearchResponse.model_validate(saved).model_dump(mode="json"),
    )


@router.delete("/{saved_search_id}", response_model=ApiResponse)
async def delete_saved_search(
    saved_search_id: UUID,
    current_user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    service = SavedSearchService(db)
    await service.delete_saved_search(current_user.id, saved_search_id)
    return ApiResponse(status="success", data={"deleted": True})


@router.post("/{saved_search_id}/execute", response_model=ApiResponse)
async def execute_saved_search(
    saved_search_id: UUID,
    current_user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    understander: Optional[QueryUnderstander] = Depends(get_query_understander),
):
    """Re-run a saved search and return the current results."""
    service = SavedSearchService(db)
    saved, outcome = await service.execute_saved_search(
        current_user.id, saved_search_id, SearchService(db, understander)
    )

    return ApiResponse(
        status="success",
        data=SavedSearchExecuteResponse(
            saved_search=SavedSearchResponse.model_validate(saved),
            total=outcome.total,
            results=[ExperienceResponse.model_validate(e) for e in outcome.results],
        ).model_dump(mode="json"),
    )
