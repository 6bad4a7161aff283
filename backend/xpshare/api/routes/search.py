"""Search API endpoints."""

from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from xpshare.dependencies import get_db, get_optional_user
from xpshare.schemas import (
    ApiResponse,
    AutocompleteRequest,
    ClickRequest,
    ExperienceResponse,
    SearchRequest,
    SearchResultData,
)
from xpshare.services.auth_service import CurrentUser
from xpshare.services.autocomplete_service import AutocompleteService
from xpshare.services.cache_service import CacheService, get_cache
from xpshare.services.nlp_client import QueryUnderstander, get_query_understander
from xpshare.services.query_builder import QueryBuilder
from xpshare.services.search_service import SearchService

router = APIRouter()


@router.post("", response_model=ApiResponse)
async def search(
    body: SearchRequest,
    user: Optional[CurrentUser] = Depends(get_optional_user),
    db: AsyncSession = Depends(get_db),
    understander: Optional[QueryUnderstander] = Depends(get_query_understander),
):
    """Search experiences in keyword, nlp or hybrid mode.

    Results are newest first. NLP and hybrid responses include the
    structured reading of the query under ``understood`` when available.
    """
    service = SearchService(db, understander)
    outcome = await QueryBuilder(body.filters).search(
        service,
        mode=body.mode,
        limit=body.limit,
        user_id=user.id if user else None,
        language=body.language,
    )

    return ApiResponse(
        status="success",
        data=SearchResultData(
            search_id=outcome.search_id,
            mode=outcome.mode,
            total=outcome.total,
            results=[ExperienceResponse.model_validate(e) for e in outcome.results],
            understood=outcome.understood,
            execution_time_ms=outcome.execution_time_ms,
        ),
    )


@router.post("/{search_id}/click", response_model=ApiResponse)
async def record_click(
    search_id: UUID,
    body: ClickRequest,
    db: AsyncSession = Depends(get_db),
):
    """Record which result of a logged search the user opened."""
    service = SearchService(db)
    await service.record_click(search_id, body.experience_id)
    return ApiResponse(status="success", data={"recorded": True})


@router.post("/autocomplete", response_model=ApiResponse)
async def autocomplete(
    body: AutocompleteRequest,
    user: Optional[CurrentUser] = Depends(get_optional_user),
    db: AsyncSession = Depends(get_db),
    cache: CacheService = Depends(get_cache),
):
    """Typed suggestions for a partial query."""
    service = AutocompleteService(db, cache)
    suggestions = await service.suggest(
        body.query,
        user_id=user.id if user else None,
        limit=body.limit,
    )
    return ApiResponse(status="success", data={"suggestions": suggestions})
