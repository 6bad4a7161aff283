"""API router -- aggregates all endpoint routers."""

from fastapi import APIRouter

from xpshare.api.routes import admin, health, preferences, saved_searches, search

api_router = APIRouter()

api_router.include_router(health.router, tags=["health"])
api_router.include_router(search.router, prefix="/search", tags=["search"])
api_router.include_router(saved_searches.router, prefix="/saved-searches", tags=["saved-searches"])
api_router.include_router(preferences.router, prefix="/preferences", tags=["preferences"])
api_router.include_router(admin.router, prefix="/admin", tags=["admin"])
