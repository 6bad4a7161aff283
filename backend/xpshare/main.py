"""XPShare search backend -- FastAPI application entry point."""

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from xpshare.api.routes.router import api_router
from xpshare.config import settings
from xpshare.core.exceptions import AuthenticationError, XPShareException
from xpshare.db.session import async_session_factory, engine
from xpshare.db.utils import create_tables
from xpshare.schemas import ErrorResponse
from xpshare.services.alert_scheduler import AlertScheduler
from xpshare.services.cache_service import get_cache_service

# Configure logging
logging.basicConfig(
    level=logging.INFO if settings.DEBUG else logging.WARNING,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

# Global scheduler instance
scheduler: Optional[AlertScheduler] = None


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan: startup and shutdown events."""
    global scheduler

    # Startup
    logger.info("Starting XPShare search API...")
    logger.info(f"Environment: {settings.ENVIRONMENT}")
    logger.info(f"Debug mode: {settings.DEBUG}")

    if settings.ENVIRONMENT != "test":
        try:
            await create_tables(engine)
            logger.info("Database tables verified/created")
        except Exception as e:
            logger.error(f"Database init failed: {e}", exc_info=True)

    # Saved-search alerts (only in non-test environments)
    if settings.ALERT_SCHEDULER_ENABLED and settings.ENVIRONMENT != "test":
        scheduler = AlertScheduler(
            async_session_factory,
            interval_minutes=settings.ALERT_CHECK_INTERVAL_MINUTES,
        )
        scheduler.start()
        logger.info(f"Alert scheduler started (every {settings.ALERT_CHECK_INTERVAL_MINUTES} min)")
    else:
        logger.info("Alert scheduler disabled")

    cache = get_cache_service()
    if await cache.health_check():
        logger.info("Redis cache connected successfully")
    else:
        logger.warning("Redis cache connection failed (will operate without caching)")

    yield

    # Shutdown
    logger.info("Shutting down XPShare search API...")

    if scheduler:
        scheduler.stop()
        scheduler = None

    await cache.close()
    logger.info("Redis cache connection closed")


app = FastAPI(
    title="XPShare Search API",
    description="Search, saved searches, analytics and controlled vocabulary for XPShare",
    version="0.1.0",
    docs_url="/docs" if settings.DEBUG else None,
    redoc_url="/redoc" if settings.DEBUG else None,
    lifespan=lifespan,
)

# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.get_cors_origins(),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def _error(status_code: int, error: str, details: Optional[str] = None, headers=None) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=ErrorResponse(error=error, details=details).model_dump(),
        headers=headers,
    )


@app.exception_handler(XPShareException)
async def xpshare_exception_handler(request: Request, exc: XPShareException) -> JSONResponse:
    log = logger.warning if exc.status_code < 500 else logger.error
    log(f"{request.method} {request.url.path} -> {exc.status_code}: {exc.message}")
    headers = {"WWW-Authenticate": "Bearer"} if isinstance(exc, AuthenticationError) else None
    return _error(exc.status_code, exc.message, exc.details, headers)


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    return _error(400, "Invalid request", str(exc.errors()))


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.error(f"Unhandled error on {request.method} {request.url.path}: {exc}", exc_info=exc)
    return _error(500, "Internal server error", str(exc))


# Register API router
app.include_router(api_router, prefix="/api")


@app.get("/")
async def root():
    """Root endpoint with API information."""
    return {
        "name": "XPShare Search API",
        "version": "0.1.0",
        "docs": "/docs" if settings.DEBUG else None,
        "health": "/api/health",
    }
