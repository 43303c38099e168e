"""Prayer Companion FastAPI Application.

Main entry point for the backend API server. Services are created in the
lifespan handler and disposed on shutdown; tests pass their own instances
to ``create_app``.
"""

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import ValidationError

from prayer_companion import __version__
from prayer_companion.api import router
from prayer_companion.config import get_settings
from prayer_companion.models import ErrorCode
from prayer_companion.services import (
    CommunityPrayerService,
    PrayerFetcher,
    create_prayer_fetcher,
)

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    datefmt="%H:%M:%S",
)

logger = logging.getLogger(__name__)


def create_app(
    prayer_fetcher: Optional[PrayerFetcher] = None,
    community_service: Optional[CommunityPrayerService] = None,
) -> FastAPI:
    """Build the FastAPI application.

    Args:
        prayer_fetcher: Pre-built fetcher; created from settings at startup if omitted.
        community_service: Pre-built prayer wall; created from settings if omitted.
    """
    settings = get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Application lifespan handler."""
        # Startup
        app.state.prayer_fetcher = prayer_fetcher or await create_prayer_fetcher(settings)
        app.state.community_service = community_service or CommunityPrayerService(
            settings.community_data_dir
        )
        logger.info("[APP] Services ready")
        yield
        # Shutdown
        await app.state.prayer_fetcher.dispose()
        logger.info("[APP] Services disposed")

    app = FastAPI(
        title="Prayer Companion API",
        description="Authentic prayers for life's situations, from many traditions",
        version=__version__,
        lifespan=lifespan,
    )

    # CORS configuration
    app.add_middleware(
        CORSMiddleware,
        allow_origins=list(settings.cors_allow_origins),
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Global exception handlers
    @app.exception_handler(ValidationError)
    async def validation_exception_handler(request: Request, exc: ValidationError):
        """Handle Pydantic validation errors."""
        return JSONResponse(
            status_code=422,
            content={
                "success": False,
                "error": {
                    "code": ErrorCode.VALIDATION_ERROR.value,
                    "message": str(exc),
                    "user_message": "Invalid request format. Please check your input.",
                },
            },
        )

    @app.exception_handler(Exception)
    async def general_exception_handler(request: Request, exc: Exception):
        """Handle unexpected errors."""
        logger.exception(f"[APP] Unhandled error on {request.url.path}")
        return JSONResponse(
            status_code=500,
            content={
                "success": False,
                "error": {
                    "code": ErrorCode.API_ERROR.value,
                    "message": str(exc),
                    "user_message": "Something went wrong. Please try again.",
                },
            },
        )

    # Include API routes
    app.include_router(router, prefix="/api")

    @app.get("/health")
    async def health_check():
        """Health check endpoint."""
        return {"status": "healthy"}

    return app


app = create_app()
