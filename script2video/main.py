"""
Script2Video API

Main FastAPI application entry point. Serves the media proxy used by
browser-side previews and a health check.

Run with:
    uvicorn script2video.main:app
"""

from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from script2video.api import api_router
from script2video.core.config import Settings, get_settings
from script2video.core.database import Database
from script2video.core.logging import configure_logging
from script2video.services.ffmpeg_runner import validate_ffmpeg_available
from script2video.services.media_proxy import MediaProxy


def create_app(
    settings: Optional[Settings] = None,
    media_proxy: Optional[MediaProxy] = None,
    database: Optional[Database] = None,
) -> FastAPI:
    """
    Build the FastAPI application.

    Args:
        settings: Application settings (defaults to get_settings())
        media_proxy: MediaProxy override; one is created from settings otherwise
        database: Database override; one is created from settings otherwise
    """
    settings = settings or get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        configure_logging(settings.log_level)
        owned_proxy = app.state.media_proxy is None
        owned_db = app.state.database is None
        if owned_proxy:
            app.state.media_proxy = MediaProxy(timeout=settings.fetch_timeout_seconds)
        if owned_db:
            app.state.database = Database(settings.database_url, echo=settings.debug)
        try:
            yield
        finally:
            if owned_proxy:
                await app.state.media_proxy.aclose()
            if owned_db:
                await app.state.database.dispose()

    app = FastAPI(
        title="Script2Video API",
        description="Script timeline video compositor",
        version=settings.version,
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.media_proxy = media_proxy
    app.state.database = database

    # CORS configuration (loaded from environment)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=False,
        allow_methods=["GET", "HEAD", "OPTIONS"],
        allow_headers=["*"],
        expose_headers=["X-Proxy-Info", "X-Original-Type", "Accept-Ranges"],
    )

    # Include API routes
    app.include_router(api_router, prefix="/api")

    @app.get("/")
    async def root():
        """Root endpoint - API info."""
        return {
            "name": settings.app_name,
            "version": settings.version,
            "status": "running",
        }

    @app.get("/health")
    async def health_check():
        """
        Health check endpoint.

        Checks the database connection; ffmpeg availability is reported but
        does not affect the status (the API itself never renders).
        """
        checks = {}
        healthy = True

        try:
            await app.state.database.ping()
            checks["database"] = {"status": "healthy"}
        except Exception as e:
            checks["database"] = {"status": "unhealthy", "error": str(e)}
            healthy = False

        checks["ffmpeg"] = {"available": validate_ffmpeg_available()}

        return JSONResponse(
            status_code=200 if healthy else 503,
            content={"status": "healthy" if healthy else "unhealthy", "checks": checks},
        )

    return app


app = create_app()
