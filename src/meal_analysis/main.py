"""FastAPI application entry point."""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from meal_analysis.api.routes import analysis, usage
from meal_analysis.core.config import StorageBackend, get_settings
from meal_analysis.core.exceptions import APIError
from meal_analysis.db.mongo import MongoDB
from meal_analysis.services.cache import MongoAnalysisCache
from meal_analysis.services.pipeline import create_pipeline

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan manager.

    Handles startup and shutdown events.
    """
    # Startup
    settings = get_settings()
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    logger.info(f"Starting {settings.app_name} v{settings.api_version}")

    db = None
    if settings.storage_backend == StorageBackend.MONGO:
        logger.info(f"Connecting to MongoDB at {settings.mongo_uri[:20]}...")
        MongoDB.connect(settings.mongo_uri, settings.db_name)
        db = MongoDB.get_database()

    app.state.pipeline = create_pipeline(settings, db)
    if isinstance(app.state.pipeline.cache, MongoAnalysisCache):
        await app.state.pipeline.cache.ensure_indexes()

    yield

    # Shutdown
    logger.info("Shutting down...")
    await app.state.pipeline.close()
    MongoDB.close()


def create_app() -> FastAPI:
    """
    Create and configure the FastAPI application.

    Returns:
        Configured FastAPI instance
    """
    settings = get_settings()

    app = FastAPI(
        title=settings.app_name,
        version=settings.api_version,
        description="Meal photo nutrition analysis with provider fallback and daily quotas",
        lifespan=lifespan,
        docs_url="/docs",
        redoc_url="/redoc",
    )

    # CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],  # Configure appropriately for production
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Exception handlers
    @app.exception_handler(APIError)
    async def api_error_handler(request: Request, exc: APIError):
        """Handle custom API errors."""
        return JSONResponse(
            status_code=exc.status_code,
            content={
                "error": exc.message,
                "details": exc.details,
            },
        )

    # Health check endpoint
    @app.get("/health")
    async def health_check(request: Request):
        """Health check endpoint."""
        pipeline = getattr(request.app.state, "pipeline", None)
        return {
            "status": "healthy",
            "service": settings.app_name,
            "version": settings.api_version,
            "storage": settings.storage_backend.value,
            "mongodb": MongoDB.is_connected(),
            "providers": [p.provider_name for p in pipeline.providers] if pipeline else [],
            "quota_enforced": settings.quota_enforcement_enabled,
        }

    # Root endpoint
    @app.get("/")
    async def root():
        """Root endpoint with API info."""
        return {
            "name": settings.app_name,
            "version": settings.api_version,
            "docs": "/docs",
            "health": "/health",
        }

    # Include routers
    app.include_router(analysis.router, prefix="/analysis", tags=["Analysis"])
    app.include_router(usage.router, prefix="/usage", tags=["Usage"])

    return app


# Create app instance
app = create_app()


def run() -> None:
    """Run the API with uvicorn."""
    import uvicorn

    settings = get_settings()
    uvicorn.run("meal_analysis.main:app", host="0.0.0.0", port=8000, reload=settings.debug)
