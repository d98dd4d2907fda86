"""
eBay Ingestion API - main application.

Builds the pipeline components once per process in the lifespan and
exposes job submission, status, results, queue drain and export routes.
"""
import logging
import sys
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from ebay_ingest.container import build_components
from ebay_ingest.strategies import ExtractOptions

from .config import Config, config
from .routes import cron_router, export_router, scrape_router

logger = logging.getLogger(__name__)


def configure_logging(settings: Config) -> None:
    logging.basicConfig(
        level=getattr(logging, settings.LOG_LEVEL, logging.INFO),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=[
            logging.StreamHandler(sys.stdout),
            logging.FileHandler('api.log')
        ]
    )


def create_app(settings: Optional[Config] = None) -> FastAPI:
    settings = settings or config

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Application lifespan management."""
        configure_logging(settings)
        logger.info("Starting eBay Ingestion API...")
        settings.validate()
        components = build_components(
            settings.DB_PATH,
            strategy=settings.EXTRACTION_STRATEGY,
            app_id=settings.EBAY_APP_ID,
            environment=settings.EBAY_ENVIRONMENT,
            headless=settings.HEADLESS,
            fallback_to_sample=settings.FALLBACK_TO_SAMPLE,
            daily_limit=settings.GLOBAL_DAILY_LIMIT,
            options=ExtractOptions(limit=settings.MAX_RESULTS, max_pages=settings.MAX_PAGES),
        )
        app.state.settings = settings
        app.state.components = components
        logger.info(f"Database path: {settings.DB_PATH}")
        logger.info("API startup complete")
        try:
            yield
        finally:
            logger.info("Shutting down eBay Ingestion API...")
            await components.aclose()

    app = FastAPI(
        title=settings.API_TITLE,
        version=settings.API_VERSION,
        description=settings.API_DESCRIPTION,
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=settings.CORS_ALLOW_CREDENTIALS,
        allow_methods=settings.CORS_ALLOW_METHODS,
        allow_headers=settings.CORS_ALLOW_HEADERS,
    )

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        """Global exception handler for unhandled errors."""
        logger.error(f"Unhandled exception: {exc}", exc_info=True)
        return JSONResponse(
            status_code=500,
            content={"detail": "Internal server error"}
        )

    @app.get("/health")
    async def health_check(request: Request):
        """Health check endpoint."""
        try:
            request.app.state.components.db.ping()
        except Exception as e:
            logger.error(f"Health check failed: {e}")
            raise HTTPException(status_code=503, detail="Service unavailable")
        return {
            "status": "healthy",
            "version": settings.API_VERSION,
            "database": "connected",
            "background_jobs": request.app.state.components.runner.in_flight,
        }

    app.include_router(scrape_router)
    app.include_router(cron_router)
    app.include_router(export_router)
    return app


app = create_app()

if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "api.main:app",
        host="0.0.0.0",
        port=8000,
        log_level=config.LOG_LEVEL.lower()
    )
