"""
Media Catalog API - FastAPI Application

Main entry point for the API server.
Environment-agnostic: configuration reads from settings (.env file).
"""

import logging
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from media_catalog.errors import AppError
from media_catalog.logging_setup import setup_logging
from media_catalog.settings import get_settings
from api.dependencies import AppState, lifespan_handler
from api.routers import health, records

logger = logging.getLogger(__name__)


async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    """Translate AppError into its status code and JSON body"""
    if exc.is_operational:
        logger.warning(f"{request.method} {request.url.path} -> {exc.status_code} {exc.code}: {exc.message}")
    else:
        logger.error(f"{request.method} {request.url.path} -> {exc.code}: {exc.message}", exc_info=exc)
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


def create_app(state: Optional[AppState] = None) -> FastAPI:
    """
    Application factory for creating FastAPI app.

    Args:
        state: Pre-built AppState (tests); built from settings when omitted

    Returns:
        Configured FastAPI application instance
    """
    cfg = state.settings if state is not None else get_settings()
    setup_logging(cfg.log_level)

    app = FastAPI(
        title="Media Catalog API",
        description="Catalog queries served from MongoDB, or from a static snapshot when it is unavailable",
        version="0.1.0",
        lifespan=lifespan_handler,
    )
    app.state.catalog = state or AppState(cfg)
    app.add_exception_handler(AppError, app_error_handler)

    logger.info(f"Configuring CORS with origins: {cfg.cors_origins}")
    app.add_middleware(
        CORSMiddleware,
        allow_origins=cfg.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(records.router, prefix="/api/v1", tags=["records"])
    app.include_router(health.router, prefix="/api/v1/health", tags=["health"])

    @app.get("/")
    async def root():
        """Root endpoint - API info"""
        return {
            "name": "Media Catalog API",
            "version": "0.1.0",
            "environment": cfg.env,
            "status": "running",
            "docs": "/docs",
            "health": "/api/v1/health/ready",
        }

    logger.info(f"FastAPI application created (env={cfg.env})")
    return app


if __name__ == "__main__":
    import uvicorn

    cfg = get_settings()
    logger.info(f"Starting API server on {cfg.api_host}:{cfg.api_port}")
    logger.info(f"Environment: {cfg.env}")

    uvicorn.run(
        "api.main:create_app",
        factory=True,
        host=cfg.api_host,
        port=cfg.api_port,
        reload=cfg.api_reload,
        workers=cfg.api_workers if not cfg.api_reload else 1,
        log_level=cfg.log_level.lower(),
    )
