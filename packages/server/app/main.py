"""
StudyHub API Server

Entry point for the FastAPI application.
"""

import structlog
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError

from app.core.config import get_settings
from app.core.database import check_db
from app.core.errors import ServiceError, service_error_handler, storage_error_handler
from app.core.middleware import RequestLoggingMiddleware, SecurityHeadersMiddleware
from app.core.redis import close_redis
from app.api.v1 import router as api_v1_router

settings = get_settings()
log = structlog.get_logger()


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    app = FastAPI(
        title="StudyHub",
        description="Study group queues with capacity-limited signups and topics.",
        version="0.1.0",
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
    )

    # Middleware (order matters - outermost first)
    app.add_middleware(SecurityHeadersMiddleware)
    app.add_middleware(RequestLoggingMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PATCH", "PUT", "DELETE"],
        allow_headers=["Content-Type", "Authorization"],
    )

    app.add_exception_handler(ServiceError, service_error_handler)
    app.add_exception_handler(SQLAlchemyError, storage_error_handler)

    # API routes
    app.include_router(api_v1_router, prefix="/api/v1")

    @app.get("/health", tags=["System"])
    async def health_check():
        """Health check endpoint for liveness probes."""
        return {"status": "ok"}

    @app.get("/ready", tags=["System"])
    async def readiness_check():
        """Readiness check endpoint: the database must answer."""
        try:
            await check_db()
        except (SQLAlchemyError, OSError) as exc:
            log.warning("StudyHub not ready", error=str(exc))
            return JSONResponse(status_code=503, content={"status": "unavailable"})
        return {"status": "ready"}

    @app.on_event("startup")
    async def on_startup():
        log.info("StudyHub starting", timezone=settings.timezone)

    @app.on_event("shutdown")
    async def on_shutdown():
        log.info("StudyHub shutting down")
        await close_redis()

    return app


app = create_app()
