"""
HS Code Resolver API - FastAPI application entry point
"""
import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator

import structlog
from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest
from starlette.responses import Response

from apps.api.metrics import classification_failures_total
from apps.api.routers import classification
from packages.common.config import Settings, get_settings
from packages.common.schemas.classification import ErrorResponse
from packages.common.database import sessionmanager
from packages.domain.classification.engine import ClassificationEngine, build_engine
from packages.domain.classification.errors import (
    ClassificationError,
    InferenceUnavailable,
    InvalidCorrection,
    InvalidInferenceOutput,
    NoValidItems,
    PersistenceFailure,
)

VERSION = "0.1.0"

logger = structlog.get_logger()


def configure_logging(log_level: str) -> None:
    """Configure structured logging"""
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer()
        ],
        wrapper_class=structlog.make_filtering_bound_logger(logging.getLevelName(log_level)),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )


def error_status(exc: ClassificationError) -> int:
    """HTTP status for an engine failure"""
    if isinstance(exc, (NoValidItems, InvalidCorrection)):
        return status.HTTP_422_UNPROCESSABLE_ENTITY
    if isinstance(exc, InferenceUnavailable):
        if exc.quota_exhausted:
            return status.HTTP_429_TOO_MANY_REQUESTS
        return status.HTTP_503_SERVICE_UNAVAILABLE
    if isinstance(exc, InvalidInferenceOutput):
        return status.HTTP_502_BAD_GATEWAY
    if isinstance(exc, PersistenceFailure):
        return status.HTTP_500_INTERNAL_SERVER_ERROR
    return status.HTTP_500_INTERNAL_SERVER_ERROR


def create_app(settings: Settings | None = None, engine: ClassificationEngine | None = None) -> FastAPI:
    """
    Build the FastAPI application.

    Args:
        settings: Defaults to environment settings
        engine: Pre-built engine (tests); built from settings during lifespan otherwise
    """
    settings = settings or get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        """Application lifespan context manager"""
        logger.info("starting_hs_resolver_api",
                    environment=settings.environment,
                    version=VERSION)

        # Catalog errors are fatal here: no requests are served without a catalog
        app.state.engine = engine if engine is not None else await build_engine(settings)

        yield

        logger.info("shutting_down_hs_resolver_api")
        await sessionmanager.close()

    app = FastAPI(
        title="HS Code Resolver API",
        description="Resolves free-text product names to 6-digit HS codes with a rationale",
        version=VERSION,
        lifespan=lifespan,
        docs_url="/docs" if settings.environment != "production" else None,
        redoc_url="/redoc" if settings.environment != "production" else None,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"] if settings.environment != "production" else [],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(ClassificationError)
    async def classification_exception_handler(request: Request, exc: ClassificationError):
        """Typed engine failures; error names the cause (quota vs generic)"""
        status_code = error_status(exc)
        classification_failures_total.labels(error=exc.error_code).inc()

        headers = {}
        retry_after = None
        if isinstance(exc, InferenceUnavailable) and exc.quota_exhausted:
            retry_after = exc.retry_after_seconds or settings.quota_cooldown_seconds
            headers["Retry-After"] = str(retry_after)

        log = logger.warning if status_code < 500 else logger.error
        log("classification_request_failed",
            path=request.url.path,
            error=exc.error_code,
            detail=exc.message)

        body = ErrorResponse(error=exc.error_code, detail=exc.message, retry_after_seconds=retry_after)
        return JSONResponse(
            status_code=status_code,
            content=body.model_dump(),
            headers=headers,
        )

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        """Handle validation errors with structured logging"""
        logger.warning("validation_error",
                       path=request.url.path,
                       errors=exc.errors())
        return JSONResponse(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            content={
                "error": "validation_error",
                "detail": exc.errors(),
            },
        )

    @app.exception_handler(Exception)
    async def general_exception_handler(request: Request, exc: Exception):
        """Handle unexpected errors"""
        logger.error("unhandled_exception",
                     path=request.url.path,
                     error=str(exc),
                     exc_info=True)
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content=ErrorResponse(error="internal_error", detail="Internal server error").model_dump(),
        )

    app.include_router(classification.router, prefix="/api/v1", tags=["Classification"])

    @app.get("/health", tags=["System"])
    async def health_check(request: Request):
        """Health check endpoint for Docker and monitoring"""
        engine: ClassificationEngine = request.app.state.engine
        return {
            "status": "healthy",
            "environment": settings.environment,
            "version": VERSION,
            "catalog_entries": len(engine.catalog),
            "priority_codes": len(engine.priority_codes or []),
            "override_backend": settings.override_backend,
            "inference_configured": engine.inference_configured,
        }

    @app.get("/metrics", tags=["System"])
    async def metrics():
        """Prometheus metrics endpoint"""
        if not settings.metrics_enabled:
            return JSONResponse(
                status_code=status.HTTP_404_NOT_FOUND,
                content={"detail": "Metrics disabled"}
            )

        return Response(
            content=generate_latest(),
            media_type=CONTENT_TYPE_LATEST,
        )

    return app


settings = get_settings()
configure_logging(settings.log_level)
app = create_app(settings)


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "apps.api.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.environment == "development",
        log_level=settings.log_level.lower(),
    )
