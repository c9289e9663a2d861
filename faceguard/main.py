"""Main application module for the face identification service."""
from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator, Dict, Type

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from faceguard.api import router as api_v1_router
from faceguard.core.config import settings
from faceguard.core.container import container
from faceguard.core.exceptions import (
    FaceGuardError,
    InvalidImageError,
    InvalidSampleOperation,
    ModelAcquisitionFailure,
    ProfileNotFoundError,
    ServiceNotInitializedError,
)
from faceguard.core.logging import get_logger, setup_logging

setup_logging(level=settings.LOG_LEVEL, environment=settings.ENVIRONMENT)
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[Any, None]:
    """Handle application startup and shutdown events.

    Args:
        app: FastAPI application instance

    Returns:
        AsyncGenerator[Any, None]: Async context manager for app lifecycle
    """
    logger.info(
        "Starting up face identification service",
        version=settings.VERSION,
        environment=settings.ENVIRONMENT,
    )

    await container.initialize()
    logger.info("Initialized application services")

    yield

    logger.info("Shutting down face identification service")
    await container.cleanup()
    logger.info("Cleaned up application resources")


app = FastAPI(
    title=settings.PROJECT_NAME,
    version=settings.VERSION,
    openapi_url=f"{settings.API_V1_STR}/openapi.json",
    docs_url="/docs" if settings.ENVIRONMENT == "development" else None,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(api_v1_router, prefix=settings.API_V1_STR)


# Status codes for domain errors that escape a route
ERROR_STATUS_CODES: Dict[Type[FaceGuardError], int] = {
    InvalidImageError: 400,
    ProfileNotFoundError: 404,
    InvalidSampleOperation: 422,
    ModelAcquisitionFailure: 503,
    ServiceNotInitializedError: 503,
}


def status_for(exc: FaceGuardError) -> int:
    """HTTP status for a domain error, matching the most specific class."""
    for cls in type(exc).__mro__:
        if cls in ERROR_STATUS_CODES:
            return ERROR_STATUS_CODES[cls]
    return 500


@app.exception_handler(FaceGuardError)
async def faceguard_error_handler(request: Request, exc: FaceGuardError) -> JSONResponse:
    """Translate uncaught domain errors into JSON error responses."""
    status_code = status_for(exc)
    logger.warning(
        "Request failed",
        path=request.url.path,
        error_type=type(exc).__name__,
        error=str(exc),
        status_code=status_code,
    )
    content: Dict[str, Any] = {"detail": str(exc)}
    if exc.details:
        content["context"] = jsonable_encoder(exc.details)
    return JSONResponse(status_code=status_code, content=content)


@app.get("/health")
async def health_check() -> dict:
    """Health check endpoint.

    Returns:
        dict: Health status and model readiness
    """
    loader = container.model_loader
    return {
        "status": "healthy",
        "models": loader.state.value if loader else "uninitialized",
        "demographics": bool(loader and loader.optional_available),
    }
