"""
FastAPI application entry point with health endpoints and service routing.

Domain errors raised by the services are mapped to HTTP status codes in
one place, so routers stay free of try/except blocks.
"""

from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from redis.exceptions import RedisError
from sqlalchemy import text

from telecore.api.v1 import (
    disconnections_router,
    invoices_router,
    numbers_router,
    orders_router,
    pricing_router,
    wallet_router,
)
from telecore.cache.redis_client import close_redis_client, get_redis_client
from telecore.core.config import get_settings
from telecore.core.exceptions import (
    ConflictError,
    InvalidTransitionError,
    NotFoundError,
    PricingUnavailableError,
    TelecoreError,
    ValidationError,
)
from telecore.core.logging import (
    clear_context,
    configure_logging,
    get_logger,
    get_request_id,
    log_performance,
    set_actor_id,
    set_request_id,
)
from telecore.database.connection import dispose_engine, get_session

configure_logging()
logger = get_logger(__name__)

ERROR_STATUS_CODES: tuple[tuple[type[TelecoreError], int], ...] = (
    (NotFoundError, status.HTTP_404_NOT_FOUND),
    (ValidationError, status.HTTP_400_BAD_REQUEST),
    (InvalidTransitionError, status.HTTP_409_CONFLICT),
    (ConflictError, status.HTTP_409_CONFLICT),
    (PricingUnavailableError, status.HTTP_422_UNPROCESSABLE_ENTITY),
)


def status_code_for(exc: TelecoreError) -> int:
    for error_type, status_code in ERROR_STATUS_CODES:
        if isinstance(exc, error_type):
            return status_code
    return status.HTTP_500_INTERNAL_SERVER_ERROR


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """
    Application lifespan context manager for startup and shutdown events.

    The database engine and Redis client are created lazily on first use
    and released here on shutdown.
    """
    settings = get_settings()

    logger.info(
        "Application starting",
        environment=settings.environment,
        debug=settings.debug,
        version=settings.app_version,
        lock_backend=settings.lock_backend,
    )

    yield

    logger.info("Application shutting down")
    with log_performance(logger, "application_shutdown"):
        await close_redis_client()
        await dispose_engine()
        logger.info("Resources cleaned up successfully")


settings = get_settings()
app = FastAPI(
    title=settings.app_name,
    version=settings.app_version,
    description="Telecom number ordering, pricing and billing API",
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_url="/openapi.json",
    lifespan=lifespan,
    debug=settings.debug,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=["X-Request-ID"],
)


@app.middleware("http")
async def request_logging_middleware(request: Request, call_next):
    """
    Middleware for request logging and correlation ID management.

    Sets request ID for correlation, logs request details, and measures
    response time. Clears context after request processing.
    """
    request_id = set_request_id(request.headers.get("X-Request-ID"))
    set_actor_id(request.headers.get("X-Actor-ID"))

    logger.info(
        "Request received",
        method=request.method,
        path=request.url.path,
        client_host=request.client.host if request.client else None,
    )

    try:
        with log_performance(
            logger,
            "request_processing",
            method=request.method,
            path=request.url.path,
        ):
            response = await call_next(request)

        response.headers["X-Request-ID"] = request_id

        logger.info(
            "Request completed",
            method=request.method,
            path=request.url.path,
            status_code=response.status_code,
        )

        return response
    finally:
        clear_context()


@app.exception_handler(TelecoreError)
async def telecore_exception_handler(request: Request, exc: TelecoreError) -> JSONResponse:
    """
    Render a domain error with its code, message and structured details.
    """
    status_code = status_code_for(exc)
    log = logger.error if status_code >= 500 else logger.warning
    log(
        "Request rejected by domain rule",
        method=request.method,
        path=request.url.path,
        error_code=exc.code,
        error=exc.message,
        status_code=status_code,
    )

    content = exc.to_dict()
    content["request_id"] = get_request_id()
    return JSONResponse(status_code=status_code, content=content)


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    """
    Handle request validation errors with structured error response.
    """
    logger.warning(
        "Request validation failed",
        method=request.method,
        path=request.url.path,
        errors=exc.errors(),
    )

    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={
            "error": "REQUEST_VALIDATION_ERROR",
            "message": "Request validation failed",
            "details": [
                {"loc": list(error.get("loc", ())), "msg": error.get("msg")}
                for error in exc.errors()
            ],
            "request_id": get_request_id(),
        },
    )


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """
    Handle unexpected exceptions with a generic error response.

    Internal details are logged, never returned.
    """
    logger.error(
        "Unhandled exception",
        method=request.method,
        path=request.url.path,
        error=str(exc),
        error_type=type(exc).__name__,
        exc_info=True,
    )

    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={
            "error": "INTERNAL_ERROR",
            "message": "An unexpected error occurred",
            "request_id": get_request_id(),
        },
    )


@app.get(
    "/health",
    status_code=status.HTTP_200_OK,
    tags=["Health"],
    summary="Health check endpoint",
)
async def health_check() -> dict[str, str]:
    """Always returns 200 OK while the process is serving requests."""
    return {
        "status": "healthy",
        "service": settings.app_name,
        "version": settings.app_version,
        "environment": settings.environment,
    }


@app.get(
    "/ready",
    status_code=status.HTTP_200_OK,
    tags=["Health"],
    summary="Readiness check endpoint",
)
async def readiness_check():
    """
    Readiness check verifying database connectivity, and Redis when the
    lock backend or pricing cache depends on it.

    Returns 503 when a required dependency cannot be reached.
    """
    checks = {"database": "healthy"}
    try:
        async with get_session() as session:
            await session.execute(text("SELECT 1"))
    except Exception as e:
        logger.warning(
            "Database connectivity check failed",
            error=str(e),
            error_type=type(e).__name__,
        )
        checks["database"] = "unhealthy"

    if settings.lock_backend == "redis" or settings.pricing_cache_enabled:
        try:
            redis_client = await get_redis_client()
            healthy = await redis_client.health_check()
        except RedisError as e:
            logger.warning("Redis connectivity check failed", error=str(e))
            healthy = False
        checks["redis"] = "healthy" if healthy else "unhealthy"

    if any(state != "healthy" for state in checks.values()):
        return JSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            content={"status": "not_ready", "service": settings.app_name, **checks},
        )

    return {
        "status": "ready",
        "service": settings.app_name,
        "version": settings.app_version,
        **checks,
    }


for router in (
    orders_router,
    pricing_router,
    numbers_router,
    disconnections_router,
    invoices_router,
    wallet_router,
):
    app.include_router(router, prefix=settings.api_v1_prefix)
