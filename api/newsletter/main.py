"""
Newsletter API.

FastAPI application for subscriptions and newsletter publishing. Issue
deliveries are drained by the delivery worker, which runs in-process by
default or standalone via `newsletter-worker`.
"""

import uuid
from contextlib import asynccontextmanager
from typing import Any

import structlog
from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from sqlalchemy.exc import InterfaceError, OperationalError

from newsletter.config import settings, validate_security_settings
from newsletter.database import AsyncSessionLocal, init_db
from newsletter.errors import NewsletterError
from newsletter.logging import setup_logging
from newsletter.middleware.rate_limit import limiter
from newsletter.routers.admin import router as admin_router
from newsletter.routers.subscriptions import router as subscriptions_router
from newsletter.services.email_client import get_email_client
from newsletter.worker import start_delivery_worker

# Import models to register them with Base.metadata
from newsletter import models  # noqa: F401

logger = structlog.get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):  # noqa: ARG001
    """Application lifespan handler for startup/shutdown."""
    setup_logging(settings)
    validate_security_settings()
    await init_db()

    email_client = get_email_client()
    running_worker = None
    if settings.delivery_worker_enabled:
        running_worker = start_delivery_worker(AsyncSessionLocal, email_client)

    yield

    if running_worker is not None:
        await running_worker.stop()
    await email_client.aclose()


app = FastAPI(
    title="Newsletter API",
    description="Subscriptions and idempotent newsletter publishing",
    version="0.1.0",
    docs_url="/api/docs",
    redoc_url="/api/redoc",
    openapi_url="/api/openapi.json",
    lifespan=lifespan,
)

app.state.limiter = limiter

app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=True,
    allow_methods=["GET", "POST"],
    allow_headers=["*"],
)

app.include_router(subscriptions_router)
app.include_router(admin_router)


# --- Middleware ---


@app.middleware("http")
async def add_request_id(request: Request, call_next):
    """Add a unique request ID to each request and to its log events."""
    request_id = str(uuid.uuid4())
    request.state.request_id = request_id
    structlog.contextvars.clear_contextvars()
    structlog.contextvars.bind_contextvars(request_id=request_id)
    response = await call_next(request)
    response.headers["X-Request-ID"] = request_id
    return response


# --- Exception Handlers ---


def _error_response(
    request: Request, status_code: int, code: str, message: str, **extra: Any
) -> JSONResponse:
    request_id = getattr(request.state, "request_id", None)
    return JSONResponse(
        status_code=status_code,
        content={
            "error": {
                "code": code,
                "message": message,
                "request_id": request_id,
                **extra,
            }
        },
    )


def _sanitize_error_detail(error: dict[str, Any]) -> dict[str, Any]:
    """Sanitize Pydantic error detail to be JSON-serializable."""
    sanitized = {}
    for key, value in error.items():
        if key == "ctx":
            sanitized[key] = {k: str(v) for k, v in value.items()} if isinstance(value, dict) else str(value)
        elif key == "loc":
            sanitized[key] = [str(loc) for loc in value]
        else:
            sanitized[key] = value
    return sanitized


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    """Handle Pydantic validation errors with consistent error format."""
    errors = [_sanitize_error_detail(e) for e in exc.errors()]
    if errors:
        first_error = errors[0]
        field = ".".join(str(loc) for loc in first_error.get("loc", []))
        msg = first_error.get("msg", "Validation error")
        message = f"{field}: {msg}" if field else msg
    else:
        message = "Validation error"

    return _error_response(
        request,
        status.HTTP_422_UNPROCESSABLE_ENTITY,
        "VALIDATION_ERROR",
        message,
        details=errors,
    )


@app.exception_handler(NewsletterError)
async def newsletter_exception_handler(request: Request, exc: NewsletterError) -> JSONResponse:
    """Map domain errors to their HTTP status and error code."""
    if exc.status_code >= 500:
        logger.error(
            "request_failed",
            error_code=exc.code,
            error=exc.message,
            path=request.url.path,
        )
        message = "An unexpected error occurred"
    else:
        message = exc.message
    return _error_response(request, exc.status_code, exc.code, message)


@app.exception_handler(OperationalError)
@app.exception_handler(InterfaceError)
async def storage_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Database unreachable or timed out; the client may retry with the same key."""
    logger.error("storage_unavailable", error=str(exc), path=request.url.path)
    return _error_response(
        request,
        status.HTTP_503_SERVICE_UNAVAILABLE,
        "STORAGE_UNAVAILABLE",
        "The service is temporarily unavailable, please retry",
    )


@app.exception_handler(Exception)
async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Handle uncaught exceptions with consistent error format."""
    logger.exception("unhandled_exception", path=request.url.path)
    return _error_response(
        request,
        status.HTTP_500_INTERNAL_SERVER_ERROR,
        "INTERNAL_ERROR",
        "An unexpected error occurred",
    )


# --- Health Check ---


@app.get("/api/v1/health", tags=["System"])
async def health_check() -> dict[str, str]:
    """
    Health check endpoint.

    Returns 200 OK if the API is running.
    """
    return {"status": "healthy"}
