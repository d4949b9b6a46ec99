"""FastAPI JSON API for the diamond stock ledger."""

from __future__ import annotations

from contextlib import asynccontextmanager
from uuid import uuid4

import structlog
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from gemstock import __version__
from gemstock.config import get_config
from gemstock.core.logging import configure_logging
from gemstock.db.connection import close_db
from gemstock.exceptions import (
    AuthError,
    GemStockError,
    NotFoundError,
    PermissionDeniedError,
    TransientError,
    ValidationError,
    VerificationTimeoutError,
)
from gemstock.web.routes import analytics, health, notes, parcels

logger = structlog.get_logger()

# Most specific first; VerificationTimeoutError is not a TransientError
ERROR_STATUS: list[tuple[type[GemStockError], int]] = [
    (ValidationError, 400),
    (AuthError, 401),
    (PermissionDeniedError, 403),
    (NotFoundError, 404),
    (VerificationTimeoutError, 502),
    (TransientError, 503),
]


def status_for(exc: GemStockError) -> int:
    for exc_type, status_code in ERROR_STATUS:
        if isinstance(exc, exc_type):
            return status_code
    return 500


@asynccontextmanager
async def lifespan(app: FastAPI):
    configure_logging(get_config())
    yield
    await close_db()


app = FastAPI(
    title="gemstock",
    description="Diamond parcel inventory, movement ledger and order status notes",
    version=__version__,
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan,
)


# Request Logging Middleware
class RequestLoggingMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        structlog.contextvars.clear_contextvars()

        request_id = request.headers.get("X-Request-ID", str(uuid4()))
        structlog.contextvars.bind_contextvars(request_id=request_id)

        logger.info(
            "request_started",
            method=request.method,
            path=request.url.path,
            user_id=request.headers.get("X-User-Id"),
        )

        try:
            response = await call_next(request)

            logger.info(
                "request_completed",
                status_code=response.status_code,
            )
            return response

        except Exception as exc:
            logger.error("request_failed", error=str(exc))
            raise


app.add_middleware(RequestLoggingMiddleware)


# Exception Handlers
@app.exception_handler(GemStockError)
async def gemstock_error_handler(request: Request, exc: GemStockError):
    """Map the error taxonomy onto HTTP status codes."""
    status_code = status_for(exc)
    content: dict = {"detail": exc.message, "error": type(exc).__name__}

    if isinstance(exc, VerificationTimeoutError):
        content.update(order_id=exc.order_id, note_id=exc.note_id, attempts=exc.attempts)

    if status_code >= 500:
        logger.warning("request_error", error=type(exc).__name__, detail=exc.message)

    return JSONResponse(status_code=status_code, content=content)


# Include Routers
app.include_router(health.router)
app.include_router(parcels.router)
app.include_router(analytics.router)
app.include_router(notes.router)
