"""
FastAPI application entry point with health and metrics routes.
"""
import uuid
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import PlainTextResponse
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.middleware.base import BaseHTTPMiddleware

from lashdesk import __version__
from lashdesk.api.middleware.error_handler import (
    app_exception_handler,
    http_exception_handler,
    unhandled_exception_handler,
    validation_exception_handler,
)
from lashdesk.api.routes import admin_discounts, bookings, labs
from lashdesk.lib.db import init_db
from lashdesk.lib.errors import AppException
from lashdesk.lib.logging import get_logger, set_correlation_id
from lashdesk.lib.metrics import get_metrics_collector
from lashdesk.lib.settings import settings

logger = get_logger(__name__)


class CorrelationIdMiddleware(BaseHTTPMiddleware):
    """
    Accepts X-Correlation-ID from incoming requests or generates a new one,
    and makes it visible to every log line written while handling the request.
    """

    async def dispatch(self, request: Request, call_next):
        correlation_id = request.headers.get("X-Correlation-ID", str(uuid.uuid4()))
        request.state.correlation_id = correlation_id
        set_correlation_id(correlation_id)

        logger.info(
            "Incoming request",
            extra={
                "method": request.method,
                "path": request.url.path,
                "client": request.client.host if request.client else None,
            },
        )

        try:
            response = await call_next(request)
            response.headers["X-Correlation-ID"] = correlation_id
            logger.info("Response sent", extra={"status_code": response.status_code})
            return response
        finally:
            set_correlation_id(None)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    logger.info(f"{settings.app_name} starting up...")
    init_db()
    yield
    logger.info(f"{settings.app_name} shutting down...")


app = FastAPI(
    title=settings.app_name,
    version=__version__,
    description="Booking ledger and Labs checkout APIs",
    lifespan=lifespan,
)


app.add_middleware(
    CORSMiddleware,
    allow_origins=[
        "http://localhost:3000",  # Next.js dev server
        "http://127.0.0.1:3000",
    ],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.add_middleware(CorrelationIdMiddleware)


app.add_exception_handler(AppException, app_exception_handler)
app.add_exception_handler(RequestValidationError, validation_exception_handler)
app.add_exception_handler(StarletteHTTPException, http_exception_handler)
app.add_exception_handler(Exception, unhandled_exception_handler)


app.include_router(bookings.router)
app.include_router(labs.router)
app.include_router(admin_discounts.router)


@app.get("/health")
def health_check():
    """Health check endpoint."""
    return {"status": "ok"}


@app.get("/metrics", include_in_schema=False)
def metrics_endpoint():
    """
    Prometheus-compatible metrics endpoint.

    Metrics exposed:
    - booking_payments_total: Payments by method and outcome
    - booking_transitions_total: Ledger operations
    - discount_validations_total: Code checks by result
    - checkouts_total: Placed orders by payment status
    - notifications_total: Aftercare / reschedule sends
    """
    return PlainTextResponse(
        get_metrics_collector().export_prometheus(),
        media_type="text/plain; version=0.0.4; charset=utf-8",
    )
