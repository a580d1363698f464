"""Bookstore API main application module.

This module initializes the FastAPI application and configures
core middleware, routers, background consumers and startup/shutdown
events.

Usage:
    uvicorn bookstore.main:app --host 0.0.0.0 --port 8000
"""

from contextlib import asynccontextmanager
from typing import AsyncGenerator

import structlog
from fastapi import FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from bookstore.api.admin_orders import router as admin_orders_router
from bookstore.api.admin_settings import router as admin_settings_router
from bookstore.api.cart import router as cart_router
from bookstore.api.dependencies import status_for_error
from bookstore.api.health import router as health_router
from bookstore.api.middleware import setup_middleware
from bookstore.api.notifications import router as notifications_router
from bookstore.api.orders import router as orders_router
from bookstore.api.payments import router as payments_router
from bookstore.api.promos import admin_router as admin_promos_router
from bookstore.api.promos import router as promos_router
from bookstore.application.event_log import OrderEventLog
from bookstore.application.event_publisher import OutboxRelay, get_event_publisher
from bookstore.application.notification_fanout import NotificationFanout
from bookstore.domain.exceptions import DomainError
from bookstore.infrastructure.broker import get_broker
from bookstore.infrastructure.config import settings
from bookstore.infrastructure.database import get_database
from bookstore.infrastructure.logging import configure_logging

configure_logging(settings.log_level)

logger = structlog.get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Handle application startup and shutdown events.

    Args:
        app: The FastAPI application instance.

    Yields:
        None after startup, cleanup happens after yield.
    """
    logger.info("Starting bookstore API", version=settings.api_version, debug=settings.debug)

    if settings.database_create_schema:
        await get_database().create_all()

    broker = get_broker()

    app.state.notification_fanout = NotificationFanout(broker=broker)
    app.state.order_event_log = OrderEventLog(broker=broker)
    app.state.outbox_relay = OutboxRelay(broker=broker)
    background = (app.state.notification_fanout, app.state.order_event_log, app.state.outbox_relay)

    if settings.consumers_autostart:
        for worker in background:
            worker.start()

    yield

    logger.info("Shutting down bookstore API")
    await get_event_publisher().flush()
    for worker in background:
        await worker.stop()
    await broker.close()
    await get_database().dispose()


app = FastAPI(
    title="Bookstore API",
    description="Order fulfillment backend for the online bookstore",
    version=settings.api_version,
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
)

# CORS middleware (must be added before custom middleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Setup custom middleware (request ID, API key auth, error handling)
setup_middleware(app)

# Include routers
app.include_router(health_router, tags=["Health"])
app.include_router(cart_router)
app.include_router(orders_router)
app.include_router(admin_orders_router)
app.include_router(payments_router)
app.include_router(promos_router)
app.include_router(admin_promos_router)
app.include_router(admin_settings_router)
app.include_router(notifications_router)


# ============================================================================
# Custom Exception Handlers
# ============================================================================


def _error_body(request: Request, error_code: str, message: str, details: list | dict) -> dict:
    return {
        "error_code": error_code,
        "message": message,
        "details": details,
        "request_id": getattr(request.state, "request_id", None),
    }


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    """Handle HTTP exceptions with consistent format."""
    detail = exc.detail
    if isinstance(detail, dict):
        error_code = detail.get("error_code", "ERROR")
        message = detail.get("message", str(detail))
        details = detail.get("details", [])
    else:
        error_code = "ERROR"
        message = str(detail)
        details = []

    return JSONResponse(
        status_code=exc.status_code,
        content=_error_body(request, error_code, message, details),
        headers=exc.headers,
    )


@app.exception_handler(DomainError)
async def domain_exception_handler(request: Request, exc: DomainError) -> JSONResponse:
    """Map domain errors that escaped a service to their HTTP status."""
    return JSONResponse(
        status_code=status_for_error(exc.error_code),
        content=_error_body(request, exc.error_code, exc.message, exc.details),
    )


@app.exception_handler(Exception)
async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Handle uncaught exceptions with consistent format."""
    logger.exception(
        "Unhandled exception in handler",
        path=request.url.path,
        method=request.method,
        error=str(exc),
    )
    return JSONResponse(
        status_code=500,
        content=_error_body(request, "INTERNAL_ERROR", "An internal error occurred", []),
    )
