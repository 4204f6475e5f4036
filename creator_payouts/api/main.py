"""
Main FastAPI application.

Creator payouts API with:
- Fail-fast configuration at startup
- Typed error responses
- Request ID tracking
- Structured logging
- Prometheus metrics
"""
import time
import uuid
from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator, Optional

import structlog
from fastapi import FastAPI, Request, Response, status
from fastapi.responses import JSONResponse

from creator_payouts import __version__
from creator_payouts.config import load_settings_or_exit
from creator_payouts.core.errors import PayoutSystemError
from creator_payouts.core.service import PayoutService
from creator_payouts.database.connection import close_db, get_session_factory, init_db
from creator_payouts.integrations.paypal_client import PayPalPayoutClient
from creator_payouts.integrations.tax_client import TaxJarClient
from creator_payouts.monitoring.health import HealthCheck
from creator_payouts.monitoring.logging import setup_logging

from .routes import fee_router, monitoring_router, payout_router, webhook_router

logger = structlog.get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, Any]:
    """
    Application lifespan manager.

    Loads settings (exiting on invalid configuration), creates tables and
    builds the payout service unless one was injected.
    """
    if app.state.service is not None:
        yield
        return

    settings = load_settings_or_exit()
    setup_logging(settings)
    logger.info("application_startup", app_name=settings.app_name, env=settings.app_env)

    try:
        await init_db()
        logger.info("database_initialized")
    except Exception as e:
        logger.error("database_initialization_failed", error=str(e))
        raise

    session_factory = get_session_factory()
    payout_client = PayPalPayoutClient(settings)
    tax_client = TaxJarClient(settings)
    app.state.service = PayoutService(settings, session_factory, payout_client, tax_client)
    app.state.health_check = HealthCheck(session_factory, payout_client.circuit_breaker)

    yield

    logger.info("application_shutdown")
    await payout_client.close()
    await tax_client.close()
    try:
        await close_db()
        logger.info("database_connections_closed")
    except Exception as e:
        logger.error("database_shutdown_error", error=str(e))


async def add_request_id_middleware(request: Request, call_next: Any) -> Response:
    """
    Add request ID to all requests for tracing.

    Reuses an incoming X-Request-ID and binds it into the structlog context.
    """
    request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())
    start_time = time.time()

    structlog.contextvars.bind_contextvars(
        request_id=request_id,
        method=request.method,
        path=request.url.path,
    )

    try:
        response = await call_next(request)
        response.headers["X-Request-ID"] = request_id

        logger.info(
            "request_completed",
            status_code=response.status_code,
            duration_seconds=time.time() - start_time,
        )
        return response

    except Exception as e:
        logger.error(
            "request_failed",
            error=str(e),
            duration_seconds=time.time() - start_time,
        )
        raise

    finally:
        structlog.contextvars.clear_contextvars()


async def payout_error_handler(request: Request, exc: PayoutSystemError) -> JSONResponse:
    """Render typed payout errors with their status code and user message."""
    logger.info(
        "payout_error_response",
        error_code=exc.error_code,
        error=exc.message,
        path=request.url.path,
    )
    return JSONResponse(status_code=exc.http_status, content=exc.to_dict())


async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """
    Global exception handler for unhandled exceptions.
    """
    logger.error(
        "unhandled_exception",
        error=str(exc),
        error_type=type(exc).__name__,
        path=request.url.path,
    )

    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={
            "error": {
                "code": "internal_error",
                "message": "An unexpected error occurred. Please try again later.",
            }
        },
    )


def create_app(
    service: Optional[PayoutService] = None,
    health_check: Optional[HealthCheck] = None,
) -> FastAPI:
    """
    Build the FastAPI application.

    Passing a service skips the startup wiring; tests use this.
    """
    app = FastAPI(
        title="Creator Payouts",
        description=(
            "Creator fee calculation and PayPal payouts with an idempotent, "
            "webhook-reconciled payout state machine."
        ),
        version=__version__,
        lifespan=lifespan,
    )
    app.state.service = service
    app.state.health_check = health_check or HealthCheck(
        service.session_factory if service else None,
        getattr(service.payout_client, "circuit_breaker", None) if service else None,
    )

    app.middleware("http")(add_request_id_middleware)
    app.add_exception_handler(PayoutSystemError, payout_error_handler)
    app.add_exception_handler(Exception, global_exception_handler)

    app.include_router(payout_router)
    app.include_router(webhook_router)
    app.include_router(fee_router)
    app.include_router(monitoring_router)
    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    settings = load_settings_or_exit()
    uvicorn.run(
        "creator_payouts.api.main:app",
        host=settings.api_host,
        port=settings.api_port,
        reload=settings.debug,
        log_level=settings.log_level.lower(),
    )
