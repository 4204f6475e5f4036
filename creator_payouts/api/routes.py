"""
API routes for payouts, PayPal webhooks and fee quotes.

Services return typed errors instead of raising them; routes raise them so the
PayoutSystemError handler renders the status code and error body.
"""
from typing import Any, Dict

import structlog
from fastapi import APIRouter, Depends, Query, Request, Response, status
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

from creator_payouts.core.eligibility import Ineligible, IneligibleReason
from creator_payouts.core.errors import PayoutSystemError
from creator_payouts.core.service import PayoutService
from creator_payouts.monitoring.health import HealthCheck

from .schemas import (
    CheckoutRequest,
    CheckoutResponse,
    ExecutePayoutResponse,
    HealthCheckResponse,
    PayoutLogsResponse,
    PayoutRecordResponse,
    PayoutSummaryResponse,
    WebhookResponse,
)

logger = structlog.get_logger(__name__)

# Create routers
payout_router = APIRouter(prefix="/payouts", tags=["payouts"])
webhook_router = APIRouter(prefix="/webhooks", tags=["webhooks"])
fee_router = APIRouter(prefix="/fees", tags=["fees"])
monitoring_router = APIRouter(tags=["monitoring"])


def get_payout_service(request: Request) -> PayoutService:
    """The service built at startup (or injected by create_app)."""
    return request.app.state.service


def get_health_check(request: Request) -> HealthCheck:
    return request.app.state.health_check


@payout_router.post(
    "/{profile_id}/execute",
    response_model=ExecutePayoutResponse,
    summary="Trigger a payout",
    description="Evaluate eligibility and send the payout to the creator's PayPal account",
)
async def execute_payout(
    profile_id: int,
    bypass_threshold: bool = Query(default=False, description="Skip the automatic threshold"),
    service: PayoutService = Depends(get_payout_service),
) -> Dict[str, Any]:
    """
    Trigger a payout for a profile.

    Returns 200 with status "skipped" when the automatic threshold is not met.
    """
    logger.info(
        "api_execute_payout_request",
        profile_id=profile_id,
        bypass_threshold=bypass_threshold,
    )
    result = await service.evaluate_and_execute_payout(
        profile_id, bypass_threshold=bypass_threshold
    )

    if isinstance(result, Ineligible):
        if result.reason is IneligibleReason.THRESHOLD_NOT_MET:
            return {"status": "skipped", "message": result.to_error().user_message}
        raise result.to_error()
    if isinstance(result, PayoutSystemError):
        raise result

    logger.info(
        "api_execute_payout_success",
        profile_id=profile_id,
        payout_record_id=str(result.id),
    )
    return {
        "status": "submitted",
        "payout": PayoutRecordResponse.model_validate(result),
    }


@payout_router.get(
    "/{profile_id}/summary",
    response_model=PayoutSummaryResponse,
    summary="Payout schedule summary",
    description="Schedule settings and what is left of the period's payout allowance",
)
async def payout_summary(
    profile_id: int,
    service: PayoutService = Depends(get_payout_service),
) -> PayoutSummaryResponse:
    result = await service.payout_summary(profile_id)
    if isinstance(result, PayoutSystemError):
        raise result
    return PayoutSummaryResponse.model_validate(result)


@payout_router.get(
    "/{profile_id}/logs",
    response_model=PayoutLogsResponse,
    summary="Payout history",
)
async def payout_logs(
    profile_id: int,
    limit: int = Query(default=20, ge=1, le=100),
    offset: int = Query(default=0, ge=0),
    service: PayoutService = Depends(get_payout_service),
) -> Dict[str, Any]:
    """Payout records for a profile, newest first."""
    records = await service.list_payouts(profile_id, limit=limit, offset=offset)
    return {
        "payouts": [PayoutRecordResponse.model_validate(r) for r in records],
        "total": await service.count_payouts(profile_id),
        "limit": limit,
        "offset": offset,
    }


@webhook_router.post(
    "/paypal",
    response_model=WebhookResponse,
    summary="PayPal webhook endpoint",
    description="Handle PayPal payout batch events",
)
async def paypal_webhook(
    request: Request,
    service: PayoutService = Depends(get_payout_service),
) -> Dict[str, Any]:
    """
    Handle PayPal payouts webhook events.

    Verifies the delivery with PayPal and applies it at most once.
    """
    body = await request.body()
    result = await service.handle_webhook(dict(request.headers), body)

    if isinstance(result, PayoutSystemError):
        logger.warning("api_webhook_error", error_code=result.error_code, error=result.message)
        raise result

    return {
        "status": "duplicate" if result.duplicate else "processed",
        "event_id": result.event_id,
        "payout_status": result.status,
    }


@fee_router.post(
    "/checkout",
    response_model=CheckoutResponse,
    summary="Checkout total",
    description="Amount plus fan fee plus tax for a purchase",
)
async def checkout_total(
    request: CheckoutRequest,
    service: PayoutService = Depends(get_payout_service),
) -> CheckoutResponse:
    result = await service.fees.compute_checkout_total(
        request.amount, request.kind, request.billing_address
    )
    if isinstance(result, PayoutSystemError):
        raise result
    return CheckoutResponse.model_validate(result)


@monitoring_router.get(
    "/health",
    response_model=HealthCheckResponse,
    summary="Health check",
    description="Check database and payout provider health",
)
async def health(
    response: Response,
    health_check: HealthCheck = Depends(get_health_check),
) -> Dict[str, Any]:
    """Health check endpoint for monitoring."""
    result = await health_check.check_all()
    if result["status"] == "unhealthy":
        response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    return result


@monitoring_router.get(
    "/metrics",
    summary="Prometheus metrics",
    description="Expose Prometheus metrics",
    include_in_schema=False,  # Don't include in OpenAPI docs
)
async def prometheus_metrics() -> Response:
    """Expose Prometheus metrics."""
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)
