"""
PayPal Payouts API client with circuit breaker and webhook verification.

Implements:
- Batch payout submission keyed by our payout record id (sender_batch_id),
  which PayPal treats as an idempotency key
- Webhook signature verification through PayPal's verification endpoint
- Circuit breaker pattern
- Error classification (transient / permanent / rate limit / timeout)

Payout submission is never retried here; retrying is a caller decision.
"""
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, Mapping, Optional

import httpx
import structlog
from tenacity import (
    retry,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

from creator_payouts.config import Settings, get_settings
from creator_payouts.core.errors import format_major
from creator_payouts.monitoring.metrics import metrics

logger = structlog.get_logger(__name__)

PAYOUTS_PATH = "/v1/payments/payouts"
VERIFY_WEBHOOK_PATH = "/v1/notifications/verify-webhook-signature"


class PayPalErrorType(Enum):
    """Classification of PayPal errors."""

    TRANSIENT = "transient"
    PERMANENT = "permanent"
    RATE_LIMIT = "rate_limit"
    TIMEOUT = "timeout"


class PayPalError(Exception):
    """Base exception for PayPal-related errors."""

    def __init__(
        self,
        message: str,
        error_type: PayPalErrorType,
        status_code: Optional[int] = None,
        original_error: Optional[Exception] = None,
    ):
        super().__init__(message)
        self.error_type = error_type
        self.status_code = status_code
        self.original_error = original_error


def _is_retryable(error: BaseException) -> bool:
    return isinstance(error, PayPalError) and error.error_type != PayPalErrorType.PERMANENT


class CircuitBreaker:
    """
    Circuit breaker for PayPal API calls.

    Prevents cascading failures by temporarily stopping requests
    when error rate exceeds threshold.
    """

    def __init__(
        self,
        failure_threshold: int = 5,
        timeout: int = 60,
        success_threshold: int = 2,
    ):
        """
        Initialize circuit breaker.

        Args:
            failure_threshold: Number of failures before opening circuit
            timeout: Seconds before attempting to close circuit
            success_threshold: Successful calls needed to close circuit
        """
        self.failure_threshold = failure_threshold
        self.timeout = timeout
        self.success_threshold = success_threshold
        self.failure_count = 0
        self.success_count = 0
        self.last_failure_time: Optional[float] = None
        self.state = "closed"  # closed, open, half_open

    async def call(self, func: Callable[..., Awaitable[Any]], *args: Any, **kwargs: Any) -> Any:
        """
        Await a coroutine function with circuit breaker protection.

        Raises:
            PayPalError: If circuit is open
        """
        if self.state == "open":
            if (
                self.last_failure_time
                and time.time() - self.last_failure_time > self.timeout
            ):
                self._set_state("half_open")
                self.success_count = 0
                logger.info("circuit_breaker_half_open")
            else:
                raise PayPalError("Circuit breaker is open", PayPalErrorType.TRANSIENT)

        try:
            result = await func(*args, **kwargs)
        except PayPalError as e:
            if e.error_type != PayPalErrorType.PERMANENT:
                self.on_failure()
            raise
        self.on_success()
        return result

    def _set_state(self, state: str) -> None:
        self.state = state
        metrics.set_circuit_breaker_state(state)

    def on_success(self) -> None:
        """Record successful call."""
        self.failure_count = 0
        if self.state == "half_open":
            self.success_count += 1
            if self.success_count >= self.success_threshold:
                self._set_state("closed")
                logger.info("circuit_breaker_closed")

    def on_failure(self) -> None:
        """Record failed call."""
        self.failure_count += 1
        self.last_failure_time = time.time()
        if self.failure_count >= self.failure_threshold or self.state == "half_open":
            self._set_state("open")
            logger.warning(
                "circuit_breaker_opened",
                failure_count=self.failure_count,
            )


@dataclass(frozen=True)
class PayoutBatch:
    """A single-item payout batch. Amount in cents."""

    batch_id: str
    destination: str
    amount: int
    currency: str
    sender_item_id: str


@dataclass(frozen=True)
class PayoutSubmission:
    """Provider response to a batch submission."""

    http_status: int
    provider_batch_id: Optional[str] = None
    detail: Optional[str] = None

    @property
    def accepted(self) -> bool:
        return 200 <= self.http_status < 300 and bool(self.provider_batch_id)


class PayPalPayoutClient:
    """
    Async wrapper for the PayPal Payouts REST API.

    Features:
    - Basic auth with the REST client credentials
    - Circuit breaker shared by all calls
    - Retries for webhook verification only
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        http_client: Optional[httpx.AsyncClient] = None,
        circuit_breaker: Optional[CircuitBreaker] = None,
    ) -> None:
        self.settings = settings or get_settings()
        self.http_client = http_client or httpx.AsyncClient(
            base_url=self.settings.paypal_api_url,
            auth=(self.settings.paypal_client_id, self.settings.paypal_client_secret),
            timeout=self.settings.payout_request_timeout,
        )
        self.circuit_breaker = circuit_breaker or CircuitBreaker()

        logger.info("paypal_client_initialized", mode=self.settings.paypal_mode)

    @staticmethod
    def _classify_status(status_code: int) -> PayPalErrorType:
        if status_code == 429:
            return PayPalErrorType.RATE_LIMIT
        elif status_code >= 500:
            return PayPalErrorType.TRANSIENT
        return PayPalErrorType.PERMANENT

    async def _post(self, operation: str, path: str, payload: Dict[str, Any]) -> httpx.Response:
        """
        POST to PayPal, raising PayPalError for transport failures, 429 and 5xx.

        Other responses are returned to the caller for interpretation.
        """
        start = time.time()
        try:
            response = await self.http_client.post(path, json=payload)
        except httpx.TimeoutException as e:
            metrics.record_provider_api_error(PayPalErrorType.TIMEOUT.value)
            raise PayPalError(
                f"PayPal {operation} timed out", PayPalErrorType.TIMEOUT, original_error=e
            ) from e
        except httpx.TransportError as e:
            metrics.record_provider_api_error(PayPalErrorType.TRANSIENT.value)
            raise PayPalError(
                f"PayPal {operation} failed: {e}", PayPalErrorType.TRANSIENT, original_error=e
            ) from e
        finally:
            duration = time.time() - start

        metrics.record_provider_api_call(operation, str(response.status_code), duration)

        if response.status_code == 429 or response.status_code >= 500:
            error_type = self._classify_status(response.status_code)
            metrics.record_provider_api_error(error_type.value)
            logger.error(
                "paypal_api_error",
                operation=operation,
                status_code=response.status_code,
                error_type=error_type.value,
            )
            raise PayPalError(
                f"PayPal {operation} returned {response.status_code}",
                error_type,
                status_code=response.status_code,
            )
        return response

    @staticmethod
    def build_payout_payload(batch: PayoutBatch) -> Dict[str, Any]:
        """Payouts API request body for a single-recipient batch."""
        value = format_major(batch.amount)
        return {
            "sender_batch_header": {
                "sender_batch_id": batch.batch_id,
                "recipient_type": "EMAIL",
                "email_subject": "You have a payout!",
                "email_message": f"You have received a payout of ${value}.",
            },
            "items": [
                {
                    "amount": {"value": value, "currency": batch.currency},
                    "sender_item_id": batch.sender_item_id,
                    "recipient_wallet": "PAYPAL",
                    "receiver": batch.destination,
                }
            ],
        }

    async def send_batch_payout(self, batch: PayoutBatch) -> PayoutSubmission:
        """
        Submit a payout batch.

        Repeating a call with the same batch id is safe: PayPal rejects or
        returns the existing batch instead of paying twice.

        Returns:
            PayoutSubmission: HTTP status and PayPal's payout_batch_id if present

        Raises:
            PayPalError: On transport failure, timeout, 429, 5xx or open circuit
        """
        logger.info(
            "sending_batch_payout",
            batch_id=batch.batch_id,
            amount_cents=batch.amount,
            currency=batch.currency,
        )
        response = await self.circuit_breaker.call(
            self._post, "send_batch_payout", PAYOUTS_PATH, self.build_payout_payload(batch)
        )

        try:
            body = response.json()
        except ValueError:
            body = {}

        provider_batch_id = (body.get("batch_header") or {}).get("payout_batch_id")
        detail = None
        if not response.is_success:
            detail = body.get("message") or body.get("name") or response.text

        logger.info(
            "batch_payout_response",
            batch_id=batch.batch_id,
            status_code=response.status_code,
            provider_batch_id=provider_batch_id,
        )
        return PayoutSubmission(
            http_status=response.status_code,
            provider_batch_id=provider_batch_id,
            detail=detail,
        )

    @retry(
        retry=retry_if_exception(_is_retryable),
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=0.5, min=0.5, max=4),
        reraise=True,
    )
    async def verify_webhook(self, headers: Mapping[str, str], body: Dict[str, Any]) -> bool:
        """
        Verify a webhook delivery with PayPal.

        Args:
            headers: Request headers (paypal-transmission-* and friends)
            body: Parsed webhook event

        Returns:
            bool: True if PayPal reports verification_status SUCCESS

        Raises:
            PayPalError: If PayPal cannot be reached after retries
        """
        lookup = httpx.Headers(dict(headers))
        payload = {
            "auth_algo": lookup.get("paypal-auth-algo"),
            "cert_url": lookup.get("paypal-cert-url"),
            "transmission_id": lookup.get("paypal-transmission-id"),
            "transmission_sig": lookup.get("paypal-transmission-sig"),
            "transmission_time": lookup.get("paypal-transmission-time"),
            "webhook_id": self.settings.paypal_webhook_payout_id,
            "webhook_event": body,
        }
        response = await self.circuit_breaker.call(
            self._post, "verify_webhook", VERIFY_WEBHOOK_PATH, payload
        )
        if not response.is_success:
            logger.warning(
                "webhook_verification_rejected",
                status_code=response.status_code,
                event_id=body.get("id"),
            )
            return False

        try:
            result = response.json()
        except ValueError:
            result = None
        if not isinstance(result, dict):
            logger.warning(
                "webhook_verification_unreadable",
                status_code=response.status_code,
                event_id=body.get("id"),
            )
            return False

        verified = result.get("verification_status") == "SUCCESS"
        logger.info("webhook_verification_checked", event_id=body.get("id"), verified=verified)
        return verified

    async def close(self) -> None:
        """Close the HTTP client."""
        await self.http_client.aclose()
