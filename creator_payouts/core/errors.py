"""
Error taxonomy for fee calculation and payouts.

Every error carries:
- Error code (for client handling)
- User message (safe to show to creators)
- HTTP status code (for API responses)

Eligibility and execution failures are returned to callers as instances of
these classes rather than raised, so schedulers and manual-trigger endpoints
can branch on them.
"""
from decimal import Decimal
from typing import Any, Dict, Optional


def format_major(cents: int) -> str:
    """Render minor units as a major-unit amount, e.g. 2500 -> '25.00'."""
    return f"{Decimal(cents) / 100:.2f}"


class PayoutSystemError(Exception):
    """Base exception for all payout subsystem errors."""

    error_code = "payout_error"
    http_status = 500

    def __init__(
        self,
        message: str,
        user_message: Optional[str] = None,
        **kwargs: Any,
    ):
        super().__init__(message)
        self.message = message
        self.user_message = user_message or "An error occurred. Please try again."
        self.metadata = kwargs

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dict for API responses"""
        return {
            "error": {
                "code": self.error_code,
                "message": self.user_message,
                "type": self.__class__.__name__,
            }
        }


class ValidationError(PayoutSystemError):
    """Bad category, provider, country or amount."""

    error_code = "validation_error"
    http_status = 400

    def __init__(self, message: str, **kwargs: Any):
        super().__init__(message, user_message=message, **kwargs)


class UnsupportedProviderError(ValidationError):
    """Provider is not one of the supported purchase or payout providers."""

    error_code = "unsupported_provider"

    def __init__(self, provider: Any):
        super().__init__(f"Unsupported provider: {provider}")
        self.provider = provider


class WebhookPayloadError(ValidationError):
    """Webhook body is missing the event id, type or batch id."""

    error_code = "webhook_payload_invalid"


class PendingPayoutError(PayoutSystemError):
    """A payout is already in flight for this profile."""

    error_code = "pending_payout"
    http_status = 409

    def __init__(self, profile_id: int):
        super().__init__(
            f"Profile {profile_id} already has a payout in flight",
            user_message="You already have a pending payout.",
        )
        self.profile_id = profile_id


class NoPayoutMethodError(PayoutSystemError):
    """Missing payout schedule or payout payment method."""

    error_code = "no_payout_method"
    http_status = 404

    def __init__(self, profile_id: int):
        super().__init__(
            f"Profile {profile_id} has no payout schedule or payment method",
            user_message="Payment method not found.",
        )
        self.profile_id = profile_id


class InsufficientBalanceError(PayoutSystemError):
    """Balance missing or below the global minimum payout."""

    error_code = "insufficient_balance"
    http_status = 400

    def __init__(self, minimum: int):
        super().__init__(
            f"Balance below minimum payout of {minimum}",
            user_message=(
                f"Insufficient balance. You need at least ${format_major(minimum)} "
                "to send a payout."
            ),
        )
        self.minimum = minimum


class MinPayoutNotMetError(PayoutSystemError):
    """Payable amount (after the period ceiling) is below the minimum."""

    error_code = "min_payout_not_met"
    http_status = 400

    def __init__(self, minimum: int):
        super().__init__(
            f"Payable amount below minimum payout of {minimum}",
            user_message=(
                f"Min payout not met. You need at least ${format_major(minimum)} "
                "to send a payout."
            ),
        )
        self.minimum = minimum


class MaxPayoutExceededError(PayoutSystemError):
    """Payouts in the current period already reached the ceiling."""

    error_code = "max_payout_exceeded"
    http_status = 400

    def __init__(self, maximum: int):
        super().__init__(
            f"Payout ceiling of {maximum} reached for the current period",
            user_message=(
                f"Max payout exceeded. You can send a maximum of ${format_major(maximum)} "
                "per payout."
            ),
        )
        self.maximum = maximum


class ThresholdNotMetError(PayoutSystemError):
    """Automatic payout threshold not reached; the payout simply waits."""

    error_code = "threshold_not_met"
    http_status = 200

    def __init__(self, profile_id: int):
        super().__init__(
            f"Payout threshold not met for profile {profile_id}",
            user_message="Your balance has not reached your payout threshold yet.",
        )
        self.profile_id = profile_id


class TaxServiceError(PayoutSystemError):
    """The external tax service failed; wraps the upstream detail."""

    error_code = "tax_service_error"
    http_status = 502

    def __init__(self, detail: str, status_code: Optional[int] = None):
        super().__init__(
            f"Tax calculation failed: {detail}",
            user_message="We could not calculate tax for this purchase.",
        )
        self.detail = detail
        self.status_code = status_code


class ExternalProviderError(PayoutSystemError):
    """The payout provider call failed, timed out or was not confirmed."""

    error_code = "external_provider_error"
    http_status = 502

    def __init__(self, detail: str, status_code: Optional[int] = None):
        super().__init__(
            f"Payout provider error: {detail}",
            user_message="Failed to send payout.",
        )
        self.detail = detail
        self.status_code = status_code


class WebhookVerificationError(PayoutSystemError):
    """Webhook signature could not be verified."""

    error_code = "webhook_signature_invalid"
    http_status = 400

    def __init__(self, event_id: Optional[str] = None):
        super().__init__(
            f"Invalid webhook signature for event {event_id}",
            user_message="Invalid webhook payload.",
        )
        self.event_id = event_id


class UnknownBatchError(PayoutSystemError):
    """Webhook references a batch id with no payout record."""

    error_code = "unknown_batch"
    http_status = 404

    def __init__(self, batch_id: str):
        super().__init__(
            f"No payout record for batch {batch_id}",
            user_message="Invalid webhook payload.",
        )
        self.batch_id = batch_id
