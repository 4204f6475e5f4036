"""External provider integrations (PayPal Payouts, TaxJar)."""
from .paypal_client import (
    CircuitBreaker,
    PayoutBatch,
    PayoutSubmission,
    PayPalError,
    PayPalErrorType,
    PayPalPayoutClient,
)
from .tax_client import TaxJarClient

__all__ = [
    "CircuitBreaker",
    "PayoutBatch",
    "PayoutSubmission",
    "PayPalError",
    "PayPalErrorType",
    "PayPalPayoutClient",
    "TaxJarClient",
]
