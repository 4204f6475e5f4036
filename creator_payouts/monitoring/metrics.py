"""
Prometheus metrics for payout monitoring.

Tracks:
- Eligibility decisions by result
- Payout executions by outcome
- Payout amounts
- Payout provider API calls and errors
- Webhook events by outcome
"""
from prometheus_client import Counter, Gauge, Histogram

# Eligibility metrics
payout_eligibility_total = Counter(
    "payout_eligibility_total",
    "Total payout eligibility decisions",
    ["result"],  # eligible, pending_payout, insufficient_balance, ...
)

# Execution metrics
payout_executions_total = Counter(
    "payout_executions_total",
    "Total payout executions",
    ["outcome"],  # submitted, failed, rejected
)

payout_amount_cents = Histogram(
    "payout_amount_cents",
    "Submitted payout amounts in cents",
    buckets=(1000, 2500, 5000, 10000, 25000, 50000, 100000, 500000, 1000000),
)

# Provider API metrics
provider_api_requests_total = Counter(
    "payout_provider_api_requests_total",
    "Total payout provider API requests",
    ["operation", "status"],
)

provider_api_errors_total = Counter(
    "payout_provider_api_errors_total",
    "Total payout provider API errors",
    ["error_type"],  # transient, permanent, timeout
)

provider_api_duration_seconds = Histogram(
    "payout_provider_api_duration_seconds",
    "Payout provider API call duration in seconds",
    ["operation"],
    buckets=(0.1, 0.25, 0.5, 0.75, 1.0, 2.5, 5.0, 7.5, 10.0, 30.0),
)

# Circuit breaker metrics
provider_circuit_breaker_state = Gauge(
    "payout_provider_circuit_breaker_state",
    "Payout provider circuit breaker state (0=closed, 1=open, 2=half_open)",
)

# Webhook metrics
webhook_events_processed_total = Counter(
    "payout_webhook_events_processed_total",
    "Total payout webhook events processed",
    ["event_type", "outcome"],  # applied, duplicate, rejected
)

webhook_processing_duration_seconds = Histogram(
    "payout_webhook_processing_duration_seconds",
    "Webhook processing duration in seconds",
    buckets=(0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0),
)


class MetricsCollector:
    """Helper class for collecting metrics."""

    @staticmethod
    def record_eligibility(result: str) -> None:
        """Record an eligibility decision."""
        payout_eligibility_total.labels(result=result).inc()

    @staticmethod
    def record_payout_execution(outcome: str, amount_cents: int = 0) -> None:
        """Record a payout execution outcome."""
        payout_executions_total.labels(outcome=outcome).inc()
        if outcome == "submitted":
            payout_amount_cents.observe(amount_cents)

    @staticmethod
    def record_provider_api_call(
        operation: str, status: str, duration_seconds: float
    ) -> None:
        """Record a payout provider API call."""
        provider_api_requests_total.labels(operation=operation, status=status).inc()
        provider_api_duration_seconds.labels(operation=operation).observe(duration_seconds)

    @staticmethod
    def record_provider_api_error(error_type: str) -> None:
        """Record a payout provider API error."""
        provider_api_errors_total.labels(error_type=error_type).inc()

    @staticmethod
    def set_circuit_breaker_state(state: str) -> None:
        """Set circuit breaker state."""
        state_map = {"closed": 0, "open": 1, "half_open": 2}
        provider_circuit_breaker_state.set(state_map.get(state, 0))

    @staticmethod
    def record_webhook_event(event_type: str, outcome: str, duration_seconds: float) -> None:
        """Record webhook event processing."""
        webhook_events_processed_total.labels(event_type=event_type, outcome=outcome).inc()
        webhook_processing_duration_seconds.observe(duration_seconds)


# Export singleton instance
metrics = MetricsCollector()
