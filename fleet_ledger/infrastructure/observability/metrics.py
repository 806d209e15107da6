"""Prometheus metrics for monitoring ledger payments, webhooks and notifications"""

from prometheus_client import Counter, Histogram

# Ledger metrics
payment_counter = Counter(
    "fleet_ledger_payments_total",
    "Payments recorded against plan selections",
    ["source", "declared_type"],  # driver | admin | gateway ; security | rent | total
)

payment_amount_counter = Counter(
    "fleet_ledger_payment_paise_total",
    "Paise credited to the ledger",
    ["source"],
)

ledger_conflict_counter = Counter(
    "fleet_ledger_write_conflicts_total",
    "Optimistic-lock conflicts on plan selection writes",
)

status_transition_counter = Counter(
    "fleet_ledger_status_transitions_total",
    "Plan selection status changes",
    ["target"],
)

# Gateway webhook metrics
gateway_webhook_counter = Counter(
    "gateway_webhook_events_total",
    "Gateway webhook deliveries by processing outcome",
    ["outcome"],  # processed | duplicate | ignored | failed
)

# Notification dispatcher metrics
notification_latency_histogram = Histogram(
    "notification_latency_seconds",
    "Notification dispatcher response time",
    buckets=[0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0],
)

notification_failure_counter = Counter(
    "notification_failures_total",
    "Failed notification deliveries",
)

# Service health
request_duration_histogram = Histogram(
    "http_request_duration_seconds",
    "HTTP request latency",
    ["method", "endpoint", "status"],
)


def record_payment(source: str, declared_type: str | None, amount_paise: int) -> None:
    """Record payment metrics by channel and declared obligation"""
    payment_counter.labels(source=source, declared_type=declared_type or "total").inc()
    payment_amount_counter.labels(source=source).inc(amount_paise)
