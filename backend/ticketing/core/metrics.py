"""
Metrics instrumentation for observability.
Exposes Prometheus-compatible metrics at /metrics endpoint.
"""

from prometheus_client import Counter, Histogram, generate_latest, CONTENT_TYPE_LATEST
from fastapi import Response

# Booking metrics
booking_attempts = Counter(
    'booking_attempts_total',
    'Total booking creation attempts',
    ['status']  # success, replay, conflict, invalid, error
)

booking_latency = Histogram(
    'booking_latency_seconds',
    'Booking creation latency, lock wait included',
    buckets=[0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5]
)

booking_transitions = Counter(
    'booking_transitions_total',
    'Booking lifecycle transitions',
    ['from_status', 'to_status']
)

# Hold metrics
hold_requests = Counter(
    'seat_hold_requests_total',
    'Seat hold requests',
    ['result']  # held, conflict, invalid
)

# Payment metrics
webhook_events = Counter(
    'payment_webhook_events_total',
    'Payment webhook deliveries',
    ['event_type', 'result']  # processed, duplicate, ignored, rejected
)

refunds = Counter(
    'payment_refunds_total',
    'Refunds processed',
    ['percentage']
)

# Sweeper metrics
sweeper_runs = Counter(
    'sweeper_runs_total',
    'Expiry sweeper job runs',
    ['job', 'result']  # completed, skipped, failed
)

sweeper_items = Counter(
    'sweeper_items_total',
    'Rows reclaimed by the expiry sweeper',
    ['job', 'result']  # expired, failed, deleted
)


def metrics_endpoint() -> Response:
    """
    Prometheus metrics endpoint.

    Usage:
        @app.get("/metrics")
        def metrics():
            return metrics_endpoint()
    """
    return Response(
        content=generate_latest(),
        media_type=CONTENT_TYPE_LATEST
    )


def record_booking_attempt(status: str):
    """Record booking attempt. Status: success, replay, conflict, invalid, error"""
    booking_attempts.labels(status=status).inc()


def record_transition(from_status: str, to_status: str):
    booking_transitions.labels(from_status=from_status, to_status=to_status).inc()


def record_hold(result: str):
    hold_requests.labels(result=result).inc()


def record_webhook(event_type: str, result: str):
    webhook_events.labels(event_type=event_type, result=result).inc()


def record_refund(percentage: int):
    refunds.labels(percentage=str(percentage)).inc()


def record_sweeper_run(job: str, result: str):
    sweeper_runs.labels(job=job, result=result).inc()


def record_sweeper_items(job: str, result: str, count: int = 1):
    if count:
        sweeper_items.labels(job=job, result=result).inc(count)
