"""
Metrics instrumentation for observability.
Exposes Prometheus-compatible metrics at /metrics endpoint.
"""

from prometheus_client import Counter, Histogram, Gauge, generate_latest, CONTENT_TYPE_LATEST
from fastapi import Response

# Resolution pass metrics
resolution_passes = Counter(
    'resolution_passes_total',
    'Resolution passes run per event',
    ['result']  # completed, empty, closed, locked, error
)

resolution_latency = Histogram(
    'resolution_pass_latency_seconds',
    'Wall time of one resolution pass',
    buckets=[0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0]
)

registrations_resolved = Counter(
    'registrations_resolved_total',
    'Pending intents resolved to a final status',
    ['status']  # registered, waitlisted, cancelled
)

registration_swaps = Counter(
    'registration_swaps_total',
    'Non-prioritized registrations displaced to the waitlist'
)

intents_discarded = Counter(
    'intents_discarded_total',
    'Staged intents dropped without a status change',
    ['reason']  # stale, closed, malformed
)

# Scheduler metrics
scheduler_queue_depth = Gauge(
    'resolution_queue_depth',
    'Events waiting for a resolution worker'
)

event_lock_contention = Counter(
    'event_lock_contention_total',
    'Resolution attempts skipped because the event lock was held'
)

# Notification metrics
notifications_sent = Counter(
    'notifications_sent_total',
    'Notifications dispatched',
    ['kind']  # registered, waitlisted, blocked, displaced
)

notification_failures = Counter(
    'notification_failures_total',
    'Notifications that failed to dispatch',
    ['kind']
)


def metrics_endpoint() -> Response:
    """Prometheus metrics endpoint."""
    return Response(
        content=generate_latest(),
        media_type=CONTENT_TYPE_LATEST
    )


def record_resolution_pass(result: str):
    """Record pass outcome. Result: completed, empty, closed, locked, error"""
    resolution_passes.labels(result=result).inc()


def record_resolved(status: str):
    registrations_resolved.labels(status=status).inc()


def record_discarded_intent(reason: str):
    intents_discarded.labels(reason=reason).inc()


def record_notification(kind: str, delivered: bool):
    """Record notification dispatch result."""
    if delivered:
        notifications_sent.labels(kind=kind).inc()
    else:
        notification_failures.labels(kind=kind).inc()
