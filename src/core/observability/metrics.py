"""
Prometheus Metrics - Alert Pipeline Observability
Tracks rule evaluations, suppression, routing, channel deliveries and digest batches.
"""

from prometheus_client import Counter, Histogram, CollectorRegistry, generate_latest

# Create a custom registry for application metrics
metrics_registry = CollectorRegistry()

# ====================
# Metrics Definitions
# ====================

# Counter: Rule evaluations by rule kind and outcome
rule_evaluations_total = Counter(
    'alert_rule_evaluations_total',
    'Total number of alert rule evaluations',
    ['rule_kind', 'status'],
    registry=metrics_registry
)

# Counter: Candidates dropped by the suppression window
alerts_suppressed_total = Counter(
    'alerts_suppressed_total',
    'Alert candidates suppressed as duplicates',
    ['rule_kind'],
    registry=metrics_registry
)

# Counter: Delivery routing decisions
routing_decisions_total = Counter(
    'alert_routing_decisions_total',
    'Routing decisions for accepted alerts',
    ['action', 'reason'],
    registry=metrics_registry
)

# Counter: Per-channel delivery outcomes
channel_deliveries_total = Counter(
    'notification_channel_deliveries_total',
    'Notification deliveries by channel and outcome',
    ['channel', 'status'],
    registry=metrics_registry
)

# Counter: Retries spent per channel
channel_retries_total = Counter(
    'notification_channel_retries_total',
    'Delivery retries by channel',
    ['channel'],
    registry=metrics_registry
)

# Counter: Digest batches by outcome
digest_batches_total = Counter(
    'digest_batches_total',
    'Digest batches processed by outcome',
    ['status'],
    registry=metrics_registry
)

# Histogram: Scheduled task duration in seconds
task_duration_seconds = Histogram(
    'scheduled_task_duration_seconds',
    'Scheduled task duration in seconds',
    ['task_id', 'status'],
    buckets=(1, 5, 10, 30, 60, 120, 180, 300, 600),
    registry=metrics_registry
)

# ====================
# Helper Functions
# ====================

def increment_rule_evaluation(rule_kind: str, status: str) -> None:
    """
    Increment rule evaluation counter.

    Args:
        rule_kind: threshold, percentage_spike, budget, anomaly
        status: triggered, suppressed, no_match, no_data, error
    """
    rule_evaluations_total.labels(rule_kind=rule_kind, status=status).inc()


def increment_alert_suppressed(rule_kind: str) -> None:
    alerts_suppressed_total.labels(rule_kind=rule_kind).inc()


def increment_routing_decision(action: str, reason: str) -> None:
    routing_decisions_total.labels(action=action, reason=reason).inc()


def record_channel_delivery(channel: str, success: bool, retries: int) -> None:
    """
    Record the final outcome of one channel delivery.

    Args:
        channel: email, slack, teams
        success: Whether any attempt succeeded
        retries: Zero-indexed retry count reported by the retry loop
    """
    channel_deliveries_total.labels(
        channel=channel,
        status="success" if success else "failed"
    ).inc()
    if retries:
        channel_retries_total.labels(channel=channel).inc(retries)


def increment_digest_batch(status: str) -> None:
    """
    Args:
        status: sent, skipped, failed
    """
    digest_batches_total.labels(status=status).inc()


def observe_task_duration(task_id: str, status: str, duration_seconds: float) -> None:
    task_duration_seconds.labels(task_id=task_id, status=status).observe(duration_seconds)


def get_metrics() -> bytes:
    """
    Generate Prometheus metrics in text format.

    Returns:
        Metrics data in Prometheus exposition format
    """
    return generate_latest(metrics_registry)
