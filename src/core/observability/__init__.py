"""
Observability Module - Metrics
"""

from src.core.observability.metrics import (
    metrics_registry,
    increment_rule_evaluation,
    increment_alert_suppressed,
    increment_routing_decision,
    record_channel_delivery,
    increment_digest_batch,
    observe_task_duration,
    get_metrics,
)

__all__ = [
    'metrics_registry',
    'increment_rule_evaluation',
    'increment_alert_suppressed',
    'increment_routing_decision',
    'record_channel_delivery',
    'increment_digest_batch',
    'observe_task_duration',
    'get_metrics',
]
