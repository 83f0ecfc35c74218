"""
Cost Alert Framework

Rule evaluation over daily cost aggregates.

Components:
- RuleEvaluator: per-kind condition checks and severity
- AlertDeduplicator: suppression window in front of the alert store (deduplicator)
- AlertEngine: scheduled evaluation run (engine)
"""

from .models import (
    AlertCandidate,
    AlertEvent,
    AlertRule,
    AlertSeverity,
    AlertStatus,
    CostAggregate,
    CostWindow,
    EvaluationResult,
    EvaluationSummary,
    ResourceCost,
    RuleKind,
    RuleStatus,
)
from .rule_evaluator import RuleEvaluator, get_severity, top_contributors

__all__ = [
    "AlertCandidate",
    "AlertEvent",
    "AlertRule",
    "AlertSeverity",
    "AlertStatus",
    "CostAggregate",
    "CostWindow",
    "EvaluationResult",
    "EvaluationSummary",
    "ResourceCost",
    "RuleKind",
    "RuleStatus",
    "RuleEvaluator",
    "get_severity",
    "top_contributors",
]
