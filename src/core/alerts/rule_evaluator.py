"""
Rule Evaluator

Evaluates a cost alert rule against a window of daily cost aggregates.
Pure: no I/O and no clock; the evaluation date comes from the window.
"""

import logging
from typing import Callable, Dict, List, Optional, Tuple

from src.core.exceptions import ErrorCode, RuleConfigurationError
from .models import (
    AlertCandidate,
    AlertRule,
    AlertSeverity,
    AlertStatus,
    CostWindow,
    EvaluationResult,
    ResourceCost,
    RuleKind,
)

logger = logging.getLogger(__name__)

UNKNOWN_RESOURCE_NAME = "Unknown Resource"

# (minimum ratio, severity), highest first
SEVERITY_RATIOS: Tuple[Tuple[float, AlertSeverity], ...] = (
    (2.0, AlertSeverity.CRITICAL),
    (1.5, AlertSeverity.HIGH),
    (1.2, AlertSeverity.MEDIUM),
)

WEEKEND_DAYS = (5, 6)  # date.weekday(): Saturday, Sunday


def get_severity(observed: float, threshold: float) -> AlertSeverity:
    """
    Map the observed-to-threshold ratio to a severity.

    >= 2.0 critical, >= 1.5 high, >= 1.2 medium, otherwise low.
    """
    if threshold <= 0:
        return AlertSeverity.LOW
    ratio = observed / threshold
    for minimum, severity in SEVERITY_RATIOS:
        if ratio >= minimum:
            return severity
    return AlertSeverity.LOW


def top_contributors(resources: List[ResourceCost], limit: int = 3) -> Tuple[ResourceCost, ...]:
    """Highest-cost resources first; unnamed resources get a placeholder name."""
    ranked = sorted(resources, key=lambda r: r.cost or 0, reverse=True)[:limit]
    return tuple(
        ResourceCost(
            resource_name=r.resource_name or UNKNOWN_RESOURCE_NAME,
            resource_type=r.resource_type,
            cost=r.cost or 0,
        )
        for r in ranked
    )


def _require(rule: AlertRule, param: str) -> float:
    value = getattr(rule, param, None)
    if value is None or value <= 0:
        raise RuleConfigurationError(
            f"Rule {rule.rule_id} ({rule.kind.value}) requires a positive {param}",
            context={"rule_id": rule.rule_id, "param": param},
        )
    return value


# ============================================
# Per-kind Evaluators
# ============================================
# Each returns (status, candidate fields when triggered, reason)

_Outcome = Tuple[AlertStatus, Optional[dict], str]


def _evaluate_threshold(rule: AlertRule, window: CostWindow) -> _Outcome:
    threshold = _require(rule, "threshold_amount")
    current = window.current_total
    if current is None:
        return AlertStatus.NO_DATA, None, f"No cost data for {window.as_of}"
    if current <= threshold:
        return AlertStatus.NO_MATCH, None, f"{current:.2f} <= {threshold:.2f}"
    return AlertStatus.TRIGGERED, {
        "observed_value": current,
        "threshold_value": threshold,
        "percent_change": None,
        "severity": get_severity(current, threshold),
    }, f"{current:.2f} > {threshold:.2f}"


def _evaluate_percentage_spike(rule: AlertRule, window: CostWindow) -> _Outcome:
    threshold_percent = _require(rule, "threshold_percent")
    current = window.current_total
    if current is None:
        return AlertStatus.NO_DATA, None, f"No cost data for {window.as_of}"
    previous = window.previous_total
    if not previous:
        return AlertStatus.NO_DATA, None, "Previous day missing or zero"

    percent_change = (current - previous) / previous * 100
    if percent_change <= threshold_percent:
        return AlertStatus.NO_MATCH, None, f"{percent_change:.1f}% <= {threshold_percent}%"
    return AlertStatus.TRIGGERED, {
        "observed_value": current,
        "threshold_value": previous,
        "percent_change": round(percent_change, 1),
        "severity": get_severity(percent_change, threshold_percent),
    }, f"{percent_change:.1f}% > {threshold_percent}%"


def _evaluate_budget(rule: AlertRule, window: CostWindow) -> _Outcome:
    """
    Linear month-end projection: month_to_date / day_of_month * days_in_month.

    The used percentage is month_to_date relative to the projection.
    """
    threshold_percent = _require(rule, "threshold_percent")
    month_to_date = window.month_to_date_total
    if month_to_date is None:
        return AlertStatus.NO_DATA, None, "No month-to-date cost data"

    projected = month_to_date / window.as_of.day * window.days_in_month
    if projected <= 0:
        return AlertStatus.NO_MATCH, None, "No spend this month"

    used_percent = month_to_date / projected * 100
    if used_percent <= threshold_percent:
        return AlertStatus.NO_MATCH, None, f"{used_percent:.1f}% <= {threshold_percent}%"
    return AlertStatus.TRIGGERED, {
        "observed_value": month_to_date,
        "threshold_value": projected,
        "percent_change": round(used_percent, 1),
        "severity": get_severity(used_percent, threshold_percent),
    }, f"{used_percent:.1f}% of projected {projected:.2f}"


def _evaluate_anomaly(rule: AlertRule, window: CostWindow) -> _Outcome:
    """Weekend spend above threshold_amount."""
    threshold = _require(rule, "threshold_amount")
    current = window.current_total
    if current is None:
        return AlertStatus.NO_DATA, None, f"No cost data for {window.as_of}"
    if window.as_of.weekday() not in WEEKEND_DAYS:
        return AlertStatus.NO_MATCH, None, "Not a weekend day"
    if current <= threshold:
        return AlertStatus.NO_MATCH, None, f"{current:.2f} <= {threshold:.2f}"
    return AlertStatus.TRIGGERED, {
        "observed_value": current,
        "threshold_value": threshold,
        "percent_change": None,
        "severity": get_severity(current, threshold),
    }, f"Weekend spend {current:.2f} > {threshold:.2f}"


EVALUATORS: Dict[RuleKind, Callable[[AlertRule, CostWindow], _Outcome]] = {
    RuleKind.THRESHOLD: _evaluate_threshold,
    RuleKind.PERCENTAGE_SPIKE: _evaluate_percentage_spike,
    RuleKind.BUDGET: _evaluate_budget,
    RuleKind.ANOMALY: _evaluate_anomaly,
}


class RuleEvaluator:
    """
    Evaluates alert rules against cost windows.

    Identical inputs always produce identical output.
    """

    def __init__(
        self,
        top_n: int = 3,
        evaluators: Optional[Dict[RuleKind, Callable[[AlertRule, CostWindow], _Outcome]]] = None
    ):
        self.top_n = top_n
        self.evaluators = evaluators if evaluators is not None else EVALUATORS

    def check(self, rule: AlertRule, window: CostWindow) -> EvaluationResult:
        """
        Evaluate a rule and report the outcome status.

        Raises:
            RuleConfigurationError: rule kind has no evaluator or the rule
                is missing the parameter its kind requires
        """
        evaluator = self.evaluators.get(rule.kind)
        if evaluator is None:
            raise RuleConfigurationError(
                f"Unsupported rule kind: {rule.kind}",
                error_code=ErrorCode.UNSUPPORTED_RULE_KIND,
                context={"rule_id": rule.rule_id},
            )

        status, fields, reason = evaluator(rule, window)
        if status != AlertStatus.TRIGGERED:
            logger.debug(
                f"Rule {rule.rule_id} not triggered: {reason}",
                extra={"rule_id": rule.rule_id, "status": status.value}
            )
            return EvaluationResult(status=status, reason=reason)

        candidate = AlertCandidate(
            rule_id=rule.rule_id,
            rule_name=rule.name,
            rule_kind=rule.kind,
            org_id=rule.org_id,
            target_id=rule.target_id,
            target_name=rule.target_name,
            top_resources=top_contributors(window.current_resources(), self.top_n),
            channels=tuple(rule.channels),
            as_of=window.as_of,
            **fields,
        )
        return EvaluationResult(status=status, candidate=candidate, reason=reason)

    def evaluate(self, rule: AlertRule, window: CostWindow) -> Optional[AlertCandidate]:
        """Return an alert candidate when the rule fires, otherwise None."""
        return self.check(rule, window).candidate
