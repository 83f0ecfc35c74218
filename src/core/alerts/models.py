"""
Alert Models

Pydantic models for alert rules, cost data windows, alert candidates and history.
"""

import calendar
from enum import Enum
from typing import Optional, List, Dict, Any, Tuple
from datetime import date, datetime, timedelta, timezone
from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


SUPPORTED_CHANNELS = ("email", "slack", "teams")


class RuleKind(str, Enum):
    """Supported alert rule kinds."""
    THRESHOLD = "threshold"
    PERCENTAGE_SPIKE = "percentage_spike"
    BUDGET = "budget"
    ANOMALY = "anomaly"


class RuleStatus(str, Enum):
    """Alert rule lifecycle status."""
    ACTIVE = "active"
    PAUSED = "paused"


class AlertSeverity(str, Enum):
    """Alert severity levels, lowest first."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class AlertStatus(str, Enum):
    """Outcome of evaluating a single rule."""
    TRIGGERED = "triggered"
    SUPPRESSED = "suppressed"
    NO_MATCH = "no_match"
    NO_DATA = "no_data"
    ERROR = "error"


# Rule kind -> name of the parameter it requires
REQUIRED_PARAMETER: Dict[RuleKind, str] = {
    RuleKind.THRESHOLD: "threshold_amount",
    RuleKind.ANOMALY: "threshold_amount",
    RuleKind.PERCENTAGE_SPIKE: "threshold_percent",
    RuleKind.BUDGET: "threshold_percent",
}


# ============================================
# Rule Configuration
# ============================================

class AlertRule(BaseModel):
    """User-defined cost alert rule for one monitored target."""
    rule_id: str = Field(..., description="Unique rule ID")
    org_id: str = Field(..., description="Owning organization")
    target_id: str = Field(..., description="Monitored account/tenant ID")
    target_name: str = Field(default="Unknown Tenant", description="Display name of the target")
    name: str = Field(..., description="Rule name")
    kind: RuleKind = Field(..., description="Rule kind")
    threshold_amount: Optional[float] = Field(default=None, description="Amount in USD (threshold, anomaly)")
    threshold_percent: Optional[float] = Field(default=None, description="Percent (percentage_spike, budget)")
    channels: List[str] = Field(default_factory=lambda: ["email"], description="Enabled notification channels")
    status: RuleStatus = Field(default=RuleStatus.ACTIVE, description="Lifecycle status")

    @field_validator("channels")
    @classmethod
    def validate_channels(cls, v: List[str]) -> List[str]:
        normalized = [c.strip().lower() for c in v]
        unknown = [c for c in normalized if c not in SUPPORTED_CHANNELS]
        if unknown:
            raise ValueError(f"Unsupported channels: {unknown}")
        # Preserve order, drop duplicates
        return list(dict.fromkeys(normalized))

    @model_validator(mode="after")
    def validate_kind_parameter(self) -> "AlertRule":
        """The parameter required by the rule kind must be present and positive."""
        param = REQUIRED_PARAMETER[self.kind]
        value = getattr(self, param)
        if value is None:
            raise ValueError(f"{self.kind.value} rules require {param}")
        if value <= 0:
            raise ValueError(f"{param} must be positive, got {value}")
        return self

    @property
    def is_active(self) -> bool:
        return self.status == RuleStatus.ACTIVE


# ============================================
# Cost Data
# ============================================

class ResourceCost(BaseModel):
    """Cost of a single resource on a given day."""
    model_config = ConfigDict(frozen=True)

    resource_name: Optional[str] = None
    resource_type: Optional[str] = None
    cost: float = 0.0


class CostAggregate(BaseModel):
    """Daily spend total for a target, with optional per-resource breakdown."""
    model_config = ConfigDict(frozen=True)

    target_id: str
    usage_date: date
    total_cost: float
    resources: Tuple[ResourceCost, ...] = ()


class CostWindow(BaseModel):
    """
    Cost aggregates for one target around an evaluation date.

    Multiple aggregates for the same date are summed. A date with no
    aggregates at all is "missing", which is different from a zero total.
    """
    model_config = ConfigDict(frozen=True)

    as_of: date
    aggregates: Tuple[CostAggregate, ...] = ()

    @staticmethod
    def fetch_range(as_of: date) -> Tuple[date, date]:
        """Date range a window needs: the prior day through as_of, widened to month start."""
        start = min(as_of.replace(day=1), as_of - timedelta(days=1))
        return start, as_of

    def rows_for(self, day: date) -> List[CostAggregate]:
        return [a for a in self.aggregates if a.usage_date == day]

    def total_for(self, day: date) -> Optional[float]:
        rows = self.rows_for(day)
        if not rows:
            return None
        return sum(a.total_cost for a in rows)

    @property
    def current_total(self) -> Optional[float]:
        return self.total_for(self.as_of)

    @property
    def previous_total(self) -> Optional[float]:
        return self.total_for(self.as_of - timedelta(days=1))

    @property
    def month_to_date_total(self) -> Optional[float]:
        month_start = self.as_of.replace(day=1)
        rows = [a for a in self.aggregates if month_start <= a.usage_date <= self.as_of]
        if not rows:
            return None
        return sum(a.total_cost for a in rows)

    @property
    def days_in_month(self) -> int:
        return calendar.monthrange(self.as_of.year, self.as_of.month)[1]

    def current_resources(self) -> List[ResourceCost]:
        resources: List[ResourceCost] = []
        for row in self.rows_for(self.as_of):
            resources.extend(row.resources)
        return resources


# ============================================
# Evaluation Results
# ============================================

class AlertCandidate(BaseModel):
    """A rule whose condition holds, before deduplication."""
    model_config = ConfigDict(frozen=True)

    rule_id: str
    rule_name: str
    rule_kind: RuleKind
    org_id: str
    target_id: str
    target_name: str
    severity: AlertSeverity
    observed_value: float
    threshold_value: float
    percent_change: Optional[float] = None
    top_resources: Tuple[ResourceCost, ...] = ()
    channels: Tuple[str, ...] = ()
    as_of: date


class EvaluationResult(BaseModel):
    """Outcome of checking one rule against its cost window."""
    status: AlertStatus
    candidate: Optional[AlertCandidate] = None
    reason: Optional[str] = None

    @property
    def triggered(self) -> bool:
        return self.status == AlertStatus.TRIGGERED


class AlertEvent(BaseModel):
    """
    Persisted alert.

    Everything but queued_for_digest and digest_batch_id is fixed at creation.
    """
    alert_id: str
    org_id: str
    rule_id: str
    rule_name: str
    rule_kind: RuleKind
    target_id: str
    target_name: str
    severity: AlertSeverity
    title: str
    message: str
    observed_value: float
    threshold_value: float
    percent_change: Optional[float] = None
    top_resources: Tuple[ResourceCost, ...] = ()
    channels: Tuple[str, ...] = ()
    triggered_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    queued_for_digest: bool = False
    digest_batch_id: Optional[str] = None

    @property
    def cost_impact(self) -> float:
        """Amount by which the observed value exceeds the threshold, floored at zero."""
        return max(0.0, (self.observed_value or 0) - (self.threshold_value or 0))

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        result = self.model_dump(mode="json")
        return result


class EvaluationSummary(BaseModel):
    """Summary of an alert evaluation run."""
    rules_evaluated: int = 0
    triggered: int = 0
    suppressed: int = 0
    no_match: int = 0
    no_data: int = 0
    delivered: int = 0
    queued: int = 0
    delivery_failures: int = 0
    errors: int = 0
    duration_ms: float = 0
    details: List[Dict[str, Any]] = Field(default_factory=list)
