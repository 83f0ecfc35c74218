"""
Alert Engine

Main orchestrator for scheduled alert evaluation.

Flow per active rule:
1. Fetch the cost window for the rule's target
2. Evaluate the rule
3. Deduplicate (suppression window)
4. Route: immediate delivery or digest queue (a failed queue write falls back to immediate)
5. Deliver to the rule's enabled channels
"""

import asyncio
import logging
from datetime import date, datetime, timezone
from typing import Any, Dict, Optional

from src.core.digest.models import RoutingAction
from src.core.digest.queue_manager import DigestQueueManager
from src.core.digest.router import DeliveryRouter, RoutingReason
from src.core.exceptions import AlertPipelineError, DigestQueueError
from src.core.notifications.dispatcher import NotificationDispatcher
from src.core.notifications.payloads import build_alert_payload
from src.core.observability.metrics import (
    increment_alert_suppressed,
    increment_routing_decision,
    increment_rule_evaluation,
)
from src.core.stores.base import ChannelSettingsStore, CostFeed, PreferencesStore, RuleStore
from src.core.utils.logging import safe_error_log
from .deduplicator import AlertDeduplicator
from .models import AlertEvent, AlertRule, AlertStatus, CostWindow, EvaluationSummary
from .rule_evaluator import RuleEvaluator

logger = logging.getLogger(__name__)


class AlertEngine:
    """
    Evaluates every active rule and hands fired alerts to delivery.

    Rules run concurrently up to `concurrency`; a failure in one rule is
    recorded in the summary and never stops the others.
    """

    def __init__(
        self,
        rule_store: RuleStore,
        cost_feed: CostFeed,
        deduplicator: AlertDeduplicator,
        router: DeliveryRouter,
        queue_manager: DigestQueueManager,
        dispatcher: NotificationDispatcher,
        preferences_store: PreferencesStore,
        channel_store: ChannelSettingsStore,
        evaluator: Optional[RuleEvaluator] = None,
        app_url: str = "https://cloudhalo.app",
        concurrency: int = 10,
    ):
        self.rule_store = rule_store
        self.cost_feed = cost_feed
        self.deduplicator = deduplicator
        self.router = router
        self.queue_manager = queue_manager
        self.dispatcher = dispatcher
        self.preferences_store = preferences_store
        self.channel_store = channel_store
        self.evaluator = evaluator or RuleEvaluator()
        self.app_url = app_url
        self.concurrency = concurrency

    async def evaluate_all_rules(
        self,
        now: Optional[datetime] = None,
        as_of: Optional[date] = None
    ) -> EvaluationSummary:
        """
        Evaluate all active rules.

        Args:
            now: Run time used for suppression and routing (defaults to UTC now)
            as_of: Cost date to evaluate (defaults to now's UTC date)

        Returns:
            EvaluationSummary with per-rule details
        """
        now = now or datetime.now(timezone.utc)
        as_of = as_of or now.astimezone(timezone.utc).date()
        start_time = datetime.now(timezone.utc)
        summary = EvaluationSummary()

        rules = await self.rule_store.list_active_rules()
        logger.info(f"Evaluating {len(rules)} active rules for {as_of}")

        semaphore = asyncio.Semaphore(self.concurrency)

        async def _bounded(rule: AlertRule) -> Dict[str, Any]:
            async with semaphore:
                return await self._evaluate_rule_isolated(rule, now, as_of)

        details = await asyncio.gather(*[_bounded(rule) for rule in rules])

        for detail in details:
            summary.rules_evaluated += 1
            status = detail["status"]
            if status == AlertStatus.TRIGGERED.value:
                summary.triggered += 1
                if detail.get("routing") == "queued":
                    summary.queued += 1
                elif detail.get("delivered"):
                    summary.delivered += 1
                if detail.get("delivery_failed"):
                    summary.delivery_failures += 1
            elif status == AlertStatus.SUPPRESSED.value:
                summary.suppressed += 1
            elif status == AlertStatus.NO_MATCH.value:
                summary.no_match += 1
            elif status == AlertStatus.NO_DATA.value:
                summary.no_data += 1
            else:
                summary.errors += 1
            summary.details.append(detail)

        summary.duration_ms = (datetime.now(timezone.utc) - start_time).total_seconds() * 1000
        logger.info(
            f"Alert evaluation complete: {summary.triggered} triggered, "
            f"{summary.suppressed} suppressed, {summary.errors} errors",
            extra={"duration_ms": summary.duration_ms}
        )
        return summary

    async def _evaluate_rule_isolated(
        self,
        rule: AlertRule,
        now: datetime,
        as_of: date
    ) -> Dict[str, Any]:
        try:
            detail = await self.evaluate_rule(rule, now, as_of)
        except AlertPipelineError as e:
            logger.error(
                f"Alert rule {rule.rule_id} failed: {e.message}",
                extra={
                    "rule_id": rule.rule_id,
                    "error_code": e.error_code.value,
                    "category": e.category.value,
                }
            )
            detail = {"rule_id": rule.rule_id, "status": AlertStatus.ERROR.value, "error": e.message}
        except Exception as e:
            safe_error_log(logger, f"Alert rule {rule.rule_id} failed", e, rule_id=rule.rule_id)
            detail = {"rule_id": rule.rule_id, "status": AlertStatus.ERROR.value, "error": str(e)}

        increment_rule_evaluation(rule.kind.value, detail["status"])
        return detail

    async def evaluate_rule(self, rule: AlertRule, now: datetime, as_of: date) -> Dict[str, Any]:
        """Evaluate one rule end to end. Raises on configuration or persistence errors."""
        start, end = CostWindow.fetch_range(as_of)
        aggregates = await self.cost_feed.get_costs(rule.target_id, start, end)
        window = CostWindow(as_of=as_of, aggregates=tuple(aggregates))

        result = self.evaluator.check(rule, window)
        detail: Dict[str, Any] = {
            "rule_id": rule.rule_id,
            "org_id": rule.org_id,
            "status": result.status.value,
            "reason": result.reason,
        }
        if result.candidate is None:
            return detail

        alert = await self.deduplicator.accept(result.candidate, now)
        if alert is None:
            increment_alert_suppressed(rule.kind.value)
            detail["status"] = AlertStatus.SUPPRESSED.value
            return detail

        detail["alert_id"] = alert.alert_id
        detail["severity"] = alert.severity.value

        preferences = await self.preferences_store.get_preferences(alert.org_id)
        decision = self.router.route(alert, preferences, now)
        increment_routing_decision(decision.action.value, decision.reason)
        detail["routing"] = decision.action.value
        detail["routing_reason"] = decision.reason

        if not decision.is_immediate:
            try:
                await self.queue_manager.queue_alert(alert, decision.scheduled_for)
            except DigestQueueError as e:
                # Accepted alerts are never left undelivered and unqueued.
                logger.error(
                    f"Digest queue write failed for alert {alert.alert_id}, delivering immediately: {e.message}",
                    extra={"alert_id": alert.alert_id, "org_id": alert.org_id, "error_code": e.error_code.value}
                )
                increment_routing_decision(RoutingAction.IMMEDIATE.value, RoutingReason.QUEUE_WRITE_FAILED)
                detail["routing"] = RoutingAction.IMMEDIATE.value
                detail["routing_reason"] = RoutingReason.QUEUE_WRITE_FAILED
                detail["queue_error"] = e.message
            else:
                detail["scheduled_for"] = decision.scheduled_for.isoformat()
                return detail

        results = await self.deliver_alert(alert)
        detail["deliveries"] = [r.to_dict() for r in results]
        detail["delivered"] = any(r.success for r in results)
        detail["delivery_failed"] = bool(results) and not detail["delivered"]
        return detail

    async def deliver_alert(self, alert: AlertEvent):
        """Send an alert immediately to the intersection of rule and org channels."""
        channels = await self.channel_store.get_channels(alert.org_id)
        if channels is None:
            logger.warning(
                f"No channel settings for org {alert.org_id}, alert {alert.alert_id} not delivered",
                extra={"org_id": alert.org_id, "alert_id": alert.alert_id}
            )
            return []

        payload = build_alert_payload(alert, self.app_url)
        return await self.dispatcher.deliver(payload, channels, requested=alert.channels)

