"""
Application Container

Builds the alert pipeline object graph from settings and YAML configs.
"""

import threading
from pathlib import Path
from typing import Optional

from src.app.config import Settings, settings as default_settings
from src.core.alerts.config_loader import AlertConfigLoader
from src.core.alerts.deduplicator import AlertDeduplicator
from src.core.alerts.engine import AlertEngine
from src.core.alerts.rule_evaluator import RuleEvaluator
from src.core.digest.digest_job import DigestJob
from src.core.digest.queue_manager import DigestQueueManager
from src.core.digest.router import DeliveryRouter
from src.core.notifications.dispatcher import NotificationDispatcher
from src.core.notifications.registry import NotificationProviderRegistry
from src.core.scheduler.task_scheduler import TaskOrchestrator, build_cron_tasks
from src.core.stores.base import (
    AlertStore,
    ChannelSettingsStore,
    CostFeed,
    DigestQueueStore,
    PreferencesStore,
    RuleStore,
)
from src.core.stores.memory import (
    InMemoryAlertStore,
    InMemoryChannelSettingsStore,
    InMemoryCostFeed,
    InMemoryDigestQueueStore,
    InMemoryPreferencesStore,
    InMemoryRuleStore,
)


class Container:
    """Holds stores and services for one process."""

    def __init__(
        self,
        settings: Settings,
        rule_store: RuleStore,
        cost_feed: CostFeed,
        alert_store: AlertStore,
        preferences_store: PreferencesStore,
        channel_store: ChannelSettingsStore,
        queue_store: DigestQueueStore,
        registry: Optional[NotificationProviderRegistry] = None,
    ):
        self.settings = settings
        self.rule_store = rule_store
        self.cost_feed = cost_feed
        self.alert_store = alert_store
        self.preferences_store = preferences_store
        self.channel_store = channel_store
        self.queue_store = queue_store

        self.registry = registry or NotificationProviderRegistry.with_builtin_providers(settings)
        self.dispatcher = NotificationDispatcher(
            self.registry,
            retry_delays=settings.notification_retry_delays_seconds,
        )
        self.queue_manager = DigestQueueManager(queue_store, alert_store)
        self.alert_engine = AlertEngine(
            rule_store=rule_store,
            cost_feed=cost_feed,
            deduplicator=AlertDeduplicator(alert_store, settings.alert_suppression_window_minutes),
            router=DeliveryRouter(),
            queue_manager=self.queue_manager,
            dispatcher=self.dispatcher,
            preferences_store=preferences_store,
            channel_store=channel_store,
            evaluator=RuleEvaluator(top_n=settings.alert_top_contributors),
            app_url=settings.app_url,
            concurrency=settings.alert_evaluation_concurrency,
        )
        self.digest_job = DigestJob(
            queue_manager=self.queue_manager,
            preferences_store=preferences_store,
            channel_store=channel_store,
            dispatcher=self.dispatcher,
            app_url=settings.app_url,
        )

    def build_orchestrator(self) -> TaskOrchestrator:
        return TaskOrchestrator(
            handlers={
                "evaluate-alerts": lambda now: self.alert_engine.evaluate_all_rules(now=now),
                "send-digests": lambda now: self.digest_job.run(now=now),
            },
            tasks=build_cron_tasks(self.settings),
        )

    @classmethod
    def from_config_files(
        cls,
        settings: Settings,
        config_path: Optional[Path] = None
    ) -> "Container":
        """In-memory stores seeded from the YAML config directory."""
        loader = AlertConfigLoader(Path(config_path or settings.config_path))
        return cls(
            settings=settings,
            rule_store=InMemoryRuleStore(loader.load_rules()),
            cost_feed=InMemoryCostFeed(loader.load_costs()),
            alert_store=InMemoryAlertStore(),
            preferences_store=InMemoryPreferencesStore(loader.load_preferences()),
            channel_store=InMemoryChannelSettingsStore(loader.load_channels()),
            queue_store=InMemoryDigestQueueStore(),
        )


# ============================================
# Singleton Pattern
# ============================================

_container: Optional[Container] = None
_container_lock = threading.Lock()


def get_container() -> Container:
    """Get the process-wide container (thread-safe)."""
    global _container

    if _container is None:
        with _container_lock:
            if _container is None:
                _container = Container.from_config_files(default_settings)

    return _container


def reset_container() -> None:
    global _container
    with _container_lock:
        _container = None
