"""
Notification Delivery

Multi-channel delivery (email, Slack, Microsoft Teams) with per-channel retry.

Usage:
    from src.core.notifications import NotificationDispatcher, NotificationProviderRegistry

    registry = NotificationProviderRegistry.with_builtin_providers(settings)
    dispatcher = NotificationDispatcher(registry, retry_delays=[0, 30, 300])
    results = await dispatcher.deliver(payload, channels)
"""

from .registry import (
    DeliveryAttemptResult,
    EmailProviderConfig,
    NotificationChannels,
    NotificationPayload,
    NotificationProviderInterface,
    NotificationProviderRegistry,
    ProviderType,
    SendOutcome,
    WebhookProviderConfig,
)
from .adapters import (
    EmailNotificationAdapter,
    SlackNotificationAdapter,
    TeamsNotificationAdapter,
    WebhookChannelAdapter,
)
from .retry import DEFAULT_RETRY_DELAYS, send_with_retry
from .dispatcher import NotificationDispatcher

__all__ = [
    "DeliveryAttemptResult",
    "EmailProviderConfig",
    "NotificationChannels",
    "NotificationPayload",
    "NotificationProviderInterface",
    "NotificationProviderRegistry",
    "ProviderType",
    "SendOutcome",
    "WebhookProviderConfig",
    "EmailNotificationAdapter",
    "SlackNotificationAdapter",
    "TeamsNotificationAdapter",
    "WebhookChannelAdapter",
    "DEFAULT_RETRY_DELAYS",
    "send_with_retry",
    "NotificationDispatcher",
]
