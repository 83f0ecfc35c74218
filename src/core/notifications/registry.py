"""
Notification Provider Registry

Provider types, configuration, the provider-agnostic payload and the
provider interface, plus a registry that maps provider types to adapters.
"""

import logging
import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Type, Union

from pydantic import BaseModel, Field

from src.app.config import Settings

logger = logging.getLogger(__name__)


# ============================================
# Provider Types
# ============================================

class ProviderType(str, Enum):
    """Supported notification provider types."""
    EMAIL = "email"
    SLACK = "slack"
    TEAMS = "teams"


# ============================================
# Provider Configuration
# ============================================

@dataclass
class BaseProviderConfig:
    """Base configuration for all providers."""
    enabled: bool = True
    timeout_seconds: int = 30


@dataclass
class EmailProviderConfig(BaseProviderConfig):
    """SMTP configuration."""
    smtp_host: str = ""
    smtp_port: int = 587
    smtp_username: Optional[str] = None
    smtp_password: Optional[str] = None
    smtp_use_tls: bool = True
    from_email: str = "alerts@cloudhalo.app"
    from_name: str = "CloudHalo Alerts"
    subject_prefix: str = "[CloudHalo]"

    @classmethod
    def from_settings(cls, settings: Settings) -> "EmailProviderConfig":
        return cls(
            timeout_seconds=settings.notification_timeout_seconds,
            smtp_host=settings.email_smtp_host,
            smtp_port=settings.email_smtp_port,
            smtp_username=settings.email_smtp_username,
            smtp_password=settings.email_smtp_password,
            smtp_use_tls=settings.email_smtp_use_tls,
            from_email=settings.email_from_address,
            from_name=settings.email_from_name,
            subject_prefix=settings.email_subject_prefix,
        )


@dataclass
class WebhookProviderConfig(BaseProviderConfig):
    """Chat webhook configuration (Slack, Teams)."""
    username: str = "CloudHalo Alerts"
    icon_emoji: str = ":bell:"

    @classmethod
    def from_settings(cls, settings: Settings) -> "WebhookProviderConfig":
        return cls(
            timeout_seconds=settings.notification_timeout_seconds,
            username=settings.slack_bot_username,
        )


# ============================================
# Organization Channel Settings
# ============================================

class NotificationChannels(BaseModel):
    """Per-organization channel settings."""
    org_id: str
    email_enabled: bool = True
    email_addresses: List[str] = Field(default_factory=list)
    slack_enabled: bool = False
    slack_webhook_url: Optional[str] = None
    teams_enabled: bool = False
    teams_webhook_url: Optional[str] = None

    def is_enabled(self, provider_type: ProviderType) -> bool:
        return {
            ProviderType.EMAIL: self.email_enabled,
            ProviderType.SLACK: self.slack_enabled,
            ProviderType.TEAMS: self.teams_enabled,
        }[provider_type]

    def destination(self, provider_type: ProviderType) -> Optional[Union[str, List[str]]]:
        """Addresses for email, webhook URL for chat channels; None when not configured."""
        if provider_type == ProviderType.EMAIL:
            return list(self.email_addresses) or None
        if provider_type == ProviderType.SLACK:
            return self.slack_webhook_url or None
        return self.teams_webhook_url or None


# ============================================
# Notification Message (Provider-agnostic)
# ============================================

@dataclass
class NotificationPayload:
    """
    Provider-agnostic notification payload.

    Built once per alert or digest and rendered by each adapter.
    """
    title: str
    message: str
    severity: str = "low"  # low, medium, high, critical
    kind: str = "alert"  # alert, digest

    # Context
    org_id: Optional[str] = None
    alert_id: Optional[str] = None
    target_name: Optional[str] = None
    triggered_at: Optional[datetime] = None
    link: Optional[str] = None

    # Alert figures
    observed_value: Optional[float] = None
    threshold_value: Optional[float] = None
    threshold_label: str = "Threshold"
    percent_change: Optional[float] = None
    contributors: List[Dict[str, Any]] = field(default_factory=list)

    # Digest sections, one per target: {"target_name", "alert_count", "cost_impact", "alerts": [alert dicts]}
    sections: List[Dict[str, Any]] = field(default_factory=list)

    # Extra key/value details
    data: Dict[str, Any] = field(default_factory=dict)


@dataclass
class SendOutcome:
    """Result of a single send attempt."""
    success: bool
    error: Optional[str] = None
    status_code: Optional[int] = None


@dataclass
class DeliveryAttemptResult:
    """Final per-channel outcome after retries. retries is zero-indexed."""
    channel: str
    success: bool
    error: Optional[str] = None
    retries: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "channel": self.channel,
            "success": self.success,
            "error": self.error,
            "retries": self.retries,
        }


# ============================================
# Provider Interface
# ============================================

class NotificationProviderInterface(ABC):
    """
    Abstract interface for notification providers.

    send() returns a SendOutcome for a completed exchange and raises for
    transport errors. ChannelConfigurationError means the destination
    can never work and must not be retried.
    """

    @property
    @abstractmethod
    def provider_type(self) -> ProviderType:
        """Return the provider type."""
        pass

    @abstractmethod
    async def send(
        self,
        payload: NotificationPayload,
        destination: Union[str, List[str]]
    ) -> SendOutcome:
        """
        Send a notification.

        Args:
            payload: Provider-agnostic notification payload
            destination: Webhook URL, or list of email addresses

        Returns:
            SendOutcome for the attempt
        """
        pass

    def validate_destination(self, destination: Union[str, List[str]]) -> None:
        """Raise ChannelConfigurationError if the destination is unusable."""
        return None


# ============================================
# Provider Registry
# ============================================

class NotificationProviderRegistry:
    """
    Maps provider types to adapter instances.

    Usage:
        registry = NotificationProviderRegistry()
        registry.register(EmailNotificationAdapter(config))
        provider = registry.get_provider(ProviderType.EMAIL)
    """

    def __init__(self):
        self._providers: Dict[ProviderType, NotificationProviderInterface] = {}
        self._lock = threading.Lock()

    def __repr__(self) -> str:
        return f"<NotificationProviderRegistry providers={[p.value for p in self._providers]}>"

    def register(self, provider: NotificationProviderInterface) -> None:
        with self._lock:
            self._providers[provider.provider_type] = provider
        logger.debug(f"Registered notification provider: {provider.provider_type.value}")

    def get_provider(self, provider_type: ProviderType) -> Optional[NotificationProviderInterface]:
        return self._providers.get(provider_type)

    def list_providers(self) -> List[ProviderType]:
        return list(self._providers.keys())

    @classmethod
    def with_builtin_providers(
        cls,
        settings: Settings,
        provider_classes: Optional[Dict[ProviderType, Type[NotificationProviderInterface]]] = None
    ) -> "NotificationProviderRegistry":
        """Registry with email, Slack and Teams adapters configured from settings."""
        # Import adapters here to avoid circular imports
        from .adapters import (
            EmailNotificationAdapter,
            SlackNotificationAdapter,
            TeamsNotificationAdapter,
        )

        classes = provider_classes or {
            ProviderType.EMAIL: EmailNotificationAdapter,
            ProviderType.SLACK: SlackNotificationAdapter,
            ProviderType.TEAMS: TeamsNotificationAdapter,
        }
        registry = cls()
        for provider_type, provider_class in classes.items():
            if provider_type == ProviderType.EMAIL:
                config = EmailProviderConfig.from_settings(settings)
            else:
                config = WebhookProviderConfig.from_settings(settings)
            registry.register(provider_class(config))
        return registry
