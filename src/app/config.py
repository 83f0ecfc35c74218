"""
Alert Service Configuration
Centralized settings using Pydantic Settings with environment variable support.

ENVIRONMENT VARIABLES REFERENCE
===============================

All settings can be configured via environment variables (uppercase, underscore-separated).
Example: `alert_suppression_window_minutes` -> `ALERT_SUPPRESSION_WINDOW_MINUTES`

APPLICATION SETTINGS:
--------------------
ENVIRONMENT             - Runtime environment: development|staging|production (default: "development")
LOG_LEVEL               - Logging level: DEBUG|INFO|WARNING|ERROR|CRITICAL (default: "INFO")
APP_URL                 - Dashboard base URL used for deep links (default: "https://cloudhalo.app")
CONFIG_PATH             - Directory holding rules/preferences/channels YAML (default: "./configs")

ALERT EVALUATION:
-----------------
ALERT_SUPPRESSION_WINDOW_MINUTES - Duplicate suppression window per (rule, target) (default: 60)
ALERT_TOP_CONTRIBUTORS           - Number of resources snapshotted per alert (default: 3)
ALERT_EVALUATION_CONCURRENCY     - Max rules evaluated in parallel (default: 10)

NOTIFICATION DELIVERY:
---------------------
NOTIFICATION_RETRY_DELAYS_SECONDS - JSON array of per-attempt delays (default: [0, 30, 300])
NOTIFICATION_TIMEOUT_SECONDS      - Per-request HTTP/SMTP timeout (default: 30)
EMAIL_SMTP_HOST / EMAIL_SMTP_PORT / EMAIL_SMTP_USERNAME / EMAIL_SMTP_PASSWORD
EMAIL_SMTP_USE_TLS / EMAIL_FROM_ADDRESS / EMAIL_FROM_NAME / EMAIL_SUBJECT_PREFIX
SLACK_BOT_USERNAME

SCHEDULED TASKS:
----------------
EVALUATE_ALERTS_SCHEDULE / EVALUATE_ALERTS_MAX_DURATION_SECONDS (default: "0 * * * *" / 900)
SEND_DIGESTS_SCHEDULE / SEND_DIGESTS_MAX_DURATION_SECONDS       (default: "*/15 * * * *" / 600)

Each max duration must exceed the worst-case delivery time of one channel:
sum(NOTIFICATION_RETRY_DELAYS_SECONDS) + attempts * NOTIFICATION_TIMEOUT_SECONDS.
"""

from functools import lru_cache
from typing import List, Optional

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Application-wide settings loaded from environment variables.
    Supports .env file loading in development.
    """

    model_config = SettingsConfigDict(
        env_file=(".env", ".env.local"),
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    # ============================================
    # Application Settings
    # ============================================
    app_name: str = Field(default="cost-alert-service", description="Application name")
    app_version: str = Field(default="1.0.0", description="Application version")
    environment: str = Field(
        default="development",
        pattern="^(development|staging|production|local|test)$"
    )
    log_level: str = Field(default="INFO")
    app_url: str = Field(
        default="https://cloudhalo.app",
        description="Dashboard base URL used to build alert deep links"
    )
    config_path: str = Field(
        default="./configs",
        description="Directory holding rules, preferences and channel YAML files"
    )

    # ============================================
    # Alert Evaluation
    # ============================================
    alert_suppression_window_minutes: int = Field(
        default=60,
        ge=1,
        description="Duplicate suppression window per (rule, target)"
    )
    alert_top_contributors: int = Field(
        default=3,
        ge=1,
        le=20,
        description="Number of top cost resources snapshotted per alert"
    )
    alert_evaluation_concurrency: int = Field(
        default=10,
        ge=1,
        le=100,
        description="Max rules evaluated in parallel per run"
    )

    # ============================================
    # Notification Delivery
    # ============================================
    notification_retry_delays_seconds: List[float] = Field(
        default=[0, 30, 300],
        description="Delay before each delivery attempt; length is the attempt count"
    )
    notification_timeout_seconds: int = Field(
        default=30,
        ge=1,
        le=300,
        description="Timeout for a single webhook POST or SMTP conversation"
    )

    email_smtp_host: str = Field(default="smtp.gmail.com", description="SMTP server host")
    email_smtp_port: int = Field(default=587, description="SMTP server port")
    email_smtp_username: Optional[str] = Field(default=None, description="SMTP username")
    email_smtp_password: Optional[str] = Field(default=None, description="SMTP password")
    email_smtp_use_tls: bool = Field(default=True, description="Use STARTTLS")
    email_from_address: str = Field(default="alerts@cloudhalo.app", description="Sender address")
    email_from_name: str = Field(default="CloudHalo Alerts", description="Sender display name")
    email_subject_prefix: str = Field(default="[CloudHalo]", description="Subject prefix")

    slack_bot_username: str = Field(default="CloudHalo Alerts", description="Slack display name")

    # ============================================
    # Scheduled Tasks (UTC cron)
    # ============================================
    evaluate_alerts_schedule: str = Field(default="0 * * * *", description="Alert evaluation cron")
    evaluate_alerts_max_duration_seconds: int = Field(default=900, ge=1)
    send_digests_schedule: str = Field(default="*/15 * * * *", description="Digest drain cron")
    send_digests_max_duration_seconds: int = Field(default=600, ge=1)

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Normalize and validate the logging level name."""
        level = v.upper()
        if level not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
            raise ValueError(f"Invalid log level: {v}")
        return level

    @field_validator("notification_retry_delays_seconds")
    @classmethod
    def validate_retry_delays(cls, v: List[float]) -> List[float]:
        """At least one attempt is required and delays cannot be negative."""
        if not v:
            raise ValueError("notification_retry_delays_seconds must contain at least one entry")
        if any(delay < 0 for delay in v):
            raise ValueError("notification_retry_delays_seconds cannot contain negative delays")
        return v

    @field_validator("app_url")
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        return v.rstrip("/")

    @model_validator(mode="after")
    def validate_task_ceilings(self) -> "Settings":
        """
        Task ceilings must leave room for a full retry schedule.

        Raises:
            ValueError: If a task could be cancelled before a channel's
                last delivery attempt completes
        """
        required = self.max_delivery_seconds
        errors = [
            f"{name} ({ceiling}s) must exceed worst-case delivery time ({required:.0f}s)"
            for name, ceiling in (
                ("evaluate_alerts_max_duration_seconds", self.evaluate_alerts_max_duration_seconds),
                ("send_digests_max_duration_seconds", self.send_digests_max_duration_seconds),
            )
            if ceiling <= required
        ]
        if errors:
            raise ValueError("; ".join(errors))
        return self

    @property
    def max_delivery_seconds(self) -> float:
        """Worst-case time for one channel: every retry delay plus every attempt timing out."""
        return (
            sum(self.notification_retry_delays_seconds)
            + len(self.notification_retry_delays_seconds) * self.notification_timeout_seconds
        )

    @property
    def is_production(self) -> bool:
        """Check if running in production."""
        return self.environment == "production"

    @property
    def is_development(self) -> bool:
        """Check if running in development."""
        return self.environment in ("development", "local")


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached settings instance.
    Use LRU cache to avoid reloading environment variables.
    """
    return Settings()


# Convenience export
settings = get_settings()
