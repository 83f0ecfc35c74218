"""
Notification Provider Adapters

Channel implementations behind NotificationProviderInterface:
- Email over SMTP (blocking smtplib run in the default executor)
- Slack incoming webhooks (Block Kit)
- Microsoft Teams incoming webhooks (Adaptive Card)

Adapters make a single attempt; retries are applied by send_with_retry.
"""

import aiohttp
import asyncio
import smtplib
import ssl
import re
import logging
import threading
from abc import abstractmethod
from email.mime.text import MIMEText
from email.mime.multipart import MIMEMultipart
from functools import partial
from typing import Dict, Any, Optional, List, ClassVar, Tuple, Union
from datetime import datetime, timezone
from urllib.parse import urlparse, urlunparse

from src.core.exceptions import ChannelConfigurationError, ChannelDeliveryError, ErrorCode
from .registry import (
    NotificationProviderInterface,
    NotificationPayload,
    ProviderType,
    SendOutcome,
    EmailProviderConfig,
    WebhookProviderConfig,
)

logger = logging.getLogger(__name__)

# ==============================================================================
# Validation Helpers
# ==============================================================================

# Email validation pattern (RFC 5322 simplified)
EMAIL_PATTERN = re.compile(r'^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$')

MAX_TITLE_LENGTH = 200
MAX_MESSAGE_LENGTH = 4000

SEVERITY_COLORS = {
    "low": "#36a64f",
    "medium": "#ff9900",
    "high": "#ff5a00",
    "critical": "#d00000",
}

SEVERITY_EMOJIS = {
    "low": ":information_source:",
    "medium": ":warning:",
    "high": ":exclamation:",
    "critical": ":rotating_light:",
}

# Adaptive Card color names
TEAMS_SEVERITY_COLORS = {
    "low": "Good",
    "medium": "Warning",
    "high": "Attention",
    "critical": "Attention",
}


def sanitize_url_for_logging(url: str) -> str:
    """Keep only scheme and host; webhook secrets live in the path."""
    try:
        parsed = urlparse(url)
        return urlunparse((parsed.scheme, parsed.netloc, "", "", "", ""))
    except ValueError:
        return "<invalid-url>"


def _validate_email(email: str) -> bool:
    return bool(EMAIL_PATTERN.match(email))


def _filter_valid_emails(emails: List[str]) -> List[str]:
    valid = [e for e in emails if _validate_email(e)]
    if len(valid) != len(emails):
        logger.warning(f"Filtered {len(emails) - len(valid)} invalid email addresses")
    return valid


def _truncate(s: str, max_len: int) -> str:
    """Truncate string to max length with ellipsis."""
    if len(s) <= max_len:
        return s
    return s[:max_len - 3] + "..."


def _money(value: Optional[float]) -> str:
    if value is None:
        return "-"
    return f"${value:,.2f}"


def _detail_rows(payload: NotificationPayload) -> List[Tuple[str, str]]:
    """Label/value pairs shown by every channel for a single alert."""
    rows: List[Tuple[str, str]] = []
    if payload.target_name:
        rows.append(("Tenant", payload.target_name))
    rows.append(("Severity", payload.severity.upper()))
    if payload.observed_value is not None:
        rows.append(("Current Cost", _money(payload.observed_value)))
    if payload.threshold_value is not None:
        rows.append((payload.threshold_label, _money(payload.threshold_value)))
    if payload.observed_value is not None and payload.threshold_value is not None:
        rows.append(("Change", _money(payload.observed_value - payload.threshold_value)))
    if payload.percent_change is not None:
        rows.append(("Percent", f"{payload.percent_change}%"))
    for key, value in payload.data.items():
        rows.append((key, str(value)))
    return rows


def _contributor_lines(payload: NotificationPayload) -> List[str]:
    return [
        f"{i}. {c.get('resource_name')} ({c.get('resource_type') or 'resource'}): {_money(c.get('cost'))}"
        for i, c in enumerate(payload.contributors, start=1)
    ]


def _digest_alert_line(alert: Dict[str, Any]) -> str:
    """One digest alert: severity, title, current vs threshold, change and age."""
    line = (
        f"[{str(alert.get('severity', '')).upper()}] {alert.get('title')}: "
        f"{_money(alert.get('current_value'))} vs {_money(alert.get('threshold_value'))}"
    )
    if alert.get("percent_change") is not None:
        line += f" ({alert['percent_change']}%)"
    if alert.get("time_since"):
        line += f", {alert['time_since']}"
    return line


def _section_lines(section: Dict[str, Any]) -> List[str]:
    header = (
        f"{section['target_name']}: {section['alert_count']} alert(s), "
        f"impact {_money(section['cost_impact'])}"
    )
    return [header] + [f"  - {_digest_alert_line(alert)}" for alert in section.get("alerts", [])]


# ============================================
# Email Adapter
# ============================================

class EmailNotificationAdapter(NotificationProviderInterface):
    """
    Email notification provider adapter.

    smtplib is blocking, so each send runs in the default executor and is
    bounded by asyncio.wait_for.
    """

    def __init__(self, config: Optional[EmailProviderConfig] = None):
        if config is not None and not isinstance(config, EmailProviderConfig):
            raise TypeError(f"Expected EmailProviderConfig, got {type(config).__name__}")
        self._config: EmailProviderConfig = config or EmailProviderConfig()

    def __repr__(self) -> str:
        return f"<EmailNotificationAdapter configured={self.is_configured}>"

    @property
    def provider_type(self) -> ProviderType:
        return ProviderType.EMAIL

    @property
    def is_configured(self) -> bool:
        return bool(
            self._config.enabled
            and self._config.smtp_host
            and self._config.from_email
        )

    def validate_destination(self, destination: Union[str, List[str]]) -> None:
        if not self.is_configured:
            raise ChannelConfigurationError("Email provider not configured (SMTP host / sender)")
        recipients = [destination] if isinstance(destination, str) else list(destination or [])
        if not _filter_valid_emails(recipients):
            raise ChannelConfigurationError(
                "No valid email recipients",
                context={"recipient_count": len(recipients)},
            )

    async def send(
        self,
        payload: NotificationPayload,
        destination: Union[str, List[str]]
    ) -> SendOutcome:
        """Send one email to the destination addresses."""
        self.validate_destination(destination)
        recipients = [destination] if isinstance(destination, str) else list(destination)
        valid_recipients = _filter_valid_emails(recipients)

        msg = self.build_message(payload, valid_recipients)

        loop = asyncio.get_running_loop()
        try:
            await asyncio.wait_for(
                loop.run_in_executor(
                    None,
                    partial(self._send_smtp_sync, msg, valid_recipients)
                ),
                timeout=self._config.timeout_seconds
            )
        except smtplib.SMTPAuthenticationError as e:
            raise ChannelConfigurationError(
                "SMTP authentication failed",
                context={"smtp_host": self._config.smtp_host},
            ) from e
        except asyncio.TimeoutError as e:
            raise ChannelDeliveryError(
                f"SMTP send timed out after {self._config.timeout_seconds}s",
                error_code=ErrorCode.TIMEOUT,
                context={"smtp_host": self._config.smtp_host},
                original_error=e,
            ) from e
        except (smtplib.SMTPException, OSError) as e:
            raise ChannelDeliveryError(
                f"SMTP send failed: {e}",
                error_code=ErrorCode.NETWORK_ERROR,
                context={"smtp_host": self._config.smtp_host},
                original_error=e,
            ) from e

        logger.info(f"Email sent to {len(valid_recipients)} recipients")
        return SendOutcome(success=True)

    def build_message(self, payload: NotificationPayload, recipients: List[str]) -> MIMEMultipart:
        title = _truncate(payload.title, MAX_TITLE_LENGTH)
        msg = MIMEMultipart("alternative")
        msg["Subject"] = f"{self._config.subject_prefix} {title}"
        msg["From"] = f"{self._config.from_name} <{self._config.from_email}>"
        msg["To"] = ", ".join(recipients)
        msg["Reply-To"] = self._config.from_email

        msg.attach(MIMEText(self._build_text_body(payload), "plain"))
        msg.attach(MIMEText(self._build_html_body(payload), "html"))
        return msg

    def _send_smtp_sync(self, msg: MIMEMultipart, recipients: List[str]):
        """Synchronous SMTP send."""
        with smtplib.SMTP(
            self._config.smtp_host,
            self._config.smtp_port,
            timeout=self._config.timeout_seconds
        ) as server:
            if self._config.smtp_use_tls:
                server.starttls(context=ssl.create_default_context())
            if self._config.smtp_username and self._config.smtp_password:
                server.login(self._config.smtp_username, self._config.smtp_password)
            server.send_message(msg, to_addrs=recipients)

    def _build_text_body(self, payload: NotificationPayload) -> str:
        """Build plain text email body."""
        lines = [
            f"{payload.severity.upper()}: {payload.title}",
            "=" * 60,
            "",
            _truncate(payload.message, MAX_MESSAGE_LENGTH),
            "",
        ]

        if payload.kind == "alert":
            for label, value in _detail_rows(payload):
                lines.append(f"{label}: {value}")
            if payload.contributors:
                lines.extend(["", "Top cost contributors:"])
                lines.extend(_contributor_lines(payload))
        for section in payload.sections:
            lines.append("")
            lines.extend(_section_lines(section))

        if payload.link:
            lines.extend(["", f"View in dashboard: {payload.link}"])

        return "\n".join(lines)

    def _build_html_body(self, payload: NotificationPayload) -> str:
        color = SEVERITY_COLORS.get(payload.severity, "#808080")

        rows = ""
        if payload.kind == "alert":
            for label, value in _detail_rows(payload):
                rows += (
                    f'<tr><td style="padding: 8px; font-weight: 600;">{label}</td>'
                    f'<td style="padding: 8px;">{value}</td></tr>'
                )

        contributors = "".join(
            f"<li>{c.get('resource_name')}: {_money(c.get('cost'))}</li>"
            for c in payload.contributors
        )
        if contributors:
            contributors = f"<h3>Top cost contributors</h3><ol>{contributors}</ol>"

        sections = ""
        for section in payload.sections:
            items = "".join(f"<li>{_digest_alert_line(alert)}</li>" for alert in section.get("alerts", []))
            sections += (
                f"<h3>{section['target_name']} - {section['alert_count']} alert(s), "
                f"impact {_money(section['cost_impact'])}</h3><ul>{items}</ul>"
            )

        button = ""
        if payload.link:
            button = (
                f'<p><a href="{payload.link}" style="background: {color}; color: #ffffff; '
                f'padding: 10px 20px; border-radius: 6px; text-decoration: none;">View in Dashboard</a></p>'
            )

        return f"""<!DOCTYPE html>
<html lang="en">
<head><meta charset="UTF-8"><title>{payload.title}</title></head>
<body style="font-family: -apple-system, 'Segoe UI', Roboto, Arial, sans-serif;">
  <div style="border-top: 4px solid {color}; padding: 16px;">
    <h2 style="margin: 0 0 8px 0;">{payload.title}</h2>
    <p>{_truncate(payload.message, MAX_MESSAGE_LENGTH)}</p>
    <table style="border-collapse: collapse;">{rows}</table>
    {contributors}
    {sections}
    {button}
  </div>
</body>
</html>"""


# ============================================
# Webhook Adapters
# ============================================

class WebhookChannelAdapter(NotificationProviderInterface):
    """
    Base for chat webhook channels.

    POSTs JSON with an explicit timeout over a shared aiohttp session.
    Any non-2xx response is a failed attempt.
    """

    # Shared session for connection reuse
    _session: ClassVar[Optional[aiohttp.ClientSession]] = None
    _session_lock_init = threading.Lock()  # type: ClassVar[threading.Lock]
    _session_lock: ClassVar[Optional[asyncio.Lock]] = None

    def __init__(self, config: Optional[WebhookProviderConfig] = None):
        if config is not None and not isinstance(config, WebhookProviderConfig):
            raise TypeError(f"Expected WebhookProviderConfig, got {type(config).__name__}")
        self._config: WebhookProviderConfig = config or WebhookProviderConfig()

    def __repr__(self) -> str:
        return f"<{type(self).__name__} timeout={self._config.timeout_seconds}s>"

    @classmethod
    async def _get_session(cls) -> aiohttp.ClientSession:
        """Get or create shared aiohttp session (thread-safe)."""
        if cls._session_lock is None:
            with cls._session_lock_init:
                if cls._session_lock is None:
                    cls._session_lock = asyncio.Lock()

        async with cls._session_lock:
            if cls._session is None or cls._session.closed:
                cls._session = aiohttp.ClientSession(
                    connector=aiohttp.TCPConnector(limit=10, limit_per_host=5)
                )
        return cls._session

    @classmethod
    async def close_session(cls):
        """Close the shared session (call on shutdown)."""
        if cls._session and not cls._session.closed:
            await cls._session.close()
        cls._session = None
        cls._session_lock = None

    @abstractmethod
    def is_valid_webhook_url(self, url: str) -> bool:
        """True if url matches the provider host pattern."""
        pass

    def validate_destination(self, destination: Union[str, List[str]]) -> None:
        if not isinstance(destination, str) or not self.is_valid_webhook_url(destination):
            raise ChannelConfigurationError(
                f"Invalid {self.provider_type.value} webhook URL",
                error_code=ErrorCode.INVALID_WEBHOOK_URL,
                context={"url": sanitize_url_for_logging(str(destination))},
            )

    @abstractmethod
    def build_message(self, payload: NotificationPayload) -> Dict[str, Any]:
        """Provider-specific JSON body for payload."""
        pass

    async def send(
        self,
        payload: NotificationPayload,
        destination: Union[str, List[str]]
    ) -> SendOutcome:
        self.validate_destination(destination)
        body = self.build_message(payload)

        session = await self._get_session()
        try:
            async with session.post(
                destination,
                json=body,
                timeout=aiohttp.ClientTimeout(total=self._config.timeout_seconds)
            ) as response:
                status = response.status
                response_text = "" if 200 <= status < 300 else await response.text()
        except asyncio.TimeoutError as e:
            raise ChannelDeliveryError(
                f"{self.provider_type.value} webhook timed out after {self._config.timeout_seconds}s",
                error_code=ErrorCode.TIMEOUT,
                context={"url": sanitize_url_for_logging(destination)},
                original_error=e,
            ) from e
        except aiohttp.ClientError as e:
            raise ChannelDeliveryError(
                f"{self.provider_type.value} webhook request failed: {type(e).__name__}",
                error_code=ErrorCode.NETWORK_ERROR,
                context={"url": sanitize_url_for_logging(destination)},
                original_error=e,
            ) from e

        if 200 <= status < 300:
            logger.info(
                f"{self.provider_type.value} notification sent: {_truncate(payload.title, 50)}"
            )
            return SendOutcome(success=True, status_code=status)

        logger.warning(
            f"{self.provider_type.value} webhook returned {status}",
            extra={"url": sanitize_url_for_logging(destination), "status": status}
        )
        return SendOutcome(
            success=False,
            error=f"HTTP {status}: {_truncate(response_text, 200)}",
            status_code=status,
        )


class SlackNotificationAdapter(WebhookChannelAdapter):
    """Slack Incoming Webhooks (Block Kit)."""

    SLACK_WEBHOOK_PREFIXES = (
        "https://hooks.slack.com/",
        "https://hooks.slack-gov.com/",
    )

    @property
    def provider_type(self) -> ProviderType:
        return ProviderType.SLACK

    def is_valid_webhook_url(self, url: str) -> bool:
        return any(url.startswith(p) for p in self.SLACK_WEBHOOK_PREFIXES)

    def build_message(self, payload: NotificationPayload) -> Dict[str, Any]:
        """Build Slack Block Kit message."""
        color = SEVERITY_COLORS.get(payload.severity, "#808080")
        emoji = SEVERITY_EMOJIS.get(payload.severity, ":bell:")

        blocks: List[Dict[str, Any]] = [
            {
                "type": "header",
                "text": {
                    "type": "plain_text",
                    "text": _truncate(f"{emoji} {payload.title}", 150),
                    "emoji": True
                }
            },
            {
                "type": "section",
                "text": {"type": "mrkdwn", "text": _truncate(payload.message, 3000)}
            },
        ]

        if payload.kind == "alert":
            fields = [
                {"type": "mrkdwn", "text": f"*{label}:*\n{value}"}
                for label, value in _detail_rows(payload)
            ]
            # Slack allows at most 10 fields per section
            for i in range(0, len(fields), 10):
                blocks.append({"type": "section", "fields": fields[i:i + 10]})

        if payload.contributors:
            blocks.append({
                "type": "section",
                "text": {
                    "type": "mrkdwn",
                    "text": "*Top cost contributors*\n" + "\n".join(_contributor_lines(payload))
                }
            })

        for section in payload.sections:
            lines = _section_lines(section)
            blocks.append({
                "type": "section",
                "text": {"type": "mrkdwn", "text": f"*{lines[0]}*\n" + "\n".join(lines[1:])}
            })

        blocks.append({
            "type": "context",
            "elements": [
                {"type": "mrkdwn", "text": f":clock1: {_timestamp(payload)}"}
            ]
        })

        if payload.link:
            blocks.append({
                "type": "actions",
                "elements": [{
                    "type": "button",
                    "text": {"type": "plain_text", "text": "View in Dashboard"},
                    "url": payload.link,
                }]
            })

        return {
            "text": f"{payload.severity.upper()}: {payload.title}",
            "blocks": blocks,
            "attachments": [{"color": color, "fallback": payload.title}],
            "username": self._config.username,
            "icon_emoji": self._config.icon_emoji,
        }


class TeamsNotificationAdapter(WebhookChannelAdapter):
    """Microsoft Teams incoming webhooks (Adaptive Card 1.4)."""

    TEAMS_HOST_SUFFIXES = (
        ".webhook.office.com",
        ".logic.azure.com",
    )
    TEAMS_HOSTS = ("outlook.office.com",)

    @property
    def provider_type(self) -> ProviderType:
        return ProviderType.TEAMS

    def is_valid_webhook_url(self, url: str) -> bool:
        try:
            parsed = urlparse(url)
        except ValueError:
            return False
        host = (parsed.hostname or "").lower()
        if parsed.scheme != "https" or not host:
            return False
        return host in self.TEAMS_HOSTS or host.endswith(self.TEAMS_HOST_SUFFIXES)

    def build_message(self, payload: NotificationPayload) -> Dict[str, Any]:
        body: List[Dict[str, Any]] = [
            {
                "type": "TextBlock",
                "text": payload.title,
                "weight": "Bolder",
                "size": "Large",
                "color": TEAMS_SEVERITY_COLORS.get(payload.severity, "Default"),
                "wrap": True,
            },
            {"type": "TextBlock", "text": _truncate(payload.message, MAX_MESSAGE_LENGTH), "wrap": True},
        ]

        if payload.kind == "alert":
            body.append({
                "type": "FactSet",
                "facts": [{"title": label, "value": value} for label, value in _detail_rows(payload)],
            })

        if payload.contributors:
            body.append({"type": "TextBlock", "text": "Top cost contributors", "weight": "Bolder"})
            body.extend(
                {"type": "TextBlock", "text": line, "wrap": True, "spacing": "None"}
                for line in _contributor_lines(payload)
            )

        for section in payload.sections:
            lines = _section_lines(section)
            body.append({"type": "TextBlock", "text": lines[0], "weight": "Bolder", "wrap": True})
            body.extend(
                {"type": "TextBlock", "text": line.strip(), "wrap": True, "spacing": "None"}
                for line in lines[1:]
            )

        body.append({
            "type": "TextBlock",
            "text": _timestamp(payload),
            "isSubtle": True,
            "size": "Small",
        })

        card: Dict[str, Any] = {
            "$schema": "http://adaptivecards.io/schemas/adaptive-card.json",
            "type": "AdaptiveCard",
            "version": "1.4",
            "body": body,
        }
        if payload.link:
            card["actions"] = [{"type": "Action.OpenUrl", "title": "View in Dashboard", "url": payload.link}]

        return {
            "type": "message",
            "attachments": [{
                "contentType": "application/vnd.microsoft.card.adaptive",
                "content": card,
            }],
        }


def _timestamp(payload: NotificationPayload) -> str:
    ts = payload.triggered_at or datetime.now(timezone.utc)
    return ts.astimezone(timezone.utc).strftime("%Y-%m-%d %H:%M UTC")
