"""
Test Notification Adapters

Message rendering, destination validation and transport handling for
email, Slack and Teams. Network and SMTP are mocked.
"""

import smtplib

import aiohttp
import pytest
from datetime import datetime, timezone
from unittest.mock import AsyncMock, MagicMock, patch

from src.core.exceptions import ChannelConfigurationError, ChannelDeliveryError, ErrorCode
from src.core.notifications.adapters import (
    EmailNotificationAdapter,
    SlackNotificationAdapter,
    TeamsNotificationAdapter,
    WebhookChannelAdapter,
    sanitize_url_for_logging,
)
from src.core.notifications.registry import (
    EmailProviderConfig,
    NotificationPayload,
    ProviderType,
    WebhookProviderConfig,
)

SLACK_URL = "https://hooks.slack.com/services/T000/B000/XXXX"
TEAMS_URL = "https://contoso.webhook.office.com/webhookb2/abc/IncomingWebhook/def/ghi"


# ============================================
# Fixtures
# ============================================

@pytest.fixture
def alert_payload() -> NotificationPayload:
    return NotificationPayload(
        title="Daily Spend - CRITICAL",
        message="Cost exceeded threshold of $100.00",
        severity="critical",
        kind="alert",
        org_id="org-1",
        alert_id="alert-1",
        target_name="Production",
        triggered_at=datetime(2026, 10, 17, 12, 0, tzinfo=timezone.utc),
        link="https://cloudhalo.test/dashboard/alerts?highlight=alert-1",
        observed_value=250.0,
        threshold_value=100.0,
        contributors=[
            {"resource_name": "vm-web", "resource_type": "vm", "cost": 150.0},
            {"resource_name": "sql", "resource_type": "db", "cost": 100.0},
        ],
    )


@pytest.fixture
def digest_payload() -> NotificationPayload:
    def item(title, severity, current, threshold, percent=None, time_since="2 hours ago"):
        return {
            "title": title,
            "severity": severity,
            "current_value": current,
            "threshold_value": threshold,
            "percent_change": percent,
            "time_since": time_since,
        }

    return NotificationPayload(
        title="Cost Alert Digest - 3 Alerts",
        message="2 critical and 1 low across 2 tenants",
        severity="critical",
        kind="digest",
        sections=[
            {
                "target_name": "Production",
                "alert_count": 2,
                "cost_impact": 300.0,
                "alerts": [
                    item("A", "critical", 250.0, 100.0),
                    item("B", "critical", 90.0, 40.0, percent=125.0),
                ],
            },
            {
                "target_name": "Dev",
                "alert_count": 1,
                "cost_impact": 5.0,
                "alerts": [item("C", "low", 105.0, 100.0, time_since="1 day ago")],
            },
        ],
    )



def mock_session(status: int, text: str = "") -> MagicMock:
    response = MagicMock()
    response.status = status
    response.text = AsyncMock(return_value=text)

    context = MagicMock()
    context.__aenter__ = AsyncMock(return_value=response)
    context.__aexit__ = AsyncMock(return_value=False)

    session = MagicMock()
    session.post = MagicMock(return_value=context)
    return session


# ============================================
# Slack
# ============================================

class TestSlackAdapter:

    def test_webhook_url_validation(self):
        adapter = SlackNotificationAdapter()
        assert adapter.is_valid_webhook_url(SLACK_URL)
        assert not adapter.is_valid_webhook_url("https://evil.example.com/hooks.slack.com/")
        assert not adapter.is_valid_webhook_url("http://hooks.slack.com/services/x")

    def test_alert_message_blocks(self, alert_payload):
        message = SlackNotificationAdapter(WebhookProviderConfig(username="Cost Bot")).build_message(alert_payload)

        assert message["username"] == "Cost Bot"
        assert message["text"] == "CRITICAL: Daily Spend - CRITICAL"
        types = [b["type"] for b in message["blocks"]]
        assert types[0] == "header"
        assert "actions" in types
        rendered = str(message["blocks"])
        assert "$250.00" in rendered
        assert "Top cost contributors" in rendered
        assert "1. vm-web (vm): $150.00" in rendered
        assert "2026-10-17 12:00 UTC" in rendered

    def test_digest_message_has_sections(self, digest_payload):
        message = SlackNotificationAdapter().build_message(digest_payload)

        rendered = str(message["blocks"])
        assert "Production: 2 alert(s), impact $300.00" in rendered
        assert "Current Cost" not in rendered
        assert "[CRITICAL] B: $90.00 vs $40.00 (125.0%), 2 hours ago" in rendered

    @pytest.mark.asyncio
    async def test_send_success(self, alert_payload):
        adapter = SlackNotificationAdapter()
        session = mock_session(200, "ok")

        with patch.object(SlackNotificationAdapter, "_get_session", AsyncMock(return_value=session)):
            outcome = await adapter.send(alert_payload, SLACK_URL)

        assert outcome.success is True
        assert outcome.status_code == 200
        args, kwargs = session.post.call_args
        assert args[0] == SLACK_URL
        assert kwargs["json"]["text"].startswith("CRITICAL")

    @pytest.mark.asyncio
    async def test_non_2xx_is_failed_outcome(self, alert_payload):
        adapter = SlackNotificationAdapter()

        with patch.object(SlackNotificationAdapter, "_get_session", AsyncMock(return_value=mock_session(500, "boom"))):
            outcome = await adapter.send(alert_payload, SLACK_URL)

        assert outcome.success is False
        assert outcome.error == "HTTP 500: boom"

    @pytest.mark.asyncio
    async def test_invalid_url_raises_configuration_error(self, alert_payload):
        with pytest.raises(ChannelConfigurationError) as exc_info:
            await SlackNotificationAdapter().send(alert_payload, "https://example.com/hook")
        assert exc_info.value.error_code == ErrorCode.INVALID_WEBHOOK_URL


# ============================================
# Teams
# ============================================

class TestTeamsAdapter:

    @pytest.mark.parametrize("url,valid", [
        (TEAMS_URL, True),
        ("https://outlook.office.com/webhook/abc", True),
        ("https://prod-01.westus.logic.azure.com/workflows/abc", True),
        ("http://contoso.webhook.office.com/webhookb2/abc", False),
        ("https://webhook.office.com.evil.example/abc", False),
        ("not a url", False),
    ])
    def test_webhook_url_validation(self, url, valid):
        assert TeamsNotificationAdapter().is_valid_webhook_url(url) is valid

    def test_adaptive_card(self, alert_payload):
        message = TeamsNotificationAdapter().build_message(alert_payload)

        assert message["type"] == "message"
        attachment = message["attachments"][0]
        assert attachment["contentType"] == "application/vnd.microsoft.card.adaptive"
        card = attachment["content"]
        assert card["version"] == "1.4"
        assert card["body"][0]["color"] == "Attention"
        facts = next(b for b in card["body"] if b["type"] == "FactSet")["facts"]
        assert {"title": "Threshold", "value": "$100.00"} in facts
        assert card["actions"][0]["url"] == alert_payload.link

    def test_digest_card_lists_alert_values(self, digest_payload):
        card = TeamsNotificationAdapter().build_message(digest_payload)["attachments"][0]["content"]

        texts = [b.get("text") for b in card["body"]]
        assert "Production: 2 alert(s), impact $300.00" in texts
        assert "- [CRITICAL] B: $90.00 vs $40.00 (125.0%), 2 hours ago" in texts

    @pytest.mark.asyncio
    async def test_send_success(self, alert_payload):
        with patch.object(TeamsNotificationAdapter, "_get_session", AsyncMock(return_value=mock_session(202))):
            outcome = await TeamsNotificationAdapter().send(alert_payload, TEAMS_URL)

        assert outcome.success is True


# ============================================
# Email
# ============================================

class TestEmailAdapter:

    @pytest.fixture
    def config(self):
        return EmailProviderConfig(
            smtp_host="smtp.test.local",
            smtp_port=2525,
            smtp_username="user",
            smtp_password="secret",
            from_email="alerts@cloudhalo.test",
            from_name="CloudHalo Alerts",
            subject_prefix="[Test]",
        )

    def test_build_message(self, config, alert_payload):
        msg = EmailNotificationAdapter(config).build_message(alert_payload, ["a@example.com", "b@example.com"])

        assert msg["Subject"] == "[Test] Daily Spend - CRITICAL"
        assert msg["To"] == "a@example.com, b@example.com"
        text, html = [part.get_payload() for part in msg.get_payload()]
        assert "Current Cost: $250.00" in text
        assert "View in dashboard: https://cloudhalo.test/dashboard/alerts?highlight=alert-1" in text
        assert "<li>vm-web: $150.00</li>" in html

    def test_digest_text_lists_sections(self, config, digest_payload):
        msg = EmailNotificationAdapter(config).build_message(digest_payload, ["a@example.com"])
        text = msg.get_payload()[0].get_payload()

        assert "Production: 2 alert(s), impact $300.00" in text
        assert "  - [LOW] C: $105.00 vs $100.00, 1 day ago" in text

    def test_digest_html_lists_alert_values(self, config, digest_payload):
        msg = EmailNotificationAdapter(config).build_message(digest_payload, ["a@example.com"])
        html = msg.get_payload()[1].get_payload()

        assert "<li>[CRITICAL] A: $250.00 vs $100.00, 2 hours ago</li>" in html

    def test_no_valid_recipients_raises(self, config):
        with pytest.raises(ChannelConfigurationError):
            EmailNotificationAdapter(config).validate_destination(["not-an-email"])

    def test_unconfigured_provider_raises(self):
        with pytest.raises(ChannelConfigurationError):
            EmailNotificationAdapter(EmailProviderConfig(smtp_host="")).validate_destination(["a@example.com"])

    @pytest.mark.asyncio
    async def test_send_uses_smtp(self, config, alert_payload):
        server = MagicMock()
        with patch("src.core.notifications.adapters.smtplib.SMTP") as mock_smtp:
            mock_smtp.return_value.__enter__.return_value = server

            outcome = await EmailNotificationAdapter(config).send(
                alert_payload, ["finops@example.com", "invalid"]
            )

        assert outcome.success is True
        mock_smtp.assert_called_once_with("smtp.test.local", 2525, timeout=config.timeout_seconds)
        server.starttls.assert_called_once()
        server.login.assert_called_once_with("user", "secret")
        _, kwargs = server.send_message.call_args
        assert kwargs["to_addrs"] == ["finops@example.com"]


def test_sanitize_url_for_logging_strips_path():
    assert sanitize_url_for_logging(SLACK_URL) == "https://hooks.slack.com"


# ============================================
# Transport Errors
# ============================================

class TestTransportErrors:

    @pytest.mark.asyncio
    async def test_webhook_connection_error_is_delivery_error(self, alert_payload):
        session = MagicMock()
        session.post = MagicMock(side_effect=aiohttp.ClientConnectionError("refused"))

        with patch.object(SlackNotificationAdapter, "_get_session", AsyncMock(return_value=session)):
            with pytest.raises(ChannelDeliveryError) as exc_info:
                await SlackNotificationAdapter().send(alert_payload, SLACK_URL)

        assert exc_info.value.error_code == ErrorCode.NETWORK_ERROR
        assert exc_info.value.is_retryable()
        assert "XXXX" not in str(exc_info.value.context)

    @pytest.mark.asyncio
    async def test_smtp_auth_failure_is_configuration_error(self, alert_payload):
        config = EmailProviderConfig(smtp_host="smtp.test.local", smtp_username="u", smtp_password="p")
        with patch("src.core.notifications.adapters.smtplib.SMTP") as mock_smtp:
            server = mock_smtp.return_value.__enter__.return_value
            server.login.side_effect = smtplib.SMTPAuthenticationError(535, b"bad credentials")

            with pytest.raises(ChannelConfigurationError):
                await EmailNotificationAdapter(config).send(alert_payload, ["a@example.com"])

    @pytest.mark.asyncio
    async def test_smtp_disconnect_is_delivery_error(self, alert_payload):
        config = EmailProviderConfig(smtp_host="smtp.test.local")
        with patch("src.core.notifications.adapters.smtplib.SMTP") as mock_smtp:
            mock_smtp.side_effect = smtplib.SMTPServerDisconnected("gone")

            with pytest.raises(ChannelDeliveryError):
                await EmailNotificationAdapter(config).send(alert_payload, ["a@example.com"])


class TestWebhookBase:

    def test_base_adapter_is_abstract(self):
        with pytest.raises(TypeError):
            WebhookChannelAdapter()

    def test_subclass_must_define_url_check_and_message(self):
        class NoMessage(WebhookChannelAdapter):
            provider_type = ProviderType.SLACK

            def is_valid_webhook_url(self, url):
                return True

        with pytest.raises(TypeError):
            NoMessage()
