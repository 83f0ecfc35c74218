"""
Structured Logging
JSON-formatted logs with trace correlation.
"""

import logging
import re
import sys
from typing import Any, Dict, Optional
from datetime import datetime, timezone
from pythonjsonlogger import jsonlogger
from opentelemetry import trace

from src.app.config import settings


class CloudLoggingFormatter(jsonlogger.JsonFormatter):
    """
    JSON formatter compatible with Cloud Logging.
    Adds trace_id, span_id, and severity mapping.
    """

    def add_fields(
        self,
        log_record: Dict[str, Any],
        record: logging.LogRecord,
        message_dict: Dict[str, Any]
    ):
        """Add custom fields to log record."""
        super().add_fields(log_record, record, message_dict)

        log_record["timestamp"] = datetime.now(timezone.utc).isoformat()
        log_record["severity"] = record.levelname

        # Trace context from OpenTelemetry
        span = trace.get_current_span()
        if span and span.get_span_context().is_valid:
            span_context = span.get_span_context()
            log_record["trace_id"] = f"{span_context.trace_id:032x}"
            log_record["span_id"] = f"{span_context.span_id:016x}"

        log_record["service"] = settings.app_name
        log_record["version"] = settings.app_version
        log_record["environment"] = settings.environment

        if "message" in log_record:
            log_record["msg"] = log_record.pop("message")


def setup_logging(log_level: Optional[str] = None):
    """
    Configure application-wide structured logging.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
                  Defaults to settings.log_level
    """
    level = log_level or settings.log_level

    handler = logging.StreamHandler(sys.stdout)
    formatter = CloudLoggingFormatter(
        fmt="%(timestamp)s %(severity)s %(name)s %(msg)s",
        json_ensure_ascii=False
    )
    handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    root_logger.handlers.clear()
    root_logger.addHandler(handler)

    # Suppress noisy third-party loggers
    logging.getLogger("aiohttp").setLevel(logging.WARNING)
    logging.getLogger("asyncio").setLevel(logging.WARNING)

    logging.info(
        "Logging initialized",
        extra={
            "log_level": level,
            "environment": settings.environment
        }
    )


def should_include_stacktrace() -> bool:
    """Stack traces are only logged outside production."""
    return settings.environment.lower() in ("development", "local", "staging", "test")


def safe_error_log(
    logger: logging.Logger,
    message: str,
    error: Exception,
    **extra_context
) -> None:
    """
    Log an error, including the stack trace only outside production.

    In production only the error type and a sanitized message are logged,
    since webhook URLs and SMTP credentials can appear in exception text.

    Args:
        logger: Logger instance
        message: Error message
        error: The exception
        **extra_context: Additional context to include in logs
    """
    error_info = {
        "error_type": type(error).__name__,
        **extra_context
    }

    if should_include_stacktrace():
        logger.error(f"{message}: {error}", exc_info=True, extra=error_info)
    else:
        sanitized_msg = sanitize_error_message(str(error))
        logger.error(
            f"{message}: {sanitized_msg}",
            extra={**error_info, "sanitized": True}
        )


_SENSITIVE_PATTERNS = [
    # Webhook URLs carry their secret in the path
    (r'https://hooks\.slack(?:-gov)?\.com/\S+', 'https://hooks.slack.com/[REDACTED]'),
    (r'https://[\w.-]*(?:webhook\.office\.com|outlook\.office\.com|logic\.azure\.com)/\S+',
     '[REDACTED_TEAMS_WEBHOOK]'),
    (r'Bearer\s+[a-zA-Z0-9\-_.]+', 'Bearer [REDACTED]'),
    (r'password["\']?\s*[:=]\s*["\']?[^\s"\']+', 'password: [REDACTED]'),
    (r'secret["\']?\s*[:=]\s*["\']?[^\s"\']+', 'secret: [REDACTED]'),
]


def sanitize_error_message(error_msg: str, max_length: int = 500) -> str:
    """
    Remove webhook secrets and credentials from an error message.

    Args:
        error_msg: The original error message
        max_length: Messages longer than this are truncated

    Returns:
        Sanitized error message
    """
    sanitized = error_msg
    for pattern, replacement in _SENSITIVE_PATTERNS:
        sanitized = re.sub(pattern, replacement, sanitized, flags=re.IGNORECASE)

    if len(sanitized) > max_length:
        sanitized = sanitized[:max_length] + "... [TRUNCATED]"

    return sanitized
