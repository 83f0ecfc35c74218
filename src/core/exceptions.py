"""
Structured Error Handling for the Alert Pipeline
Provides error hierarchy with categorization, error codes, and structured context.
"""

from typing import Dict, Any, Optional
from enum import Enum


class ErrorCategory(str, Enum):
    """Error categories for classification and handling."""
    TRANSIENT = "TRANSIENT"  # Temporary errors that should be retried
    PERMANENT = "PERMANENT"  # Errors that won't succeed on retry
    VALIDATION = "VALIDATION"  # Configuration and input validation errors
    EXTERNAL = "EXTERNAL"  # External service errors


class ErrorCode(str, Enum):
    """Standardized error codes for monitoring and debugging."""
    # Transient
    NETWORK_ERROR = "NETWORK_ERROR"
    CHANNEL_UNAVAILABLE = "CHANNEL_UNAVAILABLE"
    TIMEOUT = "TIMEOUT"

    # Permanent / persistence
    ALERT_PERSISTENCE_FAILED = "ALERT_PERSISTENCE_FAILED"
    DIGEST_QUEUE_FAILED = "DIGEST_QUEUE_FAILED"

    # Validation
    INVALID_RULE = "INVALID_RULE"
    UNSUPPORTED_RULE_KIND = "UNSUPPORTED_RULE_KIND"
    INVALID_CHANNEL_CONFIG = "INVALID_CHANNEL_CONFIG"
    INVALID_WEBHOOK_URL = "INVALID_WEBHOOK_URL"
    INVALID_CRON_EXPRESSION = "INVALID_CRON_EXPRESSION"
    EMPTY_DIGEST = "EMPTY_DIGEST"

    # External
    EXTERNAL_API_ERROR = "EXTERNAL_API_ERROR"


class AlertPipelineError(Exception):
    """
    Base exception for all alert pipeline errors.

    Provides structured error information for monitoring, debugging, and error recovery.
    """

    def __init__(
        self,
        message: str,
        category: ErrorCategory,
        error_code: ErrorCode,
        context: Optional[Dict[str, Any]] = None,
        original_error: Optional[Exception] = None
    ):
        """
        Initialize structured exception.

        Args:
            message: Human-readable error message
            category: Error category for classification
            error_code: Standardized error code
            context: Additional context (org_id, rule_id, channel, etc.)
            original_error: Original exception if wrapped
        """
        super().__init__(message)
        self.message = message
        self.category = category
        self.error_code = error_code
        self.context = context or {}
        self.original_error = original_error

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for logs and job reports."""
        result = {
            "error": self.error_code.value,
            "message": self.message,
            "category": self.category.value,
        }

        if self.context:
            result["context"] = self.context

        if self.original_error:
            result["original_error"] = str(self.original_error)

        return result

    def is_retryable(self) -> bool:
        """Check if this error should be retried."""
        return self.category == ErrorCategory.TRANSIENT


# ============================================
# Configuration Errors (fail fast, never retried)
# ============================================

class RuleConfigurationError(AlertPipelineError):
    """Alert rule is missing its parameter or uses an unsupported kind."""

    def __init__(
        self,
        message: str,
        error_code: ErrorCode = ErrorCode.INVALID_RULE,
        context: Optional[Dict[str, Any]] = None
    ):
        super().__init__(
            message=message,
            category=ErrorCategory.VALIDATION,
            error_code=error_code,
            context=context
        )


class ChannelConfigurationError(AlertPipelineError):
    """Notification channel is misconfigured (e.g. malformed webhook URL)."""

    def __init__(
        self,
        message: str,
        error_code: ErrorCode = ErrorCode.INVALID_CHANNEL_CONFIG,
        context: Optional[Dict[str, Any]] = None
    ):
        super().__init__(
            message=message,
            category=ErrorCategory.VALIDATION,
            error_code=error_code,
            context=context
        )


class InvalidCronExpressionError(AlertPipelineError):
    """Cron expression does not have five valid fields."""

    def __init__(self, expression: str, reason: str = "expected 5 fields"):
        super().__init__(
            message=f"Invalid cron expression '{expression}': {reason}",
            category=ErrorCategory.VALIDATION,
            error_code=ErrorCode.INVALID_CRON_EXPRESSION,
            context={"expression": expression}
        )


class EmptyDigestError(AlertPipelineError):
    """Digest aggregation was asked to summarize zero alerts."""

    def __init__(self, message: str = "No alerts provided for digest aggregation"):
        super().__init__(
            message=message,
            category=ErrorCategory.VALIDATION,
            error_code=ErrorCode.EMPTY_DIGEST
        )


# ============================================
# Delivery Errors (retried)
# ============================================

class ChannelDeliveryError(AlertPipelineError):
    """
    Temporary failure delivering to a channel.
    Examples: non-2xx webhook response, SMTP disconnect, timeouts.
    """

    def __init__(
        self,
        message: str,
        error_code: ErrorCode = ErrorCode.CHANNEL_UNAVAILABLE,
        context: Optional[Dict[str, Any]] = None,
        original_error: Optional[Exception] = None
    ):
        super().__init__(
            message=message,
            category=ErrorCategory.TRANSIENT,
            error_code=error_code,
            context=context,
            original_error=original_error
        )


# ============================================
# Persistence Errors
# ============================================

class AlertPersistenceError(AlertPipelineError):
    """Alert history write or read failed."""

    def __init__(
        self,
        message: str,
        context: Optional[Dict[str, Any]] = None,
        original_error: Optional[Exception] = None
    ):
        super().__init__(
            message=message,
            category=ErrorCategory.PERMANENT,
            error_code=ErrorCode.ALERT_PERSISTENCE_FAILED,
            context=context,
            original_error=original_error
        )


class DigestQueueError(AlertPipelineError):
    """Digest queue insert or batch marking failed."""

    def __init__(
        self,
        message: str,
        context: Optional[Dict[str, Any]] = None,
        original_error: Optional[Exception] = None
    ):
        super().__init__(
            message=message,
            category=ErrorCategory.PERMANENT,
            error_code=ErrorCode.DIGEST_QUEUE_FAILED,
            context=context,
            original_error=original_error
        )
