"""
Infrastructure exceptions.

Purpose
-------
Structured errors for infrastructure failures: configuration, database,
Redis and lock acquisition. Each carries severity and retryability so that
service code can decide how to surface it without inspecting driver-specific
exception types.

Non-Responsibilities
--------------------
- Quiz domain errors (see notequiz.modules.shared.exceptions)
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Dict, Optional


class ErrorSeverity(Enum):
    """Error severity levels for logging and alerting."""

    DEBUG = "debug"  # Expected, not concerning
    INFO = "info"  # Normal operation (client mistakes)
    WARNING = "warning"  # Handled, usually transient
    ERROR = "error"  # Unexpected, needs attention
    CRITICAL = "critical"  # System-level failure


class InfrastructureException(Exception):
    """
    Base exception for infrastructure-level errors.

    Args:
        message: Human-readable error message
        details: Additional structured data about the error
        severity: Error severity level for logging handlers
        is_retryable: Whether the operation can be retried
        error_code: Optional code for programmatic handling
    """

    DEFAULT_SEVERITY: ErrorSeverity = ErrorSeverity.ERROR
    DEFAULT_RETRYABLE: bool = False

    def __init__(
        self,
        message: str,
        details: Optional[Dict[str, Any]] = None,
        severity: Optional[ErrorSeverity] = None,
        is_retryable: Optional[bool] = None,
        error_code: Optional[str] = None,
    ) -> None:
        self.message: str = message
        self.details: Dict[str, Any] = details or {}
        self.severity: ErrorSeverity = severity or self.DEFAULT_SEVERITY
        self.is_retryable: bool = (
            is_retryable if is_retryable is not None else self.DEFAULT_RETRYABLE
        )
        self.error_code: str = error_code or self.__class__.__name__
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for logging/serialization."""
        return {
            "error_type": self.__class__.__name__,
            "error_code": self.error_code,
            "message": self.message,
            "details": self.details,
            "severity": self.severity.value,
            "is_retryable": self.is_retryable,
        }

    def __str__(self) -> str:
        details_str = f" | Details: {self.details}" if self.details else ""
        return f"[{self.error_code}] {self.message}{details_str}"


class ConfigurationError(InfrastructureException):
    """
    Raised when a configuration key is invalid or missing.

    Args:
        config_key: The offending configuration key
        message: Explanation of the problem
    """

    DEFAULT_SEVERITY = ErrorSeverity.CRITICAL
    DEFAULT_RETRYABLE = False

    def __init__(self, config_key: str, message: str) -> None:
        self.config_key = config_key
        super().__init__(
            message,
            details={"config_key": config_key},
            error_code="CONFIGURATION_ERROR",
        )


class DatabaseError(InfrastructureException):
    """
    Raised when a database operation fails.

    Args:
        operation: Gateway operation that failed (e.g. "save_session")
        original_error: The underlying driver/ORM exception
    """

    DEFAULT_SEVERITY = ErrorSeverity.ERROR
    DEFAULT_RETRYABLE = True

    def __init__(self, operation: str, original_error: Exception) -> None:
        self.operation = operation
        self.original_error = original_error
        super().__init__(
            f"Database operation '{operation}' failed: {original_error}",
            details={
                "operation": operation,
                "original_error_type": type(original_error).__name__,
            },
            error_code="DATABASE_ERROR",
        )


class RedisConnectionError(InfrastructureException):
    """Raised when Redis is unreachable or a command fails."""

    DEFAULT_SEVERITY = ErrorSeverity.ERROR
    DEFAULT_RETRYABLE = True

    def __init__(self, operation: str, original_error: Exception) -> None:
        self.operation = operation
        self.original_error = original_error
        super().__init__(
            f"Redis operation '{operation}' failed: {original_error}",
            details={
                "operation": operation,
                "original_error_type": type(original_error).__name__,
            },
            error_code="REDIS_ERROR",
        )


class LockAcquisitionError(InfrastructureException):
    """
    Raised when a keyed lock cannot be acquired within its wait timeout.

    Args:
        lock_key: The contended key
        wait_timeout: Seconds waited before giving up
    """

    DEFAULT_SEVERITY = ErrorSeverity.WARNING
    DEFAULT_RETRYABLE = True

    def __init__(self, lock_key: str, wait_timeout: float) -> None:
        self.lock_key = lock_key
        self.wait_timeout = wait_timeout
        super().__init__(
            f"Could not acquire lock '{lock_key}' within {wait_timeout}s",
            details={"lock_key": lock_key, "wait_timeout": wait_timeout},
            error_code="LOCK_TIMEOUT",
        )


def is_transient_error(exc: Exception) -> bool:
    """True if the exception is a retryable infrastructure failure."""
    if isinstance(exc, InfrastructureException):
        return exc.is_retryable
    return False


def get_error_severity(exc: Exception) -> ErrorSeverity:
    if isinstance(exc, InfrastructureException):
        return exc.severity
    return ErrorSeverity.ERROR


def should_alert(exc: Exception) -> bool:
    return get_error_severity(exc) in (ErrorSeverity.ERROR, ErrorSeverity.CRITICAL)
