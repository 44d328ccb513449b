"""
Domain exception hierarchy for the quiz backend.

Purpose
-------
Structured, classified errors raised by services. Every error carries a
category so callers (an HTTP layer, a CLI, tests) can map it to a response
without isinstance chains:

- validation: bad configuration or malformed payload; never retried.
- state: the request conflicts with the session's lifecycle or sequencing;
  reflects client-side ordering, so blind retries are wrong.
- not_found: unknown session, user or group.
- dependency: the persistence gateway timed out or failed; transient and
  safe to retry for the specific operation.

Services raise only these (never raw driver exceptions).
"""

from __future__ import annotations

import asyncio
from typing import Any, Dict, Optional

from notequiz.core.exceptions import ErrorSeverity

__all__ = [
    "ErrorSeverity",
    "QuizDomainException",
    "ValidationError",
    "UnavailableConfigurationError",
    "StateError",
    "InvalidTransitionError",
    "SessionNotActiveError",
    "SessionNotTerminalError",
    "OutOfOrderError",
    "PoolExhaustedError",
    "NotFoundError",
    "DependencyError",
    "classify_error",
    "is_transient_error",
    "get_error_severity",
    "should_alert",
]


class QuizDomainException(Exception):
    """
    Base exception for all quiz domain-level errors.

    Args:
        message: Human-readable error message
        details: Additional structured data about the error
        severity: Error severity level for logging handlers
        is_retryable: Whether the operation can be retried
        error_code: Optional code for programmatic handling
    """

    DEFAULT_SEVERITY: ErrorSeverity = ErrorSeverity.ERROR
    DEFAULT_RETRYABLE: bool = False
    CATEGORY: str = "internal"

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

    @property
    def category(self) -> str:
        return self.CATEGORY

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for logging/serialization."""
        return {
            "error_type": self.__class__.__name__,
            "error_code": self.error_code,
            "category": self.category,
            "message": self.message,
            "details": self.details,
            "severity": self.severity.value,
            "is_retryable": self.is_retryable,
        }

    def __str__(self) -> str:
        details_str = f" | Details: {self.details}" if self.details else ""
        return f"[{self.error_code}] {self.message}{details_str}"

    def __repr__(self) -> str:
        return (
            f"{self.__class__.__name__}("
            f"message={self.message!r}, "
            f"details={self.details!r}, "
            f"severity={self.severity.value!r}, "
            f"is_retryable={self.is_retryable!r}"
            ")"
        )


# ============================================================================
# Validation
# ============================================================================


class ValidationError(QuizDomainException):
    """
    Raised when input fails domain validation.

    Args:
        field: Name of the field that failed validation
        message: Explanation of why validation failed
    """

    DEFAULT_SEVERITY = ErrorSeverity.INFO
    DEFAULT_RETRYABLE = False
    CATEGORY = "validation"

    def __init__(
        self, field: str, message: str, error_code: Optional[str] = None
    ) -> None:
        self.field = field
        self.validation_message = message
        super().__init__(
            f"Validation error for {field}: {message}",
            details={"field": field, "validation_message": message},
            error_code=error_code or f"VALIDATION_{field.upper()}",
        )


class UnavailableConfigurationError(ValidationError):
    """Raised when a (clef, duration, max ledger lines) triple cannot be played."""

    def __init__(self, clef: Any, duration: Any, max_ledger_lines: Any) -> None:
        self.clef = clef
        self.duration = duration
        self.max_ledger_lines = max_ledger_lines
        super().__init__(
            "configuration",
            f"clef={clef}, duration={duration}, max_ledger_lines={max_ledger_lines} "
            "is not an available quiz configuration",
            error_code="UNAVAILABLE_CONFIGURATION",
        )
        self.details.update(
            {
                "clef": clef,
                "duration": duration,
                "max_ledger_lines": max_ledger_lines,
            }
        )


# ============================================================================
# State
# ============================================================================


class StateError(QuizDomainException):
    """
    Raised when an operation conflicts with session lifecycle or sequencing.

    Args:
        action: The attempted operation
        reason: Why it is not allowed right now
    """

    DEFAULT_SEVERITY = ErrorSeverity.INFO
    DEFAULT_RETRYABLE = False
    CATEGORY = "state"

    def __init__(
        self,
        action: str,
        reason: str,
        details: Optional[Dict[str, Any]] = None,
        error_code: Optional[str] = None,
    ) -> None:
        self.action = action
        self.reason = reason
        super().__init__(
            f"Invalid operation '{action}': {reason}",
            details={"action": action, "reason": reason, **(details or {})},
            error_code=error_code or f"INVALID_{action.upper()}",
        )


class InvalidTransitionError(StateError):
    """The session is not in a state that permits this transition."""

    def __init__(self, session_id: Any, status: str, action: str) -> None:
        self.session_id = session_id
        self.status = status
        super().__init__(
            action,
            f"session {session_id} is {status}",
            details={"session_id": str(session_id), "status": status},
            error_code="INVALID_TRANSITION",
        )


class SessionNotActiveError(StateError):
    """The session is not in progress."""

    def __init__(self, session_id: Any, status: str, action: str) -> None:
        self.session_id = session_id
        self.status = status
        super().__init__(
            action,
            f"session {session_id} is {status}, not in_progress",
            details={"session_id": str(session_id), "status": status},
            error_code="SESSION_NOT_ACTIVE",
        )


class SessionNotTerminalError(StateError):
    """Results were requested before the session finished."""

    def __init__(self, session_id: Any, status: str) -> None:
        self.session_id = session_id
        self.status = status
        super().__init__(
            "get_results",
            f"session {session_id} is {status}; results are final only once "
            "completed or abandoned",
            details={"session_id": str(session_id), "status": status},
            error_code="SESSION_NOT_TERMINAL",
        )


class OutOfOrderError(StateError):
    """
    The submitted question number is not the next expected one.

    Covers both duplicate resubmissions (received < expected) and skips
    (received > expected). Duplicates are safe for the caller to ignore.
    """

    def __init__(self, session_id: Any, expected: int, received: Any) -> None:
        self.session_id = session_id
        self.expected = expected
        self.received = received
        super().__init__(
            "submit_answer",
            f"expected question {expected}, got {received}",
            details={
                "session_id": str(session_id),
                "expected": expected,
                "received": received,
            },
            error_code="OUT_OF_ORDER",
        )

    @property
    def is_duplicate(self) -> bool:
        return isinstance(self.received, int) and self.received < self.expected


class PoolExhaustedError(StateError):
    """Every configured question has already been issued."""

    def __init__(self, total_questions: int, session_id: Any = None) -> None:
        self.total_questions = total_questions
        self.session_id = session_id
        super().__init__(
            "next_question",
            f"all {total_questions} questions have been issued",
            details={
                "total_questions": total_questions,
                "session_id": str(session_id) if session_id is not None else None,
            },
            error_code="POOL_EXHAUSTED",
        )


# ============================================================================
# Not found
# ============================================================================


class NotFoundError(QuizDomainException):
    """
    Raised when a requested resource cannot be found.

    Args:
        resource_type: Type of resource (e.g. "QuizSession", "Group")
        identifier: Optional identifier for the missing resource
    """

    DEFAULT_SEVERITY = ErrorSeverity.INFO
    DEFAULT_RETRYABLE = False
    CATEGORY = "not_found"

    def __init__(self, resource_type: str, identifier: Optional[Any] = None) -> None:
        self.resource_type = resource_type
        self.identifier = identifier

        if identifier is not None:
            message = f"{resource_type} not found: {identifier}"
        else:
            message = f"{resource_type} not found"

        super().__init__(
            message,
            details={
                "resource_type": resource_type,
                "identifier": str(identifier) if identifier is not None else None,
            },
            error_code=f"{resource_type.upper()}_NOT_FOUND",
        )


# ============================================================================
# Dependency
# ============================================================================


class DependencyError(QuizDomainException):
    """
    Raised when the persistence gateway times out or fails.

    Transient: the caller may retry the specific operation. The service has
    not advanced any in-memory progress when this is raised.

    Args:
        operation: Gateway operation that failed
        original_error: Underlying exception (timeout, database error)
        timeout_seconds: The bound that was applied, if any
    """

    DEFAULT_SEVERITY = ErrorSeverity.WARNING
    DEFAULT_RETRYABLE = True
    CATEGORY = "dependency"

    def __init__(
        self,
        operation: str,
        original_error: Optional[BaseException] = None,
        timeout_seconds: Optional[float] = None,
    ) -> None:
        self.operation = operation
        self.original_error = original_error
        self.timeout_seconds = timeout_seconds

        if original_error is None or isinstance(
            original_error, (TimeoutError, asyncio.TimeoutError)
        ):
            reason = f"timed out after {timeout_seconds}s"
        else:
            reason = f"{type(original_error).__name__}: {original_error}"

        super().__init__(
            f"Dependency failure during '{operation}': {reason}",
            details={
                "operation": operation,
                "timeout_seconds": timeout_seconds,
                "original_error_type": (
                    type(original_error).__name__ if original_error else None
                ),
            },
            error_code="DEPENDENCY_FAILURE",
        )


# ============================================================================
# Helpers
# ============================================================================


def classify_error(exc: BaseException) -> str:
    """Return validation / state / not_found / dependency / internal."""
    if isinstance(exc, QuizDomainException):
        return exc.category
    return "internal"


def is_transient_error(exc: Exception) -> bool:
    if isinstance(exc, QuizDomainException):
        return exc.is_retryable
    return False


def get_error_severity(exc: Exception) -> ErrorSeverity:
    if isinstance(exc, QuizDomainException):
        return exc.severity
    return ErrorSeverity.ERROR


def should_alert(exc: Exception) -> bool:
    severity = get_error_severity(exc)
    return severity in (ErrorSeverity.ERROR, ErrorSeverity.CRITICAL)
