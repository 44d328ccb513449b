"""
Input validation layer.

Purpose
-------
Centralized validation of caller-supplied values before they reach the quiz
engine or the leaderboard: ids, question numbers, answer text, elapsed time,
pagination and enumerated choices.

Responsibilities
----------------
- Validate and convert inputs to their expected types
- Enforce bounds for numeric inputs
- Validate UUIDs and enumerated choices
- Raise ValidationError with clear messages

Non-Responsibilities
--------------------
- Business rules such as configuration availability or answer ordering
  (service layer)
- Persistence constraints (database layer)

Observability
-------------
Every validation failure is logged at debug level with field name, raw value
repr and reason. Client mistakes should not pollute production logs at
info/error levels.
"""

from __future__ import annotations

import uuid
from typing import Any, NoReturn, Optional, Sequence

from notequiz.core.logging.logger import get_logger
from notequiz.modules.shared.exceptions import ValidationError

logger = get_logger(__name__)


def _raise_validation_error(field_name: str, value: Any, message: str) -> NoReturn:
    """Log and raise a ValidationError."""
    logger.debug(
        "Input validation failed",
        extra={
            "field_name": field_name,
            "raw_value": repr(value),
            "reason": message,
        },
    )
    raise ValidationError(field_name, message)


class InputValidator:
    """
    Stateless input validation helpers.

    All methods return the validated (and possibly converted) value on
    success and raise ValidationError on failure.
    """

    # =========================================================================
    # INTEGER VALIDATION
    # =========================================================================

    @staticmethod
    def validate_integer(
        value: Any,
        field_name: str,
        min_value: Optional[int] = None,
        max_value: Optional[int] = None,
    ) -> int:
        """
        Validate and convert value to integer with optional bounds.

        Booleans are rejected even though they subclass int.
        """
        if value is None:
            _raise_validation_error(field_name, value, "Value is required")

        if isinstance(value, bool):
            _raise_validation_error(field_name, value, "Must be a whole number")

        if isinstance(value, float) and not value.is_integer():
            _raise_validation_error(
                field_name, value, f"Must be a whole number, got '{value}'"
            )

        try:
            int_value = int(value)
        except (ValueError, TypeError):
            _raise_validation_error(
                field_name,
                value,
                f"Must be a whole number, got '{value}'",
            )

        if min_value is not None and int_value < min_value:
            _raise_validation_error(
                field_name,
                int_value,
                f"Must be at least {min_value}, got {int_value}",
            )

        if max_value is not None and int_value > max_value:
            _raise_validation_error(
                field_name,
                int_value,
                f"Cannot exceed {max_value}, got {int_value}",
            )

        return int_value

    @staticmethod
    def validate_positive_integer(
        value: Any,
        field_name: str,
        max_value: Optional[int] = None,
    ) -> int:
        """Validate that value is a strictly positive integer (>= 1)."""
        return InputValidator.validate_integer(
            value, field_name, min_value=1, max_value=max_value
        )

    @staticmethod
    def validate_non_negative_integer(
        value: Any,
        field_name: str,
        max_value: Optional[int] = None,
    ) -> int:
        """Validate that value is a non-negative integer (>= 0)."""
        return InputValidator.validate_integer(
            value, field_name, min_value=0, max_value=max_value
        )

    # =========================================================================
    # IDENTIFIERS
    # =========================================================================

    @staticmethod
    def validate_uuid(value: Any, field_name: str) -> uuid.UUID:
        """Accept a UUID instance or its string form."""
        if isinstance(value, uuid.UUID):
            return value
        if value is None:
            _raise_validation_error(field_name, value, "Value is required")
        try:
            return uuid.UUID(str(value))
        except (ValueError, TypeError, AttributeError):
            _raise_validation_error(field_name, value, "Must be a valid UUID")

    # =========================================================================
    # STRING VALIDATION
    # =========================================================================

    @staticmethod
    def validate_string(
        value: Any,
        field_name: str,
        min_length: Optional[int] = None,
        max_length: Optional[int] = None,
    ) -> str:
        """
        Validate a string and return it stripped of surrounding whitespace.

        Non-string values are rejected rather than coerced; an answer payload
        of `4` or `None` is malformed, not an answer.
        """
        if value is None:
            _raise_validation_error(field_name, value, "Value is required")

        if not isinstance(value, str):
            _raise_validation_error(
                field_name, value, f"Must be text, got {type(value).__name__}"
            )

        str_value = value.strip()

        if min_length is not None and len(str_value) < min_length:
            _raise_validation_error(
                field_name,
                str_value,
                f"Must be at least {min_length} characters",
            )

        if max_length is not None and len(str_value) > max_length:
            _raise_validation_error(
                field_name,
                str_value,
                f"Cannot exceed {max_length} characters",
            )

        return str_value

    # =========================================================================
    # CHOICE VALIDATION
    # =========================================================================

    @staticmethod
    def validate_choice(
        value: Any,
        field_name: str,
        valid_choices: Sequence[str],
    ) -> str:
        """Validate that value is one of the allowed choices (case-insensitive)."""
        str_value = str(value).lower().strip()
        normalized_choices = {choice.lower() for choice in valid_choices}

        if str_value not in normalized_choices:
            choices_str = ", ".join(sorted(valid_choices))
            _raise_validation_error(
                field_name,
                value,
                f"Invalid choice '{value}'. Must be one of: {choices_str}",
            )

        return str_value
