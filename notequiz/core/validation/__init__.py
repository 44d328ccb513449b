"""Input validation helpers raising domain ValidationError."""

from notequiz.core.validation.input_validator import InputValidator

__all__ = ["InputValidator"]
