"""Question generation: note bank and per-session question pools."""

from notequiz.modules.questions.notes import (
    Note,
    choices_for,
    eligible_notes,
    has_eligible_notes,
    supported_clefs,
)
from notequiz.modules.questions.pool import QuestionPool

__all__ = [
    "Note",
    "QuestionPool",
    "choices_for",
    "eligible_notes",
    "has_eligible_notes",
    "supported_clefs",
]
