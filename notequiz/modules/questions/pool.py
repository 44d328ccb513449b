"""
QuestionPool: the finite, seeded question sequence of one quiz session.

Sampling
--------
Notes are drawn without replacement from a shuffled cycle of every eligible
note. When the session asks for more questions than there are eligible
notes, a fresh shuffled cycle starts only after every note has appeared
once, and the first note of a new cycle never repeats the last note of the
previous one.

Determinism
-----------
The pool is a pure function of (configuration, total, seed, choices). The
engine seeds it from the session id, so after a restart the exact sequence
is rebuilt by replaying the number of questions already issued.

The sequence is not restartable: asking past `total_questions` raises
PoolExhaustedError.
"""

from __future__ import annotations

import random
from typing import Iterator, List, Optional, Tuple

from notequiz.domain.models.quiz_session import ConfigurationKey, Question
from notequiz.modules.questions.notes import Note, choices_for, eligible_notes
from notequiz.modules.shared.exceptions import (
    PoolExhaustedError,
    UnavailableConfigurationError,
    ValidationError,
)


class QuestionPool:
    """
    Lazy question generator for one session.

    Examples
    --------
    >>> pool = QuestionPool(ConfigurationKey("treble", 30, 0), total_questions=10, seed=42)
    >>> first = pool.next_question()
    >>> first.question_number
    1
    """

    def __init__(
        self,
        configuration: ConfigurationKey,
        total_questions: int,
        seed: int,
        choices: int = 4,
    ) -> None:
        if total_questions <= 0:
            raise ValidationError("total_questions", f"must be positive, got {total_questions}")
        if choices <= 0:
            raise ValidationError("choices", f"must be positive, got {choices}")

        notes = eligible_notes(configuration.clef, configuration.max_ledger_lines)
        if not notes:
            raise UnavailableConfigurationError(
                configuration.clef,
                configuration.duration_seconds,
                configuration.max_ledger_lines,
            )

        self.configuration = configuration
        self.total_questions = total_questions
        self.seed = seed
        self.choices = choices

        self._notes: Tuple[Note, ...] = notes
        self._rng = random.Random(seed)
        self._cycle: List[Note] = []
        self._last: Optional[Note] = None
        self._issued = 0

    # ------------------------------------------------------------------ #
    # State
    # ------------------------------------------------------------------ #

    @property
    def issued(self) -> int:
        return self._issued

    @property
    def remaining(self) -> int:
        return self.total_questions - self._issued

    @property
    def is_exhausted(self) -> bool:
        return self._issued >= self.total_questions

    @property
    def eligible_count(self) -> int:
        return len(self._notes)

    # ------------------------------------------------------------------ #
    # Sampling
    # ------------------------------------------------------------------ #

    def _refill(self) -> None:
        cycle = list(self._notes)
        self._rng.shuffle(cycle)
        # Notes are popped from the end; cycle[-1] is drawn first.
        if len(cycle) > 1 and self._last is not None and cycle[-1] == self._last:
            swap = self._rng.randrange(0, len(cycle) - 1)
            cycle[-1], cycle[swap] = cycle[swap], cycle[-1]
        self._cycle = cycle

    def _draw(self) -> Note:
        if not self._cycle:
            self._refill()
        note = self._cycle.pop()
        self._last = note
        return note

    def next_question(self) -> Question:
        if self.is_exhausted:
            raise PoolExhaustedError(self.total_questions)

        note = self._draw()
        self._issued += 1
        return Question(
            question_number=self._issued,
            note_image=note.image,
            correct_note=note.label,
            answers=choices_for(note, self._notes, self.choices),
        )

    def replay(self, count: int) -> List[Question]:
        """Issue `count` questions in one go (used to rebuild after restart)."""
        if count > self.remaining:
            raise PoolExhaustedError(self.total_questions)
        return [self.next_question() for _ in range(count)]

    def __iter__(self) -> Iterator[Question]:
        while not self.is_exhausted:
            yield self.next_question()

    def __repr__(self) -> str:
        return (
            f"QuestionPool(configuration={self.configuration.name}, "
            f"issued={self._issued}/{self.total_questions}, "
            f"eligible={len(self._notes)})"
        )
