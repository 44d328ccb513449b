"""
Note bank derived from staff geometry.

Staff positions count diatonic steps from the bottom staff line (position 0)
to the top line (position 8). A clef fixes which natural note sits on the
bottom line:

    treble  E4      bass  G2      alto  F3      tenor  D3

Positions below 0 or above 8 need ledger lines: one per line position
crossed, so position -1 (the space under the staff) needs none, -2 and -3
need one, and so on. A limit of L ledger lines admits positions
-(2L + 1) .. 8 + 2L + 1.
"""

from __future__ import annotations

from dataclasses import dataclass
from functools import lru_cache
from typing import Dict, Tuple

LETTERS = "CDEFGAB"

STAFF_TOP_POSITION = 8

# Diatonic index (octave * 7 + letter) of the bottom staff line per clef.
BOTTOM_LINE: Dict[str, int] = {
    "treble": 4 * 7 + LETTERS.index("E"),
    "bass": 2 * 7 + LETTERS.index("G"),
    "alto": 3 * 7 + LETTERS.index("F"),
    "tenor": 3 * 7 + LETTERS.index("D"),
}


def label_for(diatonic_index: int) -> str:
    """Scientific pitch label, e.g. 30 -> 'E4'."""
    octave, letter = divmod(diatonic_index, 7)
    return f"{LETTERS[letter]}{octave}"


def ledger_lines_for(position: int) -> int:
    if position < 0:
        return (-position) // 2
    if position > STAFF_TOP_POSITION:
        return (position - STAFF_TOP_POSITION) // 2
    return 0


@dataclass(frozen=True, order=True)
class Note:
    """A natural note drawn at a staff position in a given clef."""

    diatonic_index: int
    clef: str
    position: int

    @property
    def label(self) -> str:
        return label_for(self.diatonic_index)

    @property
    def image(self) -> str:
        return f"{self.clef}_{self.label}.png"

    @property
    def ledger_lines(self) -> int:
        return ledger_lines_for(self.position)


def supported_clefs() -> Tuple[str, ...]:
    return tuple(BOTTOM_LINE)


@lru_cache(maxsize=None)
def eligible_notes(clef: str, max_ledger_lines: int) -> Tuple[Note, ...]:
    """
    Notes drawable in `clef` using at most `max_ledger_lines` ledger lines,
    ordered low to high. Empty for unknown clefs or negative limits.
    """
    bottom = BOTTOM_LINE.get(clef)
    if bottom is None or max_ledger_lines < 0:
        return ()

    reach = 2 * max_ledger_lines + 1
    return tuple(
        Note(diatonic_index=bottom + position, clef=clef, position=position)
        for position in range(-reach, STAFF_TOP_POSITION + reach + 1)
    )


def has_eligible_notes(clef: str, max_ledger_lines: int) -> bool:
    return bool(eligible_notes(clef, max_ledger_lines))


def choices_for(note: Note, pool: Tuple[Note, ...], count: int) -> Tuple[str, ...]:
    """
    Multiple-choice labels for `note`: the note itself plus its nearest staff
    neighbours inside `pool` (alternating below/above), sorted by pitch.
    """
    if count <= 1:
        return (note.label,)

    by_position = {candidate.position: candidate for candidate in pool}
    chosen = [note]
    distance = 1
    max_distance = len(pool)
    while len(chosen) < count and distance <= max_distance:
        for position in (note.position - distance, note.position + distance):
            neighbour = by_position.get(position)
            if neighbour is not None and len(chosen) < count:
                chosen.append(neighbour)
        distance += 1

    return tuple(candidate.label for candidate in sorted(chosen))
