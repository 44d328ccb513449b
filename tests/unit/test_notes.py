"""
Unit tests for the note bank: clef anchoring, ledger-line limits and
multiple-choice labels.
"""

import pytest

from notequiz.modules.questions.notes import (
    choices_for,
    eligible_notes,
    has_eligible_notes,
    label_for,
    ledger_lines_for,
    supported_clefs,
)


@pytest.mark.unit
class TestStaffGeometry:
    def test_bottom_line_per_clef(self):
        bottoms = {clef: eligible_notes(clef, 0)[1].label for clef in supported_clefs()}

        assert bottoms == {"treble": "E4", "bass": "G2", "alto": "F3", "tenor": "D3"}

    def test_label_for_wraps_octaves(self):
        assert label_for(4 * 7) == "C4"
        assert label_for(4 * 7 + 6) == "B4"
        assert label_for(5 * 7) == "C5"

    @pytest.mark.parametrize(
        "position, expected",
        [(0, 0), (8, 0), (-1, 0), (-2, 1), (-3, 1), (-4, 2), (9, 0), (10, 1), (11, 1)],
    )
    def test_ledger_lines_for_position(self, position, expected):
        assert ledger_lines_for(position) == expected


@pytest.mark.unit
class TestEligibleNotes:
    def test_no_ledger_lines_spans_staff_plus_outer_spaces(self):
        notes = eligible_notes("treble", 0)

        assert len(notes) == 11
        assert notes[0].label == "D4"
        assert notes[-1].label == "G5"
        assert all(note.ledger_lines == 0 for note in notes)

    def test_each_ledger_line_adds_two_notes_per_side(self):
        assert len(eligible_notes("bass", 1)) == 15
        assert len(eligible_notes("bass", 3)) == 23

    def test_limit_is_respected(self):
        assert max(note.ledger_lines for note in eligible_notes("alto", 2)) == 2

    def test_middle_c_needs_one_ledger_line_in_treble(self):
        labels = [note.label for note in eligible_notes("treble", 1)]
        assert "C4" in labels
        assert "C4" not in [note.label for note in eligible_notes("treble", 0)]

    def test_notes_are_ordered_low_to_high(self):
        notes = eligible_notes("tenor", 2)
        assert list(notes) == sorted(notes)

    def test_unknown_clef_or_negative_limit_is_empty(self):
        assert eligible_notes("soprano", 1) == ()
        assert eligible_notes("treble", -1) == ()
        assert not has_eligible_notes("soprano", 0)
        assert has_eligible_notes("treble", 0)

    def test_image_names_include_clef(self):
        assert eligible_notes("bass", 0)[1].image == "bass_G2.png"


@pytest.mark.unit
class TestChoices:
    def test_choices_include_correct_note_and_neighbours(self):
        pool = eligible_notes("treble", 0)
        note = pool[5]

        labels = choices_for(note, pool, 4)

        assert len(labels) == 4
        assert note.label in labels
        assert len(set(labels)) == 4

    def test_choices_at_pool_edge_come_from_one_side(self):
        pool = eligible_notes("treble", 0)

        labels = choices_for(pool[0], pool, 4)

        assert labels == tuple(note.label for note in pool[:4])

    def test_single_choice_is_the_answer(self):
        pool = eligible_notes("treble", 0)
        assert choices_for(pool[3], pool, 1) == (pool[3].label,)
