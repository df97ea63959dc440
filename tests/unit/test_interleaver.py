"""
Unit tests for the round-robin interleaver.
"""

import pytest
from datetime import datetime, timedelta

from study_cycle.interleaver import CycleInterleaver
from study_cycle.models import Subject

BASE = datetime(2026, 3, 2, 8, 0, 0)


def subject(name, frequency, hours=1.0, correct=0, wrong=0, url=""):
    return Subject(
        id=f"id-{name}",
        user_id="u",
        name=name,
        notebook_url=url,
        total_hours=hours,
        frequency=frequency,
        is_active=True,
        total_correct=correct,
        total_wrong=wrong,
    )


def names(items):
    return [item.name for item in items]


class TestRoundRobinOrder:

    def test_single_repeat_subject_comes_first_then_rest(self):
        items = CycleInterleaver.interleave([subject("A", 1), subject("B", 3)], BASE)
        assert names(items) == ["A", "B", "B", "B"]

    def test_equal_frequencies_alternate(self):
        items = CycleInterleaver.interleave([subject("A", 2), subject("B", 2)], BASE)
        assert names(items) == ["A", "B", "A", "B"]

    def test_rounds_follow_selection_order(self):
        items = CycleInterleaver.interleave([subject("A", 3), subject("B", 1), subject("C", 2)], BASE)
        assert names(items) == ["A", "B", "C", "A", "C", "A"]

    def test_selection_order_is_tie_break(self):
        items = CycleInterleaver.interleave([subject("B", 2), subject("A", 2)], BASE)
        assert names(items) == ["B", "A", "B", "A"]

    @pytest.mark.parametrize("frequencies", [
        [1],
        [4],
        [1, 5],
        [3, 3, 3],
        [2, 5, 1, 4],
        [6, 1, 1],
    ])
    def test_count_and_no_clustering(self, frequencies):
        subjects = [subject(f"S{i}", f) for i, f in enumerate(frequencies)]
        items = CycleInterleaver.interleave(subjects, BASE)

        assert len(items) == sum(frequencies)
        for s, f in zip(subjects, frequencies):
            assert sum(1 for i in items if i.subject_id == s.id) == f

        # Two adjacent sessions of one subject only once every other subject is used up
        for position in range(1, len(items)):
            if items[position].subject_id != items[position - 1].subject_id:
                continue
            round_index = sum(1 for i in items[:position] if i.subject_id == items[position].subject_id)
            others = [f for s, f in zip(subjects, frequencies) if s.id != items[position].subject_id]
            assert all(f <= round_index for f in others)

    def test_empty_selection(self):
        assert CycleInterleaver.interleave([], BASE) == []


class TestPlaceholders:

    def test_fields_copied_from_subject(self):
        math = subject("Math", 2, hours=2.5, correct=5, wrong=2, url="https://notes/math")
        items = CycleInterleaver.interleave([math], BASE)

        for item in items:
            assert item.subject_id == "id-Math"
            assert item.name == "Math"
            assert item.notebook_url == "https://notes/math"
            assert item.hours_per_session == 2.5
            assert item.completed is False
            assert item.completed_at is None
            assert (item.correct, item.wrong) == (5, 2)
            assert item.history == []

    def test_ids_are_unique(self):
        items = CycleInterleaver.interleave([subject("A", 3), subject("B", 3)], BASE)
        assert len({item.id for item in items}) == 6

    def test_timestamps_increase_in_emission_order(self):
        items = CycleInterleaver.interleave([subject("A", 2), subject("B", 3)], BASE)

        assert items[0].created_at == BASE
        assert [i.created_at for i in items] == sorted(i.created_at for i in items)
        assert len({i.created_at for i in items}) == len(items)
        assert items[-1].created_at == BASE + timedelta(microseconds=len(items) - 1)

    def test_order_recoverable_from_created_at(self):
        items = CycleInterleaver.interleave([subject("A", 1), subject("B", 3), subject("C", 2)], BASE)
        shuffled = list(reversed(items))
        assert [i.id for i in sorted(shuffled, key=lambda i: i.created_at)] == [i.id for i in items]

    @pytest.mark.parametrize("frequency", [0, -2, None])
    def test_non_positive_frequency_scheduled_once(self, frequency):
        items = CycleInterleaver.interleave([subject("A", frequency), subject("B", 2)], BASE)
        assert names(items) == ["A", "B", "B"]
