"""
Integration tests for databases whose cycle_items table predates the
optional columns (completed_at, history).
"""

import pytest
from sqlalchemy.exc import OperationalError

from study_cycle.crud import CycleStore
from study_cycle.crud.cycle_item import OPTIONAL_FIELDS, unsupported_fields
from study_cycle.generator import generate_cycle
from study_cycle.schemas import CycleItemUpdate, SubjectCreate
from study_cycle.synchronizer import Synchronizer


def test_generation_retries_without_optional_columns(legacy):
    registry, store = legacy
    math = registry.add_subject(SubjectCreate(name="Math", total_hours=2, frequency=3))

    items = generate_cycle(registry, store, [math.id], keep_progress=False)

    assert len(items) == 3
    assert store.degraded is True
    assert store.dropped_fields == set(OPTIONAL_FIELDS)
    stored = store.list_items()
    assert [i.id for i in stored] == [i.id for i in items]
    assert all(i.history == [] for i in stored)


def test_reads_fall_back_on_fresh_store(legacy_db, legacy):
    registry, store = legacy
    math = registry.add_subject(SubjectCreate(name="Math", total_hours=1, frequency=2))
    generate_cycle(registry, store, [math.id])

    fresh = CycleStore(legacy_db, store.user_id)
    assert len(fresh.list_items()) == 2
    assert fresh.degraded is True


def test_sync_still_works_in_degraded_mode(legacy):
    registry, store = legacy
    math = registry.add_subject(SubjectCreate(name="Math", total_hours=1, frequency=3))
    generate_cycle(registry, store, [math.id])
    synchronizer = Synchronizer(registry, store)
    first, second, third = store.list_items()

    synchronizer.record_performance(first.id, correct=3, wrong=1)
    done = synchronizer.apply_update(second.id, CycleItemUpdate(completed=True))
    synchronizer.record_performance(third.id, correct=1)

    assert done.completed is True
    stored = {i.id: i for i in store.list_items()}
    assert stored[second.id].completed is True
    assert stored[second.id].completed_at is None  # not persisted without the column
    assert (stored[second.id].correct, stored[second.id].wrong) == (3, 1)
    assert (stored[first.id].correct, stored[first.id].wrong) == (4, 1)
    assert (stored[third.id].correct, stored[third.id].wrong) == (4, 1)
    subject = registry.get_subject(math.id)
    assert (subject.total_correct, subject.total_wrong) == (4, 1)


@pytest.mark.parametrize("message,expected", [
    ("table cycle_items has no column named history", {"history"}),
    ("no such column: cycle_items.completed_at", {"completed_at"}),
    ('column "history" of relation "cycle_items" does not exist', {"history"}),
    ("disk I/O error", set()),
    ("no such column: cycle_items.name", set()),
])
def test_unsupported_field_detection(message, expected):
    error = OperationalError("INSERT", {}, Exception(message))
    assert unsupported_fields(error) == expected
