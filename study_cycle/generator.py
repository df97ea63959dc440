import uuid
from loguru import logger
from typing import Iterable, List
from study_cycle.crud.cycle_item import CycleStore
from study_cycle.crud.subject import SubjectRegistry
from study_cycle.interleaver import CycleInterleaver
from study_cycle.schemas import CycleItemSchema, HistoryEntry, HistoryType


def generate_cycle(
    registry: SubjectRegistry,
    store: CycleStore,
    subject_ids: Iterable[str],
    keep_progress: bool = False
) -> List[CycleItemSchema]:
    """
    Build a new study cycle from the selected subjects and persist it.

    Args:
        registry: Subject registry of the user
        store: Cycle store of the same user
        subject_ids: Selected subjects, in selection order
        keep_progress: True appends to the current queue and seeds each session
            with the subject's tally; False zeroes the tallies and replaces the
            whole queue

    Returns:
        The sessions created, in study order
    """
    subject_ids = list(subject_ids)

    def work():
        if keep_progress:
            subjects = registry.get_subjects(subject_ids)
        else:
            subjects = registry.reset_aggregates(subject_ids, commit=False)
        if not subjects:
            logger.warning("No subjects selected; cycle left unchanged")
            return []

        if not keep_progress:
            store.clear_cycle()

        items = CycleInterleaver.interleave(subjects, base_time=store.clock())
        for item in items:
            item.history.append(HistoryEntry(
                id=str(uuid.uuid4()),
                timestamp=item.created_at,
                action="Session initialized",
                details=f"{item.hours_per_session:g}h planned",
                type=HistoryType.SYSTEM
            ))
        store.insert_items(items)
        return items

    items = store.transaction(work)
    if items:
        mode = "kept progress" if keep_progress else "fresh start"
        logger.info(f"Generated {len(items)} session(s) from {len(subject_ids)} subject(s) ({mode})")
        if store.degraded:
            logger.warning(f"Cycle saved without {', '.join(sorted(store.dropped_fields))}")
    return items
