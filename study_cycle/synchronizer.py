import uuid
from datetime import datetime
from enum import Enum
from loguru import logger
from typing import Callable, Dict, List, Optional, Tuple
from study_cycle.clock import utcnow
from study_cycle.crud.cycle_item import CycleStore
from study_cycle.crud.subject import SubjectRegistry
from study_cycle.schemas import (
    CycleItemSchema,
    CycleItemUpdate,
    HistoryEntry,
    HistoryType,
    PerformanceInput,
    SubjectUpdate
)


class PerformanceMode(str, Enum):
    ADD = "add"  # add the typed amounts to the current tally
    REPLACE = "replace"  # the typed amounts become the tally


class Synchronizer:
    """
    Applies edits to a single session and fans them out.

    Pending sessions of one subject share a single "current attempt" tally.
    Every counter or link change on a pending session is written to the
    subject aggregate and to all other pending sessions of that subject, in
    the same transaction. Completed sessions keep the tally they were frozen
    with and are never touched by the fan-out.
    """

    def __init__(self, registry: SubjectRegistry, store: CycleStore, clock: Callable[[], datetime] = None):
        self.registry = registry
        self.store = store
        self.clock = clock or store.clock or utcnow

    def apply_update(self, item_id: str, update: CycleItemUpdate) -> Optional[CycleItemSchema]:
        """
        Apply `update` to a session and propagate it.

        Returns:
            The session as saved, or None when the id is unknown
        """
        return self.store.transaction(lambda: self._apply(item_id, update))

    def record_performance(
        self,
        item_id: str,
        correct: int = 0,
        wrong: int = 0,
        mode: PerformanceMode = PerformanceMode.ADD,
        notebook_url: Optional[str] = None
    ) -> Optional[CycleItemSchema]:
        """Record a quiz result on a pending session, adding to or replacing its tally"""
        typed = PerformanceInput(correct=correct, wrong=wrong)

        def work():
            item = self.store.get_item(item_id)
            if item is None:
                logger.warning(f"Cannot record performance on cycle item {item_id}: not found")
                return None
            if mode == PerformanceMode.ADD:
                new_correct, new_wrong = item.correct + typed.correct, item.wrong + typed.wrong
            else:
                new_correct, new_wrong = typed.correct, typed.wrong
            return self._apply(item_id, CycleItemUpdate(
                correct=new_correct,
                wrong=new_wrong,
                notebook_url=notebook_url
            ))

        return self.store.transaction(work)

    def _entry(self, now: datetime, action: str, kind: HistoryType, details: str = None) -> HistoryEntry:
        return HistoryEntry(id=str(uuid.uuid4()), timestamp=now, action=action, details=details, type=kind)

    def _current_tally(self, item: CycleItemSchema) -> Tuple[int, int]:
        """The shared tally a session should hold while pending"""
        subject = self.registry.get_subject(item.subject_id)
        if subject is not None:
            return subject.total_correct, subject.total_wrong
        # Orphaned: fall back to a pending sibling, then to the session itself
        for sibling in self.store.items_for_subject(item.subject_id, pending_only=True):
            if sibling.id != item.id:
                return sibling.correct, sibling.wrong
        return item.correct, item.wrong

    def _apply(self, item_id: str, update: CycleItemUpdate) -> Optional[CycleItemSchema]:
        item = self.store.get_item(item_id)
        if item is None:
            logger.warning(f"Cannot update cycle item {item_id}: not found")
            return None

        fields = update.model_dump(exclude_none=True)
        now = self.clock()
        old_correct, old_wrong, old_url = item.correct, item.wrong, item.notebook_url
        entries: List[HistoryEntry] = []

        if "completed" in fields and fields["completed"] != item.completed:
            if fields["completed"]:
                entries.append(self._entry(now, "Session completed", HistoryType.STATUS))
                item.completed_at = now
            else:
                entries.append(self._entry(now, "Session reopened", HistoryType.STATUS))
                item.completed_at = None
            # Completion freezes the shared tally; reopening rejoins it
            item.correct, item.wrong = self._current_tally(item)
            item.completed = fields["completed"]

        if "correct" in fields or "wrong" in fields:
            if item.completed:
                logger.warning(f"Cycle item {item_id} is completed; its tally is frozen and was not changed")
            else:
                item.correct = fields.get("correct", item.correct)
                item.wrong = fields.get("wrong", item.wrong)

        perf_changed = (item.correct, item.wrong) != (old_correct, old_wrong)
        if perf_changed:
            entries.append(self._entry(
                now, "Performance updated", HistoryType.PERFORMANCE,
                _describe_tally(old_correct, old_wrong, item.correct, item.wrong)
            ))

        link_changed = "notebook_url" in fields and fields["notebook_url"] != old_url
        if link_changed:
            item.notebook_url = fields["notebook_url"]
            entries.append(self._entry(
                now, "Notebook link updated", HistoryType.LINK,
                f"{old_url or '(none)'} → {item.notebook_url or '(none)'}"
            ))

        item.history = item.history + entries
        self.store.save_item(item)

        self._fan_out(item, perf_changed and not item.completed, link_changed)
        return item

    def _fan_out(self, item: CycleItemSchema, tally: bool, link: bool) -> None:
        sibling_values: Dict = {}
        subject_values: Dict = {}
        if tally:
            sibling_values.update(correct=item.correct, wrong=item.wrong)
            subject_values.update(total_correct=item.correct, total_wrong=item.wrong)
        if link:
            sibling_values["notebook_url"] = item.notebook_url
            subject_values["notebook_url"] = item.notebook_url
        if not sibling_values:
            return

        subject = self.registry.update_subject(item.subject_id, SubjectUpdate(**subject_values), commit=False)
        if subject is None:
            logger.warning(f"Cycle item {item.id} belongs to a deleted subject; syncing its sessions only")
        self.store.sync_pending_siblings(item.subject_id, item.id, sibling_values)


def _describe_tally(old_correct: int, old_wrong: int, new_correct: int, new_wrong: int) -> str:
    """Before → after text for the counters that moved"""
    parts = []
    if old_correct != new_correct:
        parts.append(f"Correct: {old_correct} → {new_correct}")
    if old_wrong != new_wrong:
        parts.append(f"Wrong: {old_wrong} → {new_wrong}")
    return "; ".join(parts)
