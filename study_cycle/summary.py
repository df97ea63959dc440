import math
from typing import Iterable, List, Optional, Tuple
from study_cycle.crud.cycle_item import sort_for_display
from study_cycle.schemas import CycleItemSchema, CycleSummary


def _percent(part: int, total: int) -> int:
    # Half rounds up: 2 of 3 answers is 67%
    return math.floor(part * 100 / total + 0.5) if total > 0 else 0


def item_percent(item: CycleItemSchema) -> int:
    """Share of correct answers on one session"""
    return _percent(item.correct, item.correct + item.wrong)


def performance_band(percent: int) -> str:
    """Qualitative band of a correct-answer percentage"""
    if percent < 70:
        return "low"
    if percent < 80:
        return "fair"
    return "good"


def subjects_in_cycle(items: Iterable[CycleItemSchema]) -> List[Tuple[str, str]]:
    """Distinct (subject_id, name) pairs in first-seen order, orphans included"""
    seen = {}
    for item in items:
        seen.setdefault(item.subject_id, item.name)
    return list(seen.items())


def summarize(items: Iterable[CycleItemSchema], subject_id: Optional[str] = None) -> CycleSummary:
    """
    Totals for the whole cycle or for one subject.

    Pending sessions of a subject all carry the same tally, so counting every
    session would multiply it by the frequency. Each subject is represented by
    its first session in display order instead: the shared pending tally when
    one exists, otherwise the latest completed snapshot.
    """
    items = sort_for_display(items)
    if subject_id is not None:
        items = [i for i in items if i.subject_id == subject_id]

    representatives = {}
    for item in items:
        representatives.setdefault(item.subject_id, item)

    correct = sum(i.correct for i in representatives.values())
    wrong = sum(i.wrong for i in representatives.values())
    total = correct + wrong
    correct_pct = _percent(correct, total)

    return CycleSummary(
        correct=correct,
        wrong=wrong,
        total=total,
        correct_pct=correct_pct,
        wrong_pct=100 - correct_pct if total > 0 else 0,
        hours_studied=sum(i.hours_per_session or 0 for i in items if i.completed),
        hours_to_study=sum(i.hours_per_session or 0 for i in items if not i.completed)
    )
