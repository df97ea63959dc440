from study_cycle.crud.subject import SubjectRegistry
from study_cycle.crud.cycle_item import CycleStore, sort_for_display

__all__ = [
    "SubjectRegistry",
    "CycleStore",
    "sort_for_display"
]
