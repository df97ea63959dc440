from study_cycle.models.subject import Subject
from study_cycle.models.cycle_item import CycleItem

__all__ = [
    "Subject",
    "CycleItem"
]
