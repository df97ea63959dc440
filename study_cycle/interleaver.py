import uuid
from datetime import datetime, timedelta
from loguru import logger
from typing import List, Sequence
from study_cycle.clock import utcnow
from study_cycle.models import Subject
from study_cycle.schemas import CycleItemSchema

class CycleInterleaver:
    """
    Round-robin distribution of repeated study sessions across subjects.

    Every subject contributes `frequency` sessions. Round r takes the r-th
    session of each subject that still has one, in selection order, so a
    subject's repeats never sit next to each other while another subject
    still has sessions left in that round.
    """

    # Gap between consecutive synthetic creation timestamps
    TIMESTAMP_STEP = timedelta(microseconds=1)

    @staticmethod
    def repeat_count(subject: Subject) -> int:
        """Sessions a subject contributes; anything below 1 counts as 1"""
        frequency = subject.frequency or 0
        if frequency < 1:
            logger.warning(f"Subject {subject.name!r} has frequency {subject.frequency}; scheduling it once")
            return 1
        return frequency

    @staticmethod
    def placeholders(subject: Subject) -> List[CycleItemSchema]:
        """
        Build the unsaved sessions of one subject.

        The tally baseline is the subject's aggregate as given; callers that
        want a fresh start reset the aggregate first.
        """
        return [
            CycleItemSchema(
                id=str(uuid.uuid4()),
                subject_id=subject.id,
                name=subject.name,
                notebook_url=subject.notebook_url or "",
                completed=False,
                created_at=datetime.min,  # assigned in emission order
                correct=subject.total_correct or 0,
                wrong=subject.total_wrong or 0,
                hours_per_session=subject.total_hours
            )
            for _ in range(CycleInterleaver.repeat_count(subject))
        ]

    @staticmethod
    def interleave(subjects: Sequence[Subject], base_time: datetime = None) -> List[CycleItemSchema]:
        """
        Interleave the sessions of `subjects` round by round.

        Args:
            subjects: Selected subjects, in selection order
            base_time: Timestamp of the first emitted session (defaults to now)

        Returns:
            Sessions in study order; created_at strictly increases along the list
        """
        groups = [CycleInterleaver.placeholders(s) for s in subjects]
        base = base_time if base_time else utcnow()

        ordered = []
        round_index = 0
        while True:
            emitted = False
            for group in groups:
                if round_index < len(group):
                    item = group[round_index]
                    item.created_at = base + CycleInterleaver.TIMESTAMP_STEP * len(ordered)
                    ordered.append(item)
                    emitted = True
            if not emitted:
                break
            round_index += 1

        return ordered
