import uuid
from loguru import logger
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
from study_cycle.clock import utcnow
from study_cycle.exceptions import StorageError
from study_cycle.models import Subject
from study_cycle.schemas import SubjectCreate, SubjectUpdate
from typing import Callable, Iterable, List, Optional
from datetime import datetime

class SubjectRegistry:
    """Catalog of a user's subjects and their aggregate quiz counters"""

    def __init__(self, db: Session, user_id: str, clock: Callable[[], datetime] = utcnow):
        self.db = db
        self.user_id = user_id
        self.clock = clock

    def _commit(self, commit: bool):
        if not commit:
            self.db.flush()
            return
        try:
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            raise StorageError(f"Could not save subjects: {e}") from e

    def _query(self):
        return self.db.query(Subject).filter(Subject.user_id == self.user_id)

    def add_subject(self, subject: SubjectCreate, commit: bool = True) -> Subject:
        """Register a subject with a zeroed tally, active for the next cycle"""
        db_subject = Subject(
            id=str(uuid.uuid4()),
            user_id=self.user_id,
            is_active=True,
            total_correct=0,
            total_wrong=0,
            created_at=self.clock(),
            **subject.model_dump()
        )
        self.db.add(db_subject)
        self._commit(commit)
        if commit:
            self.db.refresh(db_subject)
        return db_subject

    def get_subject(self, subject_id: str) -> Optional[Subject]:
        """Get subject by ID"""
        return self._query().filter(Subject.id == subject_id).first()

    def get_subjects(self, subject_ids: Iterable[str]) -> List[Subject]:
        """Get subjects in the order the ids were given, skipping unknown ids"""
        subject_ids = list(subject_ids)
        found = {s.id: s for s in self._query().filter(Subject.id.in_(subject_ids)).all()}
        ordered = []
        for subject_id in subject_ids:
            if subject_id not in found:
                logger.warning(f"Subject {subject_id} not found for user {self.user_id}; skipping")
                continue
            ordered.append(found[subject_id])
        return ordered

    def list_subjects(self, active_only: bool = False) -> List[Subject]:
        """All subjects in registration order"""
        query = self._query()
        if active_only:
            query = query.filter(Subject.is_active.is_(True))
        return query.order_by(Subject.created_at.asc()).all()

    def update_subject(self, subject_id: str, updates: SubjectUpdate, commit: bool = True) -> Optional[Subject]:
        """Merge the fields set on `updates` into the subject"""
        db_subject = self.get_subject(subject_id)
        if not db_subject:
            logger.warning(f"Cannot update subject {subject_id}: not found")
            return None
        for key, value in updates.model_dump(exclude_unset=True).items():
            if value is None:
                continue
            setattr(db_subject, key, value)
        self._commit(commit)
        return db_subject

    def toggle_all(self, active: bool, commit: bool = True) -> int:
        """Set is_active on every subject; returns how many were touched"""
        subjects = self._query().all()
        for s in subjects:
            s.is_active = active
        self._commit(commit)
        return len(subjects)

    def reset_aggregates(self, subject_ids: Iterable[str], commit: bool = True) -> List[Subject]:
        """Zero the tally of the given subjects (a full restart of their progress)"""
        subjects = self.get_subjects(subject_ids)
        for s in subjects:
            s.total_correct = 0
            s.total_wrong = 0
        self._commit(commit)
        return subjects

    def has_progress(self, subject_ids: Iterable[str]) -> bool:
        """True when any of the subjects has a non-zero tally"""
        return any((s.total_correct or 0) + (s.total_wrong or 0) > 0 for s in self.get_subjects(subject_ids))

    def delete_subject(self, subject_id: str, commit: bool = True) -> bool:
        """Remove a subject; its cycle items stay and become orphans"""
        db_subject = self.get_subject(subject_id)
        if not db_subject:
            logger.warning(f"Cannot delete subject {subject_id}: not found")
            return False
        name = db_subject.name
        self.db.delete(db_subject)
        self._commit(commit)
        logger.info(f"Deleted subject {subject_id} ({name})")
        return True
