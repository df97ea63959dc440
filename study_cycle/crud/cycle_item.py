from loguru import logger
from sqlalchemy import delete, insert, select, update
from sqlalchemy.exc import DBAPIError, SQLAlchemyError
from sqlalchemy.orm import Session
from study_cycle.clock import utcnow
from study_cycle.exceptions import StorageError, UnsupportedFieldError
from study_cycle.models import CycleItem
from study_cycle.schemas import CycleItemSchema
from typing import Callable, Dict, Iterable, List, Optional, TypeVar
from datetime import datetime

T = TypeVar("T")

cycle_items = CycleItem.__table__

# Columns an older schema may not have; mandatory session data never depends on them
OPTIONAL_FIELDS = frozenset({"completed_at", "history"})


def unsupported_fields(error: DBAPIError) -> frozenset:
    """Optional columns named in a 'no such column' style database error"""
    message = str(error.orig if error.orig is not None else error).lower()
    if "column" not in message:
        return frozenset()
    return frozenset(name for name in OPTIONAL_FIELDS if name in message)


def sort_for_display(items: Iterable[CycleItemSchema]) -> List[CycleItemSchema]:
    """Pending sessions first, then completed; newest first inside each group"""
    newest_first = sorted(items, key=lambda i: i.created_at, reverse=True)
    return sorted(newest_first, key=lambda i: i.completed)


class CycleStore:
    """
    Persistent queue of a user's study sessions.

    Writes go through SQLAlchemy Core so the column set can shrink when the
    database predates the optional columns: the first rejected write marks
    them as dropped and the whole transaction is replayed once without them.
    """

    def __init__(self, db: Session, user_id: str, clock: Callable[[], datetime] = utcnow):
        self.db = db
        self.user_id = user_id
        self.clock = clock
        self.dropped_fields = set()
        self._in_transaction = False

    @property
    def degraded(self) -> bool:
        """True once optional columns had to be dropped"""
        return bool(self.dropped_fields)

    def transaction(self, work: Callable[[], T]) -> T:
        """
        Run `work` and commit, rolling back on any failure.

        An UnsupportedFieldError triggers a single replay with the optional
        columns stripped. Nested calls join the outer transaction.
        """
        if self._in_transaction:
            return work()

        self._in_transaction = True
        try:
            try:
                return self._attempt(work)
            except UnsupportedFieldError as e:
                logger.warning(
                    f"Database does not support {', '.join(sorted(e.fields))}; "
                    f"retrying without {', '.join(sorted(OPTIONAL_FIELDS))}"
                )
                self.dropped_fields |= OPTIONAL_FIELDS
                return self._attempt(work)
        finally:
            self._in_transaction = False

    def _attempt(self, work: Callable[[], T]) -> T:
        try:
            result = work()
            self.db.commit()
            return result
        except DBAPIError as e:
            self.db.rollback()
            missing = unsupported_fields(e) - self.dropped_fields
            if missing:
                raise UnsupportedFieldError(missing, str(e.orig)) from e
            raise StorageError(f"Cycle update failed: {e.orig}") from e
        except SQLAlchemyError as e:
            self.db.rollback()
            raise StorageError(f"Cycle update failed: {e}") from e
        except Exception:
            self.db.rollback()
            raise

    def _columns(self):
        return [c for c in cycle_items.c if c.name not in self.dropped_fields]

    def _to_row(self, item: CycleItemSchema) -> Dict:
        row = item.model_dump(exclude={"history"})
        row["history"] = [entry.model_dump(mode="json") for entry in item.history]
        row["user_id"] = self.user_id
        return {k: v for k, v in row.items() if k not in self.dropped_fields}

    @staticmethod
    def _to_schema(row) -> CycleItemSchema:
        data = dict(row)
        data.pop("user_id", None)
        data["history"] = data.get("history") or []
        return CycleItemSchema.model_validate(data)

    def _select(self):
        return select(*self._columns()).where(cycle_items.c.user_id == self.user_id)

    # ---- reads ----

    def get_item(self, item_id: str) -> Optional[CycleItemSchema]:
        """Get one session by ID"""
        def work():
            row = self.db.execute(self._select().where(cycle_items.c.id == item_id)).mappings().first()
            return self._to_schema(row) if row else None
        return self.transaction(work)

    def list_items(self) -> List[CycleItemSchema]:
        """All sessions in storage (interleave) order"""
        def work():
            stmt = self._select().order_by(cycle_items.c.created_at.asc())
            return [self._to_schema(row) for row in self.db.execute(stmt).mappings().all()]
        return self.transaction(work)

    def list_for_display(self) -> List[CycleItemSchema]:
        """All sessions in display order"""
        return sort_for_display(self.list_items())

    def items_for_subject(self, subject_id: str, pending_only: bool = False) -> List[CycleItemSchema]:
        """Sessions of one subject in storage order"""
        def work():
            stmt = self._select().where(cycle_items.c.subject_id == subject_id)
            if pending_only:
                stmt = stmt.where(cycle_items.c.completed.is_(False))
            stmt = stmt.order_by(cycle_items.c.created_at.asc())
            return [self._to_schema(row) for row in self.db.execute(stmt).mappings().all()]
        return self.transaction(work)

    # ---- writes ----

    def insert_items(self, items: List[CycleItemSchema]) -> int:
        """Batch insert sessions"""
        if not items:
            return 0
        def work():
            self.db.execute(insert(cycle_items), [self._to_row(item) for item in items])
            return len(items)
        return self.transaction(work)

    def save_item(self, item: CycleItemSchema) -> None:
        """Overwrite a stored session with `item`"""
        def work():
            values = self._to_row(item)
            values.pop("id")
            values.pop("user_id")
            self.db.execute(
                update(cycle_items)
                .where(cycle_items.c.id == item.id, cycle_items.c.user_id == self.user_id)
                .values(**values)
            )
        self.transaction(work)

    def sync_pending_siblings(self, subject_id: str, exclude_id: str, values: Dict) -> int:
        """
        Overwrite `values` on every not-completed session of a subject except one.

        Completed sessions are never matched. Returns the number of rows written.
        """
        if not values:
            return 0
        def work():
            result = self.db.execute(
                update(cycle_items)
                .where(
                    cycle_items.c.user_id == self.user_id,
                    cycle_items.c.subject_id == subject_id,
                    cycle_items.c.completed.is_(False),
                    cycle_items.c.id != exclude_id
                )
                .values(**values)
            )
            return result.rowcount
        count = self.transaction(work)
        logger.debug(f"Synced {count} pending session(s) of subject {subject_id}: {values}")
        return count

    def delete_item(self, item_id: str) -> bool:
        """Remove one session"""
        def work():
            return self.db.execute(
                delete(cycle_items).where(cycle_items.c.id == item_id, cycle_items.c.user_id == self.user_id)
            ).rowcount
        if not self.transaction(work):
            logger.warning(f"Cannot delete cycle item {item_id}: not found")
            return False
        logger.info(f"Deleted cycle item {item_id}")
        return True

    def clear_cycle(self) -> int:
        """Remove every session of the user; subject tallies are left alone"""
        def work():
            return self.db.execute(delete(cycle_items).where(cycle_items.c.user_id == self.user_id)).rowcount
        count = self.transaction(work)
        logger.info(f"Cleared {count} cycle item(s) for user {self.user_id}")
        return count
