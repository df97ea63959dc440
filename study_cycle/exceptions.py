from typing import Iterable


class StudyCycleError(Exception):
    """Base class for planner errors"""


class StorageError(StudyCycleError):
    """The database rejected or failed a read/write; the transaction was rolled back"""


class UnsupportedFieldError(StorageError):
    """The database schema lacks optional columns the write referenced"""

    def __init__(self, fields: Iterable[str], message: str = ""):
        self.fields = frozenset(fields)
        super().__init__(message or f"Unsupported fields: {', '.join(sorted(self.fields))}")
