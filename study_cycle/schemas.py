from pydantic import BaseModel, Field, field_validator
from typing import List, Optional
from datetime import datetime
from enum import Enum

class SubjectCreate(BaseModel):
    """Schema for registering a subject"""
    name: str
    notebook_url: str = ""
    total_hours: float = Field(gt=0)
    frequency: int = Field(default=1, gt=0)

    @field_validator("name")
    @classmethod
    def name_not_blank(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("Subject name cannot be empty")
        return value

class SubjectUpdate(BaseModel):
    """Schema for partial subject edits; only fields that are set get merged"""
    name: Optional[str] = None
    notebook_url: Optional[str] = None
    total_hours: Optional[float] = Field(default=None, gt=0)
    frequency: Optional[int] = Field(default=None, gt=0)
    is_active: Optional[bool] = None
    total_correct: Optional[int] = Field(default=None, ge=0)
    total_wrong: Optional[int] = Field(default=None, ge=0)

    @field_validator("name")
    @classmethod
    def name_not_blank(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return value
        value = value.strip()
        if not value:
            raise ValueError("Subject name cannot be empty")
        return value

class HistoryType(str, Enum):
    STATUS = "status"
    PERFORMANCE = "performance"
    LINK = "link"
    SYSTEM = "system"

class HistoryEntry(BaseModel):
    """Single audit record on a cycle item"""
    id: str
    timestamp: datetime
    action: str
    details: Optional[str] = None
    type: HistoryType

class CycleItemSchema(BaseModel):
    """A study session as read from or written to the cycle store"""
    id: str
    subject_id: str
    name: str
    notebook_url: str = ""
    completed: bool = False
    completed_at: Optional[datetime] = None
    created_at: datetime
    correct: int = Field(default=0, ge=0)
    wrong: int = Field(default=0, ge=0)
    hours_per_session: float
    history: List[HistoryEntry] = Field(default_factory=list)

    class Config:
        from_attributes = True

class CycleItemUpdate(BaseModel):
    """Fields a caller may change on a cycle item; unset fields are left alone"""
    completed: Optional[bool] = None
    correct: Optional[int] = Field(default=None, ge=0)
    wrong: Optional[int] = Field(default=None, ge=0)
    notebook_url: Optional[str] = None

class PerformanceInput(BaseModel):
    """Quiz tally typed into the session form"""
    correct: int = Field(default=0, ge=0)
    wrong: int = Field(default=0, ge=0)

class CycleSummary(BaseModel):
    """Performance and workload totals for a cycle or one of its subjects"""
    correct: int
    wrong: int
    total: int
    correct_pct: int
    wrong_pct: int
    hours_studied: float
    hours_to_study: float
