from sqlalchemy import Column, Integer, String, Float, Boolean, DateTime, JSON
from study_cycle.clock import utcnow
from study_cycle.database import Base

class CycleItem(Base):
    """One scheduled study session within a cycle"""
    __tablename__ = "cycle_items"
    
    id = Column(String, primary_key=True, index=True)
    user_id = Column(String, nullable=False, index=True)
    subject_id = Column(String, nullable=False, index=True)  # no FK: survives subject deletion
    
    # Snapshots copied from the subject at creation
    name = Column(String, nullable=False)
    notebook_url = Column(String, default="")
    hours_per_session = Column(Float, nullable=False)
    
    completed = Column(Boolean, nullable=False, default=False)
    completed_at = Column(DateTime)
    created_at = Column(DateTime, nullable=False, default=utcnow)
    
    correct = Column(Integer, nullable=False, default=0)
    wrong = Column(Integer, nullable=False, default=0)
    
    history = Column(JSON)  # list of history entry dicts, append-only
