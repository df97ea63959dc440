from sqlalchemy import Column, Integer, String, Float, Boolean, DateTime
from study_cycle.clock import utcnow
from study_cycle.database import Base

class Subject(Base):
    """A registered topic with its session duration, repeat frequency and aggregate tally"""
    __tablename__ = "subjects"
    
    id = Column(String, primary_key=True, index=True)
    user_id = Column(String, nullable=False, index=True)
    name = Column(String, nullable=False)
    notebook_url = Column(String, default="")
    
    total_hours = Column(Float, nullable=False)  # hours per session
    frequency = Column(Integer, nullable=False, default=1)  # sessions per cycle
    is_active = Column(Boolean, nullable=False, default=True)
    
    # Aggregate quiz tally shared by the subject's pending sessions
    total_correct = Column(Integer, nullable=False, default=0)
    total_wrong = Column(Integer, nullable=False, default=0)
    
    created_at = Column(DateTime, default=utcnow)
