# models/scheduler_state.py
from sqlalchemy import Column, String, DateTime

from ai_magellan.db.session import Base


class SchedulerState(Base):
    """Persisted cadence of one scheduled job."""

    __tablename__ = "scheduler_state"

    job_name = Column(String(100), primary_key=True)
    next_run_at = Column(DateTime, nullable=True)
    last_run_at = Column(DateTime, nullable=True)
    last_status = Column(String(20), nullable=True)  # ok/error
    last_error = Column(String(500), nullable=True)
