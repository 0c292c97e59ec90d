"""Durable background job (transactional outbox) model."""

from sqlalchemy import Column, Integer, String, Text, DateTime, Index, JSON
from sqlalchemy.sql import func
from snippetbase.database import Base

JOB_ENQUEUED = "enqueued"
JOB_PROCESSING = "processing"
JOB_COMPLETED = "completed"
JOB_FAILED = "failed"
JOB_DEAD = "dead"
JOB_STATUSES = (JOB_ENQUEUED, JOB_PROCESSING, JOB_COMPLETED, JOB_FAILED, JOB_DEAD)
RUNNABLE_STATUSES = (JOB_ENQUEUED, JOB_FAILED)


class BackgroundJob(Base):
    __tablename__ = "background_job"

    job_id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(50), nullable=False)
    payload = Column(JSON, nullable=False, default=dict)
    status = Column(String(20), nullable=False, default=JOB_ENQUEUED)
    # enqueued/processing/completed/failed/dead
    attempts = Column(Integer, nullable=False, default=0)
    max_attempts = Column(Integer, nullable=False, default=5)
    run_after = Column(DateTime, nullable=False, server_default=func.now())
    last_error = Column(Text, nullable=True)
    locked_by = Column(String(64), nullable=True)
    locked_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())
    completed_at = Column(DateTime, nullable=True)

    __table_args__ = (
        Index("idx_background_job_runnable", "status", "run_after"),
        Index("idx_background_job_name", "name", "status"),
    )
