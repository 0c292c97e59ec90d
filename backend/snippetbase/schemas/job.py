"""Pydantic schemas for background job inspection and admin responses."""

from pydantic import BaseModel
from typing import Any, Dict, Optional
from datetime import datetime


class JobOut(BaseModel):
    job_id: int
    name: str
    payload: Dict[str, Any]
    status: str
    attempts: int
    max_attempts: int
    run_after: Optional[datetime] = None
    last_error: Optional[str] = None
    locked_by: Optional[str] = None
    created_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


class QueuedOut(BaseModel):
    queued: int


class RebuildOut(BaseModel):
    indexed: int
    skipped: int
    edges: int
