"""Instance-wide operator endpoints for the job outbox, the containment graph and search.

Jobs are not scoped to an organization, so these routes are gated by
``require_operator`` rather than plain organization admin.
"""

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session
from typing import List, Optional

from snippetbase.database import get_db
from snippetbase.middleware.auth_middleware import require_operator
from snippetbase.models.job import JOB_STATUSES
from snippetbase.models.user import User
from snippetbase.schemas.job import JobOut, RebuildOut, QueuedOut
from snippetbase.services.containment_indexer import ContainmentIndexer
from snippetbase.services.job_queue import JobQueue

router = APIRouter(prefix="/api/admin", tags=["admin"])


@router.get("/jobs", response_model=List[JobOut])
def list_jobs(
    status: Optional[str] = None,
    limit: int = 100,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_operator),
):
    if status and status not in JOB_STATUSES:
        raise HTTPException(status_code=400, detail=f"Unknown job status '{status}'")
    return JobQueue().list_jobs(db, status=status, limit=min(max(limit, 1), 500))


@router.post("/jobs/{job_id}/retry", response_model=JobOut)
def retry_job(job_id: int, db: Session = Depends(get_db), current_user: User = Depends(require_operator)):
    job = JobQueue().retry_dead(db, job_id)
    if not job:
        raise HTTPException(status_code=404, detail="No failed or dead job with that id")
    return job


@router.post("/jobs/reconcile", response_model=QueuedOut)
def reconcile(
    lookback_minutes: Optional[int] = None,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_operator),
):
    return QueuedOut(queued=JobQueue().reconcile(db, lookback_minutes))


@router.post("/containment/rebuild", response_model=RebuildOut)
def rebuild_containment(db: Session = Depends(get_db), current_user: User = Depends(require_operator)):
    return RebuildOut(**ContainmentIndexer(db).rebuild_all())


@router.post("/search/reindex-all", response_model=QueuedOut)
def reindex_all(db: Session = Depends(get_db), current_user: User = Depends(require_operator)):
    return QueuedOut(queued=JobQueue().enqueue_full_reindex(db))
