"""Durable background job queue backed by the ``background_job`` outbox table.

Jobs are inserted in the same transaction as the write that caused them, so a
committed write always has its job and a rolled-back write never does. Workers
claim jobs with a compare-and-set update, which keeps two worker processes
from running the same job at the same time.
"""

import logging
from datetime import timedelta
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from snippetbase.config import settings
from snippetbase.models.content_object import BRANCH_PUBLISHED, CONTENT_MODELS
from snippetbase.models.job import (
    BackgroundJob,
    JOB_COMPLETED,
    JOB_DEAD,
    JOB_ENQUEUED,
    JOB_FAILED,
    JOB_PROCESSING,
    RUNNABLE_STATUSES,
)
from snippetbase.utils.helpers import utcnow

logger = logging.getLogger(__name__)

SNIPPET_MUTATION = "snippet_mutation"
PLAYBOOK_MUTATION = "playbook_mutation"
SEARCH_REINDEX = "search_reindex"
EMAIL = "email"

MUTATION_JOB_NAMES = {
    "snippet": SNIPPET_MUTATION,
    "playbook": PLAYBOOK_MUTATION,
}

ACTION_CREATE = "create"
ACTION_UPDATE = "update"
ACTION_ARCHIVE = "archive"
CRUD_ACTIONS = (ACTION_CREATE, ACTION_UPDATE, ACTION_ARCHIVE)


class JobQueue:
    def __init__(
        self,
        *,
        max_attempts: Optional[int] = None,
        backoff_base_seconds: Optional[float] = None,
        backoff_max_seconds: Optional[float] = None,
        lock_timeout_seconds: Optional[int] = None,
    ):
        self.max_attempts = max_attempts or settings.JOB_MAX_ATTEMPTS
        self.backoff_base_seconds = (
            settings.JOB_BACKOFF_BASE_SECONDS if backoff_base_seconds is None else backoff_base_seconds
        )
        self.backoff_max_seconds = (
            settings.JOB_BACKOFF_MAX_SECONDS if backoff_max_seconds is None else backoff_max_seconds
        )
        self.lock_timeout_seconds = lock_timeout_seconds or settings.JOB_LOCK_TIMEOUT_SECONDS

    # ------------------------------------------------------------------ #
    # Producing
    # ------------------------------------------------------------------ #

    def enqueue(self, db: Session, name: str, payload: Dict[str, Any]) -> BackgroundJob:
        """Add a job to the current transaction. The caller commits."""
        job = BackgroundJob(
            name=name,
            payload=payload,
            status=JOB_ENQUEUED,
            attempts=0,
            max_attempts=self.max_attempts,
            run_after=utcnow(),
        )
        db.add(job)
        db.flush()
        return job

    def enqueue_mutation(self, db: Session, row, action: str) -> BackgroundJob:
        if action not in CRUD_ACTIONS:
            raise ValueError(f"Unexpected mutation action: {action}")
        return self.enqueue(db, MUTATION_JOB_NAMES[row.kind], {"object_id": row.id, "action": action})

    def enqueue_reindex(self, db: Session, kind: str, static_id: str) -> BackgroundJob:
        return self.enqueue(db, SEARCH_REINDEX, {"kind": kind, "static_id": static_id})

    def enqueue_email(self, db: Session, user_id: int, template_kind: str, template_data: Dict[str, Any]) -> BackgroundJob:
        return self.enqueue(
            db,
            EMAIL,
            {"user_id": user_id, "template_kind": template_kind, "template_data": template_data},
        )

    # ------------------------------------------------------------------ #
    # Consuming
    # ------------------------------------------------------------------ #

    def claim(self, db: Session, worker_id: str, limit: int) -> List[int]:
        now = utcnow()
        candidates = (
            db.query(BackgroundJob.job_id)
            .filter(
                BackgroundJob.status.in_(RUNNABLE_STATUSES),
                BackgroundJob.run_after <= now,
            )
            .order_by(BackgroundJob.job_id.asc())
            .limit(limit)
            .all()
        )
        claimed: List[int] = []
        for (job_id,) in candidates:
            updated = (
                db.query(BackgroundJob)
                .filter(
                    BackgroundJob.job_id == job_id,
                    BackgroundJob.status.in_(RUNNABLE_STATUSES),
                )
                .update(
                    {
                        BackgroundJob.status: JOB_PROCESSING,
                        BackgroundJob.attempts: BackgroundJob.attempts + 1,
                        BackgroundJob.locked_by: worker_id,
                        BackgroundJob.locked_at: now,
                    },
                    synchronize_session=False,
                )
            )
            db.commit()
            if updated:
                claimed.append(int(job_id))
        return claimed

    def mark_completed(self, db: Session, job_id: int) -> None:
        db.query(BackgroundJob).filter(BackgroundJob.job_id == job_id).update(
            {
                BackgroundJob.status: JOB_COMPLETED,
                BackgroundJob.completed_at: utcnow(),
                BackgroundJob.locked_by: None,
                BackgroundJob.locked_at: None,
                BackgroundJob.last_error: None,
            },
            synchronize_session=False,
        )
        db.commit()

    def mark_failed(self, db: Session, job_id: int, error: str) -> str:
        job = db.query(BackgroundJob).filter(BackgroundJob.job_id == job_id).first()
        if not job:
            return JOB_DEAD
        job.last_error = (error or "")[:4000]
        job.locked_by = None
        job.locked_at = None
        if job.attempts >= job.max_attempts:
            job.status = JOB_DEAD
            logger.error("[jobs] job %s (%s) exhausted %s attempts: %s", job.job_id, job.name, job.attempts, error)
        else:
            job.status = JOB_FAILED
            job.run_after = utcnow() + timedelta(seconds=self.backoff_delay(job.attempts))
            logger.warning("[jobs] job %s (%s) failed attempt %s, retrying: %s", job.job_id, job.name, job.attempts, error)
        db.commit()
        return job.status

    def backoff_delay(self, attempts: int) -> float:
        delay = self.backoff_base_seconds * (2 ** max(attempts - 1, 0))
        return min(delay, self.backoff_max_seconds)

    def release_stale(self, db: Session) -> int:
        """Return jobs abandoned by a crashed worker to the runnable pool."""
        cutoff = utcnow() - timedelta(seconds=self.lock_timeout_seconds)
        stale = (
            db.query(BackgroundJob)
            .filter(
                BackgroundJob.status == JOB_PROCESSING,
                BackgroundJob.locked_at < cutoff,
            )
            .all()
        )
        for job in stale:
            job.locked_by = None
            job.locked_at = None
            job.run_after = utcnow()
            job.status = JOB_DEAD if job.attempts >= job.max_attempts else JOB_FAILED
            job.last_error = job.last_error or "worker lock expired"
        if stale:
            db.commit()
            logger.warning("[jobs] released %s stale job(s)", len(stale))
        return len(stale)

    # ------------------------------------------------------------------ #
    # Inspection
    # ------------------------------------------------------------------ #

    def list_jobs(self, db: Session, status: Optional[str] = None, limit: int = 100) -> List[BackgroundJob]:
        q = db.query(BackgroundJob)
        if status:
            q = q.filter(BackgroundJob.status == status)
        return q.order_by(BackgroundJob.job_id.desc()).limit(limit).all()

    def retry_dead(self, db: Session, job_id: int) -> Optional[BackgroundJob]:
        job = db.query(BackgroundJob).filter(BackgroundJob.job_id == job_id).first()
        if not job or job.status not in (JOB_DEAD, JOB_FAILED):
            return None
        job.status = JOB_ENQUEUED
        job.attempts = 0
        job.run_after = utcnow()
        job.last_error = None
        db.commit()
        db.refresh(job)
        logger.info("[jobs] job %s (%s) requeued manually", job.job_id, job.name)
        return job

    def reconcile(self, db: Session, lookback_minutes: Optional[int] = None) -> int:
        """Re-enqueue mutation jobs for recent revisions that have none.

        Covers the window where a queue row was lost after its write committed.
        Handlers re-read current state, so an extra job is harmless.
        """
        lookback = lookback_minutes or settings.RECONCILE_LOOKBACK_MINUTES
        since = utcnow() - timedelta(minutes=lookback)
        requeued = 0
        for kind, model in CONTENT_MODELS.items():
            job_name = MUTATION_JOB_NAMES[kind]
            known_ids = {
                (job.payload or {}).get("object_id")
                for job in db.query(BackgroundJob)
                .filter(BackgroundJob.name == job_name, BackgroundJob.created_at >= since - timedelta(minutes=lookback))
                .all()
            }
            rows = db.query(model).filter(model.created_at >= since).order_by(model.id.asc()).all()
            for row in rows:
                if row.id in known_ids:
                    continue
                action = ACTION_ARCHIVE if row.is_archived else (
                    ACTION_CREATE if row.previous_version_id is None else ACTION_UPDATE
                )
                self.enqueue_mutation(db, row, action)
                requeued += 1
        if requeued:
            db.commit()
            logger.warning("[jobs] reconciliation re-enqueued %s mutation job(s)", requeued)
        return requeued

    def enqueue_full_reindex(self, db: Session) -> int:
        """Queue a search reindex for every latest published object."""
        queued = 0
        for kind, model in CONTENT_MODELS.items():
            static_ids = (
                db.query(model.static_id)
                .filter(model.branch_type == BRANCH_PUBLISHED, model.is_latest == True)
                .order_by(model.id.asc())
                .all()
            )
            for (static_id,) in static_ids:
                self.enqueue_reindex(db, kind, static_id)
                queued += 1
        db.commit()
        logger.info("[jobs] queued %s search reindex job(s)", queued)
        return queued
