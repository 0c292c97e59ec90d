"""Background worker: polls the ``background_job`` table and runs handlers.

Run with ``python -m snippetbase.worker``. Several workers may share one
database; the claim step keeps them from running the same job concurrently.
"""

import logging
import os
import signal
import socket
import threading
from typing import Callable, Dict, Optional

from sqlalchemy.orm import Session

from snippetbase.config import settings
from snippetbase.database import SessionLocal
import snippetbase.models  # noqa: F401 - registers tables on Base.metadata
from snippetbase.models.job import BackgroundJob
from snippetbase.services.job_handlers import Handler, JobHandlers
from snippetbase.services.job_queue import JobQueue

logger = logging.getLogger(__name__)


class JobProcessor:
    def __init__(
        self,
        session_factory: Callable[[], Session],
        queue: JobQueue,
        handlers: Dict[str, Handler],
        *,
        worker_id: Optional[str] = None,
        batch_size: Optional[int] = None,
        poll_interval: Optional[float] = None,
        reconcile_every: int = 30,
    ):
        self.session_factory = session_factory
        self.queue = queue
        self.handlers = handlers
        self.worker_id = worker_id or f"{socket.gethostname()}-{os.getpid()}"
        self.batch_size = batch_size or settings.WORKER_BATCH_SIZE
        self.poll_interval = settings.WORKER_POLL_INTERVAL_SECONDS if poll_interval is None else poll_interval
        self.reconcile_every = reconcile_every
        self._shutdown = threading.Event()

    def run_job(self, db: Session, job_id: int) -> str:
        job = db.query(BackgroundJob).filter(BackgroundJob.job_id == job_id).first()
        if job is None:
            return "missing"
        handler = self.handlers.get(job.name)
        if handler is None:
            return self.queue.mark_failed(db, job_id, f"no handler registered for '{job.name}'")
        payload = dict(job.payload or {})
        try:
            handler(db, payload)
        except Exception as e:
            db.rollback()
            logger.exception("[jobs] job %s (%s) raised", job_id, job.name)
            return self.queue.mark_failed(db, job_id, f"{type(e).__name__}: {e}")
        self.queue.mark_completed(db, job_id)
        return "completed"

    def run_once(self) -> Dict[str, int]:
        """Claim and run one batch. Returns a count per outcome."""
        stats: Dict[str, int] = {}
        db = self.session_factory()
        try:
            self.queue.release_stale(db)
            for job_id in self.queue.claim(db, self.worker_id, self.batch_size):
                outcome = self.run_job(db, job_id)
                stats[outcome] = stats.get(outcome, 0) + 1
        finally:
            db.close()
        return stats

    def drain(self, max_rounds: int = 50) -> Dict[str, int]:
        """Run batches until nothing is runnable right now."""
        totals: Dict[str, int] = {}
        for _ in range(max_rounds):
            stats = self.run_once()
            if not stats:
                break
            for outcome, count in stats.items():
                totals[outcome] = totals.get(outcome, 0) + count
        return totals

    def reconcile(self) -> int:
        db = self.session_factory()
        try:
            return self.queue.reconcile(db)
        finally:
            db.close()

    def stop(self, *_args) -> None:
        logger.info("[worker] %s shutting down", self.worker_id)
        self._shutdown.set()

    def run_forever(self) -> None:
        logger.info(
            "[worker] %s polling every %ss (batch %s)", self.worker_id, self.poll_interval, self.batch_size
        )
        polls = 0
        while not self._shutdown.is_set():
            if polls % self.reconcile_every == 0:
                self.reconcile()
            stats = self.run_once()
            if stats:
                logger.info("[worker] batch finished: %s", stats)
            polls += 1
            self._shutdown.wait(self.poll_interval)


def build_processor() -> JobProcessor:
    queue = JobQueue()
    return JobProcessor(SessionLocal, queue, JobHandlers(queue).as_mapping())


def main() -> None:
    logging.basicConfig(
        level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )
    processor = build_processor()
    signal.signal(signal.SIGINT, processor.stop)
    signal.signal(signal.SIGTERM, processor.stop)
    processor.run_forever()


if __name__ == "__main__":
    main()
