from datetime import timedelta

from snippetbase.models.job import BackgroundJob
from snippetbase.services.delivery import HttpEmailDelivery, HttpSearchIndexer
from snippetbase.services.job_handlers import JobHandlers
from snippetbase.services.job_queue import JobQueue
from snippetbase.utils.helpers import utcnow
from snippetbase.worker import JobProcessor
from tests.conftest import TestingSession, playbook_payload, run_jobs, snippet_payload


def _job(db, job_id):
    db.expire_all()
    return db.query(BackgroundJob).filter(BackgroundJob.job_id == job_id).one()


def test_claim_is_exclusive(db, queue):
    job = queue.enqueue(db, "noop", {})
    db.commit()

    assert queue.claim(db, "worker-a", 10) == [job.job_id]
    assert queue.claim(db, "worker-b", 10) == []

    claimed = _job(db, job.job_id)
    assert claimed.status == "processing"
    assert claimed.attempts == 1
    assert claimed.locked_by == "worker-a"


def test_failures_back_off_exponentially():
    queue = JobQueue(max_attempts=5, backoff_base_seconds=10, backoff_max_seconds=25)
    assert [queue.backoff_delay(n) for n in (1, 2, 3, 4)] == [10, 20, 25, 25]


def test_failed_job_waits_for_backoff(db):
    queue = JobQueue(max_attempts=5, backoff_base_seconds=30, backoff_max_seconds=300)
    job = queue.enqueue(db, "flaky", {})
    db.commit()
    queue.claim(db, "w", 10)

    assert queue.mark_failed(db, job.job_id, "timeout") == "failed"

    failed = _job(db, job.job_id)
    assert failed.last_error == "timeout"
    assert failed.run_after > utcnow() + timedelta(seconds=20)
    assert queue.claim(db, "w", 10) == []


def test_job_goes_dead_after_max_attempts_and_can_be_retried(db, queue):
    job = queue.enqueue(db, "broken", {})
    db.commit()
    statuses = []
    for _ in range(3):
        assert queue.claim(db, "w", 10) == [job.job_id]
        statuses.append(queue.mark_failed(db, job.job_id, "boom"))

    assert statuses == ["failed", "failed", "dead"]
    assert queue.claim(db, "w", 10) == []
    assert [j.job_id for j in queue.list_jobs(db, status="dead")] == [job.job_id]

    retried = queue.retry_dead(db, job.job_id)
    assert retried.status == "enqueued"
    assert retried.attempts == 0
    assert queue.retry_dead(db, job.job_id) is None


def test_stale_claims_are_released(db, queue):
    job = queue.enqueue(db, "slow", {})
    db.commit()
    queue.claim(db, "crashed-worker", 10)
    row = _job(db, job.job_id)
    row.locked_at = utcnow() - timedelta(hours=2)
    db.commit()

    assert queue.release_stale(db) == 1

    released = _job(db, job.job_id)
    assert released.status == "failed"
    assert released.locked_by is None
    assert queue.claim(db, "w", 10) == [job.job_id]


def test_reconcile_requeues_lost_mutation_jobs(db, seed, content, queue):
    users, collection = seed["users"], seed["collection"]
    row = content.create_object("snippet", snippet_payload(collection), "published", users["publisher"])
    db.query(BackgroundJob).delete()
    db.commit()

    assert queue.reconcile(db) == 1
    jobs = db.query(BackgroundJob).all()
    assert [(j.name, j.payload) for j in jobs] == [("snippet_mutation", {"object_id": row.id, "action": "create"})]
    assert queue.reconcile(db) == 0


def test_processor_retries_then_buries_a_failing_handler(db, queue):
    def explode(session, payload):
        raise RuntimeError("kaput")

    processor = JobProcessor(TestingSession, queue, {"explode": explode}, worker_id="w")
    job = queue.enqueue(db, "explode", {})
    queue.enqueue(db, "unheard_of", {})
    db.commit()

    first = processor.run_once()
    assert first == {"failed": 2}
    assert _job(db, job.job_id).last_error == "RuntimeError: kaput"

    processor.drain()
    assert _job(db, job.job_id).status == "dead"


def test_mutation_job_enqueues_and_runs_search_reindex(db, seed, content, processor, indexer):
    users, collection = seed["users"], seed["collection"]
    snippet = content.create_object("snippet", snippet_payload(collection), "published", users["publisher"])
    draft = content.create_object("snippet", snippet_payload(collection, name="Draft"), "draft", users["publisher"])

    totals = run_jobs(processor, db)

    assert totals == {"completed": 3}
    assert indexer.calls == [("snippet", snippet.static_id)]
    assert draft.static_id not in [s for _, s in indexer.calls]


def test_playbook_reindex_cascades_to_embedding_playbooks(db, seed, content, processor, indexer):
    users, collection = seed["users"], seed["collection"]
    inner = content.create_object("playbook", playbook_payload(collection, name="Inner"), "published", users["publisher"])
    outer = content.create_object(
        "playbook",
        playbook_payload(collection, [{"type": "playbook-embed", "playbook": inner.static_id}], name="Outer"),
        "published",
        users["publisher"],
    )
    run_jobs(processor, db)
    indexer.calls.clear()

    content.revise_object(inner.static_id, {"description": "changed"}, None, users["publisher"])
    run_jobs(processor, db)

    assert indexer.calls == [("playbook", inner.static_id), ("playbook", outer.static_id)]


def test_queued_email_sender_delivers_through_email_jobs(db, seed, content, queue, indexer, delivery):
    users, collection = seed["users"], seed["collection"]
    handlers = JobHandlers(queue, search_indexer_factory=lambda s: indexer, email_delivery_factory=lambda s: delivery)
    processor = JobProcessor(TestingSession, queue, handlers.as_mapping(), worker_id="w")
    snippet = content.create_object("snippet", snippet_payload(collection), "published", users["publisher"])
    content.revise_object(snippet.static_id, {"name": "Suggested"}, "suggestion", users["editor"])

    run_jobs(processor, db)

    assert sorted(user_id for user_id, _, _ in delivery.delivered) == sorted(
        users[k].user_id for k in ("admin", "publisher", "reviewer")
    )
    assert {kind for _, kind, _ in delivery.delivered} == {"new_suggestion"}


def test_http_collaborators_skip_when_unconfigured(db, seed, monkeypatch):
    def fail(*args, **kwargs):
        raise AssertionError("no HTTP call expected")

    monkeypatch.setattr("snippetbase.services.delivery.httpx.post", fail)
    monkeypatch.setattr("snippetbase.services.delivery.httpx.put", fail)
    assert HttpEmailDelivery(db, api_url="").deliver(seed["users"]["viewer"].user_id, "new_suggestion", {}) is False
    HttpSearchIndexer(db, api_url="").reindex("snippet", "snip_0abcdefghi")


def test_http_search_indexer_puts_latest_document(db, seed, content, monkeypatch):
    users, collection = seed["users"], seed["collection"]
    snippet = content.create_object("snippet", snippet_payload(collection), "published", users["publisher"])
    calls = []

    class Response:
        status_code = 200

        def raise_for_status(self):
            return None

    def fake_put(url, headers=None, json=None, timeout=None):
        calls.append((url, headers, json))
        return Response()

    monkeypatch.setattr("snippetbase.services.delivery.httpx.put", fake_put)
    HttpSearchIndexer(db, api_url="http://search.test/", api_key="k").reindex("snippet", snippet.static_id)

    url, headers, document = calls[0]
    assert url == f"http://search.test/indexes/snippetbase/documents/{snippet.static_id}"
    assert headers["Authorization"] == "Bearer k"
    assert document["revision_id"] == snippet.id
    assert document["name"] == "Refund macro"
