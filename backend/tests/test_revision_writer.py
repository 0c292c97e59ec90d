import pytest
from sqlalchemy.exc import IntegrityError

from snippetbase.models.content_object import Snippet
from snippetbase.models.job import BackgroundJob
from snippetbase.services import identity_service
from snippetbase.services.job_queue import SNIPPET_MUTATION
from snippetbase.services.results import (
    AlreadyResolved,
    BranchConflict,
    ConcurrentModification,
    InvalidTransition,
    PermissionDenied,
)
from tests.conftest import snippet_payload


def _latest_published(db, static_id):
    return db.query(Snippet).filter(
        Snippet.static_id == static_id,
        Snippet.branch_type == "published",
        Snippet.is_latest == True,
    ).all()


def _mutation_jobs(db):
    return db.query(BackgroundJob).filter(BackgroundJob.name == SNIPPET_MUTATION).order_by(BackgroundJob.job_id).all()


def test_create_published_mints_static_id_without_branch(db, seed, content):
    users, collection = seed["users"], seed["collection"]
    row = content.create_object("snippet", snippet_payload(collection), "published", users["publisher"])

    assert row.static_id.startswith("snip_0")
    assert row.branch_id is None
    assert row.is_latest is True
    assert row.previous_version_id is None
    jobs = _mutation_jobs(db)
    assert [(j.payload["object_id"], j.payload["action"]) for j in jobs] == [(row.id, "create")]


def test_revise_keeps_exactly_one_latest_published(db, seed, content):
    users, collection = seed["users"], seed["collection"]
    row = content.create_object("snippet", snippet_payload(collection), "published", users["publisher"])
    for i in range(3):
        content.revise_object(row.static_id, {"description": f"edit {i}"}, None, users["publisher"])

    latest = _latest_published(db, row.static_id)
    assert len(latest) == 1
    assert latest[0].description == "edit 2"
    assert db.query(Snippet).filter(Snippet.static_id == row.static_id).count() == 4
    assert len(_mutation_jobs(db)) == 4


def test_revise_round_trip_preserves_unchanged_fields(db, seed, content):
    users, collection = seed["users"], seed["collection"]
    row = content.create_object("snippet", snippet_payload(collection), "published", users["publisher"])
    new_config = {"template": "Refund issued."}

    revised = content.revise_object(row.static_id, {"configuration": new_config}, None, users["publisher"])

    assert revised.configuration == new_config
    assert revised.name == "Refund macro"
    assert revised.keywords == ["refund"]
    assert revised.previous_version_id == row.id
    assert content.get_object(row.static_id, users["viewer"]).id == revised.id


def test_fork_to_suggestion_leaves_published_tip_alone(db, seed, content):
    users, collection = seed["users"], seed["collection"]
    published = content.create_object("snippet", snippet_payload(collection), "published", users["publisher"])

    suggestion = content.revise_object(published.static_id, {"name": "Better refund macro"}, "suggestion", users["editor"])

    assert suggestion.branch_id.startswith("sbrch_0")
    assert suggestion.branched_from_id == published.id
    assert suggestion.previous_version_id is None
    assert suggestion.suggested_by_user_id == users["editor"].user_id
    db.refresh(published)
    assert published.is_latest is True


def test_second_open_branch_returns_existing_branch(db, seed, content):
    users, collection = seed["users"], seed["collection"]
    published = content.create_object("snippet", snippet_payload(collection), "published", users["publisher"])
    first = content.revise_object(published.static_id, {"name": "A"}, "suggestion", users["editor"])
    jobs_before = len(_mutation_jobs(db))

    second = content.revise_object(published.static_id, {"name": "B"}, "suggestion", users["editor"])

    assert isinstance(second, BranchConflict)
    assert second.branch_id == first.branch_id
    assert len(_mutation_jobs(db)) == jobs_before


def test_edits_on_a_branch_keep_the_branch_id(db, seed, content):
    users, collection = seed["users"], seed["collection"]
    published = content.create_object("snippet", snippet_payload(collection), "published", users["publisher"])
    draft = content.revise_object(published.static_id, {"name": "Draft 1"}, "suggestion", users["editor"])

    again = content.revise_object(draft.branch_id, {"name": "Draft 2"}, None, users["editor"])

    assert again.branch_id == draft.branch_id
    assert again.previous_version_id == draft.id
    assert again.branched_from_id == published.id
    tips = db.query(Snippet).filter(Snippet.branch_id == draft.branch_id, Snippet.is_latest == True).all()
    assert [t.id for t in tips] == [again.id]


def test_branch_cannot_be_revised_straight_to_published(db, seed, content):
    users, collection = seed["users"], seed["collection"]
    draft = content.create_object("snippet", snippet_payload(collection), "draft", users["publisher"])

    result = content.revise_object(draft.branch_id, {"name": "Now live"}, "published", users["publisher"])

    assert isinstance(result, InvalidTransition)


def test_someone_elses_branch_is_not_found(db, seed, content):
    users, collection = seed["users"], seed["collection"]
    published = content.create_object("snippet", snippet_payload(collection), "published", users["publisher"])
    suggestion = content.revise_object(published.static_id, {"name": "Mine"}, "suggestion", users["editor"])

    assert content.revise_object(suggestion.branch_id, {"name": "Hijack"}, None, users["reviewer"]) is None


def test_stale_tip_loses_with_concurrent_modification(db, seed, content):
    users, collection = seed["users"], seed["collection"]
    row = content.create_object("snippet", snippet_payload(collection), "published", users["publisher"])
    stale = content.get_object(row.static_id, users["publisher"])
    content.writer.revise(stale, {"description": "winner"}, None, users["publisher"])
    jobs_before = len(_mutation_jobs(db))

    result = content.writer.revise(stale, {"description": "loser"}, None, users["publisher"])

    assert isinstance(result, ConcurrentModification)
    latest = _latest_published(db, row.static_id)
    assert [r.description for r in latest] == ["winner"]
    assert len(_mutation_jobs(db)) == jobs_before


def test_unique_index_rejects_second_published_tip(db, seed):
    users, collection = seed["users"], seed["collection"]
    common = dict(
        static_id="snip_0duplicate",
        branch_type="published",
        is_latest=True,
        is_archived=False,
        collection_id=collection.collection_id,
        created_by_user_id=users["publisher"].user_id,
        name="Dup",
        description="",
        keywords=[],
        configuration={},
    )
    db.add(Snippet(**common))
    db.commit()
    db.add(Snippet(**common))
    with pytest.raises(IntegrityError):
        db.commit()
    db.rollback()


def test_viewer_cannot_publish(db, seed, content):
    users, collection = seed["users"], seed["collection"]
    result = content.create_object("snippet", snippet_payload(collection), "published", users["viewer"])
    assert isinstance(result, PermissionDenied)
    assert result.permission == "publish"


def test_archive_writes_new_archived_tip(db, seed, content):
    users, collection = seed["users"], seed["collection"]
    row = content.create_object("snippet", snippet_payload(collection), "published", users["publisher"])

    archived = content.archive_object(row.static_id, users["publisher"])

    assert archived.id != row.id
    assert archived.is_archived is True
    assert archived.previous_version_id == row.id
    assert [j.payload["action"] for j in _mutation_jobs(db)] == ["create", "archive"]
    assert isinstance(content.archive_object(row.static_id, users["publisher"]), InvalidTransition)
    assert isinstance(content.revise_object(row.static_id, {"name": "x"}, None, users["publisher"]), InvalidTransition)


def test_restore_brings_back_an_archived_object(db, seed, content):
    users, collection = seed["users"], seed["collection"]
    row = content.create_object("snippet", snippet_payload(collection), "published", users["publisher"])
    content.archive_object(row.static_id, users["publisher"])

    restored = content.restore_object(row.static_id, users["publisher"])

    assert restored.is_archived is False
    assert restored.archive_reason is None
    assert restored.name == row.name
    assert len(_latest_published(db, row.static_id)) == 1
    assert isinstance(content.restore_object(row.static_id, users["publisher"]), InvalidTransition)


def test_archiving_a_suggestion_defaults_to_rejected(db, seed, content):
    users, collection = seed["users"], seed["collection"]
    published = content.create_object("snippet", snippet_payload(collection), "published", users["publisher"])
    suggestion = content.revise_object(published.static_id, {"name": "Idea"}, "suggestion", users["editor"])

    archived = content.archive_object(suggestion.branch_id, users["editor"])

    assert archived.archive_reason == "rejected"
    assert isinstance(content.archive_object(suggestion.branch_id, users["editor"]), AlreadyResolved)
    # The slot is free again for a fresh suggestion.
    again = content.revise_object(published.static_id, {"name": "Second idea"}, "suggestion", users["editor"])
    assert again.branch_id != suggestion.branch_id


def test_racing_second_branch_is_caught_by_unique_index(db, seed, content, monkeypatch):
    users, collection = seed["users"], seed["collection"]
    row = content.create_object("snippet", snippet_payload(collection), "published", users["publisher"])
    first = content.revise_object(row.static_id, {"name": "First idea"}, "suggestion", users["editor"])
    jobs_before = len(_mutation_jobs(db))

    real_lookup = identity_service.resolve_open_branch
    calls = []

    def miss_once(*args, **kwargs):
        calls.append(args)
        if len(calls) == 1:
            return None
        return real_lookup(*args, **kwargs)

    monkeypatch.setattr(identity_service, "resolve_open_branch", miss_once)
    tip = content.get_object(row.static_id, users["editor"])
    result = content.writer.revise(tip, {"name": "Second idea"}, "suggestion", users["editor"])

    assert isinstance(result, BranchConflict)
    assert result.branch_id == first.branch_id
    assert len(calls) == 2
    open_rows = db.query(Snippet).filter(
        Snippet.static_id == row.static_id,
        Snippet.branch_type != "published",
        Snippet.is_latest == True,
    ).all()
    assert [r.branch_id for r in open_rows] == [first.branch_id]
    assert len(_mutation_jobs(db)) == jobs_before
