from types import SimpleNamespace

from snippetbase.config import settings
from snippetbase.models.notification import Notification, UserNotification
from snippetbase.models.subscription import UserSnippetRun, UserSubscription
from snippetbase.services import notification_service, subscription_service
from snippetbase.services.notification_service import classify
from tests.conftest import playbook_payload, run_jobs, snippet_payload


def _rev(**kw):
    defaults = dict(branch_type="published", is_archived=False, major_change_description=None)
    defaults.update(kw)
    return SimpleNamespace(**defaults)


def test_classification_order():
    published = _rev()
    assert classify(_rev(), None) == "created"
    assert classify(_rev(), _rev(branch_type="suggestion")) == "created"
    assert classify(_rev(is_archived=True), published) == "archived"
    assert classify(_rev(major_change_description={"text": "x"}), published) == "major_change"
    assert classify(_rev(), published) is None
    assert classify(_rev(branch_type="draft"), None) is None
    # Re-archiving an archived tip is not a new event.
    assert classify(_rev(is_archived=True), _rev(is_archived=True)) is None


def _subscribers(db, noti):
    return sorted(u.user_id for u in db.query(UserNotification).filter(UserNotification.notification_id == noti.noti_id))


def test_major_change_notifies_subscribers_once(db, seed, content, processor):
    users, collection = seed["users"], seed["collection"]
    snippet = content.create_object("snippet", snippet_payload(collection), "published", users["publisher"])
    run_jobs(processor, db)
    created = db.query(Notification).filter(Notification.noti_type == "tool_created").one()
    assert created.revision_id == snippet.id
    assert _subscribers(db, created) == []

    subscription_service.record_run(db, users["viewer"].user_id, snippet)
    subscription_service.set_subscription(db, users["editor"].user_id, snippet.static_id, True)

    major = content.revise_object(
        snippet.static_id, {"description": "Now with tracking link", "major_change_description": {"text": "Adds link"}},
        None, users["publisher"],
    )
    content.revise_object(snippet.static_id, {"description": "typo fix"}, None, users["publisher"])
    run_jobs(processor, db)

    notis = db.query(Notification).filter(Notification.noti_type == "tool_major_change").all()
    assert len(notis) == 1
    assert notis[0].revision_id == major.id
    assert notis[0].data["related_tool_id"] == major.id
    assert _subscribers(db, notis[0]) == sorted([users["viewer"].user_id, users["editor"].user_id])

    # Replaying the job does not duplicate anything.
    processor.handlers["snippet_mutation"](db, {"object_id": major.id, "action": "update"})
    assert db.query(Notification).filter(Notification.revision_id == major.id).count() == 1
    assert db.query(UserNotification).filter(UserNotification.notification_id == notis[0].noti_id).count() == 2


def test_archive_and_playbook_notification_types(db, seed, content, processor):
    users, collection = seed["users"], seed["collection"]
    playbook = content.create_object("playbook", playbook_payload(collection), "published", users["publisher"])
    subscription_service.record_view(db, users["viewer"].user_id, playbook)
    content.archive_object(playbook.static_id, users["publisher"])
    run_jobs(processor, db)

    types = sorted(n.noti_type for n in db.query(Notification).all())
    assert types == ["workflow_archived", "workflow_created"]


def test_new_suggestion_emails_reviewers_except_suggester(db, seed, content, processor, emails):
    users, collection = seed["users"], seed["collection"]
    snippet = content.create_object("snippet", snippet_payload(collection), "published", users["publisher"])
    run_jobs(processor, db)
    assert emails.sent == []

    suggestion = content.revise_object(snippet.static_id, {"name": "Kinder refund macro"}, "suggestion", users["editor"])
    run_jobs(processor, db)

    recipients = sorted(user_id for user_id, _, _ in emails.sent)
    assert recipients == sorted(users[k].user_id for k in ("admin", "publisher", "reviewer"))
    _, template_kind, data = emails.sent[0]
    assert template_kind == "new_suggestion"
    assert data == {
        "suggestion_name": "Kinder refund macro",
        "suggestion_link": f"{settings.APP_HOST}/dashboard/suggestions/{suggestion.branch_id}",
        "suggested_by": "Eddie",
        "item_type": "snippet",
        "is_new_item": False,
    }

    # Further edits on the same suggestion do not email again.
    content.revise_object(suggestion.branch_id, {"description": "tweak"}, None, users["editor"])
    run_jobs(processor, db)
    assert len(emails.sent) == 3


def test_suggestion_resolved_before_processing_sends_nothing(db, seed, content, processor, emails):
    users, collection = seed["users"], seed["collection"]
    snippet = content.create_object("snippet", snippet_payload(collection), "published", users["publisher"])
    suggestion = content.revise_object(snippet.static_id, {"name": "Idea"}, "suggestion", users["editor"])
    content.merge_branch(suggestion.branch_id, None, "reject", users["reviewer"])

    run_jobs(processor, db)

    assert emails.sent == []


def test_draft_promoted_to_suggestion_emails_reviewers(db, seed, content, processor, emails):
    users, collection = seed["users"], seed["collection"]
    snippet = content.create_object("snippet", snippet_payload(collection), "published", users["publisher"])
    draft = content.revise_object(snippet.static_id, {"name": "WIP"}, "draft", users["editor"])
    run_jobs(processor, db)
    assert emails.sent == []

    content.revise_object(draft.branch_id, {}, "suggestion", users["editor"])
    run_jobs(processor, db)

    assert len(emails.sent) == 3
    assert all(data["suggestion_name"] == "WIP" for _, _, data in emails.sent)


def test_user_inbox_view_and_dismiss(db, seed, content, processor):
    users, collection = seed["users"], seed["collection"]
    snippet = content.create_object("snippet", snippet_payload(collection), "published", users["publisher"])
    run_jobs(processor, db)
    subscription_service.set_subscription(db, users["viewer"].user_id, snippet.static_id, True)
    content.archive_object(snippet.static_id, users["publisher"])
    run_jobs(processor, db)
    viewer_id = users["viewer"].user_id

    inbox = notification_service.get_user_notifications(db, viewer_id)
    assert [n.notification.noti_type for n in inbox] == ["tool_archived"]
    assert notification_service.mark_viewed(db, inbox[0].user_noti_id, viewer_id).viewed_at is not None
    assert notification_service.get_user_notifications(db, viewer_id, unviewed_only=True) == []
    assert notification_service.mark_viewed(db, inbox[0].user_noti_id, users["editor"].user_id) is None

    notification_service.dismiss(db, inbox[0].user_noti_id, viewer_id)
    assert notification_service.get_user_notifications(db, viewer_id) == []
    assert len(notification_service.get_user_notifications(db, viewer_id, include_dismissed=True)) == 1


def test_runs_resubscribe_and_upsert_one_row(db, seed, content):
    users, collection = seed["users"], seed["collection"]
    snippet = content.create_object("snippet", snippet_payload(collection), "published", users["publisher"])
    viewer_id = users["viewer"].user_id

    subscription_service.record_run(db, viewer_id, snippet)
    subscription_service.set_subscription(db, viewer_id, snippet.static_id, False)
    sub = subscription_service.record_run(db, viewer_id, snippet)

    assert sub.subscribed is True
    assert db.query(UserSubscription).filter(UserSubscription.user_id == viewer_id).count() == 1
    assert db.query(UserSnippetRun).filter(UserSnippetRun.user_id == viewer_id).count() == 2
