"""Subscriptions, and the run/view interactions that create them.

Running a snippet or opening a playbook (re)subscribes the user to it.
"""

import logging
from typing import List, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from snippetbase.models.subscription import UserPlaybookView, UserSnippetRun, UserSubscription

logger = logging.getLogger(__name__)


def get_subscription(db: Session, user_id: int, static_id: str) -> Optional[UserSubscription]:
    return db.query(UserSubscription).filter(
        UserSubscription.user_id == user_id,
        UserSubscription.static_id == static_id,
    ).first()


def _upsert(db: Session, user_id: int, static_id: str, subscribed: bool) -> UserSubscription:
    sub = get_subscription(db, user_id, static_id)
    if sub is None:
        sub = UserSubscription(user_id=user_id, static_id=static_id, subscribed=subscribed)
        db.add(sub)
    else:
        sub.subscribed = subscribed
    db.flush()
    return sub


def _commit_upsert(db: Session, user_id: int, static_id: str, subscribed: bool, make_interaction=None) -> UserSubscription:
    try:
        if make_interaction is not None:
            db.add(make_interaction())
        sub = _upsert(db, user_id, static_id, subscribed)
        db.commit()
    except IntegrityError:
        # A concurrent first interaction inserted the same pair; retry once against it.
        db.rollback()
        if make_interaction is not None:
            db.add(make_interaction())
        sub = _upsert(db, user_id, static_id, subscribed)
        db.commit()
    db.refresh(sub)
    return sub


def set_subscription(db: Session, user_id: int, static_id: str, subscribed: bool) -> UserSubscription:
    sub = _commit_upsert(db, user_id, static_id, subscribed)
    logger.info("[subscription] user %s %s %s", user_id, "subscribed to" if subscribed else "unsubscribed from", static_id)
    return sub


def record_run(db: Session, user_id: int, snippet) -> UserSubscription:
    return _commit_upsert(
        db, user_id, snippet.static_id, True,
        make_interaction=lambda: UserSnippetRun(user_id=user_id, static_id=snippet.static_id, revision_id=snippet.id),
    )


def record_view(db: Session, user_id: int, playbook) -> UserSubscription:
    return _commit_upsert(
        db, user_id, playbook.static_id, True,
        make_interaction=lambda: UserPlaybookView(user_id=user_id, static_id=playbook.static_id, revision_id=playbook.id),
    )


def list_subscriptions(db: Session, user_id: int) -> List[UserSubscription]:
    return (
        db.query(UserSubscription)
        .filter(UserSubscription.user_id == user_id, UserSubscription.subscribed == True)
        .order_by(UserSubscription.subscription_id.asc())
        .all()
    )
