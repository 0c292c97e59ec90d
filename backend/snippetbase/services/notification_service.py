"""Notification fan-out for content mutations, plus the per-user notification inbox."""

import logging
from typing import List, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from snippetbase.config import settings
from snippetbase.models.collection import Collection
from snippetbase.models.content_object import BRANCH_PUBLISHED, BRANCH_SUGGESTION
from snippetbase.models.notification import Notification, UserNotification
from snippetbase.models.subscription import UserSubscription
from snippetbase.models.user import User
from snippetbase.services import identity_service
from snippetbase.services.delivery import EmailSender
from snippetbase.utils.helpers import utcnow
from snippetbase.utils.permissions import Authorizer, PERMISSION_REVIEW_SUGGESTIONS

logger = logging.getLogger(__name__)

CLASS_ARCHIVED = "archived"
CLASS_CREATED = "created"
CLASS_MAJOR_CHANGE = "major_change"

NEW_SUGGESTION_TEMPLATE = "new_suggestion"


def classify(rev, previous) -> Optional[str]:
    """Notification class for a published revision given its predecessor, or None."""
    if rev.branch_type != BRANCH_PUBLISHED:
        return None
    if rev.is_archived and previous is not None and not previous.is_archived:
        return CLASS_ARCHIVED
    if previous is None or previous.branch_type != BRANCH_PUBLISHED:
        return CLASS_CREATED
    if rev.major_change_description:
        return CLASS_MAJOR_CHANGE
    return None


def is_suggestion_revision(rev, previous, collection: Optional[Collection]) -> bool:
    return bool(
        rev.branch_id
        and rev.branch_type == BRANCH_SUGGESTION
        and (previous is None or previous.branch_type != BRANCH_SUGGESTION)
        and collection is not None
        and collection.organization_id
    )


class NotificationFanout:
    def __init__(self, db: Session, authorizer: Authorizer, email_sender: EmailSender):
        self.db = db
        self.authorizer = authorizer
        self.email_sender = email_sender

    def _previous(self, rev):
        if rev.previous_version_id is None:
            return None
        return identity_service.get_revision(self.db, type(rev), rev.previous_version_id)

    def _existing(self, rev, noti_type: str) -> Optional[Notification]:
        return (
            self.db.query(Notification)
            .filter(
                Notification.static_id == rev.static_id,
                Notification.revision_id == rev.id,
                Notification.noti_type == noti_type,
            )
            .first()
        )

    def notify_subscribers(self, rev) -> Optional[Notification]:
        """Create the notification for ``rev`` once; re-runs return the stored one."""
        noti_class = classify(rev, self._previous(rev))
        if noti_class is None:
            return None
        noti_type = f"{rev.notification_prefix}_{noti_class}"

        existing = self._existing(rev, noti_type)
        if existing is not None:
            logger.info("[notify] %s for revision %s already sent", noti_type, rev.id)
            return existing

        subscriber_ids = [
            user_id
            for (user_id,) in self.db.query(UserSubscription.user_id)
            .filter(UserSubscription.static_id == rev.static_id, UserSubscription.subscribed == True)
            .all()
        ]
        notification = Notification(
            noti_type=noti_type,
            static_id=rev.static_id,
            revision_id=rev.id,
            data={f"related_{rev.notification_prefix}_id": rev.id, "name": rev.name},
        )
        notification.user_notifications = [UserNotification(user_id=uid) for uid in subscriber_ids]
        self.db.add(notification)
        try:
            self.db.commit()
        except IntegrityError:
            # Another worker ran the same job concurrently.
            self.db.rollback()
            return self._existing(rev, noti_type)
        self.db.refresh(notification)
        logger.info("[notify] %s for %s sent to %s subscriber(s)", noti_type, rev.static_id, len(subscriber_ids))
        return notification

    def branch_still_open(self, rev) -> bool:
        latest = (
            self.db.query(type(rev))
            .filter(
                type(rev).static_id == rev.static_id,
                type(rev).branch_id == rev.branch_id,
                type(rev).is_latest == True,
            )
            .first()
        )
        if latest is None:
            logger.warning("[notify] %s/%s has no latest revision", rev.static_id, rev.branch_id)
            return False
        return not latest.is_archived

    def suggestion_reviewers(self, rev, collection: Collection) -> List[User]:
        candidates = (
            self.db.query(User)
            .filter(
                User.organization_id == collection.organization_id,
                User.wants_suggestion_emails == True,
                User.is_active == True,
            )
            .order_by(User.user_id.asc())
            .all()
        )
        return [
            user
            for user in candidates
            if user.user_id != rev.suggested_by_user_id
            and self.authorizer.has_collection_permission(user, collection.collection_id, PERMISSION_REVIEW_SUGGESTIONS)
        ]

    def send_suggestion_emails(self, rev) -> int:
        previous = self._previous(rev)
        collection = self.db.query(Collection).filter(Collection.collection_id == rev.collection_id).first()
        if not is_suggestion_revision(rev, previous, collection):
            return 0
        # Processed after the suggestion was already resolved.
        if not self.branch_still_open(rev):
            logger.info("[notify] %s was resolved before its email went out", rev.branch_id)
            return 0

        reviewers = self.suggestion_reviewers(rev, collection)
        if not reviewers:
            return 0
        suggester = (
            self.db.query(User).filter(User.user_id == rev.suggested_by_user_id).first()
            if rev.suggested_by_user_id
            else None
        )
        template_data = {
            "suggestion_name": (previous.name if previous is not None else None) or rev.name,
            "suggestion_link": f"{settings.APP_HOST}/dashboard/suggestions/{rev.branch_id}",
            "suggested_by": suggester.given_name if suggester else None,
            "item_type": rev.kind,
            "is_new_item": rev.branched_from_id is None,
        }
        for user in reviewers:
            self.email_sender.send(user.user_id, NEW_SUGGESTION_TEMPLATE, template_data)
        self.db.commit()
        logger.info("[notify] suggestion %s emailed to %s reviewer(s)", rev.branch_id, len(reviewers))
        return len(reviewers)


def get_user_notifications(
    db: Session, user_id: int, include_dismissed: bool = False, unviewed_only: bool = False, limit: int = 50
) -> List[UserNotification]:
    q = db.query(UserNotification).filter(UserNotification.user_id == user_id)
    if not include_dismissed:
        q = q.filter(UserNotification.dismissed_at.is_(None))
    if unviewed_only:
        q = q.filter(UserNotification.viewed_at.is_(None))
    return q.order_by(UserNotification.user_noti_id.desc()).limit(limit).all()


def _get_own(db: Session, user_noti_id: int, user_id: int) -> Optional[UserNotification]:
    return db.query(UserNotification).filter(
        UserNotification.user_noti_id == user_noti_id,
        UserNotification.user_id == user_id,
    ).first()


def mark_viewed(db: Session, user_noti_id: int, user_id: int) -> Optional[UserNotification]:
    noti = _get_own(db, user_noti_id, user_id)
    if noti and noti.viewed_at is None:
        noti.viewed_at = utcnow()
        db.commit()
        db.refresh(noti)
    return noti


def dismiss(db: Session, user_noti_id: int, user_id: int) -> Optional[UserNotification]:
    noti = _get_own(db, user_noti_id, user_id)
    if noti and noti.dismissed_at is None:
        noti.dismissed_at = utcnow()
        db.commit()
        db.refresh(noti)
    return noti


def mark_all_viewed(db: Session, user_id: int) -> int:
    updated = db.query(UserNotification).filter(
        UserNotification.user_id == user_id,
        UserNotification.viewed_at.is_(None),
    ).update({"viewed_at": utcnow()}, synchronize_session=False)
    db.commit()
    return updated
