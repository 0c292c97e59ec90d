"""Revision writer: the only code path that inserts content object rows.

Every write is "flip the old tip, insert the new tip, enqueue one mutation
job" inside a single transaction. The flip is a conditional update, so a
writer holding a stale tip affects zero rows and backs off; the partial
unique indexes on the tables catch the remaining races at insert time.
"""

import logging
from typing import Any, Dict, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from snippetbase.models.content_object import (
    ARCHIVE_REJECTED,
    BRANCH_DRAFT,
    BRANCH_PUBLISHED,
    BRANCH_SUGGESTION,
    BRANCH_TYPES,
)
from snippetbase.models.user import User
from snippetbase.services import identity_service
from snippetbase.services.identity_service import ContentModel
from snippetbase.services.job_queue import (
    ACTION_ARCHIVE,
    ACTION_CREATE,
    ACTION_UPDATE,
    JobQueue,
)
from snippetbase.services.results import (
    AlreadyResolved,
    BranchConflict,
    ConcurrentModification,
    InvalidTransition,
)
from snippetbase.utils.helpers import pick, strip_none, utcnow

logger = logging.getLogger(__name__)

USER_SUPPLIED_COMMON_FIELDS = ("collection_id", "major_change_description")


def payload_for(row) -> Dict[str, Any]:
    """Fields that carry over unchanged from one revision to the next."""
    values = {field: getattr(row, field) for field in row.payload_fields}
    values["collection_id"] = row.collection_id
    return values


class RevisionWriter:
    def __init__(self, db: Session, queue: JobQueue):
        self.db = db
        self.queue = queue

    # ------------------------------------------------------------------ #
    # Public operations
    # ------------------------------------------------------------------ #

    def create(self, model: ContentModel, payload: Dict[str, Any], branch_type: str, user: User):
        if branch_type not in BRANCH_TYPES:
            return InvalidTransition(f"Unknown branch type '{branch_type}'.")
        data = self.clean_payload(model, payload)
        row = model(
            **data,
            static_id=identity_service.mint_identifier(model.static_id_prefix),
            branch_type=branch_type,
            is_latest=True,
            is_archived=False,
            created_by_user_id=user.user_id,
        )
        if branch_type != BRANCH_PUBLISHED:
            row.branch_id = identity_service.mint_identifier(model.branch_id_prefix)
            row.suggested_by_user_id = user.user_id
        return self._write(row, tip=None, action=ACTION_CREATE)

    def revise(self, tip, payload: Dict[str, Any], branch_type: Optional[str], user: User):
        """Write a new revision on top of ``tip``.

        ``tip`` is whatever the caller resolved: the latest published row, or
        a branch tip. Returns None when the tip is someone else's branch.
        """
        model = type(tip)
        target_type = branch_type or tip.branch_type
        if target_type not in BRANCH_TYPES:
            return InvalidTransition(f"Unknown branch type '{target_type}'.")

        if tip.is_published:
            if tip.is_archived:
                return InvalidTransition("Archived items must be restored before they can be edited.")
            if target_type == BRANCH_PUBLISHED:
                return self._write(self.successor(tip, payload, user), tip=tip, action=ACTION_UPDATE)
            return self._fork(tip, payload, target_type, user)

        if tip.suggested_by_user_id != user.user_id:
            return None
        if tip.is_archived:
            return AlreadyResolved(branch_id=tip.branch_id, archive_reason=tip.archive_reason)
        if target_type == BRANCH_PUBLISHED:
            return InvalidTransition(
                "This item is on a draft or suggestion branch. Publish it by merging the branch."
            )
        row = self.successor(tip, payload, user)
        row.branch_type = target_type
        return self._write(row, tip=tip, action=ACTION_UPDATE)

    def archive(self, tip, user: User, reason: Optional[str] = None):
        if tip.is_archived:
            if tip.is_published:
                return InvalidTransition("This has already been archived.")
            return AlreadyResolved(branch_id=tip.branch_id, archive_reason=tip.archive_reason)
        row = self.successor(tip, {}, user)
        row.is_archived = True
        row.archived_at = utcnow()
        if reason is None and tip.branch_type == BRANCH_SUGGESTION:
            reason = ARCHIVE_REJECTED
        row.archive_reason = reason
        return self._write(row, tip=tip, action=ACTION_ARCHIVE)

    def restore(self, tip, user: User):
        if not tip.is_archived:
            return InvalidTransition("Only archived items can be restored.")
        if tip.branch_type not in (BRANCH_PUBLISHED, BRANCH_DRAFT):
            return InvalidTransition("Only published or draft items can be restored.")
        if tip.branch_type == BRANCH_DRAFT:
            if tip.suggested_by_user_id != user.user_id:
                return None
            existing = identity_service.resolve_open_branch(self.db, type(tip), tip.static_id, user.user_id)
            if existing is not None:
                return BranchConflict(
                    static_id=existing.static_id,
                    branch_id=existing.branch_id,
                    branch_type=existing.branch_type,
                )
        row = self.successor(tip, {}, user)
        row.is_archived = False
        row.archive_reason = None
        row.archived_at = None
        return self._write(row, tip=tip, action=ACTION_UPDATE)

    # ------------------------------------------------------------------ #
    # Building rows
    # ------------------------------------------------------------------ #

    def clean_payload(self, model: ContentModel, payload: Dict[str, Any]) -> Dict[str, Any]:
        return strip_none(pick(payload or {}, (*model.payload_fields, *USER_SUPPLIED_COMMON_FIELDS)))

    def successor(self, tip, payload: Dict[str, Any], user: User):
        """A new row in ``tip``'s lineage: preserved fields overlaid with the update."""
        model = type(tip)
        data = payload_for(tip)
        data.update(self.clean_payload(model, payload))
        return model(
            **data,
            static_id=tip.static_id,
            branch_id=tip.branch_id,
            branch_type=tip.branch_type,
            branched_from_id=tip.branched_from_id if not tip.is_published else None,
            previous_version_id=tip.id,
            suggested_by_user_id=tip.suggested_by_user_id,
            is_latest=True,
            is_archived=tip.is_archived,
            archive_reason=tip.archive_reason,
            archived_at=tip.archived_at,
            created_by_user_id=user.user_id,
        )

    def _fork(self, published, payload: Dict[str, Any], branch_type: str, user: User):
        model = type(published)
        existing = identity_service.resolve_open_branch(self.db, model, published.static_id, user.user_id)
        if existing is not None:
            logger.info(
                "[revision] user %s already has %s %s for %s",
                user.user_id, existing.branch_type, existing.branch_id, published.static_id,
            )
            return BranchConflict(
                static_id=existing.static_id,
                branch_id=existing.branch_id,
                branch_type=existing.branch_type,
            )
        data = payload_for(published)
        data.update(self.clean_payload(model, payload))
        row = model(
            **data,
            static_id=published.static_id,
            branch_id=identity_service.mint_identifier(model.branch_id_prefix),
            branch_type=branch_type,
            branched_from_id=published.id,
            previous_version_id=None,
            suggested_by_user_id=user.user_id,
            is_latest=True,
            is_archived=False,
            created_by_user_id=user.user_id,
        )
        # The published tip stays latest; a fork supersedes nothing.
        return self._write(row, tip=None, action=ACTION_CREATE)

    # ------------------------------------------------------------------ #
    # Transaction plumbing, shared with the merge resolver
    # ------------------------------------------------------------------ #

    def flip_tip(self, tip) -> bool:
        """Conditionally clear ``is_latest`` on ``tip``. False means someone got there first."""
        model = type(tip)
        updated = (
            self.db.query(model)
            .filter(model.id == tip.id, model.is_latest == True)
            .update({model.is_latest: False}, synchronize_session=False)
        )
        return updated == 1

    def insert(self, row, action: str):
        self.db.add(row)
        self.db.flush()
        self.queue.enqueue_mutation(self.db, row, action)
        return row

    def conflict_after_rollback(self, row):
        """Classify a failed write once the transaction has been rolled back."""
        if not row.is_published and row.suggested_by_user_id is not None:
            existing = identity_service.resolve_open_branch(
                self.db, type(row), row.static_id, row.suggested_by_user_id
            )
            if existing is not None and existing.branch_id != row.branch_id:
                return BranchConflict(
                    static_id=existing.static_id,
                    branch_id=existing.branch_id,
                    branch_type=existing.branch_type,
                )
        return ConcurrentModification(lineage=row.branch_id or row.static_id)

    def _write(self, row, *, tip, action: str):
        try:
            if tip is not None and not self.flip_tip(tip):
                self.db.rollback()
                logger.info("[revision] stale tip %s for %s", tip.id, tip.static_id)
                return ConcurrentModification(lineage=tip.branch_id or tip.static_id)
            self.insert(row, action)
            self.db.commit()
        except IntegrityError:
            self.db.rollback()
            logger.warning("[revision] unique tip constraint rejected write for %s", row.static_id)
            return self.conflict_after_rollback(row)
        self.db.refresh(row)
        logger.info(
            "[revision] %s %s revision %s (%s, branch=%s)",
            action, row.kind, row.id, row.branch_type, row.branch_id,
        )
        return row
