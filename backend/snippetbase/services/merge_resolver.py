"""Merge resolver: accepts or rejects a draft/suggestion branch.

No field-level reconciliation happens here. If the published tip moved after
the branch was forked, the caller gets a ``MergeConflict`` with both versions
and re-presents the branch against the new base; merging again with the new
tip as an explicit target then succeeds.
"""

import logging
from typing import Any, Dict, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from snippetbase.models.content_object import (
    ARCHIVE_APPROVED,
    ARCHIVE_REJECTED,
    BRANCH_PUBLISHED,
    BRANCH_SUGGESTION,
)
from snippetbase.models.user import User
from snippetbase.services import identity_service
from snippetbase.services.job_queue import ACTION_ARCHIVE, ACTION_CREATE, ACTION_UPDATE
from snippetbase.services.results import (
    AlreadyResolved,
    ConcurrentModification,
    InvalidTransition,
    MergeConflict,
    PermissionDenied,
)
from snippetbase.services.revision_writer import RevisionWriter, payload_for
from snippetbase.utils.helpers import utcnow
from snippetbase.utils.permissions import Authorizer, PERMISSION_PUBLISH, PERMISSION_REVIEW_SUGGESTIONS

logger = logging.getLogger(__name__)

RESOLUTION_ACCEPT = "accept"
RESOLUTION_REJECT = "reject"


class MergeResolver:
    def __init__(self, db: Session, writer: RevisionWriter, authorizer: Authorizer):
        self.db = db
        self.writer = writer
        self.authorizer = authorizer

    def required_permission(self, branch) -> str:
        return PERMISSION_REVIEW_SUGGESTIONS if branch.branch_type == BRANCH_SUGGESTION else PERMISSION_PUBLISH

    def detect_conflict(self, branch, target=None) -> Optional[MergeConflict]:
        current = identity_service.resolve_latest_published(self.db, branch.static_id, type(branch))
        base = (
            identity_service.get_revision(self.db, type(branch), branch.branched_from_id)
            if branch.branched_from_id
            else None
        )
        if target is not None:
            stale = current is None or target.id != current.id
        else:
            stale = (current.id if current else None) != branch.branched_from_id
        if not stale:
            return None
        return MergeConflict(
            static_id=branch.static_id,
            branch_id=branch.branch_id,
            base=base,
            current=current,
        )

    def merge(
        self,
        branch,
        user: User,
        *,
        resolution: str = RESOLUTION_ACCEPT,
        target=None,
        overrides: Optional[Dict[str, Any]] = None,
    ):
        if branch.is_published:
            return InvalidTransition("Only draft or suggestion branches can be merged.")
        if branch.is_archived:
            return AlreadyResolved(branch_id=branch.branch_id, archive_reason=branch.archive_reason)

        permission = self.required_permission(branch)
        if resolution == RESOLUTION_REJECT:
            if branch.suggested_by_user_id != user.user_id and not self.authorizer.has_collection_permission(
                user, branch.collection_id, permission
            ):
                return PermissionDenied(permission=permission, collection_id=branch.collection_id)
            return self._reject(branch, user)
        if resolution != RESOLUTION_ACCEPT:
            return InvalidTransition(f"Unknown resolution '{resolution}'.")

        if target is not None:
            if target.static_id != branch.static_id:
                return InvalidTransition("Can only merge items with the same static id.")
            if target.branch_type != BRANCH_PUBLISHED:
                return InvalidTransition("Can only merge into published items.")

        collection_id = (overrides or {}).get("collection_id") or branch.collection_id
        for checked in {branch.collection_id, collection_id, target.collection_id if target else None} - {None}:
            if not self.authorizer.has_collection_permission(user, checked, permission):
                return PermissionDenied(permission=permission, collection_id=checked)

        conflict = self.detect_conflict(branch, target)
        if conflict is not None:
            logger.info(
                "[merge] %s conflicts: forked from %s, published tip is %s",
                branch.branch_id, branch.branched_from_id, conflict.current.id if conflict.current else None,
            )
            return conflict

        onto = target or (
            identity_service.resolve_latest_published(self.db, branch.static_id, type(branch))
            if branch.branched_from_id
            else None
        )
        return self._accept(branch, onto, user, overrides or {})

    def _accept(self, branch, onto, user: User, overrides: Dict[str, Any]):
        model = type(branch)
        data = payload_for(branch)
        data.update(self.writer.clean_payload(model, overrides))
        # Merges keep the branch's change description unless the reviewer replaced it.
        data["major_change_description"] = (
            overrides["major_change_description"]
            if "major_change_description" in overrides
            else branch.major_change_description
        )

        published = model(
            **data,
            static_id=branch.static_id,
            branch_id=None,
            branch_type=BRANCH_PUBLISHED,
            branched_from_id=onto.id if onto else None,
            previous_version_id=onto.id if onto else None,
            suggested_by_user_id=branch.suggested_by_user_id,
            is_latest=True,
            is_archived=False,
            created_by_user_id=user.user_id,
        )
        archived = self.writer.successor(branch, {}, user)
        archived.is_archived = True
        archived.archive_reason = ARCHIVE_APPROVED
        archived.archived_at = utcnow()

        try:
            if onto is not None and not self.writer.flip_tip(onto):
                self.db.rollback()
                return ConcurrentModification(lineage=branch.static_id)
            if not self.writer.flip_tip(branch):
                self.db.rollback()
                return self._stale_branch(branch)
            self.writer.insert(published, ACTION_UPDATE if onto else ACTION_CREATE)
            archived.merged_to_id = published.id
            self.writer.insert(archived, ACTION_ARCHIVE)
            published.merged_from_id = archived.id
            self.db.commit()
        except IntegrityError:
            self.db.rollback()
            logger.warning("[merge] unique tip constraint rejected merge of %s", branch.branch_id)
            return ConcurrentModification(lineage=branch.static_id)

        self.db.refresh(published)
        logger.info(
            "[merge] accepted %s into %s as revision %s", branch.branch_id, branch.static_id, published.id
        )
        return published

    def _reject(self, branch, user: User):
        archived = self.writer.successor(branch, {}, user)
        archived.is_archived = True
        archived.archive_reason = ARCHIVE_REJECTED
        archived.archived_at = utcnow()
        try:
            if not self.writer.flip_tip(branch):
                self.db.rollback()
                return self._stale_branch(branch)
            self.writer.insert(archived, ACTION_ARCHIVE)
            self.db.commit()
        except IntegrityError:
            self.db.rollback()
            return ConcurrentModification(lineage=branch.branch_id)
        self.db.refresh(archived)
        logger.info("[merge] rejected %s", branch.branch_id)
        return archived

    def _stale_branch(self, branch):
        current = identity_service.resolve_latest_on_branch(self.db, branch.branch_id, type(branch))
        if current is not None and current.is_archived:
            return AlreadyResolved(branch_id=current.branch_id, archive_reason=current.archive_reason)
        return ConcurrentModification(lineage=branch.branch_id)
