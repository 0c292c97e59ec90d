"""ContentEngine: the operations routers and admin tooling call.

Resolves identifiers, checks collection permissions and hands off to the
revision writer, merge resolver and containment indexer. Results are the
written row, ``None`` for "not found" or one of ``services.results``.
"""

import logging
from typing import Any, Dict, Iterable, List, Optional

from sqlalchemy.orm import Session

from snippetbase.models.content_object import ARCHIVE_APPROVED, ARCHIVE_REJECTED, BRANCH_PUBLISHED
from snippetbase.models.user import User
from snippetbase.services import identity_service
from snippetbase.services.containment_indexer import ContainmentIndexer
from snippetbase.services.job_queue import JobQueue
from snippetbase.services.merge_resolver import RESOLUTION_ACCEPT, MergeResolver
from snippetbase.services.results import InvalidTransition, PermissionDenied
from snippetbase.services.revision_writer import RevisionWriter
from snippetbase.utils.permissions import (
    Authorizer,
    CollectionAclAuthorizer,
    PERMISSION_PUBLISH,
    PERMISSION_SEE_COLLECTION,
    PERMISSION_SUGGEST,
)

logger = logging.getLogger(__name__)

ARCHIVE_REASONS = (ARCHIVE_APPROVED, ARCHIVE_REJECTED)


class ContentEngine:
    def __init__(self, db: Session, *, queue: Optional[JobQueue] = None, authorizer: Optional[Authorizer] = None):
        self.db = db
        self.queue = queue or JobQueue()
        self.authorizer = authorizer or CollectionAclAuthorizer(db)
        self.writer = RevisionWriter(db, self.queue)
        self.resolver = MergeResolver(db, self.writer, self.authorizer)
        self.containment = ContainmentIndexer(db)

    # ------------------------------------------------------------------ #
    # Permission helpers
    # ------------------------------------------------------------------ #

    def _require(self, user: User, collection_ids: Iterable[Optional[int]], permission: str) -> Optional[PermissionDenied]:
        for collection_id in {c for c in collection_ids if c is not None}:
            if not self.authorizer.has_collection_permission(user, collection_id, permission):
                return PermissionDenied(permission=permission, collection_id=collection_id)
        return None

    def write_permission(self, branch_type: str) -> str:
        return PERMISSION_PUBLISH if branch_type == BRANCH_PUBLISHED else PERMISSION_SUGGEST

    def can_see(self, user: User, row) -> bool:
        if row.is_published:
            return self.authorizer.has_collection_permission(user, row.collection_id, PERMISSION_SEE_COLLECTION)
        # Branches are visible to their author and to whoever can resolve them.
        return row.suggested_by_user_id == user.user_id or self.authorizer.has_collection_permission(
            user, row.collection_id, self.resolver.required_permission(row)
        )

    # ------------------------------------------------------------------ #
    # Reads
    # ------------------------------------------------------------------ #

    def get_object(self, identifier: str, user: User):
        row = identity_service.resolve_by_any_identifier(self.db, identifier)
        if row is None or not self.can_see(user, row):
            return None
        return row

    def get_revision(self, kind: str, revision_id: int, user: User):
        model = identity_service.model_for_kind(kind)
        row = identity_service.get_revision(self.db, model, revision_id) if model else None
        if row is None or not self.can_see(user, row):
            return None
        return row

    def history(self, identifier: str, user: User, limit: int = 200) -> Optional[List]:
        row = self.get_object(identifier, user)
        if row is None:
            return None
        return identity_service.history(self.db, row, limit=limit)

    def open_branches(self, static_id: str, user: User) -> Optional[List]:
        row = self.get_object(static_id, user)
        if row is None or not row.is_published:
            return None
        return [b for b in identity_service.list_open_branches(self.db, type(row), static_id) if self.can_see(user, b)]

    def get_containment(self, static_id: str) -> List[Dict[str, str]]:
        return self.containment.get_containment(static_id)

    def get_containing_playbooks(self, static_id: str, kinds: Optional[Iterable[str]] = None) -> List[str]:
        return self.containment.get_containing_playbooks(static_id, kinds)

    # ------------------------------------------------------------------ #
    # Writes
    # ------------------------------------------------------------------ #

    def create_object(self, kind: str, payload: Dict[str, Any], branch_type: str, user: User):
        model = identity_service.model_for_kind(kind)
        if model is None:
            return InvalidTransition(f"Unknown content kind '{kind}'.")
        collection_id = (payload or {}).get("collection_id")
        if collection_id is None:
            return InvalidTransition("collection_id is required.")
        denied = self._require(user, [collection_id], self.write_permission(branch_type))
        if denied:
            return denied
        return self.writer.create(model, payload, branch_type, user)

    def revise_object(self, identifier: str, payload: Dict[str, Any], branch_type: Optional[str], user: User):
        tip = identity_service.resolve_by_any_identifier(self.db, identifier)
        if tip is None or not self.can_see(user, tip):
            return None
        target_type = branch_type or tip.branch_type
        denied = self._require(
            user,
            [tip.collection_id, (payload or {}).get("collection_id")],
            self.write_permission(target_type),
        )
        if denied:
            return denied
        return self.writer.revise(tip, payload, branch_type, user)

    def merge_branch(
        self,
        branch_id: str,
        target_id: Optional[int],
        resolution: str,
        user: User,
        overrides: Optional[Dict[str, Any]] = None,
    ):
        branch = identity_service.resolve_latest_on_branch(self.db, branch_id)
        if branch is None or not self.can_see(user, branch):
            return None
        target = None
        if target_id is not None:
            target = identity_service.get_revision(self.db, type(branch), target_id)
            if target is None:
                return None
        return self.resolver.merge(
            branch,
            user,
            resolution=resolution or RESOLUTION_ACCEPT,
            target=target,
            overrides=overrides,
        )

    def archive_object(self, identifier: str, user: User, reason: Optional[str] = None):
        tip = identity_service.resolve_by_any_identifier(self.db, identifier)
        if tip is None or not self.can_see(user, tip):
            return None
        if reason is not None and reason not in ARCHIVE_REASONS:
            return InvalidTransition(f"Unknown archive reason '{reason}'.")
        if tip.is_published:
            denied = self._require(user, [tip.collection_id], PERMISSION_PUBLISH)
        elif tip.suggested_by_user_id != user.user_id:
            denied = self._require(user, [tip.collection_id], self.resolver.required_permission(tip))
        else:
            denied = None
        if denied:
            return denied
        return self.writer.archive(tip, user, reason)

    def restore_object(self, identifier: str, user: User):
        tip = identity_service.resolve_by_any_identifier(self.db, identifier)
        if tip is None or not self.can_see(user, tip):
            return None
        if tip.is_published:
            denied = self._require(user, [tip.collection_id], PERMISSION_PUBLISH)
            if denied:
                return denied
        return self.writer.restore(tip, user)
