"""Structured, recoverable outcomes returned by the content engine.

Write paths return either the written row or one of these. None of them are
exceptions: callers decide whether an outcome is a user-facing error, a
redirect or a silent no-op.
"""

from dataclasses import dataclass
from typing import Any, Optional


@dataclass
class BranchConflict:
    """The user already has an open branch for this object."""

    static_id: str
    branch_id: str
    branch_type: str
    code: str = "branch_exists"

    @property
    def message(self) -> str:
        return f"You already have a pending {self.branch_type} for this item. Edit the existing one instead."


@dataclass
class ConcurrentModification:
    """Another writer superseded the tip first; retry the whole operation."""

    lineage: str
    code: str = "already_modified"

    @property
    def message(self) -> str:
        return "This item was modified by someone else. Reload and try again."


@dataclass
class MergeConflict:
    """The published tip advanced after the branch was forked."""

    static_id: str
    branch_id: str
    base: Optional[Any]
    current: Optional[Any]
    code: str = "merge_conflict"

    @property
    def message(self) -> str:
        return "The published version changed since this branch was created. Re-apply the changes on the new version."


@dataclass
class AlreadyResolved:
    """The branch was already approved or rejected."""

    branch_id: str
    archive_reason: Optional[str]
    code: str = "already_resolved"

    @property
    def message(self) -> str:
        return "This branch has already been resolved."


@dataclass
class InvalidTransition:
    """A branch type change the writer refuses (e.g. suggestion -> published)."""

    detail: str
    code: str = "invalid_transition"

    @property
    def message(self) -> str:
        return self.detail


@dataclass
class PermissionDenied:
    permission: str
    collection_id: Optional[int] = None
    code: str = "permission_denied"

    @property
    def message(self) -> str:
        return f"Missing '{self.permission}' permission on this collection."


ENGINE_ERRORS = (
    BranchConflict,
    ConcurrentModification,
    MergeConflict,
    AlreadyResolved,
    InvalidTransition,
    PermissionDenied,
)


def is_error(result: Any) -> bool:
    return isinstance(result, ENGINE_ERRORS)
