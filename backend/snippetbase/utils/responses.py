"""Translate content engine outcomes into HTTP responses."""

from typing import Any, Optional

from fastapi import HTTPException, status

from snippetbase.schemas.content import PlaybookOut, SnippetOut
from snippetbase.services.results import (
    AlreadyResolved,
    BranchConflict,
    ConcurrentModification,
    InvalidTransition,
    MergeConflict,
    PermissionDenied,
    is_error,
)

_SCHEMAS = {"snippet": SnippetOut, "playbook": PlaybookOut}


def serialize_revision(row) -> Optional[dict]:
    if row is None:
        return None
    return _SCHEMAS[row.kind].model_validate(row).model_dump(mode="json")


def error_detail(result) -> dict:
    detail = {"code": result.code, "message": result.message}
    if isinstance(result, BranchConflict):
        detail.update(static_id=result.static_id, branch_id=result.branch_id, branch_type=result.branch_type)
    elif isinstance(result, MergeConflict):
        detail.update(
            static_id=result.static_id,
            branch_id=result.branch_id,
            base=serialize_revision(result.base),
            current=serialize_revision(result.current),
        )
    elif isinstance(result, AlreadyResolved):
        detail.update(branch_id=result.branch_id, archive_reason=result.archive_reason)
    elif isinstance(result, PermissionDenied):
        detail.update(permission=result.permission, collection_id=result.collection_id)
    return detail


def status_for(result) -> int:
    if isinstance(result, PermissionDenied):
        return status.HTTP_403_FORBIDDEN
    if isinstance(result, InvalidTransition):
        return status.HTTP_400_BAD_REQUEST
    if isinstance(result, (BranchConflict, ConcurrentModification, MergeConflict, AlreadyResolved)):
        return status.HTTP_409_CONFLICT
    return status.HTTP_500_INTERNAL_SERVER_ERROR


def unwrap(result: Any, not_found: str = "Not found"):
    """Return ``result`` if it is a row, otherwise raise the matching HTTPException."""
    if result is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=not_found)
    if is_error(result):
        raise HTTPException(status_code=status_for(result), detail=error_detail(result))
    return result
