"""Branch API router: accept or reject draft and suggestion branches."""

from fastapi import APIRouter, Depends

from snippetbase.middleware.auth_middleware import get_current_user
from snippetbase.models.user import User
from snippetbase.routers.content_routes import get_engine
from snippetbase.schemas.content import MergeRequest
from snippetbase.services.content_service import ContentEngine
from snippetbase.utils.responses import serialize_revision, unwrap

router = APIRouter(prefix="/api/branches", tags=["branches"])


@router.post("/{branch_id}/merge")
def merge_branch(
    branch_id: str,
    data: MergeRequest,
    engine: ContentEngine = Depends(get_engine),
    current_user: User = Depends(get_current_user),
):
    overrides = data.model_dump(exclude_unset=True, include={"collection_id", "major_change_description"})
    result = engine.merge_branch(branch_id, data.target_id, data.resolution, current_user, overrides=overrides)
    row = unwrap(result, "Branch not found")
    return {"resolution": data.resolution, "revision": serialize_revision(row)}
