"""Snippet API router: shared content routes plus run tracking."""

from fastapi import Depends, HTTPException

from snippetbase.middleware.auth_middleware import get_current_user
from snippetbase.models.user import User
from snippetbase.routers.content_routes import build_content_router, get_engine
from snippetbase.schemas.content import SnippetCreate, SnippetOut, SnippetUpdate, SubscriptionOut
from snippetbase.services import subscription_service
from snippetbase.services.content_service import ContentEngine
from snippetbase.utils.responses import unwrap

router = build_content_router("snippet", "/api/snippets", SnippetCreate, SnippetUpdate, SnippetOut)


@router.post("/{static_id}/run", response_model=SubscriptionOut)
def record_run(
    static_id: str,
    engine: ContentEngine = Depends(get_engine),
    current_user: User = Depends(get_current_user),
):
    snippet = unwrap(engine.get_object(static_id, current_user), "Snippet not found")
    if snippet.kind != "snippet" or not snippet.is_published:
        raise HTTPException(status_code=404, detail="Snippet not found")
    return subscription_service.record_run(engine.db, current_user.user_id, snippet)
