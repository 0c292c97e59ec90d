"""Playbook API router: shared content routes plus containment and view tracking."""

from typing import List

from fastapi import Depends, HTTPException

from snippetbase.middleware.auth_middleware import get_current_user
from snippetbase.models.user import User
from snippetbase.routers.content_routes import build_content_router, get_engine
from snippetbase.schemas.content import (
    ContainedObjectOut,
    PlaybookCreate,
    PlaybookOut,
    PlaybookUpdate,
    SubscriptionOut,
)
from snippetbase.services import subscription_service
from snippetbase.services.content_service import ContentEngine
from snippetbase.utils.responses import unwrap

router = build_content_router("playbook", "/api/playbooks", PlaybookCreate, PlaybookUpdate, PlaybookOut)


def _published_playbook(engine: ContentEngine, static_id: str, user: User):
    playbook = unwrap(engine.get_object(static_id, user), "Playbook not found")
    if playbook.kind != "playbook" or not playbook.is_published:
        raise HTTPException(status_code=404, detail="Playbook not found")
    return playbook


@router.get("/{static_id}/containment", response_model=List[ContainedObjectOut])
def get_containment(
    static_id: str,
    engine: ContentEngine = Depends(get_engine),
    current_user: User = Depends(get_current_user),
):
    playbook = _published_playbook(engine, static_id, current_user)
    return engine.get_containment(playbook.static_id)


@router.post("/{static_id}/view", response_model=SubscriptionOut)
def record_view(
    static_id: str,
    engine: ContentEngine = Depends(get_engine),
    current_user: User = Depends(get_current_user),
):
    playbook = _published_playbook(engine, static_id, current_user)
    return subscription_service.record_view(engine.db, current_user.user_id, playbook)
