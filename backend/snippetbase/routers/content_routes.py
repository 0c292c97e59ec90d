"""Routes shared by the snippet and playbook routers."""

from typing import List, Type

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel
from sqlalchemy.orm import Session

from snippetbase.database import get_db
from snippetbase.middleware.auth_middleware import get_current_user
from snippetbase.models.user import User
from snippetbase.schemas.content import ArchiveRequest, SubscriptionOut, SubscriptionUpdate
from snippetbase.services import identity_service, subscription_service
from snippetbase.services.content_service import ContentEngine
from snippetbase.utils.responses import unwrap


def get_engine(db: Session = Depends(get_db)) -> ContentEngine:
    return ContentEngine(db)


def build_content_router(
    kind: str,
    prefix: str,
    create_schema: Type[BaseModel],
    update_schema: Type[BaseModel],
    out_schema: Type[BaseModel],
) -> APIRouter:
    router = APIRouter(prefix=prefix, tags=[f"{kind}s"])
    label = kind.capitalize()

    def check_kind(identifier: str) -> None:
        parsed = identity_service.parse_identifier(identifier)
        if not parsed or parsed[0].kind != kind:
            raise HTTPException(status_code=404, detail=f"{label} not found")

    @router.post("", response_model=out_schema)
    def create(
        data: create_schema,
        engine: ContentEngine = Depends(get_engine),
        current_user: User = Depends(get_current_user),
    ):
        payload = data.model_dump()
        branch_type = payload.pop("branch_type")
        return unwrap(engine.create_object(kind, payload, branch_type, current_user))

    @router.get("/{identifier}", response_model=out_schema)
    def get_one(
        identifier: str,
        engine: ContentEngine = Depends(get_engine),
        current_user: User = Depends(get_current_user),
    ):
        check_kind(identifier)
        return unwrap(engine.get_object(identifier, current_user), f"{label} not found")

    @router.put("/{identifier}", response_model=out_schema)
    def revise(
        identifier: str,
        data: update_schema,
        engine: ContentEngine = Depends(get_engine),
        current_user: User = Depends(get_current_user),
    ):
        check_kind(identifier)
        payload = data.model_dump(exclude_unset=True)
        branch_type = payload.pop("branch_type", None)
        return unwrap(engine.revise_object(identifier, payload, branch_type, current_user), f"{label} not found")

    @router.post("/{identifier}/archive", response_model=out_schema)
    def archive(
        identifier: str,
        data: ArchiveRequest,
        engine: ContentEngine = Depends(get_engine),
        current_user: User = Depends(get_current_user),
    ):
        check_kind(identifier)
        return unwrap(engine.archive_object(identifier, current_user, data.reason), f"{label} not found")

    @router.post("/{identifier}/restore", response_model=out_schema)
    def restore(
        identifier: str,
        engine: ContentEngine = Depends(get_engine),
        current_user: User = Depends(get_current_user),
    ):
        check_kind(identifier)
        return unwrap(engine.restore_object(identifier, current_user), f"{label} not found")

    @router.get("/{identifier}/history", response_model=List[out_schema])
    def history(
        identifier: str,
        limit: int = 200,
        engine: ContentEngine = Depends(get_engine),
        current_user: User = Depends(get_current_user),
    ):
        check_kind(identifier)
        return unwrap(engine.history(identifier, current_user, limit=limit), f"{label} not found")

    @router.get("/{static_id}/branches", response_model=List[out_schema])
    def open_branches(
        static_id: str,
        engine: ContentEngine = Depends(get_engine),
        current_user: User = Depends(get_current_user),
    ):
        check_kind(static_id)
        return unwrap(engine.open_branches(static_id, current_user), f"{label} not found")

    @router.get("/{static_id}/used-in", response_model=List[str])
    def used_in(
        static_id: str,
        engine: ContentEngine = Depends(get_engine),
        current_user: User = Depends(get_current_user),
    ):
        check_kind(static_id)
        unwrap(engine.get_object(static_id, current_user), f"{label} not found")
        return engine.get_containing_playbooks(static_id)

    @router.put("/{static_id}/subscription", response_model=SubscriptionOut)
    def update_subscription(
        static_id: str,
        data: SubscriptionUpdate,
        engine: ContentEngine = Depends(get_engine),
        current_user: User = Depends(get_current_user),
    ):
        check_kind(static_id)
        row = unwrap(engine.get_object(static_id, current_user), f"{label} not found")
        return subscription_service.set_subscription(engine.db, current_user.user_id, row.static_id, data.subscribed)

    return router
