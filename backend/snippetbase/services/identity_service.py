"""Identity and branch lookup rules shared by every content engine component."""

import secrets
import string
from typing import List, Optional, Tuple, Type, Union

from sqlalchemy.orm import Session

from snippetbase.models.content_object import (
    BRANCH_PUBLISHED,
    CONTENT_MODELS,
    Playbook,
    Snippet,
)

ContentModel = Type[Union[Snippet, Playbook]]

ALPHANUMERIC_CHARACTERS = string.digits + string.ascii_letters
SCOPE_STATIC = "static"
SCOPE_BRANCH = "branch"

_PREFIXES = {}
for _model in CONTENT_MODELS.values():
    _PREFIXES[_model.static_id_prefix] = (_model, SCOPE_STATIC)
    _PREFIXES[_model.branch_id_prefix] = (_model, SCOPE_BRANCH)


def mint_identifier(prefix: str) -> str:
    suffix = "".join(secrets.choice(ALPHANUMERIC_CHARACTERS) for _ in range(9))
    return f"{prefix}_0{suffix}"


def model_for_kind(kind: str) -> Optional[ContentModel]:
    return CONTENT_MODELS.get((kind or "").strip().lower())


def parse_identifier(identifier: Optional[str]) -> Optional[Tuple[ContentModel, str]]:
    """Return ``(model, scope)`` for a static or branch id, or None if the prefix is unknown."""
    if not identifier or "_" not in identifier:
        return None
    prefix = identifier.split("_", 1)[0]
    return _PREFIXES.get(prefix)


def resolve_latest_published(db: Session, static_id: str, model: Optional[ContentModel] = None):
    if model is None:
        parsed = parse_identifier(static_id)
        if not parsed or parsed[1] != SCOPE_STATIC:
            return None
        model = parsed[0]
    return (
        db.query(model)
        .filter(
            model.static_id == static_id,
            model.branch_type == BRANCH_PUBLISHED,
            model.is_latest == True,
        )
        .first()
    )


def resolve_latest_on_branch(db: Session, branch_id: str, model: Optional[ContentModel] = None):
    if model is None:
        parsed = parse_identifier(branch_id)
        if not parsed or parsed[1] != SCOPE_BRANCH:
            return None
        model = parsed[0]
    return (
        db.query(model)
        .filter(
            model.branch_id == branch_id,
            model.is_latest == True,
        )
        .first()
    )


def resolve_by_any_identifier(db: Session, identifier: str):
    parsed = parse_identifier(identifier)
    if not parsed:
        return None
    model, scope = parsed
    if scope == SCOPE_STATIC:
        return resolve_latest_published(db, identifier, model)
    return resolve_latest_on_branch(db, identifier, model)


def resolve_open_branch(db: Session, model: ContentModel, static_id: str, user_id: int):
    """The user's non-archived draft or suggestion tip for ``static_id``, if any."""
    return (
        db.query(model)
        .filter(
            model.static_id == static_id,
            model.suggested_by_user_id == user_id,
            model.branch_type != BRANCH_PUBLISHED,
            model.is_latest == True,
            model.is_archived == False,
        )
        .first()
    )


def list_open_branches(db: Session, model: ContentModel, static_id: str) -> List:
    return (
        db.query(model)
        .filter(
            model.static_id == static_id,
            model.branch_type != BRANCH_PUBLISHED,
            model.is_latest == True,
            model.is_archived == False,
        )
        .order_by(model.id.asc())
        .all()
    )


def get_revision(db: Session, model: ContentModel, revision_id: int):
    return db.query(model).filter(model.id == revision_id).first()


def history(db: Session, row, limit: int = 200) -> List:
    """Walk ``previous_version_id`` from ``row`` back to the lineage root, newest first."""
    model = type(row)
    rows = [row]
    seen = {row.id}
    current = row
    while current.previous_version_id is not None and len(rows) < limit:
        current = get_revision(db, model, current.previous_version_id)
        if current is None or current.id in seen:
            break
        seen.add(current.id)
        rows.append(current)
    return rows
