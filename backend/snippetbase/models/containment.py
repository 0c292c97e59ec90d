"""Derived containment graph: which objects a published playbook embeds."""

from sqlalchemy import Column, Integer, String, DateTime, Index, UniqueConstraint
from sqlalchemy.sql import func
from snippetbase.database import Base

OBJECT_SNIPPET = "snippet"
OBJECT_PLAYBOOK_EMBED = "playbook_embed"
OBJECT_PLAYBOOK_LINK = "playbook_link"
OBJECT_KINDS = (OBJECT_SNIPPET, OBJECT_PLAYBOOK_EMBED, OBJECT_PLAYBOOK_LINK)


class PlaybookContainsObject(Base):
    __tablename__ = "playbook_contains_object"

    row_id = Column(Integer, primary_key=True, autoincrement=True)
    playbook_static_id = Column(String(32), nullable=False)
    object_static_id = Column(String(32), nullable=False)
    object_kind = Column(String(20), nullable=False)  # snippet/playbook_embed/playbook_link
    position = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime, server_default=func.now())

    __table_args__ = (
        UniqueConstraint("playbook_static_id", "object_static_id", "object_kind", name="uq_playbook_contains"),
        Index("idx_contains_object", "object_static_id", "object_kind"),
    )
