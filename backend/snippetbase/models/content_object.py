"""SQLAlchemy models for versioned content objects (snippets and playbooks).

Every edit writes a new immutable row. Rows of one logical object share a
``static_id``; rows of one in-progress edit line share a ``branch_id``. The
partial unique indexes below are what keep exactly one tip per lineage when
writers race each other.
"""

from sqlalchemy import Column, Integer, String, Text, DateTime, Boolean, ForeignKey, Index, JSON, text
from sqlalchemy.orm import declared_attr, relationship
from sqlalchemy.sql import func
from snippetbase.database import Base

BRANCH_DRAFT = "draft"
BRANCH_SUGGESTION = "suggestion"
BRANCH_PUBLISHED = "published"
BRANCH_TYPES = (BRANCH_DRAFT, BRANCH_SUGGESTION, BRANCH_PUBLISHED)

ARCHIVE_APPROVED = "approved"
ARCHIVE_REJECTED = "rejected"

KIND_SNIPPET = "snippet"
KIND_PLAYBOOK = "playbook"


def _where(clause: str) -> dict:
    return {"sqlite_where": text(clause), "postgresql_where": text(clause)}


class VersionedContentMixin:
    id = Column(Integer, primary_key=True, autoincrement=True)
    static_id = Column(String(32), nullable=False)
    branch_id = Column(String(32), nullable=True)
    branch_type = Column(String(20), nullable=False)  # draft/suggestion/published
    is_latest = Column(Boolean, nullable=False, default=True)
    is_archived = Column(Boolean, nullable=False, default=False)
    archive_reason = Column(String(20), nullable=True)  # approved/rejected
    archived_at = Column(DateTime, nullable=True)
    major_change_description = Column(JSON, nullable=True)
    # Cross links between a merged published row and the archived branch row
    merged_from_id = Column(Integer, nullable=True)
    merged_to_id = Column(Integer, nullable=True)
    created_at = Column(DateTime, server_default=func.now())

    name = Column(String(200), nullable=False)
    description = Column(Text, nullable=False, default="")
    keywords = Column(JSON, nullable=False, default=list)

    @declared_attr
    def previous_version_id(cls):
        return Column(Integer, ForeignKey(f"{cls.__tablename__}.id"), nullable=True)

    @declared_attr
    def branched_from_id(cls):
        return Column(Integer, ForeignKey(f"{cls.__tablename__}.id"), nullable=True)

    @declared_attr
    def collection_id(cls):
        return Column(Integer, ForeignKey("collections.collection_id"), nullable=False)

    @declared_attr
    def created_by_user_id(cls):
        return Column(Integer, ForeignKey("users.user_id"), nullable=False)

    @declared_attr
    def suggested_by_user_id(cls):
        return Column(Integer, ForeignKey("users.user_id"), nullable=True)

    @declared_attr
    def previous_version(cls):
        return relationship(
            cls.__name__,
            remote_side=f"{cls.__name__}.id",
            foreign_keys=f"{cls.__name__}.previous_version_id",
        )

    @declared_attr
    def branched_from(cls):
        return relationship(
            cls.__name__,
            remote_side=f"{cls.__name__}.id",
            foreign_keys=f"{cls.__name__}.branched_from_id",
        )

    @declared_attr
    def collection(cls):
        return relationship("Collection")

    @declared_attr
    def suggested_by_user(cls):
        return relationship("User", foreign_keys=f"{cls.__name__}.suggested_by_user_id")

    @declared_attr
    def __table_args__(cls):
        table = cls.__tablename__
        return (
            Index(f"idx_{table}_static_latest", "static_id", "is_latest", "branch_type"),
            Index(
                f"uq_{table}_published_tip",
                "static_id",
                unique=True,
                **_where("is_latest AND branch_type = 'published'"),
            ),
            Index(
                f"uq_{table}_branch_tip",
                "branch_id",
                unique=True,
                **_where("is_latest AND branch_type <> 'published'"),
            ),
            Index(
                f"uq_{table}_open_branch_per_user",
                "static_id",
                "suggested_by_user_id",
                unique=True,
                **_where("is_latest AND branch_type <> 'published' AND NOT is_archived"),
            ),
        )

    @property
    def is_published(self) -> bool:
        return self.branch_type == BRANCH_PUBLISHED


class Snippet(VersionedContentMixin, Base):
    __tablename__ = "snippets"

    kind = KIND_SNIPPET
    # Notification and email payloads keep the client's historical naming.
    notification_prefix = "tool"
    static_id_prefix = "snip"
    branch_id_prefix = "sbrch"
    payload_fields = ("name", "description", "keywords", "configuration")

    configuration = Column(JSON, nullable=False, default=dict)


class Playbook(VersionedContentMixin, Base):
    __tablename__ = "playbooks"

    kind = KIND_PLAYBOOK
    notification_prefix = "workflow"
    static_id_prefix = "play"
    branch_id_prefix = "pbrch"
    payload_fields = ("name", "description", "keywords", "icon", "contents")

    icon = Column(String(50), nullable=True)
    contents = Column(JSON, nullable=False, default=list)


CONTENT_MODELS = {
    KIND_SNIPPET: Snippet,
    KIND_PLAYBOOK: Playbook,
}
