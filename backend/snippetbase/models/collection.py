"""SQLAlchemy models for collections, the authorization scope of content objects."""

from sqlalchemy import Column, Integer, String, Text, DateTime, ForeignKey, JSON, UniqueConstraint
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from snippetbase.database import Base


class Collection(Base):
    __tablename__ = "collections"

    collection_id = Column(Integer, primary_key=True, autoincrement=True)
    organization_id = Column(Integer, ForeignKey("organizations.organization_id"), nullable=True)
    name = Column(String(200), nullable=False)
    description = Column(Text)
    # Roles granted to every member of the owning organization: viewer/editor/publisher/admin
    default_permissions = Column(JSON, nullable=False, default=list)
    created_at = Column(DateTime, server_default=func.now())

    organization = relationship("Organization", back_populates="collections")
    acls = relationship("CollectionAcl", back_populates="collection", cascade="all, delete-orphan")


class CollectionAcl(Base):
    __tablename__ = "collection_acl"

    acl_id = Column(Integer, primary_key=True, autoincrement=True)
    collection_id = Column(Integer, ForeignKey("collections.collection_id"), nullable=False)
    user_id = Column(Integer, ForeignKey("users.user_id"), nullable=False)
    permissions = Column(JSON, nullable=False, default=list)
    created_at = Column(DateTime, server_default=func.now())

    collection = relationship("Collection", back_populates="acls")
    user = relationship("User", back_populates="collection_acls")

    __table_args__ = (
        UniqueConstraint("collection_id", "user_id", name="uq_collection_acl_user"),
    )
