"""SQLAlchemy models for organizations and users."""

from sqlalchemy import Column, Integer, String, Boolean, DateTime, ForeignKey
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from snippetbase.database import Base


class Organization(Base):
    __tablename__ = "organizations"

    organization_id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(100), nullable=False)
    created_at = Column(DateTime, server_default=func.now())

    users = relationship("User", back_populates="organization")
    collections = relationship("Collection", back_populates="organization")


class User(Base):
    __tablename__ = "users"

    user_id = Column(Integer, primary_key=True, autoincrement=True)
    organization_id = Column(Integer, ForeignKey("organizations.organization_id"), nullable=True)
    email = Column(String(200), unique=True, nullable=False)
    given_name = Column(String(100))
    is_organization_admin = Column(Boolean, nullable=False, default=False)
    wants_suggestion_emails = Column(Boolean, nullable=False, default=True)
    is_active = Column(Boolean, default=True)
    created_at = Column(DateTime, server_default=func.now())

    organization = relationship("Organization", back_populates="users")
    collection_acls = relationship("CollectionAcl", back_populates="user")
    user_notifications = relationship("UserNotification", back_populates="user")
    subscriptions = relationship("UserSubscription", back_populates="user")
