"""SQLAlchemy models for user subscriptions and the interactions that create them."""

from sqlalchemy import Column, Integer, String, Boolean, DateTime, ForeignKey, Index, UniqueConstraint
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from snippetbase.database import Base


class UserSubscription(Base):
    __tablename__ = "user_subscription"

    subscription_id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.user_id"), nullable=False)
    static_id = Column(String(32), nullable=False)
    subscribed = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    user = relationship("User", back_populates="subscriptions")

    __table_args__ = (
        UniqueConstraint("user_id", "static_id", name="uq_user_subscription"),
        Index("idx_subscription_static", "static_id", "subscribed"),
    )


class UserSnippetRun(Base):
    __tablename__ = "user_snippet_run"

    run_id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.user_id"), nullable=False)
    static_id = Column(String(32), nullable=False)
    revision_id = Column(Integer, nullable=True)
    run_at = Column(DateTime, server_default=func.now())


class UserPlaybookView(Base):
    __tablename__ = "user_playbook_view"

    view_id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.user_id"), nullable=False)
    static_id = Column(String(32), nullable=False)
    revision_id = Column(Integer, nullable=True)
    viewed_at = Column(DateTime, server_default=func.now())
