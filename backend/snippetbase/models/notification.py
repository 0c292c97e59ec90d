"""SQLAlchemy models for change notifications and their per-user fan-out rows."""

from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, Index, JSON, UniqueConstraint
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from snippetbase.database import Base


class Notification(Base):
    __tablename__ = "notification"

    noti_id = Column(Integer, primary_key=True, autoincrement=True)
    noti_type = Column(String(40), nullable=False)
    # tool_created/tool_major_change/tool_archived/workflow_*
    static_id = Column(String(32), nullable=False)
    revision_id = Column(Integer, nullable=False)
    data = Column(JSON, nullable=False, default=dict)
    created_at = Column(DateTime, server_default=func.now())

    user_notifications = relationship(
        "UserNotification", back_populates="notification", cascade="all, delete-orphan"
    )

    __table_args__ = (
        UniqueConstraint("static_id", "revision_id", "noti_type", name="uq_notification_revision_type"),
    )


class UserNotification(Base):
    __tablename__ = "user_notification"

    user_noti_id = Column(Integer, primary_key=True, autoincrement=True)
    notification_id = Column(Integer, ForeignKey("notification.noti_id"), nullable=False)
    user_id = Column(Integer, ForeignKey("users.user_id"), nullable=False)
    viewed_at = Column(DateTime, nullable=True)
    dismissed_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, server_default=func.now())

    notification = relationship("Notification", back_populates="user_notifications")
    user = relationship("User", back_populates="user_notifications")

    __table_args__ = (
        UniqueConstraint("notification_id", "user_id", name="uq_user_notification"),
        Index("idx_user_notification_user", "user_id", "dismissed_at", "created_at"),
    )
