"""Pydantic schemas for notifications and per-user inbox entries."""

from pydantic import BaseModel
from typing import Any, Dict, Optional
from datetime import datetime


class NotificationOut(BaseModel):
    noti_id: int
    noti_type: str
    static_id: str
    revision_id: int
    data: Dict[str, Any]
    created_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


class UserNotificationOut(BaseModel):
    user_noti_id: int
    user_id: int
    viewed_at: Optional[datetime] = None
    dismissed_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    notification: NotificationOut

    model_config = {"from_attributes": True}
