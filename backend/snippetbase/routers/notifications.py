"""Notification API router: the user inbox and subscriptions."""

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session
from typing import List

from snippetbase.database import get_db
from snippetbase.middleware.auth_middleware import get_current_user
from snippetbase.models.user import User
from snippetbase.schemas.content import SubscriptionOut
from snippetbase.schemas.notification import UserNotificationOut
from snippetbase.services import notification_service, subscription_service

router = APIRouter(prefix="/api/notifications", tags=["notifications"])


@router.get("", response_model=List[UserNotificationOut])
def list_notifications(
    include_dismissed: bool = False,
    unviewed_only: bool = False,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return notification_service.get_user_notifications(
        db, current_user.user_id, include_dismissed=include_dismissed, unviewed_only=unviewed_only
    )


@router.patch("/{user_noti_id}/viewed", response_model=UserNotificationOut)
def mark_viewed(user_noti_id: int, db: Session = Depends(get_db), current_user: User = Depends(get_current_user)):
    noti = notification_service.mark_viewed(db, user_noti_id, current_user.user_id)
    if not noti:
        raise HTTPException(status_code=404, detail="Notification not found")
    return noti


@router.patch("/{user_noti_id}/dismiss", response_model=UserNotificationOut)
def dismiss(user_noti_id: int, db: Session = Depends(get_db), current_user: User = Depends(get_current_user)):
    noti = notification_service.dismiss(db, user_noti_id, current_user.user_id)
    if not noti:
        raise HTTPException(status_code=404, detail="Notification not found")
    return noti


@router.post("/viewed-all")
def mark_all_viewed(db: Session = Depends(get_db), current_user: User = Depends(get_current_user)):
    updated = notification_service.mark_all_viewed(db, current_user.user_id)
    return {"updated": updated}


@router.get("/subscriptions", response_model=List[SubscriptionOut])
def list_subscriptions(db: Session = Depends(get_db), current_user: User = Depends(get_current_user)):
    return subscription_service.list_subscriptions(db, current_user.user_id)
