from typing import List

from fastapi import APIRouter, Depends

from api.deps import get_current_user
from models.notification import NotificationOut, UnreadCount
from services import notification_service

router = APIRouter()


@router.get("/", response_model=List[NotificationOut])
def list_notifications(unread_only: bool = False, user=Depends(get_current_user)):
    return notification_service.list_notifications(user["uid"], unread_only=unread_only)


@router.get("/unread-count", response_model=UnreadCount)
def get_unread_count(user=Depends(get_current_user)):
    return UnreadCount(unread=notification_service.unread_count(user["uid"]))


@router.post("/{notification_id}/read", response_model=NotificationOut)
def mark_notification_read(notification_id: str, user=Depends(get_current_user)):
    return notification_service.mark_read(notification_id, user["uid"])


@router.post("/read-all", response_model=UnreadCount)
def mark_all_notifications_read(user=Depends(get_current_user)):
    """Повертає кількість непрочитаних після операції (завжди 0)."""
    notification_service.mark_all_read(user["uid"])
    return UnreadCount(unread=notification_service.unread_count(user["uid"]))
