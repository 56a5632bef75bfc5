import logging
from fastapi import APIRouter, Depends, HTTPException, Query
from typing import List

from dependencies import CurrentUser, get_current_user, get_store
from models.notification_models import NotificationDetails
from store import Store

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/notifications", tags=["notifications"])

@router.get("", response_model=List[NotificationDetails])
async def get_my_notifications(
    unread_only: bool = False,
    skip: int = Query(0, ge=0),
    limit: int = Query(20, ge=1, le=100),
    user: CurrentUser = Depends(get_current_user),
    store: Store = Depends(get_store),
):
    try:
        return await store.list_notifications(user.user_id, unread_only=unread_only, skip=skip, limit=limit)
    except Exception:
        logger.exception("Get notifications error")
        raise HTTPException(status_code=500, detail="Server error")

@router.put("/{notification_id}/read")
async def mark_notification_read(
    notification_id: str,
    user: CurrentUser = Depends(get_current_user),
    store: Store = Depends(get_store),
):
    try:
        if not await store.mark_notification_read(notification_id, user.user_id):
            raise HTTPException(status_code=404, detail="Notification not found")
        return {"message": "Notification marked as read"}
    except HTTPException:
        raise
    except Exception:
        logger.exception("Mark notification read error")
        raise HTTPException(status_code=500, detail="Server error")
