import logging
from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, Optional
from datetime import datetime

from models.notification_models import Notification, NotificationType
from store import Store
from utils import utcnow

logger = logging.getLogger(__name__)

TITLES = {
    NotificationType.REQUEST_CREATED: "New Exchange Request",
    NotificationType.REQUEST_ACCEPTED: "Exchange Request Accepted",
    NotificationType.REQUEST_REJECTED: "Exchange Request Declined",
    NotificationType.EXPIRING_SOON: "Deleted Slot Expiring Soon",
}


def _message(kind: NotificationType, payload: Dict[str, Any]) -> str:
    if kind == NotificationType.REQUEST_CREATED:
        return f"Someone wants to exchange their slot for your slot '{payload.get('requestee_slot_title', 'Untitled')}'"
    if kind == NotificationType.REQUEST_ACCEPTED:
        return f"Your request for '{payload.get('requestee_slot_title', 'Untitled')}' has been accepted!"
    if kind == NotificationType.REQUEST_REJECTED:
        return f"Your request for '{payload.get('requestee_slot_title', 'Untitled')}' was declined."
    return (
        f"'{payload.get('slot_title', 'Untitled')}' will be permanently deleted "
        f"on {payload.get('recovery_expires_at')}"
    )


class NotificationSink(ABC):
    """Receives events from the core. Delivery is fire-and-forget."""

    @abstractmethod
    async def emit(self, audience_user_id: str, kind: NotificationType, payload: Dict[str, Any]) -> None:
        raise NotImplementedError


class StoreNotificationSink(NotificationSink):
    """Persists events as in-app notifications next to the slots."""

    def __init__(self, store: Store, clock: Optional[Callable[[], datetime]] = None):
        self.store = store
        self.clock = clock or utcnow

    async def emit(self, audience_user_id, kind, payload) -> None:
        kind = NotificationType(kind)
        notification = Notification(
            user_id=audience_user_id,
            type=kind,
            title=TITLES[kind],
            message=_message(kind, payload),
            data=payload,
            created_at=self.clock(),
        )
        doc = notification.model_dump()
        doc["type"] = kind.value
        notification_id = await self.store.insert_notification(doc)
        logger.info(f"Notification {notification_id} ({kind.value}) queued for user {audience_user_id}")


async def notify(sink: NotificationSink, audience_user_id: str, kind: NotificationType, payload: Dict[str, Any]) -> None:
    """Emit after commit; a failing sink never fails the operation that triggered it."""
    try:
        await sink.emit(audience_user_id, kind, payload)
    except Exception:
        logger.exception(f"Failed to deliver {kind.value} notification to user {audience_user_id}")
