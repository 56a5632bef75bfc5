from dataclasses import dataclass

from fastapi import Depends, HTTPException
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from dataBase import store
from exchange_service import ExchangeCoordinator
from notification_service import NotificationSink, StoreNotificationSink
from retention_service import RetentionManager
from slot_service import SlotService
from store import Store
from utils import utcnow, verify_token

bearer_scheme = HTTPBearer(auto_error=False)


@dataclass(frozen=True)
class CurrentUser:
    user_id: str
    is_admin: bool = False


def get_store() -> Store:
    return store


def get_clock():
    return utcnow


def get_notification_sink(store: Store = Depends(get_store), clock=Depends(get_clock)) -> NotificationSink:
    return StoreNotificationSink(store, clock)


def get_current_user(credentials: HTTPAuthorizationCredentials = Depends(bearer_scheme)) -> CurrentUser:
    if credentials is None:
        raise HTTPException(status_code=401, detail="Not authenticated", headers={"WWW-Authenticate": "Bearer"})
    identity = verify_token(credentials.credentials)
    if identity is None:
        raise HTTPException(status_code=401, detail="Invalid or expired token", headers={"WWW-Authenticate": "Bearer"})
    return CurrentUser(**identity)


def get_slot_service(store: Store = Depends(get_store), clock=Depends(get_clock)) -> SlotService:
    return SlotService(store, clock)


def get_exchange_coordinator(
    store: Store = Depends(get_store),
    sink: NotificationSink = Depends(get_notification_sink),
    clock=Depends(get_clock),
) -> ExchangeCoordinator:
    return ExchangeCoordinator(store, sink, clock)


def get_retention_manager(
    store: Store = Depends(get_store),
    sink: NotificationSink = Depends(get_notification_sink),
    clock=Depends(get_clock),
) -> RetentionManager:
    return RetentionManager(store, sink, clock)
