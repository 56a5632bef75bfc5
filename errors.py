"""
Domain errors raised by the slot and exchange services.
Raised in the services and rendered by the handler registered in main.py.
"""
from enum import Enum
from typing import Optional


class ConflictReason(str, Enum):
    SLOT_NOT_OPEN = "slot_not_open"
    PENDING_EXCHANGE = "pending_exchange"
    ALREADY_RESOLVED = "already_resolved"
    RECOVERY_EXPIRED = "recovery_expired"
    ALREADY_DELETED = "already_deleted"
    NOT_DELETED = "not_deleted"
    SLOT_DELETED = "slot_deleted"
    CONCURRENT_UPDATE = "concurrent_update"
    INVALID_TRANSITION = "invalid_transition"


class SlotSwapError(Exception):
    """Base exception for all slot and exchange errors."""
    status_code = 500

    def __init__(self, message: str, reason: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.reason = reason

    def to_dict(self) -> dict:
        return {"detail": self.message, "reason": self.reason}


class NotFoundError(SlotSwapError):
    """Entity is absent or the caller cannot see it."""
    status_code = 404


class ForbiddenError(SlotSwapError):
    """Caller can see the entity but has no authority over it."""
    status_code = 403


class ConflictError(SlotSwapError):
    """Entity's current state does not allow the requested transition."""
    status_code = 409

    def __init__(self, message: str, reason: ConflictReason):
        super().__init__(message, reason.value)


class InvalidInputError(SlotSwapError):
    status_code = 400
