from pydantic import BaseModel, Field, field_validator
from typing import List, Optional, Dict, Set, Tuple
from datetime import datetime, timezone
from enum import Enum

from errors import ConflictError, ConflictReason


class SlotStatus(str, Enum):
    BUSY = "busy"
    OPEN = "open"
    LOCKED = "locked"
    DELETED = "deleted"


class EditableSlotStatus(str, Enum):
    """Statuses a slot owner may set directly."""
    BUSY = "busy"
    OPEN = "open"


class SlotTransition(str, Enum):
    MARK_OPEN = "mark_open"
    MARK_BUSY = "mark_busy"
    LOCK = "lock"
    RELEASE = "release"
    SETTLE = "settle"
    SOFT_DELETE = "soft_delete"
    RESTORE = "restore"


# Allowed (source, target) pairs per operation. Anything else is rejected.
SLOT_TRANSITIONS: Dict[SlotTransition, Set[Tuple[SlotStatus, SlotStatus]]] = {
    SlotTransition.MARK_OPEN: {(SlotStatus.BUSY, SlotStatus.OPEN)},
    SlotTransition.MARK_BUSY: {(SlotStatus.OPEN, SlotStatus.BUSY)},
    SlotTransition.LOCK: {(SlotStatus.OPEN, SlotStatus.LOCKED)},
    SlotTransition.RELEASE: {(SlotStatus.LOCKED, SlotStatus.OPEN)},
    SlotTransition.SETTLE: {(SlotStatus.LOCKED, SlotStatus.BUSY)},
    SlotTransition.SOFT_DELETE: {
        (SlotStatus.BUSY, SlotStatus.DELETED),
        (SlotStatus.OPEN, SlotStatus.DELETED),
    },
    SlotTransition.RESTORE: {
        (SlotStatus.DELETED, SlotStatus.BUSY),
        (SlotStatus.DELETED, SlotStatus.OPEN),
    },
}


def check_transition(transition: SlotTransition, source, target) -> SlotStatus:
    """Validate a status change against the transition table and return the target."""
    source = SlotStatus(source)
    target = SlotStatus(target)
    if (source, target) not in SLOT_TRANSITIONS[transition]:
        raise ConflictError(
            f"Cannot {transition.value.replace('_', ' ')} a slot from '{source.value}' to '{target.value}'",
            ConflictReason.INVALID_TRANSITION,
        )
    return target


def transition_for(target) -> SlotTransition:
    """Owner-facing transition that moves a slot to the given editable status."""
    if SlotStatus(target) == SlotStatus.OPEN:
        return SlotTransition.MARK_OPEN
    return SlotTransition.MARK_BUSY


def to_naive_utc(value: Optional[datetime]) -> Optional[datetime]:
    # Mongo hands back naive UTC datetimes, so everything is compared that way
    if value is not None and value.tzinfo is not None:
        return value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


class SlotCreate(BaseModel):
    title: str = Field(min_length=1, max_length=100)
    description: Optional[str] = None
    start_time: datetime
    end_time: datetime
    status: EditableSlotStatus = EditableSlotStatus.BUSY

    @field_validator("start_time", "end_time")
    @classmethod
    def normalize_times(cls, value):
        return to_naive_utc(value)


class SlotUpdate(BaseModel):
    title: Optional[str] = Field(default=None, min_length=1, max_length=100)
    description: Optional[str] = None
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None
    status: Optional[EditableSlotStatus] = None

    @field_validator("start_time", "end_time")
    @classmethod
    def normalize_times(cls, value):
        return to_naive_utc(value)


class SlotTransfer(BaseModel):
    new_owner_id: str = Field(min_length=1)


class BulkSlotIds(BaseModel):
    slot_ids: List[str] = Field(min_length=1, max_length=100)


class SlotDetails(BaseModel):
    id: str
    owner_id: str
    title: str
    description: Optional[str] = None
    start_time: datetime
    end_time: datetime
    status: SlotStatus
    status_before_delete: Optional[SlotStatus] = None
    deleted_at: Optional[datetime] = None
    deleted_by: Optional[str] = None
    recovery_expires_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class BulkResult(BaseModel):
    succeeded: List[str] = []
    failed: Dict[str, str] = {}
