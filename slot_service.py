"""Slot lifecycle outside the exchange and retention flows: create, edit, transfer."""
import logging
from datetime import datetime
from typing import Callable, List, Optional

from config import MAX_SLOT_DURATION, MAX_SLOT_HOURS
from errors import ConflictError, ConflictReason, ForbiddenError, InvalidInputError, NotFoundError
from models.slot_models import (
    SlotCreate,
    SlotStatus,
    SlotUpdate,
    check_transition,
    transition_for,
)
from store import Store
from utils import utcnow

logger = logging.getLogger(__name__)


def ensure_visible(slot: Optional[dict], acting_user_id: str, is_admin: bool = False,
                   message: str = "Slot not found") -> dict:
    """Slots owned by someone else look absent unless the caller is an admin."""
    if slot is None or (slot["owner_id"] != acting_user_id and not is_admin):
        raise NotFoundError(message)
    return slot


def validate_window(start: datetime, end: datetime, now: datetime, start_changed: bool = True) -> None:
    if start_changed and start < now:
        raise InvalidInputError("Start time cannot be in the past")
    if end <= start:
        raise InvalidInputError("End time must be after start time")
    if end - start > MAX_SLOT_DURATION:
        raise InvalidInputError(f"Slot cannot be longer than {MAX_SLOT_HOURS} hours")


class SlotService:
    def __init__(self, store: Store, clock: Callable[[], datetime] = utcnow):
        self.store = store
        self.clock = clock

    async def create_slot(self, owner_id: str, data: SlotCreate) -> dict:
        now = self.clock()
        validate_window(data.start_time, data.end_time, now)

        slot = {
            "owner_id": owner_id,
            "title": data.title,
            "description": data.description,
            "start_time": data.start_time,
            "end_time": data.end_time,
            "status": data.status.value,
            "status_before_delete": None,
            "deleted_at": None,
            "deleted_by": None,
            "recovery_expires_at": None,
            "expiry_notified_at": None,
            "created_at": now,
            "updated_at": now,
        }
        async with self.store.transaction() as tx:
            created = await tx.insert_slot(slot)
        logger.info(f"Slot {created['id']} created for user {owner_id} as {created['status']}")
        return created

    async def get_slot(self, slot_id: str, acting_user_id: str, is_admin: bool = False) -> dict:
        return ensure_visible(await self.store.get_slot(slot_id), acting_user_id, is_admin)

    async def list_user_slots(self, user_id: str) -> List[dict]:
        return await self.store.list_slots(
            owner_id=user_id,
            statuses=[SlotStatus.BUSY, SlotStatus.OPEN, SlotStatus.LOCKED],
        )

    async def update_slot(self, slot_id: str, acting_user_id: str, data: SlotUpdate,
                          is_admin: bool = False) -> dict:
        fields = data.model_dump(exclude_unset=True)
        if not fields:
            raise InvalidInputError("No fields provided for update")

        now = self.clock()
        async with self.store.transaction() as tx:
            slot = ensure_visible(await tx.get_slot(slot_id), acting_user_id, is_admin)
            current = SlotStatus(slot["status"])
            if current == SlotStatus.DELETED:
                raise ConflictError("Cannot edit a deleted slot; restore it first", ConflictReason.SLOT_DELETED)

            changes = {}
            start = fields.get("start_time") or slot["start_time"]
            end = fields.get("end_time") or slot["end_time"]
            window_changed = start != slot["start_time"] or end != slot["end_time"]

            target = fields.get("status")
            status_changed = target is not None and target.value != current.value

            if current == SlotStatus.LOCKED and (window_changed or status_changed):
                raise ConflictError(
                    "Cannot change the time or status of a slot with a pending exchange request",
                    ConflictReason.PENDING_EXCHANGE,
                )

            if window_changed:
                validate_window(start, end, now, start_changed=start != slot["start_time"])
                changes["start_time"] = start
                changes["end_time"] = end
            if status_changed:
                changes["status"] = check_transition(transition_for(target.value), current, target.value).value
            if fields.get("title") and fields["title"] != slot["title"]:
                changes["title"] = fields["title"]
            if "description" in fields and fields["description"] != slot.get("description"):
                changes["description"] = fields["description"]

            if not changes:
                return slot

            changes["updated_at"] = now
            updated = await tx.update_slot(slot_id, {"status": current.value}, changes)
            if updated is None:
                raise ConflictError("Slot was modified by a concurrent request, please retry",
                                    ConflictReason.CONCURRENT_UPDATE)

        logger.info(f"Slot {slot_id} updated by user {acting_user_id}: {sorted(changes)}")
        return updated

    async def transfer_slot(self, slot_id: str, acting_user_id: str, new_owner_id: str,
                            is_admin: bool = False) -> dict:
        """Administrative ownership change, outside any exchange."""
        if not is_admin:
            raise ForbiddenError("Admin access required")

        async with self.store.transaction() as tx:
            slot = ensure_visible(await tx.get_slot(slot_id), acting_user_id, is_admin)
            status = SlotStatus(slot["status"])
            if status == SlotStatus.DELETED:
                raise ConflictError("Cannot transfer a deleted slot", ConflictReason.SLOT_DELETED)
            if status == SlotStatus.LOCKED:
                raise ConflictError("Cannot transfer a slot with a pending exchange request",
                                    ConflictReason.PENDING_EXCHANGE)
            if slot["owner_id"] == new_owner_id:
                return slot

            updated = await tx.update_slot(
                slot_id,
                {"status": status.value, "owner_id": slot["owner_id"]},
                {"owner_id": new_owner_id, "updated_at": self.clock()},
            )
            if updated is None:
                raise ConflictError("Slot was modified by a concurrent request, please retry",
                                    ConflictReason.CONCURRENT_UPDATE)

        logger.info(f"Slot {slot_id} transferred from {slot['owner_id']} to {new_owner_id} by admin {acting_user_id}")
        return updated
