"""
Trash for slots: soft delete, time-boxed recovery and purge.

A soft-deleted slot keeps its record, remembers the status it had and gets a
recovery deadline ``RETENTION_PERIOD`` after deletion. Before the deadline it
can be restored to that status; from the deadline on it can only be destroyed,
either by its owner or by the periodic sweep (see sweep.py).
"""
import logging
from datetime import datetime, timedelta
from typing import Callable, Dict, List, Optional

from config import EXPIRING_SOON_DAYS, RETENTION_PERIOD
from errors import ConflictError, ConflictReason, SlotSwapError
from models.notification_models import NotificationType
from models.slot_models import SlotStatus, SlotTransition, check_transition
from notification_service import NotificationSink, notify
from slot_service import ensure_visible
from store import Store
from utils import utcnow

logger = logging.getLogger(__name__)


class ExpiringSlots:
    """Restartable async view over a user's deleted slots nearing their deadline.

    Nothing is fetched until iteration starts, and every new ``async for``
    runs a fresh query against the current time.
    """

    def __init__(self, store: Store, user_id: str, horizon: timedelta, clock: Callable[[], datetime]):
        self.store = store
        self.user_id = user_id
        self.horizon = horizon
        self.clock = clock

    def __aiter__(self):
        now = self.clock()
        return self.store.iter_deleted_slots(
            owner_id=self.user_id,
            expires_after=now,
            expires_before=now + self.horizon,
        ).__aiter__()


class RetentionManager:
    def __init__(
        self,
        store: Store,
        sink: NotificationSink,
        clock: Callable[[], datetime] = utcnow,
        retention_period: timedelta = RETENTION_PERIOD,
    ):
        self.store = store
        self.sink = sink
        self.clock = clock
        self.retention_period = retention_period

    async def soft_delete(self, slot_id: str, acting_user_id: str, is_admin: bool = False) -> dict:
        now = self.clock()
        async with self.store.transaction() as tx:
            slot = ensure_visible(await tx.get_slot(slot_id), acting_user_id, is_admin)
            status = SlotStatus(slot["status"])
            if status == SlotStatus.DELETED:
                raise ConflictError("Slot is already in the trash", ConflictReason.ALREADY_DELETED)
            if status == SlotStatus.LOCKED:
                raise ConflictError(
                    "Cannot delete a slot with a pending exchange request; accept or reject the exchange first",
                    ConflictReason.PENDING_EXCHANGE,
                )

            target = check_transition(SlotTransition.SOFT_DELETE, status, SlotStatus.DELETED)
            deleted = await tx.update_slot(
                slot_id,
                {"status": status.value},
                {
                    "status": target.value,
                    "status_before_delete": status.value,
                    "deleted_at": now,
                    "deleted_by": acting_user_id,
                    "recovery_expires_at": now + self.retention_period,
                    "expiry_notified_at": None,
                    "updated_at": now,
                },
            )
            if deleted is None:
                raise ConflictError("Slot was modified by a concurrent request, please retry",
                                    ConflictReason.CONCURRENT_UPDATE)

        logger.info(f"Slot {slot_id} moved to trash by user {acting_user_id}, "
                    f"recoverable until {deleted['recovery_expires_at']}")
        return deleted

    async def restore(self, slot_id: str, acting_user_id: str, is_admin: bool = False) -> dict:
        now = self.clock()
        async with self.store.transaction() as tx:
            slot = ensure_visible(await tx.get_slot(slot_id), acting_user_id, is_admin)
            if slot["status"] != SlotStatus.DELETED:
                raise ConflictError("Slot is not in the trash", ConflictReason.NOT_DELETED)
            if now >= slot["recovery_expires_at"]:
                raise ConflictError("Cannot restore slot - recovery period has expired",
                                    ConflictReason.RECOVERY_EXPIRED)

            prior = slot.get("status_before_delete") or SlotStatus.BUSY.value
            target = check_transition(SlotTransition.RESTORE, SlotStatus.DELETED, prior)
            restored = await tx.update_slot(
                slot_id,
                {"status": SlotStatus.DELETED.value, "recovery_expires_at": slot["recovery_expires_at"]},
                {
                    "status": target.value,
                    "status_before_delete": None,
                    "deleted_at": None,
                    "deleted_by": None,
                    "recovery_expires_at": None,
                    "expiry_notified_at": None,
                    "updated_at": now,
                },
            )
            if restored is None:
                raise ConflictError("Slot was modified by a concurrent request, please retry",
                                    ConflictReason.CONCURRENT_UPDATE)

        logger.info(f"Slot {slot_id} restored to {target.value} by user {acting_user_id}")
        return restored

    async def permanent_delete(self, slot_id: str, acting_user_id: str, is_admin: bool = False) -> dict:
        async with self.store.transaction() as tx:
            slot = ensure_visible(await tx.get_slot(slot_id), acting_user_id, is_admin)
            if slot["status"] != SlotStatus.DELETED:
                raise ConflictError("Only slots in the trash can be permanently deleted",
                                    ConflictReason.NOT_DELETED)
            if not await tx.delete_slot(slot_id, {"status": SlotStatus.DELETED.value}):
                raise ConflictError("Slot was modified by a concurrent request, please retry",
                                    ConflictReason.CONCURRENT_UPDATE)

        logger.info(f"Slot {slot_id} permanently deleted by user {acting_user_id}")
        return slot

    async def list_trash(self, user_id: str) -> List[dict]:
        """Restorable slots, most recently deleted first."""
        now = self.clock()
        slots = [slot async for slot in self.store.iter_deleted_slots(owner_id=user_id, expires_after=now)]
        return sorted(slots, key=lambda slot: slot["deleted_at"], reverse=True)

    def list_expiring_soon(self, user_id: str, horizon: Optional[timedelta] = None) -> ExpiringSlots:
        return ExpiringSlots(self.store, user_id, self._horizon(horizon), self.clock)

    async def bulk_restore(self, slot_ids: List[str], acting_user_id: str,
                           is_admin: bool = False) -> Dict[str, object]:
        return await self._bulk(self.restore, slot_ids, acting_user_id, is_admin)

    async def bulk_permanent_delete(self, slot_ids: List[str], acting_user_id: str,
                                    is_admin: bool = False) -> Dict[str, object]:
        return await self._bulk(self.permanent_delete, slot_ids, acting_user_id, is_admin)

    async def _bulk(self, operation, slot_ids, acting_user_id, is_admin) -> Dict[str, object]:
        # Each id is its own unit; one failure does not undo the others
        succeeded, failed = [], {}
        for slot_id in dict.fromkeys(slot_ids):
            try:
                await operation(slot_id, acting_user_id, is_admin)
                succeeded.append(slot_id)
            except SlotSwapError as e:
                failed[slot_id] = e.message
        return {"succeeded": succeeded, "failed": failed}

    async def find_purgeable(self) -> List[dict]:
        """Deleted slots whose recovery deadline has passed."""
        now = self.clock()
        return [slot async for slot in self.store.iter_deleted_slots(expires_before=now)]

    async def purge_expired(self) -> List[str]:
        now = self.clock()
        purged = []
        for candidate in await self.find_purgeable():
            async with self.store.transaction() as tx:
                slot = await tx.get_slot(candidate["id"])
                if slot is None or slot["status"] != SlotStatus.DELETED or slot["recovery_expires_at"] > now:
                    continue
                removed = await tx.delete_slot(
                    slot["id"],
                    {"status": SlotStatus.DELETED.value, "recovery_expires_at": slot["recovery_expires_at"]},
                )
            if removed:
                purged.append(slot["id"])

        if purged:
            logger.info(f"Purged {len(purged)} expired slots from trash")
        return purged

    async def notify_expiring_soon(self, horizon: Optional[timedelta] = None) -> int:
        """Advise every owner whose deleted slots reach their deadline within the horizon.

        Each deletion is advised at most once: the slot is stamped with
        ``expiry_notified_at`` and skipped by later runs until it is restored.
        """
        now = self.clock()
        horizon = self._horizon(horizon)
        due = [
            slot async for slot in self.store.iter_deleted_slots(expires_after=now, expires_before=now + horizon)
            if slot.get("expiry_notified_at") is None
        ]

        sent = 0
        for candidate in due:
            async with self.store.transaction() as tx:
                slot = await tx.get_slot(candidate["id"])
                if slot is None or slot["status"] != SlotStatus.DELETED or slot.get("expiry_notified_at") is not None:
                    continue
                stamped = await tx.update_slot(
                    slot["id"],
                    {"status": SlotStatus.DELETED.value, "recovery_expires_at": slot["recovery_expires_at"]},
                    {"expiry_notified_at": now},
                )
            if stamped is None:
                continue
            await notify(self.sink, stamped["owner_id"], NotificationType.EXPIRING_SOON, {
                "slot_id": stamped["id"],
                "slot_title": stamped.get("title"),
                "recovery_expires_at": stamped["recovery_expires_at"].isoformat(),
            })
            sent += 1
        return sent

    @staticmethod
    def _horizon(horizon: Optional[timedelta]) -> timedelta:
        return timedelta(days=EXPIRING_SOON_DAYS) if horizon is None else horizon
