"""
Two-party slot exchange protocol.

A request moves both slots from ``open`` to ``locked`` in the same transaction
that creates it; the lock is what keeps a slot in at most one pending request.
Resolution by the requestee either swaps the owners and settles both slots to
``busy`` or releases both back to ``open``. Notifications go out only after
the transaction has committed.
"""
import logging
from datetime import datetime
from typing import Callable, Dict, List

from errors import ConflictError, ConflictReason, ForbiddenError, NotFoundError
from models.exchange_models import ExchangeStatus
from models.notification_models import NotificationType
from models.slot_models import SlotStatus, SlotTransition, check_transition
from notification_service import NotificationSink, notify
from store import Store
from utils import utcnow

logger = logging.getLogger(__name__)


def _require_open(slot: dict, label: str) -> None:
    status = SlotStatus(slot["status"])
    if status == SlotStatus.LOCKED:
        raise ConflictError(f"{label} already has a pending exchange request", ConflictReason.PENDING_EXCHANGE)
    if status != SlotStatus.OPEN:
        raise ConflictError(f"{label} is not open for exchange", ConflictReason.SLOT_NOT_OPEN)


def _event_payload(request: dict, requester_slot: dict, requestee_slot: dict) -> dict:
    return {
        "request_id": request["id"],
        "requester_id": request["requester_id"],
        "requestee_id": request["requestee_id"],
        "requester_slot_id": request["requester_slot_id"],
        "requestee_slot_id": request["requestee_slot_id"],
        "requester_slot_title": requester_slot.get("title"),
        "requestee_slot_title": requestee_slot.get("title"),
    }


class ExchangeCoordinator:
    def __init__(self, store: Store, sink: NotificationSink, clock: Callable[[], datetime] = utcnow):
        self.store = store
        self.sink = sink
        self.clock = clock

    async def create_request(self, requester_id: str, offered_slot_id: str, target_slot_id: str) -> dict:
        now = self.clock()
        async with self.store.transaction() as tx:
            offered = await tx.get_slot(offered_slot_id)
            target = await tx.get_slot(target_slot_id)

            if offered is None or offered["owner_id"] != requester_id or offered["status"] == SlotStatus.DELETED:
                raise NotFoundError("Your slot was not found")
            if target is None or target["owner_id"] == requester_id or target["status"] == SlotStatus.DELETED:
                raise NotFoundError("Requested slot not found or not available")

            _require_open(offered, "Your slot")
            _require_open(target, "Requested slot")

            for slot in (offered, target):
                status = check_transition(SlotTransition.LOCK, slot["status"], SlotStatus.LOCKED)
                updated = await tx.update_slot(
                    slot["id"],
                    {"status": SlotStatus.OPEN.value, "owner_id": slot["owner_id"]},
                    {"status": status.value, "updated_at": now},
                )
                if updated is None:
                    raise ConflictError(f"Slot {slot['id']} is no longer open for exchange",
                                        ConflictReason.SLOT_NOT_OPEN)

            request = await tx.insert_request({
                "requester_id": requester_id,
                "requestee_id": target["owner_id"],
                "requester_slot_id": offered["id"],
                "requestee_slot_id": target["id"],
                "status": ExchangeStatus.PENDING.value,
                "created_at": now,
                "resolved_at": None,
            })

        logger.info(f"Exchange request {request['id']} created: {offered['id']} <-> {target['id']}")
        await notify(self.sink, request["requestee_id"], NotificationType.REQUEST_CREATED,
                     _event_payload(request, offered, target))
        return request

    async def resolve_request(self, request_id: str, acting_user_id: str, accept: bool) -> Dict[str, dict]:
        now = self.clock()
        async with self.store.transaction() as tx:
            request = await tx.get_request(request_id)
            if request is None:
                raise NotFoundError("Exchange request not found")
            if request["requestee_id"] != acting_user_id:
                raise ForbiddenError("Only the recipient of an exchange request can respond to it")
            if request["status"] != ExchangeStatus.PENDING:
                raise ConflictError(f"Exchange request already {request['status']}",
                                    ConflictReason.ALREADY_RESOLVED)

            requester_slot = await tx.get_slot(request["requester_slot_id"])
            requestee_slot = await tx.get_slot(request["requestee_slot_id"])
            for slot in (requester_slot, requestee_slot):
                if slot is None or slot["status"] != SlotStatus.LOCKED:
                    raise ConflictError("Exchanged slots are no longer locked by this request",
                                        ConflictReason.INVALID_TRANSITION)

            if accept:
                transition, target, outcome = SlotTransition.SETTLE, SlotStatus.BUSY, ExchangeStatus.ACCEPTED
                new_owners = {
                    requester_slot["id"]: request["requestee_id"],
                    requestee_slot["id"]: request["requester_id"],
                }
            else:
                transition, target, outcome = SlotTransition.RELEASE, SlotStatus.OPEN, ExchangeStatus.REJECTED
                new_owners = {}

            updated_slots = []
            for slot in (requester_slot, requestee_slot):
                changes = {"status": check_transition(transition, slot["status"], target).value, "updated_at": now}
                if slot["id"] in new_owners:
                    changes["owner_id"] = new_owners[slot["id"]]
                updated = await tx.update_slot(
                    slot["id"],
                    {"status": SlotStatus.LOCKED.value, "owner_id": slot["owner_id"]},
                    changes,
                )
                if updated is None:
                    raise ConflictError("Slot was modified by a concurrent request, please retry",
                                        ConflictReason.CONCURRENT_UPDATE)
                updated_slots.append(updated)

            resolved = await tx.update_request(
                request_id,
                {"status": ExchangeStatus.PENDING.value},
                {"status": outcome.value, "resolved_at": now},
            )
            if resolved is None:
                raise ConflictError("Exchange request already resolved", ConflictReason.ALREADY_RESOLVED)

        logger.info(f"Exchange request {request_id} {outcome.value} by user {acting_user_id}")
        kind = NotificationType.REQUEST_ACCEPTED if accept else NotificationType.REQUEST_REJECTED
        await notify(self.sink, resolved["requester_id"], kind,
                     _event_payload(resolved, requester_slot, requestee_slot))
        return {
            "request": resolved,
            "requester_slot": updated_slots[0],
            "requestee_slot": updated_slots[1],
        }

    async def list_open_slots(self, user_id: str) -> List[dict]:
        """Other users' slots that can be targeted by a new request."""
        return await self.store.list_slots(statuses=[SlotStatus.OPEN], exclude_owner_id=user_id)

    async def list_user_requests(self, user_id: str) -> Dict[str, List[dict]]:
        return {
            "incoming": await self.store.list_requests(requestee_id=user_id),
            "outgoing": await self.store.list_requests(requester_id=user_id),
        }
