"""
Persistence for slots, exchange requests and notifications.

Two backends share one interface:

* ``MongoStore`` keeps everything in MongoDB through motor. Multi-document
  writes run inside a client session transaction, so they need a replica set.
* ``MemoryStore`` keeps everything in process. Writes made inside a
  transaction are staged and applied in one step on commit.

Every status write is conditional: ``update_slot``/``update_request`` take an
``expected`` mapping of field values that must still hold, and return ``None``
when another writer got there first.
"""
import asyncio
import logging
from abc import ABC, abstractmethod
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Any, AsyncIterator, Dict, List, Optional

from bson import ObjectId
from bson.errors import InvalidId
from pymongo import ASCENDING, DESCENDING, ReturnDocument
from pymongo.errors import PyMongoError

from errors import ConflictError, ConflictReason
from models.slot_models import SlotStatus

logger = logging.getLogger(__name__)


def _oid(value: str) -> Optional[ObjectId]:
    try:
        return ObjectId(value)
    except (InvalidId, TypeError):
        return None


def _serialize(doc: Optional[dict]) -> Optional[dict]:
    if doc is None:
        return None
    doc["id"] = str(doc["_id"])
    del doc["_id"]
    return doc


def _deleted_slot_query(owner_id, expires_after, expires_before) -> dict:
    query: Dict[str, Any] = {"status": SlotStatus.DELETED.value}
    if owner_id is not None:
        query["owner_id"] = owner_id
    window = {}
    if expires_after is not None:
        window["$gt"] = expires_after
    if expires_before is not None:
        window["$lte"] = expires_before
    if window:
        query["recovery_expires_at"] = window
    return query


class Store(ABC):
    """Interface shared by the storage backends."""

    backend = "base"

    @abstractmethod
    def transaction(self):
        """Async context manager yielding a transaction; commits on clean exit."""
        raise NotImplementedError

    @abstractmethod
    async def get_slot(self, slot_id: str) -> Optional[dict]:
        raise NotImplementedError

    @abstractmethod
    async def get_request(self, request_id: str) -> Optional[dict]:
        raise NotImplementedError

    @abstractmethod
    async def list_slots(
        self,
        owner_id: Optional[str] = None,
        statuses: Optional[List[SlotStatus]] = None,
        exclude_owner_id: Optional[str] = None,
    ) -> List[dict]:
        """Slots matching all given filters, ordered by start time."""
        raise NotImplementedError

    @abstractmethod
    def iter_deleted_slots(
        self,
        owner_id: Optional[str] = None,
        expires_after: Optional[datetime] = None,
        expires_before: Optional[datetime] = None,
    ) -> AsyncIterator[dict]:
        """Deleted slots with expires_after < recovery_expires_at <= expires_before, soonest first."""
        raise NotImplementedError

    @abstractmethod
    async def list_requests(
        self, requester_id: Optional[str] = None, requestee_id: Optional[str] = None
    ) -> List[dict]:
        """Exchange requests matching the given parties, newest first."""
        raise NotImplementedError

    @abstractmethod
    async def insert_notification(self, doc: dict) -> str:
        raise NotImplementedError

    @abstractmethod
    async def list_notifications(
        self, user_id: str, unread_only: bool = False, skip: int = 0, limit: int = 20
    ) -> List[dict]:
        raise NotImplementedError

    @abstractmethod
    async def mark_notification_read(self, notification_id: str, user_id: str) -> bool:
        raise NotImplementedError

    async def ensure_indexes(self) -> None:
        pass


# MongoDB backend

class MongoTransaction:
    def __init__(self, db, session):
        self.db = db
        self.session = session

    async def get_slot(self, slot_id: str) -> Optional[dict]:
        oid = _oid(slot_id)
        if oid is None:
            return None
        return _serialize(await self.db.slots.find_one({"_id": oid}, session=self.session))

    async def get_request(self, request_id: str) -> Optional[dict]:
        oid = _oid(request_id)
        if oid is None:
            return None
        return _serialize(
            await self.db.exchange_requests.find_one({"_id": oid}, session=self.session)
        )

    async def insert_slot(self, doc: dict) -> dict:
        doc = dict(doc)
        result = await self.db.slots.insert_one(doc, session=self.session)
        doc["_id"] = result.inserted_id
        return _serialize(doc)

    async def update_slot(self, slot_id: str, expected: dict, changes: dict) -> Optional[dict]:
        oid = _oid(slot_id)
        if oid is None:
            return None
        updated = await self.db.slots.find_one_and_update(
            {"_id": oid, **expected},
            {"$set": changes},
            return_document=ReturnDocument.AFTER,
            session=self.session,
        )
        return _serialize(updated)

    async def delete_slot(self, slot_id: str, expected: dict) -> bool:
        oid = _oid(slot_id)
        if oid is None:
            return False
        result = await self.db.slots.delete_one({"_id": oid, **expected}, session=self.session)
        return result.deleted_count == 1

    async def insert_request(self, doc: dict) -> dict:
        doc = dict(doc)
        result = await self.db.exchange_requests.insert_one(doc, session=self.session)
        doc["_id"] = result.inserted_id
        return _serialize(doc)

    async def update_request(self, request_id: str, expected: dict, changes: dict) -> Optional[dict]:
        oid = _oid(request_id)
        if oid is None:
            return None
        updated = await self.db.exchange_requests.find_one_and_update(
            {"_id": oid, **expected},
            {"$set": changes},
            return_document=ReturnDocument.AFTER,
            session=self.session,
        )
        return _serialize(updated)


class MongoStore(Store):
    backend = "mongo"

    def __init__(self, client, db):
        self.client = client
        self.db = db

    @asynccontextmanager
    async def transaction(self):
        async with await self.client.start_session() as session:
            try:
                async with session.start_transaction():
                    yield MongoTransaction(self.db, session)
            except PyMongoError as e:
                if e.has_error_label("TransientTransactionError"):
                    logger.warning(f"Transaction aborted by write conflict: {e}")
                    raise ConflictError(
                        "Slot was modified by a concurrent request, please retry",
                        ConflictReason.CONCURRENT_UPDATE,
                    ) from e
                raise

    async def get_slot(self, slot_id: str) -> Optional[dict]:
        oid = _oid(slot_id)
        if oid is None:
            return None
        return _serialize(await self.db.slots.find_one({"_id": oid}))

    async def get_request(self, request_id: str) -> Optional[dict]:
        oid = _oid(request_id)
        if oid is None:
            return None
        return _serialize(await self.db.exchange_requests.find_one({"_id": oid}))

    async def list_slots(self, owner_id=None, statuses=None, exclude_owner_id=None) -> List[dict]:
        query: Dict[str, Any] = {}
        if owner_id is not None:
            query["owner_id"] = owner_id
        elif exclude_owner_id is not None:
            query["owner_id"] = {"$ne": exclude_owner_id}
        if statuses:
            query["status"] = {"$in": [SlotStatus(s).value for s in statuses]}

        slots = []
        async for slot in self.db.slots.find(query).sort("start_time", ASCENDING):
            slots.append(_serialize(slot))
        return slots

    async def iter_deleted_slots(self, owner_id=None, expires_after=None, expires_before=None):
        query = _deleted_slot_query(owner_id, expires_after, expires_before)
        cursor = self.db.slots.find(query).sort("recovery_expires_at", ASCENDING)
        async for slot in cursor:
            yield _serialize(slot)

    async def list_requests(self, requester_id=None, requestee_id=None) -> List[dict]:
        query = {}
        if requester_id is not None:
            query["requester_id"] = requester_id
        if requestee_id is not None:
            query["requestee_id"] = requestee_id

        requests = []
        async for request in self.db.exchange_requests.find(query).sort("created_at", DESCENDING):
            requests.append(_serialize(request))
        return requests

    async def insert_notification(self, doc: dict) -> str:
        result = await self.db.notifications.insert_one(dict(doc))
        return str(result.inserted_id)

    async def list_notifications(self, user_id, unread_only=False, skip=0, limit=20) -> List[dict]:
        query: Dict[str, Any] = {"user_id": user_id}
        if unread_only:
            query["read"] = False

        notifications = []
        cursor = self.db.notifications.find(query) \
            .sort("created_at", DESCENDING) \
            .skip(skip).limit(limit)
        async for notif in cursor:
            notifications.append(_serialize(notif))
        return notifications

    async def mark_notification_read(self, notification_id, user_id) -> bool:
        oid = _oid(notification_id)
        if oid is None:
            return False
        result = await self.db.notifications.update_one(
            {"_id": oid, "user_id": user_id},
            {"$set": {"read": True}}
        )
        return result.matched_count == 1

    async def ensure_indexes(self) -> None:
        await self.db.slots.create_index([("owner_id", ASCENDING), ("status", ASCENDING)])
        await self.db.slots.create_index([("status", ASCENDING), ("recovery_expires_at", ASCENDING)])
        await self.db.exchange_requests.create_index([("requester_id", ASCENDING), ("created_at", DESCENDING)])
        await self.db.exchange_requests.create_index([("requestee_id", ASCENDING), ("created_at", DESCENDING)])
        await self.db.notifications.create_index([("user_id", ASCENDING), ("created_at", DESCENDING)])


# In-process backend

class MemoryTransaction:
    def __init__(self, store: "MemoryStore"):
        self._store = store
        self._slots: Dict[str, Optional[dict]] = {}
        self._requests: Dict[str, Optional[dict]] = {}

    def _read(self, staged, committed, key):
        if key in staged:
            doc = staged[key]
        else:
            doc = committed.get(key)
        return dict(doc) if doc is not None else None

    @staticmethod
    def _matches(doc: Optional[dict], expected: dict) -> bool:
        return doc is not None and all(doc.get(k) == v for k, v in expected.items())

    async def get_slot(self, slot_id: str) -> Optional[dict]:
        return self._read(self._slots, self._store.slots, slot_id)

    async def get_request(self, request_id: str) -> Optional[dict]:
        return self._read(self._requests, self._store.requests, request_id)

    async def insert_slot(self, doc: dict) -> dict:
        doc = dict(doc, id=str(ObjectId()))
        self._slots[doc["id"]] = doc
        return dict(doc)

    async def update_slot(self, slot_id: str, expected: dict, changes: dict) -> Optional[dict]:
        current = self._read(self._slots, self._store.slots, slot_id)
        if not self._matches(current, expected):
            return None
        current.update(changes)
        self._slots[slot_id] = current
        return dict(current)

    async def delete_slot(self, slot_id: str, expected: dict) -> bool:
        current = self._read(self._slots, self._store.slots, slot_id)
        if not self._matches(current, expected):
            return False
        self._slots[slot_id] = None
        return True

    async def insert_request(self, doc: dict) -> dict:
        doc = dict(doc, id=str(ObjectId()))
        self._requests[doc["id"]] = doc
        return dict(doc)

    async def update_request(self, request_id: str, expected: dict, changes: dict) -> Optional[dict]:
        current = self._read(self._requests, self._store.requests, request_id)
        if not self._matches(current, expected):
            return None
        current.update(changes)
        self._requests[request_id] = current
        return dict(current)

    def commit(self) -> None:
        for staged, committed in ((self._slots, self._store.slots), (self._requests, self._store.requests)):
            for key, doc in staged.items():
                if doc is None:
                    committed.pop(key, None)
                else:
                    committed[key] = doc


class MemoryStore(Store):
    backend = "memory"
    transaction_class = MemoryTransaction

    def __init__(self):
        self.slots: Dict[str, dict] = {}
        self.requests: Dict[str, dict] = {}
        self.notifications: Dict[str, dict] = {}
        self._lock = asyncio.Lock()

    @asynccontextmanager
    async def transaction(self):
        # One writer at a time; readers only ever see committed documents
        async with self._lock:
            tx = self.transaction_class(self)
            yield tx
            tx.commit()

    async def get_slot(self, slot_id: str) -> Optional[dict]:
        slot = self.slots.get(slot_id)
        return dict(slot) if slot is not None else None

    async def get_request(self, request_id: str) -> Optional[dict]:
        request = self.requests.get(request_id)
        return dict(request) if request is not None else None

    async def list_slots(self, owner_id=None, statuses=None, exclude_owner_id=None) -> List[dict]:
        wanted = {SlotStatus(s).value for s in statuses} if statuses else None
        slots = [
            dict(slot) for slot in self.slots.values()
            if (owner_id is None or slot["owner_id"] == owner_id)
            and (exclude_owner_id is None or slot["owner_id"] != exclude_owner_id)
            and (wanted is None or slot["status"] in wanted)
        ]
        return sorted(slots, key=lambda slot: slot["start_time"])

    async def iter_deleted_slots(self, owner_id=None, expires_after=None, expires_before=None):
        matching = [
            dict(slot) for slot in self.slots.values()
            if slot["status"] == SlotStatus.DELETED.value
            and (owner_id is None or slot["owner_id"] == owner_id)
            and (expires_after is None or slot["recovery_expires_at"] > expires_after)
            and (expires_before is None or slot["recovery_expires_at"] <= expires_before)
        ]
        for slot in sorted(matching, key=lambda slot: slot["recovery_expires_at"]):
            yield slot

    async def list_requests(self, requester_id=None, requestee_id=None) -> List[dict]:
        requests = [
            dict(request) for request in self.requests.values()
            if (requester_id is None or request["requester_id"] == requester_id)
            and (requestee_id is None or request["requestee_id"] == requestee_id)
        ]
        return sorted(requests, key=lambda request: request["created_at"], reverse=True)

    async def insert_notification(self, doc: dict) -> str:
        notification_id = str(ObjectId())
        self.notifications[notification_id] = dict(doc, id=notification_id)
        return notification_id

    async def list_notifications(self, user_id, unread_only=False, skip=0, limit=20) -> List[dict]:
        notifications = [
            dict(notif) for notif in self.notifications.values()
            if notif["user_id"] == user_id and not (unread_only and notif["read"])
        ]
        notifications.sort(key=lambda notif: notif["created_at"], reverse=True)
        return notifications[skip:skip + limit]

    async def mark_notification_read(self, notification_id, user_id) -> bool:
        notif = self.notifications.get(notification_id)
        if notif is None or notif["user_id"] != user_id:
            return False
        notif["read"] = True
        return True
