# tests/conftest.py
import os

# Keep the app off MongoDB when main/dataBase get imported by the API tests
os.environ["STORE_BACKEND"] = "memory"

from datetime import datetime, timedelta

import pytest

from exchange_service import ExchangeCoordinator
from models.slot_models import SlotCreate
from notification_service import NotificationSink
from retention_service import RetentionManager
from slot_service import SlotService
from store import MemoryStore, MemoryTransaction

START = datetime(2030, 1, 1, 8, 0, 0)


class FakeClock:
    """Controllable replacement for utils.utcnow."""

    def __init__(self, now: datetime = START):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now += timedelta(**kwargs)
        return self.now


class RecordingSink(NotificationSink):
    def __init__(self):
        self.events = []

    async def emit(self, audience_user_id, kind, payload):
        self.events.append((audience_user_id, kind.value, payload))


class BrokenSink(NotificationSink):
    async def emit(self, audience_user_id, kind, payload):
        raise ConnectionError("notification backend down")


class LosingTransaction(MemoryTransaction):
    """Fails the conditional writes on chosen documents, as if another writer got there first."""

    lost = frozenset()

    async def update_slot(self, slot_id, expected, changes):
        if slot_id in self.lost:
            return None
        return await super().update_slot(slot_id, expected, changes)

    async def delete_slot(self, slot_id, expected):
        if slot_id in self.lost:
            return False
        return await super().delete_slot(slot_id, expected)

    async def update_request(self, request_id, expected, changes):
        if request_id in self.lost:
            return None
        return await super().update_request(request_id, expected, changes)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def store():
    return MemoryStore()


@pytest.fixture
def sink():
    return RecordingSink()


@pytest.fixture
def broken_sink():
    return BrokenSink()


@pytest.fixture
def slots(store, clock):
    return SlotService(store, clock)


@pytest.fixture
def coordinator(store, sink, clock):
    return ExchangeCoordinator(store, sink, clock)


@pytest.fixture
def retention(store, sink, clock):
    return RetentionManager(store, sink, clock)


@pytest.fixture
def make_slot(slots, clock):
    """Async factory: await make_slot("u1", status="open")."""
    counter = {"n": 0}

    async def _make(owner_id, status="busy", title=None, hours=1):
        counter["n"] += 1
        start = clock() + timedelta(days=1, hours=counter["n"])
        return await slots.create_slot(owner_id, SlotCreate(
            title=title or f"Slot {counter['n']}",
            start_time=start,
            end_time=start + timedelta(hours=hours),
            status=status,
        ))

    return _make


@pytest.fixture
def lose_writes(store):
    """lose_writes(id, ...): later transactions on ``store`` fail their writes to those ids."""

    def _lose(*doc_ids):
        store.transaction_class = type("LosingTransaction", (LosingTransaction,), {"lost": frozenset(doc_ids)})

    return _lose
