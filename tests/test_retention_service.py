from datetime import timedelta

import pytest

from errors import ConflictError, NotFoundError

RETENTION = timedelta(days=30)


@pytest.mark.asyncio
@pytest.mark.parametrize("status", ["busy", "open"])
async def test_soft_delete_then_restore_is_a_no_op(retention, store, clock, make_slot, status):
    slot = await make_slot("u1", status=status)

    deleted = await retention.soft_delete(slot["id"], "u1")
    assert deleted["status"] == "deleted"
    assert deleted["status_before_delete"] == status
    assert deleted["deleted_at"] == clock()
    assert deleted["deleted_by"] == "u1"
    assert deleted["recovery_expires_at"] == clock() + RETENTION

    restored = await retention.restore(slot["id"], "u1")
    assert restored["status"] == status
    assert restored["owner_id"] == "u1"
    for field in ("status_before_delete", "deleted_at", "deleted_by", "recovery_expires_at"):
        assert restored[field] is None


@pytest.mark.asyncio
async def test_locked_slot_cannot_be_deleted(retention, coordinator, store, make_slot):
    mine = await make_slot("u1", status="open")
    theirs = await make_slot("u2", status="open")
    await coordinator.create_request("u1", mine["id"], theirs["id"])

    with pytest.raises(ConflictError) as exc:
        await retention.soft_delete(mine["id"], "u1")

    assert exc.value.status_code == 409
    assert exc.value.reason == "pending_exchange"
    assert "pending exchange" in exc.value.message
    assert (await store.get_slot(mine["id"]))["status"] == "locked"


@pytest.mark.asyncio
async def test_soft_delete_twice_conflicts(retention, make_slot):
    slot = await make_slot("u1")
    await retention.soft_delete(slot["id"], "u1")
    with pytest.raises(ConflictError) as exc:
        await retention.soft_delete(slot["id"], "u1")
    assert exc.value.reason == "already_deleted"


@pytest.mark.asyncio
async def test_only_owner_or_admin_can_delete(retention, make_slot):
    slot = await make_slot("u1")
    with pytest.raises(NotFoundError):
        await retention.soft_delete(slot["id"], "u2")
    with pytest.raises(NotFoundError):
        await retention.soft_delete("65a000000000000000000000", "u1")

    deleted = await retention.soft_delete(slot["id"], "admin", is_admin=True)
    assert deleted["deleted_by"] == "admin"
    restored = await retention.restore(slot["id"], "admin", is_admin=True)
    assert restored["owner_id"] == "u1"


@pytest.mark.asyncio
async def test_restore_one_tick_before_expiry(retention, clock, make_slot):
    slot = await make_slot("u1", status="open")
    deleted = await retention.soft_delete(slot["id"], "u1")

    clock.now = deleted["recovery_expires_at"] - timedelta(microseconds=1)
    restored = await retention.restore(slot["id"], "u1")
    assert restored["status"] == "open"


@pytest.mark.asyncio
@pytest.mark.parametrize("past_expiry", [timedelta(0), timedelta(seconds=1), timedelta(days=5)])
async def test_restore_after_expiry_conflicts(retention, store, clock, make_slot, past_expiry):
    slot = await make_slot("u1")
    deleted = await retention.soft_delete(slot["id"], "u1")

    clock.now = deleted["recovery_expires_at"] + past_expiry
    with pytest.raises(ConflictError) as exc:
        await retention.restore(slot["id"], "u1")
    assert exc.value.reason == "recovery_expired"
    assert (await store.get_slot(slot["id"]))["status"] == "deleted"


@pytest.mark.asyncio
async def test_restore_requires_deleted_slot(retention, make_slot):
    slot = await make_slot("u1")
    with pytest.raises(ConflictError) as exc:
        await retention.restore(slot["id"], "u1")
    assert exc.value.reason == "not_deleted"


@pytest.mark.asyncio
async def test_permanent_delete_of_live_slot_conflicts(retention, store, make_slot):
    slot = await make_slot("u1", status="open")
    with pytest.raises(ConflictError) as exc:
        await retention.permanent_delete(slot["id"], "u1")
    assert exc.value.reason == "not_deleted"
    assert await store.get_slot(slot["id"]) == slot


@pytest.mark.asyncio
async def test_permanent_delete_from_trash(retention, store, make_slot):
    slot = await make_slot("u1")
    await retention.soft_delete(slot["id"], "u1")

    await retention.permanent_delete(slot["id"], "u1")

    assert await store.get_slot(slot["id"]) is None
    with pytest.raises(NotFoundError):
        await retention.restore(slot["id"], "u1")


@pytest.mark.asyncio
async def test_trash_lists_restorable_slots_newest_first(retention, clock, make_slot):
    first = await make_slot("u1")
    second = await make_slot("u1")
    await make_slot("u1")
    await retention.soft_delete(first["id"], "u1")
    clock.advance(days=1)
    await retention.soft_delete(second["id"], "u1")

    assert [s["id"] for s in await retention.list_trash("u1")] == [second["id"], first["id"]]
    assert await retention.list_trash("u2") == []

    clock.advance(days=29)
    assert [s["id"] for s in await retention.list_trash("u1")] == [second["id"]]


@pytest.mark.asyncio
async def test_expiring_soon_is_lazy_and_restartable(retention, clock, make_slot):
    soon = await make_slot("u1")
    later = await make_slot("u1")
    await retention.soft_delete(soon["id"], "u1")
    clock.advance(days=10)
    await retention.soft_delete(later["id"], "u1")

    clock.advance(days=18)
    expiring = retention.list_expiring_soon("u1", timedelta(days=3))
    assert [s["id"] async for s in expiring] == [soon["id"]]
    assert [s["id"] async for s in expiring] == [soon["id"]]

    clock.advance(days=3)
    assert [s["id"] async for s in expiring] == []

    clock.advance(days=7)
    assert [s["id"] async for s in expiring] == [later["id"]]


@pytest.mark.asyncio
async def test_purge_destroys_only_expired_slots(retention, store, clock, make_slot):
    old = await make_slot("u1")
    recent = await make_slot("u2")
    live = await make_slot("u1")
    await retention.soft_delete(old["id"], "u1")
    clock.advance(days=5)
    await retention.soft_delete(recent["id"], "u2")

    clock.advance(days=25)
    assert [s["id"] for s in await retention.find_purgeable()] == [old["id"]]

    purged = await retention.purge_expired()

    assert purged == [old["id"]]
    assert await store.get_slot(old["id"]) is None
    assert (await store.get_slot(recent["id"]))["status"] == "deleted"
    assert (await store.get_slot(live["id"]))["status"] == "busy"
    assert await retention.purge_expired() == []


@pytest.mark.asyncio
async def test_bulk_operations_report_each_slot(retention, make_slot):
    a = await make_slot("u1")
    b = await make_slot("u1", status="open")
    live = await make_slot("u1")
    await retention.soft_delete(a["id"], "u1")
    await retention.soft_delete(b["id"], "u1")

    result = await retention.bulk_restore([a["id"], live["id"], "missing"], "u1")
    assert result["succeeded"] == [a["id"]]
    assert set(result["failed"]) == {live["id"], "missing"}

    result = await retention.bulk_permanent_delete([a["id"], b["id"]], "u1")
    assert result["succeeded"] == [b["id"]]
    assert list(result["failed"]) == [a["id"]]


@pytest.mark.asyncio
async def test_notify_expiring_soon_targets_owners(retention, sink, clock, make_slot):
    slot = await make_slot("u1", title="Dentist")
    await retention.soft_delete(slot["id"], "u1")
    clock.advance(days=28)

    assert await retention.notify_expiring_soon() == 1
    user, kind, payload = sink.events[-1]
    assert (user, kind) == ("u1", "expiring-soon")
    assert payload["slot_id"] == slot["id"]
    assert payload["slot_title"] == "Dentist"


@pytest.mark.asyncio
async def test_zero_horizon_lists_nothing(retention, clock, make_slot):
    slot = await make_slot("u1")
    await retention.soft_delete(slot["id"], "u1")
    clock.advance(days=28)

    assert [s["id"] async for s in retention.list_expiring_soon("u1", timedelta(0))] == []
    assert [s["id"] async for s in retention.list_expiring_soon("u1")] == [slot["id"]]
    assert await retention.notify_expiring_soon(timedelta(0)) == 0


@pytest.mark.asyncio
async def test_expiring_soon_notice_is_sent_once_per_deletion(retention, sink, clock, make_slot):
    slot = await make_slot("u1")
    await retention.soft_delete(slot["id"], "u1")
    clock.advance(days=28)

    assert await retention.notify_expiring_soon() == 1
    clock.advance(days=1)
    assert await retention.notify_expiring_soon() == 0
    assert len(sink.events) == 1

    await retention.restore(slot["id"], "u1")
    await retention.soft_delete(slot["id"], "u1")
    clock.advance(days=28)
    assert await retention.notify_expiring_soon() == 1
    assert len(sink.events) == 2


@pytest.mark.asyncio
@pytest.mark.parametrize("operation", ["soft_delete", "restore", "permanent_delete"])
async def test_lost_write_leaves_slot_untouched(retention, store, make_slot, lose_writes, operation):
    slot = await make_slot("u1", status="open")
    if operation != "soft_delete":
        await retention.soft_delete(slot["id"], "u1")
    before = await store.get_slot(slot["id"])
    lose_writes(slot["id"])

    with pytest.raises(ConflictError) as exc:
        await getattr(retention, operation)(slot["id"], "u1")

    assert exc.value.reason == "concurrent_update"
    assert await store.get_slot(slot["id"]) == before
