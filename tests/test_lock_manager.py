import uuid
from datetime import timedelta

import pytest

from conftest import refreshed
from models import db
from models.booking_lock import BookingLock
from models.slot import Slot
from services import lock_manager
from services.errors import CapacityUnavailable, InvalidInput, NotFound


def test_acquire_reserves_without_touching_remaining_capacity(catalog):
    _, _, slot = catalog

    lock = lock_manager.acquire_lock(slot.id, "session-a", 3)

    slot = refreshed(Slot, slot.id)
    assert slot.remaining_capacity == 10
    assert lock_manager.locked_capacity(slot.id) == 3
    assert slot.remaining_capacity - lock_manager.locked_capacity(slot.id) == 7
    assert lock_manager.validate_lock(lock.id, "session-a") is True


def test_acquire_counts_other_sessions_locks(factory):
    tenant = factory.tenant()
    slot = factory.slot(factory.service(tenant), capacity=5)

    lock_manager.acquire_lock(slot.id, "session-a", 3)
    with pytest.raises(CapacityUnavailable) as exc:
        lock_manager.acquire_lock(slot.id, "session-b", 3)
    assert exc.value.details["available_capacity"] == 2

    lock_manager.acquire_lock(slot.id, "session-b", 2)
    assert lock_manager.locked_capacity(slot.id) == 5


def test_expired_locks_free_their_capacity(factory):
    tenant = factory.tenant()
    slot = factory.slot(factory.service(tenant), capacity=5)

    first = lock_manager.acquire_lock(slot.id, "session-a", 5)
    factory.expire_lock(first.id)

    assert lock_manager.validate_lock(first.id, "session-a") is False
    assert lock_manager.locked_capacity(slot.id) == 0

    second = lock_manager.acquire_lock(slot.id, "session-b", 5)
    assert lock_manager.validate_lock(second.id, "session-b") is True


def test_acquire_rejects_bad_requests(factory):
    tenant = factory.tenant()
    service = factory.service(tenant)
    past = factory.slot(service, starts_in=timedelta(hours=-1))
    closed = factory.slot(service, starts_in=timedelta(days=2), is_available=False)
    open_slot = factory.slot(service, starts_in=timedelta(days=3))

    with pytest.raises(NotFound):
        lock_manager.acquire_lock(str(uuid.uuid4()), "s", 1)
    with pytest.raises(CapacityUnavailable):
        lock_manager.acquire_lock(past.id, "s", 1)
    with pytest.raises(CapacityUnavailable):
        lock_manager.acquire_lock(closed.id, "s", 1)
    with pytest.raises(InvalidInput):
        lock_manager.acquire_lock(open_slot.id, "s", 0)

    assert BookingLock.query.count() == 0


def test_validate_and_release_are_scoped_to_session(catalog):
    _, _, slot = catalog
    lock = lock_manager.acquire_lock(slot.id, "owner", 2)

    assert lock_manager.validate_lock(lock.id, "someone-else") is False
    with pytest.raises(NotFound):
        lock_manager.release_lock(lock.id, "someone-else")

    lock_manager.release_lock(lock.id, "owner")
    assert db.session.get(BookingLock, lock.id) is None


def test_purge_expired_locks_only_removes_expired(catalog, factory):
    _, _, slot = catalog
    stale = lock_manager.acquire_lock(slot.id, "a", 1)
    live = lock_manager.acquire_lock(slot.id, "b", 1)
    factory.expire_lock(stale.id)

    assert lock_manager.purge_expired_locks() == 1
    assert [l.id for l in lock_manager.active_locks_for_slots([slot.id])] == [live.id]


# ---------- HTTP ----------

def test_anonymous_lock_lifecycle(client, catalog):
    _, _, slot = catalog

    resp = client.post("/bookings/lock", json={"slot_id": slot.id, "reserved_capacity": 2})
    assert resp.status_code == 201
    body = resp.get_json()
    assert body["session_id"].startswith("session_")
    assert body["reserved_capacity"] == 2
    assert 0 < body["expires_in_seconds"] <= 120

    lock_id, session_id = body["lock_id"], body["session_id"]

    resp = client.get(f"/bookings/lock/{lock_id}/validate", query_string={"session_id": session_id})
    assert resp.status_code == 200
    assert resp.get_json()["valid"] is True

    resp = client.get(f"/bookings/lock/{lock_id}/validate")
    assert resp.status_code == 400

    resp = client.post(f"/bookings/lock/{lock_id}/release", json={"session_id": "other"})
    assert resp.status_code == 404

    resp = client.post(f"/bookings/lock/{lock_id}/release", json={"session_id": session_id})
    assert resp.status_code == 200

    resp = client.get(f"/bookings/lock/{lock_id}/validate", query_string={"session_id": session_id})
    assert resp.status_code == 404


def test_validate_expired_lock_returns_conflict(client, catalog, factory):
    _, _, slot = catalog
    body = client.post("/bookings/lock", json={"slot_id": slot.id, "session_id": "checkout-1"}).get_json()
    factory.expire_lock(body["lock_id"])

    resp = client.get(f"/bookings/lock/{body['lock_id']}/validate", query_string={"session_id": "checkout-1"})
    assert resp.status_code == 409
    assert resp.get_json()["valid"] is False


def test_lock_over_capacity_is_conflict(client, factory):
    tenant = factory.tenant()
    slot = factory.slot(factory.service(tenant), capacity=2)

    resp = client.post("/bookings/lock", json={"slot_id": slot.id, "reserved_capacity": 3})
    assert resp.status_code == 409
    assert resp.get_json()["code"] == "capacity_unavailable"


def test_lock_rejects_malformed_slot_id(client):
    resp = client.post("/bookings/lock", json={"slot_id": "not-a-uuid"})
    assert resp.status_code == 400
    assert resp.get_json()["field"] == "slot_id"


def test_list_active_locks(client, catalog):
    _, _, slot = catalog
    client.post("/bookings/lock", json={"slot_id": slot.id, "reserved_capacity": 1})

    resp = client.get("/bookings/locks", query_string={"slot_ids": slot.id})
    assert resp.status_code == 200
    assert [l["slot_id"] for l in resp.get_json()] == [slot.id]

    resp = client.post("/bookings/locks", json={"slot_ids": [slot.id, str(uuid.uuid4())]})
    assert resp.status_code == 200
    assert len(resp.get_json()) == 1

    resp = client.get("/bookings/locks", query_string={"slot_ids": "abc"})
    assert resp.status_code == 400
