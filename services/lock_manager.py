"""
Slot lock manager.

A lock is a short-lived, session-scoped reservation of slot capacity held while
a customer confirms checkout. Locks never touch ``Slot.remaining_capacity``;
effective availability is ``remaining_capacity`` minus the capacity of every
unexpired lock on the slot. Expired rows are ignored by every read (lazy
expiry), so nothing needs to sweep them for correctness.
"""
import logging
from datetime import datetime, timedelta

from sqlalchemy import func, update

from models import db
from models.booking_lock import BookingLock
from models.slot import Slot
from services.errors import CapacityUnavailable, InvalidInput, NotFound
from services.transaction import atomic

log = logging.getLogger(__name__)

DEFAULT_LOCK_SECONDS = 120


def claim_slot(slot_id: str, missing_message: str = "Slot not found") -> Slot:
    """
    Take the write lock on a slot row and return the fresh row.

    Must be the first write of the surrounding transaction. The versioned UPDATE
    holds the row lock on Postgres and the database write lock on SQLite until
    commit, so concurrent acquire/create/reschedule calls on one slot serialize.
    """
    result = db.session.execute(
        update(Slot)
        .where(Slot.id == slot_id)
        .values(version=Slot.version + 1)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount == 0:
        raise NotFound(missing_message)
    return db.session.get(Slot, slot_id, populate_existing=True)


def locked_capacity(slot_id: str, now: datetime | None = None, exclude_lock_id: str | None = None) -> int:
    now = now or datetime.utcnow()
    q = (
        db.session.query(func.coalesce(func.sum(BookingLock.reserved_capacity), 0))
        .filter(BookingLock.slot_id == slot_id, BookingLock.lock_expires_at > now)
    )
    if exclude_lock_id:
        q = q.filter(BookingLock.id != exclude_lock_id)
    return int(q.scalar() or 0)


def locked_capacity_by_slot(slot_ids, now: datetime | None = None) -> dict:
    if not slot_ids:
        return {}
    now = now or datetime.utcnow()
    rows = (
        db.session.query(BookingLock.slot_id, func.sum(BookingLock.reserved_capacity))
        .filter(BookingLock.slot_id.in_(list(slot_ids)), BookingLock.lock_expires_at > now)
        .group_by(BookingLock.slot_id)
        .all()
    )
    return {slot_id: int(total or 0) for slot_id, total in rows}


def acquire_lock(slot_id: str, session_id: str, reserved_capacity: int,
                 lock_seconds: int = DEFAULT_LOCK_SECONDS) -> BookingLock:
    if reserved_capacity is None or reserved_capacity < 1:
        raise InvalidInput("reserved_capacity must be at least 1", field="reserved_capacity")
    if not session_id:
        raise InvalidInput("session_id required", field="session_id")

    with atomic():
        slot = claim_slot(slot_id)
        now = datetime.utcnow()

        if not slot.is_available:
            raise CapacityUnavailable("Slot is not available")
        if slot.start_time <= now:
            raise CapacityUnavailable("Slot has already started")

        available = slot.remaining_capacity - locked_capacity(slot.id, now)
        if available < reserved_capacity:
            raise CapacityUnavailable(
                f"Not enough tickets available. Only {max(available, 0)} available, "
                f"but {reserved_capacity} requested.",
                available_capacity=max(available, 0),
            )

        lock = BookingLock(
            slot_id=slot.id,
            session_id=session_id,
            reserved_capacity=reserved_capacity,
            lock_expires_at=now + timedelta(seconds=lock_seconds),
        )
        db.session.add(lock)

    log.info("Lock %s acquired on slot %s (%s seats, %ss)", lock.id, slot_id, reserved_capacity, lock_seconds)
    return lock


def get_session_lock(lock_id: str, session_id: str) -> BookingLock | None:
    """The lock row if it belongs to ``session_id``, expired or not."""
    return BookingLock.query.filter_by(id=lock_id, session_id=session_id).first()


def validate_lock(lock_id: str, session_id: str, now: datetime | None = None) -> bool:
    now = now or datetime.utcnow()
    lock = get_session_lock(lock_id, session_id)
    return lock is not None and lock.lock_expires_at > now


def seconds_remaining(lock: BookingLock, now: datetime | None = None) -> int:
    now = now or datetime.utcnow()
    return max(0, int((lock.lock_expires_at - now).total_seconds()))


def release_lock(lock_id: str, session_id: str) -> None:
    with atomic():
        deleted = (
            BookingLock.query
            .filter_by(id=lock_id, session_id=session_id)
            .delete(synchronize_session=False)
        )
        if not deleted:
            raise NotFound("Lock not found or does not belong to session")
    log.info("Lock %s released", lock_id)


def active_locks_for_slots(slot_ids, now: datetime | None = None) -> list:
    if not slot_ids:
        return []
    now = now or datetime.utcnow()
    return (
        BookingLock.query
        .filter(BookingLock.slot_id.in_(list(slot_ids)), BookingLock.lock_expires_at > now)
        .order_by(BookingLock.lock_expires_at.asc())
        .all()
    )


def purge_expired_locks(now: datetime | None = None) -> int:
    """Housekeeping only; capacity reads already ignore expired rows."""
    now = now or datetime.utcnow()
    with atomic():
        deleted = (
            BookingLock.query
            .filter(BookingLock.lock_expires_at <= now)
            .delete(synchronize_session=False)
        )
    return deleted
