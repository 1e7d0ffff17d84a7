"""
Booking transactions.

Every function here that changes capacity runs as one transaction which first
claims the affected slot row(s) through ``claim_slot``, then validates, then
writes with guarded updates. A failed check anywhere rolls back the whole unit.
"""
import logging
from datetime import datetime

from sqlalchemy import case, update

from models import db
from models.booking import Booking, BookingPackageAllocation
from models.booking_lock import BookingLock
from models.customer import Customer
from models.service import Service
from models.slot import Slot
from models.tenant import Tenant
from security.rbac import Capability, can
from services.capacity import Allocation, allocate, refund
from services.errors import (
    AccessDenied,
    CapacityUnavailable,
    Conflict,
    InvalidInput,
    InvalidStateTransition,
    LockExpired,
    LockInvalid,
    NotEnoughCapacity,
    NotFound,
    TenantMismatch,
)
from services.exhaustion import record_exhaustion
from services.lock_manager import claim_slot, locked_capacity
from services.transaction import atomic

log = logging.getLogger(__name__)

STATUS_TRANSITIONS = {
    "pending": {"confirmed", "checked_in", "completed", "cancelled"},
    "confirmed": {"checked_in", "completed", "cancelled"},
    "checked_in": {"completed", "cancelled"},
    "completed": set(),
    "cancelled": set(),
}

PAYMENT_TRANSITIONS = {
    "unpaid": {"paid", "paid_manual", "awaiting_payment", "refunded"},
    "awaiting_payment": {"paid", "paid_manual", "unpaid", "refunded"},
    "paid": {"refunded", "unpaid", "awaiting_payment"},
    "paid_manual": {"refunded", "unpaid", "awaiting_payment"},
    "refunded": {"unpaid", "awaiting_payment"},
}

TERMINAL_STATUSES = {"completed", "cancelled"}

# fields staff may edit in place; None means "leave as is" for the non-nullable ones
_EDITABLE_FIELDS = ("customer_name", "customer_phone", "customer_email", "total_price", "notes")
_NULLABLE_FIELDS = {"customer_email", "notes"}


# ---------- capacity writes ----------

def _consume_slot(slot: Slot, quantity: int) -> None:
    result = db.session.execute(
        update(Slot)
        .where(Slot.id == slot.id, Slot.remaining_capacity >= quantity)
        .values(remaining_capacity=Slot.remaining_capacity - quantity)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        raise NotEnoughCapacity("Not enough capacity available for this slot")
    db.session.expire(slot)


def _restore_slot(slot: Slot, quantity: int) -> None:
    restored = Slot.remaining_capacity + quantity
    db.session.execute(
        update(Slot)
        .where(Slot.id == slot.id)
        .values(remaining_capacity=case((restored > Slot.total_capacity, Slot.total_capacity), else_=restored))
        .execution_options(synchronize_session=False)
    )
    db.session.expire(slot)


def _available(slot: Slot, now: datetime, exclude_lock_id=None) -> int:
    return slot.remaining_capacity - locked_capacity(slot.id, now, exclude_lock_id=exclude_lock_id)


# ---------- create ----------

def _consume_lock(lock_id: str, session_id, slot: Slot, visitor_count: int, now: datetime) -> BookingLock:
    lock = BookingLock.query.filter_by(id=lock_id).populate_existing().first()
    if lock is None or not session_id or lock.session_id != session_id:
        raise LockInvalid("Lock not found or does not belong to this session")
    if lock.slot_id != slot.id:
        raise LockInvalid("Lock does not match the selected slot")
    if lock.lock_expires_at <= now:
        raise LockExpired("Booking lock has expired. Please select the slot again.")
    if lock.reserved_capacity < visitor_count:
        raise LockInvalid(
            f"Lock reserved capacity ({lock.reserved_capacity}) is less than "
            f"requested visitor count ({visitor_count})"
        )
    return lock


def _tenant_customer(customer_id: str, tenant_id: str) -> Customer:
    customer = db.session.get(Customer, customer_id)
    if customer is None:
        raise NotFound("Customer not found")
    if customer.tenant_id != tenant_id:
        raise TenantMismatch("Access denied")
    return customer


def create_booking(req, principal) -> Booking:
    """
    Create a booking from a validated ``CreateBookingRequest``.

    Consumes slot capacity (and the presented lock, if any), draws package
    capacity oldest subscription first when ``customer_id`` is given, records
    exhausted packages, and commits all of it together.
    """
    if req.visitor_count != req.adult_count + req.child_count:
        raise InvalidInput(
            f"visitor_count ({req.visitor_count}) must equal adult_count ({req.adult_count}) "
            f"+ child_count ({req.child_count})",
            field="visitor_count",
        )
    if principal.tenant_id != req.tenant_id:
        raise TenantMismatch("Access denied. You cannot create bookings for another tenant.")

    session_id = req.session_id or principal.user_id

    with atomic():
        slot = claim_slot(req.slot_id)
        now = datetime.utcnow()

        tenant = db.session.get(Tenant, req.tenant_id)
        if tenant is None:
            raise NotFound("Tenant not found")
        if not tenant.is_active:
            raise AccessDenied("Tenant account is deactivated")

        service = db.session.get(Service, req.service_id)
        if service is None:
            raise NotFound("Service not found")
        if slot.tenant_id != tenant.id or service.tenant_id != tenant.id:
            raise TenantMismatch("Access denied")
        if slot.service_id != service.id:
            raise InvalidInput("Slot does not belong to the selected service", field="service_id")
        if not service.is_active:
            raise CapacityUnavailable("Service is not active")
        if not slot.is_available:
            raise CapacityUnavailable("Slot is not available")

        lock = None
        if req.lock_id:
            lock = _consume_lock(req.lock_id, session_id, slot, req.visitor_count, now)

        customer = _tenant_customer(req.customer_id, tenant.id) if req.customer_id else None

        available = _available(slot, now, exclude_lock_id=lock.id if lock else None)
        if available < req.visitor_count:
            raise NotEnoughCapacity(
                f"Not enough tickets available. Only {max(available, 0)} available, "
                f"but {req.visitor_count} requested.",
                available_capacity=max(available, 0),
            )
        _consume_slot(slot, req.visitor_count)

        if customer is not None:
            allocation = allocate(customer.id, service.id, req.visitor_count)
        else:
            allocation = Allocation(requested=req.visitor_count)

        paid_quantity = allocation.shortfall
        total_price = req.total_price
        if total_price is None:
            total_price = (service.base_price or 0) * paid_quantity

        booking = Booking(
            tenant_id=tenant.id,
            service_id=service.id,
            slot_id=slot.id,
            customer_id=customer.id if customer else None,
            customer_name=req.customer_name,
            customer_phone=req.customer_phone,
            customer_email=req.customer_email,
            visitor_count=req.visitor_count,
            adult_count=req.adult_count,
            child_count=req.child_count,
            total_price=total_price,
            status="pending",
            payment_status="paid" if paid_quantity == 0 else "unpaid",
            package_covered_quantity=allocation.covered,
            paid_quantity=paid_quantity,
            package_subscription_id=allocation.first_subscription_id,
            offer_id=req.offer_id,
            notes=req.notes,
            language=req.language,
            created_by_user_id=principal.user_id,
        )
        db.session.add(booking)
        db.session.flush()

        for debit in allocation.debits:
            db.session.add(BookingPackageAllocation(
                booking_id=booking.id,
                subscription_id=debit.subscription_id,
                service_id=debit.service_id,
                quantity=debit.quantity,
            ))

        record_exhaustion(allocation.exhausted, now=now)

        if lock is not None:
            db.session.delete(lock)

    log.info(
        "Booking %s created on slot %s (%s visitors, %s package-covered)",
        booking.id, req.slot_id, req.visitor_count, allocation.covered,
    )
    return booking


# ---------- read / load ----------

def _load_booking(booking_id: str, principal, for_update: bool = True) -> Booking:
    q = Booking.query.filter_by(id=booking_id)
    if for_update:
        q = q.with_for_update()
    booking = q.populate_existing().first()
    if booking is None:
        raise NotFound("Booking not found")
    if booking.tenant_id != principal.tenant_id:
        raise TenantMismatch("Access denied")
    return booking


def get_booking(booking_id: str, principal) -> Booking:
    return _load_booking(booking_id, principal, for_update=False)


# ---------- update / reschedule / cancel ----------

def _transition_status(booking: Booking, new_status: str, now: datetime) -> None:
    if new_status not in STATUS_TRANSITIONS.get(booking.status, set()):
        raise InvalidStateTransition(f"Cannot change booking status from {booking.status} to {new_status}")

    if new_status == "cancelled":
        slot = claim_slot(booking.slot_id)
        _restore_slot(slot, booking.visitor_count)
        refund(booking.id)
        booking.cancelled_at = now

    booking.status = new_status


def _move_booking(booking: Booking, new_slot_id: str, now: datetime) -> None:
    if booking.status in TERMINAL_STATUSES:
        raise InvalidStateTransition(f"Cannot edit booking time for bookings with status: {booking.status}")

    old_slot_id = booking.slot_id
    claimed = {}
    # fixed order so two opposite moves can't deadlock
    for slot_id in sorted({old_slot_id, new_slot_id}):
        message = "New time slot not found" if slot_id == new_slot_id else "Slot not found"
        claimed[slot_id] = claim_slot(slot_id, missing_message=message)
    db.session.refresh(booking)

    new_slot = claimed[new_slot_id]
    if new_slot.tenant_id != booking.tenant_id:
        raise TenantMismatch("Access denied")
    if new_slot.service_id != booking.service_id:
        raise InvalidInput("New time slot belongs to a different service", field="slot_id")
    if not new_slot.is_available:
        raise CapacityUnavailable("Selected time slot is not available")
    if new_slot.start_time < now:
        raise InvalidInput("Cannot reschedule to a time slot in the past", field="slot_id")

    available = _available(new_slot, now)
    if available < booking.visitor_count:
        raise NotEnoughCapacity(
            f"Not enough capacity. Available: {max(available, 0)}, Required: {booking.visitor_count}",
            available_capacity=max(available, 0),
        )

    _restore_slot(claimed[old_slot_id], booking.visitor_count)
    _consume_slot(new_slot, booking.visitor_count)
    booking.slot_id = new_slot_id


def update_booking(booking_id: str, req, principal):
    """
    Apply a staff edit. Returns ``(booking, slot_changed)``.

    A ``slot_id`` change reschedules (tenant_admin only); ``status`` moves along
    ``STATUS_TRANSITIONS`` and cancelling gives the seats back to the slot and
    the package tickets back to their subscriptions.

    Cancelling here is not gated on payment status. Only the DELETE path
    (``cancel_booking``) asks for ``allow_delete_paid``; staff are steered to
    cancel rather than delete.
    """
    fields = req.model_fields_set
    wants_move = "slot_id" in fields and req.slot_id is not None
    wants_status = "status" in fields and req.status is not None

    if wants_move and not can(principal, Capability.RESCHEDULE_BOOKING):
        raise AccessDenied("Access denied. Only tenant owners can reschedule bookings.")
    if wants_move and wants_status and req.status == "cancelled":
        raise InvalidInput("Cannot reschedule and cancel a booking in one update", field="status")

    slot_changed = False
    with atomic():
        booking = _load_booking(booking_id, principal)
        now = datetime.utcnow()

        if wants_move and req.slot_id != booking.slot_id:
            _move_booking(booking, req.slot_id, now)
            slot_changed = True

        for name in _EDITABLE_FIELDS:
            if name not in fields:
                continue
            value = getattr(req, name)
            if value is None and name not in _NULLABLE_FIELDS:
                continue
            setattr(booking, name, value)

        if wants_status and req.status != booking.status:
            _transition_status(booking, req.status, now)

        booking.updated_at = now

    if slot_changed:
        log.info("Booking %s rescheduled to slot %s", booking_id, req.slot_id)
    return booking, slot_changed


def cancel_booking(booking_id: str, principal, allow_delete_paid: bool = False, reason=None) -> Booking:
    """
    Soft-delete a booking. Paid bookings need ``allow_delete_paid``; a status
    change to ``cancelled`` through ``update_booking`` has no such guard.
    """
    with atomic():
        booking = _load_booking(booking_id, principal)
        now = datetime.utcnow()

        if booking.payment_status in ("paid", "paid_manual") and not allow_delete_paid:
            raise AccessDenied("Cannot delete paid bookings. Set allow_delete_paid=true to override.")
        if booking.status == "cancelled":
            raise InvalidStateTransition("Booking is already cancelled")

        _transition_status(booking, "cancelled", now)
        note = f"[Cancelled {now.isoformat(timespec='seconds')}" + (f": {reason}]" if reason else "]")
        booking.notes = f"{booking.notes}\n{note}" if booking.notes else note
        booking.updated_at = now

    log.info("Booking %s cancelled", booking_id)
    return booking


# ---------- payment ----------

def update_payment_status(booking_id: str, new_status: str, principal):
    """Returns ``(booking, previous_status)``."""
    with atomic():
        booking = _load_booking(booking_id, principal)
        old_status = booking.payment_status
        allowed = PAYMENT_TRANSITIONS.get(old_status, set())
        if new_status not in allowed:
            raise InvalidInput(
                f"Invalid payment status transition: {old_status} -> {new_status}. "
                f"Allowed: {', '.join(sorted(allowed)) or 'none'}",
                field="payment_status",
            )
        booking.payment_status = new_status
        booking.updated_at = datetime.utcnow()
    return booking, old_status


def mark_paid(booking_id: str, principal):
    """Cashier shortcut: ``unpaid``/``awaiting_payment`` -> ``paid_manual``."""
    with atomic():
        booking = _load_booking(booking_id, principal)
        old_status = booking.payment_status
        if old_status not in ("unpaid", "awaiting_payment"):
            raise InvalidInput(f"Booking cannot be marked paid from status {old_status}", field="payment_status")
        booking.payment_status = "paid_manual"
        booking.updated_at = datetime.utcnow()
    return booking, old_status


# ---------- check-in ----------

def check_in_booking(booking_id: str, principal) -> Booking:
    """
    Record the gate scan of a booking's ticket and move it to ``checked_in``.

    The flag flips with a guarded update, so of two concurrent scans of the
    same ticket exactly one succeeds; the other gets a ``Conflict`` naming
    who scanned it first.
    """
    with atomic():
        booking = _load_booking(booking_id, principal)
        now = datetime.utcnow()

        checkable = booking.status == "checked_in" or "checked_in" in STATUS_TRANSITIONS.get(booking.status, set())
        if not booking.qr_scanned and not checkable:
            raise InvalidStateTransition(f"Cannot check in a booking with status {booking.status}")

        result = db.session.execute(
            update(Booking)
            .where(Booking.id == booking.id, Booking.qr_scanned.is_(False))
            .values(
                qr_scanned=True,
                qr_scanned_at=now,
                qr_scanned_by_user_id=principal.user_id,
                status="checked_in",
                updated_at=now,
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            db.session.refresh(booking)
            raise Conflict(
                "QR code has already been scanned",
                booking={
                    "id": booking.id,
                    "customer_name": booking.customer_name,
                    "qr_scanned_at": booking.qr_scanned_at.isoformat() if booking.qr_scanned_at else None,
                    "qr_scanned_by_user_id": booking.qr_scanned_by_user_id,
                },
            )
        db.session.expire(booking)

    log.info("Booking %s checked in by %s", booking_id, principal.user_id)
    return booking
