import uuid

from flask import Blueprint, current_app, g, jsonify, request

from models.booking import Booking
from schemas import parse
from schemas.bookings import (
    CancelBookingRequest,
    CheckInRequest,
    CreateBookingRequest,
    LockRequest,
    PaymentStatusRequest,
    SlotIdsRequest,
    UpdateBookingRequest,
)
from security.rbac import Capability, require_capability
from services import booking_service, lock_manager
from services.errors import InvalidInput, NotFound
from services.tickets import booking_id_from_qr
from tasks.booking_tasks import create_booking_invoice, send_booking_ticket, sync_invoice_status
from tasks.dispatch import dispatch_after_commit
from utils.audit import log_event
from utils.auth_context import current_principal

booking_bp = Blueprint("booking", __name__)


def _session_id(explicit=None, generate=False):
    # explicit checkout session, then the signed-in user, then a fresh anonymous one
    if explicit:
        return explicit
    principal = current_principal()
    if principal is not None:
        return principal.user_id
    if generate:
        return f"session_{uuid.uuid4().hex}"
    return None


# ---------- CHECKOUT: slot locks ----------
@booking_bp.post("/bookings/lock")
def acquire_lock():
    req = parse(LockRequest, request.get_json(silent=True))
    session_id = _session_id(req.session_id, generate=True)

    lock = lock_manager.acquire_lock(
        req.slot_id,
        session_id,
        req.reserved_capacity,
        lock_seconds=current_app.config.get("BOOKING_LOCK_SECONDS", lock_manager.DEFAULT_LOCK_SECONDS),
    )

    log_event("LOCK_ACQUIRE", entity="slot", entity_id=req.slot_id,
              metadata={"lock_id": lock.id, "reserved_capacity": req.reserved_capacity})
    return jsonify(
        lock_id=lock.id,
        session_id=session_id,
        slot_id=lock.slot_id,
        reserved_capacity=lock.reserved_capacity,
        expires_at=lock.lock_expires_at.isoformat(),
        expires_in_seconds=lock_manager.seconds_remaining(lock),
    ), 201


@booking_bp.get("/bookings/lock/<lock_id>/validate")
def validate_lock(lock_id: str):
    session_id = _session_id(request.args.get("session_id"))
    if not session_id:
        raise InvalidInput("session_id required", field="session_id")

    lock = lock_manager.get_session_lock(lock_id, session_id)
    if lock is None:
        raise NotFound("Lock not found")

    valid = lock_manager.validate_lock(lock_id, session_id)
    body = dict(
        valid=valid,
        lock_id=lock.id,
        slot_id=lock.slot_id,
        reserved_capacity=lock.reserved_capacity,
        expires_at=lock.lock_expires_at.isoformat(),
        seconds_remaining=lock_manager.seconds_remaining(lock),
    )
    if not valid:
        body["error"] = "Lock has expired"
        return jsonify(body), 409
    return jsonify(body), 200


@booking_bp.post("/bookings/lock/<lock_id>/release")
def release_lock(lock_id: str):
    data = request.get_json(silent=True) or {}
    session_id = _session_id(data.get("session_id") or request.args.get("session_id"))
    if not session_id:
        raise InvalidInput("session_id required", field="session_id")

    lock_manager.release_lock(lock_id, session_id)
    return jsonify(message="Lock released"), 200


def _locks_response(slot_ids):
    locks = lock_manager.active_locks_for_slots(slot_ids)
    return jsonify([
        {
            "slot_id": lock.slot_id,
            "reserved_capacity": lock.reserved_capacity,
            "lock_expires_at": lock.lock_expires_at.isoformat(),
        }
        for lock in locks
    ]), 200


@booking_bp.get("/bookings/locks")
def list_locks():
    raw = request.args.get("slot_ids", "")
    ids = [s.strip() for s in raw.split(",") if s.strip()]
    req = parse(SlotIdsRequest, {"slot_ids": ids})
    return _locks_response(req.slot_ids)


@booking_bp.post("/bookings/locks")
def list_locks_bulk():
    req = parse(SlotIdsRequest, request.get_json(silent=True))
    return _locks_response(req.slot_ids)


# ---------- STAFF: create booking ----------
@booking_bp.post("/bookings/create")
@require_capability(Capability.CREATE_BOOKING)
def create_booking():
    req = parse(CreateBookingRequest, request.get_json(silent=True))
    booking = booking_service.create_booking(req, g.principal)
    body = booking.to_dict()

    log_event("BOOKING_CREATE", entity="booking", entity_id=booking.id, metadata={
        "slot_id": req.slot_id,
        "visitor_count": req.visitor_count,
        "package_covered_quantity": body["package_covered_quantity"],
    })

    dispatch_after_commit(send_booking_ticket, body["id"])
    if body["paid_quantity"] > 0:
        dispatch_after_commit(create_booking_invoice, body["id"])

    return jsonify({**body, "booking": body}), 201


# ---------- STAFF: view bookings ----------
@booking_bp.get("/bookings")
@require_capability(Capability.VIEW_BOOKINGS)
def list_bookings():
    q = Booking.query.filter_by(tenant_id=g.principal.tenant_id)
    status = request.args.get("status")
    if status:
        q = q.filter_by(status=status)
    slot_id = request.args.get("slot_id")
    if slot_id:
        q = q.filter_by(slot_id=slot_id)

    rows = q.order_by(Booking.created_at.desc()).limit(200).all()
    return jsonify([b.to_dict() for b in rows]), 200


@booking_bp.get("/bookings/<booking_id>")
@require_capability(Capability.VIEW_BOOKINGS)
def get_booking(booking_id: str):
    booking = booking_service.get_booking(booking_id, g.principal)
    return jsonify(booking.to_dict()), 200


# ---------- STAFF: edit / reschedule ----------
@booking_bp.patch("/bookings/<booking_id>")
@require_capability(Capability.UPDATE_BOOKING)
def update_booking(booking_id: str):
    req = parse(UpdateBookingRequest, request.get_json(silent=True))
    booking, slot_changed = booking_service.update_booking(booking_id, req, g.principal)
    body = booking.to_dict()

    log_event("BOOKING_UPDATE", entity="booking", entity_id=booking_id, metadata={
        "fields": sorted(req.model_fields_set),
        "slot_changed": slot_changed,
    })
    if slot_changed:
        dispatch_after_commit(send_booking_ticket, booking_id, rescheduled=True)

    message = "Booking rescheduled" if slot_changed else "Booking updated"
    return jsonify(success=True, booking=body, slot_changed=slot_changed, message=message), 200


# ---------- ADMIN: cancel ----------
@booking_bp.delete("/bookings/<booking_id>")
@require_capability(Capability.CANCEL_BOOKING)
def cancel_booking(booking_id: str):
    data = request.get_json(silent=True) or {}
    if "allow_delete_paid" not in data and request.args.get("allow_delete_paid"):
        data["allow_delete_paid"] = request.args.get("allow_delete_paid").lower() == "true"
    req = parse(CancelBookingRequest, data)

    booking = booking_service.cancel_booking(
        booking_id, g.principal, allow_delete_paid=req.allow_delete_paid, reason=req.reason
    )
    body = booking.to_dict()

    log_event("BOOKING_CANCEL", entity="booking", entity_id=booking_id, metadata={"reason": req.reason})
    return jsonify(success=True, booking=body, message="Booking cancelled"), 200


# ---------- payments ----------
@booking_bp.patch("/bookings/<booking_id>/payment-status")
@require_capability(Capability.UPDATE_PAYMENT_STATUS)
def update_payment_status(booking_id: str):
    req = parse(PaymentStatusRequest, request.get_json(silent=True))
    booking, old_status = booking_service.update_payment_status(booking_id, req.payment_status, g.principal)
    body = booking.to_dict()

    log_event("BOOKING_PAYMENT_STATUS", entity="booking", entity_id=booking_id,
              metadata={"from": old_status, "to": req.payment_status})
    dispatch_after_commit(sync_invoice_status, booking_id)
    return jsonify(success=True, booking=body), 200


@booking_bp.patch("/bookings/<booking_id>/mark-paid")
@require_capability(Capability.MARK_PAID)
def mark_paid(booking_id: str):
    booking, old_status = booking_service.mark_paid(booking_id, g.principal)
    body = booking.to_dict()

    log_event("BOOKING_MARK_PAID", entity="booking", entity_id=booking_id,
              metadata={"from": old_status, "to": "paid_manual"})
    dispatch_after_commit(sync_invoice_status, booking_id)
    return jsonify(success=True, booking=body), 200


# ---------- CASHIER: gate check-in ----------
@booking_bp.post("/bookings/validate-qr")
@require_capability(Capability.CHECK_IN_BOOKING)
def validate_qr():
    req = parse(CheckInRequest, request.get_json(silent=True))
    booking_id = booking_id_from_qr(req.booking_id)
    if not booking_id:
        raise InvalidInput("Invalid QR code format. It must contain a booking ID or booking URL.",
                           field="booking_id")

    booking = booking_service.check_in_booking(booking_id, g.principal)
    body = booking.to_dict()

    log_event("BOOKING_CHECK_IN", entity="booking", entity_id=booking_id)
    return jsonify(success=True, message="QR code validated successfully", booking=body), 200
