import uuid

import pytest

from conftest import booking_payload, refreshed
from models.booking import Booking
from schemas.bookings import CreateBookingRequest
from security.rbac import Role
from services import booking_service
from services.errors import Conflict, InvalidStateTransition, TenantMismatch
from services.tickets import booking_id_from_qr, qr_payload, render_ticket_pdf


@pytest.fixture
def booking(factory, catalog):
    tenant, service, slot = catalog
    req = CreateBookingRequest.model_validate(booking_payload(tenant, service, slot))
    return booking_service.create_booking(req, factory.principal(tenant))


BOOKING_ID = "3f1c2a9e-5b7d-4c1e-9a0f-6d2b8e4c7a11"


@pytest.mark.parametrize("content", [
    BOOKING_ID,
    BOOKING_ID.upper(),
    f'{{"booking_id": "{BOOKING_ID}"}}',
    f"https://tickets.example.com/bookings/{BOOKING_ID}",
    f"https://tickets.example.com/bookings/{BOOKING_ID}?lang=ar",
    f"  {BOOKING_ID}\n",
])
def test_booking_id_from_qr(content):
    assert booking_id_from_qr(content) == BOOKING_ID


@pytest.mark.parametrize("content", ["", "hello", '{"booking_id": 7}', "https://example.com/bookings/abc"])
def test_unreadable_qr_content(content):
    assert booking_id_from_qr(content) is None


def test_ticket_carries_scannable_booking_id(app, booking, catalog):
    tenant, service, slot = catalog
    assert booking_id_from_qr(qr_payload(booking)) == booking.id
    assert render_ticket_pdf(booking, slot, service, tenant).startswith(b"%PDF")


def test_second_scan_is_rejected(factory, catalog, booking):
    tenant = catalog[0]
    first = factory.principal(tenant, Role.CASHIER, user_id="cashier-1")

    checked = booking_service.check_in_booking(booking.id, first)
    assert checked.status == "checked_in"
    assert checked.qr_scanned is True
    assert checked.qr_scanned_by_user_id == "cashier-1"

    with pytest.raises(Conflict) as exc:
        booking_service.check_in_booking(booking.id, factory.principal(tenant, Role.CASHIER, user_id="cashier-2"))
    assert exc.value.details["booking"]["qr_scanned_by_user_id"] == "cashier-1"
    assert refreshed(Booking, booking.id).qr_scanned_by_user_id == "cashier-1"


def test_cancelled_booking_cannot_be_checked_in(factory, catalog, booking):
    tenant = catalog[0]
    booking_service.cancel_booking(booking.id, factory.principal(tenant, Role.TENANT_ADMIN))

    with pytest.raises(InvalidStateTransition):
        booking_service.check_in_booking(booking.id, factory.principal(tenant, Role.CASHIER))
    assert refreshed(Booking, booking.id).qr_scanned is False


def test_other_tenant_cannot_check_in(factory, booking):
    foreign = factory.tenant(name="Other")
    with pytest.raises(TenantMismatch):
        booking_service.check_in_booking(booking.id, factory.principal(foreign, Role.CASHIER))
    assert refreshed(Booking, booking.id).qr_scanned is False


# ---------- HTTP ----------

def test_validate_qr_endpoint(client, factory, catalog, booking):
    tenant = catalog[0]
    headers = factory.headers(tenant, Role.CASHIER, user_id="cashier-1")

    resp = client.post(
        "/bookings/validate-qr",
        json={"booking_id": f"https://tickets.example.com/bookings/{booking.id}"},
        headers=headers,
    )
    assert resp.status_code == 200
    body = resp.get_json()
    assert body["success"] is True
    assert body["booking"]["id"] == booking.id
    assert body["booking"]["status"] == "checked_in"
    assert body["booking"]["qr_scanned"] is True

    resp = client.post("/bookings/validate-qr", json={"booking_id": qr_payload(booking)}, headers=headers)
    assert resp.status_code == 409
    body = resp.get_json()
    assert body["error"] == "QR code has already been scanned"
    assert body["booking"]["qr_scanned_by_user_id"] == "cashier-1"
    assert body["booking"]["qr_scanned_at"] is not None


def test_validate_qr_rejections(client, factory, catalog, booking):
    tenant = catalog[0]
    cashier = factory.headers(tenant, Role.CASHIER)

    resp = client.post("/bookings/validate-qr", json={"booking_id": "not a ticket"}, headers=cashier)
    assert resp.status_code == 400
    assert resp.get_json()["field"] == "booking_id"

    assert client.post("/bookings/validate-qr", json={}, headers=cashier).status_code == 400

    resp = client.post("/bookings/validate-qr", json={"booking_id": str(uuid.uuid4())}, headers=cashier)
    assert resp.status_code == 404

    resp = client.post("/bookings/validate-qr", json={"booking_id": booking.id},
                       headers=factory.headers(tenant, Role.RECEPTIONIST))
    assert resp.status_code == 403

    foreign = factory.headers(factory.tenant(name="Other"), Role.CASHIER)
    resp = client.post("/bookings/validate-qr", json={"booking_id": booking.id}, headers=foreign)
    assert resp.status_code == 403

    assert refreshed(Booking, booking.id).qr_scanned is False
