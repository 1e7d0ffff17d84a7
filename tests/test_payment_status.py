import pytest

from conftest import booking_payload
from schemas.bookings import CreateBookingRequest
from security.rbac import Role
from services import booking_service
from services.errors import InvalidInput


@pytest.fixture
def booking(factory, catalog):
    tenant, service, slot = catalog
    req = CreateBookingRequest.model_validate(booking_payload(tenant, service, slot))
    return booking_service.create_booking(req, factory.principal(tenant))


def test_payment_status_follows_transition_table(factory, catalog, booking):
    tenant = catalog[0]
    admin = factory.principal(tenant, Role.TENANT_ADMIN)

    updated, old = booking_service.update_payment_status(booking.id, "awaiting_payment", admin)
    assert (old, updated.payment_status) == ("unpaid", "awaiting_payment")

    updated, old = booking_service.update_payment_status(booking.id, "paid", admin)
    assert (old, updated.payment_status) == ("awaiting_payment", "paid")

    with pytest.raises(InvalidInput) as exc:
        booking_service.update_payment_status(booking.id, "paid_manual", admin)
    assert exc.value.field == "payment_status"


def test_mark_paid_only_from_open_states(factory, catalog, booking):
    tenant = catalog[0]
    cashier = factory.principal(tenant, Role.CASHIER)

    updated, old = booking_service.mark_paid(booking.id, cashier)
    assert (old, updated.payment_status) == ("unpaid", "paid_manual")

    with pytest.raises(InvalidInput):
        booking_service.mark_paid(booking.id, cashier)


def test_payment_endpoints_are_role_scoped(client, factory, catalog, booking):
    tenant = catalog[0]
    url = f"/bookings/{booking.id}"

    resp = client.patch(f"{url}/payment-status", json={"payment_status": "paid"},
                        headers=factory.headers(tenant, Role.CASHIER))
    assert resp.status_code == 403

    resp = client.patch(f"{url}/mark-paid", headers=factory.headers(tenant, Role.TENANT_ADMIN))
    assert resp.status_code == 403

    resp = client.patch(f"{url}/mark-paid", headers=factory.headers(tenant, Role.CASHIER))
    assert resp.status_code == 200
    assert resp.get_json()["booking"]["payment_status"] == "paid_manual"

    resp = client.patch(f"{url}/payment-status", json={"payment_status": "refunded"},
                        headers=factory.headers(tenant, Role.TENANT_ADMIN))
    assert resp.status_code == 200
    assert resp.get_json()["booking"]["payment_status"] == "refunded"


def test_payment_status_rejects_unknown_values(client, factory, catalog, booking):
    tenant = catalog[0]
    resp = client.patch(f"/bookings/{booking.id}/payment-status", json={"payment_status": "free"},
                        headers=factory.headers(tenant, Role.TENANT_ADMIN))
    assert resp.status_code == 400
    assert resp.get_json()["field"] == "payment_status"
