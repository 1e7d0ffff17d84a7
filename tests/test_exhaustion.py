from datetime import datetime, timedelta

from conftest import booking_payload
from models import db
from models.package_exhaustion_notification import PackageExhaustionNotification
from schemas.bookings import CreateBookingRequest
from security.rbac import Role
from services import booking_service
from services.exhaustion import list_exhaustion_notifications, record_exhaustion


def test_record_exhaustion_is_idempotent(factory):
    tenant = factory.tenant()
    service = factory.service(tenant)
    customer = factory.customer(tenant)
    sub = factory.subscription(customer, factory.package(tenant, [(service, 2)]), remaining=0)
    pair = (sub.id, service.id)

    assert record_exhaustion([pair]) == [pair]
    db.session.commit()
    assert record_exhaustion([pair, pair]) == []
    db.session.commit()

    assert PackageExhaustionNotification.query.count() == 1


def test_record_exhaustion_with_nothing_to_record(app):
    assert record_exhaustion([]) == []


def test_each_exhausted_subscription_is_recorded_once(factory):
    tenant = factory.tenant()
    service = factory.service(tenant)
    slot = factory.slot(service, capacity=20)
    customer = factory.customer(tenant)
    package = factory.package(tenant, [(service, 2)])
    now = datetime.utcnow()
    first = factory.subscription(customer, package, subscribed_at=now - timedelta(days=2))
    second = factory.subscription(customer, package, subscribed_at=now - timedelta(days=1))
    staff = factory.principal(tenant)

    for _ in range(3):
        req = CreateBookingRequest.model_validate(
            booking_payload(tenant, service, slot, visitor_count=2, adult_count=2, customer_id=customer.id)
        )
        booking_service.create_booking(req, staff)

    rows = PackageExhaustionNotification.query.order_by(PackageExhaustionNotification.notified_at).all()
    assert sorted(r.subscription_id for r in rows) == sorted([first.id, second.id])

    listed = list_exhaustion_notifications(tenant.id)
    assert {n["customer_id"] for n in listed} == {customer.id}
    assert list_exhaustion_notifications(factory.tenant(name="Other").id) == []


def test_exhaustion_notifications_endpoint(client, factory):
    tenant = factory.tenant()
    service = factory.service(tenant)
    customer = factory.customer(tenant)
    sub = factory.subscription(customer, factory.package(tenant, [(service, 1)]), remaining=0)
    record_exhaustion([(sub.id, service.id)])
    db.session.commit()

    resp = client.get("/packages/exhaustion-notifications", headers=factory.headers(tenant, Role.CASHIER))
    assert resp.status_code == 200
    body = resp.get_json()
    assert [(n["subscription_id"], n["service_id"]) for n in body] == [(sub.id, service.id)]

    resp = client.get("/packages/exhaustion-notifications", headers=factory.headers(tenant, Role.CUSTOMER))
    assert resp.status_code == 403
