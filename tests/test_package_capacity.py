import uuid
from datetime import datetime, timedelta

import pytest

from conftest import booking_payload
from models import db
from models.package_subscription import PackageSubscription, PackageSubscriptionUsage
from schemas.bookings import CreateBookingRequest
from security.rbac import Role
from services import booking_service, capacity, subscriptions
from services.errors import Conflict, InvalidInput, InvalidStateTransition, NotFound
from schemas.packages import CreateSubscriptionRequest


@pytest.fixture
def setup(factory):
    tenant = factory.tenant()
    service = factory.service(tenant)
    customer = factory.customer(tenant)
    return factory, tenant, service, customer


def test_resolve_sums_active_subscriptions_only(setup):
    factory, tenant, service, customer = setup
    package = factory.package(tenant, [(service, 5)])

    factory.subscription(customer, package, remaining=3)
    factory.subscription(customer, package, remaining=4)
    factory.subscription(customer, package, remaining=5, status="cancelled", is_active=False)
    factory.subscription(customer, package, remaining=5, is_active=False)

    assert capacity.resolve_remaining_capacity(customer.id, service.id) == 7


def test_resolve_is_zero_without_subscriptions(setup):
    _, _, service, customer = setup
    assert capacity.resolve_remaining_capacity(customer.id, service.id) == 0
    assert capacity.resolve_remaining_capacity(str(uuid.uuid4()), service.id) == 0


def test_resolve_rejects_malformed_ids(setup):
    _, _, service, _ = setup
    with pytest.raises(InvalidInput) as exc:
        capacity.resolve_remaining_capacity("nope", service.id)
    assert exc.value.field == "customer_id"


def test_resolve_ignores_other_services(setup):
    factory, tenant, service, customer = setup
    other = factory.service(tenant, name="Museum Entry")
    factory.subscription(customer, factory.package(tenant, [(other, 4)]))

    assert capacity.resolve_remaining_capacity(customer.id, service.id) == 0
    assert capacity.resolve_remaining_capacity(customer.id, other.id) == 4


def test_allocation_drains_oldest_subscription_first(setup):
    factory, tenant, service, customer = setup
    package = factory.package(tenant, [(service, 5)])
    now = datetime.utcnow()
    newer = factory.subscription(customer, package, subscribed_at=now - timedelta(days=1), remaining=5)
    older = factory.subscription(customer, package, subscribed_at=now - timedelta(days=10), remaining=2)

    allocation = capacity.allocate(customer.id, service.id, 4)
    db.session.commit()

    assert [(d.subscription_id, d.quantity) for d in allocation.debits] == [(older.id, 2), (newer.id, 2)]
    assert allocation.covered == 4
    assert allocation.shortfall == 0
    assert allocation.exhausted == [(older.id, service.id)]

    remaining = {
        u.subscription_id: u.remaining_quantity
        for u in PackageSubscriptionUsage.query.all()
    }
    assert remaining == {older.id: 0, newer.id: 3}


def test_allocation_reports_shortfall(setup):
    factory, tenant, service, customer = setup
    factory.subscription(customer, factory.package(tenant, [(service, 5)]), remaining=1)

    allocation = capacity.allocate(customer.id, service.id, 3)
    db.session.commit()

    assert allocation.covered == 1
    assert allocation.shortfall == 2
    assert capacity.resolve_remaining_capacity(customer.id, service.id) == 0


def test_ledger_never_goes_negative(setup):
    factory, tenant, service, customer = setup
    factory.subscription(customer, factory.package(tenant, [(service, 3)]))

    for _ in range(5):
        capacity.allocate(customer.id, service.id, 2)
        db.session.commit()

    for usage in PackageSubscriptionUsage.query.all():
        assert usage.remaining_quantity >= 0
        assert usage.remaining_quantity == usage.original_quantity - usage.used_quantity



def test_refund_rejects_a_ledger_that_was_already_credited(setup):
    factory, tenant, service, customer = setup
    sub = factory.subscription(customer, factory.package(tenant, [(service, 3)]))
    req = CreateBookingRequest.model_validate(booking_payload(
        tenant, service, factory.slot(service), visitor_count=2, adult_count=2, customer_id=customer.id,
    ))
    booking = booking_service.create_booking(req, factory.principal(tenant))

    usage = PackageSubscriptionUsage.query.filter_by(subscription_id=sub.id).one()
    usage.remaining_quantity, usage.used_quantity = 3, 0
    db.session.commit()

    with pytest.raises(Conflict):
        capacity.refund(booking.id)
    db.session.rollback()
    assert capacity.resolve_remaining_capacity(customer.id, service.id) == 3

def test_breakdown_lists_subscriptions_in_allocation_order(setup):
    factory, tenant, service, customer = setup
    package = factory.package(tenant, [(service, 5)])
    now = datetime.utcnow()
    second = factory.subscription(customer, package, subscribed_at=now - timedelta(days=1))
    first = factory.subscription(customer, package, subscribed_at=now - timedelta(days=5), remaining=0)

    breakdown = capacity.capacity_breakdown(customer.id, service.id)

    assert breakdown["total_remaining_capacity"] == 5
    assert [s["subscription_id"] for s in breakdown["subscriptions"]] == [first.id, second.id]
    assert breakdown["subscriptions"][0]["is_exhausted"] is True


# ---------- subscriptions ----------

def test_create_subscription_seeds_usage_rows(setup):
    factory, tenant, service, customer = setup
    other = factory.service(tenant, name="Museum Entry")
    package = factory.package(tenant, [(service, 5), (other, 2)])

    sub = subscriptions.create_subscription(
        CreateSubscriptionRequest(package_id=package.id, customer_id=customer.id),
        factory.principal(tenant),
    )

    usage = {u.service_id: (u.original_quantity, u.used_quantity, u.remaining_quantity) for u in sub.usage}
    assert usage == {service.id: (5, 0, 5), other.id: (2, 0, 2)}
    assert sub.status == "active" and sub.is_active


def test_create_subscription_finds_customer_by_phone(setup):
    factory, tenant, service, customer = setup
    package = factory.package(tenant, [(service, 5)])

    sub = subscriptions.create_subscription(
        CreateSubscriptionRequest(package_id=package.id, customer_name="Mona", customer_phone="01001234567"),
        factory.principal(tenant),
    )
    assert sub.customer_id == customer.id


def test_create_subscription_rejects_foreign_package(setup):
    factory, tenant, service, customer = setup
    other_tenant = factory.tenant(name="Other")
    package = factory.package(other_tenant, [(factory.service(other_tenant), 5)])

    with pytest.raises(NotFound):
        subscriptions.create_subscription(
            CreateSubscriptionRequest(package_id=package.id, customer_id=customer.id),
            factory.principal(tenant),
        )


def test_cancel_subscription_is_terminal(setup):
    factory, tenant, service, customer = setup
    sub = factory.subscription(customer, factory.package(tenant, [(service, 5)]))
    staff = factory.principal(tenant)

    subscriptions.cancel_subscription(sub.id, staff)
    assert db.session.get(PackageSubscription, sub.id).status == "cancelled"
    assert capacity.resolve_remaining_capacity(customer.id, service.id) == 0

    with pytest.raises(InvalidStateTransition):
        subscriptions.cancel_subscription(sub.id, staff)


# ---------- HTTP ----------

def test_subscription_endpoints(client, setup):
    factory, tenant, service, customer = setup
    headers = factory.headers(tenant, Role.TENANT_ADMIN)

    resp = client.post(
        "/packages",
        json={"name": "Weekend Pass", "total_price": "300", "services": [{"service_id": service.id, "capacity_total": 4}]},
        headers=headers,
    )
    assert resp.status_code == 201
    package_id = resp.get_json()["id"]

    resp = client.post(
        "/packages/subscriptions",
        json={"package_id": package_id, "customer_id": customer.id},
        headers=headers,
    )
    assert resp.status_code == 201
    body = resp.get_json()
    assert body["usage"] == [
        {"service_id": service.id, "original_quantity": 4, "used_quantity": 0, "remaining_quantity": 4}
    ]
    sub_id = body["subscription"]["id"]

    resp = client.get(
        "/packages/capacity",
        query_string={"customer_id": customer.id, "service_id": service.id},
        headers=headers,
    )
    assert resp.status_code == 200
    assert resp.get_json()["total_remaining_capacity"] == 4

    assert client.put(f"/packages/subscriptions/{sub_id}/cancel", headers=headers).status_code == 200
    assert client.put(f"/packages/subscriptions/{sub_id}/cancel", headers=headers).status_code == 409


def test_subscription_requires_customer_identity(client, setup):
    factory, tenant, service, _ = setup
    package = factory.package(tenant, [(service, 5)])

    resp = client.post(
        "/packages/subscriptions",
        json={"package_id": package.id},
        headers=factory.headers(tenant, Role.RECEPTIONIST),
    )
    assert resp.status_code == 400


def test_customer_sees_only_own_capacity(client, setup):
    factory, tenant, service, customer = setup
    factory.subscription(customer, factory.package(tenant, [(service, 3)]))
    query = {"customer_id": customer.id, "service_id": service.id}

    own = factory.headers(tenant, Role.CUSTOMER, user_id=customer.id)
    resp = client.get("/packages/capacity", query_string=query, headers=own)
    assert resp.status_code == 200
    assert resp.get_json()["total_remaining_capacity"] == 3

    other = factory.headers(tenant, Role.CUSTOMER, user_id=str(uuid.uuid4()))
    assert client.get("/packages/capacity", query_string=query, headers=other).status_code == 403

    resp = client.get(
        "/packages/capacity",
        query_string={"customer_id": "x", "service_id": service.id},
        headers=factory.headers(tenant, Role.TENANT_ADMIN),
    )
    assert resp.status_code == 400
