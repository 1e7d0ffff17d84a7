from datetime import datetime, timedelta
from decimal import Decimal

import pytest

from app import create_app
from config import TestConfig
from models import db
from models.booking_lock import BookingLock
from models.customer import Customer
from models.package import PackageService, ServicePackage
from models.package_subscription import PackageSubscription, PackageSubscriptionUsage
from models.service import Service
from models.slot import Slot
from models.tenant import Tenant
from security.rbac import Principal, Role


@pytest.fixture
def app():
    app = create_app(TestConfig)
    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


class Factory:
    def __init__(self, app):
        self.app = app

    def tenant(self, name="Pyramids Tours", is_active=True):
        tenant = Tenant(name=name, is_active=is_active)
        db.session.add(tenant)
        db.session.commit()
        return tenant

    def service(self, tenant, name="Sound & Light Show", base_price="150.00"):
        service = Service(tenant_id=tenant.id, name=name, base_price=Decimal(base_price))
        db.session.add(service)
        db.session.commit()
        return service

    def slot(self, service, capacity=10, starts_in=timedelta(days=1), remaining=None, is_available=True):
        start = datetime.utcnow() + starts_in
        slot = Slot(
            tenant_id=service.tenant_id,
            service_id=service.id,
            start_time=start,
            end_time=start + timedelta(hours=1),
            total_capacity=capacity,
            remaining_capacity=capacity if remaining is None else remaining,
            is_available=is_available,
        )
        db.session.add(slot)
        db.session.commit()
        return slot

    def customer(self, tenant, name="Mona Hassan", phone="+201001234567", email=None):
        customer = Customer(tenant_id=tenant.id, name=name, phone=phone, email=email)
        db.session.add(customer)
        db.session.commit()
        return customer

    def package(self, tenant, services_caps, name="Family Pack", total_price="500.00"):
        package = ServicePackage(tenant_id=tenant.id, name=name, total_price=Decimal(total_price))
        db.session.add(package)
        db.session.flush()
        for service, cap in services_caps:
            db.session.add(PackageService(package_id=package.id, service_id=service.id, capacity_total=cap))
        db.session.commit()
        return package

    def subscription(self, customer, package, subscribed_at=None, remaining=None, status="active", is_active=True):
        sub = PackageSubscription(
            tenant_id=customer.tenant_id,
            customer_id=customer.id,
            package_id=package.id,
            status=status,
            is_active=is_active,
            subscribed_at=subscribed_at or datetime.utcnow(),
        )
        db.session.add(sub)
        db.session.flush()
        for ps in package.services:
            left = ps.capacity_total if remaining is None else remaining
            db.session.add(PackageSubscriptionUsage(
                subscription_id=sub.id,
                service_id=ps.service_id,
                original_quantity=ps.capacity_total,
                used_quantity=ps.capacity_total - left,
                remaining_quantity=left,
            ))
        db.session.commit()
        return sub

    def expire_lock(self, lock_id):
        lock = db.session.get(BookingLock, lock_id)
        lock.lock_expires_at = datetime.utcnow() - timedelta(seconds=1)
        db.session.commit()

    def principal(self, tenant, role=Role.RECEPTIONIST, user_id="staff-1"):
        return Principal(user_id=user_id, role=role, tenant_id=tenant.id if tenant else None)

    def token(self, tenant, role=Role.RECEPTIONIST, user_id="staff-1", expires_in=3600):
        verifier = self.app.extensions["token_verifier"]
        return verifier.issue(user_id, role, tenant.id if tenant else None, expires_in=expires_in)

    def headers(self, tenant, role=Role.RECEPTIONIST, user_id="staff-1"):
        return {"Authorization": f"Bearer {self.token(tenant, role, user_id)}"}


@pytest.fixture
def factory(app):
    return Factory(app)


@pytest.fixture
def catalog(factory):
    """One tenant with a 150.00 service and a 10-seat slot tomorrow."""
    tenant = factory.tenant()
    service = factory.service(tenant)
    slot = factory.slot(service, capacity=10)
    return tenant, service, slot


def booking_payload(tenant, service, slot, **overrides):
    payload = {
        "tenant_id": tenant.id,
        "service_id": service.id,
        "slot_id": slot.id,
        "customer_name": "Ahmed Ali",
        "customer_phone": "01001234567",
        "visitor_count": 1,
        "adult_count": 1,
        "child_count": 0,
    }
    payload.update(overrides)
    return payload


def refreshed(model, id_):
    db.session.expire_all()
    return db.session.get(model, id_)
