import logging
from datetime import datetime

from models import db
from models.customer import Customer
from models.package import ServicePackage
from models.package_subscription import PackageSubscription, PackageSubscriptionUsage
from services.errors import InvalidInput, InvalidStateTransition, NotFound, TenantMismatch
from services.transaction import atomic

log = logging.getLogger(__name__)


def _find_or_create_customer(tenant_id: str, req) -> Customer:
    if req.customer_id:
        customer = db.session.get(Customer, req.customer_id)
        if customer is None:
            raise NotFound("Customer not found")
        if customer.tenant_id != tenant_id:
            raise TenantMismatch("Access denied")
        return customer

    customer = Customer.query.filter_by(tenant_id=tenant_id, phone=req.customer_phone).first()
    if customer is None:
        customer = Customer(
            tenant_id=tenant_id,
            name=req.customer_name.strip(),
            phone=req.customer_phone,
            email=req.customer_email,
        )
        db.session.add(customer)
        db.session.flush()
    return customer


def create_subscription(req, principal) -> PackageSubscription:
    """
    Subscribe a customer to a package.

    Seeds one usage row per package service with the full ``capacity_total``.
    """
    tenant_id = principal.tenant_id
    with atomic():
        package = db.session.get(ServicePackage, req.package_id)
        if package is None or package.tenant_id != tenant_id or not package.is_active:
            raise NotFound("Package not found or inactive")
        if not package.services:
            raise InvalidInput("Package has no services", field="package_id")
        if req.total_price is not None and req.total_price != package.total_price:
            raise InvalidInput("Price does not match the package price", field="total_price")

        customer = _find_or_create_customer(tenant_id, req)

        subscription = PackageSubscription(
            tenant_id=tenant_id,
            customer_id=customer.id,
            package_id=package.id,
            status="active",
            is_active=True,
            subscribed_at=datetime.utcnow(),
        )
        db.session.add(subscription)
        db.session.flush()

        for ps in package.services:
            db.session.add(PackageSubscriptionUsage(
                subscription_id=subscription.id,
                service_id=ps.service_id,
                original_quantity=ps.capacity_total,
                used_quantity=0,
                remaining_quantity=ps.capacity_total,
            ))

    log.info("Subscription %s created for customer %s (package %s)", subscription.id, customer.id, package.id)
    return subscription


def cancel_subscription(subscription_id: str, principal) -> PackageSubscription:
    with atomic():
        subscription = (
            PackageSubscription.query
            .filter_by(id=subscription_id)
            .with_for_update()
            .populate_existing()
            .first()
        )
        if subscription is None:
            raise NotFound("Subscription not found")
        if subscription.tenant_id != principal.tenant_id:
            raise TenantMismatch("Access denied")
        if subscription.status == "cancelled":
            raise InvalidStateTransition("Subscription is already cancelled")

        subscription.status = "cancelled"
        subscription.is_active = False
        subscription.cancelled_at = datetime.utcnow()

    log.info("Subscription %s cancelled", subscription_id)
    return subscription
