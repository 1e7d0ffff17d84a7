"""
Prepaid package capacity engine.

A customer's capacity for a service is spread over the usage rows of every
active subscription whose package includes that service. Reads sum those rows;
bookings draw from them oldest subscription first and cancellations give
them back.
"""
import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime

from sqlalchemy import func, update

from models import db
from models.booking import BookingPackageAllocation
from models.package_subscription import PackageSubscription, PackageSubscriptionUsage
from services.errors import Conflict, InvalidInput

log = logging.getLogger(__name__)


@dataclass
class Debit:
    subscription_id: str
    service_id: str
    quantity: int
    remaining_after: int


@dataclass
class Allocation:
    requested: int
    debits: list = field(default_factory=list)

    @property
    def covered(self) -> int:
        return sum(d.quantity for d in self.debits)

    @property
    def shortfall(self) -> int:
        return self.requested - self.covered

    @property
    def first_subscription_id(self):
        return self.debits[0].subscription_id if self.debits else None

    @property
    def exhausted(self) -> list:
        """(subscription_id, service_id) pairs this allocation drove to zero."""
        return [(d.subscription_id, d.service_id) for d in self.debits if d.remaining_after == 0]


def _require_uuid(value, field_name: str) -> str:
    try:
        return str(uuid.UUID(str(value)))
    except (TypeError, ValueError):
        raise InvalidInput(f"Invalid {field_name} format", field=field_name)


def _eligible_usage(customer_id: str, service_id: str):
    return (
        PackageSubscriptionUsage.query
        .join(PackageSubscription, PackageSubscription.id == PackageSubscriptionUsage.subscription_id)
        .filter(
            PackageSubscription.customer_id == customer_id,
            PackageSubscription.status == "active",
            PackageSubscription.is_active.is_(True),
            PackageSubscriptionUsage.service_id == service_id,
        )
        .order_by(PackageSubscription.subscribed_at.asc(), PackageSubscription.id.asc())
    )


def resolve_remaining_capacity(customer_id: str, service_id: str) -> int:
    customer_id = _require_uuid(customer_id, "customer_id")
    service_id = _require_uuid(service_id, "service_id")

    total = (
        db.session.query(func.coalesce(func.sum(PackageSubscriptionUsage.remaining_quantity), 0))
        .join(PackageSubscription, PackageSubscription.id == PackageSubscriptionUsage.subscription_id)
        .filter(
            PackageSubscription.customer_id == customer_id,
            PackageSubscription.status == "active",
            PackageSubscription.is_active.is_(True),
            PackageSubscriptionUsage.service_id == service_id,
        )
        .scalar()
    )
    return int(total or 0)


def capacity_breakdown(customer_id: str, service_id: str) -> dict:
    customer_id = _require_uuid(customer_id, "customer_id")
    service_id = _require_uuid(service_id, "service_id")

    subscriptions = []
    for usage in _eligible_usage(customer_id, service_id).all():
        subscriptions.append({
            "subscription_id": usage.subscription_id,
            "package_id": usage.subscription.package_id,
            "subscribed_at": usage.subscription.subscribed_at.isoformat(),
            "total": usage.original_quantity,
            "used": usage.used_quantity,
            "remaining": usage.remaining_quantity,
            "is_exhausted": usage.remaining_quantity == 0,
        })

    return {
        "customer_id": customer_id,
        "service_id": service_id,
        "total_remaining_capacity": sum(s["remaining"] for s in subscriptions),
        "subscriptions": subscriptions,
    }


def _debit(usage: PackageSubscriptionUsage, quantity: int) -> None:
    result = db.session.execute(
        update(PackageSubscriptionUsage)
        .where(
            PackageSubscriptionUsage.id == usage.id,
            PackageSubscriptionUsage.remaining_quantity >= quantity,
        )
        .values(
            remaining_quantity=PackageSubscriptionUsage.remaining_quantity - quantity,
            used_quantity=PackageSubscriptionUsage.used_quantity + quantity,
            updated_at=datetime.utcnow(),
        )
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        raise Conflict("Package capacity changed while booking; please retry")


def allocate(customer_id: str, service_id: str, quantity: int) -> Allocation:
    """
    Draw ``quantity`` tickets from the customer's package capacity.

    Must run inside the caller's transaction. Rows are locked in allocation
    order and each debit is a guarded update, so a concurrent booking can only
    make this call fail, never push a row below zero.
    """
    allocation = Allocation(requested=quantity)
    if quantity <= 0:
        return allocation

    rows = (
        _eligible_usage(customer_id, service_id)
        .with_for_update(of=PackageSubscriptionUsage)
        .populate_existing()
        .all()
    )

    left = quantity
    for usage in rows:
        if left == 0:
            break
        if usage.remaining_quantity <= 0:
            continue

        take = min(usage.remaining_quantity, left)
        remaining_after = usage.remaining_quantity - take
        _debit(usage, take)
        db.session.expire(usage)

        allocation.debits.append(Debit(usage.subscription_id, service_id, take, remaining_after))
        left -= take

    if allocation.debits:
        log.info(
            "Allocated %s/%s tickets for customer %s service %s from %s subscription(s)",
            allocation.covered, quantity, customer_id, service_id, len(allocation.debits),
        )
    return allocation


def _credit(usage_id: int, quantity: int) -> None:
    result = db.session.execute(
        update(PackageSubscriptionUsage)
        .where(
            PackageSubscriptionUsage.id == usage_id,
            PackageSubscriptionUsage.remaining_quantity + quantity <= PackageSubscriptionUsage.original_quantity,
            PackageSubscriptionUsage.used_quantity - quantity >= 0,
        )
        .values(
            remaining_quantity=PackageSubscriptionUsage.remaining_quantity + quantity,
            used_quantity=PackageSubscriptionUsage.used_quantity - quantity,
            updated_at=datetime.utcnow(),
        )
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        raise Conflict("Package usage ledger does not match this booking's allocations")


def refund(booking_id: str) -> list:
    """
    Give a cancelled booking's package tickets back to the subscriptions it drew from.

    Must run inside the caller's transaction. Usage rows are locked in the same
    order ``allocate`` uses. Returns the credited ``Debit`` records.
    """
    allocations = (
        db.session.query(BookingPackageAllocation, PackageSubscriptionUsage)
        .join(PackageSubscription, PackageSubscription.id == BookingPackageAllocation.subscription_id)
        .join(
            PackageSubscriptionUsage,
            (PackageSubscriptionUsage.subscription_id == BookingPackageAllocation.subscription_id)
            & (PackageSubscriptionUsage.service_id == BookingPackageAllocation.service_id),
        )
        .filter(BookingPackageAllocation.booking_id == booking_id)
        .order_by(PackageSubscription.subscribed_at.asc(), PackageSubscription.id.asc())
        .with_for_update(of=PackageSubscriptionUsage)
        .populate_existing()
        .all()
    )

    credited = []
    for allocation, usage in allocations:
        _credit(usage.id, allocation.quantity)
        db.session.expire(usage)
        credited.append(Debit(allocation.subscription_id, allocation.service_id, allocation.quantity,
                              usage.remaining_quantity))

    if credited:
        log.info("Refunded %s package ticket(s) for booking %s", sum(c.quantity for c in credited), booking_id)
    return credited
