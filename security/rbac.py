from dataclasses import dataclass
from enum import Enum
from functools import wraps

from flask import g, jsonify


class Role(str, Enum):
    TENANT_ADMIN = "tenant_admin"
    RECEPTIONIST = "receptionist"
    CASHIER = "cashier"
    CUSTOMER = "customer"


class Capability(Enum):
    CREATE_BOOKING = "create_booking"
    UPDATE_BOOKING = "update_booking"
    RESCHEDULE_BOOKING = "reschedule_booking"
    CANCEL_BOOKING = "cancel_booking"
    UPDATE_PAYMENT_STATUS = "update_payment_status"
    MARK_PAID = "mark_paid"
    CHECK_IN_BOOKING = "check_in_booking"
    VIEW_BOOKINGS = "view_bookings"
    MANAGE_CATALOG = "manage_catalog"
    VIEW_CATALOG = "view_catalog"
    MANAGE_SUBSCRIPTIONS = "manage_subscriptions"
    VIEW_PACKAGE_CAPACITY = "view_package_capacity"


STAFF = frozenset({Role.TENANT_ADMIN, Role.RECEPTIONIST, Role.CASHIER})

_GRANTS = {
    Capability.CREATE_BOOKING: {Role.TENANT_ADMIN, Role.RECEPTIONIST},
    Capability.UPDATE_BOOKING: {Role.TENANT_ADMIN, Role.RECEPTIONIST},
    Capability.RESCHEDULE_BOOKING: {Role.TENANT_ADMIN},
    Capability.CANCEL_BOOKING: {Role.TENANT_ADMIN},
    Capability.UPDATE_PAYMENT_STATUS: {Role.TENANT_ADMIN},
    Capability.MARK_PAID: {Role.CASHIER},
    # gate scans are a cashier job
    Capability.CHECK_IN_BOOKING: {Role.CASHIER},
    Capability.VIEW_BOOKINGS: set(STAFF),
    Capability.MANAGE_CATALOG: {Role.TENANT_ADMIN},
    Capability.VIEW_CATALOG: set(STAFF),
    Capability.MANAGE_SUBSCRIPTIONS: {Role.TENANT_ADMIN, Role.RECEPTIONIST},
    # customers may read their own capacity; routes scope it to their id
    Capability.VIEW_PACKAGE_CAPACITY: set(STAFF) | {Role.CUSTOMER},
}


@dataclass(frozen=True)
class Principal:
    user_id: str
    role: Role
    tenant_id: str | None = None

    @property
    def is_staff(self) -> bool:
        return self.role in STAFF


def can(principal, capability: Capability) -> bool:
    if principal is None or not principal.tenant_id:
        return False
    return principal.role in _GRANTS.get(capability, ())


def require_capability(capability: Capability):
    """
    Usage: @require_capability(Capability.CREATE_BOOKING)
    """
    def decorator(fn):
        @wraps(fn)
        def wrapper(*args, **kwargs):
            principal = getattr(g, "principal", None)
            if principal is None:
                return jsonify(error=getattr(g, "auth_error", None) or "Authentication required"), 401

            if not principal.tenant_id:
                return jsonify(error="No tenant associated with this account"), 403

            if not can(principal, capability):
                return jsonify(error="Forbidden"), 403

            return fn(*args, **kwargs)
        return wrapper
    return decorator
