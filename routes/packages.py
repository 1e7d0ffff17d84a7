from flask import Blueprint, g, jsonify, request

from models import db
from models.customer import Customer
from schemas import parse
from schemas.packages import CapacityQuery, CreatePackageRequest, CreateSubscriptionRequest
from security.rbac import Capability, Role, require_capability
from services import capacity, catalog, subscriptions
from services.errors import TenantMismatch
from services.exhaustion import list_exhaustion_notifications
from tasks.booking_tasks import create_subscription_invoice
from tasks.dispatch import dispatch_after_commit
from utils.audit import log_event

packages_bp = Blueprint("packages", __name__, url_prefix="/packages")


@packages_bp.post("")
@require_capability(Capability.MANAGE_CATALOG)
def create_package():
    req = parse(CreatePackageRequest, request.get_json(silent=True))
    package = catalog.create_package(g.principal.tenant_id, req)

    log_event("PACKAGE_CREATE", entity="package", entity_id=package.id)
    return jsonify(catalog.package_to_dict(package)), 201


@packages_bp.get("")
@require_capability(Capability.VIEW_CATALOG)
def list_packages():
    return jsonify([catalog.package_to_dict(p) for p in catalog.list_packages(g.principal.tenant_id)]), 200


# ---------- subscriptions ----------
@packages_bp.post("/subscriptions")
@require_capability(Capability.MANAGE_SUBSCRIPTIONS)
def create_subscription():
    req = parse(CreateSubscriptionRequest, request.get_json(silent=True))
    subscription = subscriptions.create_subscription(req, g.principal)
    body = subscription.to_dict()

    log_event("SUBSCRIPTION_CREATE", entity="package_subscription", entity_id=subscription.id,
              metadata={"package_id": req.package_id, "customer_id": body["customer_id"]})
    dispatch_after_commit(create_subscription_invoice, body["id"])

    return jsonify(subscription=body, usage=body["usage"]), 201


@packages_bp.put("/subscriptions/<subscription_id>/cancel")
@require_capability(Capability.MANAGE_SUBSCRIPTIONS)
def cancel_subscription(subscription_id: str):
    subscription = subscriptions.cancel_subscription(subscription_id, g.principal)
    body = subscription.to_dict()

    log_event("SUBSCRIPTION_CANCEL", entity="package_subscription", entity_id=subscription_id)
    return jsonify(success=True, subscription=body), 200


# ---------- capacity ----------
@packages_bp.get("/capacity")
@require_capability(Capability.VIEW_PACKAGE_CAPACITY)
def get_capacity():
    req = parse(CapacityQuery, request.args.to_dict())
    principal = g.principal

    if principal.role == Role.CUSTOMER:
        if principal.user_id != req.customer_id:
            raise TenantMismatch("Access denied")
    else:
        customer = db.session.get(Customer, req.customer_id)
        if customer is not None and customer.tenant_id != principal.tenant_id:
            raise TenantMismatch("Access denied")

    return jsonify(capacity.capacity_breakdown(req.customer_id, req.service_id)), 200


@packages_bp.get("/exhaustion-notifications")
@require_capability(Capability.VIEW_BOOKINGS)
def exhaustion_notifications():
    return jsonify(list_exhaustion_notifications(g.principal.tenant_id)), 200
