from flask import Blueprint, g, jsonify, request

from schemas import parse
from schemas.catalog import CreateServiceRequest, CreateSlotRequest
from security.rbac import Capability, require_capability
from services import catalog
from services.errors import InvalidInput
from utils.audit import log_event

catalog_bp = Blueprint("catalog", __name__)


# ---------- ADMIN: services ----------
@catalog_bp.post("/services")
@require_capability(Capability.MANAGE_CATALOG)
def create_service():
    req = parse(CreateServiceRequest, request.get_json(silent=True))
    service = catalog.create_service(g.principal.tenant_id, req)

    log_event("SERVICE_CREATE", entity="service", entity_id=service.id)
    return jsonify(catalog.service_to_dict(service)), 201


@catalog_bp.get("/services")
@require_capability(Capability.VIEW_CATALOG)
def list_services():
    return jsonify([catalog.service_to_dict(s) for s in catalog.list_services(g.principal.tenant_id)]), 200


# ---------- ADMIN: slots ----------
@catalog_bp.post("/slots")
@require_capability(Capability.MANAGE_CATALOG)
def create_slot():
    req = parse(CreateSlotRequest, request.get_json(silent=True))
    slot = catalog.create_slot(g.principal.tenant_id, req)

    log_event("SLOT_CREATE", entity="slot", entity_id=slot.id)
    return jsonify(catalog.slot_to_dict(slot)), 201


# ---------- PUBLIC: browse slots ----------
@catalog_bp.get("/slots")
def list_slots():
    service_id = request.args.get("service_id")
    if not service_id:
        raise InvalidInput("service_id required", field="service_id")
    return jsonify(catalog.list_slots(service_id, request.args.get("date"))), 200


@catalog_bp.post("/slots/<slot_id>/deactivate")
@require_capability(Capability.MANAGE_CATALOG)
def deactivate_slot(slot_id: str):
    catalog.deactivate_slot(slot_id, g.principal.tenant_id)

    log_event("SLOT_DEACTIVATE", entity="slot", entity_id=slot_id)
    return jsonify(message="Slot deactivated"), 200
