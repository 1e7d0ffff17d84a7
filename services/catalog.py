"""Tenant catalog: services, slots and packages."""
import logging
from datetime import datetime, timedelta

from sqlalchemy.exc import IntegrityError

from models import db
from models.package import PackageService, ServicePackage
from models.service import Service
from models.slot import Slot
from services.errors import Conflict, InvalidInput, NotFound, TenantMismatch
from services.lock_manager import locked_capacity_by_slot
from services.transaction import atomic

log = logging.getLogger(__name__)


def service_to_dict(s: Service) -> dict:
    return {
        "id": s.id,
        "tenant_id": s.tenant_id,
        "name": s.name,
        "base_price": float(s.base_price or 0),
        "is_active": s.is_active,
    }


def slot_to_dict(s: Slot, locked: int = 0) -> dict:
    return {
        "id": s.id,
        "tenant_id": s.tenant_id,
        "service_id": s.service_id,
        "start_time": s.start_time.isoformat(),
        "end_time": s.end_time.isoformat(),
        "total_capacity": s.total_capacity,
        "remaining_capacity": s.remaining_capacity,
        "available_capacity": max(s.remaining_capacity - locked, 0),
        "is_available": s.is_available,
    }


def package_to_dict(p: ServicePackage) -> dict:
    return {
        "id": p.id,
        "tenant_id": p.tenant_id,
        "name": p.name,
        "total_price": float(p.total_price or 0),
        "is_active": p.is_active,
        "services": [
            {"service_id": ps.service_id, "capacity_total": ps.capacity_total}
            for ps in p.services
        ],
    }


def _tenant_service(service_id: str, tenant_id: str) -> Service:
    service = db.session.get(Service, service_id)
    if service is None:
        raise NotFound("Service not found")
    if service.tenant_id != tenant_id:
        raise TenantMismatch("Access denied")
    return service


def create_service(tenant_id: str, req) -> Service:
    service = Service(tenant_id=tenant_id, name=req.name.strip(), base_price=req.base_price)
    with atomic():
        db.session.add(service)
    return service


def list_services(tenant_id: str) -> list:
    return (
        Service.query
        .filter_by(tenant_id=tenant_id, is_active=True)
        .order_by(Service.name.asc())
        .all()
    )


def create_slot(tenant_id: str, req) -> Slot:
    _tenant_service(req.service_id, tenant_id)

    slot = Slot(
        tenant_id=tenant_id,
        service_id=req.service_id,
        start_time=req.start_time,
        end_time=req.end_time,
        total_capacity=req.total_capacity,
        remaining_capacity=req.total_capacity,
    )
    db.session.add(slot)
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise Conflict("Slot already exists for that service and time")
    return slot


def list_slots(service_id: str, date_str: str | None = None, include_past: bool = False) -> list:
    """Bookable slots of a service, each with its lock-adjusted ``available_capacity``."""
    q = Slot.query.filter_by(service_id=service_id, is_available=True)

    if date_str:
        try:
            day = datetime.fromisoformat(date_str)
        except ValueError:
            raise InvalidInput("Invalid date. Use YYYY-MM-DD", field="date")
        start = datetime(day.year, day.month, day.day)
        q = q.filter(Slot.start_time >= start, Slot.start_time < start + timedelta(days=1))

    now = datetime.utcnow()
    if not include_past:
        q = q.filter(Slot.start_time > now)

    slots = q.order_by(Slot.start_time.asc()).all()
    locked = locked_capacity_by_slot([s.id for s in slots], now)
    return [slot_to_dict(s, locked.get(s.id, 0)) for s in slots]


def deactivate_slot(slot_id: str, tenant_id: str) -> Slot:
    slot = db.session.get(Slot, slot_id)
    if slot is None:
        raise NotFound("Slot not found")
    if slot.tenant_id != tenant_id:
        raise TenantMismatch("Access denied")

    slot.is_available = False
    db.session.commit()
    return slot


def create_package(tenant_id: str, req) -> ServicePackage:
    seen = set()
    for item in req.services:
        if item.service_id in seen:
            raise InvalidInput("Each service may appear once in a package", field="services")
        seen.add(item.service_id)
        _tenant_service(item.service_id, tenant_id)

    with atomic():
        package = ServicePackage(tenant_id=tenant_id, name=req.name.strip(), total_price=req.total_price)
        db.session.add(package)
        db.session.flush()
        for item in req.services:
            db.session.add(PackageService(
                package_id=package.id,
                service_id=item.service_id,
                capacity_total=item.capacity_total,
            ))

    log.info("Package %s created with %s service(s)", package.id, len(req.services))
    return package


def list_packages(tenant_id: str) -> list:
    return (
        ServicePackage.query
        .filter_by(tenant_id=tenant_id, is_active=True)
        .order_by(ServicePackage.created_at.desc())
        .all()
    )
