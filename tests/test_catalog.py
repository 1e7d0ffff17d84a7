from datetime import datetime, timedelta

from security.rbac import Role
from services import lock_manager


def _iso(dt):
    return dt.replace(microsecond=0).isoformat()


def test_admin_builds_catalog(client, factory):
    tenant = factory.tenant()
    headers = factory.headers(tenant, Role.TENANT_ADMIN)

    resp = client.post("/services", json={"name": "Felucca Ride", "base_price": "80"}, headers=headers)
    assert resp.status_code == 201
    service_id = resp.get_json()["id"]

    start = datetime.utcnow() + timedelta(days=1)
    slot_body = {
        "service_id": service_id,
        "start_time": _iso(start),
        "end_time": _iso(start + timedelta(hours=1)),
        "total_capacity": 12,
    }
    resp = client.post("/slots", json=slot_body, headers=headers)
    assert resp.status_code == 201
    assert resp.get_json()["remaining_capacity"] == 12

    resp = client.post("/slots", json=slot_body, headers=headers)
    assert resp.status_code == 409

    resp = client.get("/services", headers=factory.headers(tenant, Role.CASHIER))
    assert [s["name"] for s in resp.get_json()] == ["Felucca Ride"]


def test_slot_times_are_validated(client, factory):
    tenant = factory.tenant()
    service = factory.service(tenant)
    start = datetime.utcnow() + timedelta(days=1)

    resp = client.post(
        "/slots",
        json={"service_id": service.id, "start_time": _iso(start), "end_time": _iso(start), "total_capacity": 5},
        headers=factory.headers(tenant, Role.TENANT_ADMIN),
    )
    assert resp.status_code == 400


def test_receptionist_cannot_manage_catalog(client, factory):
    tenant = factory.tenant()
    resp = client.post("/services", json={"name": "Felucca Ride"}, headers=factory.headers(tenant))
    assert resp.status_code == 403


def test_public_slot_listing_shows_lock_adjusted_capacity(client, catalog, factory):
    tenant, service, slot = catalog
    factory.slot(service, starts_in=timedelta(hours=-3))
    factory.slot(service, starts_in=timedelta(days=3), is_available=False)
    lock_manager.acquire_lock(slot.id, "checkout-1", 4)

    resp = client.get("/slots", query_string={"service_id": service.id})
    assert resp.status_code == 200
    body = resp.get_json()
    assert [s["id"] for s in body] == [slot.id]
    assert body[0]["remaining_capacity"] == 10
    assert body[0]["available_capacity"] == 6

    day = slot.start_time.date().isoformat()
    assert len(client.get("/slots", query_string={"service_id": service.id, "date": day}).get_json()) == 1
    assert client.get("/slots", query_string={"service_id": service.id, "date": "tomorrow"}).status_code == 400
    assert client.get("/slots").status_code == 400


def test_deactivated_slot_cannot_be_locked(client, catalog, factory):
    tenant, _, slot = catalog

    other = factory.headers(factory.tenant(name="Other"), Role.TENANT_ADMIN)
    assert client.post(f"/slots/{slot.id}/deactivate", headers=other).status_code == 403

    resp = client.post(f"/slots/{slot.id}/deactivate", headers=factory.headers(tenant, Role.TENANT_ADMIN))
    assert resp.status_code == 200

    resp = client.post("/bookings/lock", json={"slot_id": slot.id})
    assert resp.status_code == 409


def test_package_rejects_duplicate_and_foreign_services(client, factory):
    tenant = factory.tenant()
    service = factory.service(tenant)
    foreign = factory.service(factory.tenant(name="Other"))
    headers = factory.headers(tenant, Role.TENANT_ADMIN)

    resp = client.post("/packages", json={
        "name": "Double",
        "total_price": "100",
        "services": [{"service_id": service.id, "capacity_total": 1}, {"service_id": service.id, "capacity_total": 2}],
    }, headers=headers)
    assert resp.status_code == 400

    resp = client.post("/packages", json={
        "name": "Borrowed",
        "total_price": "100",
        "services": [{"service_id": foreign.id, "capacity_total": 1}],
    }, headers=headers)
    assert resp.status_code == 403

    assert client.get("/packages", headers=headers).get_json() == []


def test_health(client):
    resp = client.get("/health")
    assert resp.status_code == 200
    assert resp.get_json() == {"status": "ok"}
    assert resp.headers["X-Content-Type-Options"] == "nosniff"
