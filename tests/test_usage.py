from datetime import datetime, time, timedelta

from sqlmodel import select

from crewkit.models import AssemblyStatus, AssemblyUsageLog, Role
from crewkit.services import clock


def test_record_usage_and_list_today(client, make_user, make_equipment, make_assembly, login, stock):
    worker = make_user(Role.FIELD)
    bolt = make_equipment(name="Machine Bolt", sku="BOLT-14-MACHINE", price=2.5, quantity=100)
    assembly = make_assembly(worker, [(bolt, 2)], name="Pole Attachment")
    h = login(worker)

    r = client.post("/assemblies/usage", json={"assemblyId": assembly.id, "quantity": 3}, headers=h)
    assert r.status_code == 201, r.text
    usage = r.json()
    assert usage["assemblyId"] == assembly.id
    assert usage["userId"] == worker.id
    assert usage["quantity"] == 3
    assert stock(bolt.id) == 94

    r2 = client.get("/assemblies/usage/today", headers=h)
    assert r2.status_code == 200
    assert "no-store" in r2.headers["Cache-Control"]
    body = r2.json()
    assert [log["id"] for log in body["logs"]] == [usage["id"]]
    assert body["logs"][0]["assembly"]["name"] == "Pole Attachment"
    assert body["summary"] == {"totalAssemblies": 3, "totalItems": 6, "totalCost": 15.0, "logCount": 1}


def test_draft_assembly_is_rejected_without_side_effects(client, session, make_user, make_equipment, make_assembly, login, stock):
    worker = make_user(Role.FIELD)
    bolt = make_equipment(quantity=10)
    draft = make_assembly(worker, [(bolt, 1)], status=AssemblyStatus.DRAFT)

    r = client.post("/assemblies/usage", json={"assemblyId": draft.id}, headers=login(worker))
    assert r.status_code == 400
    assert r.json()["code"] == "ASSEMBLY_NOT_APPROVED"
    assert stock(bolt.id) == 10
    assert session.exec(select(AssemblyUsageLog)).all() == []


def test_insufficient_inventory_envelope(client, make_user, make_equipment, make_assembly, login, stock):
    worker = make_user(Role.FIELD)
    bolt = make_equipment(name="Deadend", quantity=1)
    assembly = make_assembly(worker, [(bolt, 2)])

    r = client.post("/assemblies/usage", json={"assemblyId": assembly.id}, headers=login(worker))
    assert r.status_code == 400
    assert r.json() == {
        "error": "Insufficient inventory for Deadend: 1 available, 2 requested",
        "code": "INSUFFICIENT_INVENTORY",
    }
    assert stock(bolt.id) == 1


def test_invalid_body_is_a_400(client, make_user, login):
    worker = make_user(Role.FIELD)
    r = client.post("/assemblies/usage", json={"assemblyId": 1, "quantity": 0}, headers=login(worker))
    assert r.status_code == 400
    assert r.json()["code"] == "VALIDATION_ERROR"


def test_field_worker_cannot_delete_yesterdays_log(client, make_user, make_equipment, make_assembly, login, stock):
    worker = make_user(Role.FIELD)
    admin = make_user(Role.ADMIN)
    bolt = make_equipment(quantity=10)
    assembly = make_assembly(admin, [(bolt, 1)])
    h = login(worker)

    yesterday = datetime.combine(clock.today() - timedelta(days=1), time(12, 0))
    r = client.post(
        "/assemblies/usage",
        json={"assemblyId": assembly.id, "date": yesterday.isoformat()},
        headers=h,
    )
    assert r.status_code == 201
    usage_id = r.json()["id"]
    assert stock(bolt.id) == 9

    r2 = client.delete(f"/assemblies/usage/{usage_id}", headers=h)
    assert r2.status_code == 403
    assert r2.json()["error"] == "You can only delete your own usage logs from today"
    assert stock(bolt.id) == 9

    r3 = client.delete(f"/assemblies/usage/{usage_id}", headers=login(admin))
    assert r3.status_code == 200
    assert r3.json() == {"ok": True, "restored": 1}
    assert stock(bolt.id) == 10


def test_field_worker_deletes_own_log_from_today(client, make_user, make_equipment, make_assembly, login, stock):
    worker = make_user(Role.FIELD)
    other = make_user(Role.FIELD)
    bolt = make_equipment(quantity=10)
    assembly = make_assembly(worker, [(bolt, 4)])
    h = login(worker)

    usage_id = client.post("/assemblies/usage", json={"assemblyId": assembly.id}, headers=h).json()["id"]

    assert client.delete(f"/assemblies/usage/{usage_id}", headers=login(other)).status_code == 403
    r = client.delete(f"/assemblies/usage/{usage_id}", headers=h)
    assert r.status_code == 200
    assert stock(bolt.id) == 10

    assert client.delete(f"/assemblies/usage/{usage_id}", headers=h).status_code == 404


def test_history_scoping(client, make_user, make_equipment, make_assembly, login):
    worker = make_user(Role.FIELD)
    other = make_user(Role.FIELD)
    manager = make_user(Role.MANAGER)
    bolt = make_equipment(quantity=100)
    assembly = make_assembly(manager, [(bolt, 1)])

    for user in (worker, other, other):
        r = client.post("/assemblies/usage", json={"assemblyId": assembly.id}, headers=login(user))
        assert r.status_code == 201

    mine = client.get("/assemblies/usage", headers=login(worker)).json()
    assert mine["pagination"]["totalCount"] == 1
    assert mine["data"][0]["user"]["id"] == worker.id

    everyone = client.get("/assemblies/usage?limit=2", headers=login(manager)).json()
    assert everyone["pagination"] == {"page": 1, "limit": 2, "totalCount": 3, "totalPages": 2, "hasMore": True}

    filtered = client.get(f"/assemblies/usage?userId={other.id}", headers=login(manager)).json()
    assert filtered["pagination"]["totalCount"] == 2

    # a field worker cannot widen the scope
    forced = client.get(f"/assemblies/usage?userId={other.id}", headers=login(worker)).json()
    assert forced["pagination"]["totalCount"] == 1

    today = client.get("/assemblies/usage/today?all=true", headers=login(manager)).json()
    assert today["summary"]["logCount"] == 3


def test_history_rejects_inverted_range(client, make_user, login):
    manager = make_user(Role.MANAGER)
    r = client.get("/assemblies/usage?start=2026-02-02&end=2026-02-01", headers=login(manager))
    assert r.status_code == 400
