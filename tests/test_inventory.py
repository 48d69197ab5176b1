import io

from openpyxl import load_workbook

from crewkit.models import Role, UnitType


def test_list_with_summary_and_filters(client, make_user, make_equipment, login):
    worker = make_user(Role.FIELD)
    make_equipment(name="Empty", quantity=0)
    make_equipment(name="Low", quantity=3)
    make_equipment(name="Plenty", quantity=40, unit_type=UnitType.FOOT)
    h = login(worker)

    r = client.get("/inventory", headers=h)
    assert r.status_code == 200
    body = r.json()
    assert body["summary"] == {"total": 3, "inStock": 1, "lowStock": 1, "outOfStock": 1}
    assert body["unitTypes"] == ["FOOT", "UNIT"]
    assert [row["equipment"]["name"] for row in body["data"]] == ["Empty", "Low", "Plenty"]

    low = client.get("/inventory?status=low_stock", headers=h).json()
    assert [row["equipment"]["name"] for row in low["data"]] == ["Low"]

    feet = client.get("/inventory?unitType=FOOT", headers=h).json()
    assert [row["quantity"] for row in feet["data"]] == [40]


def test_adjust_requires_manager(client, make_user, make_equipment, login):
    worker = make_user(Role.FIELD)
    manager = make_user(Role.MANAGER)
    bolt = make_equipment(quantity=10)

    r = client.post("/inventory", json={"equipmentId": bolt.id, "type": "ADD", "quantity": 5}, headers=login(worker))
    assert r.status_code == 403

    r2 = client.post("/inventory", json={"equipmentId": bolt.id, "type": "ADD", "quantity": 5}, headers=login(manager))
    assert r2.status_code == 200
    assert r2.json()["quantity"] == 15

    r3 = client.post("/inventory", json={"equipmentId": bolt.id, "type": "REMOVE", "quantity": 50}, headers=login(manager))
    assert r3.status_code == 400
    assert r3.json()["code"] == "INSUFFICIENT_INVENTORY"

    r4 = client.post("/inventory", json={"equipmentId": 999, "type": "ADD", "quantity": 1}, headers=login(manager))
    assert r4.status_code == 404


def test_logs_filters(client, make_user, make_equipment, login):
    manager = make_user(Role.MANAGER)
    bolt = make_equipment(quantity=10)
    nut = make_equipment(quantity=10)
    h = login(manager)

    client.post("/inventory", json={"equipmentId": bolt.id, "type": "ADD", "quantity": 5}, headers=h)
    client.post("/inventory", json={"equipmentId": bolt.id, "type": "SET", "quantity": 1}, headers=h)
    client.post("/inventory", json={"equipmentId": nut.id, "type": "REMOVE", "quantity": 2}, headers=h)

    all_logs = client.get("/inventory/logs", headers=h).json()
    assert all_logs["pagination"]["totalCount"] == 3

    bolt_logs = client.get(f"/inventory/logs?equipmentId={bolt.id}", headers=h).json()
    assert [(log["type"], log["quantity"]) for log in bolt_logs["data"]] == [("ADJUSTED", -14), ("ADD", 5)]

    removed = client.get("/inventory/logs?type=REMOVE", headers=h).json()
    assert [log["equipmentId"] for log in removed["data"]] == [nut.id]

    assert client.get("/inventory/logs?tz=Not/AZone&start=2026-01-01", headers=h).status_code == 400

    worker = make_user(Role.FIELD)
    assert client.get("/inventory/logs", headers=login(worker)).status_code == 403


def test_export_xlsx(client, make_user, make_equipment, login):
    worker = make_user(Role.FIELD)
    make_equipment(name="Bolt", sku="BOLT-1", price=2.0, quantity=4)

    r = client.get("/inventory/export.xlsx", headers=login(worker))
    assert r.status_code == 200
    assert r.headers["content-type"].startswith(
        "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"
    )
    assert "inventory.xlsx" in r.headers["content-disposition"]

    wb = load_workbook(io.BytesIO(r.content))
    ws = wb["Inventory"]
    assert [c.value for c in ws[1]] == ["ID", "Name", "SKU", "Unit", "Quantity", "Price", "Value", "Updated"]
    assert [c.value for c in ws[2]][1:7] == ["Bolt", "BOLT-1", "UNIT", 4, 2.0, 8.0]
