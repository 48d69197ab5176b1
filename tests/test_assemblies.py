from crewkit.models import AssemblyStatus, Role


def _payload(equipment_id, **extra):
    body = {"name": "Aerial Deadend", "items": [{"equipmentId": equipment_id, "quantity": 2}], "categories": ["aerial"]}
    body.update(extra)
    return body


def test_default_status_follows_role(client, make_user, make_equipment, login):
    bolt = make_equipment()
    expected = {
        Role.FIELD: "DRAFT",
        Role.MANAGER: "PENDING_APPROVAL",
        Role.ADMIN: "APPROVED",
        Role.SUPERUSER: "APPROVED",
    }
    for role, status in expected.items():
        user = make_user(role)
        r = client.post("/assemblies", json=_payload(bolt.id), headers=login(user))
        assert r.status_code == 201, r.text
        body = r.json()
        assert body["status"] == status
        assert body["createdById"] == user.id
        assert body["items"][0]["equipment"]["id"] == bolt.id


def test_field_worker_cannot_self_approve(client, make_user, make_equipment, login):
    worker = make_user(Role.FIELD)
    bolt = make_equipment()
    r = client.post("/assemblies", json=_payload(bolt.id, status="APPROVED"), headers=login(worker))
    assert r.status_code == 403


def test_unknown_equipment_is_rejected(client, make_user, login):
    admin = make_user(Role.ADMIN)
    r = client.post("/assemblies", json=_payload(999), headers=login(admin))
    assert r.status_code == 400
    assert r.json()["code"] == "UNKNOWN_EQUIPMENT"


def test_edit_rules_and_approval(client, make_user, make_equipment, login):
    worker = make_user(Role.FIELD)
    manager = make_user(Role.MANAGER)
    admin = make_user(Role.ADMIN)
    bolt = make_equipment()
    nut = make_equipment()
    hw = login(worker)

    created = client.post("/assemblies", json=_payload(bolt.id), headers=hw).json()
    aid = created["id"]

    r = client.put(f"/assemblies/{aid}", json={"items": [{"equipmentId": nut.id, "quantity": 5}]}, headers=hw)
    assert r.status_code == 200
    assert [(i["equipmentId"], i["quantity"]) for i in r.json()["items"]] == [(nut.id, 5)]

    r = client.put(f"/assemblies/{aid}", json={"status": "PENDING_APPROVAL"}, headers=hw)
    assert r.status_code == 200
    assert r.json()["status"] == "PENDING_APPROVAL"

    # submitted, so the author can no longer edit it
    assert client.put(f"/assemblies/{aid}", json={"name": "Changed"}, headers=hw).status_code == 403

    assert client.put(f"/assemblies/{aid}", json={"status": "APPROVED"}, headers=login(manager)).status_code == 403
    r = client.put(f"/assemblies/{aid}", json={"status": "APPROVED"}, headers=login(admin))
    assert r.status_code == 200
    assert r.json()["status"] == "APPROVED"

    approved = client.get("/assemblies?approved=true", headers=hw).json()
    assert [a["id"] for a in approved["data"]] == [aid]


def test_delete_rules(client, make_user, make_equipment, make_assembly, login):
    worker = make_user(Role.FIELD)
    other = make_user(Role.FIELD)
    admin = make_user(Role.ADMIN)
    bolt = make_equipment(quantity=10)

    draft = make_assembly(worker, [(bolt, 1)], status=AssemblyStatus.DRAFT)
    assert client.delete(f"/assemblies/{draft.id}", headers=login(other)).status_code == 403
    assert client.delete(f"/assemblies/{draft.id}", headers=login(worker)).status_code == 200
    assert client.get(f"/assemblies/{draft.id}", headers=login(worker)).status_code == 404

    used = make_assembly(admin, [(bolt, 1)])
    assert client.post("/assemblies/usage", json={"assemblyId": used.id}, headers=login(worker)).status_code == 201
    r = client.delete(f"/assemblies/{used.id}", headers=login(admin))
    assert r.status_code == 409
    assert r.json()["code"] == "ASSEMBLY_IN_USE"


def test_recent_assemblies_for_current_user(client, make_user, make_equipment, make_assembly, login):
    worker = make_user(Role.FIELD)
    bolt = make_equipment(quantity=100)
    first = make_assembly(worker, [(bolt, 1)], name="First")
    second = make_assembly(worker, [(bolt, 1)], name="Second")
    unused = make_assembly(worker, [(bolt, 1)], name="Unused")
    h = login(worker)

    client.post("/assemblies/usage", json={"assemblyId": first.id, "quantity": 2}, headers=h)
    client.post("/assemblies/usage", json={"assemblyId": second.id}, headers=h)
    client.post("/assemblies/usage", json={"assemblyId": first.id}, headers=h)

    r = client.get("/assemblies/recent", headers=h)
    assert r.status_code == 200
    rows = r.json()
    assert {row["id"] for row in rows} == {first.id, second.id}
    assert unused.id not in {row["id"] for row in rows}
    totals = {row["id"]: row["totalUsed"] for row in rows}
    assert totals == {first.id: 3, second.id: 1}


def test_list_paginates_and_filters(client, make_user, make_equipment, make_assembly, login):
    admin = make_user(Role.ADMIN)
    bolt = make_equipment()
    for i in range(3):
        make_assembly(admin, [(bolt, 1)], name=f"A{i}")
    make_assembly(admin, [(bolt, 1)], name="Draft", status=AssemblyStatus.DRAFT)
    h = login(admin)

    page = client.get("/assemblies?limit=2", headers=h).json()
    assert page["pagination"]["totalCount"] == 4
    assert len(page["data"]) == 2

    drafts = client.get("/assemblies?status=DRAFT", headers=h).json()
    assert [a["name"] for a in drafts["data"]] == ["Draft"]

    everything = client.get("/assemblies?all=true", headers=h).json()
    assert len(everything["data"]) == 4
    assert everything["pagination"] is None
