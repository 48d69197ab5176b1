from crewkit.models import Role


def _setup(make_user, make_team, make_equipment, make_assembly):
    team = make_team("Fiber Crew")
    manager = make_user(Role.MANAGER, team_id=team.id)
    w1 = make_user(Role.FIELD, team_id=team.id)
    w2 = make_user(Role.FIELD, team_id=team.id)
    admin = make_user(Role.ADMIN)
    cable = make_equipment(name="Drop Cable", quantity=100)
    clamp = make_equipment(name="P Hook", quantity=100)
    fiber = make_assembly(admin, [(cable, 1), (clamp, 2)], name="Fiber Drop", categories=["Fiber"])
    return team, manager, w1, w2, admin, fiber


def test_summary_then_create_report(client, make_user, make_team, make_equipment, make_assembly, login):
    team, manager, w1, w2, admin, fiber = _setup(make_user, make_team, make_equipment, make_assembly)
    r = client.post(
        "/assemblies/usage", json={"assemblyId": fiber.id, "quantity": 2, "footage": 120.5}, headers=login(w1)
    )
    assert r.status_code == 201
    hm = login(manager)

    summary = client.get("/reports/eod/summary", headers=hm).json()
    assert summary["teamId"] == team.id
    assert summary["totals"] == {"assembliesUsed": 2, "itemsConsumed": 6, "fiberFootage": 120.5}
    assert summary["reportExists"] is False
    activity = {row["user"]["id"]: row["hasActivity"] for row in summary["usageByWorker"]}
    assert activity == {manager.id: False, w1.id: True, w2.id: False}

    created = client.post("/reports/eod", json={"workersPresent": [w1.id, w2.id], "notes": "Good day"}, headers=hm)
    assert created.status_code == 201, created.text
    report = created.json()
    assert report["teamId"] == team.id
    assert report["createdById"] == manager.id
    assert report["totalAssembliesUsed"] == 2
    assert report["totalItemsConsumed"] == 6
    assert report["totalFiberFootage"] == 120.5
    assert [w["id"] for w in report["workers"]] == [w1.id, w2.id]

    again = client.get("/reports/eod/summary", headers=hm).json()
    assert again["reportExists"] is True
    assert again["existingReportId"] == report["id"]

    detail = client.get(f"/reports/eod/{report['id']}", headers=hm).json()
    assert detail["team"]["name"] == "Fiber Crew"
    by_worker = {row["user"]["id"]: row for row in detail["usageByWorker"]}
    assert by_worker[w1.id]["totalAssemblies"] == 2
    assert len(by_worker[w1.id]["logs"]) == 1
    assert by_worker[w2.id]["hasActivity"] is False


def test_one_report_per_team_per_day(client, make_user, make_team, make_equipment, make_assembly, login):
    team, manager, w1, w2, admin, fiber = _setup(make_user, make_team, make_equipment, make_assembly)
    hm = login(manager)

    body = {"date": "2026-03-04", "workersPresent": [w1.id], "totalAssembliesUsed": 7}
    first = client.post("/reports/eod", json=body, headers=hm)
    assert first.status_code == 201
    assert first.json()["totalAssembliesUsed"] == 7

    dup = client.post("/reports/eod", json=body, headers=hm)
    assert dup.status_code == 409

    # an admin filing for the same team/day collides too
    dup_admin = client.post("/reports/eod", json={**body, "teamId": team.id}, headers=login(admin))
    assert dup_admin.status_code == 409


def test_report_access(client, make_user, make_team, make_equipment, make_assembly, login):
    team, manager, w1, w2, admin, fiber = _setup(make_user, make_team, make_equipment, make_assembly)
    other_team = make_team("Other")
    outsider = make_user(Role.MANAGER, team_id=other_team.id)
    drifter = make_user(Role.MANAGER)

    report_id = client.post("/reports/eod", json={"workersPresent": [w1.id]}, headers=login(manager)).json()["id"]

    assert client.get("/reports/eod", headers=login(w1)).status_code == 403
    assert client.get(f"/reports/eod/{report_id}", headers=login(outsider)).status_code == 403
    assert client.get("/reports/eod", headers=login(outsider)).json() == []
    assert client.post("/reports/eod", json={"workersPresent": [w1.id]}, headers=login(drifter)).status_code == 403
    assert client.get("/reports/eod/999", headers=login(admin)).status_code == 404

    assert client.delete(f"/reports/eod/{report_id}", headers=login(manager)).status_code == 403
    assert client.delete(f"/reports/eod/{report_id}", headers=login(admin)).json() == {"ok": True}
    assert client.get(f"/reports/eod/{report_id}", headers=login(admin)).status_code == 404


def test_list_filters(client, make_user, make_team, make_equipment, make_assembly, login):
    team, manager, w1, w2, admin, fiber = _setup(make_user, make_team, make_equipment, make_assembly)
    hm = login(manager)

    client.post("/reports/eod", json={"date": "2026-03-02", "workersPresent": [w1.id]}, headers=hm)
    client.post("/reports/eod", json={"date": "2026-03-03", "workersPresent": [w1.id, w2.id]}, headers=hm)
    client.post("/reports/eod", json={"date": "2026-03-04", "workersPresent": [w2.id]}, headers=hm)

    everything = client.get("/reports/eod", headers=hm).json()
    assert [r["date"] for r in everything] == ["2026-03-04", "2026-03-03", "2026-03-02"]

    ranged = client.get("/reports/eod?startDate=2026-03-03&endDate=2026-03-03", headers=hm).json()
    assert [r["date"] for r in ranged] == ["2026-03-03"]

    with_w1 = client.get(f"/reports/eod?workerId={w1.id}", headers=hm).json()
    assert [r["date"] for r in with_w1] == ["2026-03-03", "2026-03-02"]

    by_admin = client.get(f"/reports/eod?teamId={team.id}&createdById={manager.id}", headers=login(admin)).json()
    assert len(by_admin) == 3


def test_report_with_no_workers_present(client, make_user, make_team, login):
    team = make_team()
    manager = make_user(Role.MANAGER, team_id=team.id)
    hm = login(manager)
    r = client.post("/reports/eod", json={"workersPresent": [], "notes": "Rained out"}, headers=hm)
    assert r.status_code == 201, r.text
    report = r.json()
    assert report["workersPresent"] == []
    assert report["workers"] == []
    assert report["totalAssembliesUsed"] == 0
    assert report["totalItemsConsumed"] == 0

    missing = client.post("/reports/eod", json={"notes": "no list"}, headers=hm)
    assert missing.status_code == 400


FIELD_ROWS = [
    {
        "location": "West Mountain Phase 1",
        "workers": "@John Doe, @Jane Smith",
        "hoursWorked": "8",
        "strandHungFootage": "2,500",
        "polesAttached": 12,
        "fiberLashedFootage": "Na",
        "submittedBy": "@John Doe",
        "timestamp": "Jan 15, 2025, 5:00:00 PM",
    },
    # date pasted into the submitter column
    {
        "location": "Main St Underground",
        "workers": "@Ann",
        "workerCount": 3,
        "hoursWorked": 6.5,
        "fiberPulledFootage": 800,
        "submittedBy": "2/6/2025",
        "timestamp": "",
    },
    {"location": "End of week totals", "hoursWorked": 40},
    {"location": "Paid $200 for parking"},
    {"location": "River Road", "workers": "@Bo", "hoursWorked": 4, "timestamp": "reported above"},
    {"location": "West Mountain Phase 1", "submittedBy": "John Doe", "timestamp": "1/15/2025", "hoursWorked": 2},
]


def _import(client, headers):
    r = client.post("/reports/import", json={"rows": FIELD_ROWS}, headers=headers)
    assert r.status_code == 200, r.text
    return r.json()


def test_import_field_logs(client, make_user, login):
    h = login(make_user(Role.ADMIN))

    result = _import(client, h)
    assert result == {
        "success": True,
        "imported": 2,
        "skipped": 4,
        "errors": ["Missing date: River Road"],
    }

    # same sheet again: everything is a duplicate or a skip
    again = _import(client, h)
    assert again["imported"] == 0
    assert again["skipped"] == 6

    body = client.get("/reports/field-logs", headers=h).json()
    main_st, west = body["logs"]
    assert main_st["date"] == "2025-02-06"
    assert main_st["submittedBy"] == "Unknown"
    assert main_st["workerCount"] == 3
    assert west["date"] == "2025-01-15"
    assert west["workersNames"] == ["John Doe", "Jane Smith"]
    assert west["workerCount"] == 2
    assert west["strandHungFootage"] == 2500
    assert west["polesAttached"] == 12
    assert west["fiberLashedFootage"] is None
    assert west["submittedBy"] == "John Doe"


def test_field_log_summary_and_filters(client, make_user, login):
    _import(client, login(make_user(Role.ADMIN)))
    hm = login(make_user(Role.MANAGER))

    body = client.get("/reports/field-logs", headers=hm).json()
    summary = body["summary"]
    assert summary["totalLogs"] == 2
    assert summary["totalHoursWorked"] == 14.5
    assert summary["uniqueWorkers"] == 3
    assert summary["aerial"] == {"strandHungFootage": 2500, "polesAttached": 12, "fiberLashedFootage": 0}
    assert summary["underground"]["fiberPulledFootage"] == 800
    assert summary["infrastructure"]["handholesPlaced"] == 0
    assert body["submitters"] == [{"name": "John Doe", "count": 1}, {"name": "Unknown", "count": 1}]
    assert {loc["name"] for loc in body["locations"]} == {"West Mountain Phase 1", "Main St Underground"}

    def locations(query):
        return [log["location"] for log in client.get(f"/reports/field-logs?{query}", headers=hm).json()["logs"]]

    assert locations("location=main") == ["Main St Underground"]
    assert locations("submittedBy=JOHN") == ["West Mountain Phase 1"]
    assert locations("startDate=2025-02-01") == ["Main St Underground"]
    assert locations("endDate=2025-01-15") == ["West Mountain Phase 1"]

    paged = client.get("/reports/field-logs?limit=1&page=1", headers=hm).json()
    assert len(paged["logs"]) == 1
    assert paged["pagination"]["totalCount"] == 2
    assert paged["pagination"]["hasMore"] is True

    rollup = client.get("/reports/field-logs?aggregate=true&location=west", headers=hm).json()
    assert rollup["logs"] is None
    assert rollup["pagination"] is None
    assert rollup["summary"]["totalLogs"] == 1
    assert rollup["summary"]["totalHoursWorked"] == 8


def test_field_log_access(client, make_user, login):
    field = login(make_user(Role.FIELD))
    manager = login(make_user(Role.MANAGER))
    admin = login(make_user(Role.ADMIN))

    assert client.get("/reports/field-logs", headers=field).status_code == 403
    assert client.get("/reports/field-logs", headers=manager).status_code == 200
    assert client.post("/reports/import", json={"rows": []}, headers=manager).status_code == 403

    bad = client.post("/reports/import", json={"rows": "not a list"}, headers=admin)
    assert bad.status_code == 400
    assert bad.json()["code"] == "VALIDATION_ERROR"

    template = client.get("/reports/import", headers=admin).json()["template"]
    assert "hoursWorked" in template["columns"]
    assert "timestamp" in template["columns"]
