from conftest import add_employee, category_id, create_laptop_item, create_laptop_resource, login, type_by_name


def _software(api):
    r = api.post(
        "/api/resources",
        json={
            "name": "Figma",
            "resource_type_id": type_by_name(api, "Software")["id"],
            "resource_category_id": category_id(api, "Software", "SaaS"),
            "property_schema": [{"key": "licenseKey", "label": "License Key", "dataType": "STRING"}],
            "quantity": 5,
        },
    )
    assert r.status_code == 201, r.get_data(as_text=True)
    return r.json


def _team(app):
    mona = add_employee(app, name="Mona Manager", role="ENGINEERING_MANAGER", login_role="manager")
    dev = add_employee(app, name="Dev Person", role="BACKEND_DEVELOPER", manager_id=mona, login_role="employee")
    return mona, dev


def _access_workflow(client, request_id):
    rows = client.get("/api/workflows?type=ACCESS_REQUEST&limit=100").json["items"]
    return next(w for w in rows if w["access_request_id"] == request_id)


def test_request_routes_to_manager_and_approval_assigns(app, api):
    mona, dev = _team(app)
    sw = _software(api)

    me = login(app.test_client(), "dev.person@example.com")
    r = me.post("/api/access", json={"resource_id": sw["id"], "justification": "Design reviews"})
    assert r.status_code == 201, r.get_data(as_text=True)
    req = r.json
    assert req["employee_id"] == dev
    assert req["approver_id"] == mona
    assert req["status"] == "REQUESTED"
    assert req["permission_level"] == "READ"

    manager = login(app.test_client(), "mona.manager@example.com")
    wf = _access_workflow(manager, req["id"])
    assert wf["status"] == "PENDING"
    assert wf["approver_id"] == mona

    r = manager.post(f"/api/workflows/{wf['id']}/approve", json={})
    assert r.status_code == 200, r.get_data(as_text=True)
    assert r.json["status"] == "APPROVED"
    assert r.json["comments"] == "Approved"
    assert "assignmentId" in r.json["data"]

    req = api.get(f"/api/access/{req['id']}").json
    assert req["status"] == "APPROVED"
    assert req["approved_at"] is not None

    r = api.get(f"/api/assignments?employee_id={dev}")
    assert r.json["pagination"]["total"] == 1
    assert r.json["items"][0]["resource_id"] == sw["id"]


def test_hardware_request_provisions_resource(app):
    mona, dev = _team(app)
    me = login(app.test_client(), "dev.person@example.com")
    r = me.post("/api/access", json={"hardware_request": "Standing desk monitor", "justification": "Ergonomics"})
    assert r.status_code == 201
    req = r.json
    assert req["resource_id"] is None

    manager = login(app.test_client(), "mona.manager@example.com")
    wf = _access_workflow(manager, req["id"])
    r = manager.post(f"/api/workflows/{wf['id']}/approve", json={"comments": "Order it"})
    assert r.status_code == 200
    data = r.json["data"]
    assert data["hardwareProvisioned"] is True

    admin = login(app.test_client())
    res = admin.get(f"/api/resources/{data['provisionedResourceId']}").json
    assert res["name"] == "Standing desk monitor"
    assert res["resource_type"] == "Hardware"
    assert res["custodian"]["id"] == dev

    req = admin.get(f"/api/access/{req['id']}").json
    assert req["resource_id"] == data["provisionedResourceId"]


def test_hardware_resource_approval_assigns_available_item(app, api):
    mona, dev = _team(app)
    laptop = create_laptop_resource(api)
    first = create_laptop_item(api, laptop["id"], "SN-1")
    second = create_laptop_item(api, laptop["id"], "SN-2")

    me = login(app.test_client(), "dev.person@example.com")
    req = me.post("/api/access", json={"resource_id": laptop["id"], "justification": "New hire"}).json

    manager = login(app.test_client(), "mona.manager@example.com")
    wf = _access_workflow(manager, req["id"])
    r = manager.post(f"/api/workflows/{wf['id']}/approve", json={})
    assert r.status_code == 200
    assert "assignmentError" not in r.json["data"]
    assert "assignmentId" in r.json["data"]

    assert api.get(f"/api/resource-items/{first['id']}").json["status"] == "ASSIGNED"
    assert api.get(f"/api/resource-items/{second['id']}").json["status"] == "AVAILABLE"
    rows = api.get(f"/api/assignments?employee_id={dev}").json["items"]
    assert [a["item_id"] for a in rows] == [first["id"]]


def test_hardware_resource_approval_without_stock_records_error(app, api):
    mona, dev = _team(app)
    laptop = create_laptop_resource(api)

    me = login(app.test_client(), "dev.person@example.com")
    req = me.post("/api/access", json={"resource_id": laptop["id"]}).json

    manager = login(app.test_client(), "mona.manager@example.com")
    wf = _access_workflow(manager, req["id"])
    r = manager.post(f"/api/workflows/{wf['id']}/approve", json={})
    assert r.status_code == 200
    assert r.json["data"]["assignmentError"] == "No available items for this hardware resource."


def test_rejection_revokes_request(app):
    _team(app)
    me = login(app.test_client(), "dev.person@example.com")
    req = me.post("/api/access", json={"hardware_request": "Second laptop"}).json

    manager = login(app.test_client(), "mona.manager@example.com")
    wf = _access_workflow(manager, req["id"])
    r = manager.post(f"/api/workflows/{wf['id']}/reject", json={"comments": "Not needed"})
    assert r.status_code == 200
    assert r.json["status"] == "REJECTED"

    req = me.get(f"/api/access/{req['id']}").json
    assert req["status"] == "REVOKED"
    assert req["revoked_at"] is not None


def test_manual_status_transitions(app, api):
    _, dev = _team(app)
    sw = _software(api)
    req = api.post("/api/access", json={"employee_id": dev, "resource_id": sw["id"], "permission_level": "write"}).json
    assert req["permission_level"] == "WRITE"

    r = api.put(f"/api/access/{req['id']}", json={"status": "GRANTED"})
    assert r.status_code == 400
    assert r.json["error"] == "Cannot change access request from REQUESTED to GRANTED."

    r = api.put(f"/api/access/{req['id']}", json={"status": "APPROVED", "notes": "ok"})
    assert r.status_code == 200
    assert r.json["status"] == "APPROVED"

    # The pending workflow is decided together with the request.
    wf = _access_workflow(api, req["id"])
    assert wf["status"] == "APPROVED"
    assert wf["comments"] == "ok"

    assert api.put(f"/api/access/{req['id']}", json={"status": "GRANTED"}).json["status"] == "GRANTED"
    r = api.put(f"/api/access/{req['id']}", json={"status": "REVOKED"})
    assert r.status_code == 200
    assert r.json["revoked_at"] is not None

    r = api.put(f"/api/access/{req['id']}", json={"status": "APPROVED"})
    assert r.status_code == 400

    r = api.put(f"/api/access/{req['id']}", json={"status": "PAUSED"})
    assert r.status_code == 400
    assert r.json["error"].startswith("Invalid status.")

    r = api.get(f"/api/timeline/ACCESS/{req['id']}?limit=50")
    types = {e["activity_type"] for e in r.json["items"]}
    assert {"CREATED", "STATUS_CHANGED", "ACCESS_GRANTED", "ACCESS_REVOKED"} <= types


def test_delete_removes_workflows(app, api):
    _, dev = _team(app)
    req = api.post("/api/access", json={"employee_id": dev, "hardware_request": "Headset"}).json

    r = api.delete(f"/api/access/{req['id']}")
    assert r.status_code == 200
    assert r.json == {"ok": True, "workflows_removed": 1}
    assert api.get(f"/api/access/{req['id']}").status_code == 404
    assert api.get("/api/workflows?type=ACCESS_REQUEST").json["pagination"]["total"] == 0


def test_falls_back_to_cto_then_fails(app, api):
    loner = add_employee(app, name="Lone Wolf", role="QA_ENGINEER")
    r = api.post("/api/access", json={"employee_id": loner, "hardware_request": "Keyboard"})
    assert r.status_code == 400
    assert r.json["error"].startswith("No approver available")

    cto = add_employee(app, name="Carl Cto", role="CTO")
    r = api.post("/api/access", json={"employee_id": loner, "hardware_request": "Keyboard"})
    assert r.status_code == 201
    assert r.json["approver_id"] == cto


def test_request_validation(app, api):
    _, dev = _team(app)
    r = api.post("/api/access", json={"employee_id": dev})
    assert r.status_code == 400
    assert r.json["error"] == "Either resource_id or hardware_request is required."

    r = api.post("/api/access", json={"employee_id": dev, "resource_id": 9999})
    assert r.status_code == 400
    assert r.json["error"] == "Resource not found."

    r = api.post("/api/access", json={"employee_id": dev, "hardware_request": "Mouse", "permission_level": "ROOT"})
    assert r.status_code == 400
    assert r.json["error"].startswith("Invalid permission level.")


def test_employee_cannot_request_for_someone_else(app):
    mona, _ = _team(app)
    me = login(app.test_client(), "dev.person@example.com")
    r = me.post("/api/access", json={"employee_id": mona, "hardware_request": "Laptop"})
    assert r.status_code == 403
