from conftest import (
    add_employee,
    admin_employee_id,
    category_id,
    create_laptop_item,
    create_laptop_resource,
    login,
    type_by_name,
)


def _create(api, **overrides):
    payload = {
        "name": "Bob Builder",
        "email": "Bob@Example.com",
        "department": "Engineering",
        "role": "BACKEND_DEVELOPER",
        "joining_date": "2024-03-01",
        "salary": 90000,
    }
    payload.update(overrides)
    return api.post("/api/employees", json=payload)


def test_create_employee_logs_hire(api):
    r = _create(api)
    assert r.status_code == 201, r.get_data(as_text=True)
    emp = r.json
    assert emp["email"] == "bob@example.com"
    assert emp["status"] == "ACTIVE"
    assert emp["joining_date"] == "2024-03-01"
    assert emp["salary"] == 90000

    r = api.get(f"/api/timeline/EMPLOYEE/{emp['id']}")
    assert r.status_code == 200
    assert [e["activity_type"] for e in r.json["items"]] == ["EMPLOYEE_HIRED"]
    assert r.json["items"][0]["performer"]["name"] == "Alice Admin"


def test_create_employee_validation(api):
    r = api.post("/api/employees", json={"email": "nope"})
    assert r.status_code == 400
    assert "Name is required." in r.json["errors"]
    assert "Email is invalid." in r.json["errors"]
    assert "Department is required." in r.json["errors"]

    r = _create(api, role="WIZARD")
    assert r.status_code == 400
    assert "Invalid role: WIZARD" in r.json["errors"]


def test_duplicate_email_rejected(api):
    assert _create(api).status_code == 201
    r = _create(api, name="Other Bob")
    assert r.status_code == 400
    assert "already exists" in r.json["error"]


def test_list_filters_and_paginates(api):
    _create(api)
    _create(api, name="Carol Sales", email="carol@example.com", department="Sales", role="SALES_MANAGER")
    r = api.get("/api/employees?department=Sales")
    assert r.status_code == 200
    assert [e["name"] for e in r.json["items"]] == ["Carol Sales"]

    r = api.get("/api/employees?search=bob")
    assert [e["name"] for e in r.json["items"]] == ["Bob Builder"]

    r = api.get("/api/employees?limit=1&page=2")
    assert r.json["pagination"] == {"page": 2, "limit": 1, "total": 3, "pages": 3}


def test_update_records_field_changes_and_status_events(api):
    emp = _create(api).json
    r = api.patch(
        f"/api/employees/{emp['id']}",
        json={"department": "Platform", "status": "RESIGNED", "role": "ENGINEERING_MANAGER", "reason": "reorg"},
    )
    assert r.status_code == 200
    assert r.json["department"] == "Platform"
    assert r.json["status"] == "RESIGNED"

    r = api.get(f"/api/audit?entity_type=Employee&entity_id={emp['id']}")
    actions = {ev["action"] for ev in r.json["items"]}
    assert "employee.field_change" in actions
    dept = next(ev for ev in r.json["items"] if (ev["metadata"] or {}).get("field") == "department")
    assert dept["metadata"]["old"] == "Engineering"
    assert dept["metadata"]["new"] == "Platform"
    assert dept["reason"] == "reorg"

    r = api.get(f"/api/timeline/EMPLOYEE/{emp['id']}?limit=50")
    types = {e["activity_type"] for e in r.json["items"]}
    assert {"UPDATED", "STATUS_CHANGED", "EMPLOYEE_RESIGNED", "EMPLOYEE_PROMOTED"} <= types


def test_manager_cycle_rejected(app, api):
    boss = _create(api, name="Boss", email="boss@example.com").json
    worker = _create(api, name="Worker", email="worker@example.com", manager_id=boss["id"]).json
    assert worker["manager"]["name"] == "Boss"

    r = api.patch(f"/api/employees/{boss['id']}", json={"manager_id": worker["id"]})
    assert r.status_code == 400
    assert "cannot report" in r.json["error"]

    r = api.get(f"/api/employees/{boss['id']}")
    assert [rep["name"] for rep in r.json["reports"]] == ["Worker"]


def test_delete_blocked_by_dependencies_then_reassign(app, api):
    boss = _create(api, name="Boss", email="boss@example.com").json
    _create(api, name="Worker", email="worker@example.com", manager_id=boss["id"])

    r = api.delete(f"/api/employees/{boss['id']}")
    assert r.status_code == 409
    assert r.json["dependencies"]["counts"]["direct_reports"] == 1

    r = api.get(f"/api/timeline/EMPLOYEE/{boss['id']}")
    assert "DELETION_ATTEMPTED" in {e["activity_type"] for e in r.json["items"]}

    r = api.post(f"/api/employees/{boss['id']}/reassign", json={"to_employee_id": admin_employee_id(app)})
    assert r.status_code == 200
    assert r.json["moved"]["direct_reports"] == 1

    r = api.delete(f"/api/employees/{boss['id']}")
    assert r.status_code == 200
    assert api.get(f"/api/employees/{boss['id']}").status_code == 404

    # Deleted entry survives, unlinked from the removed row.
    r = api.get(f"/api/timeline/EMPLOYEE/{boss['id']}?limit=50")
    deleted = next(e for e in r.json["items"] if e["activity_type"] == "DELETED")
    assert deleted["employee_id"] is None


def test_reassign_rejects_inactive_target(app, api):
    emp = _create(api).json
    gone = add_employee(app, name="Gone Person", role="EMPLOYEE", status="INACTIVE")
    r = api.post(f"/api/employees/{emp['id']}/reassign", json={"to_employee_id": gone})
    assert r.status_code == 400
    assert "ACTIVE" in r.json["error"]


def test_employee_resources_lists_active_assignments(app, api):
    emp = _create(api).json
    resource = create_laptop_resource(api)
    item = create_laptop_item(api, resource["id"], "SN-1")
    r = api.post(
        "/api/assignments",
        json={"employee_id": emp["id"], "resource_id": resource["id"], "item_id": item["id"]},
    )
    assert r.status_code == 201, r.get_data(as_text=True)

    r = api.get(f"/api/employees/{emp['id']}/resources")
    assert r.status_code == 200
    assert len(r.json["items"]) == 1
    assert r.json["items"][0]["item_id"] == item["id"]


def _figma(api):
    r = api.post(
        "/api/resources",
        json={
            "name": "Figma",
            "resource_type_id": type_by_name(api, "Software")["id"],
            "resource_category_id": category_id(api, "Software", "SaaS"),
            "property_schema": [{"key": "licenseKey", "label": "License Key", "dataType": "STRING"}],
        },
    )
    assert r.status_code == 201, r.get_data(as_text=True)
    return r.json


def test_onboarding_assigns_starter_resources(app, api):
    nia = add_employee(app, name="Nia New", role="BACKEND_DEVELOPER")

    r = api.get(f"/api/employees/{nia}/onboarding")
    assert r.status_code == 200
    assert r.json["completed"] is False
    assert r.json["expected_resources"] == 0

    r = api.post(f"/api/employees/{nia}/onboarding", json={})
    assert r.status_code == 200
    assert r.json["resources_assigned"] == 0
    assert r.json["errors"] == ["No resources available for onboarding. Please create resources first."]

    laptop = create_laptop_resource(api)
    item = create_laptop_item(api, laptop["id"], "SN-1")
    figma = _figma(api)

    r = api.post(f"/api/employees/{nia}/onboarding", json={})
    assert r.status_code == 200, r.get_data(as_text=True)
    assert r.json["resources_assigned"] == 2
    assert r.json["completed"] is True
    assert api.get(f"/api/resource-items/{item['id']}").json["status"] == "ASSIGNED"
    held = {a["resource_id"] for a in api.get(f"/api/employees/{nia}/resources").json["items"]}
    assert held == {laptop["id"], figma["id"]}

    status = api.get(f"/api/employees/{nia}/onboarding").json
    assert status["completed"] is True
    assert status["assigned_resources"] == 2
    assert status["missing_resources"] == []

    r = api.post(f"/api/employees/{nia}/onboarding", json={})
    assert r.json["message"] == "Onboarding already completed"

    r = api.post(f"/api/employees/{nia}/onboarding", json={"force": True})
    assert r.json["resources_assigned"] == 0
    assert r.json["errors"] == []

    r = api.get(f"/api/timeline/EMPLOYEE/{nia}")
    assert "ONBOARDING_COMPLETED" in {e["activity_type"] for e in r.json["items"]}


def test_onboarding_others_requires_executive(app, api):
    nia = add_employee(app, name="Nia New", role="BACKEND_DEVELOPER")
    add_employee(app, name="Sam Self", role="FRONTEND_DEVELOPER", login_role="employee")
    laptop = create_laptop_resource(api)
    create_laptop_item(api, laptop["id"], "SN-1")
    assert api.post(f"/api/employees/{nia}/onboarding", json={}).status_code == 200

    sam = login(app.test_client(), "sam.self@example.com")
    r = sam.post(f"/api/employees/{nia}/onboarding", json={"force": True})
    assert r.status_code == 403

    sam_id = sam.get("/auth/me").json["employee"]["id"]
    r = sam.post(f"/api/employees/{sam_id}/onboarding", json={})
    assert r.status_code == 200
    assert r.json["resources_assigned"] == 0
    assert r.json["errors"] == ["MacBook Pro 14: No available items for this hardware resource."]
    assert r.json["completed"] is False


def test_onboarding_rejects_inactive_employee(app, api):
    gone = add_employee(app, name="Gone Person", role="EMPLOYEE", status="RESIGNED")
    create_laptop_resource(api)
    r = api.post(f"/api/employees/{gone}/onboarding", json={})
    assert r.status_code == 400
    assert r.json["error"] == "Only active employees can be onboarded."
