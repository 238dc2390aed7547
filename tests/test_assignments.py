from app.erm.modules.resources.assignments import determine_assignment_type
from conftest import add_employee, category_id, create_laptop_item, create_laptop_resource, type_by_name


def _software(api, quantity=2):
    r = api.post(
        "/api/resources",
        json={
            "name": "Figma",
            "resource_type_id": type_by_name(api, "Software")["id"],
            "resource_category_id": category_id(api, "Software", "SaaS"),
            "property_schema": [{"key": "licenseKey", "label": "License Key", "dataType": "STRING"}],
            "quantity": quantity,
        },
    )
    assert r.status_code == 201, r.get_data(as_text=True)
    return r.json


def _cloud(api):
    r = api.post(
        "/api/resources",
        json={
            "name": "AWS Production",
            "resource_type_id": type_by_name(api, "Cloud")["id"],
            "resource_category_id": category_id(api, "Cloud", "Cloud Account"),
            "property_schema": [
                {"key": "maxUsers", "label": "Max Users", "dataType": "NUMBER"},
                {"key": "region", "label": "Region", "dataType": "STRING"},
            ],
        },
    )
    assert r.status_code == 201, r.get_data(as_text=True)
    return r.json


def test_determine_assignment_type():
    assert determine_assignment_type("Hardware", "SHARED") == "INDIVIDUAL"
    assert determine_assignment_type("PHYSICAL") == "INDIVIDUAL"
    assert determine_assignment_type("Software", "POOLED") == "POOLED"
    assert determine_assignment_type("Software", "SHARED") == "INDIVIDUAL"
    assert determine_assignment_type("Cloud") == "SHARED"
    assert determine_assignment_type("Vehicle", "POOLED") == "POOLED"
    assert determine_assignment_type("Vehicle", "BOGUS") == "INDIVIDUAL"


def test_hardware_assignment_marks_item_assigned(app, api):
    dana = add_employee(app, name="Dana Dev", role="BACKEND_DEVELOPER")
    eli = add_employee(app, name="Eli Eng", role="FRONTEND_DEVELOPER")
    res = create_laptop_resource(api)
    item = create_laptop_item(api, res["id"], "SN-1")

    r = api.post("/api/assignments", json={"employee_id": dana, "resource_id": res["id"]})
    assert r.status_code == 400
    assert "specific item" in r.json["error"]

    r = api.post("/api/assignments", json={"employee_id": dana, "resource_id": res["id"], "item_id": item["id"]})
    assert r.status_code == 201
    a = r.json
    assert a["assignment_type"] == "INDIVIDUAL"
    assert a["status"] == "ACTIVE"
    assert a["assigned_by"]["name"] == "Alice Admin"
    assert api.get(f"/api/resource-items/{item['id']}").json["status"] == "ASSIGNED"

    r = api.post("/api/assignments", json={"employee_id": eli, "resource_id": res["id"], "item_id": item["id"]})
    assert r.status_code == 400
    assert r.json["error"] == "Item is not available (status: ASSIGNED)."

    r = api.get(f"/api/timeline/RESOURCE/{res['id']}")
    assigned = next(e for e in r.json["items"] if e["activity_type"] == "ASSET_ASSIGNED")
    assert assigned["employee_id"] == dana
    assert assigned["metadata"]["employeeName"] == "Dana Dev"


def test_validate_endpoint(app, api):
    dana = add_employee(app, name="Dana Dev", role="BACKEND_DEVELOPER")
    res = create_laptop_resource(api)

    r = api.post("/api/assignments/validate", json={"employee_id": dana, "resource_id": res["id"]})
    assert r.json == {
        "valid": False,
        "error": "No available items for this hardware resource.",
        "assignment_type": "INDIVIDUAL",
    }

    item = create_laptop_item(api, res["id"], "SN-1")
    r = api.post("/api/assignments/validate", json={"employee_id": dana, "resource_id": res["id"], "item_id": item["id"]})
    assert r.json["valid"] is True


def test_inactive_employee_cannot_receive_assets(app, api):
    gone = add_employee(app, name="Gone Person", role="EMPLOYEE", status="RESIGNED")
    res = create_laptop_resource(api)
    item = create_laptop_item(api, res["id"], "SN-1")
    r = api.post("/api/assignments", json={"employee_id": gone, "resource_id": res["id"], "item_id": item["id"]})
    assert r.status_code == 400
    assert "not active" in r.json["error"]


def test_pooled_licenses_limited_by_quantity(app, api):
    emps = [add_employee(app, name=f"Dev {n}", role="BACKEND_DEVELOPER") for n in "ABC"]
    sw = _software(api, quantity=2)

    for emp in emps[:2]:
        r = api.post(
            "/api/assignments", json={"employee_id": emp, "resource_id": sw["id"], "assignment_type": "POOLED"}
        )
        assert r.status_code == 201
        assert r.json["assignment_type"] == "POOLED"

    assert api.get(f"/api/resources/{sw['id']}/licenses").json == {"total": 2, "used": 2, "available": 0}

    r = api.post("/api/assignments", json={"employee_id": emps[2], "resource_id": sw["id"], "assignment_type": "POOLED"})
    assert r.status_code == 400
    assert r.json["error"] == "No licenses available: 2/2 licenses are in use."


def test_individual_software_one_per_employee(app, api):
    dev = add_employee(app, name="Dev A", role="BACKEND_DEVELOPER")
    sw = _software(api)
    r = api.post("/api/assignments", json={"employee_id": dev, "resource_id": sw["id"]})
    assert r.status_code == 201
    assert r.json["assignment_type"] == "INDIVIDUAL"
    r = api.post("/api/assignments", json={"employee_id": dev, "resource_id": sw["id"]})
    assert r.status_code == 400
    assert "already has an active assignment" in r.json["error"]


def test_cloud_is_shared(app, api):
    a = add_employee(app, name="Dev A", role="DEVOPS_ENGINEER")
    b = add_employee(app, name="Dev B", role="DEVOPS_ENGINEER")
    cloud = _cloud(api)
    for emp in (a, b):
        r = api.post("/api/assignments", json={"employee_id": emp, "resource_id": cloud["id"]})
        assert r.status_code == 201
        assert r.json["assignment_type"] == "SHARED"

    r = api.post("/api/assignments", json={"employee_id": a, "resource_id": cloud["id"]})
    assert r.status_code == 400

    r = api.get(f"/api/resources/{cloud['id']}/shared-users")
    assert [x["employee"]["name"] for x in r.json["items"]] == ["Dev A", "Dev B"]


def test_status_transitions_drive_item_status(app, api):
    dana = add_employee(app, name="Dana Dev", role="BACKEND_DEVELOPER")
    res = create_laptop_resource(api)
    item = create_laptop_item(api, res["id"], "SN-1")
    a = api.post("/api/assignments", json={"employee_id": dana, "resource_id": res["id"], "item_id": item["id"]}).json

    r = api.post(f"/api/assignments/{a['id']}/status", json={"status": "DAMAGED", "notes": "cracked screen"})
    assert r.status_code == 200
    assert r.json["status"] == "DAMAGED"
    assert r.json["returned_at"] is None
    assert api.get(f"/api/resource-items/{item['id']}").json["status"] == "DAMAGED"

    r = api.post(f"/api/assignments/{a['id']}/status", json={"status": "LOST"})
    assert r.status_code == 400
    assert r.json["error"] == "Cannot change assignment status from DAMAGED to LOST."

    r = api.post(f"/api/assignments/{a['id']}/status", json={"status": "RETURNED"})
    assert r.status_code == 200
    assert r.json["returned_at"] is not None
    assert api.get(f"/api/resource-items/{item['id']}").json["status"] == "AVAILABLE"

    r = api.post(f"/api/assignments/{a['id']}/status", json={"status": "ACTIVE"})
    assert r.status_code == 400


def test_lost_assignment_marks_item_lost(app, api):
    dana = add_employee(app, name="Dana Dev", role="BACKEND_DEVELOPER")
    res = create_laptop_resource(api)
    item = create_laptop_item(api, res["id"], "SN-1")
    a = api.post("/api/assignments", json={"employee_id": dana, "resource_id": res["id"], "item_id": item["id"]}).json

    assert api.post(f"/api/assignments/{a['id']}/status", json={"status": "LOST"}).status_code == 200
    assert api.get(f"/api/resource-items/{item['id']}").json["status"] == "LOST"


def test_revoke_requires_reason(app, api):
    dana = add_employee(app, name="Dana Dev", role="BACKEND_DEVELOPER")
    res = create_laptop_resource(api)
    item = create_laptop_item(api, res["id"], "SN-1")
    a = api.post("/api/assignments", json={"employee_id": dana, "resource_id": res["id"], "item_id": item["id"]}).json

    r = api.post(f"/api/assignments/{a['id']}/revoke", json={})
    assert r.status_code == 400

    r = api.post(f"/api/assignments/{a['id']}/revoke", json={"reason": "left the team"})
    assert r.status_code == 200
    assert r.json["status"] == "RETURNED"
    assert r.json["notes"] == "Revoked: left the team"

    r = api.get(f"/api/assignments?employee_id={dana}&status=RETURNED")
    assert r.json["pagination"]["total"] == 1


def test_pooled_license_rejects_item(app, api):
    dev = add_employee(app, name="Dev A", role="BACKEND_DEVELOPER")
    sw = _software(api)
    laptop = create_laptop_resource(api)
    item = create_laptop_item(api, laptop["id"], "SN-1")

    r = api.post(
        "/api/assignments",
        json={"employee_id": dev, "resource_id": sw["id"], "item_id": item["id"], "assignment_type": "POOLED"},
    )
    assert r.status_code == 400
    assert r.json["error"] == "Pooled licenses are not tied to an item."
    assert api.get(f"/api/resource-items/{item['id']}").json["status"] == "AVAILABLE"
    assert api.get(f"/api/resources/{sw['id']}/licenses").json["used"] == 0


def test_custom_type_checks_item_ownership(app, api):
    dev = add_employee(app, name="Dev A", role="BACKEND_DEVELOPER")
    vehicle = api.post("/api/resource-types", json={"name": "Vehicle"}).json
    van = api.post("/api/resource-categories", json={"name": "Van", "resource_type_id": vehicle["id"]}).json
    r = api.post(
        "/api/resources",
        json={
            "name": "Transit",
            "resource_type_id": vehicle["id"],
            "resource_category_id": van["id"],
            "property_schema": [{"key": "plate", "label": "Plate", "dataType": "STRING"}],
        },
    )
    assert r.status_code == 201, r.get_data(as_text=True)
    transit = r.json
    laptop = create_laptop_resource(api)
    item = create_laptop_item(api, laptop["id"], "SN-1")

    r = api.post("/api/assignments", json={"employee_id": dev, "resource_id": transit["id"], "item_id": item["id"]})
    assert r.status_code == 400
    assert r.json["error"] == "Item does not belong to this resource."
    assert api.get(f"/api/resource-items/{item['id']}").json["status"] == "AVAILABLE"

    r = api.post("/api/assignments", json={"employee_id": dev, "resource_id": transit["id"]})
    assert r.status_code == 201


def test_quantity_cannot_drop_below_pooled_usage(app, api):
    emps = [add_employee(app, name=f"Dev {n}", role="BACKEND_DEVELOPER") for n in "AB"]
    sw = _software(api, quantity=3)
    for emp in emps:
        r = api.post("/api/assignments", json={"employee_id": emp, "resource_id": sw["id"], "assignment_type": "POOLED"})
        assert r.status_code == 201

    r = api.patch(f"/api/resources/{sw['id']}", json={"quantity": 1})
    assert r.status_code == 400
    assert r.json["error"] == "Quantity cannot be lower than the 2 pooled licenses in use."
    assert api.get(f"/api/resources/{sw['id']}/licenses").json == {"total": 3, "used": 2, "available": 1}

    r = api.patch(f"/api/resources/{sw['id']}", json={"quantity": 2})
    assert r.status_code == 200
    assert api.get(f"/api/resources/{sw['id']}/licenses").json["available"] == 0
