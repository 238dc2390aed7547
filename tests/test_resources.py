from conftest import (
    HARDWARE_SCHEMA,
    add_employee,
    category_id,
    create_laptop_item,
    create_laptop_resource,
    type_by_name,
)


def _resource_payload(api, **overrides):
    payload = {
        "name": "ThinkPad X1",
        "resource_type_id": type_by_name(api, "Hardware")["id"],
        "resource_category_id": category_id(api, "Hardware", "Laptop"),
        "property_schema": HARDWARE_SCHEMA,
    }
    payload.update(overrides)
    return payload


def test_create_resource(app, api):
    custodian = add_employee(app, name="Sam Sysadmin", role="SYSTEM_ADMINISTRATOR")
    r = api.post("/api/resources", json=_resource_payload(api, custodian_id=custodian, quantity=3))
    assert r.status_code == 201, r.get_data(as_text=True)
    res = r.json
    assert res["resource_type"] == "Hardware"
    assert res["resource_category"] == "Laptop"
    assert res["type"] == "PHYSICAL"
    assert res["category"] == "Laptop"
    assert res["owner"] == "Unisouk"
    assert res["custodian"]["name"] == "Sam Sysadmin"
    assert res["quantity"] == 3
    assert res["schema_locked"] is False
    assert [d["key"] for d in res["property_schema"]] == ["serialNumber", "warrantyExpiry", "memory"]

    r = api.get(f"/api/timeline/RESOURCE/{res['id']}")
    assert r.json["items"][0]["activity_type"] == "CREATED"


def test_create_resource_rejections(api):
    r = api.post("/api/resources", json=_resource_payload(api, property_schema=[]))
    assert r.status_code == 400
    assert "at least one property" in r.json["error"]

    r = api.post(
        "/api/resources",
        json=_resource_payload(api, property_schema=[{"key": "memory", "label": "Memory", "dataType": "STRING"}]),
    )
    assert r.status_code == 400
    assert "missing mandatory properties" in r.json["error"]
    assert "serialNumber" in r.json["error"]

    r = api.post("/api/resources", json=_resource_payload(api, resource_category_id=category_id(api, "Cloud", "Cloud Account")))
    assert r.status_code == 400
    assert "does not belong" in r.json["error"]

    r = api.post("/api/resources", json=_resource_payload(api, quantity=0))
    assert r.status_code == 400
    assert r.json["error"] == "Quantity must be at least 1."


def test_mandatory_keys_forced_required(api):
    schema = [
        {"key": "serialNumber", "label": "Serial", "dataType": "STRING", "isRequired": False},
        {"key": "warrantyExpiry", "label": "Warranty", "dataType": "DATE"},
    ]
    r = api.post("/api/resources", json=_resource_payload(api, property_schema=schema))
    assert r.status_code == 201
    assert all(d["isRequired"] for d in r.json["property_schema"])


def test_item_validation_messages(api):
    res = create_laptop_resource(api)
    r = api.post(f"/api/resources/{res['id']}/items", json={"properties": {"memory": "8GB"}})
    assert r.status_code == 400
    assert r.json["error"].startswith("Property validation failed:")
    assert "serialNumber" in r.json["error"]

    r = api.post(
        f"/api/resources/{res['id']}/items",
        json={"properties": {"serialNumber": "SN", "warrantyExpiry": "2027-01-01", "color": "red"}},
    )
    assert r.status_code == 400
    assert "Unknown properties not in schema: color" in r.json["error"]

    r = api.post(
        f"/api/resources/{res['id']}/items",
        json={"properties": {"serialNumber": "SN", "warrantyExpiry": "someday"}},
    )
    assert r.status_code == 400
    assert "Expected DATE" in r.json["error"]


def test_mandatory_property_blank_rejected(api):
    optional_schema = [
        {"key": "serialNumber", "label": "Serial", "dataType": "STRING"},
        {"key": "warrantyExpiry", "label": "Warranty", "dataType": "DATE"},
    ]
    res = api.post("/api/resources", json=_resource_payload(api, property_schema=optional_schema)).json
    r = api.post(
        f"/api/resources/{res['id']}/items",
        json={"properties": {"serialNumber": "  ", "warrantyExpiry": "2027-01-01"}},
    )
    assert r.status_code == 400
    assert r.json["error"].startswith("Mandatory property validation failed:")


def test_first_item_locks_schema(api):
    res = create_laptop_resource(api)
    assert api.get(f"/api/resources/{res['id']}/schema/can-modify").json == {"can_modify": True, "reason": None}

    new_schema = HARDWARE_SCHEMA + [{"key": "storage", "label": "Storage", "dataType": "STRING"}]
    r = api.put(f"/api/resources/{res['id']}/schema", json={"property_schema": new_schema})
    assert r.status_code == 200
    assert len(r.json["property_schema"]) == 4

    item = create_laptop_item(api, res["id"], "SN-100")
    assert item["status"] == "AVAILABLE"
    assert item["serial_number"] == "SN-100"
    assert item["properties"]["warrantyExpiry"] == "2027-01-31"

    r = api.get(f"/api/resources/{res['id']}/schema")
    assert r.json["schema_locked"] is True
    r = api.put(f"/api/resources/{res['id']}/schema", json={"property_schema": HARDWARE_SCHEMA})
    assert r.status_code == 400
    assert "locked" in r.json["error"]


def test_duplicate_serial_rejected(api):
    res = create_laptop_resource(api)
    create_laptop_item(api, res["id"], "SN-1")
    r = api.post(
        f"/api/resources/{res['id']}/items",
        json={"properties": {"serialNumber": "SN-1", "warrantyExpiry": "2027-01-31"}},
    )
    assert r.status_code == 400
    assert "already exists" in r.json["error"]


def test_item_update_and_status(api):
    res = create_laptop_resource(api)
    item = create_laptop_item(api, res["id"], "SN-1")

    r = api.patch(f"/api/resource-items/{item['id']}", json={"properties": {"memory": "32GB"}})
    assert r.status_code == 200
    assert r.json["properties"]["memory"] == "32GB"
    assert r.json["properties"]["serialNumber"] == "SN-1"

    r = api.post(f"/api/resource-items/{item['id']}/status", json={"status": "MAINTENANCE"})
    assert r.status_code == 200
    assert r.json["status"] == "MAINTENANCE"

    r = api.post(f"/api/resource-items/{item['id']}/status", json={"status": "ASSIGNED"})
    assert r.status_code == 400

    r = api.get(f"/api/resources/{res['id']}/items?status=MAINTENANCE")
    assert r.json["pagination"]["total"] == 1
    r = api.get(f"/api/resources/{res['id']}/items?search=sn-1")
    assert r.json["pagination"]["total"] == 1


def test_resource_update(app, api):
    res = create_laptop_resource(api)
    r = api.patch(
        f"/api/resources/{res['id']}",
        json={"name": "MacBook Pro 16", "resource_category_id": category_id(api, "Hardware", "Desktop"), "reason": "rename"},
    )
    assert r.status_code == 200
    assert r.json["name"] == "MacBook Pro 16"
    assert r.json["category"] == "Desktop"

    r = api.patch(f"/api/resources/{res['id']}", json={"resource_type_id": type_by_name(api, "Cloud")["id"]})
    assert r.status_code == 400
    r = api.patch(f"/api/resources/{res['id']}", json={"property_schema": HARDWARE_SCHEMA})
    assert r.status_code == 400
    r = api.patch(f"/api/resources/{res['id']}", json={"status": "BROKEN"})
    assert r.status_code == 400


def test_resource_delete_rules(app, api):
    emp = add_employee(app, name="Dana Dev", role="BACKEND_DEVELOPER")
    res = create_laptop_resource(api)
    item = create_laptop_item(api, res["id"], "SN-1")

    r = api.delete(f"/api/resources/{res['id']}")
    assert r.status_code == 409
    assert "item" in r.json["error"]

    a = api.post("/api/assignments", json={"employee_id": emp, "resource_id": res["id"], "item_id": item["id"]}).json
    r = api.delete(f"/api/resource-items/{item['id']}")
    assert r.status_code == 409
    assert "active assignment" in r.json["error"]

    assert api.post(f"/api/assignments/{a['id']}/status", json={"status": "RETURNED"}).status_code == 200
    assert api.delete(f"/api/resource-items/{item['id']}").status_code == 200
    assert api.delete(f"/api/resources/{res['id']}").status_code == 200
    assert api.get(f"/api/resources/{res['id']}").status_code == 404


def test_resource_detail_counts(app, api):
    emp = add_employee(app, name="Dana Dev", role="BACKEND_DEVELOPER")
    res = create_laptop_resource(api)
    i1 = create_laptop_item(api, res["id"], "SN-1")
    create_laptop_item(api, res["id"], "SN-2")
    api.post("/api/assignments", json={"employee_id": emp, "resource_id": res["id"], "item_id": i1["id"]})

    r = api.get(f"/api/resources/{res['id']}")
    assert r.status_code == 200
    assert r.json["item_counts"] == {"ASSIGNED": 1, "AVAILABLE": 1, "total": 2}
    assert len(r.json["active_assignments"]) == 1

    r = api.get("/api/resources?search=macbook")
    assert r.json["pagination"]["total"] == 1
