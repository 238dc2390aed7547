from app.erm.db import session_scope
from app.erm.modules.resources.catalog import seed_system_catalog
from conftest import create_laptop_resource, type_by_name


def test_system_types_seeded(api):
    r = api.get("/api/resource-types")
    assert r.status_code == 200
    by_name = {t["name"]: t for t in r.json["items"]}
    assert set(by_name) >= {"Hardware", "Software", "Cloud"}
    assert by_name["Hardware"]["mandatory_properties"] == ["serialNumber", "warrantyExpiry"]
    assert by_name["Cloud"]["mandatory_properties"] == ["maxUsers"]
    assert by_name["Hardware"]["is_system"] is True
    assert "Laptop" in {c["name"] for c in by_name["Hardware"]["categories"]}


def test_seed_is_idempotent(app):
    with session_scope(app) as s:
        assert seed_system_catalog(s) == {"types": 0, "categories": 0, "properties": 0}


def test_custom_type_lifecycle(api):
    r = api.post(
        "/api/resource-types",
        json={"name": "Vehicle", "description": "Company cars", "mandatory_properties": ["purchaseDate"]},
    )
    assert r.status_code == 201, r.get_data(as_text=True)
    vehicle = r.json
    assert vehicle["is_system"] is False
    assert vehicle["categories"] == []

    r = api.post("/api/resource-types", json={"name": "Vehicle"})
    assert r.status_code == 400
    assert "already exists" in r.json["error"]

    r = api.post("/api/resource-types", json={"name": "Boat", "mandatory_properties": ["hullNumber"]})
    assert r.status_code == 400
    assert "Unknown property keys: hullNumber" in r.json["error"]

    r = api.post("/api/resource-categories", json={"name": "Van", "resource_type_id": vehicle["id"]})
    assert r.status_code == 201
    van = r.json

    # Categories must be removed before their type.
    r = api.delete(f"/api/resource-types/{vehicle['id']}")
    assert r.status_code == 409
    assert api.delete(f"/api/resource-categories/{van['id']}").status_code == 200
    assert api.delete(f"/api/resource-types/{vehicle['id']}").status_code == 200


def test_system_type_protection(api):
    hw = type_by_name(api, "Hardware")
    r = api.patch(f"/api/resource-types/{hw['id']}", json={"name": "Gear"})
    assert r.status_code == 400

    r = api.delete(f"/api/resource-types/{hw['id']}")
    assert r.status_code == 409
    assert "System resource types" in r.json["error"]

    # Mandatory defaults survive an update that leaves them out.
    r = api.patch(f"/api/resource-types/{hw['id']}", json={"mandatory_properties": ["processor"]})
    assert r.status_code == 200
    assert r.json["mandatory_properties"] == ["warrantyExpiry", "serialNumber", "processor"]


def test_category_rules(api):
    hw = type_by_name(api, "Hardware")
    laptop = next(c for c in hw["categories"] if c["name"] == "Laptop")

    r = api.post("/api/resource-categories", json={"name": "Laptop", "resource_type_id": hw["id"]})
    assert r.status_code == 400
    assert "already exists" in r.json["error"]

    r = api.delete(f"/api/resource-categories/{laptop['id']}")
    assert r.status_code == 409

    r = api.get(f"/api/resource-categories?type_id={hw['id']}")
    assert len(r.json["items"]) == 6


def test_property_catalog(api):
    r = api.post("/api/property-catalog", json={"key": "Bad Key", "label": "", "dataType": "COLOR"})
    assert r.status_code == 400
    assert len(r.json["errors"]) == 3

    r = api.post("/api/property-catalog", json={"key": "screenSize", "label": "Screen Size", "dataType": "number"})
    assert r.status_code == 201
    prop = r.json
    assert prop["dataType"] == "NUMBER"
    assert prop["is_system"] is False

    r = api.patch(f"/api/property-catalog/{prop['id']}", json={"key": "otherKey"})
    assert r.status_code == 400

    serial = next(p for p in api.get("/api/property-catalog").json["items"] if p["key"] == "serialNumber")
    r = api.delete(f"/api/property-catalog/{serial['id']}")
    assert r.status_code == 409


def test_property_in_use_cannot_be_deleted(api):
    prop = api.post("/api/property-catalog", json={"key": "assetTag", "label": "Asset Tag", "dataType": "STRING"}).json
    hw = type_by_name(api, "Hardware")
    laptop = next(c for c in hw["categories"] if c["name"] == "Laptop")
    r = api.post(
        "/api/resources",
        json={
            "name": "Tagged laptop",
            "resource_type_id": hw["id"],
            "resource_category_id": laptop["id"],
            "property_schema": [
                {"key": "serialNumber", "label": "Serial", "dataType": "STRING"},
                {"key": "warrantyExpiry", "label": "Warranty", "dataType": "DATE"},
                {"key": "assetTag", "label": "Asset Tag", "dataType": "STRING"},
            ],
        },
    )
    assert r.status_code == 201

    r = api.delete(f"/api/property-catalog/{prop['id']}")
    assert r.status_code == 409
    assert "Tagged laptop" in r.json["error"]


def test_properties_for_type(api):
    create_laptop_resource(api)
    hw = type_by_name(api, "Hardware")
    r = api.get(f"/api/resource-types/{hw['id']}/properties")
    assert r.status_code == 200
    assert "serialNumber" in {p["key"] for p in r.json["type_specific"]}
    assert "warrantyExpiry" in {p["key"] for p in r.json["common"]}
    assert r.json["mandatory_keys"] == ["serialNumber", "warrantyExpiry"]
    assert "hostname" in r.json["suggested_keys"]
