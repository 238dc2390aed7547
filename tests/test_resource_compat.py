from datetime import date
from types import SimpleNamespace

from app.erm.db import session_scope
from app.erm.modules.resources.compat import (
    convert_legacy_fields_to_properties,
    determine_assignment_type_from_legacy,
    extract_legacy_fields,
    map_from_legacy_type,
    map_to_legacy_type,
    merge_properties_with_legacy,
)
from app.erm.modules.resources.models import ResourceItem
from conftest import create_laptop_item, create_laptop_resource


def _legacy_item(**columns):
    values = {column: None for column in (
        "serial_number", "hostname", "ip_address", "mac_address", "operating_system", "os_version",
        "processor", "memory", "storage", "license_key", "software_version", "license_type", "max_users",
        "activation_code", "license_expiry", "purchase_date", "warranty_expiry", "value",
    )}
    values.update(columns)
    values.setdefault("properties", None)
    return SimpleNamespace(**values)


def test_type_mapping():
    assert map_to_legacy_type("Hardware") == "PHYSICAL"
    assert map_to_legacy_type("software") == "SOFTWARE"
    assert map_to_legacy_type("Cloud") == "CLOUD"
    assert map_to_legacy_type("Vehicle") == "PHYSICAL"
    assert map_from_legacy_type("PHYSICAL") == "Hardware"
    assert map_from_legacy_type("cloud") == "Cloud"
    assert map_from_legacy_type(None) == "Hardware"
    assert determine_assignment_type_from_legacy("CLOUD") == "SHARED"
    assert determine_assignment_type_from_legacy("SOFTWARE") == "INDIVIDUAL"


def test_extract_legacy_fields():
    cols = extract_legacy_fields(
        {"serialNumber": "SN1", "maxUsers": "25", "value": "1299.99", "warrantyExpiry": "2027-06-30", "purchaseDate": "bad"}
    )
    assert cols["serial_number"] == "SN1"
    assert cols["max_users"] == 25
    assert cols["value"] == 1299.99
    assert cols["warranty_expiry"] == date(2027, 6, 30)
    assert cols["purchase_date"] is None
    assert cols["hostname"] is None


def test_legacy_columns_become_properties():
    item = _legacy_item(serial_number="SN9", warranty_expiry=date(2026, 1, 1), max_users=5)
    assert convert_legacy_fields_to_properties(item) == {
        "serialNumber": "SN9",
        "warrantyExpiry": "2026-01-01",
        "maxUsers": 5,
    }

    item.properties = {"serialNumber": "SN10", "color": "grey"}
    merged = merge_properties_with_legacy(item)
    assert merged["serialNumber"] == "SN10"
    assert merged["warrantyExpiry"] == "2026-01-01"
    assert merged["color"] == "grey"


def test_compat_view_and_legacy_migration(app, api):
    res = create_laptop_resource(api)
    item = create_laptop_item(api, res["id"], "SN-1")

    with session_scope(app) as s:
        legacy = ResourceItem(
            resource_id=res["id"],
            status="AVAILABLE",
            properties=None,
            serial_number="OLD-1",
            warranty_expiry=date(2025, 12, 31),
        )
        s.add(legacy)
        s.flush()
        legacy_id = legacy.id

    r = api.get(f"/api/resources/{res['id']}/compat")
    assert r.status_code == 200
    assert r.json["resource"]["typeName"] == "Hardware"
    assert r.json["resource"]["legacyType"] == "PHYSICAL"
    assert r.json["resource"]["isNewStructure"] is True
    by_id = {i["id"]: i for i in r.json["items"]}
    assert by_id[item["id"]]["isNewFormat"] is True
    assert by_id[legacy_id]["isNewFormat"] is False
    assert by_id[legacy_id]["properties"]["serialNumber"] == "OLD-1"

    r = api.post("/api/resources/migrate-legacy")
    assert r.status_code == 200
    assert r.json["migrated"] == 1
    assert r.json["skipped"] == 1

    r = api.get(f"/api/resource-items/{legacy_id}")
    assert r.json["properties"] == {"serialNumber": "OLD-1", "warrantyExpiry": "2025-12-31"}


def test_legacy_item_update_keeps_column_values(app, api):
    res = create_laptop_resource(api)
    with session_scope(app) as s:
        legacy = ResourceItem(
            resource_id=res["id"],
            status="AVAILABLE",
            properties={},
            serial_number="OLD-2",
            warranty_expiry=date(2027, 3, 31),
        )
        s.add(legacy)
        s.flush()
        legacy_id = legacy.id

    r = api.patch(f"/api/resource-items/{legacy_id}", json={"properties": {"memory": "8GB"}})
    assert r.status_code == 200, r.get_data(as_text=True)
    assert r.json["properties"] == {"serialNumber": "OLD-2", "warrantyExpiry": "2027-03-31", "memory": "8GB"}
    assert r.json["serial_number"] == "OLD-2"
