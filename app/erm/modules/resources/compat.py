"""
Bridges between the legacy resource layout (fixed PHYSICAL/SOFTWARE/CLOUD types,
flat item columns) and the type catalog + JSON property bag.
"""
from __future__ import annotations

import logging
from datetime import date, datetime
from typing import TYPE_CHECKING, Any

from app.erm.audit import record_event
from app.erm.constants import SYSTEM_TYPE_CLOUD, SYSTEM_TYPE_HARDWARE, SYSTEM_TYPE_SOFTWARE
from app.erm.utils import iso, parse_date

if TYPE_CHECKING:
    from sqlalchemy.orm import Session
    from app.erm.models import User
    from app.erm.modules.resources.models import Resource, ResourceAssignment, ResourceItem

logger = logging.getLogger(__name__)

_TO_LEGACY = {
    "hardware": "PHYSICAL",
    "physical": "PHYSICAL",
    "software": "SOFTWARE",
    "cloud": "CLOUD",
}
_FROM_LEGACY = {
    "PHYSICAL": SYSTEM_TYPE_HARDWARE,
    "SOFTWARE": SYSTEM_TYPE_SOFTWARE,
    "CLOUD": SYSTEM_TYPE_CLOUD,
}

# property key -> ResourceItem column
LEGACY_FIELD_MAP: dict[str, str] = {
    "serialNumber": "serial_number",
    "hostname": "hostname",
    "ipAddress": "ip_address",
    "macAddress": "mac_address",
    "operatingSystem": "operating_system",
    "osVersion": "os_version",
    "processor": "processor",
    "memory": "memory",
    "storage": "storage",
    "licenseKey": "license_key",
    "softwareVersion": "software_version",
    "licenseType": "license_type",
    "maxUsers": "max_users",
    "activationCode": "activation_code",
    "licenseExpiry": "license_expiry",
    "purchaseDate": "purchase_date",
    "warrantyExpiry": "warranty_expiry",
    "value": "value",
}
_DATE_KEYS = ("licenseExpiry", "purchaseDate", "warrantyExpiry")


def map_to_legacy_type(type_name: str | None) -> str:
    return _TO_LEGACY.get((type_name or "").strip().lower(), "PHYSICAL")


def map_from_legacy_type(legacy_type: str | None) -> str:
    return _FROM_LEGACY.get((legacy_type or "").strip().upper(), SYSTEM_TYPE_HARDWARE)


def _to_number(value: Any, *, integer: bool) -> int | float | None:
    if value is None or isinstance(value, bool):
        return None
    try:
        num = float(value)
    except (TypeError, ValueError):
        return None
    return int(num) if integer else num


def extract_legacy_fields(properties: dict | None) -> dict[str, Any]:
    """Column values for the legacy item columns, taken from a property bag."""
    props = properties or {}
    out: dict[str, Any] = {}
    for key, column in LEGACY_FIELD_MAP.items():
        value = props.get(key)
        if value is None or value == "":
            out[column] = None
        elif key in _DATE_KEYS:
            try:
                out[column] = parse_date(value)
            except ValueError:
                out[column] = None
        elif key == "value":
            out[column] = _to_number(value, integer=False)
        elif key == "maxUsers":
            out[column] = _to_number(value, integer=True)
        else:
            out[column] = str(value)
    return out


def convert_legacy_fields_to_properties(item: "ResourceItem") -> dict[str, Any]:
    props: dict[str, Any] = {}
    for key, column in LEGACY_FIELD_MAP.items():
        value = getattr(item, column, None)
        if value is None:
            continue
        props[key] = iso(value) if isinstance(value, (date, datetime)) else value
    return props


def merge_properties_with_legacy(item: "ResourceItem") -> dict[str, Any]:
    merged = convert_legacy_fields_to_properties(item)
    merged.update(item.properties or {})
    return merged


def is_new_structure_resource(resource: "Resource") -> bool:
    return resource.resource_type_id is not None and resource.resource_category_id is not None


def is_new_properties_format(item: "ResourceItem") -> bool:
    return bool(item.properties)


def determine_assignment_type_from_legacy(legacy_type: str | None) -> str:
    return "SHARED" if (legacy_type or "").upper() == "CLOUD" else "INDIVIDUAL"


def normalize_resource(resource: "Resource") -> dict[str, Any]:
    type_name = resource.resource_type.name if resource.resource_type else map_from_legacy_type(resource.type)
    category_name = resource.resource_category.name if resource.resource_category else resource.category
    return {
        "id": resource.id,
        "name": resource.name,
        "typeName": type_name,
        "categoryName": category_name,
        "legacyType": resource.type or map_to_legacy_type(type_name),
        "isNewStructure": is_new_structure_resource(resource),
    }


def normalize_resource_item(item: "ResourceItem") -> dict[str, Any]:
    return {
        "id": item.id,
        "resourceId": item.resource_id,
        "status": item.status,
        "properties": merge_properties_with_legacy(item),
        "isNewFormat": is_new_properties_format(item),
    }


def normalize_assignment(assignment: "ResourceAssignment") -> dict[str, Any]:
    return {
        "id": assignment.id,
        "employeeId": assignment.employee_id,
        "resourceId": assignment.resource_id,
        "itemId": assignment.item_id,
        "status": assignment.status,
        "assignmentType": assignment.assignment_type or "INDIVIDUAL",
    }


def migrate_legacy_items(s: "Session", user: "User | None") -> dict[str, int]:
    """Back-fill empty property bags from the legacy columns."""
    from app.erm.modules.resources.models import ResourceItem

    counts = {"scanned": 0, "migrated": 0, "skipped": 0}
    for item in s.query(ResourceItem).order_by(ResourceItem.id.asc()).all():
        counts["scanned"] += 1
        if is_new_properties_format(item):
            counts["skipped"] += 1
            continue
        props = convert_legacy_fields_to_properties(item)
        if not props:
            counts["skipped"] += 1
            continue
        item.properties = props
        item.updated_at = datetime.utcnow()
        counts["migrated"] += 1
    s.flush()

    record_event(s, actor=user, action="resource_item.migrate_legacy", entity_type="ResourceItem", metadata=counts)
    logger.info("Legacy item migration: %s", counts)
    return counts
