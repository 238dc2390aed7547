from __future__ import annotations

import logging
from datetime import datetime
from typing import TYPE_CHECKING, Any

from sqlalchemy import String, cast, func, or_

from app.erm.audit import record_event, record_field_changes
from app.erm.constants import ITEM_STATUSES
from app.erm.modules.resources.compat import extract_legacy_fields, merge_properties_with_legacy
from app.erm.modules.resources.models import Resource, ResourceAssignment, ResourceItem
from app.erm.modules.resources.schema import (
    normalize_properties_with_schema,
    validate_mandatory_properties,
    validate_properties_against_schema,
)
from app.erm.modules.resources.service import lock_resource_schema
from app.erm.modules.timeline.service import log_activity, log_status_changed
from app.erm.utils import clean_str, iso

if TYPE_CHECKING:
    from sqlalchemy.orm import Session
    from app.erm.models import User

logger = logging.getLogger(__name__)

# ASSIGNED is only ever set by the assignment service.
MANUAL_ITEM_STATUSES = tuple(st for st in ITEM_STATUSES if st != "ASSIGNED")


def item_to_dict(item: ResourceItem) -> dict[str, Any]:
    return {
        "id": item.id,
        "resource_id": item.resource_id,
        "resource_name": item.resource.name if item.resource else None,
        "status": item.status,
        "properties": merge_properties_with_legacy(item),
        "metadata": item.meta,
        "serial_number": item.serial_number,
        "created_at": iso(item.created_at),
        "updated_at": iso(item.updated_at),
    }


def check_item_properties(resource: Resource, properties: Any) -> dict[str, Any]:
    """Normalize and validate a property bag against the resource schema; returns the normalized bag."""
    if properties is None:
        properties = {}
    if not isinstance(properties, dict):
        raise ValueError("properties must be an object.")
    schema = list(resource.property_schema or [])
    props = normalize_properties_with_schema(properties, schema)

    result = validate_properties_against_schema(props, schema)
    if not result.is_valid:
        raise ValueError("Property validation failed: " + "; ".join(result.messages()))

    mandatory = list(resource.resource_type.mandatory_properties or []) if resource.resource_type else []
    mandatory_errors = validate_mandatory_properties(props, mandatory)
    if mandatory_errors:
        raise ValueError("Mandatory property validation failed: " + "; ".join(mandatory_errors))
    return props


def _check_serial_unique(s: "Session", serial: str | None, *, exclude_id: int | None = None) -> None:
    if not serial:
        return
    q = s.query(ResourceItem).filter(ResourceItem.serial_number == serial)
    if exclude_id is not None:
        q = q.filter(ResourceItem.id != exclude_id)
    if q.first():
        raise ValueError(f'An item with serial number "{serial}" already exists.')


def _apply_legacy_columns(item: ResourceItem, props: dict[str, Any]) -> None:
    for column, value in extract_legacy_fields(props).items():
        setattr(item, column, value)


def has_active_assignment(s: "Session", item: ResourceItem) -> bool:
    return (
        s.query(ResourceAssignment)
        .filter(ResourceAssignment.item_id == item.id, ResourceAssignment.status == "ACTIVE")
        .first()
        is not None
    )


def create_resource_item(s: "Session", resource: Resource, payload: dict, user: "User") -> ResourceItem:
    props = check_item_properties(resource, payload.get("properties"))
    status = clean_str(payload.get("status")) or "AVAILABLE"
    if status not in MANUAL_ITEM_STATUSES:
        raise ValueError(f"Invalid item status. Must be one of: {', '.join(MANUAL_ITEM_STATUSES)}")

    now = datetime.utcnow()
    item = ResourceItem(
        resource_id=resource.id,
        status=status,
        properties=props,
        meta=payload.get("metadata") if isinstance(payload.get("metadata"), dict) else None,
        created_at=now,
        updated_at=now,
    )
    _apply_legacy_columns(item, props)
    _check_serial_unique(s, item.serial_number)
    s.add(item)
    s.flush()

    first_item = lock_resource_schema(s, resource, user)

    record_event(
        s,
        actor=user,
        action="resource_item.create",
        entity_type="ResourceItem",
        entity_id=str(item.id),
        metadata={"resource_id": resource.id, "properties": props},
    )
    log_activity(
        s,
        entity_type="RESOURCE",
        entity_id=resource.id,
        activity_type="CREATED",
        title=f"Item added to {resource.name}",
        description=f"Serial number: {item.serial_number}" if item.serial_number else None,
        metadata={"itemId": item.id, "status": item.status, "schemaLocked": first_item},
        user=user,
    )
    logger.info("Resource item created id=%s resource=%s", item.id, resource.id)
    return item


def update_resource_item(s: "Session", item: ResourceItem, payload: dict, user: "User") -> ResourceItem:
    resource = item.resource
    changes: dict[str, dict[str, Any]] = {}

    if "properties" in payload:
        incoming = payload.get("properties")
        if not isinstance(incoming, dict):
            raise ValueError("properties must be an object.")
        old_props = merge_properties_with_legacy(item)
        merged = dict(old_props)
        merged.update(incoming)
        props = check_item_properties(resource, merged)
        for key in sorted(set(old_props) | set(props)):
            if old_props.get(key) != props.get(key):
                changes[f"property_{key}"] = {"old": old_props.get(key), "new": props.get(key)}
        if changes:
            new_serial = extract_legacy_fields(props).get("serial_number")
            _check_serial_unique(s, new_serial, exclude_id=item.id)
            item.properties = props
            _apply_legacy_columns(item, props)

    old_status = item.status
    if "status" in payload:
        status = clean_str(payload.get("status"))
        if status != item.status:
            _check_manual_status(s, item, status)
            changes["status"] = {"old": item.status, "new": status}
            item.status = status

    if "metadata" in payload:
        meta = payload.get("metadata")
        item.meta = meta if isinstance(meta, dict) else None

    if not changes:
        return item
    item.updated_at = datetime.utcnow()
    s.flush()

    record_field_changes(
        s,
        actor=user,
        action_prefix="resource_item",
        entity_type="ResourceItem",
        entity_id=str(item.id),
        changes=changes,
    )
    log_activity(
        s,
        entity_type="RESOURCE",
        entity_id=resource.id,
        activity_type="UPDATED",
        title=f"Item updated in {resource.name}",
        description=", ".join(sorted(changes)),
        metadata={"itemId": item.id, "changes": changes},
        user=user,
    )
    if "status" in changes:
        log_status_changed(
            s,
            entity_type="RESOURCE",
            entity_id=resource.id,
            entity_name=f"{resource.name} item #{item.id}",
            old_status=old_status,
            new_status=item.status,
            user=user,
            metadata={"itemId": item.id},
        )
    return item


def _check_manual_status(s: "Session", item: ResourceItem, status: str | None) -> None:
    if status not in MANUAL_ITEM_STATUSES:
        raise ValueError(f"Invalid item status. Must be one of: {', '.join(MANUAL_ITEM_STATUSES)}")
    if has_active_assignment(s, item):
        raise ValueError("Item has an active assignment; change the assignment status instead.")


def update_item_status(
    s: "Session", item: ResourceItem, status: str, user: "User", notes: str | None = None
) -> ResourceItem:
    if status == item.status:
        return item
    _check_manual_status(s, item, status)
    old_status = item.status
    item.status = status
    item.updated_at = datetime.utcnow()
    s.flush()

    record_event(
        s,
        actor=user,
        action="resource_item.status",
        entity_type="ResourceItem",
        entity_id=str(item.id),
        reason=notes,
        metadata={"from": old_status, "to": status},
    )
    log_status_changed(
        s,
        entity_type="RESOURCE",
        entity_id=item.resource_id,
        entity_name=f"{item.resource.name} item #{item.id}",
        old_status=old_status,
        new_status=status,
        user=user,
        metadata={"itemId": item.id, "notes": notes},
    )
    return item


def can_delete_item(s: "Session", item: ResourceItem) -> tuple[bool, str | None]:
    if has_active_assignment(s, item):
        return False, "Item has an active assignment. Return or revoke it first."
    return True, None


def delete_resource_item(s: "Session", item: ResourceItem, user: "User") -> None:
    ok, reason = can_delete_item(s, item)
    if not ok:
        raise ValueError(reason)
    resource = item.resource
    snapshot = {"itemId": item.id, "serialNumber": item.serial_number, "properties": item.properties}
    item_id = item.id
    s.delete(item)
    s.flush()

    record_event(
        s,
        actor=user,
        action="resource_item.delete",
        entity_type="ResourceItem",
        entity_id=str(item_id),
        metadata={"resource_id": resource.id, **snapshot},
    )
    log_activity(
        s,
        entity_type="RESOURCE",
        entity_id=resource.id,
        activity_type="DELETED",
        title=f"Item removed from {resource.name}",
        metadata=snapshot,
        user=user,
    )
    logger.info("Resource item deleted id=%s resource=%s", item_id, resource.id)


def list_resource_items(
    s: "Session",
    *,
    resource_id: int | None = None,
    status: str | None = None,
    search: str | None = None,
    page: int = 1,
    limit: int = 20,
) -> tuple[list[ResourceItem], int]:
    q = s.query(ResourceItem)
    if resource_id is not None:
        q = q.filter(ResourceItem.resource_id == resource_id)
    if status:
        q = q.filter(ResourceItem.status == status)
    if search:
        like = f"%{search.strip().lower()}%"
        q = q.filter(
            or_(
                func.lower(ResourceItem.serial_number).like(like),
                func.lower(ResourceItem.hostname).like(like),
                func.lower(ResourceItem.license_key).like(like),
                func.lower(cast(ResourceItem.properties, String)).like(like),
            )
        )
    total = q.count()
    rows = (
        q.order_by(ResourceItem.created_at.desc(), ResourceItem.id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )
    return rows, total
