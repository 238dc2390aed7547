from __future__ import annotations

import logging
from datetime import datetime
from typing import TYPE_CHECKING, Any

from flask import current_app, has_app_context
from sqlalchemy import func, or_

from app.erm.audit import record_event, record_field_changes
from app.erm.constants import RESOURCE_STATUSES
from app.erm.modules.employees.models import Employee
from app.erm.modules.resources.compat import map_to_legacy_type
from app.erm.modules.resources.models import (
    Resource,
    ResourceAssignment,
    ResourceCategory,
    ResourceItem,
    ResourceType,
)
from app.erm.modules.resources.schema import normalize_definition, validate_property_definitions
from app.erm.modules.timeline.service import log_activity, log_status_changed
from app.erm.utils import clean_str, iso, parse_int

if TYPE_CHECKING:
    from sqlalchemy.orm import Session
    from app.erm.models import User

logger = logging.getLogger(__name__)


def _default_owner() -> str:
    if has_app_context():
        return current_app.config.get("DEFAULT_RESOURCE_OWNER") or "Unisouk"
    return "Unisouk"


def resource_to_dict(r: Resource, *, include_schema: bool = True) -> dict[str, Any]:
    out: dict[str, Any] = {
        "id": r.id,
        "name": r.name,
        "description": r.description,
        "resource_type_id": r.resource_type_id,
        "resource_type": r.resource_type.name if r.resource_type else None,
        "resource_category_id": r.resource_category_id,
        "resource_category": r.resource_category.name if r.resource_category else None,
        "type": r.type,
        "category": r.category,
        "owner": r.owner,
        "custodian_id": r.custodian_id,
        "custodian": {"id": r.custodian.id, "name": r.custodian.name} if r.custodian else None,
        "status": r.status,
        "quantity": r.quantity,
        "metadata": r.meta,
        "schema_locked": r.schema_locked,
        "created_at": iso(r.created_at),
        "updated_at": iso(r.updated_at),
    }
    if include_schema:
        out["property_schema"] = list(r.property_schema or [])
    return out


def _resolve_type_and_category(s: "Session", type_id: Any, category_id: Any) -> tuple[ResourceType, ResourceCategory]:
    rt = s.get(ResourceType, parse_int(type_id)) if type_id not in (None, "") else None
    if rt is None:
        raise ValueError("A valid resource_type_id is required.")
    cat = s.get(ResourceCategory, parse_int(category_id)) if category_id not in (None, "") else None
    if cat is None:
        raise ValueError("A valid resource_category_id is required.")
    if cat.resource_type_id != rt.id:
        raise ValueError(f'Category "{cat.name}" does not belong to resource type "{rt.name}".')
    return rt, cat


def _resolve_custodian(s: "Session", custodian_id: Any) -> Employee | None:
    cid = parse_int(custodian_id)
    if cid is None:
        return None
    emp = s.get(Employee, cid)
    if emp is None:
        raise ValueError("Custodian employee not found.")
    return emp


def _parse_quantity(value: Any) -> int:
    qty = parse_int(value)
    if qty is None:
        return 1
    if qty < 1:
        raise ValueError("Quantity must be at least 1.")
    return qty


def build_property_schema(definitions: Any, mandatory_keys: list[str] | None) -> list[dict[str, Any]]:
    """Validate a submitted schema and force the type's mandatory keys to be required."""
    if not isinstance(definitions, list) or not definitions:
        raise ValueError("A property schema with at least one property is required.")
    errors = validate_property_definitions(definitions)
    if errors:
        raise ValueError("Invalid property schema: " + "; ".join(errors))
    schema = [normalize_definition(d) for d in definitions]
    keys = {d["key"] for d in schema}
    missing = [k for k in (mandatory_keys or []) if k not in keys]
    if missing:
        raise ValueError(f"Schema is missing mandatory properties for this type: {', '.join(missing)}")
    for d in schema:
        if d["key"] in (mandatory_keys or []):
            d["isRequired"] = True
    return schema


def create_resource_with_schema(s: "Session", payload: dict, user: "User") -> Resource:
    name = clean_str(payload.get("name"))
    if not name:
        raise ValueError("Resource name is required.")
    rt, cat = _resolve_type_and_category(s, payload.get("resource_type_id"), payload.get("resource_category_id"))
    custodian = _resolve_custodian(s, payload.get("custodian_id"))
    status = clean_str(payload.get("status")) or "ACTIVE"
    if status not in RESOURCE_STATUSES:
        raise ValueError(f"Invalid status. Must be one of: {', '.join(RESOURCE_STATUSES)}")
    schema = build_property_schema(
        payload.get("property_schema", payload.get("propertySchema")), list(rt.mandatory_properties or [])
    )

    now = datetime.utcnow()
    r = Resource(
        name=name,
        description=clean_str(payload.get("description")),
        resource_type_id=rt.id,
        resource_category_id=cat.id,
        type=map_to_legacy_type(rt.name),
        category=cat.name,
        owner=clean_str(payload.get("owner")) or _default_owner(),
        custodian_id=custodian.id if custodian else None,
        status=status,
        quantity=_parse_quantity(payload.get("quantity")),
        meta=payload.get("metadata") if isinstance(payload.get("metadata"), dict) else None,
        property_schema=schema,
        schema_locked=False,
        created_at=now,
        updated_at=now,
        created_by_user_id=user.id if user else None,
    )
    s.add(r)
    s.flush()

    record_event(
        s,
        actor=user,
        action="resource.create",
        entity_type="Resource",
        entity_id=str(r.id),
        metadata={"name": r.name, "type": rt.name, "category": cat.name, "properties": [d["key"] for d in schema]},
    )
    log_activity(
        s,
        entity_type="RESOURCE",
        entity_id=r.id,
        activity_type="CREATED",
        title=f"Resource created: {r.name}",
        description=f"{rt.name} / {cat.name} with {len(schema)} properties",
        metadata={"resourceType": rt.name, "category": cat.name, "quantity": r.quantity},
        user=user,
    )
    logger.info("Resource created id=%s name=%s type=%s", r.id, r.name, rt.name)
    return r


def list_resources(
    s: "Session",
    *,
    type_id: int | None = None,
    category_id: int | None = None,
    status: str | None = None,
    search: str | None = None,
    page: int = 1,
    limit: int = 20,
) -> tuple[list[Resource], int]:
    q = s.query(Resource)
    if type_id is not None:
        q = q.filter(Resource.resource_type_id == type_id)
    if category_id is not None:
        q = q.filter(Resource.resource_category_id == category_id)
    if status:
        q = q.filter(Resource.status == status)
    if search:
        like = f"%{search.strip().lower()}%"
        q = q.filter(or_(func.lower(Resource.name).like(like), func.lower(Resource.description).like(like)))
    total = q.count()
    rows = q.order_by(Resource.name.asc(), Resource.id.asc()).offset((page - 1) * limit).limit(limit).all()
    return rows, total


def item_status_counts(s: "Session", resource_id: int) -> dict[str, int]:
    rows = (
        s.query(ResourceItem.status, func.count(ResourceItem.id))
        .filter(ResourceItem.resource_id == resource_id)
        .group_by(ResourceItem.status)
        .all()
    )
    counts = {status: n for status, n in rows}
    counts["total"] = sum(n for _status, n in rows)
    return counts


def get_resource_detail(s: "Session", r: Resource) -> dict[str, Any]:
    from app.erm.modules.resources.assignments import assignment_to_dict, get_available_license_count

    active = (
        s.query(ResourceAssignment)
        .filter(ResourceAssignment.resource_id == r.id, ResourceAssignment.status == "ACTIVE")
        .order_by(ResourceAssignment.assigned_at.desc())
        .all()
    )
    out = resource_to_dict(r)
    out["item_counts"] = item_status_counts(s, r.id)
    out["active_assignments"] = [assignment_to_dict(a) for a in active]
    out["licenses"] = get_available_license_count(s, r)
    return out


def update_resource(s: "Session", r: Resource, payload: dict, user: "User", reason: str | None = None) -> Resource:
    if "resource_type_id" in payload and parse_int(payload.get("resource_type_id")) != r.resource_type_id:
        raise ValueError("The resource type cannot be changed after creation.")
    if "property_schema" in payload or "propertySchema" in payload:
        raise ValueError("Use the schema endpoint to change the property schema.")

    changes: dict[str, dict[str, Any]] = {}

    def _set(field: str, new_value: Any) -> None:
        old_value = getattr(r, field)
        if new_value != old_value:
            changes[field] = {"old": old_value, "new": new_value}
            setattr(r, field, new_value)

    if "name" in payload:
        name = clean_str(payload.get("name"))
        if not name:
            raise ValueError("Resource name cannot be empty.")
        _set("name", name)
    if "description" in payload:
        _set("description", clean_str(payload.get("description")))
    if "resource_category_id" in payload:
        cat = s.get(ResourceCategory, parse_int(payload.get("resource_category_id")) or 0)
        if cat is None:
            raise ValueError("Category not found.")
        if cat.resource_type_id != r.resource_type_id:
            raise ValueError(f'Category "{cat.name}" does not belong to this resource type.')
        _set("resource_category_id", cat.id)
        _set("category", cat.name)
    if "owner" in payload:
        _set("owner", clean_str(payload.get("owner")) or _default_owner())
    if "custodian_id" in payload:
        custodian = _resolve_custodian(s, payload.get("custodian_id"))
        _set("custodian_id", custodian.id if custodian else None)
    if "quantity" in payload:
        from app.erm.modules.resources.assignments import get_available_license_count

        quantity = _parse_quantity(payload.get("quantity"))
        used = get_available_license_count(s, r)["used"]
        if quantity < used:
            raise ValueError(f"Quantity cannot be lower than the {used} pooled licenses in use.")
        _set("quantity", quantity)
    if "metadata" in payload:
        meta = payload.get("metadata")
        _set("meta", meta if isinstance(meta, dict) else None)
    old_status = r.status
    if "status" in payload:
        status = clean_str(payload.get("status"))
        if status not in RESOURCE_STATUSES:
            raise ValueError(f"Invalid status. Must be one of: {', '.join(RESOURCE_STATUSES)}")
        _set("status", status)

    if not changes:
        return r
    r.updated_at = datetime.utcnow()
    s.flush()

    record_field_changes(
        s,
        actor=user,
        action_prefix="resource",
        entity_type="Resource",
        entity_id=str(r.id),
        changes=changes,
        reason=reason,
    )
    log_activity(
        s,
        entity_type="RESOURCE",
        entity_id=r.id,
        activity_type="UPDATED",
        title=f"Resource updated: {r.name}",
        description=", ".join(sorted(changes)),
        metadata={"changes": changes, "reason": reason},
        user=user,
    )
    if "status" in changes:
        log_status_changed(
            s,
            entity_type="RESOURCE",
            entity_id=r.id,
            entity_name=r.name,
            old_status=old_status,
            new_status=r.status,
            user=user,
        )
    logger.info("Resource updated id=%s fields=%s", r.id, sorted(changes))
    return r


def delete_resource(s: "Session", r: Resource, user: "User") -> None:
    n_items = s.query(ResourceItem).filter(ResourceItem.resource_id == r.id).count()
    if n_items:
        raise ValueError(f"Cannot delete resource with {n_items} item(s). Delete the items first.")
    n_active = (
        s.query(ResourceAssignment)
        .filter(ResourceAssignment.resource_id == r.id, ResourceAssignment.status == "ACTIVE")
        .count()
    )
    if n_active:
        raise ValueError(f"Cannot delete resource with {n_active} active assignment(s).")

    snapshot = {"name": r.name, "type": r.resource_type.name if r.resource_type else r.type, "category": r.category}
    r_id = r.id
    s.delete(r)
    s.flush()

    record_event(s, actor=user, action="resource.delete", entity_type="Resource", entity_id=str(r_id), metadata=snapshot)
    log_activity(
        s,
        entity_type="RESOURCE",
        entity_id=r_id,
        activity_type="DELETED",
        title=f"Resource deleted: {snapshot['name']}",
        metadata=snapshot,
        user=user,
    )
    logger.info("Resource deleted id=%s", r_id)


# ---------------------------------------------------------------------------
# Schema lifecycle
# ---------------------------------------------------------------------------


def lock_resource_schema(s: "Session", r: Resource, user: "User | None" = None) -> bool:
    """Lock the schema; returns False when it was already locked."""
    if r.schema_locked:
        return False
    r.schema_locked = True
    r.updated_at = datetime.utcnow()
    s.flush()
    record_event(
        s,
        actor=user,
        action="resource.schema_lock",
        entity_type="Resource",
        entity_id=str(r.id),
        metadata={"properties": [d.get("key") for d in (r.property_schema or [])]},
    )
    logger.info("Resource schema locked id=%s", r.id)
    return True


def can_modify_schema(s: "Session", r: Resource) -> tuple[bool, str | None]:
    if r.schema_locked:
        return False, "Schema is locked because items have been created for this resource."
    n_items = s.query(ResourceItem).filter(ResourceItem.resource_id == r.id).count()
    if n_items:
        return False, f"Schema cannot be changed while the resource has {n_items} item(s)."
    return True, None


def update_property_schema(s: "Session", r: Resource, definitions: Any, user: "User") -> Resource:
    ok, reason = can_modify_schema(s, r)
    if not ok:
        raise ValueError(reason)
    rt = r.resource_type
    schema = build_property_schema(definitions, list(rt.mandatory_properties or []) if rt else [])
    old = list(r.property_schema or [])
    r.property_schema = schema
    r.updated_at = datetime.utcnow()
    s.flush()

    record_event(
        s,
        actor=user,
        action="resource.schema_update",
        entity_type="Resource",
        entity_id=str(r.id),
        metadata={"old": [d.get("key") for d in old], "new": [d["key"] for d in schema]},
    )
    log_activity(
        s,
        entity_type="RESOURCE",
        entity_id=r.id,
        activity_type="UPDATED",
        title=f"Property schema updated: {r.name}",
        description=f"{len(schema)} properties",
        metadata={"properties": [d["key"] for d in schema]},
        user=user,
    )
    return r
