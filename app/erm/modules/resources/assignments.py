"""
Assigning resources (and their items) to employees.

How a resource can be handed out depends on its type:

* Hardware: one employee per physical item (INDIVIDUAL).
* Software: either per-employee licenses (INDIVIDUAL) or a seat pool limited by
  the resource quantity (POOLED).
* Cloud: one account shared by many employees (SHARED).
* Custom types: whatever the caller asks for.
"""
from __future__ import annotations

import logging
from datetime import datetime
from typing import TYPE_CHECKING, Any

from app.erm.audit import record_event
from app.erm.constants import (
    ASSIGNMENT_STATUSES,
    ASSIGNMENT_TO_ITEM_STATUS,
    ASSIGNMENT_TRANSITIONS,
    ASSIGNMENT_TYPES,
    TERMINAL_ASSIGNMENT_STATUSES,
)
from app.erm.modules.employees.models import Employee
from app.erm.modules.resources.models import Resource, ResourceAssignment, ResourceItem
from app.erm.modules.timeline.service import log_activity, log_status_changed
from app.erm.utils import iso

if TYPE_CHECKING:
    from sqlalchemy.orm import Session
    from app.erm.models import User

logger = logging.getLogger(__name__)


def resource_type_key(resource: Resource) -> str:
    name = resource.resource_type.name if resource.resource_type else (resource.type or "")
    key = name.strip().lower()
    return "hardware" if key == "physical" else key


def determine_assignment_type(type_name: str | None, requested: str | None = None) -> str:
    key = (type_name or "").strip().lower()
    if key in ("hardware", "physical"):
        return "INDIVIDUAL"
    if key == "software":
        return "POOLED" if requested == "POOLED" else "INDIVIDUAL"
    if key == "cloud":
        return "SHARED"
    return requested if requested in ASSIGNMENT_TYPES else "INDIVIDUAL"


def assignment_to_dict(a: ResourceAssignment) -> dict[str, Any]:
    return {
        "id": a.id,
        "employee_id": a.employee_id,
        "employee": {"id": a.employee.id, "name": a.employee.name, "email": a.employee.email} if a.employee else None,
        "resource_id": a.resource_id,
        "resource": {"id": a.resource.id, "name": a.resource.name, "type": a.resource.type} if a.resource else None,
        "item_id": a.item_id,
        "item": {"id": a.item.id, "serial_number": a.item.serial_number, "status": a.item.status} if a.item else None,
        "assigned_by_id": a.assigned_by_id,
        "assigned_by": {"id": a.assigned_by.id, "name": a.assigned_by.name} if a.assigned_by else None,
        "status": a.status,
        "assignment_type": a.assignment_type,
        "assigned_at": iso(a.assigned_at),
        "returned_at": iso(a.returned_at),
        "notes": a.notes,
    }


def _active_assignments(s: "Session", **filters: Any):
    q = s.query(ResourceAssignment).filter(ResourceAssignment.status == "ACTIVE")
    for column, value in filters.items():
        q = q.filter(getattr(ResourceAssignment, column) == value)
    return q


def get_available_license_count(s: "Session", resource: Resource) -> dict[str, int]:
    total = resource.quantity or 0
    used = _active_assignments(s, resource_id=resource.id, assignment_type="POOLED").count()
    return {"total": total, "used": used, "available": max(0, total - used)}


def first_available_item(s: "Session", resource: Resource | None) -> int | None:
    """Oldest AVAILABLE item of a hardware resource; None for other types."""
    if resource is None or resource_type_key(resource) != "hardware":
        return None
    item = (
        s.query(ResourceItem)
        .filter(ResourceItem.resource_id == resource.id, ResourceItem.status == "AVAILABLE")
        .order_by(ResourceItem.id.asc())
        .first()
    )
    return item.id if item else None


def can_assign_hardware_item(s: "Session", item_id: int | None) -> tuple[bool, str | None]:
    if item_id is None:
        return False, "Hardware assignments require a specific item."
    item = s.get(ResourceItem, item_id)
    if item is None:
        return False, "Item not found."
    if item.status != "AVAILABLE":
        return False, f"Item is not available (status: {item.status})."
    if _active_assignments(s, item_id=item.id).first() is not None:
        return False, "Item is already assigned."
    return True, None


def _check_optional_item(s: "Session", resource: Resource, item_id: int | None) -> str | None:
    if item_id is None:
        return None
    item = s.get(ResourceItem, item_id)
    if item is None or item.resource_id != resource.id:
        return "Item does not belong to this resource."
    if item.status != "AVAILABLE":
        return f"Item is not available (status: {item.status})."
    if _active_assignments(s, item_id=item.id).first() is not None:
        return "Item is already assigned."
    return None


def validate_assignment(
    s: "Session",
    employee_id: int | None,
    resource_id: int | None,
    item_id: int | None = None,
    requested_type: str | None = None,
) -> tuple[bool, str | None, str | None]:
    """Returns (ok, error, assignment_type)."""
    resource = s.get(Resource, resource_id) if resource_id is not None else None
    if resource is None:
        return False, "Resource not found.", None
    if resource.status != "ACTIVE":
        return False, f"Resource is not active (status: {resource.status}).", None
    employee = s.get(Employee, employee_id) if employee_id is not None else None
    if employee is None:
        return False, "Employee not found.", None
    if employee.status != "ACTIVE":
        return False, f"Employee is not active (status: {employee.status}).", None

    kind = resource_type_key(resource)
    assignment_type = determine_assignment_type(kind, requested_type)

    if kind == "hardware":
        if item_id is None:
            available = (
                s.query(ResourceItem)
                .filter(ResourceItem.resource_id == resource.id, ResourceItem.status == "AVAILABLE")
                .count()
            )
            if not available:
                return False, "No available items for this hardware resource.", assignment_type
            return False, "Hardware assignments require selecting a specific item.", assignment_type
        item = s.get(ResourceItem, item_id)
        if item is None or item.resource_id != resource.id:
            return False, "Item does not belong to this resource.", assignment_type
        ok, reason = can_assign_hardware_item(s, item_id)
        if not ok:
            return False, reason, assignment_type
        return True, None, assignment_type

    if kind == "software":
        if assignment_type == "POOLED":
            if item_id is not None:
                return False, "Pooled licenses are not tied to an item.", assignment_type
            licenses = get_available_license_count(s, resource)
            if licenses["available"] <= 0:
                return (
                    False,
                    f"No licenses available: {licenses['used']}/{licenses['total']} licenses are in use.",
                    assignment_type,
                )
            if _active_assignments(
                s, resource_id=resource.id, employee_id=employee.id, assignment_type="POOLED"
            ).first():
                return False, "Employee already holds a pooled license for this resource.", assignment_type
            return True, None, assignment_type
        err = _check_optional_item(s, resource, item_id)
        if err:
            return False, err, assignment_type
        if _active_assignments(s, resource_id=resource.id, employee_id=employee.id).first():
            return False, "Employee already has an active assignment for this resource.", assignment_type
        return True, None, assignment_type

    if kind == "cloud":
        if _active_assignments(s, resource_id=resource.id, employee_id=employee.id).first():
            return False, "Employee already has access to this shared resource.", assignment_type
        err = _check_optional_item(s, resource, item_id)
        if err:
            return False, err, assignment_type
        return True, None, assignment_type

    err = _check_optional_item(s, resource, item_id)
    if err:
        return False, err, assignment_type
    return True, None, assignment_type


def create_assignment(
    s: "Session",
    *,
    employee_id: int,
    resource_id: int,
    item_id: int | None = None,
    requested_type: str | None = None,
    notes: str | None = None,
    assigned_by: Employee | None = None,
    user: "User | None" = None,
) -> ResourceAssignment:
    ok, error, assignment_type = validate_assignment(s, employee_id, resource_id, item_id, requested_type)
    if not ok:
        raise ValueError(error)

    resource = s.get(Resource, resource_id)
    employee = s.get(Employee, employee_id)
    a = ResourceAssignment(
        employee_id=employee_id,
        resource_id=resource_id,
        item_id=item_id,
        assigned_by_id=assigned_by.id if assigned_by else None,
        status="ACTIVE",
        assignment_type=assignment_type,
        assigned_at=datetime.utcnow(),
        notes=notes,
    )
    s.add(a)
    if item_id is not None:
        item = s.get(ResourceItem, item_id)
        item.status = "ASSIGNED"
        item.updated_at = datetime.utcnow()
    s.flush()

    record_event(
        s,
        actor=user,
        action="resource_assignment.create",
        entity_type="ResourceAssignment",
        entity_id=str(a.id),
        metadata={
            "employee_id": employee_id,
            "resource_id": resource_id,
            "item_id": item_id,
            "assignment_type": assignment_type,
        },
    )
    log_activity(
        s,
        entity_type="RESOURCE",
        entity_id=resource.id,
        activity_type="ASSET_ASSIGNED",
        title=f"{resource.name} assigned to {employee.name}",
        description=notes,
        metadata={"assignmentId": a.id, "itemId": item_id, "assignmentType": assignment_type, "employeeName": employee.name},
        performer=assigned_by,
        user=user,
        employee_id=employee.id,
    )
    logger.info("Assignment created id=%s resource=%s employee=%s type=%s", a.id, resource_id, employee_id, assignment_type)
    return a


def update_assignment_status(
    s: "Session",
    a: ResourceAssignment,
    new_status: str,
    user: "User | None" = None,
    notes: str | None = None,
    performer: Employee | None = None,
) -> ResourceAssignment:
    if new_status not in ASSIGNMENT_STATUSES:
        raise ValueError(f"Invalid assignment status. Must be one of: {', '.join(ASSIGNMENT_STATUSES)}")
    allowed = ASSIGNMENT_TRANSITIONS.get(a.status, ())
    if new_status not in allowed:
        raise ValueError(f"Cannot change assignment status from {a.status} to {new_status}.")

    old_status = a.status
    now = datetime.utcnow()
    a.status = new_status
    if new_status in TERMINAL_ASSIGNMENT_STATUSES:
        a.returned_at = now
    if notes:
        a.notes = f"{a.notes}\n{notes}" if a.notes else notes
    if a.item is not None:
        a.item.status = ASSIGNMENT_TO_ITEM_STATUS[new_status]
        a.item.updated_at = now
    s.flush()

    record_event(
        s,
        actor=user,
        action="resource_assignment.status",
        entity_type="ResourceAssignment",
        entity_id=str(a.id),
        reason=notes,
        metadata={"from": old_status, "to": new_status, "item_id": a.item_id},
    )
    resource_name = a.resource.name if a.resource else f"Resource #{a.resource_id}"
    employee_name = a.employee.name if a.employee else f"Employee #{a.employee_id}"
    log_status_changed(
        s,
        entity_type="RESOURCE",
        entity_id=a.resource_id,
        entity_name=f"{resource_name} ({employee_name})",
        old_status=old_status,
        new_status=new_status,
        user=user,
        performer=performer,
        metadata={"assignmentId": a.id, "itemId": a.item_id, "notes": notes},
        employee_id=a.employee_id,
    )
    if new_status == "RETURNED":
        log_activity(
            s,
            entity_type="RESOURCE",
            entity_id=a.resource_id,
            activity_type="ASSET_UNASSIGNED",
            title=f"{resource_name} returned by {employee_name}",
            description=notes,
            metadata={"assignmentId": a.id, "itemId": a.item_id, "employeeName": employee_name},
            performer=performer,
            user=user,
            employee_id=a.employee_id,
        )
    logger.info("Assignment status id=%s %s -> %s", a.id, old_status, new_status)
    return a


def revoke_assignment(
    s: "Session", a: ResourceAssignment, reason: str, user: "User | None" = None, performer: Employee | None = None
) -> ResourceAssignment:
    return update_assignment_status(s, a, "RETURNED", user=user, notes=f"Revoked: {reason}", performer=performer)


def get_shared_resource_users(s: "Session", resource_id: int) -> list[ResourceAssignment]:
    return (
        _active_assignments(s, resource_id=resource_id, assignment_type="SHARED")
        .order_by(ResourceAssignment.assigned_at.asc())
        .all()
    )


def list_assignments(
    s: "Session",
    *,
    employee_id: int | None = None,
    resource_id: int | None = None,
    status: str | None = None,
    assignment_type: str | None = None,
    page: int = 1,
    limit: int = 20,
) -> tuple[list[ResourceAssignment], int]:
    q = s.query(ResourceAssignment)
    if employee_id is not None:
        q = q.filter(ResourceAssignment.employee_id == employee_id)
    if resource_id is not None:
        q = q.filter(ResourceAssignment.resource_id == resource_id)
    if status:
        q = q.filter(ResourceAssignment.status == status)
    if assignment_type:
        q = q.filter(ResourceAssignment.assignment_type == assignment_type)
    total = q.count()
    rows = (
        q.order_by(ResourceAssignment.assigned_at.desc(), ResourceAssignment.id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )
    return rows, total
