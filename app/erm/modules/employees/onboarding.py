from __future__ import annotations

import logging
from datetime import datetime
from typing import TYPE_CHECKING, Any

from app.erm.audit import record_event
from app.erm.modules.employees.models import Employee
from app.erm.modules.resources.assignments import (
    create_assignment,
    first_available_item,
    resource_type_key,
    validate_assignment,
)
from app.erm.modules.resources.models import Resource, ResourceAssignment
from app.erm.modules.timeline.service import log_activity
from app.erm.utils import iso

if TYPE_CHECKING:
    from sqlalchemy.orm import Session
    from app.erm.models import User

logger = logging.getLogger(__name__)

# Starter kits draw from these resource types, oldest resources first.
STARTER_TYPE_KEYS = ("hardware", "software")
STARTER_LIMIT = 3

# Roles allowed to onboard someone other than themselves.
ONBOARDING_ROLES = ("CEO", "CTO")


def can_onboard(actor: Employee | None, target: Employee) -> bool:
    if actor is None:
        return False
    return actor.id == target.id or actor.role in ONBOARDING_ROLES


def _active_resource_count(s: "Session") -> int:
    return s.query(Resource).filter(Resource.status == "ACTIVE").count()


def onboarding_status(s: "Session", emp: Employee) -> dict[str, Any]:
    """Onboarding is complete once the employee holds at least one active assignment."""
    assigned = (
        s.query(ResourceAssignment)
        .filter(ResourceAssignment.employee_id == emp.id, ResourceAssignment.status == "ACTIVE")
        .count()
    )
    available = _active_resource_count(s)
    return {
        "employee_id": emp.id,
        "employee_name": emp.name,
        "completed": assigned > 0 and available > 0,
        "assigned_resources": assigned,
        "expected_resources": min(STARTER_LIMIT, available),
        "missing_resources": [] if assigned else ["Basic resources needed for onboarding"],
    }


def starter_resources(s: "Session") -> list[Resource]:
    rows = s.query(Resource).filter(Resource.status == "ACTIVE").order_by(Resource.id.asc()).all()
    return [r for r in rows if resource_type_key(r) in STARTER_TYPE_KEYS][:STARTER_LIMIT]


def assign_onboarding_resources(
    s: "Session", emp: Employee, user: "User | None", *, performer: Employee | None = None
) -> dict[str, Any]:
    """
    Assign up to three active hardware/software resources to a new employee.

    Resources the employee already holds are skipped; per-resource failures are
    collected in `errors` and never abort the run.
    """
    if emp.status != "ACTIVE":
        raise ValueError("Only active employees can be onboarded.")

    result: dict[str, Any] = {"assigned": 0, "skipped": 0, "assignment_ids": [], "errors": []}
    if _active_resource_count(s) == 0:
        result["errors"].append("No resources available for onboarding. Please create resources first.")
        return result
    candidates = starter_resources(s)
    if not candidates:
        result["errors"].append(
            "No suitable resources found for onboarding. Please ensure Hardware or Software resources exist."
        )
        return result

    for resource in candidates:
        held = (
            s.query(ResourceAssignment)
            .filter(
                ResourceAssignment.employee_id == emp.id,
                ResourceAssignment.resource_id == resource.id,
                ResourceAssignment.status == "ACTIVE",
            )
            .first()
        )
        if held is not None:
            result["skipped"] += 1
            continue
        item_id = first_available_item(s, resource)
        ok, error, assignment_type = validate_assignment(s, emp.id, resource.id, item_id)
        if not ok:
            result["errors"].append(f"{resource.name}: {error}")
            continue
        a = create_assignment(
            s,
            employee_id=emp.id,
            resource_id=resource.id,
            item_id=item_id,
            requested_type=assignment_type,
            notes="Assigned during onboarding",
            assigned_by=performer,
            user=user,
        )
        result["assigned"] += 1
        result["assignment_ids"].append(a.id)

    record_event(
        s,
        actor=user,
        action="employee.onboarding",
        entity_type="Employee",
        entity_id=str(emp.id),
        metadata={"assigned": result["assigned"], "errors": result["errors"]},
    )
    log_activity(
        s,
        entity_type="EMPLOYEE",
        entity_id=emp.id,
        activity_type="ONBOARDING_COMPLETED",
        title=f"Onboarding resources assigned to {emp.name}",
        description=f"{result['assigned']} resources assigned from available inventory.",
        metadata={
            "role": emp.role,
            "department": emp.department,
            "resourcesAssigned": result["assigned"],
            "errors": result["errors"],
            "completedAt": iso(datetime.utcnow()),
        },
        performer=performer,
        user=user,
    )
    logger.info("Onboarding run employee=%s assigned=%s errors=%s", emp.id, result["assigned"], len(result["errors"]))
    return result
