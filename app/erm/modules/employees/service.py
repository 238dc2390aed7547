from __future__ import annotations

import logging
from datetime import date, datetime
from typing import TYPE_CHECKING, Any

from sqlalchemy import func, or_

from app.erm.audit import record_event, record_field_changes
from app.erm.constants import EMPLOYEE_ROLES, EMPLOYEE_STATUSES
from app.erm.modules.employees.models import Employee
from app.erm.modules.timeline.service import log_activity, log_status_changed
from app.erm.utils import clean_str, iso, parse_date, parse_float, parse_int

if TYPE_CHECKING:
    from sqlalchemy.orm import Session
    from app.erm.models import User

logger = logging.getLogger(__name__)

# Fields an update may touch, with their parser.
_UPDATABLE_FIELDS = {
    "name": clean_str,
    "role": clean_str,
    "department": clean_str,
    "status": clean_str,
    "phone": clean_str,
    "address": clean_str,
    "emergency_contact": clean_str,
    "emergency_phone": clean_str,
    "salary": parse_float,
    "joining_date": parse_date,
    "manager_id": parse_int,
    "user_id": parse_int,
}


def employee_to_dict(e: Employee, *, include_private: bool = False) -> dict[str, Any]:
    out: dict[str, Any] = {
        "id": e.id,
        "name": e.name,
        "email": e.email,
        "role": e.role,
        "department": e.department,
        "status": e.status,
        "joining_date": iso(e.joining_date),
        "manager_id": e.manager_id,
        "manager": {"id": e.manager.id, "name": e.manager.name} if e.manager else None,
        "phone": e.phone,
        "user_id": e.user_id,
        "created_at": iso(e.created_at),
        "updated_at": iso(e.updated_at),
    }
    if include_private:
        out.update(
            {
                "address": e.address,
                "emergency_contact": e.emergency_contact,
                "emergency_phone": e.emergency_phone,
                "salary": e.salary,
            }
        )
    return out


def validate_employee_payload(payload: dict, *, partial: bool = False) -> list[str]:
    """Validate employee create/update payload. Returns list of errors."""
    errors: list[str] = []

    def _present(key: str) -> bool:
        return not partial or key in payload

    if _present("name") and not clean_str(payload.get("name")):
        errors.append("Name is required.")
    if _present("email"):
        email = (clean_str(payload.get("email")) or "").lower()
        if not email:
            errors.append("Email is required.")
        elif "@" not in email:
            errors.append("Email is invalid.")
    if _present("department") and not clean_str(payload.get("department")):
        errors.append("Department is required.")

    role = clean_str(payload.get("role"))
    if role and role not in EMPLOYEE_ROLES:
        errors.append(f"Invalid role: {role}")
    status = clean_str(payload.get("status"))
    if status and status not in EMPLOYEE_STATUSES:
        errors.append(f"Invalid status. Must be one of: {', '.join(EMPLOYEE_STATUSES)}")

    for key, parser in (("joining_date", parse_date), ("salary", parse_float), ("manager_id", parse_int)):
        try:
            parser(payload.get(key))
        except (TypeError, ValueError):
            errors.append(f"Invalid value for {key}.")
    return errors


def _require_manager(s: "Session", manager_id: int | None) -> Employee | None:
    if manager_id is None:
        return None
    manager = s.get(Employee, manager_id)
    if manager is None:
        raise ValueError("Manager not found.")
    return manager


def _is_in_reporting_chain(s: "Session", employee: Employee, candidate_manager: Employee) -> bool:
    """True if candidate_manager is the employee or reports (transitively) to them."""
    seen: set[int] = set()
    cur: Employee | None = candidate_manager
    while cur is not None and cur.id not in seen:
        if cur.id == employee.id:
            return True
        seen.add(cur.id)
        cur = s.get(Employee, cur.manager_id) if cur.manager_id else None
    return False


def create_employee(s: "Session", payload: dict, user: "User") -> Employee:
    """Create a new employee record."""
    email = (clean_str(payload.get("email")) or "").lower()
    if s.query(Employee).filter(func.lower(Employee.email) == email).one_or_none():
        raise ValueError(f"An employee with email {email} already exists.")

    manager = _require_manager(s, parse_int(payload.get("manager_id")))

    now = datetime.utcnow()
    emp = Employee(
        name=clean_str(payload.get("name")) or "",
        email=email,
        role=clean_str(payload.get("role")) or "EMPLOYEE",
        department=clean_str(payload.get("department")) or "",
        status=clean_str(payload.get("status")) or "ACTIVE",
        joining_date=parse_date(payload.get("joining_date")) or date.today(),
        manager_id=manager.id if manager else None,
        phone=clean_str(payload.get("phone")),
        address=clean_str(payload.get("address")),
        emergency_contact=clean_str(payload.get("emergency_contact")),
        emergency_phone=clean_str(payload.get("emergency_phone")),
        salary=parse_float(payload.get("salary")),
        user_id=parse_int(payload.get("user_id")),
        created_at=now,
        updated_at=now,
    )
    s.add(emp)
    s.flush()

    record_event(
        s,
        actor=user,
        action="employee.create",
        entity_type="Employee",
        entity_id=str(emp.id),
        metadata={"email": emp.email, "role": emp.role, "department": emp.department},
    )
    log_activity(
        s,
        entity_type="EMPLOYEE",
        entity_id=emp.id,
        activity_type="EMPLOYEE_HIRED",
        title=f"Employee hired: {emp.name}",
        description=f"{emp.name} joined {emp.department} as {emp.role}",
        metadata={"role": emp.role, "department": emp.department, "managerId": emp.manager_id},
        user=user,
    )
    logger.info("Employee created id=%s email=%s", emp.id, emp.email)
    return emp


def update_employee(
    s: "Session", emp: Employee, payload: dict, user: "User", reason: str | None = None
) -> Employee:
    """Apply the keys present in payload; records one audit row per changed field."""
    changes: dict[str, dict[str, Any]] = {}

    if "email" in payload:
        new_email = (clean_str(payload.get("email")) or "").lower()
        if new_email != emp.email:
            clash = (
                s.query(Employee)
                .filter(func.lower(Employee.email) == new_email, Employee.id != emp.id)
                .one_or_none()
            )
            if clash:
                raise ValueError(f"An employee with email {new_email} already exists.")
            changes["email"] = {"old": emp.email, "new": new_email}
            emp.email = new_email

    for field, parser in _UPDATABLE_FIELDS.items():
        if field not in payload:
            continue
        new_value = parser(payload.get(field))
        if field in ("name", "department", "role", "status") and not new_value:
            continue
        old_value = getattr(emp, field)
        if new_value == old_value:
            continue
        if field == "manager_id" and new_value is not None:
            manager = _require_manager(s, new_value)
            if manager is not None and _is_in_reporting_chain(s, emp, manager):
                raise ValueError("An employee cannot report to themselves or to one of their reports.")
        changes[field] = {
            "old": iso(old_value) if isinstance(old_value, date) else old_value,
            "new": iso(new_value) if isinstance(new_value, date) else new_value,
        }
        setattr(emp, field, new_value)

    if not changes:
        return emp

    emp.updated_at = datetime.utcnow()
    s.flush()

    record_field_changes(
        s,
        actor=user,
        action_prefix="employee",
        entity_type="Employee",
        entity_id=str(emp.id),
        changes=changes,
        reason=reason,
    )
    # Salary values stay out of the timeline.
    visible = {k: v for k, v in changes.items() if k != "salary"}
    log_activity(
        s,
        entity_type="EMPLOYEE",
        entity_id=emp.id,
        activity_type="UPDATED",
        title=f"Updated employee: {emp.name}",
        description=", ".join(f"{k}: {v['old']} -> {v['new']}" for k, v in visible.items()) or "Private fields updated",
        metadata={"changes": visible, "changeCount": len(changes), "reason": reason},
        user=user,
    )
    if "status" in changes:
        log_status_changed(
            s,
            entity_type="EMPLOYEE",
            entity_id=emp.id,
            entity_name=emp.name,
            old_status=changes["status"]["old"],
            new_status=emp.status,
            user=user,
        )
        if emp.status == "RESIGNED":
            log_activity(
                s,
                entity_type="EMPLOYEE",
                entity_id=emp.id,
                activity_type="EMPLOYEE_RESIGNED",
                title=f"Employee resigned: {emp.name}",
                user=user,
            )
    if "role" in changes:
        log_activity(
            s,
            entity_type="EMPLOYEE",
            entity_id=emp.id,
            activity_type="EMPLOYEE_PROMOTED",
            title=f"Role changed: {emp.name}",
            description=f"{changes['role']['old']} -> {changes['role']['new']}",
            metadata=changes["role"],
            user=user,
        )
    logger.info("Employee updated id=%s fields=%s", emp.id, sorted(changes))
    return emp


def list_employees(
    s: "Session",
    *,
    search: str | None = None,
    role: str | None = None,
    department: str | None = None,
    status: str | None = None,
    page: int = 1,
    limit: int = 20,
) -> tuple[list[Employee], int]:
    q = s.query(Employee)
    if search:
        like = f"%{search.strip().lower()}%"
        q = q.filter(
            or_(
                func.lower(Employee.name).like(like),
                func.lower(Employee.email).like(like),
                func.lower(Employee.department).like(like),
            )
        )
    if role:
        q = q.filter(Employee.role == role)
    if department:
        q = q.filter(Employee.department == department)
    if status:
        q = q.filter(Employee.status == status)
    total = q.count()
    rows = q.order_by(Employee.name.asc(), Employee.id.asc()).offset((page - 1) * limit).limit(limit).all()
    return rows, total


def employee_dependencies(s: "Session", emp: Employee) -> dict[str, Any]:
    """Counts of records that still point at this employee."""
    from app.erm.modules.access.models import AccessRequest
    from app.erm.modules.documents.models import Document
    from app.erm.modules.policies.models import Policy
    from app.erm.modules.resources.models import Resource, ResourceAssignment
    from app.erm.modules.workflows.models import ApprovalWorkflow

    counts = {
        "owned_policies": s.query(Policy).filter(Policy.owner_id == emp.id).count(),
        "owned_documents": s.query(Document).filter(Document.owner_id == emp.id).count(),
        "direct_reports": s.query(Employee).filter(Employee.manager_id == emp.id).count(),
        "custodian_resources": s.query(Resource).filter(Resource.custodian_id == emp.id).count(),
        "active_assignments": s.query(ResourceAssignment)
        .filter(ResourceAssignment.employee_id == emp.id, ResourceAssignment.status == "ACTIVE")
        .count(),
        "access_requests": s.query(AccessRequest).filter(AccessRequest.employee_id == emp.id).count(),
        "pending_access_approvals": s.query(AccessRequest)
        .filter(AccessRequest.approver_id == emp.id, AccessRequest.status == "REQUESTED")
        .count(),
        "pending_requested_workflows": s.query(ApprovalWorkflow)
        .filter(ApprovalWorkflow.requester_id == emp.id, ApprovalWorkflow.status == "PENDING")
        .count(),
        "pending_approver_workflows": s.query(ApprovalWorkflow)
        .filter(ApprovalWorkflow.approver_id == emp.id, ApprovalWorkflow.status == "PENDING")
        .count(),
    }
    return {"counts": counts, "has_dependencies": any(counts.values())}


def reassign_employee_dependencies(
    s: "Session", from_emp: Employee, to_emp: Employee, user: "User"
) -> dict[str, int]:
    """Move reports, owned policies and documents, custody and pending approvals to another employee."""
    from app.erm.modules.access.models import AccessRequest
    from app.erm.modules.documents.models import Document
    from app.erm.modules.policies.models import Policy
    from app.erm.modules.resources.models import Resource
    from app.erm.modules.workflows.models import ApprovalWorkflow

    if from_emp.id == to_emp.id:
        raise ValueError("Cannot reassign an employee's records to the same employee.")
    if to_emp.status != "ACTIVE":
        raise ValueError("Records can only be reassigned to an ACTIVE employee.")

    moved = {
        "direct_reports": 0,
        "owned_policies": 0,
        "owned_documents": 0,
        "custodian_resources": 0,
        "pending_workflows": 0,
        "pending_access": 0,
    }

    for report in s.query(Employee).filter(Employee.manager_id == from_emp.id).all():
        report.manager_id = None if report.id == to_emp.id else to_emp.id
        moved["direct_reports"] += 1
    for policy in s.query(Policy).filter(Policy.owner_id == from_emp.id).all():
        policy.owner_id = to_emp.id
        moved["owned_policies"] += 1
    for document in s.query(Document).filter(Document.owner_id == from_emp.id).all():
        document.owner_id = to_emp.id
        moved["owned_documents"] += 1
    for resource in s.query(Resource).filter(Resource.custodian_id == from_emp.id).all():
        resource.custodian_id = to_emp.id
        moved["custodian_resources"] += 1
    for wf in (
        s.query(ApprovalWorkflow)
        .filter(ApprovalWorkflow.approver_id == from_emp.id, ApprovalWorkflow.status == "PENDING")
        .all()
    ):
        if wf.requester_id == to_emp.id:
            continue
        wf.approver_id = to_emp.id
        moved["pending_workflows"] += 1
    for req in (
        s.query(AccessRequest)
        .filter(AccessRequest.approver_id == from_emp.id, AccessRequest.status == "REQUESTED")
        .all()
    ):
        req.approver_id = to_emp.id
        moved["pending_access"] += 1
    s.flush()

    record_event(
        s,
        actor=user,
        action="employee.reassign",
        entity_type="Employee",
        entity_id=str(from_emp.id),
        metadata={"to_employee_id": to_emp.id, "moved": moved},
    )
    log_activity(
        s,
        entity_type="EMPLOYEE",
        entity_id=from_emp.id,
        activity_type="UPDATED",
        title=f"Responsibilities reassigned: {from_emp.name} -> {to_emp.name}",
        metadata={"toEmployeeId": to_emp.id, "moved": moved},
        user=user,
    )
    logger.info("Reassigned dependencies from=%s to=%s moved=%s", from_emp.id, to_emp.id, moved)
    return moved


def delete_employee(s: "Session", emp: Employee, user: "User") -> None:
    deps = employee_dependencies(s, emp)
    if deps["has_dependencies"]:
        blocking = ", ".join(f"{k.replace('_', ' ')}: {v}" for k, v in deps["counts"].items() if v)
        log_activity(
            s,
            entity_type="EMPLOYEE",
            entity_id=emp.id,
            activity_type="DELETION_ATTEMPTED",
            title=f"Deletion blocked: {emp.name}",
            description=blocking,
            metadata=deps["counts"],
            user=user,
        )
        raise ValueError(f"Cannot delete employee with existing dependencies ({blocking}). Reassign them first.")

    snapshot = {"name": emp.name, "email": emp.email, "department": emp.department, "role": emp.role}
    emp_id = emp.id
    s.delete(emp)
    s.flush()

    record_event(
        s,
        actor=user,
        action="employee.delete",
        entity_type="Employee",
        entity_id=str(emp_id),
        metadata=snapshot,
    )
    log_activity(
        s,
        entity_type="EMPLOYEE",
        entity_id=emp_id,
        activity_type="DELETED",
        title=f"Employee deleted: {snapshot['name']}",
        metadata=snapshot,
        user=user,
    )
    logger.info("Employee deleted id=%s", emp_id)
