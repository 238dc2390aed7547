from __future__ import annotations

import logging
from datetime import datetime
from typing import TYPE_CHECKING, Any

from app.erm.audit import record_event
from app.erm.constants import ACCESS_PERMISSION_LEVELS, ACCESS_STATUSES, ACCESS_TRANSITIONS
from app.erm.modules.access.models import AccessRequest
from app.erm.modules.employees.models import Employee
from app.erm.modules.resources.models import Resource
from app.erm.modules.timeline.service import log_activity, log_status_changed
from app.erm.modules.workflows.models import ApprovalWorkflow
from app.erm.modules.workflows.service import create_workflow
from app.erm.utils import clean_str, iso, parse_int

if TYPE_CHECKING:
    from sqlalchemy.orm import Session
    from app.erm.models import User

logger = logging.getLogger(__name__)


def access_request_to_dict(req: AccessRequest) -> dict[str, Any]:
    return {
        "id": req.id,
        "employee_id": req.employee_id,
        "employee": {"id": req.employee.id, "name": req.employee.name} if req.employee else None,
        "approver_id": req.approver_id,
        "approver": {"id": req.approver.id, "name": req.approver.name} if req.approver else None,
        "resource_id": req.resource_id,
        "resource": {"id": req.resource.id, "name": req.resource.name} if req.resource else None,
        "hardware_request": req.hardware_request,
        "permission_level": req.permission_level,
        "status": req.status,
        "justification": req.justification,
        "requested_at": iso(req.requested_at),
        "approved_at": iso(req.approved_at),
        "granted_at": iso(req.granted_at),
        "revoked_at": iso(req.revoked_at),
    }


def _route_access_approver(s: "Session", employee: Employee) -> Employee:
    if employee.manager is not None and employee.manager.status == "ACTIVE":
        return employee.manager
    cto = (
        s.query(Employee)
        .filter(Employee.role == "CTO", Employee.status == "ACTIVE", Employee.id != employee.id)
        .order_by(Employee.created_at.asc(), Employee.id.asc())
        .first()
    )
    if cto is None:
        raise ValueError("No approver available: the employee has no manager and there is no active CTO.")
    return cto


def create_access_request(s: "Session", payload: dict, user: "User | None") -> AccessRequest:
    employee = s.get(Employee, parse_int(payload.get("employee_id")) or 0)
    if employee is None:
        raise ValueError("Employee not found.")
    resource_id = parse_int(payload.get("resource_id"))
    hardware_request = clean_str(payload.get("hardware_request"))
    if resource_id is None and not hardware_request:
        raise ValueError("Either resource_id or hardware_request is required.")
    resource = None
    if resource_id is not None:
        resource = s.get(Resource, resource_id)
        if resource is None:
            raise ValueError("Resource not found.")
    level = (clean_str(payload.get("permission_level")) or "READ").upper()
    if level not in ACCESS_PERMISSION_LEVELS:
        raise ValueError(f"Invalid permission level. Must be one of: {', '.join(ACCESS_PERMISSION_LEVELS)}")

    approver = _route_access_approver(s, employee)
    req = AccessRequest(
        employee_id=employee.id,
        approver_id=approver.id,
        resource_id=resource.id if resource else None,
        hardware_request=hardware_request,
        permission_level=level,
        status="REQUESTED",
        justification=clean_str(payload.get("justification")),
        requested_at=datetime.utcnow(),
    )
    s.add(req)
    s.flush()

    wf = create_workflow(
        s,
        workflow_type="ACCESS_REQUEST",
        requester=employee,
        data={
            "accessRequestId": req.id,
            "resourceName": resource.name if resource else None,
            "hardwareRequest": hardware_request,
            "permissionLevel": level,
            "justification": req.justification,
        },
        user=user,
        resource_id=req.resource_id,
        access_request_id=req.id,
        approver_id=approver.id,
    )

    record_event(
        s,
        actor=user,
        action="access_request.create",
        entity_type="AccessRequest",
        entity_id=str(req.id),
        metadata={"employee_id": employee.id, "resource_id": req.resource_id, "workflow_id": wf.id},
    )
    log_activity(
        s,
        entity_type="ACCESS",
        entity_id=req.id,
        activity_type="CREATED",
        title=f"Access requested by {employee.name}",
        description=f"{level} access to {resource.name}" if resource else f"Hardware: {hardware_request}",
        metadata={"workflowId": wf.id, "approverId": approver.id},
        performer=employee,
        user=user,
        employee_id=employee.id,
        resource_id=req.resource_id,
    )
    logger.info("Access request created id=%s employee=%s approver=%s", req.id, employee.id, approver.id)
    return req


def _pending_workflow(s: "Session", req: AccessRequest) -> ApprovalWorkflow | None:
    return (
        s.query(ApprovalWorkflow)
        .filter(ApprovalWorkflow.access_request_id == req.id, ApprovalWorkflow.status == "PENDING")
        .first()
    )


def update_access_status(
    s: "Session", req: AccessRequest, new_status: str, user: "User | None", notes: str | None = None
) -> AccessRequest:
    if new_status not in ACCESS_STATUSES:
        raise ValueError(f"Invalid status. Must be one of: {', '.join(ACCESS_STATUSES)}")
    if new_status not in ACCESS_TRANSITIONS.get(req.status, ()):
        raise ValueError(f"Cannot change access request from {req.status} to {new_status}.")

    old_status = req.status
    now = datetime.utcnow()
    req.status = new_status
    if new_status == "APPROVED":
        req.approved_at = now
    elif new_status == "GRANTED":
        req.granted_at = now
    elif new_status == "REVOKED":
        req.revoked_at = now

    wf = _pending_workflow(s, req)
    if wf is not None:
        wf.status = "APPROVED" if new_status in ("APPROVED", "GRANTED") else "REJECTED"
        wf.comments = notes or f"Access request {new_status.lower()}"
        wf.decided_at = now
        wf.updated_at = now
    s.flush()

    record_event(
        s,
        actor=user,
        action="access_request.status",
        entity_type="AccessRequest",
        entity_id=str(req.id),
        reason=notes,
        metadata={"from": old_status, "to": new_status, "workflow_id": wf.id if wf else None},
    )
    name = req.employee.name if req.employee else f"Employee #{req.employee_id}"
    log_status_changed(
        s,
        entity_type="ACCESS",
        entity_id=req.id,
        entity_name=f"Access request #{req.id} ({name})",
        old_status=old_status,
        new_status=new_status,
        user=user,
        employee_id=req.employee_id,
        resource_id=req.resource_id,
    )
    if new_status in ("GRANTED", "REVOKED"):
        log_activity(
            s,
            entity_type="ACCESS",
            entity_id=req.id,
            activity_type="ACCESS_GRANTED" if new_status == "GRANTED" else "ACCESS_REVOKED",
            title=f"Access {new_status.lower()}: {name}",
            description=notes,
            metadata={"permissionLevel": req.permission_level},
            user=user,
            employee_id=req.employee_id,
            resource_id=req.resource_id,
        )
    return req


def delete_access_request(s: "Session", req: AccessRequest, user: "User | None") -> int:
    """Delete the request and its workflows; returns how many workflows were removed."""
    workflows = s.query(ApprovalWorkflow).filter(ApprovalWorkflow.access_request_id == req.id).all()
    cancelled = [wf.id for wf in workflows if wf.status == "PENDING"]
    for wf in workflows:
        s.delete(wf)
    snapshot = {"employee_id": req.employee_id, "resource_id": req.resource_id, "status": req.status}
    req_id, employee_id = req.id, req.employee_id
    s.delete(req)
    s.flush()

    record_event(
        s,
        actor=user,
        action="access_request.delete",
        entity_type="AccessRequest",
        entity_id=str(req_id),
        metadata={**snapshot, "workflows_removed": len(workflows)},
    )
    if cancelled:
        log_activity(
            s,
            entity_type="ACCESS",
            entity_id=req_id,
            activity_type="WORKFLOW_CANCELLED",
            title=f"Access request #{req_id} deleted",
            description=f"Cancelled {len(cancelled)} pending workflow(s)",
            metadata={"workflowIds": cancelled},
            user=user,
            employee_id=employee_id,
        )
    logger.info("Access request deleted id=%s workflows_removed=%s", req_id, len(workflows))
    return len(workflows)


def list_access_requests(
    s: "Session",
    *,
    employee_id: int | None = None,
    status: str | None = None,
    page: int = 1,
    limit: int = 20,
) -> tuple[list[AccessRequest], int]:
    q = s.query(AccessRequest)
    if employee_id is not None:
        q = q.filter(AccessRequest.employee_id == employee_id)
    if status:
        q = q.filter(AccessRequest.status == status)
    total = q.count()
    rows = (
        q.order_by(AccessRequest.requested_at.desc(), AccessRequest.id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )
    return rows, total
