from __future__ import annotations

import logging
from collections import Counter
from datetime import date, datetime
from typing import TYPE_CHECKING, Any

from sqlalchemy import or_

from app.erm.audit import record_event
from app.erm.constants import WORKFLOW_TYPES
from app.erm.modules.employees.models import Employee
from app.erm.modules.timeline.service import log_activity, log_status_changed
from app.erm.modules.workflows.models import ApprovalWorkflow
from app.erm.modules.workflows.routing import (
    display_title,
    financial_approval_limit,
    find_approver,
    is_financial,
    priority_rank,
    workflow_amount,
    workflow_category,
    workflow_priority,
)
from app.erm.utils import iso

if TYPE_CHECKING:
    from sqlalchemy.orm import Session
    from app.erm.models import User
    from app.erm.modules.policies.models import Policy

logger = logging.getLogger(__name__)


def workflow_to_dict(wf: ApprovalWorkflow) -> dict[str, Any]:
    amount = workflow_amount(wf.data)
    return {
        "id": wf.id,
        "type": wf.type,
        "status": wf.status,
        "title": display_title(wf),
        "category": workflow_category(wf.type),
        "priority": workflow_priority(wf.type, amount),
        "amount": amount or None,
        "requester_id": wf.requester_id,
        "requester": {"id": wf.requester.id, "name": wf.requester.name} if wf.requester else None,
        "approver_id": wf.approver_id,
        "approver": {"id": wf.approver.id, "name": wf.approver.name, "role": wf.approver.role} if wf.approver else None,
        "data": wf.data or {},
        "comments": wf.comments,
        "policy_id": wf.policy_id,
        "resource_id": wf.resource_id,
        "access_request_id": wf.access_request_id,
        "created_at": iso(wf.created_at),
        "updated_at": iso(wf.updated_at),
        "decided_at": iso(wf.decided_at),
    }


def create_workflow(
    s: "Session",
    *,
    workflow_type: str,
    requester: Employee,
    data: dict[str, Any] | None,
    user: "User | None",
    policy_id: int | None = None,
    resource_id: int | None = None,
    access_request_id: int | None = None,
    approver_id: int | None = None,
) -> ApprovalWorkflow:
    if workflow_type not in WORKFLOW_TYPES:
        raise ValueError(f"Invalid workflow type: {workflow_type}")
    if requester is None:
        raise ValueError("A requester employee is required.")
    if requester.status != "ACTIVE":
        raise ValueError("Only active employees can start a workflow.")
    data = dict(data or {})
    amount = workflow_amount(data)
    if is_financial(workflow_type) and amount <= 0:
        raise ValueError("Financial workflows require a positive amount.")

    if approver_id is not None:
        approver = s.get(Employee, approver_id)
        if approver is None:
            raise ValueError("Approver not found.")
        if approver.id == requester.id:
            raise ValueError("Requester cannot approve their own workflow.")
    else:
        approver = find_approver(s, workflow_type, amount, requester.id)
        if approver is None:
            raise ValueError(f"No approver available for {workflow_type}.")

    now = datetime.utcnow()
    wf = ApprovalWorkflow(
        type=workflow_type,
        requester_id=requester.id,
        approver_id=approver.id,
        status="PENDING",
        data=data,
        policy_id=policy_id,
        resource_id=resource_id,
        access_request_id=access_request_id,
        created_at=now,
        updated_at=now,
    )
    s.add(wf)
    s.flush()

    record_event(
        s,
        actor=user,
        action="workflow.create",
        entity_type="ApprovalWorkflow",
        entity_id=str(wf.id),
        metadata={"type": workflow_type, "requester_id": requester.id, "approver_id": approver.id, "amount": amount},
    )
    log_activity(
        s,
        entity_type="APPROVAL_WORKFLOW",
        entity_id=wf.id,
        activity_type="WORKFLOW_STARTED",
        title=f"Workflow started: {display_title(wf)}",
        description=f"Requested by {requester.name}, routed to {approver.name} ({approver.role})",
        metadata={"type": workflow_type, "approverId": approver.id, "priority": workflow_priority(workflow_type, amount)},
        performer=requester,
        user=user,
        policy_id=policy_id,
        resource_id=resource_id,
    )
    logger.info("Workflow created id=%s type=%s approver=%s", wf.id, workflow_type, approver.id)
    return wf


def pending_policy_workflow(s: "Session", policy_id: int) -> ApprovalWorkflow | None:
    return (
        s.query(ApprovalWorkflow)
        .filter(
            ApprovalWorkflow.policy_id == policy_id,
            ApprovalWorkflow.type == "POLICY_UPDATE_REQUEST",
            ApprovalWorkflow.status == "PENDING",
        )
        .first()
    )


def create_policy_publish_workflow(
    s: "Session", policy: "Policy", requester: Employee, user: "User | None"
) -> ApprovalWorkflow:
    existing = pending_policy_workflow(s, policy.id)
    if existing is not None:
        return existing
    return create_workflow(
        s,
        workflow_type="POLICY_UPDATE_REQUEST",
        requester=requester,
        data={"policyId": policy.id, "policyTitle": policy.title, "version": policy.version, "category": policy.category},
        user=user,
        policy_id=policy.id,
    )


def create_it_equipment_request(
    s: "Session", requester: Employee, *, item_name: str, estimated_cost: float, justification: str, user: "User | None"
) -> ApprovalWorkflow:
    return create_workflow(
        s,
        workflow_type="IT_EQUIPMENT_REQUEST",
        requester=requester,
        data={"itemName": item_name, "estimatedCost": estimated_cost, "justification": justification},
        user=user,
    )


def create_software_license_request(
    s: "Session", requester: Employee, *, software_name: str, estimated_cost: float, justification: str, user: "User | None"
) -> ApprovalWorkflow:
    return create_workflow(
        s,
        workflow_type="SOFTWARE_LICENSE_REQUEST",
        requester=requester,
        data={"itemName": software_name, "estimatedCost": estimated_cost, "justification": justification},
        user=user,
    )


def create_expense_request(
    s: "Session", requester: Employee, *, amount: float, description: str, user: "User | None"
) -> ApprovalWorkflow:
    return create_workflow(
        s,
        workflow_type="EXPENSE_APPROVAL_REQUEST",
        requester=requester,
        data={"amount": amount, "description": description},
        user=user,
    )


def create_hiring_request(
    s: "Session", requester: Employee, *, position: str, department: str, justification: str, user: "User | None"
) -> ApprovalWorkflow:
    return create_workflow(
        s,
        workflow_type="HIRING_REQUEST",
        requester=requester,
        data={"position": position, "department": department, "justification": justification},
        user=user,
    )


# ---------------------------------------------------------------------------
# Decisions
# ---------------------------------------------------------------------------


def _apply_policy_decision(s: "Session", wf: ApprovalWorkflow, approved: bool, decider: Employee, user) -> None:
    policy = wf.policy
    if policy is None:
        return
    old_status = policy.status
    policy.status = "APPROVED" if approved else "REJECTED"
    policy.last_review_date = date.today()
    policy.updated_at = datetime.utcnow()
    log_status_changed(
        s,
        entity_type="POLICY",
        entity_id=policy.id,
        entity_name=policy.title,
        old_status=old_status,
        new_status=policy.status,
        performer=decider,
        user=user,
        metadata={"workflowId": wf.id},
    )
    log_activity(
        s,
        entity_type="POLICY",
        entity_id=policy.id,
        activity_type="APPROVED" if approved else "REJECTED",
        title=f"Policy {'approved' if approved else 'rejected'}: {policy.title}",
        description=wf.comments,
        metadata={"workflowId": wf.id, "version": policy.version},
        performer=decider,
        user=user,
        workflow_id=wf.id,
    )


def _provision_hardware(s: "Session", req, decider: Employee, user) -> dict[str, Any]:
    """Create a hardware resource in the requester's custody for an approved hardware request."""
    from app.erm.constants import SYSTEM_TYPE_HARDWARE
    from app.erm.modules.resources.models import PropertyCatalog, ResourceCategory, ResourceType
    from app.erm.modules.resources.service import create_resource_with_schema

    rt = s.query(ResourceType).filter(ResourceType.name == SYSTEM_TYPE_HARDWARE).one_or_none()
    category = (
        s.query(ResourceCategory)
        .filter(ResourceCategory.resource_type_id == rt.id)
        .order_by(ResourceCategory.name.asc())
        .first()
        if rt
        else None
    )
    if rt is None or category is None:
        return {"hardwareProvisioned": False, "hardwareError": "Hardware resource type is not configured."}

    schema = []
    for key in rt.mandatory_properties or []:
        prop = s.query(PropertyCatalog).filter(PropertyCatalog.key == key).one_or_none()
        schema.append(
            {
                "key": key,
                "label": prop.label if prop else key,
                "dataType": prop.data_type if prop else "STRING",
                "isRequired": True,
            }
        )
    if not schema:
        schema = [{"key": "serialNumber", "label": "Serial Number", "dataType": "STRING", "isRequired": False}]

    resource = create_resource_with_schema(
        s,
        {
            "name": req.hardware_request[:255],
            "description": req.justification,
            "resource_type_id": rt.id,
            "resource_category_id": category.id,
            "custodian_id": req.employee_id,
            "property_schema": schema,
            "metadata": {"accessRequestId": req.id, "requestedBy": req.employee_id},
        },
        user,
    )
    req.resource_id = resource.id
    return {"hardwareProvisioned": True, "provisionedResourceId": resource.id}


def _apply_access_decision(s: "Session", wf: ApprovalWorkflow, approved: bool, decider: Employee, user) -> None:
    from app.erm.modules.access.models import AccessRequest
    from app.erm.modules.resources.assignments import create_assignment, first_available_item, validate_assignment
    from app.erm.modules.resources.models import Resource

    req = s.get(AccessRequest, wf.access_request_id) if wf.access_request_id else None
    if req is None or req.status != "REQUESTED":
        return
    now = datetime.utcnow()
    old_status = req.status
    outcome: dict[str, Any] = {}
    if approved:
        req.status = "APPROVED"
        req.approved_at = now
        if req.resource_id is not None:
            item_id = first_available_item(s, s.get(Resource, req.resource_id))
            ok, error, assignment_type = validate_assignment(s, req.employee_id, req.resource_id, item_id)
            if ok:
                a = create_assignment(
                    s,
                    employee_id=req.employee_id,
                    resource_id=req.resource_id,
                    item_id=item_id,
                    requested_type=assignment_type,
                    notes=f"Access request #{req.id} approved",
                    assigned_by=decider,
                    user=user,
                )
                outcome = {"assignmentId": a.id}
            else:
                outcome = {"assignmentError": error}
        elif req.hardware_request:
            outcome = _provision_hardware(s, req, decider, user)
    else:
        req.status = "REVOKED"
        req.revoked_at = now
    s.flush()

    wf.data = {**(wf.data or {}), **outcome}
    log_status_changed(
        s,
        entity_type="ACCESS",
        entity_id=req.id,
        entity_name=f"Access request #{req.id}",
        old_status=old_status,
        new_status=req.status,
        performer=decider,
        user=user,
        metadata={"workflowId": wf.id, **outcome},
        employee_id=req.employee_id,
        resource_id=req.resource_id,
    )


def _decide(
    s: "Session", wf: ApprovalWorkflow, decider: Employee | None, comments: str | None, user, *, approved: bool
) -> ApprovalWorkflow:
    if wf.status != "PENDING":
        raise ValueError(f"Workflow is already {wf.status}.")
    if decider is None:
        raise ValueError("Your account is not linked to an employee record.")
    if decider.id != wf.approver_id:
        raise ValueError("Only the assigned approver can decide this workflow.")
    if approved and is_financial(wf.type):
        amount = workflow_amount(wf.data)
        limit = financial_approval_limit(decider.role)
        if amount > limit:
            raise ValueError(f"Amount {amount:,.2f} exceeds your approval limit of {limit:,.2f}.")

    old_status = wf.status
    now = datetime.utcnow()
    wf.status = "APPROVED" if approved else "REJECTED"
    wf.comments = (comments or "").strip() or ("Approved" if approved else "Rejected")
    wf.decided_at = now
    wf.updated_at = now

    if wf.type == "POLICY_UPDATE_REQUEST":
        _apply_policy_decision(s, wf, approved, decider, user)
    elif wf.type == "ACCESS_REQUEST":
        _apply_access_decision(s, wf, approved, decider, user)
    s.flush()

    record_event(
        s,
        actor=user,
        action="workflow.status",
        entity_type="ApprovalWorkflow",
        entity_id=str(wf.id),
        reason=wf.comments,
        metadata={"from": old_status, "to": wf.status, "type": wf.type, "decided_by": decider.id},
    )
    log_status_changed(
        s,
        entity_type="APPROVAL_WORKFLOW",
        entity_id=wf.id,
        entity_name=display_title(wf),
        old_status=old_status,
        new_status=wf.status,
        performer=decider,
        user=user,
    )
    log_activity(
        s,
        entity_type="APPROVAL_WORKFLOW",
        entity_id=wf.id,
        activity_type="WORKFLOW_COMPLETED",
        title=f"Workflow {wf.status.lower()}: {display_title(wf)}",
        description=wf.comments,
        metadata={"type": wf.type, "outcome": wf.status},
        performer=decider,
        user=user,
        policy_id=wf.policy_id,
        resource_id=wf.resource_id,
    )
    logger.info("Workflow decided id=%s status=%s by=%s", wf.id, wf.status, decider.id)
    return wf


def approve_workflow(
    s: "Session", wf: ApprovalWorkflow, approver: Employee | None, comments: str | None, user: "User | None"
) -> ApprovalWorkflow:
    return _decide(s, wf, approver, comments, user, approved=True)


def reject_workflow(
    s: "Session", wf: ApprovalWorkflow, approver: Employee | None, comments: str | None, user: "User | None"
) -> ApprovalWorkflow:
    return _decide(s, wf, approver, comments, user, approved=False)


def cancel_workflow(
    s: "Session",
    wf: ApprovalWorkflow,
    user: "User | None",
    *,
    actor: Employee | None = None,
    can_approve: bool = False,
    reason: str | None = None,
) -> ApprovalWorkflow:
    if wf.status != "PENDING":
        raise ValueError(f"Only pending workflows can be cancelled (current status: {wf.status}).")
    is_requester = actor is not None and actor.id == wf.requester_id
    if not (is_requester or can_approve):
        raise ValueError("Only the requester or an approver can cancel this workflow.")

    wf.status = "CANCELLED"
    wf.comments = reason or wf.comments
    wf.updated_at = datetime.utcnow()
    s.flush()

    record_event(
        s,
        actor=user,
        action="workflow.cancel",
        entity_type="ApprovalWorkflow",
        entity_id=str(wf.id),
        reason=reason,
        metadata={"type": wf.type},
    )
    log_activity(
        s,
        entity_type="APPROVAL_WORKFLOW",
        entity_id=wf.id,
        activity_type="WORKFLOW_CANCELLED",
        title=f"Workflow cancelled: {display_title(wf)}",
        description=reason,
        performer=actor,
        user=user,
        policy_id=wf.policy_id,
    )
    return wf


# ---------------------------------------------------------------------------
# Queries
# ---------------------------------------------------------------------------


def list_workflows(
    s: "Session",
    *,
    status: str | None = None,
    workflow_type: str | None = None,
    employee_id: int | None = None,
    page: int = 1,
    limit: int = 20,
) -> tuple[list[ApprovalWorkflow], int]:
    q = s.query(ApprovalWorkflow)
    if status:
        q = q.filter(ApprovalWorkflow.status == status)
    if workflow_type:
        q = q.filter(ApprovalWorkflow.type == workflow_type)
    if employee_id is not None:
        q = q.filter(or_(ApprovalWorkflow.requester_id == employee_id, ApprovalWorkflow.approver_id == employee_id))
    total = q.count()
    rows = (
        q.order_by(ApprovalWorkflow.created_at.desc(), ApprovalWorkflow.id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )
    return rows, total


def pending_for_approver(s: "Session", approver: Employee) -> list[dict[str, Any]]:
    rows = (
        s.query(ApprovalWorkflow)
        .filter(ApprovalWorkflow.approver_id == approver.id, ApprovalWorkflow.status == "PENDING")
        .all()
    )
    out = [workflow_to_dict(wf) for wf in rows]
    # Highest priority first, then oldest first.
    out.sort(key=lambda d: (priority_rank(d["priority"]), d["created_at"] or ""))
    return out


def workflow_stats(s: "Session", employee: Employee) -> dict[str, Any]:
    as_approver = s.query(ApprovalWorkflow).filter(ApprovalWorkflow.approver_id == employee.id).all()
    by_status = Counter(wf.status for wf in as_approver)
    my_requests = s.query(ApprovalWorkflow).filter(ApprovalWorkflow.requester_id == employee.id).count()
    categories = Counter(workflow_category(wf.type) for wf in as_approver if wf.status == "PENDING")
    return {
        "pending": by_status.get("PENDING", 0),
        "approved": by_status.get("APPROVED", 0),
        "rejected": by_status.get("REJECTED", 0),
        "my_requests": my_requests,
        "total_processed": by_status.get("APPROVED", 0) + by_status.get("REJECTED", 0),
        "category_breakdown": dict(categories),
    }
