from __future__ import annotations

from flask import Blueprint, abort, jsonify, request

from app.erm.auth import actor_employee, current_user
from app.erm.db import db_session
from app.erm.modules.workflows.models import ApprovalWorkflow
from app.erm.modules.workflows.routing import approval_chain, approver_roles_for
from app.erm.modules.workflows.service import (
    approve_workflow,
    cancel_workflow,
    create_workflow,
    list_workflows,
    pending_for_approver,
    reject_workflow,
    workflow_stats,
    workflow_to_dict,
)
from app.erm.rbac import require_permission, user_has_permission
from app.erm.utils import json_error, json_payload, page_args, paginated, parse_float, parse_int

bp = Blueprint("workflows", __name__)


def _get_workflow_or_404(s, workflow_id: int) -> ApprovalWorkflow:
    wf = s.get(ApprovalWorkflow, workflow_id)
    if not wf:
        abort(404)
    return wf


@bp.get("/workflows")
@require_permission("workflows.view")
def workflows_list():
    s = db_session()
    page, limit = page_args()
    employee_id = None
    if request.args.get("mine"):
        me = actor_employee(s, current_user())
        employee_id = me.id if me else -1
    rows, total = list_workflows(
        s,
        status=request.args.get("status"),
        workflow_type=request.args.get("type"),
        employee_id=employee_id,
        page=page,
        limit=limit,
    )
    return jsonify(paginated([workflow_to_dict(wf) for wf in rows], total, page, limit))


@bp.post("/workflows")
@require_permission("workflows.create")
def workflows_create():
    s = db_session()
    user = current_user()
    requester = actor_employee(s, user)
    if requester is None:
        return json_error("Your account is not linked to an employee record", 400)
    payload = json_payload()
    data = payload.get("data") or {}
    if not isinstance(data, dict):
        return json_error("data must be an object", 400)
    try:
        wf = create_workflow(
            s,
            workflow_type=(payload.get("type") or "").strip(),
            requester=requester,
            data=data,
            user=user,
            policy_id=parse_int(payload.get("policy_id")),
            resource_id=parse_int(payload.get("resource_id")),
            approver_id=parse_int(payload.get("approver_id")),
        )
    except ValueError as e:
        s.rollback()
        return json_error(str(e), 400)
    s.commit()
    return jsonify(workflow_to_dict(wf)), 201


@bp.get("/workflows/pending")
@require_permission("workflows.view")
def workflows_pending():
    s = db_session()
    me = actor_employee(s, current_user())
    if me is None:
        return jsonify({"items": []})
    return jsonify({"items": pending_for_approver(s, me)})


@bp.get("/workflows/stats")
@require_permission("workflows.view")
def workflows_stats():
    s = db_session()
    me = actor_employee(s, current_user())
    if me is None:
        return json_error("Your account is not linked to an employee record", 400)
    return jsonify(workflow_stats(s, me))


@bp.get("/workflows/chain")
@require_permission("workflows.view")
def workflows_chain():
    workflow_type = (request.args.get("type") or "").strip()
    try:
        amount = parse_float(request.args.get("amount")) or 0.0
    except ValueError:
        return json_error("amount must be a number", 400)
    return jsonify(
        {
            "type": workflow_type,
            "amount": amount,
            "chain": approval_chain(workflow_type, amount),
            "approver_roles": list(approver_roles_for(workflow_type, amount)),
        }
    )


@bp.get("/workflows/<int:workflow_id>")
@require_permission("workflows.view")
def workflows_detail(workflow_id: int):
    s = db_session()
    return jsonify(workflow_to_dict(_get_workflow_or_404(s, workflow_id)))


def _decide(workflow_id: int, approved: bool):
    s = db_session()
    wf = _get_workflow_or_404(s, workflow_id)
    user = current_user()
    comments = (json_payload().get("comments") or "").strip() or None
    decide = approve_workflow if approved else reject_workflow
    try:
        decide(s, wf, actor_employee(s, user), comments, user)
    except ValueError as e:
        s.rollback()
        return json_error(str(e), 400)
    s.commit()
    return jsonify(workflow_to_dict(wf))


@bp.post("/workflows/<int:workflow_id>/approve")
@require_permission("workflows.approve")
def workflows_approve(workflow_id: int):
    return _decide(workflow_id, approved=True)


@bp.post("/workflows/<int:workflow_id>/reject")
@require_permission("workflows.approve")
def workflows_reject(workflow_id: int):
    return _decide(workflow_id, approved=False)


@bp.post("/workflows/<int:workflow_id>/cancel")
@require_permission("workflows.view")
def workflows_cancel(workflow_id: int):
    s = db_session()
    wf = _get_workflow_or_404(s, workflow_id)
    user = current_user()
    try:
        cancel_workflow(
            s,
            wf,
            user,
            actor=actor_employee(s, user),
            can_approve=user_has_permission(user, "workflows.approve"),
            reason=(json_payload().get("reason") or None),
        )
    except ValueError as e:
        s.rollback()
        return json_error(str(e), 400)
    s.commit()
    return jsonify(workflow_to_dict(wf))
