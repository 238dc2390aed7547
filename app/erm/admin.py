from __future__ import annotations

from typing import Any

from flask import Blueprint, current_app, jsonify, render_template
from sqlalchemy import func, text

from app.erm.auth import actor_employee, current_user
from app.erm.db import db_session
from app.erm.rbac import accessible_pages, require_permission

bp = Blueprint("admin", __name__)
api_bp = Blueprint("dashboard", __name__)


def _count_by(s, column) -> dict[str, int]:
    return {k: n for k, n in s.query(column, func.count()).group_by(column).all()}


def dashboard_summary(s) -> dict[str, Any]:
    from app.erm.modules.access.models import AccessRequest
    from app.erm.modules.employees.models import Employee
    from app.erm.modules.resources.models import Resource, ResourceItem
    from app.erm.modules.workflows.models import ApprovalWorkflow

    user = current_user()
    me = actor_employee(s, user)
    employees = _count_by(s, Employee.status)
    items = _count_by(s, ResourceItem.status)
    return {
        "employees": {"total": sum(employees.values()), "by_status": employees},
        "resources": {"total": s.query(Resource).count(), "by_status": _count_by(s, Resource.status)},
        "items": {"total": sum(items.values()), "by_status": items},
        "pending_workflows": s.query(ApprovalWorkflow).filter(ApprovalWorkflow.status == "PENDING").count(),
        "my_pending_approvals": (
            s.query(ApprovalWorkflow)
            .filter(ApprovalWorkflow.status == "PENDING", ApprovalWorkflow.approver_id == me.id)
            .count()
            if me
            else 0
        ),
        "open_access_requests": s.query(AccessRequest)
        .filter(AccessRequest.status.in_(("REQUESTED", "APPROVED")))
        .count(),
        "pages": accessible_pages(user),
    }


@bp.get("/")
@require_permission("admin.view")
def index():
    s = db_session()
    db_ok = True
    try:
        s.execute(text("SELECT 1"))
    except Exception as e:
        current_app.logger.error("Dashboard DB check failed: %s", e)
        db_ok = False
    summary = dashboard_summary(s) if db_ok else None
    return render_template("admin/index.html", summary=summary, db_ok=db_ok)


@api_bp.get("/dashboard")
@require_permission("admin.view")
def dashboard_json():
    s = db_session()
    return jsonify(dashboard_summary(s))
