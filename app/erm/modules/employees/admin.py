from __future__ import annotations

from flask import Blueprint, abort, current_app, jsonify, request
from sqlalchemy.orm import Session

from app.erm.auth import actor_employee, current_user
from app.erm.db import db_session
from app.erm.modules.employees.models import Employee
from app.erm.modules.employees.onboarding import assign_onboarding_resources, can_onboard, onboarding_status
from app.erm.modules.employees.service import (
    create_employee,
    delete_employee,
    employee_dependencies,
    employee_to_dict,
    list_employees,
    reassign_employee_dependencies,
    update_employee,
    validate_employee_payload,
)
from app.erm.rbac import require_permission, user_has_permission
from app.erm.utils import json_error, json_payload, page_args, paginated, parse_int

bp = Blueprint("employees", __name__)


def _get_employee_or_404(s: Session, employee_id: int) -> Employee:
    emp = s.get(Employee, employee_id)
    if not emp:
        abort(404)
    return emp


def _can_see_private() -> bool:
    return user_has_permission(current_user(), "employees.edit")


@bp.get("/employees")
@require_permission("employees.view")
def employees_list():
    s = db_session()
    page, limit = page_args()
    rows, total = list_employees(
        s,
        search=request.args.get("search"),
        role=request.args.get("role"),
        department=request.args.get("department"),
        status=request.args.get("status"),
        page=page,
        limit=limit,
    )
    return jsonify(paginated([employee_to_dict(e) for e in rows], total, page, limit))


@bp.post("/employees")
@require_permission("employees.create")
def employees_create():
    s = db_session()
    payload = json_payload()
    errors = validate_employee_payload(payload)
    if errors:
        return json_error("Validation failed", 400, errors=errors)
    try:
        emp = create_employee(s, payload, current_user())
    except ValueError as e:
        s.rollback()
        return json_error(str(e), 400)
    s.commit()
    return jsonify(employee_to_dict(emp, include_private=True)), 201


@bp.get("/employees/<int:employee_id>")
@require_permission("employees.view")
def employees_detail(employee_id: int):
    s = db_session()
    emp = _get_employee_or_404(s, employee_id)
    out = employee_to_dict(emp, include_private=_can_see_private())
    out["reports"] = [{"id": r.id, "name": r.name, "role": r.role} for r in emp.reports]
    return jsonify(out)


@bp.route("/employees/<int:employee_id>", methods=["PUT", "PATCH"])
@require_permission("employees.edit")
def employees_update(employee_id: int):
    s = db_session()
    emp = _get_employee_or_404(s, employee_id)
    payload = json_payload()
    errors = validate_employee_payload(payload, partial=True)
    if errors:
        return json_error("Validation failed", 400, errors=errors)
    try:
        update_employee(s, emp, payload, current_user(), reason=(payload.get("reason") or None))
    except ValueError as e:
        s.rollback()
        return json_error(str(e), 400)
    s.commit()
    return jsonify(employee_to_dict(emp, include_private=True))


@bp.delete("/employees/<int:employee_id>")
@require_permission("employees.delete")
def employees_delete(employee_id: int):
    s = db_session()
    emp = _get_employee_or_404(s, employee_id)
    try:
        delete_employee(s, emp, current_user())
    except ValueError as e:
        # Keep the DELETION_ATTEMPTED timeline entry; nothing else was changed.
        s.commit()
        current_app.logger.warning("Employee delete refused id=%s: %s", employee_id, e)
        return json_error(str(e), 409, dependencies=employee_dependencies(s, emp))
    s.commit()
    return jsonify({"ok": True})


@bp.get("/employees/<int:employee_id>/dependencies")
@require_permission("employees.view")
def employees_dependencies(employee_id: int):
    s = db_session()
    emp = _get_employee_or_404(s, employee_id)
    return jsonify(employee_dependencies(s, emp))


@bp.post("/employees/<int:employee_id>/reassign")
@require_permission("employees.edit")
def employees_reassign(employee_id: int):
    s = db_session()
    from_emp = _get_employee_or_404(s, employee_id)
    payload = json_payload()
    try:
        to_id = parse_int(payload.get("to_employee_id"))
    except ValueError:
        to_id = None
    if to_id is None:
        return json_error("to_employee_id is required", 400)
    to_emp = _get_employee_or_404(s, to_id)
    try:
        moved = reassign_employee_dependencies(s, from_emp, to_emp, current_user())
    except ValueError as e:
        s.rollback()
        return json_error(str(e), 400)
    s.commit()
    return jsonify({"ok": True, "moved": moved})


@bp.get("/employees/<int:employee_id>/resources")
@require_permission("employees.view")
def employees_resources(employee_id: int):
    from app.erm.modules.resources.assignments import assignment_to_dict, list_assignments

    s = db_session()
    emp = _get_employee_or_404(s, employee_id)
    status = request.args.get("status") or "ACTIVE"
    rows, _total = list_assignments(s, employee_id=emp.id, status=status, page=1, limit=500)
    return jsonify({"items": [assignment_to_dict(a) for a in rows]})


@bp.get("/employees/<int:employee_id>/onboarding")
@require_permission("employees.view")
def employees_onboarding_status(employee_id: int):
    s = db_session()
    emp = _get_employee_or_404(s, employee_id)
    return jsonify(onboarding_status(s, emp))


@bp.post("/employees/<int:employee_id>/onboarding")
@require_permission("admin.view")
def employees_onboarding_assign(employee_id: int):
    s = db_session()
    user = current_user()
    emp = _get_employee_or_404(s, employee_id)
    actor = actor_employee(s, user)
    if not can_onboard(actor, emp):
        return json_error("Insufficient permissions to assign onboarding resources to other employees", 403)

    force = bool(json_payload().get("force"))
    status = onboarding_status(s, emp)
    if status["completed"] and not force:
        return jsonify({"message": "Onboarding already completed", **status})
    try:
        result = assign_onboarding_resources(s, emp, user, performer=actor)
    except ValueError as e:
        s.rollback()
        return json_error(str(e), 400)
    s.commit()
    current_app.logger.info("Onboarding requested by user_id=%s for employee=%s", user.id, emp.id)
    return jsonify(
        {
            "message": "Onboarding resources assigned",
            "employee_id": emp.id,
            "employee_name": emp.name,
            "resources_assigned": result["assigned"],
            "assignment_ids": result["assignment_ids"],
            "errors": result["errors"],
            "completed": not result["errors"],
            "force": force,
        }
    )
