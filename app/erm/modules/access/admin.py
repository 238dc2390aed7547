from __future__ import annotations

from flask import Blueprint, abort, jsonify, request

from app.erm.auth import actor_employee, current_user
from app.erm.db import db_session
from app.erm.modules.access.models import AccessRequest
from app.erm.modules.access.service import (
    access_request_to_dict,
    create_access_request,
    delete_access_request,
    list_access_requests,
    update_access_status,
)
from app.erm.rbac import require_permission, user_has_permission
from app.erm.utils import json_error, json_payload, page_args, paginated, parse_int

bp = Blueprint("access", __name__)


def _get_request_or_404(s, request_id: int) -> AccessRequest:
    req = s.get(AccessRequest, request_id)
    if not req:
        abort(404)
    return req


@bp.get("/access")
@require_permission("access.view")
def access_list():
    s = db_session()
    page, limit = page_args()
    try:
        employee_id = parse_int(request.args.get("employee_id"))
    except ValueError:
        employee_id = None
    rows, total = list_access_requests(
        s, employee_id=employee_id, status=request.args.get("status"), page=page, limit=limit
    )
    return jsonify(paginated([access_request_to_dict(r) for r in rows], total, page, limit))


@bp.post("/access")
@require_permission("access.request")
def access_create():
    s = db_session()
    user = current_user()
    payload = json_payload()
    if not payload.get("employee_id"):
        # Requests default to the caller's own employee record.
        me = actor_employee(s, user)
        if me is None:
            return json_error("employee_id is required", 400)
        payload = {**payload, "employee_id": me.id}
    elif not user_has_permission(user, "access.manage"):
        me = actor_employee(s, user)
        if me is None or str(me.id) != str(payload.get("employee_id")):
            abort(403)
    try:
        req = create_access_request(s, payload, user)
    except ValueError as e:
        s.rollback()
        return json_error(str(e), 400)
    s.commit()
    return jsonify(access_request_to_dict(req)), 201


@bp.get("/access/<int:request_id>")
@require_permission("access.view")
def access_detail(request_id: int):
    s = db_session()
    return jsonify(access_request_to_dict(_get_request_or_404(s, request_id)))


@bp.put("/access/<int:request_id>")
@require_permission("access.manage")
def access_update(request_id: int):
    s = db_session()
    req = _get_request_or_404(s, request_id)
    payload = json_payload()
    try:
        update_access_status(s, req, (payload.get("status") or "").strip(), current_user(), notes=payload.get("notes"))
    except ValueError as e:
        s.rollback()
        return json_error(str(e), 400)
    s.commit()
    return jsonify(access_request_to_dict(req))


@bp.delete("/access/<int:request_id>")
@require_permission("access.manage")
def access_delete(request_id: int):
    s = db_session()
    req = _get_request_or_404(s, request_id)
    removed = delete_access_request(s, req, current_user())
    s.commit()
    return jsonify({"ok": True, "workflows_removed": removed})
