from __future__ import annotations

from flask import Blueprint, abort, current_app, jsonify, request, send_file

from app.erm.audit import record_event
from app.erm.auth import actor_employee, current_user
from app.erm.db import db_session
from app.erm.modules.policies.models import Policy
from app.erm.modules.policies.service import (
    attach_policy_file,
    create_policy,
    delete_policy,
    list_policies,
    policy_history,
    policy_to_dict,
    publish_policy,
    update_policy,
    validate_policy_payload,
)
from app.erm.modules.timeline.service import activity_to_dict, timeline_count
from app.erm.rbac import require_permission
from app.erm.storage import StorageError, storage_from_config
from app.erm.utils import json_error, json_payload, page_args, paginated

bp = Blueprint("policies", __name__)


def _get_policy_or_404(s, policy_id: int) -> Policy:
    p = s.get(Policy, policy_id)
    if not p:
        abort(404)
    return p


@bp.get("/policies")
@require_permission("policies.view")
def policies_list():
    s = db_session()
    page, limit = page_args()
    rows, total = list_policies(
        s,
        status=request.args.get("status"),
        category=request.args.get("category"),
        search=request.args.get("search"),
        page=page,
        limit=limit,
    )
    return jsonify(paginated([policy_to_dict(p) for p in rows], total, page, limit))


@bp.post("/policies")
@require_permission("policies.create")
def policies_create():
    s = db_session()
    user = current_user()
    payload = json_payload()
    if not payload.get("owner_id"):
        me = actor_employee(s, user)
        if me is not None:
            payload = {**payload, "owner_id": me.id}
    errors = validate_policy_payload(payload)
    if errors:
        return json_error("Validation failed", 400, errors=errors)
    try:
        p = create_policy(s, payload, user)
    except ValueError as e:
        s.rollback()
        return json_error(str(e), 400)
    s.commit()
    return jsonify(policy_to_dict(p)), 201


@bp.get("/policies/<int:policy_id>")
@require_permission("policies.view")
def policies_detail(policy_id: int):
    s = db_session()
    return jsonify(policy_to_dict(_get_policy_or_404(s, policy_id)))


@bp.route("/policies/<int:policy_id>", methods=["PUT", "PATCH"])
@require_permission("policies.edit")
def policies_update(policy_id: int):
    s = db_session()
    p = _get_policy_or_404(s, policy_id)
    payload = json_payload()
    errors = validate_policy_payload(payload, partial=True)
    if errors:
        return json_error("Validation failed", 400, errors=errors)
    try:
        update_policy(s, p, payload, current_user(), reason=(payload.get("reason") or None))
    except ValueError as e:
        s.rollback()
        return json_error(str(e), 400)
    s.commit()
    return jsonify(policy_to_dict(p))


@bp.delete("/policies/<int:policy_id>")
@require_permission("policies.delete")
def policies_delete(policy_id: int):
    s = db_session()
    p = _get_policy_or_404(s, policy_id)
    try:
        delete_policy(s, p, current_user(), storage=storage_from_config(current_app.config))
    except ValueError as e:
        s.rollback()
        return json_error(str(e), 409)
    s.commit()
    return jsonify({"ok": True})


@bp.post("/policies/<int:policy_id>/publish")
@require_permission("policies.publish")
def policies_publish(policy_id: int):
    s = db_session()
    p = _get_policy_or_404(s, policy_id)
    try:
        publish_policy(s, p, current_user())
    except ValueError as e:
        s.rollback()
        return json_error(str(e), 400)
    s.commit()
    return jsonify(policy_to_dict(p))


@bp.post("/policies/<int:policy_id>/file")
@require_permission("policies.edit")
def policies_file_upload(policy_id: int):
    s = db_session()
    p = _get_policy_or_404(s, policy_id)
    f = request.files.get("file")
    if not f or not f.filename:
        return json_error("A file is required", 400)
    try:
        attach_policy_file(
            s,
            p,
            filename=f.filename,
            data=f.read(),
            content_type=f.mimetype,
            user=current_user(),
            storage=storage_from_config(current_app.config),
        )
    except ValueError as e:
        s.rollback()
        return json_error(str(e), 400)
    s.commit()
    return jsonify(policy_to_dict(p))


@bp.get("/policies/<int:policy_id>/file")
@require_permission("policies.view")
def policies_file_download(policy_id: int):
    s = db_session()
    p = _get_policy_or_404(s, policy_id)
    if not p.file_storage_key:
        abort(404)
    try:
        fobj = storage_from_config(current_app.config).open(p.file_storage_key)
    except StorageError:
        current_app.logger.warning("Policy file missing from storage id=%s key=%s", p.id, p.file_storage_key)
        abort(404)
    record_event(
        s,
        actor=current_user(),
        action="policy.file_download",
        entity_type="Policy",
        entity_id=str(p.id),
        metadata={"storage_key": p.file_storage_key},
    )
    s.commit()
    return send_file(
        fobj,
        mimetype=p.file_mime_type or "application/octet-stream",
        as_attachment=True,
        download_name=p.file_name or f"policy_{p.id}",
        max_age=0,
    )


@bp.get("/policies/<int:policy_id>/history")
@require_permission("policies.view")
def policies_history(policy_id: int):
    s = db_session()
    p = _get_policy_or_404(s, policy_id)
    page, limit = page_args(default_limit=15)
    rows = policy_history(s, p, page=page, limit=limit)
    total = timeline_count(s, "POLICY", p.id)
    return jsonify(paginated([activity_to_dict(e) for e in rows], total, page, limit))
