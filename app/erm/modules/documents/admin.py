from __future__ import annotations

from flask import Blueprint, abort, current_app, jsonify, request, send_file

from app.erm.audit import record_event
from app.erm.auth import actor_employee, current_user
from app.erm.db import db_session
from app.erm.modules.documents.models import Document
from app.erm.modules.documents.service import (
    attach_document_file,
    create_document,
    delete_document,
    document_history,
    document_to_dict,
    list_documents,
    update_document,
    validate_document_payload,
)
from app.erm.modules.timeline.service import activity_to_dict, timeline_count
from app.erm.rbac import require_permission
from app.erm.storage import StorageError, storage_from_config
from app.erm.utils import json_error, json_payload, page_args, paginated, parse_int

bp = Blueprint("documents", __name__)


def _get_document_or_404(s, document_id: int) -> Document:
    d = s.get(Document, document_id)
    if not d:
        abort(404)
    return d


@bp.get("/documents")
@require_permission("documents.view")
def documents_list():
    s = db_session()
    page, limit = page_args()
    try:
        owner_id = parse_int(request.args.get("owner_id"))
    except ValueError:
        return json_error("Invalid owner_id", 400)
    rows, total = list_documents(
        s,
        status=request.args.get("status"),
        category=request.args.get("category"),
        owner_id=owner_id,
        tag=request.args.get("tag"),
        search=request.args.get("search"),
        page=page,
        limit=limit,
    )
    return jsonify(paginated([document_to_dict(d) for d in rows], total, page, limit))


@bp.post("/documents")
@require_permission("documents.create")
def documents_create():
    s = db_session()
    user = current_user()
    payload = json_payload()
    if not payload.get("owner_id"):
        me = actor_employee(s, user)
        if me is not None:
            payload = {**payload, "owner_id": me.id}
    errors = validate_document_payload(payload)
    if errors:
        return json_error("Validation failed", 400, errors=errors)
    try:
        d = create_document(s, payload, user)
    except ValueError as e:
        s.rollback()
        return json_error(str(e), 400)
    s.commit()
    return jsonify(document_to_dict(d)), 201


@bp.get("/documents/<int:document_id>")
@require_permission("documents.view")
def documents_detail(document_id: int):
    s = db_session()
    return jsonify(document_to_dict(_get_document_or_404(s, document_id)))


@bp.route("/documents/<int:document_id>", methods=["PUT", "PATCH"])
@require_permission("documents.edit")
def documents_update(document_id: int):
    s = db_session()
    d = _get_document_or_404(s, document_id)
    payload = json_payload()
    errors = validate_document_payload(payload, partial=True)
    if errors:
        return json_error("Validation failed", 400, errors=errors)
    try:
        update_document(s, d, payload, current_user(), reason=(payload.get("reason") or None))
    except ValueError as e:
        s.rollback()
        return json_error(str(e), 400)
    s.commit()
    return jsonify(document_to_dict(d))


@bp.delete("/documents/<int:document_id>")
@require_permission("documents.delete")
def documents_delete(document_id: int):
    s = db_session()
    d = _get_document_or_404(s, document_id)
    try:
        delete_document(s, d, current_user(), storage=storage_from_config(current_app.config))
    except ValueError as e:
        s.rollback()
        return json_error(str(e), 409)
    s.commit()
    return jsonify({"ok": True})


@bp.post("/documents/<int:document_id>/file")
@require_permission("documents.edit")
def documents_file_upload(document_id: int):
    s = db_session()
    d = _get_document_or_404(s, document_id)
    f = request.files.get("file")
    if not f or not f.filename:
        return json_error("A file is required", 400)
    try:
        attach_document_file(
            s,
            d,
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
    return jsonify(document_to_dict(d))


@bp.get("/documents/<int:document_id>/file")
@require_permission("documents.view")
def documents_file_download(document_id: int):
    s = db_session()
    d = _get_document_or_404(s, document_id)
    if not d.file_storage_key:
        abort(404)
    try:
        fobj = storage_from_config(current_app.config).open(d.file_storage_key)
    except StorageError:
        current_app.logger.warning("Document file missing from storage id=%s key=%s", d.id, d.file_storage_key)
        abort(404)
    record_event(
        s,
        actor=current_user(),
        action="document.file_download",
        entity_type="Document",
        entity_id=str(d.id),
        metadata={"storage_key": d.file_storage_key},
    )
    s.commit()
    return send_file(
        fobj,
        mimetype=d.file_mime_type or "application/octet-stream",
        as_attachment=True,
        download_name=d.file_name or f"document_{d.id}",
        max_age=0,
    )


@bp.get("/documents/<int:document_id>/history")
@require_permission("documents.view")
def documents_history(document_id: int):
    s = db_session()
    d = _get_document_or_404(s, document_id)
    page, limit = page_args(default_limit=15)
    rows = document_history(s, d, page=page, limit=limit)
    total = timeline_count(s, "DOCUMENT", d.id)
    return jsonify(paginated([activity_to_dict(e) for e in rows], total, page, limit))
