from __future__ import annotations

from flask import Blueprint, jsonify, request

from app.erm.audit import audit_event_to_dict, list_audit_events
from app.erm.constants import ACTIVITY_TYPES, TIMELINE_ENTITY_TYPES
from app.erm.db import db_session
from app.erm.modules.timeline.service import activity_to_dict, all_timeline, entity_timeline, timeline_count
from app.erm.rbac import require_permission
from app.erm.utils import json_error, page_args, paginated, parse_date, parse_int

bp = Blueprint("timeline", __name__)


@bp.get("/timeline")
@require_permission("timeline.view")
def timeline_list():
    s = db_session()
    page, limit = page_args(default_limit=50)
    entity_type = (request.args.get("entity_type") or "").upper() or None
    activity_type = (request.args.get("activity_type") or "").upper() or None
    if entity_type and entity_type not in TIMELINE_ENTITY_TYPES:
        return json_error(f"Unknown entity type: {entity_type}", 400)
    if activity_type and activity_type not in ACTIVITY_TYPES:
        return json_error(f"Unknown activity type: {activity_type}", 400)
    try:
        performed_by_id = parse_int(request.args.get("performed_by_id"))
        date_from = parse_date(request.args.get("date_from"))
        date_to = parse_date(request.args.get("date_to"))
    except ValueError:
        return json_error("Invalid filter value", 400)
    rows, total = all_timeline(
        s,
        page=page,
        limit=limit,
        entity_type=entity_type,
        entity_id=request.args.get("entity_id") or None,
        activity_type=activity_type,
        performed_by_id=performed_by_id,
        date_from=date_from,
        date_to=date_to,
    )
    return jsonify(paginated([activity_to_dict(e) for e in rows], total, page, limit))


@bp.get("/timeline/<entity_type>/<entity_id>")
@require_permission("timeline.view")
def timeline_for_entity(entity_type: str, entity_id: str):
    entity_type = entity_type.upper()
    if entity_type not in TIMELINE_ENTITY_TYPES:
        return json_error(f"Unknown entity type: {entity_type}", 400)
    s = db_session()
    page, limit = page_args(default_limit=15)
    rows = entity_timeline(s, entity_type, entity_id, page=page, limit=limit)
    total = timeline_count(s, entity_type, entity_id)
    return jsonify(paginated([activity_to_dict(e) for e in rows], total, page, limit))


@bp.get("/audit")
@require_permission("audit.view")
def audit_list():
    s = db_session()
    page, limit = page_args(default_limit=15)
    rows, total = list_audit_events(
        s,
        entity_type=request.args.get("entity_type") or None,
        entity_id=request.args.get("entity_id") or None,
        page=page,
        limit=limit,
    )
    return jsonify(paginated([audit_event_to_dict(ev) for ev in rows], total, page, limit))
