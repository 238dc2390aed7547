from __future__ import annotations

from flask import Blueprint, abort, current_app, jsonify, request
from sqlalchemy.orm import Session

from app.erm.auth import actor_employee, current_user
from app.erm.db import db_session
from app.erm.modules.resources.assignments import (
    assignment_to_dict,
    create_assignment,
    get_available_license_count,
    get_shared_resource_users,
    list_assignments,
    revoke_assignment,
    update_assignment_status,
    validate_assignment,
)
from app.erm.modules.resources.catalog import (
    category_to_dict,
    create_category,
    create_property,
    create_resource_type,
    delete_category,
    delete_property,
    delete_resource_type,
    list_categories,
    list_properties,
    list_resource_types,
    properties_for_type,
    property_to_dict,
    resource_type_to_dict,
    seed_system_catalog,
    update_category,
    update_property,
    update_resource_type,
    validate_property_payload,
)
from app.erm.modules.resources.compat import migrate_legacy_items, normalize_resource, normalize_resource_item
from app.erm.modules.resources.items import (
    create_resource_item,
    delete_resource_item,
    item_to_dict,
    list_resource_items,
    update_item_status,
    update_resource_item,
)
from app.erm.modules.resources.models import (
    PropertyCatalog,
    Resource,
    ResourceAssignment,
    ResourceCategory,
    ResourceItem,
    ResourceType,
)
from app.erm.modules.resources.service import (
    can_modify_schema,
    create_resource_with_schema,
    delete_resource,
    get_resource_detail,
    list_resources,
    lock_resource_schema,
    resource_to_dict,
    update_property_schema,
    update_resource,
)
from app.erm.rbac import require_permission
from app.erm.utils import json_error, json_payload, page_args, paginated, parse_int

bp = Blueprint("resources", __name__)


def _get_or_404(s: Session, model, obj_id: int):
    obj = s.get(model, obj_id)
    if not obj:
        abort(404)
    return obj


def _arg_int(name: str) -> int | None:
    try:
        return parse_int(request.args.get(name))
    except ValueError:
        return None


def _rejected(s: Session, e: ValueError, status: int = 400):
    s.rollback()
    return json_error(str(e), status)


# ---------------------------------------------------------------------------
# Resource types
# ---------------------------------------------------------------------------


@bp.get("/resource-types")
@require_permission("resources.view")
def resource_types_list():
    s = db_session()
    return jsonify({"items": [resource_type_to_dict(rt, with_categories=True) for rt in list_resource_types(s)]})


@bp.post("/resource-types")
@require_permission("catalog.manage")
def resource_types_create():
    s = db_session()
    try:
        rt = create_resource_type(s, json_payload(), current_user())
    except ValueError as e:
        return _rejected(s, e)
    s.commit()
    return jsonify(resource_type_to_dict(rt, with_categories=True)), 201


@bp.post("/resource-types/seed")
@require_permission("catalog.manage")
def resource_types_seed():
    s = db_session()
    created = seed_system_catalog(s)
    s.commit()
    return jsonify({"ok": True, "created": created})


@bp.get("/resource-types/<int:type_id>")
@require_permission("resources.view")
def resource_types_detail(type_id: int):
    s = db_session()
    rt = _get_or_404(s, ResourceType, type_id)
    return jsonify(resource_type_to_dict(rt, with_categories=True))


@bp.get("/resource-types/<int:type_id>/properties")
@require_permission("resources.view")
def resource_types_properties(type_id: int):
    s = db_session()
    rt = _get_or_404(s, ResourceType, type_id)
    return jsonify(properties_for_type(s, rt))


@bp.route("/resource-types/<int:type_id>", methods=["PUT", "PATCH"])
@require_permission("catalog.manage")
def resource_types_update(type_id: int):
    s = db_session()
    rt = _get_or_404(s, ResourceType, type_id)
    try:
        update_resource_type(s, rt, json_payload(), current_user())
    except ValueError as e:
        return _rejected(s, e)
    s.commit()
    return jsonify(resource_type_to_dict(rt, with_categories=True))


@bp.delete("/resource-types/<int:type_id>")
@require_permission("catalog.manage")
def resource_types_delete(type_id: int):
    s = db_session()
    rt = _get_or_404(s, ResourceType, type_id)
    try:
        delete_resource_type(s, rt, current_user())
    except ValueError as e:
        return _rejected(s, e, 409)
    s.commit()
    return jsonify({"ok": True})


# ---------------------------------------------------------------------------
# Categories
# ---------------------------------------------------------------------------


@bp.get("/resource-categories")
@require_permission("resources.view")
def categories_list():
    s = db_session()
    return jsonify({"items": [category_to_dict(c) for c in list_categories(s, type_id=_arg_int("type_id"))]})


@bp.post("/resource-categories")
@require_permission("catalog.manage")
def categories_create():
    s = db_session()
    try:
        c = create_category(s, json_payload(), current_user())
    except ValueError as e:
        return _rejected(s, e)
    s.commit()
    return jsonify(category_to_dict(c)), 201


@bp.get("/resource-categories/<int:category_id>")
@require_permission("resources.view")
def categories_detail(category_id: int):
    s = db_session()
    return jsonify(category_to_dict(_get_or_404(s, ResourceCategory, category_id)))


@bp.route("/resource-categories/<int:category_id>", methods=["PUT", "PATCH"])
@require_permission("catalog.manage")
def categories_update(category_id: int):
    s = db_session()
    c = _get_or_404(s, ResourceCategory, category_id)
    try:
        update_category(s, c, json_payload(), current_user())
    except ValueError as e:
        return _rejected(s, e)
    s.commit()
    return jsonify(category_to_dict(c))


@bp.delete("/resource-categories/<int:category_id>")
@require_permission("catalog.manage")
def categories_delete(category_id: int):
    s = db_session()
    c = _get_or_404(s, ResourceCategory, category_id)
    try:
        delete_category(s, c, current_user())
    except ValueError as e:
        return _rejected(s, e, 409)
    s.commit()
    return jsonify({"ok": True})


# ---------------------------------------------------------------------------
# Property catalog
# ---------------------------------------------------------------------------


@bp.get("/property-catalog")
@require_permission("resources.view")
def properties_list():
    s = db_session()
    return jsonify({"items": [property_to_dict(p) for p in list_properties(s, type_id=_arg_int("type_id"))]})


@bp.post("/property-catalog")
@require_permission("catalog.manage")
def properties_create():
    s = db_session()
    payload = json_payload()
    errors = validate_property_payload(payload)
    if errors:
        return json_error("Validation failed", 400, errors=errors)
    try:
        p = create_property(s, payload, current_user())
    except ValueError as e:
        return _rejected(s, e)
    s.commit()
    return jsonify(property_to_dict(p)), 201


@bp.get("/property-catalog/<int:property_id>")
@require_permission("resources.view")
def properties_detail(property_id: int):
    s = db_session()
    return jsonify(property_to_dict(_get_or_404(s, PropertyCatalog, property_id)))


@bp.route("/property-catalog/<int:property_id>", methods=["PUT", "PATCH"])
@require_permission("catalog.manage")
def properties_update(property_id: int):
    s = db_session()
    p = _get_or_404(s, PropertyCatalog, property_id)
    payload = json_payload()
    errors = validate_property_payload(payload, partial=True)
    if errors:
        return json_error("Validation failed", 400, errors=errors)
    try:
        update_property(s, p, payload, current_user())
    except ValueError as e:
        return _rejected(s, e)
    s.commit()
    return jsonify(property_to_dict(p))


@bp.delete("/property-catalog/<int:property_id>")
@require_permission("catalog.manage")
def properties_delete(property_id: int):
    s = db_session()
    p = _get_or_404(s, PropertyCatalog, property_id)
    try:
        delete_property(s, p, current_user())
    except ValueError as e:
        return _rejected(s, e, 409)
    s.commit()
    return jsonify({"ok": True})


# ---------------------------------------------------------------------------
# Resources
# ---------------------------------------------------------------------------


@bp.get("/resources")
@require_permission("resources.view")
def resources_list():
    s = db_session()
    page, limit = page_args()
    rows, total = list_resources(
        s,
        type_id=_arg_int("type_id"),
        category_id=_arg_int("category_id"),
        status=request.args.get("status"),
        search=request.args.get("search"),
        page=page,
        limit=limit,
    )
    return jsonify(paginated([resource_to_dict(r, include_schema=False) for r in rows], total, page, limit))


@bp.post("/resources")
@require_permission("resources.create")
def resources_create():
    s = db_session()
    try:
        r = create_resource_with_schema(s, json_payload(), current_user())
    except ValueError as e:
        return _rejected(s, e)
    s.commit()
    return jsonify(resource_to_dict(r)), 201


@bp.post("/resources/migrate-legacy")
@require_permission("catalog.manage")
def resources_migrate_legacy():
    s = db_session()
    counts = migrate_legacy_items(s, current_user())
    s.commit()
    return jsonify({"ok": True, **counts})


@bp.get("/resources/<int:resource_id>")
@require_permission("resources.view")
def resources_detail(resource_id: int):
    s = db_session()
    r = _get_or_404(s, Resource, resource_id)
    return jsonify(get_resource_detail(s, r))


@bp.route("/resources/<int:resource_id>", methods=["PUT", "PATCH"])
@require_permission("resources.edit")
def resources_update(resource_id: int):
    s = db_session()
    r = _get_or_404(s, Resource, resource_id)
    payload = json_payload()
    try:
        update_resource(s, r, payload, current_user(), reason=(payload.get("reason") or None))
    except ValueError as e:
        return _rejected(s, e)
    s.commit()
    return jsonify(resource_to_dict(r))


@bp.delete("/resources/<int:resource_id>")
@require_permission("resources.delete")
def resources_delete(resource_id: int):
    s = db_session()
    r = _get_or_404(s, Resource, resource_id)
    try:
        delete_resource(s, r, current_user())
    except ValueError as e:
        current_app.logger.info("Resource delete refused id=%s: %s", resource_id, e)
        return _rejected(s, e, 409)
    s.commit()
    return jsonify({"ok": True})


@bp.post("/resources/<int:resource_id>/lock-schema")
@require_permission("resources.edit")
def resources_lock_schema(resource_id: int):
    s = db_session()
    r = _get_or_404(s, Resource, resource_id)
    changed = lock_resource_schema(s, r, current_user())
    s.commit()
    return jsonify({"ok": True, "locked": True, "changed": changed})


@bp.get("/resources/<int:resource_id>/schema")
@require_permission("resources.view")
def resources_schema(resource_id: int):
    s = db_session()
    r = _get_or_404(s, Resource, resource_id)
    return jsonify({"property_schema": list(r.property_schema or []), "schema_locked": r.schema_locked})


@bp.put("/resources/<int:resource_id>/schema")
@require_permission("resources.edit")
def resources_schema_update(resource_id: int):
    s = db_session()
    r = _get_or_404(s, Resource, resource_id)
    payload = json_payload()
    try:
        update_property_schema(s, r, payload.get("property_schema", payload.get("propertySchema")), current_user())
    except ValueError as e:
        return _rejected(s, e)
    s.commit()
    return jsonify({"property_schema": r.property_schema, "schema_locked": r.schema_locked})


@bp.get("/resources/<int:resource_id>/schema/can-modify")
@require_permission("resources.view")
def resources_schema_can_modify(resource_id: int):
    s = db_session()
    r = _get_or_404(s, Resource, resource_id)
    ok, reason = can_modify_schema(s, r)
    return jsonify({"can_modify": ok, "reason": reason})


@bp.get("/resources/<int:resource_id>/licenses")
@require_permission("resources.view")
def resources_licenses(resource_id: int):
    s = db_session()
    r = _get_or_404(s, Resource, resource_id)
    return jsonify(get_available_license_count(s, r))


@bp.get("/resources/<int:resource_id>/shared-users")
@require_permission("resources.view")
def resources_shared_users(resource_id: int):
    s = db_session()
    r = _get_or_404(s, Resource, resource_id)
    return jsonify({"items": [assignment_to_dict(a) for a in get_shared_resource_users(s, r.id)]})


@bp.get("/resources/<int:resource_id>/compat")
@require_permission("resources.view")
def resources_compat(resource_id: int):
    s = db_session()
    r = _get_or_404(s, Resource, resource_id)
    items = s.query(ResourceItem).filter(ResourceItem.resource_id == r.id).order_by(ResourceItem.id.asc()).all()
    return jsonify({"resource": normalize_resource(r), "items": [normalize_resource_item(i) for i in items]})


# ---------------------------------------------------------------------------
# Items
# ---------------------------------------------------------------------------


@bp.get("/resources/<int:resource_id>/items")
@require_permission("resources.view")
def items_list(resource_id: int):
    s = db_session()
    r = _get_or_404(s, Resource, resource_id)
    page, limit = page_args()
    rows, total = list_resource_items(
        s,
        resource_id=r.id,
        status=request.args.get("status"),
        search=request.args.get("search"),
        page=page,
        limit=limit,
    )
    return jsonify(paginated([item_to_dict(i) for i in rows], total, page, limit))


@bp.post("/resources/<int:resource_id>/items")
@require_permission("resources.create")
def items_create(resource_id: int):
    s = db_session()
    r = _get_or_404(s, Resource, resource_id)
    try:
        item = create_resource_item(s, r, json_payload(), current_user())
    except ValueError as e:
        return _rejected(s, e)
    s.commit()
    return jsonify(item_to_dict(item)), 201


@bp.get("/resource-items/<int:item_id>")
@require_permission("resources.view")
def items_detail(item_id: int):
    s = db_session()
    return jsonify(item_to_dict(_get_or_404(s, ResourceItem, item_id)))


@bp.route("/resource-items/<int:item_id>", methods=["PUT", "PATCH"])
@require_permission("resources.edit")
def items_update(item_id: int):
    s = db_session()
    item = _get_or_404(s, ResourceItem, item_id)
    try:
        update_resource_item(s, item, json_payload(), current_user())
    except ValueError as e:
        return _rejected(s, e)
    s.commit()
    return jsonify(item_to_dict(item))


@bp.post("/resource-items/<int:item_id>/status")
@require_permission("resources.edit")
def items_status(item_id: int):
    s = db_session()
    item = _get_or_404(s, ResourceItem, item_id)
    payload = json_payload()
    try:
        update_item_status(s, item, (payload.get("status") or "").strip(), current_user(), notes=payload.get("notes"))
    except ValueError as e:
        return _rejected(s, e)
    s.commit()
    return jsonify(item_to_dict(item))


@bp.delete("/resource-items/<int:item_id>")
@require_permission("resources.delete")
def items_delete(item_id: int):
    s = db_session()
    item = _get_or_404(s, ResourceItem, item_id)
    try:
        delete_resource_item(s, item, current_user())
    except ValueError as e:
        return _rejected(s, e, 409)
    s.commit()
    return jsonify({"ok": True})


# ---------------------------------------------------------------------------
# Assignments
# ---------------------------------------------------------------------------


def _assignment_args(payload: dict) -> tuple[int | None, int | None, int | None]:
    try:
        return (
            parse_int(payload.get("employee_id")),
            parse_int(payload.get("resource_id")),
            parse_int(payload.get("item_id")),
        )
    except ValueError:
        return None, None, None


@bp.get("/assignments")
@require_permission("resources.view")
def assignments_list():
    s = db_session()
    page, limit = page_args()
    rows, total = list_assignments(
        s,
        employee_id=_arg_int("employee_id"),
        resource_id=_arg_int("resource_id"),
        status=request.args.get("status"),
        assignment_type=request.args.get("assignment_type"),
        page=page,
        limit=limit,
    )
    return jsonify(paginated([assignment_to_dict(a) for a in rows], total, page, limit))


@bp.post("/assignments/validate")
@require_permission("resources.view")
def assignments_validate():
    s = db_session()
    payload = json_payload()
    employee_id, resource_id, item_id = _assignment_args(payload)
    ok, error, assignment_type = validate_assignment(
        s, employee_id, resource_id, item_id, payload.get("assignment_type")
    )
    return jsonify({"valid": ok, "error": error, "assignment_type": assignment_type})


@bp.post("/assignments")
@require_permission("resources.assign")
def assignments_create():
    s = db_session()
    payload = json_payload()
    employee_id, resource_id, item_id = _assignment_args(payload)
    if employee_id is None or resource_id is None:
        return json_error("employee_id and resource_id are required", 400)
    user = current_user()
    try:
        a = create_assignment(
            s,
            employee_id=employee_id,
            resource_id=resource_id,
            item_id=item_id,
            requested_type=payload.get("assignment_type"),
            notes=(payload.get("notes") or None),
            assigned_by=actor_employee(s, user),
            user=user,
        )
    except ValueError as e:
        return _rejected(s, e)
    s.commit()
    return jsonify(assignment_to_dict(a)), 201


@bp.get("/assignments/<int:assignment_id>")
@require_permission("resources.view")
def assignments_detail(assignment_id: int):
    s = db_session()
    return jsonify(assignment_to_dict(_get_or_404(s, ResourceAssignment, assignment_id)))


@bp.post("/assignments/<int:assignment_id>/status")
@require_permission("resources.assign")
def assignments_status(assignment_id: int):
    s = db_session()
    a = _get_or_404(s, ResourceAssignment, assignment_id)
    payload = json_payload()
    user = current_user()
    try:
        update_assignment_status(
            s,
            a,
            (payload.get("status") or "").strip(),
            user=user,
            notes=(payload.get("notes") or None),
            performer=actor_employee(s, user),
        )
    except ValueError as e:
        return _rejected(s, e)
    s.commit()
    return jsonify(assignment_to_dict(a))


@bp.post("/assignments/<int:assignment_id>/revoke")
@require_permission("resources.assign")
def assignments_revoke(assignment_id: int):
    s = db_session()
    a = _get_or_404(s, ResourceAssignment, assignment_id)
    payload = json_payload()
    reason = (payload.get("reason") or "").strip()
    if not reason:
        return json_error("A reason is required to revoke an assignment", 400)
    user = current_user()
    try:
        revoke_assignment(s, a, reason, user=user, performer=actor_employee(s, user))
    except ValueError as e:
        return _rejected(s, e)
    s.commit()
    return jsonify(assignment_to_dict(a))
