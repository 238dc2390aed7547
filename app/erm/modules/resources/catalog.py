from __future__ import annotations

import logging
import re
from datetime import datetime
from typing import TYPE_CHECKING, Any

from sqlalchemy import or_

from app.erm.audit import record_event, record_field_changes
from app.erm.constants import (
    DEFAULT_MANDATORY_PROPERTIES,
    PROPERTY_DATA_TYPES,
    SYSTEM_CATEGORIES,
    SYSTEM_PROPERTIES,
    SYSTEM_TYPE_DESCRIPTIONS,
    TYPE_PROPERTY_SUGGESTIONS,
)
from app.erm.modules.resources.models import PropertyCatalog, Resource, ResourceCategory, ResourceType
from app.erm.utils import clean_str, iso, parse_int

if TYPE_CHECKING:
    from sqlalchemy.orm import Session
    from app.erm.models import User

logger = logging.getLogger(__name__)

PROPERTY_KEY_RE = re.compile(r"^[a-z][a-zA-Z0-9]*$")


def resource_type_to_dict(rt: ResourceType, *, with_categories: bool = False) -> dict[str, Any]:
    out: dict[str, Any] = {
        "id": rt.id,
        "name": rt.name,
        "description": rt.description,
        "is_system": rt.is_system,
        "mandatory_properties": list(rt.mandatory_properties or []),
        "created_at": iso(rt.created_at),
        "updated_at": iso(rt.updated_at),
    }
    if with_categories:
        out["categories"] = [category_to_dict(c) for c in sorted(rt.categories, key=lambda c: c.name)]
    return out


def category_to_dict(c: ResourceCategory) -> dict[str, Any]:
    return {
        "id": c.id,
        "name": c.name,
        "description": c.description,
        "resource_type_id": c.resource_type_id,
        "resource_type": c.resource_type.name if c.resource_type else None,
        "is_system": c.is_system,
    }


def property_to_dict(p: PropertyCatalog) -> dict[str, Any]:
    return {
        "id": p.id,
        "key": p.key,
        "label": p.label,
        "dataType": p.data_type,
        "description": p.description,
        "defaultValue": p.default_value,
        "is_system": p.is_system,
        "resource_type_id": p.resource_type_id,
    }


# ---------------------------------------------------------------------------
# Resource types
# ---------------------------------------------------------------------------


def list_resource_types(s: "Session") -> list[ResourceType]:
    return s.query(ResourceType).order_by(ResourceType.is_system.desc(), ResourceType.name.asc()).all()


def _validate_type_name(s: "Session", name: str | None, *, exclude_id: int | None = None) -> str:
    name = clean_str(name)
    if not name:
        raise ValueError("Resource type name is required.")
    if len(name) > 100:
        raise ValueError("Resource type name must be at most 100 characters.")
    q = s.query(ResourceType).filter(ResourceType.name == name)
    if exclude_id is not None:
        q = q.filter(ResourceType.id != exclude_id)
    if q.first():
        raise ValueError(f'Resource type "{name}" already exists.')
    return name


def _validate_mandatory_keys(s: "Session", keys: Any) -> list[str]:
    if keys is None:
        return []
    if not isinstance(keys, list) or not all(isinstance(k, str) for k in keys):
        raise ValueError("mandatory_properties must be a list of property keys.")
    keys = list(dict.fromkeys(k.strip() for k in keys if k.strip()))
    known = {k for (k,) in s.query(PropertyCatalog.key).filter(PropertyCatalog.key.in_(keys)).all()} if keys else set()
    unknown = [k for k in keys if k not in known]
    if unknown:
        raise ValueError(f"Unknown property keys: {', '.join(unknown)}")
    return keys


def create_resource_type(s: "Session", payload: dict, user: "User") -> ResourceType:
    name = _validate_type_name(s, payload.get("name"))
    mandatory = _validate_mandatory_keys(s, payload.get("mandatory_properties"))
    now = datetime.utcnow()
    rt = ResourceType(
        name=name,
        description=clean_str(payload.get("description")),
        is_system=False,
        mandatory_properties=mandatory,
        created_at=now,
        updated_at=now,
    )
    s.add(rt)
    s.flush()
    record_event(
        s,
        actor=user,
        action="resource_type.create",
        entity_type="ResourceType",
        entity_id=str(rt.id),
        metadata={"name": rt.name, "mandatory_properties": mandatory},
    )
    logger.info("Resource type created id=%s name=%s", rt.id, rt.name)
    return rt


def update_resource_type(s: "Session", rt: ResourceType, payload: dict, user: "User") -> ResourceType:
    changes: dict[str, dict[str, Any]] = {}

    if "name" in payload:
        new_name = clean_str(payload.get("name"))
        if new_name != rt.name:
            if rt.is_system:
                raise ValueError("System resource type names cannot be changed.")
            new_name = _validate_type_name(s, new_name, exclude_id=rt.id)
            changes["name"] = {"old": rt.name, "new": new_name}
            rt.name = new_name

    if "description" in payload:
        new_desc = clean_str(payload.get("description"))
        if new_desc != rt.description:
            changes["description"] = {"old": rt.description, "new": new_desc}
            rt.description = new_desc

    if "mandatory_properties" in payload:
        keys = _validate_mandatory_keys(s, payload.get("mandatory_properties"))
        if rt.is_system:
            # Defaults for system types are always kept.
            for k in DEFAULT_MANDATORY_PROPERTIES.get(rt.name, []):
                if k not in keys:
                    keys.insert(0, k)
        old = list(rt.mandatory_properties or [])
        if keys != old:
            changes["mandatory_properties"] = {"old": old, "new": keys}
            rt.mandatory_properties = keys

    if not changes:
        return rt
    rt.updated_at = datetime.utcnow()
    s.flush()
    record_field_changes(
        s,
        actor=user,
        action_prefix="resource_type",
        entity_type="ResourceType",
        entity_id=str(rt.id),
        changes=changes,
    )
    return rt


def delete_resource_type(s: "Session", rt: ResourceType, user: "User") -> None:
    if rt.is_system:
        raise ValueError("System resource types cannot be deleted.")
    n_resources = s.query(Resource).filter(Resource.resource_type_id == rt.id).count()
    if n_resources:
        raise ValueError(f"Cannot delete resource type: {n_resources} resource(s) use it.")
    n_categories = s.query(ResourceCategory).filter(ResourceCategory.resource_type_id == rt.id).count()
    if n_categories:
        raise ValueError(f"Cannot delete resource type: it still has {n_categories} categor(ies). Delete them first.")
    rt_id, name = rt.id, rt.name
    s.delete(rt)
    s.flush()
    record_event(
        s, actor=user, action="resource_type.delete", entity_type="ResourceType", entity_id=str(rt_id), metadata={"name": name}
    )
    logger.info("Resource type deleted id=%s", rt_id)


# ---------------------------------------------------------------------------
# Categories
# ---------------------------------------------------------------------------


def list_categories(s: "Session", *, type_id: int | None = None) -> list[ResourceCategory]:
    q = s.query(ResourceCategory)
    if type_id is not None:
        q = q.filter(ResourceCategory.resource_type_id == type_id)
    return q.order_by(ResourceCategory.resource_type_id.asc(), ResourceCategory.name.asc()).all()


def _check_category_unique(s: "Session", name: str, type_id: int, *, exclude_id: int | None = None) -> None:
    q = s.query(ResourceCategory).filter(ResourceCategory.name == name, ResourceCategory.resource_type_id == type_id)
    if exclude_id is not None:
        q = q.filter(ResourceCategory.id != exclude_id)
    if q.first():
        raise ValueError(f'Category "{name}" already exists for this resource type.')


def create_category(s: "Session", payload: dict, user: "User") -> ResourceCategory:
    name = clean_str(payload.get("name"))
    if not name:
        raise ValueError("Category name is required.")
    if len(name) > 100:
        raise ValueError("Category name must be at most 100 characters.")
    type_id = parse_int(payload.get("resource_type_id"))
    rt = s.get(ResourceType, type_id) if type_id is not None else None
    if rt is None:
        raise ValueError("A valid resource_type_id is required.")
    _check_category_unique(s, name, rt.id)

    now = datetime.utcnow()
    c = ResourceCategory(
        name=name,
        description=clean_str(payload.get("description")),
        resource_type_id=rt.id,
        is_system=False,
        created_at=now,
        updated_at=now,
    )
    s.add(c)
    s.flush()
    record_event(
        s,
        actor=user,
        action="resource_category.create",
        entity_type="ResourceCategory",
        entity_id=str(c.id),
        metadata={"name": name, "resource_type": rt.name},
    )
    return c


def update_category(s: "Session", c: ResourceCategory, payload: dict, user: "User") -> ResourceCategory:
    changes: dict[str, dict[str, Any]] = {}
    if "name" in payload:
        new_name = clean_str(payload.get("name"))
        if not new_name:
            raise ValueError("Category name is required.")
        if new_name != c.name:
            if c.is_system:
                raise ValueError("System category names cannot be changed.")
            _check_category_unique(s, new_name, c.resource_type_id, exclude_id=c.id)
            changes["name"] = {"old": c.name, "new": new_name}
            c.name = new_name
    if "description" in payload:
        new_desc = clean_str(payload.get("description"))
        if new_desc != c.description:
            changes["description"] = {"old": c.description, "new": new_desc}
            c.description = new_desc
    if not changes:
        return c
    c.updated_at = datetime.utcnow()
    s.flush()
    record_field_changes(
        s,
        actor=user,
        action_prefix="resource_category",
        entity_type="ResourceCategory",
        entity_id=str(c.id),
        changes=changes,
    )
    return c


def delete_category(s: "Session", c: ResourceCategory, user: "User") -> None:
    if c.is_system:
        raise ValueError("System categories cannot be deleted.")
    n_resources = s.query(Resource).filter(Resource.resource_category_id == c.id).count()
    if n_resources:
        raise ValueError(f"Cannot delete category: {n_resources} resource(s) use it.")
    c_id, name = c.id, c.name
    s.delete(c)
    s.flush()
    record_event(
        s,
        actor=user,
        action="resource_category.delete",
        entity_type="ResourceCategory",
        entity_id=str(c_id),
        metadata={"name": name},
    )


# ---------------------------------------------------------------------------
# Property catalog
# ---------------------------------------------------------------------------


def list_properties(s: "Session", *, type_id: int | None = None) -> list[PropertyCatalog]:
    """All properties, or the ones usable for a type (type-specific plus common)."""
    q = s.query(PropertyCatalog)
    if type_id is not None:
        q = q.filter(or_(PropertyCatalog.resource_type_id == type_id, PropertyCatalog.resource_type_id.is_(None)))
    return q.order_by(PropertyCatalog.is_system.desc(), PropertyCatalog.key.asc()).all()


def validate_property_payload(payload: dict, *, partial: bool = False) -> list[str]:
    errors: list[str] = []
    if not partial or "key" in payload:
        key = clean_str(payload.get("key")) or ""
        if not key:
            errors.append("Property key is required.")
        elif not PROPERTY_KEY_RE.match(key):
            errors.append("Property key must be camelCase: start with a lowercase letter, letters and digits only.")
    if (not partial or "label" in payload) and not clean_str(payload.get("label")):
        errors.append("Property label is required.")
    if not partial or "dataType" in payload or "data_type" in payload:
        dt = (clean_str(payload.get("dataType") or payload.get("data_type")) or "").upper()
        if dt not in PROPERTY_DATA_TYPES:
            errors.append(f"Invalid data type. Must be one of: {', '.join(PROPERTY_DATA_TYPES)}")
    return errors


def create_property(s: "Session", payload: dict, user: "User") -> PropertyCatalog:
    key = clean_str(payload.get("key")) or ""
    if s.query(PropertyCatalog).filter(PropertyCatalog.key == key).first():
        raise ValueError(f'Property key "{key}" already exists.')
    type_id = parse_int(payload.get("resource_type_id"))
    if type_id is not None and s.get(ResourceType, type_id) is None:
        raise ValueError("Resource type not found.")

    now = datetime.utcnow()
    p = PropertyCatalog(
        key=key,
        label=clean_str(payload.get("label")) or key,
        data_type=(clean_str(payload.get("dataType") or payload.get("data_type")) or "").upper(),
        description=clean_str(payload.get("description")),
        default_value=payload.get("defaultValue", payload.get("default_value")),
        is_system=False,
        resource_type_id=type_id,
        created_at=now,
        updated_at=now,
    )
    s.add(p)
    s.flush()
    record_event(
        s,
        actor=user,
        action="property_catalog.create",
        entity_type="PropertyCatalog",
        entity_id=str(p.id),
        metadata={"key": p.key, "data_type": p.data_type},
    )
    return p


def update_property(s: "Session", p: PropertyCatalog, payload: dict, user: "User") -> PropertyCatalog:
    if p.is_system:
        raise ValueError("System properties cannot be modified.")
    if "key" in payload and clean_str(payload.get("key")) != p.key:
        raise ValueError("Property keys cannot be changed.")

    changes: dict[str, dict[str, Any]] = {}
    updates: dict[str, Any] = {}
    if "label" in payload:
        updates["label"] = clean_str(payload.get("label"))
    if "description" in payload:
        updates["description"] = clean_str(payload.get("description"))
    if "dataType" in payload or "data_type" in payload:
        updates["data_type"] = (clean_str(payload.get("dataType") or payload.get("data_type")) or "").upper()
    if "defaultValue" in payload or "default_value" in payload:
        updates["default_value"] = payload.get("defaultValue", payload.get("default_value"))
    if "resource_type_id" in payload:
        type_id = parse_int(payload.get("resource_type_id"))
        if type_id is not None and s.get(ResourceType, type_id) is None:
            raise ValueError("Resource type not found.")
        updates["resource_type_id"] = type_id

    for field, new_value in updates.items():
        old_value = getattr(p, field)
        if new_value != old_value:
            changes[field] = {"old": old_value, "new": new_value}
            setattr(p, field, new_value)
    if not changes:
        return p
    p.updated_at = datetime.utcnow()
    s.flush()
    record_field_changes(
        s,
        actor=user,
        action_prefix="property_catalog",
        entity_type="PropertyCatalog",
        entity_id=str(p.id),
        changes=changes,
    )
    return p


def resources_using_property(s: "Session", key: str) -> list[Resource]:
    out = []
    for r in s.query(Resource).filter(Resource.property_schema.isnot(None)).all():
        if any((d or {}).get("key") == key for d in (r.property_schema or [])):
            out.append(r)
    return out


def delete_property(s: "Session", p: PropertyCatalog, user: "User") -> None:
    if p.is_system:
        raise ValueError("System properties cannot be deleted.")
    users = resources_using_property(s, p.key)
    if users:
        names = ", ".join(r.name for r in users[:5])
        raise ValueError(f'Property "{p.key}" is used by {len(users)} resource schema(s): {names}')
    p_id, key = p.id, p.key
    s.delete(p)
    s.flush()
    record_event(
        s, actor=user, action="property_catalog.delete", entity_type="PropertyCatalog", entity_id=str(p_id), metadata={"key": key}
    )


def properties_for_type(s: "Session", rt: ResourceType) -> dict[str, Any]:
    """Property catalog entries grouped for building a schema of this type."""
    type_specific = (
        s.query(PropertyCatalog)
        .filter(PropertyCatalog.resource_type_id == rt.id)
        .order_by(PropertyCatalog.key.asc())
        .all()
    )
    common = (
        s.query(PropertyCatalog)
        .filter(PropertyCatalog.resource_type_id.is_(None))
        .order_by(PropertyCatalog.key.asc())
        .all()
    )
    return {
        "resource_type": resource_type_to_dict(rt),
        "type_specific": [property_to_dict(p) for p in type_specific],
        "common": [property_to_dict(p) for p in common],
        "suggested_keys": list(TYPE_PROPERTY_SUGGESTIONS.get(rt.name, [])),
        "mandatory_keys": list(rt.mandatory_properties or []),
    }


def seed_system_catalog(s: "Session") -> dict[str, int]:
    """Idempotently create the system types, categories and properties."""
    created = {"types": 0, "categories": 0, "properties": 0}
    now = datetime.utcnow()

    types: dict[str, ResourceType] = {}
    for name, mandatory in DEFAULT_MANDATORY_PROPERTIES.items():
        rt = s.query(ResourceType).filter(ResourceType.name == name).one_or_none()
        if rt is None:
            rt = ResourceType(
                name=name,
                description=SYSTEM_TYPE_DESCRIPTIONS.get(name),
                is_system=True,
                mandatory_properties=list(mandatory),
                created_at=now,
                updated_at=now,
            )
            s.add(rt)
            created["types"] += 1
        types[name] = rt
    s.flush()

    for type_name, names in SYSTEM_CATEGORIES.items():
        rt = types[type_name]
        for name in names:
            exists = (
                s.query(ResourceCategory)
                .filter(ResourceCategory.name == name, ResourceCategory.resource_type_id == rt.id)
                .one_or_none()
            )
            if exists is None:
                s.add(
                    ResourceCategory(
                        name=name, resource_type_id=rt.id, is_system=True, created_at=now, updated_at=now
                    )
                )
                created["categories"] += 1

    for key, label, data_type, description, type_name in SYSTEM_PROPERTIES:
        if s.query(PropertyCatalog).filter(PropertyCatalog.key == key).one_or_none() is None:
            s.add(
                PropertyCatalog(
                    key=key,
                    label=label,
                    data_type=data_type,
                    description=description,
                    is_system=True,
                    resource_type_id=types[type_name].id if type_name else None,
                    created_at=now,
                    updated_at=now,
                )
            )
            created["properties"] += 1
    s.flush()
    if any(created.values()):
        logger.info("Seeded system catalog: %s", created)
    return created
