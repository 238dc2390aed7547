from __future__ import annotations

import logging
from datetime import datetime
from typing import TYPE_CHECKING, Any

from sqlalchemy import func, or_

from app.erm.audit import record_event, record_field_changes
from app.erm.constants import DOCUMENT_CATEGORIES, DOCUMENT_STATUSES
from app.erm.modules.documents.models import Document
from app.erm.modules.employees.models import Employee
from app.erm.modules.timeline.service import entity_timeline, log_activity, log_status_changed
from app.erm.storage import versioned_key
from app.erm.utils import clean_str, iso, parse_int

if TYPE_CHECKING:
    from sqlalchemy.orm import Session
    from app.erm.models import User
    from app.erm.storage import Storage

logger = logging.getLogger(__name__)

# A change to any of these bumps the version.
_VERSIONED_FIELDS = ("content", "status")


def document_to_dict(d: Document) -> dict[str, Any]:
    return {
        "id": d.id,
        "title": d.title,
        "category": d.category,
        "content": d.content,
        "owner_id": d.owner_id,
        "owner": (
            {"id": d.owner.id, "name": d.owner.name, "email": d.owner.email, "department": d.owner.department}
            if d.owner
            else None
        ),
        "status": d.status,
        "version": d.version,
        "tags": list(d.tags or []),
        "file": (
            {"name": d.file_name, "size": d.file_size, "mime_type": d.file_mime_type}
            if d.file_storage_key
            else None
        ),
        "created_at": iso(d.created_at),
        "updated_at": iso(d.updated_at),
    }


def _clean_tags(value: Any) -> list[str]:
    if value is None:
        return []
    if not isinstance(value, list):
        raise ValueError("tags must be a list of strings.")
    tags: list[str] = []
    for raw in value:
        tag = clean_str(raw) if isinstance(raw, str) else None
        if tag and tag not in tags:
            tags.append(tag)
    return tags


def validate_document_payload(payload: dict, *, partial: bool = False) -> list[str]:
    errors: list[str] = []
    if (not partial or "title" in payload) and not clean_str(payload.get("title")):
        errors.append("Title is required.")
    if not partial or "category" in payload:
        if clean_str(payload.get("category")) not in DOCUMENT_CATEGORIES:
            errors.append(f"Invalid category. Must be one of: {', '.join(DOCUMENT_CATEGORIES)}")
    status = clean_str(payload.get("status"))
    if status and status not in DOCUMENT_STATUSES:
        errors.append(f"Invalid status. Must be one of: {', '.join(DOCUMENT_STATUSES)}")
    try:
        _clean_tags(payload.get("tags"))
    except ValueError as e:
        errors.append(str(e))
    try:
        parse_int(payload.get("owner_id"))
    except ValueError:
        errors.append("Invalid value for owner_id.")
    return errors


def create_document(s: "Session", payload: dict, user: "User") -> Document:
    owner = s.get(Employee, parse_int(payload.get("owner_id")) or 0)
    if owner is None:
        raise ValueError("Document owner not found.")

    now = datetime.utcnow()
    d = Document(
        title=clean_str(payload.get("title")) or "",
        category=clean_str(payload.get("category")) or "",
        content=clean_str(payload.get("content")) or "",
        owner_id=owner.id,
        status=clean_str(payload.get("status")) or "DRAFT",
        version=1,
        tags=_clean_tags(payload.get("tags")),
        created_at=now,
        updated_at=now,
        created_by_user_id=user.id if user else None,
    )
    s.add(d)
    s.flush()

    record_event(
        s,
        actor=user,
        action="document.create",
        entity_type="Document",
        entity_id=str(d.id),
        metadata={"title": d.title, "category": d.category, "status": d.status},
    )
    log_activity(
        s,
        entity_type="DOCUMENT",
        entity_id=d.id,
        activity_type="CREATED",
        title=f"Document created: {d.title}",
        metadata={"category": d.category, "status": d.status, "tags": d.tags, "hasFile": False},
        user=user,
    )
    logger.info("Document created id=%s category=%s", d.id, d.category)
    return d


def update_document(s: "Session", d: Document, payload: dict, user: "User", reason: str | None = None) -> Document:
    changes: dict[str, dict[str, Any]] = {}

    def _set(field: str, new_value: Any) -> None:
        old_value = getattr(d, field)
        if new_value != old_value:
            changes[field] = {"old": old_value, "new": new_value}
            setattr(d, field, new_value)

    if "title" in payload:
        title = clean_str(payload.get("title"))
        if not title:
            raise ValueError("Title cannot be empty.")
        _set("title", title)
    if "category" in payload:
        _set("category", clean_str(payload.get("category")))
    if "content" in payload:
        _set("content", clean_str(payload.get("content")) or "")
    if "tags" in payload:
        _set("tags", _clean_tags(payload.get("tags")))
    if "owner_id" in payload:
        owner = s.get(Employee, parse_int(payload.get("owner_id")) or 0)
        if owner is None:
            raise ValueError("Document owner not found.")
        _set("owner_id", owner.id)
    old_status = d.status
    if "status" in payload and clean_str(payload.get("status")):
        _set("status", clean_str(payload.get("status")))

    if not changes:
        return d
    if "content" in changes:
        # Audit rows note that the body changed, not the body itself.
        changes["content"] = {"old": "Content updated", "new": "Content updated"}
    if any(f in changes for f in _VERSIONED_FIELDS):
        d.version += 1
        changes["version"] = {"old": d.version - 1, "new": d.version}
    d.updated_at = datetime.utcnow()
    s.flush()

    record_field_changes(
        s,
        actor=user,
        action_prefix="document",
        entity_type="Document",
        entity_id=str(d.id),
        changes=changes,
        reason=reason,
    )
    log_activity(
        s,
        entity_type="DOCUMENT",
        entity_id=d.id,
        activity_type="UPDATED",
        title=f"Document updated: {d.title}",
        description=", ".join(sorted(changes)),
        metadata={"changes": changes, "version": d.version, "versionIncremented": "version" in changes},
        user=user,
    )
    if "status" in changes:
        log_status_changed(
            s,
            entity_type="DOCUMENT",
            entity_id=d.id,
            entity_name=d.title,
            old_status=old_status,
            new_status=d.status,
            user=user,
            metadata={"version": d.version},
        )
    logger.info("Document updated id=%s fields=%s", d.id, sorted(changes))
    return d


def delete_document(s: "Session", d: Document, user: "User", *, storage: "Storage | None" = None) -> None:
    if d.status == "PUBLISHED":
        raise ValueError("Published documents must be archived before deletion.")
    snapshot = {"title": d.title, "category": d.category, "status": d.status, "tags": list(d.tags or [])}
    storage_key = d.file_storage_key
    d_id = d.id
    s.delete(d)
    s.flush()
    if storage is not None and storage_key:
        storage.delete(storage_key)

    record_event(s, actor=user, action="document.delete", entity_type="Document", entity_id=str(d_id), metadata=snapshot)
    log_activity(
        s,
        entity_type="DOCUMENT",
        entity_id=d_id,
        activity_type="DELETED",
        title=f"Deleted document: {snapshot['title']}",
        description=f"Document \"{snapshot['title']}\" ({snapshot['category']}) was removed from the system",
        metadata=snapshot,
        user=user,
    )
    logger.info("Document deleted id=%s", d_id)


def attach_document_file(
    s: "Session",
    d: Document,
    *,
    filename: str,
    data: bytes,
    content_type: str | None,
    user: "User",
    storage: "Storage",
) -> Document:
    if d.status == "ARCHIVED":
        raise ValueError("Archived documents cannot be edited.")
    if not data:
        raise ValueError("Uploaded file is empty.")
    storage_key = versioned_key("documents", d.id, d.version + 1, filename, fallback="document.bin")
    storage.put_bytes(storage_key, data, content_type=content_type)

    old_key = d.file_storage_key
    d.file_storage_key = storage_key
    d.file_name = filename or "document.bin"
    d.file_size = len(data)
    d.file_mime_type = content_type or "application/octet-stream"
    d.version += 1
    d.updated_at = datetime.utcnow()
    s.flush()

    record_event(
        s,
        actor=user,
        action="document.file_upload",
        entity_type="Document",
        entity_id=str(d.id),
        metadata={"storage_key": storage_key, "previous_key": old_key, "size": d.file_size},
    )
    log_activity(
        s,
        entity_type="DOCUMENT",
        entity_id=d.id,
        activity_type="FILE_UPLOADED",
        title=f"File uploaded: {d.file_name}",
        metadata={"fileName": d.file_name, "size": d.file_size, "version": d.version},
        user=user,
    )
    return d


def list_documents(
    s: "Session",
    *,
    status: str | None = None,
    category: str | None = None,
    owner_id: int | None = None,
    tag: str | None = None,
    search: str | None = None,
    page: int = 1,
    limit: int = 20,
) -> tuple[list[Document], int]:
    q = s.query(Document)
    if status:
        q = q.filter(Document.status == status)
    if category:
        q = q.filter(Document.category == category)
    if owner_id is not None:
        q = q.filter(Document.owner_id == owner_id)
    if search:
        like = f"%{search.strip().lower()}%"
        q = q.filter(or_(func.lower(Document.title).like(like), func.lower(Document.content).like(like)))
    q = q.order_by(Document.created_at.desc(), Document.id.desc())
    if tag:
        # Tag filtering runs in Python over the JSON column.
        rows = [d for d in q.all() if tag in (d.tags or [])]
        return rows[(page - 1) * limit : page * limit], len(rows)
    total = q.count()
    return q.offset((page - 1) * limit).limit(limit).all(), total


def document_history(s: "Session", d: Document, *, page: int = 1, limit: int = 15):
    return entity_timeline(s, "DOCUMENT", d.id, page=page, limit=limit)
