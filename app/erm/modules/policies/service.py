from __future__ import annotations

import logging
from datetime import date, datetime
from typing import TYPE_CHECKING, Any

from sqlalchemy import func, or_

from app.erm.audit import record_event, record_field_changes
from app.erm.constants import POLICY_CATEGORIES, POLICY_MANUAL_STATUSES, POLICY_PROTECTED_STATUSES
from app.erm.modules.employees.models import Employee
from app.erm.modules.policies.models import Policy
from app.erm.modules.timeline.service import entity_timeline, log_activity, log_status_changed
from app.erm.modules.workflows.models import ApprovalWorkflow
from app.erm.modules.workflows.service import create_policy_publish_workflow, pending_policy_workflow
from app.erm.storage import versioned_key
from app.erm.utils import clean_str, iso, parse_date, parse_int

if TYPE_CHECKING:
    from sqlalchemy.orm import Session
    from app.erm.models import User
    from app.erm.storage import Storage

logger = logging.getLogger(__name__)

# Statuses in which the policy text can no longer be edited.
_LOCKED_STATUSES = ("REJECTED", "PUBLISHED")
_DATE_FIELDS = ("effective_date", "expiry_date", "review_date")


def policy_to_dict(p: Policy) -> dict[str, Any]:
    return {
        "id": p.id,
        "title": p.title,
        "category": p.category,
        "content": p.content,
        "owner_id": p.owner_id,
        "owner": {"id": p.owner.id, "name": p.owner.name} if p.owner else None,
        "status": p.status,
        "version": p.version,
        "effective_date": iso(p.effective_date),
        "expiry_date": iso(p.expiry_date),
        "review_date": iso(p.review_date),
        "last_review_date": iso(p.last_review_date),
        "file": (
            {"name": p.file_name, "size": p.file_size, "mime_type": p.file_mime_type}
            if p.file_storage_key
            else None
        ),
        "created_at": iso(p.created_at),
        "updated_at": iso(p.updated_at),
    }


def validate_policy_payload(payload: dict, *, partial: bool = False) -> list[str]:
    errors: list[str] = []
    if (not partial or "title" in payload) and not clean_str(payload.get("title")):
        errors.append("Title is required.")
    if not partial or "category" in payload:
        category = clean_str(payload.get("category"))
        if category not in POLICY_CATEGORIES:
            errors.append(f"Invalid category. Must be one of: {', '.join(POLICY_CATEGORIES)}")
    status = clean_str(payload.get("status"))
    if status and status in POLICY_PROTECTED_STATUSES:
        errors.append(f"Status {status} can only be set through the approval workflow.")
    elif status and status not in POLICY_MANUAL_STATUSES:
        errors.append(f"Invalid status. Must be one of: {', '.join(POLICY_MANUAL_STATUSES)}")
    for key in _DATE_FIELDS:
        try:
            parse_date(payload.get(key))
        except (TypeError, ValueError):
            errors.append(f"Invalid value for {key}.")
    try:
        parse_int(payload.get("owner_id"))
    except ValueError:
        errors.append("Invalid value for owner_id.")
    return errors


def _requester_for(s: "Session", policy: Policy, user: "User | None") -> Employee:
    if user is not None:
        linked = s.query(Employee).filter(Employee.user_id == user.id).one_or_none()
        if linked is not None:
            return linked
    return policy.owner


def _start_review(s: "Session", policy: Policy, user: "User | None") -> ApprovalWorkflow:
    wf = create_policy_publish_workflow(s, policy, _requester_for(s, policy, user), user)
    log_activity(
        s,
        entity_type="POLICY",
        entity_id=policy.id,
        activity_type="POLICY_REVIEWED",
        title=f"Policy submitted for review: {policy.title}",
        metadata={"workflowId": wf.id, "version": policy.version},
        user=user,
        workflow_id=wf.id,
    )
    return wf


def create_policy(s: "Session", payload: dict, user: "User") -> Policy:
    owner = s.get(Employee, parse_int(payload.get("owner_id")) or 0)
    if owner is None:
        raise ValueError("Policy owner not found.")
    status = clean_str(payload.get("status")) or "DRAFT"
    if status not in POLICY_MANUAL_STATUSES:
        raise ValueError(f"Policies cannot be created with status {status}.")

    now = datetime.utcnow()
    p = Policy(
        title=clean_str(payload.get("title")) or "",
        category=clean_str(payload.get("category")) or "",
        content=clean_str(payload.get("content")),
        owner_id=owner.id,
        status=status,
        version=1,
        effective_date=parse_date(payload.get("effective_date")),
        expiry_date=parse_date(payload.get("expiry_date")),
        review_date=parse_date(payload.get("review_date")),
        created_at=now,
        updated_at=now,
        created_by_user_id=user.id if user else None,
    )
    s.add(p)
    s.flush()

    record_event(
        s,
        actor=user,
        action="policy.create",
        entity_type="Policy",
        entity_id=str(p.id),
        metadata={"title": p.title, "category": p.category, "status": p.status},
    )
    log_activity(
        s,
        entity_type="POLICY",
        entity_id=p.id,
        activity_type="CREATED",
        title=f"Policy created: {p.title}",
        metadata={"category": p.category, "status": p.status, "version": p.version},
        user=user,
    )
    if p.status == "REVIEW" and (p.content or p.file_storage_key):
        _start_review(s, p, user)
    logger.info("Policy created id=%s status=%s", p.id, p.status)
    return p


def update_policy(s: "Session", p: Policy, payload: dict, user: "User", reason: str | None = None) -> Policy:
    if p.status in _LOCKED_STATUSES:
        raise ValueError(f"{p.status.title()} policies cannot be edited.")

    changes: dict[str, dict[str, Any]] = {}

    def _set(field: str, new_value: Any) -> None:
        old_value = getattr(p, field)
        if new_value != old_value:
            changes[field] = {
                "old": iso(old_value) if isinstance(old_value, date) else old_value,
                "new": iso(new_value) if isinstance(new_value, date) else new_value,
            }
            setattr(p, field, new_value)

    if "title" in payload:
        title = clean_str(payload.get("title"))
        if not title:
            raise ValueError("Title cannot be empty.")
        _set("title", title)
    if "category" in payload:
        _set("category", clean_str(payload.get("category")))
    if "content" in payload:
        _set("content", clean_str(payload.get("content")))
    if "owner_id" in payload:
        owner = s.get(Employee, parse_int(payload.get("owner_id")) or 0)
        if owner is None:
            raise ValueError("Policy owner not found.")
        _set("owner_id", owner.id)
    for key in _DATE_FIELDS:
        if key in payload:
            _set(key, parse_date(payload.get(key)))

    old_status = p.status
    if "status" in payload:
        status = clean_str(payload.get("status"))
        if status and status != p.status:
            if status not in POLICY_MANUAL_STATUSES:
                raise ValueError(f"Status {status} can only be set through the approval workflow.")
            _set("status", status)

    if not changes:
        return p
    if {"title", "content"} & set(changes):
        p.version += 1
        changes["version"] = {"old": p.version - 1, "new": p.version}
    p.updated_at = datetime.utcnow()
    s.flush()

    record_field_changes(
        s,
        actor=user,
        action_prefix="policy",
        entity_type="Policy",
        entity_id=str(p.id),
        changes=changes,
        reason=reason,
    )
    log_activity(
        s,
        entity_type="POLICY",
        entity_id=p.id,
        activity_type="UPDATED",
        title=f"Policy updated: {p.title}",
        description=", ".join(sorted(changes)),
        metadata={"changes": changes, "reason": reason},
        user=user,
    )
    if "status" in changes:
        log_status_changed(
            s,
            entity_type="POLICY",
            entity_id=p.id,
            entity_name=p.title,
            old_status=old_status,
            new_status=p.status,
            user=user,
        )
        if p.status == "REVIEW" and pending_policy_workflow(s, p.id) is None:
            _start_review(s, p, user)
    logger.info("Policy updated id=%s fields=%s", p.id, sorted(changes))
    return p


def publish_policy(s: "Session", p: Policy, user: "User") -> Policy:
    if p.status != "APPROVED":
        raise ValueError(f"Only approved policies can be published (current status: {p.status}).")
    old_status = p.status
    p.status = "PUBLISHED"
    if p.effective_date is None:
        p.effective_date = date.today()
    p.updated_at = datetime.utcnow()
    s.flush()

    record_event(
        s,
        actor=user,
        action="policy.publish",
        entity_type="Policy",
        entity_id=str(p.id),
        metadata={"version": p.version, "effective_date": iso(p.effective_date)},
    )
    log_status_changed(
        s,
        entity_type="POLICY",
        entity_id=p.id,
        entity_name=p.title,
        old_status=old_status,
        new_status=p.status,
        user=user,
    )
    log_activity(
        s,
        entity_type="POLICY",
        entity_id=p.id,
        activity_type="PUBLISHED",
        title=f"Policy published: {p.title}",
        description=f"Version {p.version} effective {iso(p.effective_date)}",
        metadata={"version": p.version},
        user=user,
    )
    return p


def delete_policy(s: "Session", p: Policy, user: "User", *, storage: "Storage | None" = None) -> None:
    if p.status == "PUBLISHED":
        raise ValueError("Published policies cannot be deleted.")
    pending = (
        s.query(ApprovalWorkflow)
        .filter(ApprovalWorkflow.policy_id == p.id, ApprovalWorkflow.status == "PENDING")
        .all()
    )
    for wf in pending:
        wf.status = "CANCELLED"
        wf.comments = "Policy deleted"
        wf.updated_at = datetime.utcnow()
        log_activity(
            s,
            entity_type="APPROVAL_WORKFLOW",
            entity_id=wf.id,
            activity_type="WORKFLOW_CANCELLED",
            title=f"Workflow cancelled: policy {p.title} deleted",
            user=user,
        )

    snapshot = {"title": p.title, "category": p.category, "status": p.status, "version": p.version}
    storage_key = p.file_storage_key
    p_id = p.id
    s.delete(p)
    s.flush()
    if storage is not None and storage_key:
        storage.delete(storage_key)

    record_event(s, actor=user, action="policy.delete", entity_type="Policy", entity_id=str(p_id), metadata=snapshot)
    log_activity(
        s,
        entity_type="POLICY",
        entity_id=p_id,
        activity_type="DELETED",
        title=f"Policy deleted: {snapshot['title']}",
        metadata={**snapshot, "cancelledWorkflows": [wf.id for wf in pending]},
        user=user,
    )
    logger.info("Policy deleted id=%s", p_id)


def attach_policy_file(
    s: "Session",
    p: Policy,
    *,
    filename: str,
    data: bytes,
    content_type: str | None,
    user: "User",
    storage: "Storage",
) -> Policy:
    if p.status in _LOCKED_STATUSES:
        raise ValueError(f"{p.status.title()} policies cannot be edited.")
    if not data:
        raise ValueError("Uploaded file is empty.")
    storage_key = versioned_key("policies", p.id, p.version + 1, filename, fallback="policy.bin")
    storage.put_bytes(storage_key, data, content_type=content_type)

    old_key = p.file_storage_key
    p.file_storage_key = storage_key
    p.file_name = filename or "policy.bin"
    p.file_size = len(data)
    p.file_mime_type = content_type or "application/octet-stream"
    p.version += 1
    p.updated_at = datetime.utcnow()
    s.flush()

    record_event(
        s,
        actor=user,
        action="policy.file_upload",
        entity_type="Policy",
        entity_id=str(p.id),
        metadata={"storage_key": storage_key, "previous_key": old_key, "size": p.file_size},
    )
    log_activity(
        s,
        entity_type="POLICY",
        entity_id=p.id,
        activity_type="FILE_UPLOADED",
        title=f"File uploaded: {p.file_name}",
        metadata={"fileName": p.file_name, "size": p.file_size, "version": p.version},
        user=user,
    )
    if p.status == "REVIEW" and pending_policy_workflow(s, p.id) is None:
        _start_review(s, p, user)
    return p


def list_policies(
    s: "Session",
    *,
    status: str | None = None,
    category: str | None = None,
    search: str | None = None,
    page: int = 1,
    limit: int = 20,
) -> tuple[list[Policy], int]:
    q = s.query(Policy)
    if status:
        q = q.filter(Policy.status == status)
    if category:
        q = q.filter(Policy.category == category)
    if search:
        like = f"%{search.strip().lower()}%"
        q = q.filter(or_(func.lower(Policy.title).like(like), func.lower(Policy.content).like(like)))
    total = q.count()
    rows = q.order_by(Policy.updated_at.desc(), Policy.id.desc()).offset((page - 1) * limit).limit(limit).all()
    return rows, total


def policy_history(s: "Session", p: Policy, *, page: int = 1, limit: int = 15):
    return entity_timeline(s, "POLICY", p.id, page=page, limit=limit)
