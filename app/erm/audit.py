from __future__ import annotations

import json
from typing import Any

from flask import g, has_request_context, request
from sqlalchemy.orm import Session

from app.erm.models import AuditEvent, User


def _json_default(value: Any) -> str:
    if hasattr(value, "isoformat"):
        return value.isoformat()
    return str(value)


def record_event(
    s: Session,
    *,
    actor: User | None,
    action: str,
    entity_type: str | None = None,
    entity_id: str | None = None,
    reason: str | None = None,
    metadata: dict[str, Any] | None = None,
    request_id: str | None = None,
) -> AuditEvent:
    """
    Append-only audit event helper.
    """
    in_request = has_request_context()
    rid = request_id or (getattr(g, "request_id", None) if in_request else None)
    ev = AuditEvent(
        request_id=rid,
        actor_user_id=actor.id if actor else None,
        actor_user_email=actor.email if actor else None,
        action=action,
        entity_type=entity_type,
        entity_id=entity_id,
        reason=reason,
        metadata_json=json.dumps(metadata, sort_keys=True, default=_json_default) if metadata else None,
        client_ip=request.remote_addr if in_request else None,
    )
    s.add(ev)
    return ev


def record_field_changes(
    s: Session,
    *,
    actor: User | None,
    action_prefix: str,
    entity_type: str,
    entity_id: str,
    changes: dict[str, dict[str, Any]],
    reason: str | None = None,
) -> list[AuditEvent]:
    """One audit row per changed field; `changes` is {"field": {"old": .., "new": ..}}."""
    events = []
    for field in sorted(changes):
        change = changes[field]
        events.append(
            record_event(
                s,
                actor=actor,
                action=f"{action_prefix}.field_change",
                entity_type=entity_type,
                entity_id=entity_id,
                reason=reason,
                metadata={"field": field, "old": change.get("old"), "new": change.get("new")},
            )
        )
    return events


def list_audit_events(
    s: Session,
    *,
    entity_type: str | None = None,
    entity_id: str | None = None,
    page: int = 1,
    limit: int = 15,
) -> tuple[list[AuditEvent], int]:
    q = s.query(AuditEvent)
    if entity_type:
        q = q.filter(AuditEvent.entity_type == entity_type)
    if entity_id:
        q = q.filter(AuditEvent.entity_id == str(entity_id))
    total = q.count()
    rows = (
        q.order_by(AuditEvent.created_at.desc(), AuditEvent.id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )
    return rows, total


def audit_event_to_dict(ev: AuditEvent) -> dict[str, Any]:
    return {
        "id": ev.id,
        "created_at": ev.created_at.isoformat() if ev.created_at else None,
        "request_id": ev.request_id,
        "client_ip": ev.client_ip,
        "actor_user_id": ev.actor_user_id,
        "actor_user_email": ev.actor_user_email,
        "action": ev.action,
        "entity_type": ev.entity_type,
        "entity_id": ev.entity_id,
        "reason": ev.reason,
        "metadata": json.loads(ev.metadata_json) if ev.metadata_json else None,
    }
