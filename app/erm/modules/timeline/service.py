from __future__ import annotations

import logging
from datetime import date, datetime, time
from typing import TYPE_CHECKING, Any

from app.erm.constants import ACTIVITY_TYPES, TIMELINE_ENTITY_TYPES
from app.erm.modules.timeline.models import ActivityTimeline

if TYPE_CHECKING:
    from sqlalchemy.orm import Query, Session
    from app.erm.models import User
    from app.erm.modules.employees.models import Employee

logger = logging.getLogger(__name__)

# Entity type -> ActivityTimeline column that gets a direct link
_ENTITY_LINK_COLUMN = {
    "EMPLOYEE": "employee_id",
    "RESOURCE": "resource_id",
    "POLICY": "policy_id",
    "APPROVAL_WORKFLOW": "workflow_id",
}


def _performer_for_user(s: "Session", user: "User | None") -> "Employee | None":
    if user is None:
        return None
    from app.erm.modules.employees.models import Employee

    return s.query(Employee).filter(Employee.user_id == user.id).one_or_none()


def log_activity(
    s: "Session",
    *,
    entity_type: str,
    entity_id: int | str,
    activity_type: str,
    title: str,
    description: str | None = None,
    metadata: dict[str, Any] | None = None,
    performer: "Employee | None" = None,
    user: "User | None" = None,
    policy_id: int | None = None,
    resource_id: int | None = None,
    workflow_id: int | None = None,
    employee_id: int | None = None,
) -> ActivityTimeline:
    """
    Append a timeline entry inside the caller's transaction.

    The performer defaults to the employee linked to `user`. The entity's own id is
    copied into the matching link column (employee_id for EMPLOYEE, ...) unless given.
    """
    if entity_type not in TIMELINE_ENTITY_TYPES:
        raise ValueError(f"Unknown timeline entity type: {entity_type}")
    if activity_type not in ACTIVITY_TYPES:
        raise ValueError(f"Unknown activity type: {activity_type}")

    if performer is None:
        performer = _performer_for_user(s, user)

    links = {
        "policy_id": policy_id,
        "resource_id": resource_id,
        "workflow_id": workflow_id,
        "employee_id": employee_id,
    }
    link_col = _ENTITY_LINK_COLUMN.get(entity_type)
    # A DELETED entry outlives its row, so it must not hold an FK to it.
    if activity_type == "DELETED" and link_col:
        links[link_col] = None
    elif link_col and links[link_col] is None:
        links[link_col] = int(entity_id)

    entry = ActivityTimeline(
        entity_type=entity_type,
        entity_id=str(entity_id),
        activity_type=activity_type,
        title=title[:255],
        description=description,
        meta=metadata or None,
        performed_by_id=performer.id if performer else None,
        performed_by_user_id=user.id if user else None,
        performer_name=performer.name if performer else None,
        timestamp=datetime.utcnow(),
        **links,
    )
    s.add(entry)
    logger.debug("timeline %s %s:%s %s", activity_type, entity_type, entity_id, title)
    return entry


def log_status_changed(
    s: "Session",
    *,
    entity_type: str,
    entity_id: int | str,
    entity_name: str,
    old_status: str | None,
    new_status: str,
    user: "User | None" = None,
    performer: "Employee | None" = None,
    metadata: dict[str, Any] | None = None,
    **links: int | None,
) -> ActivityTimeline:
    meta = {"previousStatus": old_status, "newStatus": new_status}
    if metadata:
        meta.update(metadata)
    return log_activity(
        s,
        entity_type=entity_type,
        entity_id=entity_id,
        activity_type="STATUS_CHANGED",
        title=f"Status changed: {entity_name}",
        description=f"Status changed from {old_status or 'none'} to {new_status}",
        metadata=meta,
        performer=performer,
        user=user,
        **links,
    )


def _base_query(
    s: "Session",
    *,
    entity_type: str | None = None,
    entity_id: str | None = None,
    activity_type: str | None = None,
    performed_by_id: int | None = None,
    date_from: date | None = None,
    date_to: date | None = None,
) -> "Query":
    q = s.query(ActivityTimeline)
    if entity_type:
        q = q.filter(ActivityTimeline.entity_type == entity_type)
    if entity_id is not None:
        q = q.filter(ActivityTimeline.entity_id == str(entity_id))
    if activity_type:
        q = q.filter(ActivityTimeline.activity_type == activity_type)
    if performed_by_id:
        q = q.filter(ActivityTimeline.performed_by_id == performed_by_id)
    if date_from:
        q = q.filter(ActivityTimeline.timestamp >= datetime.combine(date_from, time.min))
    if date_to:
        q = q.filter(ActivityTimeline.timestamp <= datetime.combine(date_to, time.max))
    return q


def entity_timeline(
    s: "Session", entity_type: str, entity_id: int | str, *, page: int = 1, limit: int = 15
) -> list[ActivityTimeline]:
    q = _base_query(s, entity_type=entity_type, entity_id=str(entity_id))
    return (
        q.order_by(ActivityTimeline.timestamp.desc(), ActivityTimeline.id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )


def timeline_count(s: "Session", entity_type: str | None = None, entity_id: int | str | None = None) -> int:
    return _base_query(
        s, entity_type=entity_type, entity_id=str(entity_id) if entity_id is not None else None
    ).count()


def all_timeline(
    s: "Session", *, page: int = 1, limit: int = 50, **filters: Any
) -> tuple[list[ActivityTimeline], int]:
    q = _base_query(s, **filters)
    total = q.count()
    rows = (
        q.order_by(ActivityTimeline.timestamp.desc(), ActivityTimeline.id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )
    return rows, total


def _performer_dict(entry: ActivityTimeline) -> dict[str, Any] | None:
    if entry.performer is not None:
        p = entry.performer
        return {"id": p.id, "name": p.name, "email": p.email, "department": p.department}
    if entry.performer_name is None:
        return None
    # Performer row is gone; fall back to the remembered name.
    return {
        "id": None,
        "name": f"{entry.performer_name} (Deleted)",
        "email": None,
        "department": "Unknown Department",
    }


def activity_to_dict(entry: ActivityTimeline) -> dict[str, Any]:
    return {
        "id": entry.id,
        "entity_type": entry.entity_type,
        "entity_id": entry.entity_id,
        "activity_type": entry.activity_type,
        "title": entry.title,
        "description": entry.description,
        "metadata": entry.meta,
        "timestamp": entry.timestamp.isoformat() if entry.timestamp else None,
        "performer": _performer_dict(entry),
        "performed_by_user_id": entry.performed_by_user_id,
        "policy_id": entry.policy_id,
        "resource_id": entry.resource_id,
        "workflow_id": entry.workflow_id,
        "employee_id": entry.employee_id,
    }
