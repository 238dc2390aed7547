from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import DateTime, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.erm.db import JSONType
from app.erm.models import Base

if TYPE_CHECKING:
    from app.erm.modules.employees.models import Employee


class ActivityTimeline(Base):
    __tablename__ = "activity_timeline"
    __table_args__ = (
        Index("idx_timeline_entity", "entity_type", "entity_id"),
        Index("idx_timeline_timestamp", "timestamp"),
        Index("idx_timeline_activity", "activity_type"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)

    entity_type: Mapped[str] = mapped_column(String(32), nullable=False)  # EMPLOYEE, RESOURCE, ...
    entity_id: Mapped[str] = mapped_column(String(64), nullable=False)
    activity_type: Mapped[str] = mapped_column(String(32), nullable=False)  # CREATED, UPDATED, ...

    title: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    meta: Mapped[dict | None] = mapped_column("metadata", JSONType, nullable=True)

    performed_by_id: Mapped[int | None] = mapped_column(ForeignKey("employees.id", ondelete="SET NULL"), nullable=True)
    performed_by_user_id: Mapped[int | None] = mapped_column(ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    performer_name: Mapped[str | None] = mapped_column(String(255), nullable=True)  # snapshot, survives employee deletion
    timestamp: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)

    # Optional direct links for cross-entity queries
    policy_id: Mapped[int | None] = mapped_column(ForeignKey("policies.id", ondelete="SET NULL"), nullable=True)
    resource_id: Mapped[int | None] = mapped_column(ForeignKey("resources.id", ondelete="SET NULL"), nullable=True)
    workflow_id: Mapped[int | None] = mapped_column(ForeignKey("approval_workflows.id", ondelete="SET NULL"), nullable=True)
    employee_id: Mapped[int | None] = mapped_column(ForeignKey("employees.id", ondelete="SET NULL"), nullable=True)

    performer: Mapped["Employee | None"] = relationship("Employee", foreign_keys=[performed_by_id], lazy="selectin")
