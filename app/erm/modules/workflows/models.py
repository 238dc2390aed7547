from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import DateTime, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.erm.db import JSONType
from app.erm.models import Base

if TYPE_CHECKING:
    from app.erm.modules.employees.models import Employee
    from app.erm.modules.policies.models import Policy


class ApprovalWorkflow(Base):
    __tablename__ = "approval_workflows"
    __table_args__ = (
        Index("idx_workflows_status", "status"),
        Index("idx_workflows_type", "type"),
        Index("idx_workflows_requester", "requester_id"),
        Index("idx_workflows_approver", "approver_id"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    type: Mapped[str] = mapped_column(String(64), nullable=False)
    requester_id: Mapped[int] = mapped_column(ForeignKey("employees.id", ondelete="RESTRICT"), nullable=False)
    approver_id: Mapped[int] = mapped_column(ForeignKey("employees.id", ondelete="RESTRICT"), nullable=False)
    status: Mapped[str] = mapped_column(String(32), nullable=False, default="PENDING")
    data: Mapped[dict | None] = mapped_column(JSONType, nullable=True)
    comments: Mapped[str | None] = mapped_column(Text, nullable=True)

    policy_id: Mapped[int | None] = mapped_column(ForeignKey("policies.id", ondelete="SET NULL"), nullable=True)
    resource_id: Mapped[int | None] = mapped_column(ForeignKey("resources.id", ondelete="SET NULL"), nullable=True)
    access_request_id: Mapped[int | None] = mapped_column(
        ForeignKey("access_requests.id", ondelete="SET NULL"), nullable=True
    )

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)
    decided_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=False), nullable=True)

    requester: Mapped["Employee"] = relationship("Employee", foreign_keys=[requester_id], lazy="selectin")
    approver: Mapped["Employee"] = relationship("Employee", foreign_keys=[approver_id], lazy="selectin")
    policy: Mapped["Policy | None"] = relationship("Policy", lazy="selectin")
