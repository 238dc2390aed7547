from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import DateTime, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.erm.models import Base

if TYPE_CHECKING:
    from app.erm.modules.employees.models import Employee
    from app.erm.modules.resources.models import Resource


class AccessRequest(Base):
    __tablename__ = "access_requests"
    __table_args__ = (
        Index("idx_access_requests_employee", "employee_id"),
        Index("idx_access_requests_status", "status"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    employee_id: Mapped[int] = mapped_column(ForeignKey("employees.id", ondelete="CASCADE"), nullable=False)
    approver_id: Mapped[int | None] = mapped_column(ForeignKey("employees.id", ondelete="SET NULL"), nullable=True)
    resource_id: Mapped[int | None] = mapped_column(ForeignKey("resources.id", ondelete="SET NULL"), nullable=True)
    hardware_request: Mapped[str | None] = mapped_column(Text, nullable=True)

    permission_level: Mapped[str] = mapped_column(String(16), nullable=False, default="READ")
    status: Mapped[str] = mapped_column(String(16), nullable=False, default="REQUESTED")
    justification: Mapped[str | None] = mapped_column(Text, nullable=True)

    requested_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)
    approved_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=False), nullable=True)
    granted_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=False), nullable=True)
    revoked_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=False), nullable=True)

    employee: Mapped["Employee"] = relationship("Employee", foreign_keys=[employee_id], lazy="selectin")
    approver: Mapped["Employee | None"] = relationship("Employee", foreign_keys=[approver_id], lazy="selectin")
    resource: Mapped["Resource | None"] = relationship("Resource", lazy="selectin")
