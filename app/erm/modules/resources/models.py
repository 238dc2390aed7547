from __future__ import annotations

from datetime import date, datetime
from typing import TYPE_CHECKING

from sqlalchemy import Boolean, Date, DateTime, Float, ForeignKey, Index, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.erm.db import JSONType
from app.erm.models import Base

if TYPE_CHECKING:
    from app.erm.modules.employees.models import Employee


class ResourceType(Base):
    __tablename__ = "resource_types"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String(100), nullable=False, unique=True)  # "Hardware", "Software", "Cloud", ...
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    is_system: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    mandatory_properties: Mapped[list | None] = mapped_column(JSONType, nullable=True, default=list)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)

    categories: Mapped[list["ResourceCategory"]] = relationship(
        "ResourceCategory", back_populates="resource_type", lazy="selectin"
    )


class ResourceCategory(Base):
    __tablename__ = "resource_categories"
    __table_args__ = (
        UniqueConstraint("name", "resource_type_id", name="uq_resource_category_name_type"),
        Index("idx_resource_categories_type", "resource_type_id"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    resource_type_id: Mapped[int] = mapped_column(ForeignKey("resource_types.id", ondelete="RESTRICT"), nullable=False)
    is_system: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)

    resource_type: Mapped["ResourceType"] = relationship("ResourceType", back_populates="categories", lazy="selectin")


class PropertyCatalog(Base):
    """Reusable property definitions offered when building a resource schema."""

    __tablename__ = "property_catalog"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    key: Mapped[str] = mapped_column(String(64), nullable=False, unique=True)  # camelCase
    label: Mapped[str] = mapped_column(String(128), nullable=False)
    data_type: Mapped[str] = mapped_column(String(16), nullable=False)  # STRING, NUMBER, BOOLEAN, DATE
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    default_value: Mapped[object | None] = mapped_column(JSONType, nullable=True)
    is_system: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    resource_type_id: Mapped[int | None] = mapped_column(
        ForeignKey("resource_types.id", ondelete="SET NULL"), nullable=True
    )  # None = common to all types

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)

    resource_type: Mapped["ResourceType | None"] = relationship("ResourceType", lazy="selectin")


class Resource(Base):
    __tablename__ = "resources"
    __table_args__ = (
        Index("idx_resources_type", "resource_type_id"),
        Index("idx_resources_category", "resource_category_id"),
        Index("idx_resources_status", "status"),
        Index("idx_resources_name", "name"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)

    resource_type_id: Mapped[int] = mapped_column(ForeignKey("resource_types.id", ondelete="RESTRICT"), nullable=False)
    resource_category_id: Mapped[int] = mapped_column(
        ForeignKey("resource_categories.id", ondelete="RESTRICT"), nullable=False
    )

    # Legacy columns, derived from the type/category above
    type: Mapped[str] = mapped_column(String(32), nullable=False, default="PHYSICAL")  # PHYSICAL, SOFTWARE, CLOUD
    category: Mapped[str | None] = mapped_column(String(100), nullable=True)

    owner: Mapped[str] = mapped_column(String(255), nullable=False, default="Unisouk")
    custodian_id: Mapped[int | None] = mapped_column(ForeignKey("employees.id", ondelete="SET NULL"), nullable=True)
    status: Mapped[str] = mapped_column(String(32), nullable=False, default="ACTIVE")
    quantity: Mapped[int] = mapped_column(Integer, nullable=False, default=1)  # license seats for pooled software
    meta: Mapped[dict | None] = mapped_column("metadata", JSONType, nullable=True)

    # List of property definitions; immutable once schema_locked
    property_schema: Mapped[list | None] = mapped_column(JSONType, nullable=True, default=list)
    schema_locked: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)
    created_by_user_id: Mapped[int | None] = mapped_column(ForeignKey("users.id", ondelete="SET NULL"), nullable=True)

    resource_type: Mapped["ResourceType"] = relationship("ResourceType", lazy="selectin")
    resource_category: Mapped["ResourceCategory"] = relationship("ResourceCategory", lazy="selectin")
    custodian: Mapped["Employee | None"] = relationship("Employee", lazy="selectin")
    items: Mapped[list["ResourceItem"]] = relationship("ResourceItem", back_populates="resource", lazy="select")


class ResourceItem(Base):
    __tablename__ = "resource_items"
    __table_args__ = (
        Index("idx_resource_items_resource", "resource_id"),
        Index("idx_resource_items_status", "status"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    resource_id: Mapped[int] = mapped_column(ForeignKey("resources.id", ondelete="RESTRICT"), nullable=False)
    status: Mapped[str] = mapped_column(String(32), nullable=False, default="AVAILABLE")

    properties: Mapped[dict | None] = mapped_column(JSONType, nullable=True, default=dict)
    meta: Mapped[dict | None] = mapped_column("metadata", JSONType, nullable=True)

    # Legacy flat columns, kept in sync from `properties`
    serial_number: Mapped[str | None] = mapped_column(String(128), nullable=True, unique=True)
    hostname: Mapped[str | None] = mapped_column(String(255), nullable=True)
    ip_address: Mapped[str | None] = mapped_column(String(64), nullable=True)
    mac_address: Mapped[str | None] = mapped_column(String(64), nullable=True)
    operating_system: Mapped[str | None] = mapped_column(String(128), nullable=True)
    os_version: Mapped[str | None] = mapped_column(String(64), nullable=True)
    processor: Mapped[str | None] = mapped_column(String(128), nullable=True)
    memory: Mapped[str | None] = mapped_column(String(64), nullable=True)
    storage: Mapped[str | None] = mapped_column(String(64), nullable=True)
    license_key: Mapped[str | None] = mapped_column(String(255), nullable=True)
    software_version: Mapped[str | None] = mapped_column(String(64), nullable=True)
    license_type: Mapped[str | None] = mapped_column(String(64), nullable=True)
    max_users: Mapped[int | None] = mapped_column(Integer, nullable=True)
    activation_code: Mapped[str | None] = mapped_column(String(255), nullable=True)
    license_expiry: Mapped[date | None] = mapped_column(Date, nullable=True)
    purchase_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    warranty_expiry: Mapped[date | None] = mapped_column(Date, nullable=True)
    value: Mapped[float | None] = mapped_column(Float, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)

    resource: Mapped["Resource"] = relationship("Resource", back_populates="items", lazy="selectin")


class ResourceAssignment(Base):
    __tablename__ = "resource_assignments"
    __table_args__ = (
        Index("idx_assignments_employee", "employee_id"),
        Index("idx_assignments_resource", "resource_id"),
        Index("idx_assignments_item", "item_id"),
        Index("idx_assignments_status", "status"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    employee_id: Mapped[int] = mapped_column(ForeignKey("employees.id", ondelete="CASCADE"), nullable=False)
    resource_id: Mapped[int] = mapped_column(ForeignKey("resources.id", ondelete="CASCADE"), nullable=False)
    item_id: Mapped[int | None] = mapped_column(ForeignKey("resource_items.id", ondelete="SET NULL"), nullable=True)
    assigned_by_id: Mapped[int | None] = mapped_column(ForeignKey("employees.id", ondelete="SET NULL"), nullable=True)

    status: Mapped[str] = mapped_column(String(32), nullable=False, default="ACTIVE")
    assignment_type: Mapped[str] = mapped_column(String(32), nullable=False, default="INDIVIDUAL")
    assigned_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)
    returned_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=False), nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    employee: Mapped["Employee"] = relationship("Employee", foreign_keys=[employee_id], lazy="selectin")
    assigned_by: Mapped["Employee | None"] = relationship("Employee", foreign_keys=[assigned_by_id], lazy="selectin")
    resource: Mapped["Resource"] = relationship("Resource", lazy="selectin")
    item: Mapped["ResourceItem | None"] = relationship("ResourceItem", lazy="selectin")
