"""
Who approves what.

Routing is role based: each workflow type (and, for money, the amount) maps to an
ordered list of job roles, and the first active employee holding one of those
roles is picked as approver.
"""
from __future__ import annotations

from typing import TYPE_CHECKING, Any

from app.erm.constants import DEPARTMENT_HEAD_ROLES, FINANCIAL_WORKFLOW_TYPES, MANAGER_ROLES
from app.erm.modules.employees.models import Employee

if TYPE_CHECKING:
    from sqlalchemy.orm import Session
    from app.erm.modules.workflows.models import ApprovalWorkflow

_HEADS_AND_EXECS = DEPARTMENT_HEAD_ROLES + ("CTO", "CEO")

_CATEGORIES = {
    "IT_OPERATIONS": ("IT_EQUIPMENT_REQUEST", "SOFTWARE_LICENSE_REQUEST", "CLOUD_SERVICE_REQUEST", "FACILITY_REQUEST"),
    "SECURITY_ACCESS": ("ACCESS_REQUEST", "ELEVATED_ACCESS_REQUEST", "SYSTEM_ADMIN_REQUEST"),
    "COMPLIANCE": ("POLICY_UPDATE_REQUEST", "PROCEDURE_CHANGE_REQUEST", "COMPLIANCE_REVIEW_REQUEST"),
    "FINANCIAL": FINANCIAL_WORKFLOW_TYPES + ("TRAVEL_REQUEST",),
    "HUMAN_RESOURCES": ("HIRING_REQUEST", "ROLE_CHANGE_REQUEST", "TRAINING_REQUEST"),
}

_PRIORITY_ORDER = {"URGENT": 0, "HIGH": 1, "MEDIUM": 2, "LOW": 3}

_FINANCIAL_LIMITS = {
    "CFO": 50000.0,
    "CTO": 25000.0,
    "ENGINEERING_MANAGER": 10000.0,
    "SALES_MANAGER": 10000.0,
    "MARKETING_MANAGER": 10000.0,
    "HR_MANAGER": 5000.0,
}
_DEFAULT_FINANCIAL_LIMIT = 1000.0


def workflow_amount(data: dict[str, Any] | None) -> float:
    """Amount carried in workflow data (amount, estimatedCost or cost); 0 when absent."""
    data = data or {}
    for key in ("amount", "estimatedCost", "cost"):
        value = data.get(key)
        if value is None or isinstance(value, bool):
            continue
        try:
            return float(value)
        except (TypeError, ValueError):
            continue
    return 0.0


def approver_roles_for(workflow_type: str, amount: float = 0.0) -> tuple[str, ...]:
    if workflow_type in ("IT_EQUIPMENT_REQUEST", "SOFTWARE_LICENSE_REQUEST", "CLOUD_SERVICE_REQUEST"):
        if amount > 2000:
            return ("CTO",)
        if amount > 500:
            return ("ENGINEERING_MANAGER", "CTO")
        return ("SYSTEM_ADMINISTRATOR", "ENGINEERING_MANAGER", "CTO")
    if workflow_type == "ACCESS_REQUEST":
        return ("ENGINEERING_MANAGER", "SYSTEM_ADMINISTRATOR", "CTO", "CEO")
    if workflow_type in ("ELEVATED_ACCESS_REQUEST", "SYSTEM_ADMIN_REQUEST"):
        return ("CTO", "SECURITY_ENGINEER")
    if workflow_type in ("POLICY_UPDATE_REQUEST", "PROCEDURE_CHANGE_REQUEST", "COMPLIANCE_REVIEW_REQUEST"):
        return ("HR_MANAGER", "CEO")
    if workflow_type in ("EXPENSE_APPROVAL_REQUEST", "BUDGET_REQUEST", "VENDOR_PAYMENT_REQUEST"):
        if amount > 5000:
            return ("CFO", "CEO")
        if amount > 1000:
            return _HEADS_AND_EXECS
        return MANAGER_ROLES
    if workflow_type in ("HIRING_REQUEST", "ROLE_CHANGE_REQUEST", "TRAINING_REQUEST"):
        return ("HR_MANAGER", "CEO")
    if workflow_type == "VENDOR_CONTRACT_REQUEST":
        if amount > 10000:
            return ("CEO",)
        return ("CFO", "CEO")
    return _HEADS_AND_EXECS


def find_approver(
    s: "Session", workflow_type: str, amount: float = 0.0, requester_id: int | None = None
) -> Employee | None:
    roles = approver_roles_for(workflow_type, amount)
    q = s.query(Employee).filter(Employee.status == "ACTIVE", Employee.role.in_(roles))
    if requester_id is not None:
        q = q.filter(Employee.id != requester_id)
    candidates = q.order_by(Employee.created_at.asc(), Employee.id.asc()).all()
    if not candidates:
        return None
    rank = {role: i for i, role in enumerate(roles)}
    # Stable sort keeps created_at order within a role.
    return sorted(candidates, key=lambda e: rank[e.role])[0]


def workflow_category(workflow_type: str) -> str:
    for category, types in _CATEGORIES.items():
        if workflow_type in types:
            return category
    return "GENERAL_OPERATIONS"


def workflow_priority(workflow_type: str, amount: float = 0.0) -> str:
    if workflow_type.startswith(("COMPLIANCE_", "HIRING_")):
        return "URGENT"
    if workflow_type.startswith(("SECURITY_", "ELEVATED_ACCESS")) or amount > 5000:
        return "HIGH"
    if workflow_type.startswith(("IT_", "POLICY_")) or amount > 1000:
        return "MEDIUM"
    return "LOW"


def priority_rank(priority: str) -> int:
    return _PRIORITY_ORDER.get(priority, len(_PRIORITY_ORDER))


def financial_approval_limit(role: str | None) -> float:
    if role == "CEO":
        return float("inf")
    return _FINANCIAL_LIMITS.get(role or "", _DEFAULT_FINANCIAL_LIMIT)


def is_financial(workflow_type: str) -> bool:
    return workflow_type in FINANCIAL_WORKFLOW_TYPES


def approval_chain(workflow_type: str, amount: float = 0.0) -> list[str]:
    """Ordered roles a request passes through for multi-level sign-off."""
    if workflow_type == "IT_EQUIPMENT_REQUEST":
        if amount > 2000:
            return ["SYSTEM_ADMINISTRATOR", "ENGINEERING_MANAGER", "CTO"]
        if amount > 500:
            return ["SYSTEM_ADMINISTRATOR", "ENGINEERING_MANAGER"]
        return ["SYSTEM_ADMINISTRATOR"]
    if workflow_type == "HIRING_REQUEST":
        return ["ENGINEERING_MANAGER", "HR_MANAGER", "CEO"]
    if workflow_type == "VENDOR_CONTRACT_REQUEST":
        if amount > 10000:
            return ["CFO", "CEO"]
        return ["CFO"]
    return list(approver_roles_for(workflow_type, amount)[:1])


def _humanize(workflow_type: str) -> str:
    return workflow_type.replace("_REQUEST", "").replace("_", " ").title()


def display_title(wf: "ApprovalWorkflow") -> str:
    data = wf.data or {}
    title = data.get("title")
    if title:
        return str(title)
    label = _humanize(wf.type)
    if wf.type == "POLICY_UPDATE_REQUEST" and data.get("policyTitle"):
        return f"Policy review: {data['policyTitle']}"
    if wf.type == "ACCESS_REQUEST" and data.get("resourceName"):
        return f"Access to {data['resourceName']}"
    if data.get("itemName"):
        return f"{label}: {data['itemName']}"
    if data.get("position"):
        return f"{label}: {data['position']}"
    amount = workflow_amount(data)
    if amount:
        return f"{label} ({amount:,.2f})"
    return label
