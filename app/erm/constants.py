"""
Central constants for the ERM application.
"""
from __future__ import annotations

# Employees
EMPLOYEE_STATUSES = ("ACTIVE", "INACTIVE", "RESIGNED", "ON_LEAVE")

EXECUTIVE_ROLES = ("CEO", "CTO", "CFO", "COO")
DEPARTMENT_HEAD_ROLES = (
    "ENGINEERING_MANAGER",
    "PRODUCT_MANAGER",
    "SALES_MANAGER",
    "HR_MANAGER",
    "MARKETING_MANAGER",
)
MANAGER_ROLES = EXECUTIVE_ROLES + DEPARTMENT_HEAD_ROLES

EMPLOYEE_ROLES = MANAGER_ROLES + (
    "FRONTEND_DEVELOPER",
    "BACKEND_DEVELOPER",
    "FULLSTACK_DEVELOPER",
    "MOBILE_DEVELOPER",
    "DEVOPS_ENGINEER",
    "QA_ENGINEER",
    "DATA_SCIENTIST",
    "UI_UX_DESIGNER",
    "SYSTEM_ADMINISTRATOR",
    "SECURITY_ENGINEER",
    "SALES_REPRESENTATIVE",
    "BUSINESS_ANALYST",
    "MARKETING_SPECIALIST",
    "HR_SPECIALIST",
    "ACCOUNTANT",
    "INTERN",
    "JUNIOR_DEVELOPER",
    "TRAINEE",
    "ADMIN",
    "EMPLOYEE",
)

# Policies
POLICY_CATEGORIES = ("HR", "IT", "SECURITY", "COMPLIANCE")
POLICY_STATUSES = ("DRAFT", "IN_PROGRESS", "REVIEW", "APPROVED", "REJECTED", "PUBLISHED")
POLICY_MANUAL_STATUSES = ("DRAFT", "IN_PROGRESS", "REVIEW")
POLICY_PROTECTED_STATUSES = ("APPROVED", "REJECTED", "PUBLISHED")

# Documents
DOCUMENT_CATEGORIES = ("POLICY", "PROCEDURE", "GUIDELINE", "TEMPLATE", "MANUAL")
DOCUMENT_STATUSES = ("DRAFT", "REVIEW", "APPROVED", "PUBLISHED", "ARCHIVED")

# Resources
PROPERTY_DATA_TYPES = ("STRING", "NUMBER", "BOOLEAN", "DATE")
LEGACY_RESOURCE_TYPES = ("PHYSICAL", "SOFTWARE", "CLOUD")
RESOURCE_STATUSES = ("ACTIVE", "RETURNED", "LOST", "DAMAGED")
ITEM_STATUSES = ("AVAILABLE", "ASSIGNED", "MAINTENANCE", "LOST", "DAMAGED")
ASSIGNMENT_STATUSES = ("ACTIVE", "RETURNED", "LOST", "DAMAGED")
ASSIGNMENT_TYPES = ("INDIVIDUAL", "POOLED", "SHARED")

# Assignment status -> allowed next statuses
ASSIGNMENT_TRANSITIONS: dict[str, tuple[str, ...]] = {
    "ACTIVE": ("RETURNED", "LOST", "DAMAGED"),
    "DAMAGED": ("RETURNED",),
    "RETURNED": (),
    "LOST": (),
}
TERMINAL_ASSIGNMENT_STATUSES = ("RETURNED", "LOST")

# Item status that follows an assignment status change
ASSIGNMENT_TO_ITEM_STATUS = {
    "RETURNED": "AVAILABLE",
    "LOST": "LOST",
    "DAMAGED": "DAMAGED",
}

SYSTEM_TYPE_HARDWARE = "Hardware"
SYSTEM_TYPE_SOFTWARE = "Software"
SYSTEM_TYPE_CLOUD = "Cloud"

DEFAULT_MANDATORY_PROPERTIES: dict[str, list[str]] = {
    SYSTEM_TYPE_HARDWARE: ["serialNumber", "warrantyExpiry"],
    SYSTEM_TYPE_SOFTWARE: [],
    SYSTEM_TYPE_CLOUD: ["maxUsers"],
}

SYSTEM_TYPE_DESCRIPTIONS = {
    SYSTEM_TYPE_HARDWARE: "Physical equipment such as laptops, phones and monitors",
    SYSTEM_TYPE_SOFTWARE: "Software licenses and applications",
    SYSTEM_TYPE_CLOUD: "Cloud accounts and hosted services",
}

SYSTEM_CATEGORIES: dict[str, list[str]] = {
    SYSTEM_TYPE_HARDWARE: ["Laptop", "Desktop", "Phone", "Tablet", "Monitor", "Peripheral"],
    SYSTEM_TYPE_SOFTWARE: ["SaaS", "Desktop Application", "Development Tool", "Operating System"],
    SYSTEM_TYPE_CLOUD: ["Cloud Account", "Cloud Storage", "Cloud Compute", "Cloud Database"],
}

# (key, label, data_type, description, type name or None for common)
SYSTEM_PROPERTIES: tuple[tuple[str, str, str, str, str | None], ...] = (
    ("serialNumber", "Serial Number", "STRING", "Manufacturer serial number", SYSTEM_TYPE_HARDWARE),
    ("hostname", "Hostname", "STRING", "Network hostname", SYSTEM_TYPE_HARDWARE),
    ("ipAddress", "IP Address", "STRING", "Assigned IP address", SYSTEM_TYPE_HARDWARE),
    ("macAddress", "MAC Address", "STRING", "Network interface MAC address", SYSTEM_TYPE_HARDWARE),
    ("operatingSystem", "Operating System", "STRING", "Installed operating system", SYSTEM_TYPE_HARDWARE),
    ("osVersion", "OS Version", "STRING", "Operating system version", SYSTEM_TYPE_HARDWARE),
    ("processor", "Processor", "STRING", "CPU model", SYSTEM_TYPE_HARDWARE),
    ("memory", "Memory", "STRING", "Installed RAM", SYSTEM_TYPE_HARDWARE),
    ("storage", "Storage", "STRING", "Disk capacity", SYSTEM_TYPE_HARDWARE),
    ("licenseKey", "License Key", "STRING", "Software license key", SYSTEM_TYPE_SOFTWARE),
    ("softwareVersion", "Software Version", "STRING", "Installed software version", SYSTEM_TYPE_SOFTWARE),
    ("licenseType", "License Type", "STRING", "Perpetual, subscription, ...", SYSTEM_TYPE_SOFTWARE),
    ("maxUsers", "Max Users", "NUMBER", "Maximum concurrent users or seats", SYSTEM_TYPE_SOFTWARE),
    ("activationCode", "Activation Code", "STRING", "Product activation code", SYSTEM_TYPE_SOFTWARE),
    ("licenseExpiry", "License Expiry", "DATE", "License expiration date", SYSTEM_TYPE_SOFTWARE),
    ("accountId", "Account ID", "STRING", "Cloud provider account identifier", SYSTEM_TYPE_CLOUD),
    ("region", "Region", "STRING", "Cloud region", SYSTEM_TYPE_CLOUD),
    ("subscriptionTier", "Subscription Tier", "STRING", "Plan or tier", SYSTEM_TYPE_CLOUD),
    ("purchaseDate", "Purchase Date", "DATE", "Date of purchase", None),
    ("warrantyExpiry", "Warranty Expiry", "DATE", "Warranty expiration date", None),
    ("value", "Value", "NUMBER", "Purchase value", None),
)

# Property keys suggested when building a schema for a system type
TYPE_PROPERTY_SUGGESTIONS: dict[str, list[str]] = {
    SYSTEM_TYPE_HARDWARE: [
        "serialNumber", "hostname", "ipAddress", "macAddress", "operatingSystem", "osVersion",
        "processor", "memory", "storage", "purchaseDate", "warrantyExpiry", "value",
    ],
    SYSTEM_TYPE_SOFTWARE: [
        "licenseKey", "softwareVersion", "licenseType", "maxUsers", "activationCode",
        "licenseExpiry", "purchaseDate", "value",
    ],
    SYSTEM_TYPE_CLOUD: ["accountId", "region", "subscriptionTier", "licenseExpiry", "value"],
}

# Access requests
ACCESS_STATUSES = ("REQUESTED", "APPROVED", "GRANTED", "REVOKED")
ACCESS_PERMISSION_LEVELS = ("READ", "WRITE", "EDIT", "ADMIN")
ACCESS_TRANSITIONS: dict[str, tuple[str, ...]] = {
    "REQUESTED": ("APPROVED", "REVOKED"),
    "APPROVED": ("GRANTED", "REVOKED"),
    "GRANTED": ("REVOKED",),
    "REVOKED": (),
}

# Workflows
WORKFLOW_STATUSES = ("PENDING", "APPROVED", "REJECTED", "CANCELLED")
WORKFLOW_TYPES = (
    "IT_EQUIPMENT_REQUEST",
    "SOFTWARE_LICENSE_REQUEST",
    "CLOUD_SERVICE_REQUEST",
    "ACCESS_REQUEST",
    "ELEVATED_ACCESS_REQUEST",
    "SYSTEM_ADMIN_REQUEST",
    "POLICY_UPDATE_REQUEST",
    "PROCEDURE_CHANGE_REQUEST",
    "COMPLIANCE_REVIEW_REQUEST",
    "EXPENSE_APPROVAL_REQUEST",
    "BUDGET_REQUEST",
    "VENDOR_PAYMENT_REQUEST",
    "HIRING_REQUEST",
    "ROLE_CHANGE_REQUEST",
    "TRAINING_REQUEST",
    "VENDOR_CONTRACT_REQUEST",
    "FACILITY_REQUEST",
    "TRAVEL_REQUEST",
)
FINANCIAL_WORKFLOW_TYPES = (
    "EXPENSE_APPROVAL_REQUEST",
    "BUDGET_REQUEST",
    "VENDOR_PAYMENT_REQUEST",
    "VENDOR_CONTRACT_REQUEST",
)
WORKFLOW_PRIORITIES = ("URGENT", "HIGH", "MEDIUM", "LOW")

# Timeline
TIMELINE_ENTITY_TYPES = ("EMPLOYEE", "RESOURCE", "ACCESS", "POLICY", "DOCUMENT", "APPROVAL_WORKFLOW")
ACTIVITY_TYPES = (
    "CREATED",
    "UPDATED",
    "DELETED",
    "DELETION_ATTEMPTED",
    "STATUS_CHANGED",
    "APPROVED",
    "REJECTED",
    "PUBLISHED",
    "ARCHIVED",
    "ACCESS_GRANTED",
    "ACCESS_REVOKED",
    "PERMISSION_CHANGED",
    "FILE_UPLOADED",
    "FILE_DELETED",
    "POLICY_REVIEWED",
    "ASSET_ASSIGNED",
    "ASSET_UNASSIGNED",
    "WORKFLOW_STARTED",
    "WORKFLOW_COMPLETED",
    "WORKFLOW_CANCELLED",
    "EMPLOYEE_HIRED",
    "EMPLOYEE_PROMOTED",
    "EMPLOYEE_RESIGNED",
    "COMMENT_ADDED",
    "NOTE_ADDED",
    "ONBOARDING_COMPLETED",
)
