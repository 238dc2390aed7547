from types import SimpleNamespace

import pytest

from app.erm.db import session_scope
from app.erm.modules.workflows.routing import (
    approval_chain,
    approver_roles_for,
    display_title,
    financial_approval_limit,
    find_approver,
    workflow_amount,
    workflow_category,
    workflow_priority,
)
from conftest import add_employee, admin_employee_id, login


@pytest.mark.parametrize(
    "workflow_type,amount,roles",
    [
        ("IT_EQUIPMENT_REQUEST", 400, ("SYSTEM_ADMINISTRATOR", "ENGINEERING_MANAGER", "CTO")),
        ("IT_EQUIPMENT_REQUEST", 500, ("SYSTEM_ADMINISTRATOR", "ENGINEERING_MANAGER", "CTO")),
        ("IT_EQUIPMENT_REQUEST", 501, ("ENGINEERING_MANAGER", "CTO")),
        ("IT_EQUIPMENT_REQUEST", 2500, ("CTO",)),
        ("ACCESS_REQUEST", 0, ("ENGINEERING_MANAGER", "SYSTEM_ADMINISTRATOR", "CTO", "CEO")),
        ("POLICY_UPDATE_REQUEST", 0, ("HR_MANAGER", "CEO")),
        ("EXPENSE_APPROVAL_REQUEST", 6000, ("CFO", "CEO")),
        ("HIRING_REQUEST", 0, ("HR_MANAGER", "CEO")),
    ],
)
def test_approver_roles(workflow_type, amount, roles):
    assert approver_roles_for(workflow_type, amount) == roles


def test_expense_routing_tiers():
    small = approver_roles_for("EXPENSE_APPROVAL_REQUEST", 800)
    assert "COO" in small and "PRODUCT_MANAGER" in small
    mid = approver_roles_for("EXPENSE_APPROVAL_REQUEST", 3000)
    assert mid[-2:] == ("CTO", "CEO")
    assert "CFO" not in mid


def test_financial_limits():
    assert financial_approval_limit("CEO") == float("inf")
    assert financial_approval_limit("CFO") == 50000
    assert financial_approval_limit("CTO") == 25000
    assert financial_approval_limit("SALES_MANAGER") == 10000
    assert financial_approval_limit("HR_MANAGER") == 5000
    assert financial_approval_limit("BACKEND_DEVELOPER") == 1000
    assert financial_approval_limit(None) == 1000


def test_amount_category_priority_and_chain():
    assert workflow_amount({"estimatedCost": "750.5"}) == 750.5
    assert workflow_amount({"amount": True, "cost": 12}) == 12
    assert workflow_amount(None) == 0
    assert workflow_category("TRAVEL_REQUEST") == "FINANCIAL"
    assert workflow_category("SYSTEM_ADMIN_REQUEST") == "SECURITY_ACCESS"
    assert workflow_category("SOMETHING_ELSE") == "GENERAL_OPERATIONS"
    assert workflow_priority("HIRING_REQUEST") == "URGENT"
    assert workflow_priority("EXPENSE_APPROVAL_REQUEST", 6000) == "HIGH"
    assert workflow_priority("IT_EQUIPMENT_REQUEST", 100) == "MEDIUM"
    assert workflow_priority("TRAINING_REQUEST") == "LOW"
    assert approval_chain("IT_EQUIPMENT_REQUEST", 2500) == ["SYSTEM_ADMINISTRATOR", "ENGINEERING_MANAGER", "CTO"]
    assert approval_chain("VENDOR_CONTRACT_REQUEST", 20000) == ["CFO", "CEO"]
    assert approval_chain("POLICY_UPDATE_REQUEST") == ["HR_MANAGER"]


def test_display_title():
    assert display_title(SimpleNamespace(type="HIRING_REQUEST", data={"position": "SRE"})) == "Hiring: SRE"
    assert (
        display_title(SimpleNamespace(type="POLICY_UPDATE_REQUEST", data={"policyTitle": "Remote Work"}))
        == "Policy review: Remote Work"
    )
    assert (
        display_title(SimpleNamespace(type="EXPENSE_APPROVAL_REQUEST", data={"amount": 1234.5}))
        == "Expense Approval (1,234.50)"
    )
    assert display_title(SimpleNamespace(type="TRAVEL_REQUEST", data={"title": "Berlin offsite"})) == "Berlin offsite"


def test_find_approver_prefers_role_order_and_skips_requester(app):
    cto = add_employee(app, name="Carl Cto", role="CTO")
    em = add_employee(app, name="Erin Manager", role="ENGINEERING_MANAGER")
    add_employee(app, name="Old Manager", role="ENGINEERING_MANAGER", status="INACTIVE")
    with session_scope(app) as s:
        assert find_approver(s, "IT_EQUIPMENT_REQUEST", 1000).id == em
        assert find_approver(s, "IT_EQUIPMENT_REQUEST", 1000, requester_id=em).id == cto
        assert find_approver(s, "IT_EQUIPMENT_REQUEST", 5000, requester_id=cto) is None


def _requester(app, client):
    add_employee(app, name="Rita Requester", role="BACKEND_DEVELOPER", login_role="employee")
    return login(client, "rita.requester@example.com")


def test_it_request_routed_and_approved_by_sysadmin(app, client):
    sysadmin = add_employee(app, name="Sid Sysadmin", role="SYSTEM_ADMINISTRATOR", login_role="manager")
    rita = _requester(app, client)

    r = rita.post("/api/workflows", json={"type": "IT_EQUIPMENT_REQUEST", "data": {"itemName": "Monitor", "estimatedCost": 300}})
    assert r.status_code == 201, r.get_data(as_text=True)
    wf = r.json
    assert wf["status"] == "PENDING"
    assert wf["approver_id"] == sysadmin
    assert wf["title"] == "It Equipment: Monitor"
    assert wf["category"] == "IT_OPERATIONS"
    assert wf["amount"] == 300

    # Employees cannot decide workflows.
    r = rita.post(f"/api/workflows/{wf['id']}/approve", json={})
    assert r.status_code == 403

    # Holding the permission is not enough; only the routed approver decides.
    admin = login(app.test_client())
    r = admin.post(f"/api/workflows/{wf['id']}/approve", json={})
    assert r.status_code == 400
    assert r.json["error"] == "Only the assigned approver can decide this workflow."

    sid = login(app.test_client(), "sid.sysadmin@example.com")
    assert [p["id"] for p in sid.get("/api/workflows/pending").json["items"]] == [wf["id"]]
    r = sid.post(f"/api/workflows/{wf['id']}/approve", json={"comments": "Go ahead"})
    assert r.status_code == 200
    assert r.json["status"] == "APPROVED"
    assert r.json["comments"] == "Go ahead"
    assert r.json["decided_at"] is not None

    r = sid.post(f"/api/workflows/{wf['id']}/reject", json={})
    assert r.status_code == 400
    assert r.json["error"] == "Workflow is already APPROVED."

    stats = sid.get("/api/workflows/stats").json
    assert stats["approved"] == 1
    assert stats["pending"] == 0

    r = admin.get(f"/api/timeline/APPROVAL_WORKFLOW/{wf['id']}?limit=50")
    types = [e["activity_type"] for e in r.json["items"]]
    assert {"WORKFLOW_STARTED", "STATUS_CHANGED", "WORKFLOW_COMPLETED"} <= set(types)


def test_reject_defaults_comment(app, client):
    add_employee(app, name="Sid Sysadmin", role="SYSTEM_ADMINISTRATOR", login_role="manager")
    rita = _requester(app, client)
    wf = rita.post("/api/workflows", json={"type": "SOFTWARE_LICENSE_REQUEST", "data": {"cost": 50}}).json

    sid = login(app.test_client(), "sid.sysadmin@example.com")
    r = sid.post(f"/api/workflows/{wf['id']}/reject", json={})
    assert r.status_code == 200
    assert r.json["status"] == "REJECTED"
    assert r.json["comments"] == "Rejected"


def test_no_approver_available(app, client):
    rita = _requester(app, client)
    r = rita.post("/api/workflows", json={"type": "IT_EQUIPMENT_REQUEST", "data": {"estimatedCost": 5000}})
    assert r.status_code == 400
    assert r.json["error"] == "No approver available for IT_EQUIPMENT_REQUEST."


def test_financial_workflow_validation_and_limits(app, client):
    hr = add_employee(app, name="Hana Hr", role="HR_MANAGER", login_role="manager")
    rita = _requester(app, client)

    r = rita.post("/api/workflows", json={"type": "EXPENSE_APPROVAL_REQUEST", "data": {}})
    assert r.status_code == 400
    assert r.json["error"] == "Financial workflows require a positive amount."

    r = rita.post("/api/workflows", json={"type": "BOGUS_REQUEST"})
    assert r.status_code == 400

    r = rita.post(
        "/api/workflows",
        json={"type": "EXPENSE_APPROVAL_REQUEST", "data": {"amount": 8000}, "approver_id": hr},
    )
    assert r.status_code == 201
    wf = r.json
    assert wf["priority"] == "HIGH"

    hana = login(app.test_client(), "hana.hr@example.com")
    r = hana.post(f"/api/workflows/{wf['id']}/approve", json={})
    assert r.status_code == 400
    assert r.json["error"] == "Amount 8,000.00 exceeds your approval limit of 5,000.00."

    # Rejecting is not limited by amount.
    assert hana.post(f"/api/workflows/{wf['id']}/reject", json={}).status_code == 200


def test_large_expense_goes_to_ceo(app, client):
    rita = _requester(app, client)
    r = rita.post("/api/workflows", json={"type": "EXPENSE_APPROVAL_REQUEST", "data": {"amount": 20000}})
    assert r.status_code == 201
    assert r.json["approver_id"] == admin_employee_id(app)

    admin = login(app.test_client())
    r = admin.post(f"/api/workflows/{r.json['id']}/approve", json={})
    assert r.status_code == 200


def test_requester_can_cancel(app, client):
    add_employee(app, name="Sid Sysadmin", role="SYSTEM_ADMINISTRATOR", login_role="manager")
    rita = _requester(app, client)
    add_employee(app, name="Otto Other", role="QA_ENGINEER", login_role="employee")
    wf = rita.post("/api/workflows", json={"type": "IT_EQUIPMENT_REQUEST", "data": {}}).json

    otto = login(app.test_client(), "otto.other@example.com")
    r = otto.post(f"/api/workflows/{wf['id']}/cancel", json={})
    assert r.status_code == 400

    r = rita.post(f"/api/workflows/{wf['id']}/cancel", json={"reason": "No longer needed"})
    assert r.status_code == 200
    assert r.json["status"] == "CANCELLED"
    assert r.json["comments"] == "No longer needed"

    r = rita.post(f"/api/workflows/{wf['id']}/cancel", json={})
    assert r.status_code == 400

    r = rita.get("/api/workflows?mine=1&status=CANCELLED")
    assert r.json["pagination"]["total"] == 1


def test_chain_endpoint(api):
    r = api.get("/api/workflows/chain?type=IT_EQUIPMENT_REQUEST&amount=750")
    assert r.status_code == 200
    assert r.json["chain"] == ["SYSTEM_ADMINISTRATOR", "ENGINEERING_MANAGER"]
    assert r.json["approver_roles"] == ["ENGINEERING_MANAGER", "CTO"]
