import io

from conftest import add_employee, admin_employee_id, login


def _hr(app):
    add_employee(app, name="Hana Hr", role="HR_MANAGER", department="People", login_role="manager")
    return login(app.test_client(), "hana.hr@example.com")


def _policy(api, **overrides):
    payload = {"title": "Remote Work", "category": "HR", "content": "Work from anywhere."}
    payload.update(overrides)
    r = api.post("/api/policies", json=payload)
    assert r.status_code == 201, r.get_data(as_text=True)
    return r.json


def _policy_workflow(client, policy_id):
    rows = client.get("/api/workflows?type=POLICY_UPDATE_REQUEST&limit=100").json["items"]
    return next(w for w in rows if w["policy_id"] == policy_id)


def test_create_defaults(app, api):
    p = _policy(api)
    assert p["status"] == "DRAFT"
    assert p["version"] == 1
    assert p["owner_id"] == admin_employee_id(app)
    assert p["file"] is None

    r = api.post("/api/policies", json={"title": "", "category": "LEGAL"})
    assert r.status_code == 400
    assert len(r.json["errors"]) == 2

    r = api.post("/api/policies", json={"title": "Shortcut", "category": "IT", "status": "PUBLISHED"})
    assert r.status_code == 400
    assert r.json["errors"] == ["Status PUBLISHED can only be set through the approval workflow."]


def test_review_approval_and_publish(app, api):
    hana = _hr(app)
    p = _policy(api, status="REVIEW")

    wf = _policy_workflow(hana, p["id"])
    assert wf["status"] == "PENDING"
    assert wf["title"] == "Policy review: Remote Work"

    r = api.post(f"/api/policies/{p['id']}/publish")
    assert r.status_code == 400
    assert r.json["error"] == "Only approved policies can be published (current status: REVIEW)."

    r = hana.post(f"/api/workflows/{wf['id']}/approve", json={"comments": "Looks good"})
    assert r.status_code == 200, r.get_data(as_text=True)

    p = api.get(f"/api/policies/{p['id']}").json
    assert p["status"] == "APPROVED"
    assert p["last_review_date"] is not None

    r = api.post(f"/api/policies/{p['id']}/publish")
    assert r.status_code == 200
    assert r.json["status"] == "PUBLISHED"
    assert r.json["effective_date"] is not None

    r = api.patch(f"/api/policies/{p['id']}", json={"content": "Changed"})
    assert r.status_code == 400
    assert r.json["error"] == "Published policies cannot be edited."

    r = api.delete(f"/api/policies/{p['id']}")
    assert r.status_code == 409

    r = api.get(f"/api/policies/{p['id']}/history?limit=50")
    types = {e["activity_type"] for e in r.json["items"]}
    assert {"CREATED", "POLICY_REVIEWED", "APPROVED", "PUBLISHED"} <= types


def test_rejected_policy_is_locked(app, api):
    hana = _hr(app)
    p = _policy(api, status="REVIEW")
    wf = _policy_workflow(hana, p["id"])
    assert hana.post(f"/api/workflows/{wf['id']}/reject", json={"comments": "Too vague"}).status_code == 200

    p = api.get(f"/api/policies/{p['id']}").json
    assert p["status"] == "REJECTED"
    r = api.patch(f"/api/policies/{p['id']}", json={"title": "Remote Work v2"})
    assert r.status_code == 400
    assert r.json["error"] == "Rejected policies cannot be edited."


def test_edits_bump_version(api):
    p = _policy(api)
    r = api.patch(f"/api/policies/{p['id']}", json={"review_date": "2027-03-01"})
    assert r.status_code == 200
    assert r.json["version"] == 1
    assert r.json["review_date"] == "2027-03-01"

    r = api.patch(f"/api/policies/{p['id']}", json={"content": "Work from anywhere, within reason.", "reason": "clarify"})
    assert r.json["version"] == 2

    r = api.patch(f"/api/policies/{p['id']}", json={"status": "APPROVED"})
    assert r.status_code == 400

    r = api.get(f"/api/audit?entity_type=Policy&entity_id={p['id']}")
    actions = [e["action"] for e in r.json["items"]]
    assert "policy.field_change" in actions
    change = next(e for e in r.json["items"] if e["metadata"].get("field") == "version")
    assert change["metadata"]["old"] == 1
    assert change["metadata"]["new"] == 2


def test_moving_to_review_starts_workflow(app, api):
    hana = _hr(app)
    p = _policy(api)
    r = api.patch(f"/api/policies/{p['id']}", json={"status": "REVIEW"})
    assert r.status_code == 200
    assert _policy_workflow(hana, p["id"])["status"] == "PENDING"


def test_file_upload_download(app, api):
    hana = _hr(app)
    p = _policy(api, content=None, status="REVIEW")
    # Nothing to review yet.
    assert hana.get("/api/workflows?type=POLICY_UPDATE_REQUEST").json["pagination"]["total"] == 0

    r = api.post(
        f"/api/policies/{p['id']}/file",
        data={"file": (io.BytesIO(b"%PDF-1.4 policy"), "remote work.pdf")},
        content_type="multipart/form-data",
    )
    assert r.status_code == 200, r.get_data(as_text=True)
    assert r.json["version"] == 2
    assert r.json["file"] == {"name": "remote work.pdf", "size": 15, "mime_type": "application/pdf"}
    assert _policy_workflow(hana, p["id"])["status"] == "PENDING"

    r = api.get(f"/api/policies/{p['id']}/file")
    assert r.status_code == 200
    assert r.data == b"%PDF-1.4 policy"

    r = api.post(f"/api/policies/{p['id']}/file", data={}, content_type="multipart/form-data")
    assert r.status_code == 400


def test_download_without_file_is_404(api):
    p = _policy(api)
    assert api.get(f"/api/policies/{p['id']}/file").status_code == 404


def test_delete_cancels_pending_review(app, api):
    hana = _hr(app)
    p = _policy(api, status="REVIEW")
    wf = _policy_workflow(hana, p["id"])

    r = api.delete(f"/api/policies/{p['id']}")
    assert r.status_code == 200
    assert api.get(f"/api/policies/{p['id']}").status_code == 404

    r = api.get(f"/api/workflows/{wf['id']}")
    assert r.json["status"] == "CANCELLED"
    assert r.json["comments"] == "Policy deleted"


def test_list_filters(api):
    _policy(api)
    _policy(api, title="Password Rotation", category="SECURITY", content="Rotate every 90 days.")
    assert api.get("/api/policies?category=SECURITY").json["pagination"]["total"] == 1
    assert api.get("/api/policies?search=rotate").json["pagination"]["total"] == 1
    assert api.get("/api/policies?status=DRAFT").json["pagination"]["total"] == 2


def test_employee_cannot_create(app):
    add_employee(app, name="Emma Employee", role="EMPLOYEE", login_role="employee")
    emma = login(app.test_client(), "emma.employee@example.com")
    assert emma.get("/api/policies").status_code == 200
    r = emma.post("/api/policies", json={"title": "Mine", "category": "HR"})
    assert r.status_code == 403
    assert r.json["missing_permission"] == "policies.create"
