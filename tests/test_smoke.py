from conftest import add_employee, login


def test_health_ok(client):
    r = client.get("/health")
    assert r.status_code == 200
    assert r.json["ok"] is True

    r = client.get("/healthz")
    assert r.status_code == 200
    assert r.get_data(as_text=True) == "ok"


def test_login_and_admin_access(client):
    # Anonymous is sent to the login page
    r = client.get("/admin/")
    assert r.status_code == 302
    assert "/auth/login" in r.headers["Location"]

    r = client.post("/auth/login", data={"email": "admin@example.com", "password": "pw"}, follow_redirects=False)
    assert r.status_code == 302

    r = client.get("/admin/")
    assert r.status_code == 200
    assert b"Dashboard" in r.data


def test_json_login_returns_csrf_token(client):
    r = client.post("/auth/login", json={"email": "admin@example.com", "password": "pw"})
    assert r.status_code == 200
    assert r.json["ok"] is True
    assert r.json["user"]["email"] == "admin@example.com"
    assert r.json["csrf_token"]


def test_bad_password_rejected_and_rate_limited(client):
    for _ in range(5):
        r = client.post("/auth/login", json={"email": "admin@example.com", "password": "nope"})
        assert r.status_code == 401
    r = client.post("/auth/login", json={"email": "admin@example.com", "password": "pw"})
    assert r.status_code == 429


def test_api_requires_authentication(client):
    r = client.get("/api/employees")
    assert r.status_code == 401
    assert r.json["error"] == "Not authenticated"


def test_api_index_lists_endpoints(api):
    r = api.get("/api/")
    assert r.status_code == 200
    assert r.json["endpoints"]["employees"] == "/api/employees"
    assert r.json["endpoints"]["workflows"] == "/api/workflows"


def test_me_reports_roles_permissions_and_employee(api):
    r = api.get("/auth/me")
    assert r.status_code == 200
    assert r.json["roles"] == ["admin"]
    assert "workflows.approve" in r.json["permissions"]
    assert "audit" in r.json["pages"]
    assert r.json["employee"]["role"] == "CEO"


def test_missing_permission_is_reported(app, client):
    add_employee(app, name="Eve Employee", role="EMPLOYEE", login_role="employee")
    api = login(client, "eve.employee@example.com")

    r = api.get("/api/timeline")
    assert r.status_code == 403
    assert r.json["missing_permission"] == "timeline.view"

    r = api.post("/api/employees", json={"name": "X", "email": "x@example.com", "department": "Ops"})
    assert r.status_code == 403
    assert r.json["missing_permission"] == "employees.create"


def test_writes_require_csrf_token(client):
    client.post("/auth/login", json={"email": "admin@example.com", "password": "pw"})
    r = client.post("/api/employees", json={"name": "X", "email": "x@example.com", "department": "Ops"})
    assert r.status_code == 400
    assert "CSRF" in r.json["error"]


def test_csrf_token_accepted_in_json_body(client):
    token = client.post("/auth/login", json={"email": "admin@example.com", "password": "pw"}).json["csrf_token"]
    r = client.post(
        "/api/employees",
        json={"name": "X Person", "email": "x@example.com", "department": "Ops", "csrf_token": token},
    )
    assert r.status_code == 201


def test_dashboard_summary(api):
    r = api.get("/api/dashboard")
    assert r.status_code == 200
    assert r.json["employees"]["total"] == 1
    assert r.json["pending_workflows"] == 0


def test_unknown_api_path_is_json_404(api):
    r = api.get("/api/employees/9999")
    assert r.status_code == 404
    assert r.json["error"]
