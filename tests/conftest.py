from datetime import date

import pytest
from werkzeug.security import generate_password_hash

from app.erm import create_app
from app.erm.db import session_scope
from app.erm.models import Base, Role, User
from app.erm.modules.employees.models import Employee
from app.erm.modules.resources.catalog import seed_system_catalog
from scripts.init_db import seed_permissions_and_roles

ADMIN_EMAIL = "admin@example.com"
PASSWORD = "pw"


class ApiClient:
    """Test client that sends the session CSRF token on every write."""

    def __init__(self, client, csrf_token: str):
        self.client = client
        self.csrf_token = csrf_token

    def _headers(self, kw):
        headers = dict(kw.pop("headers", None) or {})
        headers["X-CSRF-Token"] = self.csrf_token
        return headers

    def get(self, url, **kw):
        return self.client.get(url, **kw)

    def post(self, url, json=None, **kw):
        return self.client.post(url, json=json, headers=self._headers(kw), **kw)

    def put(self, url, json=None, **kw):
        return self.client.put(url, json=json, headers=self._headers(kw), **kw)

    def patch(self, url, json=None, **kw):
        return self.client.patch(url, json=json, headers=self._headers(kw), **kw)

    def delete(self, url, **kw):
        return self.client.delete(url, headers=self._headers(kw), **kw)


@pytest.fixture(autouse=True)
def _reset_login_attempts():
    from app.erm.auth import _login_attempts

    _login_attempts.clear()
    yield
    _login_attempts.clear()


@pytest.fixture()
def app(tmp_path, monkeypatch):
    monkeypatch.setenv("SECRET_KEY", "test-secret")
    monkeypatch.setenv("DATABASE_URL", f"sqlite:///{tmp_path/'test.db'}")
    monkeypatch.setenv("ENV", "test")
    monkeypatch.setenv("STORAGE_BACKEND", "local")
    monkeypatch.setenv("STORAGE_LOCAL_ROOT", str(tmp_path / "storage"))
    for k in ("S3_ENDPOINT", "S3_REGION", "S3_BUCKET", "S3_ACCESS_KEY_ID", "S3_SECRET_ACCESS_KEY"):
        monkeypatch.delenv(k, raising=False)

    app = create_app()
    engine = app.extensions["sqlalchemy_engine"]
    Base.metadata.create_all(bind=engine)

    with session_scope(app) as s:
        roles = seed_permissions_and_roles(s)
        u = User(email=ADMIN_EMAIL, password_hash=generate_password_hash(PASSWORD), is_active=True)
        u.roles.append(roles["admin"])
        s.add(u)
        s.flush()
        s.add(
            Employee(
                name="Alice Admin",
                email="alice@example.com",
                role="CEO",
                department="Executive",
                status="ACTIVE",
                joining_date=date(2020, 1, 1),
                user_id=u.id,
            )
        )
        seed_system_catalog(s)

    return app


@pytest.fixture()
def client(app):
    return app.test_client()


def login(client, email: str = ADMIN_EMAIL, password: str = PASSWORD) -> ApiClient:
    r = client.post("/auth/login", json={"email": email, "password": password})
    assert r.status_code == 200, r.get_data(as_text=True)
    return ApiClient(client, r.json["csrf_token"])


@pytest.fixture()
def api(client):
    return login(client)


def add_employee(app, *, name: str, role: str, email: str | None = None, department: str = "Engineering",
                 manager_id: int | None = None, status: str = "ACTIVE", login_role: str | None = None) -> int:
    """Create an employee (optionally with a linked login holding `login_role`); returns the employee id."""
    email = email or f"{name.lower().replace(' ', '.')}@example.com"
    with session_scope(app) as s:
        user_id = None
        if login_role:
            u = User(email=email, password_hash=generate_password_hash(PASSWORD), is_active=True)
            u.roles.append(s.query(Role).filter(Role.key == login_role).one())
            s.add(u)
            s.flush()
            user_id = u.id
        emp = Employee(
            name=name,
            email=email,
            role=role,
            department=department,
            status=status,
            joining_date=date(2021, 6, 1),
            manager_id=manager_id,
            user_id=user_id,
        )
        s.add(emp)
        s.flush()
        return emp.id


def admin_employee_id(app) -> int:
    with session_scope(app) as s:
        return s.query(Employee).filter(Employee.email == "alice@example.com").one().id


def type_by_name(api, name: str) -> dict:
    r = api.get("/api/resource-types")
    assert r.status_code == 200
    return next(t for t in r.json["items"] if t["name"] == name)


def category_id(api, type_name: str, category_name: str) -> int:
    rt = type_by_name(api, type_name)
    return next(c["id"] for c in rt["categories"] if c["name"] == category_name)


HARDWARE_SCHEMA = [
    {"key": "serialNumber", "label": "Serial Number", "dataType": "STRING", "isRequired": True},
    {"key": "warrantyExpiry", "label": "Warranty Expiry", "dataType": "DATE", "isRequired": True},
    {"key": "memory", "label": "Memory", "dataType": "STRING"},
]


def create_laptop_resource(api, name: str = "MacBook Pro 14") -> dict:
    r = api.post(
        "/api/resources",
        json={
            "name": name,
            "resource_type_id": type_by_name(api, "Hardware")["id"],
            "resource_category_id": category_id(api, "Hardware", "Laptop"),
            "property_schema": HARDWARE_SCHEMA,
        },
    )
    assert r.status_code == 201, r.get_data(as_text=True)
    return r.json


def create_laptop_item(api, resource_id: int, serial: str) -> dict:
    r = api.post(
        f"/api/resources/{resource_id}/items",
        json={"properties": {"serialNumber": serial, "warrantyExpiry": "2027-01-31", "memory": "16GB"}},
    )
    assert r.status_code == 201, r.get_data(as_text=True)
    return r.json
