import os
import sys
from pathlib import Path

from werkzeug.security import generate_password_hash

# Ensure repo root is on sys.path when running as a script.
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from app.erm.models import Permission, Role, User  # noqa: E402
from app.erm.modules.resources.catalog import seed_system_catalog  # noqa: E402
from scripts._db_utils import script_session  # noqa: E402

PERMISSIONS: tuple[tuple[str, str], ...] = (
    ("admin.view", "Admin: view dashboard"),
    ("employees.view", "Employees: view"),
    ("employees.create", "Employees: create"),
    ("employees.edit", "Employees: edit"),
    ("employees.delete", "Employees: delete"),
    ("policies.view", "Policies: view"),
    ("policies.create", "Policies: create"),
    ("policies.edit", "Policies: edit"),
    ("policies.delete", "Policies: delete"),
    ("policies.publish", "Policies: publish"),
    ("documents.view", "Documents: view"),
    ("documents.create", "Documents: create"),
    ("documents.edit", "Documents: edit"),
    ("documents.delete", "Documents: delete"),
    ("resources.view", "Resources: view"),
    ("resources.create", "Resources: create"),
    ("resources.edit", "Resources: edit"),
    ("resources.delete", "Resources: delete"),
    ("resources.assign", "Resources: assign and revoke"),
    ("catalog.manage", "Catalog: manage types, categories and properties"),
    ("workflows.view", "Workflows: view"),
    ("workflows.create", "Workflows: create requests"),
    ("workflows.approve", "Workflows: approve or reject"),
    ("access.view", "Access: view requests"),
    ("access.request", "Access: submit requests"),
    ("access.manage", "Access: manage requests"),
    ("timeline.view", "Timeline: view"),
    ("audit.view", "Audit: view"),
)

# Role key -> (display name, permission keys); None means every permission.
ROLES: dict[str, tuple[str, tuple[str, ...] | None]] = {
    "admin": ("Administrator", None),
    "manager": (
        "Manager",
        (
            "admin.view",
            "employees.view",
            "employees.edit",
            "policies.view",
            "policies.create",
            "policies.edit",
            "documents.view",
            "documents.create",
            "documents.edit",
            "resources.view",
            "resources.assign",
            "workflows.view",
            "workflows.create",
            "workflows.approve",
            "access.view",
            "access.request",
            "access.manage",
            "timeline.view",
        ),
    ),
    "employee": (
        "Employee",
        (
            "admin.view",
            "employees.view",
            "policies.view",
            "documents.view",
            "resources.view",
            "workflows.view",
            "workflows.create",
            "access.view",
            "access.request",
        ),
    ),
}


def seed_permissions_and_roles(s) -> dict[str, Role]:
    perms: dict[str, Permission] = {}
    for key, name in PERMISSIONS:
        p = s.query(Permission).filter(Permission.key == key).one_or_none()
        if not p:
            p = Permission(key=key, name=name)
            s.add(p)
        perms[key] = p

    roles: dict[str, Role] = {}
    for role_key, (role_name, keys) in ROLES.items():
        role = s.query(Role).filter(Role.key == role_key).one_or_none()
        if not role:
            role = Role(key=role_key, name=role_name)
            s.add(role)
        for key in keys if keys is not None else perms.keys():
            if perms[key] not in role.permissions:
                role.permissions.append(perms[key])
        roles[role_key] = role
    s.flush()
    return roles


def seed_only(*, database_url: str | None = None) -> None:
    """
    Seed permissions, roles, the admin user and the system resource catalog.
    Idempotent; never overwrites an existing admin user's password.
    """
    admin_email = (os.environ.get("ADMIN_EMAIL") or "admin@erm.local").strip().lower()
    admin_password = os.environ.get("ADMIN_PASSWORD") or "change-me"

    db_url = (database_url or os.environ.get("DATABASE_URL") or "sqlite:///erm.db").strip()

    # Direct engine/session so release can run this without importing app.wsgi.
    with script_session(db_url) as s:
        roles = seed_permissions_and_roles(s)

        user = s.query(User).filter(User.email == admin_email).one_or_none()
        if not user:
            user = User(email=admin_email, password_hash=generate_password_hash(admin_password), is_active=True)
            s.add(user)
        if roles["admin"] not in user.roles:
            user.roles.append(roles["admin"])

        catalog = seed_system_catalog(s)

    print("Initialized database (seed_only).")
    print(f"Admin email: {admin_email}")
    print("Admin password: (from ADMIN_PASSWORD)")
    print(
        "Catalog: {types} types, {categories} categories, {properties} properties created".format(**catalog)
    )


def main() -> None:
    seed_only(database_url=None)


if __name__ == "__main__":
    main()
