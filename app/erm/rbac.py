from collections.abc import Callable
from functools import wraps
from typing import Any

from flask import abort, g, jsonify, redirect, request, url_for

from app.erm.models import User

# Page name -> permission needed to open it.
PAGE_PERMISSIONS: dict[str, str] = {
    "dashboard": "admin.view",
    "employees": "employees.view",
    "policies": "policies.view",
    "documents": "documents.view",
    "resources": "resources.view",
    "catalog": "catalog.manage",
    "approvals": "workflows.view",
    "access": "access.view",
    "timeline": "timeline.view",
    "audit": "audit.view",
}


def user_permission_keys(user: User | None) -> set[str]:
    if not user or not user.is_active:
        return set()
    return {perm.key for role in user.roles for perm in role.permissions}


def user_has_permission(user: User | None, permission_key: str) -> bool:
    return permission_key in user_permission_keys(user)


def can_access_page(user: User | None, page: str) -> bool:
    key = PAGE_PERMISSIONS.get(page)
    if key is None:
        return False
    return user_has_permission(user, key)


def accessible_pages(user: User | None) -> list[str]:
    keys = user_permission_keys(user)
    return [page for page, key in PAGE_PERMISSIONS.items() if key in keys]


def require_permission(permission_key: str) -> Callable[[Callable[..., Any]], Callable[..., Any]]:
    def decorator(fn: Callable[..., Any]) -> Callable[..., Any]:
        @wraps(fn)
        def wrapped(*args: Any, **kwargs: Any):
            user: User | None = getattr(g, "current_user", None)
            if not user or not user.is_active:
                # API callers get a status code; browsers get the login page.
                if request.path.startswith("/api/"):
                    return jsonify({"error": "Not authenticated"}), 401
                nxt = request.full_path or request.path
                # Avoid trailing '?' from full_path when there is no query string.
                if nxt.endswith("?"):
                    nxt = nxt[:-1]
                return redirect(url_for("auth.login_get", next=nxt))
            if not user_has_permission(user, permission_key):
                g.missing_permission = permission_key
                abort(403)
            return fn(*args, **kwargs)

        return wrapped

    return decorator
