from __future__ import annotations

import time
import uuid
from collections import defaultdict, deque

from flask import Blueprint, current_app, flash, g, jsonify, redirect, render_template, request, session, url_for
from sqlalchemy.orm import Session
from werkzeug.security import check_password_hash

from app.erm.audit import record_event
from app.erm.db import db_session
from app.erm.models import User
from app.erm.modules.employees.models import Employee
from app.erm.rbac import accessible_pages, require_permission, user_permission_keys
from app.erm.security import ensure_csrf_token

bp = Blueprint("auth", __name__)

LOGIN_MAX_ATTEMPTS = 5
LOGIN_WINDOW_SECONDS = 300

# client ip -> monotonic timestamps of recent login attempts
_login_attempts: dict[str, deque[float]] = defaultdict(deque)


def _login_throttled(ip: str) -> bool:
    attempts = _login_attempts[ip]
    cutoff = time.monotonic() - LOGIN_WINDOW_SECONDS
    while attempts and attempts[0] <= cutoff:
        attempts.popleft()
    return len(attempts) >= LOGIN_MAX_ATTEMPTS


def current_user() -> User:
    u = getattr(g, "current_user", None)
    if not u:
        # require_permission guards every caller
        raise RuntimeError("No current user")
    return u


def actor_employee(s: Session, user: User | None) -> Employee | None:
    """The employee record linked to a login account, if any."""
    if user is None:
        return None
    return s.query(Employee).filter(Employee.user_id == user.id).one_or_none()


def _wants_json() -> bool:
    return request.is_json or request.accept_mimetypes.best == "application/json"


def load_current_user() -> None:
    """Attach g.request_id and resolve g.current_user from the session cookie."""
    g.request_id = getattr(g, "request_id", None) or uuid.uuid4().hex
    g.current_user = None
    if request.path.startswith(("/static/", "/health")):
        return

    user_id = session.get("user_id")
    if not user_id:
        return
    try:
        user = db_session().get(User, int(user_id))
    except Exception as e:
        current_app.logger.error("Session user lookup failed, logging out (request_id=%s): %s", g.request_id, e)
        session.pop("user_id", None)
        return
    if user is None or not user.is_active:
        session.pop("user_id", None)
        return
    g.current_user = user


def _login_rejected(message: str, status: int):
    if _wants_json():
        return jsonify({"error": message}), status
    flash(message, "danger")
    return redirect(url_for("auth.login_get"))


@bp.get("/login")
def login_get():
    return render_template("auth/login.html", next=(request.args.get("next") or "").strip())


@bp.post("/login")
def login_post():
    data = (request.get_json(silent=True) if request.is_json else request.form) or {}
    email = (data.get("email") or "").strip().lower()
    password = data.get("password") or ""
    nxt = (data.get("next") or "").strip()
    ip = request.remote_addr or "unknown"

    if _login_throttled(ip):
        current_app.logger.warning("Login throttled ip=%s", ip)
        return _login_rejected("Too many login attempts. Please wait 5 minutes.", 429)
    _login_attempts[ip].append(time.monotonic())

    s = db_session()
    user = s.query(User).filter(User.email == email).one_or_none()
    if user is None or not user.is_active or not check_password_hash(user.password_hash, password):
        record_event(
            s,
            actor=None,
            action="auth.login_failed",
            entity_type="User",
            entity_id=email,
            reason="Invalid credentials",
            metadata={"email": email},
        )
        s.commit()
        return _login_rejected("Invalid credentials.", 401)

    session["user_id"] = user.id
    _login_attempts.pop(ip, None)
    record_event(s, actor=user, action="auth.login", entity_type="User", entity_id=str(user.id))
    s.commit()
    current_app.logger.info("Login ok user_id=%s request_id=%s", user.id, g.request_id)
    if _wants_json():
        return jsonify({"ok": True, "user": {"id": user.id, "email": user.email}, "csrf_token": ensure_csrf_token()})
    # Local paths only; "//host" would leave the site.
    if nxt.startswith("/") and not nxt.startswith("//"):
        return redirect(nxt)
    return redirect(url_for("admin.index"))


@bp.route("/logout", methods=["GET", "POST"])
def logout():
    user = getattr(g, "current_user", None)
    if user:
        s = db_session()
        record_event(s, actor=user, action="auth.logout", entity_type="User", entity_id=str(user.id))
        s.commit()
    session.pop("user_id", None)
    if _wants_json():
        return jsonify({"ok": True})
    return redirect(url_for("routes.index"))


@bp.get("/csrf")
def csrf():
    return jsonify({"csrf_token": ensure_csrf_token()})


@bp.get("/me")
@require_permission("admin.view")
def me():
    s = db_session()
    user = current_user()
    emp = actor_employee(s, user)
    return jsonify(
        {
            "id": user.id,
            "email": user.email,
            "roles": [r.key for r in user.roles],
            "permissions": sorted(user_permission_keys(user)),
            "pages": accessible_pages(user),
            "employee": {"id": emp.id, "name": emp.name, "role": emp.role} if emp else None,
        }
    )
