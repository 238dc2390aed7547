"""CSRF protection for the cookie session."""

import secrets

from flask import Flask, Request, jsonify, render_template, request, session

CSRF_SESSION_KEY = "csrf_token"
CSRF_HEADER = "X-CSRF-Token"

_WRITE_METHODS = frozenset({"POST", "PUT", "PATCH", "DELETE"})
# "/health" also covers "/healthz".
_UNGUARDED_PREFIXES = ("/static/", "/health")


def ensure_csrf_token() -> str:
    token = session.get(CSRF_SESSION_KEY)
    if not token:
        token = secrets.token_urlsafe(32)
        session[CSRF_SESSION_KEY] = token
    return token


def submitted_csrf_token(req: Request) -> str | None:
    """Token sent with a write: header first, then form field, then JSON body."""
    token = req.headers.get(CSRF_HEADER) or req.form.get(CSRF_SESSION_KEY)
    if not token and req.is_json:
        body = req.get_json(silent=True)
        if isinstance(body, dict):
            token = body.get(CSRF_SESSION_KEY)
    return str(token) if token else None


def validate_csrf(req: Request) -> bool:
    sent = submitted_csrf_token(req)
    expected = session.get(CSRF_SESSION_KEY)
    return bool(sent and expected and secrets.compare_digest(sent, str(expected)))


def init_csrf(app: Flask) -> None:
    @app.context_processor
    def _inject_csrf() -> dict:
        return {"csrf_token": ensure_csrf_token()}

    @app.before_request
    def _csrf_guard():
        if request.path.startswith(_UNGUARDED_PREFIXES):
            return None
        ensure_csrf_token()
        session.permanent = True
        if request.method not in _WRITE_METHODS:
            return None
        # Login/logout carry no session yet
        if (request.endpoint or "").startswith("auth."):
            return None
        if validate_csrf(request):
            return None
        message = "CSRF token missing or invalid."
        if request.path.startswith("/api/"):
            return jsonify({"error": message}), 400
        return render_template("errors/400.html", message=message), 400
