import logging
import os
from datetime import timedelta

from dotenv import load_dotenv
from flask import Flask, g, jsonify, render_template, request

from app.erm.config import check_production_config, load_config
from app.erm.db import init_db, teardown_db_session
from app.erm.security import init_csrf
from app.erm.routes import bp as routes_bp
from app.erm.auth import bp as auth_bp, load_current_user
from app.erm.admin import api_bp as dashboard_api_bp, bp as admin_bp
from app.erm.modules.employees.admin import bp as employees_bp
from app.erm.modules.policies.admin import bp as policies_bp
from app.erm.modules.documents.admin import bp as documents_bp
from app.erm.modules.resources.admin import bp as resources_bp
from app.erm.modules.workflows.admin import bp as workflows_bp
from app.erm.modules.access.admin import bp as access_bp
from app.erm.modules.timeline.admin import bp as timeline_bp

logger = logging.getLogger(__name__)

_ERROR_MESSAGES = {
    400: "Bad request.",
    401: "Authentication required.",
    403: "Forbidden.",
    404: "Not found.",
    413: "Uploaded file is too large.",
    500: "Internal server error.",
}

# (blueprint, url_prefix); every module API lives under /api
_BLUEPRINTS = (
    (routes_bp, None),
    (auth_bp, "/auth"),
    (admin_bp, "/admin"),
    (dashboard_api_bp, "/api"),
    (employees_bp, "/api"),
    (policies_bp, "/api"),
    (documents_bp, "/api"),
    (resources_bp, "/api"),
    (workflows_bp, "/api"),
    (access_bp, "/api"),
    (timeline_bp, "/api"),
)


def _is_api_request() -> bool:
    return request.path.startswith("/api/")


def _configure_logging(app: Flask) -> None:
    level = getattr(logging, str(app.config.get("LOG_LEVEL") or "INFO").upper(), logging.INFO)
    logging.basicConfig(level=level, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    app.logger.setLevel(level)


def _register_error_handlers(app: Flask) -> None:
    def _error_response(status: int, e, **extra):
        message = getattr(e, "description", None) if status != 500 else None
        if _is_api_request():
            body = {"error": message or _ERROR_MESSAGES[status]}
            body.update({k: v for k, v in extra.items() if v is not None})
            return jsonify(body), status
        return render_template(f"errors/{status}.html", message=message, **extra), status

    def _forbidden(e):
        missing = getattr(g, "missing_permission", None)
        if missing:
            app.logger.warning("Forbidden: missing_permission=%s request_id=%s", missing, getattr(g, "request_id", None))
        return _error_response(403, e, missing_permission=missing)

    def _server_error(e):
        app.logger.exception("Unhandled 500 (request_id=%s)", getattr(g, "request_id", None))
        return _error_response(500, e)

    for status in (400, 401, 404, 413):
        app.register_error_handler(status, lambda e, status=status: _error_response(status, e))
    app.register_error_handler(403, _forbidden)
    app.register_error_handler(500, _server_error)


def create_app() -> Flask:
    load_dotenv()
    app = Flask(__name__, template_folder="templates")
    app.config.from_mapping(load_config())
    app.config["PERMANENT_SESSION_LIFETIME"] = timedelta(hours=8)
    app.config["SESSION_REFRESH_EACH_REQUEST"] = True
    _configure_logging(app)
    check_production_config(app.config)

    init_csrf(app)

    @app.context_processor
    def _inject_permissions() -> dict:
        from app.erm.rbac import user_has_permission

        user = getattr(g, "current_user", None)
        return {"has_perm": lambda key: user_has_permission(user, key), "current_user": user}

    init_db(app)

    if hasattr(os, "register_at_fork"):
        # gunicorn --preload forks after the engine exists
        def _after_fork_child():
            engine = app.extensions.get("sqlalchemy_engine")
            if engine:
                engine.dispose()
                app.logger.info("Disposed DB engine after fork (pid=%s)", os.getpid())

        os.register_at_fork(after_in_child=_after_fork_child)

    if app.config.get("STORAGE_BACKEND") == "s3":
        missing_s3 = [
            key
            for key in ("S3_ENDPOINT", "S3_BUCKET", "S3_ACCESS_KEY_ID", "S3_SECRET_ACCESS_KEY")
            if not app.config.get(key)
        ]
        if missing_s3:
            app.logger.error("Policy attachments need S3 settings; missing: %s", ", ".join(missing_s3))

    for blueprint, prefix in _BLUEPRINTS:
        app.register_blueprint(blueprint, url_prefix=prefix)

    app.before_request(load_current_user)
    app.teardown_appcontext(teardown_db_session)
    _register_error_handlers(app)

    logger.info("ERM app ready (env=%s storage=%s)", app.config.get("ENV"), app.config.get("STORAGE_BACKEND"))
    return app
