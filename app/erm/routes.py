from flask import Blueprint, render_template, url_for

bp = Blueprint("routes", __name__)


@bp.get("/")
def index():
    return render_template("public/index.html")


@bp.get("/api/")
def api_index():
    """Entry points of the JSON API."""
    return {
        "name": "erm",
        "endpoints": {
            "employees": url_for("employees.employees_list"),
            "policies": url_for("policies.policies_list"),
            "documents": url_for("documents.documents_list"),
            "resources": url_for("resources.resources_list"),
            "resource_types": url_for("resources.resource_types_list"),
            "assignments": url_for("resources.assignments_list"),
            "workflows": url_for("workflows.workflows_list"),
            "access": url_for("access.access_list"),
            "timeline": url_for("timeline.timeline_list"),
            "audit": url_for("timeline.audit_list"),
            "dashboard": url_for("dashboard.dashboard_json"),
        },
    }


@bp.get("/health")
def health():
    """Health check endpoint. Returns JSON."""
    return {"ok": True}


@bp.get("/healthz")
def healthz():
    """Container liveness check; no DB access."""
    return "ok", 200
