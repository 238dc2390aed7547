from __future__ import annotations

from datetime import date, datetime
from typing import Any

from flask import current_app, jsonify, request


def parse_date(value: Any) -> date | None:
    """Parse YYYY-MM-DD (or full ISO datetime) into a date."""
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    raw = str(value).strip()
    if not raw:
        return None
    if len(raw) > 10:
        return datetime.fromisoformat(raw.replace("Z", "+00:00")).date()
    return date.fromisoformat(raw)


def parse_int(value: Any) -> int | None:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    raw = str(value).strip()
    if not raw:
        return None
    return int(raw)


def parse_float(value: Any) -> float | None:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    raw = str(value).strip()
    if not raw:
        return None
    return float(raw)


def clean_str(value: Any) -> str | None:
    """Strip strings; empty becomes None."""
    if value is None:
        return None
    return str(value).strip() or None


def iso(value: date | datetime | None) -> str | None:
    return value.isoformat() if value is not None else None


def json_payload() -> dict:
    """JSON body for API routes; falls back to form data for HTML posts."""
    if request.is_json:
        data = request.get_json(silent=True)
        return data if isinstance(data, dict) else {}
    return request.form.to_dict()


def json_error(message: str, status: int = 400, **extra: Any):
    body: dict[str, Any] = {"error": message}
    body.update(extra)
    return jsonify(body), status


def page_args(default_limit: int | None = None) -> tuple[int, int]:
    """Read ?page=&limit= with sane bounds."""
    cfg = current_app.config
    default = default_limit or int(cfg.get("PAGE_SIZE_DEFAULT", 20))
    max_limit = int(cfg.get("PAGE_SIZE_MAX", 100))
    try:
        page = max(1, int(request.args.get("page") or 1))
    except ValueError:
        page = 1
    try:
        limit = int(request.args.get("limit") or default)
    except ValueError:
        limit = default
    return page, min(max(1, limit), max_limit)


def paginated(items: list, total: int, page: int, limit: int) -> dict[str, Any]:
    return {
        "items": items,
        "pagination": {
            "page": page,
            "limit": limit,
            "total": total,
            "pages": (total + limit - 1) // limit if limit else 0,
        },
    }
