"""
Property-schema engine for resources.

A resource's `property_schema` is a list of property definitions:

    {"key": "serialNumber", "label": "Serial Number", "dataType": "STRING",
     "description": None, "defaultValue": None, "isRequired": True}

Items of that resource store their values in a JSON property bag that must
satisfy the schema. Everything here is pure (no DB access) so it can be used
from services, routes and tests alike.
"""
from __future__ import annotations

import math
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any

from app.erm.constants import PROPERTY_DATA_TYPES

_TRUE_STRINGS = ("true", "1")
_FALSE_STRINGS = ("false", "0")


@dataclass
class PropertyValidation:
    missing_keys: list[str] = field(default_factory=list)
    extra_keys: list[str] = field(default_factory=list)
    type_errors: list[str] = field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        return not (self.missing_keys or self.extra_keys or self.type_errors)

    def messages(self) -> list[str]:
        out = []
        if self.missing_keys:
            out.append(f"Missing required properties: {', '.join(self.missing_keys)}")
        if self.extra_keys:
            out.append(f"Unknown properties not in schema: {', '.join(self.extra_keys)}")
        out.extend(self.type_errors)
        return out

    def to_dict(self) -> dict[str, Any]:
        return {
            "is_valid": self.is_valid,
            "missing_keys": self.missing_keys,
            "extra_keys": self.extra_keys,
            "type_errors": self.type_errors,
        }


def normalize_definition(raw: dict) -> dict[str, Any]:
    """Canonical shape for a property definition (accepts snake_case aliases)."""
    return {
        "key": str(raw.get("key") or "").strip(),
        "label": str(raw.get("label") or "").strip(),
        "dataType": str(raw.get("dataType") or raw.get("data_type") or "").strip().upper(),
        "description": raw.get("description") or None,
        "defaultValue": raw.get("defaultValue", raw.get("default_value")),
        "isRequired": bool(raw.get("isRequired", raw.get("is_required", False))),
    }


def validate_property_definitions(definitions: list[dict]) -> list[str]:
    """Returns a list of error messages; empty means the definitions are usable."""
    errors: list[str] = []
    seen: set[str] = set()
    for idx, raw in enumerate(definitions):
        if not isinstance(raw, dict):
            errors.append(f"Property at index {idx} must be an object")
            continue
        d = normalize_definition(raw)
        key = d["key"]
        if not key:
            errors.append(f"Property at index {idx} has an empty key")
        elif key in seen:
            errors.append(f'Duplicate property key: "{key}"')
        else:
            seen.add(key)
        if not d["label"]:
            errors.append(f'Property "{key or idx}" requires a label')
        if d["dataType"] not in PROPERTY_DATA_TYPES:
            errors.append(f'Property "{key or idx}" has invalid data type: "{d["dataType"]}"')
    return errors


def _parse_iso(value: str) -> datetime | None:
    raw = value.strip()
    if not raw:
        return None
    try:
        return datetime.fromisoformat(raw.replace("Z", "+00:00"))
    except ValueError:
        return None


def is_valid_property_value(value: Any, data_type: str) -> bool:
    if data_type == "STRING":
        return isinstance(value, str)
    if data_type == "NUMBER":
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            return False
        return not math.isnan(value)
    if data_type == "BOOLEAN":
        return isinstance(value, bool)
    if data_type == "DATE":
        if isinstance(value, (date, datetime)):
            return True
        return isinstance(value, str) and _parse_iso(value) is not None
    return False


def _type_name(value: Any) -> str:
    if isinstance(value, bool):
        return "boolean"
    if isinstance(value, (int, float)):
        return "number"
    if isinstance(value, str):
        return "string"
    return type(value).__name__


def validate_properties_against_schema(properties: dict | None, schema: list[dict] | None) -> PropertyValidation:
    props = properties or {}
    definitions = [normalize_definition(d) for d in (schema or [])]
    schema_keys = {d["key"] for d in definitions}
    result = PropertyValidation()

    for d in definitions:
        if d["isRequired"] and props.get(d["key"]) is None:
            result.missing_keys.append(d["key"])

    result.extra_keys = [k for k in props if k not in schema_keys]

    for d in definitions:
        value = props.get(d["key"])
        if value is None:
            continue
        if not is_valid_property_value(value, d["dataType"]):
            result.type_errors.append(
                f'Property "{d["key"]}" has invalid type. Expected {d["dataType"]}, got {_type_name(value)}'
            )
    return result


def validate_mandatory_properties(properties: dict | None, mandatory_keys: list[str] | None) -> list[str]:
    """Errors for mandatory keys that are missing, None or blank strings."""
    props = properties or {}
    errors: list[str] = []
    for key in mandatory_keys or []:
        if key not in props:
            errors.append(f"Missing mandatory property: {key}")
        elif props[key] is None:
            errors.append(f'Mandatory property "{key}" cannot be null')
        elif isinstance(props[key], str) and not props[key].strip():
            errors.append(f'Mandatory property "{key}" cannot be empty')
    return errors


def coerce_property_value(value: Any, data_type: str) -> tuple[bool, Any, str | None]:
    """
    Best-effort conversion of user input to the declared type.
    Returns (ok, converted, error).
    """
    if value is None:
        return True, None, None

    if data_type == "STRING":
        return True, value if isinstance(value, str) else str(value), None

    if data_type == "NUMBER":
        if isinstance(value, bool):
            return False, None, f"Cannot convert {value!r} to NUMBER"
        if isinstance(value, (int, float)):
            if isinstance(value, float) and math.isnan(value):
                return False, None, "NaN is not a valid NUMBER"
            return True, value, None
        try:
            num = float(str(value).strip())
        except ValueError:
            return False, None, f"Cannot convert {value!r} to NUMBER"
        if math.isnan(num):
            return False, None, "NaN is not a valid NUMBER"
        return True, int(num) if num.is_integer() and "." not in str(value) else num, None

    if data_type == "BOOLEAN":
        if isinstance(value, bool):
            return True, value, None
        lowered = str(value).strip().lower()
        if lowered in _TRUE_STRINGS:
            return True, True, None
        if lowered in _FALSE_STRINGS:
            return True, False, None
        return False, None, f"Cannot convert {value!r} to BOOLEAN"

    if data_type == "DATE":
        if isinstance(value, datetime):
            return True, value.isoformat(), None
        if isinstance(value, date):
            return True, value.isoformat(), None
        parsed = _parse_iso(str(value))
        if parsed is None:
            return False, None, f"Cannot convert {value!r} to DATE"
        raw = str(value).strip()
        # Keep date-only input date-only.
        return True, parsed.date().isoformat() if len(raw) <= 10 else parsed.isoformat(), None

    return False, None, f"Unknown data type: {data_type}"


def normalize_properties_with_schema(properties: dict | None, schema: list[dict] | None) -> dict[str, Any]:
    """
    Apply schema defaults to absent keys and coerce known keys.
    Unknown keys are kept untouched; values that fail coercion are left as given
    so validation can report them.
    """
    out = dict(properties or {})
    for d in (normalize_definition(x) for x in (schema or [])):
        key = d["key"]
        if out.get(key) is None:
            if d["defaultValue"] is not None:
                ok, converted, _err = coerce_property_value(d["defaultValue"], d["dataType"])
                out[key] = converted if ok else d["defaultValue"]
            continue
        ok, converted, _err = coerce_property_value(out[key], d["dataType"])
        if ok:
            out[key] = converted
    return out


def schema_keys(schema: list[dict] | None) -> list[str]:
    return [normalize_definition(d)["key"] for d in (schema or [])]
