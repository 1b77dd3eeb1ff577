"""Record validation against declared resource fields."""

from __future__ import annotations

from datetime import date, datetime
from typing import Any, Dict, List, Mapping

from condition_eval import eval_condition
from record_pipeline import ParentRef


Issue = Dict[str, Any]

ALLOWED_FIELD_TYPES = {
    "string",
    "text",
    "number",
    "bool",
    "boolean",
    "date",
    "datetime",
    "enum",
    "reference",
    "list",
}


def _issue(code: str, message: str, path: str | None = None, detail: dict | None = None) -> Issue:
    return {"code": code, "message": message, "path": path, "detail": detail}


def normalize_fields(fields: Any) -> Dict[str, dict]:
    """Accept ``{"id": {...}}`` or ``[{"id": ...}]`` and return the mapping form."""
    if isinstance(fields, Mapping):
        out = {}
        for field_id, field_def in fields.items():
            out[field_id] = dict(field_def) if isinstance(field_def, Mapping) else {}
        return out
    if isinstance(fields, list):
        out = {}
        for item in fields:
            if isinstance(item, Mapping) and isinstance(item.get("id"), str):
                field_def = dict(item)
                out[field_def.pop("id")] = field_def
        return out
    return {}


def enum_values(field: dict) -> list:
    options = field.get("options") or field.get("values") or []
    values = []
    for opt in options:
        if isinstance(opt, dict) and "value" in opt:
            values.append(opt["value"])
        else:
            values.append(opt)
    return values


def _apply_defaults(fields: Dict[str, dict], data: dict) -> dict:
    updated = dict(data)
    for field_id, field in fields.items():
        if "default" not in field:
            continue
        if updated.get(field_id) not in (None, ""):
            continue
        updated[field_id] = field.get("default")
    return updated


def _blank(value: Any) -> bool:
    return value is None or value == "" or value == []


def _check_type(field_id: str, field: dict, val: Any) -> Issue | None:
    ftype = field.get("type")
    if ftype in ("string", "text"):
        if not isinstance(val, str):
            return _issue("TYPE_MISMATCH", f"{field_id} must be a string", field_id)
    elif ftype == "number":
        if not isinstance(val, (int, float)) or isinstance(val, bool):
            return _issue("TYPE_MISMATCH", f"{field_id} must be a number", field_id)
    elif ftype in ("bool", "boolean"):
        if not isinstance(val, bool):
            return _issue("TYPE_MISMATCH", f"{field_id} must be a boolean", field_id)
    elif ftype == "enum":
        allowed = enum_values(field)
        if val not in allowed:
            return _issue("INVALID_ENUM", f"{field_id} must be one of {allowed}", field_id)
    elif ftype == "date":
        try:
            date.fromisoformat(val)
        except (TypeError, ValueError):
            return _issue("INVALID_DATE", f"{field_id} must be YYYY-MM-DD", field_id)
    elif ftype == "datetime":
        try:
            datetime.fromisoformat(str(val).replace("Z", "+00:00"))
        except ValueError:
            return _issue("INVALID_DATETIME", f"{field_id} must be ISO8601", field_id)
    elif ftype == "reference":
        if not isinstance(val, (str, int)) or isinstance(val, bool):
            return _issue("TYPE_MISMATCH", f"{field_id} must be a record id", field_id)
    elif ftype == "list":
        if not isinstance(val, list):
            return _issue("TYPE_MISMATCH", f"{field_id} must be a list", field_id)
    return None


def validate_record_payload(definition: Mapping[str, Any], data: Any, for_create: bool) -> tuple[List[Issue], dict]:
    """Validate a full record against its declaration.

    Returns ``(errors, clean)``; ``clean`` has defaults applied on create.
    """
    if not isinstance(data, Mapping):
        return [_issue("INVALID_PAYLOAD", "Record data must be an object")], {}
    fields = normalize_fields(definition.get("fields"))
    errors: List[Issue] = []
    clean = dict(data)
    if for_create:
        clean = _apply_defaults(fields, clean)

    for key in clean.keys():
        if key != "id" and key not in fields:
            errors.append(_issue("UNKNOWN_FIELD", f"Unknown field: {key}", key))

    required_ids = set()
    for field_id, field in fields.items():
        required = bool(field.get("required"))
        required_when = field.get("required_when")
        if not required and required_when:
            required = eval_condition(required_when, {"record": clean})
        if not required:
            continue
        required_ids.add(field_id)
        if _blank(clean.get(field_id)):
            errors.append(_issue("REQUIRED_FIELD", f"Missing required field: {field_id}", field_id))

    for field_id, val in list(clean.items()):
        field = fields.get(field_id)
        if field is None or val is None:
            continue
        if _blank(val):
            # blank form input on an optional field means "no value"
            if field_id not in required_ids and field.get("type") not in ("string", "text", "list"):
                clean[field_id] = None
            continue
        problem = _check_type(field_id, field, val)
        if problem:
            errors.append(problem)

    return errors, clean


def reference_fields(definitions: Mapping[str, Mapping[str, Any]], target_entity: str) -> List[tuple[str, str]]:
    """``(entity, field_id)`` pairs whose reference points at ``target_entity``."""
    pairs = []
    for entity, definition in definitions.items():
        for field_id, field in normalize_fields(definition.get("fields")).items():
            if field.get("type") == "reference" and field.get("entity") == target_entity:
                pairs.append((entity, field_id))
    return pairs


def parent_entity(definition: Mapping[str, Any]) -> str | None:
    """Entity named by the ``parent_field`` reference, if the definition nests."""
    parent_field = definition.get("parent_field")
    if not isinstance(parent_field, str):
        return None
    field = normalize_fields(definition.get("fields")).get(parent_field) or {}
    entity = definition.get("parent_entity") or field.get("entity")
    return entity if isinstance(entity, str) else None


def parent_of(definition: Mapping[str, Any], values: Mapping[str, Any]) -> ParentRef | None:
    """Parent the record's ``parent_field`` value points at."""
    entity = parent_entity(definition)
    if entity is None:
        return None
    parent_id = values.get(definition["parent_field"])
    if _blank(parent_id):
        return None
    return ParentRef(entity, parent_id)
