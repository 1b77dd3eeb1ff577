"""Resources declared as JSON manifests.

A manifest describes one resource::

    {
      "resource": "ships",
      "fields": {"name": {"type": "string", "required": true}},
      "display": [{"id": "name", "type": "string"}, {"id": "actions", "type": "actions"}],
      "form": [{"id": "name", "type": "text"}],
      "search": ["name"],
      "filters": {"name": ["contains"]},
      "sort": {"fields": ["name"], "default": "name", "direction": "asc"},
      "csv": true,
      "member_actions": [
        {"key": "retire", "label": "Retire {{ record.name }}",
         "href": "/admin/ships/{{ record.id }}/retire", "method": "post",
         "visible_when": {"op": "eq", "field": "status", "value": "active"}}
      ]
    }

Omitted ``display``/``form`` fall back to one entry per declared field;
omitted action lists fall back to the default menus.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Mapping

from action_resolver import ActionSpec, MenuEntry, Resolvable, Static
from admin_resource import Resource
from app.records_validation import ALLOWED_FIELD_TYPES, normalize_fields
from app.template_render import is_templated, render_template, validate_templates
from condition_eval import eval_condition, validate_condition
from format_gate import KNOWN_FORMATS
from record_pipeline import ASC, DESC, FILTER_OPS
from schema_engine import DisplaySchemaTypes, FieldBuilder, FormSchemaTypes


logger = logging.getLogger("strata")

Issue = Dict[str, Any]

DISPLAY_TYPES = {"string", "badge", "timestamp", "actions", "generic"}
FORM_TYPES = {"text", "textarea", "select", "checkbox", "hidden", "has_many", "has_one", "generic"}
_ENTRY_META_KEYS = {"id", "type", "fields", "reader", "template"}


@dataclass
class ManifestError(Exception):
    message: str
    issues: List[Issue] = field(default_factory=list)
    code: str = "MANIFEST_INVALID"

    def __str__(self) -> str:  # pragma: no cover - simple formatting
        return f"{self.code}: {self.message} ({len(self.issues)} issues)"


def _issue(code: str, message: str, path: str | None = None, detail: dict | None = None) -> Issue:
    return {"code": code, "message": message, "path": path, "detail": detail}


def _entries(value: Any) -> list[dict]:
    if isinstance(value, dict):
        value = value.get("fields")
    if not isinstance(value, list):
        return []
    return [item for item in value if isinstance(item, dict)]


def normalize_manifest(manifest: Mapping[str, Any]) -> dict:
    item = dict(manifest)
    item["resource"] = str(item.get("resource") or "").strip("/").strip()
    item["fields"] = normalize_fields(item.get("fields"))
    sort = item.get("sort")
    if isinstance(sort, list):
        sort = {"fields": sort}
    item["sort"] = dict(sort) if isinstance(sort, dict) else {}
    item["search"] = [s for s in item.get("search") or [] if isinstance(s, str)]
    filters = item.get("filters")
    item["filters"] = {fid: list(ops) for fid, ops in filters.items() if isinstance(ops, list)} if isinstance(filters, dict) else {}
    return item


def _validate_entries(entries: list[dict], allowed: set, path: str, issues: List[Issue]) -> None:
    seen = set()
    for idx, entry in enumerate(entries):
        entry_path = f"{path}[{idx}]"
        entry_id = entry.get("id")
        if not isinstance(entry_id, str) or not entry_id:
            issues.append(_issue("SCHEMA_ENTRY_ID_MISSING", "entry id is required", entry_path))
            continue
        if entry_id in seen:
            issues.append(_issue("SCHEMA_ENTRY_DUPLICATE", f"duplicate entry: {entry_id}", entry_path))
        seen.add(entry_id)
        etype = entry.get("type", "generic")
        if etype not in allowed:
            issues.append(_issue("SCHEMA_ENTRY_TYPE_UNKNOWN", f"unknown type: {etype}", f"{entry_path}.type"))
        if etype == "generic" and not isinstance(entry.get("template"), str):
            issues.append(_issue("SCHEMA_TEMPLATE_MISSING", "generic entries need a template", entry_path))
        if etype in ("has_many", "has_one"):
            _validate_entries(_entries(entry.get("fields")), allowed, f"{entry_path}.fields", issues)
        formats = entry.get("formats")
        if isinstance(formats, list):
            for fmt in formats:
                if fmt not in KNOWN_FORMATS:
                    issues.append(_issue("SCHEMA_FORMAT_UNKNOWN", f"unknown format: {fmt}", f"{entry_path}.formats"))


def _validate_actions(actions: Any, path: str, issues: List[Issue]) -> None:
    if actions is None:
        return
    if not isinstance(actions, list):
        issues.append(_issue("ACTIONS_INVALID", "actions must be a list", path))
        return
    templates = []
    for idx, action in enumerate(actions):
        action_path = f"{path}[{idx}]"
        if not isinstance(action, dict) or not isinstance(action.get("label"), str):
            issues.append(_issue("ACTION_LABEL_MISSING", "action label is required", action_path))
            continue
        templates.append((f"{action_path}.label", action.get("label")))
        templates.append((f"{action_path}.href", action.get("href")))
        if "visible_when" in action:
            issues.extend(validate_condition(action.get("visible_when"), f"{action_path}.visible_when"))
    issues.extend(validate_templates(templates))


def validate_manifest(manifest: Mapping[str, Any]) -> List[Issue]:
    if not isinstance(manifest, Mapping):
        return [_issue("MANIFEST_INVALID", "manifest must be an object", "$")]
    item = normalize_manifest(manifest)
    issues: List[Issue] = []
    if not item["resource"]:
        issues.append(_issue("RESOURCE_KEY_MISSING", "resource is required", "resource"))
    fields = item["fields"]
    for field_id, field_def in fields.items():
        ftype = field_def.get("type")
        if ftype not in ALLOWED_FIELD_TYPES:
            issues.append(_issue("FIELD_TYPE_INVALID", f"unsupported field type: {ftype}", f"fields.{field_id}.type"))
        if ftype == "reference" and not isinstance(field_def.get("entity"), str):
            issues.append(_issue("REFERENCE_TARGET_MISSING", "reference fields need an entity", f"fields.{field_id}.entity"))
        if "required_when" in field_def:
            issues.extend(validate_condition(field_def.get("required_when"), f"fields.{field_id}.required_when"))
    for field_id in item["search"]:
        if field_id not in fields:
            issues.append(_issue("SEARCH_FIELD_UNKNOWN", f"unknown search field: {field_id}", "search"))
    for field_id, ops in item["filters"].items():
        if field_id not in fields:
            issues.append(_issue("FILTER_FIELD_UNKNOWN", f"unknown filter field: {field_id}", f"filters.{field_id}"))
        for op in ops:
            if op not in FILTER_OPS:
                issues.append(_issue("FILTER_OP_UNKNOWN", f"unknown filter operator: {op}", f"filters.{field_id}"))
    sort = item["sort"]
    for field_id in sort.get("fields") or []:
        if field_id not in fields:
            issues.append(_issue("SORT_FIELD_UNKNOWN", f"unknown sort field: {field_id}", "sort.fields"))
    if sort.get("direction") not in (None, ASC, DESC):
        issues.append(_issue("SORT_DIRECTION_INVALID", "direction must be asc or desc", "sort.direction"))
    _validate_entries(_entries(item.get("display")), DISPLAY_TYPES, "display", issues)
    _validate_entries(_entries(item.get("form")), FORM_TYPES, "form", issues)
    _validate_actions(item.get("collection_actions"), "collection_actions", issues)
    _validate_actions(item.get("member_actions"), "member_actions", issues)
    if "undeletable_when" in item:
        issues.extend(validate_condition(item.get("undeletable_when"), "undeletable_when"))
    return issues


def _extras(entry: dict) -> dict:
    return {key: val for key, val in entry.items() if key not in _ENTRY_META_KEYS}


def _declare_display(entries: list[dict]):
    def declare(fields: FieldBuilder, type: DisplaySchemaTypes) -> None:
        for entry in entries:
            etype = entry.get("type", "generic")
            extras = _extras(entry)
            extras.setdefault("reader", entry.get("reader") or entry["id"])
            if etype == "string":
                fields[entry["id"]] = type.string(**extras)
            elif etype == "badge":
                fields[entry["id"]] = type.badge(**extras)
            elif etype == "timestamp":
                fields[entry["id"]] = type.timestamp(**extras)
            elif etype == "actions":
                extras.pop("reader", None)
                fields[entry["id"]] = type.actions(**extras)
            else:
                fields[entry["id"]] = type.generic(entry["template"], **extras)

    return declare


def _declare_form(entries: list[dict]):
    def declare(fields: FieldBuilder, type: FormSchemaTypes) -> None:
        for entry in entries:
            etype = entry.get("type", "generic")
            extras = _extras(entry)
            reader = entry.get("reader") or entry["id"]
            if etype in ("has_many", "has_one"):
                nested = _declare_form(_entries(entry.get("fields")))
                combinator = type.has_many if etype == "has_many" else type.has_one
                fields[entry["id"]] = combinator(reader, nested, **extras)
                continue
            extras.setdefault("reader", reader)
            if etype == "text":
                fields[entry["id"]] = type.text(**extras)
            elif etype == "textarea":
                fields[entry["id"]] = type.textarea(**extras)
            elif etype == "select":
                fields[entry["id"]] = type.select(**extras)
            elif etype == "checkbox":
                fields[entry["id"]] = type.checkbox(**extras)
            elif etype == "hidden":
                fields[entry["id"]] = type.hidden(**extras)
            else:
                fields[entry["id"]] = type.generic(entry["template"], **extras)

    return declare


def _menu_entry(action: dict, member: bool) -> MenuEntry:
    label = action.get("label")
    href = action.get("href")
    visible_when = action.get("visible_when")
    base = ActionSpec(
        label=label,
        href=href,
        method=str(action.get("method") or "get").lower(),
        key=action.get("key"),
        confirm=action.get("confirm"),
    )
    if not member or (visible_when is None and not is_templated(label) and not is_templated(href)):
        return Static(base)

    def resolve(record) -> ActionSpec:
        context = {"record": record.context()}
        spec = ActionSpec(
            label=render_template(label, context),
            href=render_template(href, context) if href else None,
            method=base.method,
            key=base.key,
            confirm=base.confirm,
        )
        if visible_when is not None and not eval_condition(visible_when, context):
            return spec.hide()
        return spec

    return Resolvable(resolve, key=base.key)


class ManifestResource(Resource):
    """Resource whose declarations come from a normalized manifest."""

    def __init__(self, manifest: Mapping[str, Any]) -> None:
        item = normalize_manifest(manifest)
        self.manifest = item
        self.route_key = item["resource"]
        self.title = item.get("title")
        self.fields = item["fields"]
        self.search_fields = tuple(item["search"])
        self.filters = item["filters"]
        self.sortable = tuple(item["sort"].get("fields") or ())
        self.default_sort = item["sort"].get("default")
        self.default_direction = item["sort"].get("direction") or ASC
        self.csv_enabled = bool(item.get("csv"))
        self._display_entries = _entries(item.get("display"))
        self._form_entries = _entries(item.get("form"))
        self._collection = [_menu_entry(a, member=False) for a in item.get("collection_actions") or []]
        self._member = [_menu_entry(a, member=True) for a in item.get("member_actions") or []]
        super().__init__()

    def declare_display(self, fields, type) -> None:
        if not self._display_entries:
            return super().declare_display(fields, type)
        _declare_display(self._display_entries)(fields, type)

    def declare_form(self, fields, type) -> None:
        if not self._form_entries:
            return super().declare_form(fields, type)
        _declare_form(self._form_entries)(fields, type)

    def collection_actions(self) -> List[MenuEntry]:
        if "collection_actions" not in self.manifest:
            return super().collection_actions()
        return list(self._collection)

    def member_actions(self, record) -> List[MenuEntry]:
        if "member_actions" not in self.manifest:
            return super().member_actions(record)
        return list(self._member)

    def storage_definition(self) -> dict:
        """Entity definition handed to the storage collaborator."""
        definition = {"fields": self.fields}
        for key in ("table", "parent_field", "undeletable_when"):
            if key in self.manifest:
                definition[key] = self.manifest[key]
        return definition


def load_resource(manifest: Mapping[str, Any]) -> ManifestResource:
    issues = validate_manifest(manifest)
    if issues:
        raise ManifestError("resource manifest is invalid", issues)
    return ManifestResource(manifest)


def load_manifest_dir(path: str | Path) -> List[ManifestResource]:
    resources = []
    for file in sorted(Path(path).glob("*.json")):
        manifest = json.loads(file.read_text(encoding="utf-8"))
        resources.append(load_resource(manifest))
        logger.info("resource_manifest_loaded file=%s", file.name)
    return resources
