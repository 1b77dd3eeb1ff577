"""Host-declared resource configuration.

Subclass ``Resource`` once per record type. Schemas and action menus are
built when the resource is constructed (at startup) and treated as read-only
for the life of the process; each request resolves its own copies.
"""

from __future__ import annotations

from typing import Any, Dict, List, Mapping, Sequence

from action_resolver import MenuEntry, default_collection_actions, default_member_actions
from link_resolver import DEFAULT_NAMESPACE
from record_pipeline import ASC
from schema_engine import (
    DisplaySchemaTypes,
    FieldBuilder,
    FormSchemaTypes,
    Schema,
    declared_visibility,
)
from strata.inflector import titleize


class Resource:
    route_key: str = ""
    title: str | None = None
    namespace: str = DEFAULT_NAMESPACE
    fields: Mapping[str, dict] = {}
    search_fields: Sequence[str] = ()
    filters: Mapping[str, Sequence[str]] = {}
    sortable: Sequence[str] = ()
    default_sort: str | None = None
    default_direction: str = ASC
    csv_enabled: bool = False

    def __init__(self) -> None:
        if not self.route_key:
            raise ValueError(f"{type(self).__name__}.route_key is required")
        self._display_schema = Schema.build(DisplaySchemaTypes(), self.declare_display, policy=declared_visibility)
        self._form_schema = Schema.build(FormSchemaTypes(), self.declare_form, policy=declared_visibility)

    @property
    def entity(self) -> str:
        return self.route_key

    @property
    def label(self) -> str:
        return self.title or titleize(self.route_key)

    def declare_display(self, fields: FieldBuilder, type: DisplaySchemaTypes) -> None:
        for field_id in self.fields:
            fields[field_id] = type.string(reader=field_id)
        fields["actions"] = type.actions()

    def declare_form(self, fields: FieldBuilder, type: FormSchemaTypes) -> None:
        for field_id, field_def in self.fields.items():
            ftype = field_def.get("type")
            if ftype == "enum":
                fields[field_id] = type.select(collection=list(field_def.get("options") or []), reader=field_id)
            elif ftype in ("bool", "boolean"):
                fields[field_id] = type.checkbox(reader=field_id)
            elif ftype == "text":
                fields[field_id] = type.textarea(reader=field_id)
            else:
                fields[field_id] = type.text(reader=field_id)

    def display_schema(self) -> Schema:
        return self._display_schema

    def form_schema(self) -> Schema:
        return self._form_schema

    def collection_actions(self) -> List[MenuEntry]:
        return default_collection_actions(self.route_key, self.namespace)

    def member_actions(self, record: Any) -> List[MenuEntry]:
        return default_member_actions(self.namespace)

    def permitted_attributes(self) -> list[str]:
        return self.form_schema().names()

    def field_types(self) -> Dict[str, str]:
        return {
            field_id: field_def.get("type")
            for field_id, field_def in self.fields.items()
            if isinstance(field_def, dict) and isinstance(field_def.get("type"), str)
        }

    def describe(self) -> dict:
        """Declaration summary used for the registry fingerprint."""
        return {
            "route_key": self.route_key,
            "namespace": self.namespace,
            "fields": {fid: dict(fdef) for fid, fdef in self.fields.items()},
            "search_fields": list(self.search_fields),
            "filters": {fid: list(ops) for fid, ops in self.filters.items()},
            "sortable": list(self.sortable),
            "default_sort": self.default_sort,
            "default_direction": self.default_direction,
            "csv_enabled": bool(self.csv_enabled),
            "display": [[name, item.template] for name, item in self.display_schema()],
            "form": [[name, item.template] for name, item in self.form_schema()],
        }
