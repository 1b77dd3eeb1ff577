"""Declarative display and form schemas.

A schema is an ordered mapping of field name to :class:`Field`. Fields are
built through a type helper (``FormSchemaTypes`` or ``DisplaySchemaTypes``)
and collected by an explicit :class:`FieldBuilder`::

    def member_fields(nested, type):
        nested["name"] = type.text()

    def declare(fields, type):
        fields["name"] = type.text()
        fields["members"] = type.has_many("members", member_fields)

    schema = Schema.build(FormSchemaTypes(), declare)

Base schemas are shared by every request for a resource. Resolving one
against an action and format always works on a deep copy.
"""

from __future__ import annotations

import copy
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Callable, Dict, Iterator, Mapping, Tuple

from action_inquirer import Action
from strata.inflector import humanize, singularize


HAS_MANY_TEMPLATE = "form_generic_has_many"
HAS_ONE_TEMPLATE = "form_generic_has_one"
DISPLAY_ACTIONS_TEMPLATE = "display_actions"

Fields = Dict[str, "Field"]
Policy = Callable[[Fields, Action, str], Fields]


@dataclass
class Field:
    template: str
    extras: Dict[str, Any] = field(default_factory=dict)
    nested: Dict[str, "Field"] = field(default_factory=dict)

    def __getitem__(self, key: str) -> Any:
        return self.extras.get(key)

    @property
    def reader(self) -> Any:
        return self.extras.get("reader")

    @property
    def label(self) -> str | None:
        if "label" in self.extras:
            return self.extras["label"]
        if "reader" in self.extras:
            return humanize(singularize(str(self.extras["reader"])))
        return None

    @property
    def is_nested(self) -> bool:
        return bool(self.nested)

    def to_dict(self) -> dict:
        return {
            "template": self.template,
            "label": self.label,
            "extras": _json_safe(self.extras),
            "nested": {name: child.to_dict() for name, child in self.nested.items()},
        }


def _json_safe(value: Any) -> Any:
    if value is None or isinstance(value, (str, int, float, bool)):
        return value
    if isinstance(value, Mapping):
        return {str(key): _json_safe(val) for key, val in value.items()}
    if isinstance(value, (list, tuple, set, frozenset)):
        return [_json_safe(val) for val in value]
    if callable(value):
        return getattr(value, "__name__", "callable")
    return str(value)


class FieldBuilder:
    """Ordered field collector.

    Each nested group gets its own child builder; nothing is shared between
    siblings or with the parent.
    """

    def __init__(self) -> None:
        self._fields: Fields = {}

    def __setitem__(self, name: str, value: Field) -> None:
        if not isinstance(value, Field):
            raise TypeError(f"schema entry {name!r} must be a Field")
        self._fields[name] = value

    def __getitem__(self, name: str) -> Field:
        return self._fields[name]

    def __contains__(self, name: object) -> bool:
        return name in self._fields

    def __len__(self) -> int:
        return len(self._fields)

    def fields(self) -> Fields:
        return dict(self._fields)


NestedDeclaration = Callable[[FieldBuilder, Any], None]


class _SchemaTypes:
    def generic(self, template: str, **extras: Any) -> Field:
        return Field(template=template, extras=dict(extras), nested={})

    def _nested(self, declare: NestedDeclaration) -> Fields:
        child = FieldBuilder()
        declare(child, self)
        return child.fields()


class FormSchemaTypes(_SchemaTypes):
    """Field types for ``new`` and ``edit`` forms."""

    def text(self, **extras: Any) -> Field:
        return self.generic("form_field_text", **extras)

    def textarea(self, **extras: Any) -> Field:
        return self.generic("form_field_textarea", **extras)

    def select(self, collection: Any = None, **extras: Any) -> Field:
        return self.generic("form_field_select", collection=collection or [], **extras)

    def checkbox(self, **extras: Any) -> Field:
        return self.generic("form_field_checkbox", **extras)

    def hidden(self, **extras: Any) -> Field:
        return self.generic("form_field_hidden", **extras)

    def has_many(self, reader: str, declare: NestedDeclaration, **extras: Any) -> Field:
        nested = self._nested(declare)
        return Field(
            template=HAS_MANY_TEMPLATE,
            extras={**extras, "reader": reader},
            nested=nested,
        )

    def has_one(self, reader: str, declare: NestedDeclaration, **extras: Any) -> Field:
        nested = self._nested(declare)
        return Field(
            template=HAS_ONE_TEMPLATE,
            extras={**extras, "reader": reader},
            nested=nested,
        )


class DisplaySchemaTypes(_SchemaTypes):
    """Field types for ``index`` and ``show`` pages."""

    def string(self, **extras: Any) -> Field:
        return self.generic("display_string", **extras)

    def badge(self, styles: Mapping[str, str] | None = None, **extras: Any) -> Field:
        return self.generic("display_badge", styles=dict(styles or {}), **extras)

    def timestamp(self, **extras: Any) -> Field:
        return self.generic("display_timestamp", **extras)

    def actions(self, **extras: Any) -> Field:
        extras.setdefault("label", "Actions")
        extras.setdefault("actions", ["index"])
        extras.setdefault("formats", ["html"])
        return self.generic(DISPLAY_ACTIONS_TEMPLATE, **extras)


def _matches(allowed: Any, *candidates: str) -> bool:
    if allowed is None:
        return True
    if isinstance(allowed, str):
        allowed = [allowed]
    return any(candidate in allowed for candidate in candidates)


def declared_visibility(fields: Fields, action: Action, format: str) -> Fields:
    """Keep fields whose ``actions``/``formats`` extras admit the request."""
    visible: Fields = {}
    for name, item in fields.items():
        if not _matches(item.extras.get("actions"), action.kind, action.category):
            continue
        if not _matches(item.extras.get("formats"), format):
            continue
        visible[name] = item
    return visible


@dataclass(frozen=True)
class ResolvedSchema:
    action: Action
    format: str
    fields: Mapping[str, Field]

    def __iter__(self) -> Iterator[Tuple[str, Field]]:
        return iter(self.fields.items())

    def __len__(self) -> int:
        return len(self.fields)

    def __getitem__(self, name: str) -> Field:
        return self.fields[name]

    def names(self) -> list[str]:
        return list(self.fields.keys())

    def to_dict(self) -> dict:
        return {
            "action": self.action.to_dict(),
            "format": self.format,
            "fields": [
                {"name": name, **item.to_dict()} for name, item in self.fields.items()
            ],
        }


class Schema:
    def __init__(self, fields: Mapping[str, Field], policy: Policy | None = None) -> None:
        self._fields = MappingProxyType(copy.deepcopy(dict(fields)))
        self._policy = policy

    @classmethod
    def build(
        cls,
        types: _SchemaTypes,
        declare: Callable[[FieldBuilder, Any], None],
        policy: Policy | None = None,
    ) -> "Schema":
        builder = FieldBuilder()
        declare(builder, types)
        return cls(builder.fields(), policy=policy)

    @property
    def fields(self) -> Mapping[str, Field]:
        return self._fields

    def __iter__(self) -> Iterator[Tuple[str, Field]]:
        return iter(self._fields.items())

    def __len__(self) -> int:
        return len(self._fields)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Schema):
            return NotImplemented
        return dict(self._fields) == dict(other._fields)

    def names(self) -> list[str]:
        return list(self._fields.keys())

    def apply(self, action: Action, format: str) -> ResolvedSchema:
        working = copy.deepcopy(dict(self._fields))
        if self._policy is not None:
            working = self._policy(working, action, format)
        return ResolvedSchema(action=action, format=format, fields=MappingProxyType(dict(working)))
