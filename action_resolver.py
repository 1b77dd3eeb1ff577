"""Collection and member action menus.

Menu entries are either ``Static`` (passed through) or ``Resolvable`` (a
resolver computes the effective ``ActionSpec``; member resolvers receive the
record). Resolution keeps the declared order and never drops entries; a
resolver signals non-applicability with ``hidden=True``.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Any, Callable, List, Sequence, Union

from link_resolver import DEFAULT_NAMESPACE, canonical_path, edit_path, new_path


@dataclass
class ActionResolveError(Exception):
    message: str
    code: str = "ACTION_RESOLVE_INVALID"
    path: str | None = None

    def __str__(self) -> str:  # pragma: no cover - simple formatting
        base = f"{self.code}: {self.message}"
        return f"{base} (path={self.path})" if self.path else base


@dataclass(frozen=True)
class ActionSpec:
    label: str
    href: str | None = None
    method: str = "get"
    hidden: bool = False
    key: str | None = None
    confirm: str | None = None

    def hide(self) -> "ActionSpec":
        return replace(self, hidden=True)

    def to_dict(self) -> dict:
        return {
            "key": self.key,
            "label": self.label,
            "href": self.href,
            "method": self.method,
            "hidden": self.hidden,
            "confirm": self.confirm,
        }


@dataclass(frozen=True)
class Static:
    spec: ActionSpec


@dataclass(frozen=True)
class Resolvable:
    resolver: Callable[..., ActionSpec]
    key: str | None = None


MenuEntry = Union[Static, Resolvable]


def _checked(result: Any, path: str) -> ActionSpec:
    if not isinstance(result, ActionSpec):
        raise ActionResolveError(f"resolver returned {type(result).__name__}, expected ActionSpec", path=path)
    return result


def resolve_collection_actions(entries: Sequence[MenuEntry]) -> List[ActionSpec]:
    resolved: List[ActionSpec] = []
    for idx, entry in enumerate(entries):
        path = f"collection_actions[{idx}]"
        if isinstance(entry, Static):
            resolved.append(entry.spec)
        elif isinstance(entry, Resolvable):
            resolved.append(_checked(entry.resolver(), path))
        else:
            raise ActionResolveError(f"unknown menu entry {type(entry).__name__}", path=path)
    return resolved


def resolve_member_actions(entries: Sequence[MenuEntry], record: Any) -> List[ActionSpec]:
    resolved: List[ActionSpec] = []
    for idx, entry in enumerate(entries):
        path = f"member_actions[{idx}]"
        if isinstance(entry, Static):
            resolved.append(entry.spec)
        elif isinstance(entry, Resolvable):
            resolved.append(_checked(entry.resolver(record), path))
        else:
            raise ActionResolveError(f"unknown menu entry {type(entry).__name__}", path=path)
    return resolved


def default_collection_actions(entity: str, namespace: str = DEFAULT_NAMESPACE) -> List[MenuEntry]:
    return [Static(ActionSpec(label="New", href=new_path(entity, namespace), key="new"))]


def default_member_actions(namespace: str = DEFAULT_NAMESPACE) -> List[MenuEntry]:
    def view(record) -> ActionSpec:
        return ActionSpec(label="View", href=canonical_path(record, namespace), key="show")

    def edit(record) -> ActionSpec:
        return ActionSpec(label="Edit", href=edit_path(record, namespace), key="edit")

    def delete(record) -> ActionSpec:
        return ActionSpec(
            label="Delete",
            href=canonical_path(record, namespace),
            method="delete",
            key="destroy",
            confirm="Really delete?",
        )

    return [Resolvable(view, key="show"), Resolvable(edit, key="edit"), Resolvable(delete, key="destroy")]
