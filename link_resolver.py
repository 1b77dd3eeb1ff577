"""Canonical locations for records."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Tuple
from urllib.parse import quote

from record_pipeline import ParentRef, Record


DEFAULT_NAMESPACE = "admin"


@dataclass(frozen=True)
class PathDescriptor:
    """Routing parts for a record: namespace, parent chain, resource, id."""

    namespace: str
    parents: Tuple[ParentRef, ...] = ()
    entity: str | None = None
    record_id: Any = None

    @property
    def is_member(self) -> bool:
        return self.entity is not None and self.record_id is not None

    @property
    def parts(self) -> Tuple[str, ...]:
        out = [self.namespace] if self.namespace else []
        for parent in self.parents:
            out.extend([parent.entity, str(parent.id)])
        if self.entity:
            out.append(self.entity)
        if self.record_id is not None:
            out.append(str(self.record_id))
        return tuple(out)

    @property
    def path(self) -> str:
        return "/" + "/".join(quote(part, safe="") for part in self.parts)

    def suffixed(self, segment: str) -> str:
        return f"{self.path}/{segment}"


def _parents(record: Record) -> Tuple[ParentRef, ...]:
    parent = getattr(record, "parent", None)
    if isinstance(parent, ParentRef) and parent.entity and parent.id is not None:
        return (parent,)
    return ()


def polymorphic_parts(record: Any, namespace: str = DEFAULT_NAMESPACE) -> PathDescriptor:
    """Decompose a record into the parts of its canonical location.

    Persisted records map to their member path. New or destroyed records map
    to the collection path. Anything without an entity maps to the namespace
    root.
    """
    entity = getattr(record, "entity", None)
    if not isinstance(entity, str) or not entity:
        return PathDescriptor(namespace=namespace)
    parents = _parents(record)
    persisted = bool(getattr(record, "persisted", False)) and not getattr(record, "destroyed", False)
    record_id = getattr(record, "id", None)
    if persisted and record_id is not None:
        return PathDescriptor(namespace=namespace, parents=parents, entity=entity, record_id=record_id)
    return PathDescriptor(namespace=namespace, parents=parents, entity=entity)


def canonical_path(record: Any, namespace: str = DEFAULT_NAMESPACE) -> str:
    return polymorphic_parts(record, namespace).path


def collection_path(entity: str, namespace: str = DEFAULT_NAMESPACE, parent: ParentRef | None = None) -> str:
    parents = (parent,) if parent is not None else ()
    return PathDescriptor(namespace=namespace, parents=parents, entity=entity).path


def new_path(entity: str, namespace: str = DEFAULT_NAMESPACE, parent: ParentRef | None = None) -> str:
    return f"{collection_path(entity, namespace, parent)}/new"


def edit_path(record: Record, namespace: str = DEFAULT_NAMESPACE) -> str:
    return polymorphic_parts(record, namespace).suffixed("edit")
