"""In-memory record storage for development and tests."""

from __future__ import annotations

import copy
import threading
import uuid
from typing import Any, Dict, Mapping

from app.records_validation import normalize_fields, parent_of, reference_fields, validate_record_payload
from condition_eval import eval_condition
from record_pipeline import (
    IntegrityConstraintViolation,
    ParentRef,
    Record,
    RecordNotFound,
    RecordSet,
    Scope,
)


class MemoryRecordStore:
    """Storage collaborator keeping records per entity in insertion order.

    Entity definitions use the resource field shape plus optional
    ``parent_field`` (column holding the parent id for nested resources) and
    ``undeletable_when`` (condition that makes ``destroy`` refuse).
    """

    def __init__(self, definitions: Mapping[str, dict] | None = None) -> None:
        self._definitions: Dict[str, dict] = {}
        self._records: Dict[str, Dict[str, dict]] = {}
        self._lock = threading.Lock()
        for entity, definition in (definitions or {}).items():
            self.declare(entity, definition)

    def declare(self, entity: str, definition: Mapping[str, Any]) -> None:
        item = dict(definition)
        item["fields"] = normalize_fields(item.get("fields"))
        self._definitions[entity] = item
        self._records.setdefault(entity, {})

    def _definition(self, entity: str) -> dict:
        return self._definitions.get(entity) or {"fields": {}}

    def _bucket(self, entity: str) -> Dict[str, dict]:
        return self._records.setdefault(entity, {})

    def _to_record(self, entity: str, record_id: str, values: dict) -> Record:
        return Record(
            entity=entity,
            id=record_id,
            values=copy.deepcopy(values),
            parent=parent_of(self._definition(entity), values),
            persisted=True,
        )

    def _in_scope(self, entity: str, values: dict, parent: ParentRef | None) -> bool:
        parent_field = self._definition(entity).get("parent_field")
        if parent is None or not isinstance(parent_field, str):
            return True
        value = values.get(parent_field)
        return value is not None and str(value) == str(parent.id)

    # -- storage collaborator -----------------------------------------

    def find_one(self, scope: Scope) -> Record:
        record_id = str(scope.record_id) if scope.record_id is not None else None
        with self._lock:
            values = self._bucket(scope.entity).get(record_id) if record_id else None
            if values is None or not self._in_scope(scope.entity, values, scope.parent):
                raise RecordNotFound(scope.entity, scope.record_id)
            return self._to_record(scope.entity, record_id, values)

    def find_many(self, scope: Scope) -> RecordSet:
        with self._lock:
            items = [
                self._to_record(scope.entity, record_id, values)
                for record_id, values in self._bucket(scope.entity).items()
                if self._in_scope(scope.entity, values, scope.parent)
            ]
        return RecordSet(items)

    def build(self, scope: Scope) -> Record:
        values: Dict[str, Any] = {}
        parent_field = self._definition(scope.entity).get("parent_field")
        if scope.parent is not None and isinstance(parent_field, str):
            values[parent_field] = scope.parent.id
        return Record(entity=scope.entity, values=values, parent=scope.parent)

    def assign(self, record: Record, attrs: Mapping[str, Any]) -> None:
        record.values.update(copy.deepcopy(dict(attrs)))

    def save(self, record: Record) -> bool:
        definition = self._definition(record.entity)
        errors, clean = validate_record_payload(definition, record.values, for_create=not record.persisted)
        with self._lock:
            errors.extend(self._missing_references(definition, clean))
            record.errors = errors
            if errors:
                return False
            if record.id is None:
                record.id = str(uuid.uuid4())
            record.values = clean
            self._bucket(record.entity)[str(record.id)] = copy.deepcopy(clean)
            record.parent = parent_of(definition, clean)
            record.persisted = True
        return True

    def destroy(self, record: Record) -> bool:
        definition = self._definition(record.entity)
        undeletable_when = definition.get("undeletable_when")
        if undeletable_when and eval_condition(undeletable_when, {"record": record.context()}):
            return False
        with self._lock:
            bucket = self._bucket(record.entity)
            if str(record.id) not in bucket:
                return False
            for entity, field_id in reference_fields(self._definitions, record.entity):
                dependents = [
                    dep_id
                    for dep_id, values in self._bucket(entity).items()
                    if values.get(field_id) is not None and str(values.get(field_id)) == str(record.id)
                ]
                if dependents:
                    raise IntegrityConstraintViolation(
                        constraint=f"fk_{entity}_{field_id}",
                        detail={"table": entity, "column": field_id, "dependents": len(dependents)},
                    )
            del bucket[str(record.id)]
        record.destroyed = True
        record.persisted = False
        return True

    # -- helpers -------------------------------------------------------

    def _missing_references(self, definition: dict, values: dict) -> list[dict]:
        issues = []
        for field_id, field in definition.get("fields", {}).items():
            if field.get("type") != "reference":
                continue
            target = field.get("entity")
            value = values.get(field_id)
            if value is None or value == "" or not isinstance(target, str):
                continue
            if str(value) not in self._bucket(target):
                issues.append(
                    {
                        "code": "REFERENCE_NOT_FOUND",
                        "message": f"{field_id} does not reference an existing {target} record",
                        "path": field_id,
                        "detail": {"entity": target, "id": value},
                    }
                )
        return issues

    def create(self, entity: str, data: dict, parent: ParentRef | None = None) -> Record:
        """Seed helper: build, assign and save in one step."""
        record = self.build(Scope(entity=entity, parent=parent))
        self.assign(record, data)
        if not self.save(record):
            raise ValueError(f"invalid {entity} record: {record.errors}")
        return record

    def exists(self, entity: str, record_id: Any) -> bool:
        with self._lock:
            return str(record_id) in self._bucket(entity)

    def count(self, entity: str) -> int:
        with self._lock:
            return len(self._bucket(entity))
