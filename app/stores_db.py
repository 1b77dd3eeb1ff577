"""Postgres-backed record storage.

Each entity maps to a table (``definition["table"]``, defaulting to the
entity name) with an ``id`` primary key and one column per declared field.
Foreign-key violations on delete surface as ``IntegrityConstraintViolation``.
"""

from __future__ import annotations

import copy
import logging
import re
from typing import Any, Callable, Dict, Mapping

import psycopg2
import psycopg2.errors

from app.db import execute, fetch_all, fetch_one, get_conn
from app.records_validation import normalize_fields, parent_of, validate_record_payload
from condition_eval import eval_condition
from record_pipeline import (
    IntegrityConstraintViolation,
    ParentRef,
    Record,
    RecordNotFound,
    RecordSet,
    Scope,
)


_logger = logging.getLogger("strata.db")
_IDENT_RE = re.compile(r"^[a-z_][a-z0-9_]*$")


def _ident(name: str) -> str:
    if not isinstance(name, str) or not _IDENT_RE.match(name):
        raise ValueError(f"Invalid SQL identifier: {name!r}")
    return f'"{name}"'


def constraint_detail(exc: Exception) -> dict:
    diag = getattr(exc, "diag", None)
    return {
        "constraint": getattr(diag, "constraint_name", None) if diag else None,
        "table": getattr(diag, "table_name", None) if diag else None,
        "column": getattr(diag, "column_name", None) if diag else None,
    }


class DbRecordStore:
    def __init__(self, definitions: Mapping[str, dict], conn_factory: Callable = get_conn) -> None:
        self._definitions: Dict[str, dict] = {}
        self._conn = conn_factory
        for entity, definition in definitions.items():
            item = dict(definition)
            item["fields"] = normalize_fields(item.get("fields"))
            self._definitions[entity] = item

    def _definition(self, entity: str) -> dict:
        definition = self._definitions.get(entity)
        if definition is None:
            raise RecordNotFound(entity, None)
        return definition

    def _table(self, entity: str) -> str:
        return _ident(self._definition(entity).get("table") or entity)

    def _parent_clause(self, entity: str, parent: ParentRef | None) -> tuple[str, list]:
        parent_field = self._definition(entity).get("parent_field")
        if parent is None or not isinstance(parent_field, str):
            return "", []
        return f" and {_ident(parent_field)} = %s", [parent.id]

    def _to_record(self, entity: str, row: dict) -> Record:
        values = dict(row)
        record_id = values.pop("id", None)
        parent = parent_of(self._definition(entity), values)
        return Record(entity=entity, id=record_id, values=values, parent=parent, persisted=True)

    def find_one(self, scope: Scope) -> Record:
        clause, extra = self._parent_clause(scope.entity, scope.parent)
        sql = f"select * from {self._table(scope.entity)} where id = %s{clause}"
        try:
            with self._conn() as conn:
                row = fetch_one(conn, sql, [scope.record_id, *extra], query_name=f"records.{scope.entity}.get")
        except psycopg2.DataError as exc:
            # id or parent id the key column cannot parse
            _logger.info("record_lookup_rejected entity=%s id=%s error=%s", scope.entity, scope.record_id, exc)
            raise RecordNotFound(scope.entity, scope.record_id) from exc
        if not row:
            raise RecordNotFound(scope.entity, scope.record_id)
        return self._to_record(scope.entity, row)

    def find_many(self, scope: Scope) -> RecordSet:
        clause, extra = self._parent_clause(scope.entity, scope.parent)
        sql = f"select * from {self._table(scope.entity)} where true{clause} order by id"
        try:
            with self._conn() as conn:
                rows = fetch_all(conn, sql, extra, query_name=f"records.{scope.entity}.list")
        except psycopg2.DataError as exc:
            _logger.info("record_list_rejected entity=%s parent=%s error=%s", scope.entity, scope.parent, exc)
            return RecordSet()
        return RecordSet(self._to_record(scope.entity, row) for row in rows)

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
        record.errors = errors
        if errors:
            return False
        columns = list(clean.keys())
        table = self._table(record.entity)
        try:
            with self._conn() as conn:
                if record.persisted:
                    assignments = ", ".join(f"{_ident(col)} = %s" for col in columns) or "id = id"
                    row = fetch_one(
                        conn,
                        f"update {table} set {assignments} where id = %s returning *",
                        [clean[col] for col in columns] + [record.id],
                        query_name=f"records.{record.entity}.update",
                    )
                else:
                    names = ", ".join(_ident(col) for col in columns)
                    marks = ", ".join(["%s"] * len(columns))
                    sql = f"insert into {table} ({names}) values ({marks}) returning *" if columns else f"insert into {table} default values returning *"
                    row = fetch_one(conn, sql, [clean[col] for col in columns], query_name=f"records.{record.entity}.insert")
        except psycopg2.IntegrityError as exc:
            detail = constraint_detail(exc)
            _logger.info("record_write_constraint entity=%s detail=%s", record.entity, detail)
            record.errors = [
                {"code": "DB_CONSTRAINT", "message": "Database constraint violation", "path": detail.get("column"), "detail": detail}
            ]
            return False
        if not row:
            record.errors = [{"code": "RECORD_NOT_FOUND", "message": "Record not found", "path": "id", "detail": None}]
            return False
        saved = self._to_record(record.entity, row)
        record.id = saved.id
        record.values = saved.values
        record.parent = saved.parent
        record.persisted = True
        return True

    def destroy(self, record: Record) -> bool:
        definition = self._definition(record.entity)
        undeletable_when = definition.get("undeletable_when")
        if undeletable_when and eval_condition(undeletable_when, {"record": record.context()}):
            return False
        try:
            with self._conn() as conn:
                rowcount = execute(
                    conn,
                    f"delete from {self._table(record.entity)} where id = %s",
                    [record.id],
                    query_name=f"records.{record.entity}.delete",
                )
        except psycopg2.errors.ForeignKeyViolation as exc:
            detail = constraint_detail(exc)
            raise IntegrityConstraintViolation(
                constraint=detail.get("constraint") or "foreign_key",
                detail=detail,
            ) from exc
        if rowcount < 1:
            return False
        record.destroyed = True
        record.persisted = False
        return True
