"""Record loading, listing transformations and persistence.

The pipeline delegates persistence to a storage collaborator that provides::

    find_one(scope) -> Record          # raises RecordNotFound
    find_many(scope) -> RecordSet
    build(scope) -> Record             # unpersisted
    assign(record, attrs) -> None
    save(record) -> bool               # False leaves errors on the record
    destroy(record) -> bool            # may raise IntegrityConstraintViolation

It owns the query/filter/sort state of a listing request and the mapping of
submitted attributes onto records.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterable, Iterator, List, Mapping, Sequence, Tuple

from condition_eval import eval_condition


logger = logging.getLogger("strata.records")

Issue = Dict[str, Any]

ASC = "asc"
DESC = "desc"
FILTER_OPS = ("eq", "neq", "contains", "in", "gt", "gte", "lt", "lte", "exists")
_FILTER_PARAM_RE = re.compile(r"^filter\[(?P<field>[^\]]+)\]\[(?P<op>[a-z_]+)\]$")


@dataclass
class RecordNotFound(Exception):
    entity: str
    record_id: Any
    code: str = "RECORD_NOT_FOUND"

    def __str__(self) -> str:  # pragma: no cover - simple formatting
        return f"{self.code}: {self.entity} {self.record_id!r} not found"


@dataclass
class IntegrityConstraintViolation(Exception):
    constraint: str
    message: str = "Record is referenced by dependent records"
    detail: dict | None = None
    code: str = "INTEGRITY_CONSTRAINT"

    def __str__(self) -> str:  # pragma: no cover - simple formatting
        return f"{self.code}: {self.message} (constraint={self.constraint})"


@dataclass(frozen=True)
class ParentRef:
    entity: str
    id: Any


@dataclass(frozen=True)
class Scope:
    entity: str
    record_id: Any = None
    parent: ParentRef | None = None


@dataclass
class Record:
    entity: str
    id: Any = None
    values: Dict[str, Any] = field(default_factory=dict)
    errors: List[Issue] = field(default_factory=list)
    parent: ParentRef | None = None
    persisted: bool = False
    destroyed: bool = False

    def get(self, key: str, default: Any = None) -> Any:
        if key == "id":
            return self.id
        return self.values.get(key, default)

    def context(self) -> dict:
        """Shape used by conditions and templates."""
        return {"id": self.id, **self.values}

    def to_dict(self) -> dict:
        return {
            "entity": self.entity,
            "id": self.id,
            "values": dict(self.values),
            "errors": list(self.errors),
            "persisted": self.persisted,
        }


class RecordSet:
    """Immutable ordered collection of records."""

    def __init__(self, records: Iterable[Record] = ()) -> None:
        self._records: Tuple[Record, ...] = tuple(records)

    def __iter__(self) -> Iterator[Record]:
        return iter(self._records)

    def __len__(self) -> int:
        return len(self._records)

    def __getitem__(self, idx: int) -> Record:
        return self._records[idx]

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, RecordSet):
            return NotImplemented
        return self._records == other._records

    def __repr__(self) -> str:  # pragma: no cover - debugging aid
        return f"RecordSet(ids={self.ids()!r})"

    def ids(self) -> list:
        return [rec.id for rec in self._records]

    def narrow(self, predicate: Callable[[Record], bool]) -> "RecordSet":
        return RecordSet(rec for rec in self._records if predicate(rec))

    def order_by(self, key: Callable[[Record], Any], descending: bool = False) -> "RecordSet":
        return RecordSet(sorted(self._records, key=key, reverse=descending))


def _first(params: Mapping[str, Any], key: str) -> Any:
    value = params.get(key)
    if isinstance(value, (list, tuple)):
        return value[0] if value else None
    return value


def coerce_value(raw: Any, field_type: str | None) -> Any:
    """Convert a query-string value to the declared field type.

    Raises ValueError when the value cannot represent that type.
    """
    if raw is None or not isinstance(raw, str):
        return raw
    if field_type == "number":
        number = float(raw)
        return int(number) if number.is_integer() and "." not in raw else number
    if field_type in ("bool", "boolean"):
        lowered = raw.strip().lower()
        if lowered in ("1", "true", "yes", "on"):
            return True
        if lowered in ("0", "false", "no", "off"):
            return False
        raise ValueError(f"not a boolean: {raw!r}")
    return raw


@dataclass(frozen=True)
class QueryForm:
    q: str | None = None
    search_fields: Tuple[str, ...] = ()

    @classmethod
    def from_params(cls, params: Mapping[str, Any], search_fields: Sequence[str]) -> "QueryForm":
        raw = _first(params, "q")
        q = raw.strip() if isinstance(raw, str) and raw.strip() else None
        return cls(q=q, search_fields=tuple(search_fields))

    @property
    def active(self) -> bool:
        return bool(self.q) and bool(self.search_fields)

    def matches(self, record: Record) -> bool:
        if not self.active:
            return True
        needle = self.q.lower()
        for field_id in self.search_fields:
            value = record.get(field_id)
            if value is not None and needle in str(value).lower():
                return True
        return False

    def apply(self, records: RecordSet) -> RecordSet:
        if not self.active:
            return records
        return records.narrow(self.matches)

    def to_dict(self) -> dict:
        return {"q": self.q, "search_fields": list(self.search_fields)}


@dataclass(frozen=True)
class FilterClause:
    field: str
    op: str
    value: Any

    def condition(self) -> dict:
        return {"op": self.op, "field": self.field, "value": self.value}


@dataclass(frozen=True)
class FilterForm:
    clauses: Tuple[FilterClause, ...] = ()

    @classmethod
    def from_params(
        cls,
        params: Mapping[str, Any],
        filters: Mapping[str, Sequence[str]],
        field_types: Mapping[str, str] | None = None,
    ) -> "FilterForm":
        field_types = field_types or {}
        clauses: List[FilterClause] = []
        for key in sorted(params.keys()):
            match = _FILTER_PARAM_RE.match(key)
            if not match:
                continue
            field_id = match.group("field")
            op = match.group("op")
            if op not in FILTER_OPS or op not in (filters.get(field_id) or ()):
                logger.info("filter_ignored field=%s op=%s", field_id, op)
                continue
            raw = _first(params, key)
            if raw is None or raw == "":
                continue
            try:
                if op == "in":
                    value = [coerce_value(part.strip(), field_types.get(field_id)) for part in str(raw).split(",") if part.strip()]
                elif op == "exists":
                    value = None
                else:
                    value = coerce_value(raw, field_types.get(field_id))
            except ValueError:
                logger.info("filter_value_invalid field=%s op=%s value=%r", field_id, op, raw)
                continue
            clauses.append(FilterClause(field=field_id, op=op, value=value))
        return cls(clauses=tuple(clauses))

    def matches(self, record: Record) -> bool:
        context = {"record": record.context()}
        return all(eval_condition(clause.condition(), context) for clause in self.clauses)

    def apply(self, records: RecordSet) -> RecordSet:
        if not self.clauses:
            return records
        return records.narrow(self.matches)

    def to_dict(self) -> dict:
        return {"clauses": [clause.condition() for clause in self.clauses]}


def _sort_key(value: Any) -> tuple:
    if isinstance(value, bool):
        return (0, int(value), "")
    if isinstance(value, (int, float)):
        return (0, value, "")
    return (1, 0, str(value))


@dataclass(frozen=True)
class SortForm:
    field: str | None = None
    direction: str = ASC

    @classmethod
    def from_params(
        cls,
        params: Mapping[str, Any],
        sortable: Sequence[str],
        default_field: str | None = None,
        default_direction: str = ASC,
    ) -> "SortForm":
        field_id = _first(params, "sort")
        if field_id not in sortable:
            field_id = default_field if default_field in sortable else None
        direction = _first(params, "direction")
        if direction not in (ASC, DESC):
            direction = default_direction if default_direction in (ASC, DESC) else ASC
        return cls(field=field_id, direction=direction)

    def apply(self, records: RecordSet) -> RecordSet:
        if not self.field:
            return records
        field_id = self.field
        present = records.narrow(lambda rec: rec.get(field_id) is not None)
        missing = records.narrow(lambda rec: rec.get(field_id) is None)
        ordered = present.order_by(lambda rec: _sort_key(rec.get(field_id)), descending=self.direction == DESC)
        return RecordSet([*ordered, *missing])

    def to_dict(self) -> dict:
        return {"field": self.field, "direction": self.direction}


class RecordPipeline:
    def __init__(self, storage, scope: Scope, permitted: Iterable[str] | None = None) -> None:
        self._storage = storage
        self._scope = scope
        self._permitted = set(permitted) if permitted is not None else None

    @property
    def scope(self) -> Scope:
        return self._scope

    def load_record(self) -> Record:
        return self._storage.find_one(self._scope)

    def load_records(self) -> RecordSet:
        return self._storage.find_many(self._scope)

    def build_record(self) -> Record:
        return self._storage.build(self._scope)

    def apply_queries(
        self,
        records: RecordSet,
        query_form: QueryForm,
        filter_form: FilterForm,
        sort_form: SortForm,
    ) -> RecordSet:
        narrowed = filter_form.apply(query_form.apply(records))
        return sort_form.apply(narrowed)

    def set_record_attributes(self, record: Record, submitted: Mapping[str, Any] | None) -> None:
        if not isinstance(submitted, Mapping):
            submitted = {}
        if self._permitted is None:
            attrs = dict(submitted)
        else:
            attrs = {key: val for key, val in submitted.items() if key in self._permitted}
            dropped = sorted(set(submitted.keys()) - set(attrs.keys()))
            if dropped:
                logger.info("attributes_unpermitted entity=%s keys=%s", self._scope.entity, dropped)
        self._storage.assign(record, attrs)

    def save_record(self, record: Record) -> bool:
        ok = bool(self._storage.save(record))
        if ok:
            logger.info("record_saved entity=%s id=%s", record.entity, record.id)
        else:
            logger.info(
                "record_invalid entity=%s id=%s errors=%s",
                record.entity,
                record.id,
                [err.get("code") for err in record.errors],
            )
        return ok

    def destroy_record(self, record: Record) -> bool:
        ok = bool(self._storage.destroy(record))
        if ok:
            logger.info("record_destroyed entity=%s id=%s", record.entity, record.id)
        return ok
