"""Default implementation of the resourceful actions for a Resource.

Each action returns an ``Outcome``: either a render (view name, status and
the context handed to the rendering layer) or a redirect (location, status
and optional flash). Every failure path ends in one of the two.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Mapping

from action_inquirer import ACTION_KINDS, Action, ActionContext
from action_resolver import ActionSpec, resolve_collection_actions, resolve_member_actions
from admin_resource import Resource
from format_gate import DEFAULT_FORMAT, FormatGate, degraded_location
from link_resolver import canonical_path, collection_path
from record_pipeline import (
    FilterForm,
    IntegrityConstraintViolation,
    ParentRef,
    QueryForm,
    Record,
    RecordNotFound,
    RecordPipeline,
    Scope,
    SortForm,
)


logger = logging.getLogger("strata.actions")

STATUS_OK = 200
STATUS_FOUND = 302
STATUS_SEE_OTHER = 303
STATUS_BAD_REQUEST = 400
STATUS_NOT_FOUND = 404

DESTROY_FAILED = "Couldn't delete record"


@dataclass(frozen=True)
class RequestInput:
    action_name: str | None = None
    format: str = DEFAULT_FORMAT
    route_params: Mapping[str, Any] = field(default_factory=dict)
    submitted_attributes: Mapping[str, Any] = field(default_factory=dict)
    raw_query_params: Mapping[str, Any] = field(default_factory=dict)
    flash: Mapping[str, str] = field(default_factory=dict)


@dataclass
class Outcome:
    kind: str
    status: int
    action: Action
    view: str | None = None
    location: str | None = None
    context: Dict[str, Any] = field(default_factory=dict)
    flash: Dict[str, str] = field(default_factory=dict)

    @property
    def is_redirect(self) -> bool:
        return self.kind == "redirect"


class ResourceController:
    def __init__(
        self,
        resource: Resource,
        storage,
        request: RequestInput,
        native_kind: str,
        format_gate: FormatGate | None = None,
        notices: List[str] | None = None,
    ) -> None:
        self.resource = resource
        self.request = request
        self.actions = ActionContext(native_kind, request.action_name)
        self._storage = storage
        self._format_gate = format_gate or FormatGate()
        self._notices = list(notices or [])

    @property
    def current_action(self) -> Action:
        return self.actions.current

    def dispatch(self) -> Outcome:
        handlers: Dict[str, Callable[[], Outcome]] = {
            "index": self.index,
            "show": self.show,
            "new": self.new,
            "create": self.create,
            "edit": self.edit,
            "update": self.update,
            "destroy": self.destroy,
        }
        return handlers[self.actions.default_kind]()

    # -- collaborators -------------------------------------------------

    def _parent(self) -> ParentRef | None:
        params = self.request.route_params
        parent_entity = params.get("parent_entity")
        parent_id = params.get("parent_id")
        if isinstance(parent_entity, str) and parent_entity and parent_id is not None:
            return ParentRef(entity=parent_entity, id=parent_id)
        return None

    def _scope(self) -> Scope:
        return Scope(
            entity=self.resource.entity,
            record_id=self.request.route_params.get("id"),
            parent=self._parent(),
        )

    def _pipeline(self) -> RecordPipeline:
        return RecordPipeline(self._storage, self._scope(), permitted=self.resource.permitted_attributes())

    def resolved_collection_actions(self) -> List[ActionSpec]:
        return resolve_collection_actions(self.resource.collection_actions())

    def resolved_member_actions(self, record: Record) -> List[ActionSpec]:
        return resolve_member_actions(self.resource.member_actions(record), record)

    def _location(self, record: Record) -> str:
        return canonical_path(record, self.resource.namespace)

    # -- outcomes ------------------------------------------------------

    def _render(self, view: str, context: Dict[str, Any], status: int = STATUS_OK) -> Outcome:
        base = {
            "resource": self.resource,
            "notices": list(self._notices),
            "flash": dict(self.request.flash),
            "collection_actions": self.resolved_collection_actions(),
        }
        base.update(context)
        return Outcome(kind="render", status=status, action=self.current_action, view=view, context=base)

    def _redirect(self, location: str, status: int = STATUS_SEE_OTHER, flash: Dict[str, str] | None = None) -> Outcome:
        return Outcome(
            kind="redirect",
            status=status,
            action=self.current_action,
            location=location,
            flash=dict(flash or {}),
        )

    def _not_found(self, exc: RecordNotFound) -> Outcome:
        logger.info("record_not_found entity=%s id=%s", exc.entity, exc.record_id)
        return self._render("not_found", {"error": {"code": exc.code, "entity": exc.entity, "id": exc.record_id}}, status=STATUS_NOT_FOUND)

    def _render_form(self, view: str, record: Record, status: int = STATUS_OK) -> Outcome:
        form = self.resource.form_schema().apply(self.current_action, self.request.format)
        return self._render(view, {"record": record, "form": form, "errors": list(record.errors)}, status=status)

    # -- actions -------------------------------------------------------

    def index(self) -> Outcome:
        fmt = self.request.format
        if fmt != DEFAULT_FORMAT and not self._format_gate.is_non_default_format_allowed(fmt):
            path = collection_path(self.resource.entity, self.resource.namespace, self._parent())
            return self._redirect(degraded_location(path, self.request.raw_query_params), status=STATUS_FOUND)

        pipeline = self._pipeline()
        records = pipeline.load_records()
        display = self.resource.display_schema().apply(self.current_action, fmt)
        params = self.request.raw_query_params
        query_form = QueryForm.from_params(params, self.resource.search_fields)
        filter_form = FilterForm.from_params(params, self.resource.filters, self.resource.field_types())
        sort_form = SortForm.from_params(
            params,
            self.resource.sortable,
            self.resource.default_sort,
            self.resource.default_direction,
        )
        records = pipeline.apply_queries(records, query_form, filter_form, sort_form)
        rows = [{"record": record, "actions": self.resolved_member_actions(record)} for record in records]
        return self._render(
            "index",
            {
                "records": records,
                "rows": rows,
                "display": display,
                "query_form": query_form,
                "filter_form": filter_form,
                "sort_form": sort_form,
            },
        )

    def show(self) -> Outcome:
        try:
            record = self._pipeline().load_record()
        except RecordNotFound as exc:
            return self._not_found(exc)
        display = self.resource.display_schema().apply(self.current_action, self.request.format)
        return self._render(
            "show",
            {"record": record, "display": display, "member_actions": self.resolved_member_actions(record)},
        )

    def new(self) -> Outcome:
        record = self._pipeline().build_record()
        return self._render_form("new", record)

    def create(self) -> Outcome:
        pipeline = self._pipeline()
        record = pipeline.build_record()
        pipeline.set_record_attributes(record, self.request.submitted_attributes)
        if pipeline.save_record(record):
            return self._redirect(self._location(record))
        with self.actions.with_action("new"):
            return self._render_form("new", record, status=STATUS_BAD_REQUEST)

    def edit(self) -> Outcome:
        try:
            record = self._pipeline().load_record()
        except RecordNotFound as exc:
            return self._not_found(exc)
        return self._render_form("edit", record)

    def update(self) -> Outcome:
        pipeline = self._pipeline()
        try:
            record = pipeline.load_record()
        except RecordNotFound as exc:
            return self._not_found(exc)
        pipeline.set_record_attributes(record, self.request.submitted_attributes)
        if pipeline.save_record(record):
            return self._redirect(self._location(record))
        with self.actions.with_action("edit"):
            return self._render_form("edit", record, status=STATUS_BAD_REQUEST)

    def destroy(self) -> Outcome:
        pipeline = self._pipeline()
        try:
            record = pipeline.load_record()
        except RecordNotFound as exc:
            return self._not_found(exc)
        try:
            destroyed = pipeline.destroy_record(record)
        except IntegrityConstraintViolation as exc:
            logger.warning(
                "destroy_blocked entity=%s id=%s constraint=%s",
                record.entity,
                record.id,
                exc.constraint,
            )
            alert = f"{DESTROY_FAILED}: {type(exc).__name__} ({exc.constraint})"
            return self._redirect(self._location(record), flash={"alert": alert})
        if destroyed:
            return self._redirect(self._location(record))
        logger.warning("destroy_failed entity=%s id=%s", record.entity, record.id)
        return self._redirect(self._location(record), flash={"alert": DESTROY_FAILED})


def controller_for(
    resource: Resource,
    storage,
    kind: str,
    request: RequestInput,
    format_gate: FormatGate | None = None,
    notices: List[str] | None = None,
) -> ResourceController:
    if kind not in ACTION_KINDS:
        raise ValueError(f"Unknown action kind: {kind!r}")
    return ResourceController(resource, storage, request, kind, format_gate=format_gate, notices=notices)
