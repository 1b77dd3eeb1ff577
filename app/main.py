"""FastAPI app exposing the admin resources."""

from __future__ import annotations

import csv
import io
import logging
import sys
from pathlib import Path
from typing import Any, Dict
from urllib.parse import quote, unquote

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse, RedirectResponse, Response, StreamingResponse

ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"
if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from action_resolver import ActionSpec
from admin_resource import Resource
from app.config import Settings, load_settings
from app.registry import ResourceRegistry
from app.resource_manifest import load_manifest_dir
from app.stores import MemoryRecordStore
from format_gate import FORMAT_PARAM, FormatGate, normalize_format
from record_pipeline import FilterForm, QueryForm, Record, RecordSet, SortForm
from resource_controller import Outcome, RequestInput, controller_for
from schema_engine import DISPLAY_ACTIONS_TEMPLATE, ResolvedSchema


logger = logging.getLogger("strata")

FLASH_COOKIE = "strata_flash"


def _error_response(code: str, message: str, path: str | None = None, detail: dict | None = None, status: int = 400) -> JSONResponse:
    body = {
        "ok": False,
        "errors": [{"code": code, "message": message, "path": path, "detail": detail}],
        "warnings": [],
    }
    return JSONResponse(jsonable_encoder(body), status_code=status)


def _ok_response(payload: dict, warnings: list | None = None, status: int = 200) -> JSONResponse:
    body = {"ok": status < 400, **payload, "errors": payload.get("errors", []), "warnings": warnings or []}
    return JSONResponse(jsonable_encoder(body), status_code=status)


def _serialize(value: Any) -> Any:
    if isinstance(value, Resource):
        return {"route_key": value.route_key, "label": value.label, "namespace": value.namespace}
    if isinstance(value, RecordSet):
        return [record.to_dict() for record in value]
    if isinstance(value, (Record, ResolvedSchema, ActionSpec, QueryForm, FilterForm, SortForm)):
        return value.to_dict()
    if isinstance(value, dict):
        return {str(key): _serialize(val) for key, val in value.items()}
    if isinstance(value, (list, tuple)):
        return [_serialize(val) for val in value]
    return value


def _query_params(request: Request) -> Dict[str, Any]:
    params: Dict[str, Any] = {}
    for key in request.query_params.keys():
        values = request.query_params.getlist(key)
        params[key] = values if len(values) > 1 else values[0]
    return params


def _read_flash(request: Request) -> Dict[str, str]:
    raw = request.cookies.get(FLASH_COOKIE)
    return {"alert": unquote(raw)} if raw else {}


def _csv_response(outcome: Outcome) -> Response:
    display: ResolvedSchema = outcome.context["display"]
    columns = [(name, field) for name, field in display if field.template != DISPLAY_ACTIONS_TEMPLATE]
    buffer = io.StringIO()
    writer = csv.writer(buffer)
    writer.writerow([field.label or name for name, field in columns])
    for record in outcome.context["records"]:
        writer.writerow([record.get(field.reader or name) for name, field in columns])
    filename = f"{outcome.context['resource'].route_key}.csv"
    return StreamingResponse(
        iter([buffer.getvalue()]),
        media_type="text/csv",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


def _respond(outcome: Outcome, request: Request, registry: ResourceRegistry) -> Response:
    if outcome.is_redirect:
        response = RedirectResponse(outcome.location, status_code=outcome.status)
        if outcome.flash.get("alert"):
            response.set_cookie(FLASH_COOKIE, quote(outcome.flash["alert"]), max_age=60, httponly=True)
        return response
    if outcome.view == "index" and outcome.context.get("display") is not None and outcome.context["display"].format == "csv":
        return _csv_response(outcome)
    payload = {
        "view": outcome.view,
        "action": outcome.action.to_dict(),
        "config_hash": registry.config_hash(),
        **_serialize(outcome.context),
    }
    response = _ok_response(payload, status=outcome.status)
    if FLASH_COOKIE in request.cookies:
        response.delete_cookie(FLASH_COOKIE)
    return response


async def _safe_json(request: Request) -> Any:
    try:
        return await request.json()
    except ValueError:
        return None


def _submitted(body: Any) -> dict:
    data = body.get("record") if isinstance(body, dict) and "record" in body else body
    return data if isinstance(data, dict) else {}


def _default_storage(settings: Settings, resources: list[Resource]):
    definitions = {
        resource.entity: resource.storage_definition() if hasattr(resource, "storage_definition") else {"fields": dict(resource.fields)}
        for resource in resources
    }
    if settings.use_db:
        from app.stores_db import DbRecordStore

        return DbRecordStore(definitions)
    return MemoryRecordStore(definitions)


def create_app(
    resources: list[Resource] | None = None,
    storage=None,
    settings: Settings | None = None,
) -> FastAPI:
    settings = settings or load_settings()
    resources = list(resources or [])
    if settings.manifest_dir:
        resources.extend(load_manifest_dir(settings.manifest_dir))

    registry = ResourceRegistry()
    for resource in resources:
        # routes and links share one prefix
        resource.namespace = settings.namespace
        result = registry.register(resource)
        if not result["ok"]:
            logger.warning("resource_register_failed route_key=%s errors=%s", resource.route_key, result["errors"])
    registry.freeze()
    if storage is None:
        storage = _default_storage(settings, resources)

    notice = settings.advisory_notice()
    notices = [notice] if notice else []
    if notice:
        logger.warning("asset_version_mismatch notice=%s", notice)

    app = FastAPI(title="strata admin")
    app.state.registry = registry
    app.state.storage = storage
    app.state.settings = settings
    prefix = f"/{settings.namespace}"

    def _run(request: Request, route_key: str, kind: str, route_params: dict | None = None, submitted: dict | None = None) -> Response:
        resource = registry.get(route_key)
        if resource is None:
            return _error_response("RESOURCE_NOT_FOUND", "Resource not found", "resource", status=404)
        query = _query_params(request)
        fmt = normalize_format(query.get(FORMAT_PARAM))
        enabled = set(settings.enabled_formats)
        if resource.csv_enabled:
            enabled.add("csv")
        request_input = RequestInput(
            format=fmt,
            route_params=route_params or {},
            submitted_attributes=submitted or {},
            raw_query_params=query,
            flash=_read_flash(request),
        )
        controller = controller_for(resource, storage, kind, request_input, format_gate=FormatGate(enabled), notices=notices)
        return _respond(controller.dispatch(), request, registry)

    @app.get("/health")
    async def health() -> dict:
        return {"ok": True}

    @app.get(prefix)
    async def list_resources() -> JSONResponse:
        return _ok_response({"resources": registry.list(), "config_hash": registry.config_hash(), "notices": notices})

    @app.get(prefix + "/{route_key}")
    async def index(request: Request, route_key: str) -> Response:
        return _run(request, route_key, "index")

    @app.get(prefix + "/{route_key}/new")
    async def new(request: Request, route_key: str) -> Response:
        return _run(request, route_key, "new")

    @app.post(prefix + "/{route_key}")
    async def create(request: Request, route_key: str) -> Response:
        body = await _safe_json(request)
        return _run(request, route_key, "create", submitted=_submitted(body))

    @app.get(prefix + "/{route_key}/{record_id}")
    async def show(request: Request, route_key: str, record_id: str) -> Response:
        return _run(request, route_key, "show", route_params={"id": record_id})

    @app.get(prefix + "/{route_key}/{record_id}/edit")
    async def edit(request: Request, route_key: str, record_id: str) -> Response:
        return _run(request, route_key, "edit", route_params={"id": record_id})

    @app.put(prefix + "/{route_key}/{record_id}")
    @app.patch(prefix + "/{route_key}/{record_id}")
    async def update(request: Request, route_key: str, record_id: str) -> Response:
        body = await _safe_json(request)
        return _run(request, route_key, "update", route_params={"id": record_id}, submitted=_submitted(body))

    @app.delete(prefix + "/{route_key}/{record_id}")
    async def destroy(request: Request, route_key: str, record_id: str) -> Response:
        return _run(request, route_key, "destroy", route_params={"id": record_id})

    return app


def _configure_logging(settings: Settings) -> None:
    logging.basicConfig(level=getattr(logging, settings.log_level, logging.INFO))


_settings = load_settings()
_configure_logging(_settings)
app = create_app(settings=_settings)
