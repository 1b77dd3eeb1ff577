"""Process-wide registry of resource declarations."""

from __future__ import annotations

import threading
from datetime import datetime, timezone
from typing import Any, Dict, List

from admin_resource import Resource
from strata.manifest_hash import combined_hash, manifest_hash


Issue = Dict[str, Any]


def _now() -> str:
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


def _issue(code: str, message: str, path: str | None = None, detail: dict | None = None) -> Issue:
    return {"code": code, "message": message, "path": path, "detail": detail}


class ResourceRegistry:
    """Resources are registered at startup, then the registry is frozen."""

    def __init__(self) -> None:
        self._resources: Dict[str, Resource] = {}
        self._hashes: Dict[str, str] = {}
        self._registered_at: Dict[str, str] = {}
        self._frozen = False
        self._lock = threading.Lock()

    @property
    def frozen(self) -> bool:
        return self._frozen

    def register(self, resource: Resource) -> dict:
        errors: List[Issue] = []
        key = resource.route_key
        with self._lock:
            if self._frozen:
                errors.append(_issue("REGISTRY_FROZEN", "resources cannot be registered after startup", "route_key"))
            elif key in self._resources:
                errors.append(_issue("RESOURCE_ALREADY_REGISTERED", "resource already registered", "route_key", {"route_key": key}))
            if errors:
                return {"ok": False, "errors": errors, "warnings": [], "resource": None, "hash": None}
            digest = manifest_hash(resource.describe())
            self._resources[key] = resource
            self._hashes[key] = digest
            self._registered_at[key] = _now()
        return {"ok": True, "errors": [], "warnings": [], "resource": key, "hash": digest}

    def freeze(self) -> None:
        self._frozen = True

    def get(self, route_key: str) -> Resource | None:
        return self._resources.get(route_key)

    def list(self) -> list[dict]:
        return [
            {
                "route_key": key,
                "label": self._resources[key].label,
                "hash": self._hashes[key],
                "registered_at": self._registered_at[key],
            }
            for key in sorted(self._resources.keys())
        ]

    def config_hash(self) -> str:
        return combined_hash(self._hashes.values())
