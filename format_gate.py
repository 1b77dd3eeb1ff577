"""Output format gating for listing actions."""

from __future__ import annotations

import logging
from typing import Any, Iterable, Mapping
from urllib.parse import urlencode


logger = logging.getLogger("strata.formats")

DEFAULT_FORMAT = "html"
FORMAT_PARAM = "format"
KNOWN_FORMATS = ("html", "csv", "json")


def normalize_format(value: Any) -> str:
    """Lower-cased format name; blank or missing means the default format."""
    if isinstance(value, (list, tuple)):
        value = value[0] if value else None
    if isinstance(value, str) and value.strip():
        return value.strip().lower()
    return DEFAULT_FORMAT


class FormatGate:
    def __init__(self, enabled: Iterable[str] = ()) -> None:
        self._enabled = frozenset(fmt.lower() for fmt in enabled)

    @property
    def enabled(self) -> frozenset:
        return self._enabled

    def is_non_default_format_allowed(self, fmt: str) -> bool:
        if fmt == DEFAULT_FORMAT:
            return True
        return fmt in self._enabled


def strip_format(params: Mapping[str, Any]) -> dict:
    return {key: value for key, value in params.items() if key != FORMAT_PARAM}


def degraded_location(path: str, params: Mapping[str, Any]) -> str:
    """Same listing, format parameter removed, default format implied."""
    remaining = strip_format(params)
    logger.info("format_degraded path=%s requested=%s", path, params.get(FORMAT_PARAM))
    if not remaining:
        return path
    return f"{path}?{urlencode(remaining, doseq=True)}"
