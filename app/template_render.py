"""Sandboxed Jinja2 rendering for manifest-declared action labels and links."""

from __future__ import annotations

from typing import Any, Iterable, Tuple

from jinja2 import StrictUndefined, TemplateSyntaxError, Undefined
from jinja2.sandbox import ImmutableSandboxedEnvironment

_ALLOWED_FILTERS = {
    "default",
    "lower",
    "upper",
    "title",
    "trim",
    "replace",
    "truncate",
    "urlencode",
}

_ALLOWED_TESTS = {
    "defined",
    "undefined",
    "none",
    "equalto",
}


class _LockedSandbox(ImmutableSandboxedEnvironment):
    def is_safe_attribute(self, obj, attr, value) -> bool:
        return False

    def is_safe_callable(self, obj) -> bool:
        return False


def _env(strict: bool) -> _LockedSandbox:
    env = _LockedSandbox(autoescape=False, undefined=StrictUndefined if strict else Undefined)
    env.globals = {}
    env.filters = {key: val for key, val in env.filters.items() if key in _ALLOWED_FILTERS}
    env.tests = {key: val for key, val in env.tests.items() if key in _ALLOWED_TESTS}
    return env


def _sanitize_value(value: Any) -> Any:
    if value is None or isinstance(value, (str, int, float, bool)):
        return value
    if isinstance(value, dict):
        return {str(key): _sanitize_value(val) for key, val in value.items()}
    if isinstance(value, (list, tuple)):
        return [_sanitize_value(val) for val in value]
    return str(value)


def is_templated(text: Any) -> bool:
    return isinstance(text, str) and ("{{" in text or "{%" in text)


def validate_templates(templates: Iterable[Tuple[str, str | None]]) -> list[dict]:
    """Syntax-check ``(path, text)`` pairs; returns manifest issues."""
    issues: list[dict] = []
    env = _env(strict=False)
    for path, text in templates:
        if not text:
            continue
        try:
            env.parse(text)
        except TemplateSyntaxError as exc:
            issues.append(
                {
                    "code": "TEMPLATE_SYNTAX",
                    "message": exc.message or "template syntax error",
                    "path": path,
                    "detail": {"line": exc.lineno or 1},
                }
            )
    return issues


def render_template(text: str | None, context: dict[str, Any], strict: bool = False) -> str:
    env = _env(strict=strict)
    tmpl = env.from_string(text or "")
    return tmpl.render(_sanitize_value(context or {}))
