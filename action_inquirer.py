"""Classification of the current request's resourceful action."""

from __future__ import annotations

from contextlib import contextmanager
from dataclasses import dataclass
from typing import Iterator, List


ACTION_KINDS = ("index", "show", "new", "create", "edit", "update", "destroy")

ACTION_CATEGORIES = {
    "index": "read",
    "show": "read",
    "new": "write",
    "create": "write",
    "edit": "write",
    "update": "write",
    "destroy": "delete",
}

DEFAULT = "default"
EXPLICIT = "explicit"


@dataclass(frozen=True)
class Action:
    kind: str
    origin: str = DEFAULT

    @property
    def category(self) -> str:
        return ACTION_CATEGORIES[self.kind]

    @property
    def is_read(self) -> bool:
        return self.category == "read"

    @property
    def is_write(self) -> bool:
        return self.category == "write"

    @property
    def is_delete(self) -> bool:
        return self.category == "delete"

    @property
    def is_default(self) -> bool:
        return self.origin == DEFAULT

    @property
    def is_explicit(self) -> bool:
        return self.origin == EXPLICIT

    def is_(self, *kinds: str) -> bool:
        """True when the action kind (or its category) is one of ``kinds``."""
        return self.kind in kinds or self.category in kinds

    def to_dict(self) -> dict:
        return {"kind": self.kind, "origin": self.origin, "category": self.category}


def _require_kind(kind: str) -> str:
    if kind not in ACTION_KINDS:
        raise ValueError(f"Unknown default action kind: {kind!r}")
    return kind


def classify(default_kind: str, requested_name: str | None) -> Action:
    """Turn a raw action name into an Action.

    Unknown or missing names fall back to ``default_kind`` instead of failing,
    so unexpected route parameters never abort a request.
    """
    _require_kind(default_kind)
    if isinstance(requested_name, str) and requested_name in ACTION_KINDS:
        return Action(requested_name, EXPLICIT)
    return Action(default_kind, DEFAULT)


class ActionContext:
    """Request-owned holder of the single active Action."""

    def __init__(self, default_kind: str, requested_name: str | None = None) -> None:
        self._default_kind = _require_kind(default_kind)
        self._stack: List[Action] = [classify(default_kind, requested_name)]

    @property
    def current(self) -> Action:
        return self._stack[-1]

    @property
    def default_kind(self) -> str:
        return self._default_kind

    @property
    def depth(self) -> int:
        return len(self._stack)

    @contextmanager
    def with_action(self, kind: str) -> Iterator[Action]:
        """Temporarily replace the active Action with an explicit one.

        The previous Action is restored when the block exits, including when
        it raises.
        """
        action = classify(self._default_kind, kind)
        self._stack.append(action)
        try:
            yield action
        finally:
            self._stack.pop()
