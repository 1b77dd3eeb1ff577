"""Condition evaluation for listing filters and record-conditional actions."""

from __future__ import annotations

from typing import Any, Dict, List


Issue = Dict[str, Any]

COMPARISON_OPS = {"eq", "neq", "gt", "gte", "lt", "lte", "in", "not_in", "contains", "exists"}
LOGICAL_OPS = {"and", "or", "not"}
ALLOWED_OPS = COMPARISON_OPS | LOGICAL_OPS


def _issue(code: str, message: str, path: str | None = None) -> Issue:
    return {"code": code, "message": message, "path": path, "detail": None}


def _get_by_path(data: Any, path: str) -> Any:
    if not isinstance(data, dict):
        return None
    if path in data:
        return data.get(path)
    cur: Any = data
    for part in path.split("."):
        if isinstance(cur, dict) and part in cur:
            cur = cur.get(part)
        else:
            return None
    return cur


def _field_value(field: Any, context: dict) -> Any:
    if not isinstance(field, str):
        return None
    return _get_by_path(context.get("record", {}), field)


def _ordered(left: Any, right: Any) -> bool:
    if left is None or right is None:
        return False
    if isinstance(left, bool) or isinstance(right, bool):
        return False
    numeric = (int, float)
    if isinstance(left, numeric) and isinstance(right, numeric):
        return True
    return type(left) is type(right)


def eval_condition(condition: dict | None, context: dict) -> bool:
    if not condition or not isinstance(condition, dict):
        return False
    op = condition.get("op")
    if op not in ALLOWED_OPS:
        return False

    if op == "and":
        items = condition.get("conditions") or []
        return all(eval_condition(c, context) for c in items)
    if op == "or":
        items = condition.get("conditions") or []
        return any(eval_condition(c, context) for c in items)
    if op == "not":
        return not eval_condition(condition.get("condition"), context)

    left = _field_value(condition.get("field"), context)
    right = condition.get("value")

    if op == "exists":
        return left is not None and left != ""
    if op == "eq":
        return left == right
    if op == "neq":
        return left != right
    if op in {"gt", "gte", "lt", "lte"}:
        if not _ordered(left, right):
            return False
        if op == "gt":
            return left > right
        if op == "gte":
            return left >= right
        if op == "lt":
            return left < right
        return left <= right
    if op == "in":
        return isinstance(right, list) and left in right
    if op == "not_in":
        return isinstance(right, list) and left not in right
    if op == "contains":
        if isinstance(left, list):
            return right in left
        if isinstance(left, str) and isinstance(right, str):
            return right.lower() in left.lower()
        return False
    return False


def validate_condition(condition: Any, path: str = "$") -> List[Issue]:
    """Structural check used when manifests are loaded."""
    issues: List[Issue] = []
    if not isinstance(condition, dict):
        return [_issue("CONDITION_INVALID", "condition must be object", path)]
    op = condition.get("op")
    if op not in ALLOWED_OPS:
        return [_issue("CONDITION_UNKNOWN_OP", f"Unknown op: {op}", f"{path}.op")]
    if op in {"and", "or"}:
        items = condition.get("conditions")
        if not isinstance(items, list):
            return [_issue("CONDITION_INVALID", "conditions must be list", f"{path}.conditions")]
        for idx, item in enumerate(items):
            issues.extend(validate_condition(item, f"{path}.conditions[{idx}]"))
        return issues
    if op == "not":
        return validate_condition(condition.get("condition"), f"{path}.condition")
    if not isinstance(condition.get("field"), str):
        issues.append(_issue("CONDITION_INVALID", "field required", path))
    return issues
