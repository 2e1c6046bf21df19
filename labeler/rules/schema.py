from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from .errors import RULES_003_PAYLOAD_INVALID, ValidationError
from .evaluator import render_value
from .models import (
    CONDITION_OPERATORS,
    GROUP_OPERATORS,
    Condition,
    ConditionGroup,
    Node,
    ProcessedRecord,
    Rule,
    utc_now,
)


def parse_timestamp(raw: Any, path: str = "$") -> datetime:
    if isinstance(raw, datetime):
        dt = raw
    elif isinstance(raw, str) and raw.strip():
        text = raw.strip()
        if text.endswith(("Z", "z")):
            text = text[:-1] + "+00:00"
        try:
            dt = datetime.fromisoformat(text)
        except ValueError:
            raise ValidationError(path, f"invalid ISO timestamp {raw!r}") from None
    else:
        raise ValidationError(path, f"expected ISO timestamp, got {type(raw).__name__}")
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


def _require(data: dict[str, Any], key: str, path: str) -> Any:
    if key not in data or data[key] is None:
        raise ValidationError(f"{path}.{key}", "missing required field")
    return data[key]


def _require_text(data: dict[str, Any], key: str, path: str) -> str:
    value = _require(data, key, path)
    if not isinstance(value, str) or not value.strip():
        raise ValidationError(f"{path}.{key}", "expected non-empty string")
    return value


def _node_type(data: dict[str, Any], path: str) -> str:
    declared = data.get("type")
    if declared is not None:
        if declared not in ("condition", "group"):
            raise ValidationError(f"{path}.type", f"expected 'condition' or 'group', got {declared!r}")
        return str(declared)
    if "key" in data:
        return "condition"
    if "conditions" in data or "children" in data:
        return "group"
    raise ValidationError(path, "cannot tell condition from group: missing 'key' or 'conditions'")


def parse_condition(data: dict[str, Any], path: str = "$") -> Condition:
    key = _require_text(data, "key", path)
    operator = _require(data, "operator", path)
    if operator not in CONDITION_OPERATORS:
        raise ValidationError(f"{path}.operator", f"expected one of {list(CONDITION_OPERATORS)!r}, got {operator!r}")
    value = _require(data, "value", path)
    if isinstance(value, (dict, list)):
        raise ValidationError(f"{path}.value", "expected scalar value")
    return Condition(key=key, operator=operator, value=render_value(value))


class _OpenGroup:
    """A validated group whose children are still being parsed."""

    __slots__ = ("operator", "child_key", "raw_children", "children", "parent", "index", "root_path")

    def __init__(self, operator: str, child_key: str, raw_children: list[Any]) -> None:
        self.operator = operator
        self.child_key = child_key
        self.raw_children = raw_children
        self.children: list[Node] = []
        self.parent: _OpenGroup | None = None
        self.index = 0
        self.root_path = "$"

    def path(self) -> str:
        parts: list[str] = []
        frame = self
        while frame.parent is not None:
            parts.append(f".{frame.parent.child_key}[{frame.index}]")
            frame = frame.parent
        return frame.root_path + "".join(reversed(parts))


def _open_group(data: dict[str, Any], path: str) -> _OpenGroup:
    operator = _require(data, "operator", path)
    if not isinstance(operator, str) or operator.upper() not in GROUP_OPERATORS:
        raise ValidationError(f"{path}.operator", f"expected one of {list(GROUP_OPERATORS)!r}, got {operator!r}")
    child_key = "conditions" if "conditions" in data else "children"
    raw_children = _require(data, child_key, path)
    if not isinstance(raw_children, list):
        raise ValidationError(f"{path}.{child_key}", f"expected array, got {type(raw_children).__name__}")
    if not raw_children:
        raise ValidationError(f"{path}.{child_key}", "group needs at least one condition")
    return _OpenGroup(operator.upper(), child_key, raw_children)


def _open_node(data: Any, path: str) -> Condition | _OpenGroup:
    if not isinstance(data, dict):
        raise ValidationError(path, f"expected object, got {type(data).__name__}")
    if _node_type(data, path) == "condition":
        return parse_condition(data, path)
    return _open_group(data, path)


def _build_group(root: _OpenGroup, path: str) -> ConditionGroup:
    # Depth-first with an explicit stack so arbitrarily deep trees parse without
    # touching the recursion limit. Children are opened with a relative path and
    # the absolute one is only assembled when something is wrong.
    root.root_path = path
    stack = [root]
    while True:
        frame = stack[-1]
        idx = len(frame.children)
        if idx < len(frame.raw_children):
            try:
                node = _open_node(frame.raw_children[idx], "")
            except ValidationError as e:
                raise ValidationError(f"{frame.path()}.{frame.child_key}[{idx}]{e.path}", e.reason, e.err) from None
            if isinstance(node, _OpenGroup):
                node.parent = frame
                node.index = idx
                stack.append(node)
            else:
                frame.children.append(node)
            continue
        stack.pop()
        group = ConditionGroup(operator=frame.operator, children=tuple(frame.children))
        if not stack:
            return group
        stack[-1].children.append(group)


def parse_group(data: dict[str, Any], path: str = "$") -> ConditionGroup:
    return _build_group(_open_group(data, path), path)


def parse_node(data: Any, path: str = "$") -> Node:
    node = _open_node(data, path)
    if isinstance(node, _OpenGroup):
        return _build_group(node, path)
    return node


def parse_conditions(data: Any, path: str = "$.conditions") -> ConditionGroup:
    node = parse_node(data, path)
    if isinstance(node, Condition):
        # A bare condition at the root behaves as a single-child AND group.
        return ConditionGroup(operator="AND", children=(node,))
    return node


def parse_priority(raw: Any, path: str = "$.priority") -> int:
    if isinstance(raw, bool):
        raise ValidationError(path, "expected integer, got bool")
    if isinstance(raw, int):
        return raw
    if isinstance(raw, float) and raw.is_integer():
        return int(raw)
    if isinstance(raw, str):
        try:
            return int(raw.strip())
        except ValueError:
            pass
    raise ValidationError(path, f"expected integer, got {raw!r}")


def parse_enabled(raw: Any, path: str = "$.enabled") -> bool:
    if not isinstance(raw, bool):
        raise ValidationError(path, f"expected boolean, got {type(raw).__name__}")
    return raw


def _first_present(data: dict[str, Any], *keys: str) -> tuple[str | None, Any]:
    for k in keys:
        if data.get(k) is not None:
            return k, data[k]
    return None, None


def parse_rule(data: Any, path: str = "$") -> Rule:
    if not isinstance(data, dict):
        raise ValidationError(path, f"expected object, got {type(data).__name__}")
    rule_id = _require(data, "id", path)
    if isinstance(rule_id, (dict, list, bool)) or not str(rule_id).strip():
        raise ValidationError(f"{path}.id", "expected non-empty string")
    name = _require_text(data, "name", path)
    label = _require_text(data, "label", path)
    conditions = parse_conditions(_require(data, "conditions", path), f"{path}.conditions")
    priority = parse_priority(data.get("priority", 1), f"{path}.priority")
    enabled = parse_enabled(data.get("enabled", True), f"{path}.enabled")

    now = utc_now()
    created_key, created_raw = _first_present(data, "createdAt", "created_at")
    updated_key, updated_raw = _first_present(data, "updatedAt", "updated_at")
    created_at = parse_timestamp(created_raw, f"{path}.{created_key}") if created_key else now
    updated_at = parse_timestamp(updated_raw, f"{path}.{updated_key}") if updated_key else created_at
    return Rule(
        id=str(rule_id),
        name=name,
        label=label,
        conditions=conditions,
        priority=priority,
        enabled=enabled,
        created_at=created_at,
        updated_at=updated_at,
    )


def parse_rules(data: Any, path: str = "$") -> list[Rule]:
    if isinstance(data, dict) and "rules" in data:
        data = data["rules"]
        path = f"{path}.rules"
    if not isinstance(data, list):
        raise ValidationError(path, f"expected array of rules, got {type(data).__name__}")
    rules = [parse_rule(item, f"{path}[{idx}]") for idx, item in enumerate(data)]
    seen: set[str] = set()
    for idx, rule in enumerate(rules):
        if rule.id in seen:
            raise ValidationError(f"{path}[{idx}].id", f"duplicate rule id {rule.id!r}")
        seen.add(rule.id)
    return rules


def parse_payload(data: Any) -> dict[str, Any]:
    if not isinstance(data, dict):
        raise ValidationError("$", f"expected JSON object, got {type(data).__name__}", RULES_003_PAYLOAD_INVALID)
    return data


def parse_record(data: Any, path: str = "$") -> ProcessedRecord:
    if not isinstance(data, dict):
        raise ValidationError(path, f"expected object, got {type(data).__name__}")
    record_id = _require(data, "id", path)
    payload = _require(data, "payload", path)
    if not isinstance(payload, dict):
        raise ValidationError(f"{path}.payload", f"expected object, got {type(payload).__name__}")
    labels = data.get("labels") or []
    if not isinstance(labels, list) or not all(isinstance(x, str) for x in labels):
        raise ValidationError(f"{path}.labels", "expected array of strings")
    ts_key, ts_raw = _first_present(data, "createdAt", "created_at", "timestamp")
    if ts_key is None:
        raise ValidationError(f"{path}.createdAt", "missing required field")
    return ProcessedRecord(
        id=str(record_id),
        payload=payload,
        labels=tuple(labels),
        created_at=parse_timestamp(ts_raw, f"{path}.{ts_key}"),
    )
