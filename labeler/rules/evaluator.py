from __future__ import annotations

import math
import re
from collections.abc import Mapping
from typing import Any

from .models import GROUP_OPERATORS, Condition, ConditionGroup, Node, Rule

# Longest leading decimal literal, the way a JavaScript producer's parseFloat reads it.
_NUMBER_PREFIX = re.compile(r"[+-]?(?:Infinity|(?:[0-9]+\.?[0-9]*|\.[0-9]+)(?:[eE][+-]?[0-9]+)?)")


def render_value(value: Any) -> str:
    """
    String form of a JSON value as a JavaScript producer would print it.

    Arrays join their items with commas (``null`` items print empty) and objects
    collapse to ``[object Object]``.
    """
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float):
        if math.isnan(value):
            return "NaN"
        if math.isinf(value):
            return "Infinity" if value > 0 else "-Infinity"
        if value.is_integer():
            return str(int(value))
    if isinstance(value, (list, tuple)):
        return ",".join("" if item is None else render_value(item) for item in value)
    if isinstance(value, Mapping):
        return "[object Object]"
    return str(value)


def parse_number(value: Any) -> float | None:
    """Leading numeric prefix of ``value`` (``"2.5kg"`` -> 2.5); None when there is none."""
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        number = float(value)
    else:
        m = _NUMBER_PREFIX.match(render_value(value).lstrip())
        if not m:
            return None
        number = float(m.group(0).replace("Infinity", "inf"))
    if math.isnan(number):
        return None
    return number


def evaluate_condition(payload: Mapping[str, Any], condition: Condition) -> bool:
    if condition.key not in payload:
        return False
    actual = payload[condition.key]
    op = condition.operator

    if op in ("=", "!="):
        same = render_value(actual).lower() == render_value(condition.value).lower()
        return same if op == "=" else not same

    if op in ("<", ">", "<=", ">="):
        left = parse_number(actual)
        right = parse_number(condition.value)
        if left is None or right is None:
            return False
        if op == "<":
            return left < right
        if op == ">":
            return left > right
        if op == "<=":
            return left <= right
        return left >= right

    return False


def evaluate_node(payload: Mapping[str, Any], node: Node) -> bool:
    if isinstance(node, Condition):
        return evaluate_condition(payload, node)
    return evaluate_group(payload, node)


def _settles(operator: str, value: bool) -> bool:
    return (operator == "AND" and not value) or (operator == "OR" and value)


def evaluate_group(payload: Mapping[str, Any], group: ConditionGroup) -> bool:
    # Walks the tree with an explicit stack so nesting depth is not bounded by
    # the interpreter's recursion limit. ``result`` holds the value of the node
    # that just finished, to be folded into the frame on top.
    stack = [(group, iter(group.children))]
    result: bool | None = None
    while stack:
        current, children = stack[-1]
        if current.operator not in GROUP_OPERATORS:
            stack.pop()
            result = False
            continue
        if result is not None and _settles(current.operator, result):
            stack.pop()
            continue
        child = next(children, None)
        if child is None:
            stack.pop()
            result = current.operator == "AND"
        elif isinstance(child, ConditionGroup):
            stack.append((child, iter(child.children)))
            result = None
        else:
            result = evaluate_condition(payload, child)
    return bool(result)


def evaluate_rule(payload: Mapping[str, Any], rule: Rule) -> bool:
    if not rule.enabled:
        return False
    return evaluate_group(payload, rule.conditions)
