from __future__ import annotations

from collections.abc import Iterable, Mapping
from typing import Any, Union

from .evaluator import evaluate_group
from .models import Rule
from .schema import parse_payload, parse_rule

RuleLike = Union[Rule, Mapping[str, Any]]


def _as_rules(rules: Iterable[RuleLike]) -> list[Rule]:
    out: list[Rule] = []
    for idx, rule in enumerate(rules):
        if isinstance(rule, Rule):
            out.append(rule)
        else:
            out.append(parse_rule(dict(rule), f"$[{idx}]"))
    return out


def order_rules(rules: Iterable[RuleLike]) -> list[Rule]:
    """Enabled rules, highest priority first. Equal priorities keep their input order."""
    enabled = [r for r in _as_rules(rules) if r.enabled]
    return sorted(enabled, key=lambda r: -r.priority)


def match_rules(payload: Any, rules: Iterable[RuleLike]) -> list[Rule]:
    data = parse_payload(payload)
    ordered = order_rules(rules)
    return [rule for rule in ordered if evaluate_group(data, rule.conditions)]


def classify(payload: Any, rules: Iterable[RuleLike]) -> list[str]:
    return [rule.label for rule in match_rules(payload, rules)]
