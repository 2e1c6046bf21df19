from __future__ import annotations

import json
import logging
import uuid
from dataclasses import replace
from pathlib import Path
from typing import Any

import yaml

from labeler.rules.errors import RULES_004_PARSE_FAILED, RuleEngineError, RuleNotFoundError, ValidationError
from labeler.rules.models import Rule, utc_now
from labeler.rules.schema import parse_conditions, parse_enabled, parse_priority, parse_rules
from labeler.services.rules_store import RulesStore

logger = logging.getLogger("labeler.rules")

REQUIRED_FIELDS = ("name", "conditions", "label")
UPDATABLE_FIELDS = ("name", "label", "priority", "enabled", "conditions")


def new_rule_id() -> str:
    return f"rule-{uuid.uuid4().hex[:12]}"


def _text(value: Any, path: str) -> str:
    if not isinstance(value, str) or not value.strip():
        raise ValidationError(path, "expected non-empty string")
    return value


def list_rules(store: RulesStore) -> list[Rule]:
    return store.get_rules()


def get_rule(store: RulesStore, rule_id: str) -> Rule:
    for rule in store.get_rules():
        if rule.id == rule_id:
            return rule
    raise RuleNotFoundError(rule_id)


def create_rule(store: RulesStore, data: dict[str, Any]) -> Rule:
    for k in REQUIRED_FIELDS:
        if data.get(k) in (None, ""):
            raise ValidationError(f"$.{k}", "missing required field")
    now = utc_now()
    rule = Rule(
        id=new_rule_id(),
        name=_text(data["name"], "$.name"),
        label=_text(data["label"], "$.label"),
        conditions=parse_conditions(data["conditions"]),
        priority=parse_priority(data["priority"]) if data.get("priority") is not None else 1,
        enabled=parse_enabled(data["enabled"]) if data.get("enabled") is not None else True,
        created_at=now,
        updated_at=now,
    )
    rules = store.get_rules()
    rules.append(rule)
    store.save_rules(rules)
    logger.info("created rule id=%s label=%s priority=%d", rule.id, rule.label, rule.priority)
    return rule


def update_rule(store: RulesStore, rule_id: str, changes: dict[str, Any]) -> Rule:
    """Apply the non-null fields of ``changes``; other fields keep their values."""
    updates: dict[str, Any] = {}
    for k in UPDATABLE_FIELDS:
        value = changes.get(k)
        if value is None:
            continue
        if k in ("name", "label"):
            updates[k] = _text(value, f"$.{k}")
        elif k == "priority":
            updates[k] = parse_priority(value)
        elif k == "enabled":
            updates[k] = parse_enabled(value)
        else:
            updates[k] = parse_conditions(value)

    rules = store.get_rules()
    for idx, rule in enumerate(rules):
        if rule.id == rule_id:
            updated = replace(rule, updated_at=utc_now(), **updates)
            rules[idx] = updated
            store.save_rules(rules)
            logger.info("updated rule id=%s fields=%s", rule_id, sorted(updates))
            return updated
    raise RuleNotFoundError(rule_id)


def delete_rule(store: RulesStore, rule_id: str) -> None:
    rules = store.get_rules()
    kept = [r for r in rules if r.id != rule_id]
    if len(kept) == len(rules):
        raise RuleNotFoundError(rule_id)
    store.save_rules(kept)
    logger.info("deleted rule id=%s", rule_id)


def toggle_rule(store: RulesStore, rule_id: str, enabled: bool | None = None) -> Rule:
    current = get_rule(store, rule_id)
    target = (not current.enabled) if enabled is None else enabled
    return update_rule(store, rule_id, {"enabled": target})


def load_rules_file(path: Path) -> list[Rule]:
    try:
        text = path.read_text(encoding="utf-8")
        if path.suffix.lower() == ".json":
            obj = json.loads(text)
        else:
            obj = yaml.safe_load(text)
    except (OSError, ValueError, yaml.YAMLError) as e:
        raise RuleEngineError(RULES_004_PARSE_FAILED, f"{path}: {e}") from e

    items = obj.get("rules") if isinstance(obj, dict) else obj
    if not isinstance(items, list):
        raise RuleEngineError(RULES_004_PARSE_FAILED, f"{path}: expected a list of rules or a 'rules' key")
    # Hand-written files may leave ids out.
    normalized = [({**item, "id": new_rule_id()} if isinstance(item, dict) and not item.get("id") else item) for item in items]
    return parse_rules(normalized)


def import_rules(store: RulesStore, path: Path, *, replace_all: bool = False) -> dict[str, Any]:
    incoming = load_rules_file(path)
    if replace_all:
        merged = incoming
    else:
        merged = store.get_rules()
        index = {r.id: i for i, r in enumerate(merged)}
        for rule in incoming:
            if rule.id in index:
                merged[index[rule.id]] = replace(rule, updated_at=utc_now())
            else:
                index[rule.id] = len(merged)
                merged.append(rule)
    store.save_rules(merged)
    logger.info("imported %d rules from %s (replace=%s)", len(incoming), path, replace_all)
    return {"imported": len(incoming), "replaced": replace_all, "total": len(merged)}
