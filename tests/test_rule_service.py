from __future__ import annotations

import json
import tempfile
import time
import unittest
from pathlib import Path

from labeler.rules.errors import RuleEngineError, RuleNotFoundError, ValidationError
from labeler.services import rule_service
from labeler.services.rules_store import MemoryRulesStore

CONDITIONS = {"type": "group", "operator": "AND", "conditions": [{"type": "condition", "key": "Price", "operator": ">", "value": "100"}]}

YAML_RULES = """
rules:
  - name: Premium
    label: Gold
    priority: 5
    conditions:
      operator: OR
      conditions:
        - key: Price
          operator: ">="
          value: 100
        - key: Tier
          operator: "="
          value: premium
  - id: rule-2
    name: Standard price (edited)
    label: Orange
    priority: 2
    enabled: false
    conditions:
      operator: AND
      conditions:
        - {key: Price, operator: "=", value: "2"}
"""


class RuleServiceTests(unittest.TestCase):
    def setUp(self) -> None:
        self.store = MemoryRulesStore(seed_defaults=True)

    def test_create_rule_appends_with_defaults(self) -> None:
        rule = rule_service.create_rule(self.store, {"name": "Expensive", "label": "Red", "conditions": CONDITIONS})
        self.assertEqual(rule.priority, 1)
        self.assertTrue(rule.enabled)
        self.assertTrue(rule.id.startswith("rule-"))
        self.assertEqual(self.store.get_rules()[-1], rule)

    def test_create_rule_requires_fields(self) -> None:
        for missing in ("name", "label", "conditions"):
            data = {"name": "Expensive", "label": "Red", "conditions": CONDITIONS}
            data.pop(missing)
            with self.subTest(field=missing):
                with self.assertRaises(ValidationError) as ctx:
                    rule_service.create_rule(self.store, data)
                self.assertEqual(ctx.exception.path, f"$.{missing}")
        self.assertEqual(len(self.store.get_rules()), 3)

    def test_create_rule_rejects_bad_tree(self) -> None:
        bad = {"type": "group", "operator": "AND", "conditions": [{"key": "Price", "operator": "between", "value": "1"}]}
        with self.assertRaises(ValidationError) as ctx:
            rule_service.create_rule(self.store, {"name": "x", "label": "y", "conditions": bad})
        self.assertEqual(ctx.exception.path, "$.conditions.conditions[0].operator")

    def test_update_rule_is_partial(self) -> None:
        before = rule_service.get_rule(self.store, "rule-2")
        time.sleep(0.001)
        after = rule_service.update_rule(self.store, "rule-2", {"priority": 7, "name": None})
        self.assertEqual(after.priority, 7)
        self.assertEqual(after.name, before.name)
        self.assertEqual(after.created_at, before.created_at)
        self.assertGreater(after.updated_at, before.updated_at)
        self.assertEqual([r.id for r in self.store.get_rules()], ["rule-1", "rule-2", "rule-3"])

    def test_update_conditions(self) -> None:
        rule = rule_service.update_rule(self.store, "rule-1", {"conditions": CONDITIONS})
        self.assertEqual(rule.conditions.children[0].key, "Price")

    def test_unknown_rule(self) -> None:
        with self.assertRaises(RuleNotFoundError):
            rule_service.get_rule(self.store, "missing")
        with self.assertRaises(RuleNotFoundError):
            rule_service.update_rule(self.store, "missing", {"priority": 1})
        with self.assertRaises(RuleNotFoundError):
            rule_service.delete_rule(self.store, "missing")
        with self.assertRaises(RuleNotFoundError):
            rule_service.toggle_rule(self.store, "missing")

    def test_delete_rule(self) -> None:
        rule_service.delete_rule(self.store, "rule-2")
        self.assertEqual([r.id for r in rule_service.list_rules(self.store)], ["rule-1", "rule-3"])

    def test_toggle_rule(self) -> None:
        self.assertFalse(rule_service.toggle_rule(self.store, "rule-1").enabled)
        self.assertTrue(rule_service.toggle_rule(self.store, "rule-1").enabled)
        self.assertTrue(rule_service.toggle_rule(self.store, "rule-1", enabled=True).enabled)


class ImportRulesTests(unittest.TestCase):
    def setUp(self) -> None:
        self._td = tempfile.TemporaryDirectory()
        self.root = Path(self._td.name)
        self.store = MemoryRulesStore(seed_defaults=True)

    def tearDown(self) -> None:
        self._td.cleanup()

    def test_yaml_import_merges_by_id(self) -> None:
        path = self.root / "rules.yaml"
        path.write_text(YAML_RULES, encoding="utf-8")
        result = rule_service.import_rules(self.store, path)
        self.assertEqual(result, {"imported": 2, "replaced": False, "total": 4})
        rules = self.store.get_rules()
        self.assertEqual([r.id for r in rules][:3], ["rule-1", "rule-2", "rule-3"])
        self.assertFalse(rules[1].enabled)
        self.assertEqual(rules[3].label, "Gold")
        self.assertEqual(rules[3].conditions.children[0].value, "100")

    def test_json_import_replaces(self) -> None:
        path = self.root / "rules.json"
        path.write_text(json.dumps([{"id": "only", "name": "Only", "label": "Blue", "conditions": CONDITIONS}]), encoding="utf-8")
        result = rule_service.import_rules(self.store, path, replace_all=True)
        self.assertEqual(result["total"], 1)
        self.assertEqual([r.id for r in self.store.get_rules()], ["only"])

    def test_invalid_file_writes_nothing(self) -> None:
        path = self.root / "rules.json"
        path.write_text(json.dumps([{"id": "x", "name": "X", "label": "Y", "conditions": {"operator": "AND", "conditions": []}}]), encoding="utf-8")
        with self.assertRaises(ValidationError):
            rule_service.import_rules(self.store, path, replace_all=True)
        self.assertEqual(len(self.store.get_rules()), 3)

    def test_blank_ids_are_generated(self) -> None:
        path = self.root / "rules.yaml"
        path.write_text(
            "- id: null\n  name: A\n  label: Red\n  conditions: {operator: AND, conditions: [{key: x, operator: \"=\", value: 1}]}\n"
            "- id: \"\"\n  name: B\n  label: Blue\n  conditions: {operator: AND, conditions: [{key: x, operator: \"=\", value: 2}]}\n",
            encoding="utf-8",
        )
        rules = rule_service.load_rules_file(path)
        self.assertEqual([r.label for r in rules], ["Red", "Blue"])
        self.assertTrue(all(r.id.startswith("rule-") for r in rules))
        self.assertNotEqual(rules[0].id, rules[1].id)

    def test_unparsable_file(self) -> None:
        path = self.root / "rules.yaml"
        path.write_text("rules: [unclosed", encoding="utf-8")
        with self.assertRaises(RuleEngineError) as ctx:
            rule_service.load_rules_file(path)
        self.assertEqual(ctx.exception.err.code, "RULES_004_PARSE_FAILED")

    def test_wrong_shape(self) -> None:
        path = self.root / "rules.json"
        path.write_text(json.dumps({"name": "not a list"}), encoding="utf-8")
        with self.assertRaises(RuleEngineError):
            rule_service.load_rules_file(path)


if __name__ == "__main__":
    unittest.main()
