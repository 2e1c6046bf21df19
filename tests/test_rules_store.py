from __future__ import annotations

import json
import os
import tempfile
import unittest
from datetime import datetime, timedelta, timezone
from pathlib import Path

from labeler.config import get_settings
from labeler.rules.errors import StoreError
from labeler.rules.models import ProcessedRecord
from labeler.services.rules_store import (
    JsonFileRulesStore,
    MemoryRulesStore,
    RulesStore,
    default_rules,
    open_store,
)
from labeler.services.rules_store_sa import SQLAlchemyRulesStore

T0 = datetime(2024, 6, 1, 8, 30, tzinfo=timezone.utc)


class _StoreContract:
    """Behaviour every backend shares. Subclasses provide ``make_store``."""

    def make_store(self, *, seed_defaults: bool) -> RulesStore:
        raise NotImplementedError

    def test_seeded_defaults(self) -> None:
        store = self.make_store(seed_defaults=True)
        self.assertEqual([r.id for r in store.get_rules()], ["rule-1", "rule-2", "rule-3"])

    def test_empty_without_seed(self) -> None:
        store = self.make_store(seed_defaults=False)
        self.assertEqual(store.get_rules(), [])
        self.assertEqual(store.get_processed_records(), [])

    def test_save_rules_replaces_and_keeps_order(self) -> None:
        store = self.make_store(seed_defaults=False)
        rules = default_rules()
        store.save_rules(list(reversed(rules)))
        self.assertEqual([r.id for r in store.get_rules()], ["rule-3", "rule-2", "rule-1"])
        store.save_rules(rules[:1])
        loaded = store.get_rules()
        self.assertEqual(len(loaded), 1)
        self.assertEqual(loaded[0].conditions, rules[0].conditions)
        self.assertEqual(loaded[0].created_at, rules[0].created_at)

    def test_records_append_in_order(self) -> None:
        store = self.make_store(seed_defaults=False)
        first = ProcessedRecord(id="a", payload={"Price": 2, "nested": {"x": [1, 2]}}, labels=("Green", "Orange"), created_at=T0)
        second = ProcessedRecord(id="b", payload={"Price": 9}, labels=(), created_at=T0 + timedelta(minutes=1))
        store.append_processed_record(first)
        store.append_processed_record(second)
        self.assertEqual(store.get_processed_records(), [first, second])

    def test_observability_info(self) -> None:
        store = self.make_store(seed_defaults=False)
        self.assertEqual(store.observability_info()["store_backend"], store.backend)


class MemoryStoreTests(_StoreContract, unittest.TestCase):
    def make_store(self, *, seed_defaults: bool) -> RulesStore:
        return MemoryRulesStore(seed_defaults=seed_defaults)


class JsonFileStoreTests(_StoreContract, unittest.TestCase):
    def setUp(self) -> None:
        self._td = tempfile.TemporaryDirectory()
        self.root = Path(self._td.name)

    def tearDown(self) -> None:
        self._td.cleanup()

    def make_store(self, *, seed_defaults: bool) -> RulesStore:
        return JsonFileRulesStore(self.root / "data", seed_defaults=seed_defaults)

    def test_files_are_plain_json(self) -> None:
        store = self.make_store(seed_defaults=True)
        store.append_processed_record(ProcessedRecord(id="a", payload={"k": "v"}, labels=("Green",), created_at=T0))
        rules = json.loads((self.root / "data" / "rules.json").read_text(encoding="utf-8"))
        self.assertEqual(rules[0]["conditions"]["operator"], "OR")
        records = json.loads((self.root / "data" / "processed_data.json").read_text(encoding="utf-8"))
        self.assertEqual(records, [{"id": "a", "payload": {"k": "v"}, "labels": ["Green"], "createdAt": T0.isoformat()}])

    def test_existing_files_are_not_reseeded(self) -> None:
        store = self.make_store(seed_defaults=True)
        store.save_rules([])
        again = self.make_store(seed_defaults=True)
        self.assertEqual(again.get_rules(), [])

    def test_corrupt_file_raises(self) -> None:
        store = self.make_store(seed_defaults=False)
        (self.root / "data" / "rules.json").write_text("{not json", encoding="utf-8")
        with self.assertRaises(StoreError):
            store.get_rules()


class SQLAlchemyStoreTests(_StoreContract, unittest.TestCase):
    def setUp(self) -> None:
        self._td = tempfile.TemporaryDirectory()
        self.root = Path(self._td.name)
        self._stores: list[SQLAlchemyRulesStore] = []

    def tearDown(self) -> None:
        for s in self._stores:
            s.close()
        self._td.cleanup()

    def make_store(self, *, seed_defaults: bool) -> RulesStore:
        url = f"sqlite:///{(self.root / 'data' / 'labeler.db').as_posix()}"
        store = SQLAlchemyRulesStore(url, seed_defaults=seed_defaults)
        self._stores.append(store)
        return store

    def test_observability_redacts_and_counts(self) -> None:
        store = self.make_store(seed_defaults=False)
        store.append_processed_record(ProcessedRecord(id="a", payload={}, labels=(), created_at=T0))
        info = store.observability_info()
        self.assertEqual(info["db_dialect"], "sqlite")
        self.assertEqual(info["record_count"], 1)

    def test_data_survives_reopen(self) -> None:
        store = self.make_store(seed_defaults=True)
        store.append_processed_record(ProcessedRecord(id="a", payload={"x": 1}, labels=("Green",), created_at=T0))
        reopened = self.make_store(seed_defaults=True)
        self.assertEqual(len(reopened.get_rules()), 3)
        self.assertEqual(reopened.get_processed_records()[0].labels, ("Green",))


class OpenStoreTests(unittest.TestCase):
    def setUp(self) -> None:
        self._td = tempfile.TemporaryDirectory()
        self._before = {k: os.environ.get(k) for k in ("STORE_BACKEND", "STORE_DATA_DIR", "STORE_SEED_DEFAULTS", "DATABASE_URL")}

    def tearDown(self) -> None:
        for k, v in self._before.items():
            if v is None:
                os.environ.pop(k, None)
            else:
                os.environ[k] = v
        self._td.cleanup()

    def test_backend_from_environment(self) -> None:
        os.environ["STORE_BACKEND"] = "file"
        os.environ["STORE_DATA_DIR"] = self._td.name
        os.environ["STORE_SEED_DEFAULTS"] = "false"
        store = open_store()
        self.assertIsInstance(store, JsonFileRulesStore)
        self.assertEqual(store.get_rules(), [])

    def test_explicit_backend_wins(self) -> None:
        os.environ["STORE_BACKEND"] = "file"
        self.assertIsInstance(open_store(get_settings(), backend="memory"), MemoryRulesStore)

    def test_unknown_backend(self) -> None:
        with self.assertRaises(StoreError):
            open_store(backend="redis")

    def test_invalid_env_falls_back_to_db(self) -> None:
        os.environ["STORE_BACKEND"] = "nosuch"
        self.assertEqual(get_settings().store_backend, "db")


if __name__ == "__main__":
    unittest.main()
