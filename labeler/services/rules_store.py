from __future__ import annotations

import json
import logging
import os
import tempfile
import threading
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any

from labeler.config import AppSettings, get_settings
from labeler.rules.errors import StoreError, ValidationError
from labeler.rules.models import ProcessedRecord, Rule
from labeler.rules.schema import parse_record, parse_rules

logger = logging.getLogger("labeler.store")

DEFAULT_RULES: list[dict[str, Any]] = [
    {
        "id": "rule-1",
        "name": "High Value Companies",
        "conditions": {
            "type": "group",
            "operator": "OR",
            "conditions": [
                {"type": "condition", "key": "CompanyName", "operator": "=", "value": "Google"},
                {
                    "type": "group",
                    "operator": "AND",
                    "conditions": [
                        {"type": "condition", "key": "CompanyName", "operator": "=", "value": "Amazon"},
                        {"type": "condition", "key": "Price", "operator": "<", "value": "2.5"},
                    ],
                },
            ],
        },
        "label": "Green",
        "priority": 3,
        "enabled": True,
    },
    {
        "id": "rule-2",
        "name": "Standard Price Products",
        "conditions": {
            "type": "group",
            "operator": "AND",
            "conditions": [
                {"type": "condition", "key": "Price", "operator": "=", "value": "2"},
            ],
        },
        "label": "Orange",
        "priority": 2,
        "enabled": True,
    },
    {
        "id": "rule-3",
        "name": "Low MOQ Budget Products",
        "conditions": {
            "type": "group",
            "operator": "AND",
            "conditions": [
                {"type": "condition", "key": "MOQ", "operator": "<", "value": "100"},
                {"type": "condition", "key": "Price", "operator": "<", "value": "1.5"},
            ],
        },
        "label": "Green",
        "priority": 1,
        "enabled": True,
    },
]


def default_rules() -> list[Rule]:
    return parse_rules(DEFAULT_RULES)


class RulesStore(ABC):
    """
    Persistence for rules and processed records.

    Rules are kept in a caller-visible order; ``save_rules`` replaces the whole
    list. Processed records are append-only and come back in insertion order.
    """

    backend = "abstract"

    @abstractmethod
    def get_rules(self) -> list[Rule]: ...

    @abstractmethod
    def save_rules(self, rules: list[Rule]) -> None: ...

    @abstractmethod
    def get_processed_records(self) -> list[ProcessedRecord]: ...

    @abstractmethod
    def append_processed_record(self, record: ProcessedRecord) -> ProcessedRecord: ...

    def observability_info(self) -> dict[str, Any]:
        return {"store_backend": self.backend}


class MemoryRulesStore(RulesStore):
    backend = "memory"

    def __init__(self, rules: list[Rule] | None = None, *, seed_defaults: bool = False) -> None:
        self._lock = threading.Lock()
        if rules is None:
            rules = default_rules() if seed_defaults else []
        self._rules: list[Rule] = list(rules)
        self._records: list[ProcessedRecord] = []

    def get_rules(self) -> list[Rule]:
        with self._lock:
            return list(self._rules)

    def save_rules(self, rules: list[Rule]) -> None:
        with self._lock:
            self._rules = list(rules)

    def get_processed_records(self) -> list[ProcessedRecord]:
        with self._lock:
            return list(self._records)

    def append_processed_record(self, record: ProcessedRecord) -> ProcessedRecord:
        with self._lock:
            self._records.append(record)
        return record


class JsonFileRulesStore(RulesStore):
    backend = "file"

    RULES_FILE = "rules.json"
    RECORDS_FILE = "processed_data.json"

    def __init__(self, data_dir: Path, *, seed_defaults: bool = True) -> None:
        self.data_dir = Path(data_dir)
        self.rules_path = self.data_dir / self.RULES_FILE
        self.records_path = self.data_dir / self.RECORDS_FILE
        self._lock = threading.Lock()
        self.data_dir.mkdir(parents=True, exist_ok=True)
        with self._lock:
            if not self.rules_path.exists():
                initial = default_rules() if seed_defaults else []
                self._write_json(self.rules_path, [r.to_dict() for r in initial])
                logger.info("created %s with %d rules", self.rules_path, len(initial))
            if not self.records_path.exists():
                self._write_json(self.records_path, [])

    def _read_json(self, path: Path) -> Any:
        try:
            return json.loads(path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            return []
        except (OSError, json.JSONDecodeError) as e:
            raise StoreError(f"cannot read {path}: {e}") from e

    def _write_json(self, path: Path, data: Any) -> None:
        fd, tmp = tempfile.mkstemp(prefix=f".{path.name}.", dir=str(path.parent))
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(data, f, ensure_ascii=False, indent=2)
            os.replace(tmp, path)
        except Exception:
            if os.path.exists(tmp):
                os.unlink(tmp)
            raise

    def get_rules(self) -> list[Rule]:
        with self._lock:
            raw = self._read_json(self.rules_path)
        try:
            return parse_rules(raw)
        except ValidationError as e:
            raise StoreError(f"{self.rules_path} holds an invalid rule: {e.detail}") from e

    def save_rules(self, rules: list[Rule]) -> None:
        with self._lock:
            self._write_json(self.rules_path, [r.to_dict() for r in rules])
        logger.debug("saved %d rules to %s", len(rules), self.rules_path)

    def get_processed_records(self) -> list[ProcessedRecord]:
        with self._lock:
            raw = self._read_json(self.records_path)
        if not isinstance(raw, list):
            raise StoreError(f"{self.records_path}: expected array")
        try:
            return [parse_record(item, f"$[{idx}]") for idx, item in enumerate(raw)]
        except ValidationError as e:
            raise StoreError(f"{self.records_path} holds an invalid record: {e.detail}") from e

    def append_processed_record(self, record: ProcessedRecord) -> ProcessedRecord:
        with self._lock:
            raw = self._read_json(self.records_path)
            if not isinstance(raw, list):
                raise StoreError(f"{self.records_path}: expected array")
            raw.append(record.to_dict())
            self._write_json(self.records_path, raw)
        return record

    def observability_info(self) -> dict[str, Any]:
        return {"store_backend": self.backend, "data_dir": str(self.data_dir)}


def open_store(settings: AppSettings | None = None, *, backend: str | None = None) -> RulesStore:
    s = settings or get_settings()
    name = (backend or s.store_backend).strip().lower()
    if name == "memory":
        store: RulesStore = MemoryRulesStore(seed_defaults=s.seed_defaults)
    elif name == "file":
        store = JsonFileRulesStore(s.data_dir, seed_defaults=s.seed_defaults)
    elif name == "db":
        from labeler.services.rules_store_sa import SQLAlchemyRulesStore

        store = SQLAlchemyRulesStore(seed_defaults=s.seed_defaults)
    else:
        raise StoreError(f"unsupported store backend={name}")
    logger.info("opened %s store", store.backend)
    return store
