from __future__ import annotations

import logging
from typing import Any

from sqlalchemy.engine import Engine

from labeler.db.config import get_db_settings, redact_database_url, sqlite_path_from_url
from labeler.db.engine import create_schema, make_engine, make_session_factory
from labeler.db.models.labeling import LabelingRule, ProcessedRecordRow
from labeler.db.repo import LabelingRepo
from labeler.rules.errors import StoreError, ValidationError
from labeler.rules.models import ProcessedRecord, Rule, format_timestamp
from labeler.rules.schema import parse_conditions, parse_timestamp
from labeler.services.rules_store import RulesStore, default_rules


def _rule_to_row(rule: Rule) -> dict[str, Any]:
    return {
        "id": rule.id,
        "name": rule.name,
        "label": rule.label,
        "priority": rule.priority,
        "enabled": rule.enabled,
        "conditions_json": rule.conditions.to_dict(),
        "created_at": format_timestamp(rule.created_at),
        "updated_at": format_timestamp(rule.updated_at),
    }


def _row_to_rule(row: LabelingRule) -> Rule:
    return Rule(
        id=str(row.id),
        name=str(row.name),
        label=str(row.label),
        conditions=parse_conditions(row.conditions_json, f"labeling_rules[{row.id}].conditions_json"),
        priority=int(row.priority),
        enabled=bool(row.enabled),
        created_at=parse_timestamp(row.created_at),
        updated_at=parse_timestamp(row.updated_at),
    )


def _row_to_record(row: ProcessedRecordRow) -> ProcessedRecord:
    return ProcessedRecord(
        id=str(row.id),
        payload=dict(row.payload_json or {}),
        labels=tuple(row.labels_json or []),
        created_at=parse_timestamp(row.created_at),
    )


class SQLAlchemyRulesStore(RulesStore):
    """
    SQLAlchemy-backed store.

    Works against SQLite and PostgreSQL; the tables are created on first use.
    """

    backend = "db"

    def __init__(
        self,
        database_url: str | None = None,
        *,
        auto_init: bool = True,
        seed_defaults: bool = True,
        echo: bool | None = None,
    ) -> None:
        settings = get_db_settings()
        self.database_url = database_url or settings.database_url
        self.db_path = sqlite_path_from_url(self.database_url)
        if self.db_path is not None:
            self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self.engine: Engine = make_engine(self.database_url, echo=settings.echo if echo is None else echo)
        self._Session = make_session_factory(self.engine)
        self.repo = LabelingRepo(self._Session)
        self._logger = logging.getLogger("labeler.store.sa")
        if auto_init:
            self.ensure_schema()
            if seed_defaults and not self.repo.has_any_rules():
                self.save_rules(default_rules())
                self._logger.info("seeded default rules into %s", redact_database_url(self.database_url))

    def ensure_schema(self) -> None:
        try:
            create_schema(self.engine)
        except Exception as e:
            raise StoreError(
                f"database schema is not ready (url={redact_database_url(self.database_url)}): {e}"
            ) from e

    def get_rules(self) -> list[Rule]:
        try:
            return [_row_to_rule(row) for row in self.repo.list_rules()]
        except ValidationError as e:
            raise StoreError(f"labeling_rules holds an invalid rule: {e.detail}") from e

    def save_rules(self, rules: list[Rule]) -> None:
        self.repo.replace_rules([_rule_to_row(r) for r in rules])
        self._logger.debug("saved %d rules", len(rules))

    def get_processed_records(self) -> list[ProcessedRecord]:
        return [_row_to_record(row) for row in self.repo.list_records()]

    def append_processed_record(self, record: ProcessedRecord) -> ProcessedRecord:
        self.repo.add_record(
            record_id=record.id,
            payload_json=record.payload,
            labels_json=list(record.labels),
            created_at=format_timestamp(record.created_at),
        )
        return record

    def observability_info(self) -> dict[str, Any]:
        return {
            "store_backend": self.backend,
            "db_url": redact_database_url(self.database_url),
            "db_dialect": self.engine.dialect.name,
            "record_count": self.repo.count_records(),
        }

    def close(self) -> None:
        self.engine.dispose()
