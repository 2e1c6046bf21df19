from __future__ import annotations

from typing import Any

from sqlalchemy import delete, func, select
from sqlalchemy.orm import Session, sessionmaker

from labeler.db.models.labeling import LabelingRule, ProcessedRecordRow


class LabelingRepo:
    def __init__(self, session_factory: sessionmaker[Session]):
        self._Session = session_factory

    def has_any_rules(self) -> bool:
        with self._Session() as s:
            return s.execute(select(LabelingRule.id).limit(1)).first() is not None

    def list_rules(self) -> list[LabelingRule]:
        with self._Session() as s:
            q = select(LabelingRule).order_by(LabelingRule.position.asc(), LabelingRule.created_at.asc())
            return list(s.execute(q).scalars().all())

    def replace_rules(self, rows: list[dict[str, Any]]) -> None:
        """Swap the whole rule list in one transaction, keeping the given order."""
        with self._Session() as s:
            try:
                s.execute(delete(LabelingRule))
                for position, row in enumerate(rows):
                    s.add(LabelingRule(position=position, **row))
                s.commit()
            except Exception:
                s.rollback()
                raise

    def count_records(self) -> int:
        with self._Session() as s:
            return int(s.execute(select(func.count(ProcessedRecordRow.seq))).scalar_one())

    def list_records(self) -> list[ProcessedRecordRow]:
        with self._Session() as s:
            q = select(ProcessedRecordRow).order_by(ProcessedRecordRow.seq.asc())
            return list(s.execute(q).scalars().all())

    def add_record(
        self,
        *,
        record_id: str,
        payload_json: dict[str, Any],
        labels_json: list[str],
        created_at: str,
    ) -> int:
        with self._Session() as s:
            row = ProcessedRecordRow(
                id=record_id,
                payload_json=payload_json,
                labels_json=labels_json,
                created_at=created_at,
            )
            try:
                s.add(row)
                s.commit()
            except Exception:
                s.rollback()
                raise
            return int(row.seq)
