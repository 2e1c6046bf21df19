from __future__ import annotations

from typing import Any

from sqlalchemy import JSON, Boolean, Index, Integer, String
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from labeler.db.base import Base

# JSONB on PostgreSQL, serialized TEXT elsewhere.
JSONColumn = JSON().with_variant(JSONB(), "postgresql")


class LabelingRule(Base):
    __tablename__ = "labeling_rules"

    id: Mapped[str] = mapped_column(String, primary_key=True)
    position: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    name: Mapped[str] = mapped_column(String, nullable=False)
    label: Mapped[str] = mapped_column(String, nullable=False)
    priority: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    enabled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    conditions_json: Mapped[dict[str, Any]] = mapped_column(JSONColumn, nullable=False)
    created_at: Mapped[str] = mapped_column(String, nullable=False)
    updated_at: Mapped[str] = mapped_column(String, nullable=False)

    __table_args__ = (
        Index("idx_labeling_rules_position", "position"),
    )


class ProcessedRecordRow(Base):
    __tablename__ = "processed_records"

    seq: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    id: Mapped[str] = mapped_column(String, nullable=False, unique=True)
    payload_json: Mapped[dict[str, Any]] = mapped_column(JSONColumn, nullable=False)
    labels_json: Mapped[list[str]] = mapped_column(JSONColumn, nullable=False, default=list)
    created_at: Mapped[str] = mapped_column(String, nullable=False)

    __table_args__ = (
        Index("idx_processed_records_created_at", "created_at", "seq"),
    )
