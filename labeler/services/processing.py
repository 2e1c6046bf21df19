from __future__ import annotations

import logging
import uuid
from typing import Any

from labeler.rules.classifier import classify, order_rules
from labeler.rules.models import ProcessedRecord, StatisticsFilter, StatisticsSnapshot, utc_now
from labeler.rules.schema import parse_payload
from labeler.rules.statistics import aggregate
from labeler.services.rules_store import RulesStore

logger = logging.getLogger("labeler.processing")


def new_record_id() -> str:
    return uuid.uuid4().hex


def process_payload(store: RulesStore, payload: Any) -> ProcessedRecord:
    data = parse_payload(payload)
    rules = store.get_rules()
    labels = classify(data, rules)
    record = ProcessedRecord(id=new_record_id(), payload=data, labels=tuple(labels), created_at=utc_now())
    store.append_processed_record(record)
    logger.info("processed record id=%s active_rules=%d labels=%s", record.id, len(order_rules(rules)), labels)
    return record


def dry_run_payload(store: RulesStore, payload: Any) -> dict[str, Any]:
    """Classify without storing anything."""
    data = parse_payload(payload)
    rules = store.get_rules()
    labels = classify(data, rules)
    logger.info("dry run active_rules=%d labels=%s", len(order_rules(rules)), labels)
    return {"labels": labels, "timestamp": utc_now()}


def compute_statistics(store: RulesStore, criteria: StatisticsFilter | None = None) -> StatisticsSnapshot:
    records = store.get_processed_records()
    snapshot = aggregate(records, criteria)
    logger.debug("statistics over %d stored records, %d after filter", len(records), snapshot.total_processed)
    return snapshot
