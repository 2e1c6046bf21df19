from __future__ import annotations

from collections.abc import Iterable
from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal

from .models import EPOCH, ProcessedRecord, StatisticsFilter, StatisticsSnapshot, utc_now

RECENT_ENTRIES_LIMIT = 10


def _percentage(count: int, total: int) -> float:
    if total <= 0:
        return 0.0
    raw = Decimal(count) * 100 / Decimal(total)
    return float(raw.quantize(Decimal("0.01"), rounding=ROUND_HALF_UP))


def filter_records(
    records: Iterable[ProcessedRecord],
    criteria: StatisticsFilter | None = None,
    *,
    now: datetime | None = None,
) -> list[ProcessedRecord]:
    out = list(records)
    if criteria is None:
        return out
    if criteria.has_date_bounds:
        lower = criteria.date_from or EPOCH
        upper = criteria.date_to or now or utc_now()
        out = [r for r in out if lower <= r.created_at <= upper]
    if criteria.label:
        out = [r for r in out if criteria.label in r.labels]
    return out


def aggregate(
    records: Iterable[ProcessedRecord],
    criteria: StatisticsFilter | None = None,
    *,
    now: datetime | None = None,
) -> StatisticsSnapshot:
    """
    Summarise processed records.

    Counts are per record: a record carrying the same label twice counts once
    for that label, and percentages are the share of records carrying a label.
    """
    now = now or utc_now()
    filtered = filter_records(records, criteria, now=now)
    total = len(filtered)

    label_counts: dict[str, int] = {}
    for record in filtered:
        for label in dict.fromkeys(record.labels):
            label_counts[label] = label_counts.get(label, 0) + 1

    label_percentages = {label: _percentage(count, total) for label, count in label_counts.items()}

    # Newest first; for equal timestamps the later-stored record wins.
    indexed = sorted(enumerate(filtered), key=lambda x: (x[1].created_at, x[0]), reverse=True)
    recent = tuple(record for _, record in indexed[:RECENT_ENTRIES_LIMIT])

    return StatisticsSnapshot(
        total_processed=total,
        label_counts=label_counts,
        label_percentages=label_percentages,
        last_updated=now,
        recent_entries=recent,
    )
