from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Union

CONDITION_OPERATORS = ("=", "!=", "<", ">", "<=", ">=")
GROUP_OPERATORS = ("AND", "OR")

EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def format_timestamp(value: datetime) -> str:
    return value.isoformat()


@dataclass(frozen=True)
class Condition:
    key: str
    operator: str
    value: str

    def to_dict(self) -> dict[str, Any]:
        return {"type": "condition", "key": self.key, "operator": self.operator, "value": self.value}


@dataclass(frozen=True)
class ConditionGroup:
    operator: str
    children: tuple[Node, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        root: dict[str, Any] = {"type": "group", "operator": self.operator, "conditions": []}
        stack: list[tuple[ConditionGroup, list[dict[str, Any]]]] = [(self, root["conditions"])]
        while stack:
            group, out = stack.pop()
            for child in group.children:
                if isinstance(child, ConditionGroup):
                    entry = {"type": "group", "operator": child.operator, "conditions": []}
                    stack.append((child, entry["conditions"]))
                    out.append(entry)
                else:
                    out.append(child.to_dict())
        return root


Node = Union[Condition, ConditionGroup]


@dataclass(frozen=True)
class Rule:
    id: str
    name: str
    label: str
    conditions: ConditionGroup
    priority: int = 1
    enabled: bool = True
    created_at: datetime = field(default_factory=utc_now)
    updated_at: datetime = field(default_factory=utc_now)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "conditions": self.conditions.to_dict(),
            "label": self.label,
            "priority": self.priority,
            "enabled": self.enabled,
            "createdAt": format_timestamp(self.created_at),
            "updatedAt": format_timestamp(self.updated_at),
        }


@dataclass(frozen=True)
class ProcessedRecord:
    id: str
    payload: dict[str, Any]
    labels: tuple[str, ...] = ()
    created_at: datetime = field(default_factory=utc_now)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "payload": self.payload,
            "labels": list(self.labels),
            "createdAt": format_timestamp(self.created_at),
        }


@dataclass(frozen=True)
class StatisticsFilter:
    label: str | None = None
    date_from: datetime | None = None
    date_to: datetime | None = None

    @property
    def has_date_bounds(self) -> bool:
        return self.date_from is not None or self.date_to is not None


@dataclass(frozen=True)
class StatisticsSnapshot:
    total_processed: int
    label_counts: dict[str, int]
    label_percentages: dict[str, float]
    last_updated: datetime
    recent_entries: tuple[ProcessedRecord, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        return {
            "totalProcessed": self.total_processed,
            "labelCounts": dict(self.label_counts),
            "labelPercentages": dict(self.label_percentages),
            "lastUpdated": format_timestamp(self.last_updated),
            "recentEntries": [r.to_dict() for r in self.recent_entries],
        }
