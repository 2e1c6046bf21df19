from __future__ import annotations

import json
import sys
from pathlib import Path
from typing import Any

from labeler.config import get_settings
from labeler.log import configure_logging
from labeler.rules.errors import RuleEngineError
from labeler.rules.models import StatisticsFilter, format_timestamp
from labeler.rules.schema import parse_timestamp
from labeler.services import processing, rule_service
from labeler.services.rules_store import RulesStore, open_store

USAGE = (
    "Usage: python -m labeler.workers.cli "
    "rules:list|rules:validate|rules:import|rules:toggle|classify|stats|serve [options]"
)


def _get_opt(argv: list[str], key: str) -> str | None:
    if key not in argv:
        return None
    idx = argv.index(key)
    if idx + 1 >= len(argv):
        return None
    return argv[idx + 1]


def _print(obj: Any) -> None:
    print(json.dumps(obj, ensure_ascii=False, indent=2))


def _read_payload(raw: str) -> Any:
    """``--payload`` takes inline JSON, or ``@path`` to read it from a file."""
    text = Path(raw[1:]).read_text(encoding="utf-8") if raw.startswith("@") else raw
    return json.loads(text)


def _store(argv: list[str]) -> RulesStore:
    return open_store(backend=_get_opt(argv, "--backend"))


def cmd_rules_list(argv: list[str]) -> int:
    store = _store(argv)
    rules = rule_service.list_rules(store)
    _print({"ok": True, "count": len(rules), "rules": [r.to_dict() for r in rules]})
    return 0


def cmd_rules_validate(argv: list[str]) -> int:
    path = _get_opt(argv, "--file")
    if not path:
        print("--file is required for rules:validate", file=sys.stderr)
        return 2
    rules = rule_service.load_rules_file(Path(path))
    _print(
        {
            "ok": True,
            "path": path,
            "validated": [{"id": r.id, "name": r.name, "label": r.label, "priority": r.priority} for r in rules],
        }
    )
    return 0


def cmd_rules_import(argv: list[str]) -> int:
    path = _get_opt(argv, "--file")
    if not path:
        print("--file is required for rules:import", file=sys.stderr)
        return 2
    store = _store(argv)
    result = rule_service.import_rules(store, Path(path), replace_all="--replace" in argv)
    _print({"ok": True, **result})
    return 0


def cmd_rules_toggle(argv: list[str]) -> int:
    rule_id = _get_opt(argv, "--id")
    if not rule_id:
        print("--id is required for rules:toggle", file=sys.stderr)
        return 2
    store = _store(argv)
    rule = rule_service.toggle_rule(store, rule_id)
    _print({"ok": True, "rule": rule.to_dict()})
    return 0


def cmd_classify(argv: list[str]) -> int:
    raw = _get_opt(argv, "--payload")
    if not raw:
        print("--payload is required for classify", file=sys.stderr)
        return 2
    payload = _read_payload(raw)
    store = _store(argv)
    if "--dry-run" in argv:
        result = processing.dry_run_payload(store, payload)
        _print({"ok": True, "dry_run": True, "labels": result["labels"], "timestamp": format_timestamp(result["timestamp"])})
        return 0
    record = processing.process_payload(store, payload)
    _print({"ok": True, "id": record.id, "labels": list(record.labels), "timestamp": format_timestamp(record.created_at)})
    return 0


def cmd_stats(argv: list[str]) -> int:
    date_from = _get_opt(argv, "--from")
    date_to = _get_opt(argv, "--to")
    criteria = StatisticsFilter(
        label=_get_opt(argv, "--label"),
        date_from=parse_timestamp(date_from, "$.from") if date_from else None,
        date_to=parse_timestamp(date_to, "$.to") if date_to else None,
    )
    store = _store(argv)
    snapshot = processing.compute_statistics(store, criteria)
    _print({"ok": True, **snapshot.to_dict()})
    return 0


def cmd_serve(argv: list[str]) -> int:
    from labeler.web.api import run_server

    run_server()
    return 0


COMMANDS = {
    "rules:list": cmd_rules_list,
    "rules:validate": cmd_rules_validate,
    "rules:import": cmd_rules_import,
    "rules:toggle": cmd_rules_toggle,
    "classify": cmd_classify,
    "stats": cmd_stats,
    "serve": cmd_serve,
}


def main(argv: list[str] | None = None) -> int:
    argv = sys.argv[1:] if argv is None else argv
    if not argv:
        print(USAGE, file=sys.stderr)
        return 2

    configure_logging(get_settings().log_level)
    cmd = argv[0]
    handler = COMMANDS.get(cmd)
    if handler is None:
        print(f"Unknown command: {cmd}", file=sys.stderr)
        return 2
    try:
        return handler(argv[1:])
    except RuleEngineError as e:
        print(json.dumps({"ok": False, "error_code": e.err.code, "error": str(e)}, ensure_ascii=False))
        return 10
    except json.JSONDecodeError as e:
        print(json.dumps({"ok": False, "error_code": "RULES_003_PAYLOAD_INVALID", "error": str(e)}, ensure_ascii=False))
        return 10
    except Exception as e:  # pragma: no cover
        print(json.dumps({"ok": False, "error_code": "RULES_999_UNEXPECTED", "error": str(e)}, ensure_ascii=False))
        return 12


if __name__ == "__main__":
    raise SystemExit(main())
