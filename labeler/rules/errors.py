from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class RuleEngineErrorCode:
    code: str
    message: str


RULES_001_VALIDATION_FAILED = RuleEngineErrorCode(
    "RULES_001_VALIDATION_FAILED",
    "Rule validation failed.",
)
RULES_002_RULE_NOT_FOUND = RuleEngineErrorCode(
    "RULES_002_RULE_NOT_FOUND",
    "Rule not found.",
)
RULES_003_PAYLOAD_INVALID = RuleEngineErrorCode(
    "RULES_003_PAYLOAD_INVALID",
    "Invalid JSON payload.",
)
RULES_004_PARSE_FAILED = RuleEngineErrorCode(
    "RULES_004_PARSE_FAILED",
    "Rules file parse failed.",
)
RULES_005_STORE_FAILED = RuleEngineErrorCode(
    "RULES_005_STORE_FAILED",
    "Store is not available.",
)


class RuleEngineError(RuntimeError):
    def __init__(self, err: RuleEngineErrorCode, detail: str = "") -> None:
        suffix = f" detail={detail}" if detail else ""
        super().__init__(f"{err.code}: {err.message}{suffix}")
        self.err = err
        self.detail = detail


class ValidationError(RuleEngineError):
    """Malformed rule, condition or payload. ``path`` points at the offending field."""

    def __init__(self, path: str, message: str, err: RuleEngineErrorCode = RULES_001_VALIDATION_FAILED) -> None:
        super().__init__(err, f"{path}: {message}")
        self.path = path
        self.reason = message


class RuleNotFoundError(RuleEngineError):
    def __init__(self, rule_id: str) -> None:
        super().__init__(RULES_002_RULE_NOT_FOUND, f"id={rule_id}")
        self.rule_id = rule_id


class StoreError(RuleEngineError):
    def __init__(self, detail: str) -> None:
        super().__init__(RULES_005_STORE_FAILED, detail)
