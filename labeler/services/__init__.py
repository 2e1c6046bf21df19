from labeler.services.rules_store import JsonFileRulesStore, MemoryRulesStore, RulesStore, open_store

__all__ = [
    "RulesStore",
    "MemoryRulesStore",
    "JsonFileRulesStore",
    "open_store",
]
