"""Image retention and layer cleaning."""
from mcp_deck.retention.engine import RetentionEngine, group_by_prefix, keep_latest_n
from mcp_deck.retention.options import KeepLatestN, DeleteSpecific, SmartSuggestion

__all__ = [
    "RetentionEngine",
    "group_by_prefix",
    "keep_latest_n",
    "KeepLatestN",
    "DeleteSpecific",
    "SmartSuggestion",
]
