"""
mcpreview core module.

Review result caching, usage history and token usage bookkeeping.
"""

from mcpreview.core.cache import ReviewCache, get_cache_key
from mcpreview.core.history import UsageHistory, UsageHistoryEntry, format_usage_report
from mcpreview.core.usage import UsageTracker

__all__ = [
    "ReviewCache",
    "UsageHistory",
    "UsageHistoryEntry",
    "UsageTracker",
    "format_usage_report",
    "get_cache_key",
]
