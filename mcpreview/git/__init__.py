"""Git plumbing and revision-range resolution."""

from mcpreview.git.commands import (
    CommitInfo,
    get_commit_messages,
    get_diff,
    get_diff_stats,
    get_latest_commit_hash,
    get_staged_diff,
    get_staged_diff_stats,
    parse_numstat,
)
from mcpreview.git.resolver import ResolvedRange, resolve_range

__all__ = [
    "CommitInfo",
    "ResolvedRange",
    "get_commit_messages",
    "get_diff",
    "get_diff_stats",
    "get_latest_commit_hash",
    "get_staged_diff",
    "get_staged_diff_stats",
    "parse_numstat",
    "resolve_range",
]
