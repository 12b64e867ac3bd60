"""
mcpreview Usage History - a persistent log of every review and what it cost.

Entries are appended to .mcp-review-history.json under the project root and
summarised by ``mcpreview review --usage-report``.
"""

import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import List, Optional, Union

from pydantic import BaseModel, Field, ValidationError

logger = logging.getLogger(__name__)

HISTORY_FILE = ".mcp-review-history.json"
RECENT_ENTRIES = 10


class UsageHistoryEntry(BaseModel):
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    range: str
    model: str
    input_tokens: int = 0
    output_tokens: int = 0
    estimated_cost: float = 0.0
    cached: bool = False


class UsageHistory:
    """
    Reads and appends the usage log.

    A missing, unreadable or non-list file reads as empty history; the next
    append starts it over.
    """

    def __init__(self, project_root: Optional[Union[str, Path]] = None):
        self.project_root = Path(project_root) if project_root else Path.cwd()
        self.path = self.project_root / HISTORY_FILE

    def entries(self) -> List[UsageHistoryEntry]:
        if not self.path.exists():
            return []

        try:
            with open(self.path, encoding="utf-8") as f:
                raw = json.load(f)
        except (OSError, json.JSONDecodeError) as exc:
            logger.debug("Ignoring unreadable usage history: %s", exc)
            return []

        if not isinstance(raw, list):
            return []

        entries = []
        for item in raw:
            try:
                entries.append(UsageHistoryEntry.model_validate(item))
            except ValidationError:
                logger.debug("Skipping malformed history entry: %r", item)
        return entries

    def append(self, entry: UsageHistoryEntry) -> None:
        entries = self.entries()
        entries.append(entry)
        with open(self.path, "w", encoding="utf-8") as f:
            json.dump([e.model_dump(mode="json") for e in entries], f, indent=2)


def format_usage_report(entries: List[UsageHistoryEntry]) -> str:
    if not entries:
        return "No usage history found. Run a review first."

    total_input = sum(e.input_tokens for e in entries)
    total_output = sum(e.output_tokens for e in entries)
    total_cost = sum(e.estimated_cost for e in entries)
    cached = sum(1 for e in entries if e.cached)

    lines = [
        "Usage Report",
        "── Totals " + "─" * 40,
        f"  Reviews: {len(entries)} ({cached} cached)",
        f"  Input tokens:  {total_input:,}",
        f"  Output tokens: {total_output:,}",
        f"  Estimated cost: ${total_cost:.4f}",
        "",
        "── Recent Reviews " + "─" * 32,
    ]
    for entry in entries[-RECENT_ENTRIES:]:
        when = entry.timestamp.astimezone().strftime("%Y-%m-%d %H:%M")
        marker = " (cached)" if entry.cached else ""
        lines.append(f"  {when}  {entry.range}  {entry.model}  ${entry.estimated_cost:.4f}{marker}")

    if len(entries) > RECENT_ENTRIES:
        lines.append(f"  ... and {len(entries) - RECENT_ENTRIES} earlier entries")

    return "\n".join(lines)
