"""
Reviewer - end-to-end reviews, one-shot or watching HEAD.

Starts the host while the diff is fetched, consults the result cache,
runs the conversation, stores the outcome and logs its usage. The host is
always shut down afterwards.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Optional, Sequence

from mcpreview.core.cache import ReviewCache
from mcpreview.core.history import UsageHistory, UsageHistoryEntry
from mcpreview.errors import McpReviewError
from mcpreview.git.commands import (
    get_diff,
    get_diff_stats,
    get_latest_commit_hash,
    get_staged_diff,
    get_staged_diff_stats,
)
from mcpreview.git.resolver import ResolvedRange
from mcpreview.host.mcp_host import MCPHost, ServerSpec
from mcpreview.host.schema import PrefetchedDiff, ReviewResult, TokenUsage
from mcpreview.providers.base import ProgressSink, Provider
from mcpreview.validation.config import ReviewConfig

logger = logging.getLogger(__name__)

WATCH_POLL_INTERVAL = 2.0
WATCH_DEBOUNCE = 3.0


@dataclass
class ReviewOutcome:
    result: ReviewResult
    from_cache: bool = False


class Reviewer:
    def __init__(
        self,
        config: ReviewConfig,
        provider: Optional[Provider] = None,
        project_root: Optional[Path] = None,
        servers: Optional[Sequence[ServerSpec]] = None,
        cache: Optional[ReviewCache] = None,
        history: Optional[UsageHistory] = None,
    ):
        self.config = config
        self.project_root = Path(project_root) if project_root else Path.cwd()
        self.host = MCPHost(config, provider=provider, servers=servers, project_root=self.project_root)
        self.cache = cache or ReviewCache(self.project_root)
        self.history = history or UsageHistory(self.project_root)

    async def fetch_diff(self, review_range: ResolvedRange) -> PrefetchedDiff:
        """Diff text and stats for the range, fetched concurrently."""
        cwd = self.project_root
        context_lines = self.config.context_lines
        if review_range.is_staged:
            diff, stats = await asyncio.gather(
                get_staged_diff(context_lines=context_lines, cwd=cwd),
                get_staged_diff_stats(cwd=cwd),
            )
        else:
            diff, stats = await asyncio.gather(
                get_diff(review_range.from_ref, review_range.to_ref, context_lines=context_lines, cwd=cwd),
                get_diff_stats(review_range.from_ref, review_range.to_ref, cwd=cwd),
            )
        return PrefetchedDiff(diff=diff, stats=stats)

    async def review(self, review_range: ResolvedRange, progress: Optional[ProgressSink] = None) -> ReviewOutcome:
        def report(text: str) -> None:
            if progress is not None:
                progress.text = text

        report("Starting review...")
        try:
            # Both must settle before the host can be shut down cleanly
            started, prefetched = await asyncio.gather(
                self.host.initialize(), self.fetch_diff(review_range), return_exceptions=True
            )
            for outcome in (prefetched, started):
                if isinstance(outcome, BaseException):
                    raise outcome

            report("Checking cache...")
            cached = self.cache.get(prefetched.diff, self.config, self.config.model)
            if cached is not None:
                report("Review loaded from cache")
                self._record_usage(review_range, cached, from_cache=True)
                return ReviewOutcome(result=cached, from_cache=True)

            report("Analyzing changes...")
            result = await self.host.run_review(review_range, prefetched, progress)

            self.cache.set(prefetched.diff, self.config, self.config.model, result)
            self._record_usage(review_range, result, from_cache=False)
            report("Review complete")
            return ReviewOutcome(result=result)
        except Exception:
            report("Review failed")
            raise
        finally:
            await self.host.shutdown()

    def _record_usage(self, review_range: ResolvedRange, result: ReviewResult, from_cache: bool) -> None:
        usage = result.token_usage if result.token_usage is not None and not from_cache else TokenUsage()
        entry = UsageHistoryEntry(
            range=review_range.display,
            model=self.config.model,
            input_tokens=usage.input_tokens,
            output_tokens=usage.output_tokens,
            estimated_cost=usage.estimated_cost,
            cached=from_cache,
        )
        try:
            self.history.append(entry)
        except OSError as exc:
            logger.warning("Could not write usage history: %s", exc)

    # ── Watch mode ────────────────────────────────────────────────────────

    async def watch(
        self,
        on_result: Callable[[ResolvedRange, ReviewOutcome], None],
        stop: Optional[asyncio.Event] = None,
        progress: Optional[ProgressSink] = None,
        poll_interval: float = WATCH_POLL_INTERVAL,
        debounce: float = WATCH_DEBOUNCE,
    ) -> None:
        """
        Review each new commit as it lands on HEAD until ``stop`` is set.

        After a new HEAD is seen the loop waits ``debounce`` seconds so a burst
        of commits settles, then reviews whatever HEAD is at that point. A
        failed review is logged and watching continues.
        """
        stop = stop or asyncio.Event()
        last_reviewed = await get_latest_commit_hash(self.project_root)

        while not await _stopped_within(stop, poll_interval):
            if await get_latest_commit_hash(self.project_root) == last_reviewed:
                continue

            if progress is not None:
                progress.text = "New commit detected, reviewing..."
            if await _stopped_within(stop, debounce):
                break

            head = await get_latest_commit_hash(self.project_root)
            review_range = ResolvedRange(
                type="range", from_ref=f"{head}~1", to_ref=head, display=f"commit {head[:7]}"
            )
            try:
                outcome = await self.review(review_range, progress)
            except McpReviewError as exc:
                logger.error("Review failed for %s: %s", head[:7], exc)
            else:
                on_result(review_range, outcome)

            last_reviewed = head
            if progress is not None:
                progress.text = "Watching for commits..."


async def _stopped_within(stop: asyncio.Event, seconds: float) -> bool:
    """Wait up to ``seconds``; True when ``stop`` was set meanwhile."""
    if stop.is_set():
        return True
    try:
        await asyncio.wait_for(stop.wait(), timeout=seconds)
    except asyncio.TimeoutError:
        return False
    return True
