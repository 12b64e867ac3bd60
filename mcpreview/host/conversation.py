"""
Conversation manager - the review state machine.

Builds the initial prompt, then alternates provider calls and parallel
tool dispatch until the model answers in text or the round cap is hit.
At the cap the tool catalog is withheld so the model has to finish.
"""

from __future__ import annotations

import asyncio
import json
import logging
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

from pydantic import ValidationError

from mcpreview.core.usage import UsageTracker
from mcpreview.git.resolver import ResolvedRange
from mcpreview.host.registry import ToolRegistry
from mcpreview.host.schema import (
    DiffStats,
    Message,
    PrefetchedDiff,
    ReviewFinding,
    ReviewResult,
    ToolCallRequest,
    ToolCallResult,
    ToolDefinition,
    ToolResultBlock,
    ToolUseBlock,
    TruncationInfo,
)
from mcpreview.logger import timer
from mcpreview.prompts.system import FileContent, get_initial_prompt, get_system_prompt
from mcpreview.prompts.templates import build_focus_prompt, get_focus_instructions
from mcpreview.providers.base import LLMRequest, LLMResponse, ProgressSink, Provider
from mcpreview.providers.factory import ProviderFactory
from mcpreview.validation.config import ReviewConfig, should_ignore_file

logger = logging.getLogger(__name__)

# Claude's context is 200k tokens; ~100k is left for the diff, the rest for
# system prompt, tool schemas, pre-loaded files and the response.
MAX_DIFF_TOKENS = 100_000

CHARS_PER_TOKEN = 4

MAX_PRELOAD_FILE_CHARS = 10_000

FALLBACK_EXCERPT_CHARS = 500

FILE_HEADER_PREFIX = "diff --git "

TOOL_LABELS: Dict[str, str] = {
    "get_diff": "Reading diff",
    "get_diff_stats": "Reading diff stats",
    "get_commit_messages": "Reading commit messages",
    "read_file": "Reading file",
    "read_lines": "Reading file",
    "list_directory": "Scanning directory",
    "scan_lint_config": "Checking lint config",
    "find_similar_patterns": "Finding similar patterns",
    "get_project_conventions": "Checking conventions",
    "find_importers": "Finding importers",
    "find_test_files": "Finding test files",
}

_JSON_BLOCK = re.compile(r"```json\s*\n?(.*?)\n?```", re.DOTALL)


# ── Diff truncation ───────────────────────────────────────────────────────


@dataclass
class TruncateResult:
    diff: str
    omitted_files: int


def split_file_sections(diff: str) -> List[str]:
    """Split a unified diff into per-file sections at ``diff --git`` headers."""
    sections: List[str] = []
    current = ""
    for line in diff.split("\n"):
        if line.startswith(FILE_HEADER_PREFIX) and current:
            sections.append(current)
            current = ""
        current += f"{line}\n"
    if current:
        sections.append(current)
    return sections


def truncate_diff(diff: str, max_tokens: int = MAX_DIFF_TOKENS) -> TruncateResult:
    """
    Fit a diff into a token budget by keeping whole file sections.

    Sections are kept greedily in order; the first one is always kept even
    if it alone is over budget. Omitted files are listed by header line with
    a note telling the model to fetch them with ``get_diff``.
    """
    max_chars = max_tokens * CHARS_PER_TOKEN
    if len(diff) <= max_chars:
        return TruncateResult(diff=diff, omitted_files=0)

    sections = split_file_sections(diff)
    kept = ""
    included = 0
    for section in sections:
        if len(kept) + len(section) > max_chars and included > 0:
            break
        kept += section
        included += 1

    omitted = sections[included:]
    if omitted:
        headers = "\n".join(
            next((line for line in s.split("\n") if line.startswith(FILE_HEADER_PREFIX)), "(unknown file)")
            for s in omitted
        )
        kept += (
            "\n\n--- DIFF TRUNCATED ---\n"
            f"{len(omitted)} additional file(s) omitted to fit within context limits:\n"
            f"{headers}\n\n"
            "Use the get_diff tool with a specific file path to review omitted files individually.\n"
        )

    return TruncateResult(diff=kept, omitted_files=len(omitted))


# ── Output parsing ────────────────────────────────────────────────────────


_LINE_NUMBER = re.compile(r"\d+")


def _line_number(value: Any) -> Optional[int]:
    """First integer in a loosely formatted line reference such as ``"10-12"``."""
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    match = _LINE_NUMBER.search(str(value)) if isinstance(value, (str, float)) else None
    return int(match.group()) if match else None


def _coerce_findings(items: Any) -> List[ReviewFinding]:
    if not isinstance(items, list):
        return []
    findings: List[ReviewFinding] = []
    for item in items:
        if not isinstance(item, dict):
            continue
        for key in ("line", "endLine", "end_line"):
            if item.get(key) is not None:
                item = {**item, key: _line_number(item[key])}
        try:
            findings.append(ReviewFinding.model_validate(item))
        except ValidationError as exc:
            logger.warning("Dropping malformed finding %r: %s", item, exc)
    return findings


def parse_review_output(text: str, stats: DiffStats) -> ReviewResult:
    """
    Pull the structured review out of the model's final text.

    Falls back to a low-confidence result carrying an excerpt of the raw
    text when there is no parseable fenced JSON block.
    """
    match = _JSON_BLOCK.search(text)
    if match:
        try:
            parsed = json.loads(match.group(1))
        except json.JSONDecodeError as exc:
            logger.debug("Review JSON did not parse: %s", exc)
            parsed = None

        if isinstance(parsed, dict):
            confidence = parsed.get("confidence")
            return ReviewResult(
                critical=_coerce_findings(parsed.get("critical")),
                suggestions=_coerce_findings(parsed.get("suggestions")),
                positive=_coerce_findings(parsed.get("positive")),
                confidence=confidence if confidence in ("high", "medium", "low") else "medium",
                stats=stats,
            )

    excerpt = text[:FALLBACK_EXCERPT_CHARS] or "(no text response from model)"
    return ReviewResult(
        critical=[],
        suggestions=[ReviewFinding(file="review", message=excerpt)],
        positive=[],
        confidence="low",
        stats=stats,
    )


def describe_tool_calls(blocks: List[ToolUseBlock]) -> str:
    """Human-readable progress text for one round of tool calls."""
    if not blocks:
        return "Gathering context..."

    descriptions = []
    for block in blocks:
        label = TOOL_LABELS.get(block.name, block.name)
        arguments = block.input if isinstance(block.input, dict) else {}
        target = arguments.get("path") or arguments.get("file") or arguments.get("file_path")
        if isinstance(target, str):
            descriptions.append(f"{label} {target.rsplit('/', 1)[-1]}")
        else:
            descriptions.append(label)

    if len(descriptions) == 1:
        return descriptions[0]
    return f"{descriptions[0]} (+{len(descriptions) - 1} more)"


def _plural(count: int, word: str) -> str:
    return f"{count} {word}" if count == 1 else f"{count} {word}s"


# ── Conversation ──────────────────────────────────────────────────────────


class ConversationManager:
    """
    Drives one review session against a provider and a tool registry.

    States: building the prompt, awaiting a response, dispatching the
    round's tool calls (concurrently), and parsing the final answer.
    """

    def __init__(
        self,
        config: ReviewConfig,
        provider: Optional[Provider] = None,
        project_root: Optional[Path] = None,
        on_usage: Optional[Callable[[int, int], None]] = None,
    ):
        self.config = config
        self.provider = provider or ProviderFactory.create(config)
        self.project_root = Path(project_root) if project_root else Path.cwd()
        self.on_usage = on_usage
        self.max_tool_rounds = config.max_tool_rounds

    # ── Prompt building ───────────────────────────────────────────────────

    def build_initial_prompt(
        self,
        diff: str,
        stats: DiffStats,
        file_contents: Optional[List[FileContent]] = None,
    ) -> str:
        """Focus templates when a recognized focus area is set, else the generic prompt."""
        sections = [s for s in (get_focus_instructions(area) for area in self.config.focus) if s]
        if sections:
            return build_focus_prompt(diff, stats.files_changed, sections)
        return get_initial_prompt(diff, self.config, file_contents)

    async def preload_file_contents(self, stats: DiffStats) -> List[FileContent]:
        """
        Read changed files so the model needn't spend a round on read_file.

        Ignored files are skipped, the count is capped at ``max_files`` and
        each file at ``MAX_PRELOAD_FILE_CHARS``. Unreadable files (deleted,
        binary) are left out.
        """
        paths = [p for p in stats.files if not should_ignore_file(p, self.config.ignore)]
        paths = paths[: self.config.max_files]

        outcomes = await asyncio.gather(*(self._read_changed_file(p) for p in paths), return_exceptions=True)

        loaded: List[FileContent] = []
        for path, outcome in zip(paths, outcomes):
            if isinstance(outcome, Exception):
                logger.debug("Skipping pre-load of %s: %s", path, outcome)
                continue
            loaded.append(outcome)

        logger.debug("Pre-loaded %d/%d changed files", len(loaded), len(paths))
        return loaded

    async def _read_changed_file(self, path: str) -> FileContent:
        full_path = self.project_root / path
        content = await asyncio.to_thread(full_path.read_text, encoding="utf-8")
        if len(content) > MAX_PRELOAD_FILE_CHARS:
            content = f"{content[:MAX_PRELOAD_FILE_CHARS]}\n... (truncated)"
        return FileContent(path=path, content=content)

    # ── Main loop ─────────────────────────────────────────────────────────

    async def run_review(
        self,
        review_range: Optional[ResolvedRange],
        registry: ToolRegistry,
        prefetched: PrefetchedDiff,
        progress: Optional[ProgressSink] = None,
    ) -> ReviewResult:
        stats = prefetched.stats
        tracker = UsageTracker(self.provider.model)
        if progress is not None:
            self.provider.progress = progress

        if review_range is not None:
            logger.debug("Reviewing %s", review_range.display)

        truncated = truncate_diff(prefetched.diff, self.config.max_diff_tokens)
        was_truncated = truncated.omitted_files > 0
        if was_truncated:
            logger.debug(
                "Diff truncated: %d -> %d chars, %d file(s) omitted",
                len(prefetched.diff),
                len(truncated.diff),
                truncated.omitted_files,
            )

        self._report(progress, f"Loading {_plural(stats.files_changed, 'changed file')}...")

        file_contents: List[FileContent] = []
        if was_truncated:
            logger.debug("Skipping file pre-load: diff was truncated to fit context window")
        else:
            with timer("review", "preload file contents"):
                file_contents = await self.preload_file_contents(stats)

        tools = [capability.to_definition() for capability in registry.get_available_tools()]
        system = get_system_prompt(self.config)
        messages: List[Message] = [
            Message(role="user", content=self.build_initial_prompt(truncated.diff, stats, file_contents))
        ]

        self._report(progress, f"Analyzing {_plural(stats.files_changed, 'file')} (sending to LLM)")

        rounds = 0
        turn = 0
        while True:
            at_limit = rounds >= self.max_tool_rounds
            turn += 1
            response = await self._call_provider(turn, system, messages, None if at_limit else tools, tracker)

            tool_uses = response.tool_uses()
            if response.stop_reason != "tool_use" or at_limit or not tool_uses:
                break

            messages.append(Message(role="assistant", content=list(response.content)))
            self._report(progress, describe_tool_calls(tool_uses))

            results = await self.dispatch_tool_calls(registry, tool_uses)
            messages.append(Message(role="user", content=results))
            rounds += 1

            if rounds >= self.max_tool_rounds:
                logger.debug("Reached max tool rounds (%d), forcing final response", self.max_tool_rounds)
                self._report(progress, "Writing review...")
            else:
                self._report(progress, f"Reviewing with context... (round {rounds}/{self.max_tool_rounds})")

        logger.debug("Conversation complete after %d turn(s)", turn)
        self._report(progress, "Parsing review output...")

        result = parse_review_output(response.first_text() or "", stats)
        return result.model_copy(
            update={
                "token_usage": tracker.total(),
                "truncated": TruncationInfo(omitted_files=truncated.omitted_files) if was_truncated else None,
            }
        )

    async def _call_provider(
        self,
        turn: int,
        system: str,
        messages: List[Message],
        tools: Optional[List[ToolDefinition]],
        tracker: UsageTracker,
    ) -> LLMResponse:
        request = LLMRequest(
            model=self.provider.model,
            max_tokens=self.config.max_tokens,
            system=system,
            messages=list(messages),
            tools=tools or None,
        )
        with timer("llm", f"API call #{turn}"):
            response = await self.provider.call(request)

        usage = response.usage
        tracker.add_usage(usage.input_tokens, usage.output_tokens)
        if self.on_usage is not None:
            self.on_usage(usage.input_tokens, usage.output_tokens)
        logger.debug(
            "Turn %d: stop_reason=%s, tokens=%din/%dout",
            turn,
            response.stop_reason,
            usage.input_tokens,
            usage.output_tokens,
        )
        return response

    async def dispatch_tool_calls(self, registry: ToolRegistry, blocks: List[ToolUseBlock]) -> List[ToolResultBlock]:
        """Run every tool call of one round concurrently; results keep the request order."""
        logger.debug(
            "Executing %d tool call(s) in parallel: %s",
            len(blocks),
            ", ".join(b.name for b in blocks),
        )
        with timer("tools", f"{len(blocks)} parallel tool call(s)"):
            return list(await asyncio.gather(*(self._run_tool(registry, b) for b in blocks)))

    async def _run_tool(self, registry: ToolRegistry, block: ToolUseBlock) -> ToolResultBlock:
        arguments = block.input if isinstance(block.input, dict) else {}
        try:
            with timer("tools", f"tool: {block.name}"):
                result = await registry.call_tool(ToolCallRequest(name=block.name, arguments=arguments))
        except Exception as exc:
            logger.warning("Tool %s failed: %s", block.name, exc)
            result = ToolCallResult(content=f"Tool {block.name} failed: {exc}", is_error=True)

        return ToolResultBlock(tool_use_id=block.id, content=result.content, is_error=result.is_error)

    @staticmethod
    def _report(progress: Optional[ProgressSink], text: str) -> None:
        if progress is not None:
            progress.text = text
