"""Terminal and JSON rendering of review results."""

import json
from typing import List, Optional

from rich.console import Console
from rich.panel import Panel
from rich.status import Status
from rich.text import Text

from mcpreview.core.usage import UsageTracker
from mcpreview.host.schema import ReviewFinding, ReviewResult

SECTION_RULE = "─" * 50


class RichProgress:
    """Progress sink backed by a ``rich`` status spinner."""

    def __init__(self, status: Status):
        self._status = status
        self._text = ""

    @property
    def text(self) -> str:
        return self._text

    @text.setter
    def text(self, value: str) -> None:
        self._text = value
        self._status.update(f"[bold blue]{value}[/bold blue]")


def finding_location(finding: ReviewFinding) -> str:
    if finding.line is None:
        return finding.file
    if finding.end_line is not None:
        return f"{finding.file}:{finding.line}-{finding.end_line}"
    return f"{finding.file}:{finding.line}"


def result_to_json(result: ReviewResult) -> str:
    return json.dumps(result.model_dump(mode="json", by_alias=True, exclude_none=True), indent=2)


def _render_findings(console: Console, title: str, style: str, findings: List[ReviewFinding]) -> None:
    if not findings:
        return
    console.print(Text(title, style=f"bold {style}"))
    for finding in findings:
        console.print(Text(f"  {finding_location(finding)}", style=style))
        console.print(Text(f"  {finding.message}"))
        if finding.suggestion:
            console.print(Text(f"  {finding.suggestion}", style="dim"))
        console.print()


def render_review(
    result: ReviewResult,
    console: Console,
    model: str,
    output_format: str = "terminal",
    verbose: bool = False,
    from_cache: bool = False,
) -> None:
    if output_format == "json":
        # plain print so rich markup never touches machine-readable output
        print(result_to_json(result))
        return

    stats = result.stats
    console.print(
        Panel(
            f"[bold]mcp-review[/bold]  ·  {stats.files_changed} files changed  ·  "
            f"[green]+{stats.insertions}[/green] [red]-{stats.deletions}[/red]",
            border_style="grey50",
            expand=False,
        )
    )
    console.print()

    _render_findings(console, f"CRITICAL ({len(result.critical)})", "red", result.critical)
    _render_findings(console, f"SUGGESTIONS ({len(result.suggestions)})", "yellow", result.suggestions)
    _render_findings(console, "LOOKS GOOD", "green", result.positive)

    console.print(f"[dim]── Summary {SECTION_RULE}[/dim]")
    parts = [
        f"{len(result.critical)} critical" if result.critical else None,
        f"{len(result.suggestions)} suggestions" if result.suggestions else None,
        f"{len(result.positive)} positive" if result.positive else None,
    ]
    console.print(f"  {' · '.join(p for p in parts if p) or 'No findings'}")
    console.print(f"  Estimated review confidence: [cyan]{result.confidence}[/cyan]")

    if result.truncated is not None:
        console.print(
            f"  [yellow]Diff truncated: {result.truncated.omitted_files} file(s) omitted from the prompt[/yellow]"
        )

    usage_line: Optional[str] = None
    if from_cache:
        usage_line = "[green]Cached review (no API call)[/green]"
    elif verbose and result.token_usage is not None:
        tracker = UsageTracker(model)
        tracker.add_usage(result.token_usage.input_tokens, result.token_usage.output_tokens)
        usage_line = tracker.format_usage()

    if usage_line:
        console.print()
        console.print(f"[dim]── Usage {SECTION_RULE}[/dim]")
        console.print(f"  {usage_line}")
