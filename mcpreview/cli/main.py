"""
mcpreview CLI.

Run `mcpreview review` inside a git repository to review the last commit.
Exit code 1 means the review found critical issues, 2 means it failed.
"""

import asyncio
import sys
from contextlib import nullcontext
from pathlib import Path
from typing import Any, Dict, Optional

import click
from rich.console import Console

from mcpreview import __version__
from mcpreview.cli.output import RichProgress, render_review
from mcpreview.core.cache import ReviewCache
from mcpreview.core.history import UsageHistory, format_usage_report
from mcpreview.errors import McpReviewError, format_error_for_user
from mcpreview.git.resolver import ResolvedRange, resolve_range
from mcpreview.logger import configure_logging
from mcpreview.reviewer import ReviewOutcome, Reviewer
from mcpreview.validation.config import load_config, merge_config

console = Console()
err_console = Console(stderr=True)

EXIT_CRITICAL = 1
EXIT_ERROR = 2


@click.group()
@click.version_option(__version__, prog_name="mcpreview")
def cli() -> None:
    """mcpreview - context-aware code review at the commit level."""


@cli.command()
@click.argument("range", required=False)
@click.option("--staged", is_flag=True, help="Review staged changes (pre-commit mode)")
@click.option("--last", type=int, help="Review the last N commits")
@click.option("--since", help='Review commits since a date (e.g. "yesterday")')
@click.option("--model", help="Model name or provider shortcut (claude, deepseek, groq, ...)")
@click.option("--focus", help="Focus areas, comma-separated (security, performance)")
@click.option(
    "--format",
    "output_format",
    type=click.Choice(["terminal", "json"]),
    default="terminal",
    show_default=True,
    help="Output format",
)
@click.option("--no-cache", is_flag=True, help="Skip the review cache")
@click.option("--watch", is_flag=True, help="Review each new commit as it lands on HEAD")
@click.option("--usage-report", is_flag=True, help="Show usage history and estimated cost, then exit")
@click.option("--base-url", help="Endpoint for an OpenAI-compatible provider")
@click.option("--api-key-env", help="Environment variable holding the API key")
@click.option("--verbose", is_flag=True, help="Debug logging and token usage")
def review(
    range: Optional[str],
    staged: bool,
    last: Optional[int],
    since: Optional[str],
    model: Optional[str],
    focus: Optional[str],
    output_format: str,
    no_cache: bool,
    watch: bool,
    usage_report: bool,
    base_url: Optional[str],
    api_key_env: Optional[str],
    verbose: bool,
) -> None:
    """
    Review a git revision range.

    \b
    Examples:
        mcpreview review                  # last commit
        mcpreview review HEAD~3..HEAD     # explicit range
        mcpreview review --staged         # staged changes
        mcpreview review --model deepseek
        mcpreview review --watch          # review each new commit
        mcpreview review --usage-report
    """
    configure_logging(verbose, err_console)
    project_root = Path.cwd()

    if usage_report:
        console.print(format_usage_report(UsageHistory(project_root).entries()), markup=False, highlight=False)
        return

    overrides: Dict[str, Any] = {
        "model": model,
        "focus": [f.strip() for f in focus.split(",") if f.strip()] if focus else None,
        "no_cache": True if no_cache else None,
        "base_url": base_url,
        "api_key_env": api_key_env,
    }

    try:
        config = merge_config(load_config(project_root), overrides)
        reviewer = Reviewer(config, project_root=project_root)
        if watch:
            _watch(reviewer, output_format, verbose)
            return
        outcome = asyncio.run(_run(reviewer, range, staged, last, since, output_format))
    except McpReviewError as exc:
        err_console.print(f"[red]{format_error_for_user(exc)}[/red]")
        sys.exit(EXIT_ERROR)

    render_review(
        outcome.result,
        console,
        model=config.model,
        output_format=output_format,
        verbose=verbose,
        from_cache=outcome.from_cache,
    )

    if outcome.result.critical:
        sys.exit(EXIT_CRITICAL)


async def _run(
    reviewer: Reviewer,
    range: Optional[str],
    staged: bool,
    last: Optional[int],
    since: Optional[str],
    output_format: str,
) -> ReviewOutcome:
    review_range = await resolve_range(range, staged=staged, last=last, since=since, cwd=reviewer.project_root)

    status = nullcontext() if output_format == "json" else err_console.status("[bold blue]Starting review...[/bold blue]")
    with status as spinner:
        progress = RichProgress(spinner) if spinner is not None else None
        return await reviewer.review(review_range, progress)


def _watch(reviewer: Reviewer, output_format: str, verbose: bool) -> None:
    def show(review_range: ResolvedRange, outcome: ReviewOutcome) -> None:
        if output_format == "terminal":
            console.rule(review_range.display)
        render_review(
            outcome.result,
            console,
            model=reviewer.config.model,
            output_format=output_format,
            verbose=verbose,
            from_cache=outcome.from_cache,
        )

    err_console.print("Watching for commits... (Ctrl+C to stop)")
    try:
        asyncio.run(reviewer.watch(show))
    except KeyboardInterrupt:
        err_console.print("Stopped watching.")


@cli.group()
def cache() -> None:
    """Manage the review cache."""


@cache.command("clear")
def cache_clear() -> None:
    """Remove every cached review in this project."""
    cleared = ReviewCache(Path.cwd()).clear()
    console.print(f"[green]Cleared {cleared} cached review(s)[/green]")


def main() -> None:
    """Entry point."""
    cli()


if __name__ == "__main__":
    main()
