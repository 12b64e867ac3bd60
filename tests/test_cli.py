"""Tests for the click CLI and result rendering."""

import importlib
import json

import pytest
from click.testing import CliRunner
from rich.console import Console

from mcpreview.cli.output import finding_location, render_review, result_to_json
from mcpreview.core.cache import ReviewCache
from mcpreview.core.history import UsageHistory, UsageHistoryEntry
from mcpreview.errors import ConfigError
from mcpreview.git.resolver import ResolvedRange
from mcpreview.host.schema import DiffStats, ReviewFinding, ReviewResult, TokenUsage, TruncationInfo
from mcpreview.reviewer import ReviewOutcome
from mcpreview.validation.config import ReviewConfig

cli_main = importlib.import_module("mcpreview.cli.main")

RESULT = ReviewResult(
    critical=[ReviewFinding(file="app.py", line=4, end_line=6, message="Unsafe eval", suggestion="Use ast.literal_eval")],
    suggestions=[ReviewFinding(file="util.py", line=2, message="Rename")],
    positive=[ReviewFinding(file="tests.py", message="Good coverage")],
    confidence="high",
    stats=DiffStats(files_changed=3, insertions=20, deletions=4),
    token_usage=TokenUsage(input_tokens=1000, output_tokens=200, estimated_cost=0.006),
)


def render(result=RESULT, **kwargs):
    console = Console(record=True, width=100, force_terminal=False)
    render_review(result, console, model="claude-sonnet-4-20250514", **kwargs)
    return console.export_text()


class TestRendering:
    def test_location(self):
        assert finding_location(ReviewFinding(file="a.py", message="m")) == "a.py"
        assert finding_location(ReviewFinding(file="a.py", line=3, message="m")) == "a.py:3"
        assert finding_location(ReviewFinding(file="a.py", line=3, end_line=5, message="m")) == "a.py:3-5"

    def test_terminal_sections(self):
        text = render()

        assert "3 files changed" in text
        assert "CRITICAL (1)" in text
        assert "app.py:4-6" in text
        assert "Use ast.literal_eval" in text
        assert "SUGGESTIONS (1)" in text
        assert "LOOKS GOOD" in text
        assert "1 critical · 1 suggestions · 1 positive" in text
        assert "Estimated review confidence: high" in text
        assert "Usage" not in text

    def test_verbose_shows_usage(self):
        assert "Tokens: 1,000 in / 200 out" in render(verbose=True)

    def test_cached_note(self):
        assert "Cached review (no API call)" in render(from_cache=True)

    def test_truncation_note_and_empty_review(self):
        result = ReviewResult(truncated=TruncationInfo(omitted_files=4))

        text = render(result)

        assert "No findings" in text
        assert "4 file(s) omitted" in text

    def test_json(self, capsys):
        render(output_format="json")

        data = json.loads(capsys.readouterr().out)
        assert data["critical"][0]["endLine"] == 6
        assert "line" not in data["positive"][0]
        assert "truncated" not in data
        assert json.loads(result_to_json(RESULT)) == data


class FakeReviewer:
    outcome = ReviewOutcome(result=RESULT)
    error = None
    instances = []

    def __init__(self, config, project_root=None):
        self.config = config
        self.project_root = project_root
        self.ranges = []
        FakeReviewer.instances.append(self)

    async def review(self, review_range, progress=None):
        self.ranges.append(review_range)
        if self.error is not None:
            raise self.error
        return self.outcome

    async def watch(self, on_result, **kwargs):
        self.watching = True
        if self.error is not None:
            raise self.error
        on_result(ResolvedRange(type="range", from_ref="abc~1", to_ref="abc", display="commit abc1234"), self.outcome)


@pytest.fixture
def fake_reviewer(monkeypatch):
    monkeypatch.setattr(cli_main, "Reviewer", FakeReviewer)
    monkeypatch.setattr(cli_main, "configure_logging", lambda *args, **kwargs: None)
    FakeReviewer.instances = []
    FakeReviewer.error = None
    FakeReviewer.outcome = ReviewOutcome(result=RESULT)
    return FakeReviewer


class TestCommands:
    def test_version(self):
        result = CliRunner().invoke(cli_main.cli, ["--version"])

        assert result.exit_code == 0
        assert "mcpreview" in result.output

    def test_critical_findings_exit_1(self, fake_reviewer):
        runner = CliRunner()
        with runner.isolated_filesystem():
            result = runner.invoke(cli_main.cli, ["review", "--last", "2", "--format", "json"])

        assert result.exit_code == 1
        assert json.loads(result.output)["confidence"] == "high"
        [reviewer] = fake_reviewer.instances
        assert reviewer.ranges[0].display == "last 2 commits"

    def test_clean_review_exits_0(self, fake_reviewer):
        fake_reviewer.outcome = ReviewOutcome(result=ReviewResult(confidence="high"), from_cache=True)
        runner = CliRunner()
        with runner.isolated_filesystem():
            result = runner.invoke(cli_main.cli, ["review", "--staged"])

        assert result.exit_code == 0
        assert "Cached review" in result.output

    def test_flags_become_config_overrides(self, fake_reviewer):
        runner = CliRunner()
        with runner.isolated_filesystem():
            with open(".mcp-review.yml", "w") as f:
                f.write("max_files: 3\n")
            runner.invoke(
                cli_main.cli,
                [
                    "review",
                    "--model",
                    "deepseek",
                    "--focus",
                    "security, performance",
                    "--no-cache",
                    "--format",
                    "json",
                ],
            )

        config = fake_reviewer.instances[0].config
        assert config.model == "deepseek"
        assert config.focus == ["security", "performance"]
        assert config.no_cache is True
        assert config.max_files == 3

    def test_errors_exit_2(self, fake_reviewer):
        fake_reviewer.error = ConfigError("API key not found. Set the ANTHROPIC_API_KEY environment variable.")
        runner = CliRunner()
        with runner.isolated_filesystem():
            result = runner.invoke(cli_main.cli, ["review", "--format", "json"])

        assert result.exit_code == 2
        assert "Configuration error: API key not found" in result.output

    def test_cache_clear(self, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        ReviewCache(tmp_path).set("diff", ReviewConfig(), "m", RESULT)

        result = CliRunner().invoke(cli_main.cli, ["cache", "clear"])

        assert result.exit_code == 0
        assert "Cleared 1 cached review(s)" in result.output

    def test_watch_renders_each_review(self, fake_reviewer):
        runner = CliRunner()
        with runner.isolated_filesystem():
            result = runner.invoke(cli_main.cli, ["review", "--watch"])

        assert result.exit_code == 0
        assert "commit abc1234" in result.output
        assert "CRITICAL (1)" in result.output
        [reviewer] = fake_reviewer.instances
        assert reviewer.watching
        assert reviewer.ranges == []

    def test_watch_stops_on_interrupt(self, fake_reviewer):
        fake_reviewer.error = KeyboardInterrupt()
        runner = CliRunner()
        with runner.isolated_filesystem():
            result = runner.invoke(cli_main.cli, ["review", "--watch"])

        assert result.exit_code == 0
        assert "Stopped watching." in result.output

    def test_usage_report(self, fake_reviewer, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        history = UsageHistory(tmp_path)
        history.append(UsageHistoryEntry(range="HEAD~1..HEAD", model="deepseek-chat", input_tokens=1200, estimated_cost=0.0021))
        history.append(UsageHistoryEntry(range="staged changes", model="deepseek-chat", cached=True))

        result = CliRunner().invoke(cli_main.cli, ["review", "--usage-report"])

        assert result.exit_code == 0
        assert "Reviews: 2 (1 cached)" in result.output
        assert "Input tokens:  1,200" in result.output
        assert "HEAD~1..HEAD" in result.output
        assert fake_reviewer.instances == []

    def test_empty_usage_report(self, fake_reviewer, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)

        result = CliRunner().invoke(cli_main.cli, ["review", "--usage-report"])

        assert result.exit_code == 0
        assert "No usage history found" in result.output
