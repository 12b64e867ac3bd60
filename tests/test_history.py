"""Tests for the persistent usage history and its report."""

import json
from datetime import datetime, timezone

from mcpreview.core.history import HISTORY_FILE, UsageHistory, UsageHistoryEntry, format_usage_report


def entry(n=0, cached=False, cost=0.01):
    return UsageHistoryEntry(
        timestamp=datetime(2026, 1, 2, 3, 4, tzinfo=timezone.utc),
        range=f"commit {n:07d}",
        model="claude-sonnet-4-20250514",
        input_tokens=1000,
        output_tokens=200,
        estimated_cost=cost,
        cached=cached,
    )


class TestUsageHistory:
    def test_missing_file_is_empty(self, tmp_path):
        assert UsageHistory(tmp_path).entries() == []

    def test_append_creates_and_extends(self, tmp_path):
        history = UsageHistory(tmp_path)

        history.append(entry(1))
        history.append(entry(2, cached=True))

        entries = history.entries()
        assert [e.range for e in entries] == ["commit 0000001", "commit 0000002"]
        assert entries[1].cached is True
        assert isinstance(json.loads((tmp_path / HISTORY_FILE).read_text()), list)

    def test_corrupt_file_starts_over(self, tmp_path):
        (tmp_path / HISTORY_FILE).write_text("{not json")
        history = UsageHistory(tmp_path)

        assert history.entries() == []
        history.append(entry(1))
        assert len(history.entries()) == 1

    def test_non_list_and_bad_items_are_ignored(self, tmp_path):
        (tmp_path / HISTORY_FILE).write_text(json.dumps({"range": "x"}))
        assert UsageHistory(tmp_path).entries() == []

        (tmp_path / HISTORY_FILE).write_text(json.dumps([{"bogus": True}, entry(3).model_dump(mode="json")]))
        assert [e.range for e in UsageHistory(tmp_path).entries()] == ["commit 0000003"]


class TestUsageReport:
    def test_empty(self):
        assert format_usage_report([]) == "No usage history found. Run a review first."

    def test_totals(self):
        report = format_usage_report([entry(1, cost=0.0123), entry(2, cached=True, cost=0.0)])

        assert "Reviews: 2 (1 cached)" in report
        assert "Input tokens:  2,000" in report
        assert "Output tokens: 400" in report
        assert "Estimated cost: $0.0123" in report
        assert "commit 0000002  claude-sonnet-4-20250514  $0.0000 (cached)" in report

    def test_only_recent_entries_are_listed(self):
        report = format_usage_report([entry(n) for n in range(13)])

        assert "commit 0000002" not in report
        assert "commit 0000003" in report
        assert report.endswith("... and 3 earlier entries")
