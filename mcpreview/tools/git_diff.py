"""git-diff tool server: diffs, change stats and commit messages for a range."""

import json
from typing import Annotated, Optional, Tuple

from pydantic import Field

from mcpreview.git.commands import (
    get_commit_messages,
    get_diff,
    get_diff_stats,
    get_staged_diff,
    get_staged_diff_stats,
)
from mcpreview.tools.server import create_server

server = create_server("git-diff")

Range = Annotated[str, Field(description='Git revision range (e.g. "HEAD~1..HEAD" or "staged")')]


def parse_range(value: str) -> Tuple[bool, str, str]:
    """
    Split a range string into ``(staged, from, to)``.

    ``staged`` selects the index, ``a..b`` passes through and a single
    commit ``c`` becomes ``c~1..c``.
    """
    if value == "staged":
        return True, "", ""
    if ".." in value:
        from_ref, _, to_ref = value.partition("..")
        return False, from_ref, to_ref or "HEAD"
    return False, f"{value}~1", value


@server.tool(name="get_diff", description="Get the full git diff for the review scope")
async def handle_get_diff(
    range: Range,
    file_path: Annotated[Optional[str], Field(description="Optional: limit diff to specific file")] = None,
    context_lines: Annotated[Optional[int], Field(description="Context lines around changes")] = None,
) -> str:
    staged, from_ref, to_ref = parse_range(range)

    if staged:
        diff = await get_staged_diff(context_lines=context_lines, file=file_path)
        return diff or "No staged changes found."

    diff = await get_diff(from_ref, to_ref, file=file_path, context_lines=context_lines)
    return diff or f"No diff found for range {range}."


@server.tool(name="get_diff_stats", description="Get file change summary (files changed, insertions, deletions)")
async def handle_get_diff_stats(range: Range) -> str:
    staged, from_ref, to_ref = parse_range(range)
    stats = await get_staged_diff_stats() if staged else await get_diff_stats(from_ref, to_ref)
    return json.dumps(
        {
            "filesChanged": stats.files_changed,
            "insertions": stats.insertions,
            "deletions": stats.deletions,
            "files": stats.files,
        },
        indent=2,
    )


@server.tool(
    name="get_commit_messages",
    description="Get commit messages in the review range to understand developer intent",
)
async def handle_get_commit_messages(range: Range) -> str:
    staged, from_ref, to_ref = parse_range(range)
    if staged:
        return "Staged mode: no commits to show (changes are not yet committed)."

    commits = await get_commit_messages(from_ref, to_ref)
    if not commits:
        return f"No commits found in range {range}."

    return "\n\n".join(f"{c.hash[:8]} {c.date} {c.author}\n  {c.message}" for c in commits)


if __name__ == "__main__":
    server.run()
