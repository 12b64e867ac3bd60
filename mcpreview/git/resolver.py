"""
Turn user input into a concrete revision range.

=================  ==================================
Input              Resolved range
=================  ==================================
``--staged``       index vs HEAD
``HEAD~3..HEAD``   passed through
``abc123``         ``abc123~1..abc123``
``--last 3``       ``HEAD~3..HEAD``
``--since DATE``   ``<oldest since DATE>~1..HEAD``
(nothing)          ``HEAD~1..HEAD``
=================  ==================================
"""

from __future__ import annotations

from pathlib import Path
from typing import Literal, Optional, Union

from pydantic import BaseModel

from mcpreview.errors import GitError
from mcpreview.git.commands import get_commits_since


class ResolvedRange(BaseModel):
    type: Literal["staged", "range"]
    from_ref: Optional[str] = None
    to_ref: Optional[str] = None
    display: str

    @property
    def is_staged(self) -> bool:
        return self.type == "staged"


async def resolve_range(
    range: Optional[str] = None,
    staged: bool = False,
    last: Optional[int] = None,
    since: Optional[str] = None,
    cwd: Optional[Union[str, Path]] = None,
) -> ResolvedRange:
    if staged:
        return ResolvedRange(type="staged", display="staged changes")

    if last is not None:
        return ResolvedRange(type="range", from_ref=f"HEAD~{last}", to_ref="HEAD", display=f"last {last} commits")

    if since:
        commits = await get_commits_since(since, cwd)
        if not commits:
            raise GitError(f"No commits found since {since}")
        return ResolvedRange(
            type="range",
            from_ref=f"{commits[-1]}~1",
            to_ref="HEAD",
            display=f"commits since {since}",
        )

    if range:
        if ".." in range:
            from_ref, _, to_ref = range.partition("..")
            return ResolvedRange(type="range", from_ref=from_ref, to_ref=to_ref or "HEAD", display=range)
        return ResolvedRange(type="range", from_ref=f"{range}~1", to_ref=range, display=f"commit {range[:7]}")

    return ResolvedRange(type="range", from_ref="HEAD~1", to_ref="HEAD", display="last commit")
