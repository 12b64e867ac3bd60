"""Async wrappers over the ``git`` executable."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, Union

from mcpreview.errors import GitError
from mcpreview.host.schema import DiffStats

logger = logging.getLogger(__name__)

# Unit and record separators keep commit bodies intact when splitting log output.
_FIELD_SEP = "\x1f"
_RECORD_SEP = "\x1e"


@dataclass
class CommitInfo:
    hash: str
    message: str
    author: str
    date: str


async def run_git(args: List[str], cwd: Optional[Union[str, Path]] = None) -> str:
    """Run ``git <args>`` and return stdout. A non-zero exit raises ``GitError``."""
    logger.debug("git %s", " ".join(args))
    try:
        process = await asyncio.create_subprocess_exec(
            "git",
            *args,
            cwd=str(cwd) if cwd else None,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
    except OSError as exc:
        raise GitError(f"Failed to run git: {exc}", cause=exc) from exc

    stdout, stderr = await process.communicate()
    if process.returncode != 0:
        detail = stderr.decode("utf-8", errors="replace").strip()
        raise GitError(f"git {args[0]} failed (exit {process.returncode}): {detail}")
    return stdout.decode("utf-8", errors="replace")


def _context_flag(context_lines: Optional[int]) -> List[str]:
    return [f"-U{context_lines}"] if context_lines is not None else []


async def get_diff(
    from_ref: str,
    to_ref: str,
    file: Optional[str] = None,
    context_lines: Optional[int] = None,
    cwd: Optional[Union[str, Path]] = None,
) -> str:
    args = ["diff", *_context_flag(context_lines), from_ref, to_ref]
    if file:
        args += ["--", file]
    return await run_git(args, cwd)


async def get_staged_diff(
    context_lines: Optional[int] = None,
    file: Optional[str] = None,
    cwd: Optional[Union[str, Path]] = None,
) -> str:
    args = ["diff", *_context_flag(context_lines), "--cached"]
    if file:
        args += ["--", file]
    return await run_git(args, cwd)


def parse_numstat(output: str) -> DiffStats:
    """
    Parse ``git diff --numstat`` output.

    Binary files report ``-`` for both counts and contribute no lines.
    """
    files: List[str] = []
    insertions = 0
    deletions = 0
    for line in output.splitlines():
        parts = line.split("\t", 2)
        if len(parts) != 3:
            continue
        added, removed, path = parts
        if added.isdigit():
            insertions += int(added)
        if removed.isdigit():
            deletions += int(removed)
        files.append(path)
    return DiffStats(files_changed=len(files), insertions=insertions, deletions=deletions, files=files)


async def get_diff_stats(from_ref: str, to_ref: str, cwd: Optional[Union[str, Path]] = None) -> DiffStats:
    return parse_numstat(await run_git(["diff", "--numstat", from_ref, to_ref], cwd))


async def get_staged_diff_stats(cwd: Optional[Union[str, Path]] = None) -> DiffStats:
    return parse_numstat(await run_git(["diff", "--numstat", "--cached"], cwd))


def parse_log(output: str) -> List[CommitInfo]:
    commits = []
    for record in output.split(_RECORD_SEP):
        record = record.strip("\n")
        if not record:
            continue
        fields = record.split(_FIELD_SEP)
        if len(fields) != 4:
            continue
        commit_hash, author, date, message = fields
        commits.append(CommitInfo(hash=commit_hash, message=message.strip(), author=author, date=date))
    return commits


async def get_commit_messages(
    from_ref: str,
    to_ref: str,
    cwd: Optional[Union[str, Path]] = None,
) -> List[CommitInfo]:
    fmt = _FIELD_SEP.join(["%H", "%an", "%aI", "%B"]) + _RECORD_SEP
    output = await run_git(["log", f"--format={fmt}", f"{from_ref}..{to_ref}"], cwd)
    return parse_log(output)


async def get_commits_since(since: str, cwd: Optional[Union[str, Path]] = None) -> List[str]:
    """Hashes of commits newer than ``since``, newest first."""
    output = await run_git(["log", f"--since={since}", "--format=%H"], cwd)
    return [line for line in output.splitlines() if line.strip()]


async def get_latest_commit_hash(cwd: Optional[Union[str, Path]] = None) -> str:
    return (await run_git(["rev-parse", "HEAD"], cwd)).strip()
