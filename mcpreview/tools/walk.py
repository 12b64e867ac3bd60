"""Filesystem helpers shared by the tool servers."""

import fnmatch
import os
from pathlib import Path
from typing import Iterator, List, Optional, Union

SKIP_DIRS = {
    ".git",
    ".mcp-review-cache",
    ".mypy_cache",
    ".next",
    ".pytest_cache",
    ".tox",
    ".turbo",
    ".venv",
    "__pycache__",
    "build",
    "coverage",
    "dist",
    "node_modules",
    "venv",
}

SOURCE_EXTENSIONS = {".py", ".pyi", ".ts", ".tsx", ".js", ".jsx", ".mts", ".mjs"}

MAX_DEPTH = 10


def resolve_root(value: Optional[str] = None) -> Path:
    """The ``project_root`` argument, or the server's working directory."""
    return Path(value).resolve() if value else Path.cwd().resolve()


def resolve_path(path: str, root: Optional[Path] = None) -> Path:
    candidate = Path(path)
    if candidate.is_absolute():
        return candidate
    return (root or Path.cwd()) / candidate


def number_lines(lines: List[str], start: int = 1) -> str:
    return "\n".join(f"{n:4d} | {line}" for n, line in enumerate(lines, start))


def iter_files(
    root: Union[str, Path],
    pattern: Optional[str] = None,
    max_files: int = 500,
) -> Iterator[Path]:
    """
    Walk ``root`` yielding files, skipping vendored and generated directories.

    Without a pattern only source files are yielded. A pattern is matched
    against the file name; a leading ``**/`` is ignored.
    """
    if pattern and pattern.startswith("**/"):
        pattern = pattern[3:]

    root = Path(root)
    count = 0
    for dirpath, dirnames, filenames in os.walk(root):
        depth = len(Path(dirpath).relative_to(root).parts)
        if depth >= MAX_DEPTH:
            dirnames[:] = []
        dirnames[:] = sorted(d for d in dirnames if d not in SKIP_DIRS)

        for filename in sorted(filenames):
            if pattern:
                if not fnmatch.fnmatch(filename, pattern):
                    continue
            elif Path(filename).suffix not in SOURCE_EXTENSIONS:
                continue
            yield Path(dirpath) / filename
            count += 1
            if count >= max_files:
                return


def read_text(path: Path) -> Optional[str]:
    """File contents, or None when missing or not UTF-8 text."""
    try:
        return path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError):
        return None


def plural(count: int, word: str, suffix: str = "s") -> str:
    return word if count == 1 else f"{word}{suffix}"
