"""file-context tool server: read whole files, line ranges and directory trees."""

from pathlib import Path
from typing import Annotated, List, Optional

from mcp.server.fastmcp.exceptions import ToolError
from pydantic import Field

from mcpreview.tools.server import create_server
from mcpreview.tools.walk import SKIP_DIRS, number_lines, resolve_path

server = create_server("file-context")

DEFAULT_MAX_DEPTH = 3


def _read_lines(path: str, label: str) -> List[str]:
    try:
        return resolve_path(path).read_text(encoding="utf-8").split("\n")
    except (OSError, UnicodeDecodeError) as exc:
        raise ToolError(f"{label}: {exc}") from exc


@server.tool(name="read_file", description="Read full file contents with line numbers")
def handle_read_file(path: Annotated[str, Field(description="File path")]) -> str:
    return number_lines(_read_lines(path, "Error reading file"))


@server.tool(name="read_lines", description="Read a specific line range from a file")
def handle_read_lines(
    path: Annotated[str, Field(description="File path")],
    start_line: Annotated[int, Field(description="First line (1-based)")],
    end_line: Annotated[int, Field(description="Last line (inclusive)")],
) -> str:
    lines = _read_lines(path, "Error reading lines")
    start = max(0, start_line - 1)
    end = min(len(lines), end_line)

    if start >= len(lines):
        return f"File has {len(lines)} lines; requested start_line {start_line} is out of range."

    return number_lines(lines[start:end], start + 1)


def _tree(path: Path, depth: int, max_depth: int, indent: str) -> List[str]:
    if depth >= max_depth:
        return []

    entries = [e for e in path.iterdir() if not e.name.startswith(".") and e.name not in SKIP_DIRS]
    # directories first, then files, each alphabetical
    entries.sort(key=lambda e: (not e.is_dir(), e.name))

    lines = []
    for entry in entries:
        if entry.is_dir():
            lines.append(f"{indent}{entry.name}/")
            lines.extend(_tree(entry, depth + 1, max_depth, indent + "  "))
        elif entry.is_file():
            lines.append(f"{indent}{entry.name}")
    return lines


@server.tool(name="list_directory", description="List a directory tree, recursive up to max_depth (default 3)")
def handle_list_directory(
    path: Annotated[str, Field(description="Directory path")],
    max_depth: Annotated[Optional[int], Field(description="Maximum depth (default 3)")] = None,
) -> str:
    directory = resolve_path(path)
    if not directory.is_dir():
        return f"Error: {path} is not a directory."

    try:
        body = _tree(directory, 0, max_depth or DEFAULT_MAX_DEPTH, "  ")
    except OSError as exc:
        raise ToolError(f"Error listing directory: {exc}") from exc
    return "\n".join([f"{path.rstrip('/')}/", *body])


if __name__ == "__main__":
    server.run()
