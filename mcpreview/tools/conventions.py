"""conventions tool server: lint configuration, pattern search and project conventions."""

import json
from typing import Annotated, Optional

import yaml
from pydantic import Field

from mcpreview.tools.server import create_server
from mcpreview.tools.walk import iter_files, plural, read_text, resolve_root

server = create_server("conventions")

ProjectRoot = Annotated[Optional[str], Field(description="Project root (default: working directory)")]

LINT_CONFIG_FILES = [
    "pyproject.toml",
    "setup.cfg",
    "tox.ini",
    ".flake8",
    "ruff.toml",
    ".ruff.toml",
    "mypy.ini",
    ".pylintrc",
    "biome.json",
    "biome.jsonc",
    ".eslintrc.json",
    ".eslintrc.js",
    ".eslintrc.yml",
    ".eslintrc.yaml",
    ".eslintrc",
    "eslint.config.js",
    "eslint.config.mjs",
    ".prettierrc",
    ".prettierrc.json",
    ".prettierrc.yml",
    ".prettierrc.yaml",
    "prettier.config.js",
    "tsconfig.json",
    ".editorconfig",
]

MAX_CONFIG_CHARS = 5000
MAX_PATTERN_FILES = 200
MAX_PATTERN_MATCHES = 30


@server.tool(
    name="scan_lint_config",
    description="Find and read linting/formatting config files in the project root",
)
def handle_scan_lint_config(project_root: ProjectRoot = None) -> str:
    root = resolve_root(project_root)
    sections = []
    for name in LINT_CONFIG_FILES:
        content = read_text(root / name)
        if content is None:
            continue
        if len(content) > MAX_CONFIG_CHARS:
            content = f"{content[:MAX_CONFIG_CHARS]}\n... (truncated)"
        sections.append(f"--- {name} ---\n{content}")

    if not sections:
        return "No lint or formatting configuration files found in the project root."
    return "\n\n".join(sections)


@server.tool(
    name="find_similar_patterns",
    description="Search for a literal pattern across source files and return matching lines",
)
def handle_find_similar_patterns(
    pattern: Annotated[str, Field(description="Literal text to search for")],
    project_root: ProjectRoot = None,
    file_glob: Annotated[
        Optional[str], Field(description='File name glob, e.g. "*.py" (default: all source files)')
    ] = None,
) -> str:
    root = resolve_root(project_root)

    matches = []
    for path in iter_files(root, file_glob, MAX_PATTERN_FILES):
        content = read_text(path)
        if content is None:
            continue
        for number, line in enumerate(content.split("\n"), 1):
            if pattern in line:
                matches.append(f"  {path.relative_to(root)}:{number}: {line.strip()}")
                if len(matches) >= MAX_PATTERN_MATCHES:
                    break
        if len(matches) >= MAX_PATTERN_MATCHES:
            break

    if not matches:
        scope = f"{file_glob} files" if file_glob else "source files"
        return f'No matches found for pattern "{pattern}" in {scope}.'

    header = f'Found {len(matches)} {plural(len(matches), "match", "es")} for "{pattern}":'
    return "\n".join([header, *matches])


@server.tool(name="get_project_conventions", description="Read the conventions declared in .mcp-review.yml")
def handle_get_project_conventions(project_root: ProjectRoot = None) -> str:
    root = resolve_root(project_root)
    content = read_text(root / ".mcp-review.yml")
    if content is None:
        content = read_text(root / ".mcp-review.yaml")
    if content is None:
        return "No .mcp-review.yml or .mcp-review.yaml configuration file found."

    try:
        parsed = yaml.safe_load(content)
    except yaml.YAMLError as exc:
        return f"Error parsing .mcp-review.yml: {exc}"

    if not isinstance(parsed, dict):
        return "Configuration file is empty or invalid."

    if parsed.get("conventions"):
        return json.dumps(parsed["conventions"], indent=2)
    return json.dumps(parsed, indent=2, default=str)


if __name__ == "__main__":
    server.run()
