"""related-files tool server: who imports a file, and where its tests live."""

import os
import re
from pathlib import Path, PurePosixPath
from typing import Annotated, List, Optional, Set

from pydantic import Field

from mcpreview.tools.server import create_server
from mcpreview.tools.walk import iter_files, plural, read_text, resolve_root

server = create_server("related-files")

FilePath = Annotated[str, Field(description="Path of the changed file")]
ProjectRoot = Annotated[Optional[str], Field(description="Project root (default: working directory)")]

MAX_SOURCE_FILES = 500
MAX_IMPORTERS = 50

JS_EXTENSIONS = {".ts", ".tsx", ".js", ".jsx", ".mts", ".mjs"}
TEST_EXTENSIONS = [".py", ".ts", ".tsx", ".js", ".jsx"]

_JS_IMPORT = re.compile(
    r"""(?:import\s+.*?from\s+['"](.+?)['"]|import\s*\(\s*['"](.+?)['"]\s*\)|require\s*\(\s*['"](.+?)['"]\s*\))"""
)
_PY_FROM_IMPORT = re.compile(r"^\s*from\s+(\.*[\w.]*)\s+import\s+\(?([\w\s,.*]+)")
_PY_IMPORT = re.compile(r"^\s*import\s+([\w.]+(?:\s*,\s*[\w.]+)*)")


# ── Python imports ────────────────────────────────────────────────────────


def module_name(rel_path: PurePosixPath) -> str:
    """Dotted module for a project-relative ``.py`` path; packages drop ``__init__``."""
    parts = list(rel_path.with_suffix("").parts)
    if parts and parts[-1] == "__init__":
        parts.pop()
    return ".".join(parts)


def _absolute_module(module: str, source_rel: PurePosixPath) -> str:
    level = len(module) - len(module.lstrip("."))
    if level == 0:
        return module
    package = list(source_rel.parent.parts)
    if level > 1:
        package = package[: len(package) - (level - 1)]
    rest = module[level:]
    return ".".join([*package, rest] if rest else package)


def python_imports(line: str, source_rel: PurePosixPath) -> List[str]:
    """Every module a Python import line could refer to."""
    match = _PY_FROM_IMPORT.match(line)
    if match:
        base = _absolute_module(match.group(1), source_rel)
        names = [n.strip().split(" as ")[0].strip() for n in match.group(2).split(",")]
        modules = [base]
        modules += [f"{base}.{n}" if base else n for n in names if n and n != "*"]
        return modules

    match = _PY_IMPORT.match(line)
    if match:
        return [m.strip() for m in match.group(1).split(",")]
    return []


def _python_matches(candidates: List[str], target: str) -> bool:
    return any(c and (c == target or target.endswith(f".{c}")) for c in candidates)


# ── JS/TS imports ─────────────────────────────────────────────────────────


def js_targets(rel_target: PurePosixPath) -> Set[str]:
    stem = str(rel_target.with_suffix(""))
    targets = {stem, f"{stem}.js", f"{stem}.ts"}
    if rel_target.stem == "index":
        targets.add(str(rel_target.parent))
    return targets


def _js_matches(import_path: str, source_rel: PurePosixPath, targets: Set[str]) -> bool:
    if import_path.startswith("."):
        resolved = PurePosixPath(os.path.normpath(str(source_rel.parent / import_path)))
        return str(resolved) in targets or str(resolved.with_suffix("")) in targets
    return any(t == import_path or t.endswith(f"/{import_path}") for t in targets)


# ── Tools ─────────────────────────────────────────────────────────────────


@server.tool(name="find_importers", description="Find files that import or require the given file")
def handle_find_importers(file_path: FilePath, project_root: ProjectRoot = None) -> str:
    root = resolve_root(project_root)
    target_abs = (root / file_path).resolve()
    rel_target = PurePosixPath(target_abs.relative_to(root).as_posix())

    is_python = rel_target.suffix == ".py"
    target_module = module_name(rel_target) if is_python else ""
    targets = js_targets(rel_target)
    wanted = {".py"} if is_python else JS_EXTENSIONS

    matches: List[str] = []
    for source in iter_files(root, max_files=MAX_SOURCE_FILES):
        if len(matches) >= MAX_IMPORTERS:
            break
        if source.resolve() == target_abs:
            continue
        if source.suffix not in wanted:
            continue
        content = read_text(source)
        if content is None:
            continue

        source_rel = PurePosixPath(source.relative_to(root).as_posix())
        for number, line in enumerate(content.split("\n"), 1):
            if is_python:
                hit = _python_matches(python_imports(line, source_rel), target_module)
            else:
                hit = any(
                    _js_matches(next(g for g in m.groups() if g), source_rel, targets)
                    for m in _JS_IMPORT.finditer(line)
                )
            if hit:
                matches.append(f"  {source_rel}:{number}: {line.strip()}")
                if len(matches) >= MAX_IMPORTERS:
                    break

    if not matches:
        return f'No files found that import "{file_path}".'
    header = f'Found {len(matches)} {plural(len(matches), "file")} importing "{file_path}":'
    return "\n".join([header, *matches])


def candidate_test_paths(rel_path: PurePosixPath) -> List[PurePosixPath]:
    """Conventional test locations for a source file, Python and JS/TS alike."""
    base = rel_path.stem
    directory = rel_path.parent
    candidates: List[PurePosixPath] = []

    # Python: test_foo.py / foo_test.py beside the file, under tests/, and mirrored
    candidates += [directory / f"test_{base}.py", directory / f"{base}_test.py"]
    candidates += [PurePosixPath("tests") / f"test_{base}.py", directory / "tests" / f"test_{base}.py"]
    mirrored = PurePosixPath("tests", *directory.parts[1:]) if directory.parts else PurePosixPath("tests")
    candidates.append(mirrored / f"test_{base}.py")

    # JS/TS: foo.test.ts, foo.spec.ts, __tests__/, tests/ mirror of src/
    for ext in TEST_EXTENSIONS[1:]:
        for suffix in (".test", ".spec"):
            candidates.append(directory / f"{base}{suffix}{ext}")
        candidates.append(directory / "__tests__" / f"{base}{ext}")
        candidates.append(directory / "__tests__" / f"{base}.test{ext}")
        candidates.append(directory / "__tests__" / f"{base}.spec{ext}")
        if directory.parts and directory.parts[0] == "src":
            for suffix in (".test", ".spec", ""):
                candidates.append(mirrored / f"{base}{suffix}{ext}")

    unique: List[PurePosixPath] = []
    for candidate in candidates:
        if candidate not in unique:
            unique.append(candidate)
    return unique


@server.tool(
    name="find_test_files",
    description="Find test files for a source file using common naming conventions",
)
def handle_find_test_files(file_path: FilePath, project_root: ProjectRoot = None) -> str:
    root = resolve_root(project_root)
    rel_path = PurePosixPath((root / file_path).resolve().relative_to(root).as_posix())

    found = [str(c) for c in candidate_test_paths(rel_path) if Path(root, c).is_file()]
    if not found:
        return f'No test files found for "{file_path}".'

    header = f'Found {len(found)} test {plural(len(found), "file")} for "{file_path}":'
    return "\n".join([header, *(f"  {f}" for f in found)])


if __name__ == "__main__":
    server.run()
