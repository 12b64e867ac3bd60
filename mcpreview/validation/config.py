"""
mcpreview Configuration - loading and validation of .mcp-review.yml.

The project config lives next to the code under review. CLI flags are
merged on top with ``merge_config``.
"""

import fnmatch
import json
import logging
from pathlib import Path, PurePosixPath
from typing import Any, Dict, List, Literal, Optional, Union

import yaml
from pydantic import BaseModel, Field, ValidationError

from mcpreview.errors import ConfigError
from mcpreview.host.registry import DEFAULT_CACHEABLE_TOOLS

logger = logging.getLogger(__name__)

CONFIG_FILES = [".mcp-review.yml", ".mcp-review.yaml", ".mcp-review.json"]

DEFAULT_MODEL = "claude-sonnet-4-20250514"


class ReviewConfig(BaseModel):
    """Complete review configuration schema."""

    model: str = DEFAULT_MODEL
    focus: List[str] = Field(default_factory=list)
    ignore: List[str] = Field(default_factory=list)
    conventions: List[str] = Field(default_factory=list)
    max_files: int = 20
    context_lines: int = 5
    no_cache: bool = False

    # Provider selection
    provider: Optional[Literal["anthropic", "openai"]] = None
    base_url: Optional[str] = None
    api_key_env: Optional[str] = None

    # Conversation limits
    max_tool_rounds: int = Field(default=2, ge=0)
    max_diff_tokens: int = Field(default=100_000, gt=0)
    max_tokens: int = Field(default=4096, gt=0)
    cacheable_tools: List[str] = Field(
        default_factory=lambda: [name for name, on in DEFAULT_CACHEABLE_TOOLS.items() if on]
    )

    def cache_fingerprint(self) -> str:
        """Canonical JSON used when keying cached reviews."""
        return json.dumps(self.model_dump(mode="json"), sort_keys=True)


def _parse_file(path: Path) -> Dict[str, Any]:
    text = path.read_text(encoding="utf-8")
    data = json.loads(text) if path.suffix == ".json" else yaml.safe_load(text)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigError(f"{path.name} must contain a mapping, got {type(data).__name__}")
    return data


def load_config(cwd: Optional[Union[str, Path]] = None) -> ReviewConfig:
    """
    Load the first config file found in ``cwd``.

    A file that fails to parse or validate is skipped with a warning.
    Defaults are returned when no usable file exists.
    """
    root = Path(cwd) if cwd else Path.cwd()
    for filename in CONFIG_FILES:
        path = root / filename
        if not path.exists():
            continue
        try:
            return ReviewConfig(**_parse_file(path))
        except (OSError, ValueError, yaml.YAMLError, ValidationError, ConfigError) as exc:
            logger.warning("Failed to parse %s: %s", filename, exc)

    return ReviewConfig()


def merge_config(base: ReviewConfig, overrides: Dict[str, Any]) -> ReviewConfig:
    """Apply overrides; ``None`` values leave the base untouched."""
    updates = {key: value for key, value in overrides.items() if value is not None}
    try:
        return ReviewConfig(**{**base.model_dump(), **updates})
    except ValidationError as exc:
        raise ConfigError(f"Invalid configuration: {exc}", cause=exc) from exc


def should_ignore_file(path: str, patterns: List[str]) -> bool:
    """Match ``path`` against glob patterns, on the full path and on its basename."""
    posix = PurePosixPath(path.replace("\\", "/"))
    full = str(posix)
    for pattern in patterns:
        if fnmatch.fnmatch(full, pattern) or fnmatch.fnmatch(posix.name, pattern):
            return True
        if pattern.startswith("**/") and fnmatch.fnmatch(full, pattern[3:]):
            return True
    return False
