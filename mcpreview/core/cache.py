"""
mcpreview Review Cache - skips the LLM when the same diff was already reviewed.

Entries live in .mcp-review-cache/<sha256>.json under the project root.
The key covers the diff text, the canonical config and the model, so any
change to one of them is a miss.
"""

import hashlib
import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Optional, Union

from pydantic import ValidationError

from mcpreview.host.schema import ReviewResult
from mcpreview.validation.config import ReviewConfig

logger = logging.getLogger(__name__)

CACHE_DIR = ".mcp-review-cache"
CACHE_VERSION = "1"


def get_cache_key(diff: str, config: ReviewConfig, model: str) -> str:
    digest = hashlib.sha256()
    digest.update(diff.encode("utf-8"))
    digest.update(config.cache_fingerprint().encode("utf-8"))
    digest.update(model.encode("utf-8"))
    return digest.hexdigest()


class ReviewCache:
    """
    Filesystem cache of finished reviews.

    A config with ``no_cache`` set turns both lookups and stores into no-ops.
    Entries written by a different cache version, or that fail to parse,
    count as misses.
    """

    def __init__(self, project_root: Optional[Union[str, Path]] = None):
        self.project_root = Path(project_root) if project_root else Path.cwd()
        self.cache_dir = self.project_root / CACHE_DIR

    def _entry_path(self, key: str) -> Path:
        return self.cache_dir / f"{key}.json"

    def get(self, diff: str, config: ReviewConfig, model: str) -> Optional[ReviewResult]:
        if config.no_cache:
            return None

        cache_file = self._entry_path(get_cache_key(diff, config, model))
        if not cache_file.exists():
            return None

        try:
            with open(cache_file, encoding="utf-8") as f:
                data = json.load(f)
            if data.get("version") != CACHE_VERSION:
                return None
            result = ReviewResult.model_validate(data["result"])
        except (OSError, json.JSONDecodeError, KeyError, AttributeError, ValidationError) as exc:
            logger.debug("Ignoring unreadable cache entry %s: %s", cache_file.name, exc)
            return None

        logger.debug("Cache hit: %s", cache_file.name)
        return result

    def set(self, diff: str, config: ReviewConfig, model: str, result: ReviewResult) -> None:
        if config.no_cache:
            return

        self.cache_dir.mkdir(parents=True, exist_ok=True)
        data = {
            "version": CACHE_VERSION,
            "cached_at": datetime.now(timezone.utc).isoformat(),
            "result": result.model_dump(mode="json", by_alias=True),
        }
        with open(self._entry_path(get_cache_key(diff, config, model)), "w", encoding="utf-8") as f:
            json.dump(data, f, indent=2)

    def clear(self) -> int:
        """
        Remove every cached review.

        Returns:
            Number of entries removed.
        """
        if not self.cache_dir.exists():
            return 0

        cleared = 0
        for cache_file in self.cache_dir.glob("*.json"):
            cache_file.unlink()
            cleared += 1
        return cleared

    def stats(self) -> Dict[str, Any]:
        entries = list(self.cache_dir.glob("*.json")) if self.cache_dir.exists() else []
        return {
            "entries": len(entries),
            "total_size_kb": sum(f.stat().st_size for f in entries) / 1024,
        }
