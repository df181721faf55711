"""Application configuration defaults."""

from __future__ import annotations

import os
from dataclasses import dataclass
from datetime import timedelta
from pathlib import Path

HOUR_MS = 60 * 60 * 1000


def _get_default_cache_path() -> Path:
    """Get the default cache database path."""
    # When running from source, prefer local data/ if it exists
    local_db = Path("data/kepler.db")
    if local_db.exists():
        return local_db

    return Path.home() / ".cache" / "kepler" / "cache.db"


@dataclass(slots=True)
class AppConfig:
    api_base: str = "https://api.github.com"
    raw_base: str = "https://raw.githubusercontent.com"
    web_base: str = "https://github.com"
    cache_path: Path | None = None
    github_token: str | None = None
    base_path: str = ""

    batch_size: int = 15
    commit_batch_size: int = 10
    commit_page_size: int = 100
    max_attempts: int = 3
    base_delay: float = 1.0

    tree_ttl_ms: int = HOUR_MS
    collection_ttl_ms: int = 6 * HOUR_MS
    activity_ttl_ms: int = HOUR_MS

    page_size: int = 48
    excerpt_chars: int = 280
    stale_after_days: int = 365

    @property
    def stale_threshold(self) -> timedelta:
        return timedelta(days=self.stale_after_days)

    def __post_init__(self) -> None:
        if self.cache_path is None:
            self.cache_path = _get_default_cache_path()

    @classmethod
    def from_env(cls, **overrides) -> "AppConfig":
        """Build a config, picking up the token and base path from the environment."""
        values = {
            "github_token": os.environ.get("GITHUB_TOKEN") or None,
            "base_path": os.environ.get("KEPLER_BASE_PATH", "").rstrip("/"),
        }
        values.update({key: value for key, value in overrides.items() if value is not None})
        return cls(**values)

    def resolve_cache_path(self, base_dir: Path | None = None) -> Path:
        if self.cache_path is None:
            self.cache_path = _get_default_cache_path()
        if Path(self.cache_path).is_absolute() or base_dir is None:
            return Path(self.cache_path)
        return base_dir / self.cache_path
