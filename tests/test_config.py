"""Tests for application configuration."""

from __future__ import annotations

from datetime import timedelta
from pathlib import Path

import pytest

from kepler.config import HOUR_MS, AppConfig


class TestAppConfig:
    """Test AppConfig dataclass."""

    def test_default_config(self) -> None:
        """Should create config with default values."""
        config = AppConfig(cache_path=Path("cache.db"))

        assert config.api_base == "https://api.github.com"
        assert config.raw_base == "https://raw.githubusercontent.com"
        assert config.batch_size == 15
        assert config.max_attempts == 3
        assert config.page_size == 48
        assert config.tree_ttl_ms == HOUR_MS
        assert config.collection_ttl_ms == 6 * HOUR_MS
        assert config.activity_ttl_ms == HOUR_MS

    def test_stale_threshold_follows_days(self) -> None:
        config = AppConfig(cache_path=Path("cache.db"), stale_after_days=30)

        assert config.stale_threshold == timedelta(days=30)
        assert AppConfig(cache_path=Path("cache.db")).stale_threshold == timedelta(days=365)

    def test_default_cache_path_is_filled_in(self) -> None:
        """Should pick a cache location when none is given."""
        config = AppConfig()

        assert config.cache_path is not None
        assert Path(config.cache_path).suffix == ".db"

    def test_resolve_cache_path_absolute(self) -> None:
        """Should return absolute path as-is."""
        config = AppConfig(cache_path=Path("/absolute/cache.db"))

        assert config.resolve_cache_path(Path("/base")) == Path("/absolute/cache.db")

    def test_resolve_cache_path_relative_no_base(self) -> None:
        """Should return relative path when no base_dir provided."""
        config = AppConfig(cache_path=Path("relative/cache.db"))

        assert config.resolve_cache_path(base_dir=None) == Path("relative/cache.db")

    def test_resolve_cache_path_relative_with_base(self) -> None:
        """Should resolve relative path against base_dir."""
        config = AppConfig(cache_path=Path("relative/cache.db"))

        resolved = config.resolve_cache_path(base_dir=Path("/base/directory"))

        assert resolved == Path("/base/directory/relative/cache.db")


class TestFromEnv:
    """Tests for environment-driven configuration."""

    def test_reads_token_and_base_path(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("GITHUB_TOKEN", "ghp_secret")
        monkeypatch.setenv("KEPLER_BASE_PATH", "/kepler/")

        config = AppConfig.from_env(cache_path=Path("x.db"))

        assert config.github_token == "ghp_secret"
        assert config.base_path == "/kepler"

    def test_missing_environment(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.delenv("GITHUB_TOKEN", raising=False)
        monkeypatch.delenv("KEPLER_BASE_PATH", raising=False)

        config = AppConfig.from_env(cache_path=Path("x.db"))

        assert config.github_token is None
        assert config.base_path == ""

    def test_none_overrides_are_ignored(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """CLI options left unset should not clobber defaults."""
        monkeypatch.delenv("GITHUB_TOKEN", raising=False)

        config = AppConfig.from_env(cache_path=None, batch_size=5)

        assert config.cache_path is not None
        assert config.batch_size == 5
