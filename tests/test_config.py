"""Tests for environment-driven settings."""

from __future__ import annotations

import pydantic
import pytest

from extragrid.config import Settings, get_settings


@pytest.fixture(autouse=True)
def clean_env(monkeypatch: pytest.MonkeyPatch, tmp_path) -> None:
    for name in ("ACCESS_TOKEN", "LOG_LEVEL", "SITE_ID", "HIGHLIGHT_COLOR", "GRAPH_BASE_URL"):
        monkeypatch.delenv(f"EXTRAGRID_{name}", raising=False)
    # Keep a developer's .env out of the way
    monkeypatch.chdir(tmp_path)
    get_settings.cache_clear()


class TestSettings:
    """Tests for Settings defaults and validators."""

    def test_defaults(self) -> None:
        settings = Settings()
        assert settings.access_token == ""
        assert settings.graph_base_url == "https://graph.microsoft.com/v1.0"
        assert settings.log_level == "INFO"
        assert settings.replace_batch_size == 20
        assert settings.max_search_depth == 20
        assert settings.resolution_cache_ttl == 600

    def test_env_prefix(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("EXTRAGRID_ACCESS_TOKEN", "secret")
        monkeypatch.setenv("EXTRAGRID_SITE_ID", "site-1")
        monkeypatch.setenv("EXTRAGRID_LOG_LEVEL", "debug")
        settings = Settings()
        assert settings.access_token == "secret"
        assert settings.site_id == "site-1"
        assert settings.log_level == "DEBUG"

    def test_dotenv_file(self, tmp_path) -> None:
        (tmp_path / ".env").write_text("EXTRAGRID_SITE_ID=from-file\n")
        assert Settings().site_id == "from-file"

    def test_normalizes_values(self) -> None:
        settings = Settings(graph_base_url="https://example.test/v1.0/", highlight_color="#ffcc00")
        assert settings.graph_base_url == "https://example.test/v1.0"
        assert settings.highlight_color == "#FFCC00"

    @pytest.mark.parametrize(
        "overrides",
        [
            {"log_level": "LOUD"},
            {"highlight_color": "yellow"},
            {"replace_batch_size": 0},
            {"replace_batch_size": 21},
            {"max_search_depth": 0},
            {"fuzzy_threshold": 1.5},
            {"search_cache_ttl": 0},
            {"cache_max_entries": 0},
        ],
    )
    def test_rejects_bad_values(self, overrides: dict) -> None:
        with pytest.raises(pydantic.ValidationError):
            Settings(**overrides)


class TestGetSettings:
    """Tests for the cached settings accessor."""

    def test_is_cached(self, monkeypatch: pytest.MonkeyPatch) -> None:
        first = get_settings()
        monkeypatch.setenv("EXTRAGRID_SITE_ID", "changed")
        assert get_settings() is first

        get_settings.cache_clear()
        assert get_settings().site_id == "changed"
