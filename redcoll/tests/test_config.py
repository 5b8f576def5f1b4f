"""Tests for utils.settings and utils.config — env > yaml > default."""

from __future__ import annotations

import pytest

from core.codec import PickleCodec
from utils.config import ClientConfig
from utils.settings import Settings


@pytest.fixture()
def yaml_settings(tmp_path, monkeypatch) -> Settings:
    path = tmp_path / "redcoll.yaml"
    path.write_text(
        "redis:\n"
        "  url: redis://cache.internal:6380/2\n"
        "  socket_timeout: 2.5\n"
        "eviction:\n"
        "  enabled: false\n"
        "  batch_size: 250\n",
        encoding="utf-8",
    )
    monkeypatch.setenv("REDCOLL_CONFIG_FILE", str(path))
    return Settings()


class TestSettings:
    def test_yaml_values(self, yaml_settings: Settings) -> None:
        assert yaml_settings.get_str("redis.url") == "redis://cache.internal:6380/2"
        assert yaml_settings.get_float("redis.socket_timeout", None) == 2.5
        assert yaml_settings.get_bool("eviction.enabled", True) is False
        assert yaml_settings.get_int("eviction.batch_size", 100) == 250

    def test_env_overrides_yaml(self, yaml_settings: Settings, monkeypatch) -> None:
        monkeypatch.setenv("REDCOLL_EVICTION_BATCH_SIZE", "10")
        monkeypatch.setenv("REDCOLL_EVICTION_ENABLED", "yes")
        assert yaml_settings.get_int("eviction.batch_size", 100) == 10
        assert yaml_settings.get_bool("eviction.enabled", False) is True

    def test_defaults_when_missing(self, yaml_settings: Settings) -> None:
        assert yaml_settings.get_int("executor.max_workers", 16) == 16
        assert yaml_settings.get_str("codec", "json") == "json"

    def test_invalid_values_raise(self, yaml_settings: Settings, monkeypatch) -> None:
        monkeypatch.setenv("REDCOLL_EXECUTOR_MAX_WORKERS", "many")
        with pytest.raises(ValueError):
            yaml_settings.get_int("executor.max_workers", 16)
        monkeypatch.setenv("REDCOLL_EVICTION_ENABLED", "maybe")
        with pytest.raises(ValueError):
            yaml_settings.get_bool("eviction.enabled")

    def test_missing_file_is_empty(self, tmp_path, monkeypatch) -> None:
        monkeypatch.setenv("REDCOLL_CONFIG_FILE", str(tmp_path / "absent.yaml"))
        settings = Settings()
        assert settings.get_str("redis.url", "fallback") == "fallback"

    def test_reload(self, yaml_settings: Settings, tmp_path) -> None:
        assert yaml_settings.get_int("eviction.batch_size") == 250
        (tmp_path / "redcoll.yaml").write_text("eviction:\n  batch_size: 5\n", encoding="utf-8")
        yaml_settings.reload()
        assert yaml_settings.get_int("eviction.batch_size") == 5


class TestClientConfig:
    def test_reads_env_at_instantiation(self, monkeypatch) -> None:
        monkeypatch.setenv("REDCOLL_REDIS_URL", "redis://other:6379/5")
        monkeypatch.setenv("REDCOLL_CODEC", "pickle")
        monkeypatch.setenv("REDCOLL_ITERATION_SCAN_COUNT", "50")
        config = ClientConfig()
        assert config.redis_url == "redis://other:6379/5"
        assert config.scan_count == 50
        assert isinstance(config.default_codec(), PickleCodec)

    def test_explicit_fields_win(self) -> None:
        config = ClientConfig(redis_url="redis://x", max_workers=2, eviction_enabled=False)
        assert config.redis_url == "redis://x"
        assert config.max_workers == 2
        assert config.eviction_enabled is False
