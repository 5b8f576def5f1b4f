"""Settings — centralised loader for ``redcoll.yaml``.

Reads an optional YAML file and exposes its values through typed getters.
Environment variables ``REDCOLL_*`` **always win** over the YAML file; the
file is the friendly fallback.

Usage::

    from utils.settings import settings

    settings.get_str("redis.url")            # "redis://127.0.0.1:6379/0"
    settings.get_int("executor.max_workers")  # 16

Equivalent environment variable: the YAML key ``redis.url`` becomes
``REDCOLL_REDIS_URL``.

Loading is lazy (on first access) and thread-safe.
"""

from __future__ import annotations

import logging
import os
import threading
from pathlib import Path
from typing import Any

import yaml

_log = logging.getLogger("redcoll.utils.settings")

_TRUE = {"1", "true", "yes", "on"}
_FALSE = {"0", "false", "no", "off"}


def _find_config_path() -> Path:
    """Resolve ``redcoll.yaml``: explicit env path, else walk up from this module."""
    env_path = os.getenv("REDCOLL_CONFIG_FILE", "").strip()
    if env_path:
        return Path(env_path)

    start = Path(__file__).resolve().parent
    for ancestor in [Path.cwd(), start, start.parent, start.parent.parent]:
        candidate = ancestor / "redcoll.yaml"
        if candidate.exists():
            return candidate

    return Path.cwd() / "redcoll.yaml"


class Settings:
    """Dotted-key access with env > yaml > default priority."""

    def __init__(self) -> None:
        self._data: dict[str, Any] = {}
        self._loaded: bool = False
        self._lock = threading.Lock()

    # ── Lazy loading ──────────────────────────────────────────────

    def _ensure_loaded(self) -> None:
        if self._loaded:
            return
        with self._lock:
            if self._loaded:
                return
            self._load()
            self._loaded = True

    def _load(self) -> None:
        config_path = _find_config_path()
        if not config_path.exists():
            self._data = {}
            return
        with open(config_path, "r", encoding="utf-8") as fh:
            raw = yaml.safe_load(fh)
        if raw is not None and not isinstance(raw, dict):
            raise ValueError(f"{config_path}: top level must be a mapping")
        self._data = raw or {}
        _log.debug("loaded settings from %s", config_path)

    def reload(self) -> None:
        """Force a re-read of the file (tests, hot reload)."""
        with self._lock:
            self._loaded = False
            self._load()
            self._loaded = True

    # ── Dotted-key access ─────────────────────────────────────────

    def _resolve(self, dotted_key: str) -> Any:
        """``redis.url`` -> data["redis"]["url"]."""
        self._ensure_loaded()
        node: Any = self._data
        for part in dotted_key.split("."):
            if isinstance(node, dict):
                node = node.get(part)
            else:
                return None
        return node

    @staticmethod
    def _env_key(dotted_key: str) -> str:
        return "REDCOLL_" + dotted_key.upper().replace(".", "_")

    def _raw(self, key: str) -> Any:
        env_val = os.getenv(self._env_key(key), "").strip()
        if env_val:
            return env_val
        return self._resolve(key)

    # ── Typed getters ─────────────────────────────────────────────

    def get_str(self, key: str, default: str = "") -> str:
        value = self._raw(key)
        return default if value is None else str(value)

    def get_int(self, key: str, default: int = 0) -> int:
        value = self._raw(key)
        if value is None:
            return default
        try:
            return int(value)
        except (TypeError, ValueError):
            raise ValueError(f"setting {key!r} must be an integer, got {value!r}") from None

    def get_float(self, key: str, default: float | None = 0.0) -> float | None:
        value = self._raw(key)
        if value is None or (isinstance(value, str) and value.lower() in {"none", "null"}):
            return default
        try:
            return float(value)
        except (TypeError, ValueError):
            raise ValueError(f"setting {key!r} must be a number, got {value!r}") from None

    def get_bool(self, key: str, default: bool = False) -> bool:
        value = self._raw(key)
        if value is None:
            return default
        if isinstance(value, bool):
            return value
        raw = str(value).strip().lower()
        if raw in _TRUE:
            return True
        if raw in _FALSE:
            return False
        raise ValueError(f"setting {key!r} must be a boolean, got {value!r}")

    def __repr__(self) -> str:
        self._ensure_loaded()
        return f"<Settings sections={list(self._data.keys())}>"


settings = Settings()
