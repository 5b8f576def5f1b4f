"""Runtime configuration for the collections client.

Every field reads its default through :data:`utils.settings.settings`
(``REDCOLL_*`` env > ``redcoll.yaml`` > built-in default) at
**instantiation** time, so ``monkeypatch.setenv`` in tests works.  Override
individual fields when constructing from code.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from core.codec import Codec, codec_by_name
from utils.settings import settings


@dataclass(slots=True)
class ClientConfig:
    """Connection, executor and eviction settings.

    Attributes:
        redis_url:           Server URL (``redis://``, ``rediss://``, ``unix://``).
        max_connections:     Connection pool size.
        socket_timeout:      Per-command socket timeout in seconds; ``None``
                             waits forever (needed by ``take_*``).
        connect_timeout:     TCP connect timeout in seconds.
        max_workers:         Executor threads delivering replies.
        codec:               Default codec name for new handles.
        eviction_enabled:    Purge expired set-cache members in the background.
        eviction_min_delay:  Shortest delay between purges of one set (s).
        eviction_max_delay:  Longest delay between purges of one set (s).
        eviction_batch_size: Members purged per run.
        scan_count:          ``ZSCAN`` page-size hint for iteration.
    """

    redis_url: str = field(default_factory=lambda: settings.get_str("redis.url", "redis://127.0.0.1:6379/0"))
    max_connections: int = field(default_factory=lambda: settings.get_int("redis.max_connections", 64))
    socket_timeout: float | None = field(default_factory=lambda: settings.get_float("redis.socket_timeout", None))
    connect_timeout: float | None = field(default_factory=lambda: settings.get_float("redis.connect_timeout", 10.0))
    max_workers: int = field(default_factory=lambda: settings.get_int("executor.max_workers", 16))
    codec: str = field(default_factory=lambda: settings.get_str("codec", "json"))
    eviction_enabled: bool = field(default_factory=lambda: settings.get_bool("eviction.enabled", True))
    eviction_min_delay: float = field(default_factory=lambda: settings.get_float("eviction.min_delay", 1.0))
    eviction_max_delay: float = field(default_factory=lambda: settings.get_float("eviction.max_delay", 7200.0))
    eviction_batch_size: int = field(default_factory=lambda: settings.get_int("eviction.batch_size", 100))
    scan_count: int = field(default_factory=lambda: settings.get_int("iteration.scan_count", 10))

    def default_codec(self) -> Codec:
        """Instantiate the configured default codec."""
        return codec_by_name(self.codec)
