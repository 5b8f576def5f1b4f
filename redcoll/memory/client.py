"""Client factory — connection, executor and collection handles.

:class:`RedisCollections` owns the redis-py connection pool, the
:class:`~memory.command_executor.CommandExecutor` that turns blocking
calls into futures, and the :class:`~memory.eviction.EvictionScheduler`.
Handles it returns are cheap references and may be created on demand.

Usage::

    with RedisCollections(ClientConfig(redis_url="redis://localhost:6379/0")) as rc:
        cache = rc.get_set_cache("seen")
        sync(cache.add("x", 5, TimeUnit.SECONDS))
"""

from __future__ import annotations

import logging
from typing import Any

import redis

from core.codec import Codec
from core.reactive import Single
from memory.blocking_deque import BlockingDeque
from memory.command_executor import CommandExecutor
from memory.eviction import EvictionScheduler
from memory.set_cache import SetCache
from utils.config import ClientConfig

_log = logging.getLogger("redcoll.memory.client")


class RedisCollections:
    """Entry point handing out Redis-backed collection handles."""

    def __init__(self, config: ClientConfig | None = None, *, redis_client: redis.Redis | None = None) -> None:
        self.config = config or ClientConfig()
        self._default_codec = self.config.default_codec()
        self._owns_client = redis_client is None
        if redis_client is None:
            redis_client = redis.Redis.from_url(
                self.config.redis_url,
                max_connections=self.config.max_connections,
                socket_timeout=self.config.socket_timeout,
                socket_connect_timeout=self.config.connect_timeout,
                decode_responses=False,
            )
            _log.info("redis client created for %s", self.config.redis_url)
        self._redis = redis_client
        self._executor = CommandExecutor(redis_client, max_workers=self.config.max_workers)
        self._eviction: EvictionScheduler | None = None
        if self.config.eviction_enabled:
            self._eviction = EvictionScheduler(
                self._executor,
                min_delay=self.config.eviction_min_delay,
                max_delay=self.config.eviction_max_delay,
                batch_size=self.config.eviction_batch_size,
            )
        self._closed = False

    @property
    def executor(self) -> CommandExecutor:
        return self._executor

    @property
    def eviction(self) -> EvictionScheduler | None:
        return self._eviction

    # ── Handles ─────────────────────────────────────────────────────

    def get_set_cache(self, name: str, codec: Codec | None = None) -> SetCache:
        return SetCache(
            self._executor,
            name,
            codec or self._default_codec,
            scan_count=self.config.scan_count,
            eviction=self._eviction,
        )

    def get_blocking_deque(self, name: str, codec: Codec | None = None) -> BlockingDeque:
        return BlockingDeque(self._executor, name, codec or self._default_codec)

    # ── Server ──────────────────────────────────────────────────────

    def ping(self) -> Single[bool]:
        return Single(lambda: self._executor.execute("PING")).map(bool)

    # ── Lifecycle ───────────────────────────────────────────────────

    @property
    def closed(self) -> bool:
        return self._closed

    def shutdown(self, wait: bool = True) -> None:
        """Stop eviction timers, then the executor.  Idempotent."""
        if self._closed:
            return
        self._closed = True
        if self._eviction is not None:
            self._eviction.shutdown()
        self._executor.shutdown(wait=wait)
        if self._owns_client:
            self._redis.close()
        _log.info("redis collections client shut down")

    def __enter__(self) -> RedisCollections:
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.shutdown()

    def __repr__(self) -> str:
        return f"<RedisCollections url={self.config.redis_url!r} closed={self._closed}>"
