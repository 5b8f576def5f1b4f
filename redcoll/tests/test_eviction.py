"""Tests for memory.eviction — background purge of expired members."""

from __future__ import annotations

import time

from core.codec import StringCodec
from core.reactive import sync
from core.time_units import TimeUnit
from memory.eviction import EvictionScheduler


class TestEvictionScheduler:
    def test_evict_once_removes_only_expired(self, rc, redis_client) -> None:
        cache = rc.get_set_cache("evict", StringCodec())
        sync(cache.add("stay"))
        sync(cache.add("soon", 50, TimeUnit.MILLISECONDS))
        sync(cache.add("later", 10, TimeUnit.SECONDS))
        time.sleep(0.1)

        scheduler = EvictionScheduler(rc.executor, batch_size=10)
        assert sync(scheduler.evict("evict")) == 1
        assert redis_client.zcard("evict") == 2
        assert sync(scheduler.evict("evict")) == 0

    def test_batch_limit(self, rc, redis_client) -> None:
        cache = rc.get_set_cache("evict", StringCodec())
        for i in range(5):
            sync(cache.add(str(i), 10, TimeUnit.MILLISECONDS))
        time.sleep(0.05)

        scheduler = EvictionScheduler(rc.executor, batch_size=3)
        assert sync(scheduler.evict("evict")) == 3
        assert redis_client.zcard("evict") == 2

    def test_background_purge(self, rc, redis_client) -> None:
        scheduler = EvictionScheduler(rc.executor, min_delay=0.05, max_delay=0.2)
        try:
            cache = rc.get_set_cache("evict", StringCodec())
            sync(cache.add("a", 100, TimeUnit.MILLISECONDS))
            scheduler.schedule("evict")
            scheduler.schedule("evict")
            assert scheduler.scheduled() == ["evict"]

            deadline = time.monotonic() + 3
            while redis_client.exists("evict") and time.monotonic() < deadline:
                time.sleep(0.05)
            assert redis_client.exists("evict") == 0
        finally:
            scheduler.shutdown()
        assert scheduler.scheduled() == []

    def test_adaptive_delay(self, rc) -> None:
        scheduler = EvictionScheduler(rc.executor, min_delay=1, max_delay=8, batch_size=100)
        assert scheduler._next_delay(1, 0) == 2
        assert scheduler._next_delay(8, 0) == 8
        assert scheduler._next_delay(8, 100) == 1
        assert scheduler._next_delay(8, 10) == 4
        assert scheduler._next_delay(1, 10) == 1

    def test_client_registers_set_caches(self, redis_client) -> None:
        from memory.client import RedisCollections
        from utils.config import ClientConfig

        client = RedisCollections(
            ClientConfig(eviction_enabled=True, eviction_min_delay=60),
            redis_client=redis_client,
        )
        try:
            client.get_set_cache("a")
            client.get_set_cache("b")
            client.get_set_cache("a")
            assert client.eviction.scheduled() == ["a", "b"]
        finally:
            client.shutdown()
        assert client.eviction.scheduled() == []

    def test_timer_firing_after_shutdown_sends_nothing(self, rc) -> None:
        sent: list[str] = []

        class CountingExecutor:
            def eval(self, script, keys, args):
                sent.append(script.name)
                return rc.executor.eval(script, keys, args)

        scheduler = EvictionScheduler(CountingExecutor(), min_delay=60)
        scheduler.schedule("evict")
        task = scheduler._tasks["evict"]
        scheduler._run(task)
        assert len(sent) == 1

        scheduler.shutdown()
        scheduler._run(task)
        assert len(sent) == 1
