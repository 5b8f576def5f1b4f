"""Shared fixtures.

Tests run against ``fakeredis`` (with Lua support) unless
``REDCOLL_TEST_REDIS_URL`` points at a real server, in which case that
database is flushed before each test.
"""

from __future__ import annotations

import os
import sys
from typing import Iterator

import pytest

ROOT = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)

import fakeredis  # noqa: E402
import redis  # noqa: E402

from memory.client import RedisCollections  # noqa: E402
from utils.config import ClientConfig  # noqa: E402


@pytest.fixture()
def redis_client() -> Iterator[redis.Redis]:
    url = os.getenv("REDCOLL_TEST_REDIS_URL", "").strip()
    if url:
        client = redis.Redis.from_url(url, decode_responses=False)
    else:
        client = fakeredis.FakeRedis(server=fakeredis.FakeServer(), decode_responses=False)
    client.flushdb()
    try:
        yield client
    finally:
        client.flushdb()
        client.close()


@pytest.fixture()
def rc(redis_client: redis.Redis) -> Iterator[RedisCollections]:
    """Client with background eviction off so tests see raw server state."""
    client = RedisCollections(
        ClientConfig(redis_url="redis://unused", eviction_enabled=False, max_workers=8),
        redis_client=redis_client,
    )
    try:
        yield client
    finally:
        client.shutdown()
