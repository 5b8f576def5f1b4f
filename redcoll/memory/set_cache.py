"""Expiring set backed by a Redis sorted set.

Each member carries its own expiration instant:

* member — codec-encoded value bytes (identity of the element)
* score  — expiration in epoch milliseconds; :data:`ETERNAL_SCORE` for
  members added without a TTL

``ZSCORE`` gives the member -> expiration mapping and score ranges give
the expiration-ordered index, so one key holds the whole structure and
every compound operation runs as a single Lua script.

A member is *live* while its score is strictly greater than the server
clock (``TIME``).  Reads filter on that rule, so expired members stay
invisible even before :class:`memory.eviction.EvictionScheduler` (or
nobody) physically removes them.

Usage::

    cache = collections.get_set_cache("sessions")
    sync(cache.add("abc", 30, TimeUnit.SECONDS))   # True
    sync(cache.contains("abc"))                   # True
    for member in cache:                           # live members only
        ...
"""

from __future__ import annotations

from datetime import timedelta
from typing import TYPE_CHECKING, Any, Iterable, Iterator

from core.codec import Codec
from core.reactive import Single, Stream
from core.time_units import TimeUnit, duration_millis
from memory.command_executor import LuaScript
from memory.expirable import ExpirableObject
from memory.protocol import SupportsCommands

if TYPE_CHECKING:
    from memory.eviction import EvictionScheduler

# Far beyond any reachable clock value; stored as a string so Lua never
# reformats it.
ETERNAL_SCORE = "92233720368547758"


# ── Lua scripts ─────────────────────────────────────────────────────────

# Server clock in ms.  `now_s` is the string form used in score ranges.
_NOW = """
local t = redis.call('time')
local now = tonumber(t[1]) * 1000 + math.floor(tonumber(t[2]) / 1000)
local now_s = string.format('%.0f', now)
"""

# ARGV[1] ttl ms (-1 = eternal), ARGV[2] eternal score, ARGV[3..] members.
# Live members are left untouched.  Returns how many members became live.
_ADD = LuaScript("set_cache.add", _NOW + """
local ttl = tonumber(ARGV[1])
local expire_at = ARGV[2]
if ttl >= 0 then
    expire_at = string.format('%.0f', now + ttl)
end
local added = 0
for i = 3, #ARGV do
    local score = redis.call('zscore', KEYS[1], ARGV[i])
    if score == false or tonumber(score) <= now then
        redis.call('zadd', KEYS[1], expire_at, ARGV[i])
        added = added + 1
    end
end
return added
""")

_CONTAINS = LuaScript("set_cache.contains", _NOW + """
for i = 1, #ARGV do
    local score = redis.call('zscore', KEYS[1], ARGV[i])
    if score == false or tonumber(score) <= now then
        return 0
    end
end
return 1
""")

# Expired leftovers are purged but not counted.
_REMOVE = LuaScript("set_cache.remove", _NOW + """
local removed = 0
for i = 1, #ARGV do
    local score = redis.call('zscore', KEYS[1], ARGV[i])
    if score ~= false then
        redis.call('zrem', KEYS[1], ARGV[i])
        if tonumber(score) > now then
            removed = removed + 1
        end
    end
end
return removed
""")

_RETAIN = LuaScript("set_cache.retain", _NOW + """
local keep = {}
for i = 1, #ARGV do
    keep[ARGV[i]] = true
end
local live = redis.call('zrangebyscore', KEYS[1], '(' .. now_s, '+inf')
local removed = 0
for _, member in ipairs(live) do
    if not keep[member] then
        redis.call('zrem', KEYS[1], member)
        removed = removed + 1
    end
end
return removed
""")

_SIZE = LuaScript("set_cache.size", _NOW + """
return redis.call('zcount', KEYS[1], '(' .. now_s, '+inf')
""")

_READ_ALL = LuaScript("set_cache.read_all", _NOW + """
return redis.call('zrangebyscore', KEYS[1], '(' .. now_s, '+inf')
""")

# ARGV[1] cursor, ARGV[2] count.  Returns {next_cursor, live_members}.
_SCAN = LuaScript("set_cache.scan", _NOW + """
local res = redis.call('zscan', KEYS[1], ARGV[1], 'count', ARGV[2])
local entries = res[2]
local live = {}
for i = 1, #entries, 2 do
    if tonumber(entries[i + 1]) > now then
        table.insert(live, entries[i])
    end
end
return {res[1], live}
""")


class SetCache(ExpirableObject):
    """Set whose members expire independently.

    Every operation returns a cold :class:`~core.reactive.Single`; nothing
    reaches the server until it is subscribed (``sync(...)``,
    ``.block()`` or ``.subscribe(...)``).
    """

    def __init__(
        self,
        executor: SupportsCommands,
        name: str,
        codec: Codec | None = None,
        *,
        scan_count: int = 10,
        eviction: EvictionScheduler | None = None,
    ) -> None:
        super().__init__(executor, name, codec)
        self._scan_count = max(1, int(scan_count))
        if eviction is not None:
            eviction.schedule(name)

    # ── Mutations ───────────────────────────────────────────────────

    def add(
        self,
        value: Any,
        ttl: float | timedelta | None = None,
        unit: TimeUnit = TimeUnit.SECONDS,
    ) -> Single[Any]:
        """Add *value*, optionally expiring after *ttl*.

        Without *ttl* the result is ``1`` if the member was not live before
        and ``0`` otherwise.  With *ttl* the result is ``True``/``False``
        for the same condition.  A live member keeps its current expiration
        in both cases.  A *ttl* below one millisecond is rejected with ``ValueError``.
        """
        if ttl is None:
            return self._script(_ADD, lambda: ["-1", ETERNAL_SCORE, self._encode(value)]).map(int)

        def build() -> list[Any]:
            millis = duration_millis(ttl, unit)
            if millis <= 0:
                raise ValueError(f"ttl must be at least one millisecond, got {ttl!r}")
            return [str(millis), ETERNAL_SCORE, self._encode(value)]

        return self._script(_ADD, build).map(bool)

    def add_all(self, values: Iterable[Any]) -> Single[bool]:
        """Add every value without TTL.  ``True`` if at least one became live."""
        values = list(values)
        if not values:
            return Single.just(False)
        return self._script(_ADD, lambda: ["-1", ETERNAL_SCORE, *self._encode_all(values)]).map(bool)

    def remove(self, value: Any) -> Single[bool]:
        """Remove *value*.  ``True`` only if it was live."""
        return self._script(_REMOVE, lambda: [self._encode(value)]).map(bool)

    def remove_all(self, values: Iterable[Any]) -> Single[bool]:
        values = list(values)
        if not values:
            return Single.just(False)
        return self._script(_REMOVE, lambda: self._encode_all(values)).map(bool)

    def retain_all(self, values: Iterable[Any]) -> Single[bool]:
        """Keep only live members equal (by encoded bytes) to one of *values*.

        An empty *values* removes everything.  ``True`` if anything was
        removed.
        """
        values = list(values)
        return self._script(_RETAIN, lambda: self._encode_all(values)).map(bool)

    # ── Queries ─────────────────────────────────────────────────────

    def contains(self, value: Any) -> Single[bool]:
        return self._script(_CONTAINS, lambda: [self._encode(value)]).map(bool)

    def contains_all(self, values: Iterable[Any]) -> Single[bool]:
        """``True`` if every value is a live member (vacuously for no values)."""
        values = list(values)
        if not values:
            return Single.just(True)
        return self._script(_CONTAINS, lambda: self._encode_all(values)).map(bool)

    def size(self) -> Single[int]:
        """Number of live members."""
        return self._script(_SIZE, list).map(int)

    def is_empty(self) -> Single[bool]:
        return self.size().map(lambda count: count == 0)

    def read_all(self) -> Single[list[Any]]:
        """All live members, read atomically."""
        return self._script(_READ_ALL, list).map(self._decode_members)

    def iterator(self, count: int | None = None) -> Stream[Any]:
        """Page through live members with ``ZSCAN``.

        *count* is the per-page hint passed to the server.  Order is
        unspecified, and concurrent writers may cause a member to be seen
        twice or not at all.
        """
        page_size = str(max(1, int(count or self._scan_count)))

        def page(cursor: Any) -> Single[tuple[int, list[Any]]]:
            return self._script(_SCAN, lambda: [str(cursor), page_size]).map(self._decode_page)

        return Stream(page)

    def __iter__(self) -> Iterator[Any]:
        return iter(self.iterator())

    # ── Reply decoding ──────────────────────────────────────────────

    def _decode_members(self, members: list[bytes]) -> list[Any]:
        return [self._decode(member) for member in members]

    def _decode_page(self, reply: list[Any]) -> tuple[int, list[Any]]:
        cursor, members = reply
        return int(cursor), self._decode_members(members or [])
