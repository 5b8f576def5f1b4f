"""Background purge of expired set-cache members.

Reads never depend on this scheduler (every query filters on the server
clock); it only reclaims memory held by members nobody touches anymore.

Each registered set gets its own timer.  After a run the delay adapts:

* nothing removed        -> delay doubles (capped at ``max_delay``)
* a full batch removed   -> delay resets to ``min_delay``
* some removed           -> delay halves (floored at ``min_delay``)
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from typing import Any

from core.reactive import Single
from memory.command_executor import LuaScript
from memory.protocol import SupportsCommands

_log = logging.getLogger("redcoll.memory.eviction")

# ARGV[1] batch size.  Returns the number of purged members.
_EVICT = LuaScript("set_cache.evict", """
local t = redis.call('time')
local now = tonumber(t[1]) * 1000 + math.floor(tonumber(t[2]) / 1000)
local expired = redis.call('zrangebyscore', KEYS[1], '-inf', string.format('%.0f', now), 'limit', 0, ARGV[1])
for _, member in ipairs(expired) do
    redis.call('zrem', KEYS[1], member)
end
return #expired
""")


@dataclass(slots=True)
class _EvictionTask:
    name: str
    delay: float
    timer: threading.Timer | None = field(default=None)


class EvictionScheduler:
    """Per-name adaptive timers that purge expired members."""

    def __init__(
        self,
        executor: SupportsCommands,
        *,
        min_delay: float = 1.0,
        max_delay: float = 7200.0,
        batch_size: int = 100,
    ) -> None:
        self._executor = executor
        self.min_delay = max(0.001, float(min_delay))
        self.max_delay = max(self.min_delay, float(max_delay))
        self.batch_size = max(1, int(batch_size))
        self._tasks: dict[str, _EvictionTask] = {}
        self._lock = threading.Lock()
        self._closed = False

    def schedule(self, name: str) -> None:
        """Start purging *name* (no-op if already scheduled)."""
        with self._lock:
            if self._closed or name in self._tasks:
                return
            task = _EvictionTask(name=name, delay=self.min_delay)
            self._tasks[name] = task
            self._arm(task)
        _log.debug("eviction scheduled for %s", name)

    def unschedule(self, name: str) -> None:
        with self._lock:
            task = self._tasks.pop(name, None)
        if task is not None and task.timer is not None:
            task.timer.cancel()

    def scheduled(self) -> list[str]:
        with self._lock:
            return sorted(self._tasks)

    def evict(self, name: str) -> Single[int]:
        """Purge up to ``batch_size`` expired members of *name* once."""
        return Single(lambda: self._executor.eval(_EVICT, [name], [str(self.batch_size)])).map(int)

    def shutdown(self) -> None:
        with self._lock:
            self._closed = True
            tasks = list(self._tasks.values())
            self._tasks.clear()
        for task in tasks:
            if task.timer is not None:
                task.timer.cancel()

    # ── Internals ───────────────────────────────────────────────────

    def _arm(self, task: _EvictionTask) -> None:
        timer = threading.Timer(task.delay, self._run, args=(task,))
        timer.daemon = True
        task.timer = timer
        timer.start()

    def _run(self, task: _EvictionTask) -> None:
        with self._lock:
            if self._closed or self._tasks.get(task.name) is not task:
                return
        self.evict(task.name).subscribe(
            on_success=lambda removed: self._reschedule(task, removed),
            on_error=lambda exc: self._on_failure(task, exc),
        )

    def _on_failure(self, task: _EvictionTask, exc: BaseException) -> None:
        _log.warning("eviction of %s failed (%s), retrying in %.1fs", task.name, exc, task.delay)
        self._reschedule(task, None)

    def _reschedule(self, task: _EvictionTask, removed: Any) -> None:
        if removed is not None:
            task.delay = self._next_delay(task.delay, int(removed))
            if removed:
                _log.debug("evicted %d expired members from %s", removed, task.name)
        with self._lock:
            if self._closed or self._tasks.get(task.name) is not task:
                return
            self._arm(task)

    def _next_delay(self, delay: float, removed: int) -> float:
        if removed == 0:
            return min(delay * 2, self.max_delay)
        if removed >= self.batch_size:
            return self.min_delay
        return max(delay / 2, self.min_delay)
