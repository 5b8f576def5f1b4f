"""Blocking double-ended queue backed by a Redis list.

Head operations map to ``L*`` commands and tail operations to ``R*``.
Timed polls use ``BLPOP`` / ``BRPOP``; when the timeout elapses the stream
completes empty instead of failing.

Untimed takes are sent as repeated short ``BLPOP`` / ``BRPOP`` rounds so
they end when the client shuts down.

Every blocking call holds one executor worker and one pooled connection
until it returns, so ``max_workers`` / ``max_connections`` bound the number
of concurrent waiters.
"""

from __future__ import annotations

from datetime import timedelta
from typing import Any

from core.reactive import Single
from core.time_units import TimeUnit, duration_millis
from memory.expirable import ExpirableObject


def _timeout_arg(millis: int) -> str:
    """Redis blocking timeouts are seconds; fractions need Redis >= 6."""
    if millis % 1000 == 0:
        return str(millis // 1000)
    return f"{millis / 1000:.3f}"


class BlockingDeque(ExpirableObject):
    """Deque handle; all methods return cold :class:`~core.reactive.Single` streams."""

    # ── Insertion ───────────────────────────────────────────────────

    def add_first(self, value: Any) -> Single[int]:
        """Push at the head; the result is the new length."""
        return self._command(lambda: ("LPUSH", self._name, self._encode(value))).map(int)

    def add_last(self, value: Any) -> Single[int]:
        return self._command(lambda: ("RPUSH", self._name, self._encode(value))).map(int)

    def put_first(self, value: Any) -> Single[None]:
        """Push at the head and complete without a value."""
        return self.add_first(value).map(lambda _: None)

    def put_last(self, value: Any) -> Single[None]:
        return self.add_last(value).map(lambda _: None)

    # ── Removal ─────────────────────────────────────────────────────

    def take_first(self) -> Single[Any]:
        """Wait as long as needed for a head element.

        Fails with ``RuntimeError`` if the client shuts down first.
        """
        return self._take("BLPOP")

    def take_last(self) -> Single[Any]:
        return self._take("BRPOP")

    def poll_first(self, timeout: float | timedelta | None = None, unit: TimeUnit = TimeUnit.SECONDS) -> Single[Any]:
        """Head element; waits up to *timeout* when given, else returns at once."""
        return self._poll("LPOP", "BLPOP", timeout, unit)

    def poll_last(self, timeout: float | timedelta | None = None, unit: TimeUnit = TimeUnit.SECONDS) -> Single[Any]:
        return self._poll("RPOP", "BRPOP", timeout, unit)

    def poll_first_from_any(
        self,
        timeout: float | timedelta,
        *queue_names: str,
        unit: TimeUnit = TimeUnit.SECONDS,
    ) -> Single[Any]:
        """First head element available in this deque **or** any of *queue_names*.

        Completes empty if nothing arrives within *timeout*.
        """
        return self._poll_any("BLPOP", timeout, unit, queue_names)

    def poll_last_from_any(
        self,
        timeout: float | timedelta,
        *queue_names: str,
        unit: TimeUnit = TimeUnit.SECONDS,
    ) -> Single[Any]:
        return self._poll_any("BRPOP", timeout, unit, queue_names)

    # ── Inspection ──────────────────────────────────────────────────

    def peek_first(self) -> Single[Any]:
        return self._command(lambda: ("LINDEX", self._name, 0)).map(self._decode)

    def peek_last(self) -> Single[Any]:
        return self._command(lambda: ("LINDEX", self._name, -1)).map(self._decode)

    def size(self) -> Single[int]:
        return self._command(lambda: ("LLEN", self._name)).map(int)

    def read_all(self) -> Single[list[Any]]:
        return self._command(lambda: ("LRANGE", self._name, 0, -1)).map(
            lambda items: [self._decode(item) for item in items]
        )

    # ── Internals ───────────────────────────────────────────────────

    def _poll(self, pop: str, blocking_pop: str, timeout: Any, unit: TimeUnit) -> Single[Any]:
        def build() -> tuple[Any, ...]:
            millis = 0 if timeout is None else duration_millis(timeout, unit)
            # BLPOP with 0 would wait forever
            if millis == 0:
                return (pop, self._name)
            return (blocking_pop, self._name, _timeout_arg(millis))

        return self._command(build).map(self._decode_pop)

    def _poll_any(self, blocking_pop: str, timeout: Any, unit: TimeUnit, queue_names: tuple[str, ...]) -> Single[Any]:
        def build() -> tuple[Any, ...]:
            # a zero timeout still has to answer promptly rather than block forever
            millis = max(1, duration_millis(timeout, unit))
            return (blocking_pop, self._name, *queue_names, _timeout_arg(millis))

        return self._command(build).map(self._decode_pop)

    def _take(self, blocking_pop: str) -> Single[Any]:
        return Single(lambda: self._executor.execute_blocking(blocking_pop, self._name)).map(self._decode_pop)

    def _decode_pop(self, reply: Any) -> Any:
        """``LPOP`` replies with the value, ``BLPOP`` with ``(key, value)``."""
        if isinstance(reply, (list, tuple)):
            if not reply:
                return None
            return self._decode(reply[1])
        return self._decode(reply)
