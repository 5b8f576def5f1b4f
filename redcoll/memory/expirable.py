"""Common base for named, Redis-backed collection handles.

A handle is a lightweight reference: name + codec + executor.  It keeps no
state of its own, so two handles with the same name and codec are
interchangeable and can be shared freely between threads.
"""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import Any, Callable, Sequence

from core.codec import DEFAULT_CODEC, Codec, CodecEncodeError
from core.reactive import Single
from core.time_units import TimeUnit, duration_millis, epoch_millis
from memory.command_executor import LuaScript
from memory.protocol import SupportsCommands


class ExpirableObject:
    """Named key with whole-key TTL management."""

    def __init__(self, executor: SupportsCommands, name: str, codec: Codec | None = None) -> None:
        if not isinstance(name, str) or not name:
            raise ValueError("collection name must be a non-empty string")
        self._executor = executor
        self._name = name
        self._codec = codec if codec is not None else DEFAULT_CODEC

    @property
    def name(self) -> str:
        return self._name

    @property
    def codec(self) -> Codec:
        return self._codec

    # ── Whole-key lifecycle ─────────────────────────────────────────

    def expire(self, ttl: float | timedelta, unit: TimeUnit = TimeUnit.SECONDS) -> Single[bool]:
        """Schedule deletion of the whole key after *ttl*."""
        return self._command(lambda: ("PEXPIRE", self._name, duration_millis(ttl, unit))).map(bool)

    def expire_at(self, instant: datetime | int | float) -> Single[bool]:
        """Schedule deletion of the whole key at *instant* (datetime or epoch ms)."""
        return self._command(lambda: ("PEXPIREAT", self._name, epoch_millis(instant))).map(bool)

    def clear_expire(self) -> Single[bool]:
        """Cancel a scheduled whole-key expiration.  ``True`` if one was set."""
        return self._command(lambda: ("PERSIST", self._name)).map(bool)

    def remain_time_to_live(self) -> Single[int]:
        """Milliseconds left; ``-1`` without TTL, ``-2`` if the key is missing."""
        return self._command(lambda: ("PTTL", self._name)).map(int)

    def delete(self) -> Single[bool]:
        return self._command(lambda: ("DEL", self._name)).map(bool)

    def is_exists(self) -> Single[bool]:
        return self._command(lambda: ("EXISTS", self._name)).map(bool)

    # ── Helpers for subclasses ──────────────────────────────────────

    def _command(self, build: Callable[[], tuple[Any, ...]]) -> Single[Any]:
        """Single running the command returned by *build* at subscription time."""
        return Single(lambda: self._executor.execute(*build()))

    def _script(self, script: LuaScript, build_args: Callable[[], Sequence[Any]]) -> Single[Any]:
        return Single(lambda: self._executor.eval(script, [self._name], build_args()))

    def _encode(self, value: Any) -> bytes:
        # None marks an empty reply.
        if value is None:
            raise CodecEncodeError(f"{type(self).__name__} cannot store None")
        return self._codec.encode(value)

    def _decode(self, data: bytes) -> Any:
        return self._codec.decode(data)

    def _encode_all(self, values: Any) -> list[bytes]:
        return [self._encode(value) for value in values]

    # ── Value semantics ─────────────────────────────────────────────

    def __eq__(self, other: object) -> bool:
        if type(self) is not type(other):
            return NotImplemented
        return (
            self._name == other._name  # type: ignore[attr-defined]
            and self._codec == other._codec  # type: ignore[attr-defined]
            and self._executor is other._executor  # type: ignore[attr-defined]
        )

    def __hash__(self) -> int:
        return hash((type(self), self._name, self._codec))

    def __repr__(self) -> str:
        return f"<{type(self).__name__} name={self._name!r} codec={self._codec!r}>"
