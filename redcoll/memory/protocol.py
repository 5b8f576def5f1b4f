"""Shared protocol for command executors.

Defines the minimal interface that collection handles need from the layer
that talks to Redis.  Implementations:

* :class:`memory.command_executor.CommandExecutor` (production)
* ``RecordingExecutor`` in the offline handle tests

This lives in its own module so that type-checking imports do not pull in
redis-py.
"""

from __future__ import annotations

from concurrent.futures import Future
from typing import TYPE_CHECKING, Any, Protocol, Sequence

if TYPE_CHECKING:
    from memory.command_executor import LuaScript


class SupportsCommands(Protocol):
    """Structural subtype for an asynchronous Redis command submitter."""

    def execute(self, command: str, *args: Any) -> Future:
        """Submit a single command; the future resolves to its reply."""
        ...

    def eval(self, script: LuaScript, keys: Sequence[Any], args: Sequence[Any]) -> Future:
        """Run *script* atomically on the server."""
        ...

    def execute_blocking(self, command: str, *args: Any) -> Future:
        """Repeat a timed blocking pop until it returns an element."""
        ...
