"""Thread-pool bridge between redis-py and the reactive layer.

redis-py's client is blocking, so every command is handed to a
``ThreadPoolExecutor`` and the caller gets a ``Future`` of the reply.  Lua
scripts are registered once per client (``EVALSHA`` with automatic
``SCRIPT LOAD`` on ``NOSCRIPT``).

Errors raised by redis-py (connection, timeout, ``ResponseError``) are
left untouched on the future.

Indefinite waits (``BLPOP key 0``) are never sent.  :meth:`CommandExecutor.execute_blocking`
repeats the command with a short server-side timeout instead, so a waiting
worker notices cancellation and shutdown between rounds.
"""

from __future__ import annotations

import logging
import threading
import weakref
from concurrent.futures import Future, InvalidStateError, ThreadPoolExecutor
from dataclasses import dataclass
from typing import Any, Sequence

from redis import Redis
from redis.commands.core import Script

_log = logging.getLogger("redcoll.memory.executor")

_live_executors: weakref.WeakSet[CommandExecutor] = weakref.WeakSet()


def _close_all() -> None:
    for executor in list(_live_executors):
        executor._closing.set()


# Runs before the interpreter joins pool workers, same hook as concurrent.futures.
threading._register_atexit(_close_all)  # type: ignore[attr-defined]


@dataclass(frozen=True, slots=True)
class LuaScript:
    """Named Lua source executed atomically by the server.

    Attributes:
        name:   Label used in logs.
        source: Lua body.
    """

    name: str
    source: str


class CommandExecutor:
    """Submits commands and scripts to a shared worker pool."""

    def __init__(self, client: Redis, max_workers: int = 16, wait_slice: int = 1) -> None:
        self._client = client
        self._wait_slice = str(max(1, int(wait_slice)))
        self._closing = threading.Event()
        self._pool = ThreadPoolExecutor(
            max_workers=max(1, int(max_workers)),
            thread_name_prefix="redcoll",
        )
        self._scripts: dict[str, Script] = {}
        self._scripts_lock = threading.Lock()
        _live_executors.add(self)

    @property
    def client(self) -> Redis:
        return self._client

    def execute(self, command: str, *args: Any) -> Future:
        _log.debug("submit %s %r", command, args[:1])
        return self._pool.submit(self._client.execute_command, command, *args)

    def eval(self, script: LuaScript, keys: Sequence[Any], args: Sequence[Any]) -> Future:
        registered = self._registered(script)
        _log.debug("submit script %s keys=%r argc=%d", script.name, list(keys), len(args))
        return self._pool.submit(registered, keys=list(keys), args=list(args))

    def execute_blocking(self, command: str, *args: Any) -> Future:
        """Wait without limit for a non-empty reply of a blocking pop.

        *command* is sent as ``command *args <slice>`` until it answers with
        something other than nil.  Cancelling the returned future stops the
        loop after the current round; an element popped by that round is
        dropped.  Shutdown fails the future with ``RuntimeError``.
        """
        result: Future = Future()

        def _wait() -> None:
            while not result.cancelled():
                if self._closing.is_set():
                    _settle(result.set_exception, RuntimeError("command executor is shut down"))
                    return
                try:
                    reply = self._client.execute_command(command, *args, self._wait_slice)
                except Exception as exc:
                    _settle(result.set_exception, exc)
                    return
                if reply is not None:
                    _settle(result.set_result, reply)
                    return

        _log.debug("submit blocking %s %r", command, args[:1])
        worker = self._pool.submit(_wait)
        worker.add_done_callback(
            lambda done: _settle(result.set_exception, RuntimeError("command executor is shut down"))
            if done.cancelled()
            else None
        )
        return result

    def shutdown(self, wait: bool = True) -> None:
        """Stop accepting work and release blocked waits; queued commands are cancelled."""
        self._closing.set()
        self._pool.shutdown(wait=wait, cancel_futures=True)

    def _registered(self, script: LuaScript) -> Script:
        with self._scripts_lock:
            registered = self._scripts.get(script.name)
            if registered is None:
                registered = self._client.register_script(script.source)
                self._scripts[script.name] = registered
            return registered


def _settle(setter: Any, outcome: Any) -> None:
    try:
        setter(outcome)
    except InvalidStateError:
        pass  # cancelled by the subscriber
