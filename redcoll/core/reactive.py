"""Cold streams over ``concurrent.futures.Future`` replies.

:class:`Single` wraps an operation that yields at most one value.  Nothing is
sent to the server until :meth:`Single.subscribe` (or :meth:`Single.block`)
is called, and every subscription repeats the operation.

:class:`Stream` is the multi-value counterpart used for cursor iteration:
it pulls pages through a ``page(cursor) -> Single[(next_cursor, items)]``
function until the cursor comes back as ``0``.

Callbacks run on whichever thread completes the underlying future (usually
an executor worker), or synchronously inside ``subscribe`` when the future
is already settled.
"""

from __future__ import annotations

import logging
import threading
from concurrent.futures import CancelledError, Future, InvalidStateError
from typing import Any, Callable, Generic, Iterator, TypeVar

_log = logging.getLogger("redcoll.core.reactive")

T = TypeVar("T")
R = TypeVar("R")

_NOTHING = object()


def _log_unhandled(exc: BaseException) -> None:
    _log.error("Unhandled stream error: %s", exc, exc_info=exc)


def _resolve(future: Future, value: Any) -> None:
    if future.done():
        return
    try:
        future.set_result(value)
    except InvalidStateError:
        pass  # cancelled concurrently


def _reject(future: Future, exc: BaseException) -> None:
    if future.done():
        return
    try:
        future.set_exception(exc)
    except InvalidStateError:
        pass  # cancelled concurrently


class Subscription:
    """Handle returned by ``subscribe``; :meth:`cancel` stops delivery."""

    __slots__ = ("_lock", "_upstream", "_cancelled", "_terminated")

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._upstream: Any = None
        self._cancelled = False
        self._terminated = False

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    @property
    def terminated(self) -> bool:
        return self._terminated

    def cancel(self) -> None:
        """Drop the pending reply.  No-op once a terminal signal was delivered."""
        with self._lock:
            if self._terminated or self._cancelled:
                return
            self._cancelled = True
            upstream = self._upstream
        if upstream is not None:
            upstream.cancel()

    def _attach(self, upstream: Any) -> None:
        with self._lock:
            if not self._cancelled:
                self._upstream = upstream
                return
        upstream.cancel()

    def _terminate(self) -> bool:
        """Claim the right to deliver the terminal signal (exactly once)."""
        with self._lock:
            if self._terminated or self._cancelled:
                return False
            self._terminated = True
            return True


class Single(Generic[T]):
    """Lazy producer of at most one value, then completion or an error."""

    __slots__ = ("_source",)

    def __init__(self, source: Callable[[], Future]) -> None:
        self._source = source

    @classmethod
    def just(cls, value: T) -> Single[T]:
        def source() -> Future:
            future: Future = Future()
            future.set_result(value)
            return future

        return cls(source)

    @classmethod
    def empty(cls) -> Single[Any]:
        return cls.just(None)

    @classmethod
    def error(cls, exc: BaseException) -> Single[Any]:
        def source() -> Future:
            future: Future = Future()
            future.set_exception(exc)
            return future

        return cls(source)

    def subscribe(
        self,
        on_success: Callable[[T], Any] | None = None,
        on_error: Callable[[BaseException], Any] | None = None,
        on_complete: Callable[[], Any] | None = None,
    ) -> Subscription:
        """Start the operation.

        A value is delivered to *on_success* and then *on_complete*; an
        empty reply only triggers *on_complete*.  Errors go to *on_error*
        alone (logged when no handler is given).  A future cancelled by
        someone other than this subscription is reported as
        ``CancelledError``.
        """
        subscription = Subscription()
        error_handler = on_error or _log_unhandled
        try:
            future = self._source()
        except Exception as exc:
            if subscription._terminate():
                error_handler(exc)
            return subscription

        def _deliver(done: Future) -> None:
            if not subscription._terminate():
                return
            if done.cancelled():
                error_handler(CancelledError())
                return
            exc = done.exception()
            if exc is not None:
                error_handler(exc)
                return
            value = done.result()
            if value is not None and on_success is not None:
                on_success(value)
            if on_complete is not None:
                on_complete()

        subscription._attach(future)
        future.add_done_callback(_deliver)
        return subscription

    def map(self, fn: Callable[[T], R]) -> Single[R]:
        """Transform the value; an exception raised by *fn* becomes the error."""

        def source() -> Future:
            upstream = self._source()
            downstream: Future = Future()

            def _relay(done: Future) -> None:
                if done.cancelled():
                    downstream.cancel()
                    return
                exc = done.exception()
                if exc is not None:
                    _reject(downstream, exc)
                    return
                value = done.result()
                if value is None:
                    _resolve(downstream, None)
                    return
                try:
                    mapped = fn(value)
                except Exception as map_exc:
                    _reject(downstream, map_exc)
                    return
                _resolve(downstream, mapped)

            upstream.add_done_callback(_relay)
            downstream.add_done_callback(lambda f: upstream.cancel() if f.cancelled() else None)
            return downstream

        return Single(source)

    def block(self, timeout: float | None = None) -> T | None:
        """Subscribe and wait; return the value (``None`` if empty) or raise."""
        finished = threading.Event()
        outcome: dict[str, Any] = {}

        def _on_success(value: T) -> None:
            outcome["value"] = value

        def _on_error(exc: BaseException) -> None:
            outcome["error"] = exc
            finished.set()

        subscription = self.subscribe(_on_success, _on_error, finished.set)
        if not finished.wait(timeout):
            subscription.cancel()
            raise TimeoutError(f"no reply within {timeout}s")
        if "error" in outcome:
            raise outcome["error"]
        return outcome.get("value")

    def __repr__(self) -> str:
        return f"<Single source={getattr(self._source, '__qualname__', self._source)!r}>"


class Stream(Generic[T]):
    """Lazy multi-value producer paged through a server-side cursor.

    *page* receives the current cursor and returns a ``Single`` of
    ``(next_cursor, items)``.  Iteration starts at *start* and ends after the
    page whose next cursor is ``0``.
    """

    __slots__ = ("_page", "_start")

    def __init__(self, page: Callable[[Any], Single[tuple[Any, list[T]]]], start: Any = 0) -> None:
        self._page = page
        self._start = start

    def subscribe(
        self,
        on_next: Callable[[T], Any] | None = None,
        on_error: Callable[[BaseException], Any] | None = None,
        on_complete: Callable[[], Any] | None = None,
    ) -> Subscription:
        subscription = Subscription()
        error_handler = on_error or _log_unhandled
        lock = threading.Lock()
        state: dict[str, Any] = {"next": _NOTHING, "pumping": False}

        def _on_page(page: tuple[Any, list[T]]) -> None:
            cursor, items = page
            for item in items:
                if subscription.cancelled:
                    return
                if on_next is not None:
                    on_next(item)
            if cursor == 0:
                if subscription._terminate() and on_complete is not None:
                    on_complete()
                return
            _request(cursor)

        def _on_error(exc: BaseException) -> None:
            if subscription._terminate():
                error_handler(exc)

        # Pages that complete synchronously would otherwise recurse once per page.
        def _request(cursor: Any) -> None:
            with lock:
                state["next"] = cursor
                if state["pumping"]:
                    return
                state["pumping"] = True
            while True:
                with lock:
                    cursor = state["next"]
                    state["next"] = _NOTHING
                    if cursor is _NOTHING or subscription.cancelled:
                        state["pumping"] = False
                        return
                inner = self._page(cursor).subscribe(_on_page, _on_error)
                subscription._attach(inner)

        _request(self._start)
        return subscription

    def collect(self) -> Single[list[T]]:
        """All items as one list (a ``Single`` that always emits)."""

        def source() -> Future:
            result: Future = Future()
            items: list[T] = []
            subscription = self.subscribe(
                items.append,
                lambda exc: _reject(result, exc),
                lambda: _resolve(result, items),
            )
            result.add_done_callback(lambda f: subscription.cancel() if f.cancelled() else None)
            return result

        return Single(source)

    def __iter__(self) -> Iterator[T]:
        """Blocking iteration, one page request at a time."""
        cursor = self._start
        while True:
            page = self._page(cursor).block()
            if page is None:
                return
            cursor, items = page
            yield from items
            if cursor == 0:
                return


def sync(stream: Any, timeout: float | None = None) -> Any:
    """Subscribe to *stream*, wait for it, and return its result.

    For a :class:`Stream` the result is the list of all emitted items.  A
    collection handle (anything with an ``iterator()`` method returning a
    ``Stream``) is synced through that stream.
    """
    if not isinstance(stream, (Single, Stream)) and hasattr(stream, "iterator"):
        stream = stream.iterator()
    if isinstance(stream, Stream):
        return stream.collect().block(timeout)
    return stream.block(timeout)
