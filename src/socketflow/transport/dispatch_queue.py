"""Bounded inbound queue with concurrency-limited handler dispatch.

Load is shed, not pushed back: the transport cannot be paused, so a payload
arriving while the queue is full is handed to the dropped-message hook and
discarded. Dispatch order is FIFO; handlers then run concurrently up to the
limit and may complete in any order.
"""

from __future__ import annotations

import asyncio
import inspect
from collections import deque
from collections.abc import Awaitable, Callable
from typing import Any, Generic, TypeVar

from socketflow.correlation import correlation_context
from socketflow.logging_abstraction import LogSink
from socketflow.metrics import registry
from socketflow.transport.types import Failed, Parsed, ParseOutcome, Skipped

T = TypeVar("T")

MessageHandler = Callable[[T, str], Awaitable[None] | None]
ParseFunction = Callable[[str], T | None]


def classify(parse: ParseFunction[T], raw: str) -> ParseOutcome[T]:
    """Run ``parse`` and tag the result.

    ``None`` means "no value" and becomes ``Skipped``; that includes a JSON
    ``null`` payload under the default ``json.loads`` parser.
    """
    try:
        value = parse(raw)
    except Exception as e:
        return Failed(e)
    if value is None:
        return Skipped()
    return Parsed(value)


class BackpressureQueue(Generic[T]):
    """FIFO buffer of raw payloads plus a dispatcher bounded by ``concurrency``."""

    def __init__(
        self,
        handler: MessageHandler[T],
        parse: ParseFunction[T],
        log: LogSink,
        concurrency: int = 4,
        max_queue_size: int = 10_000,
        on_dropped: Callable[[str], None] | None = None,
        source: str = "",
    ) -> None:
        self.handler = handler
        self.parse = parse
        self.concurrency = concurrency
        self.max_queue_size = max_queue_size
        self.on_dropped = on_dropped
        self._log = log
        self._source = source
        self._pending: deque[str] = deque()
        self._in_flight = 0
        self._tasks: set[asyncio.Task[None]] = set()
        self._drain_scheduled = False

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    @property
    def in_flight(self) -> int:
        return self._in_flight

    def enqueue(self, raw: str) -> bool:
        """Append ``raw`` and schedule a drain; returns False if it was dropped.

        The drain runs on the next loop iteration, so a burst delivered in one
        read is measured against ``max_queue_size`` before any of it is
        dispatched.
        """
        if len(self._pending) >= self.max_queue_size:
            registry.record_message(self._source, "dropped")
            if self.on_dropped is not None:
                try:
                    self.on_dropped(raw)
                except Exception as e:
                    self._log("error", f"onDroppedMessage threw: {e}", error_type=type(e).__name__)
            return False
        self._pending.append(raw)
        self._schedule_drain()
        return True

    def _schedule_drain(self) -> None:
        if self._drain_scheduled:
            return
        self._drain_scheduled = True
        asyncio.get_running_loop().call_soon(self._scheduled_drain)

    def _scheduled_drain(self) -> None:
        self._drain_scheduled = False
        self.drain()

    def drain(self) -> None:
        while self._in_flight < self.concurrency and self._pending:
            raw = self._pending.popleft()
            match classify(self.parse, raw):
                case Failed(error=error):
                    registry.record_message(self._source, "parse_error")
                    self._log("warn", f"parse error: {error}", error_type=type(error).__name__)
                case Skipped():
                    registry.record_message(self._source, "skipped")
                case Parsed(value=value):
                    self._dispatch(value, raw)
        self._record_gauges()

    def _dispatch(self, value: T, raw: str) -> None:
        self._in_flight += 1
        registry.record_message(self._source, "dispatched")
        task = asyncio.create_task(self._run_handler(value, raw))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _run_handler(self, value: T, raw: str) -> None:
        try:
            with correlation_context():
                result: Any = self.handler(value, raw)
                if inspect.isawaitable(result):
                    await result
        except asyncio.CancelledError:
            raise
        except Exception as e:
            registry.record_message(self._source, "handler_error")
            self._log("error", f"onMessage threw: {e}", error_type=type(e).__name__)
        finally:
            self._in_flight -= 1
            self.drain()

    def clear(self) -> None:
        """Discard pending payloads; in-flight handlers keep running."""
        self._pending.clear()
        self._record_gauges()

    async def idle(self) -> None:
        """Wait until no handler is running and nothing is pending."""
        while self._tasks:
            _ = await asyncio.gather(*list(self._tasks), return_exceptions=True)

    def _record_gauges(self) -> None:
        registry.record_queue_depth(self._source, len(self._pending))
        registry.record_in_flight(self._source, self._in_flight)

    def __repr__(self) -> str:
        return (
            f"BackpressureQueue(pending={len(self._pending)}/{self.max_queue_size}, "
            f"in_flight={self._in_flight}/{self.concurrency})"
        )
