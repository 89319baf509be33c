"""Named single-occupant timer slots on the running event loop."""

from __future__ import annotations

import asyncio
from collections.abc import Callable

from socketflow.transport.types import TimerKind


class TimerSlots:
    """One ``asyncio.TimerHandle`` per ``TimerKind``.

    ``arm()`` always cancels the current occupant of the slot before
    scheduling the new callback, so two timers of the same kind can never be
    live at once. A slot clears itself when its callback runs.
    """

    def __init__(self) -> None:
        self._handles: dict[TimerKind, asyncio.TimerHandle] = {}

    def arm(self, kind: TimerKind, delay_ms: float, callback: Callable[[], None]) -> None:
        self.cancel(kind)
        loop = asyncio.get_running_loop()
        handle: asyncio.TimerHandle

        def fire() -> None:
            if self._handles.get(kind) is handle:
                del self._handles[kind]
            callback()

        handle = loop.call_later(max(delay_ms, 0) / 1000.0, fire)
        self._handles[kind] = handle

    def cancel(self, kind: TimerKind) -> None:
        handle = self._handles.pop(kind, None)
        if handle is not None:
            handle.cancel()

    def cancel_all(self) -> None:
        for kind in list(self._handles):
            self.cancel(kind)

    def is_armed(self, kind: TimerKind) -> bool:
        return kind in self._handles

    def __repr__(self) -> str:
        armed = ", ".join(k.value for k in self._handles) or "none"
        return f"TimerSlots(armed={armed})"
