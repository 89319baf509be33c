"""Per-message correlation IDs.

The dispatch queue runs every handler inside ``correlation_context()``, so each
line a handler logs through a FlowLogger carries the ID of the payload being
processed. asyncio tasks copy the context when created, which keeps concurrent
handlers apart.
"""

from __future__ import annotations

import uuid
from collections.abc import Iterator
from contextlib import contextmanager
from contextvars import ContextVar, Token

__all__ = [
    "correlation_context",
    "generate_correlation_id",
    "get_correlation_id",
    "reset_correlation_id",
    "set_correlation_id",
]

_current: ContextVar[str | None] = ContextVar("socketflow_correlation_id", default=None)


def generate_correlation_id() -> str:
    return uuid.uuid4().hex


def get_correlation_id() -> str | None:
    return _current.get()


def set_correlation_id(correlation_id: str | None) -> Token[str | None]:
    """Set the ID for the current context; pass the token to ``reset_correlation_id`` to undo."""
    return _current.set(correlation_id)


def reset_correlation_id(token: Token[str | None]) -> None:
    _current.reset(token)


@contextmanager
def correlation_context(correlation_id: str | None = None) -> Iterator[str]:
    """Scope ``correlation_id`` (a fresh one when omitted) to the ``with`` block."""
    scoped = correlation_id if correlation_id is not None else generate_correlation_id()
    token = set_correlation_id(scoped)
    try:
        yield scoped
    finally:
        reset_correlation_id(token)
