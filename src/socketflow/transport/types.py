"""Core dataclasses shared by the connection manager components."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Generic, TypeVar

T = TypeVar("T")

# Close code used when no peer close frame was received
ABNORMAL_CLOSURE = 1006


@dataclass(frozen=True)
class CloseEvent:
    """Normalised close notification.

    Attributes:
        code: WebSocket close code (0 when the transport reported none)
        reason: Close reason text (empty string when absent)
    """

    code: int = 0
    reason: str = ""


@dataclass(frozen=True)
class Parsed(Generic[T]):
    """Parse produced a value that should be dispatched."""

    value: T


@dataclass(frozen=True)
class Skipped:
    """Parse returned no value (control frames etc.); discard silently."""


@dataclass(frozen=True)
class Failed:
    """Parse raised; discard and log at warning level."""

    error: Exception


ParseOutcome = Parsed[T] | Skipped | Failed


class TimerKind(Enum):
    """Named timer slots owned by the connection manager."""

    PROBE = "probe"
    DEADLINE = "deadline"
    RECONNECT = "reconnect"


class AdapterStyle(Enum):
    """How a raw transport delivers notifications."""

    REGISTRATION = "registration"  # add_event_listener(kind, callback)
    EMITTER = "emitter"  # on(kind, callback)
