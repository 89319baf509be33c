"""Exception hierarchy for the connection manager.

Only ``ConfigurationError`` ever escapes the core (at connect time or when
options are validated). Transport, parse and handler failures are logged and
contained where they happen.
"""

from __future__ import annotations


class SocketFlowError(Exception):
    """Base exception for all socketflow errors."""


class ConfigurationError(SocketFlowError):
    """Options cannot produce a connection (no URL, invalid bounds, ...).

    Not retried automatically: the caller must fix the configuration and
    call ``start()`` again.

    Attributes:
        reason: Specific failure reason
    """

    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(f"socketflow configuration error: {reason}")


class TransportError(SocketFlowError):
    """The transport factory failed to produce a socket.

    Handled like an abnormal close (code 1006): routed through the retry
    predicate and the backoff policy.

    Attributes:
        reason: Specific failure reason
        cause: Underlying exception raised by the factory
    """

    def __init__(self, reason: str, cause: BaseException | None = None):
        self.reason = reason
        self.cause = cause
        super().__init__(f"Transport error: {reason}")
