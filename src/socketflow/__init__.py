"""Resilient persistent-connection manager for message sockets."""

__version__ = "0.1.0"

from socketflow.options import SocketFlowOptions
from socketflow.transport.connection_manager import ConnectionManager, ConnectionState
from socketflow.transport.exceptions import ConfigurationError, SocketFlowError, TransportError
from socketflow.transport.types import CloseEvent

__all__ = [
    "CloseEvent",
    "ConfigurationError",
    "ConnectionManager",
    "ConnectionState",
    "SocketFlowError",
    "SocketFlowOptions",
    "TransportError",
    "__version__",
]
