"""Logging abstraction layer for socketflow.

The connection core never touches a logging handler directly: it reports
through a ``LogSink`` (``sink(level, message, **context)``). The default sink
forwards to a ``FlowLogger``, which writes JSON and/or human-readable lines
with correlation IDs and structured context.
"""

from __future__ import annotations

import json
import logging
import sys
from collections.abc import Mapping
from datetime import UTC, datetime
from pathlib import Path
from typing import Literal, Protocol, cast
from urllib.parse import urlsplit

from typing_extensions import override

from socketflow.correlation import get_correlation_id

__all__ = [
    "FlowLogger",
    "HumanReadableFormatter",
    "JSONFormatter",
    "LogLevel",
    "LogSink",
    "default_log_sink",
    "get_logger",
]

LogLevel = Literal["debug", "info", "warn", "error"]

_SINK_LEVELS: dict[str, int] = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warn": logging.WARNING,
    "error": logging.ERROR,
}

NO_CORRELATION = "[--------]"


class LogSink(Protocol):
    """Severity-tagged sink consumed by the connection core."""

    def __call__(self, level: LogLevel, message: str, /, **context: object) -> None: ...


def _record_context(record: logging.LogRecord) -> dict[str, object]:
    """Structured context attached by FlowLogger (empty when absent)."""
    extra_data = getattr(record, "extra_data", None)
    if isinstance(extra_data, Mapping):
        return dict(cast("Mapping[str, object]", extra_data))
    return {}


class JSONFormatter(logging.Formatter):
    """One JSON object per line, for log shippers."""

    @override
    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, object] = {
            "timestamp": datetime.fromtimestamp(record.created, UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "location": f"{record.module}.{record.funcName}",
            "line": record.lineno,
            "message": record.getMessage(),
            "correlation_id": get_correlation_id(),
        }
        if context := _record_context(record):
            entry["context"] = context
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str)


class HumanReadableFormatter(logging.Formatter):
    """Console lines: ``time LEVEL logger:line [corr] > message | k=v``."""

    def __init__(self) -> None:
        super().__init__(
            fmt="%(asctime)s.%(msecs)03d %(levelname)-7s %(name)s:%(lineno)d %(correlation_tag)s > %(message)s",
            datefmt="%H:%M:%S",
        )

    @override
    def format(self, record: logging.LogRecord) -> str:
        correlation_id = get_correlation_id()
        record.correlation_tag = f"[{correlation_id[:8]}]" if correlation_id else NO_CORRELATION
        line = super().format(record)
        context = _record_context(record)
        if not context:
            return line
        return " | ".join([line, *(f"{key}={value}" for key, value in context.items())])


def _stream_or_file(target: str) -> logging.Handler:
    if target == "stdout":
        return logging.StreamHandler(sys.stdout)
    if target == "stderr":
        return logging.StreamHandler(sys.stderr)
    path = Path(target)
    path.parent.mkdir(parents=True, exist_ok=True)
    return logging.FileHandler(path, mode="a")


class FlowLogger:
    """Wraps a stdlib logger with JSON and/or human-readable handlers.

    ``log_format`` is ``"json"``, ``"human"`` or ``"both"``. JSON output goes
    to ``json_file`` only; human output goes to ``"stdout"``, ``"stderr"`` or
    a file path. Handlers are attached once per logger name.
    """

    def __init__(
        self,
        name: str,
        log_format: str = "human",
        json_file: str | Path | None = None,
        human_output: str | None = "stderr",
        debug: bool = False,
    ) -> None:
        self.name: str = name
        self.log_format: str = log_format
        self.logger: logging.Logger = logging.getLogger(name)
        self.logger.setLevel(logging.DEBUG if debug else logging.INFO)

        if self.logger.handlers:
            return
        if log_format in ("json", "both") and json_file:
            self._attach(str(json_file), JSONFormatter())
        if log_format in ("human", "both"):
            self._attach(human_output or "stderr", HumanReadableFormatter())

    def _attach(self, target: str, formatter: logging.Formatter) -> None:
        try:
            handler = _stream_or_file(target)
        except OSError as e:
            # Unwritable path: human output falls back to stderr, JSON output is skipped.
            print(f"Warning: cannot open log output {target}: {e}", file=sys.stderr)
            if isinstance(formatter, JSONFormatter):
                return
            handler = logging.StreamHandler(sys.stderr)
        handler.setFormatter(formatter)
        handler.setLevel(self.logger.level)
        self.logger.addHandler(handler)

    def log(self, level: LogLevel, msg: str, *args: object, extra: Mapping[str, object] | None = None) -> None:
        """Log at a sink-style level name with optional structured context."""
        payload = {"extra_data": dict(extra)} if extra else None
        self.logger.log(_SINK_LEVELS.get(level, logging.ERROR), msg, *args, extra=payload)

    def debug(self, msg: str, *args: object, extra: Mapping[str, object] | None = None) -> None:
        self.log("debug", msg, *args, extra=extra)

    def info(self, msg: str, *args: object, extra: Mapping[str, object] | None = None) -> None:
        self.log("info", msg, *args, extra=extra)

    def warning(self, msg: str, *args: object, extra: Mapping[str, object] | None = None) -> None:
        self.log("warn", msg, *args, extra=extra)

    def error(self, msg: str, *args: object, extra: Mapping[str, object] | None = None) -> None:
        self.log("error", msg, *args, extra=extra)

    def set_level(self, level: int) -> None:
        self.logger.setLevel(level)

    @property
    def handlers(self) -> list[logging.Handler]:
        return self.logger.handlers


def get_logger(
    name: str,
    log_format: str | None = None,
    json_file: str | Path | None = None,
    human_output: str | None = None,
) -> FlowLogger:
    """Get a FlowLogger configured from the SOCKETFLOW_LOG_* environment."""
    from socketflow.const import (
        SOCKETFLOW_DEBUG,
        SOCKETFLOW_LOG_FORMAT,
        SOCKETFLOW_LOG_HUMAN_OUTPUT,
        SOCKETFLOW_LOG_JSON_FILE,
    )

    return FlowLogger(
        name,
        log_format=log_format or SOCKETFLOW_LOG_FORMAT,
        json_file=json_file or SOCKETFLOW_LOG_JSON_FILE,
        human_output=human_output or SOCKETFLOW_LOG_HUMAN_OUTPUT,
        debug=SOCKETFLOW_DEBUG,
    )


def _host_tag(url: str | None) -> str:
    host = urlsplit(url).netloc if url else ""
    return f"[ws:{host or 'ws'}]"


def default_log_sink(source: str, type_: str, url: str | None = None) -> LogSink:
    """Build the sink used when the caller does not inject one.

    Every line is prefixed with ``[ws:<host>]`` and carries ``source`` and
    ``type`` as structured context.
    """
    flow_logger = get_logger("socketflow.connection")
    tag = _host_tag(url)

    def sink(level: LogLevel, message: str, /, **context: object) -> None:
        flow_logger.log(level, "%s %s", tag, message, extra={"source": source, "type": type_, **context})

    return sink
