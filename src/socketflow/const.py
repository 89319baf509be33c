import os

__all__ = [
    "DEFAULT_CONCURRENCY",
    "DEFAULT_MAX_QUEUE_SIZE",
    "DEFAULT_PING_INTERVAL_MS",
    "DEFAULT_PONG_TIMEOUT_MS",
    "DEFAULT_RECONNECT_BASE_MS",
    "DEFAULT_RECONNECT_MAX_MS",
    "MIN_RECONNECT_DELAY_MS",
    "PING_PAYLOAD",
    "PONG_GRACE_MS",
    "SOCKETFLOW_DEBUG",
    "SOCKETFLOW_LOG_FORMAT",
    "SOCKETFLOW_LOG_HUMAN_OUTPUT",
    "SOCKETFLOW_LOG_JSON_FILE",
    "SOCKETFLOW_METRICS_PORT",
    "YES_ANSWER",
]

YES_ANSWER = ("true", "1", "yes", "y", "t", 1, "on", "o")


def _env_int(name: str, default: int) -> int:
    raw = os.environ.get(name)
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        return default


SOCKETFLOW_DEBUG = os.environ.get("SOCKETFLOW_DEBUG", "0").casefold() in YES_ANSWER
SOCKETFLOW_LOG_FORMAT: str = os.environ.get("SOCKETFLOW_LOG_FORMAT", "human")
_json_file = os.environ.get("SOCKETFLOW_LOG_JSON_FILE")
SOCKETFLOW_LOG_JSON_FILE: str | None = _json_file if _json_file else None
SOCKETFLOW_LOG_HUMAN_OUTPUT: str = os.environ.get("SOCKETFLOW_LOG_HUMAN_OUTPUT", "stderr")
SOCKETFLOW_METRICS_PORT: int = _env_int("SOCKETFLOW_METRICS_PORT", 9400)

DEFAULT_PING_INTERVAL_MS: int = _env_int("SOCKETFLOW_PING_INTERVAL_MS", 20_000)
DEFAULT_PONG_TIMEOUT_MS: int = _env_int("SOCKETFLOW_PONG_TIMEOUT_MS", 10_000)
DEFAULT_RECONNECT_BASE_MS: int = _env_int("SOCKETFLOW_RECONNECT_BASE_MS", 1_000)
DEFAULT_RECONNECT_MAX_MS: int = _env_int("SOCKETFLOW_RECONNECT_MAX_MS", 30_000)
DEFAULT_CONCURRENCY: int = _env_int("SOCKETFLOW_CONCURRENCY", 4)
DEFAULT_MAX_QUEUE_SIZE: int = _env_int("SOCKETFLOW_MAX_QUEUE_SIZE", 10_000)

# hardcoded: not tunable per instance
MIN_RECONNECT_DELAY_MS: int = 250
PONG_GRACE_MS: int = 100
PING_PAYLOAD: str = '{"type": "ping"}'
