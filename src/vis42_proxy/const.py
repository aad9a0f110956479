import os

from vis42_proxy import __version__

__all__ = [
    "CLIENT_NAME",
    "DEFAULT_CONNECT_TIMEOUT_MS",
    "DEFAULT_SERVER_URL",
    "DEFAULT_TOOL_CALL_TIMEOUT_MS",
    "SERVER_NAME",
    "VIS42_DEBUG",
    "VIS42_LOG_FORMAT",
    "VIS42_LOG_HUMAN_OUTPUT",
    "VIS42_LOG_JSON_FILE",
    "VIS42_VERSION",
    "YES_ANSWER",
    "env_bool",
    "env_int",
]

YES_ANSWER = ("true", "1", "yes", "y", "t", 1, "on", "o")
VIS42_VERSION: str = __version__
SERVER_NAME: str = "vis42"
CLIENT_NAME: str = "vis42-proxy"
DEFAULT_SERVER_URL: str = "https://vis42.com/api/mcp"
DEFAULT_CONNECT_TIMEOUT_MS: int = 30_000
DEFAULT_TOOL_CALL_TIMEOUT_MS: int = 120_000


def env_int(name: str, default: int) -> int:
    """Read a positive int from the environment, falling back to ``default`` when unset or invalid."""
    raw = os.environ.get(name, "")
    if not raw:
        return default
    try:
        value = int(raw)
    except ValueError:
        return default
    return value if value > 0 else default


def env_bool(name: str, default: str = "false") -> bool:
    return os.environ.get(name, default).casefold() in YES_ANSWER


VIS42_DEBUG: bool = env_bool("VIS42_DEBUG")

# Logging Configuration
# stdout carries the MCP stdio protocol, so human-readable logs default to stderr
VIS42_LOG_FORMAT: str = os.environ.get("VIS42_LOG_FORMAT", "human")  # "json", "human", or "both"
_json_file = os.environ.get("VIS42_LOG_JSON_FILE")
VIS42_LOG_JSON_FILE: str | None = _json_file if _json_file else None
VIS42_LOG_HUMAN_OUTPUT: str = os.environ.get("VIS42_LOG_HUMAN_OUTPUT", "stderr")  # "stdout", "stderr", or file path
