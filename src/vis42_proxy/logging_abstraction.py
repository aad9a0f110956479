"""Logging setup for the VIS42 proxy.

The proxy speaks MCP over stdout, so nothing but protocol frames may be written
there. All log output goes to stderr (or a file) in a human-readable format,
optionally mirrored as JSON lines. Components that only need a plain
``(str) -> None`` sink get one from :func:`make_log_sink`.
"""

from __future__ import annotations

import inspect
import json
import logging
import sys
from collections.abc import Callable, Mapping
from datetime import UTC, datetime
from pathlib import Path
from typing import cast

from typing_extensions import override

from vis42_proxy.correlation import get_correlation_id

__all__ = [
    "HumanReadableFormatter",
    "JSONFormatter",
    "LogSink",
    "ProxyLogger",
    "get_logger",
    "make_log_sink",
    "safe_log",
]

LogSink = Callable[[str], None]

LOG_PREFIX = "[vis42-proxy]"


class JSONFormatter(logging.Formatter):
    """One JSON object per record."""

    @override
    def format(self, record: logging.LogRecord) -> str:
        log_data: dict[str, object] = {
            "timestamp": datetime.now(UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "module": record.module,
            "line": record.lineno,
            "message": record.getMessage(),
            "correlation_id": get_correlation_id(),
        }

        extra_data = getattr(record, "extra_data", None)
        if isinstance(extra_data, Mapping) and extra_data:
            log_data["context"] = dict(cast("Mapping[str, object]", extra_data))

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_data, default=str)


class HumanReadableFormatter(logging.Formatter):
    """Formatter that prefixes each line with the proxy tag and correlation ID."""

    def __init__(self) -> None:
        super().__init__(
            fmt=f"%(asctime)s.%(msecs)03d %(levelname)s {LOG_PREFIX} [%(module)s:%(lineno)d] "
            "%(correlation_id)s > %(message)s",
            datefmt="%m/%d/%y %H:%M:%S",
        )

    @override
    def format(self, record: logging.LogRecord) -> str:
        correlation_id = get_correlation_id()
        record.correlation_id = f"[{correlation_id[:8]}]" if correlation_id else "[--------]"

        formatted = super().format(record)

        extra_data = getattr(record, "extra_data", None)
        if isinstance(extra_data, Mapping) and extra_data:
            context_map = cast("Mapping[str, object]", extra_data)
            formatted = f"{formatted} | " + " | ".join(f"{k}={v}" for k, v in context_map.items())

        return formatted


class ProxyLogger:
    """Thin wrapper over :class:`logging.Logger` with structured ``extra`` context.

    Handlers are attached once per logger name, so repeated ``get_logger`` calls
    for the same module never duplicate output.
    """

    def __init__(
        self,
        name: str,
        log_format: str = "human",
        json_file: str | Path | None = None,
        human_output: str | None = "stderr",
        debug: bool = False,
    ) -> None:
        """Initialize ProxyLogger.

        Args:
            name: Logger name (typically module name)
            log_format: Output format - "json", "human", or "both"
            json_file: Path for JSON output file (None to disable file output)
            human_output: "stderr", "stdout", or file path for human-readable output
            debug: Start at DEBUG level instead of INFO

        """
        self.name: str = name
        self.logger: logging.Logger = logging.getLogger(name)
        self.log_format: str = log_format
        self.logger.setLevel(logging.DEBUG if debug else logging.INFO)
        self.logger.propagate = False

        if not self.logger.handlers:
            self._configure_handlers(json_file, human_output)

    def _configure_handlers(self, json_file: str | Path | None, human_output: str | None) -> None:
        handler_level = self.logger.level

        if self.log_format in ("json", "both") and json_file:
            try:
                json_path = Path(json_file)
                json_path.parent.mkdir(parents=True, exist_ok=True)
                json_handler = logging.FileHandler(json_path, mode="a")
            except OSError as e:
                print(f"{LOG_PREFIX} Warning: Failed to create JSON log file {json_file}: {e}", file=sys.stderr)
            else:
                json_handler.setFormatter(JSONFormatter())
                json_handler.setLevel(handler_level)
                self.logger.addHandler(json_handler)

        if self.log_format in ("human", "both"):
            human_handler: logging.Handler
            normalized_output = human_output or "stderr"
            if normalized_output == "stderr":
                human_handler = logging.StreamHandler(sys.stderr)
            elif normalized_output == "stdout":
                human_handler = logging.StreamHandler(sys.stdout)
            else:
                try:
                    human_path = Path(normalized_output)
                    human_path.parent.mkdir(parents=True, exist_ok=True)
                    human_handler = logging.FileHandler(human_path, mode="a")
                except OSError as e:
                    print(f"{LOG_PREFIX} Warning: Failed to create log file {human_output}: {e}", file=sys.stderr)
                    human_handler = logging.StreamHandler(sys.stderr)

            human_handler.setFormatter(HumanReadableFormatter())
            human_handler.setLevel(handler_level)
            self.logger.addHandler(human_handler)

    def _log(self, level: int, msg: str, *args: object, extra: Mapping[str, object] | None = None) -> None:
        extra_payload = {"extra_data": dict(extra)} if extra else None
        # stacklevel=3 reports the caller of debug()/info()/... rather than this wrapper
        self.logger.log(level, msg, *args, extra=extra_payload, stacklevel=3)

    def debug(self, msg: str, *args: object, extra: Mapping[str, object] | None = None) -> None:
        self._log(logging.DEBUG, msg, *args, extra=extra)

    def info(self, msg: str, *args: object, extra: Mapping[str, object] | None = None) -> None:
        self._log(logging.INFO, msg, *args, extra=extra)

    def warning(self, msg: str, *args: object, extra: Mapping[str, object] | None = None) -> None:
        self._log(logging.WARNING, msg, *args, extra=extra)

    def error(self, msg: str, *args: object, extra: Mapping[str, object] | None = None) -> None:
        self._log(logging.ERROR, msg, *args, extra=extra)

    def exception(self, msg: str, *args: object, extra: Mapping[str, object] | None = None) -> None:
        """Log at ERROR level with the active exception's traceback."""
        extra_payload = {"extra_data": dict(extra)} if extra else None
        self.logger.exception(msg, *args, extra=extra_payload, stacklevel=2)

    def set_level(self, level: int) -> None:
        """Set the level on the logger and every attached handler."""
        self.logger.setLevel(level)
        for handler in self.logger.handlers:
            handler.setLevel(level)

    @property
    def handlers(self) -> list[logging.Handler]:
        return self.logger.handlers


def get_logger(
    name: str,
    log_format: str | None = None,
    json_file: str | Path | None = None,
    human_output: str | None = None,
) -> ProxyLogger:
    """Get or create a ProxyLogger using the environment configuration as defaults."""
    from vis42_proxy.const import (  # noqa: PLC0415
        VIS42_DEBUG,
        VIS42_LOG_FORMAT,
        VIS42_LOG_HUMAN_OUTPUT,
        VIS42_LOG_JSON_FILE,
    )

    return ProxyLogger(
        name=name,
        log_format=log_format or VIS42_LOG_FORMAT,
        json_file=json_file or VIS42_LOG_JSON_FILE,
        human_output=human_output or VIS42_LOG_HUMAN_OUTPUT,
        debug=VIS42_DEBUG,
    )


def make_log_sink(logger: ProxyLogger, level: int = logging.INFO) -> LogSink:
    """Adapt ``logger`` into a single-argument string sink.

    Each message becomes one log record, and handlers serialize records under
    their own lock, so concurrent callers never interleave partial lines.
    Records carry the module and line of the first caller outside this module,
    so lines delivered through :func:`safe_log` name their real origin.
    """

    def sink(message: str) -> None:
        stacklevel = 2
        caller = inspect.currentframe()
        caller = caller.f_back if caller is not None else None
        while caller is not None and caller.f_code.co_filename == __file__:
            caller = caller.f_back
            stacklevel += 1
        del caller
        logger.logger.log(level, "%s", message, stacklevel=stacklevel)

    return sink


def safe_log(sink: LogSink | None, message: str) -> None:
    """Deliver ``message`` to ``sink`` without letting a broken sink escape.

    State transitions log through this helper, and a failing sink must not
    abort them. If the sink raises, the message and the sink's error go to
    stderr instead.
    """
    if sink is None:
        return
    try:
        sink(message)
    except Exception as e:  # noqa: BLE001
        print(f"{LOG_PREFIX} {message} (log sink failed: {e!r})", file=sys.stderr)
