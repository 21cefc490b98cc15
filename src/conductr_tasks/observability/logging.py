"""Queue-backed logging setup with text or JSON-lines output.

Child-process output reaches the user through the ``conductr_tasks`` logger
tree, so the console handler is the primary sink. ``structlog`` events are
routed through the same stdlib handlers: their key/value pairs land in the
``fields`` object of JSON lines and as ``key=value`` suffixes in text mode.
"""

from __future__ import annotations

import json
import logging
import logging.handlers
import math
import queue
import sys
from collections.abc import Mapping
from dataclasses import dataclass
from datetime import UTC, datetime
from pathlib import Path
from typing import IO, Any, Final, Literal

import structlog

LogFormat = Literal["text", "json"]

# Attributes every LogRecord carries; anything else arrived through ``extra``.
_RECORD_ATTRIBUTES: Final[frozenset[str]] = frozenset(
    vars(logging.makeLogRecord({}))
) | {"message", "asctime", "taskName"}

_active_handle: LoggingHandle | None = None


@dataclass(frozen=True, slots=True)
class LoggingConfig:
    """Configuration for the console sink and the optional JSON-lines file."""

    level: int | str = "INFO"
    log_format: LogFormat = "text"
    log_file: Path | str | None = None
    logger_name: str = "conductr_tasks"
    stream: IO[str] | None = None
    queue_size: int = 4096

    @classmethod
    def from_mapping(
        cls,
        observability: Mapping[str, object],
        *,
        verbose: bool = False,
        log_format: str | None = None,
    ) -> LoggingConfig:
        """Build from an ``[observability]`` config section plus CLI switches."""

        raw_level = observability.get("log_level", "INFO")
        level = "DEBUG" if verbose else (raw_level if isinstance(raw_level, str) else "INFO")
        raw_format = log_format or observability.get("log_format", "text")
        raw_file = observability.get("log_file")
        return cls(
            level=level,
            log_format="json" if raw_format == "json" else "text",
            log_file=raw_file if isinstance(raw_file, str) else None,
        )


class _TextFormatter(logging.Formatter):
    """Plain console lines; non-INFO records carry their level as a prefix."""

    def format(self, record: logging.LogRecord) -> str:
        parts = [record.getMessage()]
        parts.extend(
            f"{key}={value if isinstance(value, str) else _dumps(value)}"
            for key, value in sorted(_extra_fields(record).items())
        )
        line = " ".join(parts)
        if record.levelno != logging.INFO:
            line = f"[{record.levelname.lower()}] {line}"
        if record.exc_info:
            line = f"{line}\n{self.formatException(record.exc_info)}"
        return line


class _JsonLineFormatter(logging.Formatter):
    """One canonical JSON object per record."""

    def format(self, record: logging.LogRecord) -> str:
        created = datetime.fromtimestamp(record.created, tz=UTC)
        payload: dict[str, Any] = {
            "timestamp": f"{created:%Y-%m-%dT%H:%M:%S}.{created.microsecond // 1000:03d}Z",
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        fields = _extra_fields(record)
        if fields:
            payload["fields"] = fields
        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)
        return _dumps(payload)


class LoggingHandle:
    """An installed logging pipeline; ``shutdown`` drains it and closes the sinks."""

    def __init__(
        self,
        logger: logging.Logger,
        queue_handler: logging.handlers.QueueHandler,
        listener: logging.handlers.QueueListener,
        sinks: tuple[logging.Handler, ...],
    ) -> None:
        self.logger = logger
        self._queue_handler = queue_handler
        self._listener = listener
        self._sinks = sinks
        self._closed = False

    @property
    def is_shutdown(self) -> bool:
        return self._closed

    def shutdown(self) -> None:
        if self._closed:
            return
        self._closed = True
        # stop() processes every queued record before joining the listener thread.
        self._listener.stop()
        self.logger.removeHandler(self._queue_handler)
        for handler in (self._queue_handler, *self._sinks):
            handler.flush()
            handler.close()


def setup_logging(config: LoggingConfig | None = None) -> LoggingHandle:
    """Install the queue-backed pipeline and route ``structlog`` through it."""

    global _active_handle

    settings = config or LoggingConfig()
    shutdown_logging()
    level = _level_number(settings.level)
    if settings.queue_size <= 0:
        raise ValueError("queue_size must be > 0")

    console = logging.StreamHandler(settings.stream or sys.stdout)
    console.setLevel(level)
    formatter = _JsonLineFormatter() if settings.log_format == "json" else _TextFormatter()
    console.setFormatter(formatter)
    sinks: list[logging.Handler] = [console]
    if settings.log_file is not None:
        log_path = Path(settings.log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)
        file_sink = logging.FileHandler(log_path, encoding="utf-8")
        file_sink.setLevel(logging.DEBUG)
        file_sink.setFormatter(_JsonLineFormatter())
        sinks.append(file_sink)

    logger = logging.getLogger(settings.logger_name)
    for stale in list(logger.handlers):
        logger.removeHandler(stale)
        stale.close()
    logger.setLevel(logging.DEBUG if settings.log_file is not None else level)
    logger.propagate = False

    records: queue.Queue[logging.LogRecord] = queue.Queue(maxsize=settings.queue_size)
    queue_handler = logging.handlers.QueueHandler(records)
    listener = logging.handlers.QueueListener(records, *sinks, respect_handler_level=True)
    listener.start()
    logger.addHandler(queue_handler)

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.render_to_log_kwargs,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=False,
    )

    _active_handle = LoggingHandle(logger, queue_handler, listener, tuple(sinks))
    return _active_handle


def shutdown_logging(handle: LoggingHandle | None = None) -> None:
    """Shut down ``handle``, or the most recently installed pipeline."""

    global _active_handle

    target = handle or _active_handle
    if target is None:
        return
    target.shutdown()
    if target is _active_handle:
        _active_handle = None


def get_active_logging_handle() -> LoggingHandle | None:
    return _active_handle


def _level_number(level: int | str) -> int:
    if isinstance(level, int):
        return level
    number = logging.getLevelNamesMapping().get(level.strip().upper())
    if number is None:
        raise ValueError(f"unsupported logging level {level!r}")
    return number


def _extra_fields(record: logging.LogRecord) -> dict[str, Any]:
    return {
        key: _jsonable(value)
        for key, value in vars(record).items()
        if key not in _RECORD_ATTRIBUTES and not key.startswith("_")
    }


def _jsonable(value: object) -> Any:
    match value:
        case None | bool() | int() | str():
            return value
        case float():
            return value if math.isfinite(value) else str(value)
        case Path():
            return value.as_posix()
        case bytes():
            return value.decode("utf-8", errors="replace")
        case Mapping():
            return {str(key): _jsonable(item) for key, item in value.items()}
        case list() | tuple():
            return [_jsonable(item) for item in value]
    return repr(value)


def _dumps(value: object) -> str:
    return json.dumps(value, sort_keys=True, separators=(",", ":"), ensure_ascii=False)


__all__ = [
    "LogFormat",
    "LoggingConfig",
    "LoggingHandle",
    "get_active_logging_handle",
    "setup_logging",
    "shutdown_logging",
]
