from __future__ import annotations

import logging
import sys
import warnings
from collections import deque
from dataclasses import dataclass
from typing import TYPE_CHECKING, Deque, Iterable, List, Optional

import structlog

if TYPE_CHECKING:
    from driftpatch.settings import LoggingSettings, LogLevel

LOGGER_NAME = "driftpatch"

# "disabled" maps above CRITICAL so nothing gets through.
LEVEL_DISABLED = logging.CRITICAL + 1


@dataclass
class CapturedLog:
    logger_name: str
    level: int
    level_name: str
    message: str
    created: float

    @classmethod
    def from_record(cls, record: logging.LogRecord) -> "CapturedLog":
        return cls(
            logger_name=record.name,
            level=record.levelno,
            level_name=record.levelname,
            message=record.getMessage(),
            created=record.created,
        )


class LogBuffer:
    """Bounded in-memory store of log records, oldest dropped first."""

    def __init__(self, max_entries: Optional[int] = None) -> None:
        self._entries: Deque[CapturedLog] = deque(maxlen=max_entries)

    def add_record(self, record: logging.LogRecord) -> None:
        self._entries.append(CapturedLog.from_record(record))

    def get_records(self, min_level: int = logging.NOTSET) -> List[CapturedLog]:
        return [e for e in self._entries if e.level >= min_level]

    def clear(self) -> None:
        self._entries.clear()


class _BufferHandler(logging.Handler):
    def __init__(self, buffer: LogBuffer) -> None:
        super().__init__()
        self.buffer = buffer

    def emit(self, record: logging.LogRecord) -> None:
        self.buffer.add_record(record)


_handler: Optional[_BufferHandler] = None


def _writes_to_terminal(handler: logging.Handler) -> bool:
    if not isinstance(handler, logging.StreamHandler):
        return False
    return getattr(handler, "stream", None) in (sys.stdout, sys.stderr)


def _log_warning(
    message: Warning | str,
    category: type[Warning],
    filename: str,
    lineno: int,
    file: object | None = None,
    line: str | None = None,
) -> None:
    text = warnings.formatwarning(message, category, filename, lineno, line)
    logging.getLogger("py.warnings").warning(text.strip())


def _known_loggers() -> Iterable[logging.Logger]:
    yield logging.getLogger()
    for obj in list(logging.root.manager.loggerDict.values()):
        if isinstance(obj, logging.Logger):
            yield obj


def capture_logs(max_entries: Optional[int] = None) -> LogBuffer:
    """
    Send all stdlib logging (structlog included) and Python warnings to an
    in-memory buffer and detach handlers that write to stdout/stderr, so
    engine logs never interleave with the report printed by the CLI.

    Repeated calls reuse the same buffer.
    """
    global _handler
    if _handler is None:
        _handler = _BufferHandler(LogBuffer(max_entries=max_entries))

    root = logging.getLogger()
    for log in _known_loggers():
        for handler in list(log.handlers):
            if _writes_to_terminal(handler):
                log.removeHandler(handler)
        # Loggers that do not propagate would bypass the root handler.
        needs_handler = log is root or not log.propagate
        if needs_handler and _handler not in log.handlers:
            log.addHandler(_handler)

    warnings.showwarning = _log_warning
    return _handler.buffer


def get_log_buffer() -> Optional[LogBuffer]:
    return _handler.buffer if _handler is not None else None


def _to_stdlib_level(level: "LogLevel") -> int:
    from driftpatch.settings import LogLevel

    if level == LogLevel.disabled:
        return LEVEL_DISABLED
    return logging.getLevelName(level.value.upper())


def apply_logging_settings(settings: Optional["LoggingSettings"]) -> None:
    from driftpatch.settings import LoggingSettings

    settings = settings or LoggingSettings()
    logging.getLogger(LOGGER_NAME).setLevel(_to_stdlib_level(settings.default_level))
    for name, level in settings.enabled_loggers.items():
        logging.getLogger(name).setLevel(_to_stdlib_level(level))


structlog.configure(
    wrapper_class=structlog.make_filtering_bound_logger(logging.NOTSET),
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
    processors=[
        structlog.processors.add_log_level,
        structlog.processors.StackInfoRenderer(),
        structlog.dev.set_exc_info,
        structlog.processors.TimeStamper(fmt="%Y-%m-%d %H:%M:%S", utc=False),
        structlog.dev.ConsoleRenderer(colors=False),
    ],
)

logger: structlog.BoundLogger = structlog.get_logger(LOGGER_NAME)
