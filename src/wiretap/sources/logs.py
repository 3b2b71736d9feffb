"""Log capture — records stdlib ``logging`` output as log records.

``LoggingSource`` hooks record dispatch rather than joining any logger's
handler list.  It sees exactly the records the host's logging
configuration lets through; levels and handlers are left untouched, so
installing it changes nothing the host can observe.

``emit_log()`` is the producer entry point for any other log emitter.
"""

from __future__ import annotations

import logging
import traceback
from collections.abc import Callable
from typing import TYPE_CHECKING, Any

from wiretap.capture.records import LOG_LEVELS, LogRecord
from wiretap.sources.base import CaptureSource, capturing, in_capture

if TYPE_CHECKING:
    from wiretap._types import LogLevel
    from wiretap.capture.collector import EventCollector

# Records from these loggers are never captured.
_SKIP_PREFIX = "wiretap"


def level_for(levelno: int) -> LogLevel:
    """Map a ``logging`` level number onto a capture severity."""
    if levelno >= logging.ERROR:
        return "error"
    if levelno >= logging.WARNING:
        return "warn"
    if levelno >= logging.INFO:
        return "info"
    return "debug"


def emit_log(
    collector: EventCollector,
    level: str,
    message: str,
    args: tuple[Any, ...] = (),
    stack: str | None = None,
) -> None:
    """Build a log record and hand it to the collector.

    Unknown levels are recorded as ``log``.  Error records without an
    explicit stack get the caller's stack.

    """
    lvl: LogLevel = level if level in LOG_LEVELS else "log"  # type: ignore[assignment]
    try:
        if lvl == "error" and stack is None:
            stack = "".join(traceback.format_stack()[:-1])
        collector.add_log(LogRecord.create(lvl, str(message), tuple(args), stack))
    except Exception:
        return  # fail-open


class LoggingSource(CaptureSource):
    """Captures ``logging`` records as the host's loggers dispatch them.

    Installing wraps ``logging.Logger.callHandlers``, the single point every
    emitted record passes through, instead of adding a handler.  Root and
    logger handler lists stay as the host left them, so ``basicConfig()``
    still configures logging and ``logging.lastResort`` still reports to
    stderr when nothing else is configured.

    Host handlers run with the capture guard set: a ``StreamHandler``
    writing to a captured stream does not record the same line twice.

    Args:
        collector: Where captured records go.
        logger: Only records from this logger and its descendants are
            captured (root, the default, means every record).

    """

    name = "logging"

    def __init__(self, collector: EventCollector, logger: logging.Logger | None = None) -> None:
        super().__init__()
        self._collector = collector
        self._logger = logger if logger is not None else logging.getLogger()
        self._original: Callable[..., Any] | None = None
        self._wrapper: Callable[..., Any] | None = None

    def install(self) -> None:
        if self._installed:
            return
        original = logging.Logger.__dict__.get("callHandlers") or logging.Logger.callHandlers
        self._original = original
        self._wrapper = self._wrap_call_handlers(original)
        logging.Logger.callHandlers = self._wrapper  # type: ignore[method-assign]
        super().install()

    def uninstall(self) -> None:
        if not self._installed:
            return
        # A later patch by someone else stays; ours passes through once inactive.
        if logging.Logger.__dict__.get("callHandlers") is self._wrapper:
            logging.Logger.callHandlers = self._original  # type: ignore[method-assign]
        self._original = None
        self._wrapper = None
        super().uninstall()

    def _wrap_call_handlers(self, original: Callable[..., Any]) -> Callable[..., Any]:
        source = self

        def call_handlers(logger: logging.Logger, record: logging.LogRecord) -> None:
            if not source._installed or in_capture():
                original(logger, record)
                return
            with capturing():
                original(logger, record)
            if source.covers(logger):
                source.run_fail_open(source.capture, record)

        return call_handlers

    def covers(self, logger: logging.Logger) -> bool:
        """Whether records dispatched by *logger* are in scope."""
        scope = self._logger
        if scope is logging.getLogger():
            return True
        return logger.name == scope.name or logger.name.startswith(scope.name + ".")

    def capture(self, record: logging.LogRecord) -> None:
        """Convert one ``logging.LogRecord`` and record it."""
        if record.name == _SKIP_PREFIX or record.name.startswith(_SKIP_PREFIX + "."):
            return

        level = level_for(record.levelno)
        message = record.getMessage()

        if isinstance(record.args, tuple):
            args: tuple[Any, ...] = (record.msg, *record.args)
        elif record.args:
            args = (record.msg, record.args)
        else:
            args = (record.msg,)

        stack = None
        if level == "error":
            if record.exc_info and record.exc_info[0] is not None:
                stack = "".join(traceback.format_exception(*record.exc_info))
            elif record.stack_info:
                stack = record.stack_info
            else:
                stack = "".join(traceback.format_stack())

        self._collector.add_log(LogRecord.create(level, message, args, stack))
