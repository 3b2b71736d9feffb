"""Stream capture — records lines written to ``sys.stdout`` / ``sys.stderr``.

``StreamSource`` swaps each stream for a tee that writes through to the
original first and then records every completed line: stdout lines as
``log``, stderr lines as ``error``.  Partial lines are held until their
newline arrives (or the source is uninstalled).
"""

from __future__ import annotations

import sys
import threading
from typing import TYPE_CHECKING, Any, TextIO

from wiretap.capture.records import LogRecord
from wiretap.sources.base import CaptureSource, in_capture

if TYPE_CHECKING:
    from wiretap._types import LogLevel
    from wiretap.capture.collector import EventCollector

# A line longer than this is recorded in pieces.
MAX_PENDING_CHARS = 64 * 1024


class TeeStream:
    """Text stream proxy that records completed lines.

    Everything not overridden here is delegated to the wrapped stream, so
    ``encoding``, ``fileno()``, ``isatty()`` and ``buffer`` behave as before.

    """

    def __init__(self, target: TextIO, source: StreamSource, level: LogLevel) -> None:
        self._target = target
        self._source = source
        self._level = level
        self._pending = ""
        self._lock = threading.Lock()
        self.active = True

    @property
    def target(self) -> TextIO:
        return self._target

    def write(self, text: str) -> int:
        written = self._target.write(text)
        if self.active and text and isinstance(text, str) and not in_capture():
            self._source.run_fail_open(self._capture, text)
        return written

    def writelines(self, lines: Any) -> None:
        for line in lines:
            self.write(line)

    def flush(self) -> None:
        self._target.flush()

    def drain(self) -> None:
        """Record whatever partial line is pending."""
        with self._lock:
            rest, self._pending = self._pending, ""
        if rest:
            self._source.run_fail_open(self._source.record_line, self._level, rest)

    def _capture(self, text: str) -> None:
        with self._lock:
            data = self._pending + text
            lines = data.split("\n")
            self._pending = lines.pop()
            if len(self._pending) > MAX_PENDING_CHARS:
                lines.append(self._pending)
                self._pending = ""
        for line in lines:
            self._source.record_line(self._level, line.removesuffix("\r"))

    def __getattr__(self, name: str) -> Any:
        return getattr(self._target, name)


class StreamSource(CaptureSource):
    """Captures text written to the process's stdout and stderr.

    Args:
        collector: Where captured records go.
        stdout: Capture ``sys.stdout``.
        stderr: Capture ``sys.stderr``.

    """

    name = "streams"

    def __init__(
        self,
        collector: EventCollector,
        *,
        stdout: bool = True,
        stderr: bool = True,
    ) -> None:
        super().__init__()
        self._collector = collector
        self._want_stdout = stdout
        self._want_stderr = stderr
        self._tees: dict[str, TeeStream] = {}

    def install(self) -> None:
        if self._installed:
            return
        if self._want_stdout and sys.stdout is not None:
            self._tees["stdout"] = TeeStream(sys.stdout, self, "log")
            sys.stdout = self._tees["stdout"]  # type: ignore[assignment]
        if self._want_stderr and sys.stderr is not None:
            self._tees["stderr"] = TeeStream(sys.stderr, self, "error")
            sys.stderr = self._tees["stderr"]  # type: ignore[assignment]
        super().install()

    def uninstall(self) -> None:
        if not self._installed:
            return
        for name, tee in self._tees.items():
            tee.drain()
            tee.active = False
            # Someone may have wrapped our tee since; leave theirs in place.
            if getattr(sys, name) is tee:
                setattr(sys, name, tee.target)
        self._tees.clear()
        super().uninstall()

    def record_line(self, level: LogLevel, line: str) -> None:
        self._collector.add_log(LogRecord.create(level, line, (line,)))
