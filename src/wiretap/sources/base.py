"""Capture source base — install/uninstall lifecycle and fail-open execution.

A capture source sits between the host program and the collector.  Any
failure inside capture code is turned into a ``CaptureError``, counted on
the source, reported once on stderr, and discarded.  The host call always
proceeds as if wiretap were not there.

A thread-local depth counter (checked by every host-facing hook) stops
capture code that itself logs, prints or makes HTTP calls from being captured
recursively.

"""

from __future__ import annotations

import threading
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from typing import Any, TypeVar

from wiretap._errors import CaptureError
from wiretap.banner import print_warning

_local = threading.local()


def in_capture() -> bool:
    """Whether the current thread is already running capture code."""
    return getattr(_local, "depth", 0) > 0


R = TypeVar("R")


@contextmanager
def capturing() -> Iterator[None]:
    """Mark the current thread as running capture code."""
    _local.depth = getattr(_local, "depth", 0) + 1
    try:
        yield
    finally:
        _local.depth -= 1


class CaptureSource:
    """Base class for producers that feed the collector.

    Subclasses override ``install()`` / ``uninstall()``; both must be
    idempotent.  Capture work runs through ``run_fail_open()``.

    """

    name = "source"

    def __init__(self) -> None:
        self._installed = False
        self.dropped = 0
        self.last_error: CaptureError | None = None
        self._warned = False

    @property
    def installed(self) -> bool:
        return self._installed

    def install(self) -> None:
        self._installed = True

    def uninstall(self) -> None:
        self._installed = False

    def run_fail_open(self, fn: Callable[..., R], *args: Any, **kwargs: Any) -> R | None:
        """Run capture work, swallowing and recording any failure.

        Hooks called from host code check ``in_capture()`` first and pass
        through untouched when it is set.

        """
        with capturing():
            try:
                return fn(*args, **kwargs)
            except Exception as exc:
                self._record_failure(exc)
                return None

    def _record_failure(self, exc: Exception) -> None:
        error = CaptureError(f"{self.name}: {type(exc).__name__}: {exc}")
        error.__cause__ = exc
        self.dropped += 1
        self.last_error = error
        if not self._warned:
            self._warned = True
            print_warning(f"capture failed and was skipped ({error})")
