"""Capture session — wires policy, collector, sources and hub into one lifecycle.

At most one session is active per registry.  ``start()`` on a registry with
an active session returns the existing handle; ``shutdown()`` restores the
host's original ``logging``, stream and ``http.client`` behavior and frees
the slot.

The module-level ``start`` / ``shutdown`` / ``active_session`` functions use
a process-wide default registry.  Code that owns process startup can create
its own ``SessionRegistry`` and pass it around instead.
"""

from __future__ import annotations

import dataclasses
import threading
from typing import TYPE_CHECKING, Any

from wiretap.banner import print_banner, print_warning
from wiretap.broadcast.hub import BroadcastHub
from wiretap.capture.collector import EventCollector
from wiretap.capture.policy import CapturePolicy
from wiretap.config import WiretapConfig, build_config
from wiretap.config_watcher import PolicyFileWatcher
from wiretap.sources.logs import LoggingSource, emit_log
from wiretap.sources.network import HttpClientSource, NetworkTracker
from wiretap.sources.streams import StreamSource

if TYPE_CHECKING:
    from wiretap.sources.base import CaptureSource


class Session:
    """One running capture setup.

    Build with ``Session(config)`` and call ``start()``; normally done by
    ``SessionRegistry.start()``.

    """

    def __init__(self, config: WiretapConfig) -> None:
        self.config = config
        self.policy = CapturePolicy(
            truncate_body_bytes=config.truncate_body_bytes,
            capture_request_bodies=config.capture_request_bodies,
            capture_response_bodies=config.capture_response_bodies,
            redact_headers=config.redact_headers,
            min_truncate_bytes=config.min_truncate_body_bytes,
        )
        self.collector = EventCollector(config.max_logs, config.max_requests)
        self.network = NetworkTracker(self.collector, self.policy)
        self.hub = BroadcastHub(self.collector, self.policy, host=config.host, port=config.port)
        self.sources: list[CaptureSource] = []
        self.watcher: PolicyFileWatcher | None = None
        self.listening = False
        self.warnings: list[str] = []
        self._running = False

    @property
    def running(self) -> bool:
        return self._running

    def start(self) -> None:
        """Install sources, start the observer server and the config watcher."""
        if self._running:
            return
        config = self.config

        candidates: list[CaptureSource] = []
        if config.capture_logging:
            candidates.append(LoggingSource(self.collector))
        if config.capture_streams:
            candidates.append(StreamSource(self.collector))
        if config.capture_http:
            candidates.append(HttpClientSource(self.network))

        for source in candidates:
            try:
                source.install()
            except Exception as exc:
                self._warn(f"{source.name} capture unavailable: {exc}")
                continue
            self.sources.append(source)

        self.listening = self.hub.start()
        if not self.listening:
            reason = self.hub.last_error or "unknown error"
            self._warn(f"observers cannot connect ({reason}); capture continues")

        if config.watch_config and config.config_path is not None:
            self.watcher = PolicyFileWatcher(
                config.config_path, self.policy, on_change=self.hub.broadcast_config
            )
            self.watcher.start()

        self._running = True
        if config.banner:
            shown = config
            if self.listening and self.hub.port != config.port:
                shown = dataclasses.replace(config, port=self.hub.port)
            print_banner(
                shown,
                listening=self.listening,
                sources=[source.name for source in self.sources],
                warnings=self.warnings,
            )

    def stop(self) -> None:
        """Undo everything ``start()`` did.  Safe to call repeatedly."""
        if not self._running:
            return
        self._running = False
        for source in reversed(self.sources):
            try:
                source.uninstall()
            except Exception as exc:
                print_warning(f"could not uninstall {source.name} capture: {exc}")
        self.sources.clear()
        if self.watcher is not None:
            self.watcher.stop()
            self.watcher = None
        self.hub.stop()
        self.listening = False

    def on_log(
        self,
        level: str,
        message: str,
        args: tuple[Any, ...] = (),
        stack: str | None = None,
    ) -> None:
        """Producer entry point for log emitters other than the bundled sources."""
        emit_log(self.collector, level, message, args, stack)

    def log(self, level: str, message: str, *args: Any) -> None:
        """Record a log message directly, bypassing interception."""
        self.on_log(level, message, args)

    def _warn(self, message: str) -> None:
        self.warnings.append(message)
        print_warning(message)


class SessionHandle:
    """What ``start()`` returns: the running session and a way to stop it.

    A handle without a session (capture disabled) does nothing on shutdown.

    """

    def __init__(self, session: Session | None, registry: SessionRegistry | None = None) -> None:
        self._session = session
        self._registry = registry

    @property
    def session(self) -> Session | None:
        return self._session

    @property
    def active(self) -> bool:
        return self._session is not None and self._session.running

    def shutdown(self) -> None:
        """Stop capture and release the registry slot."""
        if self._registry is not None:
            self._registry.release(self)
        elif self._session is not None:
            self._session.stop()

    def __enter__(self) -> SessionHandle:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.shutdown()


class SessionRegistry:
    """Holds the single active session of a process (or test)."""

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._active: SessionHandle | None = None

    @property
    def active(self) -> SessionHandle | None:
        return self._active

    def start(self, config: WiretapConfig | None = None, **overrides: Any) -> SessionHandle:
        """Start a session, or return the active one.

        Args:
            config: Session configuration (defaults if omitted).
            **overrides: Fields replacing those of *config*.

        """
        with self._lock:
            if self._active is not None:
                return self._active

            if config is None:
                config = build_config(overrides)
            elif overrides:
                config = build_config(overrides, base=config)

            if not config.enabled:
                return SessionHandle(None)

            session = Session(config)
            session.start()
            self._active = SessionHandle(session, self)
            return self._active

    def shutdown(self) -> None:
        """Stop the active session, if any."""
        with self._lock:
            handle = self._active
        if handle is not None:
            self.release(handle)

    def release(self, handle: SessionHandle) -> None:
        with self._lock:
            if handle.session is not None:
                handle.session.stop()
            if self._active is handle:
                self._active = None


_default_registry = SessionRegistry()


def default_registry() -> SessionRegistry:
    return _default_registry


def start(config: WiretapConfig | None = None, **overrides: Any) -> SessionHandle:
    """Start capture for this process (idempotent)."""
    return _default_registry.start(config, **overrides)


def shutdown() -> None:
    """Stop the process's active session, if any."""
    _default_registry.shutdown()


def active_session() -> SessionHandle | None:
    """The process's active session handle, or None."""
    return _default_registry.active
