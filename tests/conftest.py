"""Shared test fixtures for wiretap."""

from __future__ import annotations

import io
import json
import sys
import threading
from collections.abc import Iterator
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from typing import Any

import pytest

from wiretap.capture.collector import EventCollector, Notification
from wiretap.capture.policy import CapturePolicy
from wiretap.capture.records import LogRecord, NetworkRecord, Timing, new_id, now_ms


@pytest.fixture
def collector() -> EventCollector:
    return EventCollector(max_logs=100, max_requests=100)


@pytest.fixture
def policy() -> CapturePolicy:
    """A policy with no truncation floor, so small limits can be tested."""
    return CapturePolicy(min_truncate_bytes=1)


@pytest.fixture
def diagnostics(monkeypatch: pytest.MonkeyPatch) -> io.StringIO:
    """Collects [wiretap] warnings, which go to the original stderr."""
    buf = io.StringIO()
    monkeypatch.setattr(sys, "__stderr__", buf)
    return buf


@pytest.fixture
def notifications(collector: EventCollector) -> list[Notification]:
    """Every notification the collector emits, in order."""
    seen: list[Notification] = []
    collector.subscribe(seen.append)
    return seen


def make_log(message: str = "hello", level: str = "info") -> LogRecord:
    return LogRecord.create(level, message, (message,))  # type: ignore[arg-type]


def make_network(
    url: str = "http://example.test/api",
    *,
    method: str = "GET",
    status: int = 200,
) -> NetworkRecord:
    start = now_ms()
    return NetworkRecord(
        id=new_id(),
        timestamp=start,
        method=method,  # type: ignore[arg-type]
        url=url,
        status=status,
        status_text="OK",
        duration=5,
        timing=Timing(start, start + 5),
    )


# ---------------------------------------------------------------------------
# Local HTTP server for http.client capture tests
# ---------------------------------------------------------------------------


class _Handler(BaseHTTPRequestHandler):
    protocol_version = "HTTP/1.1"

    def do_GET(self) -> None:
        if self.path.startswith("/big"):
            self._reply(200, b"x" * 200, "text/plain")
        elif self.path.startswith("/unicode"):
            self._reply(200, "abcd\u20acxyz".encode(), "text/plain; charset=utf-8")
        elif self.path.startswith("/missing"):
            self._reply(404, b"not here", "text/plain")
        else:
            self._reply(200, b'{"ok": true}', "application/json")

    def do_POST(self) -> None:
        length = int(self.headers.get("Content-Length") or 0)
        data = self.rfile.read(length)
        self._reply(201, json.dumps({"received": data.decode()}).encode(), "application/json")

    def do_HEAD(self) -> None:
        self.send_response(200)
        self.send_header("Content-Length", "0")
        self.end_headers()

    def _reply(self, status: int, body: bytes, content_type: str) -> None:
        self.send_response(status)
        self.send_header("Content-Type", content_type)
        self.send_header("Content-Length", str(len(body)))
        self.send_header("Set-Cookie", "session=secret")
        self.end_headers()
        self.wfile.write(body)

    def log_message(self, format: str, *args: Any) -> None:
        pass


@pytest.fixture
def http_server() -> Iterator[str]:
    """Base URL of a local HTTP server running in a background thread."""
    server = ThreadingHTTPServer(("127.0.0.1", 0), _Handler)
    thread = threading.Thread(target=server.serve_forever, daemon=True)
    thread.start()
    try:
        yield f"http://127.0.0.1:{server.server_address[1]}"
    finally:
        server.shutdown()
        server.server_close()
        thread.join(timeout=5)
