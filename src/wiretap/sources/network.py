"""Network capture — in-flight call tracking and ``http.client`` instrumentation.

``NetworkTracker`` is the producer interface for outbound calls.  A call is
opened with ``on_network_start()``, may receive request body chunks, and is
closed by ``on_network_finish()`` or ``on_network_error()``.  Only then is a
``NetworkRecord`` built and handed to the collector; in-flight calls live
in the tracker alone.

``HttpClientSource`` feeds the tracker from ``http.client.HTTPConnection``,
which also carries ``urllib.request`` and ``urllib3`` / ``requests``
traffic.  The instrumented methods return what the originals return and
raise what they raise.

Thread Safety:
    The in-flight table is guarded by a ``threading.Lock``.  Per-connection
    state lives on the connection object, which ``http.client`` does not
    share across threads.

"""

from __future__ import annotations

import http.client
import threading
import time
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from wiretap.capture.policy import redact, truncate
from wiretap.capture.records import NetworkRecord, Timing, new_id, normalize_method, now_ms
from wiretap.sources.base import CaptureSource, in_capture

if TYPE_CHECKING:
    from wiretap._types import NetworkSource
    from wiretap.capture.collector import EventCollector
    from wiretap.capture.policy import CapturePolicy, PolicySnapshot

# Oldest in-flight calls are forgotten beyond this many.
MAX_IN_FLIGHT = 10_000


def to_text(data: str | bytes | bytearray | memoryview) -> str:
    if isinstance(data, str):
        return data
    return bytes(data).decode("utf-8", "replace")


class BodyBuffer:
    """Accumulates body chunks, keeping only what truncation can use.

    Chunks are kept while the stored size is within *limit*; the first chunk
    past the limit is kept too so truncation knows to add its marker.

    """

    __slots__ = ("_chunks", "_limit", "_size")

    def __init__(self, limit: int) -> None:
        self._chunks: list[bytes] = []
        self._limit = limit
        self._size = 0

    def append(self, chunk: str | bytes | bytearray | memoryview) -> None:
        if self._size > self._limit:
            return
        data = chunk.encode("utf-8") if isinstance(chunk, str) else bytes(chunk)
        self._chunks.append(data)
        self._size += len(data)

    def decoded(self) -> str:
        """Kept bytes as text, not yet truncated."""
        return b"".join(self._chunks).decode("utf-8", "replace")

    def text(self) -> str:
        return truncate(self.decoded(), self._limit)


@dataclass(slots=True)
class InFlightCall:
    """A call that has started but not finished."""

    id: str
    method: str
    url: str
    started_at: int
    perf_start: float
    request_headers: Mapping[str, str]
    policy: PolicySnapshot
    source: NetworkSource
    body: BodyBuffer | None = None

    def elapsed_ms(self) -> int:
        return round((time.perf_counter() - self.perf_start) * 1000)


class NetworkTracker(CaptureSource):
    """Tracks outbound calls until they complete, then records them.

    Every method is total: unknown call ids are ignored and internal
    failures are swallowed.

    Args:
        collector: Where finished records go.
        policy: Consulted once per call, at start.

    """

    name = "network"

    def __init__(self, collector: EventCollector, policy: CapturePolicy) -> None:
        super().__init__()
        self._collector = collector
        self._policy = policy
        self._calls: dict[str, InFlightCall] = {}
        self._lock = threading.Lock()

    @property
    def policy(self) -> CapturePolicy:
        return self._policy

    @property
    def in_flight_count(self) -> int:
        with self._lock:
            return len(self._calls)

    def get(self, call_id: str) -> InFlightCall | None:
        with self._lock:
            return self._calls.get(call_id)

    # ----- Producer interface -----

    def on_network_start(
        self,
        method: str | bytes | None,
        url: str,
        request_headers: Mapping[str, str] | None = None,
        request_body: str | bytes | None = None,
        *,
        source: NetworkSource = "manual",
    ) -> str | None:
        """Open a call and return its id (None if tracking failed)."""
        return self.run_fail_open(
            self._start, method, url, request_headers, request_body, source
        )

    def on_network_body(self, call_id: str | None, chunk: str | bytes) -> None:
        """Append a request body chunk to an open call."""
        if call_id is not None:
            self.run_fail_open(self._body, call_id, chunk)

    def on_network_finish(
        self,
        call_id: str | None,
        status: int,
        status_text: str = "",
        response_headers: Mapping[str, str] | None = None,
        response_body: str | bytes | None = None,
        duration_ms: int | None = None,
    ) -> None:
        """Close a call that received a response and record it."""
        if call_id is not None:
            self.run_fail_open(
                self._finish, call_id, status, status_text, response_headers,
                response_body, duration_ms,
            )

    def on_network_error(
        self,
        call_id: str | None,
        error_message: str,
        duration_ms: int | None = None,
    ) -> None:
        """Close a call that failed before a response and record it."""
        if call_id is not None:
            self.run_fail_open(self._error, call_id, error_message, duration_ms)

    def discard(self, call_id: str) -> None:
        """Forget a call without recording it."""
        with self._lock:
            self._calls.pop(call_id, None)

    # ----- Internals -----

    def _start(
        self,
        method: str | bytes | None,
        url: str,
        request_headers: Mapping[str, str] | None,
        request_body: str | bytes | None,
        source: NetworkSource,
    ) -> str:
        policy = self._policy.snapshot()
        headers = {str(k): str(v) for k, v in (request_headers or {}).items()}
        call = InFlightCall(
            id=new_id(),
            method=normalize_method(method),
            url=str(url),
            started_at=now_ms(),
            perf_start=time.perf_counter(),
            request_headers=redact(headers, policy.redact_headers) if headers else {},
            policy=policy,
            source=source,
        )
        if policy.capture_request_bodies:
            call.body = BodyBuffer(policy.truncate_body_bytes)
            if request_body is not None:
                call.body.append(request_body)

        with self._lock:
            self._calls[call.id] = call
            while len(self._calls) > MAX_IN_FLIGHT:
                del self._calls[next(iter(self._calls))]
        return call.id

    def _body(self, call_id: str, chunk: str | bytes) -> None:
        call = self.get(call_id)
        if call is not None and call.body is not None:
            call.body.append(chunk)

    def _pop(self, call_id: str) -> InFlightCall | None:
        with self._lock:
            return self._calls.pop(call_id, None)

    def _finish(
        self,
        call_id: str,
        status: int,
        status_text: str,
        response_headers: Mapping[str, str] | None,
        response_body: str | bytes | None,
        duration_ms: int | None,
    ) -> None:
        call = self._pop(call_id)
        if call is None:
            return
        duration = call.elapsed_ms() if duration_ms is None else int(duration_ms)
        headers = {str(k): str(v) for k, v in (response_headers or {}).items()}

        body = None
        if call.policy.capture_response_bodies and response_body is not None:
            body = truncate(to_text(response_body), call.policy.truncate_body_bytes)

        self._collector.add_network(
            NetworkRecord(
                id=call.id,
                timestamp=call.started_at,
                method=call.method,  # type: ignore[arg-type]
                url=call.url,
                status=int(status),
                status_text=str(status_text or ""),
                duration=duration,
                request_headers=dict(call.request_headers),
                request_body=call.body.text() if call.body is not None else None,
                response_headers=(
                    dict(redact(headers, call.policy.redact_headers)) if headers else {}
                ),
                response_body=body,
                timing=Timing(call.started_at, call.started_at + duration),
                source=call.source,
            )
        )

    def _error(self, call_id: str, error_message: str, duration_ms: int | None) -> None:
        call = self._pop(call_id)
        if call is None:
            return
        duration = call.elapsed_ms() if duration_ms is None else int(duration_ms)
        self._collector.add_network(
            NetworkRecord(
                id=call.id,
                timestamp=call.started_at,
                method=call.method,  # type: ignore[arg-type]
                url=call.url,
                status=0,
                status_text="Failed",
                duration=duration,
                request_headers=dict(call.request_headers),
                request_body=call.body.text() if call.body is not None else None,
                response_headers={},
                timing=Timing(call.started_at, call.started_at + duration),
                error=str(error_message),
                source=call.source,
            )
        )


# ---------------------------------------------------------------------------
# http.client instrumentation
# ---------------------------------------------------------------------------

# Per-connection attributes.
_PENDING = "_wiretap_pending"
_CALL = "_wiretap_call"
_HEADER_BLOCK = "_wiretap_header_block"

# Response methods whose results are body bytes.
_READERS = ("read", "read1", "readinto", "readinto1", "readline")


@dataclass(slots=True)
class _PendingRequest:
    method: str
    url: str
    headers: dict[str, str] = field(default_factory=dict)


def describe_error(exc: BaseException) -> str:
    text = str(exc)
    return f"{type(exc).__name__}: {text}" if text else type(exc).__name__


def _scheme(conn: http.client.HTTPConnection) -> NetworkSource:
    https_cls = getattr(http.client, "HTTPSConnection", None)
    if https_cls is not None and isinstance(conn, https_cls):
        return "https"
    if getattr(conn, "default_port", None) == http.client.HTTPS_PORT:
        return "https"
    return "http"


def build_url(conn: http.client.HTTPConnection, target: str) -> str:
    """Reconstruct the absolute URL of a request on *conn*."""
    if target.startswith(("http://", "https://")):
        return target
    scheme = _scheme(conn)
    host = getattr(conn, "_tunnel_host", None) or conn.host
    port = getattr(conn, "_tunnel_port", None) or conn.port
    if ":" in host and not host.startswith("["):
        host = f"[{host}]"
    default = http.client.HTTPS_PORT if scheme == "https" else http.client.HTTP_PORT
    netloc = host if port in (None, default) else f"{host}:{port}"
    if not target.startswith("/") and target != "*":
        target = "/" + target
    return f"{scheme}://{netloc}{target}"


def _header_text(value: Any) -> str:
    if isinstance(value, (bytes, bytearray)):
        return bytes(value).decode("latin-1")
    return str(value)


class HttpClientSource(CaptureSource):
    """Instruments ``http.client.HTTPConnection`` to record outbound calls.

    A request's method and URL are noted at ``putrequest``, headers at
    ``putheader``; the call opens at ``endheaders``.  Body chunks are taken
    from ``send``.  After ``getresponse`` the response's read methods are
    wrapped on the instance; the call is recorded once the response is
    exhausted or closed.

    Args:
        tracker: In-flight call tracker.
        connection_class: Class to instrument (``http.client.HTTPConnection``).

    """

    name = "http"

    def __init__(
        self,
        tracker: NetworkTracker,
        connection_class: type[http.client.HTTPConnection] = http.client.HTTPConnection,
    ) -> None:
        super().__init__()
        self._tracker = tracker
        self._cls = connection_class
        self._originals: dict[str, Callable[..., Any]] = {}
        self._wrappers: dict[str, Callable[..., Any]] = {}

    @property
    def tracker(self) -> NetworkTracker:
        return self._tracker

    def install(self) -> None:
        if self._installed:
            return
        wrappers = {
            "putrequest": self._wrap_putrequest,
            "putheader": self._wrap_putheader,
            "endheaders": self._wrap_endheaders,
            "send": self._wrap_send,
            "getresponse": self._wrap_getresponse,
        }
        for name, make in wrappers.items():
            original = self._cls.__dict__.get(name) or getattr(self._cls, name)
            self._originals[name] = original
            self._wrappers[name] = make(original)
            setattr(self._cls, name, self._wrappers[name])
        super().install()

    def uninstall(self) -> None:
        if not self._installed:
            return
        for name, original in self._originals.items():
            # Leave later patches by others in place; ours pass through once inactive.
            if self._cls.__dict__.get(name) is self._wrappers[name]:
                setattr(self._cls, name, original)
        self._originals.clear()
        self._wrappers.clear()
        super().uninstall()

    # ----- Wrappers -----

    def _wrap_putrequest(self, original: Callable[..., Any]) -> Callable[..., Any]:
        source = self

        def putrequest(conn: Any, method: str, url: str, *args: Any, **kwargs: Any) -> Any:
            result = original(conn, method, url, *args, **kwargs)
            if source._installed and not in_capture():
                source.run_fail_open(source._note_request, conn, method, url)
            return result

        return putrequest

    def _wrap_putheader(self, original: Callable[..., Any]) -> Callable[..., Any]:
        source = self

        def putheader(conn: Any, header: Any, *values: Any) -> Any:
            result = original(conn, header, *values)
            if source._installed and not in_capture():
                source.run_fail_open(source._note_header, conn, header, values)
            return result

        return putheader

    def _wrap_endheaders(self, original: Callable[..., Any]) -> Callable[..., Any]:
        source = self

        def endheaders(conn: Any, *args: Any, **kwargs: Any) -> Any:
            if source._installed and not in_capture():
                source.run_fail_open(source._open_call, conn)
            try:
                return original(conn, *args, **kwargs)
            except Exception as exc:
                source._fail(conn, exc)
                raise
            finally:
                conn.__dict__.pop(_HEADER_BLOCK, None)

        return endheaders

    def _wrap_send(self, original: Callable[..., Any]) -> Callable[..., Any]:
        source = self

        def send(conn: Any, data: Any) -> Any:
            try:
                result = original(conn, data)
            except Exception as exc:
                source._fail(conn, exc)
                raise
            if conn.__dict__.pop(_HEADER_BLOCK, False):
                return result
            call_id = conn.__dict__.get(_CALL)
            if call_id is not None and isinstance(data, (bytes, bytearray, memoryview, str)):
                source._tracker.on_network_body(call_id, data)
            return result

        return send

    def _wrap_getresponse(self, original: Callable[..., Any]) -> Callable[..., Any]:
        source = self

        def getresponse(conn: Any, *args: Any, **kwargs: Any) -> Any:
            call_id = conn.__dict__.pop(_CALL, None)
            try:
                response = original(conn, *args, **kwargs)
            except Exception as exc:
                if call_id is not None:
                    source._tracker.on_network_error(call_id, describe_error(exc))
                raise
            if call_id is not None:
                source.run_fail_open(source._attach, response, call_id)
            return response

        return getresponse

    # ----- Capture steps -----

    def _note_request(self, conn: Any, method: str, url: str) -> None:
        conn.__dict__[_PENDING] = _PendingRequest(
            method=_header_text(method), url=build_url(conn, _header_text(url))
        )

    def _note_header(self, conn: Any, header: Any, values: tuple[Any, ...]) -> None:
        pending = conn.__dict__.get(_PENDING)
        if pending is not None:
            pending.headers[_header_text(header)] = ", ".join(_header_text(v) for v in values)

    def _open_call(self, conn: Any) -> None:
        pending = conn.__dict__.pop(_PENDING, None)
        if pending is None:
            return
        stale = conn.__dict__.pop(_CALL, None)
        if stale is not None:
            self._tracker.discard(stale)
        call_id = self._tracker.on_network_start(
            pending.method, pending.url, pending.headers, source=_scheme(conn)
        )
        if call_id is not None:
            conn.__dict__[_CALL] = call_id
            conn.__dict__[_HEADER_BLOCK] = True

    def _fail(self, conn: Any, exc: BaseException) -> None:
        call_id = conn.__dict__.pop(_CALL, None)
        if call_id is not None:
            self._tracker.on_network_error(call_id, describe_error(exc))

    def _attach(self, response: http.client.HTTPResponse, call_id: str) -> None:
        call = self._tracker.get(call_id)
        if call is None:
            return
        headers: dict[str, str] = {}
        for key, value in response.getheaders():
            headers[key] = f"{headers[key]}, {value}" if key in headers else value
        body = (
            BodyBuffer(call.policy.truncate_body_bytes)
            if call.policy.capture_response_bodies
            else None
        )
        tap = _ResponseTap(self, call_id, response.status, response.reason, headers, body)
        for name in _READERS:
            method = getattr(response, name, None)
            if method is not None:
                setattr(response, name, tap.wrap_reader(name, method))
        response._close_conn = tap.wrap_close(response._close_conn)  # type: ignore[method-assign]

        # Bodiless responses (HEAD, 204, 304) may never be read.
        if response.fp is None or response.length == 0:
            tap.finish()


class _ResponseTap:
    """Collects one response's body as the host reads it.

    ``http.client`` closes the connection from inside ``read()``, before the
    data reaches the caller, so a close seen during a read only marks the
    call finished; the record is published once the outermost read returns.

    """

    __slots__ = ("_body", "_call_id", "_closed", "_depth", "_done", "_headers",
                 "_source", "_status", "_status_text")

    def __init__(
        self,
        source: HttpClientSource,
        call_id: str,
        status: int,
        status_text: str,
        headers: dict[str, str],
        body: BodyBuffer | None,
    ) -> None:
        self._source = source
        self._call_id = call_id
        self._status = status
        self._status_text = status_text
        self._headers = headers
        self._body = body
        self._depth = 0
        self._closed = False
        self._done = False

    def wrap_reader(self, name: str, method: Callable[..., Any]) -> Callable[..., Any]:
        tap = self

        def reader(*args: Any, **kwargs: Any) -> Any:
            tap._depth += 1
            try:
                result = method(*args, **kwargs)
            finally:
                tap._depth -= 1
            if tap._depth == 0:
                tap._source.run_fail_open(tap._collect, name, args, result)
            return result

        return reader

    def wrap_close(self, close_conn: Callable[[], None]) -> Callable[[], None]:
        tap = self

        def _close_conn() -> None:
            close_conn()
            tap._closed = True
            if tap._depth == 0:
                tap._source.run_fail_open(tap.finish)

        return _close_conn

    def _collect(self, name: str, args: tuple[Any, ...], result: Any) -> None:
        if self._body is not None and result:
            if name.startswith("readinto"):
                self._body.append(memoryview(args[0])[:result])
            elif isinstance(result, (bytes, bytearray)):
                self._body.append(result)
        if self._closed:
            self.finish()

    def finish(self) -> None:
        if self._done:
            return
        self._done = True
        self._source.tracker.on_network_finish(
            self._call_id,
            self._status,
            self._status_text,
            self._headers,
            self._body.decoded() if self._body is not None else None,
        )
