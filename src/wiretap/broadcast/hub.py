"""Broadcast hub — streams collector state to connected observers.

The hub runs a ``websockets`` server on its own event loop in a daemon
thread, so it works the same under synchronous and asyncio host programs
and never touches the host's loop.

Producers never wait on observers.  A collector notification is handed to
the hub loop with ``call_soon_threadsafe`` and returns immediately.  On the
loop the message is encoded once and put on every observer's bounded queue;
a per-observer writer task drains the queue onto the socket.  A slow
observer fills its own queue and loses messages; nobody else is affected.

A new observer gets ``batch``, ``status`` and ``config`` before anything
else.  The batch comes from one atomic collector snapshot; live
notifications already contained in it (sequence number at or below the
snapshot's) are not sent to that observer again.

Thread Safety:
    Connection bookkeeping happens only on the hub loop thread.  The
    public ``broadcast()`` and the collector listener are safe to call from
    any thread.

"""

from __future__ import annotations

import asyncio
import threading
import uuid
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from websockets.asyncio.server import serve
from websockets.exceptions import ConnectionClosed

from wiretap._errors import BroadcastError
from wiretap.banner import print_warning
from wiretap.broadcast.protocol import (
    ClearCommand,
    ControlCommand,
    batch_message,
    config_message,
    encode,
    from_notification,
    parse_inbound,
    status_message,
)

if TYPE_CHECKING:
    from collections.abc import Callable

    from websockets.asyncio.server import Server, ServerConnection

    from wiretap._types import ClientID, Message
    from wiretap.capture.collector import EventCollector, Notification
    from wiretap.capture.policy import CapturePolicy

DEFAULT_QUEUE_SIZE = 10_000


@dataclass(eq=False, slots=True)
class ObserverConnection:
    """One connected observer.

    Attributes:
        client_id: Unique identifier for this connection.
        websocket: The underlying server connection.
        queue: Encoded messages waiting to be sent.
        baseline: Sequence number of the snapshot this observer started from.
        dropped: Messages dropped because the queue was full.

    """

    client_id: ClientID
    websocket: ServerConnection
    queue: asyncio.Queue[str] = field(default_factory=lambda: asyncio.Queue(DEFAULT_QUEUE_SIZE))
    baseline: int = 0
    dropped: int = 0


class BroadcastHub:
    """Bridges an ``EventCollector`` and ``CapturePolicy`` to N observers.

    Args:
        collector: Source of history and change notifications.
        policy: The capture policy observers can inspect and patch.
        host: Bind address.
        port: Bind port (0 picks a free port).
        queue_size: Per-observer outbound queue bound.

    """

    def __init__(
        self,
        collector: EventCollector,
        policy: CapturePolicy,
        *,
        host: str = "127.0.0.1",
        port: int = 3001,
        queue_size: int = DEFAULT_QUEUE_SIZE,
    ) -> None:
        self._collector = collector
        self._policy = policy
        self._host = host
        self._port = port
        self._queue_size = max(1, queue_size)
        self._connections: set[ObserverConnection] = set()
        self._loop: asyncio.AbstractEventLoop | None = None
        self._stopping: asyncio.Event | None = None
        self._server: Server | None = None
        self._thread: threading.Thread | None = None
        self._ready = threading.Event()
        self._address: tuple[str, int] | None = None
        self._unsubscribe: Callable[[], None] | None = None
        self.last_error: BroadcastError | None = None

    # ----- Properties -----

    @property
    def is_running(self) -> bool:
        """Whether the server thread is alive and bound."""
        return self._thread is not None and self._thread.is_alive() and self._address is not None

    @property
    def address(self) -> tuple[str, int] | None:
        """Bound (host, port), or None when not listening."""
        return self._address

    @property
    def port(self) -> int | None:
        return self._address[1] if self._address is not None else None

    @property
    def observer_count(self) -> int:
        return len(self._connections)

    # ----- Lifecycle -----

    def start(self, timeout: float = 5.0) -> bool:
        """Bind and start serving in a background thread.

        Returns:
            True once listening.  False if the server could not bind; the
            reason is kept in ``last_error`` and nothing is raised.

        """
        if self.is_running:
            return True

        self._ready.clear()
        self.last_error = None
        self._thread = threading.Thread(target=self._run, name="wiretap-hub", daemon=True)
        self._thread.start()

        if not self._ready.wait(timeout):
            self.last_error = BroadcastError(
                f"observer server on {self._host}:{self._port} did not start within {timeout}s"
            )
            return False
        if self.last_error is not None:
            self._thread.join(timeout)
            self._thread = None
            return False

        self._unsubscribe = self._collector.subscribe(self._on_notification)
        return True

    def stop(self, timeout: float = 5.0) -> None:
        """Close every observer connection and stop the server thread."""
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None

        loop, stopping = self._loop, self._stopping
        if loop is not None and stopping is not None:
            try:
                loop.call_soon_threadsafe(stopping.set)
            except RuntimeError:
                pass  # loop already closed

        if self._thread is not None:
            self._thread.join(timeout)
            self._thread = None
        self._address = None

    # ----- Publishing -----

    def broadcast(self, message: Message) -> None:
        """Send *message* to every connected observer (fire-and-forget)."""
        self._schedule(self._deliver, message, None)

    def broadcast_config(self) -> None:
        """Send the current capture policy to every observer."""
        self._schedule(self._deliver_config)

    def _on_notification(self, notification: Notification) -> None:
        self._schedule(self._deliver_notification, notification)

    def _schedule(self, callback: Callable[..., Any], *args: Any) -> None:
        loop = self._loop
        if loop is None or loop.is_closed():
            return
        try:
            loop.call_soon_threadsafe(callback, *args)
        except RuntimeError:
            pass  # loop shut down between the check and the call

    # ----- Loop-thread internals -----

    def _run(self) -> None:
        try:
            asyncio.run(self._main())
        except Exception as exc:
            if self.last_error is None:
                self.last_error = BroadcastError(f"observer server failed: {exc}")
                print_warning(str(self.last_error))
        finally:
            self._loop = None
            self._stopping = None
            self._address = None
            self._ready.set()

    async def _main(self) -> None:
        self._loop = asyncio.get_running_loop()
        self._stopping = asyncio.Event()
        try:
            server = await serve(self._handle, self._host, self._port)
        except OSError as exc:
            self.last_error = BroadcastError(
                f"cannot listen on {self._host}:{self._port}: {exc.strerror or exc}"
            )
            self._ready.set()
            return

        self._server = server
        sockname = next(iter(server.sockets)).getsockname()
        self._address = (self._host, sockname[1])
        self._ready.set()
        try:
            await self._stopping.wait()
        finally:
            server.close()
            await server.wait_closed()
            self._server = None
            self._connections.clear()

    async def _handle(self, websocket: ServerConnection) -> None:
        conn = ObserverConnection(
            client_id=uuid.uuid4().hex,
            websocket=websocket,
            queue=asyncio.Queue(self._queue_size),
        )
        self._attach(conn)
        writer = asyncio.create_task(self._write(conn), name=f"wiretap-writer-{conn.client_id}")
        try:
            async for raw in websocket:
                self._handle_inbound(raw)
        except ConnectionClosed:
            pass
        finally:
            self._connections.discard(conn)
            writer.cancel()

    def _attach(self, conn: ObserverConnection) -> None:
        """Queue the baseline for *conn* and start live delivery.

        Runs without yielding to the loop, so no live delivery can slip in
        between the baseline and registration.

        """
        snapshot = self._collector.snapshot()
        conn.baseline = snapshot.seq
        for message in (
            batch_message(snapshot.logs, snapshot.requests),
            status_message(snapshot.status),
            config_message(self._policy.to_dict()),
        ):
            conn.queue.put_nowait(encode(message))
        self._connections.add(conn)

    async def _write(self, conn: ObserverConnection) -> None:
        while True:
            text = await conn.queue.get()
            try:
                await conn.websocket.send(text)
            except ConnectionClosed:
                return
            except Exception as exc:
                print_warning(f"dropping observer {conn.client_id[:8]}: send failed ({exc})")
                self._connections.discard(conn)
                await conn.websocket.close()
                return

    def _handle_inbound(self, raw: str | bytes) -> None:
        command = parse_inbound(raw)
        if isinstance(command, ClearCommand):
            self._collector.clear(command.target)
        elif isinstance(command, ControlCommand):
            if command.pause_logs is not None:
                self._collector.set_paused("logs", command.pause_logs)
            if command.pause_network is not None:
                self._collector.set_paused("network", command.pause_network)
            if command.has_policy_update:
                self._policy.apply_patch(command.policy_patch)
                # Scheduled, so it follows any status messages queued above.
                self.broadcast_config()

    def _deliver_notification(self, notification: Notification) -> None:
        self._deliver(from_notification(notification), notification.seq)

    def _deliver_config(self) -> None:
        self._deliver(config_message(self._policy.to_dict()), None)

    def _deliver(self, message: Message, seq: int | None) -> None:
        if not self._connections:
            return
        text = encode(message)
        for conn in tuple(self._connections):
            if seq is not None and seq <= conn.baseline:
                continue
            try:
                conn.queue.put_nowait(text)
            except asyncio.QueueFull:
                conn.dropped += 1
