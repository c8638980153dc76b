"""Helpers shared by the test modules."""
import io
import queue
import socket
import struct
import threading
from contextlib import asynccontextmanager
from typing import AsyncIterator, Callable, List, Optional, Tuple

import anyio
from anyio.abc import SocketAttribute

from duplex_chat.channel import (
    ChannelConnectionError,
    ChannelError,
    ConnectionState,
    SendError,
)
from duplex_chat.relay import LineRelay


class QueueInput:
    """Blocking in-memory line source; ``end()`` signals end of file."""

    def __init__(self) -> None:
        self._lines: "queue.Queue[str]" = queue.Queue()

    def feed(self, *lines: str) -> None:
        for line in lines:
            self._lines.put(f"{line}\n")

    def end(self) -> None:
        self._lines.put("")

    def readline(self) -> str:
        return self._lines.get()


class TtyStringIO(io.StringIO):
    def isatty(self) -> bool:
        return True


async def wait_until(predicate: Callable[[], bool], timeout: float = 5) -> None:
    with anyio.fail_after(timeout):
        while not predicate():
            await anyio.sleep(0.01)


@asynccontextmanager
async def running_relay(**kwargs):
    """Serve a LineRelay on an ephemeral localhost port for the block."""
    relay = LineRelay(**kwargs)
    async with anyio.create_task_group() as task_group:
        port = await task_group.start(relay.serve, "127.0.0.1", 0)
        yield relay, port
        task_group.cancel_scope.cancel()


async def closed_port() -> int:
    """A localhost port nothing listens on."""
    listener = await anyio.create_tcp_listener(local_host="127.0.0.1")
    port = listener.extra(SocketAttribute.local_port)
    await listener.aclose()
    return port


def _accept_then_reset(
    server: socket.socket, payload: bytes, reset: threading.Event
) -> None:
    conn, _ = server.accept()
    with conn:
        conn.sendall(payload)
        reset.wait(5)
        # zero linger turns close() into a TCP reset
        conn.setsockopt(socket.SOL_SOCKET, socket.SO_LINGER, struct.pack("ii", 1, 0))


@asynccontextmanager
async def resetting_server(
    payload: bytes,
) -> AsyncIterator[Tuple[int, threading.Event]]:
    """
    Accept one connection on a localhost port, write ``payload`` to it and
    abort it with a reset once the yielded event is set.
    """
    reset = threading.Event()
    with socket.create_server(("127.0.0.1", 0)) as server:
        server.settimeout(5)
        async with anyio.create_task_group() as task_group:
            task_group.start_soon(
                anyio.to_thread.run_sync, _accept_then_reset, server, payload, reset
            )
            yield server.getsockname()[1], reset
            reset.set()


class FakeChannel:
    """In-memory stand-in for DuplexChannel with the same listener surface."""

    def __init__(self, connect_state: ConnectionState = ConnectionState.OPEN) -> None:
        self.state = ConnectionState.CONNECTING
        self.connect_state = connect_state
        self.address: Optional[object] = None
        self.sent: List[str] = []
        self._done: Optional[anyio.Event] = None
        self._message_listeners: List[Callable[[str], None]] = []
        self._close_listeners: List[Callable[[], None]] = []
        self._error_listeners: List[Callable[[ChannelError], None]] = []

    def on_message(self, listener) -> None:
        self._message_listeners.append(listener)

    def on_close(self, listener) -> None:
        self._close_listeners.append(listener)

    def on_error(self, listener) -> None:
        self._error_listeners.append(listener)

    async def connect(self, address) -> ConnectionState:
        self.address = address
        self._done = anyio.Event()
        if self.connect_state is ConnectionState.OPEN:
            self.state = ConnectionState.OPEN
        else:
            self.state = ConnectionState.FAILED
            self.emit_error(ChannelConnectionError("connection refused"))
        return self.state

    async def run(self) -> ConnectionState:
        if self.state is ConnectionState.OPEN:
            await self._done.wait()
        return self.state

    def send(self, data) -> bool:
        if self.state is not ConnectionState.OPEN:
            self.emit_error(SendError("channel not open"))
            return False
        self.sent.append(str(data))
        return True

    def close(self) -> None:
        if self.state in (ConnectionState.CLOSED, ConnectionState.FAILED):
            return
        self.state = ConnectionState.CLOSED
        if self._done is not None:
            self._done.set()
        self.emit_close()

    async def aclose(self) -> None:
        self.close()

    def emit_message(self, text: str) -> None:
        for listener in self._message_listeners:
            listener(text)

    def emit_close(self) -> None:
        for listener in self._close_listeners:
            listener()

    def emit_error(self, error: ChannelError) -> None:
        for listener in self._error_listeners:
            listener(error)
