import enum
import logging
import math
from typing import Callable, List, Optional, Tuple, Union

import anyio
from anyio.abc import SocketStream, TaskGroup
from anyio.streams.buffered import BufferedByteReceiveStream

from duplex_chat.line import ChatLine, ensure_bytes

logger = logging.getLogger(__name__)

Address = Union[str, Tuple[str, int]]


class ChannelError(Exception):
    pass


class ChannelConnectionError(ChannelError):
    """The relay could not be reached."""


class SendError(ChannelError):
    """A send was attempted that the channel cannot carry."""


class TransportError(ChannelError):
    """The connection failed after it was established."""


class ConnectionState(enum.Enum):
    CONNECTING = "connecting"
    OPEN = "open"
    CLOSED = "closed"
    FAILED = "failed"


def parse_address(address: Address) -> Tuple[str, int]:
    """
    Accept ``(host, port)``, ``"host:port"`` or ``"tcp://host:port"``.
    """
    if isinstance(address, tuple):
        host, port = address
        return host, int(port)

    _, sep, rest = address.partition("://")
    if not sep:
        rest = address
    host, sep, port = rest.rpartition(":")
    if not sep or not host or not port.isdigit():
        raise ValueError(f"address must look like host:port, got: {address!r}")
    return host.strip("[]"), int(port)


class DuplexChannel:
    """
    One outbound line-oriented connection to the relay.

    Listeners are registered per event kind (``open``, ``message``, ``close``,
    ``error``). Failures are always delivered as ``error`` events carrying a
    ``ChannelError``; ``connect``, ``send`` and ``close`` never raise them.
    """

    DEFAULT_MAX_LINE_BYTES = 65536
    DELIMITER = b"\n"
    DRAIN_TIMEOUT = 1.0

    def __init__(
        self,
        max_line_bytes: Optional[int] = None,
        connect_timeout: Optional[float] = None,
    ) -> None:
        self.max_line_bytes = (
            self.DEFAULT_MAX_LINE_BYTES if max_line_bytes is None else max_line_bytes
        )
        self.connect_timeout = connect_timeout
        self.failure: Optional[ChannelError] = None

        self._state = ConnectionState.CONNECTING
        self._stream: Optional[SocketStream] = None
        self._task_group: Optional[TaskGroup] = None
        self._read_scope: Optional[anyio.CancelScope] = None
        self._drained: Optional[anyio.Event] = None
        self._close_fired = False
        self._outbox_send, self._outbox_receive = anyio.create_memory_object_stream(
            math.inf
        )

        self._open_listeners: List[Callable[[], None]] = []
        self._message_listeners: List[Callable[[str], None]] = []
        self._close_listeners: List[Callable[[], None]] = []
        self._error_listeners: List[Callable[[ChannelError], None]] = []

    @property
    def state(self) -> ConnectionState:
        return self._state

    def on_open(self, listener: Callable[[], None]) -> None:
        self._open_listeners.append(listener)

    def on_message(self, listener: Callable[[str], None]) -> None:
        self._message_listeners.append(listener)

    def on_close(self, listener: Callable[[], None]) -> None:
        self._close_listeners.append(listener)

    def on_error(self, listener: Callable[[ChannelError], None]) -> None:
        self._error_listeners.append(listener)

    async def connect(self, address: Address) -> ConnectionState:
        if self._state is not ConnectionState.CONNECTING:
            self._report(
                ChannelConnectionError(f"channel is already {self._state.value}")
            )
            return self._state

        try:
            host, port = parse_address(address)
        except ValueError as e:
            self._fail(ChannelConnectionError(str(e)))
            return self._state

        logger.debug("Connecting to %s:%d", host, port)
        try:
            with anyio.fail_after(self.connect_timeout):
                stream = await anyio.connect_tcp(host, port)
        except (OSError, TimeoutError) as e:
            self._fail(
                ChannelConnectionError(f"could not connect to {host}:{port}: {e}")
            )
            return self._state

        if self._state is not ConnectionState.CONNECTING:
            # closed locally while the handshake was in flight
            await stream.aclose()
            return self._state

        self._stream = stream
        self._state = ConnectionState.OPEN
        logger.debug("Connected to %s:%d", host, port)
        for listener in self._open_listeners:
            listener()
        return self._state

    async def run(self) -> ConnectionState:
        """
        Pump the connection until it is closed or fails.

        One task reads lines and fires ``message`` in arrival order while a
        second drains the outbound queue filled by ``send``. After a graceful
        close, lines already accepted by ``send`` are still written, for at
        most ``DRAIN_TIMEOUT`` seconds.
        """
        if self._stream is not None and self._state in (
            ConnectionState.OPEN,
            ConnectionState.CLOSED,
        ):
            self._drained = anyio.Event()
            async with anyio.create_task_group() as task_group:
                self._task_group = task_group
                task_group.start_soon(self._write_loop)
                if self._state is ConnectionState.OPEN:
                    with anyio.CancelScope() as self._read_scope:
                        await self._read_loop()
                if self._state is ConnectionState.CLOSED:
                    with anyio.move_on_after(self.DRAIN_TIMEOUT):
                        await self._drained.wait()
                task_group.cancel_scope.cancel()
            self._task_group = None
            self._read_scope = None
        await self._release()
        return self._state

    async def _read_loop(self) -> None:
        buffered = BufferedByteReceiveStream(self._stream)
        while self._state is ConnectionState.OPEN:
            try:
                raw = await buffered.receive_until(self.DELIMITER, self.max_line_bytes)
                if len(raw) > self.max_line_bytes:
                    raise anyio.DelimiterNotFound(self.max_line_bytes)
            except anyio.IncompleteRead:
                logger.debug("Remote end closed the connection")
                self.close()
                return
            except anyio.DelimiterNotFound:
                self._report(
                    TransportError(f"line exceeds {self.max_line_bytes} bytes")
                )
                self.close()
                return
            except anyio.ClosedResourceError:
                return
            except (OSError, anyio.BrokenResourceError) as e:
                self._fail(TransportError(f"receive failed: {e}"))
                return

            text = raw.decode("utf-8", errors="replace").rstrip("\r")
            logger.debug("received: %s", text)
            for listener in self._message_listeners:
                listener(text)

    async def _write_loop(self) -> None:
        try:
            async for payload in self._outbox_receive:
                try:
                    await self._stream.send(payload)
                except (
                    OSError,
                    anyio.BrokenResourceError,
                    anyio.ClosedResourceError,
                ) as e:
                    self._fail(TransportError(f"send failed: {e}"))
                    self._task_group.cancel_scope.cancel()
                    return
                logger.debug("sent: %s", payload)
        finally:
            self._drained.set()

    def send(self, data: Union[str, ChatLine]) -> bool:
        """
        Queue one line for transmission.

        Returns False, after reporting a ``SendError``, when the channel is not
        open or ``data`` is not a single line. Rejected lines are not retried.
        """
        if self._state is not ConnectionState.OPEN:
            self._report(SendError(f"channel not open (state: {self._state.value})"))
            return False
        try:
            payload = ensure_bytes(data)
        except ValueError as e:
            self._report(SendError(str(e)))
            return False
        self._outbox_send.send_nowait(payload)
        return True

    def close(self) -> None:
        """
        Close gracefully from this side. ``close`` listeners fire once.

        Reading stops at once; queued outbound lines are flushed by ``run``.
        """
        if self._state in (ConnectionState.CLOSED, ConnectionState.FAILED):
            return
        self._state = ConnectionState.CLOSED
        self._outbox_send.close()
        if self._read_scope is not None:
            self._read_scope.cancel()
        self._fire_close()

    async def aclose(self) -> None:
        self.close()
        await self._release()

    async def _release(self) -> None:
        if self._stream is not None:
            stream, self._stream = self._stream, None
            with anyio.CancelScope(shield=True):
                await stream.aclose()

    def _fire_close(self) -> None:
        if self._close_fired:
            return
        self._close_fired = True
        logger.debug("Channel closed")
        for listener in self._close_listeners:
            listener()

    def _fail(self, error: ChannelError) -> None:
        if self._state in (ConnectionState.CLOSED, ConnectionState.FAILED):
            logger.debug("Ignoring failure on finished channel: %s", error)
            return
        self._state = ConnectionState.FAILED
        self.failure = error
        self._outbox_send.close()
        self._report(error)

    def _report(self, error: ChannelError) -> None:
        logger.debug("Channel error: %s", error)
        for listener in self._error_listeners:
            listener(error)
