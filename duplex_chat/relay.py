import itertools
import logging
from typing import Awaitable, Callable, Dict, Optional

import anyio
from anyio.abc import SocketAttribute, SocketStream, TaskStatus
from anyio.streams.buffered import BufferedByteReceiveStream
from anyio.streams.memory import MemoryObjectReceiveStream, MemoryObjectSendStream

from duplex_chat.line import ChatLine

logger = logging.getLogger(__name__)


class LineRelay:
    """
    Fans every received line out to all other connected peers.

    Architecture: each client gets its own bounded memory stream as an outbox
    and a task that drains it onto the socket. Broadcasting puts the same bytes
    into every other outbox without waiting, so a slow client never stalls the
    others; a client whose outbox is full is disconnected instead.

    Lines are forwarded verbatim and never echoed back to their sender.
    """

    DEFAULT_MAX_LINE_BYTES = 65536
    DEFAULT_MAX_PENDING = 100
    DELIMITER = b"\n"

    def __init__(
        self, max_line_bytes: Optional[int] = None, max_pending: Optional[int] = None
    ) -> None:
        self.max_line_bytes = (
            self.DEFAULT_MAX_LINE_BYTES if max_line_bytes is None else max_line_bytes
        )
        self.max_pending = (
            self.DEFAULT_MAX_PENDING if max_pending is None else max_pending
        )
        self._clients: Dict[int, MemoryObjectSendStream] = {}
        self._ids = itertools.count(1)

    @property
    def client_count(self) -> int:
        return len(self._clients)

    async def serve(
        self,
        host: str = "localhost",
        port: int = 0,
        *,
        task_status: TaskStatus = anyio.TASK_STATUS_IGNORED,
    ) -> None:
        """Listen until cancelled. The bound port is passed to ``task_status``."""
        listener = await anyio.create_tcp_listener(local_host=host, local_port=port)
        async with listener:
            bound_port = listener.extra(SocketAttribute.local_port)
            logger.info("Relay listening on %s:%d", host, bound_port)
            task_status.started(bound_port)
            await listener.serve(self._handle_client)

    async def _handle_client(self, stream: SocketStream) -> None:
        client_id = next(self._ids)
        outbox_send, outbox_receive = anyio.create_memory_object_stream(
            self.max_pending
        )
        self._clients[client_id] = outbox_send
        logger.debug("Client %d connected (%d total)", client_id, self.client_count)

        try:
            async with stream, anyio.create_task_group() as task_group:
                # whichever side finishes first ends the connection
                async def cancel_on_finish(coro: Callable[[], Awaitable[None]]):
                    await coro()
                    task_group.cancel_scope.cancel()

                task_group.start_soon(
                    cancel_on_finish, lambda: self._forward(outbox_receive, stream)
                )
                task_group.start_soon(
                    cancel_on_finish, lambda: self._pump(client_id, stream)
                )
        finally:
            self._remove_client(client_id)
            logger.debug(
                "Client %d disconnected (%d left)", client_id, self.client_count
            )

    async def _pump(self, client_id: int, stream: SocketStream) -> None:
        buffered = BufferedByteReceiveStream(stream)
        while True:
            try:
                raw = await buffered.receive_until(self.DELIMITER, self.max_line_bytes)
                if len(raw) > self.max_line_bytes:
                    raise anyio.DelimiterNotFound(self.max_line_bytes)
            except anyio.DelimiterNotFound:
                logger.warning(
                    "Client %d sent a line over %d bytes, dropping it",
                    client_id,
                    self.max_line_bytes,
                )
                return
            except (
                anyio.IncompleteRead,
                anyio.BrokenResourceError,
                anyio.ClosedResourceError,
                OSError,
            ):
                return

            self._log_line(client_id, raw)
            self.broadcast(raw + self.DELIMITER, sender_id=client_id)

    @staticmethod
    async def _forward(
        source: MemoryObjectReceiveStream, stream: SocketStream
    ) -> None:
        async with source:
            async for data in source:
                try:
                    await stream.send(data)
                except (
                    anyio.BrokenResourceError,
                    anyio.ClosedResourceError,
                    OSError,
                ):
                    break

    def broadcast(self, data: bytes, sender_id: Optional[int] = None) -> int:
        """
        Queue ``data`` for every client except ``sender_id``.

        Returns the number of clients it was queued for.
        """
        delivered = 0
        for client_id, outbox in list(self._clients.items()):
            if client_id == sender_id:
                continue
            try:
                outbox.send_nowait(data)
            except anyio.WouldBlock:
                logger.warning("Client %d is not keeping up, disconnecting", client_id)
                self._remove_client(client_id)
            except (anyio.BrokenResourceError, anyio.ClosedResourceError):
                self._remove_client(client_id)
            else:
                delivered += 1
        return delivered

    def _remove_client(self, client_id: int) -> None:
        outbox = self._clients.pop(client_id, None)
        if outbox is not None:
            outbox.close()

    @staticmethod
    def _log_line(client_id: int, raw: bytes) -> None:
        text = raw.decode("utf-8", errors="replace").rstrip("\r")
        try:
            line = ChatLine.parse(text)
        except ValueError:
            logger.debug("Client %d relayed untagged line: %s", client_id, text)
        else:
            logger.debug("Client %d relayed line from %s", client_id, line.sender)
