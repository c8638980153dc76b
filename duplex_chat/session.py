import enum
import logging
from typing import Callable, Optional

import anyio

from duplex_chat.channel import (
    Address,
    ChannelError,
    ConnectionState,
    DuplexChannel,
    parse_address,
)
from duplex_chat.line import ChatLine, is_blank
from duplex_chat.prompt import LinePrompt

logger = logging.getLogger(__name__)


class SessionState(enum.Enum):
    IDLE = "idle"
    CONNECTING = "connecting"
    ACTIVE = "active"
    TERMINATED = "terminated"


class PeerSession:
    """
    One chat peer: local prompt lines go out through the channel, inbound
    lines are printed above a freshly redrawn prompt.

    Every handler runs to completion on the event loop before the next event
    is dispatched, and each one finishes its print with a prompt redisplay, so
    local and remote output never interleave.

    Input is not read until the channel is open, and a line that arrives while
    the session is not active is dropped. There is no reconnection.
    """

    DEFAULT_RECEIVE_PREFIX = "[recv] "

    def __init__(
        self,
        identity: str,
        address: Address,
        channel: Optional[DuplexChannel] = None,
        prompt: Optional[LinePrompt] = None,
        receive_prefix: Optional[str] = None,
        on_terminate: Optional[Callable[[], None]] = None,
    ) -> None:
        # validates the identity the same way every outgoing line will
        ChatLine(identity, "")
        self.identity = identity
        self.address = address
        self.channel = channel if channel is not None else DuplexChannel()
        self.prompt = prompt if prompt is not None else LinePrompt()
        self.receive_prefix = (
            self.DEFAULT_RECEIVE_PREFIX if receive_prefix is None else receive_prefix
        )
        self.on_terminate = on_terminate

        self._state = SessionState.IDLE
        self._cancel_scope: Optional[anyio.CancelScope] = None

        self.channel.on_message(self._handle_message)
        self.channel.on_close(self._handle_close)
        self.channel.on_error(self._handle_error)
        self.prompt.on_close(self._handle_input_closed)

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def prompt_text(self) -> str:
        return f"{self.identity}> "

    @property
    def display_address(self) -> str:
        if isinstance(self.address, tuple):
            return "%s:%d" % parse_address(self.address)
        return self.address

    async def run(self) -> SessionState:
        """Connect, chat until either side closes, then return TERMINATED."""
        if self._state is not SessionState.IDLE:
            raise RuntimeError(f"session is already {self._state.value}")

        self._state = SessionState.CONNECTING
        try:
            with anyio.CancelScope() as self._cancel_scope:
                state = await self.channel.connect(self.address)
                if state is ConnectionState.OPEN:
                    await self._chat()
                else:
                    logger.debug("Session ends before activation, channel %s", state)
        finally:
            self._cancel_scope = None
            self._terminate()
            await self.channel.aclose()
        return self._state

    async def _chat(self) -> None:
        self._state = SessionState.ACTIVE
        self.prompt.print_line(f"{self.identity} connected to {self.display_address}")
        async with anyio.create_task_group() as task_group:
            task_group.start_soon(self._run_channel)
            task_group.start_soon(
                self.prompt.start, self.prompt_text, self._handle_line
            )

    async def _run_channel(self) -> None:
        final_state = await self.channel.run()
        logger.debug("Channel finished in state %s", final_state)
        self._terminate()

    def _handle_line(self, line: str) -> None:
        if self._state is not SessionState.ACTIVE:
            logger.debug("Dropping line typed while %s", self._state.value)
            return
        if not is_blank(line):
            try:
                self.channel.send(ChatLine(self.identity, line))
            except ValueError as e:
                self.prompt.print_line(f"Cannot send: {e}")
        self.prompt.redisplay_prompt()

    def _handle_message(self, text: str) -> None:
        self.prompt.print_line(f"{self.receive_prefix}{text}")
        self.prompt.redisplay_prompt()

    def _handle_close(self) -> None:
        if self._state is SessionState.TERMINATED:
            return
        self.prompt.print_line("Connection closed")
        self._terminate()

    def _handle_error(self, error: ChannelError) -> None:
        self.prompt.print_line(f"Channel error: {error}")
        self.prompt.redisplay_prompt()

    def _handle_input_closed(self) -> None:
        logger.debug("Input stream closed")
        self._terminate()

    def _terminate(self) -> None:
        if self._state is SessionState.TERMINATED:
            return
        was_active = self._state is SessionState.ACTIVE
        self._state = SessionState.TERMINATED
        logger.debug("Terminating session for %s", self.identity)
        # an active chat winds down on its own once prompt and channel close
        if not was_active and self._cancel_scope is not None:
            self._cancel_scope.cancel()
        self.prompt.close()
        self.channel.close()
        if self.on_terminate is not None:
            self.on_terminate()
