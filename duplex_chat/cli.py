"""
Console entry points. None of them take arguments; everything comes from
``DUPLEX_CHAT_*`` environment variables or a ``.env`` file.

    duplex-chat-relay    # terminal 1
    duplex-chat-user1    # terminal 2
    duplex-chat-user2    # terminal 3
"""
import dataclasses
import logging
import sys
from typing import Optional

import anyio

from duplex_chat.appstatus import AppStatus
from duplex_chat.channel import DuplexChannel
from duplex_chat.config import ChatConfig
from duplex_chat.relay import LineRelay
from duplex_chat.session import PeerSession

_log = logging.getLogger(__name__)


async def run_peer(config: ChatConfig) -> None:
    channel = DuplexChannel(
        max_line_bytes=config.max_line_bytes, connect_timeout=config.connect_timeout
    )
    session = PeerSession(config.identity, config.address, channel=channel)
    # an interrupt is the same as the input stream ending
    AppStatus.add_shutdown_callback(session.prompt.close)
    try:
        async with anyio.create_task_group() as task_group:
            task_group.start_soon(AppStatus.listen_for_exit_signal)
            await session.run()
            task_group.cancel_scope.cancel()
    finally:
        AppStatus.remove_shutdown_callback(session.prompt.close)


async def run_relay(config: ChatConfig) -> int:
    """Serve until an exit signal. Returns 1 if the address cannot be bound."""
    relay = LineRelay(max_line_bytes=config.max_line_bytes)
    async with anyio.create_task_group() as task_group:

        async def stop_on_exit_signal() -> None:
            await AppStatus.listen_for_exit_signal()
            task_group.cancel_scope.cancel()

        task_group.start_soon(stop_on_exit_signal)
        try:
            port = await task_group.start(relay.serve, config.host, config.port)
        except OSError as e:
            _log.error("Relay could not listen on %s: %s", config.address, e)
            task_group.cancel_scope.cancel()
            return 1
        print(f"Relay listening on {config.host}:{port}")
    return 0


def _peer_main(identity: Optional[str] = None) -> int:
    config = ChatConfig.from_env()
    if identity is not None:
        config = dataclasses.replace(config, identity=identity)
    config.configure_logging()
    _log.debug("Starting peer %s against %s", config.identity, config.address)
    anyio.run(run_peer, config)
    return 0


def user1() -> None:
    sys.exit(_peer_main("user1"))


def user2() -> None:
    sys.exit(_peer_main("user2"))


def peer() -> None:
    sys.exit(_peer_main())


def relay() -> None:
    config = ChatConfig.from_env()
    config.configure_logging()
    sys.exit(anyio.run(run_relay, config))
