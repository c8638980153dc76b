from duplex_chat.channel import (
    ChannelConnectionError,
    ChannelError,
    ConnectionState,
    DuplexChannel,
    SendError,
    TransportError,
)
from duplex_chat.line import ChatLine
from duplex_chat.prompt import LinePrompt
from duplex_chat.relay import LineRelay
from duplex_chat.session import PeerSession, SessionState

__all__ = [
    "ChannelConnectionError",
    "ChannelError",
    "ChatLine",
    "ConnectionState",
    "DuplexChannel",
    "LinePrompt",
    "LineRelay",
    "PeerSession",
    "SendError",
    "SessionState",
    "TransportError",
]
__version__ = "0.3.0"
