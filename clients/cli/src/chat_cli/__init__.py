"""Terminal client for a channel-based chat server."""

from .api_client import ApiError, AuthError, AuthSession, LoadError, SendError, login
from .models import Channel, ChannelCategory, Message, User
from .reducer import reduce
from .session_runtime import ChatSession
from .session_state import ConnectionState, SessionState
from .session_transport import SessionTransport

__all__ = [
    "ApiError",
    "AuthError",
    "AuthSession",
    "LoadError",
    "SendError",
    "login",
    "Channel",
    "ChannelCategory",
    "Message",
    "User",
    "reduce",
    "ChatSession",
    "ConnectionState",
    "SessionState",
    "SessionTransport",
]
