"""Immutable event and command values exchanged with the session reducer.

Producers (the streaming transport, REST workers and the terminal input loop)
only ever hand these values to the reducer; none of them touch session state.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import FrozenSet, Tuple, Union

from chat_cli.models import ChannelCategory, Message


# Streaming transport events.


@dataclass(frozen=True)
class MessageCreated:
    message: Message


@dataclass(frozen=True)
class PresenceChanged:
    usernames: FrozenSet[str]


@dataclass(frozen=True)
class TransportError:
    reason: str


# REST worker results.


@dataclass(frozen=True)
class TopologyLoaded:
    categories: Tuple[ChannelCategory, ...]


@dataclass(frozen=True)
class TopologyFailed:
    reason: str


@dataclass(frozen=True)
class HistoryLoaded:
    channel_id: int
    messages: Tuple[Message, ...]


@dataclass(frozen=True)
class LoadFailed:
    channel_id: int
    reason: str


@dataclass(frozen=True)
class SendFailed:
    channel_id: int
    reason: str


# User input.


@dataclass(frozen=True)
class SelectNextChannel:
    pass


@dataclass(frozen=True)
class SelectPreviousChannel:
    pass


@dataclass(frozen=True)
class SubmitMessage:
    text: str


# Commands returned by the reducer for the runtime to execute.


@dataclass(frozen=True)
class FetchTopology:
    pass


@dataclass(frozen=True)
class FetchHistory:
    channel_id: int


@dataclass(frozen=True)
class SendMessage:
    channel_id: int
    content: str


SessionEvent = Union[MessageCreated, PresenceChanged, TransportError]
Event = Union[
    MessageCreated,
    PresenceChanged,
    TransportError,
    TopologyLoaded,
    TopologyFailed,
    HistoryLoaded,
    LoadFailed,
    SendFailed,
    SelectNextChannel,
    SelectPreviousChannel,
    SubmitMessage,
]
Command = Union[FetchTopology, FetchHistory, SendMessage]
