"""In-memory session model mutated only by :mod:`chat_cli.reducer`."""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import Dict, FrozenSet, Iterable, List, Optional, Set

from chat_cli.models import Channel, ChannelCategory, Message


class ConnectionState(enum.Enum):
    CONNECTING = "connecting"
    LIVE = "live"
    ERROR = "error"


def flatten_channels(categories: Iterable[ChannelCategory]) -> List[Channel]:
    """Flatten categories into one channel list ordered by channel position.

    ``sorted`` is stable, so channels sharing a position keep the server order.
    """

    channels: List[Channel] = []
    for category in categories:
        channels.extend(category.channels)
    return sorted(channels, key=lambda channel: channel.position)


@dataclass
class SessionState:
    channels: List[Channel] = field(default_factory=list)
    messages_by_channel: Dict[int, List[Message]] = field(default_factory=dict)
    online_users: FrozenSet[str] = frozenset()
    active_channel_index: Optional[int] = None
    connection_state: ConnectionState = ConnectionState.CONNECTING
    last_error: Optional[str] = None
    notice: Optional[str] = None
    view_dirty: bool = False
    _history_ids: Dict[int, Set[int]] = field(default_factory=dict, repr=False)
    _history_pending: Set[int] = field(default_factory=set, repr=False)

    @property
    def active_channel(self) -> Optional[Channel]:
        if self.active_channel_index is None:
            return None
        return self.channels[self.active_channel_index]

    def is_active(self, channel_id: int) -> bool:
        active = self.active_channel
        return active is not None and active.id == channel_id

    def has_buffer(self, channel_id: int) -> bool:
        return channel_id in self.messages_by_channel

    def request_history(self, channel_id: int, *, force: bool = False) -> bool:
        """Claim a history fetch for a channel with no buffer and none in flight.

        ``force`` claims it even when live messages already created the buffer.
        """

        if channel_id in self._history_pending or (self.has_buffer(channel_id) and not force):
            return False
        self._history_pending.add(channel_id)
        return True

    def history_failed(self, channel_id: int) -> None:
        self._history_pending.discard(channel_id)

    def messages_for(self, channel_id: int) -> List[Message]:
        return list(self.messages_by_channel.get(channel_id, ()))

    def set_channels(self, channels: List[Channel]) -> None:
        self.channels = list(channels)
        self.active_channel_index = 0 if self.channels else None

    def append_message(self, message: Message) -> bool:
        """Append a live message, creating the channel buffer on first use.

        Returns ``False`` when the message was already delivered by the
        channel's history fetch.
        """

        buffer = self.messages_by_channel.setdefault(message.channel_id, [])
        if message.id in self._history_ids.get(message.channel_id, ()):
            return False
        buffer.append(message)
        return True

    def install_history(self, channel_id: int, history: Iterable[Message]) -> None:
        """Install oldest-first history ahead of any live messages already buffered.

        Buffered live messages that the history also contains are dropped from
        the tail, so no message is shown twice and none is lost.
        """

        installed = list(history)
        history_ids = {message.id for message in installed}
        for message in self.messages_by_channel.get(channel_id, ()):
            if message.id not in history_ids:
                installed.append(message)
        self.messages_by_channel[channel_id] = installed
        self._history_ids[channel_id] = history_ids
        self._history_pending.discard(channel_id)

    def select_relative(self, step: int) -> Optional[Channel]:
        if not self.channels or self.active_channel_index is None:
            return None
        self.active_channel_index = (self.active_channel_index + step) % len(self.channels)
        return self.channels[self.active_channel_index]

    def fail(self, reason: str) -> None:
        self.connection_state = ConnectionState.ERROR
        self.last_error = reason
        self.view_dirty = True

    def consume_dirty(self) -> bool:
        dirty = self.view_dirty
        self.view_dirty = False
        return dirty
