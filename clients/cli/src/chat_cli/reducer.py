"""Single-threaded reducer: the only code that mutates :class:`SessionState`."""

from __future__ import annotations

import logging
from typing import List

from chat_cli.events import (
    Command,
    Event,
    FetchHistory,
    FetchTopology,
    HistoryLoaded,
    LoadFailed,
    MessageCreated,
    PresenceChanged,
    SelectNextChannel,
    SelectPreviousChannel,
    SendFailed,
    SendMessage,
    SubmitMessage,
    TopologyFailed,
    TopologyLoaded,
    TransportError,
)
from chat_cli.session_state import ConnectionState, SessionState, flatten_channels

logger = logging.getLogger(__name__)

NO_CHANNELS_ERROR = "no channels found"


def initial_commands() -> List[Command]:
    return [FetchTopology()]


def reduce(state: SessionState, event: Event) -> List[Command]:
    """Apply ``event`` to ``state`` and return the follow-up commands.

    Once the session is in ``ERROR`` every event is ignored; recovery needs a
    new session.
    """

    if state.connection_state is ConnectionState.ERROR:
        logger.debug("ignoring %s in error state", type(event).__name__)
        return []

    if isinstance(event, TopologyLoaded):
        return _on_topology(state, event)
    if isinstance(event, TopologyFailed):
        state.fail(event.reason)
        return []
    if isinstance(event, TransportError):
        state.fail(event.reason)
        return []
    if isinstance(event, MessageCreated):
        state.append_message(event.message)
        if state.is_active(event.message.channel_id):
            state.view_dirty = True
        return []
    if isinstance(event, PresenceChanged):
        state.online_users = frozenset(event.usernames)
        return []

    # Everything below needs the channel topology.
    if state.connection_state is not ConnectionState.LIVE:
        logger.debug("ignoring %s before topology", type(event).__name__)
        return []

    if isinstance(event, HistoryLoaded):
        state.install_history(event.channel_id, event.messages)
        if state.is_active(event.channel_id):
            state.view_dirty = True
        return []
    if isinstance(event, LoadFailed):
        state.history_failed(event.channel_id)
        state.fail(event.reason)
        return []
    if isinstance(event, SendFailed):
        state.notice = f"send failed: {event.reason}"
        return []
    if isinstance(event, SelectNextChannel):
        return _on_select(state, 1)
    if isinstance(event, SelectPreviousChannel):
        return _on_select(state, -1)
    if isinstance(event, SubmitMessage):
        return _on_submit(state, event.text)

    logger.warning("unhandled event %r", event)
    return []


def _on_topology(state: SessionState, event: TopologyLoaded) -> List[Command]:
    if state.connection_state is not ConnectionState.CONNECTING:
        # Topology is fetched once per session.
        return []
    state.set_channels(flatten_channels(event.categories))
    channel = state.active_channel
    if channel is None:
        state.fail(NO_CHANNELS_ERROR)
        return []
    state.connection_state = ConnectionState.LIVE
    state.view_dirty = True
    state.request_history(channel.id, force=True)
    return [FetchHistory(channel.id)]


def _on_select(state: SessionState, step: int) -> List[Command]:
    channel = state.select_relative(step)
    if channel is None:
        return []
    state.view_dirty = True
    if state.request_history(channel.id):
        return [FetchHistory(channel.id)]
    return []


def _on_submit(state: SessionState, text: str) -> List[Command]:
    content = text.strip()
    channel = state.active_channel
    if not content or channel is None:
        return []
    state.notice = None
    return [SendMessage(channel.id, content)]
