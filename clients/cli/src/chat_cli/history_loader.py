"""One-shot REST loads that produce a single reducer event each."""

from __future__ import annotations

import logging
from typing import Callable, List, Union

from chat_cli import api_client
from chat_cli.api_client import ApiError, AuthSession
from chat_cli.events import HistoryLoaded, LoadFailed, TopologyFailed, TopologyLoaded
from chat_cli.models import ChannelCategory, Message

logger = logging.getLogger(__name__)

FetchMessages = Callable[[AuthSession, int], List[Message]]
FetchCategories = Callable[[AuthSession], List[ChannelCategory]]


def load_history(
    session: AuthSession,
    channel_id: int,
    fetch: FetchMessages = api_client.fetch_messages,
) -> Union[HistoryLoaded, LoadFailed]:
    try:
        messages = fetch(session, channel_id)
    except ApiError as exc:
        logger.warning("history load for channel %s failed: %s", channel_id, exc)
        return LoadFailed(channel_id, f"failed to load history: {exc}")
    except Exception as exc:
        logger.exception("unexpected error loading history for channel %s", channel_id)
        return LoadFailed(channel_id, f"failed to load history: {exc}")
    logger.debug("loaded %d messages for channel %s", len(messages), channel_id)
    return HistoryLoaded(channel_id, tuple(messages))


def load_topology(
    session: AuthSession,
    fetch: FetchCategories = api_client.fetch_categories,
) -> Union[TopologyLoaded, TopologyFailed]:
    try:
        categories = fetch(session)
    except ApiError as exc:
        logger.warning("category fetch failed: %s", exc)
        return TopologyFailed(f"failed to load channels: {exc}")
    except Exception as exc:
        logger.exception("unexpected error loading categories")
        return TopologyFailed(f"failed to load channels: {exc}")
    return TopologyLoaded(tuple(categories))
