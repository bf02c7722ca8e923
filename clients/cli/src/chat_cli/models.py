"""Server data models shared by the REST client and the streaming transport."""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

_FRACTION_RE = re.compile(r"\.(\d+)")


def _field(payload: Dict[str, Any], key: str, kind: type, default: Any) -> Any:
    """Read ``key`` the way Go's encoding/json fills a struct.

    Missing or null fields take the zero value; a present field of the wrong
    JSON type is a decode error.
    """

    value = payload.get(key)
    if value is None:
        return default
    if kind is int and isinstance(value, bool):
        raise ValueError(f"{key} must be an integer")
    if not isinstance(value, kind):
        raise ValueError(f"{key} must be {kind.__name__}")
    return value


def _require_object(payload: Any, what: str) -> Dict[str, Any]:
    if not isinstance(payload, dict):
        raise ValueError(f"{what} must be a JSON object")
    return payload


def _require_list(payload: Any, what: str) -> List[Any]:
    if payload is None:
        return []
    if not isinstance(payload, list):
        raise ValueError(f"{what} must be a JSON array")
    return payload


def parse_timestamp(value: str) -> datetime:
    """Parse an RFC 3339 timestamp, truncating sub-microsecond precision."""

    text = value.strip()
    if text.endswith(("Z", "z")):
        text = text[:-1] + "+00:00"
    match = _FRACTION_RE.search(text)
    if match is not None:
        digits = match.group(1)[:6].ljust(6, "0")
        text = text[: match.start()] + "." + digits + text[match.end() :]
    try:
        return datetime.fromisoformat(text)
    except ValueError as exc:
        raise ValueError(f"invalid timestamp {value!r}") from exc


@dataclass(frozen=True)
class User:
    id: int
    username: str
    role: str = ""
    avatar_url: str = ""

    @classmethod
    def from_json(cls, payload: Any) -> "User":
        data = _require_object(payload, "user")
        return cls(
            id=_field(data, "id", int, 0),
            username=_field(data, "username", str, ""),
            role=_field(data, "role", str, ""),
            avatar_url=_field(data, "avatar_url", str, ""),
        )


@dataclass(frozen=True)
class Channel:
    id: int
    name: str
    category_id: int = 0
    position: int = 0

    @classmethod
    def from_json(cls, payload: Any) -> "Channel":
        data = _require_object(payload, "channel")
        return cls(
            id=_field(data, "id", int, 0),
            name=_field(data, "name", str, ""),
            category_id=_field(data, "category_id", int, 0),
            position=_field(data, "position", int, 0),
        )


@dataclass(frozen=True)
class ChannelCategory:
    id: int
    name: str
    position: int = 0
    channels: Tuple[Channel, ...] = ()

    @classmethod
    def from_json(cls, payload: Any) -> "ChannelCategory":
        data = _require_object(payload, "category")
        channels = tuple(Channel.from_json(item) for item in _require_list(data.get("channels"), "channels"))
        return cls(
            id=_field(data, "id", int, 0),
            name=_field(data, "name", str, ""),
            position=_field(data, "position", int, 0),
            channels=channels,
        )


@dataclass(frozen=True)
class Message:
    """A chat message; ``username`` is denormalized so rendering needs no user lookup."""

    id: int
    channel_id: int
    user_id: int
    username: str
    content: str
    created_at: Optional[datetime] = None
    avatar_url: str = ""

    @classmethod
    def from_json(cls, payload: Any) -> "Message":
        data = _require_object(payload, "message")
        raw_created = _field(data, "created_at", str, "")
        return cls(
            id=_field(data, "id", int, 0),
            channel_id=_field(data, "channel_id", int, 0),
            user_id=_field(data, "user_id", int, 0),
            username=_field(data, "username", str, ""),
            content=_field(data, "content", str, ""),
            created_at=parse_timestamp(raw_created) if raw_created else None,
            avatar_url=_field(data, "avatar_url", str, ""),
        )


def parse_users(payload: Any) -> List[User]:
    return [User.from_json(item) for item in _require_list(payload, "users")]


def parse_messages(payload: Any) -> List[Message]:
    return [Message.from_json(item) for item in _require_list(payload, "messages")]


def parse_categories(payload: Any) -> List[ChannelCategory]:
    return [ChannelCategory.from_json(item) for item in _require_list(payload, "categories")]
