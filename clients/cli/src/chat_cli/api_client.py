"""Minimal stdlib REST client for the chat server."""

from __future__ import annotations

import json
import logging
import urllib.error
import urllib.request
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from chat_cli.models import ChannelCategory, Message, User, parse_categories, parse_messages
from chat_cli.redact import redact_mapping

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_S = 10.0


class ApiError(Exception):
    def __init__(self, message: str, *, status: Optional[int] = None):
        self.status = status
        super().__init__(message)


class AuthError(ApiError):
    """Credentials were rejected; the caller should prompt again."""


class LoadError(ApiError):
    """Topology or history could not be fetched."""


class SendError(ApiError):
    """A message submission was not accepted."""


@dataclass(frozen=True)
class AuthSession:
    base_url: str
    token: str
    user: User
    timeout_s: float = DEFAULT_TIMEOUT_S


def _build_url(base_url: str, path: str) -> str:
    return f"{base_url.rstrip('/')}{path}"


def _status_text(code: int, reason: str) -> str:
    return f"{code} {reason}".strip()


def _read_error_body(exc: urllib.error.HTTPError) -> str:
    try:
        return exc.read().decode("utf-8", errors="replace").strip()
    except Exception:
        return ""


def _request(
    method: str,
    url: str,
    *,
    payload: Optional[Dict[str, object]] = None,
    token: Optional[str] = None,
    timeout_s: float = DEFAULT_TIMEOUT_S,
) -> tuple[int, str]:
    headers: Dict[str, str] = {}
    data = None
    if payload is not None:
        data = json.dumps(payload).encode("utf-8")
        headers["Content-Type"] = "application/json"
    if token is not None:
        headers["Authorization"] = f"Bearer {token}"
    request = urllib.request.Request(url, data=data, headers=headers, method=method)
    logger.debug("%s %s %s", method, url, redact_mapping(payload) if payload is not None else "")
    with urllib.request.urlopen(request, timeout=timeout_s) as response:
        raw = response.read().decode("utf-8")
        return response.status, raw


def _decode_json(raw: str) -> Any:
    return json.loads(raw) if raw else None


def login(base_url: str, username: str, password: str, *, timeout_s: float = DEFAULT_TIMEOUT_S) -> AuthSession:
    """Exchange credentials for a session token.

    The server answers with the user's fields and ``token`` in one flat object.
    """

    url = _build_url(base_url, "/api/login")
    try:
        status, raw = _request(
            "POST",
            url,
            payload={"username": username, "password": password},
            timeout_s=timeout_s,
        )
    except urllib.error.HTTPError as exc:
        raise AuthError(f"login failed with status: {_status_text(exc.code, exc.reason)}", status=exc.code) from exc
    except (urllib.error.URLError, OSError) as exc:
        raise ApiError(f"could not reach server: {exc}") from exc
    if status != 200:
        raise AuthError(f"login failed with status: {status}", status=status)
    try:
        body = _decode_json(raw)
        user = User.from_json(body)
    except ValueError as exc:
        raise AuthError(f"failed to decode login response: {exc}", status=status) from exc
    token = body.get("token") if isinstance(body, dict) else None
    if not isinstance(token, str) or not token:
        raise AuthError("login successful, but no token was received from server", status=status)
    return AuthSession(base_url=base_url, token=token, user=user, timeout_s=timeout_s)


def _get_authenticated(session: AuthSession, path: str) -> Any:
    url = _build_url(session.base_url, path)
    try:
        status, raw = _request("GET", url, token=session.token, timeout_s=session.timeout_s)
    except urllib.error.HTTPError as exc:
        raise LoadError(f"GET {path} failed with status: {_status_text(exc.code, exc.reason)}", status=exc.code) from exc
    except (urllib.error.URLError, OSError) as exc:
        raise LoadError(f"GET {path} failed: {exc}") from exc
    try:
        return _decode_json(raw)
    except ValueError as exc:
        raise LoadError(f"GET {path} returned invalid JSON: {exc}", status=status) from exc


def fetch_categories(session: AuthSession) -> List[ChannelCategory]:
    payload = _get_authenticated(session, "/api/categories")
    try:
        return parse_categories(payload)
    except ValueError as exc:
        raise LoadError(f"failed to decode categories: {exc}") from exc


def fetch_messages(session: AuthSession, channel_id: int) -> List[Message]:
    """Return a channel's history oldest-first.

    The server lists messages newest-first; callers rely on the reversed order
    because channel buffers are append-only.
    """

    payload = _get_authenticated(session, f"/api/channels/{channel_id}/messages")
    try:
        messages = parse_messages(payload)
    except ValueError as exc:
        raise LoadError(f"failed to decode messages for channel {channel_id}: {exc}") from exc
    messages.reverse()
    return messages


def send_message(session: AuthSession, channel_id: int, content: str) -> None:
    """Post a message; the server infers the author from the bearer token."""

    url = _build_url(session.base_url, "/api/messages")
    try:
        status, raw = _request(
            "POST",
            url,
            payload={"channel_id": channel_id, "content": content},
            token=session.token,
            timeout_s=session.timeout_s,
        )
    except urllib.error.HTTPError as exc:
        body = _read_error_body(exc)
        raise SendError(
            f"failed to send message: {_status_text(exc.code, exc.reason)} - {body}", status=exc.code
        ) from exc
    except (urllib.error.URLError, OSError) as exc:
        raise SendError(f"failed to send message: {exc}") from exc
    if status != 201:
        raise SendError(f"failed to send message: {status} - {raw.strip()}", status=status)
