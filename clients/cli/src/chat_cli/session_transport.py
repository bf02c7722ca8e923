"""Streaming session transport: one authenticated websocket per session."""

from __future__ import annotations

import asyncio
import json
import logging
import threading
import urllib.parse
from typing import Awaitable, Callable, Dict, Optional, Union

import aiohttp

from chat_cli.events import MessageCreated, PresenceChanged, SessionEvent, TransportError
from chat_cli.models import Message, parse_users
from chat_cli.redact import redact_text

logger = logging.getLogger(__name__)

PING_INTERVAL_S = 25.0
PING_TIMEOUT_S = 10.0
CONNECT_TIMEOUT_S = 10.0
EXPECTED_CLOSE_CODES = frozenset({int(aiohttp.WSCloseCode.OK), int(aiohttp.WSCloseCode.GOING_AWAY)})

_DEFAULT_PORTS = {"ws": 80, "wss": 443}

Emit = Callable[[SessionEvent], None]


def websocket_url(base_url: str, token: str) -> str:
    """Derive the streaming endpoint from the REST base address.

    ``http`` becomes ``ws`` and ``https`` becomes ``wss``; the scheme's default
    port is dropped and the token travels as the ``token`` query parameter.
    """

    parts = urllib.parse.urlsplit(base_url)
    scheme = "wss" if parts.scheme.lower() in ("https", "wss") else "ws"
    host = parts.hostname or ""
    if ":" in host:
        host = f"[{host}]"
    port = parts.port
    netloc = host if port is None or port == _DEFAULT_PORTS[scheme] else f"{host}:{port}"
    query = urllib.parse.urlencode({"token": token})
    return urllib.parse.urlunsplit((scheme, netloc, "/api/ws", query, ""))


def _decode_new_message(payload: object) -> SessionEvent:
    return MessageCreated(Message.from_json(payload))


def _decode_presence(payload: object) -> SessionEvent:
    return PresenceChanged(frozenset(user.username for user in parse_users(payload)))


_DECODERS: Dict[str, Callable[[object], SessionEvent]] = {
    "new_message": _decode_new_message,
    "presence_update": _decode_presence,
}


def decode_frame(raw: Union[str, bytes]) -> Optional[SessionEvent]:
    """Decode one ``{"event": ..., "payload": ...}`` frame.

    Malformed frames, unknown event tags and payloads that do not match their
    tag's schema all yield ``None``.
    """

    try:
        envelope = json.loads(raw)
    except (TypeError, ValueError):
        logger.debug("dropping malformed frame")
        return None
    if not isinstance(envelope, dict):
        logger.debug("dropping non-object frame")
        return None
    tag = envelope.get("event")
    decoder = _DECODERS.get(tag) if isinstance(tag, str) else None
    if decoder is None:
        logger.debug("dropping frame with unknown event %r", tag)
        return None
    try:
        return decoder(envelope.get("payload"))
    except ValueError as exc:
        logger.debug("dropping %s frame: %s", tag, exc)
        return None


class SessionTransport:
    """Holds one websocket, decodes inbound frames and keeps the link alive.

    Writes to the socket come from two tasks (the heartbeat's pings and the
    reader's pong replies) and are serialized through ``_write_lock``.
    """

    def __init__(
        self,
        base_url: str,
        token: str,
        *,
        origin: Optional[str] = None,
        ping_interval_s: float = PING_INTERVAL_S,
        ping_timeout_s: float = PING_TIMEOUT_S,
        connect_timeout_s: float = CONNECT_TIMEOUT_S,
    ) -> None:
        self.base_url = base_url
        self.token = token
        self.origin = origin or base_url
        self.ping_interval_s = ping_interval_s
        self.ping_timeout_s = ping_timeout_s
        self.connect_timeout_s = connect_timeout_s
        self._write_lock: Optional[asyncio.Lock] = None
        self._pong: Optional[asyncio.Event] = None

    async def run(self, emit: Emit) -> None:
        """Connect and emit events until the stream ends.

        At most one :class:`TransportError` is emitted per call. The socket and
        the heartbeat task are released on every exit path, cancellation included.
        """

        if not self.token:
            emit(TransportError("must be logged in to connect"))
            return
        try:
            url = websocket_url(self.base_url, self.token)
        except ValueError as exc:
            emit(TransportError(f"invalid server address: {exc}"))
            return

        self._write_lock = asyncio.Lock()
        self._pong = asyncio.Event()
        timeout = aiohttp.ClientTimeout(total=None, sock_connect=self.connect_timeout_s)
        logger.info("connecting to %s", redact_text(url))
        async with aiohttp.ClientSession(timeout=timeout) as http:
            try:
                ws = await http.ws_connect(url, autoping=False, headers={"Origin": self.origin})
            except (aiohttp.ClientError, asyncio.TimeoutError, OSError) as exc:
                emit(TransportError(f"websocket dial error: {redact_text(str(exc))}"))
                return
            async with ws:
                logger.info("websocket connected")
                failure = await self._serve(ws, emit)
        if failure is not None:
            logger.warning("transport failed: %s", failure)
            emit(TransportError(failure))
        else:
            logger.info("websocket closed")

    async def _serve(self, ws: aiohttp.ClientWebSocketResponse, emit: Emit) -> Optional[str]:
        reader = asyncio.create_task(self._read_loop(ws, emit), name="transport-reader")
        heartbeat = asyncio.create_task(self._heartbeat(ws), name="transport-heartbeat")
        try:
            done, _ = await asyncio.wait({reader, heartbeat}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            for task in (reader, heartbeat):
                task.cancel()
            await asyncio.gather(reader, heartbeat, return_exceptions=True)
        if heartbeat in done:
            return heartbeat.result()
        return reader.result()

    async def _write(self, send: Callable[[], Awaitable[None]]) -> None:
        assert self._write_lock is not None
        async with self._write_lock:
            await send()

    async def _read_loop(self, ws: aiohttp.ClientWebSocketResponse, emit: Emit) -> Optional[str]:
        assert self._pong is not None
        while True:
            msg = await ws.receive()
            if msg.type in (aiohttp.WSMsgType.TEXT, aiohttp.WSMsgType.BINARY):
                event = decode_frame(msg.data)
                if event is not None:
                    emit(event)
            elif msg.type == aiohttp.WSMsgType.PING:
                payload = msg.data or b""
                try:
                    await self._write(lambda: ws.pong(payload))
                except (ConnectionError, RuntimeError, aiohttp.ClientError) as exc:
                    return f"websocket write error: {exc}"
            elif msg.type == aiohttp.WSMsgType.PONG:
                self._pong.set()
            elif msg.type == aiohttp.WSMsgType.CLOSE:
                code = msg.data
                if code in EXPECTED_CLOSE_CODES:
                    return None
                detail = f": {msg.extra}" if msg.extra else ""
                return f"websocket read error: unexpected close {code}{detail}"
            elif msg.type == aiohttp.WSMsgType.CLOSING:
                continue
            elif msg.type == aiohttp.WSMsgType.CLOSED:
                return "websocket read error: connection closed unexpectedly"
            elif msg.type == aiohttp.WSMsgType.ERROR:
                return f"websocket read error: {ws.exception()}"

    async def _heartbeat(self, ws: aiohttp.ClientWebSocketResponse) -> str:
        assert self._pong is not None
        while True:
            await asyncio.sleep(self.ping_interval_s)
            self._pong.clear()
            try:
                await self._write(ws.ping)
            except (ConnectionError, RuntimeError, aiohttp.ClientError) as exc:
                return f"websocket ping failed: {exc}"
            try:
                await asyncio.wait_for(self._pong.wait(), self.ping_timeout_s)
            except asyncio.TimeoutError:
                return f"websocket ping failed: no pong within {self.ping_timeout_s:g}s"


class TransportThread:
    """Runs a :class:`SessionTransport` on a dedicated thread and event loop."""

    def __init__(self, transport: SessionTransport, sink: Emit) -> None:
        self.transport = transport
        self._sink = sink
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._task: Optional[asyncio.Task] = None
        self._ready = threading.Event()
        self.thread = threading.Thread(target=self._runner, name="session-transport", daemon=True)

    def start(self) -> "TransportThread":
        self.thread.start()
        self._ready.wait()
        return self

    def is_alive(self) -> bool:
        return self.thread.is_alive()

    def stop(self, timeout: float = 2.0) -> None:
        loop, task = self._loop, self._task
        if loop is not None and task is not None and not loop.is_closed():
            try:
                loop.call_soon_threadsafe(task.cancel)
            except RuntimeError:
                # The loop shut down between the check and the call.
                pass
        if self.thread.is_alive():
            self.thread.join(timeout)

    def _runner(self) -> None:
        try:
            asyncio.run(self._main())
        finally:
            self._ready.set()

    async def _main(self) -> None:
        self._loop = asyncio.get_running_loop()
        self._task = asyncio.current_task()
        self._ready.set()
        try:
            await self.transport.run(self._sink)
        except asyncio.CancelledError:
            logger.debug("transport cancelled")
        except Exception as exc:
            logger.exception("transport crashed")
            self._sink(TransportError(f"websocket read error: {exc}"))


def start_transport_thread(transport: SessionTransport, sink: Emit) -> TransportThread:
    return TransportThread(transport, sink).start()
