"""Session wiring: one ordered event queue feeding the reducer.

The thread that calls :meth:`ChatSession.dispatch`, :meth:`ChatSession.drain`
or :meth:`ChatSession.pump` owns the :class:`SessionState`. Every other thread
(streaming transport, REST workers) only puts immutable events on the queue.
"""

from __future__ import annotations

import logging
import queue
import threading
from dataclasses import dataclass
from typing import Callable, List, Optional

from chat_cli import api_client, history_loader
from chat_cli.api_client import ApiError, AuthSession
from chat_cli.config import ClientConfig
from chat_cli.events import Command, Event, FetchHistory, FetchTopology, SendFailed, SendMessage
from chat_cli.reducer import initial_commands, reduce
from chat_cli.session_state import SessionState
from chat_cli.session_transport import SessionTransport, TransportThread, start_transport_thread

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RestApi:
    """REST calls used by the session workers; swapped out in tests."""

    fetch_categories: Callable = api_client.fetch_categories
    fetch_messages: Callable = api_client.fetch_messages
    send_message: Callable = api_client.send_message


def default_transport_factory(auth: AuthSession) -> SessionTransport:
    return SessionTransport(auth.base_url, auth.token)


class ChatSession:
    def __init__(
        self,
        auth: AuthSession,
        *,
        api: Optional[RestApi] = None,
        transport_factory: Callable[[AuthSession], SessionTransport] = default_transport_factory,
        start_thread: Callable[[Callable[[], None], str], None] | None = None,
    ) -> None:
        self.auth = auth
        self.api = api or RestApi()
        self.state = SessionState()
        self.events: queue.Queue[Event] = queue.Queue()
        self._transport_factory = transport_factory
        self._start_thread = start_thread or _start_worker_thread
        self._transport: Optional[TransportThread] = None
        self._closed = False

    def __enter__(self) -> "ChatSession":
        self.start()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def start(self) -> None:
        """Start the streaming transport and the initial topology fetch."""

        transport = self._transport_factory(self.auth)
        self._transport = start_transport_thread(transport, self.post)
        self._execute(initial_commands())

    def close(self, timeout: float = 2.0) -> None:
        if self._closed:
            return
        self._closed = True
        if self._transport is not None:
            self._transport.stop(timeout)
            self._transport = None

    def post(self, event: Event) -> None:
        self.events.put(event)

    def dispatch(self, event: Event) -> List[Command]:
        commands = reduce(self.state, event)
        self._execute(commands)
        return commands

    def drain(self, limit: Optional[int] = None) -> int:
        """Dispatch queued events in arrival order without blocking."""

        handled = 0
        while limit is None or handled < limit:
            try:
                event = self.events.get_nowait()
            except queue.Empty:
                break
            self.dispatch(event)
            handled += 1
        return handled

    def pump(self, timeout: Optional[float] = None) -> bool:
        """Block until one event arrives (or ``timeout``) and dispatch it."""

        try:
            event = self.events.get(timeout=timeout)
        except queue.Empty:
            return False
        self.dispatch(event)
        return True

    def _execute(self, commands: List[Command]) -> None:
        for command in commands:
            if isinstance(command, FetchTopology):
                self._spawn(self._fetch_topology, "fetch-topology")
            elif isinstance(command, FetchHistory):
                self._spawn(lambda channel_id=command.channel_id: self._fetch_history(channel_id), f"history-{command.channel_id}")
            elif isinstance(command, SendMessage):
                self._spawn(lambda cmd=command: self._send(cmd), f"send-{command.channel_id}")
            else:
                logger.warning("unknown command %r", command)

    def _spawn(self, target: Callable[[], None], name: str) -> None:
        if self._closed:
            return
        self._start_thread(target, name)

    def _fetch_topology(self) -> None:
        self.events.put(history_loader.load_topology(self.auth, fetch=self.api.fetch_categories))

    def _fetch_history(self, channel_id: int) -> None:
        self.events.put(history_loader.load_history(self.auth, channel_id, fetch=self.api.fetch_messages))

    def _send(self, command: SendMessage) -> None:
        try:
            self.api.send_message(self.auth, command.channel_id, command.content)
        except ApiError as exc:
            logger.warning("send to channel %s failed: %s", command.channel_id, exc)
            self.events.put(SendFailed(command.channel_id, str(exc)))
        except Exception as exc:
            logger.exception("unexpected error sending to channel %s", command.channel_id)
            self.events.put(SendFailed(command.channel_id, str(exc)))


def build_session(auth: AuthSession, config: ClientConfig) -> ChatSession:
    """Session whose transport uses the configured heartbeat timings."""

    def transport_factory(session_auth: AuthSession) -> SessionTransport:
        return SessionTransport(
            session_auth.base_url,
            session_auth.token,
            ping_interval_s=config.ping_interval_s,
            ping_timeout_s=config.ping_timeout_s,
        )

    return ChatSession(auth, transport_factory=transport_factory)


def _start_worker_thread(target: Callable[[], None], name: str) -> None:
    thread = threading.Thread(target=target, name=name, daemon=True)
    thread.start()


def run_inline(target: Callable[[], None], name: str) -> None:
    """Worker starter that runs the job on the calling thread (tests, scripting)."""

    target()
