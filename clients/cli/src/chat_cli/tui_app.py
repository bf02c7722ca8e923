"""Curses front end for a live chat session."""

from __future__ import annotations

import curses
import logging
import os
import textwrap
from dataclasses import dataclass
from typing import Iterable, Optional, Union

from chat_cli.api_client import AuthSession
from chat_cli.config import ClientConfig
from chat_cli.events import Event, SelectNextChannel, SelectPreviousChannel, SubmitMessage
from chat_cli.models import Message
from chat_cli.session_runtime import ChatSession, build_session
from chat_cli.session_state import ConnectionState, SessionState

logger = logging.getLogger(__name__)

USER_PANE_WIDTH = 20
# Columns reserved beside the message pane for the user list and its border.
SIDE_MARGIN = 25
INPUT_POLL_MS = 100
QUIT = "quit"

KeyResult = Union[Event, str, None]


@dataclass(frozen=True)
class Theme:
    """Text attributes for each screen element, resolved once at startup."""

    header: int = 0
    own_message: int = 0
    other_message: int = 0
    system: int = 0
    tab: int = 0
    active_tab: int = 0
    error: int = 0
    user_list_header: int = 0
    online_user: int = 0


PLAIN_THEME = Theme(header=curses.A_BOLD, active_tab=curses.A_REVERSE, error=curses.A_BOLD, user_list_header=curses.A_UNDERLINE)


def build_theme() -> Theme:
    """Allocate colour pairs when the terminal supports them.

    Must run after ``curses.initscr``.
    """

    if not curses.has_colors():
        return PLAIN_THEME
    try:
        curses.start_color()
        curses.use_default_colors()
    except curses.error:
        return PLAIN_THEME
    pairs = {
        1: (curses.COLOR_CYAN, -1),
        2: (curses.COLOR_GREEN, -1),
        3: (curses.COLOR_RED, -1),
        4: (curses.COLOR_WHITE, curses.COLOR_BLACK),
        5: (curses.COLOR_BLACK, curses.COLOR_BLUE),
    }
    try:
        for pair_id, (fg, bg) in pairs.items():
            curses.init_pair(pair_id, fg, bg)
    except curses.error:
        return PLAIN_THEME
    return Theme(
        header=curses.A_BOLD,
        own_message=curses.color_pair(1),
        other_message=0,
        system=curses.color_pair(2) | curses.A_ITALIC,
        tab=curses.color_pair(4),
        active_tab=curses.color_pair(5) | curses.A_BOLD,
        error=curses.color_pair(3) | curses.A_BOLD,
        user_list_header=curses.A_BOLD | curses.A_UNDERLINE,
        online_user=curses.color_pair(2),
    )


@dataclass
class ViewModel:
    """Terminal-local view state; never part of the session state."""

    compose_text: str = ""
    scroll: int = 0
    compose_limit: int = 280

    def type_char(self, char: str) -> None:
        if len(self.compose_text) < self.compose_limit:
            self.compose_text += char

    def backspace(self) -> None:
        self.compose_text = self.compose_text[:-1]


_CHAR_KEYS = {
    "\t": "TAB",
    "\n": "ENTER",
    "\r": "ENTER",
    "\x7f": "BACKSPACE",
    "\x08": "BACKSPACE",
    "\x1b": "ESC",
    "\x03": "CTRL_C",
}


def _normalize_key(key: int | str) -> tuple[str, str | None]:
    """Map a ``get_wch`` result (character or function-key code) to a key name."""

    if isinstance(key, str):
        if key in _CHAR_KEYS:
            return _CHAR_KEYS[key], None
        if key.isprintable():
            return "CHAR", key
        return "UNKNOWN", None
    if key in (curses.KEY_BTAB, 353):  # shift-tab variations
        return "SHIFT_TAB", None
    if key == curses.KEY_ENTER:
        return "ENTER", None
    if key == curses.KEY_BACKSPACE:
        return "BACKSPACE", None
    if key == curses.KEY_UP:
        return "UP", None
    if key == curses.KEY_DOWN:
        return "DOWN", None
    if key == curses.KEY_PPAGE:
        return "PGUP", None
    if key == curses.KEY_NPAGE:
        return "PGDN", None
    if key == curses.KEY_HOME:
        return "HOME", None
    if key == curses.KEY_END:
        return "END", None
    if key == curses.KEY_RESIZE:
        return "RESIZE", None
    return "UNKNOWN", None


def handle_key(view: ViewModel, state: SessionState, name: str, char: str | None = None) -> KeyResult:
    """Translate a key into a reducer event, ``QUIT``, or a local view change."""

    if name in ("ESC", "CTRL_C"):
        return QUIT
    if state.connection_state is not ConnectionState.LIVE:
        return None
    if name == "TAB":
        view.scroll = 0
        return SelectNextChannel()
    if name == "SHIFT_TAB":
        view.scroll = 0
        return SelectPreviousChannel()
    if name == "ENTER":
        text = view.compose_text
        view.compose_text = ""
        view.scroll = 0
        if not text.strip():
            return None
        return SubmitMessage(text)
    if name == "BACKSPACE":
        view.backspace()
    elif name == "CHAR" and char is not None:
        view.type_char(char)
    elif name == "UP":
        view.scroll += 1
    elif name == "DOWN":
        view.scroll = max(0, view.scroll - 1)
    elif name == "PGUP":
        view.scroll += 10
    elif name == "PGDN":
        view.scroll = max(0, view.scroll - 10)
    elif name == "HOME":
        view.scroll = 1 << 30
    elif name == "END":
        view.scroll = 0
    return None


def format_message(message: Message) -> str:
    stamp = message.created_at.strftime("%H:%M") if message.created_at is not None else "--:--"
    return f"[{stamp}] {message.username}: {message.content}"


def message_lines(messages: Iterable[Message], width: int, own_username: str) -> list[tuple[str, bool]]:
    """Wrap messages to ``width``; each line carries whether it is the user's own."""

    lines: list[tuple[str, bool]] = []
    width = max(1, width)
    for message in messages:
        own = message.username == own_username
        for chunk in textwrap.wrap(format_message(message), width) or [""]:
            lines.append((chunk, own))
    return lines


def _visible_lines(entries: Iterable[tuple[str, bool]], height: int, scroll: int) -> list[tuple[str, bool]]:
    collected = list(entries)
    if height <= 0:
        return []
    end = max(0, len(collected) - scroll)
    start = max(0, end - height)
    return collected[start:end]


def _render_text(window: curses.window, y: int, x: int, text: str, attr: int = 0) -> None:
    max_y, max_x = window.getmaxyx()
    if 0 <= y < max_y and 0 <= x < max_x - 1:
        window.addnstr(y, x, text, max_x - x - 1, attr)


def draw_screen(stdscr: curses.window, state: SessionState, view: ViewModel, auth: AuthSession, theme: Theme) -> None:
    stdscr.erase()
    if state.connection_state is ConnectionState.CONNECTING:
        _render_text(stdscr, 0, 0, "Connecting and loading channels...", theme.system)
    elif state.connection_state is ConnectionState.ERROR:
        _render_text(stdscr, 0, 0, f"An error occurred: {state.last_error}", theme.error)
        _render_text(stdscr, 2, 0, "Press Esc or Ctrl+C to exit.")
    else:
        _draw_chat_screen(stdscr, state, view, auth, theme)
    stdscr.refresh()


def _draw_chat_screen(stdscr: curses.window, state: SessionState, view: ViewModel, auth: AuthSession, theme: Theme) -> None:
    max_y, max_x = stdscr.getmaxyx()
    chat_width = max(1, max_x - SIDE_MARGIN)
    pane_top = 2
    pane_height = max(1, max_y - 5)

    _render_text(stdscr, 0, 0, f"Logged in as: {auth.user.username}".ljust(max_x - 1), theme.header)

    x = 0
    for idx, channel in enumerate(state.channels):
        label = f" #{channel.name} "
        attr = theme.active_tab if idx == state.active_channel_index else theme.tab
        _render_text(stdscr, 1, x, label, attr)
        x += len(label) + 1
        if x >= max_x - 1:
            break

    channel = state.active_channel
    lines = message_lines(state.messages_for(channel.id) if channel else [], chat_width, auth.user.username)
    view.scroll = min(view.scroll, max(0, len(lines) - pane_height))
    for offset, (text, own) in enumerate(_visible_lines(lines, pane_height, view.scroll)):
        _render_text(stdscr, pane_top + offset, 0, text, theme.own_message if own else theme.other_message)

    _draw_user_list(stdscr, state, theme, pane_top, max(chat_width, max_x - USER_PANE_WIDTH - 2), pane_height)

    if state.notice:
        _render_text(stdscr, max_y - 3, 0, state.notice, theme.error)
    stdscr.hline(max_y - 2, 0, curses.ACS_HLINE, max(1, max_x - 1))
    prompt = view.compose_text or "Type a message and press Enter..."
    _render_text(stdscr, max_y - 1, 0, f"> {prompt}", 0 if view.compose_text else theme.system)


def _draw_user_list(stdscr: curses.window, state: SessionState, theme: Theme, top: int, left: int, height: int) -> None:
    max_y, _ = stdscr.getmaxyx()
    stdscr.vline(top, left, curses.ACS_VLINE, max(1, min(height, max_y - top)))
    _render_text(stdscr, top, left + 2, "Users Online", theme.user_list_header)
    for offset, username in enumerate(sorted(state.online_users)[: max(0, height - 1)]):
        _render_text(stdscr, top + 1 + offset, left + 2, f"• {username}"[: USER_PANE_WIDTH - 2], theme.online_user)


def run_tui(auth: AuthSession, config: ClientConfig, session: Optional[ChatSession] = None) -> int:
    """Run the chat screen until the user quits."""

    chat = session or build_session(auth, config)
    os.environ.setdefault("ESCDELAY", "25")

    def _runner(stdscr: curses.window) -> None:
        curses.curs_set(0)
        stdscr.keypad(True)
        stdscr.timeout(INPUT_POLL_MS)
        theme = build_theme()
        view = ViewModel(compose_limit=config.compose_limit)
        with chat:
            redraw = True
            while True:
                if chat.drain():
                    redraw = True
                if chat.state.consume_dirty():
                    view.scroll = 0
                    redraw = True
                if redraw:
                    # Rendering can fail during a terminal resize; redraw next tick.
                    try:
                        draw_screen(stdscr, chat.state, view, auth, theme)
                    except curses.error:
                        pass
                    redraw = False

                try:
                    key = stdscr.get_wch()
                except curses.error:
                    continue
                name, char = _normalize_key(key)
                result = handle_key(view, chat.state, name, char)
                redraw = True
                if result == QUIT:
                    logger.info("quit requested")
                    break
                if result is not None and not isinstance(result, str):
                    chat.dispatch(result)

    try:
        curses.wrapper(_runner)
    except KeyboardInterrupt:
        logger.info("interrupted")
    return 0
