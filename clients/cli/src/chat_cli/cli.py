"""Command line entry point: log in, then hand the terminal to the chat screen."""

from __future__ import annotations

import argparse
import getpass
import logging
from typing import Callable, Optional, TextIO

from chat_cli import api_client
from chat_cli.api_client import ApiError, AuthSession
from chat_cli.config import ClientConfig, configure_logging, load_config
from chat_cli.session_runtime import build_session
from chat_cli.tui_app import run_tui

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="channel-chat", description="Terminal client for a channel chat server")
    parser.add_argument("--server", help="server base URL (default: http://localhost:8081)")
    parser.add_argument("--username", help="log in as this user instead of prompting")
    parser.add_argument("--password", help="password for --username; prompted when omitted")
    parser.add_argument("--log-file", help="write client logs to this file")
    parser.add_argument("--log-level", help="log level for --log-file (default: INFO)")
    return parser


def _emit(stream: TextIO | None, message: str) -> None:
    if stream is None:
        print(message)
    else:
        stream.write(message + "\n")


def prompt_login(
    config: ClientConfig,
    *,
    username: Optional[str] = None,
    password: Optional[str] = None,
    read_line: Optional[Callable[[str], str]] = None,
    read_secret: Optional[Callable[[str], str]] = None,
    login: Optional[Callable[..., AuthSession]] = None,
    output: TextIO | None = None,
) -> AuthSession:
    """Prompt until the server accepts the credentials.

    The username is kept across failed attempts; only the password is asked
    for again. EOF or Ctrl-C at a prompt propagate to the caller.
    """

    read_line = read_line or input
    read_secret = read_secret or getpass.getpass
    login = login or api_client.login
    username = (username or "").strip()
    while True:
        while not username:
            username = read_line("Enter username: ").strip()
        if not password:
            password = read_secret("Enter password: ")
        try:
            return login(config.server_url, username, password, timeout_s=config.http_timeout_s)
        except ApiError as exc:
            logger.info("login failed for %s: %s", username, exc)
            _emit(output, f"Login failed: {exc}. Please try again.")
            password = None


def main(argv: list[str] | None = None, output: TextIO | None = None) -> int:
    args = build_parser().parse_args(argv)
    config = load_config(server_url=args.server, log_file=args.log_file, log_level=args.log_level)
    configure_logging(config)

    _emit(output, f"Attempting to connect to server at {config.server_url}")
    try:
        auth = prompt_login(config, username=args.username, password=args.password, output=output)
    except (EOFError, KeyboardInterrupt):
        _emit(output, "")
        return 1
    _emit(output, "Login successful! Starting chat...")
    logger.info("logged in as %s (id %s)", auth.user.username, auth.user.id)

    code = run_tui(auth, config, session=build_session(auth, config))
    _emit(output, "Goodbye!")
    return code


if __name__ == "__main__":  # pragma: no cover - convenience execution
    raise SystemExit(main())
