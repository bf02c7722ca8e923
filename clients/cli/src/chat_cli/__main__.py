"""Thin runnable wrapper for the chat client."""

from chat_cli.cli import main

if __name__ == "__main__":
    raise SystemExit(main())
