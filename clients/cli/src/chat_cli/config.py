"""Client configuration and logging setup."""

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

from chat_cli.redact import RedactingFilter

DEFAULT_SERVER_URL = "http://localhost:8081"
DEFAULT_SETTINGS_FILE = Path.home() / ".channel_chat" / "settings.json"
LOG_FORMAT = "%(asctime)s %(levelname)s %(threadName)s %(name)s: %(message)s"

ENV_SERVER_URL = "CHAT_SERVER_URL"
ENV_LOG_FILE = "CHAT_LOG_FILE"
ENV_LOG_LEVEL = "CHAT_LOG_LEVEL"


@dataclass(frozen=True)
class ClientConfig:
    server_url: str = DEFAULT_SERVER_URL
    http_timeout_s: float = 10.0
    ping_interval_s: float = 25.0
    ping_timeout_s: float = 10.0
    compose_limit: int = 280
    log_file: Optional[str] = None
    log_level: str = "INFO"


def load_settings(path: Path | str = DEFAULT_SETTINGS_FILE) -> Dict[str, Any]:
    """Load persisted settings from disk if present."""

    try:
        data = json.loads(Path(path).expanduser().read_text(encoding="utf-8"))
    except FileNotFoundError:
        return {}
    except (json.JSONDecodeError, UnicodeDecodeError):
        return {}
    if not isinstance(data, dict):
        return {}
    return data


def _coerce(settings: Mapping[str, Any], key: str, kind: type, default: Any) -> Any:
    value = settings.get(key)
    if value is None:
        return default
    try:
        return kind(value)
    except (TypeError, ValueError):
        return default


def load_config(
    *,
    server_url: Optional[str] = None,
    log_file: Optional[str] = None,
    log_level: Optional[str] = None,
    environ: Optional[Mapping[str, str]] = None,
    settings_path: Path | str = DEFAULT_SETTINGS_FILE,
) -> ClientConfig:
    """Resolve configuration: explicit arguments, then environment, then settings file."""

    env = os.environ if environ is None else environ
    settings = load_settings(settings_path)
    base = ClientConfig()
    config = ClientConfig(
        server_url=_coerce(settings, "server_url", str, base.server_url),
        http_timeout_s=_coerce(settings, "http_timeout_s", float, base.http_timeout_s),
        ping_interval_s=_coerce(settings, "ping_interval_s", float, base.ping_interval_s),
        ping_timeout_s=_coerce(settings, "ping_timeout_s", float, base.ping_timeout_s),
        compose_limit=_coerce(settings, "compose_limit", int, base.compose_limit),
        log_file=_coerce(settings, "log_file", str, base.log_file),
        log_level=_coerce(settings, "log_level", str, base.log_level),
    )
    overrides: Dict[str, Any] = {}
    for field_name, env_key, explicit in (
        ("server_url", ENV_SERVER_URL, server_url),
        ("log_file", ENV_LOG_FILE, log_file),
        ("log_level", ENV_LOG_LEVEL, log_level),
    ):
        value = explicit if explicit else env.get(env_key)
        if value:
            overrides[field_name] = value
    return replace(config, **overrides)


def configure_logging(config: ClientConfig) -> logging.Logger:
    """Route ``chat_cli`` logs to the configured file.

    curses owns the terminal while the client runs, so without a log file the
    records are discarded.
    """

    root = logging.getLogger("chat_cli")
    for handler in list(root.handlers):
        root.removeHandler(handler)
        handler.close()
    root.propagate = False
    if not config.log_file:
        root.addHandler(logging.NullHandler())
        return root
    handler = logging.FileHandler(Path(config.log_file).expanduser(), encoding="utf-8")
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    handler.addFilter(RedactingFilter())
    root.addHandler(handler)
    root.setLevel(getattr(logging, config.log_level.upper(), logging.INFO))
    logging.getLogger("asyncio").setLevel(logging.ERROR)
    return root
