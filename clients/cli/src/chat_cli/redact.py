"""Redaction helpers keeping session tokens and passwords out of logs."""

from __future__ import annotations

import logging
import re
from typing import Any

SENSITIVE_KEYS = {"token", "password", "authorization"}

_KEY_VALUE_RE = re.compile(
    r"([\"']?(?:token|password)[\"']?\s*[:=]\s*[\"']?)([^\"'\s,}&]+)",
    flags=re.IGNORECASE,
)
_BEARER_RE = re.compile(r"(Bearer\s+)([^\s]+)", flags=re.IGNORECASE)
_QUERY_RE = re.compile(r"([?&]token=)([^&#\s]+)", flags=re.IGNORECASE)


def redact_text(text: str) -> str:
    """Redact bearer tokens, ``token=`` query values and credential fields."""

    rendered = str(text)
    rendered = _BEARER_RE.sub(r"\1[REDACTED]", rendered)
    rendered = _QUERY_RE.sub(r"\1[REDACTED]", rendered)
    rendered = _KEY_VALUE_RE.sub(r"\1[REDACTED]", rendered)
    return rendered


def redact_mapping(obj: dict[str, Any]) -> dict[str, Any]:
    """Deep redact mapping values for known sensitive keys."""

    redacted: dict[str, Any] = {}
    for key, value in obj.items():
        if str(key).lower() in SENSITIVE_KEYS:
            redacted[key] = "[REDACTED]"
        elif isinstance(value, dict):
            redacted[key] = redact_mapping(value)
        elif isinstance(value, list):
            redacted[key] = [redact_mapping(item) if isinstance(item, dict) else item for item in value]
        else:
            redacted[key] = value
    return redacted


class RedactingFilter(logging.Filter):
    """Rewrites each record's rendered message through :func:`redact_text`."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.msg = redact_text(record.getMessage())
        record.args = None
        return True
