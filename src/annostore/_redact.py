"""Helpers for safe logging.

annostore handles a shared API key and backend URLs that may embed a
password. This module provides small utilities to redact them before
they reach the logs.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any
from urllib.parse import urlsplit, urlunsplit

_SENSITIVE_VALUE_KEYS: frozenset[str] = frozenset(
    {
        "api_key",
        "apikey",
        "x-api-key",
        "password",
        "authorization",
        "cookie",
    }
)


def redact_url(url: str | None) -> str | None:
    """Return *url* with any userinfo password replaced by ``***``."""
    if not url:
        return url
    parts = urlsplit(url)
    if parts.password is None:
        return url
    user = parts.username or ""
    host = parts.hostname or ""
    if parts.port is not None:
        host = f"{host}:{parts.port}"
    netloc = f"{user}:***@{host}"
    return urlunsplit((parts.scheme, netloc, parts.path, parts.query, parts.fragment))


def redact_for_log(value: Mapping[str, Any]) -> dict[str, Any]:
    """Return a copy of *value* with secret-bearing keys masked and URLs redacted."""
    redacted: dict[str, Any] = {}
    for k, v in value.items():
        key = str(k)
        if key.lower() in _SENSITIVE_VALUE_KEYS:
            redacted[key] = None if v is None else "<redacted>"
        elif isinstance(v, str) and "://" in v:
            redacted[key] = redact_url(v)
        else:
            redacted[key] = v
    return redacted
