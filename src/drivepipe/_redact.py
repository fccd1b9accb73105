"""Helpers for safe debug logging.

Three kinds of value show up in drivepipe's DEBUG logs and need scrubbing:

* oracle request headers carry the API key (``x-goog-api-key``);
* export job results carry signed download URLs whose ``signature``
  query parameter grants read access to the blob;
* prompts, oracle replies and change-event bodies can embed whole sensor
  columns, so long strings are truncated and long arrays summarized.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from typing import Any
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

REDACTED = "<redacted>"

_SECRET_KEYS: frozenset[str] = frozenset(
    {
        "x-goog-api-key",
        "authorization",
        "apikey",
        "api_key",
        "oracle_api_key",
        "password",
        "signing_secret",
        "signature",
    }
)

_URL_SECRET_PARAMS: frozenset[str] = frozenset({"signature"})


def redact_url(url: str) -> str:
    """Blank the signature of a signed URL, keeping path and expiry readable."""
    parts = urlsplit(url)
    if not parts.query:
        return url
    query = [
        (name, REDACTED if name in _URL_SECRET_PARAMS else value)
        for name, value in parse_qsl(parts.query, keep_blank_values=True)
    ]
    return urlunsplit(parts._replace(query=urlencode(query, safe="<>")))


def redact_for_log(value: Any, *, max_string: int = 512, max_items: int = 32) -> Any:
    """Return a copy of *value* that is safe and compact enough to log.

    Parameters
    ----------
    value
        Any JSON-like structure (headers, oracle body, document snapshot).
    max_string : int
        Strings longer than this are cut and marked ``<truncated>``.
    max_items : int
        Sequences longer than this (typically sensor columns) are replaced
        by their first few items and a count.
    """
    return _scrub(value, max_string=max_string, max_items=max_items, depth=0)


def _scrub(value: Any, *, max_string: int, max_items: int, depth: int) -> Any:
    if depth > 20:
        return "<max-depth>"
    match value:
        case None | bool() | int() | float():
            return value
        case str() if "signature=" in value:
            return _truncate(redact_url(value), max_string)
        case str():
            return _truncate(value, max_string)
        case bytes() | bytearray():
            return f"<bytes:{len(value)}b>"
        case Mapping():
            return {
                str(k): REDACTED
                if str(k).lower() in _SECRET_KEYS
                else _scrub(v, max_string=max_string, max_items=max_items, depth=depth + 1)
                for k, v in value.items()
            }
        case Sequence():
            head = [
                _scrub(v, max_string=max_string, max_items=max_items, depth=depth + 1)
                for v in value[:max_items]
            ]
            if len(value) > max_items:
                head.append(f"<+{len(value) - max_items} items>")
            return head
    return repr(value)


def _truncate(text: str, limit: int) -> str:
    if len(text) > limit:
        return f"{text[:limit]}…<truncated>"
    return text
