"""
Structured logging configuration for native-prebuild.

Provides JSON or human-readable log lines with:
- Credential filtering (tokens, authorization headers never logged)
- Signed-URL scrubbing (query strings removed from download URLs)
- Bounded extra fields (long lists summarized)

Usage:
    from nativeprebuild.logging_config import setup_logging, get_logger

    setup_logging(json_format=False)  # Call once at startup
    logger = get_logger(__name__)
    logger.info("Downloading artifact", extra={"url": url, "size": 1234})
"""

from __future__ import annotations

import logging
import re
import sys
from datetime import UTC, datetime
from typing import Any, TextIO
from urllib.parse import urlsplit, urlunsplit

import orjson

MAX_DEPTH = 3
MAX_LIST_ITEMS = 10

# Release downloads redirect to object storage URLs whose query string
# carries a signature; strip it wherever a URL shows up in text.
_URL_PATTERN = re.compile(r"(https?://[^\s\"'<>]+)")
_SENSITIVE_PATTERNS: list[tuple[re.Pattern[str], str]] = [
    (re.compile(r"\b(bearer|token)[=:\s]+['\"]?[\w\-\.]+['\"]?", re.I), "[TOKEN]"),
    (re.compile(r"(authorization)[=:\s]+['\"]?[\w\-\.\s]+['\"]?", re.I), "[AUTH]"),
    (re.compile(r"\bgh[pousr]_[A-Za-z0-9]{20,}\b"), "[TOKEN]"),
]

# Fields that should never appear in logs
BLOCKED_FIELDS: frozenset[str] = frozenset(
    {
        "token",
        "github_token",
        "password",
        "secret",
        "authorization",
        "auth",
        "bearer",
        "credential",
        "cookie",
    }
)

# Fields whose raw value is replaced by a placeholder
REDACTED_FIELDS: dict[str, str] = {
    "body": "[BODY]",
    "headers": "[HEADERS]",
    "payload": "[PAYLOAD]",
}

# Attributes every LogRecord has; anything else came in through extra=
_RECORD_ATTRS: frozenset[str] = frozenset(vars(logging.makeLogRecord({}))) | {"message", "asctime"}


def _strip_query(url: str) -> str:
    """Keep scheme, host and path of a URL; drop query and fragment."""
    scheme, netloc, path, _, _ = urlsplit(url)
    return urlunsplit((scheme, netloc, path, "", ""))


def _sanitize_text(text: str) -> str:
    """Scrub signed query strings and credentials out of free text."""
    if not text:
        return text
    text = _URL_PATTERN.sub(lambda m: _strip_query(m.group(1)), text)
    for pattern, placeholder in _SENSITIVE_PATTERNS:
        text = pattern.sub(placeholder, text)
    return text


def _is_blocked(key: str) -> bool:
    lowered = key.lower()
    return any(name in lowered for name in BLOCKED_FIELDS)


def _scrub(value: Any, depth: int) -> Any:
    if value is None or isinstance(value, (bool, int, float)):
        return value
    if isinstance(value, str):
        return _sanitize_text(value)
    if isinstance(value, dict):
        return _filter_log_record(value, _depth=depth + 1)
    if isinstance(value, (list, tuple, set, frozenset)):
        if len(value) > MAX_LIST_ITEMS:
            return f"[list:{len(value)} items]"
        return [_sanitize_text(str(item)) for item in value]
    return _sanitize_text(str(value))


def _filter_log_record(record: dict[str, Any], *, _depth: int = 0) -> dict[str, Any]:
    """Drop credential fields and scrub the rest of a record's extras.

    Nested mappings are filtered the same way, down to MAX_DEPTH levels.
    """
    if _depth > MAX_DEPTH:
        return {"_truncated": "max depth exceeded"}

    filtered: dict[str, Any] = {}
    for key, value in record.items():
        if _is_blocked(key):
            continue
        placeholder = REDACTED_FIELDS.get(key.lower())
        filtered[key] = placeholder if placeholder is not None else _scrub(value, _depth)
    return filtered


def _extras(record: logging.LogRecord) -> dict[str, Any]:
    """Fields passed through `extra=`, already filtered."""
    raw = {k: v for k, v in vars(record).items() if k not in _RECORD_ATTRS}
    return _filter_log_record(raw) if raw else {}


class JsonFormatter(logging.Formatter):
    """One JSON object per line, for CI systems that collect install logs.

    Example:
        {"ts":"2024-05-01T12:00:00.000+00:00","level":"INFO","logger":"nativeprebuild.orchestrator","msg":"Selected binary","asset":"..."}
    """

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, tz=UTC).isoformat(timespec="milliseconds"),
            "level": record.levelname,
            "logger": record.name,
            "msg": _sanitize_text(record.getMessage()),
        }
        # Source location only where someone will go looking for it
        if record.levelno >= logging.WARNING:
            entry["file"] = record.filename
            entry["line"] = record.lineno
        if record.exc_info:
            entry["exc"] = _sanitize_text(self.formatException(record.exc_info))

        entry.update(_extras(record))
        return orjson.dumps(entry, default=str).decode()


class SimpleFormatter(logging.Formatter):
    """Single-line output for terminals and pip's build log."""

    def format(self, record: logging.LogRecord) -> str:
        line = f"{record.levelname:<8} {record.name}: {_sanitize_text(record.getMessage())}"

        extras = _extras(record)
        if extras:
            line += " | " + " ".join(f"{key}={value}" for key, value in extras.items())
        if record.exc_info:
            line += "\n" + _sanitize_text(self.formatException(record.exc_info))
        return line


def setup_logging(
    *,
    level: int | str = logging.INFO,
    json_format: bool = False,
    stream: TextIO | None = None,
) -> None:
    """Install a single root handler.

    Args:
        level: Root log level.
        json_format: JSON lines instead of the terminal format.
        stream: Destination, stderr when omitted.
    """
    handler = logging.StreamHandler(stream or sys.stderr)
    handler.setFormatter(JsonFormatter() if json_format else SimpleFormatter())

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(level)

    for noisy in ("aiohttp", "asyncio"):
        logging.getLogger(noisy).setLevel(logging.WARNING)


def get_logger(name: str) -> logging.Logger:
    """Module logger, `get_logger(__name__)`."""
    return logging.getLogger(name)
