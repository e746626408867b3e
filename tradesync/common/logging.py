from __future__ import annotations

import logging
import re
from typing import Any
from urllib.parse import urlsplit, urlunsplit

URL_TOKEN_RE = re.compile(r"(?:https?|wss?)://[^\s\"'<>]+", re.IGNORECASE)
SECRET_ASSIGNMENT_RE = re.compile(
    r"(?i)((?:api[-_]?key|dapp[-_]?id|private[-_]?key)\s*[:=]\s*)([^\s,;\"'&]+)"
)

_LEVELS = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warning": logging.WARNING,
    "error": logging.ERROR,
    "critical": logging.CRITICAL,
}


def _strip_url_query(match: re.Match[str]) -> str:
    token = match.group(0)
    url = token.rstrip(".,);]}")
    trailing = token[len(url):]
    parts = urlsplit(url)
    if parts.netloc:
        url = urlunsplit((parts.scheme, parts.netloc, parts.path, "", ""))
    return url + trailing


def sanitize_text(value: str) -> str:
    """Drops URL queries and fragments, then masks key and private-key assignments."""
    return SECRET_ASSIGNMENT_RE.sub(r"\1***", URL_TOKEN_RE.sub(_strip_url_query, value))


def sanitize_value(value: Any) -> Any:
    if isinstance(value, str):
        return sanitize_text(value)
    if isinstance(value, dict):
        return {key: sanitize_value(child) for key, child in value.items()}
    if isinstance(value, list):
        return [sanitize_value(item) for item in value]
    return value


def log_event(
    logger: logging.Logger,
    *,
    level: str,
    event: str,
    message: str,
    **fields: Any,
) -> None:
    extra = {"event": sanitize_value(event)}
    extra.update({key: sanitize_value(value) for key, value in fields.items()})
    safe_message = sanitize_text(message)

    if level == "exception":
        logger.exception(safe_message, extra=extra)
        return

    logger.log(_LEVELS.get(level, logging.INFO), safe_message, extra=extra)
