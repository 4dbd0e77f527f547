"""Structured single-line JSON logger with credential redaction.

get_logger(name, redactions=None) returns a stdlib logger whose records carry
an optional structured `data` dict (passed via the `extra` kwarg). Keys that
hold Graph API credentials are replaced with "[redacted]" before formatting;
http(s) URL values (request URLs, paging links) get the same treatment for
their query parameters.
"""
from __future__ import annotations

import json
import logging
import os
from datetime import datetime, timezone
from typing import Iterable
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit


DEFAULT_REDACT_KEYS = ["access_token", "appsecret_proof", "Authorization", "client_secret"]


def redact_query(url: str, keys: Iterable[str] = DEFAULT_REDACT_KEYS) -> str:
    """Replace credential query parameters in `url` with "[redacted]"."""
    kset = {k.lower() for k in keys}
    try:
        parts = urlsplit(url)
    except ValueError:
        return url.split("?", 1)[0]
    if not parts.query:
        return url
    pairs = [
        (k, "[redacted]" if k.lower() in kset else v)
        for k, v in parse_qsl(parts.query, keep_blank_values=True)
    ]
    return urlunsplit(parts._replace(query=urlencode(pairs, safe="[]")))


def _redact_dict(d: dict, keys: Iterable[str]) -> dict:
    out = {}
    kset = {k.lower() for k in keys}
    for k, v in d.items():
        if k.lower() in kset:
            out[k] = "[redacted]"
        elif isinstance(v, dict):
            out[k] = _redact_dict(v, kset)
        elif isinstance(v, str) and v.startswith(("http://", "https://")):
            out[k] = redact_query(v, kset)
        else:
            out[k] = v
    return out


class RedactingFilter(logging.Filter):
    def __init__(self, redactions: Iterable[str] | None = None) -> None:
        super().__init__()
        self.redactions = list(redactions) if redactions is not None else DEFAULT_REDACT_KEYS

    def filter(self, record: logging.LogRecord) -> bool:
        data = getattr(record, "data", None)
        if isinstance(data, dict):
            record.__dict__["data_redacted"] = _redact_dict(data, self.redactions)
        return True


class JSONFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:  # pragma: no cover - formatting
        ts = datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat().replace("+00:00", "Z")
        base = {
            "ts": ts,
            "logger": record.name,
            "level": record.levelname,
            "msg": record.getMessage(),
        }
        data = record.__dict__.get("data_redacted") or record.__dict__.get("data")
        if data is not None:
            base["data"] = data
        try:
            return json.dumps(base, default=str, ensure_ascii=False)
        except (TypeError, ValueError):
            return str(base)


def get_logger(name: str, redactions: Iterable[str] | None = None) -> logging.Logger:
    logger = logging.getLogger(name)
    # Avoid duplicate handlers on repeated calls
    if not logger.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(JSONFormatter())
        handler.addFilter(RedactingFilter(redactions))
        logger.addHandler(handler)
        logger.setLevel(os.getenv("LOG_LEVEL", "INFO").upper())
    else:
        found = any(isinstance(f, RedactingFilter) for h in logger.handlers for f in getattr(h, "filters", []))
        if not found:
            for h in logger.handlers:
                h.addFilter(RedactingFilter(redactions))
    return logger


__all__ = ["get_logger", "redact_query", "RedactingFilter", "JSONFormatter"]
