"""
Typed errors for the Graph API adapter.

Error payloads are classified exactly once, at the HTTP boundary, by
`error_from_response`. Downstream code switches on the exception type (or the
stable `code`/`subcode` fields), never on message text.
"""
from __future__ import annotations

from typing import Any, Mapping

# Graph API "OAuthException" family: invalid/expired access token.
EXPIRED_TOKEN_CODE = 190
# Subcode sent when the session behind the token has expired.
EXPIRED_SESSION_SUBCODE = 463

TOKEN_EXPIRED_GUIDANCE = """\
Access token expired

Your Facebook access token is no longer valid. To fix it:

1. Generate a new token at https://developers.facebook.com/tools/explorer/
   with the Instagram permissions selected.
2. Replace FACEBOOK_ACCESS_TOKEN in your environment and restart the service.
3. Required permissions: instagram_basic, instagram_manage_insights,
   pages_read_engagement, pages_show_list.

Tokens expire on a fixed schedule (about 60 days), not because of request volume.
"""


class GraphAPIError(RuntimeError):
    """Base class for every failure surfaced by the Graph adapter."""

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        code: int | None = None,
        subcode: int | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.code = code
        self.subcode = subcode


class RateLimitExceeded(GraphAPIError):
    """HTTP 429 persisted beyond the retry budget."""


class CredentialExpired(GraphAPIError):
    """The access token was rejected as expired or invalid. Never retried."""

    guidance = TOKEN_EXPIRED_GUIDANCE


class RequestTimeoutError(GraphAPIError):
    """Network-level failure (timeout, reset) persisted beyond the retry budget."""


class RemoteAPIError(GraphAPIError):
    """Any other non-2xx response; `message` is the upstream text verbatim."""


class ConfigurationError(RuntimeError):
    """Required account or credential identifiers are missing."""


def _as_int(value: Any) -> int | None:
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def is_expired_credential(code: int | None, subcode: int | None) -> bool:
    return code == EXPIRED_TOKEN_CODE or subcode == EXPIRED_SESSION_SUBCODE


def error_from_response(status_code: int, body: Any, *, reason: str = "") -> GraphAPIError:
    """Map a non-2xx Graph response to a typed error.

    `body` is the decoded JSON body (or None when the body was not JSON).
    """
    error = body.get("error") if isinstance(body, Mapping) else None
    if not isinstance(error, Mapping):
        error = {}
    code = _as_int(error.get("code"))
    subcode = _as_int(error.get("error_subcode"))
    message = error.get("message") or f"API error: {status_code}{(' - ' + reason) if reason else ''}"

    if is_expired_credential(code, subcode):
        return CredentialExpired(str(message), status_code=status_code, code=code, subcode=subcode)
    if status_code == 429:
        return RateLimitExceeded(str(message), status_code=status_code, code=code, subcode=subcode)
    return RemoteAPIError(str(message), status_code=status_code, code=code, subcode=subcode)


__all__ = [
    "GraphAPIError",
    "RateLimitExceeded",
    "CredentialExpired",
    "RequestTimeoutError",
    "RemoteAPIError",
    "ConfigurationError",
    "error_from_response",
    "is_expired_credential",
    "TOKEN_EXPIRED_GUIDANCE",
]
