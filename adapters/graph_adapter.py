"""
Facebook Graph API adapter: cached, paginated, rate-limit-aware GETs.

`GraphFetcher.fetch` returns the concatenated `data` items of every page of an
endpoint. Results are written to the injected DiskCache and served from it on
later calls unless `force_refresh` is set. Retry and pagination bookkeeping
lives in `fetch_state`; this module only performs I/O and sleeps.

The HTTP client is an injectable `httpx.Client` so tests can use
`httpx.MockTransport`; sleeping goes through an injectable `sleeper`.
"""
from __future__ import annotations

import time
from typing import Any, Callable, Dict, List, Mapping, Optional

import httpx

from engine.cache.disk_cache import DiskCache, make_cache_key
from engine.utils.logging import get_logger

from . import fetch_state
from .fetch_state import FetchState, Phase, Retryable
from .graph_errors import (
    ConfigurationError,
    CredentialExpired,
    GraphAPIError,
    RemoteAPIError,
    RequestTimeoutError,
    error_from_response,
)

_log = get_logger("adapters.graph")


def redact_url(url: str) -> str:
    """Drop credentials from a URL before it is logged."""
    try:
        return str(httpx.URL(url).copy_remove_param("access_token").copy_remove_param("appsecret_proof"))
    except httpx.InvalidURL:
        return url.split("?", 1)[0]


def _decode(response: httpx.Response) -> Any:
    try:
        return response.json()
    except ValueError:
        return None


class GraphFetcher:
    """Rate-limited, paginated, cached GET client for the Graph API."""

    BASE_URL = "https://graph.facebook.com/v23.0"

    def __init__(
        self,
        access_token: Optional[str],
        *,
        cache: DiskCache,
        http_client: Optional[httpx.Client] = None,
        base_url: Optional[str] = None,
        max_retries: int = 3,
        initial_delay: float = 1.0,
        max_pages: int = 20,
        timeout_seconds: float = 60.0,
        object_timeout_seconds: float = 30.0,
        sleeper: Callable[[float], None] = time.sleep,
    ) -> None:
        if not access_token:
            raise ConfigurationError("FACEBOOK_ACCESS_TOKEN is not set")
        self.access_token = access_token
        self.cache = cache
        self.base_url = (base_url or self.BASE_URL).rstrip("/")
        self.max_retries = max_retries
        self.initial_delay = initial_delay
        self.max_pages = max_pages
        self.timeout_seconds = timeout_seconds
        self.object_timeout_seconds = object_timeout_seconds
        self._sleep = sleeper
        self._owns_client = http_client is None
        self.http_client = http_client if http_client is not None else httpx.Client(timeout=timeout_seconds)

    def close(self) -> None:
        if self._owns_client:
            self.http_client.close()

    # paginated fetch

    def fetch(
        self,
        endpoint: str,
        params: Optional[Mapping[str, Any]] = None,
        cache_key: Optional[str] = None,
        force_refresh: bool = False,
    ) -> List[Any]:
        """Fetch every page of `endpoint` and return the accumulated items.

        Raises CredentialExpired (never retried), RateLimitExceeded or
        RequestTimeoutError (after retries), or RemoteAPIError.
        """
        query: Dict[str, Any] = dict(params or {})
        key = cache_key or make_cache_key(endpoint, query)

        if not force_refresh:
            cached = self.cache.get(key)
            if cached is not None:
                _log.info("fetch.cache_hit", extra={"data": {"key": key, "items": len(cached)}})
                return cached
        else:
            _log.info("fetch.force_refresh", extra={"data": {"key": key}})

        state = fetch_state.start(f"{self.base_url}{endpoint}", initial_delay=self.initial_delay)
        while not state.done:
            if state.phase is Phase.BACKOFF:
                _log.warning(
                    "fetch.retry",
                    extra={
                        "data": {
                            "url": redact_url(state.url),
                            "attempt": state.attempt,
                            "max_retries": self.max_retries,
                            "wait_seconds": state.delay,
                        }
                    },
                )
                self._sleep(state.delay)
                state = fetch_state.backoff_elapsed(state)
                continue
            state = self._request_page(state, query)

        if state.phase is Phase.FAILED:
            error = state.error or RemoteAPIError("fetch failed")
            if isinstance(error, CredentialExpired):
                _log.error("fetch.credential_expired", extra={"data": {"endpoint": endpoint, "code": error.code, "subcode": error.subcode}})
            else:
                _log.error("fetch.failed", extra={"data": {"endpoint": endpoint, "error": str(error), "status": error.status_code}})
            raise error

        if state.truncated:
            _log.warning(
                "fetch.page_cap",
                extra={"data": {"endpoint": endpoint, "max_pages": self.max_pages, "items": len(state.items)}},
            )

        items = list(state.items)
        self.cache.set(key, items)
        _log.info("fetch.cached", extra={"data": {"key": key, "items": len(items), "pages": state.pages}})
        return items

    def _request_page(self, state: FetchState, query: Mapping[str, Any]) -> FetchState:
        # Only the first page takes explicit params; `paging.next` URLs already
        # carry the query (token included).
        request_params = {**query, "access_token": self.access_token} if state.first_page else None
        started = time.monotonic()
        try:
            response = self.http_client.get(state.url, params=request_params, timeout=self.timeout_seconds)
        except httpx.TransportError as exc:
            return fetch_state.retryable_failure(
                state, Retryable.NETWORK, max_retries=self.max_retries, detail=f"{type(exc).__name__}: {exc}"
            )

        _log.debug(
            "fetch.response",
            extra={
                "data": {
                    "url": redact_url(state.url),
                    "status": response.status_code,
                    "ms": int((time.monotonic() - started) * 1000),
                }
            },
        )

        if response.status_code >= 400:
            error = error_from_response(response.status_code, _decode(response), reason=response.reason_phrase)
            if response.status_code == 429 and not isinstance(error, CredentialExpired):
                return fetch_state.retryable_failure(
                    state, Retryable.RATE_LIMITED, max_retries=self.max_retries, detail=redact_url(state.url)
                )
            return fetch_state.terminal_failure(state, error)

        body = _decode(response)
        if not isinstance(body, Mapping):
            return fetch_state.terminal_failure(
                state, RemoteAPIError("Graph API returned a non-JSON body", status_code=response.status_code)
            )
        data = body.get("data")
        items = data if isinstance(data, list) else []
        paging = body.get("paging")
        next_url = paging.get("next") if isinstance(paging, Mapping) else None
        return fetch_state.page_received(state, items, next_url if isinstance(next_url, str) else None, max_pages=self.max_pages)

    # single objects

    def get_object(self, path: str, fields: str) -> Dict[str, Any]:
        """Uncached single-object GET (e.g. `/{id}?fields=followers_count`)."""
        url = f"{self.base_url}{path}"
        try:
            response = self.http_client.get(
                url,
                params={"fields": fields, "access_token": self.access_token},
                timeout=self.object_timeout_seconds,
            )
        except httpx.TransportError as exc:
            raise RequestTimeoutError(f"{type(exc).__name__}: {exc}") from exc
        body = _decode(response)
        if response.status_code >= 400:
            raise error_from_response(response.status_code, body, reason=response.reason_phrase)
        if not isinstance(body, dict):
            raise RemoteAPIError("Graph API returned a non-JSON body", status_code=response.status_code)
        return body

    def clear_cache(self, prefix: Optional[str] = None) -> int:
        if prefix:
            return self.cache.delete_prefix(prefix)
        return self.cache.clear()


__all__ = ["GraphFetcher", "GraphAPIError", "redact_url"]
