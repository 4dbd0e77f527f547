"""
Retry/pagination state machine for a single paginated Graph fetch.

    IDLE -> REQUESTING -> (page ok, next link) -> REQUESTING
                       -> (page ok, no next / page cap) -> SUCCEEDED
                       -> (429 or network failure) -> BACKOFF -> RETRYING -> ...
                       -> (terminal error / retries exhausted) -> FAILED

Every transition is a pure function returning a new FetchState; the adapter
performs the I/O and the sleeping. RETRYING issues the same request as
REQUESTING but for the page that previously failed.
"""
from __future__ import annotations

from dataclasses import dataclass, replace
from enum import Enum
from typing import Any, Sequence

from .graph_errors import GraphAPIError, RateLimitExceeded, RequestTimeoutError


class Phase(str, Enum):
    IDLE = "idle"
    REQUESTING = "requesting"
    BACKOFF = "backoff"
    RETRYING = "retrying"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


class Retryable(str, Enum):
    RATE_LIMITED = "rate_limited"
    NETWORK = "network"


@dataclass(frozen=True)
class FetchState:
    phase: Phase = Phase.IDLE
    url: str = ""
    first_page: bool = True
    attempt: int = 0
    delay: float = 1.0
    initial_delay: float = 1.0
    pages: int = 0
    items: tuple = ()
    truncated: bool = False
    error: GraphAPIError | None = None

    @property
    def done(self) -> bool:
        return self.phase in (Phase.SUCCEEDED, Phase.FAILED)

    @property
    def wants_request(self) -> bool:
        return self.phase in (Phase.REQUESTING, Phase.RETRYING)


def start(url: str, *, initial_delay: float = 1.0) -> FetchState:
    return FetchState(
        phase=Phase.REQUESTING,
        url=url,
        delay=initial_delay,
        initial_delay=initial_delay,
    )


def page_received(
    state: FetchState,
    items: Sequence[Any],
    next_url: str | None,
    *,
    max_pages: int,
) -> FetchState:
    """Accumulate a page and either follow `next_url` or finish.

    Following a next link resets the retry counter and backoff delay.
    """
    pages = state.pages + 1
    collected = state.items + tuple(items)
    if not next_url:
        return replace(state, phase=Phase.SUCCEEDED, pages=pages, items=collected)
    if pages >= max_pages:
        return replace(state, phase=Phase.SUCCEEDED, pages=pages, items=collected, truncated=True)
    return replace(
        state,
        phase=Phase.REQUESTING,
        url=next_url,
        first_page=False,
        attempt=0,
        delay=state.initial_delay,
        pages=pages,
        items=collected,
    )


def retryable_failure(
    state: FetchState,
    kind: Retryable,
    *,
    max_retries: int,
    detail: str = "",
    status_code: int | None = None,
) -> FetchState:
    """Move to BACKOFF, or to FAILED once `max_retries` retries are used up."""
    if state.attempt >= max_retries:
        if kind is Retryable.RATE_LIMITED:
            error: GraphAPIError = RateLimitExceeded(
                f"Rate limit persisted after {max_retries} retries: {detail or state.url}",
                status_code=status_code or 429,
            )
        else:
            error = RequestTimeoutError(
                f"Request failed after {max_retries} retries: {detail or 'network error'}",
                status_code=status_code,
            )
        return replace(state, phase=Phase.FAILED, error=error)
    return replace(state, phase=Phase.BACKOFF, attempt=state.attempt + 1)


def backoff_elapsed(state: FetchState) -> FetchState:
    """Called after sleeping `state.delay`; doubles the delay for the next retry."""
    if state.phase is not Phase.BACKOFF:
        raise ValueError(f"backoff_elapsed called in phase {state.phase.value}")
    return replace(state, phase=Phase.RETRYING, delay=state.delay * 2)


def terminal_failure(state: FetchState, error: GraphAPIError) -> FetchState:
    return replace(state, phase=Phase.FAILED, error=error)


__all__ = [
    "Phase",
    "Retryable",
    "FetchState",
    "start",
    "page_received",
    "retryable_failure",
    "backoff_elapsed",
    "terminal_failure",
]
