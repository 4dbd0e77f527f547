import pytest

from adapters import fetch_state
from adapters.fetch_state import Phase, Retryable
from adapters.graph_errors import RateLimitExceeded, RemoteAPIError, RequestTimeoutError


def test_single_page_succeeds():
    state = fetch_state.start("https://graph.test/1/media")
    assert state.wants_request
    state = fetch_state.page_received(state, [{"id": "a"}], None, max_pages=20)
    assert state.phase is Phase.SUCCEEDED
    assert state.items == ({"id": "a"},)
    assert state.pages == 1
    assert not state.truncated


def test_next_link_is_followed_and_resets_backoff():
    state = fetch_state.start("https://graph.test/1/media", initial_delay=1.0)
    state = fetch_state.retryable_failure(state, Retryable.RATE_LIMITED, max_retries=3)
    state = fetch_state.backoff_elapsed(state)
    assert (state.phase, state.attempt, state.delay) == (Phase.RETRYING, 1, 2.0)

    state = fetch_state.page_received(state, [1, 2], "https://graph.test/next", max_pages=20)
    assert state.phase is Phase.REQUESTING
    assert state.url == "https://graph.test/next"
    assert state.first_page is False
    assert (state.attempt, state.delay) == (0, 1.0)


def test_page_cap_truncates():
    state = fetch_state.start("u")
    state = fetch_state.page_received(state, [1], "u2", max_pages=2)
    state = fetch_state.page_received(state, [2], "u3", max_pages=2)
    assert state.phase is Phase.SUCCEEDED
    assert state.truncated is True
    assert state.items == (1, 2)


def test_backoff_delays_double_until_retries_exhausted():
    state = fetch_state.start("u", initial_delay=1.0)
    waits = []
    for _ in range(3):
        state = fetch_state.retryable_failure(state, Retryable.RATE_LIMITED, max_retries=3)
        assert state.phase is Phase.BACKOFF
        waits.append(state.delay)
        state = fetch_state.backoff_elapsed(state)
    assert waits == [1.0, 2.0, 4.0]

    state = fetch_state.retryable_failure(state, Retryable.RATE_LIMITED, max_retries=3)
    assert state.phase is Phase.FAILED
    assert isinstance(state.error, RateLimitExceeded)
    assert state.done


def test_network_failure_exhaustion_is_timeout():
    state = fetch_state.start("u")
    state = fetch_state.retryable_failure(state, Retryable.NETWORK, max_retries=0, detail="ConnectError")
    assert isinstance(state.error, RequestTimeoutError)


def test_terminal_failure_and_bad_transition():
    state = fetch_state.start("u")
    with pytest.raises(ValueError):
        fetch_state.backoff_elapsed(state)
    failed = fetch_state.terminal_failure(state, RemoteAPIError("boom", status_code=400))
    assert failed.phase is Phase.FAILED
    assert str(failed.error) == "boom"
