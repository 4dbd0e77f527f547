"""
GraphFetcher tests against an httpx.MockTransport; sleeps are recorded, never taken.
"""
import httpx
import pytest

from adapters.graph_adapter import GraphFetcher, redact_url
from adapters.graph_errors import (
    ConfigurationError,
    CredentialExpired,
    RateLimitExceeded,
    RemoteAPIError,
    RequestTimeoutError,
)
from engine.cache.disk_cache import DiskCache

BASE = "https://graph.test/v23.0"


class Recorder:
    def __init__(self, responses):
        self.responses = list(responses)
        self.requests = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        item = self.responses.pop(0) if len(self.responses) > 1 else self.responses[0]
        if isinstance(item, Exception):
            raise item
        status, body = item
        return httpx.Response(status_code=status, json=body)


@pytest.fixture
def cache(tmp_path):
    with DiskCache(tmp_path / "cache") as c:
        yield c


def make_fetcher(cache, responses, **kwargs):
    recorder = Recorder(responses)
    sleeps = []
    fetcher = GraphFetcher(
        "tok-123",
        cache=cache,
        http_client=httpx.Client(transport=httpx.MockTransport(recorder)),
        base_url=BASE,
        sleeper=sleeps.append,
        **kwargs,
    )
    return fetcher, recorder, sleeps


EXPIRED = (400, {"error": {"message": "Session has expired", "type": "OAuthException", "code": 190, "error_subcode": 463}})


def test_missing_token_is_configuration_error(cache):
    with pytest.raises(ConfigurationError):
        GraphFetcher("", cache=cache)


def test_paginates_and_caches(cache):
    fetcher, recorder, _ = make_fetcher(
        cache,
        [
            (200, {"data": [{"id": "1"}], "paging": {"next": f"{BASE}/42/media?after=abc&access_token=tok-123"}}),
            (200, {"data": [{"id": "2"}]}),
        ],
    )
    items = fetcher.fetch("/42/media", {"limit": 100}, cache_key="media-key")

    assert items == [{"id": "1"}, {"id": "2"}]
    assert len(recorder.requests) == 2
    first = recorder.requests[0]
    assert first.url.path == "/v23.0/42/media"
    assert first.url.params["access_token"] == "tok-123"
    assert first.url.params["limit"] == "100"
    assert recorder.requests[1].url.params["after"] == "abc"
    assert cache.get("media-key") == items


def test_cache_hit_makes_no_network_call(cache):
    cache.set("k", [{"id": "cached"}])
    fetcher, recorder, _ = make_fetcher(cache, [(500, {})])
    assert fetcher.fetch("/42/media", {}, cache_key="k") == [{"id": "cached"}]
    assert recorder.requests == []


def test_force_refresh_bypasses_and_overwrites_cache(cache):
    cache.set("k", [{"id": "old"}])
    fetcher, recorder, _ = make_fetcher(cache, [(200, {"data": [{"id": "new"}]})])
    assert fetcher.fetch("/42/media", {}, cache_key="k", force_refresh=True) == [{"id": "new"}]
    assert len(recorder.requests) == 1
    assert cache.get("k") == [{"id": "new"}]


def test_rate_limit_retries_with_doubling_delay(cache):
    fetcher, recorder, sleeps = make_fetcher(
        cache,
        [(429, {"error": {"message": "slow down", "code": 4}}), (429, {}), (200, {"data": [{"id": "ok"}]})],
    )
    assert fetcher.fetch("/42/insights", {"metric": "reach"}) == [{"id": "ok"}]
    assert sleeps == [1.0, 2.0]
    assert len(recorder.requests) == 3


def test_rate_limit_exhausted(cache):
    fetcher, recorder, sleeps = make_fetcher(cache, [(429, {})])
    with pytest.raises(RateLimitExceeded):
        fetcher.fetch("/42/insights", {"metric": "reach"})
    assert sleeps == [1.0, 2.0, 4.0]
    assert len(recorder.requests) == 4
    assert cache.keys() == []


def test_expired_credential_is_never_retried(cache):
    fetcher, recorder, sleeps = make_fetcher(cache, [EXPIRED])
    with pytest.raises(CredentialExpired) as info:
        fetcher.fetch("/42/insights", {"metric": "reach"})
    assert info.value.code == 190
    assert info.value.subcode == 463
    assert "developers.facebook.com" in info.value.guidance
    assert len(recorder.requests) == 1
    assert sleeps == []


def test_expired_credential_inside_429_is_not_retried(cache):
    fetcher, recorder, sleeps = make_fetcher(cache, [(429, {"error": {"message": "expired", "code": 190}})])
    with pytest.raises(CredentialExpired):
        fetcher.fetch("/42/insights")
    assert len(recorder.requests) == 1


def test_other_errors_carry_upstream_message(cache):
    fetcher, _, sleeps = make_fetcher(cache, [(400, {"error": {"message": "Invalid metric", "code": 100}})])
    with pytest.raises(RemoteAPIError) as info:
        fetcher.fetch("/42/insights", {"metric": "nope"})
    assert str(info.value) == "Invalid metric"
    assert info.value.status_code == 400
    assert sleeps == []


def test_network_errors_retry_then_time_out(cache):
    fetcher, recorder, sleeps = make_fetcher(cache, [httpx.ConnectError("refused")], max_retries=2)
    with pytest.raises(RequestTimeoutError):
        fetcher.fetch("/42/media")
    assert sleeps == [1.0, 2.0]
    assert len(recorder.requests) == 3


def test_page_cap_returns_partial_result(cache):
    fetcher, recorder, _ = make_fetcher(
        cache, [(200, {"data": [{"id": "x"}], "paging": {"next": f"{BASE}/42/media?after=n"}})], max_pages=3
    )
    items = fetcher.fetch("/42/media", cache_key="capped")
    assert len(items) == 3
    assert len(recorder.requests) == 3
    assert cache.get("capped") == items


def test_get_object(cache):
    fetcher, recorder, _ = make_fetcher(cache, [(200, {"followers_count": 115, "id": "42"})])
    assert fetcher.get_object("/42", "followers_count")["followers_count"] == 115
    assert recorder.requests[0].url.params["fields"] == "followers_count"


def test_get_object_expired_credential(cache):
    fetcher, _, _ = make_fetcher(cache, [EXPIRED])
    with pytest.raises(CredentialExpired):
        fetcher.get_object("/42", "followers_count")


def test_redact_url_strips_token():
    redacted = redact_url(f"{BASE}/42/media?after=n&access_token=tok-123")
    assert "tok-123" not in redacted
    assert "after=n" in redacted
