import pytest
from fastapi.testclient import TestClient

from adapters.graph_errors import ConfigurationError, CredentialExpired, RemoteAPIError
from apps.api.main import app, get_cache, get_calculator
from engine.cache.disk_cache import DiskCache
from engine.metrics.kpi_calculator import KPICalculator
from engine.metrics.schemas import Post


PAGE = {"name": "Coffee Bar", "instagram_business_account": {"id": "42", "username": "coffeebar"}}
MEDIA = [{"id": "p1", "like_count": 6, "comments_count": 2, "permalink": "https://instagram.test/p1"}]


class StubFetcher:
    def __init__(self, error=None, media=None, page=None):
        self.error = error
        self.media = MEDIA if media is None else media
        self.page = PAGE if page is None else page
        self.calls = []

    def fetch(self, endpoint, params=None, cache_key=None, force_refresh=False):
        self.calls.append((endpoint, dict(params or {})))
        if self.error is not None:
            raise self.error
        if endpoint.endswith("/insights"):
            if params.get("metric_type") == "total_value":
                return [{"name": "profile_views", "total_value": {"value": 12}}]
            return [{"name": "reach", "values": [{"value": 400, "end_time": "2025-03-02T07:00:00+0000"}]}]
        return self.media

    def get_object(self, path, fields):
        if "instagram_business_account" in fields:
            return self.page
        return {"followers_count": 1000}


def _calculator(error=None, media=None):
    return KPICalculator(StubFetcher(error, media), default_account_id="42", sleeper=lambda _: None)


# A non-numeric insight value fails Post validation.
MALFORMED_MEDIA = [{"id": "p1", "insights": {"data": [{"name": "likes", "values": [{"value": "lots"}]}]}}]


@pytest.fixture
def client():
    yield TestClient(app)
    app.dependency_overrides.clear()


BODY = {"startDate": "2025-03-01T00:00:00.000Z", "endDate": "2025-03-03T23:59:59.999Z"}


def test_health_and_version(client):
    assert client.get("/health").json() == {"status": "ok"}
    assert isinstance(client.get("/version").json()["version"], str)


def test_kpis_live(client):
    app.dependency_overrides[get_calculator] = _calculator

    response = client.post("/api/instagram/kpis", json={**BODY, "forceRefresh": True})

    assert response.status_code == 200
    envelope = response.json()["instagram"]
    assert envelope["cacheStatus"] == "fresh"
    kpis = envelope["kpis"]
    assert kpis["reach"]["total"] == 400
    assert kpis["profileViews"]["total"] == 12
    assert kpis["engagementRate"]["percentage"] == 2.0
    assert kpis["followerGrowth"]["startCount"] == 1000
    assert kpis["posts"]["count"] == 1
    assert kpis["posts"]["list"][0]["id"] == "p1"


def test_kpis_without_force_refresh_reports_cached(client):
    app.dependency_overrides[get_calculator] = _calculator
    response = client.post("/api/instagram/kpis", json=BODY)
    assert response.json()["instagram"]["cacheStatus"] == "cached"


def test_expired_credential_is_401_with_guidance(client):
    app.dependency_overrides[get_calculator] = lambda: _calculator(CredentialExpired("expired", code=190))
    response = client.post("/api/instagram/kpis", json=BODY)
    assert response.status_code == 401
    detail = response.json()["detail"]
    assert detail["error"] == "credential_expired"
    assert "FACEBOOK_ACCESS_TOKEN" in detail["guidance"]


def test_graph_failure_falls_back_to_sample_month(client):
    app.dependency_overrides[get_calculator] = lambda: _calculator(RemoteAPIError("upstream down", status_code=500))
    response = client.post("/api/instagram/kpis", json=BODY)
    assert response.status_code == 200
    envelope = response.json()["instagram"]
    assert envelope["cacheStatus"] == "fallback"
    assert "upstream down" in envelope["note"]
    assert envelope["kpis"]["reach"]["total"] == 15420


def test_graph_failure_without_sample_is_502(client):
    app.dependency_overrides[get_calculator] = lambda: _calculator(RemoteAPIError("upstream down", status_code=500))
    response = client.post(
        "/api/instagram/kpis",
        json={"startDate": "2025-11-01T00:00:00Z", "endDate": "2025-11-03T00:00:00Z"},
    )
    assert response.status_code == 502


def test_missing_account_is_500(client):
    app.dependency_overrides[get_calculator] = lambda: KPICalculator(StubFetcher(), sleeper=lambda _: None)
    response = client.post("/api/instagram/kpis", json=BODY)
    assert response.status_code == 500
    assert response.json()["detail"]["error"] == "configuration"


def test_invalid_dates_are_422(client):
    app.dependency_overrides[get_calculator] = _calculator
    response = client.post("/api/instagram/kpis", json={"startDate": "yesterday", "endDate": "today"})
    assert response.status_code == 422


def test_unconfigured_engine_reports_configuration_error(client):
    app.state.calculator = None
    app.state.engine_error = "FACEBOOK_ACCESS_TOKEN environment variable is not set"
    response = client.post("/api/instagram/kpis", json=BODY)
    assert response.status_code == 500
    assert "FACEBOOK_ACCESS_TOKEN" in response.json()["detail"]["message"]


def test_posts_listing(client):
    app.dependency_overrides[get_calculator] = _calculator
    response = client.get("/api/instagram/posts", params={"startDate": "2025-03-01", "endDate": "2025-03-03"})
    assert response.status_code == 200
    payload = response.json()
    assert payload["success"] is True
    assert payload["count"] == 1
    assert payload["posts"][0]["likeCount"] == 6
    assert "generatedAt" in payload


def test_cache_clear(client, tmp_path):
    cache = DiskCache(tmp_path).open()
    cache.set("/42/insights?x_igInsights-day", [1])
    cache.set("/42/media?y_igPosts", [2])
    app.dependency_overrides[get_cache] = lambda: cache

    response = client.post("/api/cache/clear", json={"prefix": "/42/insights"})
    assert response.json() == {"removed": 1}
    response = client.post("/api/cache/clear", json={})
    assert response.json() == {"removed": 1}
    assert cache.keys() == []


def test_post_schema_roundtrip():
    post = Post.from_graph({"id": "9", "media_type": "IMAGE", "insights": {"data": [{"name": "reach", "values": [{"value": 50}]}]}})
    assert post.model_dump(by_alias=True)["mediaType"] == "IMAGE"
    assert post.insight_value("reach") == 50


def test_malformed_insight_falls_back_to_sample_month(client):
    app.dependency_overrides[get_calculator] = lambda: _calculator(media=MALFORMED_MEDIA)
    response = client.post("/api/instagram/kpis", json=BODY)
    assert response.status_code == 200
    envelope = response.json()["instagram"]
    assert envelope["cacheStatus"] == "fallback"
    assert envelope["kpis"]["reach"]["total"] == 15420


def test_malformed_insight_without_sample_is_502(client):
    app.dependency_overrides[get_calculator] = lambda: _calculator(media=MALFORMED_MEDIA)
    response = client.post(
        "/api/instagram/kpis",
        json={"startDate": "2025-11-01T00:00:00Z", "endDate": "2025-11-03T00:00:00Z"},
    )
    assert response.status_code == 502
    assert response.json()["detail"]["error"] == "ValidationError"


def test_posts_malformed_insight_is_502(client):
    app.dependency_overrides[get_calculator] = lambda: _calculator(media=MALFORMED_MEDIA)
    response = client.get("/api/instagram/posts", params={"startDate": "2025-03-01", "endDate": "2025-03-03"})
    assert response.status_code == 502


def test_posts_invalid_date_is_422(client):
    app.dependency_overrides[get_calculator] = _calculator
    response = client.get("/api/instagram/posts", params={"startDate": "soon", "endDate": "2025-03-03"})
    assert response.status_code == 422


def test_posts_limit_is_passed_as_page_size(client):
    calculator = _calculator()
    app.dependency_overrides[get_calculator] = lambda: calculator

    response = client.get(
        "/api/instagram/posts", params={"startDate": "2025-03-01", "endDate": "2025-03-03", "limit": 25}
    )

    assert response.status_code == 200
    media_calls = [params for endpoint, params in calculator.fetcher.calls if endpoint.endswith("/media")]
    assert media_calls and all(params["limit"] == 25 for params in media_calls)


def test_posts_limit_out_of_range_is_422(client):
    app.dependency_overrides[get_calculator] = _calculator
    response = client.get(
        "/api/instagram/posts", params={"startDate": "2025-03-01", "endDate": "2025-03-03", "limit": 0}
    )
    assert response.status_code == 422


def test_monthly_data_discovers_linked_account(client):
    calculator = KPICalculator(StubFetcher(), default_page_id="777", sleeper=lambda _: None)
    app.dependency_overrides[get_calculator] = lambda: calculator

    response = client.post("/api/monthly-data", json=BODY)

    assert response.status_code == 200
    payload = response.json()
    assert payload["success"] is True
    assert payload["facebook"]["pageId"] == "777"
    assert payload["facebook"]["pageInfo"]["name"] == "Coffee Bar"
    assert payload["instagram"]["businessAccountId"] == "42"
    assert payload["instagram"]["kpis"]["reach"]["total"] == 400
    assert payload["dateRange"]["start"] == BODY["startDate"]
    assert "generatedAt" in payload


def test_monthly_data_records_kpi_failure(client):
    app.dependency_overrides[get_calculator] = lambda: _calculator(media=MALFORMED_MEDIA)
    response = client.post("/api/monthly-data", json={**BODY, "pageId": "777"})
    assert response.status_code == 200
    instagram = response.json()["instagram"]
    assert instagram["kpis"] is None
    assert instagram["error"]


def test_monthly_data_without_page_is_500(client):
    app.dependency_overrides[get_calculator] = _calculator
    response = client.post("/api/monthly-data", json=BODY)
    assert response.status_code == 500
    assert response.json()["detail"]["error"] == "configuration"


def test_monthly_data_expired_credential_is_401(client):
    app.dependency_overrides[get_calculator] = lambda: _calculator(CredentialExpired("expired", code=190))
    response = client.post("/api/monthly-data", json={**BODY, "pageId": "777"})
    assert response.status_code == 401


def test_monthly_data_invalid_date_is_422(client):
    app.dependency_overrides[get_calculator] = _calculator
    response = client.post("/api/monthly-data", json={"pageId": "777", "startDate": "soon"})
    assert response.status_code == 422


def test_sample_summary_defaults_to_june(client):
    response = client.get("/api/instagram/summary")
    assert response.status_code == 200
    payload = response.json()
    assert payload["month"] == "june"
    assert payload["data"]["reach"]["total"] == 20800


def test_sample_summary_by_month(client):
    response = client.get("/api/instagram/summary", params={"month": "March"})
    assert response.json()["data"]["profileViews"]["total"] == 890


def test_sample_summary_unknown_month_is_400(client):
    response = client.get("/api/instagram/summary", params={"month": "smarch"})
    assert response.status_code == 400
    detail = response.json()["detail"]
    assert detail["error"] == "Invalid month"
    assert "april" in detail["availableMonths"]


def test_all_sample_months(client):
    payload = client.get("/api/instagram/all-months").json()
    assert payload["months"] == ["march", "april", "may", "june"]
    assert payload["data"]["may"]["followerGrowth"]["endCount"] == 1520
