from datetime import date

from apps.metrics.samples import SAMPLE_KPIS, sample_for
from engine.metrics.schemas import KPISummary


def test_sample_months():
    assert set(SAMPLE_KPIS) == {"march", "april", "may", "june"}
    march = SAMPLE_KPIS["march"]
    assert march.follower_growth.percentage == 8.7
    assert march.engagement_rate.percentage == 10.39
    assert march.posts.count == 12


def test_sample_for_picks_month_of_start_date():
    assert sample_for("2025-05-01T00:00:00.000Z") is SAMPLE_KPIS["may"]
    assert sample_for(date(2024, 6, 15)) is SAMPLE_KPIS["june"]
    assert sample_for("2025-11-01") is None
    assert sample_for("garbage") is None


def test_samples_have_live_summary_shape():
    live_keys = set(KPISummary.model_json_schema(by_alias=True)["properties"])
    for month, summary in SAMPLE_KPIS.items():
        data = summary.to_json_dict()
        assert set(data) == live_keys, month
        assert data["posts"]["list"] == []
        assert "impressions" not in data
        assert "conversions" not in data
