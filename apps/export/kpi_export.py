"""
KPI report export.

Turns a KPISummary into a two-part CSV:
  Metric,Value rows for the headline KPIs, a blank line, then one row per post
  with its engagement terms.

`load_summary` accepts either a bare summary (the `kpis --out` file) or the
API response envelope `{"instagram": {"kpis": ...}}`.
"""
from typing import Any, Mapping, Union
import csv
import json
from pathlib import Path

from engine.metrics.kpi_calculator import post_engagement
from engine.metrics.schemas import KPISummary

POST_COLUMNS = ["id", "timestamp", "media_type", "likes", "comments", "saved", "shares", "reach", "engagement", "permalink"]


def load_summary(path: Union[str, Path]) -> KPISummary:
    """Read a summary JSON file written by the CLI or saved from the API."""
    p = Path(path)
    if not p.exists():
        raise FileNotFoundError(f"KPI file not found: {p}")
    with p.open("r", encoding="utf-8") as f:
        payload = json.load(f)
    return summary_from_payload(payload)


def summary_from_payload(payload: Mapping[str, Any]) -> KPISummary:
    if "instagram" in payload and isinstance(payload["instagram"], Mapping):
        payload = payload["instagram"].get("kpis") or {}
    return KPISummary.model_validate(payload)


def _metric_rows(summary: KPISummary):
    growth = summary.follower_growth
    rate = summary.engagement_rate
    return [
        ("Reporting Start", summary.reporting_period.start),
        ("Reporting End", summary.reporting_period.end),
        ("Follower Growth %", growth.percentage),
        ("Start Followers", growth.start_count),
        ("End Followers", growth.end_count),
        ("Follower Growth Unbounded", growth.unbounded),
        ("Engagement Rate %", rate.percentage),
        ("Engagements", rate.numerator),
        ("Total Reach", summary.reach.total),
        ("Profile Views", summary.profile_views.total),
        ("Posts", summary.posts.count),
    ]


def write_kpi_csv(summary: KPISummary, path: Union[str, Path]) -> Path:
    """Write the summary to `path` as CSV and return the path.

    Parent directories are created as needed.
    """
    out = Path(path)
    out.parent.mkdir(parents=True, exist_ok=True)

    with out.open("w", newline="", encoding="utf-8") as f:
        writer = csv.writer(f)
        writer.writerow(["Metric", "Value"])
        for name, value in _metric_rows(summary):
            writer.writerow([name, value])

        writer.writerow([])
        writer.writerow(POST_COLUMNS)
        for post in summary.posts.items:
            writer.writerow([
                post.id,
                post.timestamp or "",
                post.media_type or "",
                post.insights.get("likes", post.like_count),
                post.insights.get("comments", post.comments_count),
                post.insight_value("saved"),
                post.insight_value("shares"),
                post.insight_value("reach"),
                post_engagement(post),
                post.permalink or "",
            ])

    return out
