"""
Pydantic models for aggregated metrics, posts and the KPI summary.

Field names are snake_case in Python; JSON output (model_dump(by_alias=True))
uses the camelCase names the dashboard and exporters consume.
"""
from __future__ import annotations

from typing import Any, Dict, List, Literal, Mapping, Optional, Union

from pydantic import BaseModel, ConfigDict, Field

AggregationMode = Literal["daily", "total"]
Number = Union[int, float]


class _Frozen(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)


class MetricPoint(_Frozen):
    date: Optional[str] = None
    value: Number = 0


class MetricSeries(_Frozen):
    name: str
    mode: AggregationMode
    points: List[MetricPoint] = Field(default_factory=list)
    total: Number = 0

    def total_value(self) -> float:
        """Sum of daily points, or the summed total for total-style metrics."""
        if self.mode == "daily":
            return sum(p.value for p in self.points)
        return self.total


class Post(_Frozen):
    id: str
    caption: Optional[str] = None
    media_type: Optional[str] = Field(default=None, alias="mediaType")
    media_url: Optional[str] = Field(default=None, alias="mediaUrl")
    permalink: Optional[str] = None
    timestamp: Optional[str] = None
    like_count: int = Field(default=0, alias="likeCount")
    comments_count: int = Field(default=0, alias="commentCount")
    insights: Dict[str, Number] = Field(default_factory=dict)

    @classmethod
    def from_graph(cls, item: Mapping[str, Any]) -> "Post":
        """Build a Post from a Graph `media` item with embedded `insights.data`."""
        insights: Dict[str, Number] = {}
        raw = item.get("insights") or {}
        rows = raw.get("data") if isinstance(raw, Mapping) else None
        for row in rows or []:
            if not isinstance(row, Mapping) or not row.get("name"):
                continue
            values = row.get("values") or []
            if values and isinstance(values[0], Mapping) and values[0].get("value") is not None:
                insights[str(row["name"])] = values[0]["value"]
            elif isinstance(row.get("total_value"), Mapping) and row["total_value"].get("value") is not None:
                insights[str(row["name"])] = row["total_value"]["value"]
        return cls(
            id=str(item.get("id", "")),
            caption=item.get("caption"),
            media_type=item.get("media_type"),
            media_url=item.get("media_url"),
            permalink=item.get("permalink"),
            timestamp=item.get("timestamp"),
            like_count=item.get("like_count") or 0,
            comments_count=item.get("comments_count") or 0,
            insights=insights,
        )

    def insight_value(self, name: str) -> Number:
        return self.insights.get(name, 0)


class FollowerGrowth(_Frozen):
    percentage: float = 0.0
    start_count: int = Field(default=0, alias="startCount")
    end_count: int = Field(default=0, alias="endCount")
    # True when startCount is 0 and endCount > 0: growth is unbounded and
    # reported as 0.0 so no Infinity reaches JSON.
    unbounded: bool = False
    formula: str = "(End Followers - Start Followers) / Start Followers * 100"


class EngagementRate(_Frozen):
    percentage: float = 0.0
    numerator: Number = 0
    denominator: Number = 0
    formula: str = "(Likes + Comments + Saved + Shares) / Total Reach * 100"
    note: str = (
        "Rate is based on Total Reach. Numerator includes Likes, Comments, Saves, "
        "and Shares where available from post insights."
    )


class MetricTotal(_Frozen):
    total: Number = 0
    period: str = "monthly"


class PostsBlock(_Frozen):
    count: int = 0
    items: List[Post] = Field(default_factory=list, alias="list")


class ReportingPeriod(_Frozen):
    start: str
    end: str


class KPISummary(_Frozen):
    follower_growth: FollowerGrowth = Field(alias="followerGrowth")
    engagement_rate: EngagementRate = Field(alias="engagementRate")
    profile_views: MetricTotal = Field(alias="profileViews")
    reach: MetricTotal
    posts: PostsBlock
    reporting_period: ReportingPeriod = Field(alias="reportingPeriod")

    def to_json_dict(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, mode="json")


class FacebookPage(_Frozen):
    page_id: str = Field(alias="pageId")
    page_info: Dict[str, Any] = Field(default_factory=dict, alias="pageInfo")


class InstagramMonthly(_Frozen):
    business_account_id: str = Field(alias="businessAccountId")
    kpis: Optional[KPISummary] = None
    # Set when the account is known but its KPIs could not be calculated.
    error: Optional[str] = None


class DateRange(_Frozen):
    start: Optional[str] = None
    end: Optional[str] = None


class MonthlyData(_Frozen):
    """Page info plus the linked Instagram account's KPIs for one period."""

    facebook: FacebookPage
    instagram: Optional[InstagramMonthly] = None
    generated_at: str = Field(alias="generatedAt")
    date_range: DateRange = Field(alias="dateRange")

    def to_json_dict(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, mode="json")


__all__ = [
    "AggregationMode",
    "MetricPoint",
    "MetricSeries",
    "Post",
    "FollowerGrowth",
    "EngagementRate",
    "MetricTotal",
    "PostsBlock",
    "ReportingPeriod",
    "KPISummary",
    "FacebookPage",
    "InstagramMonthly",
    "DateRange",
    "MonthlyData",
]
