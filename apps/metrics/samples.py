"""
Placeholder KPI summaries served when the live calculation fails.

Keyed by lowercase month name. The API marks responses built from these with
cacheStatus="fallback" so the dashboard can label them as sample data.

The dashboard's own sample block also carries impressions, conversions
(websiteClicks, otherContactClicks) and a per-post list. Those are left out
here: a sample has exactly the fields of a live KPISummary, with an empty
`posts.list` and only the post count filled in.
"""
from typing import Dict, Optional

from engine.metrics.schemas import (
    EngagementRate,
    FollowerGrowth,
    KPISummary,
    MetricTotal,
    PostsBlock,
    ReportingPeriod,
)
from engine.metrics.windowing import DateLike, parse_instant

MONTH_NAMES = [
    "january", "february", "march", "april", "may", "june",
    "july", "august", "september", "october", "november", "december",
]

# month -> (start followers, end followers, engagements, reach, profile views, posts, start, end)
_SAMPLE_ROWS = {
    "march": (1150, 1250, 1602, 15420, 890, 12, "2025-03-01T00:00:00+00:00", "2025-03-31T23:59:59.999000+00:00"),
    "april": (1250, 1380, 1924, 18230, 1020, 15, "2025-04-01T00:00:00+00:00", "2025-04-30T23:59:59.999000+00:00"),
    "may": (1380, 1520, 2156, 19250, 1180, 18, "2025-05-01T00:00:00+00:00", "2025-05-31T23:59:59.999000+00:00"),
    "june": (1520, 1670, 2456, 20800, 1350, 20, "2025-06-01T00:00:00+00:00", "2025-06-30T23:59:59.999000+00:00"),
}


def _build(row: tuple) -> KPISummary:
    start_f, end_f, engagements, reach, views, posts, start, end = row
    return KPISummary(
        follower_growth=FollowerGrowth(
            percentage=round((end_f - start_f) / start_f * 100, 2),
            start_count=start_f,
            end_count=end_f,
        ),
        engagement_rate=EngagementRate(
            percentage=round(engagements / reach * 100, 2),
            numerator=engagements,
            denominator=reach,
        ),
        profile_views=MetricTotal(total=views),
        reach=MetricTotal(total=reach),
        posts=PostsBlock(count=posts),
        reporting_period=ReportingPeriod(start=start, end=end),
    )


SAMPLE_KPIS: Dict[str, KPISummary] = {month: _build(row) for month, row in _SAMPLE_ROWS.items()}


def sample_for(start_date: DateLike) -> Optional[KPISummary]:
    """Sample summary for the month `start_date` falls in, if one exists."""
    try:
        month = MONTH_NAMES[parse_instant(start_date).month - 1]
    except (TypeError, ValueError):
        return None
    return SAMPLE_KPIS.get(month)
