"""
KPI calculation for an Instagram Business Account.

Flow for one request:
1. split the reporting period into DateWindows;
2. per window, fetch account insights (daily + total_value metrics) through
   the cached GraphFetcher, sequentially with a short pause between windows;
3. aggregate the per-window payloads into one series per metric;
4. read the current follower count (degrades to 0 on failure);
5. fetch posts per window and sum their engagement;
6. derive engagement rate (over total reach) and follower growth.

Fetch errors from steps 2 and 5 propagate unchanged so callers can tell a
CredentialExpired apart from other failures.
"""
from __future__ import annotations

import calendar
import concurrent.futures
import time
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional, Protocol, Sequence

from adapters.graph_errors import ConfigurationError, CredentialExpired, GraphAPIError
from engine.cache.disk_cache import make_cache_key
from engine.utils.logging import get_logger

from .aggregator import DAILY, TOTAL, account_metric_total, aggregate, mode_for
from .schemas import (
    DateRange,
    EngagementRate,
    FacebookPage,
    FollowerGrowth,
    InstagramMonthly,
    KPISummary,
    MetricSeries,
    MetricTotal,
    MonthlyData,
    Post,
    PostsBlock,
    ReportingPeriod,
)
from .windowing import (
    DEFAULT_MAX_WINDOWS,
    DEFAULT_WINDOW_DAYS,
    DateLike,
    DateWindow,
    build_windows,
    parse_instant,
)

_log = get_logger("engine.kpi")

ACCOUNT_METRICS = ("profile_views", "reach")
POST_FIELDS = (
    "id,caption,media_type,media_url,permalink,thumbnail_url,timestamp,"
    "like_count,comments_count,insights.metric(likes,comments,saved,shares,reach)"
)
PAGE_FIELDS = (
    "name,fan_count,followers_count,verification_status,category,"
    "instagram_business_account{id,username,media_count,followers_count}"
)
# Engagement term -> direct counter on the media object used when the insight is absent.
ENGAGEMENT_TERMS = {
    "likes": "like_count",
    "comments": "comments_count",
    "saved": None,
    "shares": None,
}


class KPITimeoutError(RuntimeError):
    """The KPI calculation did not finish before its deadline."""


class FetcherLike(Protocol):
    def fetch(
        self,
        endpoint: str,
        params: Optional[Dict[str, Any]] = None,
        cache_key: Optional[str] = None,
        force_refresh: bool = False,
    ) -> List[Any]: ...

    def get_object(self, path: str, fields: str) -> Dict[str, Any]: ...


# pure KPI formulas


def post_engagement(post: Post) -> float:
    """likes + comments + saved + shares, falling back to direct counters, then 0."""
    total = 0
    for metric, counter in ENGAGEMENT_TERMS.items():
        if metric in post.insights:
            total += post.insights[metric] or 0
        elif counter is not None:
            total += getattr(post, counter, 0) or 0
    return total


def engagement_rate(numerator: float, total_reach: float) -> float:
    """Engagement over total reach, in percent. Reach is always the denominator."""
    if total_reach > 0:
        return numerator / total_reach * 100
    return 0.0


def follower_growth(start_followers: int, end_followers: int) -> tuple[float, bool]:
    """Return (percentage, unbounded).

    With no starting followers the growth is unbounded; it is reported as 0.0
    with the flag set, so neither NaN nor Infinity reaches JSON.
    """
    if start_followers > 0:
        return (end_followers - start_followers) / start_followers * 100, False
    if end_followers > 0:
        return 0.0, True
    return 0.0, False


def default_period(now: Optional[datetime] = None) -> tuple[datetime, datetime]:
    """First instant of the current month and the last day of it (UTC)."""
    now = now or datetime.now(timezone.utc)
    first = datetime(now.year, now.month, 1, tzinfo=timezone.utc)
    last_day = calendar.monthrange(now.year, now.month)[1]
    last = datetime(now.year, now.month, last_day, tzinfo=timezone.utc)
    return first, last


class KPICalculator:
    """Compute a KPISummary from windowed, cached Graph fetches."""

    def __init__(
        self,
        fetcher: FetcherLike,
        *,
        default_account_id: Optional[str] = None,
        default_page_id: Optional[str] = None,
        window_days: int = DEFAULT_WINDOW_DAYS,
        max_windows: int = DEFAULT_MAX_WINDOWS,
        window_delay: float = 1.0,
        posts_limit: int = 100,
        sleeper: Callable[[float], None] = time.sleep,
    ) -> None:
        self.fetcher = fetcher
        self.default_account_id = default_account_id
        self.default_page_id = default_page_id
        self.window_days = window_days
        self.max_windows = max_windows
        self.window_delay = window_delay
        self.posts_limit = posts_limit
        self._sleep = sleeper

    def resolve_account(self, account_id: Optional[str]) -> str:
        """Explicit id, then the configured id, then the account linked to the configured page."""
        resolved = account_id or self.default_account_id
        if not resolved and self.default_page_id:
            resolved = self.discover_account(self.default_page_id)
            if resolved:
                # Discovered once per calculator.
                self.default_account_id = resolved
        if not resolved:
            raise ConfigurationError(
                "Instagram Business Account ID not configured "
                "(set INSTAGRAM_BUSINESS_ACCOUNT_ID, or FACEBOOK_PAGE_ID with a linked account)"
            )
        return resolved

    # page

    def fetch_page_info(self, page_id: str) -> Dict[str, Any]:
        return self.fetcher.get_object(f"/{page_id}", PAGE_FIELDS)

    def discover_account(self, page_id: str) -> Optional[str]:
        """Instagram Business Account id linked to a Facebook page, if any."""
        linked = self.fetch_page_info(page_id).get("instagram_business_account")
        if isinstance(linked, dict) and linked.get("id"):
            _log.info("kpi.account_discovered", extra={"data": {"page_id": page_id, "account_id": str(linked["id"])}})
            return str(linked["id"])
        return None

    def windows_for(self, start: DateLike, end: DateLike) -> List[DateWindow]:
        return build_windows(start, end, window_days=self.window_days, max_windows=self.max_windows)

    def _pause_between(self, index: int, windows: Sequence[DateWindow]) -> None:
        if index < len(windows) - 1 and self.window_delay > 0:
            self._sleep(self.window_delay)

    # account insights

    def fetch_account_insights(
        self,
        account_id: str,
        windows: Sequence[DateWindow],
        metrics: Sequence[str] = ACCOUNT_METRICS,
        force_refresh: bool = False,
    ) -> Dict[str, MetricSeries]:
        daily = [m for m in metrics if mode_for(m) == DAILY]
        totals = [m for m in metrics if mode_for(m) == TOTAL]
        endpoint = f"/{account_id}/insights"
        per_window: List[List[Any]] = []

        for index, window in enumerate(windows):
            window_payload: List[Any] = []
            if daily:
                params = {"metric": ",".join(daily), "period": "day", **window.as_params()}
                key = make_cache_key(endpoint, params, f"igInsights-day-{account_id}-{window.since}-{window.until}")
                window_payload.extend(self.fetcher.fetch(endpoint, params, key, force_refresh))
            if totals:
                params = {
                    "metric": ",".join(totals),
                    "period": "day",
                    "metric_type": "total_value",
                    **window.as_params(),
                }
                key = make_cache_key(endpoint, params, f"igInsights-total_value-{account_id}-{window.since}-{window.until}")
                window_payload.extend(self.fetcher.fetch(endpoint, params, key, force_refresh))
            per_window.append(window_payload)
            _log.debug("kpi.window_insights", extra={"data": {"window": window.label(), "index": index + 1, "of": len(windows)}})
            self._pause_between(index, windows)

        return aggregate(per_window, metric_names=metrics)

    # followers

    def fetch_follower_count(self, account_id: str) -> int:
        try:
            info = self.fetcher.get_object(f"/{account_id}", "followers_count")
        except GraphAPIError as exc:
            _log.warning(
                "kpi.followers_unavailable",
                extra={"data": {"account_id": account_id, "error": str(exc), "error_type": type(exc).__name__}},
            )
            return 0
        try:
            return int(info.get("followers_count") or 0)
        except (TypeError, ValueError):
            return 0

    # posts

    def fetch_posts(
        self,
        account_id: str,
        windows: Sequence[DateWindow],
        force_refresh: bool = False,
        limit: Optional[int] = None,
    ) -> List[Post]:
        """Posts per window; `limit` is the Graph page size (defaults to `posts_limit`)."""
        endpoint = f"/{account_id}/media"
        page_size = self.posts_limit if limit is None else limit
        posts: List[Post] = []
        seen: set = set()
        for index, window in enumerate(windows):
            params = {"fields": POST_FIELDS, "limit": page_size, **window.as_params()}
            key = make_cache_key(endpoint, params, f"igPosts-{account_id}-{window.since}-{window.until}")
            for item in self.fetcher.fetch(endpoint, params, key, force_refresh):
                if not isinstance(item, dict):
                    continue
                post = Post.from_graph(item)
                if post.id and post.id in seen:
                    continue
                seen.add(post.id)
                posts.append(post)
            self._pause_between(index, windows)
        return posts

    # summary

    def calculate(
        self,
        account_id: Optional[str] = None,
        start_date: Optional[DateLike] = None,
        end_date: Optional[DateLike] = None,
        force_refresh: bool = False,
    ) -> KPISummary:
        account = self.resolve_account(account_id)
        default_start, default_end = default_period()
        start = parse_instant(start_date) if start_date else default_start
        end = parse_instant(end_date) if end_date else default_end

        windows = self.windows_for(start, end)
        _log.info(
            "kpi.start",
            extra={
                "data": {
                    "account_id": account,
                    "start": start.isoformat(),
                    "end": end.isoformat(),
                    "windows": len(windows),
                    "force_refresh": force_refresh,
                }
            },
        )

        series = self.fetch_account_insights(account, windows, force_refresh=force_refresh)
        end_followers = self.fetch_follower_count(account)
        # The Graph API exposes no historical follower snapshot, so the period
        # starts from the current count.
        start_followers = end_followers
        posts = self.fetch_posts(account, windows, force_refresh=force_refresh)

        numerator = sum(post_engagement(p) for p in posts)
        total_reach = account_metric_total(series, "reach")
        total_profile_views = account_metric_total(series, "profile_views")
        rate = engagement_rate(numerator, total_reach)
        growth, unbounded = follower_growth(start_followers, end_followers)

        summary = KPISummary(
            follower_growth=FollowerGrowth(
                percentage=round(growth, 2),
                start_count=start_followers,
                end_count=end_followers,
                unbounded=unbounded,
            ),
            engagement_rate=EngagementRate(
                percentage=round(rate, 2),
                numerator=numerator,
                denominator=total_reach,
            ),
            profile_views=MetricTotal(total=total_profile_views),
            reach=MetricTotal(total=total_reach),
            posts=PostsBlock(count=len(posts), items=posts),
            reporting_period=ReportingPeriod(start=start.isoformat(), end=end.isoformat()),
        )
        _log.info(
            "kpi.calculated",
            extra={
                "data": {
                    "account_id": account,
                    "engagements": numerator,
                    "reach": total_reach,
                    "engagement_rate": summary.engagement_rate.percentage,
                    "profile_views": total_profile_views,
                    "posts": len(posts),
                    "followers": end_followers,
                }
            },
        )
        return summary

    def monthly_data(
        self,
        page_id: Optional[str] = None,
        start_date: Optional[DateLike] = None,
        end_date: Optional[DateLike] = None,
        force_refresh: bool = False,
    ) -> MonthlyData:
        """Page info plus KPIs for the Instagram account linked to the page.

        Malformed dates raise ValueError and page lookup errors propagate.
        KPI failures other than an expired credential are recorded on the
        result instead of raised.
        """
        page = page_id or self.default_page_id
        if not page:
            raise ConfigurationError("Facebook Page ID not provided (pass pageId or set FACEBOOK_PAGE_ID)")
        for value in (start_date, end_date):
            if value:
                parse_instant(value)

        page_info = self.fetch_page_info(page)
        account = self.default_account_id
        linked = page_info.get("instagram_business_account")
        if not account and isinstance(linked, dict) and linked.get("id"):
            account = str(linked["id"])

        instagram: Optional[InstagramMonthly] = None
        if account:
            try:
                kpis = self.calculate(account, start_date, end_date, force_refresh)
                instagram = InstagramMonthly(business_account_id=account, kpis=kpis)
            except CredentialExpired:
                raise
            except (GraphAPIError, ValueError) as exc:
                _log.warning(
                    "kpi.monthly_instagram_unavailable",
                    extra={"data": {"page_id": page, "account_id": account, "error": str(exc)}},
                )
                instagram = InstagramMonthly(business_account_id=account, error=str(exc))

        return MonthlyData(
            facebook=FacebookPage(page_id=page, page_info=page_info),
            instagram=instagram,
            generated_at=datetime.now(timezone.utc).isoformat(),
            date_range=DateRange(
                start=str(start_date) if start_date is not None else None,
                end=str(end_date) if end_date is not None else None,
            ),
        )


def calculate_with_deadline(
    calculator: KPICalculator,
    account_id: Optional[str],
    start_date: Optional[DateLike],
    end_date: Optional[DateLike],
    force_refresh: bool = False,
    *,
    timeout_seconds: float,
) -> KPISummary:
    """Race the calculation against a timer.

    On expiry KPITimeoutError is raised and the worker's eventual result is
    discarded; the worker thread itself is not interrupted.
    """
    pool = concurrent.futures.ThreadPoolExecutor(max_workers=1, thread_name_prefix="kpi")
    future = pool.submit(calculator.calculate, account_id, start_date, end_date, force_refresh)
    try:
        return future.result(timeout=timeout_seconds)
    except concurrent.futures.TimeoutError as exc:
        future.cancel()
        _log.error("kpi.timeout", extra={"data": {"account_id": account_id, "timeout_seconds": timeout_seconds}})
        raise KPITimeoutError(f"KPI calculation exceeded {timeout_seconds}s") from exc
    finally:
        pool.shutdown(wait=False)


def calculate_kpis(
    account_id: Optional[str],
    start_date: Optional[DateLike],
    end_date: Optional[DateLike],
    force_refresh: bool = False,
    *,
    calculator: Optional[KPICalculator] = None,
) -> KPISummary:
    """Public entry point. Without an explicit calculator one is wired from the environment."""
    if calculator is not None:
        return calculator.calculate(account_id, start_date, end_date, force_refresh)

    from adapters.wiring import open_calculator

    with open_calculator() as built:
        return built.calculate(account_id, start_date, end_date, force_refresh)


__all__ = [
    "KPICalculator",
    "KPITimeoutError",
    "calculate_kpis",
    "calculate_with_deadline",
    "post_engagement",
    "engagement_rate",
    "follower_growth",
    "default_period",
    "ACCOUNT_METRICS",
    "POST_FIELDS",
    "PAGE_FIELDS",
]
