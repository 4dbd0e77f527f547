"""
Engine wiring factory.

Single place to build the DiskCache, GraphFetcher and KPICalculator from
MetricsSettings (environment-driven) for use by the API and the CLI. Callers
may inject an `httpx.Client` (tests use `httpx.MockTransport`) and a sleeper.

Credentials are checked here, before any network call: a missing access token
raises ConfigurationError. A missing account id is tolerated at build time
because callers may pass one per request or it is discovered from
FACEBOOK_PAGE_ID; the calculator raises when none of these is available.
"""
from __future__ import annotations

import time
from contextlib import contextmanager
from typing import Callable, Iterator, Optional

import httpx

from apps.metrics.config import MetricsSettings, get_metrics_settings
from engine.cache.disk_cache import DiskCache
from engine.metrics.kpi_calculator import KPICalculator

from .graph_adapter import GraphFetcher
from .graph_errors import ConfigurationError


def build_cache(settings: MetricsSettings) -> DiskCache:
    """Construct and open the response cache."""
    return DiskCache(settings.CACHE_DIR).open()


def build_fetcher(
    settings: MetricsSettings,
    cache: DiskCache,
    http_client: Optional[httpx.Client] = None,
    sleeper: Callable[[float], None] = time.sleep,
) -> GraphFetcher:
    if not settings.FACEBOOK_ACCESS_TOKEN:
        raise ConfigurationError(
            "FACEBOOK_ACCESS_TOKEN environment variable is not set; add it to the environment."
        )
    return GraphFetcher(
        settings.FACEBOOK_ACCESS_TOKEN,
        cache=cache,
        http_client=http_client,
        base_url=settings.GRAPH_API_BASE_URL,
        max_retries=settings.MAX_RETRIES,
        initial_delay=settings.RETRY_DELAY_SECONDS,
        max_pages=settings.MAX_PAGES,
        timeout_seconds=settings.REQUEST_TIMEOUT_SECONDS,
        object_timeout_seconds=settings.FOLLOWER_TIMEOUT_SECONDS,
        sleeper=sleeper,
    )


def build_calculator(
    settings: MetricsSettings,
    fetcher: GraphFetcher,
    sleeper: Callable[[float], None] = time.sleep,
) -> KPICalculator:
    return KPICalculator(
        fetcher,
        default_account_id=settings.INSTAGRAM_BUSINESS_ACCOUNT_ID,
        default_page_id=settings.FACEBOOK_PAGE_ID,
        window_days=settings.WINDOW_DAYS,
        max_windows=settings.MAX_WINDOWS,
        window_delay=settings.WINDOW_DELAY_SECONDS,
        sleeper=sleeper,
    )


@contextmanager
def open_calculator(
    settings: Optional[MetricsSettings] = None,
    http_client: Optional[httpx.Client] = None,
    sleeper: Callable[[float], None] = time.sleep,
) -> Iterator[KPICalculator]:
    """Build cache + fetcher + calculator and close them on exit."""
    settings = settings or get_metrics_settings()
    cache = build_cache(settings)
    fetcher: Optional[GraphFetcher] = None
    try:
        fetcher = build_fetcher(settings, cache, http_client=http_client, sleeper=sleeper)
        yield build_calculator(settings, fetcher, sleeper=sleeper)
    finally:
        if fetcher is not None:
            fetcher.close()
        cache.close()
