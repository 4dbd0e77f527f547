"""
Metrics engine configuration.

Environment-driven settings with safe defaults so the engine can be built in
tests and local runs without a `.env` file. Credentials have no default; the
wiring layer raises ConfigurationError when they are needed and missing.
"""
import os
from dataclasses import dataclass
from typing import Optional


def _float(name: str, default: float) -> float:
    try:
        return float(os.getenv(name, str(default)))
    except ValueError:
        return default


def _int(name: str, default: int) -> int:
    try:
        return int(os.getenv(name, str(default)))
    except ValueError:
        return default


@dataclass
class MetricsSettings:
    FACEBOOK_ACCESS_TOKEN: Optional[str] = None
    INSTAGRAM_BUSINESS_ACCOUNT_ID: Optional[str] = None
    FACEBOOK_PAGE_ID: Optional[str] = None
    GRAPH_API_BASE_URL: str = "https://graph.facebook.com/v23.0"
    CACHE_DIR: str = "api-cache"
    WINDOW_DAYS: int = 3
    MAX_WINDOWS: int = 1000
    MAX_PAGES: int = 20
    MAX_RETRIES: int = 3
    RETRY_DELAY_SECONDS: float = 1.0
    WINDOW_DELAY_SECONDS: float = 1.0
    REQUEST_TIMEOUT_SECONDS: float = 60.0
    FOLLOWER_TIMEOUT_SECONDS: float = 30.0
    KPI_TIMEOUT_SECONDS: float = 300.0


def get_metrics_settings() -> MetricsSettings:
    return MetricsSettings(
        FACEBOOK_ACCESS_TOKEN=os.getenv("FACEBOOK_ACCESS_TOKEN") or None,
        INSTAGRAM_BUSINESS_ACCOUNT_ID=os.getenv("INSTAGRAM_BUSINESS_ACCOUNT_ID") or None,
        FACEBOOK_PAGE_ID=os.getenv("FACEBOOK_PAGE_ID") or None,
        GRAPH_API_BASE_URL=os.getenv("GRAPH_API_BASE_URL", "https://graph.facebook.com/v23.0"),
        CACHE_DIR=os.getenv("CACHE_DIR", "api-cache"),
        WINDOW_DAYS=_int("WINDOW_DAYS", 3),
        MAX_WINDOWS=_int("MAX_WINDOWS", 1000),
        MAX_PAGES=_int("MAX_PAGES", 20),
        MAX_RETRIES=_int("MAX_RETRIES", 3),
        RETRY_DELAY_SECONDS=_float("RETRY_DELAY_SECONDS", 1.0),
        WINDOW_DELAY_SECONDS=_float("WINDOW_DELAY_SECONDS", 1.0),
        REQUEST_TIMEOUT_SECONDS=_float("REQUEST_TIMEOUT_SECONDS", 60.0),
        FOLLOWER_TIMEOUT_SECONDS=_float("FOLLOWER_TIMEOUT_SECONDS", 30.0),
        KPI_TIMEOUT_SECONDS=_float("KPI_TIMEOUT_SECONDS", 300.0),
    )
