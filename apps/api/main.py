"""
FastAPI application for the Instagram metrics dashboard.

Exposes the KPI calculation, the windowed post listing, page-level monthly
data, the sample summaries and cache maintenance.
The engine (DiskCache + GraphFetcher + KPICalculator) is opened once at
startup and closed at shutdown; route handlers receive it via dependencies so
tests can override them.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from fastapi import Depends, FastAPI, HTTPException, Query, Request, status
from fastapi.middleware.cors import CORSMiddleware

from adapters.graph_errors import ConfigurationError, CredentialExpired, GraphAPIError
from adapters.wiring import build_cache, build_calculator, build_fetcher
from apps.metrics.config import get_metrics_settings
from apps.metrics.samples import SAMPLE_KPIS, sample_for
from engine.cache.disk_cache import DiskCache
from engine.metrics.kpi_calculator import KPICalculator, KPITimeoutError, calculate_with_deadline
from engine.metrics.windowing import parse_instant

from .config import get_settings
from .schemas import (
    AllMonthsResponse,
    CacheClearRequest,
    CacheClearResponse,
    HealthResponse,
    KPIEnvelope,
    KPIRequest,
    KPIResponse,
    MonthlyDataRequest,
    PostsResponse,
    SampleSummaryResponse,
    VersionResponse,
)

API_VERSION = "0.1.0"

# Configure logging
settings = get_settings()
logging.basicConfig(level=settings.log_level.upper())
logger = logging.getLogger(__name__)


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


@asynccontextmanager
async def lifespan(app: FastAPI):
    metrics_settings = get_metrics_settings()
    cache = build_cache(metrics_settings)
    app.state.cache = cache
    app.state.calculator = None
    app.state.engine_error = None
    fetcher = None
    try:
        fetcher = build_fetcher(metrics_settings, cache)
        app.state.calculator = build_calculator(metrics_settings, fetcher)
    except ConfigurationError as exc:
        # Keep serving /health; KPI routes report the configuration problem.
        logger.error("Engine not configured: %s", exc)
        app.state.engine_error = str(exc)
    try:
        yield
    finally:
        if fetcher is not None:
            fetcher.close()
        cache.close()


def get_calculator(request: Request) -> KPICalculator:
    calculator = getattr(request.app.state, "calculator", None)
    if calculator is None:
        detail = getattr(request.app.state, "engine_error", None) or "Metrics engine is not configured"
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail={"error": "configuration", "message": detail})
    return calculator


def get_cache(request: Request) -> DiskCache:
    cache = getattr(request.app.state, "cache", None)
    if cache is None:
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Cache is not open")
    return cache


def _credential_error(exc: CredentialExpired) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail={"error": "credential_expired", "message": str(exc), "guidance": exc.guidance},
    )


# Create FastAPI app
app = FastAPI(
    title="Instagram Metrics API",
    description="Instagram Business Account KPIs from the Facebook Graph API",
    version=API_VERSION,
    debug=settings.debug,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.get("/health", response_model=HealthResponse)
async def health_check():
    """Health check endpoint."""
    return HealthResponse(status="ok")


@app.get("/version", response_model=VersionResponse)
async def get_version():
    """Get API version."""
    return VersionResponse(version=API_VERSION)


@app.post("/api/instagram/kpis", response_model=KPIResponse)
def instagram_kpis(request: KPIRequest, calculator: KPICalculator = Depends(get_calculator)):
    """Calculate KPIs for a reporting period, falling back to sample data on upstream failure."""
    logger.info("KPI request %s .. %s (force_refresh=%s)", request.start_date, request.end_date, request.force_refresh)
    try:
        parse_instant(request.start_date)
        parse_instant(request.end_date)
    except ValueError as exc:
        raise HTTPException(status_code=422, detail=f"Invalid date: {exc}")

    try:
        summary = calculate_with_deadline(
            calculator,
            request.account_id,
            request.start_date,
            request.end_date,
            request.force_refresh,
            timeout_seconds=get_metrics_settings().KPI_TIMEOUT_SECONDS,
        )
    except CredentialExpired as exc:
        logger.error("Access token expired while calculating KPIs")
        raise _credential_error(exc)
    except ConfigurationError as exc:
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail={"error": "configuration", "message": str(exc)})
    except (GraphAPIError, KPITimeoutError, ValueError) as exc:
        # Dates were validated above, so a ValueError here means an unusable
        # upstream payload (e.g. a non-numeric insight value).
        logger.warning("KPI calculation failed: %s", exc)
        fallback = sample_for(request.start_date) if settings.sample_fallback else None
        if fallback is None:
            raise HTTPException(
                status_code=status.HTTP_502_BAD_GATEWAY,
                detail={"error": type(exc).__name__, "message": str(exc)},
            )
        return KPIResponse(
            instagram=KPIEnvelope(
                kpis=fallback.to_json_dict(),
                cache_status="fallback",
                note=f"Using sample data due to Graph API error: {exc}",
                timestamp=_now(),
            )
        )

    return KPIResponse(
        instagram=KPIEnvelope(
            kpis=summary.to_json_dict(),
            cache_status="fresh" if request.force_refresh else "cached",
            note="Live data from the Facebook Graph API",
            timestamp=_now(),
        )
    )


@app.get("/api/instagram/posts", response_model=PostsResponse)
def instagram_posts(
    start_date: str = Query(..., alias="startDate"),
    end_date: str = Query(..., alias="endDate"),
    account_id: Optional[str] = Query(None, alias="accountId"),
    limit: Optional[int] = Query(None, ge=1, le=100, description="Graph page size per window"),
    calculator: KPICalculator = Depends(get_calculator),
):
    """List posts (with embedded insights) for a period."""
    try:
        windows = calculator.windows_for(start_date, end_date)
    except ValueError as exc:
        raise HTTPException(status_code=422, detail=f"Invalid date: {exc}")

    try:
        account = calculator.resolve_account(account_id)
        posts = calculator.fetch_posts(account, windows, limit=limit)
    except CredentialExpired as exc:
        raise _credential_error(exc)
    except ConfigurationError as exc:
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail={"error": "configuration", "message": str(exc)})
    except (GraphAPIError, ValueError) as exc:
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail={"error": type(exc).__name__, "message": str(exc)})

    logger.info("Fetched %s posts for %s .. %s", len(posts), start_date, end_date)
    return PostsResponse(
        posts=[p.model_dump(by_alias=True, mode="json") for p in posts],
        count=len(posts),
        generated_at=_now(),
    )


@app.post("/api/monthly-data")
def monthly_data(request: MonthlyDataRequest, calculator: KPICalculator = Depends(get_calculator)) -> Dict[str, Any]:
    """Facebook page info plus the linked Instagram account's KPIs."""
    try:
        monthly = calculator.monthly_data(
            request.page_id, request.start_date, request.end_date, request.force_refresh
        )
    except ValueError as exc:
        raise HTTPException(status_code=422, detail=f"Invalid date: {exc}")
    except CredentialExpired as exc:
        raise _credential_error(exc)
    except ConfigurationError as exc:
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail={"error": "configuration", "message": str(exc)})
    except GraphAPIError as exc:
        logger.error("Monthly data fetch failed: %s", exc)
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail={"error": type(exc).__name__, "message": str(exc)})
    return {"success": True, **monthly.to_json_dict()}


@app.get("/api/instagram/summary", response_model=SampleSummaryResponse)
async def instagram_summary(month: str = Query("june", description="Lowercase month name")):
    """Sample KPI summary for one month."""
    sample = SAMPLE_KPIS.get(month.lower())
    if sample is None:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={"error": "Invalid month", "availableMonths": list(SAMPLE_KPIS)},
        )
    return SampleSummaryResponse(month=month.lower(), data=sample.to_json_dict())


@app.get("/api/instagram/all-months", response_model=AllMonthsResponse)
async def instagram_all_months():
    """Every sample month's KPI summary."""
    return AllMonthsResponse(
        months=list(SAMPLE_KPIS),
        data={month: summary.to_json_dict() for month, summary in SAMPLE_KPIS.items()},
    )


@app.post("/api/cache/clear", response_model=CacheClearResponse)
def clear_cache(request: CacheClearRequest, cache: DiskCache = Depends(get_cache)):
    """Remove cached Graph responses (all, or those whose key starts with `prefix`)."""
    removed = cache.delete_prefix(request.prefix) if request.prefix else cache.clear()
    return CacheClearResponse(removed=removed)


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host=settings.host, port=settings.port)
