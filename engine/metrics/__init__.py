"""Windowing, aggregation and KPI calculation for Instagram account metrics."""
from .aggregator import METRIC_MODES, account_metric_total, aggregate
from .kpi_calculator import KPICalculator, KPITimeoutError, calculate_kpis, calculate_with_deadline
from .schemas import KPISummary, MetricSeries, Post
from .windowing import DateWindow, WindowLimitExceeded, build_windows

__all__ = [
    "DateWindow",
    "WindowLimitExceeded",
    "build_windows",
    "METRIC_MODES",
    "aggregate",
    "account_metric_total",
    "KPICalculator",
    "KPITimeoutError",
    "calculate_kpis",
    "calculate_with_deadline",
    "KPISummary",
    "MetricSeries",
    "Post",
]
