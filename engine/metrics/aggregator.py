"""
Merge per-window Graph insight payloads into one series per metric.

How a metric is combined across windows comes from METRIC_MODES, never from
the shape of a particular payload:

- "daily": each window's `values[*]` become dated points, concatenated in
  window order (callers must pass windows in the order they were built);
- "total": each window contributes one number (`total_value.value`, or the
  sum of `values[*].value` if the API answered with a series), summed.
"""
from __future__ import annotations

from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence

from .schemas import AggregationMode, MetricPoint, MetricSeries

DAILY: AggregationMode = "daily"
TOTAL: AggregationMode = "total"

METRIC_MODES: Dict[str, AggregationMode] = {
    "reach": DAILY,
    "follower_count": DAILY,
    "impressions": DAILY,
    "profile_views": TOTAL,
    "website_clicks": TOTAL,
    "accounts_engaged": TOTAL,
    "total_interactions": TOTAL,
}
DEFAULT_MODE: AggregationMode = DAILY


def mode_for(name: str) -> AggregationMode:
    return METRIC_MODES.get(name, DEFAULT_MODE)


def _number(value: Any) -> float:
    if isinstance(value, bool) or value is None:
        return 0
    if isinstance(value, (int, float)):
        return value
    try:
        return float(value)
    except (TypeError, ValueError):
        return 0


def _daily_points(payload: Mapping[str, Any]) -> List[MetricPoint]:
    values = payload.get("values")
    if isinstance(values, list) and values:
        points = []
        for row in values:
            if not isinstance(row, Mapping):
                continue
            points.append(MetricPoint(date=row.get("end_time"), value=_number(row.get("value"))))
        return points
    total = payload.get("total_value")
    if isinstance(total, Mapping) and "value" in total:
        return [MetricPoint(date=None, value=_number(total.get("value")))]
    return []


def _window_total(payload: Mapping[str, Any]) -> float:
    total = payload.get("total_value")
    if isinstance(total, Mapping) and "value" in total:
        return _number(total.get("value"))
    values = payload.get("values")
    if isinstance(values, list):
        return sum(_number(row.get("value")) for row in values if isinstance(row, Mapping))
    return 0


def aggregate(
    per_window_results: Sequence[Iterable[Mapping[str, Any]]],
    metric_names: Optional[Iterable[str]] = None,
) -> Dict[str, MetricSeries]:
    """Combine window payloads (each a list of Graph metric objects).

    Names in `metric_names` are always present in the result; a metric missing
    from some (or every) window simply contributes nothing for that window.
    """
    points: Dict[str, List[MetricPoint]] = {}
    totals: Dict[str, float] = {}

    def _ensure(name: str) -> None:
        if name not in points:
            points[name] = []
            totals[name] = 0

    for name in metric_names or ():
        _ensure(name)

    for window_payload in per_window_results:
        for payload in window_payload or ():
            if not isinstance(payload, Mapping) or not payload.get("name"):
                continue
            name = str(payload["name"])
            _ensure(name)
            if mode_for(name) == DAILY:
                points[name].extend(_daily_points(payload))
            else:
                totals[name] += _window_total(payload)

    result: Dict[str, MetricSeries] = {}
    for name in points:
        mode = mode_for(name)
        if mode == DAILY:
            series_points = points[name]
            result[name] = MetricSeries(
                name=name,
                mode=mode,
                points=series_points,
                total=sum(p.value for p in series_points),
            )
        else:
            result[name] = MetricSeries(name=name, mode=mode, total=totals[name])
    return result


def account_metric_total(series: Mapping[str, MetricSeries], name: str) -> float:
    """Total for one aggregated metric; 0 when the metric never appeared."""
    found = series.get(name)
    return found.total_value() if found is not None else 0


__all__ = ["METRIC_MODES", "DAILY", "TOTAL", "mode_for", "aggregate", "account_metric_total"]
