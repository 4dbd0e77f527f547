"""
CLI for Instagram KPI reporting.

Commands:
  kpis         calculate the KPI summary for a period (optionally save JSON)
  posts        list posts published in a period
  clear-cache  remove cached Graph responses
  export       turn a saved KPI JSON file into a CSV report
  fetch        save page info plus linked Instagram KPIs for a Facebook page
"""

from __future__ import annotations

import json
from datetime import datetime
from pathlib import Path
from typing import Optional

import typer

from adapters.graph_errors import ConfigurationError, CredentialExpired, GraphAPIError
from adapters.wiring import build_cache, open_calculator
from apps.export.kpi_export import load_summary, write_kpi_csv
from apps.metrics.config import get_metrics_settings
from engine.metrics.windowing import parse_instant

app = typer.Typer(
    name="ig-metrics",
    help="Instagram Business Account KPIs from the Facebook Graph API",
    add_completion=False,
)

CREDENTIAL_EXIT_CODE = 2


def _fail(message: str, code: int = 1) -> None:
    typer.echo(f"❌ {message}", err=True)
    raise typer.Exit(code=code)


def _check_dates(*values: Optional[str]) -> None:
    for value in values:
        if not value:
            continue
        try:
            parse_instant(value)
        except ValueError as exc:
            _fail(f"Invalid date: {exc}")


def _handle_engine_error(exc: Exception) -> None:
    if isinstance(exc, CredentialExpired):
        typer.echo(f"❌ {exc}", err=True)
        typer.echo(exc.guidance, err=True)
        raise typer.Exit(code=CREDENTIAL_EXIT_CODE)
    if isinstance(exc, ConfigurationError):
        _fail(f"Configuration error: {exc}")
    _fail(f"Graph API error: {exc}")


@app.command("kpis")
def kpis(
    start: str = typer.Option(..., "--start", "-s", help="ISO8601 start of the period"),
    end: str = typer.Option(..., "--end", "-e", help="ISO8601 end of the period"),
    account: Optional[str] = typer.Option(None, "--account", "-a", help="Instagram Business Account ID"),
    force_refresh: bool = typer.Option(False, "--force-refresh", help="Bypass the response cache"),
    out: Optional[Path] = typer.Option(None, "--out", "-o", help="Write the summary JSON to this file"),
) -> None:
    """Calculate follower growth, engagement rate, reach and profile views."""
    _check_dates(start, end)
    try:
        with open_calculator() as calculator:
            summary = calculator.calculate(account, start, end, force_refresh)
    except ValueError as exc:
        _fail(f"Could not calculate KPIs: {exc}")
    except (GraphAPIError, ConfigurationError) as exc:
        _handle_engine_error(exc)

    payload = summary.to_json_dict()
    if out is not None:
        out.parent.mkdir(parents=True, exist_ok=True)
        out.write_text(json.dumps(payload, indent=2), encoding="utf-8")
        typer.echo(f"Wrote KPI summary to {out}")

    typer.echo(f"Follower growth: {summary.follower_growth.percentage}%")
    typer.echo(f"Engagement rate: {summary.engagement_rate.percentage}%")
    typer.echo(f"Reach: {summary.reach.total}")
    typer.echo(f"Profile views: {summary.profile_views.total}")
    typer.echo(f"Posts: {summary.posts.count}")


@app.command("posts")
def posts(
    start: str = typer.Option(..., "--start", "-s", help="ISO8601 start of the period"),
    end: str = typer.Option(..., "--end", "-e", help="ISO8601 end of the period"),
    account: Optional[str] = typer.Option(None, "--account", "-a", help="Instagram Business Account ID"),
    limit: Optional[int] = typer.Option(None, "--limit", "-l", min=1, max=100, help="Graph page size per window"),
) -> None:
    """Print posts for the period as JSON lines."""
    _check_dates(start, end)
    try:
        with open_calculator() as calculator:
            account_id = calculator.resolve_account(account)
            items = calculator.fetch_posts(account_id, calculator.windows_for(start, end), limit=limit)
    except ValueError as exc:
        _fail(f"Could not fetch posts: {exc}")
    except (GraphAPIError, ConfigurationError) as exc:
        _handle_engine_error(exc)

    for post in items:
        typer.echo(json.dumps(post.model_dump(by_alias=True, mode="json")))
    typer.echo(f"{len(items)} posts")


@app.command("clear-cache")
def clear_cache(
    prefix: Optional[str] = typer.Option(None, "--prefix", "-p", help="Only remove keys starting with this prefix"),
) -> None:
    """Remove cached Graph responses."""
    with build_cache(get_metrics_settings()) as cache:
        removed = cache.delete_prefix(prefix) if prefix else cache.clear()
    typer.echo(f"Removed {removed} cache entries")


@app.command("export")
def export(
    input: Path = typer.Option(..., "--input", "-i", help="KPI JSON written by `kpis --out`"),
    out: Path = typer.Option(Path("kpi_report.csv"), "--out", "-o", help="CSV report path"),
) -> None:
    """Write a CSV report from a saved KPI summary."""
    try:
        summary = load_summary(input)
    except FileNotFoundError as exc:
        _fail(str(exc))
    except ValueError as exc:
        _fail(f"Invalid KPI file: {exc}")
    path = write_kpi_csv(summary, out)
    typer.echo(f"Wrote report to {path}")


@app.command("fetch")
def fetch(
    page_id: str = typer.Argument(..., help="Facebook Page ID"),
    output: Optional[Path] = typer.Argument(None, help="Output JSON path (default: data_<timestamp>.json)"),
    start: Optional[str] = typer.Option(None, "--start", "-s", help="ISO8601 start of the period"),
    end: Optional[str] = typer.Option(None, "--end", "-e", help="ISO8601 end of the period"),
    force_refresh: bool = typer.Option(False, "--force-refresh", help="Bypass the response cache"),
) -> None:
    """Save page info and the linked Instagram account's KPIs as JSON."""
    _check_dates(start, end)
    try:
        with open_calculator() as calculator:
            monthly = calculator.monthly_data(page_id, start, end, force_refresh)
    except (GraphAPIError, ConfigurationError) as exc:
        _handle_engine_error(exc)

    if output is None:
        output = Path(f"data_{datetime.now().strftime('%Y%m%d_%H%M%S')}.json")
    output.parent.mkdir(parents=True, exist_ok=True)
    output.write_text(json.dumps(monthly.to_json_dict(), indent=2), encoding="utf-8")
    typer.echo(f"Wrote monthly data to {output}")

    typer.echo(f"Page: {monthly.facebook.page_info.get('name', page_id)}")
    instagram = monthly.instagram
    if instagram is None:
        typer.echo("No linked Instagram Business Account")
    elif instagram.error:
        typer.echo(f"Instagram KPIs unavailable: {instagram.error}")
    elif instagram.kpis is not None:
        typer.echo(f"Instagram account: {instagram.business_account_id}")
        typer.echo(f"Engagement rate: {instagram.kpis.engagement_rate.percentage}%")
        typer.echo(f"Reach: {instagram.kpis.reach.total}")

if __name__ == "__main__":
    app()
