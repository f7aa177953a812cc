"""Scan subcommand: run the auto-resolution sweep."""

from __future__ import annotations

from datetime import date

import typer

from cinestake.engine.scanner import AutoResolutionScanner, ScanStatus
from cinestake.storage.db import get_connection, init_schema

app = typer.Typer(help="Auto-resolution sweep")


@app.command("run")
def run(
    ctx: typer.Context,
    today: str | None = typer.Option(None, "--today", help="Evaluate eligibility as of this date (YYYY-MM-DD)"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Print every market result"),
) -> None:
    """Resolve every eligible market with trustworthy data; report the rest."""
    settings = ctx.obj["settings"]
    conn = get_connection(settings.db_path)
    init_schema(conn)
    try:
        scanner = AutoResolutionScanner.from_settings(conn, settings)
        report = scanner.run_scan(date.fromisoformat(today) if today else None)
        typer.echo(
            f"Processed: {report.processed}  Resolved: {report.successful}  "
            f"Manual: {report.manual_required}  Failed: {report.failed}"
        )
        for r in report.results:
            if verbose or r.status == ScanStatus.FAILED:
                typer.echo(f"  {r.market_id:<24} {r.status.value:<16} {r.reason or r.winning_outcome_id or ''}")
    finally:
        conn.close()
