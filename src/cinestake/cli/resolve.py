"""Resolve subcommand: run, preview, cancel."""

from __future__ import annotations

import typer

from cinestake.engine.odds import to_decimal
from cinestake.engine.payout import format_payout_breakdown
from cinestake.engine.resolution import ResolutionOrchestrator
from cinestake.errors import EngineError, ResolutionFanoutError
from cinestake.models import SYSTEM_RESOLVER
from cinestake.storage.db import get_connection, init_schema

app = typer.Typer(help="Manual resolution and rollback")


@app.command("run")
def run(
    ctx: typer.Context,
    market_id: str = typer.Argument(..., help="Market ID"),
    outcome: str = typer.Option(..., "--outcome", "-o", help="Winning outcome ID"),
    value: str | None = typer.Option(None, "--value", "-v", help="Observed value (score, gross, rank)"),
    resolved_by: str = typer.Option(SYSTEM_RESOLVER, "--by", help="Admin user ID"),
    notes: str | None = typer.Option(None, "--notes", help="Free-form notes"),
) -> None:
    """Resolve a market and pay out winners."""
    settings = ctx.obj["settings"]
    conn = get_connection(settings.db_path)
    init_schema(conn)
    try:
        result = ResolutionOrchestrator(conn).resolve(
            market_id,
            outcome,
            to_decimal(value) if value is not None else None,
            resolved_by,
            notes=notes,
        )
        typer.echo(f"Resolved {market_id} -> {outcome}")
        typer.echo(f"Pool: {result.total_pool}  Paid: {result.total_payouts}  Winners: {result.winner_count}")
        if result.refunded:
            typer.echo("No winning bets: all stakes refunded")
    except ResolutionFanoutError as e:
        typer.echo(f"Error: {e}")
        typer.echo(f"Completed steps: {', '.join(s.value for s in e.result.steps_completed) or 'none'}")
        raise typer.Exit(1)
    except EngineError as e:
        typer.echo(f"Error: {e}")
        raise typer.Exit(1)
    finally:
        conn.close()


@app.command("preview")
def preview(
    ctx: typer.Context,
    market_id: str = typer.Argument(..., help="Market ID"),
    outcome: str = typer.Option(..., "--outcome", "-o", help="Winning outcome ID"),
) -> None:
    """Show what a resolution would pay without writing anything."""
    settings = ctx.obj["settings"]
    conn = get_connection(settings.db_path)
    init_schema(conn)
    try:
        p = ResolutionOrchestrator(conn).preview(market_id, outcome)
        typer.echo(f"If '{p.winning_outcome_label}' wins:")
        typer.echo(f"  Pool: {p.summary.total_pool}  Paid: {p.summary.total_payouts}")
        typer.echo(f"  Winners: {p.winner_count}  Losers: {p.loser_count}  Avg winner payout: {p.average_winner_payout}")
        typer.echo(f"  Trendsetter points: {p.estimated_trendsetter_points}")
        for calc in p.summary.calculations:
            typer.echo(f"  {calc.user_id:<20} {calc.stake:>7}  {format_payout_breakdown(calc)}")
    except EngineError as e:
        typer.echo(f"Error: {e}")
        raise typer.Exit(1)
    finally:
        conn.close()


@app.command("cancel")
def cancel(ctx: typer.Context, market_id: str = typer.Argument(..., help="Market ID")) -> None:
    """Undo a resolution and return the market to locked."""
    settings = ctx.obj["settings"]
    conn = get_connection(settings.db_path)
    init_schema(conn)
    try:
        result = ResolutionOrchestrator(conn).cancel(market_id)
        typer.echo(f"Cancelled resolution of {market_id}: {result.bets_reversed} payouts reversed ({result.total_reversed})")
    except EngineError as e:
        typer.echo(f"Error: {e}")
        raise typer.Exit(1)
    finally:
        conn.close()
