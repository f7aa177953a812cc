"""Markets subcommand: list, transition, tick, odds."""

from __future__ import annotations

import typer

from cinestake.engine.lifecycle import transition_due_markets, transition_market
from cinestake.engine.odds import outcome_odds, value_indicator
from cinestake.errors import EngineError
from cinestake.models import MarketStatus
from cinestake.storage.bets import outcome_stakes
from cinestake.storage.db import get_connection, init_schema
from cinestake.storage.markets import get_market
from cinestake.storage.markets import list_markets as storage_list_markets

app = typer.Typer(help="Market listing and lifecycle")


@app.command("list")
def list_markets(
    ctx: typer.Context,
    status: list[MarketStatus] | None = typer.Option(None, "--status", "-s", help="Filter by status (repeatable)"),
) -> None:
    """List markets in the local database."""
    settings = ctx.obj["settings"]
    conn = get_connection(settings.db_path)
    init_schema(conn)
    try:
        rows = storage_list_markets(conn, statuses=status or None)
        for m in rows:
            released = m.release_date.isoformat() if m.release_date else "-"
            typer.echo(f"  {m.market_id:<24} {m.status.value:<10} {m.category.value:<18} {released}  {m.title[:50]}")
        typer.echo(f"Total: {len(rows)} markets")
    finally:
        conn.close()


@app.command("transition")
def transition(
    ctx: typer.Context,
    market_id: str = typer.Argument(..., help="Market ID"),
    new_status: MarketStatus = typer.Argument(..., help="Target status"),
) -> None:
    """Move a market to another lifecycle status."""
    settings = ctx.obj["settings"]
    conn = get_connection(settings.db_path)
    init_schema(conn)
    try:
        previous = transition_market(conn, market_id, new_status)
        typer.echo(f"{market_id}: {previous.value} -> {new_status.value}")
    except EngineError as e:
        typer.echo(f"Error: {e}")
        raise typer.Exit(1)
    finally:
        conn.close()


@app.command("tick")
def tick(ctx: typer.Context) -> None:
    """Open markets whose blind period ended and lock markets past their lock time."""
    settings = ctx.obj["settings"]
    conn = get_connection(settings.db_path)
    init_schema(conn)
    try:
        report = transition_due_markets(conn)
        typer.echo(f"Opened: {len(report.opened)}  Locked: {len(report.locked)}")
    finally:
        conn.close()


@app.command("odds")
def odds(ctx: typer.Context, market_id: str = typer.Argument(..., help="Market ID")) -> None:
    """Show current pool share and multiplier per outcome."""
    settings = ctx.obj["settings"]
    conn = get_connection(settings.db_path)
    init_schema(conn)
    try:
        market = get_market(conn, market_id)
        if market is None:
            typer.echo(f"Market not found: {market_id}")
            raise typer.Exit(1)
        for o in outcome_odds(market, outcome_stakes(conn, market_id)):
            typer.echo(
                f"  {o.label:<24} stake={o.total_stake:>8}  bets={o.bet_count:<4} "
                f"share={o.popularity_ratio:.2%}  {o.effective_odds} ({value_indicator(o.multiplier)})"
            )
    finally:
        conn.close()
