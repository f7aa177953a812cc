"""Users subcommand: add, score, matches, leaderboard."""

from __future__ import annotations

from decimal import Decimal

import typer

from cinestake.engine.taste_match import get_user_matches
from cinestake.engine.trendsetter import calculate_score, get_leaderboard, get_user_rank
from cinestake.models import User
from cinestake.storage.db import get_connection, init_schema
from cinestake.storage.users import upsert_user

app = typer.Typer(help="Users, trendsetter scores and taste matches")


@app.command("add")
def add(
    ctx: typer.Context,
    user_id: str = typer.Argument(..., help="User ID"),
    username: str | None = typer.Option(None, "--username", "-u"),
    balance: str | None = typer.Option(None, "--balance", help="Starting balance (default from config)"),
) -> None:
    """Create or update a user."""
    settings = ctx.obj["settings"]
    conn = get_connection(settings.db_path)
    init_schema(conn)
    try:
        amount = Decimal(balance) if balance is not None else settings.starting_balance
        upsert_user(conn, User(user_id=user_id, username=username or user_id, balance=amount))
        typer.echo(f"User {user_id} balance {amount}")
    finally:
        conn.close()


@app.command("score")
def score(ctx: typer.Context, user_id: str = typer.Argument(..., help="User ID")) -> None:
    """Trendsetter score, breakdown and badges."""
    settings = ctx.obj["settings"]
    conn = get_connection(settings.db_path)
    init_schema(conn)
    try:
        s = calculate_score(conn, user_id)
        rank = get_user_rank(conn, user_id)
        typer.echo(f"{user_id}: {s.total_points} points" + (f" (rank #{rank})" if rank else ""))
        typer.echo(
            f"  blind={s.blind_bets} contrarian={s.contrarian_bets} "
            f"correct_blind={s.correct_blind} correct_contrarian={s.correct_contrarian}"
        )
        if s.badges:
            typer.echo("  Badges: " + ", ".join(b.name for b in s.badges))
    finally:
        conn.close()


@app.command("matches")
def matches(
    ctx: typer.Context,
    user_id: str = typer.Argument(..., help="User ID"),
    limit: int = typer.Option(20, "--limit", "-n"),
) -> None:
    """Users with similar taste, best first."""
    settings = ctx.obj["settings"]
    conn = get_connection(settings.db_path)
    init_schema(conn)
    try:
        rows = get_user_matches(conn, user_id, limit)
        for m in rows:
            typer.echo(f"  {m.username:<20} {m.match_percentage:>3}%  {m.strength:<12} over {m.markets_in_common} markets")
        typer.echo(f"Total: {len(rows)} matches")
    finally:
        conn.close()


@app.command("leaderboard")
def leaderboard(ctx: typer.Context, limit: int = typer.Option(10, "--limit", "-n")) -> None:
    """Top trendsetters."""
    settings = ctx.obj["settings"]
    conn = get_connection(settings.db_path)
    init_schema(conn)
    try:
        for e in get_leaderboard(conn, limit):
            typer.echo(f"  #{e.rank:<3} {e.username:<20} {e.total_points}")
    finally:
        conn.close()
