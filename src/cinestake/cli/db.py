"""DB subcommand: init."""

from __future__ import annotations

import typer

from cinestake.storage.db import get_connection, init_schema

app = typer.Typer(help="Database setup")


@app.command("init")
def init(ctx: typer.Context) -> None:
    """Create tables in the configured DuckDB file."""
    settings = ctx.obj["settings"]
    conn = get_connection(settings.db_path)
    try:
        init_schema(conn)
        typer.echo(f"Schema ready at {settings.db_path}")
    finally:
        conn.close()
