"""Resolution records - one per resolved market."""

from __future__ import annotations

import json
from typing import TYPE_CHECKING

from cinestake.models import Resolution

if TYPE_CHECKING:
    from duckdb import DuckDBPyConnection


def insert_resolution(conn: DuckDBPyConnection, resolution: Resolution) -> None:
    conn.execute(
        """
        INSERT INTO resolutions (market_id, resolved_by, data_source, raw_data, notes, resolved_at)
        VALUES (?, ?, ?, ?, ?, ?)
        """,
        [
            resolution.market_id,
            resolution.resolved_by,
            resolution.data_source,
            json.dumps(resolution.raw_data, default=str) if resolution.raw_data is not None else None,
            resolution.notes,
            resolution.resolved_at,
        ],
    )


def get_resolution(conn: DuckDBPyConnection, market_id: str) -> Resolution | None:
    row = conn.execute(
        "SELECT market_id, resolved_by, data_source, raw_data, notes, resolved_at FROM resolutions WHERE market_id = ?",
        [market_id],
    ).fetchone()
    if not row:
        return None
    raw = json.loads(row[3]) if isinstance(row[3], str) else row[3]
    return Resolution(
        market_id=row[0],
        resolved_by=row[1],
        data_source=row[2],
        raw_data=raw,
        notes=row[4],
        resolved_at=row[5],
    )


def delete_resolution(conn: DuckDBPyConnection, market_id: str) -> bool:
    rows = conn.execute("DELETE FROM resolutions WHERE market_id = ? RETURNING market_id", [market_id]).fetchall()
    return bool(rows)
