"""Shared fixtures: a throwaway DuckDB file and seeding helpers."""

import tempfile
from datetime import date
from decimal import Decimal
from pathlib import Path

import pytest

from cinestake.models import (
    Bet,
    BetSnapshot,
    Market,
    MarketCategory,
    MarketStatus,
    MarketType,
    Outcome,
    User,
)
from cinestake.storage.bets import insert_bet
from cinestake.storage.db import get_connection, init_schema, now_ms
from cinestake.storage.markets import upsert_market
from cinestake.storage.users import upsert_user


@pytest.fixture
def temp_db():
    tmp = tempfile.mkdtemp()
    path = Path(tmp) / "test.duckdb"
    conn = get_connection(path)
    init_schema(conn)
    yield conn
    conn.close()
    for p in Path(tmp).iterdir():
        p.unlink()
    Path(tmp).rmdir()


@pytest.fixture
def config_dir(tmp_path):
    """Config dir whose default.toml points the DB at tmp_path."""
    cfg = tmp_path / "config"
    cfg.mkdir()
    db_path = (tmp_path / "cinestake.duckdb").as_posix()
    (cfg / "default.toml").write_text(
        f"""
[storage]
db_path = "{db_path}"

[betting]
min_stake = 1
max_stake = 50

[providers]
omdb_api_key = ""
rapidapi_key = ""

[logging]
level = "WARNING"
format = "console"
"""
    )
    return cfg


def yes_no_market(
    market_id: str = "m1",
    status: MarketStatus = MarketStatus.LOCKED,
    category: MarketCategory = MarketCategory.CRITIC_SCORE,
    threshold: Decimal | None = Decimal("90"),
    release_date: date | None = date(2026, 1, 1),
    imdb_id: str | None = "tt0000001",
    **kwargs,
) -> Market:
    return Market(
        market_id=market_id,
        title=f"Will {market_id} clear the bar?",
        movie_title=f"Movie {market_id}",
        imdb_id=imdb_id,
        release_date=release_date,
        market_type=MarketType.BINARY,
        category=category,
        threshold=threshold,
        status=status,
        outcomes=[
            Outcome(outcome_id=f"{market_id}-yes", market_id=market_id, label="Yes", sort_order=0),
            Outcome(outcome_id=f"{market_id}-no", market_id=market_id, label="No", sort_order=1),
        ],
        **kwargs,
    )


@pytest.fixture
def make_user(temp_db):
    def _make(user_id: str, balance: str = "100.00") -> User:
        user = User(user_id=user_id, username=user_id.title(), balance=Decimal(balance))
        upsert_user(temp_db, user)
        return user

    return _make


@pytest.fixture
def make_market(temp_db):
    def _make(market_id: str = "m1", **kwargs) -> Market:
        market = kwargs.pop("market", None) or yes_no_market(market_id, **kwargs)
        upsert_market(temp_db, market)
        return market

    return _make


@pytest.fixture
def make_bet(temp_db):
    """Insert a bet with an explicit frozen snapshot. Balances are not touched."""
    counter = {"n": 0}

    def _make(
        user_id: str,
        market_id: str,
        outcome_id: str,
        stake: str,
        ratio: str = "0.5000",
        contrarian: bool = False,
        blind: bool = False,
        multiplier: str | None = None,
    ) -> Bet:
        from cinestake.engine.odds import calculate_multiplier

        counter["n"] += 1
        bet = Bet(
            bet_id=f"b{counter['n']}-{user_id}-{market_id}",
            user_id=user_id,
            market_id=market_id,
            outcome_id=outcome_id,
            stake=Decimal(stake),
            snapshot=BetSnapshot(
                placed_during_blind_period=blind,
                popularity_ratio=Decimal(ratio),
                is_contrarian=contrarian,
                dynamic_multiplier=Decimal(multiplier) if multiplier else calculate_multiplier(Decimal(ratio)),
            ),
            created_at=now_ms() + counter["n"],
        )
        insert_bet(temp_db, bet)
        return bet

    return _make
