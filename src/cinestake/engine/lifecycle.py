"""Market status transitions outside resolution."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

import structlog

from cinestake.errors import InvalidState, NotFound
from cinestake.models import MarketStatus
from cinestake.storage.db import now_ms
from cinestake.storage.markets import get_market, list_markets, update_status

log = structlog.get_logger(__name__)

# resolved is reached only through the orchestrator, and left only by cancellation
ALLOWED_TRANSITIONS: dict[MarketStatus, frozenset[MarketStatus]] = {
    MarketStatus.PENDING: frozenset({MarketStatus.BLIND, MarketStatus.OPEN, MarketStatus.CANCELLED}),
    MarketStatus.BLIND: frozenset({MarketStatus.OPEN, MarketStatus.CANCELLED}),
    MarketStatus.OPEN: frozenset({MarketStatus.LOCKED, MarketStatus.CANCELLED}),
    MarketStatus.LOCKED: frozenset({MarketStatus.RESOLVING, MarketStatus.CANCELLED}),
    MarketStatus.RESOLVING: frozenset({MarketStatus.LOCKED, MarketStatus.CANCELLED}),
    MarketStatus.RESOLVED: frozenset(),
    MarketStatus.CANCELLED: frozenset(),
}


def can_transition(current: MarketStatus, new_status: MarketStatus) -> bool:
    return new_status in ALLOWED_TRANSITIONS[current]


def transition_market(conn: Any, market_id: str, new_status: MarketStatus) -> MarketStatus:
    """Move a market to new_status. Returns the previous status."""
    market = get_market(conn, market_id)
    if market is None:
        raise NotFound(f"Market {market_id} not found", market_id=market_id)
    if not can_transition(market.status, new_status):
        raise InvalidState(
            f"Cannot move market from {market.status.value} to {new_status.value}", market_id=market_id
        )
    if not update_status(conn, market_id, new_status, [market.status]):
        raise InvalidState(f"Market {market_id} changed status concurrently", market_id=market_id)
    log.info("market_transitioned", market_id=market_id, from_status=market.status.value, to_status=new_status.value)
    return market.status


@dataclass
class TransitionReport:
    opened: list[str] = field(default_factory=list)
    locked: list[str] = field(default_factory=list)


def transition_due_markets(conn: Any, now: int | None = None) -> TransitionReport:
    """blind -> open once the blind period is over, open -> locked once lock_at passes."""
    ts = now if now is not None else now_ms()
    report = TransitionReport()
    for market in list_markets(conn, [MarketStatus.BLIND, MarketStatus.OPEN]):
        if (
            market.status == MarketStatus.BLIND
            and market.blind_period_ends_at is not None
            and market.blind_period_ends_at <= ts
        ):
            if update_status(conn, market.market_id, MarketStatus.OPEN, [MarketStatus.BLIND]):
                report.opened.append(market.market_id)
                market.status = MarketStatus.OPEN
        if market.status == MarketStatus.OPEN and market.lock_at is not None and market.lock_at <= ts:
            if update_status(conn, market.market_id, MarketStatus.LOCKED, [MarketStatus.OPEN]):
                report.locked.append(market.market_id)
    log.info("due_markets_transitioned", opened=len(report.opened), locked=len(report.locked))
    return report
