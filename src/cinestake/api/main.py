"""FastAPI surface over the resolution engine."""

from __future__ import annotations

from contextlib import asynccontextmanager
from dataclasses import asdict
from pathlib import Path
from typing import Any

import structlog
from fastapi import FastAPI, Header, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from cinestake.api.schemas import (
    BetResponse,
    BoxOfficeEntryRequest,
    CancellationResponse,
    ErrorResponse,
    HealthResponse,
    LeaderboardItem,
    LeaderboardResponse,
    PayoutItem,
    PlaceBetRequest,
    ResolutionPreviewResponse,
    ResolutionResponse,
    ResolveRequest,
    ScanReportResponse,
    ScanResultItem,
    TasteMatchesResponse,
    TasteMatchItem,
    TrendsetterScoreResponse,
)
from cinestake.config import Settings, configure_logging, get_settings
from cinestake.engine.betting import place_bet
from cinestake.engine.payout import PayoutCalculation
from cinestake.engine.resolution import ResolutionOrchestrator
from cinestake.engine.scanner import AutoResolutionScanner
from cinestake.engine.taste_match import get_user_matches
from cinestake.engine.trendsetter import calculate_score, get_leaderboard, get_recent_events, get_user_rank
from cinestake.errors import (
    AlreadyResolved,
    DataUnavailable,
    EngineError,
    InsufficientConfidence,
    InvalidInput,
    InvalidState,
    NotFound,
    ResolutionFanoutError,
)
from cinestake.providers.box_office import ManualBoxOfficeProvider, RapidAPIBoxOfficeProvider
from cinestake.storage.db import get_connection, init_schema

log = structlog.get_logger(__name__)

# Set by run_api(); tests point these at a temp config dir
_config_profile: str | None = None
_config_dir: str | Path | None = None
# Admin-entered box office figures live for the process lifetime
_box_office: ManualBoxOfficeProvider | None = None


def _settings() -> Settings:
    return get_settings(_config_profile, _config_dir)


def _get_conn():
    return get_connection(_settings().db_path)


def _box_office_provider(settings: Settings) -> ManualBoxOfficeProvider:
    global _box_office
    if _box_office is None:
        _box_office = ManualBoxOfficeProvider(fallback=RapidAPIBoxOfficeProvider.from_settings(settings))
    return _box_office


def _build_scanner(conn: Any, settings: Settings) -> AutoResolutionScanner:
    return AutoResolutionScanner.from_settings(conn, settings, box_office_provider=_box_office_provider(settings))


@asynccontextmanager
async def lifespan(app: FastAPI):
    conn = _get_conn()
    try:
        init_schema(conn)
    finally:
        conn.close()
    yield


app = FastAPI(title="CineStake API", version="0.1.0", lifespan=lifespan)
app.add_middleware(CORSMiddleware, allow_origins=["*"], allow_methods=["*"], allow_headers=["*"])


def _error_json(code: str, message: str, status_code: int = 404) -> JSONResponse:
    """Return consistent error JSON: { detail, code }."""
    return JSONResponse(
        status_code=status_code,
        content={"detail": message, "code": code},
    )


def _status_for(exc: EngineError) -> int:
    if isinstance(exc, NotFound):
        return 404
    if isinstance(exc, (InvalidState, AlreadyResolved)):
        return 409
    if isinstance(exc, (InvalidInput, InsufficientConfidence)):
        return 422
    if isinstance(exc, DataUnavailable):
        return 502
    return 500


@app.exception_handler(EngineError)
async def engine_error_handler(request: Request, exc: EngineError) -> JSONResponse:
    if isinstance(exc, ResolutionFanoutError):
        log.error("api_resolution_partial", path=request.url.path, error=str(exc))
    return _error_json(exc.code, exc.message, _status_for(exc))


def _payout_item(calc: PayoutCalculation) -> PayoutItem:
    return PayoutItem(**asdict(calc))


_ERRORS: dict[int | str, dict[str, Any]] = {
    404: {"description": "Not found", "model": ErrorResponse},
    409: {"description": "Conflicts with market status", "model": ErrorResponse},
    422: {"description": "Invalid input", "model": ErrorResponse},
}


@app.get("/health", response_model=HealthResponse)
def health() -> HealthResponse:
    return HealthResponse(status="ok")


@app.post("/bets", response_model=BetResponse, status_code=201, responses=_ERRORS)
def create_bet(body: PlaceBetRequest) -> BetResponse:
    settings = _settings()
    conn = _get_conn()
    try:
        bet = place_bet(
            conn,
            body.user_id,
            body.market_id,
            body.outcome_id,
            body.stake,
            min_stake=settings.min_stake,
            max_stake=settings.max_stake,
        )
        return BetResponse(
            bet_id=bet.bet_id,
            user_id=bet.user_id,
            market_id=bet.market_id,
            outcome_id=bet.outcome_id,
            stake=bet.stake,
            placed_during_blind_period=bet.snapshot.placed_during_blind_period,
            popularity_ratio=bet.snapshot.popularity_ratio,
            is_contrarian=bet.snapshot.is_contrarian,
            dynamic_multiplier=bet.snapshot.dynamic_multiplier,
        )
    finally:
        conn.close()


@app.post("/markets/{market_id}/resolve", response_model=ResolutionResponse, responses=_ERRORS)
def resolve_market(market_id: str, body: ResolveRequest) -> ResolutionResponse:
    """Resolve a market manually. 409 if already resolved or not locked/open."""
    conn = _get_conn()
    try:
        r = ResolutionOrchestrator(conn).resolve(
            market_id,
            body.winning_outcome_id,
            body.actual_value,
            body.resolved_by,
            notes=body.notes,
        )
        return ResolutionResponse(
            market_id=r.market_id,
            winning_outcome_id=r.winning_outcome_id,
            actual_value=r.actual_value,
            resolved_by=r.resolved_by,
            total_pool=r.total_pool,
            total_payouts=r.total_payouts,
            winner_count=r.winner_count,
            loser_count=r.loser_count,
            refunded=r.refunded,
            trendsetter_points_awarded=r.trendsetter_points_awarded,
            steps_completed=[s.value for s in r.steps_completed],
            payouts=[_payout_item(c) for c in r.payouts],
        )
    finally:
        conn.close()


@app.get("/markets/{market_id}/resolve/preview", response_model=ResolutionPreviewResponse, responses=_ERRORS)
def preview_resolution(
    market_id: str,
    outcome_id: str = Query(..., description="Outcome to treat as the winner"),
) -> ResolutionPreviewResponse:
    conn = _get_conn()
    try:
        p = ResolutionOrchestrator(conn).preview(market_id, outcome_id)
        return ResolutionPreviewResponse(
            market_id=p.market_id,
            winning_outcome_id=p.winning_outcome_id,
            winning_outcome_label=p.winning_outcome_label,
            total_pool=p.summary.total_pool,
            total_payouts=p.summary.total_payouts,
            winner_count=p.winner_count,
            loser_count=p.loser_count,
            average_winner_payout=p.average_winner_payout,
            estimated_trendsetter_points=p.estimated_trendsetter_points,
            refunded=p.summary.refunded,
            payouts=[_payout_item(c) for c in p.summary.calculations],
        )
    finally:
        conn.close()


@app.post("/markets/{market_id}/resolve/cancel", response_model=CancellationResponse, responses=_ERRORS)
def cancel_resolution(market_id: str) -> CancellationResponse:
    conn = _get_conn()
    try:
        c = ResolutionOrchestrator(conn).cancel(market_id)
        return CancellationResponse(market_id=c.market_id, bets_reversed=c.bets_reversed, total_reversed=c.total_reversed)
    finally:
        conn.close()


@app.post(
    "/cron/auto-resolve",
    response_model=ScanReportResponse,
    responses={401: {"description": "Missing or wrong cron secret", "model": ErrorResponse}},
)
def cron_auto_resolve(authorization: str | None = Header(None)):
    """Run the auto-resolution sweep. Requires Bearer <cron_secret> when one is configured."""
    settings = _settings()
    if settings.cron_secret and authorization != f"Bearer {settings.cron_secret}":
        return _error_json("unauthorized", "Unauthorized", 401)
    conn = _get_conn()
    try:
        report = _build_scanner(conn, settings).run_scan()
        return ScanReportResponse(
            processed=report.processed,
            successful=report.successful,
            failed=report.failed,
            manual_required=report.manual_required,
            results=[ScanResultItem(**r.to_dict()) for r in report.results],
        )
    finally:
        conn.close()


@app.post("/admin/box-office", status_code=201, responses=_ERRORS)
def set_box_office(body: BoxOfficeEntryRequest) -> dict[str, Any]:
    """Enter opening weekend figures by hand for markets the data feed cannot settle."""
    entry = _box_office_provider(_settings()).set_opening_weekend(
        body.title, body.release_date, body.gross, body.rank, theater_count=body.theater_count
    )
    return {"title": entry.title, "release_date": entry.release_date.isoformat(), "gross": str(entry.gross), "rank": entry.rank}


@app.get("/users/{user_id}/trendsetter", response_model=TrendsetterScoreResponse)
def user_trendsetter(user_id: str, events: int = Query(10, ge=0, le=100)) -> TrendsetterScoreResponse:
    conn = _get_conn()
    try:
        score = calculate_score(conn, user_id).to_dict()
        recent = [
            {
                "event_type": e.event_type.value,
                "points": e.points,
                "market_id": e.market_id,
                "bet_id": e.bet_id,
                "created_at": e.created_at,
            }
            for e in get_recent_events(conn, user_id, events)
        ]
        return TrendsetterScoreResponse(**score, rank=get_user_rank(conn, user_id), recent_events=recent)
    finally:
        conn.close()


@app.get("/users/{user_id}/taste-matches", response_model=TasteMatchesResponse)
def user_taste_matches(user_id: str, limit: int = Query(20, ge=1, le=100)) -> TasteMatchesResponse:
    conn = _get_conn()
    try:
        matches = [TasteMatchItem(**asdict(m)) for m in get_user_matches(conn, user_id, limit)]
        return TasteMatchesResponse(user_id=user_id, matches=matches)
    finally:
        conn.close()


@app.get("/leaderboards/trendsetter", response_model=LeaderboardResponse)
def trendsetter_leaderboard(limit: int = Query(10, ge=1, le=100)) -> LeaderboardResponse:
    conn = _get_conn()
    try:
        return LeaderboardResponse(entries=[LeaderboardItem(**asdict(e)) for e in get_leaderboard(conn, limit)])
    finally:
        conn.close()


def run_api(
    host: str = "127.0.0.1",
    port: int = 8000,
    profile: str | None = None,
    config_dir: str | Path | None = None,
) -> None:
    global _config_profile, _config_dir
    _config_profile = profile
    _config_dir = config_dir
    configure_logging(_settings())
    import uvicorn

    uvicorn.run("cinestake.api.main:app", host=host, port=port, reload=False)
