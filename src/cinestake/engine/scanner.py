"""Auto-resolution sweep: settle locked markets whose external data is in.

Critic score markets settle 14 days after release, box office markets 3 days
after (the Monday after opening weekend). Anything the sweep cannot settle on
its own is reported as manual_required. One market failing never stops the sweep.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Callable

import structlog

from cinestake.config import Settings
from cinestake.engine.resolution import ResolutionOrchestrator, ResolutionStep
from cinestake.errors import DataUnavailable, EngineError, InsufficientConfidence, ResolutionFanoutError
from cinestake.models import Market, MarketCategory, MarketType, Outcome
from cinestake.providers.base import BoxOfficeProvider, CriticScoreProvider
from cinestake.providers.box_office import ManualBoxOfficeProvider, RapidAPIBoxOfficeProvider
from cinestake.providers.omdb import OMDbCriticScoreProvider
from cinestake.storage.markets import list_scan_candidates

log = structlog.get_logger(__name__)

DEFAULT_CRITIC_SCORE_DELAY_DAYS = 14
DEFAULT_BOX_OFFICE_DELAY_DAYS = 3
DEFAULT_MIN_REVIEW_COUNT = 20


class ScanStatus(str, Enum):
    RESOLVED = "resolved"
    MANUAL_REQUIRED = "manual_required"
    FAILED = "failed"
    SKIPPED = "skipped"


@dataclass
class ResolutionCandidate:
    """A market the sweep looked at, with the figure it found (if any)."""

    market: Market
    days_since_release: int | None
    eligible: bool
    actual_value: Decimal | None = None
    winning_outcome: Outcome | None = None
    data_source: str | None = None
    raw_data: dict[str, Any] | None = None


@dataclass
class ScanOutcome:
    market_id: str
    status: ScanStatus
    reason: str | None = None
    winning_outcome_id: str | None = None
    actual_value: Decimal | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "market_id": self.market_id,
            "status": self.status.value,
            "reason": self.reason,
            "winning_outcome_id": self.winning_outcome_id,
            "actual_value": str(self.actual_value) if self.actual_value is not None else None,
        }


@dataclass
class ScanReport:
    processed: int = 0
    successful: int = 0
    failed: int = 0
    manual_required: int = 0
    results: list[ScanOutcome] = field(default_factory=list)

    def add(self, outcome: ScanOutcome) -> None:
        self.results.append(outcome)
        if outcome.status == ScanStatus.SKIPPED:
            return
        self.processed += 1
        if outcome.status == ScanStatus.RESOLVED:
            self.successful += 1
        elif outcome.status == ScanStatus.MANUAL_REQUIRED:
            self.manual_required += 1
        else:
            self.failed += 1

    def to_dict(self) -> dict[str, Any]:
        return {
            "processed": self.processed,
            "successful": self.successful,
            "failed": self.failed,
            "manual_required": self.manual_required,
            "results": [r.to_dict() for r in self.results],
        }


def _binary_outcome(market: Market, yes: bool) -> Outcome | None:
    for outcome in market.outcomes:
        if yes and outcome.is_yes:
            return outcome
        if not yes and outcome.is_no:
            return outcome
    return None


def _bracket_outcome(market: Market, value: Decimal) -> Outcome | None:
    """Bracket [min, max) containing value. The top bracket also takes its upper bound."""
    brackets = [o for o in market.outcomes if o.min_value is not None or o.max_value is not None]
    if not brackets:
        return None
    top = max(brackets, key=lambda o: (o.max_value is None, o.max_value or Decimal(0), o.sort_order))
    for outcome in brackets:
        low_ok = outcome.min_value is None or value >= outcome.min_value
        if outcome.max_value is None:
            high_ok = True
        elif outcome is top:
            high_ok = value <= outcome.max_value
        else:
            high_ok = value < outcome.max_value
        if low_ok and high_ok:
            return outcome
    return None


def map_value_to_outcome(market: Market, value: Decimal) -> Outcome | None:
    """Winning outcome for an observed value, or None if the market's outcomes do not cover it."""
    if market.category == MarketCategory.BOX_OFFICE_RANKING:
        # value is the weekend rank; the market asks whether it opened at #1
        return _binary_outcome(market, value == 1)
    if market.market_type == MarketType.RANGE_BRACKET:
        return _bracket_outcome(market, value)
    if market.threshold is None:
        return None
    return _binary_outcome(market, value >= market.threshold)


class AutoResolutionScanner:
    """Sweep locked/resolving markets and resolve the ones with trustworthy data."""

    def __init__(
        self,
        conn: Any,
        critic_provider: CriticScoreProvider | None = None,
        box_office_provider: BoxOfficeProvider | None = None,
        *,
        orchestrator: ResolutionOrchestrator | None = None,
        critic_score_delay_days: int = DEFAULT_CRITIC_SCORE_DELAY_DAYS,
        box_office_delay_days: int = DEFAULT_BOX_OFFICE_DELAY_DAYS,
        min_review_count: int = DEFAULT_MIN_REVIEW_COUNT,
        report_unsettled_as_manual: bool = True,
        clock: Callable[[], datetime] = datetime.now,
    ) -> None:
        self.conn = conn
        self.critic_provider = critic_provider
        self.box_office_provider = box_office_provider
        self.orchestrator = orchestrator or ResolutionOrchestrator(conn)
        self.critic_score_delay_days = critic_score_delay_days
        self.box_office_delay_days = box_office_delay_days
        self.min_review_count = min_review_count
        self.report_unsettled_as_manual = report_unsettled_as_manual
        self._clock = clock

    @classmethod
    def from_settings(
        cls,
        conn: Any,
        settings: Settings,
        critic_provider: CriticScoreProvider | None = None,
        box_office_provider: BoxOfficeProvider | None = None,
        **kwargs: Any,
    ) -> AutoResolutionScanner:
        """Scanner wired to OMDb and RapidAPI (behind manual entries) unless providers are given."""
        if critic_provider is None:
            critic_provider = OMDbCriticScoreProvider.from_settings(settings)
        if box_office_provider is None:
            box_office_provider = ManualBoxOfficeProvider(fallback=RapidAPIBoxOfficeProvider.from_settings(settings))
        return cls(
            conn,
            critic_provider,
            box_office_provider,
            critic_score_delay_days=settings.critic_score_delay_days,
            box_office_delay_days=settings.box_office_delay_days,
            min_review_count=settings.min_review_count,
            report_unsettled_as_manual=settings.report_unsettled_as_manual,
            **kwargs,
        )

    def delay_days(self, market: Market) -> int:
        if market.category == MarketCategory.CRITIC_SCORE:
            return self.critic_score_delay_days
        return self.box_office_delay_days

    def build_candidate(self, market: Market, today: date) -> ResolutionCandidate:
        if market.release_date is None:
            return ResolutionCandidate(market=market, days_since_release=None, eligible=False)
        days = (today - market.release_date).days
        return ResolutionCandidate(market=market, days_since_release=days, eligible=days >= self.delay_days(market))

    def find_candidates(self, today: date | None = None) -> list[ResolutionCandidate]:
        day = today or self._clock().date()
        return [self.build_candidate(m, day) for m in list_scan_candidates(self.conn)]

    def _fetch_critic_score(self, candidate: ResolutionCandidate) -> Decimal:
        market = candidate.market
        if self.critic_provider is None:
            raise DataUnavailable("No critic score provider configured", market_id=market.market_id)
        if market.imdb_id:
            reading = self.critic_provider.get_score(market.imdb_id)
        else:
            title = market.movie_title or market.title
            year = market.release_date.year if market.release_date is not None else None
            log.info("critic_score_title_lookup", market_id=market.market_id, title=title, year=year)
            reading = self.critic_provider.get_score_by_title(title, year)
        if reading is None:
            raise DataUnavailable("Critic score not available yet", market_id=market.market_id)
        if reading.review_count is None or reading.review_count < self.min_review_count:
            raise InsufficientConfidence(
                f"Only {reading.review_count} reviews, need {self.min_review_count}",
                market_id=market.market_id,
                confidence=reading.review_count,
            )
        candidate.actual_value = reading.value
        candidate.data_source = reading.source
        candidate.raw_data = {
            "imdb_id": reading.identifier,
            "score": str(reading.value),
            "review_count": reading.review_count,
            "metascore": reading.metascore,
            "imdb_rating": str(reading.imdb_rating) if reading.imdb_rating is not None else None,
        }
        return reading.value

    def _fetch_box_office(self, candidate: ResolutionCandidate) -> Decimal:
        market = candidate.market
        if self.box_office_provider is None:
            raise DataUnavailable("No box office provider configured", market_id=market.market_id)
        if market.release_date is None:
            raise DataUnavailable("Market has no release date", market_id=market.market_id)
        data = self.box_office_provider.get_opening_weekend(market.movie_title or market.title, market.release_date)
        if data is None:
            raise DataUnavailable("Box office data not available", market_id=market.market_id)
        value = Decimal(data.rank) if market.category == MarketCategory.BOX_OFFICE_RANKING else data.gross
        candidate.actual_value = value
        candidate.data_source = data.source
        candidate.raw_data = {
            "title": data.title,
            "release_date": data.release_date.isoformat(),
            "gross": str(data.gross),
            "rank": data.rank,
            "theater_count": data.theater_count,
        }
        return value

    def process(self, candidate: ResolutionCandidate) -> ScanOutcome:
        """Settle one candidate. Raises only for unexpected errors."""
        market = candidate.market
        if not candidate.eligible:
            reason = (
                "no release date"
                if candidate.days_since_release is None
                else f"{candidate.days_since_release} of {self.delay_days(market)} days since release"
            )
            status = ScanStatus.MANUAL_REQUIRED if self.report_unsettled_as_manual else ScanStatus.SKIPPED
            return ScanOutcome(market_id=market.market_id, status=status, reason=f"not yet eligible: {reason}")

        try:
            if market.category == MarketCategory.CRITIC_SCORE:
                value = self._fetch_critic_score(candidate)
            else:
                value = self._fetch_box_office(candidate)
        except (DataUnavailable, InsufficientConfidence) as e:
            log.info("scan_manual_required", market_id=market.market_id, code=e.code, reason=e.message)
            return ScanOutcome(market_id=market.market_id, status=ScanStatus.MANUAL_REQUIRED, reason=e.message)

        outcome = map_value_to_outcome(market, value)
        if outcome is None:
            return ScanOutcome(
                market_id=market.market_id,
                status=ScanStatus.MANUAL_REQUIRED,
                reason=f"no outcome matches value {value}",
                actual_value=value,
            )
        candidate.winning_outcome = outcome

        self.orchestrator.resolve(
            market.market_id,
            outcome.outcome_id,
            value,
            data_source=candidate.data_source or "manual",
            raw_data=candidate.raw_data,
            notes="Auto-resolved by scanner",
        )
        return ScanOutcome(
            market_id=market.market_id,
            status=ScanStatus.RESOLVED,
            winning_outcome_id=outcome.outcome_id,
            actual_value=value,
        )

    def run_scan(self, today: date | None = None) -> ScanReport:
        report = ScanReport()
        candidates = self.find_candidates(today)
        log.info("scan_started", candidates=len(candidates))
        for candidate in candidates:
            market_id = candidate.market.market_id
            try:
                outcome = self.process(candidate)
            except ResolutionFanoutError as e:
                # Core ledgers committed, only the taste match refresh failed
                committed = ResolutionStep.MARKET_RESOLVED in e.result.steps_completed
                log.warning("scan_resolution_partial", market_id=market_id, committed=committed, error=str(e))
                outcome = ScanOutcome(
                    market_id=market_id,
                    status=ScanStatus.RESOLVED if committed else ScanStatus.FAILED,
                    reason=str(e),
                    winning_outcome_id=e.result.winning_outcome_id if committed else None,
                    actual_value=e.result.actual_value if committed else None,
                )
            except EngineError as e:
                log.warning("scan_market_failed", market_id=market_id, code=e.code, error=str(e))
                outcome = ScanOutcome(market_id=market_id, status=ScanStatus.FAILED, reason=str(e))
            except Exception as e:
                log.exception("scan_market_error", market_id=market_id)
                outcome = ScanOutcome(market_id=market_id, status=ScanStatus.FAILED, reason=str(e))
            report.add(outcome)
        log.info(
            "scan_complete",
            processed=report.processed,
            successful=report.successful,
            failed=report.failed,
            manual_required=report.manual_required,
        )
        return report
