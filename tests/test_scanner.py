"""Auto-resolution sweep: eligibility windows, confidence gate and per-market isolation."""

from datetime import date
from decimal import Decimal

import httpx
import pytest
from conftest import yes_no_market

from cinestake.engine.scanner import AutoResolutionScanner, ResolutionCandidate, ScanStatus, map_value_to_outcome
from cinestake.errors import DataUnavailable
from cinestake.models import Market, MarketCategory, MarketStatus, MarketType, Outcome
from cinestake.providers.base import ScoreReading
from cinestake.providers.box_office import ManualBoxOfficeProvider, RapidAPIBoxOfficeProvider
from cinestake.providers.omdb import OMDbCriticScoreProvider
from cinestake.storage.markets import get_market
from cinestake.storage.resolutions import get_resolution
from cinestake.storage.users import get_user

RELEASE = date(2026, 1, 1)
DAY_10 = date(2026, 1, 11)
DAY_15 = date(2026, 1, 16)
M = 1_000_000


class FakeCritics:
    """imdb_id or (title, year) -> ScoreReading, None, or an exception to raise."""

    def __init__(self, readings):
        self.readings = readings
        self.calls = []

    def _answer(self, key):
        self.calls.append(key)
        reading = self.readings.get(key)
        if isinstance(reading, Exception):
            raise reading
        return reading

    def get_score(self, identifier):
        return self._answer(identifier)

    def get_score_by_title(self, title, year=None):
        return self._answer((title, year))


def _reading(imdb_id, value, reviews):
    return ScoreReading(identifier=imdb_id, value=Decimal(value), review_count=reviews, source="omdb")


def _scanner(conn, critics=None, box_office=None, **kwargs):
    return AutoResolutionScanner(conn, critics, box_office, **kwargs)


def _bracket_market(market_id="bo1"):
    def outcome(suffix, low, high, order):
        return Outcome(
            outcome_id=f"{market_id}-{suffix}",
            market_id=market_id,
            label=suffix,
            min_value=Decimal(low) if low is not None else None,
            max_value=Decimal(high) if high is not None else None,
            sort_order=order,
        )

    return Market(
        market_id=market_id,
        title="Opening weekend gross",
        movie_title="Big Movie",
        release_date=RELEASE,
        market_type=MarketType.RANGE_BRACKET,
        category=MarketCategory.BOX_OFFICE,
        status=MarketStatus.LOCKED,
        outcomes=[
            outcome("under-50m", None, 50 * M, 0),
            outcome("50-100m", 50 * M, 100 * M, 1),
            outcome("100-150m", 100 * M, 150 * M, 2),
        ],
    )


def test_critic_market_waits_for_its_window(temp_db, make_market):
    make_market("m1", imdb_id="tt1")
    critics = FakeCritics({"tt1": _reading("tt1", "92", 150)})
    report = _scanner(temp_db, critics).run_scan(today=DAY_10)
    assert report.processed == 1
    assert report.manual_required == 1
    assert report.results[0].status == ScanStatus.MANUAL_REQUIRED
    assert "10 of 14 days" in report.results[0].reason
    assert critics.calls == []
    assert get_market(temp_db, "m1").status == MarketStatus.LOCKED
    assert get_resolution(temp_db, "m1") is None


def test_unsettled_markets_can_be_skipped_instead(temp_db, make_market):
    make_market("m1", imdb_id="tt1")
    report = _scanner(temp_db, FakeCritics({}), report_unsettled_as_manual=False).run_scan(today=DAY_10)
    assert report.processed == 0
    assert report.results[0].status == ScanStatus.SKIPPED


def test_critic_market_resolves_after_window(temp_db, make_user, make_market, make_bet):
    make_user("alice")
    make_user("bob")
    make_market("m1", imdb_id="tt1")
    make_bet("alice", "m1", "m1-yes", "30", ratio="0.6")
    make_bet("bob", "m1", "m1-no", "20", ratio="0.4")

    report = _scanner(temp_db, FakeCritics({"tt1": _reading("tt1", "92", 150)})).run_scan(today=DAY_15)
    assert report.successful == 1
    [result] = report.results
    assert result.status == ScanStatus.RESOLVED
    assert result.winning_outcome_id == "m1-yes"
    assert result.actual_value == Decimal("92")

    market = get_market(temp_db, "m1")
    assert market.status == MarketStatus.RESOLVED
    assert market.resolved_outcome_id == "m1-yes"
    resolution = get_resolution(temp_db, "m1")
    assert resolution.data_source == "omdb"
    assert resolution.resolved_by == "system"
    assert resolution.raw_data["review_count"] == 150
    # 30 / 30 * 50 * 0.97
    assert get_user(temp_db, "alice").balance == Decimal("148.50")


def test_below_threshold_resolves_no(temp_db, make_market):
    make_market("m1", imdb_id="tt1")
    report = _scanner(temp_db, FakeCritics({"tt1": _reading("tt1", "89", 40)})).run_scan(today=DAY_15)
    assert report.results[0].winning_outcome_id == "m1-no"


@pytest.mark.parametrize(
    "reading",
    [
        _reading("tt1", "95", 12),
        _reading("tt1", "95", None),
        None,
        DataUnavailable("OMDb unreachable"),
    ],
    ids=["few-reviews", "no-review-count", "no-score", "provider-down"],
)
def test_untrustworthy_data_needs_a_human(temp_db, make_market, reading):
    make_market("m1", imdb_id="tt1")
    report = _scanner(temp_db, FakeCritics({"tt1": reading})).run_scan(today=DAY_15)
    assert report.manual_required == 1
    assert report.failed == 0
    assert report.results[0].status == ScanStatus.MANUAL_REQUIRED
    assert get_market(temp_db, "m1").status == MarketStatus.LOCKED


def test_missing_imdb_id_falls_back_to_title_and_year(temp_db, make_market):
    make_market("m1", imdb_id=None)
    critics = FakeCritics({("Movie m1", 2026): _reading("tt9", "93", 120)})
    report = _scanner(temp_db, critics).run_scan(today=DAY_15)
    assert critics.calls == [("Movie m1", 2026)]
    assert report.results[0].status == ScanStatus.RESOLVED
    assert report.results[0].winning_outcome_id == "m1-yes"
    assert get_resolution(temp_db, "m1").raw_data["imdb_id"] == "tt9"


def test_title_lookup_without_a_match_needs_a_human(temp_db, make_market):
    make_market("m1", imdb_id=None)
    report = _scanner(temp_db, FakeCritics({})).run_scan(today=DAY_15)
    assert report.results[0].status == ScanStatus.MANUAL_REQUIRED
    assert get_market(temp_db, "m1").status == MarketStatus.LOCKED


def test_title_lookup_through_omdb(temp_db, make_market):
    make_market("m1", imdb_id=None)
    calls = []

    def handler(request):
        calls.append(request)
        return httpx.Response(
            200,
            json={
                "Response": "True",
                "imdbID": "tt7",
                "imdbVotes": "50,000",
                "Ratings": [{"Source": "Rotten Tomatoes", "Value": "95%"}],
            },
        )

    critics = OMDbCriticScoreProvider("key", client=httpx.Client(transport=httpx.MockTransport(handler)))
    report = _scanner(temp_db, critics).run_scan(today=DAY_15)
    assert report.results[0].status == ScanStatus.RESOLVED
    [request] = calls
    assert request.url.params["t"] == "Movie m1"
    assert request.url.params["y"] == "2026"
    assert "i" not in request.url.params


def test_one_broken_market_does_not_stop_the_sweep(temp_db, make_market):
    make_market("m1", imdb_id="tt1")
    make_market("m2", imdb_id="tt2")
    make_market("m3", imdb_id="tt3")
    critics = FakeCritics(
        {
            "tt1": RuntimeError("unexpected payload"),
            "tt2": _reading("tt2", "91", 200),
            "tt3": None,
        }
    )
    report = _scanner(temp_db, critics).run_scan(today=DAY_15)
    by_id = {r.market_id: r.status for r in report.results}
    assert by_id == {"m1": ScanStatus.FAILED, "m2": ScanStatus.RESOLVED, "m3": ScanStatus.MANUAL_REQUIRED}
    assert (report.processed, report.successful, report.failed, report.manual_required) == (3, 1, 1, 1)


def test_resolving_market_is_reported_failed(temp_db, make_market):
    make_market("m1", imdb_id="tt1", status=MarketStatus.RESOLVING)
    report = _scanner(temp_db, FakeCritics({"tt1": _reading("tt1", "92", 150)})).run_scan(today=DAY_15)
    assert report.failed == 1
    assert get_market(temp_db, "m1").status == MarketStatus.RESOLVING


def test_box_office_bracket_resolves_from_manual_entry(temp_db, make_market):
    make_market(market=_bracket_market())
    box_office = ManualBoxOfficeProvider()
    box_office.set_opening_weekend("Big Movie", RELEASE, 150 * M, 2)

    report = _scanner(temp_db, box_office=box_office).run_scan(today=date(2026, 1, 4))
    [result] = report.results
    assert result.status == ScanStatus.RESOLVED
    assert result.winning_outcome_id == "bo1-100-150m"
    assert get_resolution(temp_db, "bo1").data_source == "manual"


def test_box_office_without_data_needs_a_human(temp_db, make_market):
    make_market(market=_bracket_market())
    report = _scanner(temp_db, box_office=ManualBoxOfficeProvider()).run_scan(today=date(2026, 1, 4))
    assert report.results[0].status == ScanStatus.MANUAL_REQUIRED


def test_value_outside_every_bracket_needs_a_human(temp_db, make_market):
    make_market(market=_bracket_market())
    box_office = ManualBoxOfficeProvider()
    box_office.set_opening_weekend("Big Movie", RELEASE, 200 * M, 1)
    report = _scanner(temp_db, box_office=box_office).run_scan(today=date(2026, 1, 4))
    assert report.results[0].status == ScanStatus.MANUAL_REQUIRED
    assert report.results[0].actual_value == Decimal(200 * M)


def test_bracket_bounds():
    market = _bracket_market()
    assert map_value_to_outcome(market, Decimal(0)).outcome_id == "bo1-under-50m"
    assert map_value_to_outcome(market, Decimal(50 * M)).outcome_id == "bo1-50-100m"
    assert map_value_to_outcome(market, Decimal(100 * M - 1)).outcome_id == "bo1-50-100m"
    assert map_value_to_outcome(market, Decimal(150 * M)).outcome_id == "bo1-100-150m"
    assert map_value_to_outcome(market, Decimal(150 * M + 1)) is None


def test_ranking_market_asks_for_number_one():
    market = yes_no_market("r1", category=MarketCategory.BOX_OFFICE_RANKING, threshold=None)
    assert map_value_to_outcome(market, Decimal(1)).outcome_id == "r1-yes"
    assert map_value_to_outcome(market, Decimal(2)).outcome_id == "r1-no"


def test_binary_without_threshold_is_unmapped():
    assert map_value_to_outcome(yes_no_market(threshold=None), Decimal(80)) is None


def test_candidates_without_release_date_are_not_eligible(temp_db, make_market):
    make_market("m1", release_date=None)
    scanner = _scanner(temp_db, FakeCritics({}))
    [candidate] = scanner.find_candidates(DAY_15)
    assert candidate.eligible is False
    report = scanner.run_scan(today=DAY_15)
    assert report.results[0].reason == "not yet eligible: no release date"


@pytest.mark.parametrize(
    "record",
    [
        {"opening_weekend": 60 * M, "rank": 1, "theaters": "4,100"},
        {"opening_weekend": 60 * M, "rank": 1, "per_theater": "about 14k"},
        {"opening_weekend": "sixty million", "rank": 1},
        [{"opening_weekend": 60 * M, "rank": 1}],
    ],
    ids=["theaters-with-comma", "text-per-theater", "text-gross", "list-body"],
)
def test_malformed_box_office_record_needs_a_human(temp_db, make_market, record):
    make_market("bo1", category=MarketCategory.BOX_OFFICE, threshold=Decimal(50 * M), imdb_id=None)
    box_office = RapidAPIBoxOfficeProvider(
        "real-key", client=httpx.Client(transport=httpx.MockTransport(lambda request: httpx.Response(200, json=record)))
    )
    report = _scanner(temp_db, box_office=box_office).run_scan(today=date(2026, 1, 4))
    assert report.failed == 0
    assert report.results[0].status == ScanStatus.MANUAL_REQUIRED
    assert "Malformed" in report.results[0].reason or "not an object" in report.results[0].reason
    assert get_market(temp_db, "bo1").status == MarketStatus.LOCKED
    assert get_resolution(temp_db, "bo1") is None


def test_odd_omdb_fields_do_not_fail_the_sweep(temp_db, make_market):
    make_market("m1", imdb_id="tt1")
    payload = {
        "Response": "True",
        "imdbRating": "eight",
        "imdbVotes": "75,000",
        "Metascore": "N/A",
        "Ratings": ["Rotten Tomatoes", {"Source": "Rotten Tomatoes", "Value": "92%"}],
    }
    critics = OMDbCriticScoreProvider(
        "key", client=httpx.Client(transport=httpx.MockTransport(lambda request: httpx.Response(200, json=payload)))
    )
    report = _scanner(temp_db, critics).run_scan(today=DAY_15)
    assert report.results[0].status == ScanStatus.RESOLVED
    assert get_resolution(temp_db, "m1").raw_data["imdb_rating"] is None


def test_box_office_candidate_without_release_date_needs_a_human(temp_db):
    market = yes_no_market("bo1", category=MarketCategory.BOX_OFFICE, threshold=Decimal(50 * M), release_date=None)
    candidate = ResolutionCandidate(market=market, days_since_release=5, eligible=True)
    outcome = _scanner(temp_db, box_office=ManualBoxOfficeProvider()).process(candidate)
    assert outcome.status == ScanStatus.MANUAL_REQUIRED
    assert outcome.reason == "Market has no release date"
