"""OMDb and box office providers against httpx.MockTransport."""

from datetime import date
from decimal import Decimal

import httpx
import pytest

from cinestake.errors import DataUnavailable, InvalidInput
from cinestake.providers.base import OpeningWeekend, TTLCache, validate_opening_weekend
from cinestake.providers.box_office import ManualBoxOfficeProvider, RapidAPIBoxOfficeProvider, parse_box_office_payload
from cinestake.providers.omdb import OMDbCriticScoreProvider, parse_omdb_payload
from cinestake.providers.retry import backoff_delay, is_retryable, with_retry

OMDB_MOVIE = {
    "Title": "Big Movie",
    "Response": "True",
    "imdbRating": "8.1",
    "imdbVotes": "75,000",
    "Metascore": "77",
    "Ratings": [
        {"Source": "Internet Movie Database", "Value": "8.1/10"},
        {"Source": "Rotten Tomatoes", "Value": "92%"},
    ],
}


def _client(handler):
    return httpx.Client(transport=httpx.MockTransport(handler))


def _omdb(handler, **kwargs):
    sleeps = []
    provider = OMDbCriticScoreProvider("key", client=_client(handler), sleep=sleeps.append, **kwargs)
    return provider, sleeps


def test_parse_omdb_payload():
    reading = parse_omdb_payload("tt1", OMDB_MOVIE)
    assert reading.value == Decimal("92")
    assert reading.review_count == 150
    assert reading.imdb_rating == Decimal("8.1")
    assert reading.metascore == 77
    assert reading.source == "omdb"


def test_parse_omdb_payload_without_rotten_tomatoes():
    assert parse_omdb_payload("tt1", {"Ratings": [{"Source": "Metacritic", "Value": "77/100"}]}) is None
    reading = parse_omdb_payload("tt1", {"Ratings": [{"Source": "Rotten Tomatoes", "Value": "40%"}], "imdbVotes": "N/A"})
    assert reading.review_count is None
    assert reading.metascore is None


def test_omdb_get_score_and_cache():
    calls = []

    def handler(request):
        calls.append(request)
        return httpx.Response(200, json=OMDB_MOVIE)

    provider, _ = _omdb(handler)
    assert provider.get_score("tt1").value == Decimal("92")
    assert provider.get_score("tt1").value == Decimal("92")
    assert len(calls) == 1
    assert calls[0].url.params["i"] == "tt1"
    assert calls[0].url.params["apikey"] == "key"


def test_omdb_retries_server_errors():
    responses = iter([httpx.Response(503), httpx.Response(200, json=OMDB_MOVIE)])
    provider, sleeps = _omdb(lambda request: next(responses))
    assert provider.get_score("tt1") is not None
    assert sleeps == [1.0]


def test_omdb_gives_up_after_max_attempts():
    calls = []

    def handler(request):
        calls.append(request)
        return httpx.Response(500)

    provider, sleeps = _omdb(handler)
    with pytest.raises(DataUnavailable):
        provider.get_score("tt1")
    assert len(calls) == 3
    assert sleeps == [1.0, 2.0]


def test_omdb_client_errors_are_not_retried():
    calls = []

    def handler(request):
        calls.append(request)
        return httpx.Response(401, json={"Response": "False", "Error": "Invalid API key!"})

    provider, sleeps = _omdb(handler)
    with pytest.raises(DataUnavailable):
        provider.get_score("tt1")
    assert len(calls) == 1
    assert sleeps == []


def test_omdb_not_found_and_bad_json():
    provider, _ = _omdb(lambda request: httpx.Response(200, json={"Response": "False", "Error": "Incorrect IMDb ID."}))
    assert provider.get_score("tt404") is None
    provider, _ = _omdb(lambda request: httpx.Response(200, content=b"<html>"))
    with pytest.raises(DataUnavailable):
        provider.get_score("tt1")


def test_parse_omdb_payload_tolerates_odd_side_fields():
    data = dict(OMDB_MOVIE, imdbRating="eight", imdbVotes="lots", Metascore="\u00b2")
    data["Ratings"] = [None, "Rotten Tomatoes", {"Source": "Rotten Tomatoes", "Value": "92%"}]
    reading = parse_omdb_payload("tt1", data)
    assert reading.value == Decimal("92")
    assert reading.imdb_rating is None
    assert reading.review_count is None
    assert reading.metascore is None
    with pytest.raises(DataUnavailable):
        parse_omdb_payload("tt1", dict(OMDB_MOVIE, Ratings="Rotten Tomatoes: 92%"))


def test_omdb_non_object_body_is_unavailable():
    provider, _ = _omdb(lambda request: httpx.Response(200, json=["tt1"]))
    with pytest.raises(DataUnavailable):
        provider.get_score("tt1")


def test_omdb_title_lookup():
    calls = []

    def handler(request):
        calls.append(request)
        return httpx.Response(200, json=dict(OMDB_MOVIE, imdbID="tt42"))

    provider, _ = _omdb(handler)
    reading = provider.get_score_by_title(" Big Movie ", 2026)
    assert reading.identifier == "tt42"
    assert reading.value == Decimal("92")
    assert provider.get_score_by_title("big movie", 2026) is reading
    assert len(calls) == 1
    params = calls[0].url.params
    assert (params["t"], params["y"], params["apikey"], params["plot"]) == ("Big Movie", "2026", "key", "short")
    assert "i" not in params

    provider.get_score_by_title("Big Movie")
    assert len(calls) == 2
    assert "y" not in calls[1].url.params


def test_omdb_title_lookup_miss():
    provider, _ = _omdb(lambda request: httpx.Response(200, json={"Response": "False", "Error": "Movie not found!"}))
    assert provider.get_score_by_title("No Such Movie", 2026) is None


def test_omdb_without_key_returns_none():
    def handler(request):
        raise AssertionError("no request expected")

    provider = OMDbCriticScoreProvider("", client=_client(handler))
    assert provider.get_score("tt1") is None


BOX_OFFICE_RECORD = {"title": "Big Movie", "opening_weekend": 123456789, "rank": 1, "theaters": 4100, "per_theater": 30111}


def test_parse_box_office_payload():
    result = parse_box_office_payload("Big Movie", date(2026, 1, 1), BOX_OFFICE_RECORD)
    assert result.gross == Decimal("123456789")
    assert result.rank == 1
    assert result.theater_count == 4100
    assert parse_box_office_payload("Big Movie", date(2026, 1, 1), {"rank": 1}) is None


@pytest.mark.parametrize(
    "field, value",
    [("theaters", "4,100"), ("per_theater", "n/a"), ("per_theater", "Infinity"), ("opening_weekend", "60M"), ("rank", "first")],
)
def test_parse_box_office_payload_rejects_malformed_numbers(field, value):
    with pytest.raises(DataUnavailable):
        parse_box_office_payload("Big Movie", date(2026, 1, 1), dict(BOX_OFFICE_RECORD, **{field: value}))


def test_rapidapi_malformed_record_is_unavailable():
    record = {"opening_weekend": 60_000_000, "rank": 1, "theaters": "4,100"}
    provider = RapidAPIBoxOfficeProvider("k", client=_client(lambda request: httpx.Response(200, json=record)))
    with pytest.raises(DataUnavailable):
        provider.get_opening_weekend("Big Movie", date(2026, 1, 1))
    assert len(provider.cache) == 0


def test_rapidapi_provider():
    calls = []

    def handler(request):
        calls.append(request)
        if "Unknown" in request.url.path:
            return httpx.Response(404)
        return httpx.Response(200, json=BOX_OFFICE_RECORD)

    provider = RapidAPIBoxOfficeProvider("real-key", host="box.example", client=_client(handler))
    result = provider.get_opening_weekend("Big Movie", date(2026, 1, 1))
    assert result.rank == 1
    assert calls[0].headers["X-RapidAPI-Key"] == "real-key"
    assert calls[0].url.host == "box.example"
    assert provider.get_opening_weekend("Big Movie", date(2026, 1, 1)) is result
    assert provider.get_opening_weekend("Unknown Movie", date(2026, 1, 1)) is None
    assert len(calls) == 2


def test_rapidapi_placeholder_key_is_unconfigured():
    provider = RapidAPIBoxOfficeProvider("your-rapidapi-key", client=_client(lambda request: httpx.Response(500)))
    assert not provider.configured
    assert provider.get_opening_weekend("Big Movie", date(2026, 1, 1)) is None


def test_rapidapi_rejects_invalid_figures():
    bad = dict(BOX_OFFICE_RECORD, opening_weekend=-5)
    provider = RapidAPIBoxOfficeProvider("k", client=_client(lambda request: httpx.Response(200, json=bad)))
    with pytest.raises(DataUnavailable):
        provider.get_opening_weekend("Big Movie", date(2026, 1, 1))


def test_manual_provider_entries_and_fallback():
    fallback = ManualBoxOfficeProvider()
    fallback.set_opening_weekend("Other Movie", date(2026, 2, 1), "9000000", 4)
    manual = ManualBoxOfficeProvider(fallback=fallback)
    manual.set_opening_weekend("Big Movie", date(2026, 1, 1), 50_000_000, 1, theater_count=3900)

    assert manual.get_opening_weekend("  big movie ", date(2026, 1, 1)).gross == Decimal("50000000")
    assert manual.get_opening_weekend("Other Movie", date(2026, 2, 1)).rank == 4
    assert manual.get_opening_weekend("Big Movie", date(2026, 1, 2)) is None
    with pytest.raises(InvalidInput):
        manual.set_opening_weekend("Big Movie", date(2026, 1, 1), -1, 0)


def test_validate_opening_weekend():
    data = OpeningWeekend(title="x", release_date=date(2026, 1, 1), gross=Decimal(-1), rank=0, source="manual", theater_count=-3)
    assert len(validate_opening_weekend(data)) == 3


def test_ttl_cache_expiry():
    now = [0.0]
    cache = TTLCache(ttl=10, clock=lambda: now[0])
    cache.set("a", 1)
    now[0] = 9.9
    assert cache.get("a") == 1
    now[0] = 10.0
    assert cache.get("a") is None
    assert len(cache) == 0


def test_backoff_and_retry_helpers():
    assert [backoff_delay(i) for i in range(3)] == [1.0, 2.0, 4.0]
    assert backoff_delay(2, base_delay=0.5) == 2.0
    request = httpx.Request("GET", "https://example.test")
    assert is_retryable(httpx.ConnectTimeout("slow", request=request))
    assert not is_retryable(httpx.HTTPStatusError("nope", request=request, response=httpx.Response(404, request=request)))

    attempts = []

    def flaky():
        attempts.append(1)
        if len(attempts) < 3:
            raise httpx.ConnectError("down", request=request)
        return "ok"

    sleeps = []
    assert with_retry(flaky, max_attempts=3, base_delay=0.5, sleep=sleeps.append) == "ok"
    assert sleeps == [0.5, 1.0]
