"""OMDb client - Rotten Tomatoes critic scores by IMDb id, or by title and year."""

from __future__ import annotations

import re
from decimal import Decimal, InvalidOperation
from typing import Any, Callable

import httpx
import structlog

from cinestake.config import Settings
from cinestake.errors import DataUnavailable
from cinestake.providers.base import ScoreReading, TTLCache
from cinestake.providers.retry import with_retry

log = structlog.get_logger(__name__)

OMDB_URL = "https://www.omdbapi.com/"
ROTTEN_TOMATOES = "Rotten Tomatoes"
# OMDb has no critic review count. Wide releases land around 0.2% of IMDb votes.
REVIEWS_PER_IMDB_VOTE = Decimal("0.002")


def _not_na(value: Any) -> str | None:
    if value is None:
        return None
    s = str(value).strip()
    return None if not s or s == "N/A" else s


def _decimal_or_none(value: str | None) -> Decimal | None:
    if value is None:
        return None
    try:
        d = Decimal(value.replace(",", ""))
    except InvalidOperation:
        return None
    return d if d.is_finite() else None


def parse_omdb_payload(identifier: str, data: dict[str, Any]) -> ScoreReading | None:
    """Rotten Tomatoes score from an OMDb response, or None if the movie has none.

    Unparseable side fields (votes, IMDb rating, Metascore) come back as None.
    A Ratings field that is not a list of objects raises DataUnavailable.
    """
    ratings = data.get("Ratings") or []
    if not isinstance(ratings, list):
        raise DataUnavailable(f"OMDb Ratings for {identifier} is not a list")
    rt = next((r for r in ratings if isinstance(r, dict) and r.get("Source") == ROTTEN_TOMATOES), None)
    if rt is None:
        return None
    match = re.search(r"(\d+)", str(rt.get("Value", "")))
    if not match:
        return None

    votes = _decimal_or_none(_not_na(data.get("imdbVotes")))
    metascore = _not_na(data.get("Metascore"))
    return ScoreReading(
        identifier=identifier,
        value=Decimal(match.group(1)),
        review_count=int(votes * REVIEWS_PER_IMDB_VOTE) if votes is not None else None,
        source="omdb",
        imdb_rating=_decimal_or_none(_not_na(data.get("imdbRating"))),
        metascore=int(metascore) if metascore and metascore.isdecimal() else None,
        raw=data,
    )


class OMDbCriticScoreProvider:
    """CriticScoreProvider backed by the OMDb API."""

    def __init__(
        self,
        api_key: str,
        base_url: str = OMDB_URL,
        timeout: float = 10.0,
        max_attempts: int = 3,
        retry_base_delay: float = 1.0,
        cache_ttl: float = 15 * 60,
        client: httpx.Client | None = None,
        sleep: Callable[[float], None] | None = None,
    ) -> None:
        self.api_key = api_key
        self.base_url = base_url
        self.max_attempts = max_attempts
        self.retry_base_delay = retry_base_delay
        self.cache: TTLCache[ScoreReading] = TTLCache(cache_ttl)
        self._client = client or httpx.Client(timeout=timeout)
        self._sleep = sleep
        if not api_key:
            log.warning("omdb_not_configured")

    @classmethod
    def from_settings(cls, settings: Settings, client: httpx.Client | None = None) -> OMDbCriticScoreProvider:
        return cls(
            api_key=settings.omdb_api_key,
            base_url=settings.omdb_base_url,
            timeout=settings.provider_timeout_sec,
            max_attempts=settings.provider_max_attempts,
            retry_base_delay=settings.provider_retry_base_delay_sec,
            cache_ttl=settings.omdb_cache_ttl_sec,
            client=client,
        )

    def _fetch(self, params: dict[str, str]) -> Any:
        resp = self._client.get(self.base_url, params={**params, "apikey": self.api_key, "plot": "short"})
        resp.raise_for_status()
        return resp.json()

    def _lookup(self, key: str, label: str, params: dict[str, str]) -> ScoreReading | None:
        cached = self.cache.get(key)
        if cached is not None:
            log.debug("omdb_cache_hit", lookup=label)
            return cached
        if not self.api_key:
            return None

        kwargs: dict[str, Any] = {}
        if self._sleep is not None:
            kwargs["sleep"] = self._sleep
        try:
            data = with_retry(
                lambda: self._fetch(params),
                max_attempts=self.max_attempts,
                base_delay=self.retry_base_delay,
                label="omdb",
                **kwargs,
            )
        except httpx.HTTPError as e:
            raise DataUnavailable(f"OMDb request for {label} failed: {e}") from e
        except ValueError as e:
            raise DataUnavailable(f"OMDb returned invalid JSON for {label}") from e
        if not isinstance(data, dict):
            raise DataUnavailable(f"OMDb response for {label} is not an object")

        if str(data.get("Response", "True")) == "False":
            log.info("omdb_no_result", lookup=label, error=data.get("Error"))
            return None
        reading = parse_omdb_payload(str(data.get("imdbID") or label), data)
        if reading is not None:
            self.cache.set(key, reading)
        return reading

    def get_score(self, identifier: str) -> ScoreReading | None:
        return self._lookup(identifier, identifier, {"i": identifier})

    def get_score_by_title(self, title: str, year: int | None = None) -> ScoreReading | None:
        """Look a movie up by title, narrowed to a release year when given."""
        params = {"t": title.strip()}
        if year is not None:
            params["y"] = str(year)
        key = f"title:{title.strip().lower()}-{year or ''}"
        label = title.strip() if year is None else f"{title.strip()} ({year})"
        return self._lookup(key, label, params)

    def close(self) -> None:
        self._client.close()
