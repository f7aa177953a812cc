"""Box office data: RapidAPI when configured, admin-entered figures otherwise."""

from __future__ import annotations

from datetime import date
from decimal import Decimal, InvalidOperation
from typing import Any, Callable
from urllib.parse import quote

import httpx
import structlog

from cinestake.config import Settings
from cinestake.errors import DataUnavailable, InvalidInput
from cinestake.providers.base import BoxOfficeProvider, OpeningWeekend, TTLCache, validate_opening_weekend
from cinestake.providers.retry import with_retry

log = structlog.get_logger(__name__)


def cache_key(title: str, release_date: date) -> str:
    return f"{title.strip().lower()}-{release_date.isoformat()}"


def parse_box_office_payload(title: str, release_date: date, data: dict[str, Any]) -> OpeningWeekend | None:
    """OpeningWeekend from a RapidAPI box office record, or None if fields are missing.

    Raises DataUnavailable when a field is present but not a number.
    """
    if data.get("opening_weekend") is None or data.get("rank") is None:
        return None
    theaters = data.get("theaters")
    per_theater = data.get("per_theater")
    try:
        gross = Decimal(str(data["opening_weekend"]))
        rank = int(data["rank"])
        theater_count = int(theaters) if theaters is not None else None
        per_theater_average = Decimal(str(per_theater)) if per_theater is not None else None
    except (TypeError, ValueError, InvalidOperation) as e:
        raise DataUnavailable(f"Malformed box office record for {title!r}: {e}") from e
    if not gross.is_finite() or (per_theater_average is not None and not per_theater_average.is_finite()):
        raise DataUnavailable(f"Malformed box office record for {title!r}: non-finite amount")
    return OpeningWeekend(
        title=str(data.get("title") or title),
        release_date=release_date,
        gross=gross,
        rank=rank,
        source="box_office",
        theater_count=theater_count,
        per_theater_average=per_theater_average,
        raw=data,
    )


class RapidAPIBoxOfficeProvider:
    """BoxOfficeProvider over a RapidAPI box office endpoint. Unconfigured -> always None."""

    def __init__(
        self,
        api_key: str,
        host: str = "box-office-api.p.rapidapi.com",
        timeout: float = 10.0,
        max_attempts: int = 3,
        retry_base_delay: float = 1.0,
        cache_ttl: float = 60 * 60,
        client: httpx.Client | None = None,
        sleep: Callable[[float], None] | None = None,
    ) -> None:
        self.api_key = api_key
        self.host = host
        self.max_attempts = max_attempts
        self.retry_base_delay = retry_base_delay
        self.cache: TTLCache[OpeningWeekend] = TTLCache(cache_ttl)
        self._client = client or httpx.Client(timeout=timeout)
        self._sleep = sleep
        if not self.configured:
            log.warning("rapidapi_not_configured")

    @classmethod
    def from_settings(cls, settings: Settings, client: httpx.Client | None = None) -> RapidAPIBoxOfficeProvider:
        return cls(
            api_key=settings.rapidapi_key,
            host=settings.rapidapi_host,
            timeout=settings.provider_timeout_sec,
            max_attempts=settings.provider_max_attempts,
            retry_base_delay=settings.provider_retry_base_delay_sec,
            cache_ttl=settings.box_office_cache_ttl_sec,
            client=client,
        )

    @property
    def configured(self) -> bool:
        return bool(self.api_key) and self.api_key != "your-rapidapi-key"

    def _fetch(self, title: str) -> dict[str, Any] | None:
        resp = self._client.get(
            f"https://{self.host}/movie/{quote(title)}",
            headers={"X-RapidAPI-Key": self.api_key, "X-RapidAPI-Host": self.host},
        )
        if resp.status_code == 404:
            return None
        resp.raise_for_status()
        return resp.json()

    def get_opening_weekend(self, title: str, release_date: date) -> OpeningWeekend | None:
        key = cache_key(title, release_date)
        cached = self.cache.get(key)
        if cached is not None:
            return cached
        if not self.configured:
            return None

        kwargs: dict[str, Any] = {}
        if self._sleep is not None:
            kwargs["sleep"] = self._sleep
        try:
            data = with_retry(
                lambda: self._fetch(title),
                max_attempts=self.max_attempts,
                base_delay=self.retry_base_delay,
                label="rapidapi",
                **kwargs,
            )
        except httpx.HTTPError as e:
            raise DataUnavailable(f"Box office request for {title!r} failed: {e}") from e
        except ValueError as e:
            raise DataUnavailable(f"Box office response for {title!r} is not JSON") from e
        if not data:
            return None
        if not isinstance(data, dict):
            raise DataUnavailable(f"Box office response for {title!r} is not an object")
        result = parse_box_office_payload(title, release_date, data)
        if result is None:
            log.warning("box_office_payload_incomplete", title=title)
            return None
        if validate_opening_weekend(result):
            raise DataUnavailable(f"Box office data for {title!r} failed validation")
        self.cache.set(key, result)
        return result

    def close(self) -> None:
        self._client.close()


class ManualBoxOfficeProvider:
    """Admin-entered opening weekend figures, optionally in front of another provider."""

    def __init__(self, fallback: BoxOfficeProvider | None = None) -> None:
        self.fallback = fallback
        self._entries: dict[str, OpeningWeekend] = {}

    def set_opening_weekend(
        self,
        title: str,
        release_date: date,
        gross: Decimal | int | str,
        rank: int,
        theater_count: int | None = None,
        per_theater_average: Decimal | None = None,
    ) -> OpeningWeekend:
        result = OpeningWeekend(
            title=title,
            release_date=release_date,
            gross=Decimal(str(gross)),
            rank=int(rank),
            source="manual",
            theater_count=theater_count,
            per_theater_average=per_theater_average,
        )
        errors = validate_opening_weekend(result)
        if errors:
            raise InvalidInput("; ".join(errors))
        self._entries[cache_key(title, release_date)] = result
        log.info("box_office_manual_entry", title=title, gross=str(result.gross), rank=result.rank)
        return result

    def get_opening_weekend(self, title: str, release_date: date) -> OpeningWeekend | None:
        entry = self._entries.get(cache_key(title, release_date))
        if entry is not None:
            return entry
        if self.fallback is not None:
            return self.fallback.get_opening_weekend(title, release_date)
        return None
