"""TOML config loading and profiles."""

from __future__ import annotations

import logging
import os
import tomllib
from decimal import Decimal
from pathlib import Path
from typing import Any

# Default config search path (project root or cwd)
_CONFIG_DIR = Path(__file__).resolve().parent.parent.parent.parent / "config"
_CWD_CONFIG = Path.cwd() / "config"


def _load_toml(path: Path) -> dict[str, Any]:
    with open(path, "rb") as f:
        return tomllib.load(f)


def _deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Recursively merge override into base. Override values take precedence."""
    result = dict(base)
    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = _deep_merge(result[key], value)
        else:
            result[key] = value
    return result


def _find_config_dir(config_dir: str | Path | None = None) -> Path:
    if config_dir is not None:
        return Path(config_dir)
    if _CWD_CONFIG.exists():
        return _CWD_CONFIG
    return _CONFIG_DIR


def load_config(profile: str | None = None, config_dir: str | Path | None = None) -> dict[str, Any]:
    """Load merged config from default.toml and optional profile overlay."""
    directory = _find_config_dir(config_dir)
    default_path = directory / "default.toml"
    if not default_path.exists():
        return {}
    base = _load_toml(default_path)
    if profile:
        profile_path = directory / f"{profile}.toml"
        if profile_path.exists():
            overlay = _load_toml(profile_path)
            base = _deep_merge(base, overlay)
    return base


def get_settings(profile: str | None = None, config_dir: str | Path | None = None) -> Settings:
    """Return Settings instance from merged config."""
    raw = load_config(profile, config_dir)
    return Settings.from_dict(raw)


class Settings:
    """Application settings from TOML config."""

    def __init__(
        self,
        *,
        storage: dict[str, Any] | None = None,
        betting: dict[str, Any] | None = None,
        scanner: dict[str, Any] | None = None,
        providers: dict[str, Any] | None = None,
        api: dict[str, Any] | None = None,
        logging: dict[str, Any] | None = None,
    ):
        self.storage = storage or {}
        self.betting = betting or {}
        self.scanner = scanner or {}
        self.providers = providers or {}
        self.api = api or {}
        self.logging = logging or {}

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> Settings:
        return cls(
            storage=raw.get("storage"),
            betting=raw.get("betting"),
            scanner=raw.get("scanner"),
            providers=raw.get("providers"),
            api=raw.get("api"),
            logging=raw.get("logging"),
        )

    # Convenience accessors with defaults
    @property
    def db_path(self) -> str:
        return self.storage.get("db_path", "data/cinestake.duckdb")

    @property
    def min_stake(self) -> Decimal:
        return Decimal(str(self.betting.get("min_stake", 1)))

    @property
    def max_stake(self) -> Decimal:
        return Decimal(str(self.betting.get("max_stake", 50)))

    @property
    def starting_balance(self) -> Decimal:
        return Decimal(str(self.betting.get("starting_balance", "100.00")))

    @property
    def critic_score_delay_days(self) -> int:
        return int(self.scanner.get("critic_score_delay_days", 14))

    @property
    def box_office_delay_days(self) -> int:
        return int(self.scanner.get("box_office_delay_days", 3))

    @property
    def min_review_count(self) -> int:
        return int(self.scanner.get("min_review_count", 20))

    @property
    def report_unsettled_as_manual(self) -> bool:
        return bool(self.scanner.get("report_unsettled_as_manual", True))

    @property
    def omdb_api_key(self) -> str:
        # Env wins so keys stay out of checked-in TOML
        return os.environ.get("OMDB_API_KEY") or self.providers.get("omdb_api_key", "")

    @property
    def omdb_base_url(self) -> str:
        return self.providers.get("omdb_base_url", "https://www.omdbapi.com/")

    @property
    def rapidapi_key(self) -> str:
        return os.environ.get("RAPIDAPI_KEY") or self.providers.get("rapidapi_key", "")

    @property
    def rapidapi_host(self) -> str:
        return self.providers.get("rapidapi_host", "box-office-api.p.rapidapi.com")

    @property
    def provider_timeout_sec(self) -> float:
        return float(self.providers.get("timeout_sec", 10.0))

    @property
    def provider_max_attempts(self) -> int:
        return int(self.providers.get("max_attempts", 3))

    @property
    def provider_retry_base_delay_sec(self) -> float:
        return float(self.providers.get("retry_base_delay_sec", 1.0))

    @property
    def omdb_cache_ttl_sec(self) -> float:
        return float(self.providers.get("omdb_cache_ttl_sec", 15 * 60))

    @property
    def box_office_cache_ttl_sec(self) -> float:
        return float(self.providers.get("box_office_cache_ttl_sec", 60 * 60))

    @property
    def cron_secret(self) -> str:
        return os.environ.get("CRON_SECRET") or self.api.get("cron_secret", "")

    @property
    def logging_level(self) -> str:
        return self.logging.get("level", "INFO").upper()

    @property
    def logging_format(self) -> str:
        return self.logging.get("format", "console")

    @property
    def logging_level_num(self) -> int:
        return getattr(logging, self.logging_level, logging.INFO)


def configure_logging(settings: Settings) -> None:
    """Configure structlog with settings. Call once at application entry."""
    import structlog

    processors = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
    ]
    if settings.logging_format == "json":
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer())

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(settings.logging_level_num),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )
