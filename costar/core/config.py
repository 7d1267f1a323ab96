"""Crawler settings — environment-driven, overridable from the CLI."""

from __future__ import annotations

import os
from dataclasses import dataclass, replace
from datetime import timedelta
from typing import Literal

BackoffTrigger = Literal["all", "any", "never"]

_BACKOFF_TRIGGERS: tuple[str, ...] = ("all", "any", "never")

DEFAULT_DATABASE_URL = "postgresql+asyncpg://localhost/costar"


class ConfigError(ValueError):
    """Raised when a setting is missing or out of range."""


@dataclass(frozen=True)
class CrawlConfig:
    """Knobs for the scheduler loop and its collaborators.

    Both historical scheduling policies are expressed here: a continuous
    loop is ``round_pause_seconds > 0`` with ``backoff_trigger="never"``,
    and a batch-bounded loop is the default rate-limit backoff.
    """

    database_url: str = DEFAULT_DATABASE_URL
    workers: int = 5
    freshness_days: float = 84.0
    stars_batch_size: int = 1000
    gazers_batch_size: int = 1000
    backoff_seconds: float = 600.0
    backoff_trigger: BackoffTrigger = "all"
    round_pause_seconds: float = 0.0
    max_rounds: int | None = None
    log_frequency: int = 1000
    # None keeps failed nodes out of the frontier until reset explicitly.
    error_retry_days: float | None = None
    similarity_threshold: int = 2
    costars_limit: int = 100
    progress_symbols: bool = True
    github_max_pages: int = 100
    scan_page_size: int = 1000

    def __post_init__(self) -> None:
        if self.workers < 1:
            raise ConfigError(f"workers must be >= 1, got {self.workers}")
        if self.stars_batch_size < 1 or self.gazers_batch_size < 1:
            raise ConfigError("batch sizes must be >= 1")
        if self.freshness_days < 0:
            raise ConfigError(f"freshness_days must be >= 0, got {self.freshness_days}")
        if self.backoff_seconds < 0 or self.round_pause_seconds < 0:
            raise ConfigError("sleep durations must be >= 0")
        if self.backoff_trigger not in _BACKOFF_TRIGGERS:
            raise ConfigError(
                f"backoff_trigger must be one of {_BACKOFF_TRIGGERS}, got {self.backoff_trigger!r}"
            )
        if self.max_rounds is not None and self.max_rounds < 1:
            raise ConfigError(f"max_rounds must be >= 1, got {self.max_rounds}")
        if self.log_frequency < 1:
            raise ConfigError(f"log_frequency must be >= 1, got {self.log_frequency}")
        if self.similarity_threshold < 0:
            raise ConfigError(
                f"similarity_threshold must be >= 0, got {self.similarity_threshold}"
            )
        if self.costars_limit < 1:
            raise ConfigError(f"costars_limit must be >= 1, got {self.costars_limit}")
        if self.github_max_pages < 1:
            raise ConfigError(f"github_max_pages must be >= 1, got {self.github_max_pages}")
        if self.scan_page_size < 1:
            raise ConfigError(f"scan_page_size must be >= 1, got {self.scan_page_size}")

    @property
    def freshness_window(self) -> timedelta:
        return timedelta(days=self.freshness_days)

    @property
    def error_retry_after(self) -> timedelta | None:
        if self.error_retry_days is None:
            return None
        return timedelta(days=self.error_retry_days)

    def batch_size(self, mode: str) -> int:
        return self.stars_batch_size if mode == "stars" else self.gazers_batch_size

    def with_overrides(self, **overrides: object) -> CrawlConfig:
        """Return a copy with every non-None override applied."""
        values = {k: v for k, v in overrides.items() if v is not None}
        return replace(self, **values)  # type: ignore[arg-type]

    @classmethod
    def from_env(cls) -> CrawlConfig:
        """Build settings from ``COSTAR_*`` environment variables."""
        return cls(
            database_url=os.environ.get("COSTAR_DATABASE_URL", DEFAULT_DATABASE_URL),
            workers=_env_int("COSTAR_WORKERS", 5),
            freshness_days=_env_float("COSTAR_FRESHNESS_DAYS", 84.0),
            stars_batch_size=_env_int("COSTAR_STARS_BATCH_SIZE", 1000),
            gazers_batch_size=_env_int("COSTAR_GAZERS_BATCH_SIZE", 1000),
            backoff_seconds=_env_float("COSTAR_BACKOFF_SECONDS", 600.0),
            backoff_trigger=os.environ.get("COSTAR_BACKOFF_TRIGGER", "all"),  # type: ignore[arg-type]
            round_pause_seconds=_env_float("COSTAR_ROUND_PAUSE_SECONDS", 0.0),
            max_rounds=_env_optional_int("COSTAR_MAX_ROUNDS"),
            log_frequency=_env_int("COSTAR_LOG_FREQUENCY", 1000),
            error_retry_days=_env_optional_float("COSTAR_ERROR_RETRY_DAYS"),
            similarity_threshold=_env_int("COSTAR_SIMILARITY_THRESHOLD", 2),
            costars_limit=_env_int("COSTAR_COSTARS_LIMIT", 100),
            progress_symbols=_env_bool("COSTAR_PROGRESS_SYMBOLS", True),
            github_max_pages=_env_int("COSTAR_GITHUB_MAX_PAGES", 100),
            scan_page_size=_env_int("COSTAR_SCAN_PAGE_SIZE", 1000),
        )


def _env_float(key: str, default: float) -> float:
    raw = os.environ.get(key)
    if raw is None or raw == "":
        return default
    try:
        return float(raw)
    except ValueError as exc:
        raise ConfigError(f"{key} must be a number, got {raw!r}") from exc


def _env_int(key: str, default: int) -> int:
    raw = os.environ.get(key)
    if raw is None or raw == "":
        return default
    try:
        return int(raw)
    except ValueError as exc:
        raise ConfigError(f"{key} must be an integer, got {raw!r}") from exc


def _env_optional_int(key: str) -> int | None:
    raw = os.environ.get(key, "")
    if raw == "" or raw.lower() == "none":
        return None
    return _env_int(key, 0)


def _env_optional_float(key: str) -> float | None:
    raw = os.environ.get(key, "")
    if raw == "" or raw.lower() == "none":
        return None
    return _env_float(key, 0.0)


def _env_bool(key: str, default: bool) -> bool:
    raw = os.environ.get(key)
    if raw is None or raw == "":
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")
