"""TOML config loading and profiles."""

from __future__ import annotations

import logging
import tomllib
from pathlib import Path
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

# Default config search path (project root or cwd)
_CONFIG_DIR = Path(__file__).resolve().parent.parent.parent.parent / "config"
_CWD_CONFIG = Path.cwd() / "config"

STALENESS_POLICIES = ("batch", "record")


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


def _find_config_dir(config_dir: Path | None = None) -> Path:
    if config_dir is not None:
        return config_dir
    if _CWD_CONFIG.exists():
        return _CWD_CONFIG
    return _CONFIG_DIR


def load_config(profile: str | None = None, config_dir: Path | None = None) -> dict[str, Any]:
    """Load merged config from default.toml and optional profile overlay."""
    config_dir = _find_config_dir(config_dir)
    default_path = config_dir / "default.toml"
    if not default_path.exists():
        return {}
    base = _load_toml(default_path)
    if profile:
        profile_path = config_dir / f"{profile}.toml"
        if profile_path.exists():
            overlay = _load_toml(profile_path)
            base = _deep_merge(base, overlay)
    return base


def get_settings(profile: str | None = None, config_dir: Path | None = None) -> Settings:
    """Return Settings instance from merged config."""
    raw = load_config(profile, config_dir)
    return Settings.from_dict(raw)


class MarketServiceConfig(BaseModel):
    """Explicit configuration handed to the market services (no global client state)."""

    model_config = ConfigDict(frozen=True)

    gamma_api_base: str = "https://gamma-api.polymarket.com"
    clob_host: str = "https://clob.polymarket.com"
    clob_fetch_order_book: bool = True
    http_timeout_sec: float = 30.0
    default_limit: int = Field(5, ge=1)
    store_over_fetch: int = Field(20, ge=1)
    cache_ttl_ms: int = Field(5 * 60 * 1000, gt=0)
    staleness_policy: str = Field("batch", pattern="^(batch|record)$")
    batch_size: int = Field(5, ge=1)
    batch_delay_sec: float = Field(0.1, ge=0)
    max_retries: int = Field(2, ge=0)
    retry_base_delay_sec: float = Field(0.5, ge=0)
    retry_max_delay_sec: float = Field(5.0, ge=0)
    fallback_max_pages: int = Field(1, ge=1)


class Settings:
    """Application settings from TOML config."""

    def __init__(
        self,
        *,
        storage: dict[str, Any] | None = None,
        markets: dict[str, Any] | None = None,
        polymarket: dict[str, Any] | None = None,
        logging: dict[str, Any] | None = None,
    ):
        self.storage = storage or {}
        self.markets = markets or {}
        self.polymarket = polymarket or {}
        self.logging = logging or {}

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> Settings:
        return cls(
            storage=raw.get("storage"),
            markets=raw.get("markets"),
            polymarket=raw.get("polymarket"),
            logging=raw.get("logging"),
        )

    # Convenience accessors with defaults
    @property
    def db_path(self) -> str:
        return self.storage.get("db_path", "data/predbot.duckdb")

    @property
    def gamma_api_base(self) -> str:
        return self.polymarket.get("gamma_api_base", "https://gamma-api.polymarket.com")

    @property
    def clob_host(self) -> str:
        return self.polymarket.get("clob_host", "https://clob.polymarket.com")

    @property
    def clob_fetch_order_book(self) -> bool:
        return bool(self.polymarket.get("clob_fetch_order_book", True))

    @property
    def http_timeout_sec(self) -> float:
        return float(self.polymarket.get("http_timeout_sec", 30.0))

    @property
    def default_limit(self) -> int:
        return int(self.markets.get("default_limit", 5))

    @property
    def store_over_fetch(self) -> int:
        return int(self.markets.get("store_over_fetch", 20))

    @property
    def cache_ttl_ms(self) -> int:
        return int(self.markets.get("cache_ttl_ms", 5 * 60 * 1000))

    @property
    def staleness_policy(self) -> str:
        policy = str(self.markets.get("staleness_policy", "batch")).lower()
        if policy not in STALENESS_POLICIES:
            raise ValueError(f"staleness_policy must be one of {STALENESS_POLICIES}, got {policy!r}")
        return policy

    @property
    def batch_size(self) -> int:
        return int(self.markets.get("batch_size", 5))

    @property
    def batch_delay_sec(self) -> float:
        return float(self.markets.get("batch_delay_sec", 0.1))

    @property
    def max_retries(self) -> int:
        return int(self.markets.get("max_retries", 2))

    @property
    def retry_base_delay_sec(self) -> float:
        return float(self.markets.get("retry_base_delay_sec", 0.5))

    @property
    def retry_max_delay_sec(self) -> float:
        return float(self.markets.get("retry_max_delay_sec", 5.0))

    @property
    def fallback_max_pages(self) -> int:
        return int(self.markets.get("fallback_max_pages", 1))

    @property
    def logging_level(self) -> str:
        return self.logging.get("level", "INFO").upper()

    @property
    def logging_format(self) -> str:
        return self.logging.get("format", "console")

    @property
    def logging_level_num(self) -> int:
        return getattr(logging, self.logging_level, logging.INFO)

    def market_service_config(self) -> MarketServiceConfig:
        """Snapshot the market-related settings into the service config struct."""
        return MarketServiceConfig(
            gamma_api_base=self.gamma_api_base,
            clob_host=self.clob_host,
            clob_fetch_order_book=self.clob_fetch_order_book,
            http_timeout_sec=self.http_timeout_sec,
            default_limit=self.default_limit,
            store_over_fetch=self.store_over_fetch,
            cache_ttl_ms=self.cache_ttl_ms,
            staleness_policy=self.staleness_policy,
            batch_size=self.batch_size,
            batch_delay_sec=self.batch_delay_sec,
            max_retries=self.max_retries,
            retry_base_delay_sec=self.retry_base_delay_sec,
            retry_max_delay_sec=self.retry_max_delay_sec,
            fallback_max_pages=self.fallback_max_pages,
        )


def configure_logging(settings: Settings) -> None:
    """Configure structlog with settings. Call once at application entry."""
    import structlog

    processors = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
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
