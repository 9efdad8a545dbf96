"""Configuration: TOML profiles and logging setup."""

from predbot.config.settings import MarketServiceConfig, Settings, configure_logging, get_settings

__all__ = ["MarketServiceConfig", "Settings", "configure_logging", "get_settings"]
