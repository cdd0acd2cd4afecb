"""Core configuration."""

from sitehost.core.config import (
    DomainConfig,
    ServerSettings,
    clear_config,
    get_config,
    load_settings,
)

__all__ = ["DomainConfig", "ServerSettings", "clear_config", "get_config", "load_settings"]
