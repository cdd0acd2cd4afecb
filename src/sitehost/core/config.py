"""Configuration types with environment variable support.

All settings can be configured via environment variables with the SITEHOST_
prefix. Example: SITEHOST_PORT=8080 sets port to 8080. Nested domain settings
use a double underscore: SITEHOST_DOMAINS__PRIMARY=example.app.

A YAML or TOML file can be layered on top with load_settings(path); values
from the file win over environment variables.
"""

from __future__ import annotations

import tomllib
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


def load_config_from_file(path: str | Path) -> dict[str, Any]:
    """Load configuration from a YAML or TOML file.

    Args:
        path: Path to the configuration file (.yaml, .yml, or .toml)

    Returns:
        Configuration dictionary

    Raises:
        FileNotFoundError: If the config file doesn't exist
        ValueError: If the config file has encoding errors, invalid syntax, or unsupported format
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Config file not found: {path}")

    try:
        content = path.read_text(encoding="utf-8")
    except UnicodeDecodeError as e:
        raise ValueError(f"Config file encoding error in {path}: {e}") from e

    try:
        if path.suffix in (".yaml", ".yml"):
            return yaml.safe_load(content) or {}
        elif path.suffix == ".toml":
            return tomllib.loads(content)
        else:
            raise ValueError(f"Unsupported config format: {path.suffix}")
    except yaml.YAMLError as e:
        raise ValueError(f"Invalid YAML in {path}: {e}") from e
    except tomllib.TOMLDecodeError as e:
        raise ValueError(f"Invalid TOML in {path}: {e}") from e


class CustomSubdomain(BaseModel):
    """Pricing tier and routing target for one domain extension."""

    model_config = ConfigDict(frozen=True)

    premium: bool = False
    target: str = ""


class SubdomainMapping(BaseModel):
    """Hostname patterns for one base domain.

    Each pattern contains the ``{subdomain}`` placeholder. ``pattern`` is the
    canonical hostname; ``aliases`` are the equivalent hostnames in the order
    they should be advertised.
    """

    model_config = ConfigDict(frozen=True)

    pattern: str
    aliases: tuple[str, ...] = ()


def _default_mapping() -> dict[str, SubdomainMapping]:
    return {
        "ntando.app": SubdomainMapping(
            pattern="{subdomain}.ntando.app",
            aliases=("{subdomain}.ntando.cloud", "{subdomain}.ntando.site"),
        ),
    }


def _default_custom_subdomains() -> dict[str, CustomSubdomain]:
    return {
        ".pro": CustomSubdomain(premium=True, target="ntando.app"),
        ".dev": CustomSubdomain(premium=True, target="ntando.app"),
    }


class DomainConfig(BaseModel):
    """Process-wide domain configuration, immutable once loaded.

    The primary domain is always treated as one of the aliases; it is
    inserted at the front of the list when a config omits it.
    """

    model_config = ConfigDict(frozen=True)

    primary: str = Field(
        default="ntando.app",
        description="Authoritative domain used for canonical routing.",
    )
    aliases: tuple[str, ...] = Field(
        default=("ntando.app", "ntando.cloud", "ntando.site"),
        description="Domains treated as equivalent to the primary for routing.",
    )
    extensions: tuple[str, ...] = Field(
        default=(".app", ".cloud", ".site", ".pro", ".dev"),
        description="Suffixes a new user may pick for their subdomain.",
    )
    custom_subdomains: dict[str, CustomSubdomain] = Field(
        default_factory=_default_custom_subdomains,
        description="Per-extension pricing tier and target.",
    )
    subdomain_mapping: dict[str, SubdomainMapping] = Field(
        default_factory=_default_mapping,
        description="Per-base-domain hostname patterns.",
    )

    @field_validator("primary")
    @classmethod
    def _lower_primary(cls, value: str) -> str:
        value = value.strip().lower().rstrip(".")
        if not value or "." not in value:
            raise ValueError(f"Invalid primary domain: {value!r}")
        return value

    @field_validator("aliases")
    @classmethod
    def _lower_aliases(cls, value: tuple[str, ...]) -> tuple[str, ...]:
        return tuple(dict.fromkeys(a.strip().lower().rstrip(".") for a in value if a.strip()))

    @field_validator("extensions")
    @classmethod
    def _check_extensions(cls, value: tuple[str, ...]) -> tuple[str, ...]:
        cleaned = []
        for ext in value:
            ext = ext.strip().lower()
            if not ext.startswith(".") or len(ext) < 2:
                raise ValueError(f"Extension must start with '.': {ext!r}")
            cleaned.append(ext)
        return tuple(dict.fromkeys(cleaned))

    @model_validator(mode="after")
    def _primary_is_alias(self) -> DomainConfig:
        if self.primary not in self.aliases:
            object.__setattr__(self, "aliases", (self.primary, *self.aliases))
        return self


class ServerSettings(BaseSettings):
    """Server configuration."""

    model_config = SettingsConfigDict(
        env_prefix="SITEHOST_",
        env_file=".env",
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
        extra="ignore",
    )

    host: str = Field(default="0.0.0.0", description="Bind address.")
    port: int = Field(default=3000, description="Bind port.")
    data_dir: str = Field(
        default="data",
        description="Directory holding the registry file and published sites.",
    )
    users_file: str = Field(
        default="users.json",
        description="Registry file name inside data_dir.",
    )
    sites_dir: str = Field(
        default="users",
        description="Directory inside data_dir where site bundles are written.",
    )
    main_site_url: str | None = Field(
        default=None,
        description="Redirect target for bare and www hosts. Defaults to https://<primary>/.",
    )
    jwt_secret: str = Field(
        default="change-me-in-production",
        repr=False,
        description="HMAC secret for bearer tokens.",
    )
    token_ttl: int = Field(
        default=7 * 86400,
        description="Bearer token lifetime in seconds (7 days default).",
    )
    bcrypt_rounds: int = Field(
        default=12,
        ge=4,
        le=31,
        description="bcrypt cost factor for password hashes.",
    )
    max_name_attempts: int = Field(
        default=1000,
        ge=1,
        description="Collision retries before name generation gives up.",
    )
    unique_slugs_globally: bool = Field(
        default=True,
        description="Reject slugs used by any user, not just the publisher.",
    )
    max_upload_bytes: int = Field(
        default=10 * 1024 * 1024,
        description="Maximum combined HTML/CSS/JS size per upload (bytes). Default 10MB.",
    )
    dns_enabled: bool = Field(
        default=True,
        description="Provision DNS records for sites published with enableDNS.",
    )
    rate_limit_enabled: bool = Field(
        default=True,
        description="Enable per-IP rate limiting on the API.",
    )
    auth_rate_limit: int = Field(default=5, description="Login/register attempts per window.")
    auth_rate_window: float = Field(default=900.0, description="Auth window (seconds).")
    upload_rate_limit: int = Field(default=10, description="Uploads per window.")
    upload_rate_window: float = Field(default=60.0, description="Upload window (seconds).")
    general_rate_limit: int = Field(default=100, description="API requests per window.")
    general_rate_window: float = Field(default=900.0, description="API window (seconds).")
    log_level: str = Field(default="info", description="structlog level filter.")
    domains: DomainConfig = Field(default_factory=DomainConfig)

    @property
    def users_path(self) -> Path:
        return Path(self.data_dir) / self.users_file

    @property
    def sites_path(self) -> Path:
        return Path(self.data_dir) / self.sites_dir

    @property
    def redirect_url(self) -> str:
        return self.main_site_url or f"https://{self.domains.primary}/"

    def to_display_dict(self) -> dict[str, Any]:
        """Export current configuration as a nested dictionary for display."""
        return {
            "server": {
                "host": self.host,
                "port": self.port,
                "data_dir": self.data_dir,
                "users_file": self.users_file,
                "sites_dir": self.sites_dir,
                "main_site_url": self.redirect_url,
                "log_level": self.log_level,
            },
            "security": {
                "token_ttl": self.token_ttl,
                "bcrypt_rounds": self.bcrypt_rounds,
                "rate_limit_enabled": self.rate_limit_enabled,
                "auth_rate_limit": f"{self.auth_rate_limit}/{self.auth_rate_window:g}s",
                "upload_rate_limit": f"{self.upload_rate_limit}/{self.upload_rate_window:g}s",
                "general_rate_limit": f"{self.general_rate_limit}/{self.general_rate_window:g}s",
            },
            "sites": {
                "max_name_attempts": self.max_name_attempts,
                "unique_slugs_globally": self.unique_slugs_globally,
                "max_upload_bytes": self.max_upload_bytes,
                "dns_enabled": self.dns_enabled,
            },
            "domains": {
                "primary": self.domains.primary,
                "aliases": ", ".join(self.domains.aliases),
                "extensions": ", ".join(self.domains.extensions),
            },
        }


def load_settings(config_file: str | Path | None = None) -> ServerSettings:
    """Build settings from the environment, optionally overlaid with a file."""
    if config_file is None:
        return ServerSettings()
    return ServerSettings(**load_config_from_file(config_file))


_config: ServerSettings | None = None


def get_config() -> ServerSettings:
    """Get the global configuration instance.

    Returns a cached instance of ServerSettings that reads from environment variables.
    To reload config (e.g., in tests), call clear_config() first.
    """
    global _config
    if _config is None:
        _config = ServerSettings()
    return _config


def set_config(config: ServerSettings) -> None:
    """Install an explicitly built configuration as the global instance."""
    global _config
    _config = config


def clear_config() -> None:
    """Clear the cached configuration.

    Call this to force reloading of environment variables on next get_config() call.
    Useful for testing.
    """
    global _config
    _config = None
