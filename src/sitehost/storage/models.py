"""Registry records: users and the sites they publish.

Storage file format (users.json), keyed by user id:
    {
        "3f0c...": {
            "id": "3f0c...",
            "username": "alice",
            "email": "alice@example.com",
            "password": "$2b$12$...",
            "domainExtension": ".app",
            "subdomain": "alice-happyfox42.app",
            "isPremium": false,
            "createdAt": "2024-01-15T10:00:00+00:00",
            "lastLogin": null,
            "sites": [
                {
                    "id": "9a1b...",
                    "name": "Portfolio",
                    "slug": "portfolio",
                    "createdAt": "2024-01-15T10:05:00+00:00",
                    "updatedAt": "2024-01-15T10:05:00+00:00",
                    "visits": 0,
                    "published": true,
                    "enableDNS": false,
                    "dnsRecordId": null
                }
            ]
        }
    }
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any
from uuid import uuid4


def _utc_now() -> datetime:
    """Return current UTC datetime."""
    return datetime.now(UTC)


def _new_id() -> str:
    return str(uuid4())


def _parse_datetime(value: str | None) -> datetime | None:
    return datetime.fromisoformat(value) if value else None


@dataclass
class Site:
    """One published bundle owned by a user."""

    name: str
    slug: str
    id: str = field(default_factory=_new_id)
    created_at: datetime = field(default_factory=_utc_now)
    updated_at: datetime = field(default_factory=_utc_now)
    visits: int = 0
    published: bool = True
    enable_dns: bool = False
    dns_record_id: str | None = None
    custom_domain: str | None = None
    custom_domain_token: str | None = None
    custom_domain_verified: bool = False

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "id": self.id,
            "name": self.name,
            "slug": self.slug,
            "createdAt": self.created_at.isoformat(),
            "updatedAt": self.updated_at.isoformat(),
            "visits": self.visits,
            "published": self.published,
            "enableDNS": self.enable_dns,
            "dnsRecordId": self.dns_record_id,
            "customDomain": self.custom_domain,
            "customDomainToken": self.custom_domain_token,
            "customDomainVerified": self.custom_domain_verified,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Site:
        """Create from dictionary (JSON deserialization)."""
        return cls(
            id=data["id"],
            name=data["name"],
            slug=data["slug"],
            created_at=_parse_datetime(data.get("createdAt")) or _utc_now(),
            updated_at=_parse_datetime(data.get("updatedAt")) or _utc_now(),
            visits=max(0, int(data.get("visits", 0))),
            published=data.get("published", True),
            enable_dns=data.get("enableDNS", False),
            dns_record_id=data.get("dnsRecordId"),
            custom_domain=data.get("customDomain"),
            custom_domain_token=data.get("customDomainToken"),
            custom_domain_verified=data.get("customDomainVerified", False),
        )


@dataclass
class User:
    """A registered account and the sites it owns."""

    username: str
    email: str
    password_hash: str
    domain_extension: str
    subdomain: str
    id: str = field(default_factory=_new_id)
    is_premium: bool = False
    created_at: datetime = field(default_factory=_utc_now)
    last_login: datetime | None = None
    sites: list[Site] = field(default_factory=list)

    @property
    def subdomain_label(self) -> str:
        """The subdomain without its extension, as used in hostnames."""
        if self.domain_extension and self.subdomain.endswith(self.domain_extension):
            return self.subdomain[: -len(self.domain_extension)]
        return self.subdomain

    def get_site(self, site_id: str) -> Site | None:
        for site in self.sites:
            if site.id == site_id:
                return site
        return None

    def get_site_by_slug(self, slug: str) -> Site | None:
        for site in self.sites:
            if site.slug == slug:
                return site
        return None

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "id": self.id,
            "username": self.username,
            "email": self.email,
            "password": self.password_hash,
            "domainExtension": self.domain_extension,
            "subdomain": self.subdomain,
            "isPremium": self.is_premium,
            "createdAt": self.created_at.isoformat(),
            "lastLogin": self.last_login.isoformat() if self.last_login else None,
            "sites": [site.to_dict() for site in self.sites],
        }

    def to_public_dict(self) -> dict[str, Any]:
        """Account view safe to return to clients."""
        data = self.to_dict()
        del data["password"]
        del data["sites"]
        data["siteCount"] = len(self.sites)
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> User:
        """Create from dictionary (JSON deserialization)."""
        return cls(
            id=data["id"],
            username=data["username"],
            email=data["email"],
            password_hash=data["password"],
            domain_extension=data.get("domainExtension", ""),
            subdomain=data["subdomain"],
            is_premium=data.get("isPremium", False),
            created_at=_parse_datetime(data.get("createdAt")) or _utc_now(),
            last_login=_parse_datetime(data.get("lastLogin")),
            sites=[Site.from_dict(site) for site in data.get("sites", [])],
        )
