"""Domain resolution and site registry.

Usage:
    from sitehost.domains import DomainRegistry, HostResolver

    registry = DomainRegistry(settings.domains)
    resolved = HostResolver(registry).resolve("portfolio.ntando.cloud")
"""

from sitehost.domains.availability import AvailabilityChecker
from sitehost.domains.locator import LocatedSite, SiteLocator
from sitehost.domains.names import NameGenerator, NameScope
from sitehost.domains.registry import DomainRegistry
from sitehost.domains.resolver import CanonicalRoute, HostResolver, ResolvedHost

__all__ = [
    "AvailabilityChecker",
    "CanonicalRoute",
    "DomainRegistry",
    "HostResolver",
    "LocatedSite",
    "NameGenerator",
    "NameScope",
    "ResolvedHost",
    "SiteLocator",
]
