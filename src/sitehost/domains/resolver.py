"""Host header resolution.

Turns an inbound ``Host`` header into a subdomain and a known domain, then
canonicalizes it so the same site is enumerated identically no matter which
alias the request arrived on. Only the host is consulted; the path and query
never take part in resolution.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from sitehost.domains.registry import DomainRegistry

NON_TENANT_SUBDOMAINS = frozenset({"", "www"})


@dataclass(frozen=True)
class ResolvedHost:
    """A host split into its leftmost label and a registered domain."""

    subdomain: str
    domain: str
    primary_domain: str
    is_alias: bool
    full_subdomain: str

    @property
    def is_tenant(self) -> bool:
        """False for bare and www hosts, which never name a tenant."""
        return self.subdomain not in NON_TENANT_SUBDOMAINS


@dataclass(frozen=True)
class CanonicalRoute:
    """Routing view of a resolved host, anchored on the primary domain."""

    subdomain: str
    canonical_domain: str
    original_request: str
    all_domains: list[str] = field(default_factory=list)

    @property
    def canonical_host(self) -> str:
        return self.all_domains[0] if self.all_domains else self.original_request


def normalize_host(host: str) -> str:
    """Lower-case a host header and strip any port and trailing dot."""
    host = host.strip().lower()
    if host.startswith("["):
        return host
    return host.split(":", 1)[0].rstrip(".")


class HostResolver:
    """Resolves Host headers against the domain registry."""

    def __init__(self, registry: DomainRegistry) -> None:
        self.registry = registry

    def resolve(self, host: str) -> ResolvedHost | None:
        """Split a host into ``{subdomain, domain}``.

        Args:
            host: Raw Host header value, port allowed.

        Returns:
            ResolvedHost, or None when the host has fewer than two labels or
            its domain is not one of the configured aliases.
        """
        normalized = normalize_host(host)
        labels = normalized.split(".")
        if len(labels) < 2:
            return None

        subdomain = labels[0]
        domain = ".".join(labels[1:])
        if not self.registry.is_known_domain(domain):
            return None

        primary = self.registry.primary
        return ResolvedHost(
            subdomain=subdomain,
            domain=domain,
            primary_domain=primary,
            is_alias=domain != primary,
            full_subdomain=f"{subdomain}.{domain}",
        )

    def canonicalize(self, resolved: ResolvedHost) -> CanonicalRoute:
        """Anchor a resolved host on the primary domain's expansion."""
        return CanonicalRoute(
            subdomain=resolved.subdomain,
            canonical_domain=resolved.primary_domain,
            original_request=resolved.full_subdomain,
            all_domains=self.registry.expand_subdomain(
                resolved.subdomain, resolved.primary_domain
            ),
        )
