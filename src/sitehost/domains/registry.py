"""Read-only lookups over the process-wide domain configuration.

The registry answers three questions for the rest of the core: is a domain
one of ours, is an extension a premium tier, and which hostnames reach a
given subdomain. It never mutates the configuration it was built from.
"""

from __future__ import annotations

from sitehost.core.config import DomainConfig
from sitehost.domains.patterns import SubdomainPattern, validate_pattern
from sitehost.errors import InvalidFormat


class DomainRegistry:
    """Pure lookups over an immutable DomainConfig."""

    def __init__(self, config: DomainConfig) -> None:
        """Initialize the registry and compile hostname patterns.

        Args:
            config: Loaded domain configuration.

        Raises:
            InvalidFormat: If a configured hostname pattern is malformed.
        """
        self.config = config
        self._aliases = frozenset(config.aliases)
        self._patterns: dict[str, SubdomainPattern] = {}

        for base_domain, mapping in config.subdomain_mapping.items():
            for pattern in (mapping.pattern, *mapping.aliases):
                valid, error = validate_pattern(pattern)
                if not valid:
                    raise InvalidFormat(f"Invalid pattern {pattern!r} for {base_domain}: {error}")
            self._patterns[base_domain.lower()] = SubdomainPattern(
                canonical_pattern=mapping.pattern,
                alias_patterns=tuple(mapping.aliases),
            )

    @property
    def primary(self) -> str:
        return self.config.primary

    @property
    def aliases(self) -> tuple[str, ...]:
        return self.config.aliases

    @property
    def extensions(self) -> tuple[str, ...]:
        return self.config.extensions

    def is_known_domain(self, domain: str) -> bool:
        """Check whether a domain is one of the configured aliases."""
        return domain.lower() in self._aliases

    def is_allowed_extension(self, extension: str) -> bool:
        return extension.lower() in self.config.extensions

    def is_premium_extension(self, extension: str) -> bool:
        """Check whether an extension is sold as a premium tier."""
        custom = self.config.custom_subdomains.get(extension.lower())
        return bool(custom and custom.premium)

    def expand_subdomain(self, subdomain: str, base_domain: str) -> list[str]:
        """List every hostname equivalent to ``subdomain`` on ``base_domain``.

        The canonical pattern comes first, followed by the alias patterns in
        configured order. Callers rely on index 0 being canonical.

        Args:
            subdomain: Leftmost label to substitute.
            base_domain: Domain whose mapping should be applied.

        Returns:
            Ordered, de-duplicated list of hostnames. An unmapped base domain
            yields just ``subdomain.base_domain``.
        """
        pattern = self._patterns.get(base_domain.lower())
        if pattern is None:
            return [f"{subdomain}.{base_domain}".lower()]
        return pattern.render(subdomain)

    def alias_hostnames(self, subdomain: str) -> list[str]:
        """Hostnames for ``subdomain`` under the primary domain's mapping."""
        return self.expand_subdomain(subdomain, self.primary)

    def describe(self) -> dict[str, object]:
        """Public description of the domain setup, keyed the way clients expect."""
        return {
            "primary": self.primary,
            "aliases": list(self.aliases),
            "extensions": list(self.extensions),
            "customSubdomains": {
                ext: {"premium": custom.premium, "target": custom.target}
                for ext, custom in self.config.custom_subdomains.items()
            },
        }
