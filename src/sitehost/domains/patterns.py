"""Sitehost Subdomain Pattern Substitution.

Hostname patterns describe where a subdomain lives on a base domain, using a
single placeholder token:

    - {subdomain}.ntando.app     with "alice-fox1" -> alice-fox1.ntando.app
    - {subdomain}.ntando.cloud   with "alice-fox1" -> alice-fox1.ntando.cloud

A pattern must contain the placeholder exactly once, as a whole leftmost
label, so every rendered hostname keeps the subdomain as its first label.
"""

from __future__ import annotations

from dataclasses import dataclass

PLACEHOLDER = "{subdomain}"


def is_subdomain_pattern(pattern: str) -> bool:
    """Check if a string is a hostname pattern.

    Examples:
        >>> is_subdomain_pattern("{subdomain}.ntando.app")
        True
        >>> is_subdomain_pattern("ntando.app")
        False
    """
    return pattern.startswith(PLACEHOLDER + ".")


def validate_pattern(pattern: str) -> tuple[bool, str | None]:
    """Validate a hostname pattern.

    Returns:
        Tuple of (is_valid, error_message).
        If valid, error_message is None.

    Examples:
        >>> validate_pattern("{subdomain}.ntando.app")
        (True, None)
        >>> validate_pattern("ntando.app")
        (False, 'Pattern must start with {subdomain}.')
        >>> validate_pattern("{subdomain}.{subdomain}.app")
        (False, 'Placeholder may appear only once')
    """
    if not is_subdomain_pattern(pattern):
        return False, "Pattern must start with {subdomain}."

    if pattern.count(PLACEHOLDER) > 1:
        return False, "Placeholder may appear only once"

    base = pattern[len(PLACEHOLDER) + 1 :]
    if "{" in base or "}" in base:
        return False, "Unknown placeholder in pattern"

    if "." not in base and base != "localhost":
        return False, "Base domain must have at least one dot"

    if ".." in pattern or pattern.endswith("."):
        return False, "Invalid domain format"

    return True, None


def render_pattern(pattern: str, subdomain: str) -> str:
    """Substitute a subdomain into a pattern.

    Examples:
        >>> render_pattern("{subdomain}.ntando.app", "alice")
        'alice.ntando.app'
    """
    return pattern.replace(PLACEHOLDER, subdomain).lower()


@dataclass(frozen=True)
class SubdomainPattern:
    """Canonical pattern plus its equivalent alias patterns."""

    canonical_pattern: str
    alias_patterns: tuple[str, ...] = ()

    @property
    def all_patterns(self) -> tuple[str, ...]:
        return (self.canonical_pattern, *self.alias_patterns)

    def render(self, subdomain: str) -> list[str]:
        """Render every hostname for a subdomain, canonical first, duplicates dropped."""
        hostnames = [render_pattern(p, subdomain) for p in self.all_patterns]
        return list(dict.fromkeys(hostnames))
