"""Collision checks for subdomains and slugs.

The checker reads whatever registry state it is handed at call time and keeps
no cache. Inside a repository transaction that state is authoritative; outside
one the answer is advisory only.

Subdomain labels and slugs share the leftmost label of tenant hostnames, so
the two namespaces are always checked against each other, whichever slug
scope is configured.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable, Mapping

from sitehost.domains.names import NameScope
from sitehost.storage.models import User


class AvailabilityChecker:
    """Answers "is this name free?" against a registry snapshot."""

    def __init__(
        self,
        users: Mapping[str, User] | Iterable[User],
        unique_slugs_globally: bool = True,
    ) -> None:
        """Initialize the checker.

        Args:
            users: Registry state, either the transaction mapping or a list.
            unique_slugs_globally: Whether a slug must be free across all users.
        """
        self._users = users
        self.unique_slugs_globally = unique_slugs_globally

    def _iter_users(self) -> Iterable[User]:
        if isinstance(self._users, Mapping):
            return self._users.values()
        return self._users

    def _labels(self) -> set[str]:
        return {user.subdomain_label for user in self._iter_users()}

    def _all_slugs(self) -> set[str]:
        return {site.slug for user in self._iter_users() for site in user.sites}

    def is_subdomain_available(self, candidate: str, extension: str = "") -> bool:
        """True iff no user holds ``candidate`` or its hostname label."""
        candidate = candidate.lower()
        label = candidate[: -len(extension)] if extension and candidate.endswith(extension) else candidate
        for user in self._iter_users():
            if user.subdomain == candidate or user.subdomain_label == label:
                return False
        if label in self._all_slugs():
            return False
        return True

    def is_slug_available(self, slug: str, user: User | None = None) -> bool:
        """True iff ``slug`` is free for ``user`` (or for everyone, when global)."""
        slug = slug.lower()
        if self.unique_slugs_globally:
            return slug not in self._all_slugs() and slug not in self._labels()
        if user is None:
            raise ValueError("A per-user slug check needs the owning user")
        if slug in self._labels():
            return False
        for owner in self._iter_users():
            if owner.id == user.id:
                return owner.get_site_by_slug(slug) is None
        return user.get_site_by_slug(slug) is None

    def is_available(
        self,
        candidate: str,
        scope: NameScope,
        user: User | None = None,
        extension: str = "",
    ) -> bool:
        if scope is NameScope.SUBDOMAIN:
            return self.is_subdomain_available(candidate, extension)
        return self.is_slug_available(candidate, user)

    def predicate(
        self,
        scope: NameScope,
        user: User | None = None,
        extension: str = "",
    ) -> Callable[[str], bool]:
        """Bind scope and owner, for use as a NameGenerator predicate."""
        return lambda candidate: self.is_available(candidate, scope, user, extension)

    def is_username_available(self, username: str) -> bool:
        username = username.lower()
        return all(user.username.lower() != username for user in self._iter_users())

    def is_email_available(self, email: str) -> bool:
        email = email.lower()
        return all(user.email.lower() != email for user in self._iter_users())
