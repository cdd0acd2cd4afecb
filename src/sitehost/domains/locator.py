"""Find the user and site behind a resolved label."""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass

from sitehost.storage.models import Site, User


@dataclass(frozen=True)
class LocatedSite:
    """A site together with the user that owns it."""

    user: User
    site: Site


class SiteLocator:
    """Linear scans over a registry snapshot.

    Users are scanned in registry order and the first match wins, so lookups
    are deterministic for a given registry file.
    """

    def __init__(self, users: Iterable[User]) -> None:
        self.users = list(users)

    def locate(self, label: str) -> LocatedSite | None:
        """Find a published site whose slug equals ``label``, across all users."""
        label = label.lower()
        for user in self.users:
            for site in user.sites:
                if site.slug == label and site.published:
                    return LocatedSite(user=user, site=site)
        return None

    def locate_owner(self, label: str) -> User | None:
        """Find the user whose subdomain label equals ``label``."""
        label = label.lower()
        for user in self.users:
            if user.subdomain_label == label:
                return user
        return None

    def locate_for_user(self, user: User, slug: str) -> LocatedSite | None:
        site = user.get_site_by_slug(slug.lower())
        if site is None or not site.published:
            return None
        return LocatedSite(user=user, site=site)

    def locate_custom_domain(self, host: str) -> LocatedSite | None:
        """Find the site a verified custom domain points at."""
        for user in self.users:
            for site in user.sites:
                if site.custom_domain == host and site.custom_domain_verified and site.published:
                    return LocatedSite(user=user, site=site)
        return None
