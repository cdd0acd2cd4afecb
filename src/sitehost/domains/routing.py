"""Host-based routing of tenant requests.

The router turns a ``(host, path)`` pair into one of four decisions:

    PassThrough   - not a tenant request, let the API/static routes handle it
    Redirect      - bare/www host, or a legacy slug path missing its slash
    ServeSite     - a published site and the asset to send
    SiteNotFound  - a tenant host with nothing published behind it

Lookup order for a tenant host ``<label>.<alias>``:

    1. the user whose subdomain label is ``label``, with the site picked by
       the first path segment, or the user's first published site
    2. a published site whose slug is ``label``
    3. SiteNotFound, listing the hostnames that would reach ``label``

Hosts outside the configured aliases are tried as verified custom domains,
then as ``/<slug>/`` paths on the main host.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path

from sitehost.domains.locator import LocatedSite, SiteLocator
from sitehost.domains.names import LABEL_RE
from sitehost.domains.resolver import CanonicalRoute, HostResolver, normalize_host
from sitehost.services.files import SiteFiles, asset_from_path
from sitehost.storage.models import Site, User
from sitehost.storage.repository import UserRepository

RESERVED_PATH_PREFIXES = ("/api/", "/dashboard", "/health", "/static/")


@dataclass(frozen=True)
class PassThrough:
    reason: str


@dataclass(frozen=True)
class Redirect:
    location: str


@dataclass(frozen=True)
class ServeSite:
    """A resolved site and the file to answer with."""

    user: User
    site: Site
    asset: str
    path: Path | None
    via: str
    hostnames: list[str] = field(default_factory=list)
    route: CanonicalRoute | None = None

    @property
    def is_entry(self) -> bool:
        """True when the entry document itself is being served."""
        return self.asset == "index.html"


@dataclass(frozen=True)
class SiteNotFound:
    subdomain: str
    hostnames: list[str] = field(default_factory=list)


RoutingDecision = PassThrough | Redirect | ServeSite | SiteNotFound


def is_reserved_path(path: str) -> bool:
    return path == "/api" or path.startswith(RESERVED_PATH_PREFIXES)


def split_first_segment(path: str) -> tuple[str, str]:
    """Split ``/a/b/c`` into ``("a", "/b/c")``."""
    stripped = path.lstrip("/")
    if "/" not in stripped:
        return stripped, ""
    head, rest = stripped.split("/", 1)
    return head, "/" + rest


class SiteRouter:
    """Maps inbound hosts and paths to published sites."""

    def __init__(
        self,
        resolver: HostResolver,
        repository: UserRepository,
        files: SiteFiles,
        redirect_url: str,
    ) -> None:
        self.resolver = resolver
        self.repository = repository
        self.files = files
        self.redirect_url = redirect_url

    def _serve(
        self,
        located: LocatedSite,
        path: str,
        via: str,
        route: CanonicalRoute | None = None,
    ) -> ServeSite | SiteNotFound:
        asset = asset_from_path(path)
        hostnames = route.all_domains if route else self.resolver.registry.alias_hostnames(located.site.slug)
        if asset is None:
            return SiteNotFound(subdomain=located.site.slug, hostnames=hostnames)
        return ServeSite(
            user=located.user,
            site=located.site,
            asset=asset,
            path=self.files.resolve_asset(located.user, located.site, asset),
            via=via,
            hostnames=hostnames,
            route=route,
        )

    def _route_legacy_path(self, locator: SiteLocator, path: str) -> RoutingDecision:
        """Serve ``/<slug>/...`` on hosts that do not name a tenant."""
        slug, rest = split_first_segment(path)
        if not LABEL_RE.match(slug):
            return PassThrough("no_site")
        located = locator.locate(slug)
        if located is None:
            return PassThrough("no_site")
        if not rest:
            return Redirect(f"/{slug}/")
        return self._serve(located, rest, via="path")

    async def route(self, host: str, path: str) -> RoutingDecision:
        """Decide how to answer a request.

        Args:
            host: Raw Host header.
            path: Request path, query string excluded.

        Returns:
            One of PassThrough, Redirect, ServeSite or SiteNotFound.
        """
        if is_reserved_path(path):
            return PassThrough("reserved_path")

        locator = SiteLocator(await self.repository.list_users())
        resolved = self.resolver.resolve(host)

        if resolved is None:
            located = locator.locate_custom_domain(normalize_host(host))
            if located is not None:
                return self._serve(located, path, via="custom_domain")
            return self._route_legacy_path(locator, path)

        if not resolved.is_tenant:
            decision = self._route_legacy_path(locator, path)
            if isinstance(decision, PassThrough) and path in ("", "/"):
                return Redirect(self.redirect_url)
            return decision

        route = self.resolver.canonicalize(resolved)

        # A user label always belongs to its owner, even if a slug shadows it.
        owner = locator.locate_owner(resolved.subdomain)
        if owner is not None:
            slug, rest = split_first_segment(path)
            if slug:
                by_slug = locator.locate_for_user(owner, slug)
                if by_slug is not None:
                    if not rest:
                        return Redirect(f"/{slug}/")
                    return self._serve(by_slug, rest, via="owner", route=route)
            home = next((site for site in owner.sites if site.published), None)
            if home is not None:
                return self._serve(LocatedSite(user=owner, site=home), path, via="owner", route=route)
            return SiteNotFound(subdomain=resolved.subdomain, hostnames=route.all_domains)

        located = locator.locate(resolved.subdomain)
        if located is not None:
            return self._serve(located, path, via="subdomain", route=route)

        return SiteNotFound(subdomain=resolved.subdomain, hostnames=route.all_domains)
