"""Publishing, updating and removing site bundles.

Slug allocation, registry changes and file writes happen inside one
repository transaction: if the files cannot be written nothing is recorded,
and if the registry cannot be written the new files are removed again.

Usage:
    service = PublishingService(repository, registry, SiteFiles(root))
    result = await service.publish(user_id, "Portfolio", html="<h1>Hi</h1>")
"""

from __future__ import annotations

import copy
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

import structlog

from sitehost.dns.provisioner import DNSProvisioner, DNSRecord
from sitehost.domains.availability import AvailabilityChecker
from sitehost.domains.names import NameGenerator, NameScope, validate_domain_name, validate_slug
from sitehost.domains.registry import DomainRegistry
from sitehost.domains.verification import (
    DNSVerifier,
    VerificationResult,
    dns_instructions,
    generate_verification_token,
)
from sitehost.errors import Collision, InvalidFormat, NotFound, StorageError
from sitehost.security.validation import validate_bundle, validate_site_name
from sitehost.services.files import SiteFiles
from sitehost.storage.models import Site, User
from sitehost.storage.repository import UserRepository

logger = structlog.get_logger()


@dataclass
class PublishResult:
    """Outcome of a publish call."""

    user: User
    site: Site
    hostnames: list[str]
    urls: list[str]
    dns_record: DNSRecord | None = None
    custom_domain_records: dict[str, dict[str, str]] = field(default_factory=dict)


def _user_in(users: dict[str, User], user_id: str) -> User:
    user = users.get(user_id)
    if user is None:
        raise NotFound("User not found")
    return user


def _site_of(user: User, site_id: str) -> Site:
    site = user.get_site(site_id)
    if site is None:
        raise NotFound("Site not found")
    return site


class PublishingService:
    """Manages the sites a user publishes."""

    def __init__(
        self,
        repository: UserRepository,
        registry: DomainRegistry,
        files: SiteFiles,
        generator: NameGenerator | None = None,
        unique_slugs_globally: bool = True,
        max_upload_bytes: int = 10 * 1024 * 1024,
        provisioner: DNSProvisioner | None = None,
        verifier: DNSVerifier | None = None,
    ) -> None:
        self.repository = repository
        self.registry = registry
        self.files = files
        self.generator = generator or NameGenerator()
        self.unique_slugs_globally = unique_slugs_globally
        self.max_upload_bytes = max_upload_bytes
        self.provisioner = provisioner
        self.verifier = verifier or DNSVerifier(registry.primary)

    def hostnames(self, user: User, site: Site) -> list[str]:
        """Hostnames that reach ``site``, canonical first."""
        if self.unique_slugs_globally:
            return self.registry.alias_hostnames(site.slug)
        return self.registry.alias_hostnames(user.subdomain_label)

    def urls(self, user: User, site: Site) -> list[str]:
        path = "/" if self.unique_slugs_globally else f"/{site.slug}/"
        urls = [f"https://{hostname}{path}" for hostname in self.hostnames(user, site)]
        if site.custom_domain and site.custom_domain_verified:
            urls.append(f"https://{site.custom_domain}/")
        return urls

    def describe(self, user: User, site: Site) -> dict[str, Any]:
        """Client view of a site with every way to reach it."""
        hostnames = self.hostnames(user, site)
        data = site.to_dict()
        del data["customDomainToken"]
        data["primaryDomain"] = hostnames[0]
        data["fullUrl"] = self.urls(user, site)[0]
        data["hostnames"] = hostnames
        data["urls"] = self.urls(user, site)
        data["legacyPath"] = f"/{site.slug}/"
        if site.custom_domain and not site.custom_domain_verified:
            data["customDomainRecords"] = dns_instructions(
                site.custom_domain, self.registry.primary, site.custom_domain_token or ""
            )
        return data

    def _check_custom_domain(self, users: dict[str, User], domain: str, site_id: str | None) -> str:
        domain = validate_domain_name(domain)
        for alias in self.registry.aliases:
            if domain == alias or domain.endswith(f".{alias}"):
                raise InvalidFormat(f"{domain} is already served by this host")
        for user in users.values():
            for site in user.sites:
                if site.custom_domain == domain and site.id != site_id:
                    raise Collision(f"Custom domain {domain} is already taken")
        return domain

    def _allocate_slug(self, users: dict[str, User], user: User, name: str, slug: str | None) -> str:
        checker = AvailabilityChecker(users, self.unique_slugs_globally)
        if slug:
            slug = validate_slug(slug)
            if not checker.is_slug_available(slug, user):
                raise Collision(f"Site URL '{slug}' is already taken, choose another")
            return slug
        return self.generator.generate_unique(
            name,
            NameScope.SLUG,
            checker.predicate(NameScope.SLUG, user),
        )

    async def publish(
        self,
        user_id: str,
        name: str,
        html: str,
        css: str = "",
        js: str = "",
        slug: str | None = None,
        custom_domain: str | None = None,
        enable_dns: bool = False,
    ) -> PublishResult:
        """Publish a new site for a user.

        Args:
            user_id: Owner of the site.
            name: Display name; also seeds the generated slug.
            html: Entry document body.
            css: Optional stylesheet.
            js: Optional script.
            slug: Requested slug; generated from ``name`` when omitted.
            custom_domain: Optional domain to attach, pending verification.
            enable_dns: Provision a CNAME for the site's canonical hostname.

        Returns:
            PublishResult with the stored site and its hostnames.

        Raises:
            InvalidFormat: If the name, slug, domain or content is invalid.
            Collision: If the requested slug or custom domain is taken.
            GenerationExhausted: If no free slug could be generated.
            NotFound: If the user does not exist.
        """
        name = validate_site_name(name)
        css = css or ""
        js = js or ""
        validate_bundle(html, css, js, self.max_upload_bytes)

        dns_record: DNSRecord | None = None
        written: tuple[User, Site] | None = None
        try:
            async with self.repository.transaction() as users:
                user = _user_in(users, user_id)
                site = Site(name=name, slug=self._allocate_slug(users, user, name, slug))
                if custom_domain:
                    site.custom_domain = self._check_custom_domain(users, custom_domain, None)
                    site.custom_domain_token = generate_verification_token()

                await self._write_files(user, site, html, css, js)
                written = (copy.deepcopy(user), site)

                if enable_dns:
                    dns_record = await self._provision(site)

                user.sites.append(site)
                published = copy.deepcopy(user)
        except Exception:
            if written is not None:
                await self.files.remove(*written)
            if dns_record is not None and self.provisioner is not None:
                await self.provisioner.delete_record(dns_record.id)
            raise

        logger.info(
            "Site published",
            user_id=user_id,
            site_id=site.id,
            slug=site.slug,
            custom_domain=site.custom_domain,
            dns_record_id=site.dns_record_id,
        )
        result = PublishResult(
            user=published,
            site=copy.deepcopy(site),
            hostnames=self.hostnames(published, site),
            urls=self.urls(published, site),
            dns_record=dns_record,
        )
        if site.custom_domain:
            result.custom_domain_records = dns_instructions(
                site.custom_domain, self.registry.primary, site.custom_domain_token or ""
            )
        return result

    async def _write_files(self, user: User, site: Site, html: str, css: str, js: str) -> None:
        try:
            await self.files.write_bundle(user, site, html, css, js)
        except OSError as e:
            raise StorageError(f"Could not write site files: {e}") from e

    async def _provision(self, site: Site) -> DNSRecord | None:
        if self.provisioner is None:
            return None
        record = await self.provisioner.create_record(
            self.registry.alias_hostnames(site.slug)[0], self.registry.primary
        )
        site.enable_dns = True
        site.dns_record_id = record.id
        return record

    async def update_site(
        self,
        user_id: str,
        site_id: str,
        name: str | None = None,
        html: str | None = None,
        css: str | None = None,
        js: str | None = None,
        published: bool | None = None,
        custom_domain: str | None = None,
    ) -> tuple[User, Site]:
        """Change a site's name, content, visibility or custom domain.

        Fields left as None keep their current value. The slug never changes.
        An empty ``custom_domain`` detaches the current one.
        """
        previous: tuple[User, Site, dict[str, str]] | None = None
        try:
            async with self.repository.transaction() as users:
                user = _user_in(users, user_id)
                site = _site_of(user, site_id)

                if name is not None:
                    site.name = validate_site_name(name)

                if html is not None or css is not None or js is not None:
                    sources = await self.files.read_sources(user, site)
                    html = sources["html"] if html is None else html
                    css = sources["css"] if css is None else css
                    js = sources["js"] if js is None else js
                    validate_bundle(html, css, js, self.max_upload_bytes)
                    previous = (copy.deepcopy(user), copy.deepcopy(site), sources)
                    await self._write_files(user, site, html, css, js)

                if published is not None:
                    site.published = bool(published)

                if custom_domain is not None:
                    if not custom_domain.strip():
                        site.custom_domain = None
                        site.custom_domain_token = None
                        site.custom_domain_verified = False
                    else:
                        domain = self._check_custom_domain(users, custom_domain, site.id)
                        if domain != site.custom_domain:
                            site.custom_domain = domain
                            site.custom_domain_token = generate_verification_token()
                            site.custom_domain_verified = False

                site.updated_at = datetime.now(UTC)
                result = (copy.deepcopy(user), copy.deepcopy(site))
        except Exception:
            if previous is not None:
                owner, old_site, sources = previous
                await self.files.write_bundle(owner, old_site, sources["html"], sources["css"], sources["js"])
            raise

        logger.info("Site updated", user_id=user_id, site_id=site_id, slug=result[1].slug)
        return result

    async def delete_site(self, user_id: str, site_id: str) -> Site:
        """Remove a site from the registry, then its files and DNS record."""
        async with self.repository.transaction() as users:
            user = _user_in(users, user_id)
            site = _site_of(user, site_id)
            user.sites.remove(site)
            owner = copy.deepcopy(user)

        await self.files.remove(owner, site)
        if site.dns_record_id and self.provisioner is not None:
            await self.provisioner.delete_record(site.dns_record_id)

        logger.info("Site deleted", user_id=user_id, site_id=site_id, slug=site.slug)
        return site

    async def get_site(self, user_id: str, site_id: str) -> tuple[User, Site]:
        user = await self.repository.get(user_id)
        if user is None:
            raise NotFound("User not found")
        return user, _site_of(user, site_id)

    async def get_sources(self, user: User, site: Site) -> dict[str, str]:
        return await self.files.read_sources(user, site)

    async def list_sites(self, user_id: str) -> tuple[User, list[Site]]:
        user = await self.repository.get(user_id)
        if user is None:
            raise NotFound("User not found")
        return user, list(user.sites)

    async def verify_custom_domain(self, user_id: str, site_id: str) -> tuple[VerificationResult, Site]:
        """Check a site's custom domain records and mark it verified on success.

        DNS lookups run outside the registry lock; the site is re-read under
        the lock before it is marked, in case the domain changed meanwhile.

        Raises:
            NotFound: If the user or site does not exist.
            InvalidFormat: If the site has no custom domain attached.
        """
        _, site = await self.get_site(user_id, site_id)
        if not site.custom_domain or not site.custom_domain_token:
            raise InvalidFormat("Site has no custom domain")

        result = await self.verifier.verify_domain(site.custom_domain, site.custom_domain_token)
        if not result.is_verified:
            logger.info(
                "Custom domain not verified yet",
                site_id=site_id,
                domain=site.custom_domain,
                status=result.status.value,
            )
            return result, site

        async with self.repository.transaction() as users:
            current = _site_of(_user_in(users, user_id), site_id)
            if current.custom_domain == result.domain:
                current.custom_domain_verified = True
                current.updated_at = datetime.now(UTC)
            site = copy.deepcopy(current)

        logger.info("Custom domain verified", site_id=site_id, domain=result.domain)
        return result, site
