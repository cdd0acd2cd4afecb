"""HTTP server: management API plus host-based site serving.

One aiohttp application serves both planes. The tenant middleware runs the
site router on every request first; anything it does not claim falls
through to the API and health routes.

Middleware order (outermost first):
    request logging -> security headers -> error mapping -> tenant routing
    -> rate limiting
"""

from __future__ import annotations

import time
from datetime import UTC, datetime
from typing import Any

import structlog
from aiohttp import web

from sitehost import __version__
from sitehost.core.config import ServerSettings
from sitehost.dns.provisioner import DNSProvisioner, LocalDNSProvisioner
from sitehost.domains.availability import AvailabilityChecker
from sitehost.domains.names import (
    NameGenerator,
    NameScope,
    validate_slug,
    validate_subdomain,
)
from sitehost.domains.registry import DomainRegistry
from sitehost.domains.resolver import HostResolver
from sitehost.domains.routing import (
    PassThrough,
    Redirect,
    ServeSite,
    SiteNotFound,
    SiteRouter,
)
from sitehost.domains.verification import DNSVerifier
from sitehost.errors import AuthenticationError, InvalidFormat, SitehostError, StorageError
from sitehost.security.ratelimit import RateLimiter, create_rate_limiter
from sitehost.security.tokens import TokenService
from sitehost.services.accounts import AccountService
from sitehost.services.files import SiteFiles
from sitehost.services.publishing import PublishingService
from sitehost.storage.backends import JSONFileBackend
from sitehost.storage.models import User
from sitehost.storage.repository import UserRepository

logger = structlog.get_logger()

SUSPICIOUS_PATTERNS = ("..", "<script", "/etc/passwd", "/.env", "/.git", "wp-admin", "phpmyadmin")

AUTH_PATHS = frozenset({"/api/register", "/api/login"})


def _client_ip(request: web.Request) -> str:
    return request.remote or "unknown"


def _error(message: str, status: int, **extra: Any) -> web.Response:
    return web.json_response({"error": message, **extra}, status=status)


async def _read_json(request: web.Request) -> dict[str, Any]:
    """Parse a JSON object body."""
    try:
        body = await request.json()
    except ValueError as e:
        raise InvalidFormat("Request body must be valid JSON") from e
    if not isinstance(body, dict):
        raise InvalidFormat("Request body must be a JSON object")
    return body


def _str_field(body: dict[str, Any], key: str, default: str | None = None) -> str | None:
    value = body.get(key)
    if value is None:
        return default
    if not isinstance(value, str):
        raise InvalidFormat(f"{key} must be a string")
    return value


def _bool_field(body: dict[str, Any], key: str) -> bool | None:
    value = body.get(key)
    if value is None:
        return None
    if isinstance(value, str):
        return value.strip().lower() in ("1", "true", "yes", "on")
    return bool(value)


class SitehostServer:
    """Wires settings, storage and services into an aiohttp application."""

    def __init__(
        self,
        settings: ServerSettings,
        repository: UserRepository | None = None,
        generator: NameGenerator | None = None,
        provisioner: DNSProvisioner | None = None,
        verifier: DNSVerifier | None = None,
    ) -> None:
        """Initialize the server and its services.

        Args:
            settings: Loaded server settings.
            repository: Registry to use; defaults to the JSON file in data_dir.
            generator: Name generator; defaults to one honouring max_name_attempts.
            provisioner: DNS provisioner; defaults to LocalDNSProvisioner when enabled.
            verifier: Custom domain verifier; defaults to one targeting the primary.
        """
        self.settings = settings
        self.registry = DomainRegistry(settings.domains)
        self.resolver = HostResolver(self.registry)
        self.repository = repository or UserRepository(JSONFileBackend(settings.users_path))
        self.files = SiteFiles(settings.sites_path)
        self.tokens = TokenService(settings.jwt_secret, settings.token_ttl)

        generator = generator or NameGenerator(max_attempts=settings.max_name_attempts)
        if provisioner is None and settings.dns_enabled:
            provisioner = LocalDNSProvisioner()

        self.accounts = AccountService(
            self.repository,
            self.registry,
            self.tokens,
            generator=generator,
            unique_slugs_globally=settings.unique_slugs_globally,
            bcrypt_rounds=settings.bcrypt_rounds,
        )
        self.publishing = PublishingService(
            self.repository,
            self.registry,
            self.files,
            generator=generator,
            unique_slugs_globally=settings.unique_slugs_globally,
            max_upload_bytes=settings.max_upload_bytes,
            provisioner=provisioner,
            verifier=verifier,
        )
        self.router = SiteRouter(self.resolver, self.repository, self.files, settings.redirect_url)
        self.rate_limiter: RateLimiter | None = (
            create_rate_limiter(settings) if settings.rate_limit_enabled else None
        )

        self._runner: web.AppRunner | None = None

    def create_app(self) -> web.Application:
        """Build the aiohttp application with all routes and middleware."""
        app = web.Application(
            client_max_size=self.settings.max_upload_bytes + 1024 * 1024,
            middlewares=[
                self._logging_middleware,
                self._security_headers_middleware,
                self._error_middleware,
                self._tenant_middleware,
                self._rate_limit_middleware,
            ],
        )
        app.router.add_get("/", self._handle_index)
        app.router.add_get("/health", self._handle_health)
        app.router.add_get("/api/domains/extensions", self._handle_extensions)
        app.router.add_get("/api/availability", self._handle_availability)
        app.router.add_post("/api/register", self._handle_register)
        app.router.add_post("/api/login", self._handle_login)
        app.router.add_get("/api/user/sites", self._handle_list_sites)
        app.router.add_post("/api/upload", self._handle_upload)
        app.router.add_get("/api/sites/{site_id}", self._handle_get_site)
        app.router.add_put("/api/sites/{site_id}", self._handle_update_site)
        app.router.add_delete("/api/sites/{site_id}", self._handle_delete_site)
        app.router.add_post(
            "/api/sites/{site_id}/custom-domain/verify", self._handle_verify_custom_domain
        )
        return app

    async def start(self) -> None:
        """Start listening on the configured host and port."""
        self._runner = web.AppRunner(self.create_app())
        await self._runner.setup()
        site = web.TCPSite(self._runner, self.settings.host, self.settings.port)
        await site.start()
        logger.info(
            "Server started",
            host=self.settings.host,
            port=self.settings.port,
            primary=self.registry.primary,
            aliases=list(self.registry.aliases),
        )

    async def stop(self) -> None:
        """Stop the server gracefully."""
        if self._runner is not None:
            await self._runner.cleanup()
            self._runner = None
        logger.info("Server stopped")

    # Middleware

    @web.middleware
    async def _logging_middleware(self, request: web.Request, handler) -> web.StreamResponse:
        start = time.perf_counter()
        path = request.path
        if any(pattern in request.path_qs.lower() for pattern in SUSPICIOUS_PATTERNS):
            logger.warning("Suspicious request", ip=_client_ip(request), method=request.method, path=path)

        status = 500
        try:
            response = await handler(request)
            status = response.status
            return response
        except web.HTTPException as e:
            status = e.status
            raise
        finally:
            logger.info(
                "Request",
                method=request.method,
                host=request.host,
                path=path,
                status=status,
                ip=_client_ip(request),
                duration_ms=round((time.perf_counter() - start) * 1000, 2),
            )

    @web.middleware
    async def _security_headers_middleware(self, request: web.Request, handler) -> web.StreamResponse:
        response = await handler(request)
        response.headers.setdefault("X-Content-Type-Options", "nosniff")
        response.headers.setdefault("X-Frame-Options", "SAMEORIGIN")
        response.headers.setdefault("Referrer-Policy", "strict-origin-when-cross-origin")
        if request.path.startswith("/api/"):
            response.headers.setdefault(
                "Content-Security-Policy", "default-src 'none'; frame-ancestors 'none'"
            )
        return response

    @web.middleware
    async def _error_middleware(self, request: web.Request, handler) -> web.StreamResponse:
        try:
            return await handler(request)
        except web.HTTPException:
            raise
        except SitehostError as e:
            if e.status >= 500:
                logger.error("Request failed", path=request.path, error=e.message)
                message = "Operation failed, please try again" if isinstance(e, StorageError) else e.message
                return _error(message, e.status)
            return _error(e.message, e.status)
        except Exception:
            logger.exception("Unhandled error", path=request.path)
            return _error("Internal server error", 500)

    @web.middleware
    async def _tenant_middleware(self, request: web.Request, handler) -> web.StreamResponse:
        if request.method not in ("GET", "HEAD"):
            return await handler(request)

        decision = await self.router.route(request.host or "", request.path)

        if isinstance(decision, PassThrough):
            return await handler(request)
        if isinstance(decision, Redirect):
            raise web.HTTPFound(decision.location)
        if isinstance(decision, SiteNotFound):
            return _error(
                "Site not found",
                404,
                subdomain=decision.subdomain,
                hostnames=decision.hostnames,
            )
        return await self._serve_site(decision, count_visit=request.method == "GET")

    @web.middleware
    async def _rate_limit_middleware(self, request: web.Request, handler) -> web.StreamResponse:
        if self.rate_limiter is None or not request.path.startswith("/api/"):
            return await handler(request)

        ip = _client_ip(request)
        scopes = ["general"]
        if request.path in AUTH_PATHS:
            scopes.append("auth")
        elif request.path == "/api/upload" and request.method == "POST":
            scopes.append("upload")

        result = None
        for scope in scopes:
            result = await self.rate_limiter.allow(ip, scope=scope)
            if not result.allowed:
                logger.warning(
                    "Rate limit exceeded",
                    ip=ip,
                    scope=scope,
                    path=request.path,
                    reset_after=round(result.reset_after, 1),
                )
                return web.json_response({"error": result.message}, status=429, headers=result.headers())

        response = await handler(request)
        if result is not None:
            response.headers.update(result.headers())
        return response

    # Tenant serving

    async def _serve_site(self, decision: ServeSite, count_visit: bool = True) -> web.StreamResponse:
        if decision.path is None or not decision.path.is_file():
            return _error("Not found", 404, subdomain=decision.site.slug, hostnames=decision.hostnames)

        if decision.is_entry and count_visit:
            await self._record_visit(decision)

        route = decision.route
        headers = {
            "X-Sitehost-Subdomain": route.subdomain if route else decision.site.slug,
            "X-Sitehost-Canonical-Domain": route.canonical_domain if route else self.registry.primary,
            "X-Sitehost-Aliases": ", ".join(decision.hostnames),
        }
        return web.FileResponse(decision.path, headers=headers)

    async def _record_visit(self, decision: ServeSite) -> None:
        try:
            await self.repository.record_visit(decision.user.id, decision.site.id)
        except StorageError as e:
            logger.warning(
                "Visit not recorded",
                site_id=decision.site.id,
                slug=decision.site.slug,
                error=e.message,
            )

    # Auth

    async def _require_user(self, request: web.Request) -> User:
        header = request.headers.get("Authorization", "")
        scheme, _, token = header.partition(" ")
        if scheme.lower() != "bearer" or not token.strip():
            raise AuthenticationError("Access token required")
        return await self.accounts.authenticate(token.strip())

    # Handlers

    async def _handle_index(self, request: web.Request) -> web.Response:
        return web.json_response(
            {
                "service": "sitehost",
                "version": __version__,
                "primary": self.registry.primary,
            }
        )

    async def _handle_health(self, request: web.Request) -> web.Response:
        return web.json_response({"status": "OK", "timestamp": datetime.now(UTC).isoformat()})

    async def _handle_extensions(self, request: web.Request) -> web.Response:
        return web.json_response(self.registry.describe())

    async def _handle_availability(self, request: web.Request) -> web.Response:
        """Advisory availability check; the answer can go stale immediately."""
        name = request.query.get("name", "").strip().lower()
        scope_name = request.query.get("scope", NameScope.SUBDOMAIN.value)
        extension = request.query.get("extension", "").strip().lower()
        try:
            scope = NameScope(scope_name)
        except ValueError:
            raise InvalidFormat(f"Unknown scope: {scope_name}") from None

        if scope is NameScope.SUBDOMAIN:
            if extension and not name.endswith(extension):
                name = f"{name}{extension}"
            if extension:
                validate_subdomain(name, extension)
            else:
                validate_slug(name)
        else:
            validate_slug(name)

        checker = AvailabilityChecker(
            await self.repository.list_users(),
            self.settings.unique_slugs_globally,
        )
        user = None
        if scope is NameScope.SLUG and not self.settings.unique_slugs_globally:
            user = await self._require_user(request)
        available = checker.is_available(name, scope, user=user, extension=extension)
        return web.json_response({"name": name, "scope": scope.value, "available": available})

    async def _handle_register(self, request: web.Request) -> web.Response:
        body = await _read_json(request)
        session = await self.accounts.register(
            _str_field(body, "username", ""),
            _str_field(body, "email", ""),
            _str_field(body, "password", ""),
            _str_field(body, "domainExtension", ""),
        )
        return web.json_response(
            {
                "message": "User registered successfully",
                "token": session.token,
                "user": session.user.to_public_dict(),
                "hostnames": self.accounts.hostnames(session.user),
            },
            status=201,
        )

    async def _handle_login(self, request: web.Request) -> web.Response:
        body = await _read_json(request)
        session = await self.accounts.login(
            _str_field(body, "username", ""),
            _str_field(body, "password", ""),
        )
        return web.json_response(
            {
                "message": "Login successful",
                "token": session.token,
                "user": session.user.to_public_dict(),
            }
        )

    async def _handle_list_sites(self, request: web.Request) -> web.Response:
        user = await self._require_user(request)
        user, sites = await self.publishing.list_sites(user.id)
        return web.json_response(
            {
                "user": user.to_public_dict(),
                "sites": [self.publishing.describe(user, site) for site in sites],
            }
        )

    async def _handle_upload(self, request: web.Request) -> web.Response:
        user = await self._require_user(request)
        body = await _read_json(request)
        result = await self.publishing.publish(
            user.id,
            _str_field(body, "siteName", ""),
            _str_field(body, "html", ""),
            _str_field(body, "css", ""),
            _str_field(body, "js", ""),
            slug=_str_field(body, "siteSlug") or None,
            custom_domain=_str_field(body, "customDomain") or None,
            enable_dns=bool(_bool_field(body, "enableDNS")),
        )
        payload: dict[str, Any] = {
            "message": "Site published successfully",
            "site": self.publishing.describe(result.user, result.site),
            "url": result.urls[0],
            "hostnames": result.hostnames,
        }
        if result.dns_record is not None:
            payload["dnsRecord"] = result.dns_record.to_dict()
        if result.custom_domain_records:
            payload["customDomainRecords"] = result.custom_domain_records
        return web.json_response(payload, status=201)

    async def _handle_get_site(self, request: web.Request) -> web.Response:
        user = await self._require_user(request)
        owner, site = await self.publishing.get_site(user.id, request.match_info["site_id"])
        sources = await self.publishing.get_sources(owner, site)
        return web.json_response({"site": self.publishing.describe(owner, site), **sources})

    async def _handle_update_site(self, request: web.Request) -> web.Response:
        user = await self._require_user(request)
        body = await _read_json(request)
        owner, site = await self.publishing.update_site(
            user.id,
            request.match_info["site_id"],
            name=_str_field(body, "siteName", _str_field(body, "name")),
            html=_str_field(body, "html"),
            css=_str_field(body, "css"),
            js=_str_field(body, "js"),
            published=_bool_field(body, "published"),
            custom_domain=_str_field(body, "customDomain"),
        )
        return web.json_response(
            {"message": "Site updated successfully", "site": self.publishing.describe(owner, site)}
        )

    async def _handle_delete_site(self, request: web.Request) -> web.Response:
        user = await self._require_user(request)
        site = await self.publishing.delete_site(user.id, request.match_info["site_id"])
        return web.json_response({"message": "Site deleted successfully", "id": site.id})

    async def _handle_verify_custom_domain(self, request: web.Request) -> web.Response:
        user = await self._require_user(request)
        result, site = await self.publishing.verify_custom_domain(
            user.id, request.match_info["site_id"]
        )
        owner = await self.repository.get(user.id)
        return web.json_response(
            {
                "verification": result.to_dict(),
                "site": self.publishing.describe(owner or user, site),
            }
        )


def create_app(settings: ServerSettings, **kwargs: Any) -> web.Application:
    """Build an application for ``settings``; keyword arguments go to SitehostServer."""
    return SitehostServer(settings, **kwargs).create_app()
