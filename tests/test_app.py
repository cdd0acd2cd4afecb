"""End-to-end tests for the aiohttp application."""

from __future__ import annotations

import re

import pytest
from aiohttp.test_utils import TestClient, TestServer

from sitehost.core.config import ServerSettings
from sitehost.server.app import SitehostServer
from sitehost.storage.backends import MemoryBackend
from sitehost.storage.repository import UserRepository

HTML = "<html><head><title>Portfolio</title></head><body><h1>Hello</h1></body></html>"


def make_server(tmp_path, **overrides) -> SitehostServer:
    options = {
        "data_dir": str(tmp_path),
        "bcrypt_rounds": 4,
        "jwt_secret": "test-secret",
        "rate_limit_enabled": False,
    }
    options.update(overrides)
    settings = ServerSettings(_env_file=None, **options)
    return SitehostServer(settings, repository=UserRepository(MemoryBackend()))


async def register(client: TestClient, username: str = "alice", extension: str = ".app") -> dict:
    response = await client.post(
        "/api/register",
        json={
            "username": username,
            "email": f"{username}@example.com",
            "password": "secret1",
            "domainExtension": extension,
        },
    )
    assert response.status == 201
    return await response.json()


def auth(token: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {token}"}


class TestManagementAPI:
    """Tests for the JSON management API."""

    @pytest.mark.asyncio
    async def test_health_and_index(self, tmp_path):
        app = make_server(tmp_path).create_app()
        async with TestClient(TestServer(app)) as client:
            response = await client.get("/health")
            assert response.status == 200
            assert (await response.json())["status"] == "OK"
            assert response.headers["X-Content-Type-Options"] == "nosniff"

            index = await (await client.get("/")).json()
            assert index["service"] == "sitehost"
            assert index["primary"] == "ntando.app"

    @pytest.mark.asyncio
    async def test_extensions(self, tmp_path):
        app = make_server(tmp_path).create_app()
        async with TestClient(TestServer(app)) as client:
            data = await (await client.get("/api/domains/extensions")).json()
            assert data["aliases"] == ["ntando.app", "ntando.cloud", "ntando.site"]
            assert ".dev" in data["extensions"]
            assert data["customSubdomains"][".pro"]["premium"] is True

    @pytest.mark.asyncio
    async def test_register_and_login(self, tmp_path):
        app = make_server(tmp_path).create_app()
        async with TestClient(TestServer(app)) as client:
            data = await register(client)
            user = data["user"]

            assert re.fullmatch(r"alice-[a-z]+\d{1,4}\.app", user["subdomain"])
            assert "password" not in user
            assert data["hostnames"][0] == user["subdomain"].removesuffix(".app") + ".ntando.app"

            response = await client.post("/api/login", json={"username": "alice", "password": "secret1"})
            assert response.status == 200
            assert (await response.json())["user"]["id"] == user["id"]

            response = await client.post("/api/login", json={"username": "alice", "password": "nope123"})
            assert response.status == 401
            assert (await response.json())["error"] == "Invalid username or password"

    @pytest.mark.asyncio
    async def test_register_errors(self, tmp_path):
        app = make_server(tmp_path).create_app()
        async with TestClient(TestServer(app)) as client:
            await register(client)

            duplicate = await client.post(
                "/api/register",
                json={"username": "alice", "email": "x@example.com", "password": "secret1"},
            )
            assert duplicate.status == 409

            bad = await client.post(
                "/api/register",
                json={"username": "a", "email": "x@example.com", "password": "secret1"},
            )
            assert bad.status == 400
            assert "Username" in (await bad.json())["error"]

            garbage = await client.post(
                "/api/register", data="not json", headers={"Content-Type": "application/json"}
            )
            assert garbage.status == 400

    @pytest.mark.asyncio
    async def test_token_required(self, tmp_path):
        app = make_server(tmp_path).create_app()
        async with TestClient(TestServer(app)) as client:
            response = await client.get("/api/user/sites")
            assert response.status == 401
            assert (await response.json())["error"] == "Access token required"

            response = await client.get("/api/user/sites", headers=auth("bogus"))
            assert response.status == 401

    @pytest.mark.asyncio
    async def test_availability(self, tmp_path):
        app = make_server(tmp_path).create_app()
        async with TestClient(TestServer(app)) as client:
            token = (await register(client))["token"]
            await client.post(
                "/api/upload",
                json={"siteName": "Portfolio", "siteSlug": "portfolio", "html": HTML},
                headers=auth(token),
            )

            taken = await (await client.get("/api/availability?name=portfolio&scope=slug")).json()
            assert taken == {"name": "portfolio", "scope": "slug", "available": False}

            free = await (await client.get("/api/availability?name=blog&scope=slug")).json()
            assert free["available"] is True

            response = await client.get("/api/availability?name=x&scope=slug")
            assert response.status == 400

    @pytest.mark.asyncio
    async def test_non_string_fields_rejected(self, tmp_path):
        app = make_server(tmp_path).create_app()
        async with TestClient(TestServer(app)) as client:
            token = (await register(client))["token"]

            for body in (
                {"siteName": "P", "siteSlug": 123, "html": HTML},
                {"siteName": "P", "html": ["x"]},
                {"siteName": 5, "html": HTML},
            ):
                response = await client.post("/api/upload", json=body, headers=auth(token))
                assert response.status == 400
                assert "must be a string" in (await response.json())["error"]

            created = await (
                await client.post(
                    "/api/upload", json={"siteName": "Portfolio", "html": HTML}, headers=auth(token)
                )
            ).json()
            response = await client.put(
                f"/api/sites/{created['site']['id']}",
                json={"customDomain": {"host": "x.dev"}},
                headers=auth(token),
            )
            assert response.status == 400

            response = await client.post("/api/login", json={"username": 1, "password": "secret1"})
            assert response.status == 400

    @pytest.mark.asyncio
    async def test_upload_too_large(self, tmp_path):
        app = make_server(tmp_path, max_upload_bytes=200).create_app()
        async with TestClient(TestServer(app)) as client:
            token = (await register(client))["token"]
            response = await client.post(
                "/api/upload",
                json={"siteName": "Big", "html": "<p>" + "x" * 300 + "</p>"},
                headers=auth(token),
            )
            assert response.status == 413

    @pytest.mark.asyncio
    async def test_site_crud(self, tmp_path):
        app = make_server(tmp_path).create_app()
        async with TestClient(TestServer(app)) as client:
            token = (await register(client))["token"]

            response = await client.post(
                "/api/upload",
                json={"siteName": "Portfolio", "siteSlug": "portfolio", "html": HTML, "css": "h1{}"},
                headers=auth(token),
            )
            assert response.status == 201
            created = await response.json()
            site_id = created["site"]["id"]
            assert created["url"] == "https://portfolio.ntando.app/"
            assert "customDomainToken" not in created["site"]

            fetched = await (await client.get(f"/api/sites/{site_id}", headers=auth(token))).json()
            assert fetched["html"] == HTML
            assert fetched["css"] == "h1{}"

            response = await client.put(
                f"/api/sites/{site_id}",
                json={"siteName": "Renamed", "published": False},
                headers=auth(token),
            )
            assert (await response.json())["site"]["name"] == "Renamed"

            response = await client.get("/", headers={"Host": "portfolio.ntando.app"})
            assert response.status == 404

            response = await client.delete(f"/api/sites/{site_id}", headers=auth(token))
            assert (await response.json())["id"] == site_id

            listing = await (await client.get("/api/user/sites", headers=auth(token))).json()
            assert listing["sites"] == []

            response = await client.get(f"/api/sites/{site_id}", headers=auth(token))
            assert response.status == 404

    @pytest.mark.asyncio
    async def test_other_users_sites_are_hidden(self, tmp_path):
        app = make_server(tmp_path).create_app()
        async with TestClient(TestServer(app)) as client:
            alice = (await register(client, "alice"))["token"]
            bob = (await register(client, "bob"))["token"]
            created = await (
                await client.post(
                    "/api/upload",
                    json={"siteName": "Portfolio", "html": HTML},
                    headers=auth(alice),
                )
            ).json()

            response = await client.delete(f"/api/sites/{created['site']['id']}", headers=auth(bob))
            assert response.status == 404

    @pytest.mark.asyncio
    async def test_rate_limited(self, tmp_path):
        app = make_server(tmp_path, rate_limit_enabled=True, auth_rate_limit=2).create_app()
        async with TestClient(TestServer(app)) as client:
            body = {"username": "alice", "password": "secret1"}
            first = await client.post("/api/login", json=body)
            assert first.status == 401

            await client.post("/api/login", json=body)
            response = await client.post("/api/login", json=body)

            assert response.status == 429
            assert "Retry-After" in response.headers
            assert "authentication" in (await response.json())["error"]

            # Other API routes only count against the general limit.
            response = await client.get("/api/domains/extensions")
            assert response.status == 200
            assert response.headers["RateLimit-Limit"] == "100"
            assert response.headers["RateLimit-Remaining"] == "96"


class TestSiteServing:
    """Tests for host-based serving of published sites."""

    @pytest.mark.asyncio
    async def test_serves_site_on_every_alias(self, tmp_path):
        app = make_server(tmp_path).create_app()
        async with TestClient(TestServer(app)) as client:
            token = (await register(client))["token"]
            await client.post(
                "/api/upload",
                json={"siteName": "Portfolio", "siteSlug": "portfolio", "html": HTML, "css": "h1{}"},
                headers=auth(token),
            )

            for host in ("portfolio.ntando.app", "portfolio.ntando.cloud", "PORTFOLIO.ntando.site"):
                response = await client.get("/", headers={"Host": host})
                assert response.status == 200
                text = await response.text()
                assert "<h1>Hello</h1>" in text
                assert "<style>\nh1{}\n</style>" in text
                assert response.headers["X-Sitehost-Subdomain"] == "portfolio"
                assert response.headers["X-Sitehost-Canonical-Domain"] == "ntando.app"
                assert response.headers["X-Sitehost-Aliases"] == (
                    "portfolio.ntando.app, portfolio.ntando.cloud, portfolio.ntando.site"
                )

            stylesheet = await client.get("/style.css", headers={"Host": "portfolio.ntando.app"})
            assert await stylesheet.text() == "h1{}"

            listing = await (await client.get("/api/user/sites", headers=auth(token))).json()
            assert listing["sites"][0]["visits"] == 3

    @pytest.mark.asyncio
    async def test_visits_increase(self, tmp_path):
        app = make_server(tmp_path).create_app()
        async with TestClient(TestServer(app)) as client:
            token = (await register(client))["token"]
            await client.post(
                "/api/upload",
                json={"siteName": "Portfolio", "siteSlug": "portfolio", "html": HTML},
                headers=auth(token),
            )

            async def visits() -> int:
                listing = await (await client.get("/api/user/sites", headers=auth(token))).json()
                return listing["sites"][0]["visits"]

            assert await visits() == 0
            await client.get("/", headers={"Host": "portfolio.ntando.app"})
            assert await visits() == 1
            await client.get("/index.html", headers={"Host": "portfolio.ntando.cloud"})
            assert await visits() == 2

    @pytest.mark.asyncio
    async def test_owner_subdomain_and_legacy_path(self, tmp_path):
        app = make_server(tmp_path).create_app()
        async with TestClient(TestServer(app)) as client:
            data = await register(client)
            label = data["user"]["subdomain"].removesuffix(".app")
            await client.post(
                "/api/upload",
                json={"siteName": "Portfolio", "siteSlug": "portfolio", "html": HTML},
                headers=auth(data["token"]),
            )

            response = await client.get("/portfolio/", headers={"Host": f"{label}.ntando.cloud"})
            assert response.status == 200
            assert "<h1>Hello</h1>" in await response.text()

            response = await client.get("/portfolio/")
            assert response.status == 200

            response = await client.get("/portfolio", allow_redirects=False)
            assert response.status == 302
            assert response.headers["Location"] == "/portfolio/"

    @pytest.mark.asyncio
    async def test_unknown_subdomain(self, tmp_path):
        app = make_server(tmp_path).create_app()
        async with TestClient(TestServer(app)) as client:
            response = await client.get("/", headers={"Host": "missing.ntando.cloud"})
            assert response.status == 404
            assert await response.json() == {
                "error": "Site not found",
                "subdomain": "missing",
                "hostnames": ["missing.ntando.app", "missing.ntando.cloud", "missing.ntando.site"],
            }

    @pytest.mark.asyncio
    async def test_www_redirects(self, tmp_path):
        app = make_server(tmp_path).create_app()
        async with TestClient(TestServer(app)) as client:
            response = await client.get("/", headers={"Host": "www.ntando.site"}, allow_redirects=False)
            assert response.status == 302
            assert response.headers["Location"] == "https://ntando.app/"

    @pytest.mark.asyncio
    async def test_api_reachable_on_tenant_host(self, tmp_path):
        app = make_server(tmp_path).create_app()
        async with TestClient(TestServer(app)) as client:
            response = await client.get("/health", headers={"Host": "portfolio.ntando.app"})
            assert response.status == 200

    @pytest.mark.asyncio
    async def test_head_does_not_count_visits(self, tmp_path):
        app = make_server(tmp_path).create_app()
        async with TestClient(TestServer(app)) as client:
            token = (await register(client))["token"]
            await client.post(
                "/api/upload",
                json={"siteName": "Portfolio", "siteSlug": "portfolio", "html": HTML},
                headers=auth(token),
            )

            response = await client.head("/", headers={"Host": "portfolio.ntando.app"})
            assert response.status == 200

            listing = await (await client.get("/api/user/sites", headers=auth(token))).json()
            assert listing["sites"][0]["visits"] == 0

    @pytest.mark.asyncio
    async def test_per_user_slug_cannot_take_over_label(self, tmp_path):
        app = make_server(tmp_path, unique_slugs_globally=False).create_app()
        async with TestClient(TestServer(app)) as client:
            bob = await register(client, "bob")
            label = bob["user"]["subdomain"].removesuffix(".app")
            await client.post(
                "/api/upload",
                json={"siteName": "Home", "siteSlug": "home", "html": "<h1>BOB</h1>"},
                headers=auth(bob["token"]),
            )
            mallory = (await register(client, "mallory"))["token"]

            response = await client.post(
                "/api/upload",
                json={"siteName": "Takeover", "siteSlug": label, "html": "<h1>MALLORY</h1>"},
                headers=auth(mallory),
            )
            assert response.status == 409

            response = await client.get("/", headers={"Host": f"{label}.ntando.app"})
            assert response.status == 200
            text = await response.text()
            assert "BOB" in text
            assert "MALLORY" not in text
