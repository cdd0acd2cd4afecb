"""aiohttp server for the management API and tenant sites."""

from sitehost.server.app import SitehostServer, create_app

__all__ = ["SitehostServer", "create_app"]
