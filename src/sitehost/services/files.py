"""On-disk layout of published site bundles.

Each site lives in its own directory, one per user label and slug:

    <sites_root>/alice-happyfox42/portfolio/index.html
    <sites_root>/alice-happyfox42/portfolio/style.css
    <sites_root>/alice-happyfox42/portfolio/script.js

CSS and JS are also inlined into index.html so the entry document renders on
its own from any route, including legacy /<slug>/ paths.
"""

from __future__ import annotations

import asyncio
import shutil
from pathlib import Path, PurePosixPath

from sitehost.storage.models import Site, User

ENTRY_DOCUMENT = "index.html"


def _inject(html: str, marker: str, snippet: str) -> str:
    """Insert ``snippet`` before the last ``marker`` tag, or append it."""
    index = html.lower().rfind(marker)
    if index == -1:
        return html + snippet
    return html[:index] + snippet + html[index:]


def render_document(html: str, css: str = "", js: str = "") -> str:
    """Build the entry document with CSS in the head and JS at the end of the body."""
    document = html
    if css.strip():
        document = _inject(document, "</head>", f"<style>\n{css}\n</style>\n")
    if js.strip():
        document = _inject(document, "</body>", f"<script>\n{js}\n</script>\n")
    return document


def asset_from_path(path: str) -> str | None:
    """Map a request path inside a site to a relative asset path.

    Returns None for paths that try to leave the site directory.
    """
    parts = [part for part in PurePosixPath("/" + path.lstrip("/")).parts[1:] if part]
    if any(part in ("..", ".") or "\\" in part for part in parts):
        return None
    if not parts or path.endswith("/"):
        parts.append(ENTRY_DOCUMENT)
    return "/".join(parts)


class SiteFiles:
    """Reads and writes site bundles under one root directory."""

    def __init__(self, root: str | Path) -> None:
        self.root = Path(root)

    def site_dir(self, user: User, site: Site) -> Path:
        return self.root / user.subdomain_label / site.slug

    def resolve_asset(self, user: User, site: Site, asset: str) -> Path | None:
        """Absolute path of an asset, or None if it escapes the site directory."""
        base = self.site_dir(user, site).resolve()
        candidate = (base / asset).resolve()
        if not candidate.is_relative_to(base):
            return None
        return candidate

    def _write(self, directory: Path, html: str, css: str, js: str) -> None:
        directory.mkdir(parents=True, exist_ok=True)
        (directory / ENTRY_DOCUMENT).write_text(render_document(html, css, js), encoding="utf-8")
        (directory / "source.html").write_text(html, encoding="utf-8")
        (directory / "style.css").write_text(css, encoding="utf-8")
        (directory / "script.js").write_text(js, encoding="utf-8")

    async def write_bundle(self, user: User, site: Site, html: str, css: str = "", js: str = "") -> Path:
        """Write a site's files, returning the entry document path."""
        directory = self.site_dir(user, site)
        await asyncio.to_thread(self._write, directory, html, css, js)
        return directory / ENTRY_DOCUMENT

    def _read_sources(self, directory: Path) -> dict[str, str]:
        sources = {}
        for key, name in (("html", "source.html"), ("css", "style.css"), ("js", "script.js")):
            path = directory / name
            sources[key] = path.read_text(encoding="utf-8") if path.exists() else ""
        if not sources["html"] and (directory / ENTRY_DOCUMENT).exists():
            sources["html"] = (directory / ENTRY_DOCUMENT).read_text(encoding="utf-8")
        return sources

    async def read_sources(self, user: User, site: Site) -> dict[str, str]:
        """Return the HTML, CSS and JS a site was last published with."""
        return await asyncio.to_thread(self._read_sources, self.site_dir(user, site))

    async def remove(self, user: User, site: Site) -> None:
        directory = self.site_dir(user, site)
        await asyncio.to_thread(shutil.rmtree, directory, True)
