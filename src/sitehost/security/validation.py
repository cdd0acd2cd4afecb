"""Input validation for account and upload payloads."""

from __future__ import annotations

import re

from sitehost.errors import InvalidFormat, PayloadTooLarge

EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
SCRIPT_TAG_RE = re.compile(r"<\s*script", re.IGNORECASE)
CONTROL_CHARS_RE = re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f\x7f]")

SITE_NAME_MAX_LENGTH = 100
EMAIL_MAX_LENGTH = 254


def validate_email(email: str) -> str:
    """Validate an email address, returning it stripped and lower-cased."""
    email = email.strip().lower()
    if len(email) > EMAIL_MAX_LENGTH or not EMAIL_RE.match(email):
        raise InvalidFormat("Invalid email address")
    return email


def validate_site_name(name: str) -> str:
    """Validate a display name for a site.

    Raises:
        InvalidFormat: If the name is empty, too long, or carries markup.
    """
    name = sanitize_text(name)
    if not name or len(name) > SITE_NAME_MAX_LENGTH:
        raise InvalidFormat(f"Site name must be 1-{SITE_NAME_MAX_LENGTH} characters")
    if SCRIPT_TAG_RE.search(name) or "<" in name or ">" in name:
        raise InvalidFormat("Site name cannot contain HTML")
    return name


def sanitize_text(value: str) -> str:
    """Strip surrounding whitespace and control characters."""
    return CONTROL_CHARS_RE.sub("", value).strip()


def bundle_size(html: str, css: str = "", js: str = "") -> int:
    return sum(len(part.encode("utf-8")) for part in (html, css, js))


def validate_bundle(html: str, css: str, js: str, max_bytes: int) -> None:
    """Check an upload's content.

    Raises:
        InvalidFormat: If HTML is missing.
        PayloadTooLarge: If the bundle exceeds ``max_bytes``.
    """
    if not html or not html.strip():
        raise InvalidFormat("HTML content is required")
    size = bundle_size(html, css, js)
    if size > max_bytes:
        raise PayloadTooLarge(f"Upload too large: {size} bytes (limit {max_bytes})")
