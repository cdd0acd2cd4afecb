"""Error types raised by the sitehost core.

Every error carries an HTTP status so the aiohttp layer can turn it into a
JSON response without knowing which subsystem raised it.
"""

from __future__ import annotations


class SitehostError(Exception):
    """Base class for all sitehost errors."""

    status: int = 500

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class InvalidFormat(SitehostError, ValueError):
    """A username, email, subdomain, slug or domain failed its format rules."""

    status = 400


class Collision(SitehostError):
    """A requested or generated name is already taken."""

    status = 409


class NotFound(SitehostError):
    """No user or site matches the lookup."""

    status = 404


class GenerationExhausted(SitehostError):
    """The name generator hit its retry cap without finding a free name."""

    status = 503

    def __init__(self, seed: str, attempts: int) -> None:
        super().__init__(
            f"Could not generate a unique name for '{seed}' after {attempts} attempts, "
            "please try again"
        )
        self.seed = seed
        self.attempts = attempts


class AuthenticationError(SitehostError):
    """Credentials or bearer token were rejected."""

    status = 401


class StorageError(SitehostError):
    """The registry could not be read from or written to its backend."""

    status = 500


class PayloadTooLarge(SitehostError):
    """An upload exceeded the configured size limit."""

    status = 413
