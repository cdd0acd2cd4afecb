"""Name generation and format rules for subdomains, slugs and usernames.

Generated names combine a prefix derived from the seed with a random
adjective, noun and number:

    alice + .app   -> alice-happyfox4821.app
    "My Portfolio" -> myportfolio-calmriver17

Collisions are retried with a numeric suffix placed before the extension
(alice-happyfox4821-1.app, alice-happyfox4821-2.app, ...) up to a fixed
number of attempts, after which GenerationExhausted is raised.
"""

from __future__ import annotations

import random
import re
from collections.abc import Callable
from enum import Enum

from sitehost.errors import GenerationExhausted, InvalidFormat

RESERVED_WORDS = frozenset(
    {
        "www",
        "api",
        "admin",
        "dashboard",
        "mail",
        "ftp",
        "cdn",
        "static",
        "assets",
        "hosted",
        "users",
    }
)

ADJECTIVES = (
    "amber", "bold", "brave", "bright", "calm", "clever", "cosmic", "crisp",
    "eager", "fancy", "gentle", "golden", "happy", "jolly", "keen", "lively",
    "lucky", "mellow", "misty", "noble", "quick", "quiet", "rapid", "shiny",
    "silent", "sunny", "swift", "tidy", "vivid", "witty",
)

NOUNS = (
    "badger", "brook", "canyon", "cedar", "comet", "dawn", "falcon", "fern",
    "fox", "glade", "harbor", "hawk", "island", "lake", "maple", "meadow",
    "moon", "otter", "panda", "pine", "raven", "reef", "river", "sparrow",
    "star", "stone", "tiger", "valley", "willow", "wolf",
)

USERNAME_RE = re.compile(r"^[a-zA-Z0-9_-]{3,30}$")
# 3-63 chars, lowercase alphanumerics and hyphens, no hyphen at either end
LABEL_RE = re.compile(r"^[a-z0-9][a-z0-9-]{1,61}[a-z0-9]$")
DOMAIN_RE = re.compile(r"^(?=.{4,253}$)([a-z0-9]([a-z0-9-]{0,61}[a-z0-9])?\.)+[a-z]{2,63}$")


class NameScope(Enum):
    """Uniqueness scope a generated name must satisfy."""

    SUBDOMAIN = "subdomain"
    SLUG = "slug"


def is_valid_label(label: str) -> bool:
    """Check a hostname label against the format rules and reserved words."""
    return bool(LABEL_RE.match(label)) and label not in RESERVED_WORDS


def validate_username(username: str) -> str:
    """Validate a username, returning it stripped.

    Raises:
        InvalidFormat: If the username is not 3-30 letters, digits, '_' or '-'.
    """
    username = username.strip()
    if not USERNAME_RE.match(username):
        raise InvalidFormat(
            "Username must be 3-30 characters, letters, numbers, hyphens, underscores only"
        )
    if username.lower() in RESERVED_WORDS:
        raise InvalidFormat(f"Username '{username}' is reserved")
    return username


def validate_label(label: str, kind: str = "Subdomain") -> str:
    """Validate a single hostname label, returning it lower-cased.

    Raises:
        InvalidFormat: If the label breaks the format rules or is reserved.
    """
    label = label.strip().lower()
    if not LABEL_RE.match(label):
        raise InvalidFormat(
            f"{kind} must be 3-63 characters, lowercase letters, numbers and hyphens, "
            "and cannot start or end with a hyphen"
        )
    if label in RESERVED_WORDS:
        raise InvalidFormat(f"{kind} '{label}' is reserved")
    return label


def validate_slug(slug: str) -> str:
    return validate_label(slug, kind="Site URL")


def validate_subdomain(subdomain: str, extension: str) -> str:
    """Validate a full subdomain with its extension, returning it lower-cased."""
    subdomain = subdomain.strip().lower()
    if not subdomain.endswith(extension):
        raise InvalidFormat(f"Subdomain must end with {extension}")
    validate_label(subdomain[: -len(extension)])
    return subdomain


def validate_domain_name(domain: str) -> str:
    """Validate a fully-qualified custom domain, returning it lower-cased."""
    domain = domain.strip().lower().rstrip(".")
    if not DOMAIN_RE.match(domain):
        raise InvalidFormat(f"Invalid domain name: {domain}")
    return domain


class NameGenerator:
    """Produces readable, collision-free names.

    The random source is injectable so tests can force collisions.
    """

    PREFIX_MAX_LENGTH = 20
    NUMBER_MIN = 1
    NUMBER_MAX = 9999

    def __init__(self, max_attempts: int = 1000, rng: random.Random | None = None) -> None:
        """Initialize the generator.

        Args:
            max_attempts: Candidates tried before giving up.
            rng: Random source; defaults to the system CSPRNG.
        """
        self.max_attempts = max_attempts
        self.rng = rng or random.SystemRandom()

    def make_prefix(self, seed: str, scope: NameScope) -> str:
        """Lower-case the seed, keep alphanumerics, cap the length."""
        prefix = re.sub(r"[^a-z0-9]", "", seed.lower())[: self.PREFIX_MAX_LENGTH]
        if prefix:
            return prefix
        return "user" if scope is NameScope.SUBDOMAIN else "site"

    def generate(self, seed: str, scope: NameScope, extension: str | None = None) -> str:
        """Build one random candidate for ``seed``.

        Args:
            seed: Username or site name the name is derived from.
            scope: Uniqueness scope the name is meant for.
            extension: Suffix appended to subdomains (e.g. ".app").

        Returns:
            Candidate such as ``alice-happyfox4821.app``.
        """
        adjective = self.rng.choice(ADJECTIVES)
        noun = self.rng.choice(NOUNS)
        number = self.rng.randint(self.NUMBER_MIN, self.NUMBER_MAX)
        label = f"{self.make_prefix(seed, scope)}-{adjective}{noun}{number}"
        return label + (extension or "")

    def generate_unique(
        self,
        seed: str,
        scope: NameScope,
        is_available: Callable[[str], bool],
        extension: str | None = None,
    ) -> str:
        """Generate a name that ``is_available`` accepts.

        Args:
            seed: Username or site name the name is derived from.
            scope: Uniqueness scope the name is meant for.
            is_available: Predicate over full candidates (extension included).
            extension: Suffix appended to subdomains.

        Returns:
            The first available candidate.

        Raises:
            GenerationExhausted: If max_attempts candidates were all taken.
        """
        extension = extension or ""
        base = self.generate(seed, scope)

        for attempt in range(self.max_attempts):
            label = base if attempt == 0 else f"{base}-{attempt}"
            if not is_valid_label(label):
                continue
            candidate = label + extension
            if is_available(candidate):
                return candidate

        raise GenerationExhausted(seed, self.max_attempts)
