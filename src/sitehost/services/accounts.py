"""Account registration, login and bearer authentication."""

from __future__ import annotations

import copy
from dataclasses import dataclass
from datetime import UTC, datetime

import structlog

from sitehost.domains.availability import AvailabilityChecker
from sitehost.domains.names import NameGenerator, NameScope, validate_username
from sitehost.domains.registry import DomainRegistry
from sitehost.errors import AuthenticationError, Collision, InvalidFormat
from sitehost.security.passwords import (
    hash_password_async,
    validate_password,
    verify_password_async,
)
from sitehost.security.tokens import TokenService
from sitehost.security.validation import validate_email
from sitehost.storage.models import User
from sitehost.storage.repository import UserRepository

logger = structlog.get_logger()


@dataclass(frozen=True)
class Session:
    """A signed-in user and the token that proves it."""

    user: User
    token: str


class AccountService:
    """Creates accounts and checks credentials."""

    def __init__(
        self,
        repository: UserRepository,
        registry: DomainRegistry,
        tokens: TokenService,
        generator: NameGenerator | None = None,
        unique_slugs_globally: bool = True,
        bcrypt_rounds: int = 12,
    ) -> None:
        self.repository = repository
        self.registry = registry
        self.tokens = tokens
        self.generator = generator or NameGenerator()
        self.unique_slugs_globally = unique_slugs_globally
        self.bcrypt_rounds = bcrypt_rounds

    def _check_extension(self, extension: str) -> str:
        extension = (extension or self.registry.extensions[0]).strip().lower()
        if not extension.startswith("."):
            extension = f".{extension}"
        if not self.registry.is_allowed_extension(extension):
            raise InvalidFormat(
                f"Unknown domain extension {extension}, choose one of "
                + ", ".join(self.registry.extensions)
            )
        return extension

    async def register(
        self,
        username: str,
        email: str,
        password: str,
        domain_extension: str = "",
    ) -> Session:
        """Create an account with a freshly generated subdomain.

        The subdomain is generated and checked while the registry lock is
        held, so two concurrent registrations never receive the same one.

        Args:
            username: Requested username.
            email: Contact address, unique across accounts.
            password: Plain-text password, hashed with bcrypt.
            domain_extension: One of the configured extensions, e.g. ".app".

        Returns:
            Session for the new user.

        Raises:
            InvalidFormat: If any field fails validation.
            Collision: If the username or email is already registered.
            GenerationExhausted: If no free subdomain could be generated.
        """
        username = validate_username(username)
        email = validate_email(email)
        validate_password(password)
        extension = self._check_extension(domain_extension)

        password_hash = await hash_password_async(password, self.bcrypt_rounds)

        async with self.repository.transaction() as users:
            checker = AvailabilityChecker(users, self.unique_slugs_globally)
            if not checker.is_username_available(username):
                raise Collision("Username already taken, choose another")
            if not checker.is_email_available(email):
                raise Collision("Email already registered")

            subdomain = self.generator.generate_unique(
                username,
                NameScope.SUBDOMAIN,
                checker.predicate(NameScope.SUBDOMAIN, extension=extension),
                extension,
            )
            user = User(
                username=username,
                email=email,
                password_hash=password_hash,
                domain_extension=extension,
                subdomain=subdomain,
                is_premium=self.registry.is_premium_extension(extension),
            )
            users[user.id] = copy.deepcopy(user)

        logger.info(
            "User registered",
            user_id=user.id,
            username=username,
            subdomain=subdomain,
            premium=user.is_premium,
        )
        return Session(user=user, token=self.tokens.issue(user))

    async def login(self, username: str, password: str) -> Session:
        """Check credentials and record the login time.

        Raises:
            AuthenticationError: If the username is unknown or the password is wrong.
        """
        user = await self.repository.find_by_username(username or "")
        if user is None or not await verify_password_async(password or "", user.password_hash):
            logger.warning("Login failed", username=username)
            raise AuthenticationError("Invalid username or password")

        async with self.repository.transaction() as users:
            stored = users.get(user.id)
            if stored is None:
                raise AuthenticationError("Invalid username or password")
            stored.last_login = datetime.now(UTC)
            user = copy.deepcopy(stored)

        logger.info("User logged in", user_id=user.id, username=user.username)
        return Session(user=user, token=self.tokens.issue(user))

    async def authenticate(self, token: str) -> User:
        """Resolve a bearer token to its (still existing) user."""
        claims = self.tokens.verify(token)
        user = await self.repository.get(claims.user_id)
        if user is None:
            raise AuthenticationError("Account no longer exists")
        return user

    def hostnames(self, user: User) -> list[str]:
        """Every hostname that reaches the user's own label."""
        return self.registry.alias_hostnames(user.subdomain_label)
