"""User registry with serialized read-modify-write cycles.

All mutations go through ``transaction()``, which holds an asyncio lock for
the whole "read registry, decide, write registry" cycle. The working copy a
transaction yields is private; the in-memory cache is only replaced after the
backend write succeeds, so a failed write leaves memory and storage agreeing.

Usage:
    repo = UserRepository(JSONFileBackend("data/users.json"))

    async with repo.transaction() as users:
        users[user.id] = user
"""

from __future__ import annotations

import asyncio
import contextlib
import copy
from collections.abc import AsyncIterator

import structlog

from sitehost.errors import StorageError
from sitehost.storage.backends import StorageBackend
from sitehost.storage.models import User

logger = structlog.get_logger()


class UserRepository:
    """Registry of users and their sites over a pluggable backend."""

    def __init__(self, backend: StorageBackend) -> None:
        self.backend = backend
        self._lock = asyncio.Lock()
        self._cache: dict[str, User] | None = None

    async def _load(self) -> dict[str, User]:
        """Load users from the backend, once."""
        if self._cache is not None:
            return self._cache

        raw = await self.backend.read_all()
        try:
            self._cache = {user_id: User.from_dict(data) for user_id, data in raw.items()}
        except (KeyError, TypeError, ValueError) as e:
            raise StorageError(f"Corrupt registry record: {e}") from e
        return self._cache

    async def _save(self, users: dict[str, User]) -> None:
        """Persist users, then adopt them as the cached state."""
        await self.backend.write_all({user_id: user.to_dict() for user_id, user in users.items()})
        self._cache = users

    @contextlib.asynccontextmanager
    async def transaction(self) -> AsyncIterator[dict[str, User]]:
        """Hold the registry lock and yield a mutable working copy.

        The copy is written back when the block exits normally. If the block
        raises, nothing is written and the cached state is untouched.
        """
        async with self._lock:
            working = copy.deepcopy(await self._load())
            yield working
            try:
                await self._save(working)
            except StorageError:
                logger.error("Registry write failed, changes discarded")
                raise

    async def list_users(self) -> list[User]:
        """Snapshot of all users in registry order."""
        async with self._lock:
            users = await self._load()
            return copy.deepcopy(list(users.values()))

    async def get(self, user_id: str) -> User | None:
        async with self._lock:
            users = await self._load()
            user = users.get(user_id)
            return copy.deepcopy(user) if user else None

    async def find_by_username(self, username: str) -> User | None:
        username = username.strip().lower()
        async with self._lock:
            users = await self._load()
            for user in users.values():
                if user.username.lower() == username:
                    return copy.deepcopy(user)
            return None

    async def record_visit(self, user_id: str, site_id: str) -> int | None:
        """Increment a site's visit counter and persist it.

        Returns:
            The new visit count, or None if the site no longer exists.
        """
        async with self.transaction() as users:
            user = users.get(user_id)
            site = user.get_site(site_id) if user else None
            if site is None:
                return None
            site.visits += 1
            return site.visits

    def invalidate_cache(self) -> None:
        """Invalidate the in-memory cache.

        Call this after external modifications to the storage file.
        """
        self._cache = None
