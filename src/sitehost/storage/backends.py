"""Persistence backends for the user registry.

A backend only knows how to read and write the whole registry as plain JSON
data. Locking, caching and record types live in UserRepository.
"""

from __future__ import annotations

import asyncio
import copy
import json
import os
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any

from sitehost.errors import StorageError

RegistryData = dict[str, dict[str, Any]]


class StorageBackend(ABC):
    """Reads and writes the full registry."""

    @abstractmethod
    async def read_all(self) -> RegistryData:
        """Return the stored registry, empty when nothing has been written."""

    @abstractmethod
    async def write_all(self, data: RegistryData) -> None:
        """Replace the stored registry."""


class MemoryBackend(StorageBackend):
    """In-process backend, used by tests and throwaway servers."""

    def __init__(self, initial: RegistryData | None = None) -> None:
        self._data: RegistryData = copy.deepcopy(initial or {})
        self.write_count = 0

    async def read_all(self) -> RegistryData:
        return copy.deepcopy(self._data)

    async def write_all(self, data: RegistryData) -> None:
        self._data = copy.deepcopy(data)
        self.write_count += 1


class JSONFileBackend(StorageBackend):
    """JSON file backend for self-hosted deployments.

    Writes go to a sibling temp file that is then renamed over the target,
    so a crash mid-write never leaves a truncated registry behind.
    """

    def __init__(self, path: str | Path = "users.json") -> None:
        """Initialize the backend.

        Args:
            path: Path to the JSON registry file.
        """
        self.path = Path(path)

    def _read(self) -> RegistryData:
        if not self.path.exists():
            return {}
        content = self.path.read_text(encoding="utf-8")
        if not content.strip():
            return {}
        data = json.loads(content)
        if not isinstance(data, dict):
            raise ValueError("registry root must be an object")
        return data

    def _write(self, data: RegistryData) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self.path.with_name(f".{self.path.name}.tmp")
        tmp_path.write_text(json.dumps(data, indent=2), encoding="utf-8")
        os.replace(tmp_path, self.path)

    async def read_all(self) -> RegistryData:
        try:
            return await asyncio.to_thread(self._read)
        except (OSError, ValueError) as e:
            raise StorageError(f"Failed to read registry {self.path}: {e}") from e

    async def write_all(self, data: RegistryData) -> None:
        try:
            await asyncio.to_thread(self._write, data)
        except OSError as e:
            raise StorageError(f"Failed to write registry {self.path}: {e}") from e
