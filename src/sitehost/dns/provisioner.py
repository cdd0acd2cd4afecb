"""Creates and removes DNS records for sites published with enableDNS.

The provisioner interface is kept small so a real DNS provider can be
plugged in. LocalDNSProvisioner keeps records in memory, which is enough
for single-host deployments behind a wildcard record.
"""

from __future__ import annotations

import asyncio
import secrets
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import UTC, datetime

import structlog

logger = structlog.get_logger()


@dataclass
class DNSRecord:
    """One provisioned record."""

    id: str
    name: str
    type: str
    value: str
    ttl: int = 300
    created_at: datetime = field(default_factory=lambda: datetime.now(UTC))

    def to_dict(self) -> dict[str, object]:
        return {
            "id": self.id,
            "name": self.name,
            "type": self.type,
            "value": self.value,
            "ttl": self.ttl,
            "createdAt": self.created_at.isoformat(),
        }


class DNSProvisioner(ABC):
    """Abstract DNS provider."""

    @abstractmethod
    async def create_record(self, name: str, value: str, record_type: str = "CNAME") -> DNSRecord:
        """Create a record and return it with its provider id."""

    @abstractmethod
    async def delete_record(self, record_id: str) -> bool:
        """Delete a record. Returns False if it did not exist."""

    @abstractmethod
    async def get_record(self, record_id: str) -> DNSRecord | None:
        """Look up a record by id."""


class LocalDNSProvisioner(DNSProvisioner):
    """In-memory provisioner that hands out ``dns-<hex>`` ids."""

    def __init__(self, ttl: int = 300) -> None:
        self.ttl = ttl
        self._records: dict[str, DNSRecord] = {}
        self._lock = asyncio.Lock()

    async def create_record(self, name: str, value: str, record_type: str = "CNAME") -> DNSRecord:
        async with self._lock:
            record = DNSRecord(
                id=f"dns-{secrets.token_hex(6)}",
                name=name.lower(),
                type=record_type,
                value=value.lower(),
                ttl=self.ttl,
            )
            self._records[record.id] = record
        logger.info("DNS record created", record_id=record.id, name=record.name, value=record.value)
        return record

    async def delete_record(self, record_id: str) -> bool:
        async with self._lock:
            record = self._records.pop(record_id, None)
        if record is None:
            return False
        logger.info("DNS record deleted", record_id=record_id, name=record.name)
        return True

    async def get_record(self, record_id: str) -> DNSRecord | None:
        async with self._lock:
            return self._records.get(record_id)

    async def list_records(self) -> list[DNSRecord]:
        async with self._lock:
            return list(self._records.values())
