"""DNS verification for custom domain ownership.

A custom domain is accepted once two records are in place:
1. CNAME record: routes the domain to the primary hosting domain
2. TXT record: proves ownership with the token issued at publish time

Example DNS setup required by user:
    # CNAME record (routes traffic)
    www.alice.dev  CNAME  ntando.app

    # TXT record (proves ownership)
    _sitehost.www.alice.dev  TXT  "sitehost-verify=abc123xyz"
"""

from __future__ import annotations

import asyncio
import secrets
from dataclasses import dataclass
from enum import Enum

import aiodns
import structlog

logger = structlog.get_logger()

TXT_PREFIX = "_sitehost"
TOKEN_PREFIX = "sitehost-verify="


class VerificationStatus(Enum):
    """Status of domain verification."""

    PENDING = "pending"
    CNAME_VERIFIED = "cname_verified"
    FULLY_VERIFIED = "fully_verified"
    FAILED = "failed"


@dataclass
class VerificationResult:
    """Result of a domain verification attempt."""

    domain: str
    status: VerificationStatus
    cname_valid: bool
    cname_target: str | None
    txt_valid: bool
    txt_value: str | None
    error: str | None = None

    @property
    def is_verified(self) -> bool:
        """Check if domain is fully verified."""
        return self.status == VerificationStatus.FULLY_VERIFIED

    def to_dict(self) -> dict[str, object]:
        return {
            "domain": self.domain,
            "status": self.status.value,
            "verified": self.is_verified,
            "cnameValid": self.cname_valid,
            "cnameTarget": self.cname_target,
            "txtValid": self.txt_valid,
            "error": self.error,
        }


def generate_verification_token() -> str:
    """Return a fresh, unguessable TXT record value."""
    return f"{TOKEN_PREFIX}{secrets.token_hex(12)}"


def dns_instructions(domain: str, target: str, token: str) -> dict[str, dict[str, str]]:
    """Records the site owner has to create at their DNS provider."""
    return {
        "cname": {"name": domain, "type": "CNAME", "value": target},
        "txt": {"name": f"{TXT_PREFIX}.{domain}", "type": "TXT", "value": token},
    }


class DNSVerifier:
    """Verifies domain ownership via DNS records."""

    def __init__(self, target_domain: str, resolver: aiodns.DNSResolver | None = None) -> None:
        """Initialize DNS verifier.

        Args:
            target_domain: The domain the CNAME should point to.
            resolver: Resolver to query; created lazily when omitted.
        """
        self.target_domain = target_domain
        self._resolver = resolver

    def _get_resolver(self) -> aiodns.DNSResolver:
        if self._resolver is None:
            self._resolver = aiodns.DNSResolver()
        return self._resolver

    async def verify_cname(self, domain: str) -> tuple[bool, str | None]:
        """Verify the CNAME record points at the target domain.

        Returns:
            Tuple of (is_valid, actual_target).
        """
        resolver = self._get_resolver()
        try:
            result = await resolver.query(domain, "CNAME")
        except aiodns.error.DNSError as e:
            logger.debug("CNAME lookup failed", domain=domain, error=str(e))
            return False, None

        if not result:
            return False, None
        target = result.cname.rstrip(".").lower()
        is_valid = target == self.target_domain or target.endswith(f".{self.target_domain}")
        return is_valid, target

    async def verify_txt_record(self, domain: str, expected_token: str) -> tuple[bool, str | None]:
        """Verify the TXT record at _sitehost.<domain> holds the token.

        Returns:
            Tuple of (is_valid, first_value_seen).
        """
        resolver = self._get_resolver()
        txt_domain = f"{TXT_PREFIX}.{domain}"

        try:
            result = await resolver.query(txt_domain, "TXT")
        except aiodns.error.DNSError as e:
            logger.debug("TXT lookup failed", domain=txt_domain, error=str(e))
            return False, None

        values = []
        for record in result or []:
            text = record.text.decode() if isinstance(record.text, bytes) else record.text
            values.append(text.strip('"').strip("'"))
        if expected_token in values:
            return True, expected_token
        return False, values[0] if values else None

    async def verify_domain(self, domain: str, expected_token: str) -> VerificationResult:
        """Perform full domain verification (CNAME + TXT)."""
        (cname_valid, cname_target), (txt_valid, txt_value) = await asyncio.gather(
            self.verify_cname(domain),
            self.verify_txt_record(domain, expected_token),
        )

        if cname_valid and txt_valid:
            status = VerificationStatus.FULLY_VERIFIED
            error = None
        elif cname_valid:
            status = VerificationStatus.CNAME_VERIFIED
            error = f"TXT record not found or invalid at {TXT_PREFIX}.{domain}"
        else:
            status = VerificationStatus.FAILED
            error = f"CNAME record not found. Expected {domain} -> {self.target_domain}"

        return VerificationResult(
            domain=domain,
            status=status,
            cname_valid=cname_valid,
            cname_target=cname_target,
            txt_valid=txt_valid,
            txt_value=txt_value,
            error=error,
        )
