"""Security module for sitehost.

This module provides:
- Password hashing (bcrypt)
- Bearer tokens (HS256 JWT)
- Rate limiting (sliding window)
- Input validation
"""

from sitehost.security.passwords import hash_password, validate_password, verify_password
from sitehost.security.ratelimit import (
    RateLimiter,
    RateLimitResult,
    RateLimitRule,
    SlidingWindowCounter,
    create_rate_limiter,
)
from sitehost.security.tokens import TokenClaims, TokenService

__all__ = [
    "RateLimitResult",
    "RateLimitRule",
    "RateLimiter",
    "SlidingWindowCounter",
    "TokenClaims",
    "TokenService",
    "create_rate_limiter",
    "hash_password",
    "validate_password",
    "verify_password",
]
