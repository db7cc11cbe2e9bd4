"""
Write-path integrity checks.

Modules:
    rate_limiter: Per-user sliding window table
    validator: Anti-spoofing validator (drift, rate limit, payload, patterns)

Example:
    >>> from presence_guard.security import AntiSpoofingValidator
    >>> validator = AntiSpoofingValidator(store=store)
    >>> record = await validator.validate_heartbeat(payload)
"""

from presence_guard.security.rate_limiter import SlidingWindowRateLimiter
from presence_guard.security.validator import AntiSpoofingValidator

__all__ = [
    "SlidingWindowRateLimiter",
    "AntiSpoofingValidator",
]
