"""Shared enums for the URL shortener service.

This module defines all status and marker enums used across the codebase.
Using enums instead of string literals provides type safety and prevents typos.
"""

from enum import StrEnum

__all__ = ["HealthStatus", "RequestStatus", "CacheStatus", "CacheSentinel"]


class HealthStatus(StrEnum):
    """Health check status values."""

    HEALTHY = "healthy"
    UNHEALTHY = "unhealthy"


class RequestStatus(StrEnum):
    """Request status values for metrics and logging."""

    SUCCESS = "success"
    VALIDATION_ERROR = "validation_error"
    ERROR = "error"
    NOT_FOUND = "not_found"


class CacheStatus(StrEnum):
    """Cache status values for metrics."""

    HIT = "hit"
    MISS = "miss"
    NEGATIVE = "negative"
    UNAVAILABLE = "unavailable"


class CacheSentinel(StrEnum):
    """Markers stored under ``url:<code>`` in place of a long URL.

    A sentinel confirms the code is absent (or expired) so repeated lookups
    are answered from the cache instead of hitting the database.
    """

    NOT_FOUND = "NOT_FOUND"
    EXPIRED = "EXPIRED"

    @classmethod
    def is_sentinel(cls, value: str | None) -> bool:
        return value in cls._value2member_map_
