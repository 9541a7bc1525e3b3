"""Shared enums for the share-link service.

This module defines all status and classification enums used across the codebase.
Using enums instead of string literals provides type safety and prevents typos.
"""

from enum import StrEnum

__all__ = [
    "HealthStatus",
    "RequestStatus",
    "CacheStatus",
    "RedirectStatus",
    "Platform",
    "CounterDimension",
    "Role",
]


class HealthStatus(StrEnum):
    """Health check status values."""

    HEALTHY = "healthy"
    UNHEALTHY = "unhealthy"

    @classmethod
    def from_str(cls, value: str) -> "HealthStatus":
        """Safely parse from string, falling back to UNHEALTHY for unknown values."""
        try:
            return cls(value)
        except ValueError:
            return cls.UNHEALTHY


class RequestStatus(StrEnum):
    """Request status values for metrics and logging."""

    SUCCESS = "success"
    VALIDATION_ERROR = "validation_error"
    ERROR = "error"
    NOT_FOUND = "not_found"

    @classmethod
    def from_str(cls, value: str) -> "RequestStatus":
        """Safely parse from string, falling back to ERROR for unknown values."""
        try:
            return cls(value)
        except ValueError:
            return cls.ERROR


class CacheStatus(StrEnum):
    """Cache status values for metrics."""

    HIT = "true"
    MISS = "false"


class RedirectStatus(StrEnum):
    """Outcome of resolving a short identifier."""

    REDIRECT = "redirect"
    NOT_FOUND = "not_found"
    EXPIRED = "expired"


class Platform(StrEnum):
    """Coarse device class derived from the User-Agent header."""

    MOBILE = "mobile"
    DESKTOP = "desktop"
    UNKNOWN = "unknown"

    @classmethod
    def from_user_agent(cls, user_agent: str | None) -> "Platform":
        if not user_agent:
            return cls.UNKNOWN
        if "mobile" in user_agent.lower():
            return cls.MOBILE
        return cls.DESKTOP


class CounterDimension(StrEnum):
    """Keyed analytics maps stored per link."""

    REFERRER = "referrer"
    PLATFORM = "platform"


class Role(StrEnum):
    USER = "user"
    ADMIN = "admin"
