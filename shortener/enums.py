"""Shared enums for the URL shortener service.

This module defines all status and state enums used across the codebase.
Using enums instead of string literals provides type safety and prevents typos.
"""

from enum import StrEnum

__all__ = ["AppEnv", "HealthStatus", "LifecycleState", "RequestStatus"]


class AppEnv(StrEnum):
    """Deployment environments, each with its own logging setup."""

    LOCAL = "local"
    DEV = "dev"
    PROD = "prod"

    @classmethod
    def from_str(cls, value: str) -> "AppEnv":
        """Safely parse from string, falling back to PROD for unknown values."""
        try:
            return cls(value)
        except ValueError:
            return cls.PROD


class HealthStatus(StrEnum):
    """Health check status values."""

    HEALTHY = "healthy"
    UNHEALTHY = "unhealthy"


class LifecycleState(StrEnum):
    """Process lifecycle states, in the only order they may occur."""

    STARTING = "starting"
    SERVING = "serving"
    DRAINING = "draining"
    STOPPED = "stopped"


class RequestStatus(StrEnum):
    """Request status values for metrics and logging."""

    SUCCESS = "success"
    VALIDATION_ERROR = "validation_error"
    CONFLICT = "conflict"
    NOT_FOUND = "not_found"
    ERROR = "error"
