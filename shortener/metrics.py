"""Prometheus metrics for URL registration and resolution.

Collectors are bound to the registry handed in by the application factory,
so every app instance (and every test) gets its own set. Without a registry
the collectors are created unregistered and only count in memory.
"""

from typing import Optional

from prometheus_client import CollectorRegistry, Counter

__all__ = ["ServiceMetrics"]


class ServiceMetrics:
    def __init__(self, registry: Optional[CollectorRegistry] = None) -> None:
        self.registrations = Counter(
            "url_shortener_registrations_total",
            "Total URL registration requests",
            ["status"],
            registry=registry,
        )
        self.resolutions = Counter(
            "url_shortener_resolutions_total",
            "Total alias resolution requests",
            ["status"],
            registry=registry,
        )
        self.allocation_attempts = Counter(
            "url_shortener_alias_allocation_attempts_total",
            "Generated alias candidates tried against storage",
            registry=registry,
        )
        self.collisions = Counter(
            "url_shortener_alias_collisions_total",
            "Generated alias candidates that were already taken",
            registry=registry,
        )
