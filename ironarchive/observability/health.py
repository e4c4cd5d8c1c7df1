"""Aggregated health check across all connectors."""

from __future__ import annotations

from collections.abc import Iterable

from ironarchive.connectors.base import HealthResult


def aggregate_health(results: Iterable[HealthResult]) -> dict:
    services = {}
    all_healthy = True
    for result in results:
        services[result.service] = {
            "status": "healthy" if result.healthy else "unhealthy",
            "detail": result.detail,
        }
        if not result.healthy:
            all_healthy = False
    return {"status": "healthy" if all_healthy else "degraded", "services": services}
