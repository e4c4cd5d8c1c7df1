"""Backing-service connectors."""

from ironarchive.connectors.base import ConnectorState, HealthResult, ServiceConnector
from ironarchive.connectors.meilisearch import MeilisearchConnector
from ironarchive.connectors.postgres import PoolSettings, PostgresConnector
from ironarchive.connectors.redis import RedisConnector

__all__ = [
    "ConnectorState",
    "HealthResult",
    "MeilisearchConnector",
    "PoolSettings",
    "PostgresConnector",
    "RedisConnector",
    "ServiceConnector",
]
