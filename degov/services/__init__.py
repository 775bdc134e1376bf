"""
Clients for the registry, agent registry and indexer, plus notification payload helpers.
"""

from .indexer_client import DegovIndexer, IndexerError
from .registry_fetcher import (
    AgentRegistryError,
    DaoConfigError,
    FetchError,
    RegistryFetcher,
    RegistryFetchError,
)

__all__ = [
    "DegovIndexer",
    "IndexerError",
    "RegistryFetcher",
    "FetchError",
    "RegistryFetchError",
    "DaoConfigError",
    "AgentRegistryError",
]
