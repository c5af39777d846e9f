"""Indexing service, its client and the query model."""

from .client import IndexingClient
from .query import BlockReader, Match, Query, QueryResult
from .records import ProviderRecord
from .service import IndexingService

__all__ = [
    "BlockReader",
    "IndexingClient",
    "IndexingService",
    "Match",
    "ProviderRecord",
    "Query",
    "QueryResult",
]
