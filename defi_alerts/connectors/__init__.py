"""Outbound HTTP connectors.

Re-exports the BaseConnector, its retry predicate, and the subgraph
connector plus its cached query wrapper.
"""

from .base import BaseConnector, ConnectorError, is_transient_http_error
from .subgraph import QueryResult, SubgraphConnector, SubgraphQueryService

__all__ = [
    "BaseConnector",
    "ConnectorError",
    "QueryResult",
    "SubgraphConnector",
    "SubgraphQueryService",
    "is_transient_http_error",
]
