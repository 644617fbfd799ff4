"""Read API client and writer backend interface."""

from spacedrain.connectors.base import (
    ConnectorError,
    EnumerationError,
    GraphQLError,
    PreparedCall,
    PreparedProposal,
    ProposalInfo,
    RateLimitError,
    SpaceWriter,
    TransactionError,
    TransactionReceipt,
    WriterConfigurationError,
    WriterRegistry,
)
from spacedrain.connectors.graphql import GeoGraphQLClient

__all__ = [
    "ConnectorError",
    "EnumerationError",
    "GeoGraphQLClient",
    "GraphQLError",
    "PreparedCall",
    "PreparedProposal",
    "ProposalInfo",
    "RateLimitError",
    "SpaceWriter",
    "TransactionError",
    "TransactionReceipt",
    "WriterConfigurationError",
    "WriterRegistry",
]
