"""Facebook Graph API integration: typed errors, retry state machine, fetcher."""
from .graph_errors import (
    ConfigurationError,
    CredentialExpired,
    GraphAPIError,
    RateLimitExceeded,
    RemoteAPIError,
    RequestTimeoutError,
)
from .graph_adapter import GraphFetcher

__all__ = [
    "GraphFetcher",
    "GraphAPIError",
    "RateLimitExceeded",
    "CredentialExpired",
    "RequestTimeoutError",
    "RemoteAPIError",
    "ConfigurationError",
]
