"""Core configuration, errors, and shared policy."""

from alumni_search.core.errors import (
    ConfigurationError,
    MalformedUpstreamPayload,
    RerankUnavailable,
    SearchError,
    UpstreamError,
)
from alumni_search.core.config import Settings, get_settings
from alumni_search.core.constants import CHUNK_TYPES, EMBEDDING_DIM
from alumni_search.core.policy import SearchPolicy

__all__ = [
    "Settings",
    "get_settings",
    "SearchPolicy",
    "EMBEDDING_DIM",
    "CHUNK_TYPES",
    "SearchError",
    "ConfigurationError",
    "UpstreamError",
    "RerankUnavailable",
    "MalformedUpstreamPayload",
]
