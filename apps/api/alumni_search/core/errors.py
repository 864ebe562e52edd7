"""Error taxonomy shared by providers and the search pipeline."""


class SearchError(Exception):
    """Base class for search pipeline errors."""


class ConfigurationError(SearchError):
    """Raised when a required credential or URL is missing. Fatal at startup."""


class UpstreamError(SearchError):
    """Raised when an upstream the request cannot do without (embedding, vector search, profile store) fails."""


class RerankUnavailable(SearchError):
    """Raised when the rerank model call fails or returns output of the wrong shape."""


class MalformedUpstreamPayload(SearchError):
    """Raised for a streamed transport frame that does not decode as expected."""
