from abc import ABC, abstractmethod

import httpx

from alumni_search.core import UpstreamError, ConfigurationError, get_settings
from alumni_search.core.config import OPENAI_API_BASE_URL


class EmbeddingServiceError(UpstreamError):
    """Raised when the embedding API is unavailable or returns an error (e.g. 500, timeout)."""


class EmbeddingProvider(ABC):
    @property
    @abstractmethod
    def dimension(self) -> int:
        pass

    @abstractmethod
    async def embed(self, text: str, dimensions: int | None = None) -> list[float]:
        pass


class OpenAICompatibleEmbeddingProvider(EmbeddingProvider):
    """OpenAI-compatible /embeddings endpoint. One request per call; no retries."""

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        base_url: str,
        api_key: str | None,
        model: str,
        dimension: int = 2000,
        timeout: float = 15.0,
    ):
        self.http_client = http_client
        self.base_url = base_url.rstrip("/")
        if not self.base_url.endswith("/v1"):
            self.base_url = f"{self.base_url}/v1"
        self.api_key = api_key
        self.model = model
        self._dimension = dimension
        self.timeout = timeout

    @property
    def dimension(self) -> int:
        return self._dimension

    async def embed(self, text: str, dimensions: int | None = None) -> list[float]:
        """Embed one text; the returned vector has exactly `dimensions` floats."""
        if not text or not text.strip():
            raise ValueError("Embedding input must be a non-empty string.")
        dims = dimensions or self._dimension
        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        try:
            r = await self.http_client.post(
                f"{self.base_url}/embeddings",
                json={"model": self.model, "input": text.strip(), "dimensions": dims},
                headers=headers,
                timeout=self.timeout,
            )
            r.raise_for_status()
            data = r.json()
        except httpx.HTTPStatusError as e:
            body = getattr(e.response, "text", None) or ""
            raise EmbeddingServiceError(
                f"Embedding API returned {e.response.status_code}: {body[:300]}".rstrip(": ")
            ) from e
        except httpx.RequestError as e:
            raise EmbeddingServiceError(
                "Embedding service unavailable (timeout or connection error). Please try again later."
            ) from e
        except ValueError as e:
            raise EmbeddingServiceError("Embedding API returned a non-JSON body.") from e

        try:
            vector = [float(x) for x in data["data"][0]["embedding"]]
        except (KeyError, IndexError, TypeError, ValueError) as e:
            raise EmbeddingServiceError(
                "Embedding API returned unexpected response format."
            ) from e
        if len(vector) != dims:
            raise EmbeddingServiceError(
                f"Embedding API returned {len(vector)} dimensions, expected {dims}."
            )
        return vector


def get_embedding_provider(http_client: httpx.AsyncClient) -> EmbeddingProvider:
    s = get_settings()
    api_key = s.resolved_embed_api_key
    if not s.embed_api_base_url and not api_key:
        raise ConfigurationError(
            "Embedding model not configured. Set OPENAI_API_KEY or EMBED_API_BASE_URL (and EMBED_MODEL)."
        )
    return OpenAICompatibleEmbeddingProvider(
        http_client=http_client,
        base_url=s.embed_api_base_url or OPENAI_API_BASE_URL,
        api_key=api_key,
        model=s.embed_model,
        dimension=s.embed_dimension,
        timeout=s.embed_timeout_seconds,
    )
