import asyncio
import logging
from abc import ABC, abstractmethod
from typing import AsyncIterator

import httpx

from alumni_search.core import ConfigurationError, get_settings
from alumni_search.core.config import OPENAI_API_BASE_URL

logger = logging.getLogger(__name__)

JSON_OBJECT_FORMAT = {"type": "json_object"}


class ChatServiceError(Exception):
    """Raised when the chat/LLM API is unavailable or returns invalid or unexpected output."""


class ChatRateLimitError(ChatServiceError):
    """Raised when the chat/LLM API rate limits the request."""


class ChatProvider(ABC):
    @abstractmethod
    async def complete(
        self,
        messages: list[dict[str, str]],
        max_tokens: int | None = None,
        response_format: dict | None = None,
    ) -> str:
        """Return the full assistant reply for one completion request."""
        pass

    @abstractmethod
    def stream(
        self,
        messages: list[dict[str, str]],
        max_tokens: int | None = None,
        response_format: dict | None = None,
    ) -> AsyncIterator[str]:
        """Yield raw transport text (SSE lines) as it arrives from the provider."""
        pass


class OpenAICompatibleChatProvider(ChatProvider):
    """OpenAI-compatible /chat/completions endpoint (OpenAI, vLLM, etc.)."""

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        base_url: str,
        api_key: str | None,
        model: str,
        timeout: float = 60.0,
    ):
        self.http_client = http_client
        self.base_url = base_url.rstrip("/")
        if not self.base_url.endswith("/v1"):
            self.base_url = f"{self.base_url}/v1"
        self.api_key = api_key
        self.model = model
        self.timeout = timeout

    def _headers(self) -> dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        return headers

    def _payload(
        self,
        messages: list[dict[str, str]],
        max_tokens: int | None,
        response_format: dict | None,
        stream: bool = False,
    ) -> dict:
        payload: dict = {"model": self.model, "messages": messages}
        if max_tokens is not None:
            payload["max_tokens"] = max_tokens
        if response_format is not None:
            payload["response_format"] = response_format
        if stream:
            payload["stream"] = True
        return payload

    async def complete(
        self,
        messages: list[dict[str, str]],
        max_tokens: int | None = None,
        response_format: dict | None = None,
    ) -> str:
        payload = self._payload(messages, max_tokens, response_format)
        retries = 2
        base_delay_s = 1.0

        for attempt in range(retries + 1):
            try:
                r = await self.http_client.post(
                    f"{self.base_url}/chat/completions",
                    json=payload,
                    headers=self._headers(),
                    timeout=self.timeout,
                )
                r.raise_for_status()
                data = r.json()
                choices = data.get("choices") or []
                if not choices:
                    raise ChatServiceError(
                        "Chat API returned no choices (e.g. content filter)."
                    )
                msg = choices[0].get("message") or {}
                content = msg.get("content")
                if content is None or not isinstance(content, str):
                    raise ChatServiceError(
                        "Chat API returned missing or non-string content."
                    )
                stripped = content.strip()
                if not stripped:
                    raise ChatServiceError(
                        "Chat API returned empty content (LLM may have failed or been rate-limited)."
                    )
                return stripped
            except httpx.HTTPStatusError as e:
                if e.response.status_code == 429:
                    if attempt < retries:
                        retry_after = e.response.headers.get("Retry-After")
                        try:
                            delay_s = float(retry_after) if retry_after else base_delay_s
                        except ValueError:
                            delay_s = base_delay_s
                        await asyncio.sleep(delay_s * (attempt + 1))
                        continue
                    raise ChatRateLimitError(
                        "Chat API rate limited the request. Please retry later."
                    ) from e
                body = getattr(e.response, "text", None) or ""
                if body:
                    logger.warning(
                        "Chat API error %s: %s",
                        e.response.status_code,
                        body[:500],
                    )
                raise ChatServiceError(
                    f"Chat API returned {e.response.status_code}. Please try again later."
                ) from e
            except httpx.RequestError as e:
                raise ChatServiceError(
                    "Chat service unavailable (timeout or connection error). Please try again later."
                ) from e
            except (KeyError, TypeError, IndexError, ValueError) as e:
                raise ChatServiceError("Chat API returned unexpected response format.") from e
        raise ChatServiceError("Chat API retries exhausted.")

    async def stream(
        self,
        messages: list[dict[str, str]],
        max_tokens: int | None = None,
        response_format: dict | None = None,
    ) -> AsyncIterator[str]:
        """Stream raw SSE text. Closing the generator closes the upstream connection."""
        payload = self._payload(messages, max_tokens, response_format, stream=True)
        try:
            async with self.http_client.stream(
                "POST",
                f"{self.base_url}/chat/completions",
                json=payload,
                headers=self._headers(),
                timeout=self.timeout,
            ) as r:
                if r.status_code >= 400:
                    body = (await r.aread()).decode("utf-8", errors="replace")
                    logger.warning("Chat stream API error %s: %s", r.status_code, body[:500])
                    if r.status_code == 429:
                        raise ChatRateLimitError(
                            "Chat API rate limited the request. Please retry later."
                        )
                    raise ChatServiceError(
                        f"Chat API returned {r.status_code}. Please try again later."
                    )
                async for text in r.aiter_text():
                    if text:
                        yield text
        except httpx.RequestError as e:
            raise ChatServiceError(
                "Chat stream interrupted (timeout or connection error)."
            ) from e


# Default model for OpenAI official API when CHAT_MODEL is not set
_OPENAI_DEFAULT_MODEL = "gpt-4o-mini"
# Default model for OpenAI-compatible (vLLM, etc.) when CHAT_MODEL is not set
_OPENAI_COMPATIBLE_DEFAULT_MODEL = "Qwen/Qwen2.5-7B-Instruct"


def get_chat_provider(http_client: httpx.AsyncClient) -> ChatProvider:
    s = get_settings()
    if s.chat_api_base_url:
        return OpenAICompatibleChatProvider(
            http_client=http_client,
            base_url=s.chat_api_base_url,
            api_key=s.resolved_chat_api_key,
            model=s.chat_model or _OPENAI_COMPATIBLE_DEFAULT_MODEL,
            timeout=s.chat_timeout_seconds,
        )
    if s.openai_api_key:
        return OpenAICompatibleChatProvider(
            http_client=http_client,
            base_url=OPENAI_API_BASE_URL,
            api_key=s.openai_api_key,
            model=s.chat_model or _OPENAI_DEFAULT_MODEL,
            timeout=s.chat_timeout_seconds,
        )
    raise ConfigurationError(
        "Chat LLM not configured. Set OPENAI_API_KEY or CHAT_API_BASE_URL (and CHAT_MODEL)."
    )
