from .chat import ChatServiceError, ChatRateLimitError, ChatProvider, get_chat_provider
from .embedding import EmbeddingServiceError, EmbeddingProvider, get_embedding_provider

__all__ = [
    "ChatServiceError",
    "ChatRateLimitError",
    "ChatProvider",
    "get_chat_provider",
    "EmbeddingServiceError",
    "EmbeddingProvider",
    "get_embedding_provider",
]
