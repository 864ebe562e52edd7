from .search_rerank import get_rerank_messages, get_rerank_system_prompt

__all__ = ["get_rerank_messages", "get_rerank_system_prompt"]
