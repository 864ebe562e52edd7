"""Pydantic request/response schemas."""

from alumni_search.schemas.search import (
    SearchRequest,
    RankedResult,
    SearchResponse,
    StartEvent,
    ResultEvent,
    CompleteEvent,
    ErrorEvent,
    SearchEvent,
    to_sse_frame,
)

__all__ = [
    "SearchRequest",
    "RankedResult",
    "SearchResponse",
    "StartEvent",
    "ResultEvent",
    "CompleteEvent",
    "ErrorEvent",
    "SearchEvent",
    "to_sse_frame",
]
