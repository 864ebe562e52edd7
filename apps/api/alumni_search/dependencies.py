from typing import Annotated

import httpx
from fastapi import Depends, Request

from alumni_search.core import SearchPolicy, get_settings
from alumni_search.db.session import async_session
from alumni_search.providers import get_chat_provider, get_embedding_provider
from alumni_search.services.search import (
    CandidateEnricher,
    RerankEngine,
    SearchOrchestrator,
    SqlProfileStore,
    VectorSearchClient,
)


def get_http_client(request: Request) -> httpx.AsyncClient:
    """Shared upstream client created in the app lifespan."""
    return request.app.state.http_client


def get_search_orchestrator(
    http_client: Annotated[httpx.AsyncClient, Depends(get_http_client)],
) -> SearchOrchestrator:
    settings = get_settings()
    policy = SearchPolicy.from_settings(settings)
    return SearchOrchestrator(
        embedder=get_embedding_provider(http_client),
        vector_search=VectorSearchClient(async_session, timeout=settings.vector_search_timeout_seconds),
        enricher=CandidateEnricher(SqlProfileStore(async_session), policy),
        reranker=RerankEngine(get_chat_provider(http_client), policy),
        policy=policy,
        include_debug=settings.search_include_debug,
    )
