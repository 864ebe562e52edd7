"""Search pipeline business logic.

Pipeline: embed query -> chunk vector search -> aggregate by person (weighted max + mean
top-k) -> shortlist -> batched profile enrichment -> LLM rerank (batch or streamed).
Embedding, vector search and enrichment failures end the request with an error
envelope; rerank failures degrade to a vector-score ranking flagged `fallback`.
"""

import logging
import time
from typing import Any, AsyncIterator, Callable

from alumni_search.core import SearchPolicy, UpstreamError
from alumni_search.providers import EmbeddingProvider
from alumni_search.schemas import ErrorEvent, SearchEvent, SearchResponse
from alumni_search.utils import elapsed_ms

from .aggregation import aggregate
from .enrichment import Candidate, CandidateEnricher
from .rerank import RerankEngine
from .vector_search import VectorSearchClient

logger = logging.getLogger(__name__)

EMPTY_QUERY_MESSAGE = "Query must not be empty"


class StageTrace:
    """Timed log of pipeline stages; doubles as the optional debug payload."""

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self.clock = clock
        self.started_at = clock()
        self.steps: list[dict[str, Any]] = []

    def elapsed_ms(self) -> int:
        return elapsed_ms(self.started_at, self.clock())

    def log(self, step: str, data: dict[str, Any] | None = None) -> None:
        elapsed = self.elapsed_ms()
        if data:
            logger.info("[%dms] %s | %s", elapsed, step, data)
        else:
            logger.info("[%dms] %s", elapsed, step)
        self.steps.append({"step": step, "elapsed_ms": elapsed, "data": data})

    def as_debug(self) -> dict[str, Any]:
        return {"steps": self.steps, "total_time_ms": self.elapsed_ms()}


class SearchOrchestrator:
    def __init__(
        self,
        embedder: EmbeddingProvider,
        vector_search: VectorSearchClient,
        enricher: CandidateEnricher,
        reranker: RerankEngine,
        policy: SearchPolicy,
        include_debug: bool = False,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.embedder = embedder
        self.vector_search = vector_search
        self.enricher = enricher
        self.reranker = reranker
        self.policy = policy
        self.include_debug = include_debug
        self.clock = clock

    def _debug(self, trace: StageTrace) -> dict[str, Any] | None:
        return trace.as_debug() if self.include_debug else None

    async def _retrieve(self, query: str, trace: StageTrace) -> list[Candidate]:
        """Embed, search, aggregate and enrich. Raises UpstreamError on any failed stage."""
        trace.log("STEP 1: Generating query embedding", {"query": query})
        vector = await self.embedder.embed(query, self.embedder.dimension)
        trace.log("STEP 1 COMPLETE: Embedding generated", {"dimensions": len(vector)})

        hits = await self.vector_search.search(vector, self.policy.match_count)
        trace.log(
            "STEP 2 COMPLETE: Vector search",
            {
                "chunk_count": len(hits),
                "top_similarity": round(hits[0].similarity, 3) if hits else None,
            },
        )

        shortlist = aggregate(hits, self.policy)
        trace.log(
            "STEP 3 COMPLETE: Aggregated by person",
            {
                "shortlist_size": len(shortlist),
                "top_scores": [
                    {"person_id": p.person_id, "score": round(p.relevance_score, 3)}
                    for p in shortlist[:5]
                ],
            },
        )

        candidates = await self.enricher.enrich(shortlist)
        trace.log("STEP 4 COMPLETE: Enriched candidates", {"candidates": len(candidates)})
        return candidates

    async def search(self, query: str) -> SearchResponse:
        """Batch search. Never raises for upstream failures; they come back in `error`."""
        trace = StageTrace(self.clock)
        query = (query or "").strip()
        if not query:
            logger.info("search: rejected empty query")
            return SearchResponse(results=[], error=EMPTY_QUERY_MESSAGE)

        try:
            candidates = await self._retrieve(query, trace)
        except UpstreamError as e:
            logger.warning("search: failed | error=%s", e)
            trace.log("SEARCH FAILED", {"error": str(e)})
            return SearchResponse(results=[], error=str(e), debug=self._debug(trace))

        outcome = await self.reranker.rerank(query, candidates)
        trace.log(
            "STEP 5 COMPLETE: Rerank",
            {"forwarded": outcome.forwarded, "results": len(outcome.results), "fallback": outcome.fallback},
        )
        trace.log("SEARCH COMPLETE", {"total_results": len(outcome.results)})
        return SearchResponse(
            results=outcome.results,
            fallback=True if outcome.fallback else None,
            debug=self._debug(trace),
        )

    async def stream(self, query: str) -> AsyncIterator[SearchEvent]:
        """Streaming search: start, results as they complete, then complete; or a single error."""
        trace = StageTrace(self.clock)
        query = (query or "").strip()
        if not query:
            logger.info("search stream: rejected empty query")
            yield ErrorEvent(message=EMPTY_QUERY_MESSAGE, timestamp_ms=trace.elapsed_ms())
            return

        try:
            candidates = await self._retrieve(query, trace)
        except UpstreamError as e:
            logger.warning("search stream: failed before rerank | error=%s", e)
            yield ErrorEvent(message=str(e), timestamp_ms=trace.elapsed_ms())
            return

        async for event in self.reranker.stream(query, candidates, started_at=trace.started_at):
            yield event
        trace.log("SEARCH COMPLETE")
