"""Search pipeline: vector retrieval, aggregation, enrichment, and LLM rerank."""

from .aggregation import PersonAggregation, aggregate
from .enrichment import Candidate, CandidateEnricher, SqlProfileStore
from .rerank import RerankEngine, RerankOutcome
from .search_logic import SearchOrchestrator
from .stream_parser import StreamingResultParser
from .vector_search import ChunkHit, VectorSearchClient

__all__ = [
    "ChunkHit",
    "VectorSearchClient",
    "PersonAggregation",
    "aggregate",
    "Candidate",
    "CandidateEnricher",
    "SqlProfileStore",
    "RerankEngine",
    "RerankOutcome",
    "StreamingResultParser",
    "SearchOrchestrator",
]
