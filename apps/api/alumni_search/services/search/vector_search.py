"""Nearest-neighbour search over profile chunks via the `search_chunks` SQL function."""

import asyncio
import logging
from dataclasses import dataclass

from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from alumni_search.core import CHUNK_TYPES, UpstreamError

logger = logging.getLogger(__name__)

SEARCH_CHUNKS_SQL = text(
    """
    SELECT chunk_id, person_id, chunk_type, text_raw, text_norm, similarity
    FROM search_chunks(CAST(:query_embedding AS vector), :match_count)
    """
)


class VectorSearchError(UpstreamError):
    """Raised when the chunk store query fails or times out."""


@dataclass(frozen=True)
class ChunkHit:
    """One chunk returned by the vector search, with its query similarity."""
    chunk_id: str
    person_id: str
    chunk_type: str
    text_raw: str
    text_norm: str
    similarity: float


def _clamp_similarity(value: object) -> float:
    try:
        sim = float(value)
    except (TypeError, ValueError):
        return 0.0
    return min(1.0, max(0.0, sim))


def _vector_literal(vec: list[float]) -> str:
    return "[" + ",".join(str(round(x, 6)) for x in vec) + "]"


def rows_to_hits(rows) -> list[ChunkHit]:
    """Map result rows to ChunkHits ordered by similarity desc, chunk_id asc."""
    hits = [
        ChunkHit(
            chunk_id=str(r.chunk_id),
            person_id=str(r.person_id),
            chunk_type=(r.chunk_type or "").strip().lower(),
            text_raw=r.text_raw or "",
            text_norm=r.text_norm or "",
            similarity=_clamp_similarity(r.similarity),
        )
        for r in rows
    ]
    unknown = {h.chunk_type for h in hits} - set(CHUNK_TYPES)
    if unknown:
        logger.debug("vector search: unrecognized chunk types kept at default weight | types=%s", sorted(unknown))
    hits.sort(key=lambda h: (-h.similarity, h.chunk_id))
    return hits


class VectorSearchClient:
    """Queries the chunk store. Each call opens its own session from the factory."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession], timeout: float = 10.0):
        self.session_factory = session_factory
        self.timeout = timeout

    async def _query(self, query_vector: list[float], match_count: int) -> list:
        async with self.session_factory() as db:
            result = await db.execute(
                SEARCH_CHUNKS_SQL,
                {"query_embedding": _vector_literal(query_vector), "match_count": match_count},
            )
            return result.fetchall()

    async def search(self, query_vector: list[float], match_count: int = 200) -> list[ChunkHit]:
        if not query_vector:
            raise VectorSearchError("Query vector is empty.")
        try:
            rows = await asyncio.wait_for(self._query(query_vector, match_count), timeout=self.timeout)
        except asyncio.TimeoutError as e:
            raise VectorSearchError(f"Chunks search timed out after {self.timeout:.0f}s.") from e
        except (SQLAlchemyError, OSError) as e:
            # asyncpg connect failures (refused, DNS) surface as bare OSError
            logger.warning("Chunks search failed: %s", e, exc_info=True)
            raise VectorSearchError(f"Chunks search error: {e.__class__.__name__}") from e
        return rows_to_hits(rows)
