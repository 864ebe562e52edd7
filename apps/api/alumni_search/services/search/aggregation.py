"""Chunk hits -> person-level relevance.

relevance_score = max_weight * max(weighted sims) + mean_top_k_weight * mean(top-k weighted sims),
with chunk similarities weighted by chunk type (skills down-weighted). Pure, no I/O.
"""

from collections import defaultdict
from dataclasses import dataclass

from alumni_search.core import SearchPolicy

from .vector_search import ChunkHit


@dataclass
class PersonAggregation:
    person_id: str
    chunks: list[ChunkHit]
    max_similarity: float = 0.0
    mean_top_k: float = 0.0
    relevance_score: float = 0.0


def score_person(chunks: list[ChunkHit], policy: SearchPolicy) -> tuple[float, float, float]:
    """Return (max_weighted_sim, mean_top_k, relevance_score) for one person's chunks."""
    weighted = sorted(
        (c.similarity * policy.weight_for(c.chunk_type) for c in chunks),
        reverse=True,
    )
    if not weighted:
        return 0.0, 0.0, 0.0
    max_sim = weighted[0]
    k = min(policy.top_k, len(weighted))
    mean_top_k = sum(weighted[:k]) / k
    score = policy.max_weight * max_sim + policy.mean_top_k_weight * mean_top_k
    return max_sim, mean_top_k, score


def aggregate(hits: list[ChunkHit], policy: SearchPolicy) -> list[PersonAggregation]:
    """Group hits by person, score, and return the shortlist (score desc, person_id asc)."""
    by_person: dict[str, list[ChunkHit]] = defaultdict(list)
    for hit in hits:
        by_person[hit.person_id].append(hit)

    people: list[PersonAggregation] = []
    for person_id, chunks in by_person.items():
        max_sim, mean_top_k, score = score_person(chunks, policy)
        people.append(
            PersonAggregation(
                person_id=person_id,
                chunks=chunks,
                max_similarity=max_sim,
                mean_top_k=mean_top_k,
                relevance_score=score,
            )
        )
    people.sort(key=lambda p: (-p.relevance_score, p.person_id))
    return people[: policy.shortlist_size]
