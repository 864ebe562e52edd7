"""Search ranking policy: chunk weights, blend, thresholds and size caps."""

from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from alumni_search.core.constants import (
    CHUNK_TYPE_ABOUT,
    CHUNK_TYPE_EDU,
    CHUNK_TYPE_SKILLS,
    CHUNK_TYPE_WORK,
)

if TYPE_CHECKING:
    from alumni_search.core.config import Settings


def _default_chunk_weights() -> dict[str, float]:
    # Skills are down-weighted so keyword-dense skill lists cannot dominate.
    return {
        CHUNK_TYPE_ABOUT: 1.0,
        CHUNK_TYPE_WORK: 1.0,
        CHUNK_TYPE_EDU: 1.0,
        CHUNK_TYPE_SKILLS: 0.5,
    }


@dataclass(frozen=True)
class SearchPolicy:
    """Tunable ranking policy passed into the aggregator and rerank engine."""

    chunk_type_weights: dict[str, float] = field(default_factory=_default_chunk_weights)
    default_chunk_weight: float = 1.0
    max_weight: float = 0.80
    mean_top_k_weight: float = 0.20
    top_k: int = 3
    match_count: int = 200
    shortlist_size: int = 50
    min_relevance: float = 0.35
    result_cap: int = 30
    chunks_per_candidate: int = 5
    prompt_chunks: int = 2
    prompt_chunk_chars: int = 200
    prompt_experiences: int = 4
    summary_items: int = 3

    def weight_for(self, chunk_type: str) -> float:
        return self.chunk_type_weights.get(chunk_type, self.default_chunk_weight)

    @classmethod
    def from_settings(cls, settings: "Settings") -> "SearchPolicy":
        return cls(
            chunk_type_weights={
                CHUNK_TYPE_ABOUT: settings.search_weight_about,
                CHUNK_TYPE_WORK: settings.search_weight_work,
                CHUNK_TYPE_EDU: settings.search_weight_edu,
                CHUNK_TYPE_SKILLS: settings.search_weight_skills,
            },
            match_count=settings.search_match_count,
            shortlist_size=settings.search_shortlist_size,
            min_relevance=settings.search_min_relevance,
            result_cap=settings.search_result_cap,
        )
