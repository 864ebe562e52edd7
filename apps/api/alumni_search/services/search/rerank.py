"""LLM rerank of enriched candidates: batch and streaming.

Only candidates at or above the relevance threshold are forwarded, as compact payloads.
The model returns person_id + why_relevant; every other field is merged back from the
local candidate map, and ids the model invents are dropped. If the model call fails or
its output has the wrong shape, the top candidates by relevance are returned instead.
"""

import json
import logging
import time
from contextlib import aclosing
from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Callable, Sequence

from alumni_search.core import RerankUnavailable, SearchPolicy
from alumni_search.prompts import get_rerank_messages
from alumni_search.providers.chat import JSON_OBJECT_FORMAT, ChatProvider, ChatServiceError
from alumni_search.schemas import (
    CompleteEvent,
    RankedResult,
    ResultEvent,
    SearchEvent,
    StartEvent,
)
from alumni_search.utils import elapsed_ms, strip_json_from_response

from .enrichment import Candidate, EducationEntry, ExperienceEntry
from .stream_parser import StreamingResultParser

logger = logging.getLogger(__name__)

# Keys the model has been seen to use for its result array, in lookup order
RESULT_ARRAY_KEYS = ("results", "matches", "alumni")


@dataclass
class RerankOutcome:
    results: list[RankedResult] = field(default_factory=list)
    fallback: bool = False
    forwarded: int = 0


# -----------------------------------------------------------------------------
# Compact candidate payloads
# -----------------------------------------------------------------------------
def _education_line(e: EducationEntry) -> str:
    head = " ".join(p for p in (e.degree, f"in {e.field}" if e.field else None) if p)
    if e.school:
        return f"{head} from {e.school}".strip()
    return head


def _experience_line(e: ExperienceEntry) -> str:
    if e.title and e.company:
        return f"{e.title} at {e.company}"
    return e.title or e.company or ""


def build_candidate_payload(candidate: Candidate, policy: SearchPolicy) -> dict[str, Any]:
    """Compact per-candidate dict sent to the model. Contact fields are not included."""
    return {
        "person_id": candidate.person_id,
        "full_name": candidate.full_name,
        "first_name": candidate.first_name,
        "last_name": candidate.last_name,
        "headline": candidate.headline or "",
        "class_year": str(candidate.class_year) if candidate.class_year is not None else "",
        "section": candidate.section or "",
        "vector_score": round(candidate.relevance_score, 3),
        "chunks": [
            {
                "type": c.chunk_type,
                "text": c.text_raw[: policy.prompt_chunk_chars],
                "score": round(c.similarity, 3),
            }
            for c in candidate.top_chunks[: policy.prompt_chunks]
        ],
        "education": "; ".join(line for line in map(_education_line, candidate.educations) if line),
        "experience": "; ".join(
            line for line in map(_experience_line, candidate.experiences[: policy.prompt_experiences]) if line
        ),
    }


def parse_rerank_content(raw: str) -> list[tuple[str, str]]:
    """Decode a batch completion into (person_id, why_relevant) pairs in model order."""
    try:
        parsed = json.loads(strip_json_from_response(raw))
    except (TypeError, ValueError) as e:
        raise RerankUnavailable("Rerank output is not valid JSON.") from e
    if not isinstance(parsed, dict):
        raise RerankUnavailable("Rerank output is not a JSON object.")

    for key in RESULT_ARRAY_KEYS:
        if key in parsed:
            items = parsed[key]
            break
    else:
        raise RerankUnavailable(f"Rerank output has no result array (keys={sorted(parsed)[:5]}).")
    if not isinstance(items, list):
        raise RerankUnavailable(f"Rerank output field '{key}' is not a list.")

    matches: list[tuple[str, str]] = []
    for item in items:
        if not isinstance(item, dict):
            logger.warning("rerank: skipping non-object result entry: %r", item)
            continue
        person_id = item.get("person_id")
        if not isinstance(person_id, str) or not person_id.strip():
            logger.warning("rerank: skipping result without person_id: %r", item)
            continue
        why = item.get("why_relevant")
        matches.append((person_id.strip(), why if isinstance(why, str) else ""))
    return matches


# -----------------------------------------------------------------------------
# Engine
# -----------------------------------------------------------------------------
class RerankEngine:
    def __init__(
        self,
        chat: ChatProvider,
        policy: SearchPolicy,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.chat = chat
        self.policy = policy
        self.clock = clock

    def select_forward(self, candidates: Sequence[Candidate]) -> list[Candidate]:
        return [c for c in candidates if c.relevance_score >= self.policy.min_relevance]

    def build_messages(self, query: str, forwarded: Sequence[Candidate]) -> list[dict[str, str]]:
        payload = [build_candidate_payload(c, self.policy) for c in forwarded]
        return get_rerank_messages(query, payload, self.policy.result_cap)

    def fallback_results(self, candidates: Sequence[Candidate]) -> list[RankedResult]:
        """Top candidates by relevance with an empty why_relevant."""
        ranked = sorted(candidates, key=lambda c: (-c.relevance_score, c.person_id))
        return [c.to_ranked_result("") for c in ranked[: self.policy.result_cap]]

    def merge(self, matches: list[tuple[str, str]], forwarded: Sequence[Candidate]) -> list[RankedResult]:
        """Rebuild results from local candidates, in model order; unknown and repeated ids are dropped."""
        lookup = {c.person_id: c for c in forwarded}
        seen: set[str] = set()
        results: list[RankedResult] = []
        for person_id, why in matches:
            if person_id in seen:
                logger.info("rerank: duplicate person_id=%s ignored", person_id)
                continue
            candidate = lookup.get(person_id)
            if candidate is None:
                logger.warning("rerank: model returned unknown person_id=%s, dropped", person_id)
                continue
            seen.add(person_id)
            results.append(candidate.to_ranked_result(why))
            if len(results) >= self.policy.result_cap:
                break
        return results

    async def rerank(self, query: str, candidates: Sequence[Candidate]) -> RerankOutcome:
        forwarded = self.select_forward(candidates)
        logger.info(
            "rerank: forwarding %d of %d candidates (min_relevance=%.2f)",
            len(forwarded),
            len(candidates),
            self.policy.min_relevance,
        )
        if not forwarded:
            return RerankOutcome(results=[], forwarded=0)

        messages = self.build_messages(query, forwarded)
        try:
            try:
                raw = await self.chat.complete(messages, response_format=JSON_OBJECT_FORMAT)
            except ChatServiceError as e:
                raise RerankUnavailable(str(e)) from e
            matches = parse_rerank_content(raw)
        except RerankUnavailable as e:
            logger.warning("rerank: unavailable, returning fallback ranking: %s", e)
            return RerankOutcome(
                results=self.fallback_results(candidates),
                fallback=True,
                forwarded=len(forwarded),
            )

        results = self.merge(matches, forwarded)
        logger.info("rerank: complete | model_results=%d kept=%d", len(matches), len(results))
        return RerankOutcome(results=results, forwarded=len(forwarded))

    async def stream(
        self,
        query: str,
        candidates: Sequence[Candidate],
        started_at: float | None = None,
    ) -> AsyncIterator[SearchEvent]:
        """Yield start, one result per completed model object, then complete (or error)."""
        if started_at is None:
            started_at = self.clock()
        forwarded = self.select_forward(candidates)
        yield StartEvent(total_candidates=len(forwarded), timestamp_ms=elapsed_ms(started_at, self.clock()))
        if not forwarded:
            yield CompleteEvent(total_results=0, total_time_ms=elapsed_ms(started_at, self.clock()))
            return

        parser = StreamingResultParser(
            {c.person_id: c for c in forwarded},
            started_at=started_at,
            clock=self.clock,
        )
        try:
            async with aclosing(
                self.chat.stream(self.build_messages(query, forwarded), response_format=JSON_OBJECT_FORMAT)
            ) as upstream:
                async for raw in upstream:
                    for event in parser.feed(raw):
                        yield event
                    if parser.finished:
                        break
        except ChatServiceError as e:
            # role-only frames and keep-alives do not count as model output
            if not parser.received_content:
                logger.warning("rerank stream: unavailable before any output, streaming fallback: %s", e)
                for event in self._fallback_events(candidates, started_at):
                    yield event
                return
            error = parser.fail(str(e))
            if error is not None:
                yield error
            return

        for event in parser.finish():
            yield event
        logger.info("rerank stream: complete | results=%d", parser.emitted_count)
        yield CompleteEvent(
            total_results=parser.emitted_count,
            total_time_ms=elapsed_ms(started_at, self.clock()),
        )

    def _fallback_events(self, candidates: Sequence[Candidate], started_at: float) -> list[SearchEvent]:
        results = self.fallback_results(candidates)
        events: list[SearchEvent] = [
            ResultEvent(index=i, result=r, timestamp_ms=elapsed_ms(started_at, self.clock()))
            for i, r in enumerate(results, start=1)
        ]
        events.append(
            CompleteEvent(
                total_results=len(results),
                total_time_ms=elapsed_ms(started_at, self.clock()),
                fallback=True,
            )
        )
        return events
