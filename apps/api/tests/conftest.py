"""
Shared test fixtures for the alumni search test suite.

Provides: chunk hit / candidate factories, an in-memory profile store, a scripted chat
provider, and helpers for building OpenAI-style SSE frames.
"""

import json
from types import SimpleNamespace
from typing import Any, Callable

import pytest

from alumni_search.core import SearchPolicy
from alumni_search.providers.chat import ChatProvider
from alumni_search.services.search.enrichment import (
    Candidate,
    EducationEntry,
    ExperienceEntry,
)
from alumni_search.services.search.vector_search import ChunkHit


def sse_content_frame(content: str) -> str:
    """One OpenAI streaming frame carrying `content` as the delta."""
    chunk = {
        "id": "chatcmpl-test",
        "object": "chat.completion.chunk",
        "choices": [{"index": 0, "delta": {"content": content}, "finish_reason": None}],
    }
    return f"data: {json.dumps(chunk)}\n\n"


SSE_DONE_FRAME = "data: [DONE]\n\n"


class FakeClock:
    """Monotonic clock advanced by hand."""

    def __init__(self, start: float = 100.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class ScriptedChatProvider(ChatProvider):
    """Chat provider that replays a fixed reply (batch) or chunk list (stream).

    If `error` is set, `complete` raises it, and `stream` raises it once `error_at`
    chunks have been yielded (0 = before any output).
    """

    def __init__(
        self,
        reply: str = "",
        chunks: list[str] | None = None,
        error: Exception | None = None,
        error_at: int = 0,
    ):
        self.reply = reply
        self.chunks = chunks or []
        self.error = error
        self.error_at = error_at
        self.calls: list[dict[str, Any]] = []
        self.closed = False

    async def complete(self, messages, max_tokens=None, response_format=None) -> str:
        self.calls.append({"mode": "complete", "messages": messages, "response_format": response_format})
        if self.error is not None:
            raise self.error
        return self.reply

    async def stream(self, messages, max_tokens=None, response_format=None):
        self.calls.append({"mode": "stream", "messages": messages, "response_format": response_format})
        try:
            for i, chunk in enumerate(self.chunks):
                if self.error is not None and i == self.error_at:
                    raise self.error
                yield chunk
            if self.error is not None and self.error_at >= len(self.chunks):
                raise self.error
        finally:
            self.closed = True

    def forwarded_candidates(self, call_index: int = 0) -> list[dict[str, Any]]:
        """Decode the candidate payloads sent in the user message of one call."""
        user_message = self.calls[call_index]["messages"][-1]["content"]
        return json.loads(user_message)["candidates"]


class InMemoryProfileStore:
    """ProfileStore over plain row objects, recording the id batches it was asked for."""

    def __init__(self, people=(), experiences=(), educations=()):
        self.people = list(people)
        self.experiences = list(experiences)
        self.educations = list(educations)
        self.requests: list[tuple[str, list[str]]] = []

    async def fetch_people(self, person_ids):
        self.requests.append(("people", list(person_ids)))
        return [p for p in self.people if p.person_id in person_ids]

    async def fetch_experiences(self, person_ids):
        self.requests.append(("experiences", list(person_ids)))
        return [e for e in self.experiences if e.person_id in person_ids]

    async def fetch_educations(self, person_ids):
        self.requests.append(("educations", list(person_ids)))
        return [e for e in self.educations if e.person_id in person_ids]


@pytest.fixture
def policy() -> SearchPolicy:
    """Default ranking policy."""
    return SearchPolicy()


@pytest.fixture
def fake_clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def make_hit() -> Callable[..., ChunkHit]:
    """Factory for ChunkHit with sensible defaults."""
    counter = {"n": 0}

    def _make(person_id: str, similarity: float, chunk_type: str = "about", chunk_id: str | None = None, text: str = ""):
        counter["n"] += 1
        return ChunkHit(
            chunk_id=chunk_id or f"c-{counter['n']:04d}",
            person_id=person_id,
            chunk_type=chunk_type,
            text_raw=text or f"{chunk_type} text for {person_id}",
            text_norm=(text or f"{chunk_type} text for {person_id}").lower(),
            similarity=similarity,
        )

    return _make


@pytest.fixture
def make_candidate() -> Callable[..., Candidate]:
    """Factory for enriched Candidate objects."""

    def _make(person_id: str, relevance_score: float, **fields: Any) -> Candidate:
        defaults: dict[str, Any] = {
            "full_name": f"Alum {person_id}",
            "email": f"{person_id}@alumni.example.com",
            "linkedin_url": f"https://linkedin.com/in/{person_id}",
            "headline": "Founder & CEO",
            "class_year": 2015,
            "section": "Section A",
            "location": "Boston, MA",
            "current_company": "Acme AI",
            "current_title": "CEO",
            "current_industry": "Software",
            "experiences": [ExperienceEntry(company="Acme AI", title="CEO")],
            "educations": [EducationEntry(school="Harvard Business School", degree="MBA")],
            "education_summary": "Harvard Business School.",
            "experience_summary": "CEO at Acme AI.",
        }
        defaults.update(fields)
        return Candidate(person_id=person_id, relevance_score=relevance_score, **defaults)

    return _make


@pytest.fixture
def person_row() -> Callable[..., SimpleNamespace]:
    """Factory for profile rows shaped like the ORM models."""

    def _make(person_id: str, **fields: Any) -> SimpleNamespace:
        base = {
            "person_id": person_id,
            "full_name": f"Alum {person_id}",
            "email": None,
            "linkedin_url": None,
            "headline": None,
            "summary": None,
            "location": None,
            "class_year": None,
            "section": None,
            "current_company": None,
            "current_title": None,
            "current_industry": None,
        }
        base.update(fields)
        return SimpleNamespace(**base)

    return _make
