"""Join shortlisted people with profile, experience and education rows.

Three batched fetches (one per table, never one per person) run concurrently on
separate sessions. A shortlisted id without a profile row still yields a Candidate
with default fields so one missing join does not break the batch.
"""

import asyncio
import logging
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Any, Protocol, Sequence

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from alumni_search.core import SearchPolicy, UpstreamError
from alumni_search.core.constants import UNKNOWN_PERSON_NAME
from alumni_search.db.models import Education, Experience, Person
from alumni_search.schemas import RankedResult

from .aggregation import PersonAggregation
from .vector_search import ChunkHit

logger = logging.getLogger(__name__)


class ProfileStoreError(UpstreamError):
    """Raised when a batched profile fetch fails."""


@dataclass(frozen=True)
class ExperienceEntry:
    company: str | None = None
    title: str | None = None
    description: str | None = None
    location: str | None = None
    start_date: str | None = None
    end_date: str | None = None


@dataclass(frozen=True)
class EducationEntry:
    school: str | None = None
    degree: str | None = None
    field: str | None = None
    description: str | None = None
    start_year: int | None = None
    end_year: int | None = None


@dataclass
class Candidate:
    person_id: str
    relevance_score: float
    full_name: str = UNKNOWN_PERSON_NAME
    email: str | None = None
    linkedin_url: str | None = None
    headline: str | None = None
    summary: str | None = None
    location: str | None = None
    class_year: int | None = None
    section: str | None = None
    current_company: str | None = None
    current_title: str | None = None
    current_industry: str | None = None
    experiences: list[ExperienceEntry] = field(default_factory=list)
    educations: list[EducationEntry] = field(default_factory=list)
    top_chunks: list[ChunkHit] = field(default_factory=list)
    education_summary: str = ""
    experience_summary: str = ""

    @property
    def first_name(self) -> str:
        parts = (self.full_name or "").split()
        return parts[0] if parts else ""

    @property
    def last_name(self) -> str:
        return " ".join((self.full_name or "").split()[1:])

    def to_ranked_result(self, why_relevant: str = "") -> RankedResult:
        """Build the client-facing result from locally held (authoritative) fields."""
        return RankedResult(
            person_id=self.person_id,
            first_name=self.first_name,
            last_name=self.last_name,
            email=self.email,
            linkedin_url=self.linkedin_url,
            headline=self.headline,
            class_year=str(self.class_year) if self.class_year is not None else "",
            section=self.section or "",
            location=self.location or "",
            current_company=self.current_company or "",
            current_title=self.current_title or "",
            current_industry=self.current_industry or "",
            education_summary=self.education_summary,
            experience_summary=self.experience_summary,
            why_relevant=why_relevant or "",
        )


# -----------------------------------------------------------------------------
# Local rollups (no LLM)
# -----------------------------------------------------------------------------
def _title_at_company(title: str | None, company: str | None) -> str:
    pair = f"{title or ''} at {company or ''}".strip()
    return "" if pair == "at" else pair


def generate_education_summary(educations: Sequence[EducationEntry], limit: int = 3) -> str:
    """First `limit` schools, period-joined."""
    schools = [e.school for e in educations[:limit] if e.school]
    return ". ".join(schools) + "." if schools else ""


def generate_experience_summary(experiences: Sequence[ExperienceEntry], limit: int = 3) -> str:
    """First `limit` "title at company" pairs, period-joined."""
    pairs = [p for p in (_title_at_company(e.title, e.company) for e in experiences[:limit]) if p]
    return ". ".join(pairs) + "." if pairs else ""


# -----------------------------------------------------------------------------
# Profile store
# -----------------------------------------------------------------------------
class ProfileStore(Protocol):
    async def fetch_people(self, person_ids: list[str]) -> Sequence[Any]: ...

    async def fetch_experiences(self, person_ids: list[str]) -> Sequence[Any]: ...

    async def fetch_educations(self, person_ids: list[str]) -> Sequence[Any]: ...


class SqlProfileStore:
    """Batched lookups against people / experiences / educations; one session per fetch."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory

    async def _fetch(self, stmt) -> Sequence[Any]:
        async with self.session_factory() as db:
            result = await db.execute(stmt)
            return result.scalars().all()

    async def fetch_people(self, person_ids: list[str]) -> Sequence[Person]:
        return await self._fetch(people_stmt(person_ids))

    async def fetch_experiences(self, person_ids: list[str]) -> Sequence[Experience]:
        return await self._fetch(experiences_stmt(person_ids))

    async def fetch_educations(self, person_ids: list[str]) -> Sequence[Education]:
        return await self._fetch(educations_stmt(person_ids))


def people_stmt(person_ids: list[str]):
    return select(Person).where(Person.person_id.in_(person_ids))


def experiences_stmt(person_ids: list[str]):
    return (
        select(Experience)
        .where(Experience.person_id.in_(person_ids))
        .order_by(Experience.sort_index.asc().nulls_last(), Experience.exp_id)
    )


def educations_stmt(person_ids: list[str]):
    return (
        select(Education)
        .where(Education.person_id.in_(person_ids))
        .order_by(Education.start_year.desc().nulls_last(), Education.edu_id)
    )


# -----------------------------------------------------------------------------
# Enricher
# -----------------------------------------------------------------------------
def _experience_entry(row: Any) -> ExperienceEntry:
    return ExperienceEntry(
        company=getattr(row, "company", None),
        title=getattr(row, "title", None),
        description=getattr(row, "description", None),
        location=getattr(row, "location", None),
        start_date=getattr(row, "start_date", None),
        end_date=getattr(row, "end_date", None),
    )


def _education_entry(row: Any) -> EducationEntry:
    return EducationEntry(
        school=getattr(row, "school", None),
        degree=getattr(row, "degree", None),
        field=getattr(row, "field", None),
        description=getattr(row, "description", None),
        start_year=getattr(row, "start_year", None),
        end_year=getattr(row, "end_year", None),
    )


class CandidateEnricher:
    def __init__(self, store: ProfileStore, policy: SearchPolicy):
        self.store = store
        self.policy = policy

    async def enrich(self, aggregations: list[PersonAggregation]) -> list[Candidate]:
        if not aggregations:
            return []
        person_ids = [a.person_id for a in aggregations]
        try:
            people, experiences, educations = await asyncio.gather(
                self.store.fetch_people(person_ids),
                self.store.fetch_experiences(person_ids),
                self.store.fetch_educations(person_ids),
            )
        except (SQLAlchemyError, OSError) as e:
            logger.warning("Profile fetch failed: %s", e, exc_info=True)
            raise ProfileStoreError(f"People fetch error: {e.__class__.__name__}") from e

        people_map = {str(p.person_id): p for p in people}
        exp_by_person: dict[str, list[ExperienceEntry]] = defaultdict(list)
        for row in experiences:
            exp_by_person[str(row.person_id)].append(_experience_entry(row))
        edu_by_person: dict[str, list[EducationEntry]] = defaultdict(list)
        for row in educations:
            edu_by_person[str(row.person_id)].append(_education_entry(row))

        missing = [pid for pid in person_ids if pid not in people_map]
        if missing:
            logger.warning(
                "enrich: %d shortlisted person_id(s) have no profile row, using defaults | ids=%s",
                len(missing),
                missing[:10],
            )

        candidates = [
            self._build_candidate(agg, people_map.get(agg.person_id), exp_by_person, edu_by_person)
            for agg in aggregations
        ]
        logger.info(
            "enrich: complete | candidates=%d experiences=%d educations=%d",
            len(candidates),
            len(experiences),
            len(educations),
        )
        return candidates

    def _build_candidate(
        self,
        agg: PersonAggregation,
        person: Any | None,
        exp_by_person: dict[str, list[ExperienceEntry]],
        edu_by_person: dict[str, list[EducationEntry]],
    ) -> Candidate:
        exps = exp_by_person.get(agg.person_id, [])
        edus = edu_by_person.get(agg.person_id, [])
        top_chunks = sorted(agg.chunks, key=lambda c: (-c.similarity, c.chunk_id))
        candidate = Candidate(
            person_id=agg.person_id,
            relevance_score=agg.relevance_score,
            experiences=exps,
            educations=edus,
            top_chunks=top_chunks[: self.policy.chunks_per_candidate],
            education_summary=generate_education_summary(edus, self.policy.summary_items),
            experience_summary=generate_experience_summary(exps, self.policy.summary_items),
        )
        if person is not None:
            candidate.full_name = getattr(person, "full_name", None) or UNKNOWN_PERSON_NAME
            for attr in (
                "email",
                "linkedin_url",
                "headline",
                "summary",
                "location",
                "class_year",
                "section",
                "current_company",
                "current_title",
                "current_industry",
            ):
                setattr(candidate, attr, getattr(person, attr, None))
        return candidate
