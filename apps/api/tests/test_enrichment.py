"""
Tests for candidate enrichment and local summary rollups.
"""

from types import SimpleNamespace

import pytest
from sqlalchemy.dialects import postgresql
from sqlalchemy.exc import OperationalError

from alumni_search.core import SearchPolicy
from alumni_search.services.search.aggregation import PersonAggregation
from alumni_search.services.search.enrichment import (
    CandidateEnricher,
    EducationEntry,
    ExperienceEntry,
    ProfileStoreError,
    educations_stmt,
    experiences_stmt,
    generate_education_summary,
    generate_experience_summary,
)

from conftest import InMemoryProfileStore


def _agg(person_id, score, chunks=()):
    return PersonAggregation(person_id=person_id, chunks=list(chunks), relevance_score=score)


class TestSummaries:
    """Local (no LLM) education / experience rollups."""

    def test_education_summary_takes_first_three_schools(self):
        edus = [EducationEntry(school=s) for s in ("HBS", "MIT", "Stanford", "Yale")]

        assert generate_education_summary(edus) == "HBS. MIT. Stanford."

    def test_education_summary_skips_missing_schools(self):
        edus = [EducationEntry(school=None, degree="MBA"), EducationEntry(school="MIT")]

        assert generate_education_summary(edus) == "MIT."

    def test_experience_summary_pairs_title_and_company(self):
        exps = [
            ExperienceEntry(title="CEO", company="Acme"),
            ExperienceEntry(title="PM", company=None),
            ExperienceEntry(title=None, company=None),
            ExperienceEntry(title="Analyst", company="Bain"),
        ]

        assert generate_experience_summary(exps) == "CEO at Acme. PM at."

    def test_empty_histories_give_empty_summaries(self):
        assert generate_education_summary([]) == ""
        assert generate_experience_summary([]) == ""


class TestStatements:
    """Batched fetch statements carry deterministic ordering."""

    def test_experiences_ordered_by_sort_index(self):
        sql = str(experiences_stmt(["p1"]).compile(dialect=postgresql.dialect()))

        assert "ORDER BY experiences.sort_index ASC NULLS LAST, experiences.exp_id" in sql

    def test_educations_ordered_by_start_year_desc(self):
        sql = str(educations_stmt(["p1"]).compile(dialect=postgresql.dialect()))

        assert "ORDER BY educations.start_year DESC NULLS LAST, educations.edu_id" in sql


class TestCandidateEnricher:
    """Joining shortlisted people with profile rows."""

    @pytest.mark.asyncio
    async def test_preserves_shortlist_order_and_batches_fetches(self, person_row):
        # Arrange
        store = InMemoryProfileStore(
            people=[person_row("p2", full_name="Bea Two"), person_row("p1", full_name="Al One")],
        )
        enricher = CandidateEnricher(store, SearchPolicy())

        # Act
        candidates = await enricher.enrich([_agg("p1", 0.9), _agg("p2", 0.5)])

        # Assert
        assert [c.person_id for c in candidates] == ["p1", "p2"]
        assert [c.relevance_score for c in candidates] == [0.9, 0.5]
        assert sorted(kind for kind, _ in store.requests) == ["educations", "experiences", "people"]
        assert all(ids == ["p1", "p2"] for _, ids in store.requests)

    @pytest.mark.asyncio
    async def test_missing_profile_yields_defaults(self):
        enricher = CandidateEnricher(InMemoryProfileStore(), SearchPolicy())

        [candidate] = await enricher.enrich([_agg("ghost", 0.7)])

        assert candidate.full_name == "Unknown"
        assert candidate.email is None
        assert candidate.experiences == []
        assert candidate.education_summary == ""

    @pytest.mark.asyncio
    async def test_copies_profile_fields_and_builds_summaries(self, person_row):
        store = InMemoryProfileStore(
            people=[person_row("p1", full_name="Ada Lovelace", email="ada@x.com", class_year=2012, section="B")],
            experiences=[
                SimpleNamespace(person_id="p1", company="Acme", title="CTO", description=None,
                                location=None, start_date="2019", end_date=None),
            ],
            educations=[
                SimpleNamespace(person_id="p1", school="HBS", degree="MBA", field=None,
                                description=None, start_year=2010, end_year=2012),
            ],
        )
        enricher = CandidateEnricher(store, SearchPolicy())

        [candidate] = await enricher.enrich([_agg("p1", 0.8)])
        result = candidate.to_ranked_result("Built things.")

        assert candidate.experience_summary == "CTO at Acme."
        assert candidate.education_summary == "HBS."
        assert result.first_name == "Ada"
        assert result.last_name == "Lovelace"
        assert result.class_year == "2012"
        assert result.email == "ada@x.com"
        assert result.why_relevant == "Built things."

    @pytest.mark.asyncio
    async def test_keeps_top_five_chunks_by_similarity(self, make_hit):
        hits = [make_hit("p1", s / 10) for s in (1, 7, 3, 9, 5, 8, 2)]
        enricher = CandidateEnricher(InMemoryProfileStore(), SearchPolicy())

        [candidate] = await enricher.enrich([_agg("p1", 0.8, hits)])

        assert [c.similarity for c in candidate.top_chunks] == [0.9, 0.8, 0.7, 0.5, 0.3]

    @pytest.mark.asyncio
    async def test_empty_shortlist_skips_fetches(self):
        store = InMemoryProfileStore()

        assert await CandidateEnricher(store, SearchPolicy()).enrich([]) == []
        assert store.requests == []

    @pytest.mark.asyncio
    async def test_database_error_raises_profile_store_error(self):
        class BrokenStore(InMemoryProfileStore):
            async def fetch_people(self, person_ids):
                raise OperationalError("SELECT", {}, Exception("connection reset"))

        enricher = CandidateEnricher(BrokenStore(), SearchPolicy())

        with pytest.raises(ProfileStoreError):
            await enricher.enrich([_agg("p1", 0.8)])

    @pytest.mark.asyncio
    async def test_connection_refused_raises_profile_store_error(self):
        class UnreachableStore(InMemoryProfileStore):
            async def fetch_experiences(self, person_ids):
                raise ConnectionRefusedError(111, "Connect call failed")

        enricher = CandidateEnricher(UnreachableStore(), SearchPolicy())

        with pytest.raises(ProfileStoreError, match="ConnectionRefusedError"):
            await enricher.enrich([_agg("p1", 0.8)])
