import uuid
from datetime import datetime, timezone

from sqlalchemy import (
    Column,
    String,
    Text,
    Integer,
    DateTime,
    ForeignKey,
    Index,
    func,
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship

from alumni_search.core.constants import EMBEDDING_DIM
from .session import Base

from pgvector.sqlalchemy import Vector


def uuid4_str():
    return str(uuid.uuid4())


class Person(Base):
    """Alumni profile; aggregation root for chunk relevance."""
    __tablename__ = "people"

    person_id = Column(UUID(as_uuid=False), primary_key=True, default=uuid4_str)
    full_name = Column(String(255), nullable=False)
    email = Column(String(255), nullable=True)
    linkedin_url = Column(String(500), nullable=True)
    headline = Column(Text, nullable=True)
    summary = Column(Text, nullable=True)
    location = Column(String(255), nullable=True)
    class_year = Column(Integer, nullable=True)
    section = Column(String(255), nullable=True)  # section / LTV instructor(s)
    current_company = Column(String(255), nullable=True)
    current_title = Column(String(255), nullable=True)
    current_industry = Column(String(255), nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=lambda: datetime.now(timezone.utc))

    experiences = relationship("Experience", back_populates="person")
    educations = relationship("Education", back_populates="person")
    chunks = relationship("ProfileChunk", back_populates="person")


class Experience(Base):
    __tablename__ = "experiences"

    exp_id = Column(UUID(as_uuid=False), primary_key=True, default=uuid4_str)
    person_id = Column(UUID(as_uuid=False), ForeignKey("people.person_id", ondelete="CASCADE"), nullable=False)
    company = Column(String(255), nullable=True)
    title = Column(String(255), nullable=True)
    description = Column(Text, nullable=True)
    location = Column(String(255), nullable=True)
    start_date = Column(String(20), nullable=True)  # free-form, e.g. "2019-06" or "Jun 2019"
    end_date = Column(String(20), nullable=True)
    sort_index = Column(Integer, nullable=True)  # 0 = most recent

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=lambda: datetime.now(timezone.utc))

    person = relationship("Person", back_populates="experiences")

    __table_args__ = (Index("ix_experiences_person_id_sort_index", "person_id", "sort_index"),)


class Education(Base):
    __tablename__ = "educations"

    edu_id = Column(UUID(as_uuid=False), primary_key=True, default=uuid4_str)
    person_id = Column(UUID(as_uuid=False), ForeignKey("people.person_id", ondelete="CASCADE"), nullable=False)
    school = Column(String(255), nullable=True)
    degree = Column(String(255), nullable=True)
    field = Column(String(255), nullable=True)
    description = Column(Text, nullable=True)
    start_year = Column(Integer, nullable=True)
    end_year = Column(Integer, nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=lambda: datetime.now(timezone.utc))

    person = relationship("Person", back_populates="educations")

    __table_args__ = (Index("ix_educations_person_id", "person_id"),)


class ProfileChunk(Base):
    """Typed fragment of profile text (about / work / edu / skills), embedded independently."""
    __tablename__ = "profile_chunks"

    chunk_id = Column(UUID(as_uuid=False), primary_key=True, default=uuid4_str)
    person_id = Column(UUID(as_uuid=False), ForeignKey("people.person_id", ondelete="CASCADE"), nullable=False)
    chunk_type = Column(String(20), nullable=False)
    source_id = Column(String(255), nullable=True)  # experience/education row the chunk was cut from
    text_raw = Column(Text, nullable=False)
    text_norm = Column(Text, nullable=True)
    text_hash = Column(String(64), nullable=False)
    embedding = Column(Vector(EMBEDDING_DIM), nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=lambda: datetime.now(timezone.utc))

    person = relationship("Person", back_populates="chunks")

    __table_args__ = (
        Index("ix_profile_chunks_person_id", "person_id"),
        Index("ix_profile_chunks_person_type_hash", "person_id", "chunk_type", "text_hash", unique=True),
    )
