"""Shared API constants."""

# Vector size used by DB and embedding requests (match migration 001)
EMBEDDING_DIM = 2000

# Profile chunk types produced by ingestion
CHUNK_TYPE_ABOUT = "about"
CHUNK_TYPE_WORK = "work"
CHUNK_TYPE_EDU = "edu"
CHUNK_TYPE_SKILLS = "skills"
CHUNK_TYPES = (CHUNK_TYPE_ABOUT, CHUNK_TYPE_WORK, CHUNK_TYPE_EDU, CHUNK_TYPE_SKILLS)

# Display name used when a shortlisted person has no profile row
UNKNOWN_PERSON_NAME = "Unknown"
