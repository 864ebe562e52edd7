from functools import lru_cache
from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict

from alumni_search.core.errors import ConfigurationError

# Load .env from apps/api so it works regardless of CWD
_env_file = Path(__file__).resolve().parent.parent.parent / ".env"

OPENAI_API_BASE_URL = "https://api.openai.com/v1"


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=_env_file, extra="ignore")

    database_url: str = "postgresql://localhost/alumni_search"
    sql_echo: bool = False

    # OpenAI credential; used for both embeddings and chat unless overridden below
    openai_api_key: str | None = None

    # Embeddings (OpenAI-compatible). Dimension must match profile_chunks.embedding (migration 001)
    embed_api_base_url: str | None = None
    embed_api_key: str | None = None
    embed_model: str = "text-embedding-3-large"
    embed_dimension: int = 2000

    # Chat (OpenAI-compatible); None => provider-specific default
    chat_api_base_url: str | None = None
    chat_api_key: str | None = None
    chat_model: str | None = None

    # Independent upstream timeouts (seconds)
    embed_timeout_seconds: float = 15.0
    vector_search_timeout_seconds: float = 10.0
    chat_timeout_seconds: float = 60.0

    # Search policy knobs (see SearchPolicy)
    search_match_count: int = 200
    search_shortlist_size: int = 50
    search_min_relevance: float = 0.35
    search_result_cap: int = 30
    search_weight_about: float = 1.0
    search_weight_work: float = 1.0
    search_weight_edu: float = 1.0
    search_weight_skills: float = 0.5

    # Attach per-stage timings to non-streaming responses
    search_include_debug: bool = False

    # CORS (comma-separated origins; * allows all)
    cors_origins: str = "*"

    @property
    def cors_origins_list(self) -> list[str]:
        """Parsed CORS origins for middleware."""
        raw = self.cors_origins.strip()
        return ["*"] if not raw else [o.strip() for o in raw.split(",") if o.strip()]

    @property
    def resolved_embed_api_key(self) -> str | None:
        return self.embed_api_key or self.openai_api_key

    @property
    def resolved_chat_api_key(self) -> str | None:
        return self.chat_api_key or self.openai_api_key

    def require_credentials(self) -> None:
        """Raise ConfigurationError if an upstream the pipeline needs has no credential."""
        missing: list[str] = []
        if not self.embed_api_base_url and not self.resolved_embed_api_key:
            missing.append("OPENAI_API_KEY or EMBED_API_BASE_URL")
        if not self.chat_api_base_url and not self.resolved_chat_api_key:
            missing.append("OPENAI_API_KEY or CHAT_API_BASE_URL")
        if not self.database_url:
            missing.append("DATABASE_URL")
        if missing:
            raise ConfigurationError(f"Missing configuration: {', '.join(dict.fromkeys(missing))}")


@lru_cache
def get_settings() -> Settings:
    return Settings()
