"""
Configuration for the Legal Assistant.

A single AssistantConfig carries every tunable used by ingestion and the
query pipeline. Values come from the environment (optionally a .env file)
via AssistantConfig.from_env(); validate() is called once at service startup.
"""

import os
import logging
from dataclasses import dataclass, field
from typing import Optional

from dotenv import load_dotenv

from .errors import ConfigurationError

logger = logging.getLogger(__name__)


SUPPORTED_EMBEDDING_PROVIDERS = frozenset({"openai", "voyage", "cohere", "local"})
SUPPORTED_VECTOR_BACKENDS = frozenset({"pgvector", "memory"})

# API key variable required by each embedding provider
PROVIDER_KEY_VARS = {
    "openai": "OPENAI_API_KEY",
    "voyage": "VOYAGE_API_KEY",
    "cohere": "COHERE_API_KEY",
}

DEFAULT_DOMAIN_KEYWORDS = [
    "law", "legal", "article", "code", "court", "contract", "lawyer",
    "attorney", "civil code", "criminal code", "code of obligations",
    "divorce", "custody", "tenancy", "lease", "employment", "dismissal",
    "inheritance", "liability", "statute", "zgb", "stgb",
]


def _split_csv(value: Optional[str]) -> list[str]:
    if not value:
        return []
    return [item.strip() for item in value.split(",") if item.strip()]


@dataclass
class AssistantConfig:
    """All settings for ingestion and answering."""
    # Language model
    llm_model: str = "gpt-4o-mini"
    llm_base_url: Optional[str] = None
    llm_temperature: float = 0.2
    llm_timeout: float = 120.0
    llm_api_key: Optional[str] = None

    # Embeddings
    embedding_provider: str = "openai"
    embedding_model: str = "text-embedding-3-small"
    embedding_cache_dir: Optional[str] = None

    # Vector index
    vector_backend: str = "pgvector"
    index_name: str = "swiss-legal"
    index_metric: str = "cosine"
    connection_string: Optional[str] = None

    # Splitter
    chunk_size: int = 1200
    chunk_overlap: int = 300

    # Query pipeline
    top_k: int = 5
    domain_name: str = "Swiss Legal System"
    assistant_name: str = "SwizzMitch"
    domain_keywords: list[str] = field(default_factory=lambda: list(DEFAULT_DOMAIN_KEYWORDS))
    greeting_max_length: int = 50
    classifier_context_turns: int = 3
    context_turns: int = 6
    enable_follow_ups: bool = True
    enable_recommendations: bool = True
    enrichment_workers: int = 2

    # Sources
    document_path: Optional[str] = None
    source_url_prefix: str = "/docs"
    source_title: str = "Swiss Legal Code"

    @classmethod
    def from_env(cls, env_file: Optional[str] = None) -> "AssistantConfig":
        """
        Build a configuration from environment variables.

        Args:
            env_file: Optional .env path. Defaults to python-dotenv's lookup.

        Returns:
            AssistantConfig populated from the environment
        """
        load_dotenv(env_file)

        defaults = cls()
        keywords = _split_csv(os.getenv("DOMAIN_KEYWORDS"))

        try:
            return cls(
                llm_model=os.getenv("OPENAI_LLM_MODEL", defaults.llm_model),
                llm_base_url=os.getenv("OPENAI_BASE_URL") or None,
                llm_temperature=float(os.getenv("LLM_TEMPERATURE", defaults.llm_temperature)),
                llm_api_key=os.getenv("OPENAI_API_KEY") or None,
                embedding_provider=os.getenv("EMBEDDING_PROVIDER", defaults.embedding_provider),
                embedding_model=os.getenv("OPENAI_EMBED_MODEL", defaults.embedding_model),
                embedding_cache_dir=os.getenv("EMBEDDING_CACHE_DIR") or None,
                vector_backend=os.getenv("VECTOR_BACKEND", defaults.vector_backend),
                index_name=os.getenv("VECTOR_INDEX_NAME", defaults.index_name),
                connection_string=os.getenv("POSTGRES_URL") or os.getenv("DATABASE_URL") or None,
                chunk_size=int(os.getenv("CHUNK_SIZE", defaults.chunk_size)),
                chunk_overlap=int(os.getenv("CHUNK_OVERLAP", defaults.chunk_overlap)),
                top_k=int(os.getenv("RAG_TOP_K", defaults.top_k)),
                domain_keywords=keywords or list(DEFAULT_DOMAIN_KEYWORDS),
                document_path=os.getenv("DOCUMENT_PATH") or None,
            )
        except ValueError as e:
            raise ConfigurationError(f"Invalid numeric setting in environment: {e}") from e

    def validate(self) -> None:
        """
        Check that required credentials and settings are present.

        Raises:
            ConfigurationError: on the first problem found
        """
        if not self.index_name:
            raise ConfigurationError("VECTOR_INDEX_NAME is required")

        if self.embedding_provider not in SUPPORTED_EMBEDDING_PROVIDERS:
            raise ConfigurationError(
                f"Unsupported embedding provider '{self.embedding_provider}'. "
                f"Choose one of: {', '.join(sorted(SUPPORTED_EMBEDDING_PROVIDERS))}"
            )

        if self.vector_backend not in SUPPORTED_VECTOR_BACKENDS:
            raise ConfigurationError(
                f"Unsupported vector backend '{self.vector_backend}'. "
                f"Choose one of: {', '.join(sorted(SUPPORTED_VECTOR_BACKENDS))}"
            )

        if not (self.llm_api_key or os.getenv("OPENAI_API_KEY")):
            raise ConfigurationError("OPENAI_API_KEY is required for the language model")

        key_var = PROVIDER_KEY_VARS.get(self.embedding_provider)
        if key_var and not os.getenv(key_var) and not (key_var == "OPENAI_API_KEY" and self.llm_api_key):
            raise ConfigurationError(f"{key_var} is required for the '{self.embedding_provider}' embedding provider")

        if self.vector_backend == "pgvector" and not self.connection_string:
            raise ConfigurationError("POSTGRES_URL (or DATABASE_URL) is required for the pgvector backend")

        if self.chunk_size <= 0:
            raise ConfigurationError("chunk_size must be positive")
        if not 0 <= self.chunk_overlap < self.chunk_size:
            raise ConfigurationError(
                f"chunk_overlap ({self.chunk_overlap}) must be >= 0 and smaller than chunk_size ({self.chunk_size})"
            )
        if self.top_k < 1:
            raise ConfigurationError("top_k must be at least 1")

        logger.info(
            f"Configuration valid: llm={self.llm_model}, embeddings={self.embedding_provider}/"
            f"{self.embedding_model}, index={self.vector_backend}:{self.index_name}"
        )
