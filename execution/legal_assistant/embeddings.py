"""
Embedding Gateway for the Legal Assistant

Wraps an external embedding provider (OpenAI by default, Voyage AI, Cohere, or
a local sentence-transformers model) behind embed / embed_batch and detects the
vector dimensionality once per provider configuration.

Architecture:
    VectorCache            -- in-memory map, optionally mirrored to one JSON file per vector
    BaseEmbeddingProvider  -- client setup from the environment, batching, caching
        OpenAIEmbeddingProvider   -- OpenAI embeddings API (default)
        VoyageEmbeddingProvider   -- Voyage AI voyage-law-2
        CohereEmbeddingProvider   -- Cohere embed-v3
    LocalEmbeddingProvider -- local sentence-transformers (no caching needed)
    EmbeddingGateway       -- dimension detection and consistency checks
"""

import os
import json
import hashlib
import logging
import threading
from typing import Iterator, Optional
from dataclasses import dataclass
from pathlib import Path

logger = logging.getLogger(__name__)

# Probe text used to detect vector dimensionality
DIMENSION_PROBE = "dimension test"


@dataclass
class EmbeddingConfig:
    """Configuration for an embedding provider."""
    provider: str = "openai"
    model: str = "text-embedding-3-small"
    batch_size: int = 128
    max_tokens_per_batch: int = 100000
    chars_per_token: float = 4.0
    cache_dir: Optional[str] = None
    use_cache: bool = True


def iter_batches(texts: list[str], config: EmbeddingConfig) -> Iterator[list[str]]:
    """Yield consecutive slices of texts under both the item and estimated token limits."""
    batch: list[str] = []
    budget = 0.0
    for text in texts:
        cost = len(text) / config.chars_per_token
        full = len(batch) >= config.batch_size or budget + cost > config.max_tokens_per_batch
        if batch and full:
            yield batch
            batch, budget = [], 0.0
        batch.append(text)
        budget += cost
    if batch:
        yield batch


class VectorCache:
    """Embeddings keyed by model, input type and text."""

    def __init__(self, model: str, directory: Optional[str] = None, enabled: bool = True):
        self.model = model
        self.enabled = enabled
        self._memory: dict[str, list[float]] = {}
        self._directory = Path(directory) if directory else None
        if self._directory and enabled:
            self._directory.mkdir(parents=True, exist_ok=True)

    def key(self, text: str, input_type: str) -> str:
        digest = hashlib.sha256(f"{self.model}:{input_type}:{text}".encode("utf-8"))
        return digest.hexdigest()[:32]

    def get(self, key: str) -> Optional[list[float]]:
        if not self.enabled:
            return None
        if key in self._memory:
            return self._memory[key]
        if self._directory is None:
            return None

        path = self._directory / f"{key}.json"
        if not path.exists():
            return None
        try:
            vector = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            logger.debug(f"Ignoring unreadable cache entry {path}: {e}")
            return None
        self._memory[key] = vector
        return vector

    def put(self, key: str, vector: list[float]) -> None:
        if not self.enabled:
            return
        self._memory[key] = vector
        if self._directory is None:
            return
        try:
            (self._directory / f"{key}.json").write_text(json.dumps(vector), encoding="utf-8")
        except OSError as e:
            logger.warning(f"Could not write embedding cache entry {key}: {e}")


class BaseEmbeddingProvider:
    """
    Base class for API-based embedding providers.

    Subclasses set the class attributes below and implement:
    - _build_client(api_key): the provider SDK client
    - _request(texts, input_type): one API call for a batch of texts
    """

    _provider_name: str = "Base"
    _env_var_name: str = ""
    _doc_input_type: str = "document"
    _query_input_type: str = "query"

    def __init__(self, config: Optional[EmbeddingConfig] = None, client=None):
        """
        Args:
            config: Optional configuration. Uses defaults if not provided.
            client: Pre-built SDK client; the environment is not read when given.
        """
        self.config = config or EmbeddingConfig()
        self._cache = VectorCache(self.config.model, self.config.cache_dir, self.config.use_cache)
        self._client = client if client is not None else self._init_client()

    def _init_client(self):
        api_key = os.getenv(self._env_var_name)
        if not api_key:
            logger.warning(f"{self._env_var_name} not set; {self._provider_name} embeddings will fail")
            return None
        client = self._build_client(api_key)
        logger.info(f"{self._provider_name} client initialized with model {self.config.model}")
        return client

    def _build_client(self, api_key: str):
        raise NotImplementedError

    def _request(self, texts: list[str], input_type: str) -> list[list[float]]:
        raise NotImplementedError

    def embed_documents(self, texts: list[str]) -> list[list[float]]:
        """Embed document chunks in batches, returning vectors in input order."""
        if not texts:
            return []
        self._require_client()

        vectors: list[list[float]] = []
        for number, batch in enumerate(iter_batches(texts, self.config), start=1):
            vectors.extend(self._embed(batch, self._doc_input_type))
            if number % 10 == 0:
                logger.info(f"{self._provider_name}: embedded {len(vectors)}/{len(texts)} documents")
        logger.info(f"Embedded {len(texts)} documents with {self._provider_name}")
        return vectors

    def embed_query(self, query: str) -> list[float]:
        """Embed a search query."""
        self._require_client()
        return self._embed([query], self._query_input_type)[0]

    def _require_client(self):
        if self._client is None:
            raise RuntimeError(
                f"{self._provider_name} client not initialized. Set {self._env_var_name}."
            )

    def _embed(self, texts: list[str], input_type: str) -> list[list[float]]:
        """Serve cached vectors and request only the texts not seen before."""
        keys = [self._cache.key(text, input_type) for text in texts]
        vectors = [self._cache.get(key) for key in keys]
        missing = [i for i, vector in enumerate(vectors) if vector is None]
        if not missing:
            return vectors

        try:
            fetched = self._request([texts[i] for i in missing], input_type)
        except Exception as e:
            logger.error(f"{self._provider_name} embedding request failed: {e}")
            raise
        if len(fetched) != len(missing):
            raise RuntimeError(
                f"{self._provider_name} returned {len(fetched)} embeddings for {len(missing)} texts"
            )

        for i, raw in zip(missing, fetched):
            vectors[i] = [float(x) for x in raw]
            self._cache.put(keys[i], vectors[i])
        return vectors


class OpenAIEmbeddingProvider(BaseEmbeddingProvider):
    """
    Embeddings from the OpenAI embeddings API (or any compatible endpoint
    through OPENAI_BASE_URL). There is no document/query distinction.
    """

    _provider_name = "OpenAI"
    _env_var_name = "OPENAI_API_KEY"

    def _build_client(self, api_key: str):
        from openai import OpenAI
        return OpenAI(api_key=api_key, base_url=os.getenv("OPENAI_BASE_URL") or None)

    def _request(self, texts: list[str], input_type: str) -> list[list[float]]:
        response = self._client.embeddings.create(model=self.config.model, input=texts)
        return [item.embedding for item in sorted(response.data, key=lambda item: item.index)]


class VoyageEmbeddingProvider(BaseEmbeddingProvider):
    """voyage-law-2, tuned for legal text."""

    _provider_name = "Voyage AI"
    _env_var_name = "VOYAGE_API_KEY"

    def _build_client(self, api_key: str):
        import voyageai
        return voyageai.Client(api_key=api_key)

    def _request(self, texts: list[str], input_type: str) -> list[list[float]]:
        return self._client.embed(texts=texts, model=self.config.model, input_type=input_type).embeddings


class CohereEmbeddingProvider(BaseEmbeddingProvider):
    _provider_name = "Cohere"
    _env_var_name = "COHERE_API_KEY"
    _doc_input_type = "search_document"
    _query_input_type = "search_query"

    def _build_client(self, api_key: str):
        import cohere
        return cohere.Client(api_key)

    def _request(self, texts: list[str], input_type: str) -> list[list[float]]:
        return self._client.embed(texts=texts, model=self.config.model, input_type=input_type).embeddings


class LocalEmbeddingProvider:
    """
    Embedding provider using a local sentence-transformers model.

    Good for development or offline ingestion of the reference corpus.
    """

    def __init__(self, model_name: str = "BAAI/bge-m3"):
        try:
            from sentence_transformers import SentenceTransformer
        except ImportError:
            raise ImportError(
                "sentence-transformers not installed. "
                "Run: pip install 'legal-assistant[local]'"
            )
        self._model = SentenceTransformer(model_name)
        logger.info(f"Local embedding model loaded: {model_name}")

    def embed_documents(self, texts: list[str]) -> list[list[float]]:
        if not texts:
            return []
        embeddings = self._model.encode(texts, show_progress_bar=len(texts) > 32)
        return embeddings.tolist()

    def embed_query(self, query: str) -> list[float]:
        embedding = self._model.encode([query])
        return embedding[0].tolist()


def get_embedding_provider(config) -> BaseEmbeddingProvider:
    """
    Factory function for the configured embedding provider.

    Args:
        config: AssistantConfig with embedding_provider, embedding_model and
            embedding_cache_dir

    Returns:
        Embedding provider exposing embed_query / embed_documents
    """
    provider = config.embedding_provider

    if provider == "local":
        model = config.embedding_model
        if model.startswith("text-embedding-"):
            model = "BAAI/bge-m3"
        return LocalEmbeddingProvider(model)

    if provider == "voyage":
        model = config.embedding_model if config.embedding_model.startswith("voyage") else "voyage-law-2"
        return VoyageEmbeddingProvider(EmbeddingConfig(
            provider="voyage",
            model=model,
            batch_size=128,
            chars_per_token=2.0,
            cache_dir=config.embedding_cache_dir,
        ))

    if provider == "cohere":
        model = config.embedding_model if config.embedding_model.startswith("embed-") else "embed-english-v3.0"
        return CohereEmbeddingProvider(EmbeddingConfig(
            provider="cohere",
            model=model,
            batch_size=96,
            cache_dir=config.embedding_cache_dir,
        ))

    return OpenAIEmbeddingProvider(EmbeddingConfig(
        provider="openai",
        model=config.embedding_model,
        batch_size=256,
        cache_dir=config.embedding_cache_dir,
    ))


class EmbeddingGateway:
    """
    Single entry point for embeddings used by ingestion and retrieval.

    The vector dimension is detected once, either from the first batch or
    from a probe query, and every later vector must have the same length.
    """

    def __init__(self, provider):
        self._provider = provider
        self._dimension: Optional[int] = None
        self._lock = threading.Lock()

    @property
    def provider(self):
        return self._provider

    @property
    def dimension(self) -> int:
        """Vector length for this provider, probing the provider on first use."""
        if self._dimension is None:
            with self._lock:
                if self._dimension is None:
                    vector = self._provider.embed_query(DIMENSION_PROBE)
                    if not vector:
                        raise RuntimeError("Embedding provider returned an empty vector")
                    self._dimension = len(vector)
                    logger.info(f"Detected embedding dimension: {self._dimension}")
        return self._dimension

    def embed(self, text: str) -> list[float]:
        """Embed a single query text."""
        vector = self._provider.embed_query(text)
        self._check([vector])
        return vector

    def embed_batch(self, texts: list[str]) -> list[list[float]]:
        """Embed document texts, preserving order."""
        if not texts:
            return []
        vectors = self._provider.embed_documents(texts)
        if len(vectors) != len(texts):
            raise RuntimeError(f"Expected {len(texts)} embeddings, got {len(vectors)}")
        self._check(vectors)
        return vectors

    def _check(self, vectors: list[list[float]]) -> None:
        lengths = {len(v) for v in vectors}
        if 0 in lengths:
            raise RuntimeError("Embedding provider returned an empty vector")
        if len(lengths) > 1:
            raise RuntimeError(f"Embedding provider returned mixed dimensions: {sorted(lengths)}")

        length = lengths.pop()
        with self._lock:
            if self._dimension is None:
                self._dimension = length
                logger.info(f"Detected embedding dimension: {self._dimension}")
            elif self._dimension != length:
                raise RuntimeError(
                    f"Embedding dimension changed from {self._dimension} to {length}"
                )
