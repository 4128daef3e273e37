"""
Vector Index Gateway with PostgreSQL + pgvector

Wraps an external vector index service behind ensure_index / upsert / search.
Two services are provided:

    PgVectorIndexService      -- one pgvector table per named index, cosine distance
    InMemoryVectorIndexService -- numpy cosine similarity, for local runs and tests

Entries are keyed by a content-hash-derived id, so re-ingesting identical
content overwrites rather than duplicates.
"""

import re
import json
import logging
import threading
from typing import Optional, Protocol
from dataclasses import dataclass, field

import numpy as np

from .chunker import DocumentChunk
from .errors import DimensionMismatchError, IngestionError, RetrievalError

logger = logging.getLogger(__name__)

CATALOG_TABLE = "vector_indexes"


@dataclass
class IndexedEntry:
    """A chunk as persisted in the vector index."""
    id: str
    vector: list[float]
    text: str
    metadata: dict = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "vector": list(self.vector),
            "text": self.text,
            "metadata": dict(self.metadata),
        }


@dataclass
class RetrievedDoc:
    """A single similarity-search hit, score in [0, 1]."""
    text: str
    score: Optional[float]
    metadata: dict = field(default_factory=dict)
    entry_id: Optional[str] = None

    def __post_init__(self):
        if self.score is not None:
            self.score = min(1.0, max(0.0, float(self.score)))

    @property
    def page(self) -> int:
        return int(self.metadata.get("page", 0) or 0)

    def to_dict(self) -> dict:
        return {
            "entry_id": self.entry_id,
            "text": self.text,
            "score": self.score,
            "metadata": dict(self.metadata),
        }


class VectorIndex(Protocol):
    """Handle on a single named index."""

    def upsert(self, entries: list[IndexedEntry]) -> None: ...

    def query(self, vector: list[float], k: int) -> list[RetrievedDoc]: ...

    def stats(self) -> dict: ...


class VectorIndexService(Protocol):
    """External vector index capability consumed by the gateway."""

    def list_indexes(self) -> list[str]: ...

    def create_index(self, name: str, dimension: int, metric: str = "cosine") -> None: ...

    def describe_index(self, name: str) -> Optional[dict]: ...

    def index(self, name: str) -> VectorIndex: ...


# =============================================================================
# PostgreSQL + pgvector
# =============================================================================

@dataclass
class PgVectorConfig:
    """Connection settings for the pgvector service."""
    connection_string: Optional[str] = None
    pool_min_connections: int = 1
    pool_max_connections: int = 10
    page_size: int = 500


def _table_name(index_name: str) -> str:
    safe = re.sub(r"[^a-z0-9_]", "_", index_name.lower())
    return f"vi_{safe}"


class PgVectorIndexService:
    """
    Vector index service backed by PostgreSQL with pgvector.

    Features:
    - A catalog table records each index's dimension and metric
    - One chunk table per index, HNSW index on cosine distance
    - Batch upsert with execute_values
    - Pooled connections with one retry on stale connections
    """

    def __init__(self, config: Optional[PgVectorConfig] = None):
        self.config = config or PgVectorConfig()
        if not self.config.connection_string:
            raise ValueError("A PostgreSQL connection string is required for pgvector")
        self._pool = None
        self._pool_lock = threading.Lock()

    def connect(self) -> None:
        """Create the connection pool and ensure the catalog exists."""
        import psycopg2.pool
        from psycopg2.extras import RealDictCursor

        try:
            self._pool = psycopg2.pool.ThreadedConnectionPool(
                minconn=self.config.pool_min_connections,
                maxconn=self.config.pool_max_connections,
                dsn=self.config.connection_string,
                cursor_factory=RealDictCursor,
            )
        except Exception as e:
            logger.error(f"Database connection failed: {e}")
            raise

        conn = self._pool.getconn()
        try:
            with conn.cursor() as cur:
                cur.execute("CREATE EXTENSION IF NOT EXISTS vector")
                cur.execute(f"""
                CREATE TABLE IF NOT EXISTS {CATALOG_TABLE} (
                    name TEXT PRIMARY KEY,
                    dimension INTEGER NOT NULL,
                    metric TEXT NOT NULL DEFAULT 'cosine',
                    created_at TIMESTAMPTZ NOT NULL DEFAULT now()
                )
                """)
            conn.commit()
        finally:
            self._pool.putconn(conn)

        logger.info(
            f"Connection pool initialized (min={self.config.pool_min_connections}, "
            f"max={self.config.pool_max_connections})"
        )

    def close(self) -> None:
        if self._pool:
            self._pool.closeall()
            self._pool = None
            logger.info("Connection pool closed")

    def _ensure_pool(self):
        if self._pool is None:
            with self._pool_lock:
                if self._pool is None:
                    self.connect()
        return self._pool

    def _safe_rollback(self, conn) -> None:
        import psycopg2

        try:
            conn.rollback()
        except (psycopg2.InterfaceError, psycopg2.OperationalError):
            pass

    def _execute_with_retry(self, operation, label="db_operation"):
        """Run operation(conn), retrying once on a stale connection."""
        import psycopg2

        for attempt in range(2):
            pool = self._ensure_pool()
            conn = pool.getconn()
            try:
                result = operation(conn)
                pool.putconn(conn)
                return result
            except (psycopg2.OperationalError, psycopg2.InterfaceError) as e:
                self._safe_rollback(conn)
                pool.putconn(conn, close=True)
                if attempt == 0:
                    logger.warning(f"{label}: stale conn, retrying: {e}")
                    continue
                raise
            except Exception:
                self._safe_rollback(conn)
                pool.putconn(conn)
                raise

    def list_indexes(self) -> list[str]:
        def _op(conn):
            with conn.cursor() as cur:
                cur.execute(f"SELECT name FROM {CATALOG_TABLE} ORDER BY name")
                return [row["name"] for row in cur.fetchall()]

        return self._execute_with_retry(_op, "list_indexes")

    def describe_index(self, name: str) -> Optional[dict]:
        def _op(conn):
            with conn.cursor() as cur:
                cur.execute(
                    f"SELECT name, dimension, metric FROM {CATALOG_TABLE} WHERE name = %s",
                    (name,),
                )
                row = cur.fetchone()
            return dict(row) if row else None

        return self._execute_with_retry(_op, "describe_index")

    def create_index(self, name: str, dimension: int, metric: str = "cosine") -> None:
        if metric != "cosine":
            raise ValueError(f"Unsupported metric for pgvector index: {metric}")
        table = _table_name(name)

        def _op(conn):
            with conn.cursor() as cur:
                cur.execute(
                    f"INSERT INTO {CATALOG_TABLE} (name, dimension, metric) VALUES (%s, %s, %s) "
                    f"ON CONFLICT (name) DO NOTHING",
                    (name, dimension, metric),
                )
                cur.execute(f"""
                CREATE TABLE IF NOT EXISTS {table} (
                    id TEXT PRIMARY KEY,
                    content TEXT NOT NULL,
                    metadata JSONB NOT NULL DEFAULT '{{}}'::jsonb,
                    embedding vector({int(dimension)}) NOT NULL,
                    updated_at TIMESTAMPTZ NOT NULL DEFAULT now()
                )
                """)
                cur.execute(
                    f"CREATE INDEX IF NOT EXISTS {table}_embedding_idx "
                    f"ON {table} USING hnsw (embedding vector_cosine_ops)"
                )
            conn.commit()
            logger.info(f"Created pgvector index '{name}' (dimension={dimension}, metric={metric})")

        self._execute_with_retry(_op, "create_index")

    def index(self, name: str) -> "PgVectorIndex":
        return PgVectorIndex(self, name)


class PgVectorIndex:
    """Handle on one pgvector-backed index table."""

    def __init__(self, service: PgVectorIndexService, name: str):
        self._service = service
        self.name = name
        self.table = _table_name(name)

    def upsert(self, entries: list[IndexedEntry]) -> None:
        """Batch upsert entries, overwriting rows with the same id."""
        if not entries:
            return

        from psycopg2.extras import execute_values

        sql = f"""
        INSERT INTO {self.table} (id, content, metadata, embedding)
        VALUES %s
        ON CONFLICT (id) DO UPDATE SET
            content = EXCLUDED.content,
            metadata = EXCLUDED.metadata,
            embedding = EXCLUDED.embedding,
            updated_at = now()
        """
        values = [
            (entry.id, entry.text, json.dumps(entry.metadata), entry.vector)
            for entry in entries
        ]

        def _op(conn):
            with conn.cursor() as cur:
                execute_values(
                    cur,
                    sql,
                    values,
                    template="(%s, %s, %s::jsonb, %s::vector)",
                    page_size=self._service.config.page_size,
                )
            conn.commit()
            logger.info(f"Upserted {len(entries)} entries into '{self.name}'")

        self._service._execute_with_retry(_op, "upsert")

    def query(self, vector: list[float], k: int) -> list[RetrievedDoc]:
        """Top-k entries by cosine similarity, best first."""
        sql = f"""
        SELECT id, content, metadata, 1 - (embedding <=> %s::vector) AS score
        FROM {self.table}
        ORDER BY embedding <=> %s::vector
        LIMIT %s
        """

        def _op(conn):
            with conn.cursor() as cur:
                cur.execute(sql, (vector, vector, k))
                rows = cur.fetchall()
            return [
                RetrievedDoc(
                    text=row["content"],
                    score=float(row["score"]),
                    metadata=row["metadata"] if isinstance(row["metadata"], dict) else json.loads(row["metadata"] or "{}"),
                    entry_id=row["id"],
                )
                for row in rows
            ]

        return self._service._execute_with_retry(_op, "query")

    def stats(self) -> dict:
        def _op(conn):
            with conn.cursor() as cur:
                cur.execute(f"SELECT COUNT(*) AS record_count FROM {self.table}")
                row = cur.fetchone()
            return {"record_count": int(row["record_count"])}

        return self._service._execute_with_retry(_op, "stats")


# =============================================================================
# In-memory (numpy)
# =============================================================================

class InMemoryVectorIndex:
    """Entries held in a dict, searched by brute-force cosine similarity."""

    def __init__(self, name: str, dimension: int, metric: str = "cosine"):
        self.name = name
        self.dimension = dimension
        self.metric = metric
        self._entries: dict[str, IndexedEntry] = {}
        self._lock = threading.Lock()

    def upsert(self, entries: list[IndexedEntry]) -> None:
        with self._lock:
            for entry in entries:
                if len(entry.vector) != self.dimension:
                    raise ValueError(
                        f"Vector length {len(entry.vector)} does not match index dimension {self.dimension}"
                    )
                self._entries[entry.id] = entry

    def query(self, vector: list[float], k: int) -> list[RetrievedDoc]:
        with self._lock:
            entries = list(self._entries.values())
        if not entries or k <= 0:
            return []

        matrix = np.array([e.vector for e in entries], dtype=float)
        query = np.array(vector, dtype=float)
        norms = np.linalg.norm(matrix, axis=1) * np.linalg.norm(query)
        norms[norms == 0] = 1.0
        scores = matrix @ query / norms

        # Stable sort keeps insertion order among equal scores
        order = np.argsort(-scores, kind="stable")[:k]
        return [
            RetrievedDoc(
                text=entries[i].text,
                score=float(scores[i]),
                metadata=dict(entries[i].metadata),
                entry_id=entries[i].id,
            )
            for i in order
        ]

    def stats(self) -> dict:
        with self._lock:
            return {"record_count": len(self._entries)}


class InMemoryVectorIndexService:
    """Process-local vector index service."""

    def __init__(self):
        self._indexes: dict[str, InMemoryVectorIndex] = {}
        self._lock = threading.Lock()

    def list_indexes(self) -> list[str]:
        with self._lock:
            return sorted(self._indexes)

    def create_index(self, name: str, dimension: int, metric: str = "cosine") -> None:
        with self._lock:
            if name not in self._indexes:
                self._indexes[name] = InMemoryVectorIndex(name, dimension, metric)
                logger.info(f"Created in-memory index '{name}' (dimension={dimension}, metric={metric})")

    def describe_index(self, name: str) -> Optional[dict]:
        with self._lock:
            index = self._indexes.get(name)
        if index is None:
            return None
        return {"name": name, "dimension": index.dimension, "metric": index.metric}

    def index(self, name: str) -> InMemoryVectorIndex:
        with self._lock:
            if name not in self._indexes:
                raise KeyError(f"Index '{name}' does not exist")
            return self._indexes[name]


def get_vector_index_service(config) -> VectorIndexService:
    """Factory for the configured vector backend."""
    if config.vector_backend == "memory":
        return InMemoryVectorIndexService()
    return PgVectorIndexService(PgVectorConfig(connection_string=config.connection_string))


# =============================================================================
# Gateway
# =============================================================================

class VectorIndexGateway:
    """
    Owns the handle on the configured index.

    The handle is created at most once, by whichever caller needs it first;
    concurrent first use is serialized by a lock.
    """

    def __init__(self, service: VectorIndexService, index_name: str, metric: str = "cosine"):
        self._service = service
        self.index_name = index_name
        self.metric = metric
        self._handle: Optional[VectorIndex] = None
        self._lock = threading.Lock()

    @property
    def service(self) -> VectorIndexService:
        return self._service

    def _get_handle(self) -> VectorIndex:
        if self._handle is None:
            with self._lock:
                if self._handle is None:
                    self._handle = self._service.index(self.index_name)
        return self._handle

    def ensure_index(self, dimension: int) -> VectorIndex:
        """
        Make sure the index exists with the given dimension.

        Creates the index when absent. An existing index with a different
        dimension is a hard failure.

        Raises:
            DimensionMismatchError: if the existing index has another dimension
            IngestionError: if the index service fails
        """
        with self._lock:
            try:
                if self.index_name not in self._service.list_indexes():
                    logger.info(f"Index '{self.index_name}' not found, creating with dimension {dimension}")
                    self._service.create_index(self.index_name, dimension, self.metric)
                else:
                    description = self._service.describe_index(self.index_name) or {}
                    existing = description.get("dimension")
                    if existing is not None and int(existing) != dimension:
                        raise DimensionMismatchError(self.index_name, int(existing), dimension)

                if self._handle is None:
                    self._handle = self._service.index(self.index_name)
            except IngestionError:
                raise
            except Exception as e:
                raise IngestionError(f"Failed to prepare index '{self.index_name}': {e}") from e

        return self._handle

    def upsert(self, chunks: list[DocumentChunk], vectors: list[list[float]]) -> int:
        """
        Write chunks with their vectors, keyed by content-derived id.

        Returns:
            Number of distinct entries written
        """
        if len(chunks) != len(vectors):
            raise IngestionError(f"Mismatch: {len(chunks)} chunks, {len(vectors)} vectors")

        entries: dict[str, IndexedEntry] = {}
        for chunk, vector in zip(chunks, vectors):
            entry_id = chunk.chunk_id
            entries[entry_id] = IndexedEntry(
                id=entry_id,
                vector=list(vector),
                text=chunk.text,
                metadata=dict(chunk.metadata),
            )

        try:
            self._get_handle().upsert(list(entries.values()))
        except Exception as e:
            raise IngestionError(f"Failed to write to index '{self.index_name}': {e}") from e

        return len(entries)

    def search(self, vector: list[float], k: int) -> list[RetrievedDoc]:
        """
        Top-k similarity search, ordered by descending score.

        Raises:
            RetrievalError: if the index cannot be queried
        """
        try:
            docs = self._get_handle().query(vector, k)
        except Exception as e:
            raise RetrievalError(f"Vector index query failed: {e}") from e

        docs.sort(key=lambda d: d.score if d.score is not None else 0.0, reverse=True)
        logger.info(f"Retrieved {len(docs)} documents from '{self.index_name}'")
        return docs

    def is_ready(self) -> bool:
        """True when the index exists and holds at least one record."""
        try:
            if self.index_name not in self._service.list_indexes():
                return False
            return self._get_handle().stats().get("record_count", 0) > 0
        except Exception as e:
            logger.warning(f"Index readiness check failed: {e}")
            return False
