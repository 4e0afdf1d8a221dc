"""
Embedding store implementations.

Pattern: Protocol → Production impl → Test double → Factory

This module contains:
1. EmbeddingStoreConfig - Configuration dataclass
2. PgVectorEmbeddingStore - PostgreSQL with pgvector (production)
3. InMemoryEmbeddingStore - In-memory store (testing/development)
4. get_embedding_store() - Factory function

INTERVIEW TALKING POINT:
------------------------
"Stage 0 is only sublinear because Postgres does the work: the document
centroids sit behind an IVFFlat cosine index and we probe a handful of
lists instead of scanning the corpus. The in-memory store answers the same
questions with a plain scan, which is all a unit test needs."
"""

from __future__ import annotations

import logging
import os
import threading
from dataclasses import dataclass
from typing import Iterable

import numpy as np

from doc_similarity.core import (
    CentroidHit,
    DocumentTotals,
    EmbeddingStoreError,
)
from doc_similarity.retrieval.document import COMPLETED_STATUS, Chunk, Document
from doc_similarity.similarity.vectors import cosine_similarity

# Optional: Only import psycopg if available (for local dev without postgres)
try:
    import psycopg
    from pgvector.psycopg import register_vector

    PGVECTOR_AVAILABLE = True
except ImportError:
    PGVECTOR_AVAILABLE = False

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# CONFIGURATION
# ---------------------------------------------------------------------------


@dataclass
class EmbeddingStoreConfig:
    """Configuration for the embedding store."""

    connection_string: str = "postgresql://localhost/documents"
    default_model: str = "text-embedding-005"
    embedding_dim: int = 768
    documents_table: str = "documents"
    chunks_table: str = "document_embeddings"
    ivfflat_lists: int = 100
    ivfflat_probes: int = 10

    @classmethod
    def from_env(cls) -> "EmbeddingStoreConfig":
        """Load config from environment variables."""
        return cls(
            connection_string=os.environ.get(
                "DATABASE_URL", "postgresql://localhost/documents"
            ),
            default_model=os.environ.get("EMBEDDING_MODEL", "text-embedding-005"),
            embedding_dim=int(os.environ.get("EMBEDDING_DIM", "768")),
            ivfflat_probes=int(os.environ.get("IVFFLAT_PROBES", "10")),
        )


# ---------------------------------------------------------------------------
# PGVECTOR STORE (Production)
# ---------------------------------------------------------------------------


class PgVectorEmbeddingStore:
    """
    PostgreSQL embedding store using pgvector.

    Stage 2 workers read concurrently, so each thread gets its own
    connection. close() shuts all of them.

    WHY PGVECTOR:
    - IVFFLAT INDEX: approximate centroid search, latency sublinear in corpus size
    - SAME DATABASE: documents, chunks and vectors share one transactional store
    - SQL FILTERS: embedding model and processing status filter inside the index scan
    """

    def __init__(self, config: EmbeddingStoreConfig):
        """
        Initialize with configuration. Connections open lazily.

        Args:
            config: Store configuration
        """
        self.config = config
        self._local = threading.local()
        self._connections: list = []
        self._lock = threading.Lock()

    def connect(self) -> None:
        """Establish a database connection for the calling thread."""
        if not PGVECTOR_AVAILABLE:
            raise ImportError(
                "pgvector not available. Install with: pip install pgvector psycopg[binary]"
            )

        try:
            conn = psycopg.connect(self.config.connection_string, autocommit=True)
            conn.execute("CREATE EXTENSION IF NOT EXISTS vector")
            register_vector(conn)
        except psycopg.Error as exc:
            raise EmbeddingStoreError("Failed to connect to embedding store", cause=exc) from exc

        self._local.conn = conn
        with self._lock:
            self._connections.append(conn)

    def close(self) -> None:
        """Close every connection opened by this store."""
        with self._lock:
            connections, self._connections = self._connections, []
        for conn in connections:
            conn.close()
        self._local = threading.local()

    @property
    def _conn(self):
        conn = getattr(self._local, "conn", None)
        if conn is None:
            self.connect()
            conn = self._local.conn
        return conn

    def _fetch(self, query: str, params: tuple) -> list[tuple]:
        try:
            return self._conn.execute(query, params).fetchall()
        except psycopg.Error as exc:
            raise EmbeddingStoreError("Embedding store query failed", cause=exc) from exc

    def create_schema(self) -> None:
        """Create the documents and chunk tables with their vector indexes."""
        docs = self.config.documents_table
        chunks = self.config.chunks_table
        dim = self.config.embedding_dim

        self._conn.execute(
            f"""
            CREATE TABLE IF NOT EXISTS {docs} (
                id TEXT PRIMARY KEY,
                title TEXT,
                filename TEXT,
                status TEXT NOT NULL DEFAULT 'completed',
                page_count INTEGER,
                centroid_embedding vector({dim}),
                effective_chunk_count INTEGER,
                total_characters INTEGER,
                embedding_model TEXT DEFAULT '{self.config.default_model}'
            )
        """
        )

        self._conn.execute(
            f"""
            CREATE TABLE IF NOT EXISTS {chunks} (
                document_id TEXT NOT NULL REFERENCES {docs}(id) ON DELETE CASCADE,
                chunk_index INTEGER NOT NULL,
                embedding vector({dim}),
                start_page_number INTEGER,
                end_page_number INTEGER,
                character_count INTEGER,
                char_start INTEGER,
                char_end INTEGER
            )
        """
        )

        self._conn.execute(
            f"""
            CREATE UNIQUE INDEX IF NOT EXISTS {chunks}_unique_idx
            ON {chunks} (document_id, chunk_index)
        """
        )

        # IVFFlat index for fast Stage 0 centroid filtering
        self._conn.execute(
            f"""
            CREATE INDEX IF NOT EXISTS {docs}_centroid_embedding_idx
            ON {docs}
            USING ivfflat (centroid_embedding vector_cosine_ops)
            WITH (lists = {self.config.ivfflat_lists})
            WHERE centroid_embedding IS NOT NULL
        """
        )

    def insert_document(self, document: Document, chunks: Iterable[Chunk] = ()) -> None:
        """
        Upsert a processed document and replace its chunks.

        The document row, the chunk delete and the chunk inserts commit
        together: a failed insert leaves the previous version untouched.

        Raises:
            EmbeddingStoreError: the write failed and was rolled back
        """
        docs = self.config.documents_table
        chunk_list = list(chunks)
        try:
            with self._conn.transaction():
                self._conn.execute(
                    f"""
                    INSERT INTO {docs} (id, title, filename, status, page_count,
                                        centroid_embedding, effective_chunk_count,
                                        total_characters, embedding_model)
                    VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s)
                    ON CONFLICT (id) DO UPDATE SET
                        title = EXCLUDED.title,
                        filename = EXCLUDED.filename,
                        status = EXCLUDED.status,
                        page_count = EXCLUDED.page_count,
                        centroid_embedding = EXCLUDED.centroid_embedding,
                        effective_chunk_count = EXCLUDED.effective_chunk_count,
                        total_characters = EXCLUDED.total_characters,
                        embedding_model = EXCLUDED.embedding_model
                    """,
                    (
                        document.id,
                        document.title,
                        document.filename,
                        document.status,
                        document.page_count,
                        document.centroid_embedding,
                        document.effective_chunk_count,
                        document.total_characters,
                        document.embedding_model,
                    ),
                )

                if not chunk_list:
                    return

                self._conn.execute(
                    f"DELETE FROM {self.config.chunks_table} WHERE document_id = %s",
                    (document.id,),
                )
                with self._conn.cursor() as cur:
                    cur.executemany(
                        f"""
                        INSERT INTO {self.config.chunks_table} (document_id, chunk_index,
                            embedding, start_page_number, end_page_number, character_count,
                            char_start, char_end)
                        VALUES (%s, %s, %s, %s, %s, %s, %s, %s)
                        """,
                        [
                            (
                                chunk.document_id,
                                chunk.chunk_index,
                                chunk.embedding,
                                chunk.start_page,
                                chunk.end_page,
                                chunk.character_count,
                                chunk.char_start,
                                chunk.char_end,
                            )
                            for chunk in chunk_list
                        ],
                    )
        except psycopg.Error as exc:
            raise EmbeddingStoreError(
                f"Could not write document {document.id}", cause=exc
            ) from exc

    def get_document(self, document_id: str) -> Document | None:
        rows = self._fetch(
            f"""
            SELECT id, embedding_model, centroid_embedding, effective_chunk_count,
                   total_characters, title, filename, page_count, status
            FROM {self.config.documents_table}
            WHERE id = %s
            """,
            (document_id,),
        )
        if not rows:
            return None

        row = rows[0]
        return Document(
            id=row[0],
            embedding_model=row[1] or self.config.default_model,
            centroid_embedding=np.asarray(row[2]) if row[2] is not None else None,
            effective_chunk_count=row[3],
            total_characters=row[4],
            title=row[5],
            filename=row[6],
            page_count=row[7],
            status=row[8] or COMPLETED_STATUS,
        )

    def get_document_centroid(self, document_id: str) -> np.ndarray | None:
        rows = self._fetch(
            f"SELECT centroid_embedding FROM {self.config.documents_table} WHERE id = %s",
            (document_id,),
        )
        if not rows or rows[0][0] is None:
            return None
        return np.asarray(rows[0][0])

    def approximate_nearest_centroids(
        self,
        vector: np.ndarray,
        k: int,
        model_tag: str,
    ) -> list[CentroidHit]:
        """Probe the IVFFlat index for the k nearest completed centroids."""
        if k <= 0:
            return []

        probes = int(self.config.ivfflat_probes)
        try:
            self._conn.execute(f"SET ivfflat.probes = {probes}")
        except psycopg.Error as exc:
            raise EmbeddingStoreError("Failed to configure ivfflat probes", cause=exc) from exc

        rows = self._fetch(
            f"""
            SELECT id, embedding_model,
                   centroid_embedding <=> %s AS distance
            FROM {self.config.documents_table}
            WHERE centroid_embedding IS NOT NULL
              AND total_characters IS NOT NULL
              AND status = %s
              AND embedding_model = %s
            ORDER BY distance
            LIMIT %s
            """,
            (np.asarray(vector), COMPLETED_STATUS, model_tag, k),
        )

        return [
            CentroidHit(
                document_id=row[0],
                embedding_model=row[1],
                score=1 - float(row[2]),  # Convert distance to similarity
            )
            for row in rows
        ]

    def get_chunks(self, document_id: str) -> list[Chunk]:
        rows = self._fetch(
            f"""
            SELECT document_id, chunk_index, embedding,
                   start_page_number, end_page_number,
                   character_count, char_start, char_end
            FROM {self.config.chunks_table}
            WHERE document_id = %s AND embedding IS NOT NULL
            ORDER BY chunk_index
            """,
            (document_id,),
        )
        return [
            Chunk(
                document_id=row[0],
                chunk_index=row[1],
                embedding=np.asarray(row[2]),
                start_page=row[3] if row[3] is not None else 1,
                end_page=row[4] if row[4] is not None else (row[3] or 1),
                character_count=row[5] or 0,
                char_start=row[6],
                char_end=row[7],
            )
            for row in rows
        ]

    def get_document_totals(self, document_id: str) -> DocumentTotals | None:
        rows = self._fetch(
            f"""
            SELECT effective_chunk_count, total_characters
            FROM {self.config.documents_table}
            WHERE id = %s
            """,
            (document_id,),
        )
        if not rows or rows[0][0] is None or rows[0][1] is None:
            return None
        return DocumentTotals(effective_chunk_count=rows[0][0], total_characters=rows[0][1])


# ---------------------------------------------------------------------------
# IN-MEMORY STORE (Testing/Development)
# ---------------------------------------------------------------------------


class InMemoryEmbeddingStore:
    """
    In-memory embedding store for development/testing.

    Implements the same interface as PgVectorEmbeddingStore but doesn't
    require Postgres. Centroid search is an exact cosine scan, which is
    fine for test corpora of a few hundred documents.
    """

    def __init__(self, documents: Iterable[tuple[Document, list[Chunk]]] = ()):
        self._documents: dict[str, Document] = {}
        self._chunks: dict[str, list[Chunk]] = {}
        self.centroid_queries = 0
        for document, chunks in documents:
            self.insert_document(document, chunks)

    def connect(self) -> None:
        """No-op for in-memory store."""
        pass

    def close(self) -> None:
        """No-op for in-memory store."""
        pass

    def create_schema(self) -> None:
        """No-op for in-memory store."""
        pass

    def insert_document(self, document: Document, chunks: Iterable[Chunk] = ()) -> None:
        """Insert document and its chunks into memory."""
        self._documents[document.id] = document
        chunk_list = sorted(chunks, key=lambda c: c.chunk_index)
        if chunk_list or document.id not in self._chunks:
            self._chunks[document.id] = chunk_list

    def insert_documents_batch(self, items: Iterable[tuple[Document, list[Chunk]]]) -> None:
        """Batch insert."""
        for document, chunks in items:
            self.insert_document(document, chunks)

    def __len__(self) -> int:
        return len(self._documents)

    def get_document(self, document_id: str) -> Document | None:
        return self._documents.get(document_id)

    def get_document_centroid(self, document_id: str) -> np.ndarray | None:
        doc = self._documents.get(document_id)
        return doc.centroid_embedding if doc is not None else None

    def approximate_nearest_centroids(
        self,
        vector: np.ndarray,
        k: int,
        model_tag: str,
    ) -> list[CentroidHit]:
        """Search using cosine similarity over completed documents of model_tag."""
        self.centroid_queries += 1
        if k <= 0:
            return []

        scored = []
        for doc in self._documents.values():
            if not doc.is_searchable or doc.embedding_model != model_tag:
                continue
            if doc.centroid_embedding.shape != np.shape(vector):
                logger.debug(f"Skipping {doc.id}: centroid dimension mismatch")
                continue
            scored.append((doc, cosine_similarity(vector, doc.centroid_embedding)))

        # Sort by score descending, id for ties
        scored.sort(key=lambda x: (-x[1], x[0].id))

        return [
            CentroidHit(document_id=doc.id, score=score, embedding_model=doc.embedding_model)
            for doc, score in scored[:k]
        ]

    def get_chunks(self, document_id: str) -> list[Chunk]:
        return list(self._chunks.get(document_id, []))

    def get_document_totals(self, document_id: str) -> DocumentTotals | None:
        doc = self._documents.get(document_id)
        if doc is None or doc.total_characters is None or doc.effective_chunk_count is None:
            return None
        return DocumentTotals(
            effective_chunk_count=doc.effective_chunk_count,
            total_characters=doc.total_characters,
        )


# ---------------------------------------------------------------------------
# FACTORY FUNCTION
# ---------------------------------------------------------------------------


def get_embedding_store(
    use_postgres: bool = False,
    config: EmbeddingStoreConfig | None = None,
) -> PgVectorEmbeddingStore | InMemoryEmbeddingStore:
    """
    Factory function to get the appropriate embedding store.

    Args:
        use_postgres: Use PostgreSQL store (default: False for dev)
        config: Store configuration (read from env if not provided)

    Returns:
        EmbeddingStore implementation
    """
    if use_postgres and PGVECTOR_AVAILABLE:
        return PgVectorEmbeddingStore(config or EmbeddingStoreConfig.from_env())
    if use_postgres:
        logger.warning("pgvector not installed, falling back to in-memory embedding store")
    return InMemoryEmbeddingStore()
