"""
Ingestion Pipeline

Splitter -> Embedding Gateway -> Vector Index Gateway. A run either commits
every chunk or reports failure with zero stats; nothing is written until all
chunks are embedded and the index dimension is confirmed.
"""

import time
import logging
from typing import Iterable, Optional, Union

from .chunker import ContentSplitter, SplitterConfig
from .document_loader import DocumentLoader, SourceDocument
from .embeddings import EmbeddingGateway
from .errors import IngestionError
from .models import IngestResult
from .vector_index import VectorIndexGateway

logger = logging.getLogger(__name__)

DocumentInput = Union[SourceDocument, dict]


class IngestionPipeline:
    """
    Loads, splits, embeds and indexes the reference corpus.

    Usage:
        pipeline = IngestionPipeline(splitter, embedder, index)
        result = pipeline.ingest(sample_documents())
    """

    def __init__(
        self,
        splitter: ContentSplitter,
        embedder: EmbeddingGateway,
        index: VectorIndexGateway,
        loader: Optional[DocumentLoader] = None,
        document_path: Optional[str] = None,
    ):
        self.splitter = splitter
        self.embedder = embedder
        self.index = index
        self.loader = loader or DocumentLoader()
        self.document_path = document_path

    def ingest(
        self,
        documents: Optional[Iterable[DocumentInput]] = None,
        chunk_size: Optional[int] = None,
        chunk_overlap: Optional[int] = None,
    ) -> IngestResult:
        """
        Ingest documents into the vector index.

        Args:
            documents: Page-level documents. None loads from the configured
                document path; an empty list is an intentionally empty corpus.
            chunk_size: Override the splitter's chunk size for this run
            chunk_overlap: Override the splitter's overlap for this run

        Returns:
            IngestResult; never raises for ingestion failures
        """
        start_time = time.time()

        try:
            splitter = self._splitter_for(chunk_size, chunk_overlap)
            pages = self._resolve_documents(documents)

            if not pages:
                logger.warning("Ingesting an empty corpus; nothing to index")
                return IngestResult(
                    success=True,
                    message="No documents supplied; the corpus is empty",
                    processing_time_ms=self._elapsed_ms(start_time),
                )

            try:
                chunks = splitter.split_documents(pages)
            except Exception as e:
                raise IngestionError(f"Splitting failed: {e}") from e
            total_pages = len({(doc.source_path, doc.page) for doc in pages})

            if not chunks:
                logger.warning(f"No extractable text in {total_pages} pages")
                return IngestResult(
                    success=True,
                    message="Documents contained no extractable text",
                    total_pages=total_pages,
                    processing_time_ms=self._elapsed_ms(start_time),
                )

            try:
                vectors = self.embedder.embed_batch([chunk.text for chunk in chunks])
            except Exception as e:
                raise IngestionError(f"Embedding failed: {e}") from e

            dimension = len(vectors[0])
            logger.info(f"Embedded {len(chunks)} chunks (dimension={dimension})")

            self.index.ensure_index(dimension)
            written = self.index.upsert(chunks, vectors)

        except IngestionError as e:
            logger.error(f"Ingestion failed: {e}")
            return IngestResult(success=False, message=str(e))

        elapsed = self._elapsed_ms(start_time)
        logger.info(
            f"Ingestion complete: {len(chunks)} chunks ({written} distinct entries) "
            f"from {total_pages} pages in {elapsed}ms"
        )
        return IngestResult(
            success=True,
            message=f"Ingested {len(chunks)} chunks from {total_pages} pages",
            total_chunks=len(chunks),
            total_pages=total_pages,
            processing_time_ms=elapsed,
        )

    def ingest_file(
        self,
        file_path: str,
        chunk_size: Optional[int] = None,
        chunk_overlap: Optional[int] = None,
    ) -> IngestResult:
        """Load a PDF or text file and ingest its pages."""
        try:
            pages = self.loader.load(file_path)
        except IngestionError as e:
            logger.error(f"Ingestion failed: {e}")
            return IngestResult(success=False, message=str(e))
        return self.ingest(pages, chunk_size=chunk_size, chunk_overlap=chunk_overlap)

    def _resolve_documents(self, documents: Optional[Iterable[DocumentInput]]) -> list[SourceDocument]:
        if documents is None:
            if not self.document_path:
                raise IngestionError("No documents supplied and no document path configured")
            return self.loader.load(self.document_path)

        resolved = []
        for position, doc in enumerate(documents):
            if isinstance(doc, dict):
                if not isinstance(doc.get("metadata") or {}, dict):
                    raise IngestionError(f"Document {position} metadata must be a mapping")
                doc = SourceDocument.from_dict(doc)
            if not isinstance(doc, SourceDocument):
                raise IngestionError(f"Unsupported document type: {type(doc).__name__}")
            if not isinstance(doc.text, str):
                raise IngestionError(f"Document {position} has non-text content: {type(doc.text).__name__}")
            try:
                doc.page
            except (TypeError, ValueError) as e:
                raise IngestionError(f"Document {position} has an invalid page number: {e}") from e
            resolved.append(doc)
        return resolved

    def _splitter_for(self, chunk_size: Optional[int], chunk_overlap: Optional[int]) -> ContentSplitter:
        if chunk_size is None and chunk_overlap is None:
            return self.splitter
        base = self.splitter.config
        try:
            config = SplitterConfig(
                chunk_size=chunk_size if chunk_size is not None else base.chunk_size,
                chunk_overlap=chunk_overlap if chunk_overlap is not None else base.chunk_overlap,
            )
        except ValueError as e:
            raise IngestionError(f"Invalid chunk settings: {e}") from e
        return ContentSplitter(config)

    @staticmethod
    def _elapsed_ms(start_time: float) -> int:
        return int((time.time() - start_time) * 1000)
