"""
Content Splitter

Turns page-level documents into overlapping character chunks that keep their
page and position metadata. Consecutive chunks from the same page share
exactly `chunk_overlap` characters, so dropping the overlap from every chunk
after the first and concatenating reconstructs the page text.

Cut points prefer paragraph, line, sentence, then word boundaries inside the
window, falling back to a hard cut at `chunk_size`.
"""

import hashlib
import logging
from pathlib import Path
from dataclasses import dataclass, field
from typing import Iterable, Optional

from .document_loader import SourceDocument

logger = logging.getLogger(__name__)

# Preferred cut points, best first
SEPARATORS = ("\n\n", "\n", ". ", " ")


def content_hash(text: str) -> str:
    """Short, stable hash of chunk text."""
    return hashlib.sha256(text.encode("utf-8")).hexdigest()[:16]


def source_type(metadata: dict) -> str:
    """Source kind used as the id prefix: the file extension, or "doc"."""
    explicit = metadata.get("source_type")
    if explicit:
        return str(explicit)
    suffix = Path(metadata.get("source_path", "") or "").suffix.lower().lstrip(".")
    return suffix or "doc"


def stable_chunk_id(text: str, metadata: dict) -> str:
    """
    Identity of a chunk: `sourceType:page:contentHash`.

    Identical text on the same page always yields the same id; any change to
    the text or page yields a different one.
    """
    page = int(metadata.get("page", 0) or 0)
    return f"{source_type(metadata)}:{page}:{content_hash(text)}"


@dataclass(frozen=True)
class DocumentChunk:
    """A bounded span of page text, the unit of embedding and retrieval."""
    text: str
    metadata: dict = field(default_factory=dict)

    @property
    def chunk_id(self) -> str:
        return stable_chunk_id(self.text, self.metadata)

    @property
    def page(self) -> int:
        return int(self.metadata.get("page", 0) or 0)

    def to_dict(self) -> dict:
        return {
            "chunk_id": self.chunk_id,
            "text": self.text,
            "metadata": dict(self.metadata),
        }


@dataclass
class SplitterConfig:
    """Chunk size and overlap, in characters."""
    chunk_size: int = 1200
    chunk_overlap: int = 300

    def __post_init__(self):
        if self.chunk_size <= 0:
            raise ValueError("chunk_size must be positive")
        if not 0 <= self.chunk_overlap < self.chunk_size:
            raise ValueError(
                f"chunk_overlap ({self.chunk_overlap}) must be >= 0 and smaller than "
                f"chunk_size ({self.chunk_size})"
            )


class ContentSplitter:
    """
    Splits SourceDocuments into ordered DocumentChunks.

    Documents without extractable text produce no chunks. Empty or
    whitespace-only chunks are never emitted.
    """

    def __init__(self, config: Optional[SplitterConfig] = None):
        self.config = config or SplitterConfig()

    def split_documents(self, documents: Iterable[SourceDocument]) -> list[DocumentChunk]:
        """
        Split every document, preserving document order.

        Args:
            documents: Page-level SourceDocuments

        Returns:
            Ordered list of DocumentChunks
        """
        chunks = []
        doc_count = 0
        for document in documents:
            doc_count += 1
            chunks.extend(self.split_document(document))

        logger.info(f"Split {doc_count} documents into {len(chunks)} chunks")
        return chunks

    def split_document(self, document: SourceDocument) -> list[DocumentChunk]:
        """Split a single document into chunks."""
        text = self._normalize(document.text)
        if not text:
            logger.debug(f"No extractable text on page {document.page} of {document.source_path or 'document'}")
            return []

        chunks = []
        for index, (start, end) in enumerate(self.split_spans(text)):
            piece = text[start:end]
            if not piece.strip():
                continue
            metadata = dict(document.metadata)
            metadata.update({
                "chunk_index": index,
                "start_char": start,
                "end_char": end,
            })
            chunks.append(DocumentChunk(text=piece, metadata=metadata))
        return chunks

    def split_spans(self, text: str) -> list[tuple[int, int]]:
        """
        Compute (start, end) character spans over text.

        Each span after the first starts exactly `chunk_overlap` characters
        before the previous span's end.
        """
        size = self.config.chunk_size
        overlap = self.config.chunk_overlap
        length = len(text)

        spans = []
        start = 0
        while True:
            if length - start <= size:
                spans.append((start, length))
                break
            end = self._find_cut(text, start, start + size)
            spans.append((start, end))
            start = end - overlap

        return spans

    def _find_cut(self, text: str, start: int, hard_end: int) -> int:
        """Best cut point in (start, hard_end] that still moves the window forward."""
        # The next chunk starts at cut - overlap, which must be past `start`
        floor = start + max(self.config.chunk_overlap + 1, self.config.chunk_size // 2)

        for separator in SEPARATORS:
            idx = text.rfind(separator, floor, hard_end)
            if idx != -1:
                cut = idx + len(separator)
                if floor < cut <= hard_end:
                    return cut
        return hard_end

    def _normalize(self, text: str) -> str:
        if not text:
            return ""
        return text.replace("\r\n", "\n").replace("\r", "\n").strip()
