"""
Document Loader - Reads the reference corpus into page-level documents

PDFs are read page by page with PyMuPDF so every page keeps its 1-based page
number for citations. Plain text and markdown files load as a single page.
"""

import logging
from pathlib import Path
from dataclasses import dataclass, field
from typing import Optional

from .errors import IngestionError

logger = logging.getLogger(__name__)

TEXT_SUFFIXES = {".txt", ".md", ".markdown"}


@dataclass
class SourceDocument:
    """One page of raw text with its metadata."""
    text: str
    metadata: dict = field(default_factory=dict)

    @property
    def page(self) -> int:
        return int(self.metadata.get("page", 0) or 0)

    @property
    def source_path(self) -> str:
        return self.metadata.get("source_path", "")

    def to_dict(self) -> dict:
        return {"text": self.text, "metadata": dict(self.metadata)}

    @classmethod
    def from_dict(cls, data: dict) -> "SourceDocument":
        """Build from {"text"|"pageContent": ..., "metadata": {...}}."""
        text = data.get("text")
        if text is None:
            text = data.get("pageContent", "")
        return cls(text=text or "", metadata=dict(data.get("metadata") or {}))


class DocumentLoader:
    """
    Loads PDF and text files into SourceDocuments.

    Each returned document carries `page` (1-based), `source_path`, and `title`
    metadata. Pages without extractable text are still returned so page counts
    stay accurate; the splitter yields no chunks for them.
    """

    def __init__(self, title: Optional[str] = None):
        self._title = title

    def load(self, file_path: str) -> list[SourceDocument]:
        """
        Load a document from disk.

        Args:
            file_path: Path to a .pdf, .txt or .md file

        Returns:
            List of SourceDocument, one per page

        Raises:
            IngestionError: if the file is missing, unsupported, or unreadable
        """
        path = Path(file_path)
        if not path.exists():
            raise IngestionError(f"Document not found: {file_path}")

        suffix = path.suffix.lower()
        try:
            if suffix == ".pdf":
                documents = self._load_pdf(path)
            elif suffix in TEXT_SUFFIXES:
                documents = self._load_text(path)
            else:
                raise IngestionError(f"Unsupported document type: {suffix or path.name}")
        except IngestionError:
            raise
        except Exception as e:
            raise IngestionError(f"Failed to load {path.name}: {e}") from e

        logger.info(f"Loaded {len(documents)} pages from {path.name}")
        return documents

    def _load_pdf(self, path: Path) -> list[SourceDocument]:
        """Extract text per page with PyMuPDF."""
        import fitz  # PyMuPDF

        documents = []
        with fitz.open(str(path)) as doc:
            for page_index in range(len(doc)):
                page_text = doc[page_index].get_text()
                documents.append(SourceDocument(
                    text=page_text,
                    metadata=self._metadata(path, page_index + 1),
                ))
        return documents

    def _load_text(self, path: Path) -> list[SourceDocument]:
        text = path.read_text(encoding="utf-8")
        return [SourceDocument(text=text, metadata=self._metadata(path, 1))]

    def _metadata(self, path: Path, page: int) -> dict:
        return {
            "page": page,
            "source_path": str(path),
            "title": self._title or path.stem.replace("_", " ").title(),
        }
