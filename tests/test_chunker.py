"""
Tests for execution/legal_assistant/chunker.py

Covers: SplitterConfig validation, span overlap, reconstruction, separator
preference, empty pages, metadata propagation, and stable chunk ids.
"""

import pytest


LONG_TEXT = " ".join(
    f"Article {i}. Every person has the legal capacity to have rights and obligations under paragraph {i}."
    for i in range(1, 40)
)


def _reconstruct(chunks, overlap):
    text = chunks[0].text
    for chunk in chunks[1:]:
        text += chunk.text[overlap:]
    return text


class TestSplitterConfig:
    """Tests for SplitterConfig validation."""

    def test_defaults(self):
        from execution.legal_assistant.chunker import SplitterConfig
        config = SplitterConfig()
        assert config.chunk_size == 1200
        assert config.chunk_overlap == 300

    def test_overlap_must_be_smaller_than_size(self):
        from execution.legal_assistant.chunker import SplitterConfig
        with pytest.raises(ValueError):
            SplitterConfig(chunk_size=100, chunk_overlap=100)

    def test_size_must_be_positive(self):
        from execution.legal_assistant.chunker import SplitterConfig
        with pytest.raises(ValueError):
            SplitterConfig(chunk_size=0, chunk_overlap=0)

    def test_negative_overlap_rejected(self):
        from execution.legal_assistant.chunker import SplitterConfig
        with pytest.raises(ValueError):
            SplitterConfig(chunk_size=100, chunk_overlap=-1)


class TestContentSplitter:
    """Tests for ContentSplitter."""

    @pytest.fixture
    def splitter(self):
        from execution.legal_assistant.chunker import ContentSplitter, SplitterConfig
        return ContentSplitter(SplitterConfig(chunk_size=300, chunk_overlap=60))

    @pytest.fixture
    def page(self):
        from execution.legal_assistant.document_loader import SourceDocument
        return SourceDocument(
            text=LONG_TEXT,
            metadata={"page": 3, "source_path": "docs/swiss_legal.pdf", "title": "Swiss Legal Code"},
        )

    def test_short_text_is_single_chunk(self, splitter):
        from execution.legal_assistant.document_loader import SourceDocument
        chunks = splitter.split_document(SourceDocument(text="Short article.", metadata={"page": 1}))
        assert len(chunks) == 1
        assert chunks[0].text == "Short article."

    def test_chunks_respect_size(self, splitter, page):
        chunks = splitter.split_document(page)
        assert len(chunks) > 1
        assert all(len(c.text) <= 300 for c in chunks)

    def test_consecutive_chunks_share_exact_overlap(self, splitter, page):
        chunks = splitter.split_document(page)
        for previous, current in zip(chunks, chunks[1:]):
            assert previous.text[-60:] == current.text[:60]

    def test_reconstruction(self, splitter, page):
        chunks = splitter.split_document(page)
        assert _reconstruct(chunks, 60) == LONG_TEXT.strip()

    def test_reconstruction_without_separators(self):
        from execution.legal_assistant.chunker import ContentSplitter, SplitterConfig
        from execution.legal_assistant.document_loader import SourceDocument
        text = "x" * 1000
        splitter = ContentSplitter(SplitterConfig(chunk_size=100, chunk_overlap=30))
        chunks = splitter.split_document(SourceDocument(text=text, metadata={"page": 1}))
        assert _reconstruct(chunks, 30) == text
        assert all(len(c.text) == 100 for c in chunks[:-1])

    def test_prefers_paragraph_breaks(self):
        from execution.legal_assistant.chunker import ContentSplitter, SplitterConfig
        from execution.legal_assistant.document_loader import SourceDocument
        text = ("a" * 150) + "\n\n" + ("b" * 150)
        splitter = ContentSplitter(SplitterConfig(chunk_size=200, chunk_overlap=20))
        chunks = splitter.split_document(SourceDocument(text=text, metadata={"page": 1}))
        assert chunks[0].text.endswith("\n\n")

    def test_empty_page_yields_no_chunks(self, splitter):
        from execution.legal_assistant.document_loader import SourceDocument
        assert splitter.split_document(SourceDocument(text="   \n\n ", metadata={"page": 2})) == []
        assert splitter.split_document(SourceDocument(text="", metadata={"page": 2})) == []

    def test_never_emits_empty_chunks(self, splitter, sample_pages):
        chunks = splitter.split_documents(sample_pages)
        assert chunks
        assert all(c.text.strip() for c in chunks)

    def test_metadata_propagated(self, splitter, page):
        chunks = splitter.split_document(page)
        for index, chunk in enumerate(chunks):
            assert chunk.page == 3
            assert chunk.metadata["source_path"] == "docs/swiss_legal.pdf"
            assert chunk.metadata["chunk_index"] == index
            assert LONG_TEXT[chunk.metadata["start_char"]:chunk.metadata["end_char"]] == chunk.text

    def test_split_documents_preserves_order(self, splitter, sample_pages):
        chunks = splitter.split_documents(sample_pages)
        titles = [c.metadata["title"] for c in chunks]
        assert titles[0] == "Swiss Civil Code"
        assert titles[-1] == "Swiss Family Law"

    def test_overlap_does_not_cross_pages(self, splitter):
        from execution.legal_assistant.document_loader import SourceDocument
        pages = [
            SourceDocument(text="First page text.", metadata={"page": 1}),
            SourceDocument(text="Second page text.", metadata={"page": 2}),
        ]
        chunks = splitter.split_documents(pages)
        assert [c.text for c in chunks] == ["First page text.", "Second page text."]


class TestChunkIds:
    """Tests for content-hash chunk ids."""

    def test_same_text_and_page_same_id(self):
        from execution.legal_assistant.chunker import stable_chunk_id
        meta = {"page": 4, "source_path": "swiss_legal.pdf"}
        assert stable_chunk_id("Article 8", meta) == stable_chunk_id("Article 8", dict(meta))

    def test_id_format(self):
        from execution.legal_assistant.chunker import stable_chunk_id
        chunk_id = stable_chunk_id("Article 8", {"page": 4, "source_path": "swiss_legal.pdf"})
        source_type, page, digest = chunk_id.split(":")
        assert source_type == "pdf"
        assert page == "4"
        assert len(digest) == 16

    def test_text_change_changes_id(self):
        from execution.legal_assistant.chunker import stable_chunk_id
        meta = {"page": 4, "source_path": "swiss_legal.pdf"}
        assert stable_chunk_id("Article 8", meta) != stable_chunk_id("Article 9", meta)

    def test_change_after_first_hundred_chars_changes_id(self):
        from execution.legal_assistant.chunker import stable_chunk_id
        meta = {"page": 1, "source_path": "swiss_legal.pdf"}
        base = "a" * 150
        assert stable_chunk_id(base, meta) != stable_chunk_id(base + "b", meta)

    def test_page_change_changes_id(self):
        from execution.legal_assistant.chunker import stable_chunk_id
        assert stable_chunk_id("Article 8", {"page": 4}) != stable_chunk_id("Article 8", {"page": 5})

    def test_source_type_defaults_to_doc(self):
        from execution.legal_assistant.chunker import source_type
        assert source_type({}) == "doc"
        assert source_type({"source_path": "notes.TXT"}) == "txt"
        assert source_type({"source_type": "pdf", "source_path": "x.txt"}) == "pdf"
