"""
Sources, Citations and Confidence

Turns retrieved chunks into EnhancedSources with stable ids, appends numbered
[n] markers to the answer text, and scores confidence from retrieval strength.

Source id format: sourceType:page:contentHash (e.g. "pdf:12:3f9a0c1d2e4b5a6f").
The same chunk text on the same page always yields the same id.
"""

import logging
from pathlib import Path

from .chunker import stable_chunk_id
from .domain_patterns import LABELS
from .models import Citation, EnhancedSource
from .vector_index import RetrievedDoc

logger = logging.getLogger(__name__)

SNIPPET_LENGTH = 200

# Rank-based fallback when the index supplies no score
RANK_SCORE_START = 0.9
RANK_SCORE_STEP = 0.2
RANK_SCORE_FLOOR = 0.1

CONFIDENCE_BASE = 0.6
CONFIDENCE_PER_DOC = 0.1
CONFIDENCE_CAP = 0.95


def rank_score(rank: int) -> float:
    """Score for the rank-th (0-based) result when the index gives none."""
    return max(RANK_SCORE_FLOOR, round(RANK_SCORE_START - rank * RANK_SCORE_STEP, 10))


def make_snippet(text: str, length: int = SNIPPET_LENGTH) -> str:
    text = " ".join(text.split())
    if len(text) <= length:
        return text
    return text[:length].rstrip() + "..."


def compute_confidence(retrieved_count: int, has_context: bool = False) -> float:
    """
    Heuristic confidence in [0, 0.95].

    Zero when nothing was retrieved and there is no conversation to lean on;
    otherwise grows with the number of retrieved documents.
    """
    if retrieved_count <= 0 and not has_context:
        return 0.0
    return min(CONFIDENCE_CAP, round(CONFIDENCE_BASE + retrieved_count * CONFIDENCE_PER_DOC, 10))


def attach_citations(answer_text: str, sources: list[EnhancedSource]) -> tuple[str, list[Citation]]:
    """
    Append one [n] marker per source, in source order.

    Returns:
        (answer text with markers, citations with 1-based markers)
    """
    if not sources:
        return answer_text, []

    citations = [
        Citation(marker=i, source_id=source.id)
        for i, source in enumerate(sources, start=1)
    ]
    markers = "".join(f" [{c.marker}]" for c in citations)
    return answer_text.rstrip() + markers, citations


class SourceBuilder:
    """
    Builds EnhancedSources from retrieved documents.

    Titles read "<document title> – Page N"; URLs point at the page anchor of
    the source file under `url_prefix`.
    """

    def __init__(self, default_title: str = "Swiss Legal Code", url_prefix: str = "/docs"):
        self.default_title = default_title
        self.url_prefix = url_prefix.rstrip("/")

    @classmethod
    def from_config(cls, config) -> "SourceBuilder":
        return cls(default_title=config.source_title, url_prefix=config.source_url_prefix)

    def build(self, docs: list[RetrievedDoc]) -> list[EnhancedSource]:
        """EnhancedSources in retrieval order."""
        return [self.build_one(doc, rank) for rank, doc in enumerate(docs)]

    def build_one(self, doc: RetrievedDoc, rank: int) -> EnhancedSource:
        page = doc.page
        title = doc.metadata.get("title") or self.default_title
        score = doc.score if doc.score is not None else rank_score(rank)

        return EnhancedSource(
            id=stable_chunk_id(doc.text, doc.metadata),
            title=LABELS["source_title"].format(title=title, page=page),
            page=page,
            url=self._url(doc.metadata, page),
            snippet=make_snippet(doc.text),
            score=score,
        )

    def _url(self, metadata: dict, page: int) -> str:
        filename = Path(metadata.get("source_path", "") or "").name
        base = f"{self.url_prefix}/{filename}" if filename else self.url_prefix
        return f"{base}#page={page}"
