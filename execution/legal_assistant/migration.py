"""
Response versioning for persisted messages.

Messages stored before enriched answers existed carry plain
{content, page, score} sources and no version tag. migrate_message_to_v2()
lifts them to the current shape using the same source-id derivation as live
answers, so old and new messages cite the same passage identically.
"""

import logging
from typing import Optional

from .citation import SourceBuilder
from .models import RESPONSE_VERSION, EnhancedSource, ResponseMetrics
from .vector_index import RetrievedDoc

logger = logging.getLogger(__name__)

# Legacy answers were all drawn from the single reference PDF
LEGACY_SOURCE_PATH = "swiss_legal.pdf"
LEGACY_DEFAULT_SCORE = 0.5


def message_version(message: dict) -> Optional[int]:
    version = message.get("response_version", message.get("responseVersion"))
    return int(version) if version else None


def is_legacy_message(message: dict) -> bool:
    """True for untagged or version-1 messages."""
    version = message_version(message)
    return version is None or version == 1


def enhance_legacy_source(source: dict, builder: Optional[SourceBuilder] = None) -> EnhancedSource:
    """Convert a legacy {content, page, section?, score} source."""
    builder = builder or SourceBuilder()
    metadata = {
        "page": int(source.get("page") or 0),
        "source_path": LEGACY_SOURCE_PATH,
    }
    if source.get("section"):
        metadata["section"] = source["section"]

    doc = RetrievedDoc(
        text=source.get("content") or "",
        score=source.get("score") or LEGACY_DEFAULT_SCORE,
        metadata=metadata,
    )
    return builder.build_one(doc, rank=0)


def migrate_message_to_v2(message: dict, builder: Optional[SourceBuilder] = None) -> dict:
    """
    Return a copy of a legacy message in the current response shape.

    Already-current messages are returned unchanged (as a copy).
    """
    if not is_legacy_message(message):
        return dict(message)

    migrated = {k: v for k, v in message.items() if k not in ("responseVersion", "lawyerRecommendations", "confidence")}
    sources = [enhance_legacy_source(s, builder) for s in message.get("sources") or []]

    migrated.update({
        "sources": [s.model_dump() for s in sources],
        "citations": [],
        "follow_ups": [],
        "recommendations": list(message.get("lawyerRecommendations") or message.get("recommendations") or []),
        "metrics": ResponseMetrics(confidence=float(message.get("confidence") or 0.0)).model_dump(),
        "response_version": RESPONSE_VERSION,
    })
    logger.debug(f"Migrated legacy message with {len(sources)} sources")
    return migrated
