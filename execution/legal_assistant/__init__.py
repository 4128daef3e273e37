"""
Legal Assistant - Retrieval-Augmented QA over the Swiss legal corpus

This module provides:
- Ingestion of the reference corpus (load, split, embed, index)
- Domain classification that keeps the assistant on legal topics
- Answers with numbered citations, stable source ids and confidence
- Follow-up questions and lawyer recommendations
- Incremental delivery as Server-Sent Events
"""

__version__ = "0.1.0"

from .chunker import ContentSplitter, SplitterConfig
from .embeddings import EmbeddingGateway
from .vector_index import VectorIndexGateway
from .ingestion import IngestionPipeline
from .classifier import DomainClassifier
from .answer_composer import AnswerComposer
from .streaming import StreamingAdapter
from .service import AssistantService
from .settings import AssistantConfig

__all__ = [
    "ContentSplitter",
    "SplitterConfig",
    "EmbeddingGateway",
    "VectorIndexGateway",
    "IngestionPipeline",
    "DomainClassifier",
    "AnswerComposer",
    "StreamingAdapter",
    "AssistantService",
    "AssistantConfig",
]
