"""
Assistant Service - the caller interface

Builds every collaborator once at startup and exposes ingest / answer /
answer_streaming. The HTTP adapter and the CLI only talk to this class.
"""

import logging
import threading
from typing import Iterator, Optional

from .answer_composer import AnswerComposer
from .chunker import ContentSplitter, SplitterConfig
from .citation import SourceBuilder
from .classifier import DomainClassifier
from .document_loader import DocumentLoader
from .embeddings import EmbeddingGateway, get_embedding_provider
from .enrichment import FollowUpGenerator, RecommendationGenerator
from .ingestion import IngestionPipeline
from .llm import OpenAIChatModel
from .metrics import MetricsCollector, get_metrics_collector
from .models import AssistantResponse, IngestResult
from .sample_corpus import sample_documents
from .settings import AssistantConfig
from .streaming import StreamingAdapter
from .vector_index import VectorIndexGateway, get_vector_index_service

logger = logging.getLogger(__name__)


class AssistantService:
    """
    Owns the configured pipeline.

    Collaborators (language model, embedding provider, vector index service)
    may be injected; anything not injected is built from the configuration,
    which is then validated. Configuration problems raise ConfigurationError
    from startup() and are the only errors that escape this class.
    """

    def __init__(
        self,
        config: Optional[AssistantConfig] = None,
        model=None,
        embedding_provider=None,
        index_service=None,
        metrics: Optional[MetricsCollector] = None,
    ):
        self.config = config or AssistantConfig.from_env()
        self._model = model
        self._embedding_provider = embedding_provider
        self._index_service = index_service
        self.metrics = metrics or get_metrics_collector()

        self._started = False
        self._start_lock = threading.Lock()

    def startup(self) -> "AssistantService":
        """Validate configuration and construct the pipeline. Idempotent."""
        with self._start_lock:
            if self._started:
                return self
            self._build()
            self._started = True
        return self

    def _build(self) -> None:
        config = self.config
        if self._model is None or self._embedding_provider is None or self._index_service is None:
            config.validate()

        self.model = self._model or OpenAIChatModel.from_config(config)
        self.embedder = EmbeddingGateway(self._embedding_provider or get_embedding_provider(config))
        self.index = VectorIndexGateway(
            self._index_service or get_vector_index_service(config),
            config.index_name,
            config.index_metric,
        )

        self.splitter = ContentSplitter(SplitterConfig(config.chunk_size, config.chunk_overlap))
        self.ingestion = IngestionPipeline(
            self.splitter,
            self.embedder,
            self.index,
            loader=DocumentLoader(title=config.source_title),
            document_path=config.document_path,
        )

        self.classifier = DomainClassifier.from_config(self.model, config)
        self.composer = AnswerComposer(
            model=self.model,
            classifier=self.classifier,
            embedder=self.embedder,
            index=self.index,
            source_builder=SourceBuilder.from_config(config),
            follow_ups=FollowUpGenerator(self.model) if config.enable_follow_ups else None,
            recommendations=(
                RecommendationGenerator(self.model, config.domain_name)
                if config.enable_recommendations else None
            ),
            top_k=config.top_k,
            context_turns=config.context_turns,
            domain_name=config.domain_name,
            assistant_name=config.assistant_name,
            enrichment_workers=config.enrichment_workers,
        )
        self.streaming = StreamingAdapter(self)
        logger.info(f"Assistant service started (index={config.index_name})")

    def _ensure_started(self) -> None:
        if not self._started:
            self.startup()

    # =========================================================================
    # Caller interface
    # =========================================================================

    def ingest(self, documents=None, chunk_size: Optional[int] = None, chunk_overlap: Optional[int] = None) -> IngestResult:
        """Ingest documents, or the configured document path when None."""
        self._ensure_started()
        result = self.ingestion.ingest(documents, chunk_size=chunk_size, chunk_overlap=chunk_overlap)
        self.metrics.record_ingestion(result)
        return result

    def ingest_file(self, file_path: str, chunk_size: Optional[int] = None, chunk_overlap: Optional[int] = None) -> IngestResult:
        """Ingest a single PDF or text file."""
        self._ensure_started()
        result = self.ingestion.ingest_file(file_path, chunk_size=chunk_size, chunk_overlap=chunk_overlap)
        self.metrics.record_ingestion(result)
        return result

    def ingest_samples(self, chunk_size: Optional[int] = None, chunk_overlap: Optional[int] = None) -> IngestResult:
        """Ingest the built-in sample corpus."""
        return self.ingest(sample_documents(), chunk_size=chunk_size, chunk_overlap=chunk_overlap)

    def answer(
        self,
        question: str,
        recent_turns=None,
        cancel_event: Optional[threading.Event] = None,
        on_token=None,
        on_metadata=None,
    ) -> AssistantResponse:
        """Answer a question. Always returns a well-formed response."""
        self._ensure_started()
        with self.metrics.track_query(question) as tracker:
            response = self.composer.answer(
                question,
                recent_turns,
                cancel_event=cancel_event,
                on_token=on_token,
                on_metadata=on_metadata,
            )
            tracker.set_response(response)
        return response

    def answer_streaming(self, question: str, recent_turns=None) -> Iterator[str]:
        """Answer as a stream of Server-Sent Events."""
        self._ensure_started()
        return self.streaming.stream(question, recent_turns)

    def is_ready(self) -> bool:
        """True when the index exists and holds records."""
        self._ensure_started()
        return self.index.is_ready()


_service: Optional[AssistantService] = None
_service_lock = threading.Lock()


def get_service() -> AssistantService:
    """Process-wide service built from the environment on first use."""
    global _service
    if _service is None:
        with _service_lock:
            if _service is None:
                _service = AssistantService().startup()
    return _service


def set_service(service: Optional[AssistantService]) -> None:
    """Replace the process-wide service (used by tests and embedding apps)."""
    global _service
    with _service_lock:
        _service = service
