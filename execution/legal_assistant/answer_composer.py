"""
Query Pipeline / Answer Composer

Pipeline per question:
    1. Domain classification (heuristics first, model fallback)
    2. Out of domain: natural reply, no retrieval, confidence 0.5
    3. Embed question, top-k retrieval
    4. No documents and no conversation: fixed "no information" reply
    5. Context assembly (pages + recent turns) and prompt construction
    6. Answer generation, normalised to plain text
    7. EnhancedSources, [n] citation markers, confidence
    8. Follow-ups and recommendations, concurrently, after the answer

Every failure is converted into a well-formed AssistantResponse; nothing
raises to the caller. Cancellation is checked before each external call.
"""

import time
import logging
import threading
from dataclasses import dataclass, field
from concurrent.futures import ThreadPoolExecutor
from typing import Callable, Optional

from .citation import SourceBuilder, attach_citations, compute_confidence
from .classifier import DomainClassifier, format_conversation
from .domain_patterns import (
    CANCELLED_MESSAGE,
    ERROR_MESSAGE,
    LABELS,
    LLM_PROMPTS,
    NO_INFORMATION_MESSAGE,
)
from .embeddings import EmbeddingGateway
from .enrichment import FollowUpGenerator, RecommendationGenerator
from .errors import PipelineCancelled, RetrievalError
from .llm import LanguageModel, to_messages
from .models import (
    AssistantResponse,
    ConversationTurn,
    ResponseMetrics,
    TokenUsage,
    coerce_turns,
)
from .vector_index import RetrievedDoc, VectorIndexGateway

logger = logging.getLogger(__name__)

GENERAL_CONFIDENCE = 0.5

TokenCallback = Callable[[str], None]
MetadataCallback = Callable[[dict], None]


@dataclass
class _QueryRun:
    """Mutable bookkeeping for one answer() call."""
    question: str
    turns: list[ConversationTurn]
    cancel_event: Optional[threading.Event]
    on_token: Optional[TokenCallback]
    on_metadata: Optional[MetadataCallback]
    start_time: float = field(default_factory=time.time)
    usage: TokenUsage = field(default_factory=TokenUsage)
    in_domain: Optional[bool] = None

    def add_usage(self, usage: Optional[TokenUsage]) -> None:
        self.usage = self.usage.add(usage)

    def check_cancelled(self, stage: str) -> None:
        if self.cancel_event is not None and self.cancel_event.is_set():
            raise PipelineCancelled(f"Cancelled before {stage}")

    def elapsed_ms(self) -> int:
        return int((time.time() - self.start_time) * 1000)


class AnswerComposer:
    """
    Answers one question end to end.

    Usage:
        composer = AnswerComposer(model, classifier, embedder, index, SourceBuilder())
        response = composer.answer("What is Article 1 of the Civil Code?")
    """

    def __init__(
        self,
        model: LanguageModel,
        classifier: DomainClassifier,
        embedder: EmbeddingGateway,
        index: VectorIndexGateway,
        source_builder: SourceBuilder,
        follow_ups: Optional[FollowUpGenerator] = None,
        recommendations: Optional[RecommendationGenerator] = None,
        top_k: int = 5,
        context_turns: int = 6,
        domain_name: str = "Swiss Legal System",
        assistant_name: str = "SwizzMitch",
        enrichment_workers: int = 2,
    ):
        self.model = model
        self.classifier = classifier
        self.embedder = embedder
        self.index = index
        self.source_builder = source_builder
        self.follow_ups = follow_ups
        self.recommendations = recommendations
        self.top_k = top_k
        self.context_turns = context_turns
        self.domain_name = domain_name
        self.assistant_name = assistant_name
        self.enrichment_workers = max(1, enrichment_workers)

    def answer(
        self,
        question: str,
        recent_turns=None,
        cancel_event: Optional[threading.Event] = None,
        on_token: Optional[TokenCallback] = None,
        on_metadata: Optional[MetadataCallback] = None,
    ) -> AssistantResponse:
        """
        Answer a question, optionally with prior conversation turns.

        Args:
            question: The user's question
            recent_turns: ConversationTurns (or dicts), oldest first
            cancel_event: Set by the caller to abandon the request
            on_token: Receives answer text as it is generated
            on_metadata: Receives {"sources", "confidence"} once retrieval is known

        Returns:
            AssistantResponse with status complete, partial, or error
        """
        run = _QueryRun(
            question=question,
            turns=[],
            cancel_event=cancel_event,
            on_token=on_token,
            on_metadata=on_metadata,
        )

        try:
            run.turns = coerce_turns(recent_turns)
            return self._answer(run)
        except PipelineCancelled as e:
            logger.info(f"Query abandoned: {e}")
            return self._error_response(run, CANCELLED_MESSAGE)
        except Exception as e:
            logger.error(f"Query failed: {type(e).__name__}: {e}", exc_info=True)
            return self._error_response(run, ERROR_MESSAGE)

    # =========================================================================
    # Pipeline
    # =========================================================================

    def _answer(self, run: _QueryRun) -> AssistantResponse:
        run.check_cancelled("classification")
        classification = self.classifier.classify(run.question, run.turns)
        run.add_usage(classification.usage)
        run.in_domain = classification.in_domain

        if not classification.in_domain:
            return self._general_response(run)

        status = "complete"
        run.check_cancelled("retrieval")
        try:
            docs = self._retrieve(run.question)
        except RetrievalError as e:
            if not run.turns:
                raise
            logger.warning(f"Retrieval failed, answering from conversation only: {e}")
            docs = []
            status = "partial"

        if not docs and not run.turns:
            logger.info("No documents retrieved and no conversation context")
            return self._no_information_response(run)

        sources = self.source_builder.build(docs)
        confidence = compute_confidence(len(docs), has_context=bool(run.turns))
        if run.on_metadata:
            run.on_metadata({
                "sources": [s.model_dump() for s in sources],
                "confidence": confidence,
            })

        messages = self._build_messages(run.question, docs, run.turns)
        run.check_cancelled("generation")
        answer_text = self._generate(run, messages)

        text_with_citations, citations = attach_citations(answer_text, sources)
        if run.on_token and citations:
            run.on_token(text_with_citations[len(answer_text.rstrip()):])

        follow_ups, recommendations = self._enrich(run, answer_text)

        logger.info(
            f"Answered with {len(sources)} sources, confidence={confidence:.2f}, "
            f"{len(follow_ups)} follow-ups, {len(recommendations)} recommendations"
        )
        return AssistantResponse(
            status=status,
            answer_text=text_with_citations,
            citations=citations,
            sources=sources,
            follow_ups=follow_ups,
            recommendations=recommendations,
            metrics=ResponseMetrics(
                confidence=confidence,
                processing_time_ms=run.elapsed_ms(),
                token_usage=run.usage,
            ),
            in_domain=True,
        )

    def _retrieve(self, question: str) -> list[RetrievedDoc]:
        try:
            vector = self.embedder.embed(question)
        except Exception as e:
            raise RetrievalError(f"Query embedding failed: {e}") from e
        return self.index.search(vector, self.top_k)

    def _generate(self, run: _QueryRun, prompt) -> str:
        """One model call; streamed to on_token when a callback is present."""
        if run.on_token is None:
            response = self.model.invoke(prompt)
            run.add_usage(response.usage)
            return response.text

        # Trailing whitespace is held back until more text follows, so the
        # streamed tokens always join to the final answer text.
        parts = []
        pending = ""
        for delta in self.model.stream(prompt):
            parts.append(delta)
            buffered = pending + delta
            visible = buffered.rstrip()
            if visible:
                run.on_token(visible)
                pending = buffered[len(visible):]
            else:
                pending = buffered
            run.check_cancelled("next token")
        return "".join(parts).rstrip()

    def _enrich(self, run: _QueryRun, answer_text: str) -> tuple[list, list]:
        """Follow-ups and recommendations, concurrently. Failures yield empty lists."""
        if not (self.follow_ups or self.recommendations):
            return [], []
        run.check_cancelled("enrichment")

        follow_ups, recommendations = [], []
        with ThreadPoolExecutor(max_workers=self.enrichment_workers) as executor:
            follow_up_future = (
                executor.submit(self.follow_ups.generate, run.question, answer_text)
                if self.follow_ups else None
            )
            recommendation_future = (
                executor.submit(self.recommendations.generate, run.question, answer_text)
                if self.recommendations else None
            )

            if follow_up_future is not None:
                try:
                    follow_ups, usage = follow_up_future.result()
                    run.add_usage(usage)
                except Exception as e:
                    logger.warning(f"Follow-up generation failed: {e}")

            if recommendation_future is not None:
                try:
                    recommendations, usage = recommendation_future.result()
                    run.add_usage(usage)
                except Exception as e:
                    logger.warning(f"Recommendation generation failed: {e}")

        return follow_ups, recommendations

    # =========================================================================
    # Prompt construction
    # =========================================================================

    def build_context(self, docs: list[RetrievedDoc], turns: list[ConversationTurn]) -> str:
        """Retrieved pages labelled by page number, plus recent conversation."""
        sections = []

        recent = turns[-self.context_turns:] if self.context_turns > 0 else []
        if recent:
            sections.append(f"{LABELS['conversation_header']}\n{format_conversation(recent)}")

        if docs:
            pages = "\n\n---\n\n".join(
                f"{LABELS['context_page'].format(page=doc.page)}\n{doc.text.strip()}"
                for doc in docs
            )
            sections.append(f"{LABELS['documents_header']}\n{pages}")

        return "\n\n".join(sections)

    def _build_messages(self, question: str, docs: list[RetrievedDoc], turns: list[ConversationTurn]) -> list[dict]:
        system = LLM_PROMPTS["rag_system"].format(
            assistant_name=self.assistant_name,
            domain_name=self.domain_name,
        ) + LLM_PROMPTS["format_directive"]
        user = LLM_PROMPTS["rag_user"].format(
            context=self.build_context(docs, turns),
            question=question,
        )
        return to_messages(user, system=system)

    # =========================================================================
    # Fixed-shape responses
    # =========================================================================

    def _general_response(self, run: _QueryRun) -> AssistantResponse:
        prompt = LLM_PROMPTS["general_response"].format(
            assistant_name=self.assistant_name,
            domain_name=self.domain_name,
            question=run.question,
        )
        run.check_cancelled("general response")
        text = self._generate(run, prompt)

        return AssistantResponse(
            status="complete",
            answer_text=text,
            metrics=ResponseMetrics(
                confidence=GENERAL_CONFIDENCE,
                processing_time_ms=run.elapsed_ms(),
                token_usage=run.usage,
            ),
            in_domain=False,
        )

    def _no_information_response(self, run: _QueryRun) -> AssistantResponse:
        message = NO_INFORMATION_MESSAGE.format(domain_name=self.domain_name)
        if run.on_token:
            run.on_token(message)
        return AssistantResponse(
            status="complete",
            answer_text=message,
            metrics=ResponseMetrics(
                confidence=0.0,
                processing_time_ms=run.elapsed_ms(),
                token_usage=run.usage,
            ),
            in_domain=True,
        )

    def _error_response(self, run: _QueryRun, message: str) -> AssistantResponse:
        return AssistantResponse(
            status="error",
            answer_text=message,
            metrics=ResponseMetrics(
                confidence=0.0,
                processing_time_ms=run.elapsed_ms(),
                token_usage=run.usage,
            ),
            in_domain=run.in_domain,
        )
