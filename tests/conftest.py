"""
Shared fixtures and test utilities for Legal Assistant tests.

Provides deterministic mock providers, sample data, and reusable fixtures so
that all tests run without API keys, databases, or external network access.
"""

import sys
import threading
from pathlib import Path
from unittest.mock import MagicMock

import pytest

# ---------------------------------------------------------------------------
# Path setup - ensure the execution package is importable
# ---------------------------------------------------------------------------
PROJECT_ROOT = Path(__file__).resolve().parent.parent
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))


ARTICLE_1_TEXT = (
    "Swiss Civil Code (ZGB) - Article 1: Sources of Law\n\n"
    "The law governs all matters for which it contains a provision either in its "
    "wording or according to its proper meaning."
)


# ---------------------------------------------------------------------------
# Mock embedding provider
# ---------------------------------------------------------------------------

VOCABULARY = [
    "article", "civil", "criminal", "capacity", "employment", "termination",
    "divorce", "marriage", "custody", "law", "court", "punished",
]


class MockEmbeddingProvider:
    """
    Deterministic bag-of-words embeddings over a small legal vocabulary.

    Texts sharing vocabulary words get similar vectors, so similarity search
    over the sample corpus behaves sensibly. Never calls external APIs.
    """

    def __init__(self, extra_dimensions=0):
        self._extra = extra_dimensions
        self.query_calls = 0
        self.document_calls = 0

    @property
    def dimensions(self):
        return len(VOCABULARY) + 1 + self._extra

    def embed_documents(self, texts):
        self.document_calls += 1
        return [self._vector(t) for t in texts]

    def embed_query(self, query):
        self.query_calls += 1
        return self._vector(query)

    def _vector(self, text):
        lowered = text.lower()
        counts = [float(lowered.count(word)) for word in VOCABULARY]
        return counts + [1.0] + [0.0] * self._extra


@pytest.fixture
def mock_embedding_provider():
    return MockEmbeddingProvider()


# ---------------------------------------------------------------------------
# Scripted language model
# ---------------------------------------------------------------------------

class ScriptedLanguageModel:
    """
    Mock LanguageModel that answers by prompt kind.

    Each kind's reply may be a string, any content shape the normaliser
    accepts, or an Exception instance to raise. Calls are counted per kind.
    """

    def __init__(
        self,
        classification="NO",
        general="Hello! I am SwizzMitch. How can I help with your legal question?",
        answer="Article 1 establishes the sources of Swiss law.",
        follow_ups="What is customary law?\nHow do judges fill gaps?\nWhat is Article 2?",
        recommendations='{"lawyerRecommendations": []}',
    ):
        self.replies = {
            "classification": classification,
            "general": general,
            "answer": answer,
            "follow_ups": follow_ups,
            "recommendations": recommendations,
        }
        self.calls = {kind: 0 for kind in self.replies}
        self.prompts = []
        self._lock = threading.Lock()

    @staticmethod
    def prompt_text(prompt):
        if isinstance(prompt, str):
            return prompt
        return "\n".join(m["content"] for m in prompt)

    def kind_of(self, prompt):
        text = self.prompt_text(prompt)
        if 'Answer only "YES" or "NO"' in text:
            return "classification"
        if "Respond naturally to" in text:
            return "general"
        if "follow-up questions" in text:
            return "follow_ups"
        if "lawyerRecommendations" in text:
            return "recommendations"
        return "answer"

    def _reply(self, prompt):
        kind = self.kind_of(prompt)
        with self._lock:
            self.calls[kind] += 1
            self.prompts.append((kind, self.prompt_text(prompt)))
        reply = self.replies[kind]
        if isinstance(reply, Exception):
            raise reply
        return reply

    def invoke(self, prompt):
        from execution.legal_assistant.llm import LLMResponse
        from execution.legal_assistant.models import TokenUsage
        return LLMResponse(content=self._reply(prompt), usage=TokenUsage(prompt=10, completion=5, total=15))

    def stream(self, prompt):
        from execution.legal_assistant.llm import normalize_content
        text = normalize_content(self._reply(prompt))
        for word in text.split(" "):
            yield word + " "

    @property
    def total_calls(self):
        return sum(self.calls.values())


@pytest.fixture
def scripted_model():
    return ScriptedLanguageModel()


@pytest.fixture
def make_model():
    """Factory: ScriptedLanguageModel with custom replies."""
    return ScriptedLanguageModel


# ---------------------------------------------------------------------------
# Index fixtures
# ---------------------------------------------------------------------------

class StubIndexService:
    """Index service whose single index returns fixed documents."""

    def __init__(self, docs=None, dimension=13):
        self.docs = docs or []
        self.dimension = dimension
        self.handle = MagicMock()
        self.handle.query.side_effect = lambda vector, k: list(self.docs)[:k]
        self.handle.stats.return_value = {"record_count": len(self.docs)}

    def list_indexes(self):
        return ["swiss-legal"]

    def create_index(self, name, dimension, metric="cosine"):
        pass

    def describe_index(self, name):
        return {"name": name, "dimension": self.dimension, "metric": "cosine"}

    def index(self, name):
        return self.handle


@pytest.fixture
def stub_index_service():
    """Factory: index service returning the given documents for every query."""
    return StubIndexService


@pytest.fixture
def memory_index_service():
    from execution.legal_assistant.vector_index import InMemoryVectorIndexService
    return InMemoryVectorIndexService()


@pytest.fixture
def article_1_doc():
    from execution.legal_assistant.vector_index import RetrievedDoc
    return RetrievedDoc(
        text=ARTICLE_1_TEXT,
        score=0.9,
        metadata={"page": 1, "source_path": "docs/swiss_legal.pdf", "title": "Swiss Legal Code"},
    )


# ---------------------------------------------------------------------------
# Configuration and assembled pipeline
# ---------------------------------------------------------------------------

@pytest.fixture
def config():
    from execution.legal_assistant.settings import AssistantConfig
    return AssistantConfig(
        vector_backend="memory",
        llm_api_key="test-key",
        chunk_size=200,
        chunk_overlap=50,
    )


@pytest.fixture
def sample_pages():
    from execution.legal_assistant.sample_corpus import sample_documents
    return sample_documents()


@pytest.fixture
def make_composer(config, mock_embedding_provider):
    """Factory: AnswerComposer over a given model and index service."""
    from execution.legal_assistant.answer_composer import AnswerComposer
    from execution.legal_assistant.citation import SourceBuilder
    from execution.legal_assistant.classifier import DomainClassifier
    from execution.legal_assistant.embeddings import EmbeddingGateway
    from execution.legal_assistant.enrichment import FollowUpGenerator, RecommendationGenerator
    from execution.legal_assistant.vector_index import VectorIndexGateway

    def _make(model, index_service, follow_ups=True, recommendations=True):
        return AnswerComposer(
            model=model,
            classifier=DomainClassifier.from_config(model, config),
            embedder=EmbeddingGateway(mock_embedding_provider),
            index=VectorIndexGateway(index_service, config.index_name),
            source_builder=SourceBuilder.from_config(config),
            follow_ups=FollowUpGenerator(model) if follow_ups else None,
            recommendations=RecommendationGenerator(model, config.domain_name) if recommendations else None,
            top_k=config.top_k,
        )

    return _make


@pytest.fixture
def assistant(config, scripted_model, mock_embedding_provider, memory_index_service):
    """AssistantService wired to mocks and the in-memory index."""
    from execution.legal_assistant.service import AssistantService
    return AssistantService(
        config,
        model=scripted_model,
        embedding_provider=mock_embedding_provider,
        index_service=memory_index_service,
    ).startup()


# ---------------------------------------------------------------------------
# Singleton resets between tests
# ---------------------------------------------------------------------------

@pytest.fixture(autouse=True)
def reset_singletons():
    """Reset process-wide singletons so tests do not leak state."""
    from execution.legal_assistant.metrics import get_metrics_collector
    from execution.legal_assistant import service as service_module

    get_metrics_collector().reset()
    service_module.set_service(None)
    yield
    get_metrics_collector().reset()
    service_module.set_service(None)
