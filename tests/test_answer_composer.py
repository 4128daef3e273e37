"""
Tests for execution/legal_assistant/answer_composer.py

Covers the end-to-end query pipeline with a scripted model and stub index:
general replies, cited answers, retrieval failures with and without
conversation context, the no-information reply, cancellation, enrichment
isolation, token accounting, and streaming callbacks.
"""

import threading

import pytest

ARTICLE_1_QUESTION = "What does Article 1 of the Civil Code say?"


@pytest.fixture
def failing_index_service(stub_index_service):
    service = stub_index_service()
    service.handle.query.side_effect = ConnectionError("index unreachable")
    return service


class TestGeneralPath:
    """Out-of-domain questions skip retrieval."""

    def test_greeting(self, make_composer, scripted_model, stub_index_service):
        index_service = stub_index_service()
        response = make_composer(scripted_model, index_service).answer("hello")
        assert response.status == "complete"
        assert response.in_domain is False
        assert response.sources == []
        assert response.citations == []
        assert response.metrics.confidence == 0.5
        assert scripted_model.calls["classification"] == 0
        assert scripted_model.calls["general"] == 1
        index_service.handle.query.assert_not_called()

    def test_general_reply_text(self, make_composer, scripted_model, stub_index_service):
        response = make_composer(scripted_model, stub_index_service()).answer("hello")
        assert "SwizzMitch" in response.answer_text

    def test_model_says_no(self, make_composer, scripted_model, stub_index_service):
        response = make_composer(scripted_model, stub_index_service()).answer("Can my landlord keep my deposit?")
        assert response.in_domain is False
        assert scripted_model.calls["classification"] == 1
        assert scripted_model.calls["answer"] == 0


class TestRetrievalPath:
    """In-domain questions are answered from retrieved documents."""

    def test_article_1_with_one_document(self, make_composer, scripted_model, stub_index_service, article_1_doc):
        response = make_composer(scripted_model, stub_index_service([article_1_doc])).answer(ARTICLE_1_QUESTION)
        assert response.status == "complete"
        assert response.in_domain is True
        assert len(response.sources) == 1
        assert [(c.marker, c.source_id) for c in response.citations] == [(1, response.sources[0].id)]
        assert response.metrics.confidence == pytest.approx(0.7)
        assert response.answer_text.endswith("[1]")
        assert response.sources[0].score == pytest.approx(0.9)
        assert response.sources[0].title == "Swiss Legal Code – Page 1"

    def test_no_model_call_for_keyword_question(self, make_composer, scripted_model, stub_index_service, article_1_doc):
        make_composer(scripted_model, stub_index_service([article_1_doc])).answer(ARTICLE_1_QUESTION)
        assert scripted_model.calls["classification"] == 0
        assert scripted_model.calls["answer"] == 1

    def test_context_lists_pages(self, make_composer, scripted_model, stub_index_service, article_1_doc):
        make_composer(scripted_model, stub_index_service([article_1_doc])).answer(ARTICLE_1_QUESTION)
        prompt = next(p for kind, p in scripted_model.prompts if kind == "answer")
        assert "[Page 1]" in prompt
        assert "Sources of Law" in prompt
        assert ARTICLE_1_QUESTION in prompt

    def test_confidence_grows_with_documents(self, make_composer, scripted_model, stub_index_service):
        from execution.legal_assistant.vector_index import RetrievedDoc
        docs = [RetrievedDoc(text=f"Article {i} text", score=0.8, metadata={"page": i}) for i in range(1, 6)]
        response = make_composer(scripted_model, stub_index_service(docs)).answer(ARTICLE_1_QUESTION)
        assert len(response.sources) == 5
        assert [c.marker for c in response.citations] == [1, 2, 3, 4, 5]
        assert response.metrics.confidence == pytest.approx(0.95)

    def test_enrichment_attached(self, make_composer, scripted_model, stub_index_service, article_1_doc):
        response = make_composer(scripted_model, stub_index_service([article_1_doc])).answer(ARTICLE_1_QUESTION)
        assert response.follow_ups == ["What is customary law?", "How do judges fill gaps?", "What is Article 2?"]
        assert response.recommendations == []

    def test_token_usage_summed(self, make_composer, scripted_model, stub_index_service, article_1_doc):
        response = make_composer(scripted_model, stub_index_service([article_1_doc])).answer(ARTICLE_1_QUESTION)
        # answer + follow-ups + recommendations
        assert response.metrics.token_usage.total == 45

    def test_enrichment_disabled(self, make_composer, scripted_model, stub_index_service, article_1_doc):
        composer = make_composer(scripted_model, stub_index_service([article_1_doc]), follow_ups=False, recommendations=False)
        response = composer.answer(ARTICLE_1_QUESTION)
        assert response.follow_ups == []
        assert scripted_model.calls["follow_ups"] == 0
        assert scripted_model.calls["recommendations"] == 0

    def test_enrichment_failure_isolated(self, make_composer, make_model, stub_index_service, article_1_doc):
        model = make_model(follow_ups=RuntimeError("rate limited"), recommendations="garbage")
        response = make_composer(model, stub_index_service([article_1_doc])).answer(ARTICLE_1_QUESTION)
        assert response.status == "complete"
        assert response.follow_ups == []
        assert response.recommendations == []
        assert len(response.sources) == 1

    def test_list_content_normalised(self, make_composer, make_model, stub_index_service, article_1_doc):
        model = make_model(answer=[{"type": "text", "text": "Part one. "}, {"type": "text", "text": "Part two."}])
        response = make_composer(model, stub_index_service([article_1_doc])).answer(ARTICLE_1_QUESTION)
        assert response.answer_text == "Part one. Part two. [1]"


class TestDegradedPaths:
    """Failures become well-formed responses."""

    def test_index_failure_without_context(self, make_composer, scripted_model, failing_index_service):
        response = make_composer(scripted_model, failing_index_service).answer(ARTICLE_1_QUESTION)
        assert response.status == "error"
        assert response.metrics.confidence == 0.0
        assert response.sources == []
        assert response.answer_text.startswith("I'm sorry")

    def test_index_failure_with_context_is_partial(self, make_composer, scripted_model, failing_index_service):
        turns = [
            {"role": "user", "content": "What does Article 1 of the Civil Code cover?"},
            {"role": "assistant", "content": "It sets out the sources of Swiss law."},
        ]
        response = make_composer(scripted_model, failing_index_service).answer("And what about customary law?", turns)
        assert response.status == "partial"
        assert response.sources == []
        assert response.citations == []
        assert response.answer_text == "Article 1 establishes the sources of Swiss law."

    def test_conversation_included_in_prompt(self, make_composer, scripted_model, stub_index_service, article_1_doc):
        turns = [{"role": "user", "content": "I am asking about the civil code"}]
        make_composer(scripted_model, stub_index_service([article_1_doc])).answer(ARTICLE_1_QUESTION, turns)
        prompt = next(p for kind, p in scripted_model.prompts if kind == "answer")
        assert "Previous conversation:" in prompt
        assert "user: I am asking about the civil code" in prompt

    def test_no_documents_no_context(self, make_composer, scripted_model, stub_index_service):
        response = make_composer(scripted_model, stub_index_service([])).answer(ARTICLE_1_QUESTION)
        assert response.status == "complete"
        assert response.metrics.confidence == 0.0
        assert response.sources == []
        assert "Swiss Legal System" in response.answer_text
        assert scripted_model.calls["answer"] == 0

    def test_no_documents_with_context(self, make_composer, scripted_model, stub_index_service):
        turns = [{"role": "user", "content": "Tell me about the civil code"}]
        response = make_composer(scripted_model, stub_index_service([])).answer(ARTICLE_1_QUESTION, turns)
        assert response.status == "complete"
        assert response.metrics.confidence == pytest.approx(0.6)
        assert scripted_model.calls["answer"] == 1

    def test_generation_failure(self, make_composer, make_model, stub_index_service, article_1_doc):
        model = make_model(answer=TimeoutError("model timeout"))
        response = make_composer(model, stub_index_service([article_1_doc])).answer(ARTICLE_1_QUESTION)
        assert response.status == "error"
        assert response.citations == []
        assert response.in_domain is True

    def test_invalid_turns_become_error(self, make_composer, scripted_model, stub_index_service):
        response = make_composer(scripted_model, stub_index_service()).answer(ARTICLE_1_QUESTION, [{"role": "system"}])
        assert response.status == "error"

    def test_cancelled_before_start(self, make_composer, scripted_model, stub_index_service, article_1_doc):
        from execution.legal_assistant.domain_patterns import CANCELLED_MESSAGE
        cancel = threading.Event()
        cancel.set()
        response = make_composer(scripted_model, stub_index_service([article_1_doc])).answer(
            ARTICLE_1_QUESTION, cancel_event=cancel
        )
        assert response.status == "error"
        assert response.answer_text == CANCELLED_MESSAGE
        assert scripted_model.total_calls == 0

    def test_cancelled_during_generation(self, make_composer, scripted_model, stub_index_service, article_1_doc):
        cancel = threading.Event()
        tokens = []

        def on_token(token):
            tokens.append(token)
            cancel.set()

        response = make_composer(scripted_model, stub_index_service([article_1_doc])).answer(
            ARTICLE_1_QUESTION, cancel_event=cancel, on_token=on_token
        )
        assert response.status == "error"
        assert len(tokens) == 1
        assert scripted_model.calls["follow_ups"] == 0


class TestCallbacks:
    """Incremental delivery hooks used by the streaming adapter."""

    def test_tokens_and_metadata(self, make_composer, scripted_model, stub_index_service, article_1_doc):
        tokens, metadata = [], []
        response = make_composer(scripted_model, stub_index_service([article_1_doc])).answer(
            ARTICLE_1_QUESTION, on_token=tokens.append, on_metadata=metadata.append
        )
        assert tokens[0] == "Article"
        assert "".join(tokens) == response.answer_text
        assert tokens[-1] == " [1]"
        assert response.answer_text == "Article 1 establishes the sources of Swiss law. [1]"
        assert len(metadata) == 1
        assert metadata[0]["confidence"] == pytest.approx(0.7)
        assert metadata[0]["sources"][0]["id"] == response.sources[0].id

    def test_tokens_match_answer_with_trailing_whitespace(self, make_composer, make_model, stub_index_service, article_1_doc):
        tokens = []
        model = make_model(answer="Article 1 governs.\n\n")
        response = make_composer(model, stub_index_service([article_1_doc])).answer(
            ARTICLE_1_QUESTION, on_token=tokens.append
        )
        assert response.answer_text == "Article 1 governs. [1]"
        assert "".join(tokens) == response.answer_text

    def test_general_reply_tokens_match_answer(self, make_composer, scripted_model, stub_index_service):
        tokens = []
        response = make_composer(scripted_model, stub_index_service([])).answer("hello", on_token=tokens.append)
        assert "".join(tokens) == response.answer_text

    def test_no_information_sent_as_token(self, make_composer, scripted_model, stub_index_service):
        tokens = []
        response = make_composer(scripted_model, stub_index_service([])).answer(ARTICLE_1_QUESTION, on_token=tokens.append)
        assert tokens == [response.answer_text]

    def test_general_reply_streamed(self, make_composer, scripted_model, stub_index_service):
        tokens = []
        response = make_composer(scripted_model, stub_index_service()).answer("hello", on_token=tokens.append)
        assert "".join(tokens) == response.answer_text


class TestBuildContext:
    def test_pages_separated(self, make_composer, scripted_model, stub_index_service):
        from execution.legal_assistant.vector_index import RetrievedDoc
        composer = make_composer(scripted_model, stub_index_service())
        docs = [
            RetrievedDoc(text="First", score=0.9, metadata={"page": 1}),
            RetrievedDoc(text="Second", score=0.8, metadata={"page": 8}),
        ]
        context = composer.build_context(docs, [])
        assert context == "Reference documents:\n[Page 1]\nFirst\n\n---\n\n[Page 8]\nSecond"
