"""
Domain Classifier

Decides whether a question belongs to the assistant's legal domain. Cheap
heuristics run first and short-circuit; the language model is only asked when
none of them decides.
"""

import re
import logging
from dataclasses import dataclass
from typing import Optional

from .domain_patterns import GREETING_PATTERNS, LLM_PROMPTS, OUT_OF_DOMAIN_PATTERNS
from .llm import LanguageModel
from .models import ConversationTurn, TokenUsage, coerce_turns

logger = logging.getLogger(__name__)


def format_conversation(turns: list[ConversationTurn]) -> str:
    return "\n".join(f"{turn.role}: {turn.content}" for turn in turns)


@dataclass
class Classification:
    """Outcome of one classification, with the deciding rule."""
    in_domain: bool
    reason: str
    usage: Optional[TokenUsage] = None


class DomainClassifier:
    """
    Heuristic-first domain classifier.

    Order:
        1. short greeting          -> out of domain
        2. out-of-domain topic     -> out of domain
        3. domain keyword present  -> in domain
        4. language model YES/NO   -> its answer; keyword result on failure
    """

    def __init__(
        self,
        model: LanguageModel,
        domain_keywords: list[str],
        domain_name: str = "Swiss Legal System",
        greeting_max_length: int = 50,
        context_turns: int = 3,
    ):
        self.model = model
        self.domain_name = domain_name
        self.greeting_max_length = greeting_max_length
        self.context_turns = context_turns
        self._keyword_patterns = [
            re.compile(rf"\b{re.escape(keyword.lower())}\b", re.IGNORECASE)
            for keyword in domain_keywords
            if keyword.strip()
        ]

    @classmethod
    def from_config(cls, model: LanguageModel, config) -> "DomainClassifier":
        return cls(
            model=model,
            domain_keywords=config.domain_keywords,
            domain_name=config.domain_name,
            greeting_max_length=config.greeting_max_length,
            context_turns=config.classifier_context_turns,
        )

    def is_in_domain(self, question: str, recent_turns=None) -> bool:
        """True if the question is within the legal domain. Never raises."""
        return self.classify(question, recent_turns).in_domain

    def classify(self, question: str, recent_turns=None) -> Classification:
        text = (question or "").strip()

        if len(text) < self.greeting_max_length and any(p.search(text) for p in GREETING_PATTERNS):
            logger.info("Domain check: greeting")
            return Classification(False, "greeting")

        if any(p.search(text) for p in OUT_OF_DOMAIN_PATTERNS):
            logger.info("Domain check: out-of-domain topic")
            return Classification(False, "out_of_domain_topic")

        keyword_match = self.matches_keywords(text)
        if keyword_match:
            logger.info("Domain check: keyword match")
            return Classification(True, "keyword")

        return self._classify_with_model(text, recent_turns, keyword_match)

    def matches_keywords(self, text: str) -> bool:
        return any(p.search(text) for p in self._keyword_patterns)

    def _classify_with_model(self, question: str, recent_turns, fallback: bool) -> Classification:
        prompt = LLM_PROMPTS["classification"].format(
            domain_name=self.domain_name,
            question=question,
        )
        turns = coerce_turns(recent_turns)[-self.context_turns:] if self.context_turns > 0 else []
        if turns:
            prompt += LLM_PROMPTS["classification_context"].format(
                conversation=format_conversation(turns)
            )

        try:
            response = self.model.invoke(prompt)
            answer = response.text.strip().upper()
        except Exception as e:
            logger.warning(f"Domain classification by model failed: {e}. Using keyword result.")
            return Classification(fallback, "keyword_fallback")

        in_domain = "YES" in answer
        logger.info(f"Domain check: model answered {answer[:10]!r}")
        return Classification(in_domain, "model", response.usage)
