"""
Answer enrichment: follow-up questions and lawyer recommendations.

Both run after the answer is known and are optional; a failure in either
degrades to an empty list and never affects the answer itself.
"""

import json
import logging
from typing import Optional

from pydantic import ValidationError

from .domain_patterns import CODE_FENCE_PATTERN, LIST_MARKER_PATTERN, LLM_PROMPTS
from .errors import ParseError
from .llm import LanguageModel
from .models import LawyerRecommendation, TokenUsage

logger = logging.getLogger(__name__)

MAX_FOLLOW_UPS = 3


def strip_code_fences(text: str) -> str:
    """Remove a surrounding ```json ... ``` fence, if any."""
    return CODE_FENCE_PATTERN.sub("", text.strip()).strip()


def parse_follow_ups(text: str, limit: int = MAX_FOLLOW_UPS) -> list[str]:
    """One question per line; blank lines dropped, list markers removed."""
    questions = []
    for line in text.splitlines():
        line = LIST_MARKER_PATTERN.sub("", line).strip()
        if line:
            questions.append(line)
    return questions[:limit]


def parse_recommendations(text: str) -> list[LawyerRecommendation]:
    """
    Parse the recommendation payload.

    Accepts {"lawyerRecommendations": [...]} or a bare list, optionally
    wrapped in a markdown code fence. Entries that do not validate are skipped.

    Raises:
        ParseError: if the text is not JSON of a recognised shape
    """
    cleaned = strip_code_fences(text)
    try:
        payload = json.loads(cleaned)
    except json.JSONDecodeError as e:
        raise ParseError(f"Recommendation payload is not valid JSON: {e}", raw_text=text) from e

    if isinstance(payload, dict):
        items = payload.get("lawyerRecommendations", payload.get("recommendations"))
    else:
        items = payload
    if not isinstance(items, list):
        raise ParseError("Recommendation payload has no recommendation list", raw_text=text)

    recommendations = []
    for item in items:
        try:
            recommendations.append(LawyerRecommendation.model_validate(item))
        except ValidationError as e:
            logger.warning(f"Skipping malformed recommendation: {e.error_count()} errors")
    return recommendations


class FollowUpGenerator:
    """Asks the model for three short follow-up questions."""

    def __init__(self, model: LanguageModel, limit: int = MAX_FOLLOW_UPS):
        self.model = model
        self.limit = limit

    def generate(self, question: str, answer: str) -> tuple[list[str], Optional[TokenUsage]]:
        prompt = LLM_PROMPTS["follow_ups"].format(question=question, answer=answer)
        try:
            response = self.model.invoke(prompt)
        except Exception as e:
            logger.warning(f"Follow-up generation failed: {e}")
            return [], None
        return parse_follow_ups(response.text, self.limit), response.usage


class RecommendationGenerator:
    """Asks the model for structured lawyer recommendations as JSON."""

    def __init__(self, model: LanguageModel, domain_name: str = "Swiss Legal System"):
        self.model = model
        self.domain_name = domain_name

    def generate(self, question: str, answer: str) -> tuple[list[LawyerRecommendation], Optional[TokenUsage]]:
        prompt = LLM_PROMPTS["recommendations"].format(
            question=question,
            answer=answer,
            domain_name=self.domain_name,
        )
        try:
            response = self.model.invoke(prompt)
        except Exception as e:
            logger.warning(f"Recommendation generation failed: {e}")
            return [], None

        try:
            return parse_recommendations(response.text), response.usage
        except ParseError as e:
            logger.error(f"{e}. Raw response: {e.raw_text!r}")
            return [], response.usage
