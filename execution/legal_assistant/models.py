"""
Pydantic models for responses the assistant hands to its callers.

These are serialised directly by the HTTP adapter and by whatever conversation
store persists answers, so every response carries `response_version`.
"""

from typing import Literal, Optional
from datetime import datetime, timezone
from pydantic import BaseModel, Field

# Current response schema version; anything older is a legacy message
RESPONSE_VERSION = 2


class ConversationTurn(BaseModel):
    """A prior message supplied as context. Never modified by the pipeline."""
    role: Literal["user", "assistant"]
    content: str
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


def coerce_turns(turns) -> list[ConversationTurn]:
    """Accept ConversationTurns or plain dicts; None means no context."""
    if not turns:
        return []
    return [t if isinstance(t, ConversationTurn) else ConversationTurn(**t) for t in turns]


class EnhancedSource(BaseModel):
    """A cited passage with a stable id."""
    id: str
    title: str
    page: int
    url: str
    snippet: str
    score: float = Field(ge=0.0, le=1.0)


class Citation(BaseModel):
    """Links a bracketed [marker] in the answer text to a source."""
    marker: int = Field(ge=1)
    source_id: str


class TokenUsage(BaseModel):
    prompt: int = 0
    completion: int = 0
    total: int = 0

    def add(self, other: Optional["TokenUsage"]) -> "TokenUsage":
        if other is None:
            return self
        return TokenUsage(
            prompt=self.prompt + other.prompt,
            completion=self.completion + other.completion,
            total=self.total + other.total,
        )


class ResponseMetrics(BaseModel):
    confidence: float = Field(default=0.0, ge=0.0, le=1.0)
    processing_time_ms: int = 0
    token_usage: TokenUsage = Field(default_factory=TokenUsage)


class LawyerRecommendation(BaseModel):
    """A suggested legal professional, as produced by the recommendation prompt."""
    name: str
    specialties: list[str] = []
    rating: Optional[float] = None
    phone: Optional[str] = None
    email: Optional[str] = None
    address: Optional[str] = None
    availability: Optional[str] = None
    experience: Optional[str] = None
    languages: list[str] = []


class AssistantResponse(BaseModel):
    """The complete result of one query."""
    status: Literal["partial", "complete", "error"]
    answer_text: str
    citations: list[Citation] = []
    sources: list[EnhancedSource] = []
    follow_ups: list[str] = []
    metrics: ResponseMetrics = Field(default_factory=ResponseMetrics)
    recommendations: list[LawyerRecommendation] = []
    in_domain: Optional[bool] = None
    response_version: int = RESPONSE_VERSION

    model_config = {"frozen": True}


class IngestResult(BaseModel):
    """Outcome of an ingestion run. Failed runs report zero stats."""
    success: bool
    message: str = ""
    total_chunks: int = 0
    total_pages: int = 0
    processing_time_ms: int = 0


# =============================================================================
# HTTP request/response bodies
# =============================================================================

class ChatRequest(BaseModel):
    """Request body for the chat endpoints."""
    question: str = Field(..., min_length=1, max_length=4000)
    recent_turns: list[ConversationTurn] = []


class IngestRequest(BaseModel):
    """Request body for the ingest endpoint."""
    mode: Literal["pdf", "test"] = "pdf"
    path: Optional[str] = None
    chunk_size: Optional[int] = Field(default=None, ge=1)
    chunk_overlap: Optional[int] = Field(default=None, ge=0)


class HealthResponse(BaseModel):
    status: str
    index_ready: bool
    index_name: str
    queries_total: int = 0
    ingestions_total: int = 0
