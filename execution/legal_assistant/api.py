"""
FastAPI adapter for the Legal Assistant

Thin HTTP layer over AssistantService: health, ingestion, chat, and chat
streamed as Server-Sent Events. No pipeline logic lives here.

Run with: uvicorn execution.legal_assistant.api:app --host 0.0.0.0 --port 8000
"""

import os
import logging

from fastapi import Depends, FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, StreamingResponse
from dotenv import load_dotenv

from . import __version__
from .errors import ConfigurationError
from .models import (
    AssistantResponse,
    ChatRequest,
    HealthResponse,
    IngestRequest,
    IngestResult,
)
from .service import AssistantService, get_service

load_dotenv()
logger = logging.getLogger(__name__)

app = FastAPI(
    title="Legal Assistant API",
    description="Question answering over the Swiss legal corpus with cited sources",
    version=__version__,
)

_cors_origins = os.getenv("CORS_ORIGINS", "http://localhost:5173,http://localhost:3000").split(",")
app.add_middleware(
    CORSMiddleware,
    allow_origins=[o.strip() for o in _cors_origins],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def get_assistant() -> AssistantService:
    """Resolve the process-wide service; misconfiguration is a 503."""
    try:
        return get_service()
    except ConfigurationError as e:
        logger.error(f"Assistant is not configured: {e}")
        raise HTTPException(status_code=503, detail=f"Assistant is not configured: {e}")


# =============================================================================
# Endpoints
# =============================================================================

@app.get("/api/v1/health", response_model=HealthResponse)
def health_check(assistant: AssistantService = Depends(get_assistant)):
    """Health check with index readiness."""
    ready = assistant.is_ready()
    metrics = assistant.metrics.get_metrics()
    return HealthResponse(
        status="ok" if ready else "degraded",
        index_ready=ready,
        index_name=assistant.config.index_name,
        queries_total=metrics.total_queries,
        ingestions_total=metrics.ingestion_runs,
    )


@app.get("/api/v1/metrics")
def get_metrics(assistant: AssistantService = Depends(get_assistant)):
    return assistant.metrics.get_metrics_dict()


@app.post("/api/v1/ingest", response_model=IngestResult)
def ingest(request: IngestRequest, assistant: AssistantService = Depends(get_assistant)):
    """
    Ingest the reference corpus.

    mode "test" loads the built-in sample documents; mode "pdf" loads
    `path`, or the configured document path when none is given.
    """
    if request.mode == "test":
        result = assistant.ingest_samples(request.chunk_size, request.chunk_overlap)
    elif request.path:
        result = assistant.ingest_file(request.path, request.chunk_size, request.chunk_overlap)
    else:
        result = assistant.ingest(None, request.chunk_size, request.chunk_overlap)

    if not result.success:
        return JSONResponse(status_code=500, content=result.model_dump())
    return result


@app.post("/api/v1/chat", response_model=AssistantResponse)
def chat(request: ChatRequest, assistant: AssistantService = Depends(get_assistant)):
    """Answer a question in one response."""
    return assistant.answer(request.question, request.recent_turns)


@app.post("/api/v1/chat/stream")
def chat_stream(request: ChatRequest, assistant: AssistantService = Depends(get_assistant)):
    """
    Streaming answer with SSE.

    Sends events:
      - token     {"token": "..."}                    (during generation)
      - metadata  {"sources": [...], "confidence": x}  (once retrieval is known)
      - complete  AssistantResponse                    (final)
      - error     {"error": "..."}                     (final, on failure)
    """
    return StreamingResponse(
        assistant.answer_streaming(request.question, request.recent_turns),
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "Connection": "keep-alive",
            "X-Accel-Buffering": "no",
        },
    )
