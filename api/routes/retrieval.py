"""
Retrieval API Routes.
"""

import logging
import time
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, BackgroundTasks
from pydantic import BaseModel, Field

from ..middleware.metrics import record_trace
from ..services import get_services
from retrieval.guard import retrieve_context
from retrieval.render import render_trace

logger = logging.getLogger(__name__)

router = APIRouter()


# ── Request / Response Models ─────────────────────────────────────

class RetrieveRequest(BaseModel):
    query: str = Field(..., min_length=1, max_length=2000)
    include_trace: bool = False


class Chunk(BaseModel):
    text: str
    score: Optional[float] = None


class RetrieveResponse(BaseModel):
    query: str
    chunks: List[Chunk] = []
    context: str = ""
    trace: Optional[Dict[str, Any]] = None
    timed_out: bool = False
    processing_time_ms: float


# ── Endpoints ─────────────────────────────────────────────────────

@router.post("/retrieve", response_model=RetrieveResponse)
async def retrieve(request: RetrieveRequest, background_tasks: BackgroundTasks):
    """
    Retrieve knowledge-base context for a question.

    1. Embed query  2. Vector search  3. Format context
    Failures yield an empty context, never an error response.
    """
    services = get_services()
    if services.pipeline is None:
        services.initialize()

    settings = services.settings
    start = time.monotonic()
    result = await retrieve_context(
        services.pipeline,
        request.query,
        timeout_seconds=settings.retrieval_timeout_seconds,
    )
    processing_time = (time.monotonic() - start) * 1000

    background_tasks.add_task(record_trace, result.trace)
    if settings.rag_debug:
        background_tasks.add_task(_log_trace, result.trace)

    include_trace = request.include_trace or settings.rag_debug
    return RetrieveResponse(
        query=request.query,
        chunks=[Chunk(text=c.text, score=c.score) for c in result.chunks],
        context=result.context,
        trace=result.trace.to_dict() if include_trace else None,
        timed_out=result.timed_out,
        processing_time_ms=round(processing_time, 2),
    )


# ── Helpers ───────────────────────────────────────────────────────

def _log_trace(trace):
    logger.info("RAG trace:\n%s", render_trace(trace))
