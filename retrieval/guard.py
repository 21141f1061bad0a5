"""
Deadline-bounded retrieval for prompt building.

Wraps the pipeline with an overall timeout, formats the context and
appends the caller-side trace steps (context, timeout, diagnosis).
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

from .context_builder import context_step, format_context
from .pipeline import RetrievalPipeline
from .trace import TimeoutDiagnosisStep, TimeoutStep, TracePayload, TraceRecorder
from .types import RetrievedChunk

logger = logging.getLogger(__name__)

# Last step recorded before the deadline -> what was probably hanging
_DIAGNOSES = {
    "query": (
        "No embedding was produced before the deadline. The embedding request "
        "likely hung: check VOYAGE_API_KEY, network access, or region."
    ),
    "vector_search": (
        "The query was embedded but vector search did not return before the "
        "deadline. Check MONGODB_URI, network access to the cluster, and the "
        "vector index."
    ),
}


@dataclass
class GuardedRetrieval:
    """Chunks, the formatted context and the full trace for one query."""
    chunks: List[RetrievedChunk] = field(default_factory=list)
    context: str = ""
    trace: TracePayload = field(default_factory=TracePayload)
    timed_out: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "chunks": [c.to_dict() for c in self.chunks],
            "context": self.context,
            "trace": self.trace.to_dict(),
            "timed_out": self.timed_out,
        }


def diagnose_timeout(trace: TracePayload) -> Optional[str]:
    """Explain a timeout from the last step recorded before it, if possible."""
    last = trace.last()
    if last is None:
        return None
    return _DIAGNOSES.get(last.step)


async def retrieve_context(
    pipeline: RetrievalPipeline,
    query: str,
    timeout_seconds: float = 60.0,
    clock: Optional[Callable[[], float]] = None,
) -> GuardedRetrieval:
    """
    Run retrieval under an overall deadline.

    Steps recorded before the deadline are kept. Never raises.

    Args:
        pipeline: Retrieval pipeline
        query: User question
        timeout_seconds: Overall deadline for the retrieval call
        clock: Monotonic clock in seconds (tests inject a fake)

    Returns:
        GuardedRetrieval with empty chunks/context on failure or timeout
    """
    recorder = TraceRecorder(clock) if clock else TraceRecorder()

    try:
        result = await asyncio.wait_for(
            pipeline.search_rag_with_trace(query, recorder=recorder),
            timeout_seconds,
        )
    except asyncio.TimeoutError:
        logger.warning(f"Retrieval timed out after {timeout_seconds:g}s for query: {query[:80]!r}")
        diagnosis = diagnose_timeout(recorder.payload)
        recorder.record(TimeoutStep(f"RAG timed out after {timeout_seconds:g}s"))
        if diagnosis:
            recorder.record(TimeoutDiagnosisStep(diagnosis, recorder.elapsed_ms()))
        return GuardedRetrieval(trace=recorder.freeze(), timed_out=True)
    except Exception as e:
        logger.error(f"Retrieval failed unexpectedly: {e}")
        return GuardedRetrieval(trace=recorder.freeze())

    context = format_context(result.chunks)
    if context:
        recorder.record(context_step(context, recorder.elapsed_ms()))
    return GuardedRetrieval(chunks=result.chunks, context=context, trace=recorder.freeze())
