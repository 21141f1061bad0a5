"""
Context Builder for the retrieval pipeline.

Assembles retrieved chunks into a single context string for the system prompt.
"""

from typing import Optional, Sequence

from .trace import ContextStep
from .types import RetrievedChunk

CONTEXT_PREAMBLE = "Relevant context from the knowledge base (use this to answer accurately):"
SNIPPET_LEN = 500


def format_context(chunks: Sequence[RetrievedChunk]) -> str:
    """
    Format chunks as numbered passages under a fixed preamble.

    Args:
        chunks: Retrieved chunks, in rank order

    Returns:
        The context string, or "" when there are no chunks
    """
    if not chunks:
        return ""
    parts = [f"[{i}] {chunk.text.strip()}" for i, chunk in enumerate(chunks, 1)]
    return f"{CONTEXT_PREAMBLE}\n\n" + "\n\n".join(parts)


def context_step(
    context: str,
    elapsed_ms: Optional[int] = None,
    snippet_len: int = SNIPPET_LEN,
) -> ContextStep:
    """Trace step describing the context handed to the model."""
    return ContextStep(
        formatted_length=len(context),
        snippet=context[:snippet_len],
        elapsed_ms=elapsed_ms,
    )
