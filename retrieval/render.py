"""
Plain-text rendering of retrieval traces.

Used by the CLI and debug logging. Unknown step kinds render as a bare
"Step" label with no content instead of failing.
"""

from typing import Callable, Dict, List, Optional, Tuple

from .trace import TracePayload, TraceStep, UnknownStep

STEP_LABELS = {
    "query": "1. Query",
    "config": "Config",
    "embedding": "2. Embedding",
    "embed_error": "Embedding error",
    "vector_search": "3. Vector search",
    "chunks": "4. Retrieved chunks",
    "vector_search_error": "Vector search error",
    "context": "5. Context for model",
    "timeout": "Timeout",
    "timeout_diagnosis": "Timeout during embedding?",
}


def step_label(step: TraceStep) -> str:
    return STEP_LABELS.get(step.step, "Step")


def step_timing(step: TraceStep) -> Tuple[Optional[int], Optional[int]]:
    """(elapsed_ms, duration_ms); duration is only reported alongside elapsed."""
    elapsed = getattr(step, "elapsed_ms", None)
    if not isinstance(elapsed, int):
        return None, None
    duration = getattr(step, "duration_ms", None)
    return elapsed, duration if isinstance(duration, int) else None


def timing_badge(step: TraceStep) -> str:
    elapsed, duration = step_timing(step)
    if elapsed is None:
        return ""
    badge = f"{elapsed} ms"
    if duration is not None:
        badge += f" · {duration} ms this step"
    return badge


def _message(step) -> List[str]:
    return [step.message]


def _query(step) -> List[str]:
    return [f'"{step.query}"']


def _embedding(step) -> List[str]:
    return [f"{step.dimensions} dimensions"]


def _vector_search(step) -> List[str]:
    return [f"numCandidates={step.num_candidates}, limit={step.limit}"]


def _chunks(step) -> List[str]:
    plural = "" if step.count == 1 else "s"
    lines = [f"{step.count} chunk{plural} retrieved"]
    for i, chunk in enumerate(step.chunks, 1):
        score = f"score {chunk.score:.4f} — " if chunk.score is not None else ""
        lines.append(f"  {i}. {score}{chunk.preview}")
    return lines


def _context(step) -> List[str]:
    return [f"{step.formatted_length} chars sent to model"] + step.snippet.splitlines()


_STEP_CONTENT: Dict[str, Callable[..., List[str]]] = {
    "query": _query,
    "config": _message,
    "embed_error": _message,
    "vector_search_error": _message,
    "embedding": _embedding,
    "vector_search": _vector_search,
    "chunks": _chunks,
    "context": _context,
    "timeout": _message,
    "timeout_diagnosis": _message,
}


def step_lines(step: TraceStep) -> List[str]:
    """Content lines for one step; empty for kinds this version does not know."""
    # Malformed steps of a known kind are parsed as UnknownStep too
    if isinstance(step, UnknownStep):
        return []
    render = _STEP_CONTENT.get(step.step)
    if render is None:
        return []
    return render(step)


def render_trace(trace: TracePayload) -> str:
    """Render a whole trace, one block per step."""
    if not len(trace):
        return ""

    blocks = [f"Vector search trace ({len(trace)} steps)"]
    for step in trace:
        header = step_label(step)
        badge = timing_badge(step)
        if badge:
            header = f"{header}  [{badge}]"
        lines = [header] + [f"    {line}" for line in step_lines(step)]
        blocks.append("\n".join(lines))
    return "\n".join(blocks)
