"""
Step-by-step trace for a retrieval call.

Each pipeline stage appends one step, annotated with the milliseconds
elapsed since the call started. The trace is handed back to the caller
verbatim so it can be rendered (see ``retrieval.render``) or serialized
for a debugging UI.

Wire form (``TracePayload.to_dict``):

    {"steps": [{"step": "query", "query": "...", "elapsedMs": 0}, ...]}
"""

import logging
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence, Tuple, Union

from .types import RetrievedChunk

logger = logging.getLogger(__name__)

PREVIEW_LEN = 120
ELLIPSIS = "…"


def make_preview(text: str, limit: int = PREVIEW_LEN) -> str:
    """First ``limit`` characters of the trimmed text, ellipsis-appended if cut."""
    trimmed = (text or "").strip()
    if len(trimmed) > limit:
        return trimmed[:limit] + ELLIPSIS
    return trimmed


def _compact(data: Dict[str, Any]) -> Dict[str, Any]:
    return {k: v for k, v in data.items() if v is not None}


# ── Step variants ─────────────────────────────────────────────────

@dataclass(frozen=True)
class QueryStep:
    query: str
    elapsed_ms: Optional[int] = 0
    step: str = field(default="query", init=False)

    def to_dict(self) -> Dict[str, Any]:
        return _compact({"step": self.step, "query": self.query, "elapsedMs": self.elapsed_ms})


@dataclass(frozen=True)
class ConfigStep:
    message: str
    elapsed_ms: Optional[int] = None
    step: str = field(default="config", init=False)

    def to_dict(self) -> Dict[str, Any]:
        return _compact({"step": self.step, "message": self.message, "elapsedMs": self.elapsed_ms})


@dataclass(frozen=True)
class EmbeddingStep:
    dimensions: int
    elapsed_ms: Optional[int] = None
    duration_ms: Optional[int] = None
    step: str = field(default="embedding", init=False)

    def to_dict(self) -> Dict[str, Any]:
        return _compact({
            "step": self.step,
            "dimensions": self.dimensions,
            "elapsedMs": self.elapsed_ms,
            "durationMs": self.duration_ms,
        })


@dataclass(frozen=True)
class EmbedErrorStep:
    message: str
    elapsed_ms: Optional[int] = None
    step: str = field(default="embed_error", init=False)

    def to_dict(self) -> Dict[str, Any]:
        return _compact({"step": self.step, "message": self.message, "elapsedMs": self.elapsed_ms})


@dataclass(frozen=True)
class VectorSearchStep:
    num_candidates: int
    limit: int
    elapsed_ms: Optional[int] = None
    step: str = field(default="vector_search", init=False)

    def to_dict(self) -> Dict[str, Any]:
        return _compact({
            "step": self.step,
            "numCandidates": self.num_candidates,
            "limit": self.limit,
            "elapsedMs": self.elapsed_ms,
        })


@dataclass(frozen=True)
class ChunkPreview:
    preview: str
    score: Optional[float] = None

    def to_dict(self) -> Dict[str, Any]:
        return _compact({"preview": self.preview, "score": self.score})


@dataclass(frozen=True)
class ChunksStep:
    count: int
    chunks: Tuple[ChunkPreview, ...] = ()
    elapsed_ms: Optional[int] = None
    duration_ms: Optional[int] = None
    step: str = field(default="chunks", init=False)

    def __post_init__(self):
        if self.count != len(self.chunks):
            raise ValueError(
                f"chunks step count {self.count} does not match {len(self.chunks)} previews"
            )

    @classmethod
    def from_chunks(
        cls,
        chunks: Sequence[RetrievedChunk],
        elapsed_ms: Optional[int] = None,
        duration_ms: Optional[int] = None,
    ) -> "ChunksStep":
        previews = tuple(ChunkPreview(make_preview(c.text), c.score) for c in chunks)
        return cls(len(previews), previews, elapsed_ms, duration_ms)

    def to_dict(self) -> Dict[str, Any]:
        return _compact({
            "step": self.step,
            "count": self.count,
            "chunks": [c.to_dict() for c in self.chunks],
            "elapsedMs": self.elapsed_ms,
            "durationMs": self.duration_ms,
        })


@dataclass(frozen=True)
class VectorSearchErrorStep:
    message: str
    elapsed_ms: Optional[int] = None
    step: str = field(default="vector_search_error", init=False)

    def to_dict(self) -> Dict[str, Any]:
        return _compact({"step": self.step, "message": self.message, "elapsedMs": self.elapsed_ms})


@dataclass(frozen=True)
class ContextStep:
    """Contributed by callers after formatting the retrieved chunks."""
    formatted_length: int
    snippet: str
    elapsed_ms: Optional[int] = None
    step: str = field(default="context", init=False)

    def to_dict(self) -> Dict[str, Any]:
        return _compact({
            "step": self.step,
            "formattedLength": self.formatted_length,
            "snippet": self.snippet,
            "elapsedMs": self.elapsed_ms,
        })


@dataclass(frozen=True)
class TimeoutStep:
    """Contributed by callers whose overall deadline fired. Carries no timing."""
    message: str
    step: str = field(default="timeout", init=False)

    def to_dict(self) -> Dict[str, Any]:
        return {"step": self.step, "message": self.message}


@dataclass(frozen=True)
class TimeoutDiagnosisStep:
    message: str
    elapsed_ms: Optional[int] = None
    step: str = field(default="timeout_diagnosis", init=False)

    def to_dict(self) -> Dict[str, Any]:
        return _compact({"step": self.step, "message": self.message, "elapsedMs": self.elapsed_ms})


@dataclass(frozen=True)
class UnknownStep:
    """A step kind this version does not know about, kept as raw data."""
    step: str
    data: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return dict(self.data, step=self.step)


TraceStep = Union[
    QueryStep,
    ConfigStep,
    EmbeddingStep,
    EmbedErrorStep,
    VectorSearchStep,
    ChunksStep,
    VectorSearchErrorStep,
    ContextStep,
    TimeoutStep,
    TimeoutDiagnosisStep,
    UnknownStep,
]


# ── Wire parsing ──────────────────────────────────────────────────

def _text(d: Dict[str, Any], key: str) -> str:
    value = d[key]
    if not isinstance(value, str):
        raise TypeError(f"'{key}' must be a string, got {type(value).__name__}")
    return value


def _number(value: Any, key: str) -> Optional[float]:
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise TypeError(f"'{key}' must be a number, got {type(value).__name__}")
    return value


def _ms(d: Dict[str, Any], key: str) -> Optional[int]:
    return _number(d.get(key), key)


def _parse_chunks(d: Dict[str, Any]) -> ChunksStep:
    previews = tuple(
        ChunkPreview(str(c.get("preview", "")), _number(c.get("score"), "score"))
        for c in d.get("chunks") or []
    )
    return ChunksStep(len(previews), previews, _ms(d, "elapsedMs"), _ms(d, "durationMs"))


_STEP_PARSERS: Dict[str, Callable[[Dict[str, Any]], TraceStep]] = {
    "query": lambda d: QueryStep(_text(d, "query"), _ms(d, "elapsedMs")),
    "config": lambda d: ConfigStep(_text(d, "message"), _ms(d, "elapsedMs")),
    "embedding": lambda d: EmbeddingStep(
        int(d["dimensions"]), _ms(d, "elapsedMs"), _ms(d, "durationMs")
    ),
    "embed_error": lambda d: EmbedErrorStep(_text(d, "message"), _ms(d, "elapsedMs")),
    "vector_search": lambda d: VectorSearchStep(
        int(d["numCandidates"]), int(d["limit"]), _ms(d, "elapsedMs")
    ),
    "chunks": _parse_chunks,
    "vector_search_error": lambda d: VectorSearchErrorStep(_text(d, "message"), _ms(d, "elapsedMs")),
    "context": lambda d: ContextStep(
        int(d["formattedLength"]), _text(d, "snippet"), _ms(d, "elapsedMs")
    ),
    "timeout": lambda d: TimeoutStep(_text(d, "message")),
    "timeout_diagnosis": lambda d: TimeoutDiagnosisStep(_text(d, "message"), _ms(d, "elapsedMs")),
}


def step_from_dict(data: Any) -> TraceStep:
    """
    Parse one step from its wire form.

    Unrecognised or malformed steps come back as ``UnknownStep`` rather
    than raising, so newer producers never break older consumers.
    """
    if not isinstance(data, dict):
        logger.debug(f"Non-object trace step kept as unknown: {data!r}")
        return UnknownStep("", {"value": data})
    kind = str(data.get("step", ""))
    parser = _STEP_PARSERS.get(kind)
    if parser is None:
        return UnknownStep(kind, dict(data))
    try:
        return parser(data)
    except (KeyError, TypeError, ValueError, AttributeError) as e:
        logger.debug(f"Malformed '{kind}' trace step kept as unknown: {e}")
        return UnknownStep(kind, dict(data))


# ── Payload and recorder ──────────────────────────────────────────

class TracePayload:
    """
    Ordered, append-only list of trace steps.

    Once frozen the payload rejects further appends; use ``extended`` to
    derive a new payload with extra steps.
    """

    def __init__(self, steps: Iterable[TraceStep] = (), frozen: bool = False):
        self._steps: List[TraceStep] = list(steps)
        self._frozen = frozen

    @property
    def steps(self) -> Tuple[TraceStep, ...]:
        return tuple(self._steps)

    @property
    def frozen(self) -> bool:
        return self._frozen

    def append(self, step: TraceStep) -> None:
        if self._frozen:
            raise RuntimeError("Trace is frozen; use extended() to add steps")
        self._steps.append(step)

    def freeze(self) -> "TracePayload":
        self._frozen = True
        return self

    def extended(self, *steps: TraceStep) -> "TracePayload":
        return TracePayload(self._steps + list(steps), frozen=True)

    def kinds(self) -> List[str]:
        return [s.step for s in self._steps]

    def last(self) -> Optional[TraceStep]:
        return self._steps[-1] if self._steps else None

    def to_dict(self) -> Dict[str, Any]:
        return {"steps": [s.to_dict() for s in self._steps]}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "TracePayload":
        return cls((step_from_dict(s) for s in data.get("steps") or []), frozen=True)

    def __len__(self) -> int:
        return len(self._steps)

    def __iter__(self):
        return iter(self._steps)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, TracePayload):
            return NotImplemented
        return self._steps == other._steps

    def __repr__(self) -> str:
        return f"TracePayload(steps={self._steps!r}, frozen={self._frozen})"


class TraceRecorder:
    """
    Builds a ``TracePayload`` for one retrieval call.

    The start timestamp is captured at construction; every ``elapsed_ms``
    is measured from it. ``clock`` returns seconds and must be monotonic.
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._clock = clock
        self._start = clock()
        self.payload = TracePayload()

    def now(self) -> float:
        return self._clock()

    def elapsed_ms(self, at: Optional[float] = None) -> int:
        moment = self._clock() if at is None else at
        return int(round((moment - self._start) * 1000))

    @staticmethod
    def duration_ms(started: float, ended: float) -> int:
        return int(round((ended - started) * 1000))

    def record(self, step: TraceStep) -> TraceStep:
        self.payload.append(step)
        logger.debug(f"trace step recorded: {step.step}")
        return step

    def last_step(self) -> Optional[TraceStep]:
        return self.payload.last()

    def freeze(self) -> TracePayload:
        return self.payload.freeze()
