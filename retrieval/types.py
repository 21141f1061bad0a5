"""
Shared value types for the retrieval pipeline.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Generic, List, Optional, TypeVar

T = TypeVar("T")

EmbeddingVector = List[float]


class InputType(Enum):
    """How the embedding model should treat the input text."""
    QUERY = "query"
    DOCUMENT = "document"


@dataclass(frozen=True)
class RetrievedChunk:
    """A text passage returned by vector search."""
    text: str
    score: Optional[float] = None

    def to_dict(self) -> Dict[str, Any]:
        return {"text": self.text, "score": self.score}


@dataclass(frozen=True)
class StageResult(Generic[T]):
    """
    Outcome of one pipeline stage.

    Exactly one of ``value`` / ``error`` is meaningful: ``ok`` is True when
    the stage produced a value, otherwise ``error`` holds the failure message.
    """
    value: Optional[T] = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def success(cls, value: T) -> "StageResult[T]":
        return cls(value=value)

    @classmethod
    def failure(cls, error: str) -> "StageResult[T]":
        return cls(error=error or "unknown error")
