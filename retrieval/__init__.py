"""
Retrieval Module.

This module provides RAG retrieval for prompt building:
- Query embedding (Voyage AI) with retry and per-attempt timeout
- MongoDB Atlas Vector Search
- Context formatting
- Step-by-step execution traces
"""

from .embedder import EmbeddingService, EmbeddingConfig
from .vector_search import VectorSearchClient, VectorSearchConfig, candidate_pool_size
from .context_builder import format_context
from .pipeline import RetrievalPipeline, RetrievalResult
from .trace import TracePayload, TraceRecorder
from .types import InputType, RetrievedChunk, StageResult

__all__ = [
    "EmbeddingService",
    "EmbeddingConfig",
    "VectorSearchClient",
    "VectorSearchConfig",
    "candidate_pool_size",
    "format_context",
    "RetrievalPipeline",
    "RetrievalResult",
    "TracePayload",
    "TraceRecorder",
    "InputType",
    "RetrievedChunk",
    "StageResult",
]
