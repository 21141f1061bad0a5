"""
Retrieval Pipeline.

Orchestrates query -> embedding -> vector search, recording a trace step
after every stage.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from .embedder import EmbeddingService
from .trace import (
    ChunksStep,
    ConfigStep,
    EmbedErrorStep,
    EmbeddingStep,
    QueryStep,
    TracePayload,
    TraceRecorder,
    VectorSearchErrorStep,
    VectorSearchStep,
)
from .types import EmbeddingVector, InputType, RetrievedChunk, StageResult
from .vector_search import VectorSearchClient, candidate_pool_size

logger = logging.getLogger(__name__)


@dataclass
class RetrievalResult:
    """Chunks for the prompt plus the trace explaining how they were found."""
    chunks: List[RetrievedChunk] = field(default_factory=list)
    trace: TracePayload = field(default_factory=TracePayload)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "chunks": [c.to_dict() for c in self.chunks],
            "trace": self.trace.to_dict(),
        }


class RetrievalPipeline:
    """
    Orchestrates retrieval for one query at a time.

    Pipeline:
    1. Record the query
    2. Check the document store is configured
    3. Embed the query
    4. Run vector search
    5. Return chunks and trace

    Every failure ends the run with no chunks and an error step on the
    trace; nothing is raised to the caller.
    """

    def __init__(
        self,
        embedding_service: EmbeddingService,
        vector_search: VectorSearchClient,
        top_k: Optional[int] = None,
    ):
        """
        Initialize the pipeline.

        Args:
            embedding_service: Service for generating embeddings
            vector_search: Client for vector search
            top_k: Results per query (default from the vector search config)
        """
        self.embedding_service = embedding_service
        self.vector_search = vector_search
        self.top_k = top_k or vector_search.config.top_k

    async def search_rag_with_trace(
        self,
        query: str,
        recorder: Optional[TraceRecorder] = None,
    ) -> RetrievalResult:
        """
        Retrieve chunks for a query along with a step-by-step trace.

        Args:
            query: User question
            recorder: Trace recorder owned by the caller. When omitted a new
                one is started here and its payload frozen on return.

        Returns:
            RetrievalResult; chunks are empty on any failure
        """
        owns_recorder = recorder is None
        if recorder is None:
            recorder = TraceRecorder()

        chunks = await self._run(query, recorder)
        trace = recorder.freeze() if owns_recorder else recorder.payload
        return RetrievalResult(chunks=chunks, trace=trace)

    async def search_rag(self, query: str) -> List[RetrievedChunk]:
        """Retrieve chunks only. Never raises; failures give an empty list."""
        try:
            result = await self.search_rag_with_trace(query)
        except Exception as e:
            logger.error(f"Retrieval failed unexpectedly: {e}")
            return []
        return result.chunks

    async def _run(self, query: str, recorder: TraceRecorder) -> List[RetrievedChunk]:
        recorder.record(QueryStep(query=query, elapsed_ms=0))

        if not self.vector_search.config.uri:
            logger.warning("Retrieval skipped: MONGODB_URI is not set")
            recorder.record(ConfigStep("MONGODB_URI is not set", recorder.elapsed_ms()))
            return []

        embed_start = recorder.now()
        embedded = await self._embed_stage(query)
        embed_end = recorder.now()
        if not embedded.ok:
            recorder.record(EmbedErrorStep(embedded.error, recorder.elapsed_ms(embed_end)))
            return []

        query_vector = embedded.value
        recorder.record(EmbeddingStep(
            dimensions=len(query_vector),
            elapsed_ms=recorder.elapsed_ms(embed_end),
            duration_ms=recorder.duration_ms(embed_start, embed_end),
        ))

        recorder.record(VectorSearchStep(
            num_candidates=candidate_pool_size(self.top_k),
            limit=self.top_k,
            elapsed_ms=recorder.elapsed_ms(),
        ))

        search_start = recorder.now()
        searched = await self.vector_search.search_stage(query_vector, self.top_k)
        search_end = recorder.now()
        if not searched.ok:
            recorder.record(VectorSearchErrorStep(searched.error, recorder.elapsed_ms(search_end)))
            return []

        chunks = searched.value
        recorder.record(ChunksStep.from_chunks(
            chunks,
            elapsed_ms=recorder.elapsed_ms(search_end),
            duration_ms=recorder.duration_ms(search_start, search_end),
        ))
        logger.info(
            f"Retrieved {len(chunks)} chunks in {recorder.elapsed_ms(search_end)} ms "
            f"(embedding {len(query_vector)} dims)"
        )
        return chunks

    async def _embed_stage(self, query: str) -> StageResult[EmbeddingVector]:
        try:
            vector = await self.embedding_service.embed(query, InputType.QUERY)
        except Exception as e:
            logger.warning(f"Query embedding failed: {e}")
            return StageResult.failure(str(e))
        return StageResult.success(vector)
