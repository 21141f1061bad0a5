"""
Settings-backed entry points for the retrieval pipeline.

    chunks = await search_rag("What is the policy on refunds?")
    result = await search_rag_with_trace("revenue growth")
"""

import logging
from typing import List, Optional

from config.settings import Settings, get_settings

from .embedder import EmbeddingService
from .pipeline import RetrievalPipeline, RetrievalResult
from .types import RetrievedChunk
from .vector_search import VectorSearchClient

logger = logging.getLogger(__name__)


def build_pipeline(settings: Optional[Settings] = None) -> RetrievalPipeline:
    """Create a pipeline wired from application settings."""
    s = settings or get_settings()
    vector_search = VectorSearchClient(s.vector_search_config())
    return RetrievalPipeline(
        embedding_service=EmbeddingService(s.embedding_config()),
        vector_search=vector_search,
        top_k=s.rag_top_k,
    )


async def search_rag(query: str) -> List[RetrievedChunk]:
    """Top-k chunks for a query; an empty list if anything fails."""
    try:
        pipeline = build_pipeline()
    except Exception as e:
        logger.error(f"Could not build retrieval pipeline: {e}")
        return []
    return await pipeline.search_rag(query)


async def search_rag_with_trace(query: str) -> RetrievalResult:
    """Same as ``search_rag`` but also returns the step-by-step trace."""
    return await build_pipeline().search_rag_with_trace(query)
