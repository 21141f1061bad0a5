"""
Vector Search Client for the retrieval pipeline.

Runs MongoDB Atlas Vector Search queries and maps the hits to chunks.
"""

import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Sequence

from pymongo import AsyncMongoClient

from .types import RetrievedChunk, StageResult

logger = logging.getLogger(__name__)

# Name used by the Node and Python drivers when the URI names no database
DEFAULT_DATABASE = "test"


def candidate_pool_size(top_k: int) -> int:
    """Nearest neighbours the index examines before keeping ``top_k``."""
    return max(top_k * 20, 100)


@dataclass
class VectorSearchConfig:
    """Configuration for the vector search client."""
    uri: Optional[str] = None
    database: Optional[str] = None  # None: the database named in the URI
    collection: str = "documents"
    index_name: str = "vector_index"
    vector_field: str = "embedding"
    text_field: str = "text"
    top_k: int = 5


class VectorSearchClient:
    """
    Client for Atlas Vector Search queries.

    A connection is opened for every search and closed on every exit
    path. Failures never propagate: ``search_stage`` reports them in a
    ``StageResult`` and ``search`` returns an empty list.
    """

    def __init__(
        self,
        config: VectorSearchConfig,
        client_factory: Callable[[str], Any] = AsyncMongoClient,
    ):
        """
        Initialize the vector search client.

        Args:
            config: Vector search configuration
            client_factory: Builds a client from a connection string
        """
        self.config = config
        self._client_factory = client_factory

    def build_pipeline(self, query_vector: Sequence[float], top_k: int) -> List[Dict[str, Any]]:
        """Aggregation pipeline: similarity search, then projection."""
        return [
            {
                "$vectorSearch": {
                    "index": self.config.index_name,
                    "path": self.config.vector_field,
                    "queryVector": list(query_vector),
                    "numCandidates": candidate_pool_size(top_k),
                    "limit": top_k,
                },
            },
            {
                "$project": {
                    self.config.text_field: 1,
                    "score": {"$meta": "vectorSearchScore"},
                },
            },
        ]

    async def search_stage(
        self,
        query_vector: Sequence[float],
        top_k: Optional[int] = None,
    ) -> StageResult[List[RetrievedChunk]]:
        """
        Query for similar chunks.

        Args:
            query_vector: Query embedding
            top_k: Number of results to return (default from config)

        Returns:
            StageResult holding the chunks, or the failure message
        """
        if not self.config.uri:
            return StageResult.failure("MONGODB_URI is not set")

        limit = top_k or self.config.top_k
        pipeline = self.build_pipeline(query_vector, limit)

        try:
            async with self._client_factory(self.config.uri) as client:
                collection = self._database(client)[self.config.collection]
                cursor = await collection.aggregate(pipeline)
                docs = await cursor.to_list(None)
            chunks = [self._to_chunk(doc) for doc in docs]
        except Exception as e:
            logger.warning(f"Vector search failed: {e}")
            return StageResult.failure(str(e))

        logger.debug(f"Vector search returned {len(chunks)} results")
        return StageResult.success(chunks)

    async def search(
        self,
        query_vector: Sequence[float],
        top_k: Optional[int] = None,
    ) -> List[RetrievedChunk]:
        """Like ``search_stage`` but yields an empty list on failure."""
        result = await self.search_stage(query_vector, top_k)
        return result.value if result.ok else []

    def _database(self, client: Any) -> Any:
        if self.config.database:
            return client[self.config.database]
        return client.get_default_database(DEFAULT_DATABASE)

    def _to_chunk(self, doc: Dict[str, Any]) -> RetrievedChunk:
        text = doc.get(self.config.text_field)
        score = doc.get("score")
        return RetrievedChunk(
            text=text if isinstance(text, str) else "",
            score=float(score) if isinstance(score, (int, float)) and not isinstance(score, bool) else None,
        )
