"""
Service initialization and dependency injection for the retrieval API.

Creates and manages all service instances used by the API.
"""

import logging
from typing import Optional

from config.settings import get_settings, Settings
from retrieval.embedder import EmbeddingService
from retrieval.pipeline import RetrievalPipeline
from retrieval.vector_search import VectorSearchClient

logger = logging.getLogger(__name__)


class Services:
    """Container for all application services."""

    def __init__(self):
        self.settings: Optional[Settings] = None
        self.embedding_service: Optional[EmbeddingService] = None
        self.vector_search: Optional[VectorSearchClient] = None
        self.pipeline: Optional[RetrievalPipeline] = None
        self._initialized = False

    def initialize(self, settings: Optional[Settings] = None):
        """Initialize all services."""
        if self._initialized:
            return

        self.settings = settings or get_settings()
        logger.info(
            f"Initializing services with embedding model: {self.settings.rag_embedding_model}"
        )

        self._init_embedding()
        self._init_vector_search()
        self._init_pipeline()
        self._initialized = True

        if not self.settings.mongodb_uri:
            logger.warning("MONGODB_URI not set, retrieval will return no context")
        if not (self.settings.voyage_api_key or "").strip():
            logger.warning("VOYAGE_API_KEY not set, query embedding will fail")
        logger.info("All services initialized")

    def _init_embedding(self):
        """Initialize embedding service."""
        self.embedding_service = EmbeddingService(self.settings.embedding_config())
        logger.info(f"Embedding service ready: {self.settings.rag_embedding_model}")

    def _init_vector_search(self):
        """Initialize vector search client."""
        config = self.settings.vector_search_config()
        self.vector_search = VectorSearchClient(config)
        logger.info(
            f"Vector search ready: collection '{config.collection}', index '{config.index_name}'"
        )

    def _init_pipeline(self):
        """Initialize the retrieval pipeline."""
        self.pipeline = RetrievalPipeline(
            embedding_service=self.embedding_service,
            vector_search=self.vector_search,
            top_k=self.settings.rag_top_k,
        )
        logger.info("Retrieval pipeline ready")

    @property
    def is_ready(self) -> bool:
        return (
            self._initialized
            and self.pipeline is not None
            and self.settings is not None
            and self.settings.is_configured
        )

    def health(self) -> dict:
        """Return health status of all services."""
        s = self.settings
        return {
            "initialized": self._initialized,
            "embedding": self.embedding_service is not None,
            "vector_search": self.vector_search is not None,
            "pipeline": self.pipeline is not None,
            "mongodb_configured": bool(s and s.mongodb_uri),
            "voyage_configured": bool(s and (s.voyage_api_key or "").strip()),
        }

    def reset(self):
        """Drop all services so the next initialize() rebuilds them."""
        self.__init__()


# Singleton
_services = Services()


def get_services() -> Services:
    """Get the global services instance."""
    return _services


def initialize_services(settings: Optional[Settings] = None):
    """Initialize all services (called at startup)."""
    _services.initialize(settings)
