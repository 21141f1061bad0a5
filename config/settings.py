"""
Centralized configuration for the knowledge-base retrieval service.

All settings are loaded from environment variables via .env file.
"""

from functools import lru_cache
from typing import List, Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict
from dotenv import load_dotenv

from retrieval.embedder import EmbeddingConfig
from retrieval.vector_search import VectorSearchConfig

load_dotenv()


class Settings(BaseSettings):
    """Application settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Document store (MongoDB Atlas Vector Search)
    mongodb_uri: Optional[str] = Field(default=None)
    rag_database: Optional[str] = Field(default=None)
    rag_collection: str = Field(default="documents")
    rag_index_name: str = Field(default="vector_index")
    rag_vector_field: str = Field(default="embedding")
    rag_text_field: str = Field(default="text")
    rag_top_k: int = Field(default=5, ge=1)

    # Embeddings (Voyage AI)
    voyage_api_key: Optional[str] = Field(default=None)
    voyage_api_url: str = Field(default="https://api.voyageai.com/v1/embeddings")
    rag_embedding_model: str = Field(default="voyage-finance-2")
    # voyage-finance-2 outputs 1024 dimensions; must match the Atlas vector index
    rag_embedding_dimensions: int = Field(default=1024)
    embed_timeout_seconds: float = Field(default=15.0, gt=0)
    embed_max_retries: int = Field(default=2, ge=0)
    embed_backoff_seconds: float = Field(default=1.0, ge=0)

    # Trace / outer deadline
    rag_debug: bool = Field(default=False)
    retrieval_timeout_seconds: float = Field(default=60.0, gt=0)

    # API
    api_host: str = Field(default="0.0.0.0")
    api_port: int = Field(default=8000)
    api_title: str = Field(default="Knowledge Base Retrieval API")
    api_version: str = Field(default="1.0.0")
    cors_origins: str = Field(default="*")

    # Logging
    log_level: str = Field(default="INFO")

    @property
    def cors_origins_list(self) -> List[str]:
        return [o.strip() for o in self.cors_origins.split(",") if o.strip()]

    @property
    def is_configured(self) -> bool:
        return bool(self.mongodb_uri) and bool((self.voyage_api_key or "").strip())

    def embedding_config(self) -> EmbeddingConfig:
        return EmbeddingConfig(
            api_key=self.voyage_api_key,
            api_url=self.voyage_api_url,
            model_id=self.rag_embedding_model,
            dimension=self.rag_embedding_dimensions,
            timeout_seconds=self.embed_timeout_seconds,
            max_retries=self.embed_max_retries,
            backoff_seconds=self.embed_backoff_seconds,
        )

    def vector_search_config(self) -> VectorSearchConfig:
        return VectorSearchConfig(
            uri=self.mongodb_uri,
            database=self.rag_database,
            collection=self.rag_collection,
            index_name=self.rag_index_name,
            vector_field=self.rag_vector_field,
            text_field=self.rag_text_field,
            top_k=self.rag_top_k,
        )


@lru_cache()
def get_settings() -> Settings:
    """Get cached application settings."""
    return Settings()
