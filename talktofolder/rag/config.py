"""RAG system configuration"""

from talktofolder.config import settings
from dataclasses import dataclass, field
from typing import List


@dataclass
class RAGConfig:
    """Configuration for RAG system"""

    # OpenAI Settings
    openai_api_key: str = settings.OPENAI_API_KEY
    llm_model: str = settings.OPENAI_MODEL
    embedding_model: str = settings.OPENAI_EMBEDDING_MODEL
    fallback_temperature: float = settings.FALLBACK_TEMPERATURE
    fallback_max_tokens: int = settings.FALLBACK_MAX_TOKENS

    # Qdrant Settings
    qdrant_url: str = settings.QDRANT_URL
    qdrant_api_key: str = settings.QDRANT_API_KEY
    qdrant_collection: str = settings.QDRANT_COLLECTION
    # text-embedding-3-small: 1536
    vector_size: int = settings.EMBEDDING_DIMENSION

    # Managed assistant
    assistant_model: str = settings.ASSISTANT_MODEL
    assistant_name_prefix: str = settings.ASSISTANT_NAME_PREFIX
    assistant_ready_delay: float = settings.ASSISTANT_READY_DELAY_SECONDS
    assistant_history_limit: int = settings.ASSISTANT_HISTORY_LIMIT
    assistant_terms_error_codes: List[str] = field(
        default_factory=lambda: list(settings.ASSISTANT_TERMS_ERROR_CODES)
    )
    max_batch_bytes: int = settings.ASSISTANT_MAX_BATCH_BYTES

    # RAG Settings
    chunk_tokens: int = settings.RAG_CHUNK_TOKENS
    chunk_overlap_tokens: int = settings.RAG_CHUNK_OVERLAP_TOKENS
    top_k: int = settings.RAG_TOP_K
    min_score: float = settings.RAG_MIN_SCORE
    enable_cache: bool = settings.RAG_ENABLE_CACHE

    # Redis Cache
    redis_url: str = settings.REDIS_URL
    cache_ttl: int = 3600  # 1 hour


# Global RAG config instance
rag_config = RAGConfig()
