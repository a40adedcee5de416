"""OpenAI embeddings service"""

from functools import lru_cache
from typing import List, Optional
from openai import OpenAI
import redis
import json
import hashlib
import logging
from talktofolder.exceptions import RAGException
from talktofolder.rag.config import rag_config

logger = logging.getLogger(__name__)

MAX_INPUTS_PER_REQUEST = 512


class EmbeddingsService:
    """Service for generating embeddings using OpenAI"""

    def __init__(self, client: Optional[OpenAI] = None, redis_client=None, cache_enabled: Optional[bool] = None):
        self._client = client
        self.model = rag_config.embedding_model

        # Redis cache for embeddings
        self.cache_enabled = rag_config.enable_cache if cache_enabled is None else cache_enabled
        self.redis_client = redis_client
        if self.cache_enabled and self.redis_client is None:
            try:
                self.redis_client = redis.from_url(
                    rag_config.redis_url,
                    decode_responses=False  # Store bytes for embeddings
                )
                logger.info("Redis cache enabled for embeddings")
            except Exception as e:
                logger.warning(f"Failed to connect to Redis cache: {e}")
                self.cache_enabled = False

    @property
    def client(self) -> OpenAI:
        if self._client is None:
            self._client = OpenAI(api_key=rag_config.openai_api_key or None)
        return self._client

    def _get_cache_key(self, text: str) -> str:
        """Generate cache key for text"""
        return f"emb:{self.model}:{hashlib.md5(text.encode()).hexdigest()}"

    def _get_from_cache(self, text: str) -> Optional[List[float]]:
        """Get embedding from cache"""
        if not self.cache_enabled:
            return None

        try:
            cached = self.redis_client.get(self._get_cache_key(text))
            if cached:
                logger.debug("Cache hit for embedding")
                return json.loads(cached)
        except Exception as e:
            logger.warning(f"Cache retrieval error: {e}")

        return None

    def _save_to_cache(self, text: str, embedding: List[float]):
        """Save embedding to cache"""
        if not self.cache_enabled:
            return

        try:
            self.redis_client.setex(
                self._get_cache_key(text),
                rag_config.cache_ttl,
                json.dumps(embedding)
            )
        except Exception as e:
            logger.warning(f"Cache save error: {e}")

    def _request_options(self) -> dict:
        options = {"model": self.model}
        # Only the v3 models accept a reduced output size
        if self.model.startswith("text-embedding-3"):
            options["dimensions"] = rag_config.vector_size
        return options

    def generate_embedding(self, text: str) -> List[float]:
        """
        Generate embedding for a single text

        Args:
            text: Text to embed

        Returns:
            List of floats representing the embedding vector
        """
        cached = self._get_from_cache(text)
        if cached:
            return cached

        try:
            response = self.client.embeddings.create(input=text, **self._request_options())
            embedding = response.data[0].embedding

            self._save_to_cache(text, embedding)

            logger.debug(f"Generated embedding for text of length {len(text)}")
            return embedding

        except Exception as e:
            logger.error(f"Error generating embedding: {e}")
            raise RAGException(f"Embedding request failed: {e}")

    def generate_embeddings_batch(self, texts: List[str]) -> List[List[float]]:
        """
        Generate embeddings for multiple texts

        Cached texts are served from Redis; the rest are sent in slices of
        at most MAX_INPUTS_PER_REQUEST.

        Args:
            texts: List of texts to embed

        Returns:
            One embedding vector per input text, in input order
        """
        embeddings: List[Optional[List[float]]] = [self._get_from_cache(text) for text in texts]
        missing = [i for i, embedding in enumerate(embeddings) if embedding is None]

        for start in range(0, len(missing), MAX_INPUTS_PER_REQUEST):
            positions = missing[start:start + MAX_INPUTS_PER_REQUEST]
            try:
                response = self.client.embeddings.create(
                    input=[texts[i] for i in positions],
                    **self._request_options()
                )
            except Exception as e:
                logger.error(f"Error generating batch embeddings: {e}")
                raise RAGException(f"Embedding request failed: {e}")

            # The API reports an index per item; do not rely on response order
            for item in response.data:
                position = positions[item.index]
                embeddings[position] = item.embedding
                self._save_to_cache(texts[position], item.embedding)

        if missing:
            logger.info(f"Generated {len(missing)} embeddings, {len(texts) - len(missing)} from cache")
        return embeddings


@lru_cache
def get_embeddings_service() -> EmbeddingsService:
    """Get the shared embeddings service"""
    return EmbeddingsService()
