"""Qdrant vector database client

One collection holds every user's chunks. The ``user_id`` payload field is the
namespace: every query, count and delete below carries it as a mandatory
condition, so no operation can reach another user's points.
"""

import uuid
from dataclasses import dataclass
from functools import lru_cache
from typing import List, Dict, Any, Optional
from pydantic import BaseModel
from qdrant_client import QdrantClient
from qdrant_client.models import (
    Distance,
    VectorParams,
    PointStruct,
    Filter,
    FieldCondition,
    MatchValue,
    FilterSelector,
    PayloadSchemaType
)
import logging
from talktofolder.rag.config import rag_config
from talktofolder.rag.embeddings import EmbeddingsService, get_embeddings_service
from talktofolder.rag.text_chunker import TextChunk

logger = logging.getLogger(__name__)

# Fixed namespace so the same chunk key always maps to the same point id
CHUNK_ID_NAMESPACE = uuid.UUID("6f1c5a8e-2b7d-4e0a-9c3f-5d8e7a1b2c4d")

INDEXED_PAYLOAD_FIELDS = ("user_id", "folder_id", "file_id")


def chunk_key(file_id: str, chunk_index: int) -> str:
    """Stable identifier of a chunk: ``{fileId}-chunk-{chunkIndex}``"""
    return f"{file_id}-chunk-{chunk_index}"


def point_id_for(key: str) -> str:
    """Qdrant only accepts UUID or integer point ids"""
    return str(uuid.uuid5(CHUNK_ID_NAMESPACE, key))


class ChunkMetadata(BaseModel):
    """Payload stored with every embedded chunk"""
    schema_version: int = 1
    chunk_id: str
    file_id: str
    file_name: str
    folder_id: str
    folder_name: str
    user_id: str
    mime_type: str
    chunk_index: int
    chunk_text: str
    start_index: int
    end_index: int


@dataclass
class SearchResult:
    """One similarity match"""
    id: str
    score: float
    metadata: ChunkMetadata


class VectorStore:
    """Per-user partitioned vector store using Qdrant"""

    def __init__(self, client: Optional[QdrantClient] = None, embeddings: Optional[EmbeddingsService] = None):
        self.client = client
        self._embeddings = embeddings
        self._initialized = False

    @property
    def embeddings(self) -> EmbeddingsService:
        if self._embeddings is None:
            self._embeddings = get_embeddings_service()
        return self._embeddings

    @property
    def collection_name(self) -> str:
        """Get collection name dynamically based on current config"""
        return rag_config.qdrant_collection

    @property
    def vector_size(self) -> int:
        """Get vector size dynamically based on current config"""
        return rag_config.vector_size

    def _init_client(self) -> QdrantClient:
        """Initialize Qdrant client"""
        try:
            if rag_config.qdrant_api_key:
                client = QdrantClient(
                    url=rag_config.qdrant_url,
                    api_key=rag_config.qdrant_api_key
                )
            else:
                client = QdrantClient(url=rag_config.qdrant_url)

            logger.info(f"Connected to Qdrant at {rag_config.qdrant_url}")
            return client

        except Exception as e:
            logger.error(f"Failed to connect to Qdrant: {e}")
            raise

    def _ensure_initialized(self):
        """Ensure client and collection exist before use"""
        if self._initialized:
            return
        if self.client is None:
            self.client = self._init_client()
        self.ensure_collection()
        self._initialized = True

    def ensure_collection(self):
        """Ensure collection and payload indexes exist, create if not"""
        if self.client is None:
            self.client = self._init_client()

        try:
            collections = self.client.get_collections().collections
            collection_names = [col.name for col in collections]

            if self.collection_name not in collection_names:
                logger.info(f"Creating collection: {self.collection_name}")
                self.client.create_collection(
                    collection_name=self.collection_name,
                    vectors_config=VectorParams(
                        size=self.vector_size,
                        distance=Distance.COSINE
                    )
                )
                for field_name in INDEXED_PAYLOAD_FIELDS:
                    self.client.create_payload_index(
                        collection_name=self.collection_name,
                        field_name=field_name,
                        field_schema=PayloadSchemaType.KEYWORD
                    )
                logger.info(f"Collection created: {self.collection_name}")
            else:
                logger.debug(f"Collection exists: {self.collection_name}")

        except Exception as e:
            logger.error(f"Error ensuring collection: {e}")
            raise

    def _namespace_filter(self, user_id: str, **conditions: Optional[str]) -> Filter:
        """Filter scoped to one user plus optional extra equality conditions"""
        must = [FieldCondition(key="user_id", match=MatchValue(value=user_id))]
        for key, value in conditions.items():
            if value is not None:
                must.append(FieldCondition(key=key, match=MatchValue(value=value)))
        return Filter(must=must)

    def health_check(self) -> bool:
        """Check if Qdrant is healthy"""
        try:
            self._ensure_initialized()
            self.client.get_collections()
            return True
        except Exception as e:
            logger.error(f"Qdrant health check failed: {e}")
            return False

    def index_file_chunks(
        self,
        file_id: str,
        file_name: str,
        folder_id: str,
        folder_name: str,
        user_id: str,
        mime_type: str,
        chunks: List[TextChunk]
    ) -> List[str]:
        """
        Embed and upsert all chunks of one file into the user's namespace

        Args:
            file_id: Owning file id
            file_name: File display name
            folder_id: Owning folder id
            folder_name: Folder display name
            user_id: Owner, used as the namespace
            mime_type: File MIME type
            chunks: Chunks produced by the chunker

        Returns:
            Chunk keys written, in chunk order
        """
        if not chunks:
            return []

        self._ensure_initialized()

        try:
            vectors = self.embeddings.generate_embeddings_batch([chunk.content for chunk in chunks])

            keys = []
            points = []
            for chunk, vector in zip(chunks, vectors):
                key = chunk_key(file_id, chunk.chunk_index)
                metadata = ChunkMetadata(
                    chunk_id=key,
                    file_id=file_id,
                    file_name=file_name,
                    folder_id=folder_id,
                    folder_name=folder_name,
                    user_id=user_id,
                    mime_type=mime_type,
                    chunk_index=chunk.chunk_index,
                    chunk_text=chunk.content,
                    start_index=chunk.start_index,
                    end_index=chunk.end_index
                )
                keys.append(key)
                points.append(PointStruct(
                    id=point_id_for(key),
                    vector=vector,
                    payload=metadata.model_dump()
                ))

            self.client.upsert(
                collection_name=self.collection_name,
                points=points,
                wait=True
            )

            logger.info(f"Indexed {len(points)} chunks for file {file_name}")
            return keys

        except Exception as e:
            logger.error(f"Error indexing file {file_name}: {e}")
            raise

    def search_similar(
        self,
        query: str,
        user_id: str,
        folder_id: Optional[str] = None,
        top_k: int = 10,
        min_score: float = 0.7
    ) -> List[SearchResult]:
        """
        Search the user's namespace for chunks similar to the query

        Args:
            query: Query text
            user_id: Namespace to search
            folder_id: Optional folder restriction
            top_k: Maximum number of neighbours to fetch
            min_score: Results scoring below this are dropped

        Returns:
            Results sorted by descending score
        """
        self._ensure_initialized()

        try:
            query_vector = self.embeddings.generate_embedding(query)

            response = self.client.query_points(
                collection_name=self.collection_name,
                query=query_vector,
                query_filter=self._namespace_filter(user_id, folder_id=folder_id),
                limit=top_k,
                with_payload=True
            )

            results = [
                SearchResult(
                    id=point.payload.get("chunk_id", str(point.id)),
                    score=point.score,
                    metadata=ChunkMetadata.model_validate(point.payload)
                )
                for point in response.points
                if point.score >= min_score
            ]
            results.sort(key=lambda result: result.score, reverse=True)

            logger.info(f"Found {len(results)} chunks for user {user_id} (min_score: {min_score})")
            return results

        except Exception as e:
            logger.error(f"Error searching vectors: {e}")
            raise

    def _delete_where(self, user_id: str, description: str, **conditions: Optional[str]):
        self._ensure_initialized()

        try:
            self.client.delete(
                collection_name=self.collection_name,
                points_selector=FilterSelector(filter=self._namespace_filter(user_id, **conditions)),
                wait=True
            )
            logger.info(f"Deleted vectors for {description}")
        except Exception as e:
            logger.error(f"Error deleting vectors for {description}: {e}")
            raise

    def delete_file_vectors(self, file_id: str, user_id: str):
        """Delete every chunk of one file"""
        self._delete_where(user_id, f"file {file_id}", file_id=file_id)

    def delete_folder_vectors(self, folder_id: str, user_id: str):
        """Delete every chunk of one folder"""
        self._delete_where(user_id, f"folder {folder_id}", folder_id=folder_id)

    def delete_user_vectors(self, user_id: str):
        """Delete the user's whole namespace"""
        self._delete_where(user_id, f"user {user_id}")

    def count_vectors(self, user_id: str, file_id: Optional[str] = None, folder_id: Optional[str] = None) -> int:
        """Exact number of stored chunks in a namespace slice"""
        self._ensure_initialized()
        result = self.client.count(
            collection_name=self.collection_name,
            count_filter=self._namespace_filter(user_id, file_id=file_id, folder_id=folder_id),
            exact=True
        )
        return result.count

    def get_collection_info(self) -> Dict[str, Any]:
        """Get collection information"""
        try:
            self._ensure_initialized()

            collection = self.client.get_collection(self.collection_name)
            return {
                "name": self.collection_name,
                "points_count": collection.points_count,
                "status": str(collection.status)
            }
        except Exception as e:
            logger.error(f"Error getting collection info: {e}")
            raise


@lru_cache
def get_vector_store() -> VectorStore:
    """Get the shared vector store"""
    return VectorStore()
