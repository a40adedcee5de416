"""Semantic search retriever"""

from typing import List, Dict, Any, Optional
import logging
from talktofolder.rag.vector_store import VectorStore, SearchResult, get_vector_store
from talktofolder.rag.config import rag_config
from talktofolder.rag.prompt_templates import NO_CONTEXT_MESSAGE

logger = logging.getLogger(__name__)


class Retriever:
    """Retriever for folder-scoped semantic search"""

    def __init__(self, vector_store: Optional[VectorStore] = None):
        self._vector_store = vector_store
        self.top_k = rag_config.top_k
        self.min_score = rag_config.min_score

    @property
    def vector_store(self) -> VectorStore:
        if self._vector_store is None:
            self._vector_store = get_vector_store()
        return self._vector_store

    def retrieve(
        self,
        query: str,
        user_id: str,
        folder_id: Optional[str] = None,
        top_k: Optional[int] = None,
        min_score: Optional[float] = None
    ) -> List[SearchResult]:
        """
        Retrieve relevant chunks for a query

        Args:
            query: User query text
            user_id: Namespace to search
            folder_id: Restrict to one folder
            top_k: Number of chunks to retrieve (default: from config)
            min_score: Minimum relevance score (default: from config)

        Returns:
            Relevant chunks with scores, best first
        """
        top_k = top_k if top_k is not None else self.top_k
        min_score = min_score if min_score is not None else self.min_score

        logger.info(f"Searching for top-{top_k} chunks (min_score: {min_score})")
        results = self.vector_store.search_similar(
            query,
            user_id,
            folder_id=folder_id,
            top_k=top_k,
            min_score=min_score
        )

        for i, result in enumerate(results, 1):
            logger.debug(f"  {i}. Score: {result.score:.3f} - {result.metadata.file_name}")

        return results

    def format_context(self, results: List[SearchResult]) -> str:
        """
        Format retrieved chunks into the prompt context block

        Args:
            results: List of search results

        Returns:
            One "file: text" entry per result, or the no-documents sentinel
        """
        if not results:
            return NO_CONTEXT_MESSAGE

        return "\n\n".join(
            f"{result.metadata.file_name}: {result.metadata.chunk_text}"
            for result in results
        )

    def get_citations(self, results: List[SearchResult]) -> List[Dict[str, Any]]:
        """Citation records in result order"""
        return [
            {
                "file_name": result.metadata.file_name,
                "file_id": result.metadata.file_id,
                "score": result.score,
                "chunk_index": result.metadata.chunk_index
            }
            for result in results
        ]
