"""
RAG package for folder chat

Exports the components most callers need; heavy clients are created lazily
through the ``get_*`` helpers.
"""

from talktofolder.rag.text_chunker import TextChunker, TextChunk, text_chunker
from talktofolder.rag.vector_store import VectorStore, SearchResult, get_vector_store
from talktofolder.rag.assistant_client import AssistantClient, get_assistant_client
from talktofolder.rag.chat_orchestrator import ChatOrchestrator, ChatTurnResult, get_chat_orchestrator

__all__ = [
    "TextChunker",
    "TextChunk",
    "text_chunker",
    "VectorStore",
    "SearchResult",
    "get_vector_store",
    "AssistantClient",
    "get_assistant_client",
    "ChatOrchestrator",
    "ChatTurnResult",
    "get_chat_orchestrator",
]
