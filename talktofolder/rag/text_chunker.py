"""Separator-aware text chunking"""

import math
import logging
from dataclasses import dataclass
from typing import List, Optional, Sequence

logger = logging.getLogger(__name__)

DEFAULT_SEPARATORS = ["\n\n", "\n", ". ", "! ", "? ", "; ", ": ", ", ", " "]

# How far back from the candidate end we look for a separator
BREAK_SEARCH_WINDOW = 200

CHARS_PER_TOKEN = 4


@dataclass(frozen=True)
class TextChunk:
    """A slice of a document's text used as a retrieval unit"""
    content: str
    start_index: int
    end_index: int
    chunk_index: int


class TextChunker:
    """Split text into overlapping chunks that prefer natural boundaries"""

    def __init__(
        self,
        chunk_size: int = 1000,
        chunk_overlap: int = 200,
        separators: Optional[Sequence[str]] = None
    ):
        if chunk_size <= 0:
            raise ValueError("chunk_size must be positive")
        if chunk_overlap < 0:
            raise ValueError("chunk_overlap must not be negative")

        self.chunk_size = chunk_size
        self.chunk_overlap = chunk_overlap
        self.separators = list(separators) if separators is not None else list(DEFAULT_SEPARATORS)

    def chunk_text(self, text: str) -> List[TextChunk]:
        """
        Split text into chunks

        Args:
            text: Raw document text

        Returns:
            Chunks in increasing chunk_index / start_index order
        """
        if not text or not text.strip():
            return []

        chunks: List[TextChunk] = []
        text_length = len(text)
        start = 0
        chunk_index = 0

        while start < text_length:
            end = min(start + self.chunk_size, text_length)

            cut = end
            if end < text_length:
                cut = self._find_break_point(text, start, end)

            content = text[start:cut].strip()
            if content:
                chunks.append(TextChunk(
                    content=content,
                    start_index=start,
                    end_index=cut,
                    chunk_index=chunk_index
                ))
                chunk_index += 1

            if cut >= text_length:
                break

            # +1 floor keeps us moving when overlap >= chunk length
            start = max(cut - self.chunk_overlap, start + 1)

        logger.debug(
            f"Split {text_length} chars into {len(chunks)} chunks "
            f"(size: {self.chunk_size}, overlap: {self.chunk_overlap})"
        )
        return chunks

    def _find_break_point(self, text: str, start: int, end: int) -> int:
        """Cut right after the highest-priority separator near the end"""
        search_start = max(start, end - BREAK_SEARCH_WINDOW)
        window = text[search_start:end]

        for separator in self.separators:
            position = window.rfind(separator)
            if position != -1:
                return search_start + position + len(separator)

        return end

    def chunk_by_tokens(
        self,
        text: str,
        target_tokens: int = 250,
        overlap_tokens: int = 50
    ) -> List[TextChunk]:
        """Chunk using a rough 4 characters per token estimate"""
        chunker = TextChunker(
            chunk_size=target_tokens * CHARS_PER_TOKEN,
            chunk_overlap=overlap_tokens * CHARS_PER_TOKEN,
            separators=self.separators
        )
        return chunker.chunk_text(text)

    @staticmethod
    def estimate_token_count(text: str) -> int:
        return math.ceil(len(text) / CHARS_PER_TOKEN)


# Global chunker instance
text_chunker = TextChunker()
