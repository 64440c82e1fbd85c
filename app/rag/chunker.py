"""Text chunking with overlap for RAG pipeline.

Implements character-based chunking to avoid tokenizer dependencies.
"""
from typing import List, Optional
from dataclasses import dataclass
import structlog

from app import config
from app.errors import ValidationError

logger = structlog.get_logger()

# Breakpoints are only accepted in the second half of the window
MIN_BREAK_RATIO = 0.5


@dataclass
class TextChunk:
    """Represents a chunk of text with the raw span it was cut from."""

    content: str
    char_start: int
    char_end: int
    chunk_index: int


class TextChunker:
    """Character-based text chunker with overlap support."""

    def __init__(
        self,
        chunk_size: Optional[int] = None,
        chunk_overlap: Optional[int] = None,
    ):
        """Initialize the text chunker.

        Args:
            chunk_size: Size of each chunk in characters (default from config)
            chunk_overlap: Overlap between chunks in characters (default from config)

        Raises:
            ValidationError: Unless chunk_size > chunk_overlap >= 0
        """
        self.chunk_size = config.CHUNK_SIZE if chunk_size is None else chunk_size
        self.chunk_overlap = config.CHUNK_OVERLAP if chunk_overlap is None else chunk_overlap

        if self.chunk_overlap < 0:
            raise ValidationError(f"Overlap ({self.chunk_overlap}) must not be negative")
        if self.chunk_overlap >= self.chunk_size:
            raise ValidationError(
                f"Overlap ({self.chunk_overlap}) must be less than "
                f"chunk size ({self.chunk_size})"
            )

    def chunk_text(self, text: str) -> List[TextChunk]:
        """Split text into overlapping chunks.

        Each window is cut at the last '.', else newline, else space that
        falls in its second half; otherwise at the raw window size. Slices
        are trimmed and empty ones dropped, so chunk_index stays contiguous.

        Args:
            text: Text to chunk

        Returns:
            List of TextChunk objects
        """
        if not text:
            return []

        text_length = len(text)
        chunks: List[TextChunk] = []
        start = 0

        while start < text_length:
            end = start + self.chunk_size

            if end < text_length:
                end = self._find_breakpoint(text, start, end)
            else:
                end = text_length

            content = text[start:end].strip()
            if content:
                chunks.append(
                    TextChunk(
                        content=content,
                        char_start=start,
                        char_end=end,
                        chunk_index=len(chunks),
                    )
                )

            if end >= text_length:
                break

            next_start = end - self.chunk_overlap
            # Snapped windows can be short enough that the overlap eats them
            start = next_start if next_start > start else end

        logger.debug(
            "text_chunked",
            text_length=text_length,
            chunk_count=len(chunks),
            chunk_size=self.chunk_size,
            chunk_overlap=self.chunk_overlap,
        )

        return chunks

    def _find_breakpoint(self, text: str, start: int, end: int) -> int:
        """Pick the end of the window starting at `start`.

        Args:
            text: Full text being chunked
            start: Window start
            end: Candidate (raw) window end, strictly inside the text

        Returns:
            Adjusted end position
        """
        floor = start + self.chunk_size * MIN_BREAK_RATIO

        # The candidate end itself may hold the terminator
        last_period = text.rfind(".", start, end + 1)
        if last_period >= floor:
            return last_period + 1

        last_newline = text.rfind("\n", start, end + 1)
        if last_newline >= floor:
            return last_newline + 1

        last_space = text.rfind(" ", start, end + 1)
        if last_space >= floor:
            return last_space

        return end

    def get_chunk_stats(self, chunks: List[TextChunk]) -> dict:
        """Get statistics about a set of chunks.

        Args:
            chunks: List of TextChunk objects

        Returns:
            Dictionary with chunk statistics
        """
        if not chunks:
            return {
                "chunk_count": 0,
                "total_chars": 0,
                "avg_chunk_size": 0,
                "min_chunk_size": 0,
                "max_chunk_size": 0,
            }

        chunk_sizes = [len(c.content) for c in chunks]

        return {
            "chunk_count": len(chunks),
            "total_chars": sum(chunk_sizes),
            "avg_chunk_size": sum(chunk_sizes) // len(chunks),
            "min_chunk_size": min(chunk_sizes),
            "max_chunk_size": max(chunk_sizes),
            "overlap": self.chunk_overlap,
        }


def chunk(text: str, chunk_size: int = 1000, overlap: int = 200) -> List[str]:
    """Chunk text and return only the trimmed chunk strings.

    Args:
        text: Text to chunk
        chunk_size: Window size in characters
        overlap: Characters shared by consecutive raw windows

    Returns:
        Ordered list of non-empty chunk strings
    """
    chunker = TextChunker(chunk_size=chunk_size, chunk_overlap=overlap)
    return [c.content for c in chunker.chunk_text(text)]
