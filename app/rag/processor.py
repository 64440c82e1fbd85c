"""Document processing for the RAG pipeline.

Orchestrates:
- Whitespace normalization and chunking
- Bounded-concurrency embedding generation
- Storage through the hybrid router
- Similarity queries and context assembly for generation
"""
import re
from typing import Any, Dict, List, Optional

import structlog

from app import config
from app.errors import ValidationError
from app.rag.chunker import TextChunker
from app.rag.embedder import Embedder
from app.rag.models import Chunk, IngestResult, SearchMatch, StoreStats, make_chunk_id, utc_now_iso
from app.rag.router import HybridRouter

logger = structlog.get_logger()

_WHITESPACE = re.compile(r"\s+")


def normalize_whitespace(text: str) -> str:
    """Collapse whitespace runs to single spaces and trim."""
    return _WHITESPACE.sub(" ", text).strip()


def format_source_block(match: SearchMatch) -> str:
    """Delimited context block for one search match."""
    return f"\n\n--- Source (Score: {match.score:.2f}) ---\n{match.text}"


class DocumentProcessor:
    """Ingests documents and answers context queries for one deployment."""

    def __init__(
        self,
        router: HybridRouter,
        embedder: Optional[Embedder] = None,
        chunker: Optional[TextChunker] = None,
    ):
        """Initialize the processor.

        Args:
            router: Hybrid router owning the backend selection
            embedder: Embedder (default: provider from config with fallback)
            chunker: Text chunker (default sizes from config)
        """
        self.router = router
        self.embedder = embedder or Embedder()
        self.chunker = chunker or TextChunker()

        logger.info(
            "document_processor_initialized",
            chunk_size=self.chunker.chunk_size,
            chunk_overlap=self.chunker.chunk_overlap,
            embedding_concurrency=self.embedder.concurrency,
        )

    async def ingest(
        self,
        owner: str,
        document_id: str,
        raw_text: str,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> IngestResult:
        """Chunk, embed and store one document.

        Either every chunk is committed or the call raises.

        Args:
            owner: Owner (chatbot) id
            document_id: Document id grouping the chunks
            raw_text: Document text
            metadata: Caller metadata merged into every chunk

        Returns:
            IngestResult with chunk count and normalized text length

        Raises:
            ValidationError: If the text yields no chunks
            BackendExhaustedError: If neither backend accepted the chunks
        """
        clean_text = normalize_whitespace(raw_text or "")
        text_chunks = self.chunker.chunk_text(clean_text)

        if not text_chunks:
            raise ValidationError("Document produced no chunks (empty or whitespace-only text)")

        # Indices are fixed here, before concurrent embedding starts
        created_at = utc_now_iso()
        chunks = [
            Chunk(
                id=make_chunk_id(document_id, tc.chunk_index),
                document_id=document_id,
                owner_id=owner,
                text=tc.content,
                index=tc.chunk_index,
                metadata={
                    **(metadata or {}),
                    "total_chunks": len(text_chunks),
                    "chunk_length": len(tc.content),
                },
                created_at=created_at,
            )
            for tc in text_chunks
        ]

        vectors = await self.embedder.embed_many([c.text for c in chunks])
        for chunk, vector in zip(chunks, vectors):
            chunk.vector = vector

        await self.router.upsert(owner, chunks)

        logger.info(
            "document_ingested",
            owner=owner,
            document_id=document_id,
            backend=self.router.active_store.name,
            **self.chunker.get_chunk_stats(text_chunks),
        )

        return IngestResult(
            document_id=document_id,
            chunk_count=len(chunks),
            total_length=len(clean_text),
        )

    async def query(
        self,
        owner: str,
        query_text: str,
        limit: int = None,
        score_threshold: float = None,
    ) -> List[SearchMatch]:
        """Embed the query and search the active backend.

        Returns:
            Matches sorted by descending score
        """
        limit = config.DEFAULT_SEARCH_LIMIT if limit is None else limit
        score_threshold = (
            config.DEFAULT_SCORE_THRESHOLD if score_threshold is None else score_threshold
        )

        query_vector = await self.embedder.embed(query_text)
        matches = await self.router.search(owner, query_vector, limit, score_threshold)

        logger.info(
            "query_completed",
            owner=owner,
            query_length=len(query_text),
            results_returned=len(matches),
            top_score=matches[0].score if matches else None,
        )
        return matches

    async def get_context(
        self,
        owner: str,
        query_text: str,
        max_length: int = None,
    ) -> str:
        """Assemble a bounded context string from the best matches.

        Blocks are added in descending score order until the next one would
        push the total over `max_length`.
        """
        max_length = config.MAX_CONTEXT_LENGTH if max_length is None else max_length

        matches = await self.query(
            owner,
            query_text,
            limit=config.CONTEXT_SEARCH_LIMIT,
            score_threshold=config.CONTEXT_SCORE_THRESHOLD,
        )

        context_parts = []
        total_chars = 0

        for match in matches:
            block = format_source_block(match)
            if total_chars + len(block) > max_length:
                break
            context_parts.append(block)
            total_chars += len(block)

        context = "".join(context_parts).strip()

        logger.debug(
            "context_formatted",
            owner=owner,
            num_chunks=len(context_parts),
            total_chars=len(context),
        )

        return context

    async def delete_document(self, owner: str, document_id: str) -> None:
        await self.router.delete_document(owner, document_id)
        logger.info("document_deleted", owner=owner, document_id=document_id)

    async def delete_namespace(self, owner: str) -> None:
        await self.router.delete_namespace(owner)
        logger.info("namespace_deleted", owner=owner)

    async def stats(self, owner: str) -> StoreStats:
        return await self.router.stats(owner)
