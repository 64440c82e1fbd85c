"""SQLite fallback vector store.

Chunks (vector included) are rows scoped by owner; similarity search
loads the owner's rows and ranks them in-process by cosine similarity.
"""
from pathlib import Path
from typing import List, Optional, Sequence

import numpy as np
import structlog

from app import config, db
from app.errors import ProviderError
from app.rag.models import Chunk, SearchMatch, StoreStats
from app.rag.store_base import cosine_similarity

logger = structlog.get_logger()


class SQLiteStore:
    """Relational fallback implementing the VectorStore contract."""

    name = "sqlite"

    def __init__(self, db_path: Optional[Path] = None):
        """Initialize the store.

        Args:
            db_path: SQLite database file (default: config.DB_PATH)
        """
        self.db_path = Path(db_path) if db_path else config.DB_PATH
        self._schema_ready = False

    def _ensure_schema(self) -> None:
        if not self._schema_ready:
            db.init_database(self.db_path)
            self._schema_ready = True

    async def ensure_namespace(self, owner: str) -> None:
        # Owners are a column filter; only the table has to exist
        try:
            self._ensure_schema()
        except Exception as e:
            raise ProviderError(self.name, f"schema setup failed: {e}", e) from e

    async def upsert(self, owner: str, chunks: Sequence[Chunk]) -> None:
        rows = [
            {
                "owner_id": owner,
                "chunk_id": chunk.id,
                "document_id": chunk.document_id,
                "chunk_index": chunk.index,
                "content": chunk.text,
                "embedding": chunk.vector,
                "metadata": chunk.payload(),
                "created_at": chunk.created_at,
            }
            for chunk in chunks
        ]

        try:
            self._ensure_schema()
            written = db.upsert_chunks(rows, self.db_path)
        except Exception as e:
            raise ProviderError(self.name, f"upsert failed: {e}", e) from e

        logger.info("sqlite_chunks_upserted", owner=owner, count=written)

    async def search(
        self,
        owner: str,
        query_vector: List[float],
        limit: int,
        score_threshold: float,
    ) -> List[SearchMatch]:
        try:
            self._ensure_schema()
            rows = db.get_chunks_for_owner(owner, self.db_path)
        except Exception as e:
            raise ProviderError(self.name, f"search failed: {e}", e) from e

        # Vectors of another dimension cannot be compared
        rows = [r for r in rows if len(r["embedding"]) == len(query_vector)]
        if not rows or limit <= 0:
            return []

        matrix = np.array([r["embedding"] for r in rows], dtype=np.float64)
        scores = cosine_similarity(matrix, np.array(query_vector, dtype=np.float64))

        # sorted() is stable, so equal scores keep insertion (rowid) order
        ranked = sorted(range(len(rows)), key=lambda i: -scores[i])[:limit]

        matches = []
        for i in ranked:
            score = float(scores[i])
            if score < score_threshold:
                continue
            row = rows[i]
            matches.append(
                SearchMatch(
                    id=row["chunk_id"],
                    document_id=row["document_id"],
                    text=row["content"],
                    score=score,
                    chunk_index=row["chunk_index"],
                    metadata=row["metadata"],
                )
            )

        logger.debug(
            "sqlite_search_completed",
            owner=owner,
            candidates=len(rows),
            results=len(matches),
        )
        return matches

    async def delete_document(self, owner: str, document_id: str) -> None:
        try:
            self._ensure_schema()
            db.delete_document_chunks(owner, document_id, self.db_path)
        except Exception as e:
            raise ProviderError(self.name, f"delete_document failed: {e}", e) from e

    async def delete_namespace(self, owner: str) -> None:
        try:
            self._ensure_schema()
            db.delete_owner_chunks(owner, self.db_path)
        except Exception as e:
            raise ProviderError(self.name, f"delete_namespace failed: {e}", e) from e

    async def stats(self, owner: str) -> StoreStats:
        try:
            self._ensure_schema()
            counts = db.get_owner_stats(owner, self.db_path)
        except Exception as e:
            raise ProviderError(self.name, f"stats failed: {e}", e) from e

        return StoreStats(
            document_count=counts["document_count"],
            chunk_count=counts["chunk_count"],
            backend=self.name,
        )
