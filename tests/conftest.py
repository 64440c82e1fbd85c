"""Shared fixtures for retrieval pipeline tests.

Provides: temporary SQLite fallback store, in-memory Qdrant primary store,
stores that fail on demand, and a processor wired with the deterministic
fallback embedder.
"""
from typing import List, Optional, Sequence

import pytest
from qdrant_client import AsyncQdrantClient

from app.errors import ProviderError
from app.rag.embedder import Embedder
from app.rag.models import Chunk, SearchMatch, StoreStats
from app.rag.processor import DocumentProcessor
from app.rag.router import HybridRouter
from app.rag.service import RetrievalService
from app.rag.store_qdrant import QdrantStore
from app.rag.store_sql import SQLiteStore


class FailingStore:
    """Store whose operations raise ProviderError until `healthy` is set."""

    def __init__(self, name: str = "broken", healthy: bool = False, probe_ok: bool = True):
        self.name = name
        self.healthy = healthy
        self.probe_ok = probe_ok
        self.calls: List[str] = []
        self.delegate: Optional[SQLiteStore] = None

    def _check(self, operation: str) -> None:
        self.calls.append(operation)
        if not self.healthy:
            raise ProviderError(self.name, f"{operation} unavailable")

    async def health_check(self) -> None:
        if not self.probe_ok:
            raise ProviderError(self.name, "connection refused")

    async def close(self) -> None:
        self.calls.append("close")

    async def ensure_namespace(self, owner: str) -> None:
        self._check("ensure_namespace")

    async def upsert(self, owner: str, chunks: Sequence[Chunk]) -> None:
        self._check("upsert")
        if self.delegate is not None:
            await self.delegate.upsert(owner, chunks)

    async def search(
        self, owner: str, query_vector: List[float], limit: int, score_threshold: float
    ) -> List[SearchMatch]:
        self._check("search")
        if self.delegate is not None:
            return await self.delegate.search(owner, query_vector, limit, score_threshold)
        return []

    async def delete_document(self, owner: str, document_id: str) -> None:
        self._check("delete_document")

    async def delete_namespace(self, owner: str) -> None:
        self._check("delete_namespace")

    async def stats(self, owner: str) -> StoreStats:
        self._check("stats")
        return StoreStats(document_count=0, chunk_count=0, backend=self.name)


@pytest.fixture
def db_path(tmp_path):
    """Provide a throwaway SQLite database file."""
    return tmp_path / "vectors.sqlite"


@pytest.fixture
def sqlite_store(db_path) -> SQLiteStore:
    return SQLiteStore(db_path)


@pytest.fixture
async def qdrant_store():
    """Qdrant store backed by qdrant-client's in-process local mode."""
    client = AsyncQdrantClient(location=":memory:")
    store = QdrantStore(client, dimension=768, collection_prefix="test_")
    yield store
    await client.close()


@pytest.fixture
def embedder() -> Embedder:
    """Embedder that always uses the deterministic fallback."""
    return Embedder(use_provider=False, concurrency=4)


@pytest.fixture
async def router(sqlite_store) -> HybridRouter:
    """Router with no primary configured (fallback only)."""
    hybrid = HybridRouter(primary=None, fallback=sqlite_store)
    await hybrid.probe()
    return hybrid


@pytest.fixture
def processor(router, embedder) -> DocumentProcessor:
    return DocumentProcessor(router=router, embedder=embedder)


@pytest.fixture
def service(processor) -> RetrievalService:
    return RetrievalService(processor)


def _make_chunk(
    owner: str,
    document_id: str,
    index: int,
    text: str,
    vector: List[float],
) -> Chunk:
    """Build a stored-ready chunk for store level tests."""
    return Chunk(
        id=f"{document_id}_chunk_{index}",
        document_id=document_id,
        owner_id=owner,
        text=text,
        index=index,
        vector=vector,
        metadata={"total_chunks": 1, "chunk_length": len(text)},
    )


@pytest.fixture
def make_chunk():
    """Factory for chunks with explicit vectors."""
    return _make_chunk


@pytest.fixture
def failing_store():
    """Factory for stores that fail until marked healthy."""
    return FailingStore
