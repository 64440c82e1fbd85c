"""Capability contract shared by the primary and fallback vector stores."""
from typing import List, Protocol, Sequence, runtime_checkable

import numpy as np

from app.rag.models import Chunk, SearchMatch, StoreStats


@runtime_checkable
class VectorStore(Protocol):
    """Owner-partitioned chunk storage with cosine similarity search.

    Every operation is scoped to one owner; nothing done for owner A may
    observe or touch owner B's chunks. Implementations raise ProviderError
    on backend failure and leave failover to the router.
    """

    name: str

    async def ensure_namespace(self, owner: str) -> None:
        """Create the owner's partition if it does not exist yet."""
        ...

    async def upsert(self, owner: str, chunks: Sequence[Chunk]) -> None:
        """Insert or replace chunks (by chunk id) in one commit."""
        ...

    async def search(
        self,
        owner: str,
        query_vector: List[float],
        limit: int,
        score_threshold: float,
    ) -> List[SearchMatch]:
        """Return at most `limit` matches scoring >= `score_threshold`, best first.

        Ties keep insertion order (earlier chunk first).
        """
        ...

    async def delete_document(self, owner: str, document_id: str) -> None:
        """Remove every chunk of a document. Missing documents are not an error."""
        ...

    async def delete_namespace(self, owner: str) -> None:
        """Remove every chunk of an owner. Missing owners are not an error."""
        ...

    async def stats(self, owner: str) -> StoreStats:
        """Distinct document count and chunk count for an owner."""
        ...


@runtime_checkable
class ProbeableStore(VectorStore, Protocol):
    """A remote store that can answer a cheap availability probe."""

    async def health_check(self) -> None:
        """Raise if the backend cannot currently serve requests."""
        ...

    async def close(self) -> None:
        """Release the client connection."""
        ...


def cosine_similarity(matrix: np.ndarray, query: np.ndarray) -> np.ndarray:
    """Cosine similarity of each row of `matrix` against `query`.

    Rows (or a query) with zero norm score 0.0.
    """
    if matrix.size == 0:
        return np.zeros(0, dtype=np.float64)

    row_norms = np.linalg.norm(matrix, axis=1)
    query_norm = float(np.linalg.norm(query))
    denominators = row_norms * query_norm

    dots = matrix @ query
    scores = np.zeros(matrix.shape[0], dtype=np.float64)
    nonzero = denominators > 0
    scores[nonzero] = dots[nonzero] / denominators[nonzero]
    return scores
