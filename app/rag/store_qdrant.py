"""Qdrant primary vector store.

Handles:
- One collection per owner, created lazily with cosine distance
- Deterministic point ids so re-upserting a chunk replaces it
- Similarity search with score threshold
- Per-document deletion by payload filter
"""
import uuid
from typing import List, Optional, Sequence, Set

import structlog
from qdrant_client import AsyncQdrantClient
from qdrant_client.http import models as qmodels

from app import config
from app.errors import ProviderError
from app.rag.models import Chunk, SearchMatch, StoreStats

logger = structlog.get_logger()

SCROLL_PAGE_SIZE = 256

# Extra candidates fetched so ties at the limit cut-off are broken by insertion order
TIE_OVERFETCH = 10


def point_id_for(chunk_id: str) -> str:
    """Convert a chunk id to a deterministic UUID accepted by Qdrant."""
    return str(uuid.uuid5(uuid.NAMESPACE_URL, chunk_id))


def create_qdrant_client(
    url: Optional[str] = None,
    api_key: Optional[str] = None,
    timeout: Optional[int] = None,
) -> Optional[AsyncQdrantClient]:
    """Build a client from explicit values or config; None when no URL is set."""
    url = url or config.QDRANT_URL
    if not url:
        logger.warning("qdrant_not_configured")
        return None

    logger.info("qdrant_client_initializing", url=url, with_api_key=bool(api_key or config.QDRANT_API_KEY))
    return AsyncQdrantClient(
        url=url,
        api_key=api_key or config.QDRANT_API_KEY,
        timeout=timeout or config.QDRANT_TIMEOUT,
    )


class QdrantStore:
    """Primary store implementing the VectorStore contract on Qdrant."""

    name = "qdrant"

    def __init__(
        self,
        client: AsyncQdrantClient,
        dimension: int = None,
        collection_prefix: str = None,
    ):
        """Initialize the Qdrant store.

        Args:
            client: Async Qdrant client
            dimension: Vector size for new collections (default from config)
            collection_prefix: Collection name prefix (default from config)
        """
        self.client = client
        self.dimension = dimension or config.EMBEDDING_DIMENSION
        self.collection_prefix = (
            config.COLLECTION_PREFIX if collection_prefix is None else collection_prefix
        )

    def collection_name(self, owner: str) -> str:
        return f"{self.collection_prefix}{owner}"

    async def health_check(self) -> None:
        """Harmless call used by the router's availability probe."""
        try:
            await self.client.get_collections()
        except Exception as e:
            raise ProviderError(self.name, f"health check failed: {e}", e) from e

    async def _collection_exists(self, name: str) -> bool:
        # Not cached: other workers may drop the collection at any time
        return await self.client.collection_exists(name)

    async def ensure_namespace(self, owner: str) -> None:
        name = self.collection_name(owner)
        try:
            if await self._collection_exists(name):
                return

            logger.info("qdrant_collection_creating", collection=name, dimension=self.dimension)
            await self.client.create_collection(
                collection_name=name,
                vectors_config=qmodels.VectorParams(
                    size=self.dimension,
                    distance=qmodels.Distance.COSINE,
                ),
            )
        except Exception as e:
            raise ProviderError(self.name, f"ensure_namespace failed for {name}: {e}", e) from e

    async def upsert(self, owner: str, chunks: Sequence[Chunk]) -> None:
        if not chunks:
            return

        await self.ensure_namespace(owner)
        name = self.collection_name(owner)

        points = [
            qmodels.PointStruct(
                id=point_id_for(chunk.id),
                vector=chunk.vector,
                payload={**chunk.payload(), "chunk_id": chunk.id},
            )
            for chunk in chunks
        ]

        try:
            await self.client.upsert(collection_name=name, points=points, wait=True)
        except Exception as e:
            raise ProviderError(self.name, f"upsert failed for {name}: {e}", e) from e

        logger.info("qdrant_points_upserted", collection=name, count=len(points))

    async def search(
        self,
        owner: str,
        query_vector: List[float],
        limit: int,
        score_threshold: float,
    ) -> List[SearchMatch]:
        name = self.collection_name(owner)
        if limit <= 0:
            return []

        try:
            if not await self._collection_exists(name):
                return []

            # Qdrant's score_threshold is exclusive; the threshold is applied below
            response = await self.client.query_points(
                collection_name=name,
                query=query_vector,
                limit=limit + TIE_OVERFETCH,
                with_payload=True,
            )
        except Exception as e:
            raise ProviderError(self.name, f"search failed for {name}: {e}", e) from e

        matches = []
        for point in response.points:
            if point.score < score_threshold:
                continue
            payload = point.payload or {}
            matches.append(
                SearchMatch(
                    id=str(payload.get("chunk_id", point.id)),
                    document_id=payload.get("document_id", ""),
                    text=payload.get("text", ""),
                    score=float(point.score),
                    chunk_index=int(payload.get("chunk_index", 0)),
                    metadata=payload,
                )
            )

        # Equal scores: earlier chunk first
        matches.sort(
            key=lambda m: (-m.score, m.metadata.get("created_at", ""), m.chunk_index)
        )
        matches = matches[:limit]

        logger.debug("qdrant_search_completed", collection=name, results=len(matches))
        return matches

    async def delete_document(self, owner: str, document_id: str) -> None:
        name = self.collection_name(owner)
        try:
            if not await self._collection_exists(name):
                return

            await self.client.delete(
                collection_name=name,
                points_selector=qmodels.FilterSelector(
                    filter=qmodels.Filter(
                        must=[
                            qmodels.FieldCondition(
                                key="document_id",
                                match=qmodels.MatchValue(value=document_id),
                            )
                        ]
                    )
                ),
                wait=True,
            )
        except Exception as e:
            raise ProviderError(self.name, f"delete_document failed for {name}: {e}", e) from e

        logger.info("qdrant_document_deleted", collection=name, document_id=document_id)

    async def delete_namespace(self, owner: str) -> None:
        name = self.collection_name(owner)
        try:
            if await self.client.collection_exists(name):
                await self.client.delete_collection(collection_name=name)
        except Exception as e:
            raise ProviderError(self.name, f"delete_namespace failed for {name}: {e}", e) from e

        logger.info("qdrant_collection_deleted", collection=name)

    async def stats(self, owner: str) -> StoreStats:
        name = self.collection_name(owner)
        try:
            if not await self._collection_exists(name):
                return StoreStats(document_count=0, chunk_count=0, backend=self.name)

            count = await self.client.count(collection_name=name, exact=True)
            document_ids = await self._distinct_document_ids(name)
        except Exception as e:
            raise ProviderError(self.name, f"stats failed for {name}: {e}", e) from e

        return StoreStats(
            document_count=len(document_ids),
            chunk_count=count.count,
            backend=self.name,
        )

    async def _distinct_document_ids(self, name: str) -> Set[str]:
        document_ids: Set[str] = set()
        offset = None
        while True:
            points, offset = await self.client.scroll(
                collection_name=name,
                limit=SCROLL_PAGE_SIZE,
                offset=offset,
                with_payload=["document_id"],
                with_vectors=False,
            )
            for point in points:
                document_id = (point.payload or {}).get("document_id")
                if document_id is not None:
                    document_ids.add(document_id)
            if offset is None:
                break
        return document_ids

    async def close(self) -> None:
        await self.client.close()
