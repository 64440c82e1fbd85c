"""Embedding generation with a deterministic local fallback.

The provider path asks Ollama for an embedding. Any provider problem
(unconfigured, unreachable, HTTP error, wrong dimension, malformed body)
is turned into a ProviderOutcome that tells the Embedder to use the
hashed bag-of-words fallback instead. Nothing raises past `embed()`.
"""
import asyncio
from dataclasses import dataclass
from typing import List, Optional, Sequence

import numpy as np
import structlog

from app import config
from app.llm_client import OllamaClient

logger = structlog.get_logger()


@dataclass(frozen=True)
class ProviderOutcome:
    """Result of asking the embedding provider: a vector or a reason to fall back."""

    vector: Optional[List[float]] = None
    reason: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.vector is not None

    @classmethod
    def success(cls, vector: List[float]) -> "ProviderOutcome":
        return cls(vector=vector)

    @classmethod
    def use_fallback(cls, reason: str) -> "ProviderOutcome":
        return cls(reason=reason)


def token_hash(token: str) -> int:
    """32-bit signed rolling hash (h = h * 31 + unit) over UTF-16 code units."""
    h = 0
    # Lone surrogates are valid str values and hash as their own code unit
    data = token.encode("utf-16-le", "surrogatepass")
    for i in range(0, len(data), 2):
        unit = data[i] | (data[i + 1] << 8)
        h = (h * 31 + unit) & 0xFFFFFFFF
    if h >= 0x80000000:
        h -= 0x100000000
    return h


def fallback_embedding(text: str, dimension: int = None) -> List[float]:
    """Hashed bag-of-words embedding, L2-normalized.

    Pure function of `text`: lower-cased whitespace tokens are hashed into
    `dimension` buckets. Empty input gives the zero vector.
    """
    dimension = dimension or config.EMBEDDING_DIMENSION
    vector = np.zeros(dimension, dtype=np.float64)

    for token in text.lower().split():
        vector[abs(token_hash(token)) % dimension] += 1.0

    norm = float(np.linalg.norm(vector))
    if norm > 0:
        vector = vector / norm
    return vector.tolist()


class Embedder:
    """Produces fixed-dimension vectors, preferring the external provider."""

    def __init__(
        self,
        client: Optional[OllamaClient] = None,
        model: str = None,
        dimension: int = None,
        concurrency: int = None,
        use_provider: bool = True,
    ):
        """Initialize the embedder.

        Args:
            client: Embedding provider client (default: OllamaClient from config)
            model: Embedding model name (default from config)
            dimension: Vector dimension D (default from config)
            concurrency: Max concurrent provider calls in embed_many (default from config)
            use_provider: If False, always use the deterministic fallback
        """
        self.client = client if client is not None else OllamaClient()
        self.model = model or config.EMBEDDING_MODEL
        self.dimension = dimension or config.EMBEDDING_DIMENSION
        self.concurrency = max(1, concurrency or config.EMBEDDING_CONCURRENCY)
        self.use_provider = use_provider and getattr(self.client, "configured", True)

        self.stats = {"provider": 0, "fallback": 0}

        logger.info(
            "embedder_initialized",
            model=self.model,
            dimension=self.dimension,
            provider_enabled=self.use_provider,
            concurrency=self.concurrency,
        )

    async def _from_provider(self, text: str) -> ProviderOutcome:
        if not self.use_provider:
            return ProviderOutcome.use_fallback("provider_not_configured")

        try:
            response = await self.client.embeddings(prompt=text, model=self.model)
        except Exception as e:
            return ProviderOutcome.use_fallback(f"{type(e).__name__}: {e}")

        embedding = response.get("embedding") if isinstance(response, dict) else None
        if not embedding:
            return ProviderOutcome.use_fallback("empty_embedding")
        if len(embedding) != self.dimension:
            return ProviderOutcome.use_fallback(
                f"dimension_mismatch: expected {self.dimension}, got {len(embedding)}"
            )
        try:
            return ProviderOutcome.success([float(v) for v in embedding])
        except (TypeError, ValueError) as e:
            return ProviderOutcome.use_fallback(f"malformed_embedding: {e}")

    async def embed(self, text: str) -> List[float]:
        """Embed text; always returns a vector of length `dimension`."""
        outcome = await self._from_provider(text)
        if outcome.ok:
            self.stats["provider"] += 1
            return outcome.vector

        self.stats["fallback"] += 1
        if self.use_provider:
            logger.warning(
                "embedding_fallback_used",
                reason=outcome.reason,
                text_length=len(text),
            )
        return fallback_embedding(text, self.dimension)

    async def embed_many(self, texts: Sequence[str]) -> List[List[float]]:
        """Embed texts with bounded concurrency, preserving input order."""
        semaphore = asyncio.Semaphore(self.concurrency)

        async def _bounded(text: str) -> List[float]:
            async with semaphore:
                return await self.embed(text)

        vectors = await asyncio.gather(*(_bounded(t) for t in texts))

        logger.debug(
            "embeddings_generated",
            count=len(vectors),
            concurrency=self.concurrency,
        )
        return list(vectors)
