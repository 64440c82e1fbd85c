"""Hybrid routing between the primary vector engine and the SQLite fallback.

The active backend starts as whatever a one-time probe finds. A primary
failure demotes the router to the fallback and the same operation is
retried there once. Demotion is sticky: only an explicit `probe()`
(startup or admin re-check) can promote back to the primary.
"""
import asyncio
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence, TypeVar

import structlog

from app.errors import BackendExhaustedError
from app.rag.models import Chunk, SearchMatch, StoreStats, utc_now_iso
from app.rag.store_base import ProbeableStore, VectorStore

logger = structlog.get_logger()

T = TypeVar("T")


class Backend(str, Enum):
    PRIMARY = "primary"
    FALLBACK = "fallback"


@dataclass
class BackendState:
    """Active-backend flag shared by all requests going through one router.

    Reads are plain attribute reads; writes go through `set_active` under a
    lock so only one writer updates the flag and its bookkeeping at a time.
    """

    active: Backend = Backend.FALLBACK
    demoted_at: Optional[str] = None
    last_error: Optional[str] = None
    _lock: asyncio.Lock = field(default_factory=asyncio.Lock, repr=False)

    async def set_active(self, backend: Backend, error: Optional[BaseException] = None) -> None:
        async with self._lock:
            if backend is Backend.FALLBACK and self.active is Backend.PRIMARY:
                self.demoted_at = utc_now_iso()
            if error is not None:
                self.last_error = f"{type(error).__name__}: {error}"
            self.active = backend


class HybridRouter:
    """Routes every store operation to the active backend, with one failover hop."""

    def __init__(
        self,
        primary: Optional[ProbeableStore],
        fallback: VectorStore,
        state: Optional[BackendState] = None,
    ):
        """Initialize the router.

        Args:
            primary: Preferred store, or None when it is not configured
            fallback: Always-available relational store
            state: Shared backend state (a fresh one by default)
        """
        self.primary = primary
        self.fallback = fallback
        self.state = state or BackendState()

    @property
    def active_backend(self) -> Backend:
        return self.state.active

    @property
    def active_store(self) -> VectorStore:
        if self.state.active is Backend.PRIMARY and self.primary is not None:
            return self.primary
        return self.fallback

    async def probe(self) -> Backend:
        """Check primary availability and set the active backend accordingly.

        This is the only path that can promote back to the primary.
        """
        if self.primary is None:
            await self.state.set_active(Backend.FALLBACK)
            logger.warning("backend_probe_failed", reason="primary_not_configured")
            return self.state.active

        try:
            await self.primary.health_check()
        except Exception as e:
            await self.state.set_active(Backend.FALLBACK, e)
            logger.warning(
                "backend_probe_failed",
                primary=self.primary.name,
                error=str(e),
            )
            return self.state.active

        await self.state.set_active(Backend.PRIMARY)
        logger.info("backend_probe_succeeded", primary=self.primary.name)
        return self.state.active

    async def _run(
        self,
        operation: str,
        call: Callable[[VectorStore], Awaitable[T]],
    ) -> T:
        primary_error: Optional[BaseException] = None

        if self.state.active is Backend.PRIMARY and self.primary is not None:
            try:
                return await call(self.primary)
            except Exception as e:
                primary_error = e
                await self.state.set_active(Backend.FALLBACK, e)
                logger.warning(
                    "primary_backend_demoted",
                    operation=operation,
                    primary=self.primary.name,
                    fallback=self.fallback.name,
                    error=str(e),
                )

        try:
            return await call(self.fallback)
        except Exception as e:
            logger.error(
                "backend_exhausted",
                operation=operation,
                primary_error=str(primary_error) if primary_error else None,
                fallback_error=str(e),
            )
            raise BackendExhaustedError(operation, primary_error, e) from e

    async def ensure_namespace(self, owner: str) -> None:
        await self._run("ensure_namespace", lambda store: store.ensure_namespace(owner))

    async def upsert(self, owner: str, chunks: Sequence[Chunk]) -> None:
        await self._run("upsert", lambda store: store.upsert(owner, chunks))

    async def search(
        self,
        owner: str,
        query_vector: List[float],
        limit: int,
        score_threshold: float,
    ) -> List[SearchMatch]:
        return await self._run(
            "search",
            lambda store: store.search(owner, query_vector, limit, score_threshold),
        )

    async def delete_document(self, owner: str, document_id: str) -> None:
        await self._run("delete_document", lambda store: store.delete_document(owner, document_id))

    async def delete_namespace(self, owner: str) -> None:
        await self._run("delete_namespace", lambda store: store.delete_namespace(owner))

    async def stats(self, owner: str) -> StoreStats:
        return await self._run("stats", lambda store: store.stats(owner))

    def status(self) -> Dict[str, Any]:
        return {
            "primary_configured": self.primary is not None,
            "primary_available": self.state.active is Backend.PRIMARY,
            "active_backend": self.active_store.name,
            "demoted_at": self.state.demoted_at,
            "last_error": self.state.last_error,
        }
