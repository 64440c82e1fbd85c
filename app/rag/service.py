"""Retrieval service exposed to the application layer.

Validates inputs (pydantic models, MIME whitelist), generates document
ids when callers omit them, and delegates to the DocumentProcessor.
Only ValidationError and BackendExhaustedError escape from here.
"""
import json
import random
import string
import time
from pathlib import Path
from typing import Any, Dict, List, Optional

import pydantic
import structlog
from pydantic import BaseModel, Field, field_validator

from app import config
from app.errors import ValidationError
from app.rag.embedder import Embedder
from app.rag.models import IngestResult, SearchMatch, utc_now_iso
from app.rag.processor import DocumentProcessor
from app.rag.router import Backend, HybridRouter
from app.rag.store_qdrant import QdrantStore, create_qdrant_client
from app.rag.store_sql import SQLiteStore

logger = structlog.get_logger()

_ID_ALPHABET = string.digits + string.ascii_lowercase


def generate_document_id(prefix: str) -> str:
    """Document id like `text_1718000000000_k3j9x0a1b`."""
    millis = int(time.time() * 1000)
    suffix = "".join(random.choices(_ID_ALPHABET, k=9))
    return f"{prefix}_{millis}_{suffix}"


class _QueryInput(BaseModel):
    owner: str = Field(..., min_length=1)
    query: str = Field(..., min_length=1)

    @field_validator("query")
    @classmethod
    def _query_not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("query must not be blank")
        return value


class SearchInput(_QueryInput):
    """Input for similarity search."""
    limit: int = Field(
        default=config.DEFAULT_SEARCH_LIMIT,
        ge=1,
        le=config.MAX_SEARCH_LIMIT,
    )
    threshold: float = Field(
        default=config.DEFAULT_SCORE_THRESHOLD,
        ge=config.MIN_SCORE_THRESHOLD,
        le=1.0,
    )


class ContextInput(_QueryInput):
    """Input for context assembly."""
    max_length: int = Field(
        default=config.MAX_CONTEXT_LENGTH,
        ge=1,
        le=config.MAX_CONTEXT_LENGTH_LIMIT,
    )


class TextIngestInput(BaseModel):
    """Input for raw text ingestion."""
    owner: str = Field(..., min_length=1)
    text: str = Field(..., min_length=1)
    document_id: Optional[str] = Field(default=None, min_length=1)
    title: Optional[str] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)


class UrlIngestInput(BaseModel):
    """Input for ingestion of already-fetched web content."""
    owner: str = Field(..., min_length=1)
    url: str = Field(..., min_length=1)
    content: str = Field(..., min_length=1)
    document_id: Optional[str] = Field(default=None, min_length=1)


def _validate(model: type[BaseModel], **values: Any) -> BaseModel:
    try:
        return model(**values)
    except pydantic.ValidationError as e:
        raise ValidationError(str(e)) from e


def _require_owner(owner: str) -> None:
    if not owner:
        raise ValidationError("owner must not be empty")


class RetrievalService:
    """Entry point for ingestion, search and context operations."""

    def __init__(self, processor: DocumentProcessor):
        self.processor = processor

    @property
    def router(self) -> HybridRouter:
        return self.processor.router

    async def ingest_text(
        self,
        owner: str,
        text: str,
        document_id: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
        title: Optional[str] = None,
    ) -> IngestResult:
        params = _validate(
            TextIngestInput,
            owner=owner,
            text=text,
            document_id=document_id,
            title=title,
            metadata=metadata or {},
        )
        doc_id = params.document_id or generate_document_id("text")
        doc_metadata = {
            "title": params.title or "Text Content",
            "type": "text",
            **params.metadata,
        }
        return await self.processor.ingest(params.owner, doc_id, params.text, doc_metadata)

    async def ingest_file(
        self,
        owner: str,
        filename: str,
        mime_type: str,
        data: bytes,
        document_id: Optional[str] = None,
    ) -> IngestResult:
        """Ingest an uploaded text or JSON file.

        Raises:
            ValidationError: For unsupported MIME types, undecodable bytes
                or invalid JSON
        """
        _require_owner(owner)
        if mime_type not in config.SUPPORTED_MIME_TYPES:
            raise ValidationError(f"Unsupported file type: {mime_type}")

        metadata: Dict[str, Any] = {
            "filename": filename,
            "mimetype": mime_type,
            "size": len(data),
            "uploaded_at": utc_now_iso(),
        }

        try:
            text = data.decode("utf-8")
        except UnicodeDecodeError as e:
            raise ValidationError(f"File is not valid UTF-8: {filename}") from e

        if mime_type == "application/json":
            try:
                text = json.dumps(json.loads(text), indent=2)
            except json.JSONDecodeError as e:
                raise ValidationError(f"Invalid JSON in {filename}: {e}") from e
            metadata["type"] = "json"

        doc_id = document_id or generate_document_id("doc")
        result = await self.processor.ingest(owner, doc_id, text, metadata)

        logger.info(
            "file_ingested",
            owner=owner,
            filename=filename,
            mimetype=mime_type,
            chunk_count=result.chunk_count,
        )
        return result

    async def ingest_url(
        self,
        owner: str,
        url: str,
        content: str,
        document_id: Optional[str] = None,
    ) -> IngestResult:
        params = _validate(
            UrlIngestInput, owner=owner, url=url, content=content, document_id=document_id
        )
        doc_id = params.document_id or generate_document_id("url")
        metadata = {
            "source_url": params.url,
            "scraped_at": utc_now_iso(),
            "type": "web_page",
        }
        return await self.processor.ingest(params.owner, doc_id, params.content, metadata)

    async def search(
        self,
        owner: str,
        query: str,
        limit: int = config.DEFAULT_SEARCH_LIMIT,
        threshold: float = config.DEFAULT_SCORE_THRESHOLD,
    ) -> List[SearchMatch]:
        params = _validate(SearchInput, owner=owner, query=query, limit=limit, threshold=threshold)
        return await self.processor.query(
            params.owner, params.query, limit=params.limit, score_threshold=params.threshold
        )

    async def get_context(
        self,
        owner: str,
        query: str,
        max_length: int = config.MAX_CONTEXT_LENGTH,
    ) -> str:
        params = _validate(ContextInput, owner=owner, query=query, max_length=max_length)
        return await self.processor.get_context(params.owner, params.query, params.max_length)

    async def delete_document(self, owner: str, document_id: str) -> None:
        _require_owner(owner)
        if not document_id:
            raise ValidationError("document_id must not be empty")
        await self.processor.delete_document(owner, document_id)

    async def delete_namespace(self, owner: str) -> None:
        _require_owner(owner)
        await self.processor.delete_namespace(owner)

    async def stats(self, owner: str) -> Dict[str, Any]:
        _require_owner(owner)
        stats = await self.processor.stats(owner)
        return stats.to_dict()

    def status(self) -> Dict[str, Any]:
        return self.router.status()

    async def recheck(self) -> Dict[str, Any]:
        """Re-probe the primary backend; the only way back from a demotion."""
        backend = await self.router.probe()
        logger.info("backend_rechecked", active=backend.value)
        return self.status()

    async def close(self) -> None:
        """Close the primary store's client, if one is configured."""
        if self.router.primary is not None:
            await self.router.primary.close()
            logger.info("retrieval_service_closed", primary=self.router.primary.name)


async def build_service(
    db_path: Optional[Path] = None,
    qdrant_url: Optional[str] = None,
    embedder: Optional[Embedder] = None,
) -> RetrievalService:
    """Wire stores, router and processor from config and probe the primary once."""
    client = create_qdrant_client(url=qdrant_url)
    primary = QdrantStore(client) if client is not None else None
    fallback = SQLiteStore(db_path)

    router = HybridRouter(primary=primary, fallback=fallback)
    active = await router.probe()

    processor = DocumentProcessor(router=router, embedder=embedder)

    logger.info(
        "retrieval_service_ready",
        active_backend=router.active_store.name,
        primary_configured=primary is not None,
        degraded=active is Backend.FALLBACK and primary is not None,
    )
    return RetrievalService(processor)
