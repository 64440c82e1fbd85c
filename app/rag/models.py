"""Data model shared by the chunker, stores, router and processor."""
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List


def utc_now_iso() -> str:
    """Current UTC time as an ISO-8601 string."""
    return datetime.now(timezone.utc).isoformat()


def make_chunk_id(document_id: str, index: int) -> str:
    """Chunk identifier, unique within its document."""
    return f"{document_id}_chunk_{index}"


@dataclass
class Chunk:
    """A stored unit of retrieval: text, its embedding and metadata."""

    id: str
    document_id: str
    owner_id: str
    text: str
    index: int
    vector: List[float] = field(default_factory=list)
    metadata: Dict[str, Any] = field(default_factory=dict)
    created_at: str = field(default_factory=utc_now_iso)

    def payload(self) -> Dict[str, Any]:
        """Flat payload stored alongside the vector.

        Core fields win over caller metadata with the same key.
        """
        return {
            **self.metadata,
            "text": self.text,
            "chatbot_id": self.owner_id,
            "document_id": self.document_id,
            "chunk_index": self.index,
            "created_at": self.created_at,
        }


@dataclass
class SearchMatch:
    """A single ranked search hit."""

    id: str
    document_id: str
    text: str
    score: float
    chunk_index: int
    metadata: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "document_id": self.document_id,
            "text": self.text,
            "score": self.score,
            "chunk_index": self.chunk_index,
            "metadata": self.metadata,
        }


@dataclass
class StoreStats:
    """Per-owner counts reported by a store."""

    document_count: int
    chunk_count: int
    backend: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            "document_count": self.document_count,
            "chunk_count": self.chunk_count,
            "backend": self.backend,
        }


@dataclass
class IngestResult:
    """Outcome of a successful ingestion."""

    document_id: str
    chunk_count: int
    total_length: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "document_id": self.document_id,
            "chunk_count": self.chunk_count,
            "total_length": self.total_length,
        }
