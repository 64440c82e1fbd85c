"""Database initialization and helpers for the fallback vector store.

SQLite database storing one row per chunk:
- owner (chatbot) and document the chunk belongs to
- chunk index, text and the raw embedding vector (JSON array)
- open metadata map and creation timestamp
"""
import sqlite3
import json
from pathlib import Path
from typing import Optional, List, Dict, Any, Sequence
import structlog

from app import config

logger = structlog.get_logger()


def get_connection(db_path: Optional[Path] = None) -> sqlite3.Connection:
    """Get a connection to the SQLite database.

    Args:
        db_path: Database file (default: config.DB_PATH)

    Returns:
        sqlite3.Connection with row_factory set to sqlite3.Row
    """
    conn = sqlite3.connect(db_path or config.DB_PATH)
    conn.row_factory = sqlite3.Row
    return conn


def init_database(db_path: Optional[Path] = None) -> None:
    """Initialize the database schema.

    Creates the document_chunks table and its lookup indexes if missing.
    """
    conn = get_connection(db_path)
    cursor = conn.cursor()

    try:
        cursor.execute("""
            CREATE TABLE IF NOT EXISTS document_chunks (
                owner_id TEXT NOT NULL,
                chunk_id TEXT NOT NULL,
                document_id TEXT NOT NULL,
                chunk_index INTEGER NOT NULL,
                content TEXT NOT NULL,
                embedding_json TEXT NOT NULL,
                metadata_json TEXT,
                created_at TEXT NOT NULL,
                PRIMARY KEY (owner_id, chunk_id)
            )
        """)

        # Owner scan for search and stats
        cursor.execute("""
            CREATE INDEX IF NOT EXISTS idx_document_chunks_owner
            ON document_chunks(owner_id)
        """)

        # (owner, document) lookups for deletion
        cursor.execute("""
            CREATE INDEX IF NOT EXISTS idx_document_chunks_document
            ON document_chunks(owner_id, document_id)
        """)

        conn.commit()
        logger.info("database_initialized", db_path=str(db_path or config.DB_PATH))

    except Exception as e:
        conn.rollback()
        logger.error("database_init_failed", error=str(e))
        raise
    finally:
        conn.close()


def upsert_chunks(rows: Sequence[Dict[str, Any]], db_path: Optional[Path] = None) -> int:
    """Insert or replace chunk rows in a single transaction.

    Args:
        rows: Dicts with owner_id, chunk_id, document_id, chunk_index,
            content, embedding, metadata, created_at
        db_path: Database file (default: config.DB_PATH)

    Returns:
        Number of rows written
    """
    if not rows:
        return 0

    conn = get_connection(db_path)
    cursor = conn.cursor()

    try:
        cursor.executemany("""
            INSERT OR REPLACE INTO document_chunks (
                owner_id, chunk_id, document_id, chunk_index, content,
                embedding_json, metadata_json, created_at
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?)
        """, [
            (
                row["owner_id"],
                row["chunk_id"],
                row["document_id"],
                row["chunk_index"],
                row["content"],
                json.dumps(row["embedding"]),
                json.dumps(row["metadata"]) if row.get("metadata") else None,
                row["created_at"],
            )
            for row in rows
        ])

        conn.commit()
        return len(rows)

    except Exception as e:
        conn.rollback()
        logger.error("chunk_upsert_failed", error=str(e), count=len(rows))
        raise
    finally:
        conn.close()


def get_chunks_for_owner(owner_id: str, db_path: Optional[Path] = None) -> List[Dict[str, Any]]:
    """Retrieve all chunk rows of an owner in insertion order.

    Returns:
        List of chunk dictionaries with parsed `embedding` and `metadata`
    """
    conn = get_connection(db_path)
    cursor = conn.cursor()

    try:
        cursor.execute("""
            SELECT
                owner_id, chunk_id, document_id, chunk_index, content,
                embedding_json, metadata_json, created_at
            FROM document_chunks
            WHERE owner_id = ?
            ORDER BY rowid
        """, (owner_id,))

        chunks = []
        for row in cursor.fetchall():
            chunk = dict(row)
            chunk["embedding"] = json.loads(chunk.pop("embedding_json"))
            metadata_json = chunk.pop("metadata_json")
            chunk["metadata"] = json.loads(metadata_json) if metadata_json else {}
            chunks.append(chunk)

        return chunks

    except Exception as e:
        logger.error("chunks_retrieval_failed", error=str(e), owner_id=owner_id)
        raise
    finally:
        conn.close()


def delete_document_chunks(
    owner_id: str, document_id: str, db_path: Optional[Path] = None
) -> int:
    """Delete every chunk of one document.

    Returns:
        Number of chunks deleted
    """
    conn = get_connection(db_path)
    cursor = conn.cursor()

    try:
        cursor.execute(
            "DELETE FROM document_chunks WHERE owner_id = ? AND document_id = ?",
            (owner_id, document_id),
        )
        conn.commit()

        count = cursor.rowcount
        logger.info("document_chunks_deleted", owner_id=owner_id, document_id=document_id, count=count)
        return count

    except Exception as e:
        conn.rollback()
        logger.error("document_chunks_delete_failed", error=str(e), document_id=document_id)
        raise
    finally:
        conn.close()


def delete_owner_chunks(owner_id: str, db_path: Optional[Path] = None) -> int:
    """Delete every chunk of an owner.

    Returns:
        Number of chunks deleted
    """
    conn = get_connection(db_path)
    cursor = conn.cursor()

    try:
        cursor.execute("DELETE FROM document_chunks WHERE owner_id = ?", (owner_id,))
        conn.commit()

        count = cursor.rowcount
        logger.info("owner_chunks_deleted", owner_id=owner_id, count=count)
        return count

    except Exception as e:
        conn.rollback()
        logger.error("owner_chunks_delete_failed", error=str(e), owner_id=owner_id)
        raise
    finally:
        conn.close()


def get_owner_stats(owner_id: str, db_path: Optional[Path] = None) -> Dict[str, int]:
    """Get distinct document and chunk counts for an owner."""
    conn = get_connection(db_path)
    cursor = conn.cursor()

    try:
        cursor.execute("""
            SELECT COUNT(DISTINCT document_id), COUNT(*)
            FROM document_chunks
            WHERE owner_id = ?
        """, (owner_id,))

        document_count, chunk_count = cursor.fetchone()
        return {"document_count": document_count, "chunk_count": chunk_count}

    except Exception as e:
        logger.error("owner_stats_failed", error=str(e), owner_id=owner_id)
        raise
    finally:
        conn.close()
