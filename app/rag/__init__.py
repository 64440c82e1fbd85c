"""RAG (Retrieval-Augmented Generation) pipeline components.

This package contains modules for:
- Document chunking with overlap
- Embedding generation with a deterministic fallback
- Qdrant (primary) and SQLite (fallback) vector storage
- Hybrid routing with sticky failover
- Document ingestion and context assembly
"""
