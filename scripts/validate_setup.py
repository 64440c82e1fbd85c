#!/usr/bin/env python
"""Validate setup - check dependencies, configuration and both vector backends."""
import sys
import asyncio
from pathlib import Path

# Color codes for terminal output
GREEN = "\033[92m"
RED = "\033[91m"
YELLOW = "\033[93m"
BLUE = "\033[94m"
RESET = "\033[0m"

def print_success(msg):
    print(f"{GREEN}✓{RESET} {msg}")

def print_error(msg):
    print(f"{RED}✗{RESET} {msg}")

def print_info(msg):
    print(f"{BLUE}ℹ{RESET} {msg}")

def print_warning(msg):
    print(f"{YELLOW}⚠{RESET} {msg}")

def print_section(title):
    print(f"\n{BLUE}{'='*60}{RESET}")
    print(f"{BLUE}{title:^60}{RESET}")
    print(f"{BLUE}{'='*60}{RESET}\n")

async def main():
    print_section("Hybrid Retrieval - Setup Validation")

    errors = []
    warnings = []

    # 1. Import core dependencies
    print_section("1. Core Dependencies")

    dependencies = [
        ("quart", "Quart web framework"),
        ("httpx", "HTTP client"),
        ("qdrant_client", "Qdrant client"),
        ("numpy", "Vector math"),
        ("pydantic", "Data validation"),
        ("structlog", "Structured logging"),
    ]

    for module_name, description in dependencies:
        try:
            __import__(module_name)
            print_success(f"{description:30} ({module_name})")
        except ImportError as e:
            print_error(f"{description:30} ({module_name}) - {e}")
            errors.append(f"Missing: {module_name}")

    # 2. Configuration
    print_section("2. Configuration")

    try:
        # Add parent directory to path to import app
        sys.path.insert(0, str(Path(__file__).parent.parent))
        from app import config

        print_success("Config loaded successfully")
        print_info(f"  Embedding model: {config.EMBEDDING_MODEL} (dim={config.EMBEDDING_DIMENSION})")
        print_info(f"  Ollama URL: {config.OLLAMA_BASE_URL or '(not configured)'}")
        print_info(f"  Qdrant URL: {config.QDRANT_URL or '(not configured)'}")
        print_info(f"  Chunk size/overlap: {config.CHUNK_SIZE}/{config.CHUNK_OVERLAP} chars")
        print_info(f"  Fallback database: {config.DB_PATH}")

    except Exception as e:
        print_error(f"Failed to load config: {e}")
        errors.append("Config loading failed")
        return errors, warnings

    # 3. Embedding provider
    print_section("3. Embedding Provider")

    from app.llm_client import OllamaClient

    client = OllamaClient()
    if not client.configured:
        print_warning("Ollama not configured - deterministic fallback embeddings will be used")
        warnings.append("Embedding provider not configured")
    else:
        try:
            models = await client.list_models()
            if any(m.split(":")[0] == config.EMBEDDING_MODEL.split(":")[0] for m in models):
                print_success(f"Embedding model available: {config.EMBEDDING_MODEL}")
            else:
                print_warning(
                    f"Model {config.EMBEDDING_MODEL} not pulled "
                    f"(run: ollama pull {config.EMBEDDING_MODEL})"
                )
                warnings.append("Embedding model not pulled")

            response = await client.embeddings(prompt="test")
            dimension = len(response.get("embedding", []))
            if dimension == config.EMBEDDING_DIMENSION:
                print_success(f"Embedding API working (dimension: {dimension})")
            else:
                print_warning(
                    f"Embedding dimension {dimension} != {config.EMBEDDING_DIMENSION}; "
                    f"fallback embeddings will be used"
                )
                warnings.append("Embedding dimension mismatch")
        except Exception as e:
            print_warning(f"Embedding provider unavailable ({e}) - fallback embeddings will be used")
            warnings.append("Embedding provider unavailable")

    # 4. Vector backends
    print_section("4. Vector Backends")

    from app.rag.store_qdrant import QdrantStore, create_qdrant_client
    from app.rag.store_sql import SQLiteStore

    qdrant = create_qdrant_client()
    if qdrant is None:
        print_warning("Qdrant not configured - SQLite fallback will serve all requests")
        warnings.append("Qdrant not configured")
    else:
        try:
            await QdrantStore(qdrant).health_check()
            print_success(f"Qdrant reachable at {config.QDRANT_URL}")
        except Exception as e:
            print_warning(f"Qdrant unreachable ({e}) - SQLite fallback will be active")
            warnings.append("Qdrant unreachable")
        finally:
            await qdrant.close()

    try:
        stats = await SQLiteStore().stats("__setup_check__")
        print_success(f"SQLite fallback ready ({config.DB_PATH}, {stats.chunk_count} probe chunks)")
    except Exception as e:
        print_error(f"SQLite fallback failed: {e}")
        errors.append("Fallback store unavailable")

    # 5. Summary
    print_section("Summary")

    if not errors:
        print_success("All checks passed! ✨")
    else:
        print_error(f"Found {len(errors)} error(s):")
        for i, error in enumerate(errors, 1):
            print(f"  {i}. {error}")

    if warnings:
        print_warning(f"\nFound {len(warnings)} warning(s):")
        for i, warning in enumerate(warnings, 1):
            print(f"  {i}. {warning}")

    print()
    return errors, warnings

if __name__ == "__main__":
    errors, warnings = asyncio.run(main())
    sys.exit(1 if errors else 0)
