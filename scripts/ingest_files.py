#!/usr/bin/env python
"""Ingest local text and JSON files into an owner's namespace.

Usage:
    python scripts/ingest_files.py --owner bot1 docs/*.txt
    python scripts/ingest_files.py --owner bot1 --replace faq.json
    python scripts/ingest_files.py --owner bot1 --clear
"""
import argparse
import asyncio
import sys
from pathlib import Path
from datetime import datetime

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from app import config
from app.errors import RetrievalError
from app.rag.service import build_service
import structlog

logger = structlog.get_logger()

MIME_BY_SUFFIX = {
    ".txt": "text/plain",
    ".md": "text/plain",
    ".json": "application/json",
}


class ProgressReporter:
    """Simple progress reporter for CLI."""

    def __init__(self, verbose: bool = False):
        self.verbose = verbose
        self.start_time = None

    def start(self, message: str):
        """Start progress reporting."""
        self.start_time = datetime.now()
        print(f"\n{'=' * 60}")
        print(f"  {message}")
        print(f"{'=' * 60}\n")

    def update(self, current: int, total: int, file_path: Path):
        """Update progress."""
        percentage = (current / total) * 100 if total > 0 else 0
        bar_length = 40
        filled = int(bar_length * current / total) if total > 0 else 0
        bar = "█" * filled + "░" * (bar_length - filled)

        print(
            f"\r  [{bar}] {percentage:5.1f}% ({current}/{total}) {file_path.name[:30]:<30}",
            end="",
            flush=True,
        )

        if self.verbose:
            print()

    def finish(self, stats: dict, backend: str):
        """Finish progress reporting."""
        print("\n")
        elapsed_seconds = (datetime.now() - self.start_time).total_seconds()

        print(f"{'=' * 60}")
        print(f"  Ingestion Complete!")
        print(f"{'=' * 60}\n")
        print(f"  📁 Files ingested:   {stats['files_ingested']}")
        print(f"  ❌ Files failed:     {stats['files_failed']}")
        print(f"  📝 Chunks stored:    {stats['chunks_created']}")
        print(f"  🗄️  Active backend:   {backend}")
        print(f"  ⏱️  Time elapsed:     {elapsed_seconds:.1f}s")
        print(f"\n{'=' * 60}\n")


async def main():
    """Main entry point for the ingestion script."""
    parser = argparse.ArgumentParser(
        description="Ingest text/JSON files into the hybrid vector store",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("files", nargs="*", type=Path, help="Files to ingest")
    parser.add_argument("--owner", required=True, help="Owner (chatbot) id")
    parser.add_argument(
        "--replace",
        action="store_true",
        help="Delete each file's previous chunks (document id = file stem) before ingesting",
    )
    parser.add_argument(
        "--clear",
        action="store_true",
        help="Delete the owner's whole namespace first",
    )
    parser.add_argument("--verbose", "-v", action="store_true", help="Verbose progress output")

    args = parser.parse_args()
    progress = ProgressReporter(verbose=args.verbose)

    print("\n📋 Configuration:")
    print(f"   Owner:            {args.owner}")
    print(f"   Embedding model:  {config.EMBEDDING_MODEL}")
    print(f"   Chunk size:       {config.CHUNK_SIZE} chars (overlap {config.CHUNK_OVERLAP})")
    print(f"   Qdrant:           {config.QDRANT_URL or '(not configured)'}")

    service = await build_service()
    stats = {"files_ingested": 0, "files_failed": 0, "chunks_created": 0}

    try:
        if args.clear:
            await service.delete_namespace(args.owner)
            print(f"\n🧹 Cleared namespace for {args.owner}")

        progress.start(f"Ingesting {len(args.files)} file(s)")

        for idx, file_path in enumerate(args.files, 1):
            progress.update(idx, len(args.files), file_path)
            mime_type = MIME_BY_SUFFIX.get(file_path.suffix.lower(), "application/octet-stream")
            document_id = file_path.stem if args.replace else None

            try:
                if document_id:
                    await service.delete_document(args.owner, document_id)
                result = await service.ingest_file(
                    args.owner,
                    filename=file_path.name,
                    mime_type=mime_type,
                    data=file_path.read_bytes(),
                    document_id=document_id,
                )
                stats["files_ingested"] += 1
                stats["chunks_created"] += result.chunk_count
            except (RetrievalError, OSError) as e:
                stats["files_failed"] += 1
                logger.error("file_ingestion_failed", path=str(file_path), error=str(e))

        progress.finish(stats, service.status()["active_backend"])

    except KeyboardInterrupt:
        print("\n\n⚠️  Ingestion cancelled by user.\n")
        sys.exit(1)
    finally:
        await service.close()

    if stats["files_failed"] > 0:
        sys.exit(1)


if __name__ == "__main__":
    asyncio.run(main())
