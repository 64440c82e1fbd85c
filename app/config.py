"""Application configuration with sensible defaults."""
import os
from pathlib import Path

# Paths
BASE_DIR = Path(__file__).parent.parent
DATA_DIR = BASE_DIR / "data"

# Ensure data directories exist
DATA_DIR.mkdir(exist_ok=True)

# Embedding provider (Ollama). Empty base URL disables the provider.
OLLAMA_BASE_URL = os.getenv("OLLAMA_BASE_URL", "http://localhost:11434")
EMBEDDING_MODEL = os.getenv("EMBEDDING_MODEL", "nomic-embed-text")
EMBEDDING_DIMENSION = int(os.getenv("EMBEDDING_DIMENSION", "768"))
EMBEDDING_TIMEOUT = float(os.getenv("EMBEDDING_TIMEOUT", "30.0"))
EMBEDDING_CONCURRENCY = int(os.getenv("EMBEDDING_CONCURRENCY", "4"))

# Primary vector engine (Qdrant). Unset URL means "not configured".
QDRANT_URL = os.getenv("QDRANT_URL") or None
QDRANT_API_KEY = os.getenv("QDRANT_API_KEY") or None
QDRANT_TIMEOUT = int(os.getenv("QDRANT_TIMEOUT", "10"))
COLLECTION_PREFIX = os.getenv("COLLECTION_PREFIX", "chatbot_")

# Chunking (character-based)
CHUNK_SIZE = int(os.getenv("CHUNK_SIZE", "1000"))
CHUNK_OVERLAP = int(os.getenv("CHUNK_OVERLAP", "200"))

# Retrieval
DEFAULT_SEARCH_LIMIT = int(os.getenv("DEFAULT_SEARCH_LIMIT", "5"))
DEFAULT_SCORE_THRESHOLD = float(os.getenv("DEFAULT_SCORE_THRESHOLD", "0.5"))
CONTEXT_SEARCH_LIMIT = int(os.getenv("CONTEXT_SEARCH_LIMIT", "5"))
CONTEXT_SCORE_THRESHOLD = float(os.getenv("CONTEXT_SCORE_THRESHOLD", "0.7"))
MAX_CONTEXT_LENGTH = int(os.getenv("MAX_CONTEXT_LENGTH", "3000"))

# Bounds enforced at the service boundary
MAX_SEARCH_LIMIT = 10
MIN_SCORE_THRESHOLD = 0.1
MAX_CONTEXT_LENGTH_LIMIT = 5000
SUPPORTED_MIME_TYPES = ("text/plain", "application/json")

# Database (fallback vector store)
DB_PATH = Path(os.getenv("VECTOR_DB_PATH", str(DATA_DIR / "vectors.sqlite")))

# Logging
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
