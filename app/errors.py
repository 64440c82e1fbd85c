"""Error taxonomy for the retrieval pipeline.

Only ValidationError and BackendExhaustedError are meant to reach callers
of the service; ProviderError is absorbed by the embedder (deterministic
fallback) and by the router (failover to the relational store).
"""
from typing import Optional


class RetrievalError(Exception):
    """Base class for all retrieval pipeline errors."""


class ValidationError(RetrievalError, ValueError):
    """Invalid input or out-of-range parameter. Never retried."""


class ProviderError(RetrievalError):
    """Failure of an external collaborator (embedding provider or vector store)."""

    def __init__(self, provider: str, message: str, cause: Optional[BaseException] = None):
        self.provider = provider
        self.cause = cause
        super().__init__(f"{provider}: {message}")


class BackendExhaustedError(RetrievalError):
    """Both the primary and the fallback store failed the same operation."""

    def __init__(
        self,
        operation: str,
        primary_error: Optional[BaseException] = None,
        fallback_error: Optional[BaseException] = None,
    ):
        self.operation = operation
        self.primary_error = primary_error
        self.fallback_error = fallback_error

        parts = [f"All vector backends failed for '{operation}'"]
        if primary_error is not None:
            parts.append(f"primary: {primary_error}")
        if fallback_error is not None:
            parts.append(f"fallback: {fallback_error}")
        super().__init__("; ".join(parts))
