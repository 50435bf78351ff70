"""
MO5 RAG SDK exceptions.
"""

from __future__ import annotations

from typing import Any, Optional


class RagError(RuntimeError):
    """Base class for backend client errors."""


class RagConnectionError(RagError):
    """Raised when the RAG backend stays unreachable after every attempt."""

    def __init__(self, detail: str, *, attempts: int = 1, cause: Optional[BaseException] = None) -> None:
        self.attempts = attempts
        self.cause = cause
        super().__init__(detail)


class RagAPIError(RagError):
    """Raised when the backend answers with a non-2xx status."""

    def __init__(
        self,
        detail: str,
        *,
        status_code: Optional[int] = None,
        path: Optional[str] = None,
        body: Optional[Any] = None,
    ) -> None:
        self.status_code = status_code
        self.path = path
        self.body = body
        super().__init__(detail)


class MalformedPayloadError(RagError, ValueError):
    """Raised when a backend body is not JSON or has the wrong top-level shape."""
