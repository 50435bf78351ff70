"""
MO5 RAG SDK public exports.
"""

from mo5_rag.sdk.client import AsyncRagClient
from mo5_rag.sdk.errors import MalformedPayloadError, RagAPIError, RagConnectionError, RagError

__all__ = [
    "AsyncRagClient",
    "RagError",
    "RagConnectionError",
    "RagAPIError",
    "MalformedPayloadError",
]
