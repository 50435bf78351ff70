"""
MO5 RAG: MCP bridge to the Thomson MO5 documentation search service
"""

from mo5_rag.core.config import BridgeConfig
from mo5_rag.core.types import SearchQuery
from mo5_rag.sdk import (
    AsyncRagClient,
    MalformedPayloadError,
    RagAPIError,
    RagConnectionError,
    RagError,
)
from mo5_rag.version import __version__

__all__ = [
    "__version__",
    "BridgeConfig",
    "SearchQuery",
    "AsyncRagClient",
    "RagError",
    "RagConnectionError",
    "RagAPIError",
    "MalformedPayloadError",
]
