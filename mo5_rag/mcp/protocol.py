"""
MO5 RAG MCP Protocol Constants & Request Categories
"""

from enum import Enum
from typing import Optional, Tuple

from .definitions import URI_DOCUMENT_LIST, URI_DOCUMENT_PREFIX, URI_INDEX_STATUS, URI_TAG_LIST

SUPPORTED_PROTOCOL_VERSIONS = ("2025-06-18", "2025-03-26", "2024-11-05")
SERVER_NAME = "mo5-rag-mcp"

# Standard JSON-RPC Error Codes
INVALID_REQUEST = -32600
METHOD_NOT_FOUND = -32601
INVALID_PARAMS = -32602
INTERNAL_ERROR = -32603
PARSE_ERROR = -32700

# Bridge Specific Error Codes
BACKEND_UNAVAILABLE = -32000
RESOURCE_NOT_FOUND = -32002


def negotiate_protocol_version(version: Optional[str]) -> Optional[str]:
    if not version:
        return SUPPORTED_PROTOCOL_VERSIONS[0]
    if version in SUPPORTED_PROTOCOL_VERSIONS:
        return version
    return None


class RpcCategory(str, Enum):
    LIST_TOOLS = "tools/list"
    CALL_TOOL = "tools/call"
    LIST_RESOURCES = "resources/list"
    LIST_RESOURCE_TEMPLATES = "resources/templates/list"
    READ_RESOURCE = "resources/read"
    LIST_PROMPTS = "prompts/list"
    GET_PROMPT = "prompts/get"

    @classmethod
    def from_method(cls, method: str) -> Optional["RpcCategory"]:
        try:
            return cls(method)
        except ValueError:
            return None


class ResourceKind(str, Enum):
    DOCUMENT_LIST = "document_list"
    TAG_LIST = "tag_list"
    INDEX_STATUS = "index_status"
    DOCUMENT = "document"


_EXACT_RESOURCES = {
    URI_DOCUMENT_LIST: ResourceKind.DOCUMENT_LIST,
    URI_TAG_LIST: ResourceKind.TAG_LIST,
    URI_INDEX_STATUS: ResourceKind.INDEX_STATUS,
}


def parse_resource_uri(uri: str) -> Optional[Tuple[ResourceKind, Optional[str]]]:
    """Map a resource URI to its kind and, for documents, the document id.

    Exact URIs win over the ``documents://<id>`` prefix. Returns None for
    anything unrecognized, including an empty id.
    """
    kind = _EXACT_RESOURCES.get(uri)
    if kind is not None:
        return kind, None
    if uri.startswith(URI_DOCUMENT_PREFIX):
        document_id = uri[len(URI_DOCUMENT_PREFIX):]
        if document_id:
            return ResourceKind.DOCUMENT, document_id
    return None
