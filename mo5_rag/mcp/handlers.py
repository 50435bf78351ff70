"""
MO5 RAG MCP Request Routing
---------------------------
One coroutine per MCP request category. Search failures become
error-flagged tool content; resource and prompt failures raise `McpError`,
which the server turns into a JSON-RPC error object.
"""

import logging
from typing import Any, Awaitable, Callable, Dict, Optional

from pydantic import ValidationError

from mo5_rag.core.config import BridgeConfig
from mo5_rag.core.types import SearchQuery
from mo5_rag.sdk.client import AsyncRagClient
from mo5_rag.sdk.errors import RagAPIError, RagError

from .definitions import (
    SEARCH_TOOL_NAME,
    TEXT_MIME_TYPE,
    find_prompt,
    list_prompts_payload,
    list_resource_templates_payload,
    list_resources_payload,
    list_tools_payload,
)
from .formatting import (
    format_document,
    format_document_list,
    format_index_status,
    format_search_results,
    format_tag_list,
)
from .protocol import (
    BACKEND_UNAVAILABLE,
    INVALID_PARAMS,
    RESOURCE_NOT_FOUND,
    ResourceKind,
    RpcCategory,
    parse_resource_uri,
)

logger = logging.getLogger("Mo5Rag.mcp.handlers")

SEARCH_FAILURE_TEMPLATE = "Sorry, the search server did not answer after several attempts (Error: {cause})."
CLIP_NOTICE = "\n\n[{omitted} of {total} characters omitted; raise MO5_RAG_TOOL_RESPONSE_MAX_CHARS to see more]"


class McpError(Exception):
    """A failure reported to the host as a JSON-RPC error object."""

    def __init__(self, code: int, message: str):
        self.code = code
        self.message = message
        super().__init__(message)


def _text_content(text: str, *, is_error: bool = False) -> Dict[str, Any]:
    result: Dict[str, Any] = {"content": [{"type": "text", "text": text}]}
    if is_error:
        result["isError"] = True
    return result


def _describe_validation_error(exc: ValidationError) -> str:
    parts = []
    for error in exc.errors():
        location = ".".join(str(item) for item in error.get("loc", ())) or "arguments"
        parts.append(f"{location}: {error.get('msg', 'invalid value')}")
    return "; ".join(parts)


class McpRouter:
    """
    Maps MCP request categories onto the catalog and the RAG backend.

    Stateless across requests. Tool-call failures come back as error-flagged
    content; resource and prompt failures raise `McpError`.
    """

    def __init__(self, config: BridgeConfig, client: AsyncRagClient):
        self.config = config
        self.client = client
        self._handlers: Dict[RpcCategory, Callable[[Dict[str, Any]], Awaitable[Dict[str, Any]]]] = {
            RpcCategory.LIST_TOOLS: self.list_tools,
            RpcCategory.CALL_TOOL: self.call_tool,
            RpcCategory.LIST_RESOURCES: self.list_resources,
            RpcCategory.LIST_RESOURCE_TEMPLATES: self.list_resource_templates,
            RpcCategory.READ_RESOURCE: self.read_resource,
            RpcCategory.LIST_PROMPTS: self.list_prompts,
            RpcCategory.GET_PROMPT: self.get_prompt,
        }

    async def dispatch(self, category: RpcCategory, params: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        return await self._handlers[category](params or {})

    async def list_tools(self, params: Dict[str, Any]) -> Dict[str, Any]:
        return {"tools": list_tools_payload()}

    async def list_resources(self, params: Dict[str, Any]) -> Dict[str, Any]:
        return {"resources": list_resources_payload()}

    async def list_resource_templates(self, params: Dict[str, Any]) -> Dict[str, Any]:
        return {"resourceTemplates": list_resource_templates_payload()}

    async def list_prompts(self, params: Dict[str, Any]) -> Dict[str, Any]:
        return {"prompts": list_prompts_payload()}

    async def call_tool(self, params: Dict[str, Any]) -> Dict[str, Any]:
        """Handle tool execution requests."""
        name = params.get("name")
        arguments = params.get("arguments") or {}

        if name != SEARCH_TOOL_NAME:
            logger.warning("Rejected call to unknown tool %r", name)
            return _text_content(f"Unknown tool: {name}", is_error=True)
        if not isinstance(arguments, dict):
            return _text_content(
                f"Invalid arguments for {SEARCH_TOOL_NAME}: arguments must be an object",
                is_error=True,
            )

        try:
            query = SearchQuery.from_arguments(arguments)
        except ValidationError as exc:
            return _text_content(
                f"Invalid arguments for {SEARCH_TOOL_NAME}: {_describe_validation_error(exc)}",
                is_error=True,
            )

        try:
            payload = await self.client.search(query)
            text = format_search_results(payload)
        except RagError as exc:
            logger.error("%s failed: %s", SEARCH_TOOL_NAME, exc)
            return _text_content(SEARCH_FAILURE_TEMPLATE.format(cause=exc), is_error=True)

        return _text_content(self._clip(text))

    def _clip(self, text: str) -> str:
        """Fit a tool reply into the configured size, cutting between hits when possible."""
        limit = self.config.tool_response_max_chars
        total = len(text)
        if total <= limit:
            return text
        # Notice length is bounded by formatting it with the full count.
        budget = max(0, limit - len(CLIP_NOTICE.format(omitted=total, total=total)))
        cut = text.rfind("\n\n", 0, budget + 1)
        if cut < budget // 2:
            cut = budget
        logger.warning("Clipping %s reply from %d to %d chars", SEARCH_TOOL_NAME, total, cut)
        return text[:cut] + CLIP_NOTICE.format(omitted=total - cut, total=total)

    async def read_resource(self, params: Dict[str, Any]) -> Dict[str, Any]:
        uri = params.get("uri")
        if not isinstance(uri, str) or not uri:
            raise McpError(INVALID_PARAMS, "Invalid params: resources/read requires a string uri")

        target = parse_resource_uri(uri)
        if target is None:
            raise McpError(RESOURCE_NOT_FOUND, f"Resource error ({uri}): Unknown resource")
        kind, document_id = target

        try:
            if kind is ResourceKind.DOCUMENT_LIST:
                text = format_document_list(await self.client.list_documents())
            elif kind is ResourceKind.TAG_LIST:
                text = format_tag_list(await self.client.list_tags())
            elif kind is ResourceKind.INDEX_STATUS:
                text = format_index_status(await self.client.index_status())
            else:
                text = format_document(await self.client.get_document(document_id))
        except RagAPIError as exc:
            code = RESOURCE_NOT_FOUND if kind is ResourceKind.DOCUMENT and exc.status_code == 404 else BACKEND_UNAVAILABLE
            raise McpError(code, f"Resource error ({uri}): {exc}") from exc
        except RagError as exc:
            logger.error("Reading resource %s failed: %s", uri, exc)
            raise McpError(BACKEND_UNAVAILABLE, f"Resource error ({uri}): {exc}") from exc

        return {"contents": [{"uri": uri, "mimeType": TEXT_MIME_TYPE, "text": text}]}

    async def get_prompt(self, params: Dict[str, Any]) -> Dict[str, Any]:
        name = params.get("name")
        try:
            prompt = find_prompt(name)
        except KeyError:
            raise McpError(INVALID_PARAMS, f"Unknown prompt: {name}") from None
        return prompt.render()
