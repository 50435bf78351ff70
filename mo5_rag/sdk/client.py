"""
Async client for the MO5 RAG search service REST API.
"""

from __future__ import annotations

import json
import logging
from typing import Any, Dict, List, Optional
from urllib.parse import quote

import httpx

from mo5_rag.core.config import BridgeConfig
from mo5_rag.core.types import SearchQuery
from mo5_rag.mcp.requests import RemoteCallSpec, describe_transport_error, fetch_once, fetch_with_retry
from mo5_rag.sdk.errors import MalformedPayloadError, RagAPIError, RagConnectionError

logger = logging.getLogger("Mo5Rag.sdk.client")

SEARCH_PATH = "/api/Search"
DOCUMENTS_PATH = "/api/Documents"
TAGS_PATH = "/api/Documents/tags"
INDEX_STATUS_PATH = "/api/Index/status"
DEBUG_PREVIEW_CHARS = 200


def _decode_json(response: httpx.Response, path: str) -> Any:
    try:
        return response.json()
    except ValueError as exc:
        raise MalformedPayloadError(f"Invalid JSON from {path}: {exc}") from exc


def _unreadable(path: str, exc: httpx.HTTPError) -> MalformedPayloadError:
    # The exchange completed but httpx could not decode it, e.g. a corrupt gzip body.
    return MalformedPayloadError(f"Unreadable response from {path}: {type(exc).__name__}: {exc}")


class AsyncRagClient:
    """
    Async client for the RAG backend.

    Usage:
        async with AsyncRagClient(BridgeConfig.from_env()) as client:
            payload = await client.search(SearchQuery(query="cartridge format"))

    Search goes through the retrying fetcher; the read endpoints are single
    attempts so a failing resource read surfaces immediately.
    """

    def __init__(
        self,
        config: BridgeConfig,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        self.config = config
        self.base_url = config.base_url
        self._owns_client = http_client is None
        self._client = http_client or httpx.AsyncClient(
            headers={"Accept": "application/json"},
            timeout=config.request_timeout_sec,
        )

    async def close(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def __aenter__(self) -> "AsyncRagClient":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    def _url(self, path: str) -> str:
        if not path.startswith("/"):
            path = f"/{path}"
        return f"{self.base_url}{path}"

    async def search(self, query: SearchQuery) -> Dict[str, Any]:
        spec = RemoteCallSpec(
            url=self._url(SEARCH_PATH),
            method="POST",
            headers={"Content-Type": "application/json"},
            body=query.to_payload(),
            timeout=self.config.request_timeout_sec,
            max_attempts=self.config.max_attempts,
            backoff_base=self.config.backoff_base_sec,
            jitter=self.config.retry_jitter,
        )
        try:
            outcome = await fetch_with_retry(self._client, spec)
        except httpx.HTTPError as exc:
            raise _unreadable(SEARCH_PATH, exc) from exc
        if not outcome.ok:
            raise RagConnectionError(
                describe_transport_error(outcome.error),
                attempts=outcome.attempts,
                cause=outcome.error,
            ) from outcome.error

        response = outcome.response
        if response.is_error:
            raise RagAPIError(
                f"Search API error ({response.status_code}): {response.text}",
                status_code=response.status_code,
                path=SEARCH_PATH,
                body=response.text,
            )

        payload = _decode_json(response, SEARCH_PATH)
        if logger.isEnabledFor(logging.DEBUG):
            logger.debug("Search payload preview: %s", json.dumps(payload)[:DEBUG_PREVIEW_CHARS])
        if not isinstance(payload, dict):
            raise MalformedPayloadError(f"Expected an object from {SEARCH_PATH}, got {type(payload).__name__}")
        return payload

    async def _get(self, path: str, *, not_found_detail: Optional[str] = None) -> Any:
        try:
            response = await fetch_once(self._client, self._url(path), timeout=self.config.request_timeout_sec)
        except httpx.TransportError as exc:
            raise RagConnectionError(
                f"Failed to reach RAG backend at {self.base_url}: {describe_transport_error(exc)}",
                cause=exc,
            ) from exc
        except httpx.HTTPError as exc:
            raise _unreadable(path, exc) from exc

        if response.is_error:
            detail = not_found_detail or f"HTTP {response.status_code} error: {response.text}"
            raise RagAPIError(detail, status_code=response.status_code, path=path, body=response.text)
        return _decode_json(response, path)

    async def list_documents(self) -> List[Dict[str, Any]]:
        return await self._get(DOCUMENTS_PATH)

    async def list_tags(self) -> List[Dict[str, Any]]:
        return await self._get(TAGS_PATH)

    async def get_document(self, document_id: str) -> Dict[str, Any]:
        return await self._get(
            f"{DOCUMENTS_PATH}/{quote(document_id, safe='')}",
            not_found_detail="Document not found",
        )

    async def index_status(self) -> Any:
        return await self._get(INDEX_STATUS_PATH)
